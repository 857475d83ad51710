"""Batch orchestration: status transitions, routing, logging and outcome events."""

import logging

from batch_orchestrator.exceptions import PersistenceError
from batch_orchestrator.models.entities import (
    Batch,
    BatchStatus,
    LogLevel,
    ProcessingLogEntry,
)
from batch_orchestrator.models.recovery import RecoveryReport, RecoveryStep, StepStatus
from batch_orchestrator.models.schemas import (
    BatchMessage,
    ClientSnapshot,
    EntitySnapshot,
    InvocationOutcome,
    OutcomeEvent,
    PclFileSnapshot,
    ProcessingReport,
)
from batch_orchestrator.services.processing_type import derive_processing_type
from batch_orchestrator.services.publisher import OutcomePublisher
from batch_orchestrator.services.router import Router
from batch_orchestrator.services.stores import (
    BatchStore,
    ClientStore,
    LogStore,
    PclFileStore,
    ProfileStore,
)

logger = logging.getLogger(__name__)

PROFILE_NOT_FOUND = "profile not found"


class BatchOrchestrator:
    """Runs one batch through the pipeline and owns all error recovery."""

    def __init__(
        self,
        batch_store: BatchStore,
        profile_store: ProfileStore,
        log_store: LogStore,
        router: Router,
        publisher: OutcomePublisher,
        result_queue: str,
        client_store: ClientStore | None = None,
        file_store: PclFileStore | None = None,
        reprocess_terminal_batches: bool = False,
        publish_on_missing_profile: bool = True,
    ):
        self._batch_store = batch_store
        self._profile_store = profile_store
        self._log_store = log_store
        self._router = router
        self._publisher = publisher
        self._result_queue = result_queue
        self._client_store = client_store
        self._file_store = file_store
        self._reprocess_terminal_batches = reprocess_terminal_batches
        self._publish_on_missing_profile = publish_on_missing_profile

    def process_batch(self, message: BatchMessage) -> ProcessingReport:
        """
        Process the batch referenced by a work-queue message.

        Per-message failures never escape: unexpected errors run the
        recovery pipeline and are reported in the returned report.

        Args:
            message: Deserialized work-queue message.

        Returns:
            ProcessingReport describing what happened.
        """
        try:
            return self._process(message)
        except Exception as e:
            logger.error(
                "Critical error processing batch %d: %s",
                message.batch_id,
                e,
                exc_info=True,
            )
            recovery = self._recover(message.batch_id, e)
            marked = recovery.step("mark_failed")
            published = recovery.step("publish_event")
            return ProcessingReport(
                batch_id=message.batch_id,
                final_status=BatchStatus.FAILED if marked and marked.ok else None,
                event_published=bool(published and published.ok),
                error=str(e),
                recovery=recovery,
            )

    def _process(self, message: BatchMessage) -> ProcessingReport:
        batch_id = message.batch_id
        logger.info("Loading batch %d...", batch_id)

        batch = self._batch_store.get_by_id(batch_id)
        if batch is None:
            logger.warning("Batch %d not found, skipping", batch_id)
            return ProcessingReport(
                batch_id=batch_id, skipped=True, error="batch not found"
            )

        logger.info(
            "Batch %d found - status: %s, profile: %d",
            batch_id,
            batch.status.value,
            batch.profile_id,
        )

        if batch.status.is_terminal and not self._reprocess_terminal_batches:
            logger.info(
                "Batch %d already %s, ignoring redelivery", batch_id, batch.status.name
            )
            return ProcessingReport(
                batch_id=batch_id, final_status=batch.status, skipped=True
            )

        profile = self._profile_store.get_by_id(batch.profile_id)
        if profile is None:
            logger.error("Routing profile %d not found for batch %d", batch.profile_id, batch_id)
            self._save_status(batch, BatchStatus.FAILED)
            self._append_log(batch_id, f"Processing failed: {PROFILE_NOT_FOUND}", LogLevel.ERROR)
            published = False
            if self._publish_on_missing_profile:
                self._publish(OutcomeEvent.failure(batch_id, PROFILE_NOT_FOUND))
                published = True
            return ProcessingReport(
                batch_id=batch_id,
                final_status=BatchStatus.FAILED,
                event_published=published,
                error=PROFILE_NOT_FOUND,
            )

        processing_type = derive_processing_type(profile)
        logger.info(
            "Profile %d (%s) resolved to processing type %s",
            profile.id,
            profile.name,
            processing_type,
        )

        self._save_status(batch, BatchStatus.PROCESSING)
        self._append_log(
            batch_id, f"Processing started - type: {processing_type}", LogLevel.INFO
        )

        outcome = self._router.route(
            batch,
            profile,
            processing_type=processing_type,
            callback_url=message.callback_url,
            snapshot=self._resolve_snapshot(batch),
        )

        if outcome.success:
            return self._complete(batch, outcome, processing_type)
        return self._fail(batch, outcome, processing_type)

    def _complete(
        self, batch: Batch, outcome: InvocationOutcome, processing_type: str
    ) -> ProcessingReport:
        logger.info(
            "Batch %d completed: %d item(s) in %.2fs, output: %s",
            batch.id,
            outcome.item_count,
            outcome.duration.total_seconds(),
            outcome.artifacts[0] if outcome.artifacts else "N/A",
        )
        if outcome.artifacts:
            batch.output_path = outcome.artifacts[0]
        self._save_status(batch, BatchStatus.COMPLETED)
        self._append_log(
            batch.id,
            f"Processing completed - {outcome.item_count} item(s) processed",
            LogLevel.SUCCESS,
        )

        self._publish(OutcomeEvent.from_outcome(batch.id, outcome))
        return ProcessingReport(
            batch_id=batch.id,
            final_status=BatchStatus.COMPLETED,
            processing_type=processing_type,
            event_published=True,
        )

    def _fail(
        self, batch: Batch, outcome: InvocationOutcome, processing_type: str
    ) -> ProcessingReport:
        logger.error("Batch %d failed: %s", batch.id, outcome.message)
        self._save_status(batch, BatchStatus.FAILED)
        self._append_log(
            batch.id, f"Processing failed: {outcome.message}", LogLevel.ERROR
        )

        self._publish(OutcomeEvent.from_outcome(batch.id, outcome))
        return ProcessingReport(
            batch_id=batch.id,
            final_status=BatchStatus.FAILED,
            processing_type=processing_type,
            event_published=True,
            error=outcome.message,
        )

    def _resolve_snapshot(self, batch: Batch) -> EntitySnapshot | None:
        """Load client and file list for the payload, when stores are wired."""
        if self._client_store is None and self._file_store is None:
            return None

        try:
            snapshot = EntitySnapshot()
            if self._client_store is not None:
                client = self._client_store.get_by_id(batch.client_id)
                if client is not None:
                    snapshot.client = ClientSnapshot.from_client(client)
            if self._file_store is not None:
                snapshot.files = [
                    PclFileSnapshot.from_file(f)
                    for f in self._file_store.list_by_batch(batch.id)
                ]
            return snapshot
        except PersistenceError as e:
            logger.warning(
                "Entity snapshot unavailable for batch %d, sending message data only: %s",
                batch.id,
                e,
            )
            return None

    def _save_status(self, batch: Batch, status: BatchStatus) -> None:
        batch.transition(status)
        self._batch_store.update(batch)
        logger.info("Batch %d status -> %s", batch.id, status.value)

    def _append_log(self, batch_id: int, message: str, level: LogLevel) -> None:
        self._log_store.append(ProcessingLogEntry.now(batch_id, message, level))

    def _publish(self, event: OutcomeEvent) -> None:
        logger.info(
            "Publishing outcome for batch %d to %s (success=%s)",
            event.batch_id,
            self._result_queue,
            event.success,
        )
        self._publisher.publish(event, self._result_queue)

    def _recover(self, batch_id: int, cause: Exception) -> RecoveryReport:
        """Best-effort recovery; every step runs regardless of the others."""
        reason = f"Critical error: {cause}"
        report = RecoveryReport(cause=str(cause))
        report.add(self._recover_status(batch_id, str(cause)))
        report.add(self._recover_log(batch_id, reason))
        report.add(self._recover_publish(batch_id, reason))

        if report.fully_recovered:
            logger.info("Recovery of batch %d completed", batch_id)
        else:
            failed = [s.name for s in report.steps if s.status == StepStatus.FAILED_CONTINUE]
            logger.error("Recovery of batch %d incomplete, failed steps: %s", batch_id, failed)
        return report

    def _recover_status(self, batch_id: int, reason: str) -> RecoveryStep:
        try:
            batch = self._batch_store.get_by_id(batch_id)
            if batch is None:
                return RecoveryStep(name="mark_failed", status=StepStatus.SKIPPED)
            self._save_status(batch, BatchStatus.FAILED)
            return RecoveryStep(name="mark_failed", status=StepStatus.SUCCEEDED)
        except Exception as e:
            logger.error("Could not mark batch %d as failed (%s): %s", batch_id, reason, e)
            return RecoveryStep(
                name="mark_failed", status=StepStatus.FAILED_CONTINUE, error=str(e)
            )

    def _recover_log(self, batch_id: int, reason: str) -> RecoveryStep:
        try:
            self._append_log(batch_id, reason, LogLevel.ERROR)
            return RecoveryStep(name="append_log", status=StepStatus.SUCCEEDED)
        except Exception as e:
            logger.error("Could not save error log for batch %d: %s", batch_id, e)
            return RecoveryStep(
                name="append_log", status=StepStatus.FAILED_CONTINUE, error=str(e)
            )

    def _recover_publish(self, batch_id: int, reason: str) -> RecoveryStep:
        # Recorded in the report, never rethrown
        try:
            self._publish(OutcomeEvent.failure(batch_id, reason))
            return RecoveryStep(name="publish_event", status=StepStatus.SUCCEEDED)
        except Exception as e:
            logger.error("Could not publish failure event for batch %d: %s", batch_id, e)
            return RecoveryStep(
                name="publish_event", status=StepStatus.FAILED_CONTINUE, error=str(e)
            )

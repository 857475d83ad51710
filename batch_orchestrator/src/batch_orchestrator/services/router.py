"""Router: builds the invocation payload and dispatches it."""

import logging

from batch_orchestrator.models.entities import Batch, RoutingProfile
from batch_orchestrator.models.schemas import (
    EntitySnapshot,
    InvocationOutcome,
    InvocationPayload,
    ProfileSnapshot,
)
from batch_orchestrator.services.invoker import Invoker
from batch_orchestrator.services.processing_type import (
    build_processing_config,
    derive_processing_type,
    merge_config,
)
from batch_orchestrator.services.routing_table import RoutingTable
from batch_orchestrator.utils.storage_path import parse_storage_path

logger = logging.getLogger(__name__)


class Router:
    """Routes a batch to the compute endpoint for its processing type."""

    def __init__(self, routing_table: RoutingTable, invoker: Invoker):
        """
        Initialize router.

        Args:
            routing_table: Processing type -> endpoint table.
            invoker: Invoker used to call the endpoint.
        """
        self._routing_table = routing_table
        self._invoker = invoker

    def resolve_endpoint(self, processing_type: str | None) -> str:
        return self._routing_table.resolve_endpoint(processing_type)

    def build_payload(
        self,
        batch: Batch,
        profile: RoutingProfile,
        processing_type: str | None = None,
        callback_url: str | None = None,
        snapshot: EntitySnapshot | None = None,
    ) -> InvocationPayload:
        """
        Build the enriched payload for a batch.

        Raises:
            ConfigurationError: No endpoint resolves for the processing type.
        """
        processing_type = processing_type or derive_processing_type(profile)
        endpoint_id = self.resolve_endpoint(processing_type)
        location = parse_storage_path(batch.storage_path)

        payload = InvocationPayload(
            batch_id=batch.id,
            s3_bucket=location.bucket,
            s3_key=location.key,
            profile=ProfileSnapshot.from_profile(profile),
            processing_type=processing_type,
            endpoint_id=endpoint_id,
            callback_url=callback_url,
        )
        if snapshot is not None:
            payload.client = snapshot.client
            payload.files = snapshot.files

        payload.config = merge_config(
            payload.config, build_processing_config(processing_type, profile.template)
        )
        logger.debug(
            "Payload for batch %d enriched for %s with %d setting(s)",
            batch.id,
            processing_type,
            len(payload.config),
        )
        return payload

    def route(
        self,
        batch: Batch,
        profile: RoutingProfile,
        processing_type: str | None = None,
        callback_url: str | None = None,
        snapshot: EntitySnapshot | None = None,
    ) -> InvocationOutcome:
        """
        Route a batch to its compute endpoint and return the outcome.

        Args:
            batch: Batch to process.
            profile: Routing profile of the batch.
            processing_type: Already derived type, derived here when omitted.
            callback_url: Caller-supplied callback reference.
            snapshot: Client and file list, embedded when available.

        Returns:
            InvocationOutcome from the invoker.

        Raises:
            ConfigurationError: No endpoint resolves for the processing type.
        """
        payload = self.build_payload(
            batch,
            profile,
            processing_type=processing_type,
            callback_url=callback_url,
            snapshot=snapshot,
        )
        logger.info(
            "Routing batch %d (%s) to %s",
            batch.id,
            payload.processing_type,
            payload.endpoint_id,
        )
        return self._invoker.invoke(payload)

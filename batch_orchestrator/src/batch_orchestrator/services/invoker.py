"""Invoker: synchronous compute endpoint calls with failure translation."""

import json
import logging
import time
from datetime import timedelta

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
)
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from batch_orchestrator.exceptions import ConfigurationError, InvocationError
from batch_orchestrator.infrastructure.lambda_client import LambdaClient, LambdaInvocation
from batch_orchestrator.models.schemas import (
    EndpointResponse,
    InvocationOutcome,
    InvocationPayload,
)

logger = logging.getLogger(__name__)

# Raised before the request reaches the endpoint; everything else fails
# immediately since the function may already have run
TRANSIENT_ERRORS = (
    EndpointConnectionError,
    ConnectTimeoutError,
)


class Invoker:
    """Calls the compute endpoint and normalizes every failure into an outcome."""

    def __init__(
        self,
        lambda_client: LambdaClient,
        max_attempts: int = 3,
        backoff_min: float = 1,
        backoff_max: float = 10,
        sleep=time.sleep,
    ):
        """
        Initialize invoker.

        Args:
            lambda_client: Lambda client wrapper.
            max_attempts: Attempts for transient transport errors.
            backoff_min: Minimum seconds between attempts.
            backoff_max: Maximum seconds between attempts.
            sleep: Sleep function used between attempts.
        """
        self._lambda_client = lambda_client
        self._retrying = Retrying(
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(min=backoff_min, max=backoff_max),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=sleep,
            reraise=True,
        )

    def invoke(self, payload: InvocationPayload) -> InvocationOutcome:
        """
        Invoke the endpoint named in the payload.

        Args:
            payload: Invocation payload with resolved endpoint id.

        Returns:
            InvocationOutcome; failures are returned, never raised.

        Raises:
            ConfigurationError: The payload carries no endpoint id.
        """
        if not payload.endpoint_id:
            raise ConfigurationError(
                f"No endpoint id for processing type {payload.processing_type!r}"
            )

        started = time.monotonic()
        logger.info(
            "Invoking %s for batch %d (%s)",
            payload.endpoint_id,
            payload.batch_id,
            payload.processing_type,
        )

        try:
            body = payload.to_json()
            logger.debug("Payload: %s", body)
            invocation = self._retrying(
                self._lambda_client.invoke, payload.endpoint_id, body
            )
            outcome = self._to_outcome(invocation, self._elapsed(started))
        except TRANSIENT_ERRORS as e:
            logger.error(
                "Endpoint unreachable for batch %d after %d attempt(s): %s",
                payload.batch_id,
                self.attempts_made,
                e,
            )
            return InvocationOutcome.failure(str(e), self._elapsed(started))
        except (ClientError, BotoCoreError, InvocationError, ValueError) as e:
            logger.error(
                "Invocation failed for batch %d after %d attempt(s): %s",
                payload.batch_id,
                self.attempts_made,
                e,
            )
            return InvocationOutcome.failure(str(e), self._elapsed(started))

        if outcome.success:
            logger.info(
                "Batch %d processed: %d item(s), %d artifact(s) in %.2fs",
                payload.batch_id,
                outcome.item_count,
                len(outcome.artifacts),
                outcome.duration.total_seconds(),
            )
        else:
            logger.warning(
                "Endpoint reported failure for batch %d: %s",
                payload.batch_id,
                outcome.message,
            )
        return outcome

    @property
    def attempts_made(self) -> int:
        """Attempts made by the most recent invocation."""
        return self._retrying.statistics.get("attempt_number", 0)

    @staticmethod
    def _elapsed(started: float) -> timedelta:
        return timedelta(seconds=time.monotonic() - started)

    def _to_outcome(
        self, invocation: LambdaInvocation, elapsed: timedelta
    ) -> InvocationOutcome:
        if invocation.status_code != 200:
            raise InvocationError(
                f"Lambda invocation failed with status code: {invocation.status_code}"
            )

        if invocation.function_error:
            raise InvocationError(
                _error_message(invocation.body) or invocation.function_error
            )

        response = _parse_response(invocation.body)
        details = response.details

        artifacts = response.files or []
        if not artifacts and details is not None:
            artifacts = details.s3_files or details.files or []

        item_count = response.page_count
        if not item_count and details is not None:
            item_count = details.page_count

        duration = response.duration
        if duration is None and details is not None:
            duration = details.duration

        return InvocationOutcome(
            success=response.success,
            message=response.message or "",
            item_count=item_count or 0,
            artifacts=artifacts,
            duration=duration if duration is not None else elapsed,
        )


def _error_message(body: str) -> str | None:
    """Extract errorMessage from a function error body."""
    try:
        data = json.loads(body)
    except ValueError:
        return body.strip() or None
    if isinstance(data, dict):
        return data.get("errorMessage") or data.get("mensagemRetorno")
    return None


def _parse_response(body: str) -> EndpointResponse:
    """
    Parse the endpoint response body.

    Accepts the bare response object or an HTTP-style
    ``{"statusCode": ..., "body": ...}`` envelope.

    Raises:
        InvocationError: Body is empty, not JSON, or not a response object.
    """
    if not body or not body.strip() or body.strip() == "null":
        raise InvocationError("Empty response from compute endpoint")

    try:
        data = json.loads(body)
        if isinstance(data, dict) and "statusCode" in data and "body" in data:
            status_code = int(data["statusCode"])
            inner = data["body"]
            data = json.loads(inner) if isinstance(inner, str) else inner
            if status_code >= 400:
                message = data.get("mensagemRetorno") if isinstance(data, dict) else None
                raise InvocationError(
                    message or f"Compute endpoint returned status code {status_code}"
                )
        if not isinstance(data, dict):
            raise InvocationError("Invalid response from compute endpoint")
        return EndpointResponse.model_validate(data)
    except (ValueError, TypeError) as e:
        raise InvocationError(f"Invalid response from compute endpoint: {e}") from e

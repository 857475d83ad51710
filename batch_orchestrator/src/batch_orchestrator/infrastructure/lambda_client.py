"""Lambda client wrapper for AWS operations."""

import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class LambdaInvocation:
    """Raw result of a synchronous Lambda invocation."""

    status_code: int
    body: str
    function_error: str | None = None
    request_id: str | None = None


class LambdaClient:
    """Handles Lambda operations."""

    def __init__(self, client: Any):
        """
        Initialize Lambda client wrapper.

        Args:
            client: boto3 lambda client instance.
        """
        self._client = client

    def invoke(self, function_name: str, payload: str) -> LambdaInvocation:
        """
        Invoke a function synchronously (RequestResponse).

        Transport and service errors from botocore propagate so the caller
        can decide whether to retry.

        Args:
            function_name: Function name or ARN.
            payload: JSON request body.

        Returns:
            LambdaInvocation with status, decoded body and function error.
        """
        logger.info("Invoking Lambda: %s", function_name)
        response = self._client.invoke(
            FunctionName=function_name,
            InvocationType="RequestResponse",
            Payload=payload.encode("utf-8"),
        )

        stream = response.get("Payload")
        raw = stream.read() if stream is not None else b""
        body = raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)

        invocation = LambdaInvocation(
            status_code=int(response.get("StatusCode", 0)),
            body=body,
            function_error=response.get("FunctionError"),
            request_id=response.get("ResponseMetadata", {}).get("RequestId"),
        )
        logger.info(
            "Lambda responded: status=%d, function_error=%s, %d bytes",
            invocation.status_code,
            invocation.function_error,
            len(body),
        )
        return invocation

"""Processing type -> compute endpoint routing table."""

import logging
from collections.abc import Mapping
from types import MappingProxyType

from batch_orchestrator.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PROCESSING_TYPE = "Default"


class RoutingTable:
    """Immutable mapping from processing type to endpoint identifier."""

    def __init__(self, entries: Mapping[str, str]):
        """
        Initialize the routing table.

        Args:
            entries: Processing type -> endpoint id (e.g. Lambda ARN).
                Entries with empty endpoint ids are ignored.
        """
        self._entries = MappingProxyType(
            {key: value for key, value in entries.items() if value}
        )
        logger.info("Routing table loaded with %d endpoint(s)", len(self._entries))
        for processing_type, endpoint_id in self._entries.items():
            logger.debug("Route: %s -> %s", processing_type, endpoint_id)

    @property
    def entries(self) -> Mapping[str, str]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, processing_type: object) -> bool:
        return processing_type in self._entries

    def resolve_endpoint(self, processing_type: str | None) -> str:
        """
        Resolve the endpoint for a processing type.

        Falls back to the "Default" entry when the type is empty or unknown.

        Raises:
            ConfigurationError: Neither the type nor "Default" resolves.
        """
        if processing_type:
            endpoint_id = self._entries.get(processing_type)
            if endpoint_id:
                return endpoint_id
            logger.warning(
                "No endpoint for processing type %s, using %s",
                processing_type,
                DEFAULT_PROCESSING_TYPE,
            )
        else:
            logger.warning(
                "Processing type not specified, using %s", DEFAULT_PROCESSING_TYPE
            )

        endpoint_id = self._entries.get(DEFAULT_PROCESSING_TYPE)
        if not endpoint_id:
            raise ConfigurationError(
                f"No endpoint configured for processing type {processing_type!r} "
                f"and no {DEFAULT_PROCESSING_TYPE!r} endpoint"
            )
        return endpoint_id

"""Services package."""

from batch_orchestrator.services.consumer import BatchConsumer
from batch_orchestrator.services.invoker import Invoker
from batch_orchestrator.services.processing_type import (
    build_processing_config,
    derive_processing_type,
)
from batch_orchestrator.services.publisher import OutcomePublisher
from batch_orchestrator.services.router import Router
from batch_orchestrator.services.routing_table import RoutingTable
from batch_orchestrator.services.stores import (
    BatchStore,
    ClientStore,
    LogStore,
    PclFileStore,
    ProfileStore,
)

__all__ = [
    "BatchConsumer",
    "BatchStore",
    "ClientStore",
    "Invoker",
    "LogStore",
    "OutcomePublisher",
    "PclFileStore",
    "ProfileStore",
    "Router",
    "RoutingTable",
    "build_processing_config",
    "derive_processing_type",
]

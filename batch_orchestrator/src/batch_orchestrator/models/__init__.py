"""Models package."""

from batch_orchestrator.models.entities import (
    Batch,
    BatchStatus,
    Client,
    LogLevel,
    PclFile,
    ProcessingLogEntry,
    RoutingProfile,
)
from batch_orchestrator.models.recovery import RecoveryReport, RecoveryStep, StepStatus
from batch_orchestrator.models.schemas import (
    BatchMessage,
    ClientSnapshot,
    EndpointResponse,
    EntitySnapshot,
    InvocationOutcome,
    InvocationPayload,
    OutcomeEvent,
    PclFileSnapshot,
    ProcessingReport,
    ProfileSnapshot,
)

__all__ = [
    "Batch",
    "BatchMessage",
    "BatchStatus",
    "Client",
    "ClientSnapshot",
    "EndpointResponse",
    "EntitySnapshot",
    "InvocationOutcome",
    "InvocationPayload",
    "LogLevel",
    "OutcomeEvent",
    "PclFile",
    "PclFileSnapshot",
    "ProcessingLogEntry",
    "ProcessingReport",
    "ProfileSnapshot",
    "RecoveryReport",
    "RecoveryStep",
    "StepStatus",
    "RoutingProfile",
]

"""Exception hierarchy for the orchestrator."""


class OrchestratorError(Exception):
    """Base class for all orchestrator errors."""


class ConfigurationError(OrchestratorError):
    """Configuration cannot satisfy a request (e.g. no endpoint resolves)."""


class NotFoundError(OrchestratorError):
    """A batch or routing profile does not exist."""


class InvocationError(OrchestratorError):
    """The compute endpoint failed, was unreachable or answered garbage.

    Never escapes the invoker; it is translated into a failed outcome.
    """


class PersistenceError(OrchestratorError):
    """The relational store is unavailable or rejected an operation."""


class PublishError(OrchestratorError):
    """The broker rejected or could not accept an outcome event."""

"""Persistent entities read and written by the orchestrator."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchStatus(str, Enum):
    """Batch lifecycle states, valued with the labels stored upstream."""

    PENDING = "Pendente"
    PROCESSING = "Processando"
    COMPLETED = "Concluído"
    FAILED = "Erro"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.COMPLETED, BatchStatus.FAILED)

    @classmethod
    def from_label(cls, label: str) -> "BatchStatus":
        """Parse a stored label or an English state name (case-insensitive)."""
        normalized = label.strip().lower()
        for status in cls:
            if normalized in (status.value.lower(), status.name.lower()):
                return status
        aliases = {"concluido": cls.COMPLETED, "erro": cls.FAILED}
        if normalized in aliases:
            return aliases[normalized]
        raise ValueError(f"Unknown batch status: {label!r}")


class LogLevel(str, Enum):
    """Severity labels of processing log entries."""

    INFO = "Info"
    SUCCESS = "Success"
    WARNING = "Warning"
    ERROR = "Error"


class Batch(BaseModel):
    """One unit of client files submitted for processing."""

    id: int
    client_id: int
    user_id: int | None = None
    profile_id: int
    file_name: str = ""
    storage_path: str = ""
    status: BatchStatus = BatchStatus.PENDING
    created_at: datetime | None = None
    processed_at: datetime | None = None
    output_path: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value):
        if isinstance(value, str) and not isinstance(value, BatchStatus):
            return BatchStatus.from_label(value)
        return value

    def transition(self, status: BatchStatus) -> None:
        """Move to a new status and stamp the processing time."""
        self.status = status
        self.processed_at = utcnow()


class RoutingProfile(BaseModel):
    """Describes how a batch's files must be transformed."""

    id: int
    client_id: int
    name: str = ""
    description: str | None = None
    file_type: str | None = None
    delimiter: str | None = None
    template: str | None = None
    processing_type: str | None = None
    lambda_function: str | None = None
    created_at: datetime | None = None


class Client(BaseModel):
    id: int
    name: str = ""
    email: str | None = None
    phone: str | None = None
    created_at: datetime | None = None


class PclFile(BaseModel):
    """A file belonging to a batch."""

    id: int
    batch_id: int
    file_name: str = ""
    storage_path: str = ""
    local_path: str = ""
    size_bytes: int = 0
    page_count: int = 0
    status: str | None = None
    uploaded_at: datetime | None = None


class ProcessingLogEntry(BaseModel):
    """Append-only audit record."""

    batch_id: int
    message: str
    level: LogLevel
    logged_at: datetime

    @classmethod
    def now(cls, batch_id: int, message: str, level: LogLevel) -> "ProcessingLogEntry":
        return cls(batch_id=batch_id, message=message, level=level, logged_at=utcnow())

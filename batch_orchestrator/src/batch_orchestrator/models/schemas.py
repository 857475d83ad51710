"""Pydantic models for queue messages and compute endpoint payloads."""

import re
from datetime import datetime, timedelta
from typing import Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
    model_validator,
)

from batch_orchestrator.models.entities import (
    BatchStatus,
    Client,
    PclFile,
    RoutingProfile,
    utcnow,
)
from batch_orchestrator.models.recovery import RecoveryReport
from batch_orchestrator.utils.storage_path import parse_storage_path

# Closed set of value kinds allowed in a processing configuration
ConfigValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr]

UNKNOWN_ERROR_MESSAGE = "Unknown processing error"

_CLOCK_DURATION = re.compile(
    r"^(?:(?P<days>\d+)\.)?(?P<hours>\d+):(?P<minutes>\d{2}):(?P<seconds>\d{2}(?:\.\d+)?)$"
)


def _parse_duration(value):
    """Accept seconds or clock-style ``[d.]hh:mm:ss[.fffffff]`` durations."""
    if value is None or isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)
    if isinstance(value, str):
        match = _CLOCK_DURATION.match(value.strip())
        if match:
            return timedelta(
                days=int(match.group("days") or 0),
                hours=int(match.group("hours")),
                minutes=int(match.group("minutes")),
                seconds=float(match.group("seconds")),
            )
    return value


class WireModel(BaseModel):
    """Base for camelCase JSON messages."""

    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class BatchMessage(WireModel):
    """Message received from the work queue."""

    batch_id: int = Field(alias="loteId")
    client_id: int = Field(0, alias="clienteId")
    file_name: str = Field("", alias="nomeArquivo")
    storage_path: str = Field("", alias="caminhoS3")
    profile_id: int = Field(0, alias="perfilId")
    callback_url: str | None = Field(None, alias="callbackUrl")

    @property
    def s3_bucket(self) -> str:
        return parse_storage_path(self.storage_path).bucket

    @property
    def s3_key(self) -> str:
        return parse_storage_path(self.storage_path).key


class ProfileSnapshot(WireModel):
    id: int
    client_id: int = Field(alias="clienteId")
    name: str = Field("", alias="nome")
    template: str | None = Field(None, alias="templatePcl")
    processing_type: str | None = Field(None, alias="tipoProcessamento")
    lambda_function: str | None = Field(None, alias="lambdaFunction")

    @classmethod
    def from_profile(cls, profile: RoutingProfile) -> "ProfileSnapshot":
        return cls(
            id=profile.id,
            client_id=profile.client_id,
            name=profile.name,
            template=profile.template,
            processing_type=profile.processing_type,
            lambda_function=profile.lambda_function,
        )


class ClientSnapshot(WireModel):
    id: int
    name: str = Field("", alias="nome")
    email: str = Field("", alias="email")
    phone: str = Field("", alias="telefone")
    registered_at: datetime | None = Field(None, alias="dataCadastro")

    @classmethod
    def from_client(cls, client: Client) -> "ClientSnapshot":
        return cls(
            id=client.id,
            name=client.name,
            email=client.email or "",
            phone=client.phone or "",
            registered_at=client.created_at,
        )


class PclFileSnapshot(WireModel):
    id: int
    batch_id: int = Field(alias="loteId")
    file_name: str = Field("", alias="nomeArquivo")
    local_path: str = Field("", alias="caminhoArquivo")
    size_bytes: int = Field(0, alias="tamanhoBytes")
    page_count: int = Field(0, alias="numeroPaginas")
    uploaded_at: datetime | None = Field(None, alias="dataUpload")

    @classmethod
    def from_file(cls, pcl_file: PclFile) -> "PclFileSnapshot":
        return cls(
            id=pcl_file.id,
            batch_id=pcl_file.batch_id,
            file_name=pcl_file.file_name,
            local_path=pcl_file.local_path or pcl_file.storage_path,
            size_bytes=pcl_file.size_bytes,
            page_count=pcl_file.page_count,
            uploaded_at=pcl_file.uploaded_at,
        )


class EntitySnapshot(BaseModel):
    """Client and file list resolved by the orchestrator, when available."""

    client: ClientSnapshot | None = None
    files: list[PclFileSnapshot] | None = None


class InvocationPayload(WireModel):
    """Request body sent to the compute endpoint."""

    batch_id: int = Field(alias="loteId")
    s3_bucket: str = Field("", alias="s3Bucket")
    s3_key: str = Field("", alias="s3Key")
    profile: ProfileSnapshot = Field(alias="perfilProcessamento")
    processing_type: str = Field(alias="tipoProcessamento")
    endpoint_id: str = Field(alias="lambdaArn")
    config: dict[str, ConfigValue] = Field(
        default_factory=dict, alias="processamentoConfig"
    )
    callback_url: str | None = Field(None, alias="callbackUrl")
    client: ClientSnapshot | None = Field(None, alias="cliente")
    files: list[PclFileSnapshot] | None = Field(None, alias="arquivosPcl")
    created_at: datetime = Field(default_factory=utcnow, alias="dataCriacao")


class ProcessingDetails(WireModel):
    duration: timedelta | None = Field(None, alias="tempoProcessamento")
    files: list[str] | None = Field(None, alias="arquivosProcessados")
    s3_files: list[str] | None = Field(None, alias="arquivosProcessadosS3")
    page_count: int | None = Field(None, alias="totalPaginas")

    _coerce_duration = field_validator("duration", mode="before")(_parse_duration)


class EndpointResponse(WireModel):
    """Response body returned by the compute endpoint."""

    batch_id: int | None = Field(None, alias="loteId")
    status: str | None = None
    success: bool = Field(False, alias="sucesso")
    message: str | None = Field(None, alias="mensagemRetorno")
    processed_at: datetime | None = Field(None, alias="dataProcessamento")
    details: ProcessingDetails | None = Field(None, alias="detalhesProcessamento")
    processing_type: str | None = Field(None, alias="tipoProcessamento")
    duration: timedelta | None = Field(None, alias="tempoProcessamento")
    files: list[str] | None = Field(None, alias="arquivosProcessados")
    page_count: int | None = Field(None, alias="totalPaginas")

    _coerce_duration = field_validator("duration", mode="before")(_parse_duration)


class InvocationOutcome(BaseModel):
    """Normalized result of one invocation."""

    success: bool
    message: str = ""
    item_count: int = 0
    artifacts: list[str] = Field(default_factory=list)
    duration: timedelta = timedelta(0)

    @model_validator(mode="after")
    def _enforce_invariants(self) -> "InvocationOutcome":
        if not self.success and not self.message.strip():
            self.message = UNKNOWN_ERROR_MESSAGE
        if self.duration < timedelta(0):
            self.duration = timedelta(0)
        return self

    @classmethod
    def failure(cls, message: str, duration: timedelta = timedelta(0)) -> "InvocationOutcome":
        return cls(success=False, message=message, duration=duration)


class OutcomeEvent(WireModel):
    """Message published to the result queue."""

    batch_id: int = Field(alias="loteId")
    success: bool = Field(alias="sucesso")
    status: str
    item_count: int = Field(0, alias="registrosProcessados")
    output_path: str | None = Field(None, alias="arquivoSaida")
    elapsed_seconds: float = Field(0.0, alias="tempoProcessamentoSegundos")
    error_message: str | None = Field(None, alias="mensagemErro")
    processed_at: datetime = Field(default_factory=utcnow, alias="dataProcessamento")

    @classmethod
    def from_outcome(cls, batch_id: int, outcome: InvocationOutcome) -> "OutcomeEvent":
        """Build the event describing an invocation outcome."""
        if outcome.success:
            return cls(
                batch_id=batch_id,
                success=True,
                status=BatchStatus.COMPLETED.value,
                item_count=outcome.item_count,
                output_path=",".join(outcome.artifacts) or None,
                elapsed_seconds=outcome.duration.total_seconds(),
            )
        return cls.failure(
            batch_id, outcome.message, outcome.duration.total_seconds()
        )

    @classmethod
    def failure(
        cls, batch_id: int, error_message: str, elapsed_seconds: float = 0.0
    ) -> "OutcomeEvent":
        return cls(
            batch_id=batch_id,
            success=False,
            status=BatchStatus.FAILED.value,
            item_count=0,
            elapsed_seconds=elapsed_seconds,
            error_message=error_message or UNKNOWN_ERROR_MESSAGE,
        )


class ProcessingReport(BaseModel):
    """What happened to one inbound message."""

    batch_id: int
    final_status: BatchStatus | None = None
    processing_type: str | None = None
    event_published: bool = False
    skipped: bool = False
    error: str | None = None
    recovery: RecoveryReport | None = None

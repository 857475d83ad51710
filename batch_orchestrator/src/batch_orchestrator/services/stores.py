"""Relational store access for batches, profiles, clients, files and logs."""

import logging
from functools import cached_property

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from batch_orchestrator.exceptions import PersistenceError
from batch_orchestrator.infrastructure.database import transaction
from batch_orchestrator.models.entities import (
    Batch,
    Client,
    PclFile,
    ProcessingLogEntry,
    RoutingProfile,
)

logger = logging.getLogger(__name__)


class _Store:
    """Shared engine handling and optional-column discovery."""

    table: str = ""

    def __init__(self, engine: Engine):
        self._engine = engine

    @cached_property
    def columns(self) -> frozenset[str]:
        """Columns that actually exist in the table."""
        try:
            return frozenset(
                column["name"] for column in inspect(self._engine).get_columns(self.table)
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Cannot inspect table {self.table}: {e}") from e

    def _optional(self, *names: str) -> list[str]:
        return [name for name in names if name in self.columns]


class BatchStore(_Store):
    """Reads and updates lotes_processamento."""

    table = "lotes_processamento"

    def get_by_id(self, batch_id: int) -> Batch | None:
        """Get a batch by id, or None when it does not exist."""
        optional = self._optional("usuario_id", "caminho_saida")
        extra = "".join(f", {name}" for name in optional)
        query = text(f"""
            SELECT id, cliente_id, perfil_processamento_id, nome_arquivo,
                   caminho_s3, status, data_criacao, data_processamento{extra}
            FROM {self.table}
            WHERE id = :id
        """)
        try:
            with transaction(self._engine) as conn:
                row = conn.execute(query, {"id": batch_id}).mappings().fetchone()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load batch {batch_id}: {e}") from e

        if row is None:
            return None

        return Batch(
            id=row["id"],
            client_id=row["cliente_id"],
            user_id=row.get("usuario_id"),
            profile_id=row["perfil_processamento_id"],
            file_name=row["nome_arquivo"] or "",
            storage_path=row["caminho_s3"] or "",
            status=row["status"],
            created_at=row["data_criacao"],
            processed_at=row["data_processamento"],
            output_path=row.get("caminho_saida"),
        )

    def update(self, batch: Batch) -> None:
        """Persist status, processing time and (when supported) output path."""
        assignments = ["status = :status", "data_processamento = :processed_at"]
        params = {
            "id": batch.id,
            "status": batch.status.value,
            "processed_at": batch.processed_at,
        }
        if "caminho_saida" in self.columns:
            assignments.append("caminho_saida = :output_path")
            params["output_path"] = batch.output_path

        query = text(
            f"UPDATE {self.table} SET {', '.join(assignments)} WHERE id = :id"
        )
        try:
            with transaction(self._engine) as conn:
                conn.execute(query, params)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update batch {batch.id}: {e}") from e

        logger.debug("Batch %d saved with status %s", batch.id, batch.status.value)


class ProfileStore(_Store):
    """Reads perfis_processamento.

    Routing columns are projected only when the schema has them.
    """

    table = "perfis_processamento"

    def get_by_id(self, profile_id: int) -> RoutingProfile | None:
        optional = self._optional("tipo_processamento", "lambda_function")
        if len(optional) < 2:
            logger.debug("Routing columns missing from %s: projecting %s", self.table, optional)
        extra = "".join(f", {name}" for name in optional)
        query = text(f"""
            SELECT id, cliente_id, nome, descricao, tipo_arquivo, delimitador,
                   template_pcl, data_criacao{extra}
            FROM {self.table}
            WHERE id = :id
        """)
        try:
            with transaction(self._engine) as conn:
                row = conn.execute(query, {"id": profile_id}).mappings().fetchone()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load profile {profile_id}: {e}") from e

        if row is None:
            return None

        return RoutingProfile(
            id=row["id"],
            client_id=row["cliente_id"],
            name=row["nome"] or "",
            description=row["descricao"],
            file_type=row["tipo_arquivo"],
            delimiter=row["delimitador"],
            template=row["template_pcl"],
            processing_type=row.get("tipo_processamento"),
            lambda_function=row.get("lambda_function"),
            created_at=row["data_criacao"],
        )


class LogStore(_Store):
    """Appends to processamento_logs."""

    table = "processamento_logs"

    def append(self, entry: ProcessingLogEntry) -> None:
        query = text(f"""
            INSERT INTO {self.table} (lote_processamento_id, mensagem, tipo_log, data_hora)
            VALUES (:batch_id, :message, :level, :logged_at)
        """)
        try:
            with transaction(self._engine) as conn:
                conn.execute(
                    query,
                    {
                        "batch_id": entry.batch_id,
                        "message": entry.message,
                        "level": entry.level.value,
                        "logged_at": entry.logged_at,
                    },
                )
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to append log for batch {entry.batch_id}: {e}"
            ) from e


class ClientStore(_Store):
    table = "clientes"

    def get_by_id(self, client_id: int) -> Client | None:
        query = text(f"""
            SELECT id, nome, email, telefone, data_criacao
            FROM {self.table}
            WHERE id = :id
        """)
        try:
            with transaction(self._engine) as conn:
                row = conn.execute(query, {"id": client_id}).mappings().fetchone()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load client {client_id}: {e}") from e

        if row is None:
            return None

        return Client(
            id=row["id"],
            name=row["nome"] or "",
            email=row["email"],
            phone=row["telefone"],
            created_at=row["data_criacao"],
        )


class PclFileStore(_Store):
    table = "arquivos_pcl"

    def list_by_batch(self, batch_id: int) -> list[PclFile]:
        query = text(f"""
            SELECT id, lote_id, nome_arquivo, caminho_s3, caminho_arquivo,
                   tamanho_bytes, numero_paginas, status, data_upload
            FROM {self.table}
            WHERE lote_id = :batch_id
            ORDER BY id
        """)
        try:
            with transaction(self._engine) as conn:
                rows = conn.execute(query, {"batch_id": batch_id}).mappings().fetchall()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list files of batch {batch_id}: {e}") from e

        return [
            PclFile(
                id=row["id"],
                batch_id=row["lote_id"],
                file_name=row["nome_arquivo"] or "",
                storage_path=row["caminho_s3"] or "",
                local_path=row["caminho_arquivo"] or "",
                size_bytes=row["tamanho_bytes"] or 0,
                page_count=row["numero_paginas"] or 0,
                status=row["status"],
                uploaded_at=row["data_upload"],
            )
            for row in rows
        ]

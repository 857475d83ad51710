"""Tests for services layer."""

import json
import logging
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from batch_orchestrator.exceptions import ConfigurationError
from batch_orchestrator.infrastructure.lambda_client import LambdaClient, LambdaInvocation
from batch_orchestrator.models.entities import Batch, RoutingProfile
from batch_orchestrator.models.schemas import (
    ClientSnapshot,
    EntitySnapshot,
    InvocationOutcome,
    InvocationPayload,
    PclFileSnapshot,
    ProfileSnapshot,
)
from batch_orchestrator.services.invoker import Invoker
from batch_orchestrator.services.processing_type import (
    build_processing_config,
    derive_processing_type,
    infer_from_name,
    merge_config,
)
from batch_orchestrator.services.router import Router
from batch_orchestrator.services.routing_table import RoutingTable

ROUTES = {
    "Default": "arn:default",
    "ClienteMalaDireta": "arn:mala",
    "ClienteEtiquetas": "arn:etiquetas",
}


def _profile(**overrides) -> RoutingProfile:
    fields = {"id": 5, "client_id": 3, "name": "Perfil"}
    fields.update(overrides)
    return RoutingProfile(**fields)


def _batch(**overrides) -> Batch:
    fields = {
        "id": 42,
        "client_id": 3,
        "profile_id": 5,
        "file_name": "clientes.csv",
        "storage_path": "s3://entrada/lotes/42/clientes.csv",
    }
    fields.update(overrides)
    return Batch(**fields)


def _payload(endpoint_id: str = "arn:mala") -> InvocationPayload:
    return InvocationPayload(
        batch_id=42,
        s3_bucket="entrada",
        s3_key="lotes/42/clientes.csv",
        profile=ProfileSnapshot(id=5, client_id=3),
        processing_type="ClienteMalaDireta",
        endpoint_id=endpoint_id,
    )


def _invocation(body, status_code: int = 200, function_error: str | None = None):
    if not isinstance(body, str):
        body = json.dumps(body)
    return LambdaInvocation(
        status_code=status_code, body=body, function_error=function_error
    )


class TestRoutingTable:
    """Tests for RoutingTable."""

    def test_resolve_known_type(self):
        table = RoutingTable(ROUTES)

        assert table.resolve_endpoint("ClienteEtiquetas") == "arn:etiquetas"

    def test_unknown_type_falls_back_to_default(self):
        """Test unknown processing types use the Default entry."""
        table = RoutingTable(ROUTES)

        assert table.resolve_endpoint("ClienteDesconhecido") == "arn:default"

    @pytest.mark.parametrize("processing_type", [None, ""])
    def test_empty_type_falls_back_to_default(self, processing_type):
        table = RoutingTable(ROUTES)

        assert table.resolve_endpoint(processing_type) == "arn:default"

    def test_no_default_raises(self):
        """Test ConfigurationError when neither the type nor Default resolves."""
        table = RoutingTable({"ClienteMalaDireta": "arn:mala"})

        with pytest.raises(ConfigurationError):
            table.resolve_endpoint("ClienteCartoes")

    def test_empty_entries_ignored(self):
        """Test entries without an endpoint id are dropped."""
        table = RoutingTable({"Default": "", "ClienteCartoes": "arn:cartoes"})

        assert len(table) == 1
        assert "Default" not in table
        with pytest.raises(ConfigurationError):
            table.resolve_endpoint("Other")

    def test_entries_are_read_only(self):
        table = RoutingTable(ROUTES)

        with pytest.raises(TypeError):
            table.entries["Default"] = "arn:other"


class TestProcessingType:
    """Tests for processing type derivation."""

    def test_explicit_type_wins(self):
        """Test an explicit type beats endpoint name and keywords."""
        profile = _profile(
            name="Etiquetas",
            processing_type="ClienteCartoes",
            lambda_function="ProcessamentoClienteMalaDireta",
        )

        assert derive_processing_type(profile) == "ClienteCartoes"

    def test_endpoint_name_prefix_stripped(self):
        profile = _profile(lambda_function="ProcessamentoClienteEtiquetas")

        assert derive_processing_type(profile) == "ClienteEtiquetas"

    def test_endpoint_name_without_prefix_kept(self):
        profile = _profile(lambda_function="MeuProcessador")

        assert derive_processing_type(profile) == "MeuProcessador"

    def test_bare_prefix_kept_verbatim(self):
        """Test a name equal to the prefix is not reduced to empty."""
        profile = _profile(lambda_function="Processamento")

        assert derive_processing_type(profile) == "Processamento"

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("Mala Direta Premium", "ClienteMalaDireta"),
            ("MALA-DIRETA", "ClienteMalaDireta"),
            ("Etiquetas Correio", "ClienteEtiquetas"),
            ("Cartão Fidelidade", "ClienteCartoes"),
            ("cartao", "ClienteCartoes"),
        ],
    )
    def test_keywords_in_name(self, name, expected):
        """Test name keywords match regardless of case and accents."""
        assert derive_processing_type(_profile(name=name)) == expected

    def test_mala_alone_does_not_match(self):
        assert infer_from_name("Mala Simples") is None

    def test_default_when_nothing_matches(self):
        assert derive_processing_type(_profile(name="Relatorio")) == "Default"

    def test_direct_mail_config(self):
        config = build_processing_config("ClienteMalaDireta", None)

        assert config["formatoSaida"] == "PCL_MALA_DIRETA"
        assert config["incluirCodBarras"] is True
        assert config["template"] == "template_mala_direta.pcl"

    def test_labels_config_uses_profile_template(self):
        config = build_processing_config("ClienteEtiquetas", "meu_template.pcl")

        assert config["tipoEtiqueta"] == "PIMACO_6180"
        assert config["etiquetasPorPagina"] == 30
        assert config["template"] == "meu_template.pcl"

    def test_cards_config(self):
        config = build_processing_config("ClienteCartoes")

        assert config["cartoesPorPagina"] == 10

    def test_unknown_type_gets_generic_config(self):
        config = build_processing_config("Outro", "")

        assert config == {
            "formatoSaida": "PCL_GENERICO",
            "template": "template_generico.pcl",
        }

    def test_merge_overrides(self):
        merged = merge_config({"a": 1, "b": "x"}, {"b": "y"})

        assert merged == {"a": 1, "b": "y"}


class TestRouter:
    """Tests for Router."""

    def test_build_payload_direct_mail(self):
        """Test a direct mail profile is enriched and routed to its endpoint."""
        router = Router(RoutingTable(ROUTES), MagicMock(spec=Invoker))

        payload = router.build_payload(_batch(), _profile(name="Mala Direta Premium"))

        assert payload.processing_type == "ClienteMalaDireta"
        assert payload.endpoint_id == "arn:mala"
        assert payload.s3_bucket == "entrada"
        assert payload.s3_key == "lotes/42/clientes.csv"
        assert payload.config["incluirCodBarras"] is True
        assert payload.profile.name == "Mala Direta Premium"
        assert payload.client is None
        assert payload.files is None

    def test_build_payload_embeds_snapshot(self):
        router = Router(RoutingTable(ROUTES), MagicMock(spec=Invoker))
        snapshot = EntitySnapshot(
            client=ClientSnapshot(id=3, name="Grafica"),
            files=[PclFileSnapshot(id=1, batch_id=42, file_name="a.pcl")],
        )

        payload = router.build_payload(
            _batch(),
            _profile(),
            processing_type="Default",
            callback_url="https://cb",
            snapshot=snapshot,
        )

        data = json.loads(payload.to_json())
        assert data["cliente"]["nome"] == "Grafica"
        assert data["arquivosPcl"][0]["nomeArquivo"] == "a.pcl"
        assert data["callbackUrl"] == "https://cb"

    def test_unknown_type_routes_to_default(self):
        router = Router(RoutingTable(ROUTES), MagicMock(spec=Invoker))

        payload = router.build_payload(_batch(), _profile(processing_type="ClienteX"))

        assert payload.processing_type == "ClienteX"
        assert payload.endpoint_id == "arn:default"
        assert payload.config["formatoSaida"] == "PCL_GENERICO"

    def test_route_invokes(self):
        """Test route hands the built payload to the invoker."""
        mock_invoker = MagicMock(spec=Invoker)
        mock_invoker.invoke.return_value = InvocationOutcome(success=True, item_count=3)
        router = Router(RoutingTable(ROUTES), mock_invoker)

        outcome = router.route(_batch(), _profile(name="Etiquetas"))

        assert outcome.item_count == 3
        payload = mock_invoker.invoke.call_args[0][0]
        assert payload.endpoint_id == "arn:etiquetas"

    def test_route_without_endpoint_raises(self):
        """Test ConfigurationError propagates when nothing resolves."""
        mock_invoker = MagicMock(spec=Invoker)
        router = Router(RoutingTable({"ClienteMalaDireta": "arn:mala"}), mock_invoker)

        with pytest.raises(ConfigurationError):
            router.route(_batch(), _profile(name="Cartão Presente"))

        mock_invoker.invoke.assert_not_called()


class TestInvoker:
    """Tests for Invoker."""

    def _invoker(self, mock_lambda_client, max_attempts: int = 3, sleep=None):
        return Invoker(
            mock_lambda_client,
            max_attempts=max_attempts,
            backoff_min=0,
            backoff_max=0,
            sleep=sleep or MagicMock(),
        )

    def test_success(self):
        """Test a successful response becomes a successful outcome."""
        mock_lambda_client = MagicMock(spec=LambdaClient)
        mock_lambda_client.invoke.return_value = _invocation(
            {
                "loteId": 42,
                "sucesso": True,
                "mensagemRetorno": "ok",
                "arquivosProcessados": ["s3://saida/42.pcl"],
                "totalPaginas": 1500,
                "tempoProcessamento": "00:00:02.5000000",
            }
        )

        outcome = self._invoker(mock_lambda_client).invoke(_payload())

        assert outcome.success is True
        assert outcome.item_count == 1500
        assert outcome.artifacts == ["s3://saida/42.pcl"]
        assert outcome.duration == timedelta(seconds=2.5)
        function_name, body = mock_lambda_client.invoke.call_args[0]
        assert function_name == "arn:mala"
        assert json.loads(body)["loteId"] == 42

    def test_details_fallback(self):
        """Test artifacts and counts are read from the details block."""
        mock_lambda_client = MagicMock(spec=LambdaClient)
        mock_lambda_client.invoke.return_value = _invocation(
            {
                "sucesso": True,
                "detalhesProcessamento": {
                    "arquivosProcessadosS3": ["s3://saida/a.pcl"],
                    "totalPaginas": 12,
                    "tempoProcessamento": 4,
                },
            }
        )

        outcome = self._invoker(mock_lambda_client).invoke(_payload())

        assert outcome.artifacts == ["s3://saida/a.pcl"]
        assert outcome.item_count == 12
        assert outcome.duration == timedelta(seconds=4)

    def test_measured_duration_when_absent(self):
        mock_lambda_client = MagicMock(spec=LambdaClient)
        mock_lambda_client.invoke.return_value = _invocation({"sucesso": True})

        outcome = self._invoker(mock_lambda_client).invoke(_payload())

        assert outcome.success is True
        assert outcome.duration >= timedelta(0)

    def test_endpoint_reports_failure(self):
        mock_lambda_client = MagicMock(spec=LambdaClient)
        mock_lambda_client.invoke.return_value = _invocation(
            {"sucesso": False, "mensagemRetorno": "template missing"}
        )

        outcome = self._invoker(mock_lambda_client).invoke(_payload())

        assert outcome.success is False
        assert outcome.message == "template missing"

    def test_endpoint_failure_without_message(self):
        mock_lambda_client = MagicMock(spec=LambdaClient)
        mock_lambda_client.invoke.return_value = _invocation({"sucesso": False})

        outcome = self._invoker(mock_lambda_client).invoke(_payload())

        assert outcome.message == "Unknown processing error"

    def test_non_200_status(self):
        """Test a non-200 invocation status is a failure with the status code."""
        mock_lambda_client = MagicMock(spec=LambdaClient)
        mock_lambda_client.invoke.return_value = _invocation({}, status_code=500)

        outcome = self._invoker(mock_lambda_client).invoke(_payload())

        assert outcome.success is False
        assert "500" in outcome.message

    def test_function_error(self):
        mock_lambda_client = MagicMock(spec=LambdaClient)
        mock_lambda_client.invoke.return_value = _invocation(
            {"errorMessage": "Task timed out", "errorType": "Timeout"},
            function_error="Unhandled",
        )

        outcome = self._invoker(mock_lambda_client).invoke(_payload())

        assert outcome.success is False
        assert outcome.message == "Task timed out"

    @pytest.mark.parametrize("body", ["", "null", "not json", "[1, 2]"])
    def test_malformed_body(self, body):
        """Test unparseable bodies become failures, never exceptions."""
        mock_lambda_client = MagicMock(spec=LambdaClient)
        mock_lambda_client.invoke.return_value = _invocation(body)

        outcome = self._invoker(mock_lambda_client).invoke(_payload())

        assert outcome.success is False
        assert outcome.message

    def test_http_envelope(self):
        """Test an HTTP-style envelope is unwrapped."""
        mock_lambda_client = MagicMock(spec=LambdaClient)
        mock_lambda_client.invoke.return_value = _invocation(
            {
                "statusCode": 200,
                "body": json.dumps({"sucesso": True, "totalPaginas": 9}),
            }
        )

        outcome = self._invoker(mock_lambda_client).invoke(_payload())

        assert outcome.success is True
        assert outcome.item_count == 9

    def test_http_envelope_error_status(self):
        mock_lambda_client = MagicMock(spec=LambdaClient)
        mock_lambda_client.invoke.return_value = _invocation(
            {"statusCode": 500, "body": {"mensagemRetorno": "falhou"}}
        )

        outcome = self._invoker(mock_lambda_client).invoke(_payload())

        assert outcome.success is False
        assert outcome.message == "falhou"

    def test_transient_error_retried(self):
        """Test transient transport errors are retried before succeeding."""
        mock_lambda_client = MagicMock(spec=LambdaClient)
        mock_lambda_client.invoke.side_effect = [
            EndpointConnectionError(endpoint_url="https://lambda.test"),
            _invocation({"sucesso": True}),
        ]
        mock_sleep = MagicMock()

        outcome = self._invoker(mock_lambda_client, sleep=mock_sleep).invoke(_payload())

        assert outcome.success is True
        assert mock_lambda_client.invoke.call_count == 2
        assert mock_sleep.call_count == 1

    def test_transient_error_exhausted(self):
        """Test exhausted retries yield a failed outcome."""
        mock_lambda_client = MagicMock(spec=LambdaClient)
        mock_lambda_client.invoke.side_effect = ConnectTimeoutError(
            endpoint_url="https://lambda.test"
        )

        outcome = self._invoker(mock_lambda_client, max_attempts=2).invoke(_payload())

        assert outcome.success is False
        assert mock_lambda_client.invoke.call_count == 2
        assert "lambda.test" in outcome.message

    @pytest.mark.parametrize(
        "error",
        [
            ReadTimeoutError(endpoint_url="https://lambda.test"),
            ConnectionClosedError(endpoint_url="https://lambda.test"),
        ],
    )
    def test_error_after_request_sent_not_retried(self, error):
        """Test errors raised once the request reached the endpoint fail immediately."""
        mock_lambda_client = MagicMock(spec=LambdaClient)
        mock_lambda_client.invoke.side_effect = error
        mock_sleep = MagicMock()

        outcome = self._invoker(mock_lambda_client, sleep=mock_sleep).invoke(_payload())

        assert outcome.success is False
        assert "lambda.test" in outcome.message
        assert mock_lambda_client.invoke.call_count == 1
        mock_sleep.assert_not_called()

    def test_attempts_made_logged(self, caplog):
        """Test the failure log reports the attempts actually made."""
        mock_lambda_client = MagicMock(spec=LambdaClient)
        mock_lambda_client.invoke.side_effect = [
            EndpointConnectionError(endpoint_url="https://lambda.test"),
            ReadTimeoutError(endpoint_url="https://lambda.test"),
        ]
        invoker = self._invoker(mock_lambda_client, max_attempts=5)

        with caplog.at_level(logging.ERROR, logger="batch_orchestrator.services.invoker"):
            invoker.invoke(_payload())

        assert invoker.attempts_made == 2
        assert "after 2 attempt(s)" in caplog.text
        assert "after 5 attempt(s)" not in caplog.text

    def test_client_error_not_retried(self):
        """Test service errors fail immediately."""
        mock_lambda_client = MagicMock(spec=LambdaClient)
        mock_lambda_client.invoke.side_effect = ClientError(
            {"Error": {"Code": "ResourceNotFoundException", "Message": "Function not found"}},
            "Invoke",
        )

        outcome = self._invoker(mock_lambda_client).invoke(_payload())

        assert outcome.success is False
        assert "Function not found" in outcome.message
        assert mock_lambda_client.invoke.call_count == 1

    def test_missing_endpoint_id(self):
        mock_lambda_client = MagicMock(spec=LambdaClient)

        with pytest.raises(ConfigurationError):
            self._invoker(mock_lambda_client).invoke(_payload(endpoint_id=""))

        mock_lambda_client.invoke.assert_not_called()

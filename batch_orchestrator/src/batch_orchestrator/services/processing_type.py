"""Processing type derivation and type-specific configuration."""

import unicodedata
from collections.abc import Mapping

from batch_orchestrator.models.entities import RoutingProfile
from batch_orchestrator.services.routing_table import DEFAULT_PROCESSING_TYPE

DIRECT_MAIL = "ClienteMalaDireta"
LABELS = "ClienteEtiquetas"
CARDS = "ClienteCartoes"

# Prefix stripped from endpoint names, e.g. ProcessamentoClienteMalaDireta
ENDPOINT_NAME_PREFIX = "Processamento"

# Ordered: first rule whose keywords all occur in the profile name wins
NAME_KEYWORD_RULES: tuple[tuple[frozenset[str], str], ...] = (
    (frozenset({"mala", "direta"}), DIRECT_MAIL),
    (frozenset({"etiqueta"}), LABELS),
    (frozenset({"cartao"}), CARDS),
)


def _fold(text: str) -> str:
    """Lowercase and strip accents."""
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def infer_from_name(name: str | None) -> str | None:
    """Match the profile name against the keyword rules."""
    folded = _fold(name or "")
    for keywords, processing_type in NAME_KEYWORD_RULES:
        if all(keyword in folded for keyword in keywords):
            return processing_type
    return None


def derive_processing_type(profile: RoutingProfile) -> str:
    """
    Derive the processing type of a routing profile.

    Priority: explicit type, endpoint name (minus the "Processamento"
    prefix), keywords in the profile name, then "Default".

    Args:
        profile: Routing profile.

    Returns:
        Processing type key, never empty.
    """
    if profile.processing_type:
        return profile.processing_type

    if profile.lambda_function:
        function_name = profile.lambda_function
        if function_name.startswith(ENDPOINT_NAME_PREFIX):
            stripped = function_name[len(ENDPOINT_NAME_PREFIX):]
            if stripped:
                return stripped
        return function_name

    return infer_from_name(profile.name) or DEFAULT_PROCESSING_TYPE


def build_processing_config(
    processing_type: str, template: str | None = None
) -> dict[str, str | bool | int | float]:
    """
    Build the type-specific configuration merged into the payload.

    Args:
        processing_type: Resolved processing type.
        template: Profile template; a type-named default applies when empty.

    Returns:
        Non-empty mapping of configuration values.
    """
    if processing_type == DIRECT_MAIL:
        return {
            "formatoSaida": "PCL_MALA_DIRETA",
            "incluirCodBarras": True,
            "margemEsquerda": "10mm",
            "margemSuperior": "15mm",
            "template": template or "template_mala_direta.pcl",
        }

    if processing_type == LABELS:
        return {
            "formatoSaida": "PCL_ETIQUETAS",
            "tipoEtiqueta": "PIMACO_6180",
            "etiquetasPorPagina": 30,
            "template": template or "template_etiquetas.pcl",
        }

    if processing_type == CARDS:
        return {
            "formatoSaida": "PCL_CARTOES",
            "tamanhoCartao": "85x54mm",
            "cartoesPorPagina": 10,
            "template": template or "template_cartoes.pcl",
        }

    return {
        "formatoSaida": "PCL_GENERICO",
        "template": template or "template_generico.pcl",
    }


def merge_config(
    base: Mapping[str, str | bool | int | float],
    overrides: Mapping[str, str | bool | int | float],
) -> dict[str, str | bool | int | float]:
    return {**base, **overrides}

"""Configuration management for the batch orchestrator."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import quote_plus

from dotenv import load_dotenv

from batch_orchestrator.exceptions import ConfigurationError

# Load .env file from project root
env_path = Path(__file__).parent.parent.parent.parent / ".env"
load_dotenv(env_path)

APP_ENV = os.getenv("APP_ENV", "dev")


def _load_json_config(filename: str) -> dict:
    """Load configuration from JSON file in .config directory."""
    config_path = Path(__file__).parent.parent.parent.parent / ".config" / filename
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            return json.load(f)
    return {}


# Load config files
_config_env = _load_json_config(f"config.{APP_ENV}.json")
_config_secrets = _load_json_config(f"config.secrets.{APP_ENV}.json")


def _get_config(key: str, default: str = "") -> str:
    """Get config value with priority: env var > secrets > json config > default."""
    env_value = os.getenv(key.upper())
    if env_value:  # Treat empty string as missing
        return env_value

    if key.lower() in _config_secrets:
        return str(_config_secrets[key.lower()])

    if key.lower() in _config_env:
        return str(_config_env[key.lower()])

    return default


def _get_bool(key: str, default: bool) -> bool:
    value = _get_config(key, "")
    if not value:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _load_lambda_functions() -> dict[str, str]:
    """Load the processing type -> function ARN table.

    LAMBDA_FUNCTIONS (a JSON object) wins over the ``lambda_functions``
    section of the JSON config files. Empty values are dropped.
    """
    raw = os.getenv("LAMBDA_FUNCTIONS")
    if raw:
        try:
            functions = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"LAMBDA_FUNCTIONS is not valid JSON: {e}") from e
    else:
        functions = {
            **_config_env.get("lambda_functions", {}),
            **_config_secrets.get("lambda_functions", {}),
        }

    if not isinstance(functions, dict):
        raise ConfigurationError("LAMBDA_FUNCTIONS must be a JSON object")

    return {str(key): str(value) for key, value in functions.items() if value}


def _build_database_url() -> str:
    """Build PostgreSQL connection string from environment variables."""
    url = _get_config("DATABASE_URL", "")
    if url:
        return url

    host = _get_config("DB_HOST", "")
    if not host:
        return ""
    port = _get_config("DB_PORT", "5432")
    database = _get_config("DB_NAME", "orquestrador")
    user = _get_config("DB_USER", "postgres")
    password = quote_plus(_get_config("DB_PASSWORD", ""))

    return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{database}"


@dataclass
class Config:
    """Worker configuration loaded from env vars or JSON files."""

    # AWS
    aws_region: str = _get_config("AWS_REGION", "us-east-1")

    # Compute endpoints
    lambda_functions: dict[str, str] = field(default_factory=_load_lambda_functions)
    lambda_connect_timeout: int = int(_get_config("LAMBDA_CONNECT_TIMEOUT", "10"))
    lambda_read_timeout: int = int(_get_config("LAMBDA_READ_TIMEOUT", "900"))
    invoke_max_attempts: int = int(_get_config("INVOKE_MAX_ATTEMPTS", "3"))
    invoke_backoff_min: float = float(_get_config("INVOKE_BACKOFF_MIN", "1"))
    invoke_backoff_max: float = float(_get_config("INVOKE_BACKOFF_MAX", "10"))

    # RabbitMQ
    rabbitmq_host: str = _get_config("RABBITMQ_HOST", "localhost")
    rabbitmq_port: int = int(_get_config("RABBITMQ_PORT", "5672"))
    rabbitmq_user: str = _get_config("RABBITMQ_USER", "guest")
    rabbitmq_password: str = _get_config("RABBITMQ_PASSWORD", "guest")
    rabbitmq_vhost: str = _get_config("RABBITMQ_VHOST", "/")
    rabbitmq_exchange: str = _get_config("RABBITMQ_EXCHANGE", "graficaltda.exchange")
    rabbitmq_queue: str = _get_config("RABBITMQ_QUEUE", "lote.processamento")
    rabbitmq_result_queue: str = _get_config(
        "RABBITMQ_RESULT_QUEUE", "lote.processamento.retorno"
    )
    rabbitmq_heartbeat: int = int(_get_config("RABBITMQ_HEARTBEAT", "60"))
    rabbitmq_recovery_interval: float = float(
        _get_config("RABBITMQ_RECOVERY_INTERVAL", "10")
    )
    rabbitmq_dead_letter_exchange: str = _get_config(
        "RABBITMQ_DEAD_LETTER_EXCHANGE", ""
    )

    # Database
    database_url: str = _build_database_url()

    # Pipeline behaviour
    reprocess_terminal_batches: bool = _get_bool("REPROCESS_TERMINAL_BATCHES", False)
    publish_on_missing_profile: bool = _get_bool("PUBLISH_ON_MISSING_PROFILE", True)

    # Logging
    log_level: str = _get_config("LOG_LEVEL", "INFO")
    log_dir: str = _get_config("LOG_DIR", "")

    def validate(self) -> None:
        """Validate required configuration."""
        if not self.rabbitmq_host:
            raise ConfigurationError("RABBITMQ_HOST environment variable is required")

        if not self.database_url:
            raise ConfigurationError(
                "DATABASE_URL (or DB_HOST) environment variable is required"
            )

        if not self.lambda_functions:
            raise ConfigurationError(
                "LAMBDA_FUNCTIONS must map at least one processing type to a function"
            )

        if self.invoke_max_attempts < 1:
            raise ConfigurationError("INVOKE_MAX_ATTEMPTS must be at least 1")


config = Config()

"""Main entry point for the batch orchestration worker."""

import logging
import signal
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from batch_orchestrator.config import config
from batch_orchestrator.infrastructure import DependenciesContainer

NOISY_LOGGERS = ("pika", "botocore", "urllib3", "sqlalchemy.engine")


def setup_logging(level: str = "INFO", log_dir: str = "") -> None:
    """Configure logging with UTF-8 support and optional daily log files."""
    if sys.stdout.encoding != "utf-8":
        sys.stdout.reconfigure(encoding="utf-8")

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        handlers.append(
            TimedRotatingFileHandler(
                Path(log_dir) / "orchestrator.log",
                when="midnight",
                backupCount=30,
                encoding="utf-8",
            )
        )

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _raise_interrupt(signum, frame) -> None:
    raise KeyboardInterrupt


def main():
    """Entry point for the queue-driven orchestration worker."""
    setup_logging(config.log_level, config.log_dir)
    logger = logging.getLogger(__name__)

    logger.info("=" * 60)
    logger.info("Starting Batch Orchestrator Worker")
    logger.info("=" * 60)

    try:
        config.validate()

        # Initialize DI container
        logger.info("Initializing dependency injection container...")
        container = DependenciesContainer()

        routing_table = container.routing_table()
        consumer = container.consumer()
        publisher = container.publisher()

        logger.info("RabbitMQ: %s:%s", config.rabbitmq_host, config.rabbitmq_port)
        logger.info("Exchange: %s", config.rabbitmq_exchange)
        logger.info("Input queue: %s", config.rabbitmq_queue)
        logger.info("Result queue: %s", config.rabbitmq_result_queue)
        logger.info(
            "Routing table: %d endpoint(s) - %s",
            len(routing_table),
            ", ".join(routing_table.entries),
        )

        consumer.start()
    except Exception as e:
        logger.error("Fatal error during startup: %s", e, exc_info=True)
        sys.exit(1)

    signal.signal(signal.SIGTERM, _raise_interrupt)

    logger.info("=" * 60)
    logger.info("Waiting for messages...")
    logger.info("=" * 60)

    exit_code = 0
    try:
        consumer.run_forever()
    except KeyboardInterrupt:
        logger.info("Shutdown requested")
    except Exception as e:
        logger.error("Fatal error: %s", e, exc_info=True)
        exit_code = 1
    finally:
        consumer.stop()
        publisher.close()
        container.engine().dispose()
        logger.info("Batch Orchestrator Worker stopped")

    sys.exit(exit_code)


if __name__ == "__main__":
    main()

"""RabbitMQ connection helpers."""

import logging

import pika

logger = logging.getLogger(__name__)


def build_connection_parameters(
    host: str,
    port: int = 5672,
    user: str = "guest",
    password: str = "guest",
    virtual_host: str = "/",
    heartbeat: int = 60,
    retry_delay: float = 10,
    connection_attempts: int = 3,
) -> pika.ConnectionParameters:
    """Build connection parameters with retry on initial connect."""
    return pika.ConnectionParameters(
        host=host,
        port=port,
        virtual_host=virtual_host,
        credentials=pika.PlainCredentials(user, password),
        heartbeat=heartbeat,
        connection_attempts=connection_attempts,
        retry_delay=retry_delay,
        blocked_connection_timeout=300,
    )


def open_connection(parameters: pika.ConnectionParameters) -> pika.BlockingConnection:
    """Open a blocking connection to the broker."""
    logger.info(
        "Connecting to RabbitMQ at %s:%s (vhost=%s)",
        parameters.host,
        parameters.port,
        parameters.virtual_host,
    )
    return pika.BlockingConnection(parameters)


def declare_bound_queue(
    channel,
    queue: str,
    exchange: str,
    arguments: dict | None = None,
) -> None:
    """Declare a durable queue and bind it to the exchange by its own name.

    The exchange is provisioned upstream and is never declared here.
    """
    channel.queue_declare(
        queue=queue,
        durable=True,
        exclusive=False,
        auto_delete=False,
        arguments=arguments,
    )
    channel.queue_bind(queue=queue, exchange=exchange, routing_key=queue)

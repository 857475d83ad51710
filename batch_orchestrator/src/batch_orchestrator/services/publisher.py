"""Publisher for outcome events on the result queue."""

import logging
import threading
import time

import pika
from pika.exceptions import AMQPChannelError, AMQPConnectionError, AMQPError

from batch_orchestrator.exceptions import PublishError
from batch_orchestrator.infrastructure.amqp import declare_bound_queue, open_connection
from batch_orchestrator.models.schemas import WireModel

logger = logging.getLogger(__name__)

PERSISTENT_DELIVERY_MODE = 2

# One retry on a fresh connection after the broker dropped the old one
PUBLISH_ATTEMPTS = 2


class OutcomePublisher:
    """Publishes events to the shared exchange over its own connection.

    The connection sits idle between batches, so the broker may close it
    for missed heartbeats. It is checked before each publish and reopened
    when stale.
    """

    def __init__(
        self,
        parameters: pika.ConnectionParameters,
        exchange: str,
        connect=open_connection,
    ):
        """
        Initialize publisher. The connection is opened on first publish.

        Args:
            parameters: Broker connection parameters.
            exchange: Existing exchange the queues are bound to.
            connect: Factory opening a blocking connection.
        """
        self._parameters = parameters
        self._exchange = exchange
        self._connect = connect
        self._connection = None
        self._channel = None
        self._lock = threading.Lock()

    @property
    def exchange(self) -> str:
        return self._exchange

    def _is_open(self) -> bool:
        return (
            self._connection is not None
            and self._connection.is_open
            and self._channel is not None
            and self._channel.is_open
        )

    def _is_alive(self) -> bool:
        """Service pending I/O (heartbeats, close frames) and report liveness."""
        if not self._is_open():
            return False
        try:
            self._connection.process_data_events(time_limit=0)
        except AMQPError as e:
            logger.warning("Publisher connection is stale: %s", e)
            return False
        return self._is_open()

    def _ensure_channel(self):
        # Caller holds the lock
        if self._is_alive():
            return self._channel

        logger.info("Opening publisher connection to RabbitMQ...")
        self._close_quietly()
        self._connection = self._connect(self._parameters)
        self._channel = self._connection.channel()
        logger.info("Publisher connected - exchange: %s", self._exchange)
        return self._channel

    def publish(self, event: WireModel, queue_name: str) -> None:
        """
        Publish an event with the queue name as routing key.

        A connection lost mid-publish is reopened and the publish retried once.

        Args:
            event: Message to publish (serialized as camelCase JSON).
            queue_name: Target queue; declared and bound if needed.

        Raises:
            PublishError: Serialization or broker failure.
        """
        try:
            body = event.to_json().encode("utf-8")
        except ValueError as e:
            raise PublishError(f"Cannot serialize event for queue {queue_name}: {e}") from e

        for attempt in range(1, PUBLISH_ATTEMPTS + 1):
            try:
                with self._lock:
                    channel = self._ensure_channel()
                    declare_bound_queue(channel, queue_name, self._exchange)
                    channel.basic_publish(
                        exchange=self._exchange,
                        routing_key=queue_name,
                        body=body,
                        properties=pika.BasicProperties(
                            content_type="application/json",
                            delivery_mode=PERSISTENT_DELIVERY_MODE,
                            timestamp=int(time.time()),
                        ),
                    )
                break
            except (AMQPConnectionError, AMQPChannelError) as e:
                if attempt == PUBLISH_ATTEMPTS:
                    logger.error("Failed to publish to queue %s: %s", queue_name, e)
                    raise PublishError(
                        f"Failed to publish to queue {queue_name}: {e}"
                    ) from e
                logger.warning(
                    "Publisher connection lost (%s), reconnecting and retrying...", e
                )
                with self._lock:
                    self._close_quietly()
            except (AMQPError, OSError) as e:
                logger.error("Failed to publish to queue %s: %s", queue_name, e)
                raise PublishError(f"Failed to publish to queue {queue_name}: {e}") from e

        logger.info("Published %d bytes to queue %s", len(body), queue_name)
        logger.debug("Published message: %s", body)

    def _close_quietly(self) -> None:
        for resource in (self._channel, self._connection):
            if resource is None or not resource.is_open:
                continue
            try:
                resource.close()
            except (AMQPError, OSError) as e:
                logger.warning("Error closing publisher resource: %s", e)
        self._channel = None
        self._connection = None

    def close(self) -> None:
        """Close the channel and connection."""
        with self._lock:
            self._close_quietly()
        logger.info("Publisher closed")

"""Consumer for the batch work queue."""

import functools
import logging
import threading
import time

import pika
from pika.exceptions import AMQPChannelError, AMQPConnectionError, AMQPError
from pydantic import ValidationError

from batch_orchestrator.infrastructure.amqp import declare_bound_queue, open_connection
from batch_orchestrator.models.schemas import BatchMessage, ProcessingReport

logger = logging.getLogger(__name__)


class BatchConsumer:
    """Owns the inbound connection and hands each delivery to the orchestrator.

    One message at a time (prefetch=1), acknowledged manually. Each batch
    runs on a worker thread so the connection keeps answering heartbeats
    during long invocations; the ack or nack is handed back to the
    connection thread with add_callback_threadsafe.
    """

    def __init__(
        self,
        parameters: pika.ConnectionParameters,
        exchange: str,
        queue: str,
        result_queue: str,
        orchestrator,
        dead_letter_exchange: str = "",
        recovery_interval: float = 10,
        connect=open_connection,
        sleep=time.sleep,
    ):
        """
        Initialize consumer.

        Args:
            parameters: Broker connection parameters.
            exchange: Existing exchange both queues are bound to.
            queue: Work queue to consume.
            result_queue: Result queue (declared and bound at startup).
            orchestrator: Object exposing process_batch(message).
            dead_letter_exchange: Exchange for rejected messages; none when empty.
            recovery_interval: Seconds to wait before reconnecting.
            connect: Factory opening a blocking connection.
            sleep: Sleep function used between reconnects.
        """
        self._parameters = parameters
        self._exchange = exchange
        self._queue = queue
        self._result_queue = result_queue
        self._orchestrator = orchestrator
        self._dead_letter_exchange = dead_letter_exchange
        self._recovery_interval = recovery_interval
        self._connect = connect
        self._sleep = sleep
        self._connection = None
        self._channel = None
        self._consumer_tag: str | None = None
        self._worker: threading.Thread | None = None
        self._stopping = False

    @property
    def queue(self) -> str:
        return self._queue

    def start(self) -> None:
        """Connect, declare and bind both queues, and register the handler."""
        self._connection = self._connect(self._parameters)
        self._channel = self._connection.channel()
        self._channel.basic_qos(prefetch_count=1)

        arguments = None
        if self._dead_letter_exchange:
            arguments = {"x-dead-letter-exchange": self._dead_letter_exchange}
        declare_bound_queue(self._channel, self._queue, self._exchange, arguments)
        declare_bound_queue(self._channel, self._result_queue, self._exchange)

        self._consumer_tag = self._channel.basic_consume(
            queue=self._queue,
            on_message_callback=self.on_message,
            auto_ack=False,
        )
        logger.info("Connected to RabbitMQ - exchange: %s", self._exchange)
        logger.info("Input queue: %s", self._queue)
        logger.info("Result queue: %s", self._result_queue)
        logger.info("Consumer tag: %s", self._consumer_tag)

    def run_forever(self) -> None:
        """Consume until stopped, reconnecting after connection loss."""
        self._stopping = False
        while not self._stopping:
            try:
                if self._channel is None or not self._channel.is_open:
                    self.start()
                self._channel.start_consuming()
            except (AMQPConnectionError, AMQPChannelError) as e:
                if self._stopping:
                    break
                logger.error(
                    "Lost connection to RabbitMQ: %s. Reconnecting in %.0fs...",
                    e,
                    self._recovery_interval,
                )
                self._channel = None
                self._connection = None
                # An unacked in-flight batch is redelivered on the new channel
                self.wait_for_worker()
                self._sleep(self._recovery_interval)
            else:
                # start_consuming returned normally: stop_consuming was called
                break

    def on_message(self, channel, method, properties, body: bytes) -> None:
        """Handle one delivery: deserialize, then process on a worker thread."""
        delivery_tag = method.delivery_tag
        logger.info(
            "Message received - delivery tag: %s, %d bytes", delivery_tag, len(body)
        )
        logger.debug("Message body: %r", body)

        try:
            message = BatchMessage.model_validate_json(body)
        except ValidationError as e:
            logger.error("Could not deserialize message, rejecting: %s", e)
            channel.basic_nack(delivery_tag=delivery_tag, requeue=False)
            return

        logger.info(
            "Batch %d - storage path: %s (bucket=%s, key=%s)",
            message.batch_id,
            message.storage_path,
            message.s3_bucket,
            message.s3_key,
        )

        self._worker = threading.Thread(
            target=self._process,
            args=(self._connection, channel, delivery_tag, message),
            name=f"batch-{message.batch_id}",
            daemon=True,
        )
        self._worker.start()

    def _process(self, connection, channel, delivery_tag: int, message: BatchMessage) -> None:
        """Worker thread: run the batch, then schedule the ack or nack."""
        try:
            report: ProcessingReport = self._orchestrator.process_batch(message)
        except Exception as e:
            logger.error(
                "Unexpected error processing batch %d, rejecting: %s",
                message.batch_id,
                e,
                exc_info=True,
            )
            settle = functools.partial(self._nack, channel, delivery_tag)
        else:
            logger.info(
                "Batch %d processed - status: %s",
                message.batch_id,
                report.final_status.value if report and report.final_status else "unchanged",
            )
            settle = functools.partial(self._ack, channel, delivery_tag)

        try:
            connection.add_callback_threadsafe(settle)
        except (AMQPError, AttributeError) as e:
            logger.warning(
                "Connection gone, batch %d will be redelivered: %s", message.batch_id, e
            )

    @staticmethod
    def _ack(channel, delivery_tag: int) -> None:
        if not channel.is_open:
            logger.warning("Channel closed, cannot ack delivery %s", delivery_tag)
            return
        try:
            channel.basic_ack(delivery_tag=delivery_tag)
            logger.info("Message acknowledged - delivery tag: %s", delivery_tag)
        except AMQPError as e:
            logger.warning("Could not ack delivery %s: %s", delivery_tag, e)

    @staticmethod
    def _nack(channel, delivery_tag: int) -> None:
        if not channel.is_open:
            logger.warning("Channel closed, cannot reject delivery %s", delivery_tag)
            return
        try:
            channel.basic_nack(delivery_tag=delivery_tag, requeue=False)
        except AMQPError as e:
            logger.warning("Could not reject delivery %s: %s", delivery_tag, e)

    def wait_for_worker(self, timeout: float | None = None) -> None:
        """Block until the in-flight batch, if any, has finished."""
        worker = self._worker
        if worker is None or not worker.is_alive():
            return
        logger.info("Waiting for in-flight batch (%s) to finish...", worker.name)
        worker.join(timeout)

    def stop(self) -> None:
        """Finish the in-flight batch, cancel the consumer and close; never raises."""
        self._stopping = True

        self.wait_for_worker()
        if self._connection is not None:
            try:
                if self._connection.is_open:
                    # Deliver the pending ack of the last batch
                    self._connection.process_data_events(time_limit=0)
            except Exception as e:
                logger.error("Error flushing pending acknowledgements: %s", e)

        if self._channel is not None and self._consumer_tag:
            try:
                self._channel.basic_cancel(self._consumer_tag)
                logger.info("Consumer %s cancelled", self._consumer_tag)
            except Exception as e:
                logger.error("Error cancelling consumer: %s", e)
            self._consumer_tag = None

        if self._channel is not None:
            try:
                if self._channel.is_open:
                    self._channel.close()
                logger.info("Channel closed")
            except Exception as e:
                logger.error("Error closing channel: %s", e)
            self._channel = None

        if self._connection is not None:
            try:
                if self._connection.is_open:
                    self._connection.close()
                logger.info("Connection closed")
            except Exception as e:
                logger.error("Error closing connection: %s", e)
            self._connection = None

        logger.info("Consumer stopped")

"""
Kafka Order Consumer

Joins the consumer group, claims partitions and drives the ingest handler
for every message, committing progress only after the message was handled.

CONSUMER LIFECYCLE:
┌─────────────────────────────────────────────────────────────────────────┐
│  IDLE → JOINING → CONSUMING → DRAINING → CLOSED                         │
├─────────────────────────────────────────────────────────────────────────┤
│  JOINING    create client, check broker metadata, subscribe            │
│  CONSUMING  dispatcher thread polls; one claim thread per partition     │
│  DRAINING   shared shutdown event set; claims finish current message   │
│  CLOSED     group membership closed                                     │
└─────────────────────────────────────────────────────────────────────────┘

PER-MESSAGE FLOW (inside a partition claim, in receipt order):
1. Decode JSON        → failure: log, skip, no commit
2. Validate order     → failure: log, skip, no commit
3. Ingest handler     → failure: log, skip, no commit
4. Commit offset      → synchronous, before the next message

AT-LEAST-ONCE DELIVERY:
- A skipped message is not retried in this session; it comes back only when
  the partition is reassigned or the consumer restarts without a later
  offset of the same partition having been committed.
- Persistence is an idempotent upsert, so redelivery is harmless.

REBALANCING:
- Round-robin assignment across group members.
- On revoke/loss a partition's claim finishes its current message and exits;
  messages still queued for it are dropped uncommitted.
"""

import logging
import queue
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from confluent_kafka import Consumer, KafkaError, KafkaException, Message, TopicPartition

from src.order_service.config import ServiceConfig
from src.order_service.errors import (
    FatalStartupError,
    OrderServiceError,
    TransientInfraError,
    ValidationError,
)
from src.order_service.handler import MessageHandler
from src.order_service.validator import decode_order, validate_order
from src.shared.logger import CorrelationAdapter

# Broker errors after which the consumer cannot make progress
FATAL_ERROR_CODES = {
    KafkaError._AUTHENTICATION,
    KafkaError.TOPIC_AUTHORIZATION_FAILED,
    KafkaError.GROUP_AUTHORIZATION_FAILED,
}

# Seconds a claim waits on its queue before re-checking for shutdown
CLAIM_IDLE_TIMEOUT_S = 0.1


class ConsumerState(str, Enum):
    IDLE = "idle"
    JOINING = "joining"
    CONSUMING = "consuming"
    DRAINING = "draining"
    CLOSED = "closed"


# ==============================================================================
# METRICS
# ==============================================================================


class ConsumerStats:
    """Message counters shared by all claim threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts = {
            "messages_processed": 0,
            "messages_invalid": 0,
            "messages_failed": 0,
            "commits_failed": 0,
        }

    def increment(self, name: str) -> int:
        with self._lock:
            self._counts[name] += 1
            return self._counts[name]

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)


# ==============================================================================
# PARTITION CLAIM
# ==============================================================================


class PartitionClaim:
    """
    Sequential processing loop for one assigned partition.

    The dispatcher ``offer``s messages in partition order; the claim thread
    processes them one at a time. ``process`` returns False when the claim
    must end (an unexpected error was escalated).
    """

    def __init__(
        self,
        topic: str,
        partition: int,
        process: Callable[[Message], bool],
        shutdown_event: threading.Event,
        queue_size: int,
        logger: logging.Logger,
    ):
        self.topic = topic
        self.partition = partition
        self._process = process
        self._shutdown_event = shutdown_event
        self._revoked = threading.Event()
        self._queue: "queue.Queue[Message]" = queue.Queue(maxsize=queue_size)
        self.logger = logger
        self._thread = threading.Thread(
            target=self._run,
            name=f"claim-{topic}-{partition}",
            daemon=True,
        )

    def start(self) -> None:
        self._thread.start()

    def should_stop(self) -> bool:
        return self._revoked.is_set() or self._shutdown_event.is_set()

    def offer(self, msg: Message) -> bool:
        """
        Queue ``msg``, blocking while the queue is full.

        Returns:
            False if the claim stopped before the message could be queued
        """
        while not self.should_stop():
            try:
                self._queue.put(msg, timeout=CLAIM_IDLE_TIMEOUT_S)
                return True
            except queue.Full:
                continue
        return False

    def stop(self) -> None:
        """Ask the loop to exit after its current message."""
        self._revoked.set()

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        self.logger.info(
            "Partition claim started",
            extra={"topic": self.topic, "partition": self.partition},
        )
        try:
            while not self.should_stop():
                try:
                    msg = self._queue.get(timeout=CLAIM_IDLE_TIMEOUT_S)
                except queue.Empty:
                    continue

                if not self._process(msg):
                    break
        finally:
            self.logger.info(
                "Partition claim exited",
                extra={
                    "topic": self.topic,
                    "partition": self.partition,
                    "messages_dropped": self._queue.qsize(),
                },
            )


# ==============================================================================
# KAFKA CONSUMER
# ==============================================================================


class OrderConsumer:
    """
    Kafka consumer group member feeding orders to a MessageHandler.

    Attributes:
        config: Service configuration
        handler: Write path invoked once per valid message
        state: Current ConsumerState
        stats: Message counters
        failure: Exception that forced shutdown, if any
    """

    def __init__(
        self,
        config: ServiceConfig,
        handler: MessageHandler,
        shutdown_event: Optional[threading.Event] = None,
        on_failure: Optional[Callable[[str, BaseException], None]] = None,
        consumer_factory: Callable[[Dict[str, Any]], Consumer] = Consumer,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the consumer (no broker connection yet).

        Args:
            config: Service configuration
            handler: Ingest handler for decoded, validated orders
            shutdown_event: Shared cancellation signal; setting it drains the consumer
            on_failure: Called with (subsystem, error) when the consumer must stop
            consumer_factory: Builds the Kafka client from a config dict
            logger: Logger for consumer events
        """
        self.config = config
        self.handler = handler
        self.logger = logger or logging.getLogger(__name__)
        self.state = ConsumerState.IDLE
        self.stats = ConsumerStats()
        self.failure: Optional[BaseException] = None

        self._shutdown_event = shutdown_event or threading.Event()
        self._on_failure = on_failure
        self._consumer_factory = consumer_factory
        self.consumer: Optional[Consumer] = None

        self._claims: Dict[Tuple[str, int], PartitionClaim] = {}
        self._claims_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._closed = threading.Event()
        self._dispatcher: Optional[threading.Thread] = None

    # --------------------------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------------------------

    def start(self) -> None:
        """
        Join the consumer group and start consuming in the background.

        Raises:
            FatalStartupError: Brokers unreachable or the client could not be created
            RuntimeError: Consumer already started
        """
        with self._state_lock:
            if self.state is not ConsumerState.IDLE:
                raise RuntimeError(f"consumer cannot start from state {self.state.value}")
            self.state = ConsumerState.JOINING

        topic = self.config.kafka_topic
        kafka_config = dict(self.config.get_kafka_config())
        kafka_config["error_cb"] = self._handle_kafka_error

        self.logger.info(
            "Joining consumer group",
            extra={
                "topic": topic,
                "group_id": self.config.kafka_group_id,
                "brokers": self.config.broker_list(),
            },
        )

        try:
            self.consumer = self._consumer_factory(kafka_config)
            metadata = self.consumer.list_topics(
                topic=topic, timeout=self.config.kafka_join_timeout_s
            )
            topic_metadata = metadata.topics.get(topic)
            if topic_metadata is None or topic_metadata.error is not None:
                self.logger.warning(
                    "Topic metadata unavailable, waiting for assignment",
                    extra={"topic": topic, "error": str(getattr(topic_metadata, "error", None))},
                )
            self.consumer.subscribe(
                [topic],
                on_assign=self._on_assign,
                on_revoke=self._on_revoke,
                on_lost=self._on_lost,
            )
        except KafkaException as e:
            self._close_client()
            self._set_state(ConsumerState.CLOSED)
            raise FatalStartupError("failed to join consumer group", e) from e

        self._dispatcher = threading.Thread(
            target=self._dispatch_loop,
            name="kafka-dispatcher",
            daemon=True,
        )
        self._set_state(ConsumerState.CONSUMING)
        self._dispatcher.start()

        self.logger.info("Kafka consumer started")

    def stop(self) -> None:
        """
        Drain and close the consumer.

        Sets the shared shutdown event, then waits (without a timeout) for
        the dispatcher and every partition claim to exit before leaving the
        group. Safe to call more than once and from several threads: a caller
        that arrives while another is draining blocks until the consumer is
        closed.
        """
        with self._state_lock:
            already_stopping = self.state in (ConsumerState.DRAINING, ConsumerState.CLOSED)
            was_idle = self.state is ConsumerState.IDLE
            if not already_stopping:
                self.state = ConsumerState.CLOSED if was_idle else ConsumerState.DRAINING

        if already_stopping:
            self._closed.wait()
            return
        if was_idle:
            self._closed.set()
            return

        self.logger.info("Stopping Kafka consumer...")
        self._shutdown_event.set()

        if self._dispatcher is not None:
            self._dispatcher.join()

        with self._claims_lock:
            claims = list(self._claims.values())
            self._claims.clear()
        self._stop_claims(claims)

        self._close_client()

        self.logger.info("Consumer shutdown complete", extra=self.stats.snapshot())
        self._set_state(ConsumerState.CLOSED)

    def active_partitions(self) -> List[Tuple[str, int]]:
        with self._claims_lock:
            return sorted(self._claims)

    # --------------------------------------------------------------------------
    # Dispatcher
    # --------------------------------------------------------------------------

    def _dispatch_loop(self) -> None:
        try:
            while not self._shutdown_event.is_set():
                msg = self.consumer.poll(timeout=self.config.kafka_poll_timeout_s)

                if msg is None:
                    continue

                if msg.error():
                    self._handle_kafka_error(msg.error())
                    continue

                self._claim_for(msg.topic(), msg.partition()).offer(msg)
        except Exception as e:
            self.logger.critical("Fatal error in consumer dispatcher", exc_info=True)
            self._report_failure(e)
        finally:
            self.logger.info("Consumer dispatcher exited")

    def _claim_for(self, topic: str, partition: int) -> PartitionClaim:
        key = (topic, partition)
        with self._claims_lock:
            claim = self._claims.get(key)
            if claim is None:
                claim = PartitionClaim(
                    topic,
                    partition,
                    process=self._process_message,
                    shutdown_event=self._shutdown_event,
                    queue_size=self.config.claim_queue_size,
                    logger=self.logger,
                )
                self._claims[key] = claim
                claim.start()
            return claim

    def _stop_claims(self, claims: List[PartitionClaim]) -> None:
        for claim in claims:
            claim.stop()
        for claim in claims:
            claim.join()

    # --------------------------------------------------------------------------
    # Rebalance callbacks (invoked from poll() on the dispatcher thread)
    # --------------------------------------------------------------------------

    def _on_assign(self, consumer: Consumer, partitions: List[TopicPartition]) -> None:
        for tp in partitions:
            self._claim_for(tp.topic, tp.partition)

        self.logger.info(
            "Partitions assigned",
            extra={"partitions": [tp.partition for tp in partitions]},
        )

    def _on_revoke(self, consumer: Consumer, partitions: List[TopicPartition]) -> None:
        with self._claims_lock:
            claims = [
                self._claims.pop((tp.topic, tp.partition))
                for tp in partitions
                if (tp.topic, tp.partition) in self._claims
            ]
        self._stop_claims(claims)

        self.logger.info(
            "Partitions revoked",
            extra={"partitions": [tp.partition for tp in partitions]},
        )

    def _on_lost(self, consumer: Consumer, partitions: List[TopicPartition]) -> None:
        self.logger.warning(
            "Partitions lost",
            extra={"partitions": [tp.partition for tp in partitions]},
        )
        self._on_revoke(consumer, partitions)

    # --------------------------------------------------------------------------
    # Message processing (invoked on claim threads)
    # --------------------------------------------------------------------------

    def _process_message(self, msg: Message) -> bool:
        start_time = time.time()
        location = {
            "topic": msg.topic(),
            "partition": msg.partition(),
            "offset": msg.offset(),
        }
        order_logger = CorrelationAdapter(self.logger, {"correlation_id": "unknown"})

        try:
            order = decode_order(msg.value())
            order_logger = CorrelationAdapter(
                self.logger, {"correlation_id": order.order_uid or "unknown"}
            )
            order_logger.debug("Processing message", extra=location)

            validate_order(order)
            self.handler.handle(order)

        except ValidationError as e:
            self.stats.increment("messages_invalid")
            order_logger.warning(
                "Invalid order message, skipped without commit",
                extra={**location, "error": str(e)},
            )
            return True

        except OrderServiceError as e:
            self.stats.increment("messages_failed")
            order_logger.error(
                "Failed to process message, skipped without commit",
                extra={**location, "error": str(e), "error_kind": e.kind.value},
            )
            return True

        except Exception as e:
            self.stats.increment("messages_failed")
            order_logger.critical(
                "Unexpected error processing message",
                exc_info=True,
                extra=location,
            )
            self._report_failure(e)
            return False

        if not self._commit(msg, order_logger):
            return True

        processed = self.stats.increment("messages_processed")
        order_logger.info(
            "Order processed successfully",
            extra={
                **location,
                "processing_time_ms": round((time.time() - start_time) * 1000, 2),
                "messages_processed": processed,
            },
        )
        return True

    def _commit(self, msg: Message, order_logger: CorrelationAdapter) -> bool:
        try:
            self.consumer.commit(message=msg, asynchronous=False)
            return True
        except KafkaException as e:
            self.stats.increment("commits_failed")
            error = TransientInfraError("failed to commit offset", e)
            order_logger.error(
                "Offset commit failed",
                extra={
                    "partition": msg.partition(),
                    "offset": msg.offset(),
                    "error": str(error),
                },
            )
            return False

    # --------------------------------------------------------------------------
    # Errors
    # --------------------------------------------------------------------------

    def _handle_kafka_error(self, error: KafkaError) -> None:
        """
        Classify a broker error from poll() or the client's error callback.

        - _PARTITION_EOF: end of partition, informational
        - fatal / authentication / authorization: stop the consumer
        - anything else: logged, librdkafka keeps retrying
        """
        if error.code() == KafkaError._PARTITION_EOF:
            self.logger.debug("Reached end of partition")
            return

        self.logger.error(
            f"Kafka error: {error.str()}",
            extra={"error_code": error.code(), "error_name": error.name()},
        )

        if error.fatal() or error.code() in FATAL_ERROR_CODES:
            self.logger.critical("Fatal Kafka error, shutting down consumer")
            self._report_failure(KafkaException(error))

    def _report_failure(self, error: BaseException) -> None:
        if self.failure is None:
            self.failure = error
        if self._on_failure is not None:
            self._on_failure("consumer", error)
        self._shutdown_event.set()

    def _close_client(self) -> None:
        if self.consumer is None:
            return
        try:
            self.consumer.close()
            self.logger.info("Kafka consumer closed")
        except (KafkaException, RuntimeError):
            self.logger.error("Error closing Kafka consumer", exc_info=True)

    def _set_state(self, state: ConsumerState) -> None:
        with self._state_lock:
            self.state = state
        if state is ConsumerState.CLOSED:
            self._closed.set()

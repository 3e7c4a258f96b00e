"""
Search Sync Worker Entry Point.

Consumes catalog lifecycle events to keep the search index current and
runs the periodic reconciliation job alongside.
"""
import asyncio
import signal
from typing import Optional

from dotenv import load_dotenv

from config.settings import get_settings
from internal.container import Container
from internal.infrastructure.kafka.consumer import CatalogEventConsumer
from pkg.logger.logger import setup_logging, get_logger


# Load environment variables
load_dotenv()

settings = get_settings()

# Setup logging
setup_logging(
    level=settings.log_level,
    json_format=settings.log_format == "json",
)

logger = get_logger(__name__)


class SearchSyncWorker:
    """
    Worker running the incremental sync triggers and reconciliation.

    Events are consumed from Kafka and dispatched to the triggers; the
    reconciliation loop runs as a separate task on the same event loop.
    """

    def __init__(self) -> None:
        """Initialize the worker."""
        self._container: Optional[Container] = None
        self._consumer: Optional[CatalogEventConsumer] = None
        self._reconciliation_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    async def start(self) -> None:
        """Start the worker."""
        logger.info("Starting Search Sync Worker...")

        try:
            self._container = await Container.create(settings)
        except Exception as e:
            logger.error("Failed to initialize resources", error=str(e))
            raise

        services = self._container.services

        self._reconciliation_task = asyncio.create_task(
            services.reconciliation.run_forever(self._stop_event)
        )

        self._consumer = CatalogEventConsumer(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            group_id=settings.kafka_group_id,
            topics=settings.get_kafka_topics(),
            dispatcher=services.dispatcher,
        )
        await self._consumer.start()

        logger.info("Search Sync Worker started successfully")

        try:
            await self._consumer.consume()
        except asyncio.CancelledError:
            logger.info("Worker consumption cancelled")

    async def stop(self) -> None:
        """Stop the worker."""
        logger.info("Stopping Search Sync Worker...")

        self._stop_event.set()

        if self._consumer:
            await self._consumer.stop()

        if self._reconciliation_task:
            try:
                await asyncio.wait_for(self._reconciliation_task, timeout=settings.task_timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning("Reconciliation run did not finish in time, cancelling")
                self._reconciliation_task.cancel()

        if self._container:
            await self._container.close()

        logger.info("Search Sync Worker stopped")


async def main() -> None:
    """Main entry point."""
    worker = SearchSyncWorker()

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    def signal_handler() -> None:
        logger.info("Received shutdown signal")
        asyncio.create_task(worker.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await worker.start()
    except Exception as e:
        logger.error("Worker failed", error=str(e))
        await worker.stop()
        raise


if __name__ == "__main__":
    asyncio.run(main())

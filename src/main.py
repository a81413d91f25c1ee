"""Main entry point for the birthday worker."""

import asyncio
import logging
import signal
import sys
from typing import Optional


from birthdayworker.config import AppConfig, load_config, setup_logging, validate_config
from birthdayworker.database import (
    DatabaseConnectionError,
    check_database_integrity,
)
from birthdayworker.delivery import Channel, build_delivery
from birthdayworker.orchestrator import BatchDeliveryOrchestrator
from birthdayworker.repository import DatabaseConnectionManager, MemberRepository
from birthdayworker.runner import BirthdayRunner
from birthdayworker.sender import RetryingSender


logger = logging.getLogger(__name__)


class BirthdayWorkerApplication:
    """Wires storage, delivery and the periodic runner together."""

    def __init__(self, config: Optional[AppConfig] = None) -> None:
        """Initialize the application.

        Args:
            config: Optional pre-loaded configuration. If None, loads from environment.
        """
        self.config = config or load_config()
        self.db_manager: Optional[DatabaseConnectionManager] = None
        self.delivery: Optional[Channel] = None
        self.runner: Optional[BirthdayRunner] = None
        self._running = False

    def initialize(self) -> None:
        """Initialize all application components.

        Raises:
            DatabaseConnectionError: If database connection fails.
            ValueError: If configuration is invalid.
        """
        setup_logging(self.config.logging)
        logger.info("Initializing birthday worker...")

        if not validate_config(self.config):
            raise ValueError("Invalid configuration")

        try:
            self.db_manager = DatabaseConnectionManager(
                self.config.database.path,
                max_retries=self.config.database.max_retries,
                timeout=self.config.database.timeout,
            )
            self.db_manager.initialize()
            logger.info("Database initialized successfully")
        except DatabaseConnectionError as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

        if not check_database_integrity(self.db_manager.get_connection()):
            logger.warning("Database integrity check reported problems")

        scheduler = self.config.scheduler
        self.delivery = build_delivery(self.config.delivery)
        sender = RetryingSender(
            self.delivery,
            max_retries=scheduler.max_retries,
            base_delay=scheduler.base_delay_seconds,
            max_delay=scheduler.max_delay_seconds,
        )
        orchestrator = BatchDeliveryOrchestrator(
            sender, max_concurrency=scheduler.max_concurrency
        )
        if scheduler.max_concurrency is None:
            logger.info("Delivery fan-out is unbounded (BIRTHDAY_MAX_CONCURRENCY unset)")

        self.runner = BirthdayRunner(
            lookup=MemberRepository(self.db_manager),
            orchestrator=orchestrator,
            interval_seconds=scheduler.check_interval_seconds,
            delivery_hour=scheduler.delivery_hour,
            skip_overlapping=scheduler.skip_overlapping,
        )
        logger.info(
            f"Birthday runner initialized (channel: {self.config.delivery.channel})"
        )

    async def start(self) -> None:
        """Start the application and all components."""
        if self.db_manager is None:
            self.initialize()

        self._running = True
        logger.info("Starting birthday worker...")

        try:
            await self.delivery.open()  # type: ignore[union-attr]
            await self.runner.start()  # type: ignore[union-attr]
            logger.info("Birthday worker is running")

            while self._running:
                await asyncio.sleep(1.0)

        except Exception as e:
            logger.error(f"Error in main loop: {e}", exc_info=True)
            raise

    async def stop(self) -> None:
        """Stop the application and cleanup resources."""
        logger.info("Stopping birthday worker...")
        self._running = False

        if self.runner:
            await self.runner.stop()

        if self.delivery:
            await self.delivery.close()

        if self.db_manager:
            self.db_manager.close()
            logger.info("Database connection closed")

        logger.info("Birthday worker stopped")


async def run_application() -> None:
    """Run the birthday worker with proper startup and shutdown."""
    app = BirthdayWorkerApplication()

    loop = asyncio.get_running_loop()

    def signal_handler() -> None:
        logger.info("Received shutdown signal")
        app._running = False

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
    except Exception as e:
        logger.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await app.stop()


def main() -> None:
    """Main entry point."""
    try:
        asyncio.run(run_application())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")


if __name__ == "__main__":
    main()

"""
Main entry point for the Vendor Reconciler.

This module wires configuration, the vendor API client, the state store and
the reconciler plugins together and runs the controller.
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

from config import get_config
from controller import Controller
from db import DatabaseManager
from plugins.reconcilers.base import ReconcilerContext
from plugins.registry import get_registry, register_builtin_plugins
from vendor_client import VendorAPIClient

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging at the given level name."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


class Application:
    """Main application that orchestrates the controller and plugins."""

    def __init__(self):
        self.config = get_config()
        self.db: Optional[DatabaseManager] = None
        self.client: Optional[VendorAPIClient] = None
        self.controller: Optional[Controller] = None
        self.running = False

    async def initialize(self):
        """Initialize all components."""
        logger.info("Initializing Vendor Reconciler")

        # Register built-in reconcilers and share the vendor API client
        register_builtin_plugins()
        registry = get_registry()
        self.client = VendorAPIClient.from_config(self.config.vendor_api)
        registry.configure(ReconcilerContext(client=self.client))
        logger.info(f"Reconcilers available for: {', '.join(registry.list_kinds())}")

        # Initialize database
        self.db = DatabaseManager.from_config(self.config.database)
        await self.db.connect()
        await self.db.initialize_schema()
        logger.info("Database initialized")

        self.controller = Controller(
            db_manager=self.db,
            registry=registry,
            config=self.config.controller,
        )

        logger.info("All components initialized")

    async def start(self) -> int:
        """
        Start the application.

        Returns:
            Process exit code: in one-shot mode 1 if any object failed.
        """
        if not self.controller:
            await self.initialize()

        self.running = True

        if self.config.controller.oneshot:
            outcomes = await self.controller.run_once()
            return 1 if any(not o.success for o in outcomes) else 0

        try:
            await self.controller.start()
        except asyncio.CancelledError:
            logger.info("Application tasks cancelled")
        return 0

    async def stop(self):
        """Stop the application gracefully."""
        if not self.running and self.db is None:
            return
        logger.info("Stopping Vendor Reconciler")
        self.running = False

        if self.controller:
            await self.controller.stop()

        if self.db:
            await self.db.close()
            self.db = None

        logger.info("Vendor Reconciler stopped")


async def main() -> int:
    """Main entry point."""
    app = Application()
    configure_logging(app.config.controller.log_level)

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(app.controller.stop() if app.controller else app.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        return await app.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    finally:
        await app.stop()


def run():
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()

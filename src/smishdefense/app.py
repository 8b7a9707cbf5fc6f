"""Main application entry point."""
import logging
from typing import Optional
from warnings import filterwarnings

from telegram.warnings import PTBUserWarning

# Suppress the warning about CallbackQueryHandler and per_message
filterwarnings(action="ignore", message=r".*CallbackQueryHandler", category=PTBUserWarning)

from telegram.ext import (  # noqa: E402
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ConversationHandler,
    MessageHandler,
    filters,
)

from smishdefense.config import ensure_directories, settings  # noqa: E402
from smishdefense.services.sync_service import StatsApiClient, SyncBridge  # noqa: E402
from smishdefense.bot import (  # noqa: E402
    handle_start,
    handle_name,
    handle_skip_name,
    handle_forget,
    handle_search,
    handle_callback,
    handle_training,
    ASKING_NAME,
    MAIN_MENU,
    TRAINING,
)


def build_conversation() -> ConversationHandler:
    """Conversation handler wiring every bot state to its handlers."""
    return ConversationHandler(
        entry_points=[CommandHandler("start", handle_start)],
        states={
            ASKING_NAME: [
                MessageHandler(filters.TEXT & ~filters.COMMAND, handle_name),
                CallbackQueryHandler(handle_skip_name, pattern="^skip_name$"),
            ],
            MAIN_MENU: [
                MessageHandler(filters.TEXT & ~filters.COMMAND, handle_search),
                CallbackQueryHandler(handle_callback),
            ],
            TRAINING: [
                CallbackQueryHandler(handle_training),
            ],
        },
        fallbacks=[
            CommandHandler("start", handle_start),
            CommandHandler("forget", handle_forget),
        ],
        per_message=False,
    )


class SmishDefenseBot:
    """Main application class."""

    def __init__(self):
        """Initialize the application."""
        self.application: Optional[Application] = None
        self.sync_bridge: Optional[SyncBridge] = None
        self.running = False
        self.logger = logging.getLogger(__name__)

    async def start(self) -> None:
        """Start the application."""
        if self.running:
            return

        try:
            settings.validate_bot()
            ensure_directories()

            # Create application
            self.application = Application.builder().token(settings.bot.token).build()
            self.logger.info("Application created")

            # One bridge for every chat, so in-flight forwards can be drained on stop
            self.sync_bridge = SyncBridge(StatsApiClient())
            self.application.bot_data["sync_bridge"] = self.sync_bridge

            self.application.add_handler(build_conversation())
            self.logger.info("Handlers added")

            # Start application
            await self.application.initialize()
            await self.application.start()
            await self.application.updater.start_polling()
            self.logger.info("Application started")

            self.running = True

        except Exception as e:
            self.logger.error("Failed to start application: %s", str(e))
            await self.stop(force=True)
            raise

    async def stop(self, force: bool = False) -> None:
        """Stop the application."""
        if not self.running and not force:
            return

        try:
            # Let attempts already dispatched reach the stats API
            if self.sync_bridge:
                if self.sync_bridge.pending:
                    self.logger.info(f"Waiting for {self.sync_bridge.pending} attempts to sync")
                await self.sync_bridge.drain()
                self.sync_bridge = None

            # Stop application
            if self.application:
                if self.application.updater and self.application.updater.running:
                    await self.application.updater.stop()
                if self.application.running:
                    await self.application.stop()
                await self.application.shutdown()
                self.application = None
                self.logger.info("Application stopped")

            self.running = False

        except Exception as e:
            self.logger.error("Error while stopping application: %s", str(e))
            self.running = False
            self.application = None
            self.sync_bridge = None
            raise

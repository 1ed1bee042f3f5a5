"""Telegram bot entry point for DebtBot."""
from __future__ import annotations

import asyncio
import logging
import signal
from typing import Optional

from telegram import Bot, InlineKeyboardMarkup, Update
from telegram.ext import (
    AIORateLimiter,
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from .auth import AdminService
from .config import BotConfig, load_config
from .conversation import ConversationEngine
from .database import Database
from .records import RecordService
from .router import CallbackEvent, CommandRouter, InboundEvent, ReplyMarkup, TextEvent

LOGGER = logging.getLogger(__name__)


class TelegramResponder:
    """Implements the router's outbound calls on top of :class:`telegram.Bot`."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send(
        self, chat_id: int, text: str, reply_markup: Optional[ReplyMarkup] = None
    ) -> int:
        message = await self._bot.send_message(
            chat_id=chat_id, text=text, reply_markup=reply_markup
        )
        return message.message_id

    async def edit(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
    ) -> None:
        await self._bot.edit_message_text(
            text=text,
            chat_id=chat_id,
            message_id=message_id,
            reply_markup=reply_markup,
        )

    async def delete(self, chat_id: int, message_id: int) -> None:
        await self._bot.delete_message(chat_id=chat_id, message_id=message_id)

    async def answer(self, callback_id: str, text: Optional[str] = None) -> None:
        await self._bot.answer_callback_query(callback_query_id=callback_id, text=text)


def event_from_update(update: Update) -> Optional[InboundEvent]:
    """Convert a Telegram update into a router event, or ``None`` if irrelevant."""

    query = update.callback_query
    if query is not None:
        if query.data is None or query.message is None:
            return None
        return CallbackEvent(
            chat_id=query.message.chat.id,
            user_id=query.from_user.id,
            data=query.data,
            message_id=query.message.message_id,
            callback_id=query.id,
        )

    message = update.message
    if message is None or message.text is None or message.from_user is None:
        return None
    return TextEvent(
        chat_id=message.chat.id,
        user_id=message.from_user.id,
        text=message.text,
    )


async def dispatch_update(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    event = event_from_update(update)
    if event is None:
        return
    router: CommandRouter = context.bot_data["router"]
    await router.handle(event)


async def log_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    LOGGER.error("Unhandled error while processing update %s", update, exc_info=context.error)


def build_application(config: BotConfig) -> Application:
    builder = ApplicationBuilder().token(config.token)
    builder = builder.concurrent_updates(config.concurrent_updates or False)
    try:
        rate_limiter = AIORateLimiter()
    except RuntimeError as exc:  # pragma: no cover - depends on optional extras
        LOGGER.warning("Rate limiter disabled: %s", exc)
    else:
        builder = builder.rate_limiter(rate_limiter)
    application = builder.build()
    return application


def register_handlers(application: Application) -> None:
    application.add_handler(MessageHandler(filters.TEXT, dispatch_update))
    application.add_handler(CallbackQueryHandler(dispatch_update))
    application.add_error_handler(log_error)


def build_router(db: Database, bot: Bot, language: str) -> CommandRouter:
    conversations = ConversationEngine()
    return CommandRouter(
        conversations=conversations,
        records=RecordService(db, conversations),
        admins=AdminService(db),
        responder=TelegramResponder(bot),
        language=language,
    )


async def main() -> None:
    config = load_config()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.FileHandler(config.log_file), logging.StreamHandler()],
    )
    db = Database(config.database_path)
    await db.initialize()
    application = build_application(config)
    router = build_router(db, application.bot, config.language)
    await router.admins.ensure_seed_admin(config.seed_admin_id)
    application.bot_data["router"] = router
    register_handlers(application)
    await application.initialize()
    await application.start()
    LOGGER.info("Bot started")
    await application.updater.start_polling(drop_pending_updates=True)

    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        stop_event.set()

    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGINT, signal.SIGTERM, signal.SIGABRT):
            loop.add_signal_handler(sig, _signal_handler)
    except NotImplementedError:
        LOGGER.warning("Signal handlers are not supported on this platform")

    try:
        await stop_event.wait()
    except (KeyboardInterrupt, SystemExit):
        LOGGER.info("Shutdown requested by user")
    finally:
        if application.updater.running:
            await application.updater.stop()
        await application.stop()
        await application.shutdown()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()

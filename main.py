import asyncio
import logging
import sys
from aiohttp import web
from aiogram import Bot, Dispatcher, types
from aiogram.fsm.storage.memory import MemoryStorage
from aiogram.webhook.aiohttp_server import SimpleRequestHandler, setup_application

from core.config import settings
from core.texts import GENERIC_ERROR_TEXT
from database import create_table
from database.connection import close_postgres_pool
from services.notifier import TelegramNotifier
from services.reminder_service import ReminderScheduler
from utils.scheduler import start_scheduler, stop_scheduler
from utils.single_instance import SingleInstanceLock

from handlers.common import router as common_router
from handlers.problems import router as problems_router
from handlers.stats import router as stats_router

# Upper bound for letting the current owner's reminder finish on shutdown.
SHUTDOWN_DRAIN_SECONDS = 60


async def _shutdown(reminders: ReminderScheduler):
    stop_scheduler()
    if not await reminders.wait_idle(timeout=SHUTDOWN_DRAIN_SECONDS):
        logging.warning("Review cycle still running after %ss; exiting anyway.", SHUTDOWN_DRAIN_SECONDS)
    close_postgres_pool()


async def main():
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout
    )

    # Initialize Database
    create_table()
    logging.info("DB backend=%s path=%s", settings.db_backend, settings.db_path)

    if not settings.bot_token:
        logging.error("BOT_TOKEN is not set!")
        return

    is_webhook_mode = settings.delivery_mode == "webhook"
    instance_lock = None
    if not is_webhook_mode:
        # Polling mode must remain single-instance.
        instance_lock = SingleInstanceLock(settings.instance_lock_path)
        if not instance_lock.acquire():
            logging.error("Another bot instance is already running.")
            return

    # Bot & Dispatcher
    bot = Bot(token=settings.bot_token)
    dp = Dispatcher(storage=MemoryStorage())

    for router in (common_router, problems_router, stats_router):
        dp.include_router(router)

    # Global Error Handler
    @dp.error()
    async def global_error_handler(event: types.ErrorEvent):
        logging.exception("Error during command execution: %s", event.exception, exc_info=event.exception)
        if event.update.message:
            await event.update.message.answer(GENERIC_ERROR_TEXT)
        return True

    await bot.set_my_commands(
        [
            types.BotCommand(command="add", description="Add a problem you've solved"),
            types.BotCommand(command="list", description="List your solved problems"),
            types.BotCommand(command="get", description="Show a problem by ID"),
            types.BotCommand(command="edit", description="Edit a problem"),
            types.BotCommand(command="delete", description="Delete a problem"),
            types.BotCommand(command="review", description="Problems due for review"),
            types.BotCommand(command="stats", description="Your statistics"),
            types.BotCommand(command="tags", description="Your tags"),
            types.BotCommand(command="help", description="How to use the bot"),
        ],
        scope=types.BotCommandScopeDefault(),
    )

    reminders = ReminderScheduler(notifier=TelegramNotifier(bot))
    start_scheduler(reminders)

    if is_webhook_mode:
        if not settings.webhook_url:
            logging.error("WEBHOOK_URL (or WEBHOOK_BASE_URL + WEBHOOK_PATH) is required in webhook mode.")
            await _shutdown(reminders)
            return

        await bot.set_webhook(
            url=settings.webhook_url,
            secret_token=(settings.webhook_secret_token or None),
            drop_pending_updates=False,
        )

        app = web.Application()
        webhook_requests_handler = SimpleRequestHandler(
            dispatcher=dp,
            bot=bot,
            secret_token=(settings.webhook_secret_token or None),
        )
        webhook_requests_handler.register(app, path=settings.webhook_path)
        setup_application(app, dp, bot=bot)

        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, host=settings.webhook_host, port=settings.webhook_port)
        await site.start()

        logging.info(
            "🚀 Grind Review Bot started in webhook mode. listen=%s:%s path=%s webhook_url=%s",
            settings.webhook_host,
            settings.webhook_port,
            settings.webhook_path,
            settings.webhook_url,
        )
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            await _shutdown(reminders)
            await runner.cleanup()
    else:
        await bot.delete_webhook(drop_pending_updates=True)
        logging.info("🚀 Grind Review Bot started in polling mode.")
        try:
            await dp.start_polling(bot)
        finally:
            await _shutdown(reminders)
            if instance_lock:
                instance_lock.release()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.info("Bot stopped by user.")

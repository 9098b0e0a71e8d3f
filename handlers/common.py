import datetime
import html
import json
import logging

from aiogram import Router
from aiogram.filters import Command, CommandStart
from aiogram.types import LinkPreviewOptions, Message

from core.config import settings
from core.texts import ADMIN_ONLY_TEXT, APP_VERSION, HELP_TEXT, NOTHING_DUE_TEXT
from services.review_service import ReviewService
from utils.scheduler import get_reminder_scheduler, get_scheduler_health

router = Router()


def _is_admin(user_id: int) -> bool:
    admin_id = settings.admin_id
    if not admin_id:
        return False
    return str(user_id) == str(admin_id)


async def _ensure_admin(message: Message) -> bool:
    if message.from_user and _is_admin(message.from_user.id):
        return True
    await message.answer(ADMIN_ONLY_TEXT)
    return False


@router.message(CommandStart())
@router.message(Command("help"))
async def cmd_help(message: Message):
    await message.answer(HELP_TEXT, parse_mode="HTML")


@router.message(Command("review"))
async def cmd_review(message: Message):
    """Preview of tomorrow's reminder; does not touch review counts."""
    if not message.from_user:
        return
    owner = str(message.from_user.id)
    items = ReviewService.due_items(owner, datetime.timedelta(seconds=settings.review_lookback_seconds))
    if not items:
        await message.answer(NOTHING_DUE_TEXT)
        return
    text, _ = ReviewService.format_reminder(owner, items, settings.review_max_items)
    await message.answer(text, parse_mode="HTML", link_preview_options=LinkPreviewOptions(is_disabled=True))


@router.message(Command("health"))
async def cmd_health(message: Message):
    if not await _ensure_admin(message):
        return
    health = get_scheduler_health()
    health["version"] = APP_VERSION
    body = html.escape(json.dumps(health, indent=2, ensure_ascii=False, default=str))
    await message.answer(f"<pre>{body}</pre>", parse_mode="HTML")


@router.message(Command("remind_now"))
async def cmd_remind_now(message: Message):
    if not await _ensure_admin(message):
        return
    reminders = get_reminder_scheduler()
    if reminders is None:
        await message.answer("Reminder scheduler is not running on this instance.")
        return
    logging.info("Manual review cycle requested by admin %s", message.from_user.id)
    report = await reminders.run_cycle()
    if report is None:
        await message.answer("A review cycle is already running (or the bot is shutting down).")
        return
    await message.answer(
        f"Review cycle done: owners={report.owners_seen}, notified={len(report.notified)}, "
        f"undelivered={len(report.undelivered)}, increment_failures={len(report.increment_failures)}"
    )

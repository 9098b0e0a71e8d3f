from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message
import datetime
import html

from core.texts import NO_STATS_TEXT
from database.models import UserStats
from services.problem_service import ProblemService

router = Router()


def _fmt_datetime_short(value: datetime.datetime | None) -> str:
    if not value:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M") + " UTC"


def _stats_text(stats: UserStats) -> str:
    return (
        "📊 <b>Your Statistics</b>\n"
        "───────────────────\n"
        f"Total Solved: {stats.total_solved}\n"
        f"Needed Hint: {stats.total_needed_hint}\n"
        f"Stuck: {stats.total_stuck}\n\n"
        f"Easy: {stats.easy_count}\n"
        f"Medium: {stats.medium_count}\n"
        f"Hard: {stats.hard_count}\n\n"
        f"Last Active: {_fmt_datetime_short(stats.last_active_at)}"
    )


@router.message(Command("stats"))
async def cmd_stats(message: Message):
    if not message.from_user:
        return
    stats = ProblemService.stats(str(message.from_user.id))
    if stats is None:
        await message.answer(NO_STATS_TEXT)
        return
    await message.answer(_stats_text(stats), parse_mode="HTML")


@router.message(Command("tags"))
async def cmd_tags(message: Message):
    if not message.from_user:
        return
    counts = ProblemService.tags(str(message.from_user.id))
    if not counts:
        await message.answer("You haven't tagged any problems yet.")
        return
    body = "\n".join(f"- {html.escape(name)} ({count})" for name, count in counts)
    await message.answer(f"🏷 <b>Your tags</b>\n{body}", parse_mode="HTML")

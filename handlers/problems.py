import html
import logging

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from core.config import settings
from core.errors import NotFoundError, ValidationError
from core.texts import NO_PROBLEMS_TEXT
from database.models import TrackedItem
from services.problem_service import ProblemService

router = Router()

_OPTION_ALIASES = {"problem": "name", "problem_name": "name", "date": "solved_at", "solved": "solved_at", "tag": "tags"}


def _split_chunks(raw: str) -> list[str]:
    """Splits on `;` outside double quotes."""
    chunks, current, quoted = [], [], False
    for ch in raw:
        if ch == '"':
            quoted = not quoted
        if ch == ";" and not quoted:
            chunks.append("".join(current))
            current = []
        else:
            current.append(ch)
    if quoted:
        raise ValidationError(["unterminated quote"])
    chunks.append("".join(current))
    return chunks


def _parse_options(raw: str | None) -> dict[str, str]:
    """
    `name=Two Sum; difficulty=Easy; tags=a, b` -> {"name": "Two Sum", ...}

    Values containing `;` go in double quotes: `notes="BFS; then DP"`.
    """
    options: dict[str, str] = {}
    for chunk in _split_chunks(raw or ""):
        if not chunk.strip():
            continue
        key, sep, value = chunk.partition("=")
        key = key.strip().lower()
        if not sep or not key:
            raise ValidationError([f"expected key=value, got '{chunk.strip()}'"])
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        options[_OPTION_ALIASES.get(key, key)] = value
    return options


def _parse_id_and_options(raw: str | None) -> tuple[int, dict[str, str]]:
    head, _, rest = (raw or "").strip().partition(" ")
    try:
        problem_id = int(head)
    except ValueError:
        raise ValidationError(["missing or invalid problem ID"]) from None
    return problem_id, _parse_options(rest)


def _format_problem_line(item: TrackedItem) -> str:
    line = (
        f"- <b>#{item.id}</b> {html.escape(item.problem_name)} · {item.difficulty} · "
        f"{html.escape(item.status)} · {item.solved_at:%Y-%m-%d}"
    )
    if item.tags:
        line += f" · {html.escape(', '.join(item.tags))}"
    return line


def _format_problem_details(item: TrackedItem) -> str:
    lines = [
        f"<b>Problem #{item.id}</b>",
        f"Name: {html.escape(item.problem_name)}",
    ]
    if item.link:
        lines.append(f"Link: {html.escape(item.link)}")
    lines += [
        f"Difficulty: {item.difficulty}",
        f"Category: {html.escape(item.category)}",
        f"Status: {html.escape(item.status)}",
        f"Solved At: {item.solved_at:%Y-%m-%d}",
    ]
    if item.last_reviewed_at:
        lines.append(f"Last Reviewed At: {item.last_reviewed_at:%Y-%m-%d}")
    lines.append(f"Review Count: {item.review_count}")
    if item.notes:
        lines.append(f"Notes: {html.escape(item.notes)}")
    if item.tags:
        lines.append(f"Tags: {html.escape(', '.join(item.tags))}")
    return "\n".join(lines)


async def _reply_error(message: Message, exc: Exception):
    if isinstance(exc, NotFoundError):
        text = f"Could not find problem with ID {exc.item_id}."
    else:
        text = "⚠️ " + html.escape(str(exc))
    await message.answer(text, parse_mode="HTML")


@router.message(Command("add"))
async def cmd_add(message: Message, command: CommandObject):
    if not message.from_user:
        return
    try:
        item = ProblemService.submit(str(message.from_user.id), _parse_options(command.args))
    except ValidationError as exc:
        await _reply_error(message, exc)
        return
    await message.answer(
        f"Successfully added problem '{html.escape(item.problem_name)}' (ID: {item.id})!",
        parse_mode="HTML",
    )


@router.message(Command("get"))
async def cmd_get(message: Message, command: CommandObject):
    if not message.from_user:
        return
    try:
        problem_id, _ = _parse_id_and_options(command.args)
        item = ProblemService.get_owned(str(message.from_user.id), problem_id)
    except (ValidationError, NotFoundError) as exc:
        await _reply_error(message, exc)
        return
    await message.answer(_format_problem_details(item), parse_mode="HTML")


@router.message(Command("edit"))
async def cmd_edit(message: Message, command: CommandObject):
    if not message.from_user:
        return
    try:
        problem_id, options = _parse_id_and_options(command.args)
        if not options:
            raise ValidationError(["nothing to change"])
        item = ProblemService.edit(str(message.from_user.id), problem_id, options)
    except (ValidationError, NotFoundError) as exc:
        await _reply_error(message, exc)
        return
    await message.answer(
        f"Successfully updated problem '{html.escape(item.problem_name)}' (ID: {item.id})!",
        parse_mode="HTML",
    )


@router.message(Command("delete"))
async def cmd_delete(message: Message, command: CommandObject):
    if not message.from_user:
        return
    try:
        problem_id, _ = _parse_id_and_options(command.args)
        ProblemService.delete(str(message.from_user.id), problem_id)
    except (ValidationError, NotFoundError) as exc:
        await _reply_error(message, exc)
        return
    logging.info("User %s deleted problem %s", message.from_user.id, problem_id)
    await message.answer(f"Successfully deleted problem with ID {problem_id}!")


@router.message(Command("list"))
async def cmd_list(message: Message, command: CommandObject):
    if not message.from_user:
        return
    try:
        options = _parse_options(command.args)
        items = ProblemService.list_for_user(str(message.from_user.id), options, limit=settings.list_page_size)
    except ValidationError as exc:
        await _reply_error(message, exc)
        return
    if not items:
        await message.answer(NO_PROBLEMS_TEXT)
        return
    lines = ["<b>Your Solved Problems:</b>"] + [_format_problem_line(item) for item in items]
    if len(items) == settings.list_page_size:
        lines.append(f"\nShowing the {settings.list_page_size} most recent. Narrow it down with filters.")
    await message.answer("\n".join(lines), parse_mode="HTML")

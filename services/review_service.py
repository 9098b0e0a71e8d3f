import datetime
import html

from core.texts import REMINDER_FOOTER, REMINDER_HEADER, REMINDER_MORE
from database.models import TrackedItem, utc_now
from database.repositories.problem_repository import list_problems_for_review

TELEGRAM_MESSAGE_LIMIT = 4096
MAX_NAME_CHARS = 200
MAX_LINK_CHARS = 1024


def _as_timedelta(lookback) -> datetime.timedelta:
    if isinstance(lookback, datetime.timedelta):
        return lookback
    return datetime.timedelta(seconds=float(lookback))


def _mention_html(owner: str) -> str:
    if str(owner).isdigit():
        return f'<a href="tg://user?id={owner}">there</a>'
    return html.escape(str(owner))


def _shorten(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 1] + "\u2026"


def _item_line(item: TrackedItem) -> str:
    solved = item.solved_at.strftime("%Y-%m-%d") if item.solved_at else "-"
    line = f"- {html.escape(_shorten(item.problem_name, MAX_NAME_CHARS))} (Solved: {solved})"
    link = html.escape(item.link or "", quote=True)
    # Links past MAX_LINK_CHARS are dropped, never cut.
    if link and len(link) <= MAX_LINK_CHARS:
        line += f' - <a href="{link}">link</a>'
    return line


class ReviewService:
    @staticmethod
    def cutoff(lookback, now: datetime.datetime | None = None) -> datetime.datetime:
        return (now or utc_now()) - _as_timedelta(lookback)

    @staticmethod
    def due_items(owner: str, lookback, now: datetime.datetime | None = None) -> list[TrackedItem]:
        """
        Problems due for review: solved at or before now - lookback and not
        reviewed since then. Oldest solve first, so capped reminders always
        show the longest-neglected problems. Read-only.
        """
        return list_problems_for_review(owner, ReviewService.cutoff(lookback, now))

    @staticmethod
    def format_reminder(owner: str, items: list[TrackedItem], max_items: int = 0) -> tuple[str, list[TrackedItem]]:
        """
        Builds the HTML reminder. Returns the text and the items it lists.

        With max_items > 0 at most max_items are shown; lines also stop before
        the text would pass Telegram's message limit. Whatever is left out is
        counted in the "more" line and stays due.
        """
        candidates = list(items[:max_items]) if max_items > 0 else list(items)
        header = REMINDER_HEADER.format(mention=_mention_html(owner))
        tail = "\n" + REMINDER_MORE.format(count=len(items)) + "\n\n" + REMINDER_FOOTER
        length = len(header) + len(tail)

        lines = [header]
        shown: list[TrackedItem] = []
        for item in candidates:
            line = _item_line(item)
            # The first item is always listed.
            if shown and length + 1 + len(line) > TELEGRAM_MESSAGE_LIMIT:
                break
            lines.append(line)
            shown.append(item)
            length += 1 + len(line)

        hidden = len(items) - len(shown)
        if hidden > 0:
            lines.append(REMINDER_MORE.format(count=hidden))
        lines.append("")
        lines.append(REMINDER_FOOTER)
        return "\n".join(lines), shown

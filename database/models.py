import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from core.errors import ValidationError

TS_FORMAT = "%Y-%m-%d %H:%M:%S"


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class Status(str, Enum):
    SOLVED = "Solved"
    NEEDED_HINT = "Needed Hint"
    STUCK = "Stuck"


# Stats ledger column per enum value.
STATUS_COUNTERS = {
    Status.SOLVED.value: "total_solved",
    Status.NEEDED_HINT.value: "total_needed_hint",
    Status.STUCK.value: "total_stuck",
}
DIFFICULTY_COUNTERS = {
    Difficulty.EASY.value: "easy_count",
    Difficulty.MEDIUM.value: "medium_count",
    Difficulty.HARD.value: "hard_count",
}


def utc_now() -> datetime.datetime:
    """Naive UTC, truncated to the stored precision."""
    now = datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
    return now.replace(microsecond=0)


def format_ts(value: datetime.datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value.strftime(TS_FORMAT)


def parse_ts(value: Any) -> datetime.datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time.min)
    text = str(value).strip()
    if not text:
        return None
    parsed = datetime.datetime.fromisoformat(text.replace("Z", "+00:00"))
    return parse_ts(parsed) if parsed.tzinfo else parsed


def enum_text(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value or "")


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    """Strip, drop empties, collapse exact duplicates. Case is kept as submitted."""
    seen: list[str] = []
    for raw in tags or []:
        name = str(raw or "").strip()
        if name and name not in seen:
            seen.append(name)
    return seen


@dataclass
class TrackedItem:
    user_id: str
    problem_name: str
    difficulty: str
    category: str
    status: str
    solved_at: datetime.datetime | None
    link: str = ""
    notes: str = ""
    tags: list[str] = field(default_factory=list)
    last_reviewed_at: datetime.datetime | None = None
    review_count: int = 0
    id: int | None = None

    @classmethod
    def from_row(cls, row, tags: list[str] | None = None) -> "TrackedItem":
        return cls(
            id=int(row["id"]),
            user_id=str(row["user_id"]),
            problem_name=str(row["problem_name"]),
            link=str(row["link"] or ""),
            difficulty=str(row["difficulty"]),
            category=str(row["category"]),
            status=str(row["status"]),
            solved_at=parse_ts(row["solved_at"]),
            last_reviewed_at=parse_ts(row["last_reviewed_at"]),
            review_count=int(row["review_count"] or 0),
            notes=str(row["notes"] or ""),
            tags=list(tags or []),
        )


@dataclass
class UserStats:
    user_id: str
    total_solved: int = 0
    total_needed_hint: int = 0
    total_stuck: int = 0
    easy_count: int = 0
    medium_count: int = 0
    hard_count: int = 0
    last_active_at: datetime.datetime | None = None

    @classmethod
    def from_row(cls, row) -> "UserStats":
        return cls(
            user_id=str(row["user_id"]),
            total_solved=int(row["total_solved"] or 0),
            total_needed_hint=int(row["total_needed_hint"] or 0),
            total_stuck=int(row["total_stuck"] or 0),
            easy_count=int(row["easy_count"] or 0),
            medium_count=int(row["medium_count"] or 0),
            hard_count=int(row["hard_count"] or 0),
            last_active_at=parse_ts(row["last_active_at"]),
        )


def validate_item(item: TrackedItem) -> None:
    problems = []
    if not str(item.user_id or "").strip():
        problems.append("user ID is required")
    if not str(item.problem_name or "").strip():
        problems.append("problem name is required")
    if enum_text(item.difficulty) not in DIFFICULTY_COUNTERS:
        problems.append(f"invalid difficulty: {item.difficulty}")
    if enum_text(item.status) not in STATUS_COUNTERS:
        problems.append(f"invalid status: {item.status}")
    if not str(item.category or "").strip():
        problems.append("category is required")
    if not isinstance(item.solved_at, datetime.datetime):
        problems.append("solved_at is required")
    if int(item.review_count or 0) < 0:
        problems.append("review count cannot be negative")
    if problems:
        raise ValidationError(problems)

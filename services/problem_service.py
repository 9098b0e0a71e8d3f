import datetime

from core.errors import NotFoundError, ValidationError
from database.models import Difficulty, Status, TrackedItem, UserStats
from database.repositories.problem_repository import (
    create_problem,
    delete_problem,
    get_problem,
    list_problems,
    update_problem,
)
from database.repositories.stats_repository import get_user_stats
from database.repositories.tag_repository import get_user_tag_counts

EDITABLE_FIELDS = ("name", "link", "difficulty", "category", "status", "solved_at", "tags", "notes")


def parse_solved_date(raw: str) -> datetime.datetime:
    try:
        return datetime.datetime.strptime(str(raw).strip(), "%Y-%m-%d")
    except ValueError:
        raise ValidationError(["invalid date format, please use YYYY-MM-DD"]) from None


def split_tags(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in str(raw).split(",") if part.strip()]


def _match_choice(raw: str | None, enum_cls) -> str:
    """Case/space-insensitive lookup ("needed hint", "NeededHint" -> "Needed Hint")."""
    key = str(raw or "").replace(" ", "").replace("_", "").lower()
    for member in enum_cls:
        if member.value.replace(" ", "").lower() == key:
            return member.value
    return str(raw or "")


def normalize_difficulty(raw: str | None) -> str:
    return _match_choice(raw, Difficulty)


def normalize_status(raw: str | None) -> str:
    return _match_choice(raw, Status)


class ProblemService:
    @staticmethod
    def submit(user_id: str, options: dict) -> TrackedItem:
        solved_raw = options.get("solved_at")
        if not solved_raw:
            raise ValidationError(["missing solved_at date"])
        item = TrackedItem(
            user_id=str(user_id),
            problem_name=options.get("name", ""),
            link=options.get("link", ""),
            difficulty=normalize_difficulty(options.get("difficulty")),
            category=options.get("category", ""),
            status=normalize_status(options.get("status")),
            solved_at=parse_solved_date(solved_raw),
            notes=options.get("notes", ""),
            tags=split_tags(options.get("tags")),
        )
        create_problem(item)
        return item

    @staticmethod
    def get_owned(user_id: str, problem_id: int) -> TrackedItem:
        item = get_problem(problem_id)
        if item.user_id != str(user_id):
            # Other users' problems are indistinguishable from missing ones.
            raise NotFoundError(problem_id)
        return item

    @staticmethod
    def edit(user_id: str, problem_id: int, options: dict) -> TrackedItem:
        unknown = sorted(set(options) - set(EDITABLE_FIELDS))
        if unknown:
            raise ValidationError([f"unknown field: {name}" for name in unknown])
        item = ProblemService.get_owned(user_id, problem_id)
        if "name" in options:
            item.problem_name = options["name"]
        if "link" in options:
            item.link = options["link"]
        if "difficulty" in options:
            item.difficulty = normalize_difficulty(options["difficulty"])
        if "category" in options:
            item.category = options["category"]
        if "status" in options:
            item.status = normalize_status(options["status"])
        if "solved_at" in options:
            item.solved_at = parse_solved_date(options["solved_at"])
        if "tags" in options:
            item.tags = split_tags(options["tags"])
        if "notes" in options:
            item.notes = options["notes"]
        return update_problem(item)

    @staticmethod
    def delete(user_id: str, problem_id: int):
        ProblemService.get_owned(user_id, problem_id)
        delete_problem(problem_id)

    @staticmethod
    def list_for_user(user_id: str, options: dict, limit: int = 0) -> list[TrackedItem]:
        return list_problems(
            user_id=str(user_id),
            status=normalize_status(options["status"]) if options.get("status") else None,
            difficulty=normalize_difficulty(options["difficulty"]) if options.get("difficulty") else None,
            category=options.get("category") or None,
            tags=split_tags(options.get("tags")),
            limit=limit,
        )

    @staticmethod
    def stats(user_id: str) -> UserStats | None:
        return get_user_stats(str(user_id))

    @staticmethod
    def tags(user_id: str) -> list[tuple[str, int]]:
        return get_user_tag_counts(str(user_id))

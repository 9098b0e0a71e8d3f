import datetime
import logging

from core.errors import NotFoundError
from database.connection import is_postgres_backend, read_cursor, transaction
from database.models import TrackedItem, enum_text, format_ts, utc_now, validate_item
from database.repositories.stats_repository import apply_problem_to_stats
from database.repositories.tag_repository import (
    attach_tags,
    detach_all,
    load_tags,
    prune_orphan_tags,
    replace_tags,
)

_PROBLEM_COLUMNS = """
    p.id, p.user_id, p.problem_name, p.link, p.difficulty, p.category, p.status,
    p.solved_at, p.last_reviewed_at, p.review_count, p.notes
"""


def _rowcount(cursor) -> int:
    return int(getattr(cursor, "rowcount", 0) or 0)


def _rows_to_items(cursor, rows) -> list[TrackedItem]:
    ids = [int(row["id"]) for row in rows]
    tags = load_tags(cursor, ids)
    return [TrackedItem.from_row(row, tags.get(int(row["id"]))) for row in rows]


def create_problem(item: TrackedItem, now: datetime.datetime | None = None) -> int:
    """
    Inserts the problem, its tags and the owner's stats update in one transaction.
    Returns the new id and sets it on the item.
    """
    validate_item(item)
    now = now or utc_now()
    params = (
        item.user_id,
        item.problem_name.strip(),
        item.link or "",
        enum_text(item.difficulty),
        item.category.strip(),
        enum_text(item.status),
        format_ts(item.solved_at),
        item.notes or "",
    )
    insert_sql = """
        INSERT INTO problems (
            user_id, problem_name, link, difficulty, category, status, solved_at, notes
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
    """
    with transaction() as cursor:
        if is_postgres_backend():
            cursor.execute(insert_sql + " RETURNING id", params)
            problem_id = int(cursor.fetchone()[0])
        else:
            cursor.execute(insert_sql, params)
            problem_id = int(cursor.lastrowid)
        item.tags = attach_tags(cursor, problem_id, item.tags)
        apply_problem_to_stats(cursor, item, now)

    item.id = problem_id
    logging.info("Problem created id=%s user=%s tags=%d", problem_id, item.user_id, len(item.tags))
    return problem_id


def get_problem(problem_id: int) -> TrackedItem:
    with read_cursor() as cursor:
        cursor.execute(f"SELECT {_PROBLEM_COLUMNS} FROM problems p WHERE p.id = ?", (problem_id,))
        row = cursor.fetchone()
        if row is None:
            raise NotFoundError(problem_id)
        return _rows_to_items(cursor, [row])[0]


def update_problem(item: TrackedItem) -> TrackedItem:
    """
    Replaces the editable fields and resyncs the whole tag set.
    Owner, review count and last review time are left alone.
    """
    validate_item(item)
    if item.id is None:
        raise NotFoundError(0)
    with transaction() as cursor:
        cursor.execute(
            """
            UPDATE problems
            SET problem_name = ?,
                link = ?,
                difficulty = ?,
                category = ?,
                status = ?,
                solved_at = ?,
                notes = ?
            WHERE id = ?
            """,
            (
                item.problem_name.strip(),
                item.link or "",
                enum_text(item.difficulty),
                item.category.strip(),
                enum_text(item.status),
                format_ts(item.solved_at),
                item.notes or "",
                item.id,
            ),
        )
        if _rowcount(cursor) == 0:
            raise NotFoundError(item.id)
        item.tags = replace_tags(cursor, item.id, item.tags)
    return item


def delete_problem(problem_id: int, prune_tags: bool = True):
    """Removes the problem and its tag links. Stats are not rolled back."""
    with transaction() as cursor:
        detach_all(cursor, problem_id)
        cursor.execute("DELETE FROM problems WHERE id = ?", (problem_id,))
        if _rowcount(cursor) == 0:
            raise NotFoundError(problem_id)
        pruned = prune_orphan_tags(cursor) if prune_tags else 0
    logging.info("Problem deleted id=%s pruned_tags=%d", problem_id, pruned)


def list_problems(
    user_id: str | None = None,
    status: str | None = None,
    difficulty: str | None = None,
    category: str | None = None,
    tags: list[str] | None = None,
    limit: int = 0,
    offset: int = 0,
) -> list[TrackedItem]:
    """Problems matching every non-empty filter, newest solve first."""
    conditions = []
    args: list = []
    if user_id:
        conditions.append("p.user_id = ?")
        args.append(user_id)
    if status:
        conditions.append("p.status = ?")
        args.append(enum_text(status))
    if difficulty:
        conditions.append("p.difficulty = ?")
        args.append(enum_text(difficulty))
    if category:
        conditions.append("p.category = ?")
        args.append(category)
    tag_names = [t.strip() for t in (tags or []) if t and t.strip()]
    if tag_names:
        placeholders = ", ".join("?" for _ in tag_names)
        conditions.append(
            f"""EXISTS (
                SELECT 1 FROM problem_tags pt
                JOIN tags t ON t.id = pt.tag_id
                WHERE pt.problem_id = p.id AND t.name IN ({placeholders})
            )"""
        )
        args.extend(tag_names)

    query = f"SELECT {_PROBLEM_COLUMNS} FROM problems p"
    if conditions:
        query += " WHERE " + " AND ".join(conditions)
    query += " ORDER BY p.solved_at DESC, p.id DESC"
    if limit > 0:
        query += " LIMIT ?"
        args.append(limit)
    elif offset > 0 and not is_postgres_backend():
        query += " LIMIT -1"
    if offset > 0:
        query += " OFFSET ?"
        args.append(offset)

    with read_cursor() as cursor:
        cursor.execute(query, tuple(args))
        return _rows_to_items(cursor, cursor.fetchall())


def list_distinct_owners() -> list[str]:
    with read_cursor() as cursor:
        cursor.execute("SELECT DISTINCT user_id FROM problems")
        return [str(row[0]) for row in cursor.fetchall()]


def list_problems_for_review(user_id: str, cutoff: datetime.datetime) -> list[TrackedItem]:
    """Solved and last reviewed (if ever) at or before the cutoff, oldest solve first."""
    cutoff_str = format_ts(cutoff)
    with read_cursor() as cursor:
        cursor.execute(
            f"""
            SELECT {_PROBLEM_COLUMNS}
            FROM problems p
            WHERE p.user_id = ?
              AND p.solved_at <= ?
              AND (p.last_reviewed_at IS NULL OR p.last_reviewed_at <= ?)
            ORDER BY p.solved_at ASC, p.id ASC
            """,
            (user_id, cutoff_str, cutoff_str),
        )
        return _rows_to_items(cursor, cursor.fetchall())


def increment_review_count(problem_id: int, now: datetime.datetime | None = None):
    """Every call counts: review_count += 1 and last_reviewed_at = now."""
    with transaction() as cursor:
        cursor.execute(
            """
            UPDATE problems
            SET review_count = review_count + 1,
                last_reviewed_at = ?
            WHERE id = ?
            """,
            (format_ts(now or utc_now()), problem_id),
        )
        if _rowcount(cursor) == 0:
            raise NotFoundError(problem_id)

import datetime

from database.connection import read_cursor
from database.models import (
    DIFFICULTY_COUNTERS,
    STATUS_COUNTERS,
    TrackedItem,
    UserStats,
    enum_text,
    format_ts,
)


def apply_problem_to_stats(cursor, item: TrackedItem, now: datetime.datetime):
    """
    Adds one created problem to the owner's ledger inside the caller's transaction.

    Exactly one status counter and one difficulty counter move; nothing ever
    decrements them, deleting a problem leaves its contribution in place.
    """
    status_col = STATUS_COUNTERS[enum_text(item.status)]
    difficulty_col = DIFFICULTY_COUNTERS[enum_text(item.difficulty)]
    now_str = format_ts(now)
    cursor.execute(
        """
        INSERT INTO user_stats (user_id, last_active_at)
        VALUES (?, ?)
        ON CONFLICT(user_id) DO NOTHING
        """,
        (item.user_id, now_str),
    )
    cursor.execute(
        f"""
        UPDATE user_stats
        SET {status_col} = {status_col} + 1,
            {difficulty_col} = {difficulty_col} + 1,
            last_active_at = ?
        WHERE user_id = ?
        """,
        (now_str, item.user_id),
    )


def get_user_stats(user_id: str) -> UserStats | None:
    """None means the user has never created a problem."""
    with read_cursor() as cursor:
        cursor.execute(
            """
            SELECT user_id, total_solved, total_needed_hint, total_stuck,
                   easy_count, medium_count, hard_count, last_active_at
            FROM user_stats
            WHERE user_id = ?
            """,
            (user_id,),
        )
        row = cursor.fetchone()
    return UserStats.from_row(row) if row else None

import logging
from core.config import settings

# Public API for the database package
from database.connection import (
    get_connection as get_connection,
    is_postgres_backend as is_postgres_backend,
    read_cursor as read_cursor,
    transaction as transaction,
)
from database.models import (
    Difficulty as Difficulty,
    Status as Status,
    TrackedItem as TrackedItem,
    UserStats as UserStats,
)
from database.repositories.problem_repository import (
    create_problem as create_problem,
    delete_problem as delete_problem,
    get_problem as get_problem,
    increment_review_count as increment_review_count,
    list_distinct_owners as list_distinct_owners,
    list_problems as list_problems,
    list_problems_for_review as list_problems_for_review,
    update_problem as update_problem,
)
from database.repositories.stats_repository import get_user_stats as get_user_stats

__all__ = [
    "get_connection",
    "is_postgres_backend",
    "read_cursor",
    "transaction",
    "create_table",
    "Difficulty",
    "Status",
    "TrackedItem",
    "UserStats",
    "create_problem",
    "delete_problem",
    "get_problem",
    "increment_review_count",
    "list_distinct_owners",
    "list_problems",
    "list_problems_for_review",
    "update_problem",
    "get_user_stats",
]

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_problems_user_id ON problems(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_problems_status ON problems(status)",
    "CREATE INDEX IF NOT EXISTS idx_problems_solved_at ON problems(solved_at)",
    "CREATE INDEX IF NOT EXISTS idx_problems_difficulty ON problems(difficulty)",
    "CREATE INDEX IF NOT EXISTS idx_problems_category ON problems(category)",
    "CREATE INDEX IF NOT EXISTS idx_problems_status_solved_at ON problems(status, solved_at)",
    "CREATE INDEX IF NOT EXISTS idx_problem_tags_problem_id ON problem_tags(problem_id)",
    "CREATE INDEX IF NOT EXISTS idx_problem_tags_tag_id ON problem_tags(tag_id)",
]


def create_table():
    """Initializes the database schema."""
    if is_postgres_backend():
        id_column = "BIGSERIAL PRIMARY KEY"
        ts_type = "TIMESTAMP"
    else:
        id_column = "INTEGER PRIMARY KEY AUTOINCREMENT"
        ts_type = "TEXT"

    with transaction() as cursor:
        # problems
        cursor.execute(f"""
            CREATE TABLE IF NOT EXISTS problems (
                id {id_column},
                user_id TEXT NOT NULL,
                problem_name TEXT NOT NULL,
                link TEXT,
                difficulty TEXT NOT NULL,
                category TEXT NOT NULL,
                status TEXT NOT NULL,
                solved_at {ts_type} NOT NULL,
                last_reviewed_at {ts_type},
                review_count INTEGER NOT NULL DEFAULT 0,
                notes TEXT
            )
        """)

        # tags (names are unique and case-sensitive)
        cursor.execute(f"""
            CREATE TABLE IF NOT EXISTS tags (
                id {id_column},
                name TEXT NOT NULL UNIQUE
            )
        """)

        # problem_tags (many-to-many)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS problem_tags (
                problem_id BIGINT NOT NULL REFERENCES problems(id) ON DELETE CASCADE,
                tag_id BIGINT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
                PRIMARY KEY (problem_id, tag_id)
            )
        """)

        # user_stats (activity ledger, one row per user)
        cursor.execute(f"""
            CREATE TABLE IF NOT EXISTS user_stats (
                user_id TEXT PRIMARY KEY,
                total_solved INTEGER NOT NULL DEFAULT 0,
                total_needed_hint INTEGER NOT NULL DEFAULT 0,
                total_stuck INTEGER NOT NULL DEFAULT 0,
                easy_count INTEGER NOT NULL DEFAULT 0,
                medium_count INTEGER NOT NULL DEFAULT 0,
                hard_count INTEGER NOT NULL DEFAULT 0,
                last_active_at {ts_type}
            )
        """)

        for statement in _INDEXES:
            cursor.execute(statement)

    logging.info("Schema ready (backend=%s)", settings.db_backend)

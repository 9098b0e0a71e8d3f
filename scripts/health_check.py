import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import parse_review_time, settings
import database
from database.connection import read_cursor

REQUIRED_TABLES = ["problems", "tags", "problem_tags", "user_stats"]


def check(condition, ok_msg, fail_msg):
    if condition:
        print(f"OK: {ok_msg}")
        return True
    print(f"FAIL: {fail_msg}")
    return False


def table_exists(cursor, table_name):
    if database.is_postgres_backend():
        cursor.execute("SELECT to_regclass(?) IS NOT NULL", (table_name,))
        row = cursor.fetchone()
        return bool(row and row[0])
    cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table_name,))
    return cursor.fetchone() is not None


def main():
    all_ok = True

    all_ok &= check(bool(settings.bot_token), "BOT_TOKEN is set", "BOT_TOKEN missing (check .env)")
    review_time = parse_review_time(settings.review_time, default=(-1, -1))
    all_ok &= check(
        review_time != (-1, -1),
        f"REVIEW_TIME={settings.review_time}",
        f"REVIEW_TIME is not HH:MM: {settings.review_time!r}",
    )

    database.create_table()
    with read_cursor() as cur:
        for t in REQUIRED_TABLES:
            all_ok &= check(table_exists(cur, t), f"table {t} exists", f"table {t} missing")

        cur.execute("SELECT COUNT(*) FROM problems")
        problem_count = cur.fetchone()[0]
        cur.execute("SELECT COUNT(DISTINCT user_id) FROM problems")
        owner_count = cur.fetchone()[0]
    print(f"INFO: {problem_count} problems tracked for {owner_count} users")

    if all_ok:
        print("OK: health_check passed.")
        return 0
    print("FAIL: health_check finished with errors.")
    return 1

if __name__ == "__main__":
    raise SystemExit(main())

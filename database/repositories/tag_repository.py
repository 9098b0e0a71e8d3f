from database.connection import read_cursor
from database.models import normalize_tags


def _upsert_tag(cursor, name: str) -> int:
    cursor.execute(
        "INSERT INTO tags (name) VALUES (?) ON CONFLICT(name) DO NOTHING",
        (name,),
    )
    cursor.execute("SELECT id FROM tags WHERE name = ?", (name,))
    return int(cursor.fetchone()[0])


def attach_tags(cursor, problem_id: int, tags) -> list[str]:
    """Upserts every normalized tag and links it. Runs inside the caller's transaction."""
    names = normalize_tags(tags)
    for name in names:
        tag_id = _upsert_tag(cursor, name)
        cursor.execute(
            """
            INSERT INTO problem_tags (problem_id, tag_id)
            VALUES (?, ?)
            ON CONFLICT(problem_id, tag_id) DO NOTHING
            """,
            (problem_id, tag_id),
        )
    return names


def replace_tags(cursor, problem_id: int, tags) -> list[str]:
    cursor.execute("DELETE FROM problem_tags WHERE problem_id = ?", (problem_id,))
    return attach_tags(cursor, problem_id, tags)


def detach_all(cursor, problem_id: int):
    cursor.execute("DELETE FROM problem_tags WHERE problem_id = ?", (problem_id,))


def prune_orphan_tags(cursor) -> int:
    cursor.execute(
        """
        DELETE FROM tags
        WHERE NOT EXISTS (SELECT 1 FROM problem_tags pt WHERE pt.tag_id = tags.id)
        """
    )
    return int(getattr(cursor, "rowcount", 0) or 0)


def load_tags(cursor, problem_ids: list[int]) -> dict[int, list[str]]:
    """Tag names per problem id, sorted by name."""
    result: dict[int, list[str]] = {pid: [] for pid in problem_ids}
    if not problem_ids:
        return result
    placeholders = ", ".join("?" for _ in problem_ids)
    cursor.execute(
        f"""
        SELECT pt.problem_id, t.name
        FROM problem_tags pt
        JOIN tags t ON t.id = pt.tag_id
        WHERE pt.problem_id IN ({placeholders})
        ORDER BY pt.problem_id ASC, t.name ASC
        """,
        tuple(problem_ids),
    )
    for row in cursor.fetchall():
        result.setdefault(int(row[0]), []).append(str(row[1]))
    return result


def get_user_tag_counts(user_id: str) -> list[tuple[str, int]]:
    with read_cursor() as cursor:
        cursor.execute(
            """
            SELECT t.name, COUNT(*) AS cnt
            FROM tags t
            JOIN problem_tags pt ON pt.tag_id = t.id
            JOIN problems p ON p.id = pt.problem_id
            WHERE p.user_id = ?
            GROUP BY t.name
            ORDER BY cnt DESC, t.name ASC
            """,
            (user_id,),
        )
        return [(str(row[0]), int(row[1])) for row in cursor.fetchall()]

import datetime

from conftest import NOW
from core.texts import REMINDER_FOOTER
from database.models import TrackedItem
from database.repositories.problem_repository import get_problem, increment_review_count
from services.review_service import MAX_NAME_CHARS, TELEGRAM_MESSAGE_LIMIT, ReviewService

DAY = datetime.timedelta(days=1)


def _ids(items):
    return [item.id for item in items]


def test_due_items_apply_cutoff_to_solve_and_review_times(make_problem):
    fresh = make_problem(name="Fresh", solved_days_ago=0)
    never_reviewed = make_problem(name="Never reviewed", solved_days_ago=3)
    reviewed_recently = make_problem(name="Reviewed recently", solved_days_ago=10)
    reviewed_long_ago = make_problem(name="Reviewed long ago", solved_days_ago=10)
    on_boundary = make_problem(name="Boundary", solved_days_ago=1)
    increment_review_count(reviewed_recently.id, now=NOW - datetime.timedelta(hours=2))
    increment_review_count(reviewed_long_ago.id, now=NOW - 2 * DAY)

    due = ReviewService.due_items("42", DAY, NOW)

    assert fresh.id not in _ids(due)
    assert reviewed_recently.id not in _ids(due)
    assert _ids(due) == [reviewed_long_ago.id, never_reviewed.id, on_boundary.id]


def test_due_items_accept_lookback_in_seconds(make_problem):
    item = make_problem(solved_days_ago=2)
    assert _ids(ReviewService.due_items("42", 86400, NOW)) == [item.id]
    assert ReviewService.due_items("42", 3 * 86400, NOW) == []


def test_due_items_ties_break_by_id(make_problem):
    first = make_problem(name="First", solved_days_ago=5)
    second = make_problem(name="Second", solved_days_ago=5)
    third = make_problem(name="Third", solved_days_ago=5)

    assert _ids(ReviewService.due_items("42", DAY, NOW)) == [first.id, second.id, third.id]


def test_due_items_are_scoped_to_owner_and_read_only(make_problem):
    mine = make_problem(user_id="1", solved_days_ago=5)
    make_problem(user_id="2", solved_days_ago=5)

    assert _ids(ReviewService.due_items("1", DAY, NOW)) == [mine.id]
    assert _ids(ReviewService.due_items("1", DAY, NOW)) == [mine.id]
    assert get_problem(mine.id).review_count == 0
    assert ReviewService.due_items("nobody", DAY, NOW) == []


def test_due_again_once_review_falls_behind_cutoff(make_problem):
    item = make_problem(solved_days_ago=5)
    increment_review_count(item.id, now=NOW)

    assert ReviewService.due_items("42", DAY, NOW) == []
    assert _ids(ReviewService.due_items("42", DAY, NOW + DAY)) == [item.id]


def _item(idx, **overrides):
    fields = {
        "user_id": "42",
        "problem_name": f"Problem {idx}",
        "difficulty": "Medium",
        "category": "Graphs",
        "status": "Solved",
        "solved_at": datetime.datetime(2026, 2, idx, 9, 30),
        "id": idx,
    }
    fields.update(overrides)
    return TrackedItem(**fields)


def test_format_reminder_lists_every_item_with_dates_and_links():
    items = [_item(1, link="https://leetcode.com/problems/a?x=1&y=2"), _item(2)]

    text, shown = ReviewService.format_reminder("42", items)

    assert shown == items
    assert text.startswith('Hey <a href="tg://user?id=42">there</a>!')
    assert "- Problem 1 (Solved: 2026-02-01) - <a href=\"https://leetcode.com/problems/a?x=1&amp;y=2\">link</a>" in text
    assert "- Problem 2 (Solved: 2026-02-02)\n" in text
    assert text.endswith(REMINDER_FOOTER)


def test_format_reminder_escapes_names():
    text, _ = ReviewService.format_reminder("alice", [_item(1, problem_name="<script>")])
    assert "&lt;script&gt;" in text
    assert "<script>" not in text
    assert "Hey alice!" in text


def test_format_reminder_caps_items_and_reports_the_rest():
    items = [_item(i) for i in range(1, 6)]

    text, shown = ReviewService.format_reminder("42", items, max_items=2)

    assert shown == items[:2]
    assert "Problem 3" not in text
    assert "...and 3 more" in text


def test_format_reminder_without_cap_has_no_more_line():
    items = [_item(i) for i in range(1, 4)]
    text, shown = ReviewService.format_reminder("42", items, max_items=3)
    assert len(shown) == 3
    assert "more waiting" not in text


def test_format_reminder_stays_within_message_limit():
    items = [_item(i, problem_name="x" * 300, link="https://leetcode.com/problems/" + "y" * 100) for i in range(1, 21)]

    text, shown = ReviewService.format_reminder("42", items, max_items=20)

    assert len(text) <= TELEGRAM_MESSAGE_LIMIT
    assert 0 < len(shown) < 20
    assert shown == items[: len(shown)]
    assert f"...and {20 - len(shown)} more" in text
    assert "x" * MAX_NAME_CHARS not in text
    assert text.endswith(REMINDER_FOOTER)


def test_format_reminder_always_lists_first_item():
    item = _item(1, problem_name="<&>" * 2000, link="https://x.test/" + "z" * 5000)

    text, shown = ReviewService.format_reminder("42", [item])

    assert shown == [item]
    assert len(text) <= TELEGRAM_MESSAGE_LIMIT
    assert "link</a>" not in text

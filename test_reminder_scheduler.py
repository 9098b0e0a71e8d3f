import asyncio
import datetime
import logging

from conftest import NOW
from core.errors import DeliveryError, StoreTransactionError
from database.models import TrackedItem
from database.repositories.problem_repository import get_problem
from services.reminder_service import CycleState, ReminderScheduler, SqlReviewStore
from utils.retry import RetryPolicy

DAY = datetime.timedelta(days=1)


def _item(problem_id, owner="1"):
    return TrackedItem(
        user_id=owner,
        problem_name=f"Problem {problem_id}",
        difficulty="Easy",
        category="Arrays",
        status="Solved",
        solved_at=NOW - 3 * DAY,
        id=problem_id,
    )


class FakeStore:
    def __init__(self, items_by_owner):
        self.items_by_owner = items_by_owner
        self.increments = []
        self.fail_increment_ids = set()
        self.fail_due_owners = set()
        self.lookbacks = []

    def list_distinct_owners(self):
        return list(self.items_by_owner)

    def due_items(self, owner, lookback, now):
        self.lookbacks.append(lookback)
        if owner in self.fail_due_owners:
            raise StoreTransactionError("connection reset")
        return [item for item in self.items_by_owner[owner] if item.id not in self.increments]

    def increment_review_count(self, problem_id, now):
        if problem_id in self.fail_increment_ids:
            raise StoreTransactionError("database is locked")
        self.increments.append(problem_id)


class FakeNotifier:
    def __init__(self, failures=None):
        # recipient -> number of failed attempts before a send goes through
        self.failures = dict(failures or {})
        self.attempts = []
        self.delivered = []
        self.on_delivered = None

    async def send(self, recipient, text):
        await asyncio.sleep(0)
        self.attempts.append(recipient)
        if self.failures.get(recipient, 0) > 0:
            self.failures[recipient] -= 1
            raise DeliveryError(recipient, "Bad Gateway")
        self.delivered.append((recipient, text))
        if self.on_delivered:
            self.on_delivered(recipient)


def _scheduler(notifier, store=None, max_items=0, sleeps=None, lookback=DAY):
    async def fake_sleep(seconds):
        if sleeps is not None:
            sleeps.append(seconds)

    return ReminderScheduler(
        notifier,
        store=store,
        lookback=lookback,
        retry_policy=RetryPolicy(retries=3, delay=2.0),
        max_items=max_items,
        recipient_resolver=lambda owner: owner,
        clock=lambda: NOW,
        sleep=fake_sleep,
    )


def test_exhausted_retries_leave_problems_due():
    store = FakeStore({"1": [_item(10), _item(11)]})
    notifier = FakeNotifier({"1": 100})
    sleeps = []
    scheduler = _scheduler(notifier, store, sleeps=sleeps)

    report = asyncio.run(scheduler.run_cycle())

    assert notifier.attempts == ["1"] * 4
    assert sleeps == [2.0, 2.0, 2.0]
    assert store.increments == []
    assert report.undelivered == ["1"]
    assert report.notified == []
    assert [item.id for item in store.due_items("1", DAY, NOW)] == [10, 11]

    second = asyncio.run(scheduler.run_cycle())
    assert second.undelivered == ["1"]
    assert len(notifier.attempts) == 8


def test_success_on_last_retry_marks_each_problem_once():
    store = FakeStore({"1": [_item(10), _item(11)]})
    notifier = FakeNotifier({"1": 3})
    sleeps = []
    scheduler = _scheduler(notifier, store, sleeps=sleeps)

    report = asyncio.run(scheduler.run_cycle())

    assert len(notifier.attempts) == 4
    assert len(notifier.delivered) == 1
    assert sleeps == [2.0, 2.0, 2.0]
    assert store.increments == [10, 11]
    assert report.notified == ["1"]
    assert report.reviewed_problem_ids == [10, 11]


def test_failing_owner_does_not_block_the_next_one():
    store = FakeStore({"1": [_item(10)], "2": [_item(20, owner="2")]})
    notifier = FakeNotifier({"1": 100})
    scheduler = _scheduler(notifier, store)

    report = asyncio.run(scheduler.run_cycle())

    assert report.owners_seen == 2
    assert report.undelivered == ["1"]
    assert report.notified == ["2"]
    assert store.increments == [20]


def test_owner_without_due_problems_gets_no_message():
    store = FakeStore({"1": [], "2": [_item(20, owner="2")]})
    notifier = FakeNotifier()
    scheduler = _scheduler(notifier, store)

    report = asyncio.run(scheduler.run_cycle())

    assert report.skipped == ["1"]
    assert [recipient for recipient, _ in notifier.delivered] == ["2"]


def test_query_failure_is_recorded_and_cycle_continues():
    store = FakeStore({"1": [_item(10)], "2": [_item(20, owner="2")]})
    store.fail_due_owners.add("1")
    notifier = FakeNotifier()
    scheduler = _scheduler(notifier, store)

    report = asyncio.run(scheduler.run_cycle())

    assert report.query_failures == ["1"]
    assert report.notified == ["2"]
    assert store.increments == [20]


def test_increment_failure_does_not_stop_other_increments():
    store = FakeStore({"1": [_item(10), _item(11), _item(12)]})
    store.fail_increment_ids.add(11)
    scheduler = _scheduler(FakeNotifier(), store)

    report = asyncio.run(scheduler.run_cycle())

    assert store.increments == [10, 12]
    assert report.increment_failures == [11]
    assert report.reviewed_problem_ids == [10, 12]
    assert [item.id for item in store.due_items("1", DAY, NOW)] == [11]


def test_only_listed_problems_are_marked_reviewed():
    store = FakeStore({"1": [_item(i) for i in range(1, 6)]})
    notifier = FakeNotifier()
    scheduler = _scheduler(notifier, store, max_items=2)

    asyncio.run(scheduler.run_cycle())

    assert store.increments == [1, 2]
    assert "...and 3 more" in notifier.delivered[0][1]


def test_overlapping_cycle_is_refused():
    store = FakeStore({"1": [_item(10)]})
    notifier = FakeNotifier()
    scheduler = _scheduler(notifier, store)

    async def scenario():
        return await asyncio.gather(scheduler.run_cycle(), scheduler.run_cycle())

    first, second = asyncio.run(scenario())

    assert first is not None
    assert second is None
    assert store.increments == [10]
    assert scheduler.state is CycleState.IDLE


def test_stop_finishes_current_owner_then_ends_cycle():
    store = FakeStore({"1": [_item(10)], "2": [_item(20, owner="2")]})
    notifier = FakeNotifier()
    scheduler = _scheduler(notifier, store)
    notifier.on_delivered = lambda recipient: scheduler.request_stop()

    report = asyncio.run(scheduler.run_cycle())

    assert report.stopped_early is True
    assert report.notified == ["1"]
    assert store.increments == [10]
    assert scheduler.stop_requested
    assert asyncio.run(scheduler.run_cycle()) is None
    assert store.increments == [10]


def test_wait_idle_and_last_report():
    scheduler = _scheduler(FakeNotifier(), FakeStore({}))
    assert scheduler.last_report is None

    async def scenario():
        report = await scheduler.run_cycle()
        return report, await scheduler.wait_idle(timeout=1)

    report, idle = asyncio.run(scenario())

    assert idle is True
    assert scheduler.last_report is report
    assert report.owners_seen == 0
    assert report.finished_at == NOW


def test_end_to_end_with_database(make_problem):
    old = make_problem(user_id="1", name="Old", solved_days_ago=5)
    recent = make_problem(user_id="1", name="Recent", solved_days_ago=0)
    other = make_problem(user_id="2", name="Other", solved_days_ago=2)
    notifier = FakeNotifier()
    scheduler = _scheduler(notifier, SqlReviewStore())

    report = asyncio.run(scheduler.run_cycle())

    assert sorted(report.notified) == ["1", "2"]
    assert get_problem(old.id).review_count == 1
    assert get_problem(old.id).last_reviewed_at == NOW
    assert get_problem(other.id).review_count == 1
    assert get_problem(recent.id).review_count == 0
    texts = dict(notifier.delivered)
    assert "Old" in texts["1"]
    assert "Recent" not in texts["1"]

    again = asyncio.run(scheduler.run_cycle())
    assert again.notified == []
    assert sorted(again.skipped) == ["1", "2"]


def test_end_to_end_undelivered_keeps_counts(make_problem):
    item = make_problem(user_id="1", solved_days_ago=5)
    scheduler = _scheduler(FakeNotifier({"1": 100}), SqlReviewStore())

    report = asyncio.run(scheduler.run_cycle())

    assert report.undelivered == ["1"]
    stored = get_problem(item.id)
    assert stored.review_count == 0
    assert stored.last_reviewed_at is None


def test_zero_lookback_is_not_replaced_by_default():
    store = FakeStore({"1": [_item(10)]})
    scheduler = _scheduler(FakeNotifier(), store, lookback=datetime.timedelta(0))

    asyncio.run(scheduler.run_cycle())

    assert scheduler.lookback == datetime.timedelta(0)
    assert store.lookbacks == [datetime.timedelta(0)]


def test_zero_lookback_makes_todays_solves_due(make_problem):
    item = make_problem(user_id="1", solved_days_ago=0)
    scheduler = _scheduler(FakeNotifier(), SqlReviewStore(), lookback=datetime.timedelta(0))

    report = asyncio.run(scheduler.run_cycle())

    assert report.notified == ["1"]
    assert get_problem(item.id).review_count == 1


def test_undelivered_reminder_is_logged_as_error(caplog):
    store = FakeStore({"1": [_item(10)]})
    scheduler = _scheduler(FakeNotifier({"1": 100}), store)

    with caplog.at_level(logging.INFO):
        asyncio.run(scheduler.run_cycle())

    events = [r for r in caplog.records if "review_reminder_undelivered" in r.getMessage()]
    assert len(events) == 1
    assert events[0].levelno == logging.ERROR
    assert '"attempts": 4' in events[0].getMessage()

"""
Daily review reminder cycle.

ReminderScheduler owns the cycle state (Idle / Running-Cycle) and the stop
signal. One cycle walks every owner sequentially: due query, one message,
bounded retries, then one review-count increment per listed problem. A
problem is never marked reviewed unless its message was delivered at least
once; a failed increment only means the problem shows up again next time.
"""

import asyncio
import datetime
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Protocol

from core.config import settings
from core.errors import DeliveryError, NotFoundError, StoreTransactionError
from database.models import TrackedItem, utc_now
from database.repositories.problem_repository import increment_review_count, list_distinct_owners
from services.notifier import Notifier, resolve_recipient
from services.review_service import ReviewService
from utils.ops_logging import log_structured
from utils.retry import RetryPolicy


class ReviewStore(Protocol):
    def list_distinct_owners(self) -> list[str]: ...

    def due_items(self, owner: str, lookback: datetime.timedelta, now: datetime.datetime) -> list[TrackedItem]: ...

    def increment_review_count(self, problem_id: int, now: datetime.datetime) -> None: ...


class SqlReviewStore:
    """ReviewStore backed by the database repositories."""

    def list_distinct_owners(self) -> list[str]:
        return list_distinct_owners()

    def due_items(self, owner: str, lookback: datetime.timedelta, now: datetime.datetime) -> list[TrackedItem]:
        return ReviewService.due_items(owner, lookback, now)

    def increment_review_count(self, problem_id: int, now: datetime.datetime) -> None:
        increment_review_count(problem_id, now)


class CycleState(str, Enum):
    IDLE = "idle"
    RUNNING = "running_cycle"


@dataclass
class CycleReport:
    started_at: datetime.datetime
    finished_at: datetime.datetime | None = None
    owners_seen: int = 0
    notified: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    undelivered: list[str] = field(default_factory=list)
    query_failures: list[str] = field(default_factory=list)
    reviewed_problem_ids: list[int] = field(default_factory=list)
    increment_failures: list[int] = field(default_factory=list)
    stopped_early: bool = False


class ReminderScheduler:
    def __init__(
        self,
        notifier: Notifier,
        store: ReviewStore | None = None,
        lookback: datetime.timedelta | None = None,
        retry_policy: RetryPolicy | None = None,
        max_items: int | None = None,
        recipient_resolver: Callable[[str], int | str] = resolve_recipient,
        clock: Callable[[], datetime.datetime] = utc_now,
        sleep=asyncio.sleep,
    ):
        self.notifier = notifier
        self.store = store or SqlReviewStore()
        if lookback is None:
            lookback = datetime.timedelta(seconds=settings.review_lookback_seconds)
        self.lookback = lookback
        self.retry_policy = retry_policy or RetryPolicy(
            retries=settings.review_retry_attempts,
            delay=settings.review_retry_delay_seconds,
        )
        self.max_items = settings.review_max_items if max_items is None else max_items
        self.recipient_resolver = recipient_resolver
        self.clock = clock
        self._sleep = sleep
        self._state = CycleState.IDLE
        self._stop = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self.last_report: CycleReport | None = None

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def request_stop(self):
        """Lets the current owner finish, then ends the cycle. No new cycles start."""
        self._stop.set()

    async def wait_idle(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def run_cycle(self) -> CycleReport | None:
        """Scheduler job entry point. Returns None when the cycle was refused."""
        if self._stop.is_set():
            logging.info("Review cycle skipped: scheduler is stopping.")
            return None
        if self._state is CycleState.RUNNING:
            logging.warning("Review cycle skipped: previous cycle still running.")
            return None

        self._state = CycleState.RUNNING
        self._idle.clear()
        report = CycleReport(started_at=self.clock())
        try:
            try:
                owners = self.store.list_distinct_owners()
            except StoreTransactionError as exc:
                logging.error("Failed to list users for review reminders: %s", exc)
                owners = []
            log_structured("review_cycle_started", owners=len(owners))
            for owner in owners:
                if self._stop.is_set():
                    report.stopped_early = True
                    logging.info("Stop requested, ending review cycle before owner=%s", owner)
                    break
                report.owners_seen += 1
                await self._process_owner(owner, report)
        finally:
            report.finished_at = self.clock()
            self.last_report = report
            self._state = CycleState.IDLE
            self._idle.set()

        log_structured(
            "review_cycle_finished",
            owners=report.owners_seen,
            notified=len(report.notified),
            skipped=len(report.skipped),
            undelivered=len(report.undelivered),
            query_failures=len(report.query_failures),
            reviewed=len(report.reviewed_problem_ids),
            increment_failures=len(report.increment_failures),
            stopped_early=report.stopped_early,
        )
        return report

    async def _process_owner(self, owner: str, report: CycleReport):
        try:
            items = self.store.due_items(owner, self.lookback, self.clock())
        except StoreTransactionError as exc:
            logging.error("Failed to list problems for review user=%s: %s", owner, exc)
            report.query_failures.append(owner)
            return

        if not items:
            report.skipped.append(owner)
            return

        text, shown = ReviewService.format_reminder(owner, items, self.max_items)
        recipient = self.recipient_resolver(owner)

        try:
            attempt = await self.retry_policy.run(
                lambda: self.notifier.send(recipient, text),
                sleep=self._sleep,
                label=f"review reminder user={owner}",
            )
        except DeliveryError as exc:
            # Problems stay due and go out with tomorrow's cycle.
            logging.error("Giving up on review reminder user=%s after %d attempts: %s", owner, exc.attempts, exc)
            report.undelivered.append(owner)
            log_structured("review_reminder_undelivered", level=logging.ERROR, user_id=owner, attempts=exc.attempts)
            return

        report.notified.append(owner)
        log_structured(
            "review_reminder_sent",
            user_id=owner,
            recipient=recipient,
            attempt=attempt,
            listed=len(shown),
            due=len(items),
        )
        for item in shown:
            try:
                self.store.increment_review_count(item.id, self.clock())
                report.reviewed_problem_ids.append(item.id)
            except (StoreTransactionError, NotFoundError) as exc:
                logging.error("Failed to update review count problem_id=%s: %s", item.id, exc)
                report.increment_failures.append(item.id)

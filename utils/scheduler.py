from apscheduler.schedulers.asyncio import AsyncIOScheduler
import logging

from core.config import parse_review_time, settings
from database.connection import get_connection, is_postgres_backend
from services.reminder_service import ReminderScheduler

SCHEDULER_JOB_ID_DAILY_REVIEW = "send_daily_review_reminders"
# A run that starts later than this after its slot is dropped, not caught up.
REVIEW_MISFIRE_GRACE_SECONDS = 60
_scheduler: AsyncIOScheduler | None = None
_reminders: ReminderScheduler | None = None
_scheduler_leader_conn = None
SCHEDULER_ADVISORY_LOCK_KEY = 47120917


def _acquire_scheduler_leader_lock() -> bool:
    global _scheduler_leader_conn
    if not is_postgres_backend():
        return True
    try:
        conn = get_connection()
        cur = conn.cursor()
        cur.execute("SELECT pg_try_advisory_lock(?)", (SCHEDULER_ADVISORY_LOCK_KEY,))
        row = cur.fetchone()
        conn.commit()
        is_leader = bool(row and row[0])
        if is_leader:
            _scheduler_leader_conn = conn
            return True
        conn.close()
        return False
    except Exception as exc:
        logging.exception("Scheduler leader lock check failed: %s", exc)
        return False


def _release_scheduler_leader_lock():
    global _scheduler_leader_conn
    if _scheduler_leader_conn is None:
        return
    try:
        cur = _scheduler_leader_conn.cursor()
        cur.execute("SELECT pg_advisory_unlock(?)", (SCHEDULER_ADVISORY_LOCK_KEY,))
        _scheduler_leader_conn.commit()
    except Exception as exc:
        logging.warning("Failed to release scheduler leader lock: %s", exc)
    try:
        _scheduler_leader_conn.close()
    except Exception as exc:
        logging.warning("Failed to close scheduler leader connection: %s", exc)
    _scheduler_leader_conn = None


def start_scheduler(reminders: ReminderScheduler) -> bool:
    global _scheduler, _reminders
    _reminders = reminders
    if not _acquire_scheduler_leader_lock():
        logging.warning("Scheduler not started on this replica (leader lock not acquired).")
        _scheduler = None
        return False
    hour, minute = parse_review_time(settings.review_time)
    trigger_kwargs = {"hour": hour, "minute": minute}
    if settings.review_timezone:
        trigger_kwargs["timezone"] = settings.review_timezone
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        reminders.run_cycle,
        "cron",
        id=SCHEDULER_JOB_ID_DAILY_REVIEW,
        replace_existing=True,
        coalesce=True,
        max_instances=1,
        misfire_grace_time=REVIEW_MISFIRE_GRACE_SECONDS,
        **trigger_kwargs,
    )
    scheduler.start()
    _scheduler = scheduler
    logging.info(
        "Scheduler started. daily_review=%02d:%02d tz=%s lookback=%ss retries=%d delay=%ss",
        hour,
        minute,
        settings.review_timezone or "local",
        int(reminders.lookback.total_seconds()),
        reminders.retry_policy.retries,
        reminders.retry_policy.delay,
    )
    return True


def stop_scheduler():
    """Stops future triggers. Callers wait on ReminderScheduler.wait_idle() for the running cycle."""
    global _scheduler
    if _reminders is not None:
        _reminders.request_stop()
    if _scheduler is not None:
        try:
            _scheduler.shutdown(wait=False)
        except Exception as exc:
            logging.warning("Scheduler shutdown failed: %s", exc)
        _scheduler = None
    _release_scheduler_leader_lock()


def get_reminder_scheduler() -> ReminderScheduler | None:
    return _reminders


def get_scheduler_health():
    """
    Returns best-effort scheduler status for ops checks.
    """
    info = {
        "started": False,
        "next_run_time": None,
        "cycle_state": _reminders.state.value if _reminders else None,
        "last_cycle": None,
        "leader": (not is_postgres_backend()) or (_scheduler_leader_conn is not None),
    }
    if _reminders is not None and _reminders.last_report is not None:
        report = _reminders.last_report
        info["last_cycle"] = {
            "started_at": report.started_at.isoformat(sep=" "),
            "owners": report.owners_seen,
            "notified": len(report.notified),
            "undelivered": len(report.undelivered),
            "increment_failures": len(report.increment_failures),
        }
    if _scheduler is None:
        return info
    info["started"] = bool(_scheduler.running)
    job = _scheduler.get_job(SCHEDULER_JOB_ID_DAILY_REVIEW)
    if job and job.next_run_time:
        info["next_run_time"] = job.next_run_time.isoformat()
    return info

"""
scheduler.py — SubTrack reminder scheduler

Runs a reminder pass immediately on start, then every
REMINDER_INTERVAL_MINUTES (hourly by default) on a background thread.
The API starts one of these at boot; it can also run on its own.

Usage:
    python scheduler.py           # pass now, then every interval until Ctrl-C
    python scheduler.py --once    # single pass, then exit
"""

import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Optional

import schedule

log = logging.getLogger(__name__)


class ReminderScheduler:
    def __init__(self, evaluator, interval_minutes: int = 60, poll_seconds: float = 30):
        self.evaluator = evaluator
        self.interval_minutes = interval_minutes
        self.poll_seconds = poll_seconds
        self._scheduler = schedule.Scheduler()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_run: Optional[str] = None
        self.last_result: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_job(self) -> int:
        """One reminder pass; errors are logged, the next pass retries."""
        self.last_run = datetime.now(timezone.utc).isoformat()
        try:
            created = self.evaluator.run_pass()
        except Exception as exc:
            self.last_result = f"failed: {exc}"
            log.warning(f"Reminder pass failed: {exc}")
            return 0
        self.last_result = f"{len(created)} new notification(s)"
        return len(created)

    def trigger(self) -> int:
        """Run a pass now, outside the schedule (e.g. after data changed)."""
        return self.run_job()

    def _loop(self):
        self.run_job()  # fire immediately on startup
        while not self._stop.wait(self.poll_seconds):
            self._scheduler.run_pending()

    def start(self):
        if self.is_running:
            return
        self._stop.clear()
        self._scheduler.every(self.interval_minutes).minutes.do(self.run_job)
        self._thread = threading.Thread(target=self._loop, name="reminder-scheduler", daemon=True)
        self._thread.start()
        log.info(f"Reminder scheduler started — every {self.interval_minutes} min.")

    def stop(self, timeout: float = 5):
        self._stop.set()
        self._scheduler.clear()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        log.info("Reminder scheduler stopped.")

    def status(self) -> dict:
        next_run = self._scheduler.next_run if self._scheduler.jobs else None
        return {
            "running": self.is_running,
            "interval_minutes": self.interval_minutes,
            "next_run": next_run.isoformat() if next_run else None,
            "last_run": self.last_run or "Never",
            "last_result": self.last_result,
            "pass_in_progress": self.evaluator.running,
        }


def build_scheduler(settings=None) -> ReminderScheduler:
    from config import load_settings
    from reminders import ReminderEvaluator
    from store import EntityStore, UserService, build_mail_sender

    settings = settings or load_settings()
    evaluator = ReminderEvaluator(
        EntityStore(settings.data_dir),
        UserService(settings.profile_file),
        build_mail_sender(settings),
    )
    return ReminderScheduler(evaluator, interval_minutes=settings.reminder_interval_minutes)


# ── Entry point ────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    runner = build_scheduler()

    if "--once" in sys.argv[1:]:
        count = runner.run_job()
        log.info(f"Reminder check done — {count} new notification(s).")
    else:
        runner.start()
        try:
            while runner.is_running:
                runner._thread.join(1)
        except KeyboardInterrupt:
            runner.stop()

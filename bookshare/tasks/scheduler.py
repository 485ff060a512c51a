# bookshare/tasks/scheduler.py
from __future__ import annotations

import atexit
import os

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from bookshare.tasks.sweeps import (
    run_due_soon_job,
    run_notification_cleanup_job,
    run_overdue_job,
)


def _wrap(app, job_id, func):
    def _job_wrapper():
        try:
            func(app)
        except Exception as ex:
            app.logger.exception(f"[scheduler] {job_id} error: {ex}")
    return _job_wrapper


def start_scheduler(app):
    """
    Starts the sweep jobs on their cron schedules.
    - Skipped when SCHEDULER_ENABLED is off (tests, one-off CLI runs).
    - Skipped in the debug reloader's watcher process so jobs do not run twice.
    - Each job runs alone (max_instances=1); missed runs collapse into one.
    """
    if not app.config.get("SCHEDULER_ENABLED", True):
        app.logger.info("[scheduler] Disabled by config.")
        return None

    # Werkzeug reloader: only the process with WERKZEUG_RUN_MAIN=true serves requests
    if app.debug and os.environ.get("WERKZEUG_RUN_MAIN") != "true":
        app.logger.info("[scheduler] Debug reloader secondary process: scheduler skipped.")
        return None

    tz = app.config.get("SCHEDULER_TIMEZONE", "UTC")
    scheduler = BackgroundScheduler(timezone=tz)

    jobs = [
        ("overdue_sweep", run_overdue_job,
         CronTrigger(hour=app.config.get("OVERDUE_SWEEP_HOUR", 9), minute=0, timezone=tz)),
        ("due_soon_sweep", run_due_soon_job,
         CronTrigger(hour=app.config.get("DUE_SOON_SWEEP_HOUR", 10), minute=0, timezone=tz)),
        ("notification_cleanup", run_notification_cleanup_job,
         CronTrigger(day_of_week="sun", hour=app.config.get("CLEANUP_SWEEP_HOUR", 2), minute=0, timezone=tz)),
    ]
    for job_id, func, trigger in jobs:
        scheduler.add_job(
            func=_wrap(app, job_id, func),
            trigger=trigger,
            id=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )

    scheduler.start()
    app.logger.info(f"[scheduler] Sweep jobs started ({', '.join(j[0] for j in jobs)}).")

    app.extensions["apscheduler"] = scheduler

    def _shutdown():
        if scheduler.running:
            scheduler.shutdown(wait=False)

    atexit.register(_shutdown)
    return scheduler

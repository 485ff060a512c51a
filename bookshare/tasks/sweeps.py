# bookshare/tasks/sweeps.py


def _sweeps(app):
    return app.extensions["sweep_service"]


def run_overdue_job(app):
    """Daily: one OVERDUE notification per loan the first time it passes its due date."""
    with app.app_context():
        return _sweeps(app).run_overdue()


def run_due_soon_job(app):
    """Daily: one DUE_SOON reminder per loan due DUE_SOON_DAYS from today."""
    with app.app_context():
        return _sweeps(app).run_due_soon()


def run_notification_cleanup_job(app):
    """Weekly: drops notifications older than the retention window."""
    with app.app_context():
        return _sweeps(app).run_notification_cleanup()


JOBS = {
    "overdue": run_overdue_job,
    "due-soon": run_due_soon_job,
    "notification-cleanup": run_notification_cleanup_job,
}

from dataclasses import dataclass
from datetime import datetime, time, timedelta

from flask import current_app

from bookshare.models.enums import NotificationType, TransactionStatus
from bookshare.models.transaction import Transaction
from bookshare.services.notification_service import TransitionEvent


@dataclass
class SweepResult:
    job: str
    scanned: int = 0
    notified: int = 0
    skipped: int = 0
    failed: int = 0
    deleted: int = 0

    def as_dict(self) -> dict:
        return {
            "job": self.job,
            "scanned": self.scanned,
            "notified": self.notified,
            "skipped": self.skipped,
            "failed": self.failed,
            "deleted": self.deleted,
        }


class SweepService:
    """
    Periodic scans over loans and notifications.

    A loan is marked done only once its notification is on record, with a
    conditional write on the sweep marker. If recording fails the marker stays
    empty and the next run retries; the notification key keeps that from
    doubling up. One bad record is logged and the batch goes on.
    """

    def __init__(self, repo, notifications, dispatcher, clock, due_soon_days: int = 2, retention_days: int = 30):
        self.repo = repo
        self.notifications = notifications
        self.dispatcher = dispatcher
        self.clock = clock
        self.due_soon_days = due_soon_days
        self.retention_days = retention_days

    def run_overdue(self) -> SweepResult:
        now = self.clock.now()
        rows = self.repo.find_overdue(now)
        result = self._notify_each(
            "overdue", rows, NotificationType.OVERDUE,
            marker=Transaction.last_overdue_notified_at, now=now,
        )
        current_app.logger.info(
            f"[overdue_sweep] scanned={result.scanned} notified={result.notified} "
            f"skipped={result.skipped} failed={result.failed}"
        )
        return result

    def run_due_soon(self) -> SweepResult:
        now = self.clock.now()
        day_start = datetime.combine((now + timedelta(days=self.due_soon_days)).date(), time.min)
        rows = self.repo.find_due_between(day_start, day_start + timedelta(days=1))
        result = self._notify_each(
            "due_soon", rows, NotificationType.DUE_SOON,
            marker=Transaction.due_soon_notified_at, now=now,
        )
        current_app.logger.info(
            f"[due_soon_sweep] day={day_start:%Y-%m-%d} scanned={result.scanned} "
            f"notified={result.notified} skipped={result.skipped} failed={result.failed}"
        )
        return result

    def run_notification_cleanup(self) -> SweepResult:
        cutoff = self.clock.now() - timedelta(days=self.retention_days)
        result = SweepResult("notification_cleanup")
        result.deleted = self.notifications.delete_older_than(cutoff)
        current_app.logger.info(f"[cleanup_sweep] deleted={result.deleted} cutoff={cutoff}")
        return result

    def _notify_each(self, job, rows, notif_type, marker, now) -> SweepResult:
        result = SweepResult(job, scanned=len(rows))
        for txn_id in [t.id for t in rows]:
            try:
                txn = self.repo.get(txn_id)
                if txn is None or txn.status != TransactionStatus.ACTIVE or getattr(txn, marker.key) is not None:
                    # returned or already handled since the scan
                    result.skipped += 1
                    continue

                self.dispatcher.notify(TransitionEvent(notif_type, txn))
                if not self.notifications.already_sent(txn_id, notif_type.value, txn.borrower_id):
                    # left unmarked so the next run tries again
                    result.failed += 1
                    current_app.logger.warning(f"[{job}_sweep] {txn_id}: no notification recorded, will retry")
                    continue

                if self.repo.update_if_status(txn_id, TransactionStatus.ACTIVE, {marker.key: now}, marker.is_(None)):
                    self.repo.commit()
                else:
                    self.repo.rollback()
                result.notified += 1
            except Exception as e:
                self.repo.rollback()
                result.failed += 1
                current_app.logger.exception(f"[{job}_sweep] {txn_id} failed: {e}")
        return result

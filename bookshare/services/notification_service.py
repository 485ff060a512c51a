from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError

from bookshare.errors import DeliveryFailure, Forbidden, NotFound
from bookshare.models.delivery_log import DeliveryLog
from bookshare.models.enums import DeliveryChannel, NotificationType
from bookshare.models.notification import Notification
from bookshare.services.mail_service import MailService


@dataclass(frozen=True)
class TransitionEvent:
    type: NotificationType
    transaction: object


# push/e-mail for these types follow the matching user preference
_PREFERENCE_FOR_TYPE = {
    NotificationType.BORROW_REQUEST: "borrow_requests",
    NotificationType.DUE_SOON: "due_date_reminders",
    NotificationType.OVERDUE: "due_date_reminders",
}


class NotificationService:
    """
    Turns lifecycle events into in-app notifications plus push/e-mail.

    ``notify`` is fire-and-forget: it runs after the transition has been
    committed and never raises. A (transaction, type, recipient) triple is
    recorded at most once, so retries and repeated sweeps are harmless.
    """

    def __init__(self, repo, users, push, clock, mailer=MailService):
        self.repo = repo
        self.users = users
        self.push = push
        self.clock = clock
        self.mailer = mailer

    def notify(self, event: TransitionEvent) -> list[Notification]:
        created = []
        try:
            messages = self._render(event)
        except Exception as e:
            current_app.logger.exception(f"[dispatcher] Could not render {event.type}: {e}")
            return created

        for recipient_id, title, message in messages:
            try:
                n = self._deliver(event, recipient_id, title, message)
                if n is not None:
                    created.append(n)
            except Exception as e:
                self.repo.rollback()
                current_app.logger.exception(
                    f"[dispatcher] {event.type.value} for user {recipient_id} dropped: {e}"
                )
        return created

    def _render(self, event: TransitionEvent):
        t = event.transaction
        title = t.book_title or "the book"
        kind = event.type

        if kind == NotificationType.BORROW_REQUEST:
            return [(t.owner_id, "New Book Request", f"{t.borrower_name} wants to borrow {title}")]
        if kind == NotificationType.REQUEST_APPROVED:
            return [(t.borrower_id, "Request Approved!",
                     f"Your request for {title} has been approved. You can now collect the book.")]
        if kind == NotificationType.REQUEST_REJECTED:
            message = f"Your request for {title} has been declined by the owner."
            if t.rejection_reason:
                message += f" Reason: {t.rejection_reason}"
            return [(t.borrower_id, "Request Declined", message)]
        if kind == NotificationType.DUE_SOON:
            return [(t.borrower_id, "Return Reminder",
                     f"Don't forget to return {title} to {t.owner_name} by {t.due_date:%Y-%m-%d}.")]
        if kind == NotificationType.OVERDUE:
            return [(t.borrower_id, "Book Overdue",
                     f"{title} is overdue. Please return it to {t.owner_name} immediately.")]
        if kind == NotificationType.BOOK_RETURNED:
            return [
                (t.borrower_id, "Book Returned", f"Thank you for returning {title}!"),
                (t.owner_id, "Book Returned", f"{t.borrower_name} returned {title}."),
            ]
        raise ValueError(f"No transaction notification for {kind}")

    def _deliver(self, event, recipient_id, title, message):
        t = event.transaction
        if self.repo.already_sent(t.id, event.type.value, recipient_id):
            current_app.logger.info(f"[dispatcher] {event.type.value} already sent for {t.id} to {recipient_id}")
            return None

        user = self.users.get_by_id(recipient_id)
        if user is None:
            current_app.logger.warning(f"[dispatcher] User not found: {recipient_id}")
            return None

        notification = Notification(
            user_id=recipient_id,
            type=event.type.value,
            title=title,
            message=message,
            is_read=False,
            related_id=t.id,
            group_id=t.group_id,
            created_at=self.clock.now(),
        )
        try:
            self.repo.create(notification)
        except IntegrityError:
            # a concurrent dispatch won the idempotency key
            self.repo.rollback()
            current_app.logger.info(f"[dispatcher] Duplicate {event.type.value} for {t.id} ignored")
            return None

        pref = _PREFERENCE_FOR_TYPE.get(event.type)
        if pref and not getattr(user, pref, True):
            return notification

        self._push(user, notification, event)
        self._email(user, notification)
        return notification

    def _push(self, user, notification, event):
        if not user.push_enabled or not user.device_token:
            return
        target = "requests" if event.type == NotificationType.BORROW_REQUEST else "myLibrary"
        data = {
            "transactionId": notification.related_id,
            "type": notification.type,
            "navigationTarget": target,
        }
        try:
            sent = self.push.send(user.device_token, notification.title, notification.message, data)
        except DeliveryFailure as e:
            current_app.logger.warning(f"[dispatcher] Push to {user.id} failed: {e}")
            self._log(notification, user, DeliveryChannel.PUSH, user.device_token, False, str(e))
            return
        if sent:
            self._log(notification, user, DeliveryChannel.PUSH, user.device_token, True)

    def _email(self, user, notification):
        if not user.email_enabled or not user.email:
            return
        ok, err = self.mailer.send_email(user.email, notification.title, notification.message)
        self._log(notification, user, DeliveryChannel.EMAIL, user.email, ok, err)

    def _log(self, notification, user, channel, target, success, error=None):
        self.repo.log_delivery(DeliveryLog(
            notification_id=notification.id,
            user_id=user.id,
            channel=channel.value,
            target=target,
            success=bool(success),
            error=error[:500] if error else None,
            created_at=self.clock.now(),
        ))

    # read side used by the notification endpoints

    def list_for_user(self, user_id, unread_only=False, page=1, limit=20):
        return self.repo.list_for_user(user_id, unread_only=unread_only, page=page, limit=limit)

    def mark_read(self, notification_id, user_id):
        n = self.repo.get(notification_id)
        if n is None:
            raise NotFound("Notification not found")
        if n.user_id != user_id:
            raise Forbidden("This notification belongs to another user")
        return self.repo.mark_read(n)

from types import SimpleNamespace

import pytest

from bookshare.errors import Forbidden, NotFound
from bookshare.extensions import db
from bookshare.models.delivery_log import DeliveryLog
from bookshare.models.enums import NotificationType, TransactionStatus
from bookshare.models.notification import Notification
from bookshare.services.notification_service import TransitionEvent


def records(notif_type=None, user_id=None):
    query = Notification.query
    if notif_type is not None:
        query = query.filter_by(type=notif_type.value)
    if user_id is not None:
        query = query.filter_by(user_id=user_id)
    return query.all()


# -----------------------------
# Recipients
# -----------------------------
def test_request_notifies_owner(pending, push):
    [n] = records(NotificationType.BORROW_REQUEST)

    assert n.user_id == "u1"
    assert n.related_id == pending.id
    assert n.group_id == "g1"
    assert n.title == "New Book Request"
    assert "Sam Borrower" in n.message and "Clean Code" in n.message
    assert n.is_read is False

    assert push.sent[0]["token"] == "tok-u1"


def test_approval_notifies_borrower(approved):
    [n] = records(NotificationType.REQUEST_APPROVED)
    assert n.user_id == "u2"
    assert n.related_id == approved.id


def test_rejection_message_carries_reason(service, pending):
    service.reject(pending.id, "u1", "Already promised to someone")

    [n] = records(NotificationType.REQUEST_REJECTED)
    assert n.user_id == "u2"
    assert n.message.endswith("Reason: Already promised to someone")


def test_return_notifies_both_parties(returned):
    rows = records(NotificationType.BOOK_RETURNED)
    assert sorted(n.user_id for n in rows) == ["u1", "u2"]
    assert all(n.related_id == returned.id for n in rows)


def test_cancel_sends_nothing(service, approved):
    before = Notification.query.count()
    service.cancel(approved.id, "u1")
    assert Notification.query.count() == before


# -----------------------------
# Idempotency
# -----------------------------
def test_same_event_is_recorded_once(dispatcher, approved, push):
    sent_before = len(push.sent)

    assert dispatcher.notify(TransitionEvent(NotificationType.REQUEST_APPROVED, approved)) == []
    assert dispatcher.notify(TransitionEvent(NotificationType.REQUEST_APPROVED, approved)) == []

    assert len(records(NotificationType.REQUEST_APPROVED)) == 1
    assert len(push.sent) == sent_before


def test_unique_key_stops_a_racing_duplicate(dispatcher, approved, monkeypatch):
    # both dispatchers passed the lookup; the constraint decides
    monkeypatch.setattr(dispatcher.repo, "already_sent", lambda *args: False)

    assert dispatcher.notify(TransitionEvent(NotificationType.REQUEST_APPROVED, approved)) == []
    assert len(records(NotificationType.REQUEST_APPROVED)) == 1


# -----------------------------
# Delivery channels
# -----------------------------
def test_push_payload_points_at_the_right_screen(approved, push):
    request_push, approved_push = push.sent

    assert request_push["data"] == {
        "transactionId": approved.id,
        "type": "BORROW_REQUEST",
        "navigationTarget": "requests",
    }
    assert approved_push["token"] == "tok-u2"
    assert approved_push["title"] == "Request Approved!"
    assert approved_push["data"]["navigationTarget"] == "myLibrary"


def test_each_delivery_is_logged(pending):
    logs = DeliveryLog.query.filter_by(user_id="u1").all()

    assert {(log.channel, log.success) for log in logs} == {("push", True), ("email", True)}
    assert {log.target for log in logs} == {"tok-u1", "alex@example.com"}


def test_push_failure_keeps_transition_and_in_app_record(service, pending, push):
    push.fail_for.add("tok-u2")

    txn = service.approve(pending.id, "u1")

    assert txn.status == TransactionStatus.APPROVED
    [n] = records(NotificationType.REQUEST_APPROVED)
    [log] = DeliveryLog.query.filter_by(notification_id=n.id, channel="push").all()
    assert log.success is False
    assert "tok-u2" in log.error


def test_crash_in_delivery_is_swallowed(service, active, push, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("gateway client blew up")

    monkeypatch.setattr(push, "send", boom)

    txn = service.confirm_return(active.id, "u2", active.return_otp)

    assert txn.status == TransactionStatus.RETURNED
    # the second recipient is still handled after the first one failed
    assert sorted(n.user_id for n in records(NotificationType.BOOK_RETURNED)) == ["u1", "u2"]


def test_disabled_preference_keeps_only_in_app_record(service, users, book, push):
    users["u1"].borrow_requests = False
    db.session.commit()

    txn = service.create_request("b1", "u2", "u1", "g1", "1_WEEK")

    [n] = records(NotificationType.BORROW_REQUEST)
    assert n.related_id == txn.id
    assert push.sent == []
    assert DeliveryLog.query.filter_by(notification_id=n.id).count() == 0


def test_push_switch_off_still_sends_email(service, users, book, push):
    users["u1"].push_enabled = False
    db.session.commit()

    service.create_request("b1", "u2", "u1", "g1", "1_WEEK")

    assert push.sent == []
    assert [log.channel for log in DeliveryLog.query.filter_by(user_id="u1")] == ["email"]


def test_missing_recipient_is_skipped(dispatcher, users):
    ghost_loan = SimpleNamespace(
        id="t-ghost", book_title="Dune", borrower_id="nobody", owner_id="u1",
        borrower_name="Nobody", owner_name="Alex Owner", group_id=None, rejection_reason=None,
    )

    assert dispatcher.notify(TransitionEvent(NotificationType.REQUEST_APPROVED, ghost_loan)) == []
    assert Notification.query.count() == 0


def test_event_without_a_message_is_ignored(dispatcher, pending):
    before = Notification.query.count()
    assert dispatcher.notify(TransitionEvent(NotificationType.NEW_BOOK_IN_GROUP, pending)) == []
    assert Notification.query.count() == before


# -----------------------------
# Read side
# -----------------------------
def test_mark_read_only_by_recipient(dispatcher, pending):
    [n] = records(NotificationType.BORROW_REQUEST)

    with pytest.raises(Forbidden):
        dispatcher.mark_read(n.id, "u2")
    with pytest.raises(NotFound):
        dispatcher.mark_read("missing", "u1")

    assert dispatcher.mark_read(n.id, "u1").is_read is True


def test_list_for_user_newest_first_and_unread_filter(dispatcher, service, pending, clock):
    clock.advance(minutes=1)
    service.approve(pending.id, "u1")
    clock.advance(minutes=1)
    service.cancel(pending.id, "u1")

    other = service.request_book("b1", "u2", "1_WEEK")
    clock.advance(minutes=1)
    service.reject(other.id, "u1")

    mine = dispatcher.list_for_user("u2")
    assert [n.type for n in mine] == ["REQUEST_REJECTED", "REQUEST_APPROVED"]

    dispatcher.mark_read(mine[0].id, "u2")
    assert [n.type for n in dispatcher.list_for_user("u2", unread_only=True)] == ["REQUEST_APPROVED"]
    assert len(dispatcher.list_for_user("u2", page=2, limit=1)) == 1

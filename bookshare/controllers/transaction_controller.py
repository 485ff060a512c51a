from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from bookshare.errors import LendingError

transaction_bp = Blueprint("transactions", __name__)


# -----------------------------
# Helpers
# -----------------------------
def _service():
    return current_app.extensions["transaction_service"]


def _current_user() -> str:
    return str(get_jwt_identity())


def _json_error(e: LendingError):
    return jsonify({"success": False, "code": e.code, "message": str(e)}), e.status_code


def _iso(value):
    return value.isoformat() if value else None


def _page_args():
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", current_app.config["DEFAULT_PAGE_SIZE"], type=int)
    return max(page, 1), max(1, min(limit, current_app.config["MAX_PAGE_SIZE"]))


def transaction_json(t, viewer_id: str) -> dict:
    now = current_app.extensions["clock"].now()
    # only the party who has to show a code may read it
    show_handover = t.is_borrower(viewer_id)
    show_return = t.is_owner(viewer_id)
    return {
        "id": t.id,
        "bookId": t.book_id,
        "bookTitle": t.book_title,
        "bookImageUrl": t.book_image_url,
        "borrowerId": t.borrower_id,
        "borrowerName": t.borrower_name,
        "borrowerProfileImageUrl": t.borrower_profile_image_url,
        "ownerId": t.owner_id,
        "ownerName": t.owner_name,
        "ownerProfileImageUrl": t.owner_profile_image_url,
        "groupId": t.group_id,
        "status": t.status,
        "duration": t.duration,
        "durationDays": t.duration_days,
        "lendingFee": float(t.lending_fee or 0),
        "totalCost": float(t.total_cost),
        "requestMessage": t.request_message,
        "rejectionReason": t.rejection_reason,
        "cancellationReason": t.cancellation_reason,
        "handoverOTP": t.handover_otp if show_handover else None,
        "handoverOTPExpiry": _iso(t.handover_otp_expiry),
        "returnOTP": t.return_otp if show_return else None,
        "returnOTPExpiry": _iso(t.return_otp_expiry),
        "paymentStatus": {
            "borrowerConfirmed": bool(t.borrower_payment_confirmed),
            "ownerConfirmed": bool(t.owner_payment_confirmed),
            "isComplete": t.payment_complete,
        },
        "requestedAt": _iso(t.requested_at),
        "approvedAt": _iso(t.approved_at),
        "handoverAt": _iso(t.handover_at),
        "dueDate": _iso(t.due_date),
        "returnedAt": _iso(t.returned_at),
        "isOverdue": t.is_overdue(now),
        "daysUntilDue": t.days_until_due(now),
        "ownerRating": t.owner_rating,
        "ownerComment": t.owner_comment,
        "borrowerRating": t.borrower_rating,
        "borrowerComment": t.borrower_comment,
        "bookConditionRating": t.book_condition_rating,
    }


def _ok(t, status=200):
    return jsonify({"success": True, "data": transaction_json(t, _current_user())}), status


# -----------------------------
# Lifecycle
# -----------------------------
@transaction_bp.post("/request")
@jwt_required()
def create_request():
    data = request.get_json(silent=True) or {}
    if not data.get("bookId") or not data.get("duration"):
        return jsonify({"success": False, "code": "VALIDATION_ERROR",
                        "message": "bookId and duration are required"}), 400
    try:
        t = _service().request_book(
            book_id=str(data["bookId"]),
            borrower_id=_current_user(),
            duration=data["duration"],
            duration_days=data.get("durationDays"),
            message=data.get("message"),
        )
        return _ok(t, 201)
    except LendingError as e:
        return _json_error(e)


@transaction_bp.post("/<txn_id>/approve")
@jwt_required()
def approve(txn_id):
    try:
        return _ok(_service().approve(txn_id, _current_user()))
    except LendingError as e:
        return _json_error(e)


@transaction_bp.post("/<txn_id>/reject")
@jwt_required()
def reject(txn_id):
    data = request.get_json(silent=True) or {}
    try:
        return _ok(_service().reject(txn_id, _current_user(), data.get("reason")))
    except LendingError as e:
        return _json_error(e)


@transaction_bp.post("/<txn_id>/cancel")
@jwt_required()
def cancel(txn_id):
    data = request.get_json(silent=True) or {}
    try:
        return _ok(_service().cancel(txn_id, _current_user(), data.get("reason")))
    except LendingError as e:
        return _json_error(e)


@transaction_bp.post("/<txn_id>/otp/refresh")
@jwt_required()
def refresh_otp(txn_id):
    try:
        return _ok(_service().refresh_otp(txn_id, _current_user()))
    except LendingError as e:
        return _json_error(e)


@transaction_bp.post("/<txn_id>/confirm-handover")
@jwt_required()
def confirm_handover(txn_id):
    data = request.get_json(silent=True) or {}
    try:
        return _ok(_service().confirm_handover(txn_id, _current_user(), str(data.get("otp") or "")))
    except LendingError as e:
        return _json_error(e)


@transaction_bp.post("/<txn_id>/confirm-return")
@jwt_required()
def confirm_return(txn_id):
    data = request.get_json(silent=True) or {}
    try:
        return _ok(_service().confirm_return(txn_id, _current_user(), str(data.get("otp") or "")))
    except LendingError as e:
        return _json_error(e)


@transaction_bp.post("/<txn_id>/mark-payment")
@jwt_required()
def mark_payment(txn_id):
    data = request.get_json(silent=True) or {}
    try:
        _service().mark_payment_confirmed(txn_id, _current_user(), data.get("role"))
        return jsonify({"success": True})
    except LendingError as e:
        return _json_error(e)


@transaction_bp.post("/<txn_id>/rate")
@jwt_required()
def rate(txn_id):
    data = request.get_json(silent=True) or {}
    try:
        _service().rate(
            txn_id,
            _current_user(),
            data.get("rating"),
            comment=data.get("comment"),
            book_condition_rating=data.get("bookConditionRating"),
        )
        return jsonify({"success": True})
    except LendingError as e:
        return _json_error(e)


# -----------------------------
# Reads
# -----------------------------
@transaction_bp.get("/my")
@jwt_required()
def my_transactions():
    page, limit = _page_args()
    user_id = _current_user()
    try:
        rows = _service().list_for_user(
            user_id,
            role=request.args.get("role") or None,
            status=request.args.get("status") or None,
            page=page,
            limit=limit,
        )
    except LendingError as e:
        return _json_error(e)
    return jsonify({
        "success": True,
        "page": page,
        "limit": limit,
        "data": [transaction_json(t, user_id) for t in rows],
    })


@transaction_bp.get("/<txn_id>")
@jwt_required()
def get_transaction(txn_id):
    try:
        return _ok(_service().get_for_user(txn_id, _current_user()))
    except LendingError as e:
        return _json_error(e)

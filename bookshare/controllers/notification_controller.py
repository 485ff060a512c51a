from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from bookshare.errors import LendingError
from bookshare.tasks.sweeps import JOBS
from bookshare.utils.decorators import role_required

notif_bp = Blueprint("notifications", __name__)


def _service():
    return current_app.extensions["notification_service"]


def _notification_json(n) -> dict:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "isRead": bool(n.is_read),
        "relatedId": n.related_id,
        "groupId": n.group_id,
        "createdAt": n.created_at.isoformat(),
    }


@notif_bp.get("/my")
@jwt_required()
def my_notifications():
    page = max(request.args.get("page", 1, type=int), 1)
    limit = request.args.get("limit", current_app.config["DEFAULT_PAGE_SIZE"], type=int)
    limit = max(1, min(limit, current_app.config["MAX_PAGE_SIZE"]))
    unread_only = request.args.get("unreadOnly", "false").lower() in ("1", "true", "yes")

    rows = _service().list_for_user(str(get_jwt_identity()), unread_only=unread_only, page=page, limit=limit)
    return jsonify({"success": True, "page": page, "limit": limit,
                    "data": [_notification_json(n) for n in rows]})


@notif_bp.post("/<notification_id>/read")
@jwt_required()
def mark_read(notification_id):
    try:
        n = _service().mark_read(notification_id, str(get_jwt_identity()))
        return jsonify({"success": True, "data": _notification_json(n)})
    except LendingError as e:
        return jsonify({"success": False, "code": e.code, "message": str(e)}), e.status_code


@notif_bp.post("/run-sweep/<job>")
@jwt_required()
@role_required("admin")
def run_sweep(job):
    func = JOBS.get(job)
    if func is None:
        return jsonify({"success": False, "message": f"Unknown job: {job}"}), 404

    result = func(current_app._get_current_object())
    return jsonify({"success": True, "data": result.as_dict()})

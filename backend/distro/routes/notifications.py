# backend/distro/routes/notifications.py
from flask import Blueprint, request, jsonify

from distro.decorators import require_actor
from distro.services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.route("", methods=["GET"])
def list_notifications():
    unread_only = request.args.get("unread") in ("1", "true", "yes")
    notifications = notification_service.list_notifications(unread_only=unread_only)
    return jsonify([n.to_dict() for n in notifications]), 200


@notifications_bp.route("/<int:notification_id>/read", methods=["POST"])
@require_actor
def mark_read(notification_id: int):
    notification_service.mark_notification_read(notification_id)
    return "", 204


@notifications_bp.route("/read-all", methods=["POST"])
@require_actor
def mark_all_read():
    updated = notification_service.mark_all_notifications_read()
    return jsonify({"updated": updated}), 200

"""Secondary routes: images, messaging, comments, profiles and email relay."""
from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from .errors import (InputValidationError, NotificationError,
                     PermissionDeniedError, SalonBookError)
from .gateway import get_gateway
from .notifications import EmailClient, appointment_email, salon_accepted_email
from .routes import current_profile, error_response, unauthorized

bp_ext = Blueprint("api_ext", __name__)

IMAGE_KINDS = ("salon", "service")
MAX_MESSAGE_LENGTH = 2000
MAX_COMMENT_LENGTH = 1000


def _parse_since(raw: str) -> datetime:
    try:
        since = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise InputValidationError("since must be an ISO-8601 timestamp") from None
    # Timestamps are stored as naive UTC.
    if since.tzinfo is not None:
        since = since.astimezone(timezone.utc).replace(tzinfo=None)
    return since


def _as_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# --- Salon images ---

@bp_ext.get("/salons/<int:salon_id>/images")
def list_salon_images(salon_id: int):
    """
    List images of a salon, optionally restricted to one kind.
    ---
    tags:
      - Images
    parameters:
      - name: kind
        in: query
        type: string
        enum: [salon, service]
    responses:
      200:
        description: Image URLs
      404:
        description: Salon not found
    """
    kind = request.args.get("kind")
    filters = {"salon_id": salon_id}
    if kind:
        filters["kind"] = kind

    gateway = get_gateway()
    try:
        gateway.get_or_404("salons", salon_id)
        images = gateway.query("salon_images", filters, order_by="image_id")
    except SalonBookError as exc:
        return error_response(exc, "list salon images")

    return jsonify({"images": [image.to_dict() for image in images]}), 200


@bp_ext.post("/salons/<int:salon_id>/images")
def add_salon_image(salon_id: int):
    """Attach an uploaded image URL to a salon (owner only).

    The file itself lives in object storage; only its public URL is stored.
    """
    profile = current_profile()
    if profile is None:
        return unauthorized()

    payload = request.get_json(silent=True) or {}
    url = (payload.get("url") or "").strip()
    kind = (payload.get("kind") or "salon").strip()
    service_name = (payload.get("service_name") or "").strip() or None

    gateway = get_gateway()
    try:
        if not url:
            raise InputValidationError("url is required")
        if kind not in IMAGE_KINDS:
            raise InputValidationError("kind must be 'salon' or 'service'")
        if kind == "service" and not service_name:
            raise InputValidationError("service_name is required for service images")

        salon = gateway.get_or_404("salons", salon_id)
        if salon.owner_id != profile.profile_id:
            raise PermissionDeniedError("only the salon owner can add images")

        with gateway.transaction():
            image = gateway.insert("salon_images", {
                "salon_id": salon_id,
                "url": url,
                "kind": kind,
                "service_name": service_name,
            })
            # First salon picture becomes the cover
            if kind == "salon" and not salon.image_url:
                gateway.update("salons", salon_id, {"image_url": url})
    except SalonBookError as exc:
        return error_response(exc, "add salon image")

    return jsonify({"image": image.to_dict()}), 201


@bp_ext.delete("/images/<int:image_id>")
def delete_salon_image(image_id: int):
    profile = current_profile()
    if profile is None:
        return unauthorized()

    gateway = get_gateway()
    try:
        image = gateway.get_or_404("salon_images", image_id)
        salon = gateway.get_or_404("salons", image.salon_id)
        if salon.owner_id != profile.profile_id:
            raise PermissionDeniedError("only the salon owner can remove images")
        gateway.delete("salon_images", image_id)
    except SalonBookError as exc:
        return error_response(exc, "delete salon image")

    return jsonify({"message": "Image deleted"}), 200


# --- Messaging ---

@bp_ext.post("/messages")
def send_message():
    """Send a message to a salon owner or reply to a profile.
    ---
    tags:
      - Messages
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            salon_id:
              type: integer
              description: Message the owner of this salon
            recipient_id:
              type: string
              description: Direct recipient, used when salon_id is absent
            content:
              type: string
          required:
            - content
    responses:
      201:
        description: Message stored
      400:
        description: Missing content or recipient
      401:
        description: Missing token
      404:
        description: Salon or recipient not found
    """
    profile = current_profile()
    if profile is None:
        return unauthorized()

    payload = request.get_json(silent=True) or {}
    content = (payload.get("content") or "").strip()
    salon_id = payload.get("salon_id")
    recipient_id = payload.get("recipient_id")

    gateway = get_gateway()
    try:
        if not content:
            raise InputValidationError("content is required")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise InputValidationError(f"content is limited to {MAX_MESSAGE_LENGTH} characters")

        if salon_id is not None:
            salon = gateway.get_or_404("salons", salon_id)
            recipient_id = salon.owner_id
        elif recipient_id:
            gateway.get_or_404("profiles", recipient_id)
        else:
            raise InputValidationError("salon_id or recipient_id is required")

        message = gateway.insert("messages", {
            "sender_id": profile.profile_id,
            "recipient_id": recipient_id,
            "salon_id": salon_id,
            "sender_name": profile.full_name,
            "content": content,
        })
    except SalonBookError as exc:
        return error_response(exc, "send message")

    return jsonify({"message": message.to_dict()}), 201


@bp_ext.get("/messages")
def list_messages():
    """Messages sent or received by the caller, oldest first.

    ``since`` makes the call incremental: only messages strictly newer than
    that timestamp are returned, so a client can poll with the timestamp of
    the last message it holds.
    """
    profile = current_profile()
    if profile is None:
        return unauthorized()

    gateway = get_gateway()
    try:
        since = _parse_since(request.args["since"]) if request.args.get("since") else None
        ranges = {"timestamp": (since, None)}
        rows = gateway.query("messages", {"recipient_id": profile.profile_id}, ranges=ranges)
        rows += gateway.query("messages", {"sender_id": profile.profile_id}, ranges=ranges)
    except SalonBookError as exc:
        return error_response(exc, "list messages")

    unique = {row.message_id: row for row in rows}.values()
    if since is not None:
        unique = [row for row in unique if _as_naive(row.timestamp) > since]
    messages = sorted(unique, key=lambda row: (row.timestamp, row.message_id))
    return jsonify({"messages": [row.to_dict() for row in messages]}), 200


# --- Comments ---

@bp_ext.get("/salons/<int:salon_id>/comments")
def list_comments(salon_id: int):
    gateway = get_gateway()
    try:
        gateway.get_or_404("salons", salon_id)
        comments = gateway.query("comments", {"salon_id": salon_id}, order_by="-created_at")
        results = []
        for comment in comments:
            data = comment.to_dict()
            author = gateway.get("profiles", comment.client_id)
            data["author"] = author.full_name if author else None
            results.append(data)
    except SalonBookError as exc:
        return error_response(exc, "list comments")

    return jsonify({"comments": results}), 200


@bp_ext.post("/salons/<int:salon_id>/comments")
def add_comment(salon_id: int):
    """Post a comment on a salon.
    ---
    tags:
      - Comments
    responses:
      201:
        description: Comment created
      400:
        description: Empty or too long content
      401:
        description: Missing token
      404:
        description: Salon not found
    """
    profile = current_profile()
    if profile is None:
        return unauthorized()

    payload = request.get_json(silent=True) or {}
    content = (payload.get("content") or "").strip()

    gateway = get_gateway()
    try:
        if not content:
            raise InputValidationError("content is required")
        if len(content) > MAX_COMMENT_LENGTH:
            raise InputValidationError(f"content is limited to {MAX_COMMENT_LENGTH} characters")
        gateway.get_or_404("salons", salon_id)
        comment = gateway.insert("comments", {
            "salon_id": salon_id,
            "client_id": profile.profile_id,
            "content": content,
        })
    except SalonBookError as exc:
        return error_response(exc, "add comment")

    return jsonify({"comment": comment.to_dict()}), 201


@bp_ext.put("/comments/<int:comment_id>")
def update_comment(comment_id: int):
    profile = current_profile()
    if profile is None:
        return unauthorized()

    payload = request.get_json(silent=True) or {}
    content = (payload.get("content") or "").strip()

    gateway = get_gateway()
    try:
        if not content:
            raise InputValidationError("content is required")
        if len(content) > MAX_COMMENT_LENGTH:
            raise InputValidationError(f"content is limited to {MAX_COMMENT_LENGTH} characters")
        comment = gateway.get_or_404("comments", comment_id)
        if comment.client_id != profile.profile_id:
            raise PermissionDeniedError("only the author can edit this comment")
        comment = gateway.update("comments", comment_id, {"content": content})
    except SalonBookError as exc:
        return error_response(exc, "update comment")

    return jsonify({"comment": comment.to_dict()}), 200


@bp_ext.delete("/comments/<int:comment_id>")
def delete_comment(comment_id: int):
    """Delete a comment. Admins may remove any comment."""
    profile = current_profile()
    if profile is None:
        return unauthorized()

    gateway = get_gateway()
    try:
        comment = gateway.get_or_404("comments", comment_id)
        if comment.client_id != profile.profile_id and profile.role != "admin":
            raise PermissionDeniedError("only the author can delete this comment")
        gateway.delete("comments", comment_id)
    except SalonBookError as exc:
        return error_response(exc, "delete comment")

    return jsonify({"message": "Comment deleted"}), 200


# --- Profiles ---

@bp_ext.get("/profiles/me")
def get_my_profile():
    profile = current_profile()
    if profile is None:
        return unauthorized()
    return jsonify({"user": profile.to_dict()}), 200


@bp_ext.put("/profiles/me")
def update_my_profile():
    """Update first name, last name or phone of the caller."""
    profile = current_profile()
    if profile is None:
        return unauthorized()

    payload = request.get_json(silent=True) or {}
    changes = {}
    try:
        for name in ("first_name", "last_name"):
            if name in payload:
                value = (payload.get(name) or "").strip()
                if not value:
                    raise InputValidationError(f"{name} cannot be empty")
                changes[name] = value
        if "phone" in payload:
            changes["phone"] = (payload.get("phone") or "").strip() or None
        if changes:
            profile = get_gateway().update("profiles", profile.profile_id, changes)
    except SalonBookError as exc:
        return error_response(exc, "update profile")

    return jsonify({"user": profile.to_dict()}), 200


# --- Email relay ---

@bp_ext.post("/send-email")
def send_appointment_email():
    """Send an appointment reminder.
    ---
    tags:
      - Email
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            email:
              type: string
            date:
              type: string
              format: date
          required:
            - email
            - date
    responses:
      200:
        description: Email handed to the provider
      400:
        description: Missing email or date
      500:
        description: Provider error
    """
    payload = request.get_json(silent=True) or {}
    email = (payload.get("email") or "").strip()
    appointment_date = payload.get("date")

    if not email or not appointment_date:
        return jsonify({"error": "email and date are required"}), 400

    try:
        subject, html = appointment_email(appointment_date)
        EmailClient.from_config(current_app.config).send(email, subject, html)
    except InputValidationError as exc:
        return jsonify({"error": exc.message}), 400
    except NotificationError as exc:
        current_app.logger.error(f"Reminder email to {email} failed: {exc.message}")
        return jsonify({"error": exc.message}), 500

    return jsonify({"message": "Email envoyé avec succès"}), 200


@bp_ext.post("/send-confirmation-email")
def send_confirmation_email():
    """Tell a salon owner their salon was accepted."""
    payload = request.get_json(silent=True) or {}
    owner_email = (payload.get("ownerEmail") or "").strip()
    salon_name = (payload.get("salonName") or "").strip()

    if not owner_email or not salon_name:
        return jsonify({"error": "ownerEmail and salonName are required"}), 400

    try:
        subject, html = salon_accepted_email(salon_name)
        EmailClient.from_config(current_app.config).send(owner_email, subject, html)
    except NotificationError as exc:
        current_app.logger.error(f"Confirmation email to {owner_email} failed: {exc.message}")
        return jsonify({"error": exc.message}), 500

    return jsonify({"message": "Email de confirmation envoyé"}), 200

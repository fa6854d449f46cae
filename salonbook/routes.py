"""HTTP routes for the salon booking backend."""
from __future__ import annotations

from datetime import date, datetime, timezone

from flask import Blueprint, Flask, current_app, jsonify, request
from itsdangerous import BadData, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from .availability import AvailabilityEngine, parse_date
from .booking import BookingRequest, BookingState, BookingWorkflow
from .errors import (ConnectivityError, InputValidationError, NotFoundError,
                     PermissionDeniedError, RemoteValidationError, SalonBookError,
                     SlotTaken)
from .gateway import get_gateway
from .models import Profile
from .ratings import RatingAggregator, display_rating
from .salons import clean_salon_payload, delete_salon, search_salons

bp = Blueprint("api", __name__)

ERROR_STATUS = (
    (NotFoundError, 404),
    (SlotTaken, 409),
    (RemoteValidationError, 409),
    (InputValidationError, 400),
    (PermissionDeniedError, 403),
    (ConnectivityError, 500),
)


def error_response(exc: SalonBookError, action: str) -> tuple[object, int]:
    """Translate a service error into the JSON error body and status code."""
    status = next((code for kind, code in ERROR_STATUS if isinstance(exc, kind)), 500)
    if status >= 500:
        current_app.logger.exception("Failed to %s", action, exc_info=exc)
    else:
        current_app.logger.warning("Could not %s: %s", action, exc.message)
    return jsonify(exc.to_dict()), status


def unauthorized() -> tuple[object, int]:
    return jsonify({"error": "unauthorized", "message": "Invalid or missing token"}), 401


def _availability() -> AvailabilityEngine:
    return current_app.extensions["availability"]


def _booking() -> BookingWorkflow:
    return current_app.extensions["booking"]


def _ratings() -> RatingAggregator:
    return current_app.extensions["ratings"]


def _build_token(payload: dict[str, object]) -> str:
    serializer = URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt="auth-token")
    return serializer.dumps(payload)


def get_current_user_id() -> str | None:
    """Extract and validate the profile id from the Authorization header token.

    Returns None when the header is missing, malformed, tampered with or
    older than ``TOKEN_MAX_AGE``.
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]  # Remove "Bearer " prefix

    serializer = URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt="auth-token")
    try:
        payload = serializer.loads(token, max_age=current_app.config["TOKEN_MAX_AGE"])
    except BadData:
        # Invalid or expired token
        return None
    return payload.get("user_id")


def current_profile() -> Profile | None:
    user_id = get_current_user_id()
    if not user_id:
        return None
    return get_gateway().get("profiles", user_id)


def _require_admin() -> tuple[Profile | None, tuple[object, int] | None]:
    profile = current_profile()
    if profile is None:
        return None, unauthorized()
    if profile.role != "admin":
        return None, (jsonify({"error": "forbidden", "message": "admin access required"}), 403)
    return profile, None


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database."""
    try:
        get_gateway().ping()
    except ConnectivityError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


# --- Accounts ---

@bp.post("/auth/register")
def register_user() -> tuple[dict[str, object], int]:
    """Register a new client or professional account.
    ---
    tags:
      - Authentication
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            first_name:
              type: string
            last_name:
              type: string
            email:
              type: string
            password:
              type: string
            role:
              type: string
              enum: [client, professional]
            phone:
              type: string
          required:
            - first_name
            - last_name
            - email
            - password
    responses:
      201:
        description: Account created, returns access token
      400:
        description: Invalid payload
      409:
        description: Email already in use
    """
    payload = request.get_json(silent=True) or {}

    first_name = (payload.get("first_name") or "").strip()
    last_name = (payload.get("last_name") or "").strip()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    role = (payload.get("role") or "client").strip().lower()
    phone = (payload.get("phone") or "").strip() or None

    if not first_name or not last_name or not email or not password:
        return (
            jsonify({
                "error": "invalid_payload",
                "message": "first_name, last_name, email, and password are required",
            }),
            400,
        )

    # Admin accounts are never created through the public endpoint
    if role not in ["client", "professional"]:
        return (
            jsonify({"error": "invalid_role", "message": "role must be 'client' or 'professional'"}),
            400,
        )

    gateway = get_gateway()
    try:
        if gateway.first("profiles", {"email": email}):
            return jsonify({"error": "conflict", "message": "email address is already in use"}), 409

        with gateway.transaction():
            profile = gateway.insert("profiles", {
                "first_name": first_name,
                "last_name": last_name,
                "email": email,
                "phone": phone,
                "role": role,
            })
            gateway.insert("auth_accounts", {
                "profile_id": profile.profile_id,
                "password_hash": generate_password_hash(password),
            })
    except SalonBookError as exc:
        return error_response(exc, "register new account")

    token = _build_token({"user_id": profile.profile_id, "role": profile.role})
    return jsonify({"token": token, "user": profile.to_dict()}), 201


@bp.post("/auth/login")
def login() -> tuple[dict[str, object], int]:
    """Authenticate by email/password and return an access token.
    ---
    tags:
      - Authentication
    responses:
      200:
        description: Login successful, returns access token
      400:
        description: Missing email or password
      401:
        description: Invalid email or password
    """
    payload = request.get_json(silent=True) or {}

    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not email or not password:
        return (
            jsonify({"error": "invalid_payload", "message": "email and password are required"}),
            400,
        )

    gateway = get_gateway()
    try:
        profile = gateway.first("profiles", {"email": email})
        account = gateway.get("auth_accounts", profile.profile_id) if profile else None

        if not account or not check_password_hash(account.password_hash, password):
            return jsonify({"error": "unauthorized", "message": "invalid email or password"}), 401

        gateway.update("auth_accounts", account.profile_id, {"last_login_at": datetime.now(timezone.utc)})
    except SalonBookError as exc:
        return error_response(exc, "log in")

    token = _build_token({"user_id": profile.profile_id, "role": profile.role})
    return jsonify({"token": token, "user": profile.to_dict()}), 200


# --- Salons ---

@bp.get("/salons")
def list_salons() -> tuple[dict[str, object], int]:
    """Search verified salons.
    ---
    tags:
      - Salons
    parameters:
      - name: postal_codes
        in: query
        type: string
        description: Comma-separated postal codes
      - name: service
        in: query
        type: string
        description: Service type the salon must offer
      - name: query
        in: query
        type: string
        description: Salon name fragment (case-insensitive)
      - name: min_rating
        in: query
        type: number
        default: 0
      - name: sort
        in: query
        type: string
        enum: [rating, name]
        default: rating
      - name: with_slots
        in: query
        type: boolean
        description: Attach the free slots of the next seven days
      - name: week_start
        in: query
        type: string
        description: First day of the slot window (YYYY-MM-DD, defaults to today)
      - name: page
        in: query
        type: integer
        default: 1
      - name: limit
        in: query
        type: integer
        default: 12
        maximum: 50
    responses:
      200:
        description: Matching salons with pagination metadata
      400:
        description: Invalid parameters
      500:
        description: Database error
    """
    try:
        postal_codes = (request.args.get("postal_codes") or request.args.get("postal_code") or "").split(",")
        service = request.args.get("service", "").strip() or None
        query = request.args.get("query", "").strip() or None
        min_rating = float(request.args.get("min_rating", 0))
        sort = request.args.get("sort", "rating").strip().lower()
        with_slots = request.args.get("with_slots", "false").lower() == "true"
        page = max(1, int(request.args.get("page", 1)))
        limit = min(50, max(1, int(request.args.get("limit", 12))))
    except (ValueError, TypeError) as exc:
        current_app.logger.warning(f"Invalid search parameters: {exc}")
        return jsonify({"error": "invalid_parameters"}), 400

    try:
        salons = search_salons(
            get_gateway(),
            postal_codes=postal_codes,
            service_type=service,
            name=query,
            min_rating=min_rating,
            sort=sort,
        )
        total = len(salons)
        salons = salons[(page - 1) * limit: page * limit]

        results = []
        week_start = parse_date(request.args["week_start"]) if request.args.get("week_start") else date.today()
        for salon in salons:
            data = salon.to_dict()
            data["display_rating"] = display_rating(salon.average_rating)
            if with_slots:
                data["slots"] = _availability().week_availability(salon.salon_id, week_start)
            results.append(data)
    except SalonBookError as exc:
        return error_response(exc, "search salons")

    return jsonify({
        "salons": results,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }), 200


@bp.post("/salons")
def create_salon() -> tuple[dict[str, object], int]:
    """Register a salon for the authenticated professional.

    The salon stays unverified until an admin accepts it.
    ---
    tags:
      - Salons
    responses:
      201:
        description: Salon created
      400:
        description: Invalid payload
      401:
        description: Missing token
      403:
        description: Caller is not a professional
    """
    profile = current_profile()
    if profile is None:
        return unauthorized()
    if profile.role != "professional":
        return jsonify({"error": "forbidden", "message": "only professionals can register a salon"}), 403

    payload = request.get_json(silent=True) or {}
    try:
        fields = clean_salon_payload(payload)
        fields.update({"owner_id": profile.profile_id, "is_verified": False})
        salon = get_gateway().insert("salons", fields)
    except SalonBookError as exc:
        return error_response(exc, "create salon")

    current_app.logger.info("Salon %s registered by %s", salon.salon_id, profile.profile_id)
    return jsonify({"salon": salon.to_dict()}), 201


@bp.get("/salons/<int:salon_id>")
def get_salon_details(salon_id: int) -> tuple[dict[str, object], int]:
    """Get a salon with its images and rating summary."""
    gateway = get_gateway()
    try:
        salon = gateway.get_or_404("salons", salon_id)
        images = gateway.query("salon_images", {"salon_id": salon_id}, order_by="image_id")
    except SalonBookError as exc:
        return error_response(exc, "fetch salon details")

    salon_data = salon.to_dict()
    salon_data["display_rating"] = display_rating(salon.average_rating)
    salon_data["images"] = [image.to_dict() for image in images]
    return jsonify({"salon": salon_data}), 200


@bp.put("/salons/<int:salon_id>")
def update_salon_details(salon_id: int) -> tuple[dict[str, object], int]:
    """Update profile, hours, pricing, service types or social links (owner only).
    ---
    tags:
      - Salons
    responses:
      200:
        description: Salon updated
      400:
        description: Invalid payload
      403:
        description: Caller does not own the salon
      404:
        description: Salon not found
    """
    profile = current_profile()
    if profile is None:
        return unauthorized()

    payload = request.get_json(silent=True) or {}
    gateway = get_gateway()
    try:
        salon = gateway.get_or_404("salons", salon_id)
        if salon.owner_id != profile.profile_id:
            raise PermissionDeniedError("only the salon owner can edit it")
        fields = clean_salon_payload(payload, partial=True)
        if not fields:
            raise InputValidationError("no updatable field in payload")
        salon = gateway.update("salons", salon_id, fields)
    except SalonBookError as exc:
        return error_response(exc, "update salon")

    return jsonify({"message": "Salon updated successfully", "salon": salon.to_dict()}), 200


# --- Availability ---

@bp.get("/salons/<int:salon_id>/availability")
def get_availability(salon_id: int) -> tuple[dict[str, object], int]:
    """Free slots of a salon on one date.
    ---
    tags:
      - Availability
    parameters:
      - name: salon_id
        in: path
        type: integer
        required: true
      - name: date
        in: query
        type: string
        required: true
        description: YYYY-MM-DD
    responses:
      200:
        description: Ordered list of free HH:MM slots
      400:
        description: Missing or invalid date
      404:
        description: Salon not found
    """
    date_str = request.args.get("date")
    if not date_str:
        return jsonify({"error": "invalid_payload", "message": "date (YYYY-MM-DD) is required"}), 400

    try:
        day = parse_date(date_str)
        slots = _availability().free_slots(salon_id, day)
    except SalonBookError as exc:
        return error_response(exc, "check availability")

    return jsonify({"salon_id": salon_id, "date": day.isoformat(), "available_slots": slots}), 200


@bp.get("/salons/<int:salon_id>/availability/week")
def get_week_availability(salon_id: int) -> tuple[dict[str, object], int]:
    """Free slots for the seven days starting at ``start`` (defaults to today)."""
    try:
        start = parse_date(request.args["start"]) if request.args.get("start") else date.today()
        week = _availability().week_availability(salon_id, start)
    except SalonBookError as exc:
        return error_response(exc, "check weekly availability")

    return jsonify({"salon_id": salon_id, "start": start.isoformat(), "slots": week}), 200


# --- Reservations ---

@bp.post("/salons/<int:salon_id>/reservations")
def create_reservation(salon_id: int) -> tuple[dict[str, object], int]:
    """Book a slot for the authenticated client.
    ---
    tags:
      - Reservations
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            category:
              type: string
            service_name:
              type: string
            service:
              type: string
              description: "'category - service', alternative to category/service_name"
            date:
              type: string
              format: date
            time:
              type: string
              example: "10:00"
            first_name:
              type: string
            last_name:
              type: string
            phone:
              type: string
          required:
            - date
            - time
    responses:
      201:
        description: Reservation confirmed
      400:
        description: Missing field, unknown service or slot outside opening hours
      401:
        description: Missing token
      403:
        description: Salon not verified yet
      404:
        description: Salon not found
      409:
        description: Slot already booked, body lists the remaining free slots
    """
    profile = current_profile()
    if profile is None:
        return unauthorized()

    payload = dict(request.get_json(silent=True) or {})
    # Contact fields default to the client's profile
    payload.setdefault("first_name", profile.first_name)
    payload.setdefault("last_name", profile.last_name)
    payload.setdefault("phone", profile.phone)

    try:
        booking_request = BookingRequest.from_payload(
            salon_id, payload, client_id=profile.profile_id, client_email=profile.email
        )
        attempt = _booking().book(booking_request)
        if attempt.state is BookingState.REJECTED:
            available = _availability().free_slots(salon_id, attempt.day)
            return jsonify({
                "error": "slot_taken",
                "message": "This slot is already booked, please choose another one",
                "booking": attempt.to_dict(),
                "available_slots": available,
            }), 409
    except SalonBookError as exc:
        return error_response(exc, "create reservation")

    return jsonify({
        "message": "Reservation confirmed",
        "booking": attempt.to_dict(),
        "reservation": attempt.reservation.to_dict(),
    }), 201


@bp.get("/salons/<int:salon_id>/reservations")
def list_salon_reservations(salon_id: int) -> tuple[dict[str, object], int]:
    """Reservations of a salon between ``from`` and ``to`` inclusive (owner view)."""
    profile = current_profile()
    if profile is None:
        return unauthorized()

    try:
        rows = _booking().list_for_salon(
            salon_id, profile.profile_id, request.args.get("from"), request.args.get("to")
        )
    except SalonBookError as exc:
        return error_response(exc, "list salon reservations")

    return jsonify({"reservations": [row.to_dict() for row in rows], "total": len(rows)}), 200


@bp.post("/salons/<int:salon_id>/reservations/walk-in")
def create_walk_in(salon_id: int) -> tuple[dict[str, object], int]:
    """Owner enters a reservation for a client without an account.
    ---
    tags:
      - Reservations
    responses:
      201:
        description: Reservation created
      400:
        description: Invalid payload
      403:
        description: Caller does not own the salon
      409:
        description: Slot already booked
    """
    profile = current_profile()
    if profile is None:
        return unauthorized()

    payload = request.get_json(silent=True) or {}
    try:
        reservation = _booking().add_walk_in(salon_id, profile.profile_id, payload)
    except SalonBookError as exc:
        return error_response(exc, "create walk-in reservation")

    return jsonify({"reservation": reservation.to_dict()}), 201


@bp.get("/salons/<int:salon_id>/revenue")
def get_salon_revenue(salon_id: int) -> tuple[dict[str, object], int]:
    """Sum of snapshotted prices over a date range (owner only)."""
    profile = current_profile()
    if profile is None:
        return unauthorized()

    try:
        summary = _booking().revenue(
            salon_id, profile.profile_id, request.args.get("from"), request.args.get("to")
        )
    except SalonBookError as exc:
        return error_response(exc, "compute revenue")

    return jsonify({"revenue": summary}), 200


@bp.put("/reservations/<int:reservation_id>")
def update_reservation(reservation_id: int) -> tuple[dict[str, object], int]:
    """Edit a reservation's date, time, service or contact details (owner only)."""
    profile = current_profile()
    if profile is None:
        return unauthorized()

    payload = request.get_json(silent=True) or {}
    try:
        reservation = _booking().reschedule(reservation_id, profile.profile_id, payload)
    except SalonBookError as exc:
        return error_response(exc, "update reservation")

    return jsonify({"message": "Reservation updated successfully", "reservation": reservation.to_dict()}), 200


@bp.delete("/reservations/<int:reservation_id>")
def delete_reservation(reservation_id: int) -> tuple[dict[str, object], int]:
    """Cancel a reservation. Allowed for the booking client and the salon owner.
    ---
    tags:
      - Reservations
    responses:
      200:
        description: Reservation cancelled
      403:
        description: Caller is neither the client nor the owner
      404:
        description: Reservation not found
    """
    try:
        _booking().cancel(reservation_id, get_current_user_id())
    except SalonBookError as exc:
        return error_response(exc, "cancel reservation")

    return jsonify({"message": "Reservation cancelled successfully"}), 200


@bp.get("/users/me/reservations")
def list_my_reservations() -> tuple[dict[str, object], int]:
    profile = current_profile()
    if profile is None:
        return unauthorized()

    try:
        split = _booking().list_for_client(profile.profile_id)
    except SalonBookError as exc:
        return error_response(exc, "list client reservations")

    return jsonify({key: [row.to_dict() for row in rows] for key, rows in split.items()}), 200


# --- Ratings ---

@bp.post("/salons/<int:salon_id>/ratings")
def rate_salon(salon_id: int) -> tuple[dict[str, object], int]:
    """Vote 1-5 for a salon. A second vote by the same client replaces the first.
    ---
    tags:
      - Ratings
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            note:
              type: integer
              minimum: 1
              maximum: 5
    responses:
      200:
        description: Existing vote updated
      201:
        description: First vote recorded
      400:
        description: Note outside 1-5
      401:
        description: Missing token
      404:
        description: Salon not found
    """
    profile = current_profile()
    if profile is None:
        return unauthorized()

    payload = request.get_json(silent=True) or {}
    try:
        result = _ratings().submit_rating(profile.profile_id, salon_id, payload.get("note"))
    except SalonBookError as exc:
        return error_response(exc, "rate salon")

    return jsonify({"rating": result}), 200 if result["updated"] else 201


@bp.get("/salons/<int:salon_id>/ratings/me")
def get_my_rating(salon_id: int) -> tuple[dict[str, object], int]:
    profile = current_profile()
    if profile is None:
        return unauthorized()

    try:
        note = _ratings().rating_for(profile.profile_id, salon_id)
    except SalonBookError as exc:
        return error_response(exc, "fetch rating")

    return jsonify({"salon_id": salon_id, "note": note}), 200


# --- Salon review (admin) ---

@bp.get("/admin/salons/pending")
def list_pending_salons() -> tuple[dict[str, object], int]:
    """Unverified salons with their owner's email, for review."""
    _, denied = _require_admin()
    if denied:
        return denied

    gateway = get_gateway()
    try:
        salons = gateway.query("salons", {"is_verified": False}, order_by="created_at")
        results = []
        for salon in salons:
            data = salon.to_dict()
            owner = gateway.get("profiles", salon.owner_id)
            data["owner_email"] = owner.email if owner else None
            results.append(data)
    except SalonBookError as exc:
        return error_response(exc, "list pending salons")

    return jsonify({"salons": results, "total": len(results)}), 200


@bp.put("/admin/salons/<int:salon_id>/accept")
def accept_salon(salon_id: int) -> tuple[dict[str, object], int]:
    """Mark a salon verified and email its owner. Email failures are only logged."""
    _, denied = _require_admin()
    if denied:
        return denied

    gateway = get_gateway()
    try:
        salon = gateway.update("salons", salon_id, {"is_verified": True})
        owner = gateway.get("profiles", salon.owner_id)
    except SalonBookError as exc:
        return error_response(exc, "accept salon")

    _booking().notifier.salon_accepted(owner.email if owner else None, salon.name)
    return jsonify({"message": "Salon accepted", "salon": salon.to_dict()}), 200


@bp.delete("/admin/salons/<int:salon_id>")
def reject_salon(salon_id: int) -> tuple[dict[str, object], int]:
    """Reject a pending salon by deleting it and the rows attached to it."""
    _, denied = _require_admin()
    if denied:
        return denied

    try:
        removed = delete_salon(get_gateway(), salon_id)
    except SalonBookError as exc:
        return error_response(exc, "reject salon")

    return jsonify({"message": "Salon rejected", "removed": removed}), 200


@bp.post("/admin/salons/<int:salon_id>/recompute-rating")
def recompute_salon_rating(salon_id: int) -> tuple[dict[str, object], int]:
    _, denied = _require_admin()
    if denied:
        return denied

    try:
        result = _ratings().recompute(salon_id)
    except SalonBookError as exc:
        return error_response(exc, "recompute salon rating")

    return jsonify({"rating": result}), 200


def register_routes(app: Flask) -> None:
    from .routes_extended import bp_ext

    app.register_blueprint(bp)
    app.register_blueprint(bp_ext)

"""Database models for the salon booking backend."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_profile_id() -> str:
    return uuid.uuid4().hex


class Profile(db.Model):
    """Account profile. The id mirrors the authentication identity."""

    __tablename__ = "profiles"

    profile_id = db.Column(db.String(36), primary_key=True, default=new_profile_id)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    phone = db.Column(db.String(30))
    role = db.Column(
        db.Enum(
            "client",
            "professional",
            "admin",
            name="profile_role",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="client",
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    auth_account = db.relationship("AuthAccount", back_populates="profile", uselist=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.profile_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
        }


class AuthAccount(db.Model):
    __tablename__ = "auth_accounts"

    profile_id = db.Column(db.String(36), db.ForeignKey("profiles.profile_id"), primary_key=True)
    password_hash = db.Column(db.String(255), nullable=False)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    profile = db.relationship("Profile", back_populates="auth_account")


class Salon(db.Model):
    __tablename__ = "salons"

    salon_id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.String(36), db.ForeignKey("profiles.profile_id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    address = db.Column(db.String(255))
    postal_code = db.Column(db.String(20))
    city = db.Column(db.String(100))
    description = db.Column(db.Text)
    image_url = db.Column(db.String(500))
    # Day name -> "closed" or {"isOpen", "morning": {start, end}, "afternoon": {start, end}}
    operating_hours = db.Column(db.JSON, nullable=True, default=dict)
    # Category -> service -> {"price", "duration", "description"}
    pricing = db.Column(db.JSON, nullable=True, default=dict)
    service_types = db.Column(db.JSON, nullable=True, default=list)
    social_links = db.Column(db.JSON, nullable=True, default=dict)
    average_rating = db.Column(db.Float, nullable=False, default=0.0)
    vote_count = db.Column(db.Integer, nullable=False, default=0)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    owner = db.relationship("Profile")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.salon_id,
            "owner_id": self.owner_id,
            "name": self.name,
            "address": self.address,
            "postal_code": self.postal_code,
            "city": self.city,
            "description": self.description,
            "image_url": self.image_url,
            "operating_hours": self.operating_hours or {},
            "pricing": self.pricing or {},
            "service_types": sorted(set(self.service_types or [])),
            "social_links": self.social_links or {},
            "average_rating": self.average_rating or 0.0,
            "vote_count": self.vote_count or 0,
            "is_verified": bool(self.is_verified),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class SalonImage(db.Model):
    """Public URL of an image held by the object storage service."""

    __tablename__ = "salon_images"

    image_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    url = db.Column(db.String(500), nullable=False)
    kind = db.Column(
        db.Enum("salon", "service", name="image_kind", native_enum=False, validate_strings=True),
        nullable=False,
        server_default="salon",
    )
    service_name = db.Column(db.String(150))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.image_id,
            "salon_id": self.salon_id,
            "url": self.url,
            "kind": self.kind,
            "service_name": self.service_name,
        }


class Reservation(db.Model):
    """A booked slot. At most one per (salon, date, time)."""

    __tablename__ = "reservations"
    __table_args__ = (
        db.UniqueConstraint("salon_id", "date", "time", name="uq_reservation_slot"),
    )

    reservation_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    # Null for walk-ins entered by the salon owner.
    client_id = db.Column(db.String(36), db.ForeignKey("profiles.profile_id"), nullable=True)
    date = db.Column(db.Date, nullable=False)
    time = db.Column(db.Time, nullable=False)
    service = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    full_name = db.Column(db.String(200), nullable=False)
    phone = db.Column(db.String(30), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    salon = db.relationship("Salon")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.reservation_id,
            "salon_id": self.salon_id,
            "salon_name": self.salon.name if self.salon else None,
            "client_id": self.client_id,
            "date": self.date.isoformat() if self.date else None,
            "time": self.time.strftime("%H:%M") if self.time else None,
            "service": self.service,
            "price": float(self.price) if self.price is not None else None,
            "full_name": self.full_name,
            "phone": self.phone,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Rating(db.Model):
    """A client's 1-5 vote for a salon. One row per (client, salon)."""

    __tablename__ = "ratings"
    __table_args__ = (
        db.UniqueConstraint("client_id", "salon_id", name="uq_rating_client_salon"),
    )

    rating_id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.String(36), db.ForeignKey("profiles.profile_id"), nullable=False)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    note = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.rating_id,
            "client_id": self.client_id,
            "salon_id": self.salon_id,
            "note": self.note,
        }


class Message(db.Model):
    __tablename__ = "messages"

    message_id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.String(36), db.ForeignKey("profiles.profile_id"), nullable=False)
    recipient_id = db.Column(db.String(36), db.ForeignKey("profiles.profile_id"), nullable=False)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=True)
    sender_name = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    timestamp = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.message_id,
            "sender_id": self.sender_id,
            "recipient_id": self.recipient_id,
            "salon_id": self.salon_id,
            "sender_name": self.sender_name,
            "content": self.content,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


class Comment(db.Model):
    __tablename__ = "comments"

    comment_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    client_id = db.Column(db.String(36), db.ForeignKey("profiles.profile_id"), nullable=False)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.comment_id,
            "salon_id": self.salon_id,
            "client_id": self.client_id,
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

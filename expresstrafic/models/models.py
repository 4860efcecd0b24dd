from enum import Enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Date,
    Time,
    DateTime,
    ForeignKey,
    Numeric,
    JSON,
    Index,
    text,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from expresstrafic.db.base import Base, utcnow


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    DELETED = "deleted"
    EXPIRED = "expired"


# statuses that block a seat
ACTIVE_RESERVATION_STATUSES = (ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value)


class UserStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"


class TokenType(str, Enum):
    EMAIL_VERIFICATION = "email_verification"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(32), nullable=True)
    phone_code = Column(String(8), nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_superuser = Column(Boolean, default=False, nullable=False)
    # client | admin
    role = Column(String(50), nullable=False, default="client", index=True)
    email_verified = Column(Boolean, default=False, nullable=False)
    email_verified_at = Column(DateTime(timezone=True), nullable=True)
    status = Column("statut", String(20), nullable=False, default=UserStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Operator(Base):
    __tablename__ = "operators"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False, unique=True, index=True)
    contact_email = Column(String(255), nullable=True)
    contact_phone = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    buses = relationship("Bus", back_populates="operator")


class Bus(Base):
    __tablename__ = "buses"
    id = Column(Integer, primary_key=True)
    operator_id = Column(Integer, ForeignKey("operators.id", ondelete="SET NULL"), nullable=True, index=True)
    registration_number = Column(String(64), nullable=False, unique=True, index=True)
    bus_type = Column(String(64), nullable=True)
    capacity = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    operator = relationship("Operator", back_populates="buses", lazy="joined")


class Trip(Base):
    __tablename__ = "trips"
    id = Column(Integer, primary_key=True)
    reference = Column(String(16), nullable=True, unique=True)
    departure_city = Column(String(128), nullable=False, index=True)
    arrival_city = Column(String(128), nullable=False, index=True)
    departure_date = Column(Date, nullable=False, index=True)
    departure_time = Column(Time, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    duration = Column(String(32), nullable=True)
    status = Column(String(20), nullable=False, default="active", index=True)
    bus_id = Column(Integer, ForeignKey("buses.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    bus = relationship("Bus", lazy="joined")


class Reservation(Base):
    __tablename__ = "reservations"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    seat_number = Column(Integer, nullable=False)
    payment_method = Column(String(32), nullable=True)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    code = Column(String(32), nullable=False, unique=True, index=True)
    status = Column(String(20), nullable=False, default=ReservationStatus.PENDING.value, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    ticket_url = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    trip = relationship("Trip", lazy="joined")

    # one active hold per (trip, seat); expired pending rows are flipped before insert
    __table_args__ = (
        Index(
            "uq_reservations_active_seat",
            "trip_id",
            "seat_number",
            unique=True,
            postgresql_where=text("status IN ('pending', 'confirmed')"),
            sqlite_where=text("status IN ('pending', 'confirmed')"),
        ),
    )


class VerificationToken(Base):
    __tablename__ = "user_tokens"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False, index=True)
    type = Column(String(32), nullable=False, default=TokenType.EMAIL_VERIFICATION.value)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used = Column(Boolean, default=False, nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("User", lazy="joined")

    __table_args__ = (Index("ix_user_tokens_user_type_created", "user_id", "type", "created_at"),)


class ContactMessage(Base):
    __tablename__ = "contact_messages"
    id = Column(Integer, primary_key=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True)
    phone_code = Column(String(8), nullable=True)
    subject = Column(String(100), nullable=False)
    sub_subject = Column(String(100), nullable=True)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

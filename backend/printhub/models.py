import uuid
from datetime import datetime
import enum
from sqlalchemy import (
    Column, String, Integer, DateTime, Date, Enum, Text, Boolean, Numeric, Float,
    Index, JSON, Uuid, UniqueConstraint
)
from printhub.core.database import Base


# =============================================================================
# ENUMS
# =============================================================================

class PrintJobStatus(str, enum.Enum):
    PENDING = "pending"        # Submitted by customer
    QUEUED = "queued"          # Accepted into the shop queue
    PRINTING = "printing"      # On the printer
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class BookingStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

class DayOfWeek(str, enum.Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

class ServiceType(str, enum.Enum):
    BLACK_WHITE = "black_white"
    COLOR = "color"
    CUSTOM = "custom"


def _values(enum_cls):
    return [member.value for member in enum_cls]


# =============================================================================
# MODELS
# =============================================================================

class PrintJob(Base):
    __tablename__ = "print_jobs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop_owner_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    customer_id = Column(Uuid(as_uuid=True), index=True)
    customer_name = Column(String(255))
    customer_email = Column(String(255))

    # File info
    file_name = Column(Text, nullable=False)
    file_url = Column(Text)
    file_size = Column(Integer)

    # Print configuration
    pages = Column(Integer, default=1)
    copies = Column(Integer, default=1)
    color_pages = Column(Integer, default=0)
    print_settings = Column(JSON)  # paperSize, colorType, paperQuality, copies

    total_cost = Column(Numeric(10, 2), default=0)

    status = Column(
        Enum(PrintJobStatus, values_callable=_values, name="print_job_status"),
        nullable=False,
        default=PrintJobStatus.PENDING
    )
    priority = Column(Integer, default=0)
    estimated_duration = Column(Integer)  # minutes
    actual_duration = Column(Integer)     # minutes
    notes = Column(Text)

    # Timestamps
    submitted_at = Column(DateTime, default=datetime.utcnow)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('idx_print_jobs_queue', 'shop_owner_id', 'status', 'submitted_at'),
    )


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop_owner_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    customer_id = Column(Uuid(as_uuid=True), index=True)
    customer_name = Column(String(255))
    customer_email = Column(String(255))

    time_slot_id = Column(Uuid(as_uuid=True))
    slot_date = Column(Date, nullable=False)
    slot_time = Column(String(5), nullable=False)  # HH:MM

    status = Column(
        Enum(BookingStatus, values_callable=_values, name="booking_status"),
        default=BookingStatus.CONFIRMED
    )
    notes = Column(Text)
    print_job_id = Column(Uuid(as_uuid=True))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class TimeSlot(Base):
    __tablename__ = "time_slots"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop_owner_id = Column(Uuid(as_uuid=True), nullable=False)
    slot_date = Column(Date, nullable=False)
    slot_time = Column(String(5), nullable=False)
    current_bookings = Column(Integer, nullable=False, default=0)
    max_capacity = Column(Integer, nullable=False, default=5)
    is_available = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('shop_owner_id', 'slot_date', 'slot_time', name='uq_time_slot'),
        Index('idx_time_slots_day', 'shop_owner_id', 'slot_date'),
    )


class ShopInfo(Base):
    """
    Private shop record: contact details visible to the owner only.
    """
    __tablename__ = "shop_info"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop_owner_id = Column(Uuid(as_uuid=True), nullable=False, unique=True)
    shop_name = Column(String(255), nullable=False)
    description = Column(Text)
    address = Column(Text)
    phone_number = Column(String(50))
    email_address = Column(String(255))
    website_url = Column(Text)
    logo_url = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PublicShopDirectory(Base):
    """
    Public listing for the same shop_owner_id. Kept in step with ShopInfo
    by shop_service (dual write) and repaired by the sync checker.
    """
    __tablename__ = "public_shop_directory"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop_owner_id = Column(Uuid(as_uuid=True), nullable=False, unique=True)
    shop_name = Column(String(255), nullable=False)
    description = Column(Text)
    address = Column(Text)
    website_url = Column(Text)
    logo_url = Column(Text)
    business_hours = Column(JSON)
    services_offered = Column(JSON)
    rating = Column(Float)
    total_reviews = Column(Integer, default=0)
    latitude = Column(Float)
    longitude = Column(Float)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PricingRule(Base):
    __tablename__ = "pricing_rules"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop_owner_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    service_type = Column(String(50), nullable=False)
    price_per_page = Column(Float, default=2.0)
    color_multiplier = Column(Float, default=1.0)
    minimum_charge = Column(Float, default=0.0)
    bulk_discount_threshold = Column(Integer, default=100)
    bulk_discount_percentage = Column(Float, default=0.0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, unique=True, index=True)
    full_name = Column(String(255))
    phone = Column(String(50))
    avatar_url = Column(Text)  # storage path inside the avatar bucket

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class OperatingHours(Base):
    __tablename__ = "operating_hours"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop_owner_id = Column(Uuid(as_uuid=True), nullable=False)
    day_of_week = Column(Enum(DayOfWeek, values_callable=_values, name="day_of_week"), nullable=False)
    open_time = Column(String(5), nullable=False, default="09:00")
    close_time = Column(String(5), nullable=False, default="18:00")
    is_open = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('shop_owner_id', 'day_of_week', name='uq_operating_hours_day'),
    )


class ShopSettings(Base):
    __tablename__ = "shop_settings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop_owner_id = Column(Uuid(as_uuid=True), nullable=False, unique=True)
    slot_duration_minutes = Column(Integer, default=10)
    max_jobs_per_slot = Column(Integer, default=5)
    advance_booking_days = Column(Integer, default=7)
    auto_accept_bookings = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Equipment(Base):
    __tablename__ = "equipment"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop_owner_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    equipment_name = Column(String(255), nullable=False)
    equipment_type = Column(String(100), nullable=False)
    brand = Column(String(100))
    model = Column(String(100))
    capabilities = Column(JSON)
    status = Column(String(50), default="active")
    last_maintenance = Column(Date)
    next_maintenance = Column(Date)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NotificationSettings(Base):
    __tablename__ = "notification_settings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop_owner_id = Column(Uuid(as_uuid=True), nullable=False, unique=True)
    email_notifications = Column(Boolean, default=True)
    sms_notifications = Column(Boolean, default=False)
    new_order_notifications = Column(Boolean, default=True)
    order_completion_notifications = Column(Boolean, default=True)
    low_supplies_notifications = Column(Boolean, default=False)
    equipment_maintenance_notifications = Column(Boolean, default=False)
    daily_summary_notifications = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PrintQueueSettings(Base):
    __tablename__ = "print_queue_settings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shop_id = Column(Uuid(as_uuid=True), nullable=False, unique=True)
    auto_accept = Column(Boolean, default=False)
    notification_enabled = Column(Boolean, default=True)
    queue_limit = Column(Integer, default=10)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

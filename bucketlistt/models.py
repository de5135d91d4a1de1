from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow():
    # Timestamps are stored as naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


ROLES = ("customer", "vendor", "agent", "admin")


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(150), unique=True, nullable=False)
    phone_number = db.Column(db.String(20))
    password = db.Column(db.String(200), nullable=False)  # Hashed Password
    email_confirmed = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    profile = db.relationship("Profile", uselist=False, back_populates="user")
    roles = db.relationship("UserRole", back_populates="user")

    def role_names(self):
        return [r.role for r in self.roles]


class Profile(db.Model):
    id = db.Column(db.Integer, db.ForeignKey("user.id"), primary_key=True)
    email = db.Column(db.String(150), index=True)
    phone_number = db.Column(db.String(20), index=True)
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    company_name = db.Column(db.String(200))
    address = db.Column(db.Text)
    gst_number = db.Column(db.String(30))
    state = db.Column(db.String(100))
    logo_url = db.Column(db.String(500))
    terms_accepted = db.Column(db.Boolean, default=False)

    user = db.relationship("User", back_populates="profile")

    @property
    def full_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class UserRole(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="customer")

    user = db.relationship("User", back_populates="roles")


class Destination(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)


class Experience(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    location = db.Column(db.String(500))
    location2 = db.Column(db.String(500))
    price = db.Column(db.Float, nullable=False, default=0)
    original_price = db.Column(db.Float)
    currency = db.Column(db.String(10), default="INR")
    category = db.Column(db.String(100))
    vendor_id = db.Column(db.Integer, db.ForeignKey("user.id"))
    destination_id = db.Column(db.Integer, db.ForeignKey("destination.id"))
    is_active = db.Column(db.Boolean, default=True)
    for_agent = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    destination = db.relationship("Destination")
    activities = db.relationship(
        "Activity", back_populates="experience", order_by="Activity.display_order"
    )


class Activity(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    experience_id = db.Column(db.Integer, db.ForeignKey("experience.id"), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    price = db.Column(db.Float)
    discounted_price = db.Column(db.Float)
    currency = db.Column(db.String(10))
    is_active = db.Column(db.Boolean, default=True)
    display_order = db.Column(db.Integer, default=0)

    experience = db.relationship("Experience", back_populates="activities")


class TimeSlot(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    experience_id = db.Column(db.Integer, db.ForeignKey("experience.id"), nullable=False)
    activity_id = db.Column(db.Integer, db.ForeignKey("activity.id"), nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)
    capacity = db.Column(db.Integer, nullable=False, default=0)

    activity = db.relationship("Activity")


class Booking(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    experience_id = db.Column(db.Integer, db.ForeignKey("experience.id"), nullable=False)
    time_slot_id = db.Column(db.Integer, db.ForeignKey("time_slot.id"), nullable=False)
    booking_date = db.Column(db.Date, nullable=False, index=True)
    total_participants = db.Column(db.Integer, nullable=False, default=1)
    booking_amount = db.Column(db.Float, default=0)
    due_amount = db.Column(db.Float, default=0)
    status = db.Column(db.String(20), nullable=False, default="confirmed")
    admin_note = db.Column(db.Text)
    note_for_guide = db.Column(db.Text)
    contact_person_name = db.Column(db.String(100))
    contact_person_number = db.Column(db.String(20))
    contact_person_email = db.Column(db.String(150))
    referral_code = db.Column(db.String(100))
    coupon_code = db.Column(db.String(50))
    booking_number = db.Column(db.String(20), index=True)
    razorpay_order_id = db.Column(db.String(100))
    razorpay_payment_id = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, default=utcnow)

    experience = db.relationship("Experience")
    time_slot = db.relationship("TimeSlot")
    participants = db.relationship("BookingParticipant", back_populates="booking")


class BookingParticipant(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("booking.id"), nullable=False)
    name = db.Column(db.String(100))
    email = db.Column(db.String(150))
    phone_number = db.Column(db.String(20))

    booking = db.relationship("Booking", back_populates="participants")


class BookingLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("booking.id"), nullable=False)
    action = db.Column(db.String(20), nullable=False)
    changed_by = db.Column(db.Integer, db.ForeignKey("user.id"))
    details = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)


class DiscountCoupon(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    experience_id = db.Column(db.Integer, db.ForeignKey("experience.id"), nullable=False)
    coupon_code = db.Column(db.String(50), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False, default="percentage")
    discount_value = db.Column(db.Float, nullable=False)
    max_uses = db.Column(db.Integer)
    used_count = db.Column(db.Integer, default=0)
    valid_until = db.Column(db.DateTime)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)


class OTPVerification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    identifier = db.Column(db.String(150), nullable=False, index=True)
    otp = db.Column(db.String(6), nullable=False)
    type = db.Column(db.String(10), nullable=False)  # email | sms
    expires_at = db.Column(db.DateTime, nullable=False)
    verified = db.Column(db.Boolean, default=False)
    verified_at = db.Column(db.DateTime)
    attempts = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)


class LoginToken(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(100), unique=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    used_at = db.Column(db.DateTime)

    user = db.relationship("User")


class PaymentOrder(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    razorpay_order_id = db.Column(db.String(100), unique=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(10), default="INR")
    booking_request = db.Column(db.JSON, nullable=False)
    paid = db.Column(db.Boolean, default=False)
    booking_id = db.Column(db.Integer, db.ForeignKey("booking.id"))
    created_at = db.Column(db.DateTime, default=utcnow)


class Invoice(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("booking.id"), nullable=False)
    booking_number = db.Column(db.String(20))
    invoice_number = db.Column(db.String(50), unique=True)
    invoice_date = db.Column(db.DateTime)
    customer_name = db.Column(db.String(100))
    customer_address = db.Column(db.Text)
    customer_email = db.Column(db.String(150))
    customer_phone = db.Column(db.String(20))
    experience_title = db.Column(db.String(200))
    activity_name = db.Column(db.String(200))
    date_time = db.Column(db.String(100))
    total_participants = db.Column(db.Integer)
    original_price_per_person = db.Column(db.Float)
    base_price_per_person = db.Column(db.Float)
    tax_amount_per_person = db.Column(db.Float)
    total_price_per_person = db.Column(db.Float)
    discount_per_person = db.Column(db.Float)
    net_price_per_person = db.Column(db.Float)
    total_base_price = db.Column(db.Float)
    total_tax_amount = db.Column(db.Float)
    total_amount = db.Column(db.Float)
    total_discount = db.Column(db.Float)
    total_net_price = db.Column(db.Float)
    currency = db.Column(db.String(10), default="INR")
    vendor_name = db.Column(db.String(200))
    vendor_address = db.Column(db.Text)
    vendor_gst = db.Column(db.String(30))
    place_of_supply = db.Column(db.String(100))
    hsn_code = db.Column(db.String(20))
    logo_url = db.Column(db.String(500))
    invoice_type = db.Column(db.String(20), default="tax")

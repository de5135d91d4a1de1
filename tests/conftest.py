from datetime import date, datetime, time, timedelta

import pytest
import razorpay.errors

from bucketlistt import create_app, messaging
from bucketlistt.config import TestConfig
from bucketlistt.models import (
    Activity,
    Booking,
    Destination,
    Experience,
    Profile,
    TimeSlot,
    User,
    UserRole,
    db,
)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def outbox(monkeypatch):
    """Captures outgoing email and SMS instead of calling the providers."""
    sent = {"email": [], "sms": [], "whatsapp": []}

    def fake_send_email(to_email, subject, html):
        sent["email"].append({"to": to_email, "subject": subject, "html": html})
        return {"id": f"email_{len(sent['email'])}"}

    def fake_send_otp_sms(phone, otp):
        sent["sms"].append({"to": phone, "otp": otp})
        return True

    def fake_send_whatsapp(payload):
        sent["whatsapp"].append(payload)
        return {"type": "success"}

    monkeypatch.setattr(messaging, "send_email", fake_send_email)
    monkeypatch.setattr(messaging, "send_otp_sms", fake_send_otp_sms)
    monkeypatch.setattr(messaging, "send_whatsapp_message", fake_send_whatsapp)
    return sent


class FakeRazorpay:
    """Records orders and accepts or rejects every signature."""

    def __init__(self, valid_signature=True):
        self.orders = []
        self.valid_signature = valid_signature
        self.order = self
        self.utility = self

    def create(self, data):
        self.orders.append(data)
        return {"id": f"order_{len(self.orders)}", "amount": data["amount"], "currency": data["currency"]}

    def verify_payment_signature(self, params):
        if not self.valid_signature:
            raise razorpay.errors.SignatureVerificationError("Razorpay Signature Verification Failed")
        return True


@pytest.fixture
def razorpay_fake(app):
    fake = FakeRazorpay()
    app.extensions["razorpay"] = fake
    return fake


def make_user(email, roles=("customer",), phone_number=None, first_name=None):
    user = User(email=email, password="x", email_confirmed=True, phone_number=phone_number)
    db.session.add(user)
    db.session.flush()
    db.session.add(Profile(id=user.id, email=email, phone_number=phone_number, first_name=first_name))
    for role in roles:
        db.session.add(UserRole(user_id=user.id, role=role))
    db.session.commit()
    return user


def login(client, user):
    with client.session_transaction() as session:
        session["user_id"] = user.id


@pytest.fixture
def customer(app):
    return make_user("traveler@example.com", first_name="Asha")


@pytest.fixture
def vendor(app):
    return make_user("vendor@example.com", roles=("vendor",), phone_number="919800000001")


@pytest.fixture
def admin(app):
    return make_user("admin@example.com", roles=("admin",))


@pytest.fixture
def experience(app, vendor):
    destination = Destination(name="Rishikesh", description="Adventure capital")
    db.session.add(destination)
    db.session.flush()
    exp = Experience(
        title="Rishikesh Bungy",
        description="Jump from India's highest fixed platform over the Ganges valley.",
        location="Mohan Chatti, Rishikesh",
        price=4000,
        currency="INR",
        category="Bungee",
        vendor_id=vendor.id,
        destination_id=destination.id,
    )
    db.session.add(exp)
    db.session.commit()
    return exp


@pytest.fixture
def activity(experience):
    act = Activity(
        experience_id=experience.id,
        name="Himalayan Bungy – 117m",
        price=4000,
        discounted_price=3500,
        currency="INR",
        display_order=1,
    )
    db.session.add(act)
    db.session.commit()
    return act


def make_slot(experience, activity, start, end, capacity):
    slot = TimeSlot(
        experience_id=experience.id,
        activity_id=activity.id,
        start_time=start,
        end_time=end,
        capacity=capacity,
    )
    db.session.add(slot)
    db.session.commit()
    return slot


@pytest.fixture
def slot(experience, activity):
    return make_slot(experience, activity, time(10, 0), time(11, 0), 10)


def make_booking(user, slot, booking_date, participants, status="confirmed"):
    booking = Booking(
        user_id=user.id,
        experience_id=slot.experience_id,
        time_slot_id=slot.id,
        booking_date=booking_date,
        total_participants=participants,
        booking_amount=3500 * participants,
        status=status,
        contact_person_name="Asha",
        contact_person_email=user.email,
        contact_person_number="9800000000",
    )
    db.session.add(booking)
    db.session.commit()
    return booking


@pytest.fixture
def future_date():
    return date.today() + timedelta(days=10)


def booking_payload(slot, booking_date, participant_count=2, **extra):
    payload = {
        "experience_id": slot.experience_id,
        "time_slot_id": slot.id,
        "booking_date": booking_date.isoformat(),
        "participant_count": participant_count,
        "participant": {"name": "Asha Rao", "email": "asha@example.com", "phone_number": "9800000000"},
    }
    payload.update(extra)
    return payload


# 12:00 and 15:00 in India on 2025-06-01
NOON_IST_UTC = datetime(2025, 6, 1, 6, 30)
AFTERNOON_IST_UTC = datetime(2025, 6, 1, 9, 30)

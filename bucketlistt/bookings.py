"""Booking creation and management.

Capacity is checked by reading the confirmed participant count and then
inserting, with no lock in between.  Two travelers booking the last spots at
the same moment can both succeed and oversubscribe the slot.
"""
import logging
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from bucketlistt import availability, invoices, messaging, pricing
from bucketlistt.errors import (
    DeliveryFailure,
    Forbidden,
    InvalidInput,
    NotFound,
    PersistenceFailure,
    SlotUnavailable,
)
from bucketlistt.models import (
    Booking,
    BookingLog,
    BookingParticipant,
    Experience,
    Profile,
    TimeSlot,
    db,
)

logger = logging.getLogger(__name__)


def parse_booking_request(data):
    """Validate a booking payload and return a plain dict that can be stored as JSON."""
    for field in ("experience_id", "time_slot_id", "booking_date"):
        if data.get(field) in (None, ""):
            raise InvalidInput(f"{field} is required")

    contact = data.get("participant") or {}
    if not contact.get("name") or not contact.get("email") or not contact.get("phone_number"):
        raise InvalidInput("Primary contact name, email and phone number are required")

    try:
        count = int(data.get("participant_count", 1))
        experience_id = int(data["experience_id"])
        time_slot_id = int(data["time_slot_id"])
    except (TypeError, ValueError):
        raise InvalidInput("experience_id, time_slot_id and participant_count must be integers")
    if count < 1:
        raise InvalidInput("Participant count must be at least 1")

    booking_date = availability.parse_date(data["booking_date"])
    return {
        "experience_id": experience_id,
        "time_slot_id": time_slot_id,
        "booking_date": booking_date.isoformat(),
        "participant_count": count,
        "participant": {
            "name": contact["name"].strip(),
            "email": contact["email"].strip(),
            "phone_number": str(contact["phone_number"]).strip(),
        },
        "note_for_guide": data.get("note_for_guide") or None,
        "referral_code": data.get("referral_code") or None,
        "coupon_code": data.get("coupon_code") or None,
        "partial_payment": bool(data.get("partial_payment")),
    }


def load_target(request_data):
    experience = db.session.get(Experience, request_data["experience_id"])
    if experience is None or not experience.is_active:
        raise NotFound("Experience not found")
    slot = db.session.get(TimeSlot, request_data["time_slot_id"])
    if slot is None or slot.experience_id != experience.id:
        raise NotFound("Time slot not found")
    return experience, slot


def quote(request_data, now=None):
    experience, slot = load_target(request_data)
    return pricing.quote_booking(
        experience,
        slot.activity,
        request_data["participant_count"],
        coupon_code=request_data["coupon_code"],
        partial_payment=request_data["partial_payment"],
        now=now,
    )


def log_action(booking, action, user_id=None, details=None):
    entry = BookingLog(booking_id=booking.id, action=action, changed_by=user_id, details=details)
    db.session.add(entry)
    return entry


def _backfill_phone(user, phone_number):
    if "vendor" in user.role_names():
        return
    profile = user.profile
    if profile is not None and not profile.phone_number:
        profile.phone_number = phone_number
        logger.info(f"Backfilled phone number for user {user.id}")


def confirmation_details(booking, quote_data=None):
    experience = booking.experience
    slot = booking.time_slot
    activity = slot.activity if slot is not None else None
    total = float(booking.booking_amount or 0)
    due = float(booking.due_amount or 0)
    when = booking.booking_date.strftime("%A, %d %B %Y")
    if slot is not None:
        when = f"{when} at {availability.format_time_12h(slot.start_time)}"
    return {
        "customerEmail": booking.contact_person_email,
        "customerName": booking.contact_person_name,
        "experienceTitle": experience.title,
        "activityName": activity.name if activity is not None else None,
        "formattedDateTime": when,
        "location": experience.location,
        "location2": experience.location2,
        "totalParticipants": booking.total_participants,
        "totalAmount": total,
        "upfrontAmount": round(total - due, 2),
        "dueAmount": due,
        "currency": (quote_data or {}).get("currency") or experience.currency or "INR",
        "bookingId": booking.booking_number or booking.id,
        "noteForGuide": booking.note_for_guide,
    }


def create_booking(user, request_data, quote_data=None, payment=None, check_capacity=True, now=None):
    """Insert a confirmed booking for ``user``.

    ``payment`` may carry ``razorpay_order_id``/``razorpay_payment_id``.  After
    a successful payment the capacity check is skipped since the money has
    already been taken.
    """
    experience, slot = load_target(request_data)
    booking_date = availability.parse_date(request_data["booking_date"])
    count = request_data["participant_count"]

    if check_capacity and not availability.is_slot_available(slot, booking_date, count, now=now):
        left = availability.slot_availability(slot, booking_date)
        raise SlotUnavailable(f"Only {left} spots available for this time slot")

    if quote_data is None:
        quote_data = quote(request_data, now=now)

    contact = request_data["participant"]
    payment = payment or {}
    booking = Booking(
        user_id=user.id,
        experience_id=experience.id,
        time_slot_id=slot.id,
        booking_date=booking_date,
        total_participants=count,
        booking_amount=quote_data["booking_amount"],
        due_amount=quote_data["due_amount"],
        status="confirmed",
        note_for_guide=request_data.get("note_for_guide"),
        contact_person_name=contact["name"],
        contact_person_number=contact["phone_number"],
        contact_person_email=contact["email"],
        referral_code=request_data.get("referral_code"),
        coupon_code=request_data.get("coupon_code"),
        booking_number=invoices.generate_booking_number(availability.today_ist(now)),
        razorpay_order_id=payment.get("razorpay_order_id"),
        razorpay_payment_id=payment.get("razorpay_payment_id"),
    )

    try:
        db.session.add(booking)
        db.session.flush()
        for _ in range(count):
            db.session.add(BookingParticipant(booking_id=booking.id, **contact))
        log_action(booking, "created", user.id, f"Booked {count} participant(s)")
        _backfill_phone(user, contact["phone_number"])
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Error creating booking for user {user.id}: {e}")
        raise PersistenceFailure("Failed to create booking")

    logger.info(f"Booking {booking.booking_number} created for user {user.id} on slot {slot.id}")

    try:
        messaging.send_booking_confirmation(confirmation_details(booking, quote_data))
    except DeliveryFailure as e:
        logger.warning(f"Confirmation email for booking {booking.id} not sent: {e}")

    return booking


def get_booking(booking_id):
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFound("Booking not found")
    return booking


def _check_owner_or_admin(booking, auth):
    if booking.user_id != auth.user_id and not auth.is_admin:
        raise Forbidden("You can only modify your own bookings")


def cancel_booking(booking_id, auth, reason=None):
    booking = get_booking(booking_id)
    _check_owner_or_admin(booking, auth)
    if booking.status == "cancelled":
        raise InvalidInput("Booking is already cancelled")
    booking.status = "cancelled"
    log_action(booking, "cancelled", auth.user_id, reason)
    db.session.commit()
    logger.info(f"Booking {booking.id} cancelled by user {auth.user_id}")
    return booking


def restore_booking(booking_id, auth):
    booking = get_booking(booking_id)
    _check_owner_or_admin(booking, auth)
    if booking.status != "cancelled":
        raise InvalidInput("Only cancelled bookings can be restored")
    booking.status = "confirmed"
    log_action(booking, "restored", auth.user_id)
    db.session.commit()
    logger.info(f"Booking {booking.id} restored by user {auth.user_id}")
    return booking


def update_admin_note(booking_id, note, auth):
    booking = get_booking(booking_id)
    booking.admin_note = note or None
    log_action(booking, "note_updated", auth.user_id, note)
    db.session.commit()
    return booking


def booking_timeline(booking_id):
    """Log entries for a booking, oldest first, with the actor's name."""
    get_booking(booking_id)
    rows = (
        db.session.query(BookingLog, Profile)
        .outerjoin(Profile, Profile.id == BookingLog.changed_by)
        .filter(BookingLog.booking_id == booking_id)
        .order_by(BookingLog.created_at.asc(), BookingLog.id.asc())
        .all()
    )
    return [
        {
            "id": log.id,
            "action": log.action,
            "details": log.details,
            "changed_by": log.changed_by,
            "changed_by_name": (profile.full_name or profile.email) if profile else None,
            "created_at": log.created_at.isoformat() if log.created_at else None,
        }
        for log, profile in rows
    ]


def list_user_bookings(user_id):
    return (
        Booking.query.filter_by(user_id=user_id)
        .order_by(Booking.booking_date.desc(), Booking.created_at.desc())
        .all()
    )


def vendor_calendar(vendor_id, week_start):
    """Non-cancelled bookings on the vendor's experiences, grouped by day for a week."""
    week_start = availability.parse_date(week_start)
    week_end = week_start + timedelta(days=6)
    rows = (
        Booking.query.join(Experience, Experience.id == Booking.experience_id)
        .filter(Experience.vendor_id == vendor_id)
        .filter(Booking.status != "cancelled")
        .filter(Booking.booking_date.between(week_start, week_end))
        .order_by(Booking.booking_date.asc())
        .all()
    )

    days = {(week_start + timedelta(days=i)).isoformat(): [] for i in range(7)}
    for booking in rows:
        days[booking.booking_date.isoformat()].append(serialize(booking))
    for entries in days.values():
        entries.sort(key=lambda b: b["start_time"] or "")
    return {"week_start": week_start.isoformat(), "week_end": week_end.isoformat(), "days": days}


def vendor_profile_for(booking):
    vendor_id = booking.experience.vendor_id if booking.experience else None
    if vendor_id is None:
        return None
    return db.session.get(Profile, vendor_id)


def serialize(booking):
    slot = booking.time_slot
    experience = booking.experience
    return {
        "id": booking.id,
        "booking_number": booking.booking_number,
        "user_id": booking.user_id,
        "experience_id": booking.experience_id,
        "experience_title": experience.title if experience else None,
        "activity_name": slot.activity.name if slot is not None and slot.activity else None,
        "time_slot_id": booking.time_slot_id,
        "start_time": slot.start_time.strftime("%H:%M") if slot is not None else None,
        "end_time": slot.end_time.strftime("%H:%M") if slot is not None else None,
        "booking_date": booking.booking_date.isoformat(),
        "total_participants": booking.total_participants,
        "booking_amount": booking.booking_amount,
        "due_amount": booking.due_amount,
        "status": booking.status,
        "note_for_guide": booking.note_for_guide,
        "admin_note": booking.admin_note,
        "contact_person_name": booking.contact_person_name,
        "contact_person_number": booking.contact_person_number,
        "contact_person_email": booking.contact_person_email,
        "coupon_code": booking.coupon_code,
        "razorpay_payment_id": booking.razorpay_payment_id,
        "created_at": booking.created_at.isoformat() if booking.created_at else None,
    }

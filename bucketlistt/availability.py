"""Time-slot capacity and the public time-slot lookup.

Remaining capacity is recomputed from confirmed bookings on every read and is
never stored.  "Today" and "past" are judged in India Standard Time.
"""
import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import func

from bucketlistt.errors import InvalidInput, NotFound
from bucketlistt.models import Activity, Booking, TimeSlot, db

logger = logging.getLogger(__name__)

IST = ZoneInfo("Asia/Kolkata")

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Names used by external booking widgets -> activity names stored here
ACTIVITY_NAME_ALIASES = {
    "FlyingFox(Tandem/Triple)": "Fying Fox (Tandem or triple Ride)",
    "Flying Fox (Solo)": "Flying Fox - Solo",
    "BungyJump+ValleyRopeJump": "Bungy Jump + Valley Rope Jump/Cut chord rope",
    "BungyJump+Cut Chord Rope": "Bungy Jump + Valley Rope Jump/Cut chord rope",
    "Himalayan Bungy": "Himalayan Bungy – 117m",
    "Free Style Bungy(111M)": "Free style Himalayan Bungy - 111 M",
    "Tandem Bungy(111M)": "Himalayan Tandem Bungy – 111m",
    "Giant Swing": "Himalayan Giant Swing",
    "Couple Bungee": "Couple Bungee Normal/Splash",
    "Tower Top Swing": "Tower top swing",
    "Glass Sky walk": "Glass Sky Walk",
    "Activa/Similar 2wheelere": "Activa or similar 2 wheeler",
    "RE Hunter 350cc": "Royal Enfield Hunter 350 CC",
    "RE Classic 350": "Royal Enfield Classic",
    "RE Himalayan 450cc": "Royal Enfield Himalayan 450 CC",
}


def now_ist(now=None):
    """Current IST wall-clock time; ``now`` is a naive UTC datetime."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(IST)


def today_ist(now=None):
    return now_ist(now).date()


def time_to_minutes(value):
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    hours, minutes = str(value).split(":")[:2]
    return int(hours) * 60 + int(minutes)


def format_time_12h(value):
    minutes = time_to_minutes(value)
    hour24, minute = divmod(minutes, 60)
    hour12 = 12 if hour24 == 0 else hour24 - 12 if hour24 > 12 else hour24
    suffix = "PM" if hour24 >= 12 else "AM"
    return f"{hour12}:{minute:02d} {suffix}"


def parse_date(value):
    if isinstance(value, date):
        return value
    if not value or not DATE_RE.match(str(value)):
        raise InvalidInput("Invalid date format. Expected yyyy-mm-dd")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise InvalidInput("Invalid date format. Expected yyyy-mm-dd")


def is_past_slot(slot, on_date, now=None):
    current = now_ist(now)
    if on_date != current.date():
        return False
    return time_to_minutes(slot.start_time) < current.hour * 60 + current.minute


def booked_counts(slot_ids, on_date):
    """Participants in confirmed bookings per slot on ``on_date``."""
    if not slot_ids:
        return {}
    rows = (
        db.session.query(Booking.time_slot_id, func.sum(Booking.total_participants))
        .filter(Booking.time_slot_id.in_(slot_ids))
        .filter(Booking.booking_date == on_date)
        .filter(Booking.status == "confirmed")
        .group_by(Booking.time_slot_id)
        .all()
    )
    return {slot_id: int(total or 0) for slot_id, total in rows}


def slot_state(slot, booked, party_size):
    available = max(0, slot.capacity - booked)
    return {
        "id": slot.id,
        "activity_id": slot.activity_id,
        "start_time": slot.start_time.strftime("%H:%M"),
        "end_time": slot.end_time.strftime("%H:%M"),
        "label": format_time_12h(slot.start_time),
        "capacity": slot.capacity,
        "booked_count": booked,
        "available_spots": available,
        "selectable": available >= party_size,
    }


def availability(activity_id, on_date, party_size=1, now=None):
    """Remaining capacity of every bookable slot of an activity on a date.

    Slots that already started today (IST) are left out; the rest are sorted
    by start time and flagged ``selectable`` when the party fits.
    """
    on_date = parse_date(on_date)
    if party_size < 1:
        raise InvalidInput("Participant count must be at least 1")

    slots = TimeSlot.query.filter_by(activity_id=activity_id).all()
    counts = booked_counts([s.id for s in slots], on_date)
    result = [
        slot_state(s, counts.get(s.id, 0), party_size)
        for s in slots
        if not is_past_slot(s, on_date, now)
    ]
    result.sort(key=lambda s: time_to_minutes(s["start_time"]))
    return result


def slot_availability(slot, on_date):
    return max(0, slot.capacity - booked_counts([slot.id], on_date).get(slot.id, 0))


def is_slot_available(slot, on_date, party_size, now=None):
    if is_past_slot(slot, on_date, now):
        return False
    return slot_availability(slot, on_date) >= party_size


def available_dates(experience_id, party_size=1, activity_id=None, days=365, now=None):
    """Dates from today (IST) on that have at least one slot the party fits in."""
    query = TimeSlot.query.filter_by(experience_id=experience_id)
    if activity_id:
        query = query.filter_by(activity_id=activity_id)
    slots = query.all()
    if not slots:
        return []

    start = today_ist(now)
    end = start + timedelta(days=days - 1)
    rows = (
        db.session.query(Booking.booking_date, Booking.time_slot_id, func.sum(Booking.total_participants))
        .filter(Booking.experience_id == experience_id)
        .filter(Booking.status == "confirmed")
        .filter(Booking.booking_date.between(start, end))
        .group_by(Booking.booking_date, Booking.time_slot_id)
        .all()
    )
    booked = {(d, slot_id): int(total or 0) for d, slot_id, total in rows}

    dates = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        if any(
            not is_past_slot(s, day, now) and s.capacity - booked.get((day, s.id), 0) >= party_size
            for s in slots
        ):
            dates.append(day)
    return dates


def resolve_activity(name):
    if str(name).isdigit():
        activity = db.session.get(Activity, int(name))
        if activity is None or not activity.is_active:
            raise NotFound("Activity not found")
        return activity

    mapped = ACTIVITY_NAME_ALIASES.get(name, name)
    logger.info(f"Activity name mapping: {name!r} -> {mapped!r}")
    activity = Activity.query.filter_by(name=mapped, is_active=True).first()
    if activity is None:
        raise NotFound("Activity not found")
    return activity


def get_time_slots(name, on_date, now=None):
    """Start-time options for an activity looked up by id or by name."""
    if not on_date:
        raise InvalidInput("Date is required in yyyy-mm-dd format")
    if not name:
        raise InvalidInput("Activity name is required")
    on_date = parse_date(on_date)

    activity = resolve_activity(name)
    slots = (
        TimeSlot.query.filter_by(activity_id=activity.id)
        .order_by(TimeSlot.start_time.asc())
        .all()
    )
    return [
        {"label": format_time_12h(s.start_time), "value": s.start_time.strftime("%H:%M")}
        for s in slots
        if not is_past_slot(s, on_date, now)
    ]

from flask import Blueprint, jsonify, request

from bucketlistt import availability, bookings, messaging, payments, sessions
from bucketlistt.errors import InvalidInput, NotFound
from bucketlistt.models import User, db
from bucketlistt.utils import get_json_body, login_required, logger, require_fields, roles_required

booking_bp = Blueprint('booking', __name__)


def _party_size():
    party_size = request.args.get("participants", default=1, type=int)
    if party_size is None or party_size < 1:
        raise InvalidInput("Participant count must be at least 1")
    return party_size


def _current_user():
    return db.session.get(User, sessions.current_session().user_id)


@booking_bp.route("/api/activities/<int:activity_id>/availability")
def activity_availability(activity_id):
    slots = availability.availability(activity_id, request.args.get("date"), _party_size())
    return jsonify({"activity_id": activity_id, "date": request.args.get("date"), "slots": slots})


@booking_bp.route("/api/experiences/<int:experience_id>/available-dates")
def available_dates(experience_id):
    dates = availability.available_dates(
        experience_id,
        party_size=_party_size(),
        activity_id=request.args.get("activity_id", type=int),
        days=min(request.args.get("days", default=365, type=int) or 365, 365),
    )
    return jsonify({"experience_id": experience_id, "dates": [d.isoformat() for d in dates]})


@booking_bp.route("/functions/get-time-slots", methods=["POST"])
def get_time_slots():
    data = get_json_body()
    try:
        options = availability.get_time_slots(data.get("name"), data.get("date"))
    except NotFound as e:
        logger.warning(f"Time slots requested for unknown activity {data.get('name')!r}")
        body = e.to_dict()
        body["options"] = []
        return jsonify(body), e.status
    return jsonify({"options": options})


@booking_bp.route("/api/bookings/quote", methods=["POST"])
def quote():
    request_data = bookings.parse_booking_request(get_json_body())
    return jsonify(bookings.quote(request_data))


@booking_bp.route("/api/bookings/checkout", methods=["POST"])
@login_required
def checkout():
    result = payments.checkout(_current_user(), get_json_body())
    return jsonify({"success": True, **result})


@booking_bp.route("/api/bookings/payment/verify", methods=["POST"])
@login_required
def verify_payment():
    data = get_json_body()
    booking = payments.verify_payment(
        _current_user(),
        data.get("razorpay_order_id"),
        data.get("razorpay_payment_id"),
        data.get("razorpay_signature"),
    )
    return jsonify({"success": True, "booking": bookings.serialize(booking)})


@booking_bp.route("/api/bookings")
@login_required
def my_bookings():
    auth = sessions.current_session()
    return jsonify([bookings.serialize(b) for b in bookings.list_user_bookings(auth.user_id)])


@booking_bp.route("/api/bookings/<int:booking_id>/cancel", methods=["POST"])
@login_required
def cancel(booking_id):
    data = request.get_json(silent=True) or {}
    booking = bookings.cancel_booking(booking_id, sessions.current_session(), data.get("reason"))
    return jsonify({"success": True, "booking": bookings.serialize(booking)})


@booking_bp.route("/api/bookings/<int:booking_id>/restore", methods=["POST"])
@login_required
def restore(booking_id):
    booking = bookings.restore_booking(booking_id, sessions.current_session())
    return jsonify({"success": True, "booking": bookings.serialize(booking)})


@booking_bp.route("/functions/send-booking-confirmation", methods=["POST"])
@login_required
def send_booking_confirmation():
    data = get_json_body()
    require_fields(data, "customerEmail", "experienceTitle")
    result = messaging.send_booking_confirmation(data)
    return jsonify({"success": True, "emailResponse": result})


@booking_bp.route("/functions/send-whatsapp-message", methods=["POST"])
@roles_required("vendor", "admin")
def send_whatsapp_message():
    return jsonify(messaging.send_whatsapp_message(get_json_body()))

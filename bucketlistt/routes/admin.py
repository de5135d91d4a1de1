from flask import Blueprint, jsonify, request

from bucketlistt import availability, bookings, coupons, experiences, invoices, pricing, sessions
from bucketlistt.errors import Forbidden, InvalidInput
from bucketlistt.utils import admin_required, get_json_body, login_required, require_fields, roles_required

admin_bp = Blueprint('admin', __name__)


# Coupons

@admin_bp.route("/api/experiences/<int:experience_id>/coupons")
@admin_required
def list_coupons(experience_id):
    return jsonify([coupons.serialize(c) for c in coupons.list_coupons(experience_id)])


@admin_bp.route("/api/experiences/<int:experience_id>/coupons", methods=["POST"])
@admin_required
def create_coupon(experience_id):
    data = get_json_body()
    coupon = coupons.create_coupon(
        experience_id,
        data.get("coupon_code"),
        data.get("type"),
        data.get("discount_value"),
        max_uses=data.get("max_uses"),
        valid_until=data.get("valid_until"),
    )
    return jsonify({"success": True, "coupon": coupons.serialize(coupon)}), 201


@admin_bp.route("/api/coupons/<int:coupon_id>", methods=["DELETE"])
@admin_required
def delete_coupon(coupon_id):
    coupons.deactivate_coupon(coupon_id)
    return jsonify({"success": True, "message": "Coupon deactivated"})


@admin_bp.route("/api/coupons/validate", methods=["POST"])
def validate_coupon():
    data = get_json_body()
    require_fields(data, "coupon_code", "experience_id")
    try:
        experience = experiences.get_experience(int(data["experience_id"]))
        activity_id = int(data["activity_id"]) if data.get("activity_id") else None
    except (TypeError, ValueError):
        raise InvalidInput("experience_id and activity_id must be integers")
    activity = next((a for a in experience.activities if a.id == activity_id), None)

    unit = data.get("unit_price")
    if unit in (None, ""):
        unit = pricing.unit_price(experience, activity)
    try:
        unit = float(unit)
    except (TypeError, ValueError):
        raise InvalidInput("unit_price must be a number")

    coupon = coupons.validate_coupon(data["coupon_code"], experience.id)
    return jsonify({
        "valid": True,
        "coupon": coupons.serialize(coupon),
        "calculation": coupons.discount_calculation(coupon, unit),
    })


# Booking administration

@admin_bp.route("/api/bookings/<int:booking_id>/admin-note", methods=["PATCH"])
@admin_required
def admin_note(booking_id):
    data = get_json_body()
    booking = bookings.update_admin_note(booking_id, data.get("admin_note"), sessions.current_session())
    return jsonify({"success": True, "booking": bookings.serialize(booking)})


@admin_bp.route("/api/bookings/<int:booking_id>/timeline")
@admin_required
def timeline(booking_id):
    return jsonify(bookings.booking_timeline(booking_id))


@admin_bp.route("/api/bookings/<int:booking_id>/invoice", methods=["POST"])
@login_required
def create_invoice(booking_id):
    auth = sessions.current_session()
    booking = bookings.get_booking(booking_id)
    vendor_id = booking.experience.vendor_id if booking.experience else None
    if not (auth.is_admin or booking.user_id == auth.user_id or vendor_id == auth.user_id):
        raise Forbidden("You cannot create an invoice for this booking")
    invoice = invoices.create_invoice_record(booking, bookings.vendor_profile_for(booking))
    return jsonify({"success": True, "invoice": invoices.serialize(invoice)})


# Vendors

@admin_bp.route("/functions/manage-experience", methods=["POST"])
@login_required
def manage_experience():
    data = get_json_body()
    result, message = experiences.toggle_experience(
        sessions.current_session(), data.get("experienceId"), data.get("action")
    )
    return jsonify({"success": True, "data": result, "message": message})


@admin_bp.route("/api/vendor/calendar")
@roles_required("vendor", "admin")
def vendor_calendar():
    auth = sessions.current_session()
    vendor_id = auth.user_id
    if auth.is_admin and request.args.get("vendor_id"):
        vendor_id = request.args.get("vendor_id", type=int)
    week_start = request.args.get("week_start") or availability.today_ist().isoformat()
    return jsonify(bookings.vendor_calendar(vendor_id, week_start))

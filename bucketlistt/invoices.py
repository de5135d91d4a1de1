"""Booking numbers and GST tax-invoice rows."""
import logging
from datetime import date, datetime

from flask import current_app
from sqlalchemy import func

from bucketlistt.models import Booking, Invoice, db

logger = logging.getLogger(__name__)


def generate_booking_number(today=None):
    """``YYMMDD`` followed by a two-digit running count for that day."""
    today = today or date.today()
    prefix = today.strftime("%y%m%d")
    last = (
        Booking.query
        .filter(Booking.booking_number.like(f"{prefix}%"))
        # Longer numbers are later, past the 99th booking of a day
        .order_by(func.length(Booking.booking_number).desc(), Booking.booking_number.desc())
        .first()
    )
    count = 1
    if last is not None:
        try:
            count = int(last.booking_number[6:]) + 1
        except ValueError:
            logger.warning(f"Unparseable booking number {last.booking_number}")
    return f"{prefix}{count:02d}"


def generate_invoice_number(booking_number, today=None):
    today = today or date.today()
    return f"INV-{booking_number}-{today.strftime('%Y%m%d')}"


def calculate_tax_invoice_data(booking, experience, activity=None, gst_rate=None):
    """Per-person and total figures for a GST-inclusive invoice.

    Tax is always computed on the original (undiscounted) price; the discount
    is taken off the net base.
    """
    gst_rate = current_app.config["GST_RATE"] if gst_rate is None else gst_rate
    factor = 1 + gst_rate
    participants = booking.total_participants or 1
    booking_amount = float(booking.booking_amount or 0)

    if activity is not None and activity.price is not None:
        original_pp = float(activity.price)
    else:
        original_pp = float(experience.price or 0) if experience is not None else 0.0

    ticket_pp = booking_amount / participants
    discount_pp = original_pp - ticket_pp
    discount_on_base_pp = discount_pp / factor

    original_base_pp = original_pp / factor
    original_tax_pp = original_base_pp * gst_rate
    final_net_pp = original_base_pp - discount_on_base_pp
    total_pp = final_net_pp + original_tax_pp

    return {
        "original_price_per_person": original_pp,
        "base_price_per_person": original_base_pp,
        "tax_amount_per_person": original_tax_pp,
        "total_price_per_person": total_pp,
        "discount_per_person": discount_pp,
        "net_price_per_person": original_base_pp,
        "total_base_price": original_base_pp * participants,
        "total_tax_amount": original_tax_pp * participants,
        "total_amount": total_pp * participants,
        "total_discount": discount_pp * participants,
        "total_net_price": original_base_pp * participants,
        "total_discount_on_base": discount_on_base_pp * participants,
    }


def _date_time_label(booking):
    day = booking.booking_date.strftime("%d/%m/%Y")
    slot = booking.time_slot
    if slot is None:
        return day
    return f"{day} - {slot.start_time.strftime('%H:%M')} - {slot.end_time.strftime('%H:%M')}"


def create_invoice_record(booking, vendor_profile=None, today=None):
    existing = Invoice.query.filter_by(booking_id=booking.id, invoice_type="tax").first()
    if existing is not None:
        return existing

    experience = booking.experience
    activity = booking.time_slot.activity if booking.time_slot else None
    tax = calculate_tax_invoice_data(booking, experience, activity)
    tax.pop("total_discount_on_base")

    if not booking.booking_number:
        booking.booking_number = generate_booking_number(today)

    vendor_name = ""
    if vendor_profile is not None:
        vendor_name = vendor_profile.full_name or vendor_profile.company_name or ""

    invoice = Invoice(
        booking_id=booking.id,
        booking_number=booking.booking_number,
        invoice_number=generate_invoice_number(booking.booking_number, today),
        invoice_date=datetime.combine(booking.booking_date, datetime.min.time()),
        customer_name=booking.contact_person_name or "Customer",
        customer_address=experience.location or "",
        customer_email=booking.contact_person_email,
        customer_phone=booking.contact_person_number,
        experience_title=experience.title or "Experience",
        activity_name=activity.name if activity is not None else "",
        date_time=_date_time_label(booking),
        total_participants=booking.total_participants or 1,
        currency=experience.currency or "INR",
        vendor_name=vendor_name or None,
        vendor_address=getattr(vendor_profile, "address", None),
        vendor_gst=getattr(vendor_profile, "gst_number", None),
        place_of_supply=getattr(vendor_profile, "state", None) or current_app.config["PLACE_OF_SUPPLY"],
        hsn_code=current_app.config["HSN_CODE"],
        logo_url=getattr(vendor_profile, "logo_url", None),
        invoice_type="tax",
        **tax,
    )
    db.session.add(invoice)
    db.session.commit()
    logger.info(f"Invoice {invoice.invoice_number} created for booking {booking.id}")
    return invoice


def serialize(invoice):
    data = {c.name: getattr(invoice, c.name) for c in Invoice.__table__.columns}
    data["invoice_date"] = invoice.invoice_date.date().isoformat() if invoice.invoice_date else None
    return data

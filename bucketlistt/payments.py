"""Razorpay checkout for bookings.

The upfront amount is charged through a Razorpay order.  The booking itself
is only written once the payment signature has been verified.
"""
import logging
import time

import razorpay.errors
from flask import current_app
from requests.exceptions import ConnectionError, RequestException
from sqlalchemy.exc import SQLAlchemyError

from bucketlistt import availability, bookings
from bucketlistt.errors import InvalidInput, NotFound, PaymentFailure, PersistenceFailure, SlotUnavailable
from bucketlistt.models import PaymentOrder, db
from bucketlistt.razorpay_client import get_razorpay_client

logger = logging.getLogger(__name__)

MAX_ORDER_ATTEMPTS = 3


def to_paise(amount):
    return int(round(float(amount) * 100))


def create_order(amount, currency, receipt, retry_delay=1):
    """Create a Razorpay order, retrying on connection problems."""
    client = get_razorpay_client()
    for attempt in range(MAX_ORDER_ATTEMPTS):
        try:
            logger.info(f"Attempting to create Razorpay order (attempt {attempt + 1})")
            order = client.order.create({
                "amount": to_paise(amount),
                "currency": currency,
                "receipt": receipt,
                "payment_capture": '1'
            })
            logger.info(f"Razorpay order {order['id']} created")
            return order

        except (ConnectionError, RequestException) as e:
            logger.warning(f"Connection error on attempt {attempt + 1}: {e}")
            if attempt == MAX_ORDER_ATTEMPTS - 1:
                raise PaymentFailure("Payment gateway is temporarily unavailable. Please try again in a moment.")
            time.sleep(retry_delay)

        except razorpay.errors.BadRequestError as e:
            logger.error(f"Razorpay BadRequestError: {e}")
            raise PaymentFailure("Invalid request to payment gateway. Please check your details and try again.")


def checkout(user, data, now=None):
    """Quote a booking and either book it outright or open a payment order.

    Returns ``{"requires_payment": False, "booking": ...}`` when nothing is
    due upfront, otherwise the Razorpay order the client has to pay.
    """
    request_data = bookings.parse_booking_request(data)
    experience, slot = bookings.load_target(request_data)
    booking_date = availability.parse_date(request_data["booking_date"])
    if not availability.is_slot_available(slot, booking_date, request_data["participant_count"], now=now):
        left = availability.slot_availability(slot, booking_date)
        raise SlotUnavailable(f"Only {left} spots available for this time slot")

    quote = bookings.quote(request_data, now=now)

    if quote["upfront_amount"] <= 0:
        booking = bookings.create_booking(user, request_data, quote_data=quote, now=now)
        return {"requires_payment": False, "quote": quote, "booking": bookings.serialize(booking)}

    order = create_order(
        quote["upfront_amount"],
        quote["currency"],
        receipt=f"exp{experience.id}_user{user.id}_{int(time.time())}",
    )
    payment_order = PaymentOrder(
        razorpay_order_id=order["id"],
        user_id=user.id,
        amount=quote["upfront_amount"],
        currency=quote["currency"],
        booking_request={"request": request_data, "quote": quote},
    )
    try:
        db.session.add(payment_order)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Error saving payment order {order['id']}: {e}")
        raise PersistenceFailure("Failed to save payment order")

    return {
        "requires_payment": True,
        "quote": quote,
        "razorpay_order_id": order["id"],
        "razorpay_key_id": current_app.config.get("KEY_ID"),
        "amount": to_paise(quote["upfront_amount"]),
        "currency": quote["currency"],
    }


def verify_payment(user, order_id, payment_id, signature, now=None):
    """Verify a Razorpay callback and write the booking it paid for.

    Verifying the same order twice returns the booking created the first time.
    """
    if not order_id or not payment_id or not signature:
        logger.error("Missing payment details in callback")
        raise InvalidInput("Missing payment details")

    params_dict = {
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": signature,
    }
    try:
        get_razorpay_client().utility.verify_payment_signature(params_dict)
    except razorpay.errors.SignatureVerificationError as e:
        logger.error(f"Payment signature verification failed for order {order_id}: {e}")
        raise PaymentFailure("Payment verification failed")
    logger.info("Payment signature verified successfully")

    payment_order = PaymentOrder.query.filter_by(razorpay_order_id=order_id).first()
    if payment_order is None:
        logger.warning(f"No payment order found for order ID: {order_id}")
        raise NotFound("Payment order not found")
    if payment_order.user_id != user.id:
        raise NotFound("Payment order not found")
    if payment_order.paid and payment_order.booking_id:
        return bookings.get_booking(payment_order.booking_id)

    stored = payment_order.booking_request
    booking = bookings.create_booking(
        user,
        stored["request"],
        quote_data=stored["quote"],
        payment={"razorpay_order_id": order_id, "razorpay_payment_id": payment_id},
        check_capacity=False,
        now=now,
    )
    payment_order.paid = True
    payment_order.booking_id = booking.id
    db.session.commit()
    logger.info(f"Payment order {order_id} marked as paid (booking {booking.id})")
    return booking

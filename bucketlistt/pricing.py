import math

from flask import current_app

from bucketlistt import coupons


def round_half_up(value):
    return int(math.floor(value + 0.5))


def money(value):
    return round(float(value), 2)


def _display(final_price, original_price, has_discount, discount_percentage):
    return {
        "final_price": final_price,
        "original_price": original_price,
        "has_discount": has_discount,
        "discount_percentage": discount_percentage,
    }


def resolve_display_price(experience, activity=None):
    """Price shown on a listing.

    Precedence: the activity's own discounted price, then the experience's
    original/current pair, then the plain base price.
    """
    base = (activity.price if activity is not None else None) or experience.price or 0
    discounted = activity.discounted_price if activity is not None else None

    if discounted and discounted != base:
        return _display(
            final_price=discounted,
            original_price=base,
            has_discount=True,
            discount_percentage=round_half_up((base - discounted) / base * 100) if base else 0,
        )

    if experience.original_price and experience.original_price != experience.price:
        original = experience.original_price
        return _display(
            final_price=experience.price,
            original_price=original,
            has_discount=True,
            discount_percentage=round_half_up((original - experience.price) / original * 100),
        )

    return _display(final_price=base, original_price=None, has_discount=False, discount_percentage=0)


def unit_price(experience, activity=None):
    """Per-person price charged at booking time."""
    if activity is not None:
        price = activity.discounted_price or activity.price
        if price:
            return float(price)
    return float(experience.price or 0)


def payment_split(total, partial_payment=False, rate=None):
    """Return ``(upfront, due)`` for a booking total."""
    total = money(total)
    if not partial_payment:
        return total, 0.0
    rate = current_app.config["PARTIAL_PAYMENT_RATE"] if rate is None else rate
    upfront = money(total * rate)
    return upfront, money(total - upfront)


def quote_booking(experience, activity, participants, coupon_code=None, partial_payment=False, now=None):
    unit = unit_price(experience, activity)
    calculation = None
    if coupon_code:
        coupon = coupons.validate_coupon(coupon_code, experience.id, now=now)
        calculation = coupons.discount_calculation(coupon, unit)
        unit = calculation["final_amount"]

    total = money(unit * participants)
    upfront, due = payment_split(total, partial_payment)
    return {
        "currency": (activity.currency if activity is not None and activity.currency else None)
        or experience.currency or "INR",
        "unit_price": unit,
        "participants": participants,
        "coupon": calculation,
        "booking_amount": total,
        "upfront_amount": upfront,
        "due_amount": due,
    }

"""Discount coupons, scoped to a single experience.

Coupons are managed by admins and quoted to travelers.  Quoting never
increments ``used_count``; redemption bookkeeping is not performed.
"""
import logging
import math
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from bucketlistt.errors import InvalidInput, NotFound, PersistenceFailure
from bucketlistt.models import DiscountCoupon, Experience, db, utcnow

logger = logging.getLogger(__name__)

COUPON_TYPES = ("flat", "percentage")


def _parse_datetime(value):
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        raise InvalidInput("valid_until must be an ISO date/time")


def _parse_max_uses(value):
    if value in (None, ""):
        return None
    try:
        uses = int(str(value).strip())
    except ValueError:
        raise InvalidInput("max_uses must be a whole number")
    if uses < 1:
        raise InvalidInput("max_uses must be positive")
    return uses


def create_coupon(experience_id, coupon_code, type, discount_value, max_uses=None, valid_until=None):
    code = (coupon_code or "").strip().upper()
    if not code:
        raise InvalidInput("Please fill in all required fields")
    if type not in COUPON_TYPES:
        raise InvalidInput("Coupon type must be 'flat' or 'percentage'")
    try:
        value = float(discount_value)
    except (TypeError, ValueError):
        raise InvalidInput("discount_value must be a number")
    if not math.isfinite(value):
        raise InvalidInput("discount_value must be a number")
    if value <= 0:
        raise InvalidInput("Please fill in all required fields")
    if type == "percentage" and value > 100:
        raise InvalidInput("Percentage discount must be between 0 and 100")
    uses = _parse_max_uses(max_uses)
    if db.session.get(Experience, experience_id) is None:
        raise NotFound("Experience not found")

    coupon = DiscountCoupon(
        experience_id=experience_id,
        coupon_code=code,
        type=type,
        discount_value=value,
        max_uses=uses,
        valid_until=_parse_datetime(valid_until),
    )
    try:
        db.session.add(coupon)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Error creating coupon {code}: {e}")
        raise PersistenceFailure("Failed to create coupon")

    logger.info(f"Coupon {code} created for experience {experience_id}")
    return coupon


def list_coupons(experience_id):
    return (
        DiscountCoupon.query
        .filter_by(experience_id=experience_id, is_active=True)
        .order_by(DiscountCoupon.created_at.desc())
        .all()
    )


def deactivate_coupon(coupon_id):
    coupon = db.session.get(DiscountCoupon, coupon_id)
    if coupon is None:
        raise NotFound("Coupon not found")
    coupon.is_active = False
    db.session.commit()
    logger.info(f"Coupon {coupon.coupon_code} deactivated")
    return coupon


def validate_coupon(coupon_code, experience_id, now=None):
    now = now or utcnow()
    code = (coupon_code or "").strip().upper()
    coupon = DiscountCoupon.query.filter_by(
        coupon_code=code, experience_id=experience_id, is_active=True
    ).first()
    if coupon is None:
        raise InvalidInput("Invalid coupon code", code="invalid_coupon")
    if coupon.valid_until is not None and now > coupon.valid_until:
        raise InvalidInput("Coupon has expired", code="coupon_expired")
    if coupon.max_uses is not None and (coupon.used_count or 0) >= coupon.max_uses:
        raise InvalidInput("Coupon usage limit reached", code="coupon_exhausted")
    return coupon


def discount_calculation(coupon, unit_price):
    """Per-person effect of a coupon on ``unit_price``."""
    unit_price = float(unit_price)
    if coupon.type == "percentage":
        discount = unit_price * coupon.discount_value / 100
    else:
        discount = min(coupon.discount_value, unit_price)
    discount = round(discount, 2)
    return {
        "original_amount": unit_price,
        "discount_amount": discount,
        "final_amount": round(unit_price - discount, 2),
        "savings_percentage": round(discount / unit_price * 100, 2) if unit_price else 0.0,
    }


def serialize(coupon):
    return {
        "id": coupon.id,
        "experience_id": coupon.experience_id,
        "coupon_code": coupon.coupon_code,
        "type": coupon.type,
        "discount_value": coupon.discount_value,
        "max_uses": coupon.max_uses,
        "used_count": coupon.used_count or 0,
        "valid_until": coupon.valid_until.isoformat() if coupon.valid_until else None,
        "is_active": coupon.is_active,
    }

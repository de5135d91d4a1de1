from types import SimpleNamespace

import pytest

from bucketlistt import pricing
from bucketlistt.errors import InvalidInput
from bucketlistt.models import DiscountCoupon, db


def exp(price, original_price=None, currency="INR", id=1):
    return SimpleNamespace(id=id, price=price, original_price=original_price, currency=currency)


def act(price, discounted_price=None, currency=None):
    return SimpleNamespace(price=price, discounted_price=discounted_price, currency=currency)


def test_activity_discount_wins():
    result = pricing.resolve_display_price(exp(150, original_price=200), act(100, 80))
    assert result == {"final_price": 80, "original_price": 100, "has_discount": True, "discount_percentage": 20}


def test_experience_original_price_used_without_activity_discount():
    result = pricing.resolve_display_price(exp(100, original_price=120))
    assert (result["final_price"], result["original_price"], result["discount_percentage"]) == (100, 120, 17)


def test_activity_discount_equal_to_base_is_ignored():
    result = pricing.resolve_display_price(exp(100, original_price=120), act(100, 100))
    assert result["final_price"] == 100
    assert result["original_price"] == 120


def test_plain_price():
    result = pricing.resolve_display_price(exp(500), act(None))
    assert result == {
        "final_price": 500,
        "original_price": None,
        "has_discount": False,
        "discount_percentage": 0,
    }


def test_half_percentages_round_up():
    # 12.5% off
    assert pricing.resolve_display_price(exp(100), act(800, 700))["discount_percentage"] == 13
    assert pricing.round_half_up(2.5) == 3
    assert pricing.round_half_up(2.4) == 2


def test_unit_price_prefers_activity_discount():
    assert pricing.unit_price(exp(900), act(800, 700)) == 700
    assert pricing.unit_price(exp(900), act(800)) == 800
    assert pricing.unit_price(exp(900), act(None)) == 900
    assert pricing.unit_price(exp(900)) == 900


def test_payment_split(app):
    assert pricing.payment_split(7000) == (7000, 0.0)
    assert pricing.payment_split(7000, partial_payment=True) == (700, 6300)
    assert pricing.payment_split(999.99, partial_payment=True) == (100.0, 899.99)


def test_quote_with_percentage_coupon(app, experience, activity):
    db.session.add(DiscountCoupon(
        experience_id=experience.id, coupon_code="MONSOON10", type="percentage", discount_value=10
    ))
    db.session.commit()

    quote = pricing.quote_booking(experience, activity, 2, coupon_code="monsoon10", partial_payment=True)
    assert quote["unit_price"] == 3150
    assert quote["booking_amount"] == 6300
    assert quote["upfront_amount"] == 630
    assert quote["due_amount"] == 5670
    assert quote["coupon"]["discount_amount"] == 350
    assert quote["currency"] == "INR"


def test_quote_with_unknown_coupon_fails(app, experience, activity):
    with pytest.raises(InvalidInput) as excinfo:
        pricing.quote_booking(experience, activity, 1, coupon_code="NOPE")
    assert excinfo.value.code == "invalid_coupon"

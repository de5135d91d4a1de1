from datetime import time

import pytest

from bucketlistt import chat, coupons
from bucketlistt.models import Experience, OTPVerification, db
from conftest import booking_payload, login, make_booking, make_slot, make_user


def test_cors_headers_on_every_response(client):
    response = client.get("/api/destinations")
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert "content-type" in response.headers["Access-Control-Allow-Headers"]

    preflight = client.options("/functions/send-otp")
    assert preflight.status_code == 200
    assert preflight.headers["Access-Control-Max-Age"] == "86400"


def test_malformed_json_is_rejected(client):
    response = client.post("/functions/send-otp", data="{oops", content_type="application/json")
    assert response.status_code == 400
    assert response.get_json()["error"] == "Invalid JSON in request body"


def test_unknown_route_is_json(client):
    response = client.get("/api/nowhere")
    assert response.status_code == 404
    assert response.get_json()["success"] is False


def test_otp_sign_in_flow(client, outbox):
    response = client.post("/functions/send-otp", json={"identifier": "new@example.com", "authMethod": "email"})
    assert response.get_json() == {"success": True, "message": "OTP sent to email"}

    code = OTPVerification.query.filter_by(identifier="new@example.com").one().otp
    response = client.post(
        "/functions/verify-otp", json={"identifier": "new@example.com", "otp": code, "authMethod": "email"}
    )
    body = response.get_json()
    assert body["success"] is True
    assert body["isNewUser"] is True
    assert "/auth/session?token=" in body["magicLink"]

    assert client.get("/auth/me").get_json()["authenticated"] is False
    token = body["magicLink"].split("token=", 1)[1]
    session = client.post("/auth/session", json={"token": token}).get_json()["session"]
    assert session["email"] == "new@example.com"
    assert session["roles"] == ["customer"]
    assert client.get("/auth/me").get_json()["authenticated"] is True

    # The link only works once
    assert client.post("/auth/session", json={"token": token}).status_code == 401

    client.post("/auth/logout")
    assert client.get("/auth/me").get_json()["authenticated"] is False


def test_wrong_code_status_codes(client, outbox):
    client.post("/functions/send-otp", json={"identifier": "9876543210", "authMethod": "sms"})
    response = client.post(
        "/functions/verify-otp", json={"identifier": "9876543210", "otp": "abcdef", "authMethod": "sms"}
    )
    assert response.status_code == 400
    assert response.get_json()["code"] == "invalid_otp"

    response = client.post("/functions/signin-with-otp", json={"identifier": "nobody@example.com", "otp": "1"})
    assert response.status_code == 404
    assert response.get_json()["code"] == "user_not_found"


def test_signup_with_otp_route(client, outbox):
    client.post("/functions/send-otp", json={"identifier": "guide@example.com", "authMethod": "email"})
    code = OTPVerification.query.filter_by(identifier="guide@example.com").one().otp
    body = client.post("/functions/signup-with-otp", json={
        "identifier": "guide@example.com", "otp": code, "type": "email", "role": "vendor",
    }).get_json()
    assert body["user"]["roles"] == ["vendor"]
    assert body["token"] in body["sessionLink"]

    again = client.post("/functions/signup-with-otp", json={
        "identifier": "guide@example.com", "otp": code, "type": "email",
    })
    assert again.status_code == 409


def test_check_user_exists_route(client, customer):
    body = client.post("/functions/check-user-exists", json={"email": customer.email}).get_json()
    assert body == {"userExists": True, "message": "User already registered"}
    assert client.post("/functions/check-user-exists", json={}).status_code == 400


def test_role_is_enforced_on_server(client, customer, admin, experience):
    url = f"/api/experiences/{experience.id}/coupons"
    payload = {"coupon_code": "monsoon", "type": "percentage", "discount_value": 10}

    assert client.post(url, json=payload).status_code == 401
    login(client, customer)
    assert client.post(url, json=payload).status_code == 403

    login(client, admin)
    response = client.post(url, json=payload)
    assert response.status_code == 201
    assert response.get_json()["coupon"]["coupon_code"] == "MONSOON"
    assert [c["coupon_code"] for c in client.get(url).get_json()] == ["MONSOON"]


def test_coupon_validate_route(client, experience, activity):
    coupons.create_coupon(experience.id, "FLAT500", "flat", 500)

    body = client.post("/api/coupons/validate", json={
        "coupon_code": "flat500", "experience_id": experience.id, "activity_id": activity.id,
    }).get_json()
    assert body["valid"] is True
    assert body["calculation"]["final_amount"] == 3000

    response = client.post("/api/coupons/validate", json={"coupon_code": "NOPE", "experience_id": experience.id})
    assert response.status_code == 400
    assert response.get_json()["code"] == "invalid_coupon"


def test_manage_experience(client, vendor, admin, experience):
    payload = {"experienceId": experience.id, "action": "toggle"}
    assert client.post("/functions/manage-experience", json=payload).status_code == 401

    login(client, vendor)
    body = client.post("/functions/manage-experience", json=payload).get_json()
    assert body["data"] == {"id": experience.id, "is_active": False}
    assert body["message"] == "Experience deactivated successfully"

    agent_payload = {"experienceId": experience.id, "action": "toggleForAgent"}
    assert client.post("/functions/manage-experience", json=agent_payload).status_code == 403
    bad = client.post("/functions/manage-experience", json={"experienceId": experience.id, "action": "delete"})
    assert bad.status_code == 400

    other_vendor = make_user("rival@example.com", roles=("vendor",))
    login(client, other_vendor)
    assert client.post("/functions/manage-experience", json=payload).status_code == 404

    login(client, admin)
    body = client.post("/functions/manage-experience", json=agent_payload).get_json()
    assert body["message"] == "Experience enabled for agents successfully"
    assert db.session.get(Experience, experience.id).for_agent is True


def test_customers_cannot_manage_experiences(client, customer, experience):
    login(client, customer)
    response = client.post("/functions/manage-experience", json={"experienceId": experience.id, "action": "toggle"})
    assert response.status_code == 403


def test_browse_endpoints(client, experience, activity):
    listing = client.get("/api/experiences?search=bungy").get_json()
    assert [e["title"] for e in listing] == ["Rishikesh Bungy"]
    assert client.get("/api/experiences?search=rafting").get_json() == []

    detail = client.get(f"/api/experiences/{experience.id}").get_json()
    assert detail["activities"][0]["pricing"] == {
        "final_price": 3500,
        "original_price": 4000,
        "has_discount": True,
        "discount_percentage": 13,
    }
    assert client.get("/api/experiences/999").status_code == 404


def test_availability_route(client, customer, slot, future_date):
    make_booking(customer, slot, future_date, 7)
    url = f"/api/activities/{slot.activity_id}/availability?date={future_date.isoformat()}&participants=4"
    (state,) = client.get(url).get_json()["slots"]
    assert state["available_spots"] == 3
    assert state["selectable"] is False

    bad = client.get(f"/api/activities/{slot.activity_id}/availability?date=tomorrow")
    assert bad.status_code == 400


def test_get_time_slots_route(client, experience, activity):
    make_slot(experience, activity, time(9, 0), time(10, 0), 5)
    future = "2030-01-01"
    body = client.post("/functions/get-time-slots", json={"name": "Himalayan Bungy", "date": future}).get_json()
    assert body == {"options": [{"label": "9:00 AM", "value": "09:00"}]}

    missing = client.post("/functions/get-time-slots", json={"name": "Zorbing", "date": future})
    assert missing.status_code == 404
    assert missing.get_json()["options"] == []

    bad = client.post("/functions/get-time-slots", json={"name": "Zorbing", "date": "1/1/2030"})
    assert bad.status_code == 400


def test_checkout_requires_login(client, slot, future_date):
    response = client.post("/api/bookings/checkout", json=booking_payload(slot, future_date))
    assert response.status_code == 401


def test_checkout_and_verify_routes(client, customer, slot, outbox, razorpay_fake, future_date):
    login(client, customer)

    body = client.post("/api/bookings/checkout", json=booking_payload(slot, future_date, 2)).get_json()
    assert body["requires_payment"] is True

    verified = client.post("/api/bookings/payment/verify", json={
        "razorpay_order_id": body["razorpay_order_id"],
        "razorpay_payment_id": "pay_1",
        "razorpay_signature": "sig",
    }).get_json()
    assert verified["booking"]["status"] == "confirmed"

    mine = client.get("/api/bookings").get_json()
    assert [b["id"] for b in mine] == [verified["booking"]["id"]]

    cancelled = client.post(f"/api/bookings/{mine[0]['id']}/cancel", json={"reason": "sick"}).get_json()
    assert cancelled["booking"]["status"] == "cancelled"


def test_booking_timeline_is_admin_only(client, customer, admin, slot, future_date):
    booking = make_booking(customer, slot, future_date, 1)
    login(client, customer)
    assert client.get(f"/api/bookings/{booking.id}/timeline").status_code == 403
    assert client.patch(f"/api/bookings/{booking.id}/admin-note", json={"admin_note": "x"}).status_code == 403

    login(client, admin)
    client.patch(f"/api/bookings/{booking.id}/admin-note", json={"admin_note": "VIP"})
    timeline = client.get(f"/api/bookings/{booking.id}/timeline").get_json()
    assert [entry["action"] for entry in timeline] == ["note_updated"]


def test_vendor_calendar_route(client, customer, vendor, slot, future_date):
    make_booking(customer, slot, future_date, 2)
    assert client.get("/api/vendor/calendar").status_code == 401

    login(client, vendor)
    body = client.get(f"/api/vendor/calendar?week_start={future_date.isoformat()}").get_json()
    assert len(body["days"][future_date.isoformat()]) == 1

    login(client, customer)
    assert client.get("/api/vendor/calendar").status_code == 403


def test_invoice_route(client, customer, slot, future_date):
    booking = make_booking(customer, slot, future_date, 2)
    stranger = make_user("stranger@example.com")
    login(client, stranger)
    assert client.post(f"/api/bookings/{booking.id}/invoice").status_code == 403

    login(client, customer)
    body = client.post(f"/api/bookings/{booking.id}/invoice").get_json()
    assert body["invoice"]["invoice_number"].startswith("INV-")


def test_send_booking_confirmation_route(client, customer, outbox):
    payload = {
        "customerEmail": "asha@example.com",
        "customerName": "Asha",
        "experienceTitle": "Rishikesh Bungy",
        "formattedDateTime": "Sunday, 1 June 2025 at 10:00 AM",
        "totalParticipants": 2,
        "totalAmount": "7000",
        "upfrontAmount": 700,
        "dueAmount": 6300,
        "currency": "INR",
        "bookingId": "25060101",
    }
    assert client.post("/functions/send-booking-confirmation", json=payload).status_code == 401
    assert outbox["email"] == []

    login(client, customer)
    response = client.post("/functions/send-booking-confirmation", json=payload)
    assert response.status_code == 200
    assert "₹7000.00" in outbox["email"][0]["html"]
    assert "₹6300.00" in outbox["email"][0]["html"]


def test_send_whatsapp_message_route(client, customer, vendor, outbox):
    payload = {"integrated_number": "919800000000", "payload": {"template": {"name": "booking"}}}
    assert client.post("/functions/send-whatsapp-message", json=payload).status_code == 401

    login(client, customer)
    assert client.post("/functions/send-whatsapp-message", json=payload).status_code == 403
    assert outbox["whatsapp"] == []

    login(client, vendor)
    assert client.post("/functions/send-whatsapp-message", json=payload).status_code == 200
    assert outbox["whatsapp"] == [payload]


def test_verify_otp_with_non_ascii_digits(client, outbox):
    client.post("/functions/send-otp", json={"identifier": "new@example.com", "authMethod": "email"})
    response = client.post(
        "/functions/verify-otp", json={"identifier": "new@example.com", "otp": "١٢٣٤٥٦", "authMethod": "email"}
    )
    assert response.status_code == 400
    assert response.get_json()["code"] == "invalid_otp"
    assert OTPVerification.query.filter_by(identifier="new@example.com").one().attempts == 1


def test_coupon_with_bad_max_uses_is_rejected(client, admin, experience):
    login(client, admin)
    response = client.post(f"/api/experiences/{experience.id}/coupons", json={
        "coupon_code": "TEN", "type": "flat", "discount_value": 100, "max_uses": "ten",
    })
    assert response.status_code == 400
    assert response.get_json()["error"] == "max_uses must be a whole number"


def test_chat_route(client, monkeypatch):
    captured = {}

    def fake_ask(message, context):
        captured["context"] = context
        return {"assistant_message": f"echo: {message}"}

    monkeypatch.setattr(chat, "ask_assistant", fake_ask)
    body = client.post("/api/chat", json={"message": "hello"}).get_json()
    assert body == {"assistant_message": "echo: hello"}
    assert captured["context"]["session"] is False
    assert client.post("/api/chat", json={"message": "  "}).status_code == 400


def test_health(client):
    body = client.get("/health").get_json()
    assert body["database"] == "OK"
    assert body["razorpay_configured"] is False
    assert body["email_configured"] is True


@pytest.mark.parametrize("days", ["0", "400"])
def test_available_dates_route_caps_window(client, slot, days):
    url = f"/api/experiences/{slot.experience_id}/available-dates?participants=1&days={days}"
    dates = client.get(url).get_json()["dates"]
    # Today drops out once its only slot has started
    assert len(dates) in (364, 365)
    assert dates == sorted(dates)

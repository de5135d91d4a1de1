"""Outbound email (Resend) and WhatsApp/SMS (MSG91) delivery."""
import logging

import requests
from flask import current_app, render_template
from requests.exceptions import RequestException

from bucketlistt.errors import DeliveryFailure

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"
MSG91_FLOW_URL = "https://control.msg91.com/api/v5/flow/"
MSG91_WHATSAPP_URL = "https://api.msg91.com/api/v5/whatsapp/whatsapp-outbound-message/bulk/"

_http = None


def get_http_session():
    global _http
    if _http is None:
        _http = requests.Session()
        for adapter in _http.adapters.values():
            adapter.max_retries = 3
    return _http


def send_email(to_email, subject, html):
    api_key = current_app.config.get("RESEND_API_KEY")
    if not api_key:
        logger.error("Resend API key not configured")
        raise DeliveryFailure("Email delivery is not configured")

    try:
        response = get_http_session().post(
            RESEND_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            json={
                "from": current_app.config["MAIL_FROM"],
                "to": [to_email],
                "subject": subject,
                "html": html,
            },
            timeout=10,
        )
    except RequestException as e:
        logger.error(f"Resend request failed: {e}")
        raise DeliveryFailure("Failed to send email")

    if not response.ok:
        logger.error(f"Resend email error ({response.status_code}): {response.text}")
        raise DeliveryFailure("Failed to send email")

    logger.info(f"Email '{subject}' sent to {to_email}")
    return response.json()


def send_otp_email(email, otp):
    html = render_template(
        "emails/otp.html", otp=otp, ttl_minutes=current_app.config["OTP_TTL_MINUTES"]
    )
    return send_email(email, "Your OTP Code - bucketlistt", html)


def send_otp_sms(phone, otp):
    """Send an OTP through the MSG91 flow API.

    ``phone`` must already carry the country code. The template variable is
    named ``var`` on the MSG91 side.
    """
    auth_key = current_app.config.get("WHATSAPP_MSG91_AUTH_KEY")
    template_id = current_app.config.get("MSG91_OTP_TEMPLATE_ID")
    if not auth_key:
        raise DeliveryFailure("MSG91 auth key not configured")
    if not template_id:
        raise DeliveryFailure("MSG91 OTP template ID not configured")

    body = {
        "template_id": template_id,
        "short_url": "0",
        "recipients": [{"mobiles": phone, "var": otp}],
    }
    try:
        response = get_http_session().post(
            MSG91_FLOW_URL, headers={"authkey": auth_key}, json=body, timeout=10
        )
    except RequestException as e:
        logger.error(f"MSG91 request failed: {e}")
        raise DeliveryFailure("Failed to send OTP SMS")

    logger.info(f"MSG91 OTP response (status {response.status_code}) for {phone}")
    if not response.ok:
        logger.error(f"MSG91 SMS error: {response.text}")
        raise DeliveryFailure("Failed to send OTP SMS")
    return True


def send_whatsapp_message(payload):
    auth_key = current_app.config.get("WHATSAPP_MSG91_AUTH_KEY")
    if not auth_key:
        raise DeliveryFailure("WhatsApp MSG91 auth key not configured")

    template = (payload.get("payload") or {}).get("template") or {}
    recipients = [tc.get("to") for tc in template.get("to_and_components", [])]
    logger.info(f"MSG91 WhatsApp request: template={template.get('name')} recipients={recipients}")

    try:
        response = get_http_session().post(
            MSG91_WHATSAPP_URL, headers={"authkey": auth_key}, json=payload, timeout=10
        )
    except RequestException as e:
        logger.error(f"MSG91 WhatsApp request failed: {e}")
        raise DeliveryFailure("Failed to send WhatsApp message")

    try:
        result = response.json()
    except ValueError:
        result = {"text": response.text}

    if not response.ok:
        logger.error(f"MSG91 API error ({response.status_code}): {result}")
        raise DeliveryFailure(f"MSG91 API error ({response.status_code})")

    if result.get("type") == "error" or "error" in str(result.get("message", "")).lower():
        logger.warning(f"MSG91 returned error in 200 response: {result}")
    return result


def currency_symbol(currency):
    return "$" if currency == "USD" else "₹" if currency == "INR" else currency


def send_booking_confirmation(details):
    """Email a booking confirmation; ``details`` uses the request's camelCase keys."""
    def amount(key):
        try:
            return float(details.get(key) or 0)
        except (TypeError, ValueError):
            return 0.0

    html = render_template(
        "emails/booking_confirmation.html",
        d=details,
        symbol=currency_symbol(details.get("currency")),
        total_amount=amount("totalAmount"),
        upfront_amount=amount("upfrontAmount"),
        due_amount=amount("dueAmount"),
    )
    return send_email(
        details["customerEmail"],
        f"Booking Confirmed: {details.get('experienceTitle', '')}",
        html,
    )

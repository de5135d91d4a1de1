import logging
import secrets

import razorpay
import razorpay.errors
import requests
from flask import current_app

logger = logging.getLogger(__name__)


class UnconfiguredRazorpayClient:
    """Stands in when KEY_ID/KEY_SECRET are missing, so local runs can quote."""

    class Order:
        def create(self, data):
            logger.warning("Razorpay is not configured - returning a local order")
            return {
                "id": f"order_local_{secrets.token_hex(6)}",
                "amount": data["amount"],
                "currency": data["currency"],
            }

    class Utility:
        def verify_payment_signature(self, params):
            logger.error("Cannot verify payment signature - Razorpay is not configured")
            raise razorpay.errors.SignatureVerificationError("Razorpay is not configured")

    def __init__(self):
        self.order = self.Order()
        self.utility = self.Utility()


def create_razorpay_client(key_id, key_secret):
    if not key_id or not key_secret:
        logger.error("Razorpay credentials not found in configuration")
        return UnconfiguredRazorpayClient()

    # Create a requests session with retry logic
    requests_session = requests.Session()
    for adapter in requests_session.adapters.values():
        adapter.max_retries = 3

    client = razorpay.Client(auth=(key_id, key_secret))
    client.session = requests_session
    return client


def get_razorpay_client():
    """One client per application, built from its config on first use."""
    client = current_app.extensions.get("razorpay")
    if client is None:
        client = create_razorpay_client(
            current_app.config.get("KEY_ID"), current_app.config.get("KEY_SECRET")
        )
        current_app.extensions["razorpay"] = client
    return client

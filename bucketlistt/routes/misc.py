import socket

import requests
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from bucketlistt.models import db
from bucketlistt.utils import logger

misc_bp = Blueprint('misc', __name__)

PROVIDER_HOSTS = {
    "razorpay": "https://api.razorpay.com",
    "resend": "https://api.resend.com",
    "msg91": "https://control.msg91.com",
    "groq": "https://api.groq.com",
}


@misc_bp.route("/network_test")
def network_test():
    results = {}
    for name, url in PROVIDER_HOSTS.items():
        host = url.split("://", 1)[1]
        # Test DNS resolution
        try:
            results[f"{name}_dns"] = f"Success: {socket.gethostbyname(host)}"
        except socket.gaierror as e:
            results[f"{name}_dns"] = f"Failed: {e}"

        # Test HTTP connection
        try:
            response = requests.get(url, timeout=10)
            results[f"{name}_http"] = f"Success: Status {response.status_code}"
        except requests.exceptions.RequestException as e:
            results[f"{name}_http"] = f"Failed: {e}"

    return jsonify(results)


@misc_bp.route("/health")
def health_check():
    try:
        db.session.execute(text("SELECT 1"))
        db_status = "OK"
    except SQLAlchemyError as e:
        logger.error(f"Health check database error: {e}")
        db_status = f"Error: {str(e)}"

    config = current_app.config
    return jsonify({
        "status": "healthy",
        "database": db_status,
        "razorpay_configured": bool(config.get("KEY_ID") and config.get("KEY_SECRET")),
        "email_configured": bool(config.get("RESEND_API_KEY")),
        "sms_configured": bool(config.get("WHATSAPP_MSG91_AUTH_KEY")),
        "assistant_configured": bool(config.get("GROQ_API_KEY")),
    })

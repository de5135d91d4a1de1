import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY") or "fallback_secret"

    db_url = os.environ.get("DATABASE_URL")
    if db_url and db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)

    SQLALCHEMY_DATABASE_URI = db_url or "sqlite:///bucketlistt.db"
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SQLALCHEMY_POOL_RECYCLE = 280
    SQLALCHEMY_POOL_TIMEOUT = 10
    SQLALCHEMY_ENGINE_OPTIONS = {'pool_pre_ping': True}

    # Razorpay
    KEY_ID = os.environ.get("KEY_ID")
    KEY_SECRET = os.environ.get("KEY_SECRET")

    # Email (Resend) and WhatsApp/SMS (MSG91)
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
    MAIL_FROM = os.environ.get("MAIL_FROM") or "bucketlistt <noreply@bucketlistt.com>"
    WHATSAPP_MSG91_AUTH_KEY = os.environ.get("WHATSAPP_MSG91_AUTH_KEY")
    MSG91_OTP_TEMPLATE_ID = os.environ.get("MSG91_OTP_TEMPLATE_ID")

    # AI assistant
    GROQ_API_KEY = os.environ.get("GROQ_API_KEY")
    GROQ_MODEL = os.environ.get("GROQ_MODEL") or "llama-3.1-8b-instant"
    GROQ_MAX_TOKENS = 800
    GROQ_TEMPERATURE = 0.7
    SUPPORT_PHONE = os.environ.get("SUPPORT_PHONE") or "+91 8511838237"

    # OTP
    OTP_TTL_MINUTES = 10
    OTP_MAX_ATTEMPTS = 5
    OTP_REVERIFY_WINDOW_SECONDS = 120
    DEFAULT_COUNTRY_CODE = "91"
    LOGIN_TOKEN_TTL_MINUTES = 15

    # Payments and invoices
    PARTIAL_PAYMENT_RATE = 0.1
    GST_RATE = 0.18
    HSN_CODE = "999799"
    PLACE_OF_SUPPLY = "Gujarat"


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test_secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}

    KEY_ID = None
    KEY_SECRET = None
    RESEND_API_KEY = "re_test"
    WHATSAPP_MSG91_AUTH_KEY = "msg91_test"
    MSG91_OTP_TEMPLATE_ID = "otp_template"
    GROQ_API_KEY = "gsk_test"

"""Passwordless sign-in with one-time codes.

Each identifier (email address or phone number) moves through
``NONE -> SENT -> VERIFIED -> CONSUMED``: :func:`send_otp` stores a fresh
code, one of the verify variants marks it verified, and the login token it
returns is consumed once by :func:`consume_login_token` to open a session.
"""
import hmac
import logging
import re
import secrets
from datetime import timedelta

from email_validator import EmailNotValidError, validate_email
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import generate_password_hash

from bucketlistt import messaging
from bucketlistt.errors import (
    Expired,
    Forbidden,
    InvalidCode,
    InvalidInput,
    NotFound,
    PersistenceFailure,
    TooManyAttempts,
    Unauthorized,
    UserAlreadyExists,
    UserNotFound,
)
from bucketlistt.models import (
    LoginToken,
    OTPVerification,
    Profile,
    User,
    UserRole,
    db,
    utcnow,
)

logger = logging.getLogger(__name__)

METHODS = ("email", "sms")
METHOD_ALIASES = {"phone": "sms", "whatsapp": "sms"}
SIGNUP_ROLES = ("customer", "vendor", "agent")
TEMP_EMAIL_DOMAIN = "bucketlistt.temp"


def normalize_method(method):
    method = METHOD_ALIASES.get(method, method)
    if method not in METHODS:
        raise InvalidInput("Invalid type. Use 'email' or 'sms'")
    return method


def normalize_phone(phone):
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) < 10:
        raise InvalidInput("Valid phone number is required")
    country_code = current_app.config["DEFAULT_COUNTRY_CODE"]
    if len(digits) == 10 or not digits.startswith(country_code):
        digits = country_code + digits
    return digits


def normalize_email(email):
    email = (email or "").strip()
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        raise InvalidInput("Valid email is required")
    return email.lower()


def normalize_identifier(identifier, method):
    method = normalize_method(method)
    if method == "email":
        return normalize_email(identifier), method
    return normalize_phone(identifier), method


def generate_otp():
    return str(100000 + secrets.randbelow(900000))


def send_otp(identifier, method, now=None):
    """Store a new code for ``identifier`` and deliver it.

    Older unverified codes for the same identifier and method are removed
    first, so at most one code is live at a time.
    """
    identifier, method = normalize_identifier(identifier, method)
    now = now or utcnow()
    otp = generate_otp()

    try:
        OTPVerification.query.filter_by(
            identifier=identifier, type=method, verified=False
        ).delete()
        db.session.add(OTPVerification(
            identifier=identifier,
            otp=otp,
            type=method,
            expires_at=now + timedelta(minutes=current_app.config["OTP_TTL_MINUTES"]),
            attempts=0,
            created_at=now,
        ))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Error storing OTP for {identifier}: {e}")
        raise PersistenceFailure("Failed to store OTP")

    if method == "email":
        messaging.send_otp_email(identifier, otp)
    else:
        messaging.send_otp_sms(identifier, otp)

    logger.info(f"OTP sent to {identifier} via {method}")
    return identifier


def _latest_unverified(identifier, method):
    return (
        OTPVerification.query
        .filter_by(identifier=identifier, type=method, verified=False)
        .order_by(OTPVerification.created_at.desc(), OTPVerification.id.desc())
        .first()
    )


def _codes_match(expected, given):
    # compare_digest only takes ASCII str, so compare the encoded bytes
    return hmac.compare_digest(expected.encode(), given.encode())


def _recently_verified(identifier, method, otp, now):
    window = timedelta(seconds=current_app.config["OTP_REVERIFY_WINDOW_SECONDS"])
    row = (
        OTPVerification.query
        .filter_by(identifier=identifier, type=method, verified=True)
        .filter(OTPVerification.verified_at >= now - window)
        .order_by(OTPVerification.verified_at.desc())
        .first()
    )
    if row and _codes_match(row.otp, str(otp)):
        return row
    return None


def check_code(identifier, method, otp, now=None, allow_recent=False):
    """Validate ``otp`` against the live code and mark it verified.

    Expiry and the attempt ceiling are checked before the code itself, so a
    correct code never rescues an expired or exhausted row.
    """
    now = now or utcnow()
    otp = str(otp or "").strip()
    row = _latest_unverified(identifier, method)

    if row is None:
        if allow_recent:
            recent = _recently_verified(identifier, method, otp, now)
            if recent is not None:
                logger.info(f"Accepting recently verified OTP for {identifier}")
                return recent
        raise NotFound("Invalid or expired OTP")

    if now > row.expires_at:
        raise Expired()

    if row.attempts >= current_app.config["OTP_MAX_ATTEMPTS"]:
        raise TooManyAttempts()

    if not _codes_match(row.otp, otp):
        row.attempts += 1
        db.session.commit()
        logger.warning(f"Wrong OTP for {identifier} (attempt {row.attempts})")
        raise InvalidCode()

    row.verified = True
    row.verified_at = now
    db.session.commit()
    logger.info(f"OTP verified for {identifier}")
    return row


def find_user(identifier, method):
    if method == "email":
        profile = Profile.query.filter_by(email=identifier).first()
    else:
        profile = Profile.query.filter_by(phone_number=identifier).first()
    return profile.user if profile else None


def create_user(identifier, method, role="customer"):
    email = identifier if method == "email" else f"{identifier}@{TEMP_EMAIL_DOMAIN}"
    phone = identifier if method == "sms" else None
    # Nobody ever learns this password; OTP is the only way in
    unusable = generate_password_hash(secrets.token_urlsafe(32))

    try:
        user = User(email=email, phone_number=phone, password=unusable, email_confirmed=True)
        db.session.add(user)
        db.session.flush()
        db.session.add(Profile(
            id=user.id,
            email=identifier if method == "email" else None,
            phone_number=phone,
            terms_accepted=True,
        ))
        db.session.add(UserRole(user_id=user.id, role=role))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Error creating user for {identifier}: {e}")
        raise PersistenceFailure("Failed to create user account")

    logger.info(f"Created {role} account {user.id} for {identifier}")
    return user


def issue_login_token(user, now=None):
    now = now or utcnow()
    token = secrets.token_urlsafe(32)
    db.session.add(LoginToken(
        token=token,
        user_id=user.id,
        expires_at=now + timedelta(minutes=current_app.config["LOGIN_TOKEN_TTL_MINUTES"]),
    ))
    db.session.commit()
    return token


def consume_login_token(token, now=None):
    now = now or utcnow()
    row = LoginToken.query.filter_by(token=token).first() if token else None
    if row is None or row.used_at is not None or now > row.expires_at:
        raise Unauthorized("Invalid or expired sign-in link")
    row.used_at = now
    db.session.commit()
    return row.user


def verify_otp(identifier, otp, method, now=None):
    """Verify a code and sign in, creating the account on first use."""
    identifier, method = normalize_identifier(identifier, method)
    check_code(identifier, method, otp, now=now)

    user = find_user(identifier, method)
    is_new = user is None
    if is_new:
        user = create_user(identifier, method)
    return {
        "user": user,
        "is_new_user": is_new,
        "token": issue_login_token(user, now=now),
    }


def signup_with_otp(identifier, otp, method, role="customer", now=None):
    identifier, method = normalize_identifier(identifier, method)
    if role not in SIGNUP_ROLES:
        raise InvalidInput(f"Invalid role: {role}")
    if find_user(identifier, method) is not None:
        raise UserAlreadyExists()

    check_code(identifier, method, otp, now=now, allow_recent=True)
    user = create_user(identifier, method, role=role)
    return {
        "user": user,
        "is_new_user": True,
        "token": issue_login_token(user, now=now),
    }


def signin_with_otp(identifier, otp, method, now=None):
    identifier, method = normalize_identifier(identifier, method)
    user = find_user(identifier, method)
    if user is None:
        raise UserNotFound()

    check_code(identifier, method, otp, now=now)
    return {
        "user": user,
        "is_new_user": False,
        "token": issue_login_token(user, now=now),
    }


def check_user_exists(email=None, phone_number=None):
    if email:
        return find_user(email.strip().lower(), "email") is not None
    if phone_number:
        return find_user(normalize_phone(phone_number), "sms") is not None
    raise InvalidInput("Email or phone number is required")


def user_payload(user):
    return {"id": user.id, "email": user.email, "roles": user.role_names()}


def update_user_email(user_id, new_email, auth):
    """Change the sign-in email of an account (its owner or an admin)."""
    if user_id != auth.user_id and not auth.is_admin:
        raise Forbidden("You can only update your own email")
    new_email = normalize_email(new_email)

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    taken = User.query.filter(db.func.lower(User.email) == new_email, User.id != user_id).first()
    if taken is not None:
        raise InvalidInput("Email is already in use", code="email_in_use")

    user.email = new_email
    if user.profile is not None:
        user.profile.email = new_email
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Error updating email for user {user_id}: {e}")
        raise PersistenceFailure("Failed to update email")
    logger.info(f"Email updated for user {user_id}")
    return user

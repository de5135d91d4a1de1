from flask import Blueprint, jsonify, request, url_for

from bucketlistt import otp, sessions
from bucketlistt.errors import InvalidInput
from bucketlistt.utils import get_json_body, login_required, require_fields

auth_bp = Blueprint('auth', __name__)


def _session_link(token):
    return url_for("auth.open_session", token=token, _external=True)


def _identifier_and_code(data):
    identifier = data.get("identifier")
    code = data.get("otp")
    if not identifier or not code:
        raise InvalidInput("Identifier and OTP are required")
    return identifier, code


@auth_bp.route("/functions/send-otp", methods=["POST"])
def send_otp():
    data = get_json_body()
    method = otp.normalize_method(data.get("authMethod") or data.get("type"))
    otp.send_otp(data.get("identifier"), method)
    target = "email" if method == "email" else "phone number"
    return jsonify({"success": True, "message": f"OTP sent to {target}"})


@auth_bp.route("/functions/verify-otp", methods=["POST"])
def verify_otp():
    data = get_json_body()
    identifier, code = _identifier_and_code(data)
    result = otp.verify_otp(identifier, code, data.get("authMethod") or data.get("type") or "email")
    return jsonify({
        "success": True,
        "message": "OTP verified successfully",
        "isNewUser": result["is_new_user"],
        "magicLink": _session_link(result["token"]),
    })


@auth_bp.route("/functions/signup-with-otp", methods=["POST"])
def signup_with_otp():
    data = get_json_body()
    identifier, code = _identifier_and_code(data)
    result = otp.signup_with_otp(
        identifier, code, data.get("type") or "email", role=data.get("role") or "customer"
    )
    return jsonify({
        "success": True,
        "message": "Account created successfully",
        "sessionLink": _session_link(result["token"]),
        "token": result["token"],
        "user": otp.user_payload(result["user"]),
    })


@auth_bp.route("/functions/signin-with-otp", methods=["POST"])
def signin_with_otp():
    data = get_json_body()
    identifier, code = _identifier_and_code(data)
    result = otp.signin_with_otp(identifier, code, data.get("type") or "email")
    return jsonify({
        "success": True,
        "message": "Signed in successfully",
        "sessionLink": _session_link(result["token"]),
        "token": result["token"],
        "user": otp.user_payload(result["user"]),
    })


@auth_bp.route("/functions/check-user-exists", methods=["POST"])
def check_user_exists():
    data = get_json_body()
    exists = otp.check_user_exists(email=data.get("email"), phone_number=data.get("phoneNumber"))
    return jsonify({
        "userExists": exists,
        "message": "User already registered" if exists else "Identifier available",
    })


@auth_bp.route("/functions/update-user-email", methods=["POST"])
@login_required
def update_user_email():
    data = get_json_body()
    if not data.get("userId") or not data.get("newEmail"):
        raise InvalidInput("User ID and new email are required")
    try:
        user_id = int(data["userId"])
    except (TypeError, ValueError):
        raise InvalidInput("User ID must be an integer")
    user = otp.update_user_email(user_id, data["newEmail"], sessions.current_session())
    return jsonify({
        "success": True,
        "message": "Email updated successfully",
        "user": {"id": user.id, "email": user.email},
    })


@auth_bp.route("/auth/session", methods=["GET", "POST"])
def open_session():
    if request.method == "POST":
        data = get_json_body()
        require_fields(data, "token")
        token = data["token"]
    else:
        token = request.args.get("token")
    user = otp.consume_login_token(token)
    auth = sessions.login(user)
    return jsonify({"success": True, "session": auth.to_dict()})


@auth_bp.route("/auth/logout", methods=["POST"])
def logout():
    sessions.logout()
    return jsonify({"success": True, "message": "Logged out successfully"})


@auth_bp.route("/auth/me")
def me():
    return jsonify(sessions.current_session().to_dict())

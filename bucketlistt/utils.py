import logging
from functools import wraps

from flask import request

from bucketlistt.errors import Forbidden, InvalidInput, Unauthorized
from bucketlistt.sessions import current_session

# Configure logging for your app (adjust level as needed)
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "GET, POST, PATCH, DELETE, OPTIONS",
    "Access-Control-Max-Age": "86400",
}


def add_cors_headers(response):
    for key, value in CORS_HEADERS.items():
        response.headers[key] = value
    return response


def get_json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInput("Invalid JSON in request body")
    return data


def require_fields(data, *names):
    missing = [n for n in names if data.get(n) in (None, "")]
    if missing:
        raise InvalidInput(f"Missing required fields: {', '.join(missing)}")


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_session().is_authenticated:
            raise Unauthorized("Please sign in to continue")
        return f(*args, **kwargs)
    return decorated_function


def roles_required(*roles):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            auth = current_session()
            if not auth.is_authenticated:
                raise Unauthorized("Please sign in to continue")
            if not auth.has_role(*roles):
                raise Forbidden(f"Requires role: {' or '.join(roles)}")
            return f(*args, **kwargs)
        return decorated_function
    return decorator


admin_required = roles_required("admin")

"""Failures raised by the service layer and rendered as JSON by the app."""


class BucketlisttError(Exception):
    status = 400
    code = "error"

    def __init__(self, message=None, code=None):
        super().__init__(message or self.__class__.__doc__)
        if code:
            self.code = code

    def to_dict(self):
        return {"success": False, "error": str(self), "code": self.code}


class InvalidInput(BucketlisttError):
    """Invalid input"""
    code = "invalid_input"


class NotFound(BucketlisttError):
    """Not found"""
    status = 404
    code = "not_found"


class Expired(BucketlisttError):
    """OTP has expired. Please request a new one."""
    code = "otp_expired"


class TooManyAttempts(BucketlisttError):
    """Too many failed attempts. Please request a new OTP."""
    status = 429
    code = "too_many_attempts"


class InvalidCode(BucketlisttError):
    """Invalid OTP"""
    code = "invalid_otp"


class UserAlreadyExists(BucketlisttError):
    """User already registered"""
    status = 409
    code = "user_already_exists"


class UserNotFound(BucketlisttError):
    """No account found. Please sign up first."""
    status = 404
    code = "user_not_found"


class Unauthorized(BucketlisttError):
    """Unauthorized"""
    status = 401
    code = "unauthorized"


class Forbidden(BucketlisttError):
    """Forbidden"""
    status = 403
    code = "forbidden"


class SlotUnavailable(BucketlisttError):
    """This time slot is fully booked. Please select another time slot."""
    status = 409
    code = "slot_unavailable"


class DeliveryFailure(BucketlisttError):
    """Failed to deliver message"""
    status = 502
    code = "delivery_failure"


class PaymentFailure(BucketlisttError):
    """Payment could not be processed"""
    status = 402
    code = "payment_failure"


class PersistenceFailure(BucketlisttError):
    """Could not save data"""
    status = 500
    code = "persistence_failure"

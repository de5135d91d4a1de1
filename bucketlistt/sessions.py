"""Request-scoped authentication session.

The signed Flask session cookie only carries the user id.  Every request
rebuilds an :class:`AuthSession` from it and caches it on ``flask.g``, so role
checks always see the roles currently stored in the database.
"""
import logging

from flask import g, session

from bucketlistt.models import User, db

logger = logging.getLogger(__name__)

SESSION_KEY = "user_id"


class AuthSession:
    def __init__(self, user_id=None, email=None, roles=None):
        self.user_id = user_id
        self.email = email
        self.roles = list(roles or [])

    @property
    def is_authenticated(self):
        return self.user_id is not None

    def has_role(self, *roles):
        return any(r in self.roles for r in roles)

    @property
    def is_admin(self):
        return self.has_role("admin")

    def to_dict(self):
        return {
            "authenticated": self.is_authenticated,
            "user_id": self.user_id,
            "email": self.email,
            "roles": list(self.roles),
        }


ANONYMOUS = AuthSession()


def reset_session_cache():
    g.pop("auth_session", None)


def current_session():
    if "auth_session" not in g:
        g.auth_session = _load_session()
    return g.auth_session


def _load_session():
    user_id = session.get(SESSION_KEY)
    if user_id is None:
        return ANONYMOUS
    user = db.session.get(User, user_id)
    if user is None:
        # The account behind the cookie is gone
        session.pop(SESSION_KEY, None)
        return ANONYMOUS
    return AuthSession(user_id=user.id, email=user.email, roles=user.role_names())


def login(user):
    session.clear()
    session[SESSION_KEY] = user.id
    g.auth_session = AuthSession(user_id=user.id, email=user.email, roles=user.role_names())
    logger.info(f"User {user.id} logged in")
    return g.auth_session


def logout():
    auth = current_session()
    session.clear()
    g.auth_session = ANONYMOUS
    if auth.is_authenticated:
        logger.info(f"User {auth.user_id} logged out")

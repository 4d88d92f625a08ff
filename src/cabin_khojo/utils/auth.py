# src/cabin_khojo/utils/auth.py
from dataclasses import dataclass
from functools import wraps
from typing import Optional

from flask import request, jsonify, g
from cabin_khojo.config import get_config
from cabin_khojo.utils.database import init_db, Profile
from cabin_khojo.utils.logger import setup_logger

logger = setup_logger(__name__)
config = get_config()

USER_ID_HEADER = "X-User-Id"


@dataclass
class AuthOutcome:
    """Result of a role check; redirect_to is where the caller should be sent."""
    allowed: bool
    role: Optional[str]
    redirect_to: str
    debug: str
    profile: Optional[Profile] = None
    status_code: int = 200


def current_user_id():
    """Authenticated user id forwarded by the upstream auth layer."""
    user_id = request.headers.get(USER_ID_HEADER, "").strip()
    return user_id or None


def check_role(session, user_id, expected_role=None):
    """
    Resolve the caller's profile and compare its role against expected_role.
    With expected_role=None any known profile is allowed and redirected to its home page.
    """
    if not user_id:
        return AuthOutcome(False, None, config.LOGIN_PATH,
                           "No user found in authentication", status_code=401)

    profile = session.query(Profile).filter_by(id=user_id).first()
    if not profile:
        return AuthOutcome(False, None, config.LOGIN_PATH,
                           f"Profile not found for user {user_id}", status_code=401)

    if expected_role and profile.role != expected_role:
        logger.warning(f"Unauthorized access attempt by role: {profile.role}", extra={"user_id": user_id})
        return AuthOutcome(False, profile.role, config.LOGIN_PATH,
                           f"User role is: {profile.role}, expected: {expected_role}",
                           profile=profile, status_code=403)

    debug = f"Authenticated as {profile.role}: {profile.name}"
    if profile.department:
        debug += f", Department: {profile.department}"
    return AuthOutcome(True, profile.role, config.home_for_role(profile.role), debug, profile=profile)


def require_role(role):
    """Route decorator: rejects callers whose profile role differs, exposes the profile as g.profile."""
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            session = init_db()
            outcome = check_role(session, current_user_id(), role)
            if not outcome.allowed:
                return jsonify({
                    "error": "Unauthorized",
                    "redirect_to": outcome.redirect_to,
                    "debug": outcome.debug,
                }), outcome.status_code
            g.profile = outcome.profile
            return view(*args, **kwargs)
        return wrapper
    return decorator

# src/cabin_khojo/routes/__init__.py
from flask import Blueprint, jsonify
from cabin_khojo.utils.auth import check_role, current_user_id
from cabin_khojo.utils.database import init_db
from cabin_khojo.utils.logger import setup_logger
from .gatepass import gatepass_bp
from .roster import roster_bp
from .guard import guard_bp

logger = setup_logger(__name__)

session_bp = Blueprint('session', __name__)


@session_bp.route("/whoami", methods=["GET"])
def whoami():
    """Where the current user belongs: their role and landing page, or the login page."""
    outcome = check_role(init_db(), current_user_id())
    body = {"role": outcome.role, "redirect_to": outcome.redirect_to, "debug": outcome.debug}
    if outcome.profile is not None:
        body["profile"] = outcome.profile.to_dict()
    return jsonify(body), outcome.status_code


@session_bp.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok"}), 200


def register_routes(app):
    logger.info("Registering session_bp")
    app.register_blueprint(session_bp)
    logger.info("Registering gatepass_bp")
    app.register_blueprint(gatepass_bp)
    logger.info("Registering roster_bp")
    app.register_blueprint(roster_bp)
    logger.info("Registering guard_bp")
    app.register_blueprint(guard_bp)
    logger.info("All blueprints registered successfully")

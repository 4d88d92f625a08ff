from flask import Blueprint, request, jsonify
from cabin_khojo.services.verification_service import verify_scanned_payload
from cabin_khojo.utils.auth import require_role
from cabin_khojo.utils.logger import setup_logger
import traceback
import uuid

guard_bp = Blueprint('guard', __name__)
logger = setup_logger(__name__)


@guard_bp.route("/guard/verify", methods=["POST"])
@require_role("guard")
def verify_gatepass_route():
    """Verify text decoded by a guard's scanner client. Every scan outcome is a 200 result."""
    request_id = str(uuid.uuid4())

    data = request.get_json(silent=True)
    payload = data.get("payload") if isinstance(data, dict) else None
    if not payload:
        logger.error("Missing scanned payload", extra={"request_id": request_id})
        return jsonify({"error": "payload is required"}), 400

    try:
        result = verify_scanned_payload(payload, request_id)
        return jsonify(result.to_dict()), 200
    except Exception as e:
        logger.error(f"Error verifying gate pass: {str(e)}\n{traceback.format_exc()}",
                     extra={"request_id": request_id})
        return jsonify({"error": f"Failed to verify gate pass: {str(e)}"}), 500

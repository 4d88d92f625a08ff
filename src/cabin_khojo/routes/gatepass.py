from flask import Blueprint, request, jsonify, g, send_file
from cabin_khojo.services.gatepass_service import (
    create_gatepass,
    list_student_gatepasses,
    list_hod_gatepasses,
    transition_gatepass,
    download_qr,
)
from cabin_khojo.utils.auth import require_role
from cabin_khojo.utils.logger import setup_logger
import io
import traceback
import uuid

gatepass_bp = Blueprint('gatepass', __name__)
logger = setup_logger(__name__)


@gatepass_bp.route("/student/gatepasses", methods=["POST"])
@require_role("student")
def create_gatepass_route():
    request_id = str(uuid.uuid4())

    data = request.get_json(silent=True)
    if isinstance(data, dict):
        logger.debug(f"Received request for /student/gatepasses with body: {data}",
                     extra={"request_id": request_id})
    else:
        logger.debug(f"Received malformed JSON or no JSON in request body: {request.data}",
                     extra={"request_id": request_id})
        data = {}

    reason = data.get("reason") or request.form.get("reason")
    date = data.get("date") or request.form.get("date")

    try:
        result, status_code = create_gatepass(g.profile.id, reason, date, request_id)
        return jsonify(result), status_code
    except Exception as e:
        logger.error(f"Error creating gate pass: {str(e)}\n{traceback.format_exc()}",
                     extra={"request_id": request_id})
        return jsonify({"error": f"Failed to create gate pass: {str(e)}"}), 500


@gatepass_bp.route("/student/gatepasses", methods=["GET"])
@require_role("student")
def list_student_gatepasses_route():
    try:
        result, status_code = list_student_gatepasses(g.profile.id)
        return jsonify(result), status_code
    except Exception as e:
        logger.error(f"Error fetching gate passes: {str(e)}\n{traceback.format_exc()}")
        return jsonify({"error": f"Failed to fetch gate passes: {str(e)}"}), 500


@gatepass_bp.route("/hod/gatepasses", methods=["GET"])
@require_role("hod")
def list_hod_gatepasses_route():
    status_filter = request.args.get("status", "all")
    try:
        result, status_code = list_hod_gatepasses(g.profile.id, status_filter)
        return jsonify(result), status_code
    except Exception as e:
        logger.error(f"Error fetching gate passes for HOD {g.profile.id}: {str(e)}\n{traceback.format_exc()}")
        return jsonify({"error": f"Failed to fetch gate passes: {str(e)}"}), 500


@gatepass_bp.route("/hod/gatepasses/<pass_id>/<action>", methods=["POST"])
@require_role("hod")
def transition_gatepass_route(pass_id, action):
    request_id = str(uuid.uuid4())
    if action not in ("approve", "reject", "undo"):
        return jsonify({"error": f"Unknown action: {action}"}), 404

    try:
        result, status_code = transition_gatepass(pass_id, g.profile.id, action, request_id)
        return jsonify(result), status_code
    except Exception as e:
        logger.error(f"Error during {action} of gate pass {pass_id}: {str(e)}\n{traceback.format_exc()}",
                     extra={"request_id": request_id})
        return jsonify({"error": f"Failed to {action} gate pass: {str(e)}"}), 500


@gatepass_bp.route("/hod/gatepasses/<pass_id>/qr", methods=["GET"])
@require_role("hod")
def download_qr_route(pass_id):
    result, status_code = download_qr(pass_id, g.profile.id)
    if status_code != 200:
        return jsonify(result), status_code
    return send_file(
        io.BytesIO(result["content"]),
        mimetype="image/png",
        as_attachment=True,
        download_name=result["filename"],
    )

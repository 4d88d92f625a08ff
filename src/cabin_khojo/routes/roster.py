from flask import Blueprint, request, jsonify, g
from cabin_khojo.services.roster_service import (
    list_students,
    promote_student,
    demote_student,
    promote_students,
    demote_students,
    promote_cohort,
    demote_cohort,
)
from cabin_khojo.utils.auth import require_role
from cabin_khojo.utils.logger import setup_logger
import traceback
import uuid

roster_bp = Blueprint('roster', __name__)
logger = setup_logger(__name__)

SINGLE = {"promote": promote_student, "demote": demote_student}
SELECTED = {"promote": promote_students, "demote": demote_students}
COHORT = {"promote": promote_cohort, "demote": demote_cohort}


def _parse_year(value):
    """Accept an int or a digit string; floats and booleans are rejected rather than truncated."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid year: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValueError(f"Invalid year: {value!r}")


@roster_bp.route("/hod/students", methods=["GET"])
@require_role("hod")
def list_students_route():
    try:
        year = _parse_year(request.args.get("year"))
    except ValueError:
        return jsonify({"error": "year must be a number"}), 400
    result, status_code = list_students(g.profile.department, year)
    return jsonify(result), status_code


@roster_bp.route("/hod/students/<student_id>/<action>", methods=["POST"])
@require_role("hod")
def shift_student_route(student_id, action):
    request_id = str(uuid.uuid4())
    if action not in SINGLE:
        return jsonify({"error": f"Unknown action: {action}"}), 404
    try:
        result, status_code = SINGLE[action](student_id, g.profile.department, request_id)
        return jsonify(result), status_code
    except Exception as e:
        logger.error(f"Error during {action} of {student_id}: {str(e)}\n{traceback.format_exc()}",
                     extra={"request_id": request_id})
        return jsonify({"error": f"Failed to {action} student: {str(e)}"}), 500


@roster_bp.route("/hod/students/<action>", methods=["POST"])
@require_role("hod")
def shift_batch_route(action):
    """Batch promote/demote: body carries either student_ids or a whole year cohort."""
    request_id = str(uuid.uuid4())
    if action not in SELECTED:
        return jsonify({"error": f"Unknown action: {action}"}), 404

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    logger.debug(f"Batch {action} request: {data}", extra={"request_id": request_id})

    student_ids = data.get("student_ids")
    try:
        year = _parse_year(data.get("year"))
    except (TypeError, ValueError):
        return jsonify({"error": "year must be a number"}), 400

    if student_ids is None and year is None:
        return jsonify({"error": "student_ids or year is required"}), 400
    if student_ids is not None and not isinstance(student_ids, list):
        return jsonify({"error": "student_ids must be a list"}), 400

    try:
        if student_ids is not None:
            result, status_code = SELECTED[action](student_ids, g.profile.department, request_id)
        else:
            result, status_code = COHORT[action](g.profile.department, year, request_id)
        return jsonify(result), status_code
    except Exception as e:
        logger.error(f"Error during batch {action}: {str(e)}\n{traceback.format_exc()}",
                     extra={"request_id": request_id})
        return jsonify({"error": f"Failed to {action} students: {str(e)}"}), 500

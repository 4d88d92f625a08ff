import re
import traceback
from datetime import datetime, timezone

from sqlalchemy import func

from cabin_khojo.utils.database import init_db, Profile, GatePass
from cabin_khojo.utils.storage import fetch_public_object
from cabin_khojo.services.qr_service import publish_qr
from cabin_khojo.utils.logger import setup_logger

logger = setup_logger(__name__)

STATUS_FILTERS = ("all", "pending", "approved", "rejected", "used")

# action -> (allowed source statuses, target status, success message)
TRANSITIONS = {
    "approve": (("pending",), "approved", "Gate pass approved successfully! QR code generated."),
    "reject": (("pending", "approved"), "rejected", "Gate pass rejected."),
    "undo": (("approved", "rejected"), "pending", "Gate pass status reset to pending."),
}


def find_department_hod(session, department):
    """The HOD assigned to new passes of a department, or None."""
    if not department:
        return None
    hods = (
        session.query(Profile)
        .filter(Profile.department == department, Profile.role == "hod")
        .order_by(Profile.created_at.asc())
        .all()
    )
    if len(hods) > 1:
        logger.warning(f"Department {department} has {len(hods)} HODs; using {hods[0].id}")
    return hods[0] if hods else None


def create_gatepass(student_id, reason, date, request_id=None):
    """Insert a pending gate pass for a student, routed to the HOD of the student's department."""
    session = init_db()
    extra_log = {"request_id": request_id, "student_id": student_id}
    try:
        if any(value is not None and not isinstance(value, str) for value in (reason, date)):
            logger.error(f"Non-string reason or date: {reason!r}, {date!r}", extra=extra_log)
            return {"error": "reason and date must be strings"}, 400

        reason = (reason or "").strip()
        date = (date or "").strip()
        if not student_id or not reason or not date:
            logger.error("Missing student_id, reason or date", extra=extra_log)
            return {"error": "reason and date are required"}, 400

        try:
            requested = datetime.strptime(date, "%Y-%m-%d").date()
        except ValueError:
            logger.error(f"Invalid date format: {date}", extra=extra_log)
            return {"error": "Invalid date format (expected YYYY-MM-DD)"}, 400
        if requested < datetime.now(timezone.utc).date():
            logger.error(f"Gate pass date in the past: {date}", extra=extra_log)
            return {"error": "Date cannot be in the past"}, 400

        student = session.query(Profile).filter_by(id=student_id).first()
        if not student or student.role != "student":
            logger.error(f"Student profile not found: {student_id}", extra=extra_log)
            return {"error": "Student profile not found"}, 404

        hod = find_department_hod(session, student.department)
        if not hod:
            logger.error(f"No HOD for department {student.department}", extra=extra_log)
            return {"error": "Unable to determine department HOD. Please try again."}, 400

        gate_pass = GatePass(
            student_id=student.id,
            hod_id=hod.id,
            reason=reason,
            date=date,
            status="pending",
        )
        session.add(gate_pass)
        session.commit()
        logger.info(f"Gate pass {gate_pass.id} created for {student_id}, routed to HOD {hod.id}", extra=extra_log)
        return {"status": "Gate pass requested", "gatepass": gate_pass.to_dict()}, 201

    except Exception as e:
        session.rollback()
        logger.error(f"Error in create_gatepass: {str(e)}\n{traceback.format_exc()}", extra=extra_log)
        return {"error": f"Internal server error: {str(e)}"}, 500


def list_student_gatepasses(student_id):
    session = init_db()
    passes = (
        session.query(GatePass)
        .filter(GatePass.student_id == student_id)
        .order_by(GatePass.created_at.desc())
        .all()
    )
    return {"gatepasses": [p.to_dict() for p in passes], "count": len(passes)}, 200


def list_hod_gatepasses(hod_id, status_filter="all"):
    """Passes assigned to a HOD, newest first, with per-status counts over all of them."""
    session = init_db()
    status_filter = (status_filter or "all").lower()
    if status_filter not in STATUS_FILTERS:
        return {"error": f"Invalid status filter: {status_filter}"}, 400

    query = session.query(GatePass).filter(GatePass.hod_id == hod_id)
    if status_filter != "all":
        query = query.filter(GatePass.status == status_filter)
    passes = query.order_by(GatePass.created_at.desc()).all()

    counts = {status: 0 for status in ("pending", "approved", "rejected")}
    rows = (
        session.query(GatePass.status, func.count(GatePass.id))
        .filter(GatePass.hod_id == hod_id)
        .group_by(GatePass.status)
        .all()
    )
    for status, count in rows:
        counts[status] = count

    return {
        "filter": status_filter,
        "gatepasses": [p.to_dict(with_student=True) for p in passes],
        "count": len(passes),
        "counts": counts,
    }, 200


def transition_gatepass(pass_id, hod_id, action, request_id=None):
    """
    Apply approve/reject/undo to a pass owned by hod_id.
    Approve renders and uploads the QR first and stores its URL; reject and undo clear it.
    Concurrent transitions on one pass are not serialized: the last commit wins.
    """
    session = init_db()
    extra_log = {"request_id": request_id, "pass_id": pass_id, "hod_id": hod_id}
    if action not in TRANSITIONS:
        return {"error": f"Unknown action: {action}"}, 400
    if not pass_id:
        return {"error": "pass id is required"}, 400

    from_statuses, target, message = TRANSITIONS[action]
    try:
        gate_pass = session.query(GatePass).filter_by(id=pass_id, hod_id=hod_id).first()
        if not gate_pass:
            logger.error(f"Gate pass {pass_id} not found for HOD {hod_id}", extra=extra_log)
            return {"error": "Gate pass not found"}, 404

        if gate_pass.status not in from_statuses:
            logger.warning(f"Cannot {action} gate pass in status {gate_pass.status}", extra=extra_log)
            return {
                "error": f"Cannot {action} a gate pass that is {gate_pass.status}",
                "status": gate_pass.status,
            }, 409

        qr_url = None
        if action == "approve":
            hod = session.query(Profile).filter_by(id=hod_id).first()
            try:
                qr_url = publish_qr(gate_pass.id, gate_pass.student_id, hod.department if hod else None, request_id)
            except Exception as e:
                logger.error(f"QR generation/upload failed: {str(e)}", extra=extra_log)
                return {"error": f"Error approving gate pass: {str(e)}"}, 502

        gate_pass.status = target
        gate_pass.qr_url = qr_url
        session.commit()
        logger.info(f"Gate pass {pass_id}: {action} -> {target}", extra=extra_log)
        return {"status": message, "gatepass": gate_pass.to_dict()}, 200

    except Exception as e:
        session.rollback()
        logger.error(f"Error in transition_gatepass({action}): {str(e)}\n{traceback.format_exc()}", extra=extra_log)
        return {"error": f"Error updating gate pass: {str(e)}"}, 500


def approve_gatepass(pass_id, hod_id, request_id=None):
    return transition_gatepass(pass_id, hod_id, "approve", request_id)


def reject_gatepass(pass_id, hod_id, request_id=None):
    return transition_gatepass(pass_id, hod_id, "reject", request_id)


def undo_gatepass(pass_id, hod_id, request_id=None):
    return transition_gatepass(pass_id, hod_id, "undo", request_id)


def qr_download_filename(student_name):
    slug = re.sub(r"\s+", "-", (student_name or "student").strip()).lower()
    return f"gate-pass-{slug}.png"


def download_qr(pass_id, hod_id):
    """Fetch the stored QR image of one of the HOD's passes. Result carries raw PNG bytes."""
    session = init_db()
    extra_log = {"pass_id": pass_id, "hod_id": hod_id}
    gate_pass = session.query(GatePass).filter_by(id=pass_id, hod_id=hod_id).first()
    if not gate_pass:
        return {"error": "Gate pass not found"}, 404
    if not gate_pass.qr_url:
        return {"error": "No QR code generated for this gate pass"}, 404

    try:
        content = fetch_public_object(gate_pass.qr_url)
    except Exception as e:
        logger.error(f"Error downloading QR code: {str(e)}", extra=extra_log)
        return {"error": "Error downloading QR code"}, 502

    student_name = gate_pass.student.name if gate_pass.student else None
    return {"content": content, "filename": qr_download_filename(student_name)}, 200

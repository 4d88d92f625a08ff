import traceback

from cabin_khojo.config import get_config
from cabin_khojo.utils.database import init_db, Profile
from cabin_khojo.utils.logger import setup_logger

logger = setup_logger(__name__)
config = get_config()


def _boundary(delta):
    return config.MAX_YEAR if delta > 0 else config.MIN_YEAR


def _boundary_message(delta, count=1):
    if delta > 0:
        if count == 1:
            return f"Student is already in final year (Year {config.MAX_YEAR})"
        return f"Cannot promote: {count} selected students are already in Year {config.MAX_YEAR}"
    if count == 1:
        return f"Student is already in first year (Year {config.MIN_YEAR})"
    return f"Cannot demote: {count} selected students are already in Year {config.MIN_YEAR}"


def _verb(delta):
    return "promote" if delta > 0 else "demote"


def list_students(department, year=None):
    session = init_db()
    query = session.query(Profile).filter(Profile.role == "student", Profile.department == department)
    if year is not None:
        query = query.filter(Profile.year == year)
    students = query.order_by(Profile.year.asc(), Profile.name.asc()).all()
    return {"students": [s.to_dict() for s in students], "count": len(students)}, 200


def _apply_shift(session, student_id, delta):
    """One guarded UPDATE per student, committed on its own. Returns True if the row changed."""
    query = session.query(Profile).filter(Profile.id == student_id, Profile.role == "student")
    if delta > 0:
        query = query.filter(Profile.year < config.MAX_YEAR)
    else:
        query = query.filter(Profile.year > config.MIN_YEAR)
    updated = query.update({Profile.year: Profile.year + delta}, synchronize_session=False)
    session.commit()
    return updated == 1


def _shift_one(student_id, delta, department=None, request_id=None):
    session = init_db()
    extra_log = {"request_id": request_id, "student_id": student_id}
    try:
        student = session.query(Profile).filter_by(id=student_id, role="student").first()
        if not student:
            return {"error": "Student not found"}, 404
        if department is not None and student.department != department:
            logger.warning(f"Student {student_id} is outside department {department}", extra=extra_log)
            return {"error": "Student does not belong to your department"}, 403

        if student.year is None or student.year == _boundary(delta):
            message = _boundary_message(delta)
            logger.info(f"{_verb(delta)} refused for {student_id}: {message}", extra=extra_log)
            return {"status": "warning", "message": message, "student": student.to_dict()}, 200

        if not _apply_shift(session, student_id, delta):
            return {"error": "Student year changed, please refresh"}, 409

        session.refresh(student)
        logger.info(f"Student {student_id} {_verb(delta)}d to year {student.year}", extra=extra_log)
        return {"status": "success", "message": f"Student {_verb(delta)}d to Year {student.year}",
                "student": student.to_dict()}, 200

    except Exception as e:
        session.rollback()
        logger.error(f"Error in {_verb(delta)}_student: {str(e)}\n{traceback.format_exc()}", extra=extra_log)
        return {"error": f"Error updating student: {str(e)}"}, 500


def promote_student(student_id, department=None, request_id=None):
    return _shift_one(student_id, 1, department, request_id)


def demote_student(student_id, department=None, request_id=None):
    return _shift_one(student_id, -1, department, request_id)


def _shift_batch(students, delta, request_id=None):
    """
    Refuse the whole batch if any member is at the boundary. Otherwise update every
    member independently; a failure leaves earlier updates in place and is reported.
    """
    session = init_db()
    extra_log = {"request_id": request_id}
    at_boundary = [s for s in students if s.year is None or s.year == _boundary(delta)]
    if at_boundary:
        message = _boundary_message(delta, len(at_boundary))
        logger.info(f"Batch {_verb(delta)} refused: {message}", extra=extra_log)
        return {
            "status": "warning",
            "message": message,
            "blocked": [s.id for s in at_boundary],
            "updated": [],
        }, 200

    updated, errors = [], []
    for student in students:
        try:
            if _apply_shift(session, student.id, delta):
                updated.append(student.id)
            else:
                errors.append({"student_id": student.id, "error": "Student year changed, please refresh"})
        except Exception as e:
            session.rollback()
            logger.error(f"Batch {_verb(delta)} failed for {student.id}: {str(e)}", extra=extra_log)
            errors.append({"student_id": student.id, "error": str(e)})

    logger.info(f"Batch {_verb(delta)}: {len(updated)} updated, {len(errors)} failed", extra=extra_log)
    result = {
        "status": "success" if not errors else "partial",
        "message": f"{len(updated)} student(s) {_verb(delta)}d",
        "updated": updated,
    }
    if errors:
        result["errors"] = errors
        return result, (207 if updated else 500)
    return result, 200


def _shift_selected(student_ids, delta, department=None, request_id=None):
    session = init_db()
    if not all(isinstance(sid, str) for sid in student_ids or []):
        return {"error": "student_ids must be a list of strings"}, 400
    student_ids = list(dict.fromkeys(student_ids or []))
    if not student_ids:
        return {"error": "No students selected"}, 400

    students = (
        session.query(Profile)
        .filter(Profile.id.in_(student_ids), Profile.role == "student")
        .all()
    )
    found = {s.id for s in students}
    missing = [sid for sid in student_ids if sid not in found]
    if missing:
        return {"error": "Student not found", "missing": missing}, 404
    if department is not None:
        foreign = [s.id for s in students if s.department != department]
        if foreign:
            return {"error": "Student does not belong to your department", "students": foreign}, 403
    return _shift_batch(students, delta, request_id)


def promote_students(student_ids, department=None, request_id=None):
    return _shift_selected(student_ids, 1, department, request_id)


def demote_students(student_ids, department=None, request_id=None):
    return _shift_selected(student_ids, -1, department, request_id)


def _shift_cohort(department, year, delta, request_id=None):
    session = init_db()
    if year not in range(config.MIN_YEAR, config.MAX_YEAR + 1):
        return {"error": f"year must be between {config.MIN_YEAR} and {config.MAX_YEAR}"}, 400
    students = (
        session.query(Profile)
        .filter(Profile.role == "student", Profile.department == department, Profile.year == year)
        .all()
    )
    if not students:
        return {"error": f"No students found in Year {year}"}, 404
    return _shift_batch(students, delta, request_id)


def promote_cohort(department, year, request_id=None):
    return _shift_cohort(department, year, 1, request_id)


def demote_cohort(department, year, request_id=None):
    return _shift_cohort(department, year, -1, request_id)

from dataclasses import dataclass, asdict
from typing import Optional

from cabin_khojo.utils.database import init_db, GatePass
from cabin_khojo.services.qr_service import load_payload, InvalidPayload
from cabin_khojo.utils.logger import setup_logger

logger = setup_logger(__name__)

VERIFIED = "verified"
PENDING = "pending"
REJECTED = "rejected"
INVALID = "invalid"


@dataclass
class ScanResult:
    status: str
    message: str
    pass_id: Optional[str] = None
    student_id: Optional[str] = None
    reason: Optional[str] = None
    date: Optional[str] = None

    @property
    def granted(self):
        return self.status == VERIFIED

    def to_dict(self):
        return {k: v for k, v in asdict(self).items() if v is not None}


def result_for_pass(gate_pass, pass_id):
    """Map a stored pass (or None) to what the guard sees."""
    if gate_pass is None:
        return ScanResult(INVALID, "Pass not found in system", pass_id=pass_id)

    if gate_pass.status == "approved":
        return ScanResult(VERIFIED, "Access Granted", pass_id=pass_id, student_id=gate_pass.student_id,
                          reason=gate_pass.reason, date=gate_pass.date)
    if gate_pass.status == "pending":
        return ScanResult(PENDING, "Awaiting approval", pass_id=pass_id, student_id=gate_pass.student_id,
                          reason=gate_pass.reason)
    if gate_pass.status == "rejected":
        return ScanResult(REJECTED, "Access denied", pass_id=pass_id, student_id=gate_pass.student_id,
                          reason=gate_pass.reason)
    # "used" has no writer yet; treat anything else as not admissible
    return ScanResult(INVALID, f"Pass already {gate_pass.status}", pass_id=pass_id,
                      student_id=gate_pass.student_id, reason=gate_pass.reason)


def verify_scanned_payload(text, request_id=None):
    """Verify the text decoded from a gate pass QR code against the record store."""
    extra_log = {"request_id": request_id}
    try:
        payload = load_payload(text)
    except InvalidPayload as e:
        logger.info(f"Rejected scan: {e}", extra=extra_log)
        return ScanResult(INVALID, str(e))

    pass_id = str(payload["passId"])
    extra_log["pass_id"] = pass_id
    session = init_db()
    try:
        gate_pass = session.query(GatePass).filter_by(id=pass_id).first()
    except Exception as e:
        session.rollback()
        logger.error(f"Lookup failed for scanned pass: {str(e)}", extra=extra_log)
        return ScanResult(INVALID, "Pass not found in system", pass_id=pass_id)

    result = result_for_pass(gate_pass, pass_id)
    logger.info(f"Scan of {pass_id}: {result.status}", extra=extra_log)
    return result

import io
import json
from datetime import datetime, timezone

import segno

from cabin_khojo.config import get_config
from cabin_khojo.utils.storage import upload_qr_image
from cabin_khojo.utils.logger import setup_logger

logger = setup_logger(__name__)
config = get_config()


def build_payload(pass_id, student_id, department, now=None):
    """The JSON document embedded in a gate pass QR code."""
    now = now or datetime.now(timezone.utc)
    return {
        "passId": pass_id,
        "studentId": student_id,
        "timestamp": now.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "department": department,
    }


def encode_payload(payload):
    """Render a payload as a PNG QR code roughly QR_WIDTH_PX wide."""
    text = json.dumps(payload, separators=(",", ":"))
    qr = segno.make(text, error="m")
    width, _ = qr.symbol_size(scale=1, border=config.QR_BORDER)
    scale = max(1, config.QR_WIDTH_PX // width)

    buf = io.BytesIO()
    qr.save(
        buf,
        kind="png",
        scale=scale,
        border=config.QR_BORDER,
        dark=config.QR_DARK,
        light=config.QR_LIGHT,
    )
    return buf.getvalue()


def publish_qr(pass_id, student_id, department, request_id=None):
    """
    Build, render and upload the QR code for an approved pass.
    The image is stored as <pass_id>.png in the QR bucket; re-approving overwrites it.
    Returns the public URL.
    """
    extra_log = {"request_id": request_id, "pass_id": pass_id, "student_id": student_id}
    payload = build_payload(pass_id, student_id, department)
    png = encode_payload(payload)
    logger.debug(f"Rendered QR for {pass_id} ({len(png)} bytes)", extra=extra_log)
    return upload_qr_image(pass_id, png, extra_log=extra_log)


class InvalidPayload(ValueError):
    pass


def load_payload(text):
    """Decode scanned QR text, raising InvalidPayload with a user-facing message."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        raise InvalidPayload("Invalid QR code")
    if not isinstance(data, dict) or not data.get("passId"):
        raise InvalidPayload("Invalid QR code format")
    return data


def parse_payload(text):
    """Like load_payload, but returns None instead of raising."""
    try:
        return load_payload(text)
    except InvalidPayload:
        return None

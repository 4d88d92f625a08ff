"""
Guard-side QR scanner.

A ScannerSession owns the camera handle, the QR decoder and the time of the last
accepted decode. Its lifecycle is:

    idle -> camera-starting -> scanning -> result-shown
                  |                              |
                  +--> error        reset() -----+--> camera-starting

Frames are polled at a fixed interval while scanning. A decode is only accepted
if SCAN_COOLDOWN_MS has passed since the previous accepted decode, so holding a
code in front of the camera produces a single verification. Payloads that are
not gate pass QR codes are reported as invalid and scanning continues; any
other outcome releases the camera until reset() is called. A camera that keeps
failing reads while scanning is released and the session moves to error.
"""
import time

from cabin_khojo.config import get_config
from cabin_khojo.services.verification_service import verify_scanned_payload, INVALID
from cabin_khojo.utils.logger import setup_logger

logger = setup_logger(__name__)
config = get_config()

IDLE = "idle"
CAMERA_STARTING = "camera-starting"
SCANNING = "scanning"
RESULT_SHOWN = "result-shown"
ERROR = "error"


class CameraError(Exception):
    pass


def open_camera(index):
    """Open a local camera with OpenCV at the preferred 1280x720 resolution."""
    import cv2

    cap = cv2.VideoCapture(index)
    if not cap.isOpened():
        cap.release()
        raise CameraError(f"Camera {index} not available (permission denied or device busy)")
    cap.set(cv2.CAP_PROP_FRAME_WIDTH, config.CAMERA_WIDTH)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, config.CAMERA_HEIGHT)
    return cap


class OpenCVDecoder:
    """Decodes QR text from a BGR frame; returns None when no code is found."""

    def __init__(self):
        import cv2

        self._detector = cv2.QRCodeDetector()

    def __call__(self, frame):
        text, _, _ = self._detector.detectAndDecode(frame)
        return text or None


class ScannerSession:
    def __init__(self, verify=None, camera_index=None, open_capture=None, decoder=None,
                 clock=time.monotonic, cooldown_ms=None, max_failed_reads=None):
        self.verify = verify or verify_scanned_payload
        self.camera_index = config.CAMERA_INDEX if camera_index is None else camera_index
        self.open_capture = open_capture or open_camera
        self.decoder = decoder
        self.clock = clock
        self.cooldown_ms = config.SCAN_COOLDOWN_MS if cooldown_ms is None else cooldown_ms
        self.max_failed_reads = config.SCAN_MAX_FAILED_READS if max_failed_reads is None else max_failed_reads
        self.failed_reads = 0

        self.state = IDLE
        self.capture = None
        self.result = None
        self.error = None
        self.last_scan_time = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False

    def start(self):
        """Acquire the camera and begin scanning. Returns False and enters the error state on failure."""
        self.release()
        self.result = None
        self.error = None
        self.state = CAMERA_STARTING
        try:
            self.capture = self.open_capture(self.camera_index)
            if self.decoder is None:
                self.decoder = OpenCVDecoder()
        except Exception as e:
            self.fail(str(e) or "Camera access denied")
            return False

        self.failed_reads = 0
        self.state = SCANNING
        logger.info(f"Scanner started on camera {self.camera_index}")
        return True

    def fail(self, message):
        """Release the camera and park in the error state until reset()."""
        self.release()
        self.error = message
        self.state = ERROR
        logger.error(f"Camera error: {message}")

    def release(self):
        if self.capture is not None:
            try:
                self.capture.release()
            except Exception as e:
                logger.error(f"Error releasing camera: {e}")
            self.capture = None

    def stop(self):
        """Release the camera. Results and errors are kept for display."""
        self.release()
        if self.state in (CAMERA_STARTING, SCANNING):
            self.state = IDLE

    def reset(self):
        """Clear the shown result and re-acquire the camera."""
        return self.start()

    def in_cooldown(self, now=None):
        if self.last_scan_time is None:
            return False
        now = self.clock() if now is None else now
        return (now - self.last_scan_time) * 1000 < self.cooldown_ms

    def poll(self):
        """Read and decode one frame. Returns a ScanResult when a decode was accepted."""
        if self.state != SCANNING or self.capture is None:
            return None

        ok, frame = self.capture.read()
        if not ok:
            # a camera unplugged or taken by another process only ever fails reads
            self.failed_reads += 1
            if self.failed_reads >= self.max_failed_reads:
                self.fail("Camera stopped responding")
            return None
        self.failed_reads = 0
        if frame is None:
            return None
        text = self.decoder(frame)
        if not text:
            return None
        return self.handle_decoded(text)

    def handle_decoded(self, text):
        now = self.clock()
        if self.in_cooldown(now):
            return None
        self.last_scan_time = now

        result = self.verify(text)
        self.result = result
        if result.status == INVALID and result.pass_id is None:
            # not a gate pass payload: keep scanning
            return result

        self.release()
        self.state = RESULT_SHOWN
        return result

    def run(self, interval_ms=None, sleep=time.sleep, max_polls=None, on_result=None):
        """
        Poll at a fixed interval until a terminal result, the camera stops or max_polls is hit.
        on_result is called for every accepted decode, including invalid ones that keep scanning.
        """
        interval = (config.SCAN_INTERVAL_MS if interval_ms is None else interval_ms) / 1000.0
        polls = 0
        while self.state == SCANNING:
            result = self.poll()
            if result is not None and on_result is not None:
                on_result(result)
            if self.state != SCANNING:
                break
            polls += 1
            if max_polls is not None and polls >= max_polls:
                break
            sleep(interval)
        return self.result

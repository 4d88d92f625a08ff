"""Guard checkpoint scanner: reads gate pass QR codes from a local camera."""
import argparse

from cabin_khojo.config import get_config
from cabin_khojo.services.scanner import ScannerSession, ERROR
from cabin_khojo.utils.database import remove_session
from cabin_khojo.utils.logger import setup_logger

logger = setup_logger(__name__)

ICONS = {"verified": "✅", "pending": "⏳", "rejected": "⛔", "invalid": "❌"}


def print_result(result):
    print(f"\n{ICONS.get(result.status, '•')} {result.message}")
    for label, value in (("Pass ID", result.pass_id), ("Student", result.student_id),
                         ("Reason", result.reason), ("Date", result.date)):
        if value:
            print(f"   {label}: {value}")


def main(argv=None):
    config = get_config()
    parser = argparse.ArgumentParser(description="Scan and verify gate pass QR codes.")
    parser.add_argument("--camera", type=int, default=config.CAMERA_INDEX, help="camera device index")
    args = parser.parse_args(argv)

    print("🚀 Starting gate pass scanner...")
    try:
        with ScannerSession(camera_index=args.camera) as scanner:
            while True:
                if scanner.state != ERROR:
                    scanner.run(on_result=print_result)
                if scanner.state == ERROR:
                    print(f"❌ Camera error: {scanner.error}")
                answer = input("\nPress Enter to scan again, or 'q' to quit: ")
                if answer.strip().lower() == "q":
                    break
                scanner.reset()
    except KeyboardInterrupt:
        pass
    finally:
        remove_session()
        print("👋 Scanner stopped.")


if __name__ == "__main__":
    main()

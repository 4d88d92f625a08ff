import os
import sys

# Add src to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../src')))

# Must run before cabin_khojo.config is imported
os.environ["FLASK_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("DB_SECRET_NAME", None)
os.environ.pop("QR_PUBLIC_BASE_URL", None)
os.environ.pop("S3_ENDPOINT_URL", None)
os.environ["AWS_DEFAULT_REGION"] = "us-east-2"
os.environ.pop("QR_BUCKET", None)
os.environ.pop("SCAN_COOLDOWN_MS", None)

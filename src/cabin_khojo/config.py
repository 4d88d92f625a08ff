# src/cabin_khojo/config.py
import os

class Config:
    FLASK_ENV = os.getenv("FLASK_ENV", "development")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR = os.getenv("LOG_DIR")
    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5000")

    # Record store
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///cabin_khojo.db")
    DB_SECRET_NAME = os.getenv("DB_SECRET_NAME")

    # Blob storage (S3 or any S3-compatible endpoint)
    AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
    AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")
    AWS_DEFAULT_REGION = os.getenv("AWS_DEFAULT_REGION", "us-east-2")
    S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL")
    QR_BUCKET = os.getenv("QR_BUCKET", "qr-codes")
    QR_PUBLIC_BASE_URL = os.getenv("QR_PUBLIC_BASE_URL")
    QR_CACHE_CONTROL = "max-age=3600"

    # QR rendering
    QR_WIDTH_PX = 300
    QR_BORDER = 2
    QR_DARK = "#2563eb"
    QR_LIGHT = "#ffffff"

    # Guard scanner
    SCAN_COOLDOWN_MS = int(os.getenv("SCAN_COOLDOWN_MS", "2000"))
    SCAN_INTERVAL_MS = int(os.getenv("SCAN_INTERVAL_MS", "100"))
    CAMERA_INDEX = int(os.getenv("CAMERA_INDEX", "0"))
    CAMERA_WIDTH = 1280
    CAMERA_HEIGHT = 720
    SCAN_MAX_FAILED_READS = 30

    # Roster
    MIN_YEAR = 1
    MAX_YEAR = 4

    ROLES = ("student", "hod", "guard")
    GATEPASS_STATUSES = ("pending", "approved", "rejected", "used")
    LOGIN_PATH = "/login"
    ROLE_HOME = {
        "student": "/student/dashboard",
        "hod": "/hod/dashboard",
        "guard": "/guard/scanner",
    }

    @classmethod
    def home_for_role(cls, role: str):
        """Returns the landing path for a role, or the login path for unknown roles."""
        return cls.ROLE_HOME.get(role, cls.LOGIN_PATH)

def get_config():
    """Return config based on environment."""
    env = os.getenv("FLASK_ENV", "development")
    if env == "production":
        return ProductionConfig()
    if env == "testing":
        return TestingConfig()
    return DevelopmentConfig()

class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True

class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False

class TestingConfig(Config):
    """Test configuration: in-memory database, no camera."""
    DEBUG = True
    TESTING = True
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite://")

from sqlalchemy import create_engine, Column, String, Integer, DateTime, ForeignKey, Text, CheckConstraint
from sqlalchemy.orm import declarative_base, sessionmaker, scoped_session, relationship
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool
import boto3
import json
import datetime
import uuid
from time import sleep
from urllib.parse import urlparse
from cabin_khojo.config import get_config
from cabin_khojo.utils.logger import setup_logger

logger = setup_logger(__name__)
Base = declarative_base()

_session = None


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


class Profile(Base):
    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint("role IN ('student', 'hod', 'guard')", name="ck_profiles_role"),
        CheckConstraint("year IS NULL OR (year >= 1 AND year <= 4)", name="ck_profiles_year"),
    )
    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    roll = Column(String, nullable=True)
    department = Column(String, nullable=True, index=True)
    role = Column(String(16), nullable=False)
    year = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "roll": self.roll,
            "department": self.department,
            "role": self.role,
            "year": self.year,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class GatePass(Base):
    __tablename__ = "gatepasses"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'used')", name="ck_gatepasses_status"
        ),
    )
    id = Column(String(36), primary_key=True, default=_uuid)
    student_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    hod_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    reason = Column(Text, nullable=False)
    date = Column(String(10), nullable=False)  # ISO date, YYYY-MM-DD
    status = Column(String(16), nullable=False, default="pending")
    qr_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    student = relationship("Profile", foreign_keys=[student_id])
    hod = relationship("Profile", foreign_keys=[hod_id])

    def to_dict(self, with_student=False):
        data = {
            "id": self.id,
            "student_id": self.student_id,
            "hod_id": self.hod_id,
            "reason": self.reason,
            "date": self.date,
            "status": self.status,
            "qr_url": self.qr_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if with_student:
            student = self.student
            data["student"] = {
                "name": student.name,
                "roll": student.roll,
                "department": student.department,
            } if student else None
        return data


def get_secret(secret_name):
    """Retrieve DB credentials from AWS Secrets Manager with fallback to DATABASE_URL."""
    from botocore.config import Config as BotoConfig

    config = get_config()
    client = boto3.client(
        "secretsmanager",
        region_name=config.AWS_DEFAULT_REGION,
        config=BotoConfig(connect_timeout=10, read_timeout=10, retries={"max_attempts": 1}),
    )
    try:
        logger.info(f"Fetching secret {secret_name}...")
        response = client.get_secret_value(SecretId=secret_name)
        logger.info("Secret fetched successfully")
        return json.loads(response["SecretString"])
    except Exception as e:
        logger.warning(f"Secret fetch failed (using fallback DATABASE_URL): {str(e)}")
        parsed = urlparse(config.DATABASE_URL)
        if parsed.scheme.startswith("postgresql"):
            return {
                "username": parsed.username,
                "password": parsed.password,
                "host": parsed.hostname,
                "port": parsed.port or 5432,
                "dbname": parsed.path.lstrip("/"),
            }
        raise


def resolve_database_url():
    """Build the SQLAlchemy URL from Secrets Manager when configured, else DATABASE_URL."""
    config = get_config()
    if not config.DB_SECRET_NAME:
        return config.DATABASE_URL

    secret = get_secret(config.DB_SECRET_NAME)
    user = secret.get("username")
    password = secret.get("password")
    host = secret.get("host")
    dbname = secret.get("dbname")
    port = secret.get("port", 5432)
    if not all([user, password, host, dbname]):
        logger.error("Missing DB connection parameters in secret.")
        raise ValueError("Incomplete DB credentials in secret")

    # pg8000 is pure Python, no C extension
    return f"postgresql+pg8000://{user}:{password}@{host}:{port}/{dbname}"


def _make_engine(db_url):
    if db_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(db_url, **kwargs)
    return create_engine(
        db_url,
        pool_size=5,
        max_overflow=5,
        pool_timeout=30,
        pool_recycle=1800,
    )


def init_db():
    """Return the process-wide scoped session, connecting and creating tables on first use."""
    global _session
    if _session is not None:
        return _session

    logger.info("START: init_db()")
    db_url = resolve_database_url()

    retries = 3
    for attempt in range(retries):
        try:
            logger.info(f"Connecting to DB (attempt {attempt+1}/{retries})...")
            engine = _make_engine(db_url)
            with engine.connect():
                logger.info("Database connection successful.")
            Base.metadata.create_all(engine)
            session_factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
            _session = scoped_session(session_factory)
            logger.info("END: init_db()")
            return _session
        except OperationalError as e:
            logger.warning(f"OperationalError: {e}")
            if attempt < retries - 1:
                sleep(2)
                continue
            raise


def reset_db():
    """Drop the cached session and engine so the next init_db() reconnects."""
    global _session
    if _session is None:
        return
    engine = _session.get_bind()
    _session.remove()
    engine.dispose()
    _session = None


def remove_session():
    """Release the current scoped session, if one was ever opened. Never connects."""
    if _session is not None:
        _session.remove()

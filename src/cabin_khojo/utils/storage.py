# src/cabin_khojo/utils/storage.py
import boto3
import requests
from botocore.client import Config
from cabin_khojo.config import get_config
from cabin_khojo.utils.logger import setup_logger

logger = setup_logger(__name__)

_s3 = None


def get_s3_client():
    """Lazily build the S3 client; S3_ENDPOINT_URL allows S3-compatible stores."""
    global _s3
    if _s3 is None:
        config = get_config()
        _s3 = boto3.client(
            "s3",
            region_name=config.AWS_DEFAULT_REGION,
            endpoint_url=config.S3_ENDPOINT_URL,
            config=Config(signature_version="s3v4"),
        )
    return _s3


def qr_object_key(pass_id):
    return f"{pass_id}.png"


def public_url(key, bucket=None):
    """Public URL of an object in the QR bucket."""
    config = get_config()
    bucket = bucket or config.QR_BUCKET
    if config.QR_PUBLIC_BASE_URL:
        return f"{config.QR_PUBLIC_BASE_URL.rstrip('/')}/{key}"
    if config.S3_ENDPOINT_URL:
        return f"{config.S3_ENDPOINT_URL.rstrip('/')}/{bucket}/{key}"
    return f"https://{bucket}.s3.{config.AWS_DEFAULT_REGION}.amazonaws.com/{key}"


def upload_qr_image(pass_id, png_bytes, extra_log=None):
    """
    Upload a QR PNG keyed by pass id, overwriting any earlier image for that pass.
    Returns the public URL of the stored object.
    """
    config = get_config()
    key = qr_object_key(pass_id)
    extra_log = extra_log or {"pass_id": pass_id}

    get_s3_client().put_object(
        Bucket=config.QR_BUCKET,
        Key=key,
        Body=png_bytes,
        ContentType="image/png",
        CacheControl=config.QR_CACHE_CONTROL,
    )
    url = public_url(key, config.QR_BUCKET)
    logger.info(f"Uploaded QR image s3://{config.QR_BUCKET}/{key}", extra=extra_log)
    return url


def fetch_public_object(url, timeout=10):
    """Download an object by its public URL; raises on non-200 responses."""
    response = requests.get(url, timeout=timeout)
    if response.status_code != 200:
        raise Exception(f"Object not accessible: status={response.status_code}")
    return response.content

"""
S3 service for managing submission photos in S3.

Provides a lazy-initialized boto3 client and best-effort deletion of
submission images by their public URL.
"""

import logging
import os
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# Lazy-initialized S3 client
_s3_client = None


def _get_config():
    """Read S3 configuration from environment at call time (not import time)."""
    return {
        "access_key_id": os.getenv("AWS_ACCESS_KEY_ID"),
        "secret_access_key": os.getenv("AWS_SECRET_ACCESS_KEY"),
        "bucket": os.getenv("AWS_S3_BUCKET"),
        "region": os.getenv("AWS_S3_REGION", "us-west-2"),
    }


def _get_s3_client():
    """Get or create the boto3 S3 client."""
    global _s3_client
    if _s3_client is None:
        cfg = _get_config()
        if not all([cfg["access_key_id"], cfg["secret_access_key"], cfg["bucket"]]):
            raise ValueError(
                "AWS S3 environment variables not configured. "
                "Set AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, and AWS_S3_BUCKET."
            )
        import boto3

        _s3_client = boto3.client(
            "s3",
            aws_access_key_id=cfg["access_key_id"],
            aws_secret_access_key=cfg["secret_access_key"],
            region_name=cfg["region"],
        )
    return _s3_client


async def delete_submission_photo(url: str) -> bool:
    """
    Delete a submission photo from S3 by its URL. Best-effort: logs errors but does not raise.

    Args:
        url: The full S3 URL of the submission image

    Returns:
        True if deleted successfully, False otherwise
    """
    try:
        client = _get_s3_client()
        cfg = _get_config()
        bucket = cfg["bucket"]
        key = _extract_key_from_url(url, bucket)
        if not key:
            logger.warning(f"Could not extract S3 key from URL: {url}")
            return False

        client.delete_object(Bucket=bucket, Key=key)
        logger.info("Deleted submission photo from S3: %s", key)
        return True
    except Exception as e:
        logger.error("Failed to delete submission photo %s: %s", url, e)
        return False


def is_foreign_photo_url(url: str) -> bool:
    """
    Check whether a photo URL can never be deleted from the configured bucket.

    True when the URL points at another host or carries no object key. False
    when no bucket is configured, since nothing can be decided yet.
    """
    bucket = _get_config()["bucket"]
    if not bucket:
        return False
    return _extract_key_from_url(url, bucket) is None


def _extract_key_from_url(url: str, expected_bucket: Optional[str] = None) -> Optional[str]:
    """
    Extract the S3 object key from a full S3 URL.

    Validates that the URL hostname matches the expected S3 bucket before
    extracting the key.

    Handles URLs like:
      https://bucket.s3.region.amazonaws.com/submissions/12/34.jpg

    Args:
        url: Full S3 URL
        expected_bucket: Expected S3 bucket name for hostname validation

    Returns:
        Object key string or None if parsing fails or hostname doesn't match
    """
    try:
        parsed = urlparse(url)

        if expected_bucket and parsed.hostname:
            if expected_bucket not in parsed.hostname:
                logger.warning(
                    f"URL hostname '{parsed.hostname}' does not match "
                    f"expected bucket '{expected_bucket}'"
                )
                return None

        key = parsed.path.lstrip("/")
        return key if key else None
    except Exception:
        return None

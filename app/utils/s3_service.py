import logging
import os
import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

BUCKET = os.getenv("R2_BUCKET")
URL = f"https://{os.getenv('CLOUDFLARE_ACCOUNT_ID')}.r2.cloudflarestorage.com"

_s3 = None


def get_s3_client():
    global _s3

    if _s3 is None:
        _s3 = boto3.client(
            service_name="s3",
            endpoint_url=URL,
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            region_name="auto",
        )

    return _s3


def generate_signed_url(key, expires_in=3600):
    # nothing stored, or already a public URL (seeded clips, external thumbnails)
    if not key or key.startswith(("http://", "https://")):
        return key

    try:
        return get_s3_client().generate_presigned_url(
                "get_object",
                Params={"Bucket": BUCKET, "Key": key},
                ExpiresIn=expires_in
            )
    except (BotoCoreError, ClientError) as e:
        logger.warning("Error generating signed URL for %s: %s", key, e)
        return None


def delete_s3_object(key):
    if not key or key.startswith(("http://", "https://")):
        return

    try:
        get_s3_client().delete_object(Bucket=BUCKET, Key=key)
    except (BotoCoreError, ClientError) as e:
        logger.warning("Error deleting S3 object %s: %s", key, e)


def with_signed_url(record, field="image"):
    data = record.model_dump()
    data[field] = generate_signed_url(data.get(field))
    return data


def get_all_urls(db_items: list, field="image"):
    return [with_signed_url(item, field) for item in db_items]

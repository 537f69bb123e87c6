"""
Evidence store backed by Cloudflare R2.

R2 speaks the S3 API, so a boto3 S3 client pointed at the account endpoint
uploads screenshots and issues presigned GET URLs for them.
See https://developers.cloudflare.com/r2/examples/aws/boto3/
"""

from pathlib import Path
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from src.config.settings import Settings
from src.utils.logger import StructuredLogger, get_logger, log_operation, mask_presigned_url
from .exceptions import EvidenceUploadError


# Presigned URLs on R2 are valid for at most 7 days
PRESIGN_EXPIRES_SECONDS = 7 * 24 * 60 * 60
SCREENSHOT_CONTENT_TYPE = "image/png"


def r2_endpoint_url(account_id: str) -> str:
    return f"https://{account_id}.r2.cloudflarestorage.com"


class R2EvidenceStore:
    """
    Uploads local screenshot files and hands out time-limited links to them.

    Attributes:
        bucket_name: Bucket receiving the objects
        s3_client: boto3 S3 client (injectable for tests)
        expires_in: Lifetime of presigned URLs in seconds
    """

    def __init__(
        self,
        bucket_name: str,
        s3_client: Any,
        logger: Optional[StructuredLogger] = None,
        expires_in: int = PRESIGN_EXPIRES_SECONDS,
    ):
        self.bucket_name = bucket_name
        self.s3_client = s3_client
        self.logger = logger or get_logger(__name__)
        self.expires_in = expires_in

    @classmethod
    def from_settings(
        cls, settings: Settings, logger: Optional[StructuredLogger] = None
    ) -> "R2EvidenceStore":
        """
        Build a store from the R2 credentials in Settings.

        Raises:
            ConfigurationError: If account id, access key pair or bucket is missing
        """
        settings.require_storage_credentials()

        client = boto3.client(
            "s3",
            endpoint_url=r2_endpoint_url(settings.cf_account_id),
            aws_access_key_id=settings.cf_access_key_id,
            aws_secret_access_key=settings.cf_access_key_secret,
            region_name="auto",
            config=Config(signature_version="s3v4"),
        )
        return cls(bucket_name=settings.cf_bucket_name, s3_client=client, logger=logger)

    @log_operation("upload_evidence")
    def upload(self, key: str, local_path: str) -> None:
        """
        Upload a local file under ``key``, replacing any previous object.

        Raises:
            EvidenceUploadError: If the file can't be read or the upload fails
        """
        try:
            body = Path(local_path).read_bytes()
        except OSError as e:
            raise EvidenceUploadError(f"Couldn't read screenshot {local_path}: {e}") from e

        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=body,
                ContentType=SCREENSHOT_CONTENT_TYPE,
            )
        except (ClientError, BotoCoreError) as e:
            raise EvidenceUploadError(
                f"Couldn't upload {local_path} to {self.bucket_name}:{key}: {e}"
            ) from e

        self.logger.debug(
            "Screenshot uploaded",
            operation="upload_evidence",
            context={"bucket": self.bucket_name, "key": key, "bytes": len(body)},
        )

    def presign(self, key: str) -> str:
        """
        Generate a presigned GET URL for ``key``.

        Raises:
            EvidenceUploadError: If the URL can't be generated
        """
        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": key},
                ExpiresIn=self.expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise EvidenceUploadError(
                f"Couldn't get a presigned request to get {self.bucket_name}:{key}. Here's why: {e}"
            ) from e

    def store(self, key: str, local_path: str) -> str:
        """Upload then presign. Returns the shareable URL."""
        self.upload(key=key, local_path=local_path)
        url = self.presign(key)
        self.logger.info(
            "Evidence stored",
            operation="store_evidence",
            context={"key": key, "url": mask_presigned_url(url)},
        )
        return url

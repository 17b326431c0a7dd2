"""
S3 storage backend using boto3
Stores person document files in Amazon S3 with tenant isolation
"""
import asyncio
import logging
import uuid
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from app.core.config import settings
from app.core.storage.base import StorageBackend

logger = logging.getLogger(__name__)


class S3Storage(StorageBackend):
    """
    Amazon S3 storage backend.

    boto3 calls are blocking and run in a worker thread.

    Requires:
    - S3_BUCKET_NAME (required)
    - AWS_REGION (default: us-east-1)
    - AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY (optional with IAM role or credentials file)
    """

    def __init__(self):
        self.bucket_name = settings.S3_BUCKET_NAME
        self.region = settings.AWS_REGION
        # Reference: https://boto3.amazonaws.com/v1/documentation/api/latest/guide/credentials.html
        self.s3_client = boto3.client(
            "s3",
            region_name=self.region,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        )

    async def save_file(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        tenant_id: uuid.UUID,
        person_id: uuid.UUID,
        document_id: uuid.UUID,
    ) -> str:
        s3_key = self.generate_storage_key(tenant_id, person_id, document_id, filename)
        # Reference: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/s3/client/put_object.html
        try:
            await asyncio.to_thread(
                self.s3_client.put_object,
                Bucket=self.bucket_name,
                Key=s3_key,
                Body=content,
                ContentType=content_type,
                Metadata={
                    "tenant_id": str(tenant_id),
                    "person_id": str(person_id),
                    "document_id": str(document_id),
                },
            )
        except ClientError as e:
            logger.error(f"Failed to upload file to S3: {e}", exc_info=True)
            raise RuntimeError(f"S3 upload failed: {e}") from e

        logger.info(f"Uploaded file to S3: s3://{self.bucket_name}/{s3_key} (size: {len(content)} bytes)")
        return s3_key

    async def delete_file(self, storage_key: str) -> bool:
        try:
            await asyncio.to_thread(
                self.s3_client.delete_object,
                Bucket=self.bucket_name,
                Key=storage_key,
            )
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code == "NoSuchKey":
                logger.warning(f"File not found in S3: s3://{self.bucket_name}/{storage_key}")
                return False
            logger.error(f"Failed to delete file from S3: {e}", exc_info=True)
            raise
        logger.info(f"Deleted file from S3: s3://{self.bucket_name}/{storage_key}")
        return True

    def get_file_url(self, storage_key: str, expires_in: Optional[int] = None) -> str:
        """
        Presigned GET URL (default lifetime: 1 hour).
        Reference: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/s3/client/generate_presigned_url.html
        """
        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": storage_key},
                ExpiresIn=expires_in or 3600,
            )
        except ClientError as e:
            logger.error(f"Failed to generate presigned URL: {e}", exc_info=True)
            return f"https://{self.bucket_name}.s3.{self.region}.amazonaws.com/{storage_key}"

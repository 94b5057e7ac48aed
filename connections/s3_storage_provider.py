import asyncio
from typing import Any, Callable, Iterable, Optional, TypeVar

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError
from core.config import ProductionSettings
from core.exceptions import BlobNotFoundError, ConflictError, StorageError
from domain.interfaces import AssetStore
from domain.models import BlobEntry, DeleteOutcome, StoredBlob, StoredObject

logger = structlog.get_logger()

T = TypeVar("T")

# S3 DeleteObjects accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000

PRECONDITION_CODES = {"PreconditionFailed", "ConditionalRequestConflict", "412", "409"}
NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


class S3Storage(AssetStore):
    def __init__(self, settings: ProductionSettings, s3_client: Any = None):
        # Initialize boto3 client with env vars
        self.s3_client = s3_client or boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            aws_access_key_id=settings.AWS_ACCESS_KEY,
            aws_secret_access_key=settings.AWS_SECRET_KEY,
            region_name=settings.AWS_REGION,
        )
        self.region = settings.AWS_REGION
        self.bucket = settings.S3_BUCKET_NAME
        self.base_url = settings.S3_PUBLIC_URL.rstrip("/")

    async def _run(self, fn: Callable[[], T]) -> T:
        # boto3 is synchronous (blocking); keep it off the event loop
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn)

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        if_match: Optional[str] = None,
        if_none_match: bool = False,
    ) -> StoredObject:
        """
        Uploads bytes to S3 and returns the public URL.
        """
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": data,
            "ContentType": content_type,
        }
        if if_match is not None:
            params["IfMatch"] = if_match
        if if_none_match:
            params["IfNoneMatch"] = "*"

        try:
            logger.info("uploading_to_s3", bucket=self.bucket, key=key)
            response = await self._run(lambda: self.s3_client.put_object(**params))
        except ClientError as e:
            if _error_code(e) in PRECONDITION_CODES:
                raise ConflictError(f"Conditional write rejected for '{key}'", original_error=e)
            logger.error("s3_upload_failed", key=key, error=str(e))
            raise StorageError(f"Failed to upload '{key}': {e}", original_error=e)
        except BotoCoreError as e:
            logger.error("s3_upload_failed", key=key, error=str(e))
            raise StorageError(f"Failed to upload '{key}': {e}", original_error=e)

        return StoredObject(key=key, url=self.url_for(key), etag=response.get("ETag"))

    async def get(self, key: str) -> StoredBlob:
        try:
            response = await self._run(lambda: self.s3_client.get_object(Bucket=self.bucket, Key=key))
            data = await self._run(response["Body"].read)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                raise BlobNotFoundError(key, original_error=e)
            logger.error("s3_download_failed", key=key, error=str(e))
            raise StorageError(f"Failed to fetch '{key}': {e}", original_error=e)
        except BotoCoreError as e:
            logger.error("s3_download_failed", key=key, error=str(e))
            raise StorageError(f"Failed to fetch '{key}': {e}", original_error=e)

        return StoredBlob(key=key, data=data, etag=response.get("ETag"))

    async def delete(self, keys: Iterable[str]) -> DeleteOutcome:
        """
        Batch delete. S3 reports success for keys that don't exist,
        so re-deleting is idempotent. Each key succeeds or fails on its own.
        """
        outcome = DeleteOutcome()
        pending = list(keys)

        for start in range(0, len(pending), DELETE_BATCH_SIZE):
            batch = pending[start : start + DELETE_BATCH_SIZE]
            request = {"Objects": [{"Key": k} for k in batch], "Quiet": False}
            try:
                response = await self._run(
                    lambda: self.s3_client.delete_objects(Bucket=self.bucket, Delete=request)
                )
            except (ClientError, BotoCoreError) as e:
                logger.error("s3_delete_batch_failed", keys=batch, error=str(e))
                for k in batch:
                    outcome.failed[k] = str(e)
                continue

            for item in response.get("Deleted", []):
                outcome.deleted.append(item["Key"])
            for item in response.get("Errors", []):
                outcome.failed[item["Key"]] = f"{item.get('Code')}: {item.get('Message')}"

        return outcome

    async def list(self, prefix: str) -> list[BlobEntry]:
        def _collect() -> list[BlobEntry]:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            entries = []
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    entries.append(BlobEntry(key=obj["Key"], url=self.url_for(obj["Key"]), size=obj.get("Size", 0)))
            return entries

        try:
            return await self._run(_collect)
        except (ClientError, BotoCoreError) as e:
            logger.error("s3_list_failed", prefix=prefix, error=str(e))
            raise StorageError(f"Failed to list '{prefix}': {e}", original_error=e)

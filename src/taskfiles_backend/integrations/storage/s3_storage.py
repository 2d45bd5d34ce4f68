from __future__ import annotations

import logging
from dataclasses import dataclass

from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool

from .object_storage import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class S3Config:
    endpoint_url: str
    region: str
    bucket: str


class S3ObjectStorage:
    def __init__(
        self,
        *,
        endpoint_url: str,
        region: str,
        bucket: str,
        access_key_id: str,
        secret_access_key: str,
        force_path_style: bool,
    ) -> None:
        self._cfg = S3Config(endpoint_url=endpoint_url, region=region, bucket=bucket)

        import boto3

        addressing_style = "path" if force_path_style else "virtual"
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region or None,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(signature_version="s3v4", s3={"addressing_style": addressing_style}),
        )
        logger.info("S3 storage initialized bucket=%s", bucket)

    async def put_bytes(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        def _put() -> None:
            kwargs: dict[str, object] = {
                "Bucket": self._cfg.bucket,
                "Key": key,
                "Body": data,
            }
            if content_type:
                kwargs["ContentType"] = content_type
            if metadata:
                kwargs["Metadata"] = dict(metadata)
            self._client.put_object(**kwargs)

        try:
            await run_in_threadpool(_put)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"failed to upload object {key}") from exc

    async def get_bytes(self, key: str) -> bytes:
        def _get() -> bytes:
            resp = self._client.get_object(Bucket=self._cfg.bucket, Key=key)
            body = resp.get("Body")
            # StreamingBody.read() is blocking; run in threadpool.
            return body.read() if body is not None else b""

        try:
            return await run_in_threadpool(_get)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"failed to read object {key}") from exc

    async def delete(self, key: str) -> None:
        def _delete() -> None:
            self._client.delete_object(Bucket=self._cfg.bucket, Key=key)

        try:
            await run_in_threadpool(_delete)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"failed to delete object {key}") from exc

    async def presign_url(self, key: str, *, expires_in_seconds: int) -> str:
        def _presign() -> str:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._cfg.bucket, "Key": key},
                ExpiresIn=expires_in_seconds,
            )

        try:
            return await run_in_threadpool(_presign)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"failed to presign object {key}") from exc

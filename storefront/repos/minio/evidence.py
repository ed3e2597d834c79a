"""
Minio implementation of EvidenceStorage.

Videos are stored under "<request_id>/<filename>", so an upload is bound
to its cancellation request and re-uploading replaces the earlier object.
"""

import asyncio
import io
import logging
import os
from typing import Optional

from minio import Minio
from minio.error import S3Error

from storefront.config import minio_endpoint, minio_evidence_bucket
from storefront.domain import VideoAttachment
from storefront.exceptions import EvidenceUploadFailed
from storefront.repositories import EvidenceStorage
from storefront.validation import sanitize_filename

logger = logging.getLogger(__name__)


class MinioEvidenceStorage(EvidenceStorage):
    """
    Minio implementation of EvidenceStorage.
    Uses Minio for persistence of cancellation evidence videos.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        secure: bool = False,
        bucket_name: Optional[str] = None,
    ):
        self._endpoint = endpoint or minio_endpoint()
        self._access_key = access_key or os.environ.get(
            "MINIO_ROOT_USER", "minioadmin"
        )
        self._secret_key = secret_key or os.environ.get(
            "MINIO_ROOT_PASSWORD", "minioadmin"
        )
        self._secure = secure
        self._bucket_name = bucket_name or minio_evidence_bucket()

        self._client: Optional[Minio] = None
        logger.debug(
            "MinioEvidenceStorage initialized",
            extra={
                "endpoint": self._endpoint,
                "bucket_name": self._bucket_name,
            },
        )

    def _get_client(self) -> Minio:
        """Lazily initialize and return the Minio client."""
        if self._client is None:
            logger.debug(
                "Creating new Minio client instance",
                extra={"endpoint": self._endpoint, "secure": self._secure},
            )
            client = Minio(
                endpoint=self._endpoint,
                access_key=self._access_key,
                secret_key=self._secret_key,
                secure=self._secure,
            )
            if not client.bucket_exists(bucket_name=self._bucket_name):
                logger.info(
                    "Minio bucket does not exist, creating now",
                    extra={"bucket_name": self._bucket_name},
                )
                client.make_bucket(bucket_name=self._bucket_name)
            self._client = client
        return self._client

    def _put(self, object_name: str, attachment: VideoAttachment) -> None:
        client = self._get_client()
        client.put_object(
            bucket_name=self._bucket_name,
            object_name=object_name,
            data=io.BytesIO(attachment.data),
            length=len(attachment.data),
            content_type=attachment.content_type,
        )

    def object_url(self, object_name: str) -> str:
        scheme = "https" if self._secure else "http"
        return f"{scheme}://{self._endpoint}/{self._bucket_name}/{object_name}"

    async def upload_video(
        self, request_id: str, attachment: VideoAttachment
    ) -> str:
        object_name = f"{request_id}/{sanitize_filename(attachment.filename)}"
        logger.info(
            "Uploading evidence video to Minio",
            extra={
                "request_id": request_id,
                "object_name": object_name,
                "content_type": attachment.content_type,
                "size_bytes": len(attachment.data),
            },
        )
        try:
            await asyncio.to_thread(self._put, object_name, attachment)
        except (S3Error, OSError) as e:
            logger.error(
                f"Error uploading evidence video to Minio: {e}",
                extra={
                    "request_id": request_id,
                    "object_name": object_name,
                    "error_type": type(e).__name__,
                },
            )
            raise EvidenceUploadFailed(
                "Evidence storage unavailable", request_id=request_id
            ) from e

        logger.info(
            "Evidence video uploaded",
            extra={"request_id": request_id, "object_name": object_name},
        )
        return self.object_url(object_name)

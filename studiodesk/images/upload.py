"""Photo-bank image uploads.

Images go through the ``upload-image`` edge function when it is reachable,
otherwise straight to object storage with a metadata row written alongside.
"""

from __future__ import annotations

import base64
import logging
import re
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import UUID, uuid4

from studiodesk.auth import IdentityProvider
from studiodesk.config import StorageConfig
from studiodesk.gateway.client import GatewayClient
from studiodesk.gateway.errors import (
    FormValidationError,
    GatewayError,
    NotFoundError,
    RemoteCallFailed,
    TransportError,
)
from studiodesk.models import ImageRecord, ImageUploadResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def sanitize_file_name(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name)


def record_from_row(row: dict[str, Any]) -> ImageRecord:
    return ImageRecord(
        image_uuid=row["image_uuid"],
        storage_path=row["image_obj"],
        access_url=row["image_access_url"],
        created_at=row.get("image_create_datetime"),
        file_name=row.get("file_name"),
        file_size=row.get("file_size"),
        mime_type=row.get("mime_type"),
    )


class ImageUploadService:
    """Upload, look up and delete photo-bank images."""

    def __init__(
        self,
        gateway: GatewayClient,
        identity: IdentityProvider,
        config: StorageConfig | None = None,
    ):
        self.gateway = gateway
        self.identity = identity
        self.config = config or StorageConfig()

    def validate(self, content: bytes, content_type: str) -> None:
        """Raise ``FormValidationError`` for oversized or non-image files."""
        limit = self.config.max_upload_bytes
        if len(content) > limit:
            raise FormValidationError(
                {"file": f"File size exceeds {limit // (1024 * 1024)}MB limit"}
            )
        if not content_type.startswith("image/"):
            raise FormValidationError({"file": "File must be an image"})

    async def upload(
        self,
        content: bytes,
        file_name: str,
        content_type: str,
        on_progress: ProgressCallback | None = None,
    ) -> ImageUploadResult:
        """Upload through the edge function, falling back to direct storage.

        Only a transport failure triggers the fallback; an error response from
        the function is raised as is.
        """
        progress = on_progress or (lambda _: None)
        self.validate(content, content_type)
        progress(10)

        encoded = base64.b64encode(content).decode("ascii")
        payload = {
            "file": f"data:{content_type};base64,{encoded}",
            "fileName": file_name,
            "contentType": content_type,
        }
        progress(30)
        await self.identity.current()
        progress(50)

        try:
            data = await self.gateway.invoke(self.config.upload_function, payload)
        except TransportError as exc:
            logger.warning(
                "edge_function_unavailable: function=%s error=%s; uploading directly",
                self.config.upload_function,
                exc.message,
            )
            return await self.upload_direct(content, file_name, content_type, on_progress)

        progress(80)
        if not isinstance(data, dict) or "Image_UUID" not in data:
            raise RemoteCallFailed(f"{self.config.upload_function} returned no image reference")
        progress(100)
        return ImageUploadResult(image_uuid=data["Image_UUID"], access_url=data["Image_AccessURL"])

    async def store_object(
        self,
        content: bytes,
        file_name: str,
        content_type: str,
        *,
        folder: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> tuple[str, str]:
        """Validate and write raw bytes to the bucket.

        Objects land under ``images/<user id>/`` unless ``folder`` is given.

        Returns:
            The storage path and its public URL
        """
        progress = on_progress or (lambda _: None)
        self.validate(content, content_type)
        progress(10)

        who = await self.identity.current()
        progress(20)

        stamp = int(time.time() * 1000)
        prefix = folder or f"images/{who.user_id}"
        path = f"{prefix}/{stamp}-{secrets.token_hex(6)}-{sanitize_file_name(file_name)}"
        progress(30)

        await self.gateway.upload(self.config.bucket, path, content, content_type=content_type)
        progress(60)
        return path, self.gateway.public_url(self.config.bucket, path)

    async def upload_direct(
        self,
        content: bytes,
        file_name: str,
        content_type: str,
        on_progress: ProgressCallback | None = None,
    ) -> ImageUploadResult:
        progress = on_progress or (lambda _: None)
        path, access_url = await self.store_object(
            content, file_name, content_type, on_progress=progress
        )
        progress(70)
        who = await self.identity.current()

        image_uuid = uuid4()
        try:
            await self.gateway.insert(
                self.config.image_table,
                {
                    "image_uuid": str(image_uuid),
                    "image_obj": path,
                    "image_access_url": access_url,
                    "image_create_datetime": datetime.now(timezone.utc).isoformat(),
                    "file_name": file_name,
                    "file_size": len(content),
                    "mime_type": content_type,
                    "user_id": who.user_id,
                },
            )
        except GatewayError:
            logger.error("image_metadata_insert_failed: path=%s; removing object", path)
            await self.discard_object(path)
            raise

        logger.info("image_uploaded: image_uuid=%s size=%s", image_uuid, len(content))
        progress(100)
        return ImageUploadResult(image_uuid=image_uuid, access_url=access_url, storage_path=path)

    async def discard_object(self, path: str) -> None:
        """Remove an object after a failed write; removal errors are only logged."""
        try:
            await self.gateway.remove(self.config.bucket, [path])
        except GatewayError as exc:
            logger.error("image_object_orphaned: path=%s error=%s", path, exc.message)

    async def get(self, image_uuid: UUID | str) -> ImageRecord | None:
        row = await self.gateway.select_one(
            self.config.image_table, filters={"image_uuid": str(image_uuid)}
        )
        return record_from_row(row) if row else None

    async def delete(self, image_uuid: UUID | str) -> None:
        """Delete the stored object and its row.

        Raises:
            NotFoundError: If no image has this id
        """
        record = await self.get(image_uuid)
        if record is None:
            raise NotFoundError("Image not found")

        try:
            await self.gateway.remove(self.config.bucket, [record.storage_path])
        except NotFoundError:
            logger.info("image_object_already_gone: path=%s", record.storage_path)

        await self.gateway.delete(self.config.image_table, filters={"image_uuid": str(image_uuid)})
        logger.info("image_deleted: image_uuid=%s", image_uuid)

"""Photo-bank projects and albums.

A project groups albums under one event; each project and album may carry a
thumbnail, and albums hold an ordered list of images. Rows live in the
``photobank_*`` tables and the image bytes in the shared storage bucket.
Deleting a project or album row cascades to its children in the database.
"""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from PIL import Image

from studiodesk.auth import IdentityProvider
from studiodesk.gateway.client import GatewayClient
from studiodesk.gateway.errors import FormValidationError, GatewayError, NotFoundError
from studiodesk.images.upload import ImageUploadService
from studiodesk.models import (
    PhotoBankAlbum,
    PhotoBankDetails,
    PhotoBankImage,
    PhotoBankProject,
)

logger = logging.getLogger(__name__)

PROJECT_TABLE = "photobank_projects"
PROJECT_THUMBNAIL_TABLE = "photobank_project_thumbnail_images"
ALBUM_TABLE = "photobank_albums"
ALBUM_THUMBNAIL_TABLE = "photobank_album_thumbnail_images"
ALBUM_IMAGE_TABLE = "photobank_album_images"

PROJECT_COLUMNS = f"*,thumbnail_image:{PROJECT_THUMBNAIL_TABLE}(*)"
ALBUM_COLUMNS = (
    f"*,thumbnail_image:{ALBUM_THUMBNAIL_TABLE}(*),images:{ALBUM_IMAGE_TABLE}(*)"
)

# Called with (file name, percent, status) for each album image
FileProgressCallback = Callable[[str, int, str], None]


@dataclass(frozen=True)
class ImageFile:
    content: bytes
    file_name: str
    content_type: str


@dataclass
class BulkUploadResult:
    """Outcome of uploading several album images at once."""

    successful: list[PhotoBankImage] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)  # (file name, message)

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.failed)

    @property
    def success_count(self) -> int:
        return len(self.successful)

    @property
    def failure_count(self) -> int:
        return len(self.failed)


@dataclass(frozen=True)
class _ThumbnailOwner:
    table: str
    thumbnail_table: str
    key: str
    folder: str


_PROJECTS = _ThumbnailOwner(PROJECT_TABLE, PROJECT_THUMBNAIL_TABLE, "project_id", "projects")
_ALBUMS = _ThumbnailOwner(ALBUM_TABLE, ALBUM_THUMBNAIL_TABLE, "album_id", "albums")


def image_dimensions(content: bytes) -> tuple[int, int]:
    """Pixel width and height, or ``(0, 0)`` when the bytes cannot be decoded."""
    try:
        with Image.open(io.BytesIO(content)) as image:
            return image.size
    except OSError as exc:
        logger.debug("image_dimensions_unknown: error=%s", exc)
        return 0, 0


def _first(embedded: Any) -> dict[str, Any] | None:
    if isinstance(embedded, list):
        return embedded[0] if embedded else None
    return embedded or None


def _details_from_row(row: dict[str, Any]) -> PhotoBankDetails:
    return PhotoBankDetails(
        main_event_name=row.get("main_event_name") or "",
        main_event_description=row.get("main_event_description") or "",
        short_description=row.get("short_description") or "",
        sub_event_name=row.get("sub_event_name") or "",
        custom_sub_event_name=row.get("custom_sub_event_name"),
    )


def image_from_row(row: dict[str, Any], owner_key: str) -> PhotoBankImage:
    return PhotoBankImage(
        id=str(row["id"]),
        owner_id=str(row.get(owner_key) or ""),
        storage_path=row["storage_path"],
        public_url=row["public_url"],
        file_name=row.get("file_name"),
        file_size=row.get("file_size"),
        mime_type=row.get("mime_type"),
        width=row.get("width") or 0,
        height=row.get("height") or 0,
        display_order=row.get("display_order") or 0,
        created_at=row.get("created_at"),
    )


def project_from_row(row: dict[str, Any]) -> PhotoBankProject:
    thumbnail = _first(row.get("thumbnail_image"))
    return PhotoBankProject(
        id=str(row["id"]),
        title=row.get("title") or "",
        details=_details_from_row(row),
        thumbnail_image_id=row.get("thumbnail_image_id"),
        thumbnail=image_from_row(thumbnail, "project_id") if thumbnail else None,
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def album_from_row(row: dict[str, Any]) -> PhotoBankAlbum:
    thumbnail = _first(row.get("thumbnail_image"))
    images = [image_from_row(image, "album_id") for image in row.get("images") or []]
    images.sort(key=lambda image: image.display_order)
    return PhotoBankAlbum(
        id=str(row["id"]),
        project_id=str(row["project_id"]),
        name=row.get("name") or "",
        details=_details_from_row(row),
        thumbnail_image_id=row.get("thumbnail_image_id"),
        thumbnail=image_from_row(thumbnail, "album_id") if thumbnail else None,
        images=images,
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PhotoBankRepository:
    """Create, read, update and delete photo-bank projects and albums."""

    def __init__(
        self,
        gateway: GatewayClient,
        identity: IdentityProvider,
        uploads: ImageUploadService | None = None,
    ):
        self.gateway = gateway
        self.identity = identity
        self.uploads = uploads or ImageUploadService(gateway, identity)

    # Projects

    async def fetch_projects(self) -> list[PhotoBankProject]:
        """The current user's projects, newest first."""
        who = await self.identity.current()
        rows = await self.gateway.select(
            PROJECT_TABLE,
            filters={"user_id": who.user_id},
            columns=PROJECT_COLUMNS,
            order=[("created_at", False)],
        )
        return [project_from_row(row) for row in rows]

    async def get_project(self, project_id: str) -> PhotoBankProject | None:
        row = await self.gateway.select_one(
            PROJECT_TABLE, filters={"id": project_id}, columns=PROJECT_COLUMNS
        )
        return project_from_row(row) if row else None

    async def create_project(
        self,
        title: str,
        details: PhotoBankDetails,
        thumbnail: ImageFile | None = None,
    ) -> PhotoBankProject:
        who = await self.identity.current()
        row = await self.gateway.insert(
            PROJECT_TABLE,
            {
                "user_id": who.user_id,
                "title": title,
                **details.as_row(),
                "thumbnail_image_id": None,
            },
        )
        project_id = str(row["id"])
        logger.info("photobank_project_created: id=%s", project_id)

        if thumbnail is not None:
            await self._replace_thumbnail(_PROJECTS, project_id, None, thumbnail)
        return await self._require_project(project_id)

    async def update_project(
        self,
        project_id: str,
        title: str,
        details: PhotoBankDetails,
        thumbnail: ImageFile | None = None,
    ) -> PhotoBankProject:
        """Save new details and, when given, swap the thumbnail for a new one."""
        await self.gateway.update(
            PROJECT_TABLE,
            {"title": title, **details.as_row(), "updated_at": _now()},
            filters={"id": project_id},
        )
        if thumbnail is not None:
            current = await self._require_project(project_id)
            await self._replace_thumbnail(
                _PROJECTS, project_id, current.thumbnail_image_id, thumbnail
            )
        return await self._require_project(project_id)

    async def delete_project(self, project_id: str) -> None:
        await self.gateway.delete(PROJECT_TABLE, filters={"id": project_id})
        logger.info("photobank_project_deleted: id=%s", project_id)

    async def upload_project_thumbnail(self, project_id: str, file: ImageFile) -> PhotoBankImage:
        return await self._store_image(
            PROJECT_THUMBNAIL_TABLE, "project_id", project_id, file, f"projects/{project_id}/thumbnails"
        )

    async def delete_project_thumbnail(self, thumbnail_id: str) -> None:
        await self._delete_image(PROJECT_THUMBNAIL_TABLE, thumbnail_id)

    # Albums

    async def fetch_albums(self, project_id: str) -> list[PhotoBankAlbum]:
        """Albums of a project, newest first, each with images in display order."""
        rows = await self.gateway.select(
            ALBUM_TABLE,
            filters={"project_id": project_id},
            columns=ALBUM_COLUMNS,
            order=[("created_at", False)],
        )
        return [album_from_row(row) for row in rows]

    async def get_album(self, album_id: str) -> PhotoBankAlbum | None:
        row = await self.gateway.select_one(
            ALBUM_TABLE, filters={"id": album_id}, columns=ALBUM_COLUMNS
        )
        return album_from_row(row) if row else None

    async def create_album(
        self,
        project_id: str,
        name: str,
        details: PhotoBankDetails,
        thumbnail: ImageFile | None = None,
        images: Sequence[ImageFile] = (),
        on_progress: FileProgressCallback | None = None,
    ) -> PhotoBankAlbum:
        row = await self.gateway.insert(
            ALBUM_TABLE,
            {
                "project_id": project_id,
                "name": name,
                **details.as_row(),
                "thumbnail_image_id": None,
            },
        )
        album_id = str(row["id"])
        logger.info("photobank_album_created: id=%s project_id=%s", album_id, project_id)

        if thumbnail is not None:
            await self._replace_thumbnail(_ALBUMS, album_id, None, thumbnail)
        if images:
            await self.upload_album_images(album_id, images, on_progress)
        return await self._require_album(album_id)

    async def update_album(
        self,
        album_id: str,
        name: str,
        details: PhotoBankDetails,
        thumbnail: ImageFile | None = None,
        images: Sequence[ImageFile] = (),
        on_progress: FileProgressCallback | None = None,
    ) -> PhotoBankAlbum:
        """Save new details, optionally swap the thumbnail, and append images."""
        await self.gateway.update(
            ALBUM_TABLE,
            {"name": name, **details.as_row(), "updated_at": _now()},
            filters={"id": album_id},
        )
        if thumbnail is not None:
            current = await self._require_album(album_id)
            await self._replace_thumbnail(_ALBUMS, album_id, current.thumbnail_image_id, thumbnail)
        if images:
            await self.upload_album_images(album_id, images, on_progress)
        return await self._require_album(album_id)

    async def delete_album(self, album_id: str) -> None:
        await self.gateway.delete(ALBUM_TABLE, filters={"id": album_id})
        logger.info("photobank_album_deleted: id=%s", album_id)

    async def upload_album_thumbnail(self, album_id: str, file: ImageFile) -> PhotoBankImage:
        return await self._store_image(
            ALBUM_THUMBNAIL_TABLE, "album_id", album_id, file, f"albums/{album_id}/thumbnails"
        )

    async def delete_album_thumbnail(self, thumbnail_id: str) -> None:
        await self._delete_image(ALBUM_THUMBNAIL_TABLE, thumbnail_id)

    async def upload_album_images(
        self,
        album_id: str,
        files: Sequence[ImageFile],
        on_progress: FileProgressCallback | None = None,
    ) -> BulkUploadResult:
        """Upload files concurrently after the album's last image.

        A file that fails validation or storage is reported in ``failed``
        and does not stop the others.
        """
        progress = on_progress or (lambda *_: None)
        last = await self.gateway.select(
            ALBUM_IMAGE_TABLE,
            filters={"album_id": album_id},
            columns="display_order",
            order=[("display_order", False)],
            limit=1,
        )
        start = (last[0].get("display_order") or 0) + 1 if last else 0

        async def upload_one(order: int, file: ImageFile) -> PhotoBankImage | str:
            progress(file.file_name, 0, "uploading")
            try:
                image = await self._store_image(
                    ALBUM_IMAGE_TABLE,
                    "album_id",
                    album_id,
                    file,
                    f"albums/{album_id}/images",
                    extra={"display_order": order},
                )
            except FormValidationError as exc:
                message = next(iter(exc.errors.values()), str(exc))
            except GatewayError as exc:
                message = exc.message
            else:
                progress(file.file_name, 100, "success")
                return image
            logger.warning(
                "photobank_image_failed: album_id=%s file=%s error=%s",
                album_id,
                file.file_name,
                message,
            )
            progress(file.file_name, 0, "error")
            return message

        outcomes = await asyncio.gather(
            *(upload_one(start + offset, file) for offset, file in enumerate(files))
        )

        result = BulkUploadResult()
        for file, outcome in zip(files, outcomes):
            if isinstance(outcome, PhotoBankImage):
                result.successful.append(outcome)
            else:
                result.failed.append((file.file_name, outcome))
        logger.info(
            "photobank_images_uploaded: album_id=%s ok=%s failed=%s",
            album_id,
            result.success_count,
            result.failure_count,
        )
        return result

    async def delete_album_image(self, image_id: str) -> None:
        await self._delete_image(ALBUM_IMAGE_TABLE, image_id)

    # Shared

    async def _require_project(self, project_id: str) -> PhotoBankProject:
        project = await self.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Photo-bank project {project_id} not found")
        return project

    async def _require_album(self, album_id: str) -> PhotoBankAlbum:
        album = await self.get_album(album_id)
        if album is None:
            raise NotFoundError(f"Photo-bank album {album_id} not found")
        return album

    async def _replace_thumbnail(
        self,
        owner: _ThumbnailOwner,
        owner_id: str,
        current_id: str | None,
        file: ImageFile,
    ) -> None:
        if current_id:
            await self._delete_image(owner.thumbnail_table, current_id)
        thumbnail = await self._store_image(
            owner.thumbnail_table, owner.key, owner_id, file, f"{owner.folder}/{owner_id}/thumbnails"
        )
        await self.gateway.update(
            owner.table, {"thumbnail_image_id": thumbnail.id}, filters={"id": owner_id}
        )

    async def _store_image(
        self,
        table: str,
        owner_key: str,
        owner_id: str,
        file: ImageFile,
        folder: str,
        extra: dict[str, Any] | None = None,
    ) -> PhotoBankImage:
        path, public_url = await self.uploads.store_object(
            file.content, file.file_name, file.content_type, folder=folder
        )
        width, height = image_dimensions(file.content)
        try:
            row = await self.gateway.insert(
                table,
                {
                    owner_key: owner_id,
                    "storage_path": path,
                    "public_url": public_url,
                    "file_name": file.file_name,
                    "file_size": len(file.content),
                    "mime_type": file.content_type,
                    "width": width,
                    "height": height,
                    **(extra or {}),
                },
            )
        except GatewayError:
            logger.error("photobank_row_insert_failed: table=%s path=%s", table, path)
            await self.uploads.discard_object(path)
            raise
        return image_from_row(row, owner_key)

    async def _delete_image(self, table: str, image_id: str) -> None:
        row = await self.gateway.select_one(
            table, filters={"id": image_id}, columns="storage_path"
        )
        if row is None:
            raise NotFoundError("Image not found")

        try:
            await self.gateway.remove(self.uploads.config.bucket, [row["storage_path"]])
        except NotFoundError:
            logger.info("image_object_already_gone: path=%s", row["storage_path"])

        await self.gateway.delete(table, filters={"id": image_id})
        logger.info("photobank_image_deleted: table=%s id=%s", table, image_id)

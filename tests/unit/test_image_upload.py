"""Unit tests for photo-bank image uploads."""

from __future__ import annotations

from uuid import UUID

import pytest

from studiodesk.config import StorageConfig
from studiodesk.gateway.errors import (
    FormValidationError,
    GatewayError,
    NotFoundError,
    TransportError,
)
from studiodesk.images.upload import ImageUploadService, sanitize_file_name

JPEG = b"\xff\xd8\xff\xe0" + b"0" * 64
IMAGE_UUID = "8c7d4b0e-52c4-4b8c-9d65-5ad3f9b2e001"


@pytest.fixture
def service(gateway, identity) -> ImageUploadService:
    return ImageUploadService(gateway, identity, StorageConfig(max_upload_bytes=1024))


class TestValidation:
    """Test file checks before any upload."""

    def test_sanitize_file_name(self):
        """Test unsafe file name characters are replaced."""
        assert sanitize_file_name("Wedding day (1).jpg") == "Wedding_day__1_.jpg"

    @pytest.mark.asyncio
    async def test_rejects_non_image(self, service, gateway):
        """Test non-image files are rejected."""
        with pytest.raises(FormValidationError) as exc_info:
            await service.upload(b"%PDF", "contract.pdf", "application/pdf")

        assert exc_info.value.errors["file"] == "File must be an image"
        gateway.invoke.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejects_oversized(self, gateway, identity):
        """Test oversized files are rejected."""
        service = ImageUploadService(gateway, identity, StorageConfig())

        with pytest.raises(FormValidationError) as exc_info:
            await service.upload_direct(b"0" * (10 * 1024 * 1024 + 1), "big.jpg", "image/jpeg")

        assert exc_info.value.errors["file"] == "File size exceeds 10MB limit"


class TestUpload:
    """Test edge function upload and direct fallback."""

    @pytest.mark.asyncio
    async def test_edge_function_upload(self, service, gateway):
        """Test upload through the edge function."""
        gateway.invoke.return_value = {
            "Image_UUID": IMAGE_UUID,
            "Image_AccessURL": "https://cdn.example/a.jpg",
        }
        progress: list[int] = []

        result = await service.upload(JPEG, "a.jpg", "image/jpeg", progress.append)

        assert result.image_uuid == UUID(IMAGE_UUID)
        assert result.access_url == "https://cdn.example/a.jpg"
        function, payload = gateway.invoke.await_args.args
        assert function == "upload-image"
        assert payload["file"].startswith("data:image/jpeg;base64,")
        assert payload["fileName"] == "a.jpg"
        assert progress == [10, 30, 50, 80, 100]
        gateway.upload.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_falls_back_to_direct_on_transport_error(self, service, gateway):
        """Test a transport error falls back to direct storage."""
        gateway.invoke.side_effect = TransportError("function unreachable")
        gateway.insert.return_value = {}

        result = await service.upload(JPEG, "Haldi 01.jpg", "image/jpeg")

        bucket, path, content = gateway.upload.await_args.args
        assert bucket == "images"
        assert path.startswith("images/owner-1/")
        assert path.endswith("-Haldi_01.jpg")
        assert content == JPEG
        assert result.access_url.endswith(f"/object/public/images/{path}")

        row = gateway.insert.await_args.args[1]
        assert row["image_obj"] == path
        assert row["user_id"] == "owner-1"
        assert row["file_size"] == len(JPEG)
        assert row["image_uuid"] == str(result.image_uuid)

    @pytest.mark.asyncio
    async def test_function_error_is_not_retried_directly(self, service, gateway):
        """Test an error response is not retried directly."""
        gateway.invoke.side_effect = GatewayError("Upload failed", status_code=500)

        with pytest.raises(GatewayError):
            await service.upload(JPEG, "a.jpg", "image/jpeg")

        gateway.upload.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_metadata_failure_removes_object(self, service, gateway):
        """Test a failed metadata write removes the object."""
        gateway.insert.side_effect = GatewayError("relation does not exist")

        with pytest.raises(GatewayError):
            await service.upload_direct(JPEG, "a.jpg", "image/jpeg")

        uploaded_path = gateway.upload.await_args.args[1]
        gateway.remove.assert_awaited_once_with("images", [uploaded_path])

    @pytest.mark.asyncio
    async def test_cleanup_failure_keeps_insert_error(self, service, gateway):
        """Test the metadata error is raised even when the object removal fails too."""
        gateway.insert.side_effect = GatewayError("relation does not exist")
        gateway.remove.side_effect = TransportError("storage unreachable")

        with pytest.raises(GatewayError) as exc_info:
            await service.upload_direct(JPEG, "a.jpg", "image/jpeg")

        assert exc_info.value.message == "relation does not exist"
        assert not isinstance(exc_info.value, TransportError)


class TestLookupDelete:
    """Test fetching and deleting stored images."""

    @pytest.fixture
    def row(self) -> dict:
        return {
            "image_uuid": IMAGE_UUID,
            "image_obj": "images/owner-1/1-abc-a.jpg",
            "image_access_url": "https://cdn.example/a.jpg",
            "image_create_datetime": "2024-03-01T10:00:00+00:00",
            "file_name": "a.jpg",
            "file_size": 68,
            "mime_type": "image/jpeg",
        }

    @pytest.mark.asyncio
    async def test_get(self, service, gateway, row):
        """Test looking up an image row."""
        gateway.select_one.return_value = row

        record = await service.get(IMAGE_UUID)

        assert record.storage_path == "images/owner-1/1-abc-a.jpg"
        assert record.file_size == 68

    @pytest.mark.asyncio
    async def test_get_missing(self, service, gateway):
        """Test looking up an unknown image."""
        gateway.select_one.return_value = None

        assert await service.get(IMAGE_UUID) is None

    @pytest.mark.asyncio
    async def test_delete_tolerates_missing_object(self, service, gateway, row):
        """Test delete succeeds when the object is already gone."""
        gateway.select_one.return_value = row
        gateway.remove.side_effect = NotFoundError("Object not found")

        await service.delete(IMAGE_UUID)

        gateway.delete.assert_awaited_once_with(
            "image_obj_storage_table", filters={"image_uuid": IMAGE_UUID}
        )

    @pytest.mark.asyncio
    async def test_delete_unknown_image(self, service, gateway):
        """Test deleting an unknown image raises not found."""
        gateway.select_one.return_value = None

        with pytest.raises(NotFoundError):
            await service.delete(IMAGE_UUID)

    @pytest.mark.asyncio
    async def test_row_delete_failure_propagates(self, service, gateway, row):
        """Test a failed row delete propagates."""
        gateway.select_one.return_value = row
        gateway.delete.side_effect = GatewayError("permission denied")

        with pytest.raises(GatewayError):
            await service.delete(IMAGE_UUID)

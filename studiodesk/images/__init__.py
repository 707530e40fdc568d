"""Photo-bank image storage."""

from studiodesk.images.photobank import (
    BulkUploadResult,
    ImageFile,
    PhotoBankRepository,
    image_dimensions,
)
from studiodesk.images.upload import ImageUploadService, record_from_row, sanitize_file_name

__all__ = [
    "BulkUploadResult",
    "ImageFile",
    "ImageUploadService",
    "PhotoBankRepository",
    "image_dimensions",
    "record_from_row",
    "sanitize_file_name",
]

"""
Storage Manager for Photo Assets
================================

Handles the binary side of a photo marker: the full-resolution image
and its thumbnail. Keys are stable and derived from the photo id so a
record can always find (and delete) its files:

```
{base}/
├── photos/
│   └── {photo_id}.jpg           # full image
└── thumb/
    └── {photo_id}-thumb.jpg     # 64x64 thumbnail
```

Example Usage:
-------------
```python
storage = StorageManager(base_path="./storage")
photo_key, thumb_key = storage.store_upload(photo_id, raw_bytes)
storage.public_url(thumb_key)   # "/storage/thumb/<id>-thumb.jpg"
storage.delete_file(photo_key)
```
"""

import io
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from ephemap.core.config import settings
from ephemap.core.exceptions import ValidationException

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base exception for storage-related errors."""


class DiskSpaceError(StorageError):
    """Raised when there's insufficient disk space."""


class StorageManager:
    """
    Manages photo and thumbnail files on the local filesystem.

    The reaper and the store only talk to this interface (keys in,
    keys out), so another backend can replace it without touching them.

    Attributes:
        base_path: Root directory for all storage operations.
        public_url_base: URL prefix the root directory is served under.
        thumbnail_size: Bounding box for thumbnails, in pixels.
        thumbnail_quality: JPEG quality for thumbnails.
    """

    PHOTOS_DIR = "photos"
    THUMBNAILS_DIR = "thumb"

    def __init__(
        self,
        base_path: Union[str, Path] = settings.STORAGE_PATH,
        public_url_base: str = settings.STORAGE_PUBLIC_URL,
        thumbnail_size: int = settings.THUMBNAIL_SIZE,
        thumbnail_quality: int = settings.THUMBNAIL_QUALITY,
    ) -> None:
        """
        Initialize the storage manager.

        Args:
            base_path: Root directory for all storage. Created if missing.
            public_url_base: URL prefix used by ``public_url``.
            thumbnail_size: Thumbnail bounding box in pixels.
            thumbnail_quality: Thumbnail JPEG quality (1-100).

        Raises:
            StorageError: If base_path cannot be created.
        """
        self.base_path = Path(base_path)
        self.public_url_base = public_url_base.rstrip("/")
        self.thumbnail_size = thumbnail_size
        self.thumbnail_quality = thumbnail_quality

        try:
            (self.base_path / self.PHOTOS_DIR).mkdir(parents=True, exist_ok=True)
            (self.base_path / self.THUMBNAILS_DIR).mkdir(parents=True, exist_ok=True)
            logger.info(f"Storage initialized at: {self.base_path}")
        except PermissionError as e:
            raise StorageError(
                f"Cannot create storage directory at {self.base_path}. "
                f"Check permissions. Error: {e}"
            )
        except OSError as e:
            raise StorageError(f"Failed to create storage directory: {e}")

    # -------------------------------------------------------------------------
    # Keys and paths
    # -------------------------------------------------------------------------

    def photo_key(self, photo_id: str) -> str:
        return f"{self.PHOTOS_DIR}/{photo_id}.jpg"

    def thumbnail_key(self, photo_id: str) -> str:
        return f"{self.THUMBNAILS_DIR}/{photo_id}-thumb.jpg"

    def path_for(self, key: str) -> Path:
        """
        Resolve a storage key to a path inside ``base_path``.

        Raises:
            StorageError: If the key escapes the storage root.
        """
        root = self.base_path.resolve()
        path = (root / key.lstrip("/")).resolve()
        if root != path and root not in path.parents:
            raise StorageError(f"Key outside storage root: {key}")
        return path

    def public_url(self, key: Optional[str]) -> Optional[str]:
        if not key:
            return None
        return f"{self.public_url_base}/{key.lstrip('/')}"

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def save_image(self, image: Image.Image, key: str, quality: int = 85) -> int:
        """
        Save a PIL Image as JPEG under ``key``.

        JPEG has no alpha channel, so RGBA images are flattened onto white.

        Returns:
            File size in bytes.

        Raises:
            StorageError: If saving fails (disk full, permissions, etc.)
        """
        file_path = self.path_for(key)

        if image.mode == "RGBA":
            background = Image.new("RGB", image.size, (255, 255, 255))
            background.paste(image, mask=image.split()[3])
            image = background
        elif image.mode != "RGB":
            image = image.convert("RGB")

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            image.save(file_path, format="JPEG", quality=quality, optimize=True)
            file_size = file_path.stat().st_size
            logger.info(f"Saved image: {file_path} ({file_size} bytes)")
            return file_size
        except OSError as e:
            if "No space left" in str(e):
                raise DiskSpaceError(f"Disk full, cannot save: {file_path}")
            raise StorageError(f"Failed to save image: {e}")

    def make_thumbnail(self, image: Image.Image) -> Image.Image:
        """Return a copy of ``image`` shrunk to fit the thumbnail box."""
        thumb = image.copy()
        thumb.thumbnail((self.thumbnail_size, self.thumbnail_size))
        return thumb

    def store_upload(self, photo_id: str, data: bytes) -> Tuple[str, str]:
        """
        Store an uploaded photo and its thumbnail.

        Args:
            photo_id: Id the photo record will be created with.
            data: Raw uploaded bytes.

        Returns:
            Tuple of (photo_key, thumbnail_key).

        Raises:
            ValidationException: If the bytes are not a readable image.
            StorageError: If writing either file fails.
        """
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise ValidationException(
                "Uploaded file is not a readable image", details={"reason": str(e)}
            )
        image = ImageOps.exif_transpose(image)

        photo_key = self.photo_key(photo_id)
        thumb_key = self.thumbnail_key(photo_id)
        self.save_image(image, photo_key)
        self.save_image(self.make_thumbnail(image), thumb_key, quality=self.thumbnail_quality)
        return photo_key, thumb_key

    def create_thumbnail(self, photo_id: str, photo_key: str) -> str:
        """
        Build a thumbnail from an already stored full image.

        Returns:
            The new thumbnail key.

        Raises:
            StorageError: If the source is missing or unreadable.
        """
        source = self.path_for(photo_key)
        try:
            with Image.open(source) as image:
                image.load()
                thumb = self.make_thumbnail(image)
        except FileNotFoundError:
            raise StorageError(f"Source image not found: {photo_key}")
        except (UnidentifiedImageError, OSError) as e:
            raise StorageError(f"Cannot read source image {photo_key}: {e}")

        thumb_key = self.thumbnail_key(photo_id)
        self.save_image(thumb, thumb_key, quality=self.thumbnail_quality)
        return thumb_key

    # -------------------------------------------------------------------------
    # Deleting
    # -------------------------------------------------------------------------

    def delete_file(self, key: str) -> bool:
        """
        Delete a single file from storage.

        Returns:
            True if the file was deleted, False if it didn't exist.

        Raises:
            StorageError: If deletion fails (permissions, etc.)
        """
        file_path = self.path_for(key)

        if not file_path.exists():
            logger.warning(f"File not found for deletion: {file_path}")
            return False

        try:
            file_path.unlink()
            logger.info(f"Deleted file: {file_path}")
            return True
        except PermissionError:
            raise StorageError(f"Permission denied: cannot delete {file_path}")
        except OSError as e:
            raise StorageError(f"Failed to delete file: {e}")

from __future__ import annotations

import io
import mimetypes
import os
from dataclasses import dataclass
from typing import Optional

from PIL import Image, UnidentifiedImageError


@dataclass
class UploadedImage:
    """A photo picked by the user, before any decoding."""
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: str, content_type: Optional[str] = None) -> "UploadedImage":
        with open(path, "rb") as f:
            data = f.read()
        guessed, _ = mimetypes.guess_type(path)
        return cls(os.path.basename(path), content_type or guessed or "application/octet-stream", data)


def open_image(upload: UploadedImage) -> Image.Image:
    """Decode an upload into a Pillow image or raise ValueError."""
    try:
        img = Image.open(io.BytesIO(upload.data))
        img.load()
        return img
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError("Failed to load image") from e

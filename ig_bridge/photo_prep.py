"""
Photo preparation: Pillow re-encode before upload.

Every photo upload advertises `image_compression` with quality 87, the way
the app's own JPEG encoder sends it. Re-encoding here keeps the bytes honest:
  1. Decode whatever the caller handed us (JPEG/PNG/WebP...).
  2. Flatten to RGB (drops alpha and palettes).
  3. Strip all EXIF / ICC metadata.
  4. Save as baseline JPEG at the advertised quality.
"""

import io

from PIL import Image, ImageOps, UnidentifiedImageError

from .constants import IMAGE_QUALITY
from .errors import InvalidArgument


def prepare_photo(image_bytes: bytes, quality: int = IMAGE_QUALITY) -> bytes:
    """
    Args:
        image_bytes: Raw image file contents.
        quality: JPEG quality; keep it equal to the advertised compression.

    Returns:
        JPEG bytes without metadata.
    """
    if not image_bytes:
        raise InvalidArgument("No photo data provided")
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidArgument(f"Unreadable image data: {e}")

    # Bake in the EXIF orientation before the EXIF block is dropped.
    img = ImageOps.exif_transpose(img)
    if img.mode != "RGB":
        img = img.convert("RGB")
    img.info.clear()

    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality)
    return buf.getvalue()

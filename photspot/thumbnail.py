import io
import logging

import numpy as np
from PIL import Image, UnidentifiedImageError

from .constants import THUMBNAIL_FORMAT, THUMBNAIL_MAX_EDGE, THUMBNAIL_QUALITY
from .errors import EncodingFailure

logger = logging.getLogger("PhotSpot")


def _image_from_array(arr):
    if arr.ndim == 4:
        arr = arr[0]
    if arr.ndim == 2:
        arr = arr[:, :, None]
    if arr.ndim != 3:
        raise EncodingFailure("bitmap array must be HW, HWC or BHWC")

    if arr.dtype.kind == "f":
        arr = (np.clip(arr, 0.0, 1.0) * 255.0).round()
    arr = np.clip(arr, 0, 255).astype(np.uint8)
    if arr.shape[-1] == 1:
        arr = np.repeat(arr, 3, axis=2)
    elif arr.shape[-1] > 3:
        arr = arr[:, :, :3]
    return Image.fromarray(np.ascontiguousarray(arr))


def _open_image(source):
    if isinstance(source, Image.Image):
        return source
    if isinstance(source, np.ndarray):
        return _image_from_array(source)
    if isinstance(source, (bytes, bytearray, memoryview)):
        if not len(source):
            raise EncodingFailure("thumbnail data is empty")
        try:
            img = Image.open(io.BytesIO(bytes(source)))
            img.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise EncodingFailure(f"cannot decode thumbnail: {exc}") from exc
        return img
    raise EncodingFailure(f"unsupported thumbnail type: {type(source).__name__}")


def encode_thumbnail(source, quality=THUMBNAIL_QUALITY, max_edge=THUMBNAIL_MAX_EDGE):
    """Compress a raster into the stored thumbnail form.

    ``source`` may be encoded image bytes, a PIL image or a numpy bitmap
    (HWC, uint8 or float in [0, 1]). The result is JPEG at ``quality``,
    downscaled so the longer edge is at most ``max_edge`` pixels.
    Raises ``EncodingFailure`` when the source cannot be read or written.
    """
    img = _open_image(source)
    w, h = img.size
    if w <= 0 or h <= 0:
        raise EncodingFailure("invalid image size")

    try:
        if img.mode != "RGB":
            img = img.convert("RGB")
        if max_edge and max(w, h) > max_edge:
            img = img.copy()
            img.thumbnail((max_edge, max_edge), Image.Resampling.LANCZOS)

        out = io.BytesIO()
        img.save(out, format=THUMBNAIL_FORMAT, quality=int(quality), optimize=True)
    except (OSError, ValueError) as exc:
        raise EncodingFailure(f"cannot encode thumbnail: {exc}") from exc

    data = out.getvalue()
    logger.debug("thumbnail encoded: %dx%d -> %d bytes", img.size[0], img.size[1], len(data))
    return data

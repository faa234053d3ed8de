"""
Image I/O: Frame Paths, Loading, Resampling, Saving
"""

import logging
import os

import numpy as np
from PIL import Image, UnidentifiedImageError

from stipple_errors import MissingFrameError, ResourceError

# Full scale of 16-bit grayscale frames
WIDE_MAX = 65535.0


def numbered_path(prefix, index, digits, suffix):
    """prefix + zero-padded index + suffix, e.g. ("in_", 7, 4, ".png") → "in_0007.png"."""
    return f"{prefix}{index:0{digits}d}{suffix}"


def load_frame(path):
    """
    Load an input frame.

    8-bit images come back as RGB PIL images. 16/32-bit grayscale (modes
    "I;16*", "I") comes back as a float32 array in [0, 1] and float images
    (mode "F") as-is, so bit depth beyond 8 bits is not clipped.

    Raises:
        MissingFrameError: path does not exist
        ResourceError: file exists but is not a readable image
    """
    if not os.path.isfile(path):
        raise MissingFrameError(f"Input frame not found: {path}")
    try:
        with Image.open(path) as img:
            img.load()
            if img.mode.startswith("I") or img.mode == "F":
                return wide_to_float(img)
            return img.convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        raise ResourceError(f"Cannot read input frame {path}: {e}") from e


def wide_to_float(img):
    """Grayscale PIL image of mode "I;16*", "I" or "F" → float32 (H, W)."""
    if img.mode == "F":
        return np.asarray(img, dtype=np.float32)
    # "I" holds 16-bit PNG samples in an int32 container
    return np.asarray(img, dtype=np.float32) / WIDE_MAX


def to_working_image(image, size):
    """
    Convert an image to a float32 RGB working buffer of shape (size, size, 3).

    Accepts a PIL image or a NumPy array (H, W), (H, W, 3) or (H, W, 4);
    integer arrays are scaled to [0, 1] by their dtype's maximum, float
    arrays are taken as-is. Alpha is dropped. Other sizes are resampled
    bilinearly per channel.
    """
    if isinstance(image, Image.Image):
        if image.mode.startswith("I") or image.mode == "F":
            image = wide_to_float(image)
        else:
            image = np.asarray(image.convert("RGB"))

    arr = np.asarray(image)
    if np.issubdtype(arr.dtype, np.integer):
        arr = arr.astype(np.float32) / np.float32(np.iinfo(arr.dtype).max)
    else:
        arr = arr.astype(np.float32)

    if arr.ndim == 2:
        arr = np.repeat(arr[:, :, None], 3, axis=2)
    elif arr.ndim == 3 and arr.shape[2] == 4:
        arr = arr[:, :, :3]
    elif arr.ndim == 3 and arr.shape[2] == 1:
        arr = np.repeat(arr, 3, axis=2)
    if arr.ndim != 3 or arr.shape[2] != 3:
        raise ResourceError(f"Unsupported image shape {np.shape(image)}")

    if arr.shape[0] != size or arr.shape[1] != size:
        logging.debug(f"[IO] Resampling {arr.shape[1]}x{arr.shape[0]} → {size}x{size}")
        channels = [
            np.asarray(Image.fromarray(np.ascontiguousarray(arr[:, :, c]))
                       .resize((size, size), Image.Resampling.BILINEAR))
            for c in range(3)
        ]
        arr = np.stack(channels, axis=2).astype(np.float32)

    return np.ascontiguousarray(arr)


def save_png(pixels, path):
    """Write an (H, W, 4) uint8 buffer or a PIL image to path, creating parent dirs."""
    out_dir = os.path.dirname(path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    img = pixels if isinstance(pixels, Image.Image) else Image.fromarray(np.asarray(pixels, dtype=np.uint8))
    img.save(path)

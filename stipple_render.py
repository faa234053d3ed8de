"""
Rendering: Dot Positions → Raster Sample
Offline (headless) renderer used for every output sample
"""

import numpy as np
from PIL import Image, ImageDraw


def to_pixels(positions, size):
    """Map [-1, 1]² positions to pixel coordinates of a size × size image."""
    return (np.asarray(positions, dtype=np.float64) + 1.0) * 0.5 * size


def render_dots(positions, size, dot_radius=1.5, background=(255, 255, 255), color=(0, 0, 0)):
    """
    Draw each dot as a filled disc.

    x grows to the right and y grows downward (row order), matching how
    the field is laid out from the source image.

    Args:
        positions: (N, 2) array in [-1, 1]²
        size: output width and height in pixels
        dot_radius: disc radius in pixels

    Returns:
        RGB PIL image
    """
    img = Image.new("RGB", (size, size), background)
    draw = ImageDraw.Draw(img)
    for x, y in to_pixels(positions, size):
        draw.ellipse((x - dot_radius, y - dot_radius, x + dot_radius, y + dot_radius), fill=color)
    return img

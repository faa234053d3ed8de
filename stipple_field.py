"""
Field Builder: Image → Normalized Charge Field

Brightness becomes a per-pixel charge that attracts dots. The field is
rescaled so its total charge equals num_dots * dot_charge for every frame,
whatever the frame's overall brightness.
"""

import logging
import math

import numpy as np
import taichi as ti

import stipple_codec as codec
from stipple_errors import ConfigError, FieldChargeError, ResourceError
from stipple_io import to_working_image

# Perceptual luminance weights (R, G, B)
LUMA_R = 0.2989
LUMA_G = 0.5870
LUMA_B = 0.1140


# =============================================================================
# Kernels
# =============================================================================

@ti.kernel
def raw_charge(img: ti.template(), valid: ti.template(), raw: ti.template(),
               blank_level: ti.f32, polarity: ti.f32):
    """
    Compute raw charge per pixel:

        raw = polarity * (blank_level - luminance)

    Pixels flagged invalid (non-finite input) get zero charge.
    """
    for y, x in raw:
        charge = 0.0
        if valid[y, x] != 0:
            px = img[y, x]
            lum = LUMA_R * px[0] + LUMA_G * px[1] + LUMA_B * px[2]
            charge = polarity * (blank_level - lum)
        raw[y, x] = charge


@ti.kernel
def encode_field(raw: ti.template(), out: ti.template(), scale: ti.f32, limit: ti.f32):
    """Write raw * scale into the field buffer through the scalar codec."""
    for y, x in raw:
        out[y, x] = codec.encode_scalar(raw[y, x] * scale, limit)


# =============================================================================
# Field Buffer
# =============================================================================

class FieldBuffer:
    """
    Encoded charge field of shape (sim_xy, sim_xy).

    Attributes:
        buffer: RGBA8 Taichi field, one encoded charge per pixel
        limit: codec range of the current contents (max |charge|)
        scale: normalization factor applied to raw charges
        total_charge: target total the field was normalized to
        ready: False until the first successful build
    """

    def __init__(self, sim_xy):
        self.sim_xy = sim_xy
        self.buffer = ti.Vector.field(4, dtype=ti.u8, shape=(sim_xy, sim_xy))
        self.limit = 1.0
        self.scale = 0.0
        self.total_charge = 0.0
        self.ready = False

    def encoded(self):
        return self.buffer.to_numpy()

    def decoded(self):
        """Decoded per-pixel charges, float64 array (sim_xy, sim_xy)."""
        return codec.decode(self.encoded(), self.limit)


# =============================================================================
# Field Builder
# =============================================================================

class FieldBuilder:
    """Derives the charge field from target images (one shared FieldBuffer)."""

    def __init__(self, cfg):
        self.cfg = cfg
        n = cfg.sim_xy
        try:
            self.field = FieldBuffer(n)
            self._img = ti.Vector.field(3, dtype=ti.f32, shape=(n, n))
            self._valid = ti.field(dtype=ti.i32, shape=(n, n))
            self._raw = ti.field(dtype=ti.f32, shape=(n, n))
        except RuntimeError as e:
            raise ResourceError(f"Cannot allocate field buffers ({n}x{n}): {e}") from e

    def build_field(self, image, blank_level=None, target_total_charge=None):
        """
        Rebuild the field from an image.

        Args:
            image: PIL image or NumPy array (any size; resampled to sim_xy)
            blank_level: zero-charge luminance (default cfg.blank_level)
            target_total_charge: field total (default num_dots * dot_charge)

        Returns:
            the FieldBuffer, updated in place

        Raises:
            FieldChargeError: total raw charge is not positive; the field is
                left unchanged
        """
        if blank_level is None:
            blank_level = self.cfg.blank_level
        if target_total_charge is None:
            target_total_charge = self.cfg.target_total_charge
        if not target_total_charge > 0.0:
            raise ConfigError(f"target_total_charge must be positive, got {target_total_charge}")

        work = to_working_image(image, self.cfg.sim_xy)
        valid = np.isfinite(work).all(axis=2)
        work = np.where(valid[:, :, None], work, 0.0).astype(np.float32)

        self._img.from_numpy(work)
        self._valid.from_numpy(valid.astype(np.int32))

        polarity = -1.0 if self.cfg.invert_brightness else 1.0
        raw_charge(self._img, self._valid, self._raw, blank_level, polarity)

        # float64 host reduction: deterministic, and exact enough for conservation
        raw = self._raw.to_numpy().astype(np.float64)
        total_raw = float(raw.sum())
        peak = float(np.abs(raw).max())

        if not math.isfinite(total_raw) or total_raw <= 0.0:
            raise FieldChargeError(
                f"Total raw field charge is {total_raw:.6g} (blank_level={blank_level}); "
                f"cannot normalize to {target_total_charge}")

        scale = target_total_charge / total_raw
        limit = peak * scale

        encode_field(self._raw, self.field.buffer, scale, limit)

        self.field.limit = limit
        self.field.scale = scale
        self.field.total_charge = target_total_charge
        self.field.ready = True

        logging.debug(f"[FIELD] raw Σ={total_raw:.4f} peak={peak:.4f} "
                      f"scale={scale:.6f} limit={limit:.6f}")
        return self.field

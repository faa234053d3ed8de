"""
Scalar Codec: Fixed-Point Floats in RGBA8 Pixels

Each float component is scaled by the buffer's limit, clamped to [-1, 1],
and quantized to a signed level q ∈ [-LEVELS, LEVELS]. It is stored
offset-binary as u = q + OFFSET in a (hi, lo) byte pair:

    scalar: (hi, lo, 0, 255)
    vec2:   (x_hi, x_lo, y_hi, y_lo)

Byte order matches value order, so nearby values give nearby pixels. Zero
is exact, and the worst-case round-trip error is tolerance(limit).

Host (NumPy) and device (ti.func) versions share the byte layout; they may
differ by one level where float32 rounding lands exactly on a half step.
"""

import numpy as np
import taichi as ti

LEVELS = 32767
OFFSET = 32768

POS_LIMIT = 1.0  # positions live in [-1, 1]²

rgba8 = ti.types.vector(4, ti.u8)


def tolerance(limit):
    """Largest |decode(encode(v)) - v| for v within [-limit, limit]."""
    return limit / (2.0 * LEVELS)


# =============================================================================
# Host Codec (NumPy)
# =============================================================================

def quantize(v, limit):
    """Float(s) → offset-binary integer level(s) in [1, 65535]."""
    x = np.nan_to_num(np.asarray(v, dtype=np.float64) / limit, nan=0.0)
    x = np.clip(x, -1.0, 1.0)
    return np.rint(x * LEVELS).astype(np.int32) + OFFSET


def dequantize(u, limit):
    return (np.asarray(u, dtype=np.float64) - OFFSET) * (limit / LEVELS)


def encode(v, limit):
    """
    Encode scalar(s) into RGBA8 pixel(s).

    Args:
        v: float or array of shape (...)
        limit: domain half-width; values outside [-limit, limit] clamp

    Returns:
        uint8 array of shape (..., 4)
    """
    u = quantize(v, limit)
    px = np.empty(u.shape + (4,), dtype=np.uint8)
    px[..., 0] = u >> 8
    px[..., 1] = u & 0xFF
    px[..., 2] = 0
    px[..., 3] = 255
    return px


def decode(px, limit):
    """RGBA8 pixel(s) of shape (..., 4) → float(s) of shape (...)."""
    px = np.asarray(px, dtype=np.int32)
    return dequantize(px[..., 0] * 256 + px[..., 1], limit)


def encode_vec2(v, limit):
    """
    Encode 2-vectors into RGBA8 pixels (x in RG, y in BA).

    Args:
        v: array of shape (..., 2)
        limit: per-component domain half-width

    Returns:
        uint8 array of shape (..., 4)
    """
    u = quantize(v, limit)
    px = np.empty(u.shape[:-1] + (4,), dtype=np.uint8)
    px[..., 0] = u[..., 0] >> 8
    px[..., 1] = u[..., 0] & 0xFF
    px[..., 2] = u[..., 1] >> 8
    px[..., 3] = u[..., 1] & 0xFF
    return px


def decode_vec2(px, limit):
    """RGBA8 pixel(s) of shape (..., 4) → 2-vectors of shape (..., 2)."""
    px = np.asarray(px, dtype=np.int32)
    u = np.stack([px[..., 0] * 256 + px[..., 1], px[..., 2] * 256 + px[..., 3]], axis=-1)
    return dequantize(u, limit)


# =============================================================================
# Device Codec (Taichi)
# =============================================================================

@ti.func
def _quantize(v: ti.f32, limit: ti.f32) -> ti.i32:
    x = ti.min(ti.max(v / limit, -1.0), 1.0)
    return ti.cast(ti.round(x * LEVELS), ti.i32) + OFFSET


@ti.func
def _dequantize(u: ti.i32, limit: ti.f32) -> ti.f32:
    return ti.cast(u - OFFSET, ti.f32) * (limit / LEVELS)


@ti.func
def encode_scalar(v: ti.f32, limit: ti.f32) -> rgba8:
    u = _quantize(v, limit)
    return ti.Vector([u // 256, u % 256, 0, 255], dt=ti.u8)


@ti.func
def decode_scalar(px: ti.template(), limit: ti.f32) -> ti.f32:
    u = ti.cast(px[0], ti.i32) * 256 + ti.cast(px[1], ti.i32)
    return _dequantize(u, limit)


@ti.func
def encode_vec2_px(v: ti.template(), limit: ti.f32) -> rgba8:
    ux = _quantize(v[0], limit)
    uy = _quantize(v[1], limit)
    return ti.Vector([ux // 256, ux % 256, uy // 256, uy % 256], dt=ti.u8)


@ti.func
def decode_vec2_px(px: ti.template(), limit: ti.f32) -> ti.math.vec2:
    ux = ti.cast(px[0], ti.i32) * 256 + ti.cast(px[1], ti.i32)
    uy = ti.cast(px[2], ti.i32) * 256 + ti.cast(px[3], ti.i32)
    return ti.math.vec2(_dequantize(ux, limit), _dequantize(uy, limit))

"""
Compute Passes: Acceleration → Velocity → Position
One kernel per pass, each writing exactly one buffer
"""

import taichi as ti

from stipple_codec import decode_scalar, decode_vec2_px, encode_vec2_px

vec2 = ti.types.vector(2, ti.f32)


@ti.func
def pixel_of(i: ti.i32, width: ti.i32) -> ti.math.ivec2:
    """Flat particle index → (row, col) in a width × width buffer."""
    return ti.math.ivec2(i // width, i % width)


# =============================================================================
# Acceleration Pass (Dot-Dot Repulsion + Field Attraction)
# =============================================================================

@ti.kernel
def acceleration_pass(
    pos: ti.template(), pos_slot: ti.i32,
    field: ti.template(),
    acc: ti.template(), acc_slot: ti.i32,
    resolution: vec2, num_dots: ti.i32,
    dot_charge: ti.f32, softening: ti.f32,
    pos_limit: ti.f32, field_limit: ti.f32, acc_limit: ti.f32,
):
    """
    Net acceleration per dot (unit mass), softened 2D Coulomb:

        a_i = q * ( Σ_{j≠i} q (p_i - p_j) / (|d|² + s²)
                  + Σ_cells c (x_cell - p_i) / (|d|² + s²) )

    Dots repel each other and are pulled toward positive field charge.
    Written to acc[acc_slot], which must not be the previous-step slot.
    O(num_dots²) + O(num_dots * cells).
    """
    width = ti.cast(resolution[0], ti.i32)
    field_h = ti.static(field.shape[0])
    field_w = ti.static(field.shape[1])
    s2 = softening * softening

    for i in range(num_dots):
        pi = pixel_of(i, width)
        p_i = decode_vec2_px(pos[pos_slot, pi[0], pi[1]], pos_limit)

        # 1) Dot-dot repulsion
        f_dots = ti.math.vec2(0.0, 0.0)
        for j in range(num_dots):
            if j != i:
                pj = pixel_of(j, width)
                d = p_i - decode_vec2_px(pos[pos_slot, pj[0], pj[1]], pos_limit)
                f_dots += d / (d.dot(d) + s2)

        # 2) Field attraction
        f_field = ti.math.vec2(0.0, 0.0)
        for fy in range(field_h):
            for fx in range(field_w):
                c = decode_scalar(field[fy, fx], field_limit)
                center = ti.math.vec2((fx + 0.5) / field_w * 2.0 - 1.0,
                                      (fy + 0.5) / field_h * 2.0 - 1.0)
                d = center - p_i
                f_field += c * d / (d.dot(d) + s2)

        a = dot_charge * (dot_charge * f_dots + f_field)
        acc[acc_slot, pi[0], pi[1]] = encode_vec2_px(a, acc_limit)


# =============================================================================
# Velocity Pass (Symmetric Verlet Blend + Damping + Cap)
# =============================================================================

@ti.kernel
def velocity_pass(
    vel: ti.template(),
    acc: ti.template(), prev_slot: ti.i32, new_slot: ti.i32,
    resolution: vec2, num_dots: ti.i32,
    half_dt: ti.f32, v_sustain: ti.f32, v_max: ti.f32,
    vel_limit: ti.f32, acc_limit: ti.f32,
):
    """
    v' = v_sustain * v + half_dt * (a_prev + a_new), then |v'| ≤ v_max.
    """
    width = ti.cast(resolution[0], ti.i32)
    for i in range(num_dots):
        pi = pixel_of(i, width)
        v = decode_vec2_px(vel[pi[0], pi[1]], vel_limit)
        a_prev = decode_vec2_px(acc[prev_slot, pi[0], pi[1]], acc_limit)
        a_new = decode_vec2_px(acc[new_slot, pi[0], pi[1]], acc_limit)

        v = v * v_sustain + half_dt * (a_prev + a_new)

        speed = v.norm()
        if speed > v_max:
            v *= v_max / speed

        vel[pi[0], pi[1]] = encode_vec2_px(v, vel_limit)


# =============================================================================
# Position Pass (Quadratic Step + Displacement Cap)
# =============================================================================

@ti.kernel
def position_pass(
    pos: ti.template(), src_slot: ti.i32, dst_slot: ti.i32,
    vel: ti.template(),
    acc: ti.template(), acc_slot: ti.i32,
    resolution: vec2, num_dots: ti.i32,
    dt: ti.f32, dt_sq: ti.f32, max_displacement: ti.f32,
    pos_limit: ti.f32, vel_limit: ti.f32, acc_limit: ti.f32,
):
    """
    Δ = v dt + ½ a dt², then |Δ| ≤ max_displacement.

    Reads pos[src_slot], writes pos[dst_slot]. The codec clamps the result
    to [-pos_limit, pos_limit]².
    """
    width = ti.cast(resolution[0], ti.i32)
    for i in range(num_dots):
        pi = pixel_of(i, width)
        p = decode_vec2_px(pos[src_slot, pi[0], pi[1]], pos_limit)
        v = decode_vec2_px(vel[pi[0], pi[1]], vel_limit)
        a = decode_vec2_px(acc[acc_slot, pi[0], pi[1]], acc_limit)

        disp = v * dt + 0.5 * dt_sq * a

        dist = disp.norm()
        if dist > max_displacement:
            disp *= max_displacement / dist

        p_new = p + disp
        pos[dst_slot, pi[0], pi[1]] = encode_vec2_px(p_new, pos_limit)

"""
State buffers for Blue-Noise Stippling Simulation
RGBA8 image-shaped buffers, particle i at pixel (i // buf_xy, i % buf_xy)
"""

import logging

import numpy as np
import taichi as ti

import stipple_codec as codec
from stipple_errors import ResourceError


class ParticleState:
    """
    Owns the encoded per-particle buffers.

    Buffers:
        pos: (2, buf_xy, buf_xy) position slots; active_pos marks the current one
        vel: (buf_xy, buf_xy) velocity, single buffered
        acc: (2, buf_xy, buf_xy) acceleration pair; active_acc marks the
             newest, the other slot holds the previous timestep's value

    Codec ranges: positions POS_LIMIT, velocities cfg.v_max,
    accelerations cfg.acc_limit.
    """

    def __init__(self, cfg):
        self.cfg = cfg
        n = cfg.buf_xy
        self.buf_xy = n

        try:
            self.pos = ti.Vector.field(4, dtype=ti.u8, shape=(2, n, n))
            self.vel = ti.Vector.field(4, dtype=ti.u8, shape=(n, n))
            self.acc = ti.Vector.field(4, dtype=ti.u8, shape=(2, n, n))
        except RuntimeError as e:
            raise ResourceError(f"Cannot allocate particle buffers ({n}x{n}): {e}") from e

        self.pos_limit = codec.POS_LIMIT
        self.vel_limit = cfg.v_max
        self.acc_limit = cfg.acc_limit

        self.num_dots = 0
        self.active_pos = 0
        self.active_acc = 0
        self.initialized = False

    # =========================================================================
    # Initialization
    # =========================================================================

    def initialize(self, num_dots=None, seed=None):
        """
        Seed particles with uniform random positions in [-1, 1]².

        Velocities and both acceleration slots start at zero. Pixels beyond
        num_dots hold encoded zeros. The same seed gives byte-identical
        buffers.
        """
        if num_dots is None:
            num_dots = self.cfg.num_dots
        if seed is None:
            seed = self.cfg.seed
        self.cfg.check_dot_count(num_dots)

        rng = np.random.default_rng(seed)
        n = self.buf_xy

        flat = np.zeros((n * n, 2), dtype=np.float64)
        flat[:num_dots] = rng.uniform(-1.0, 1.0, size=(num_dots, 2))
        pos_px = codec.encode_vec2(flat, self.pos_limit).reshape(n, n, 4)
        zero_px = codec.encode_vec2(np.zeros((n, n, 2)), 1.0)

        self.pos.from_numpy(np.stack([pos_px, pos_px]))
        self.vel.from_numpy(zero_px)
        self.acc.from_numpy(np.stack([zero_px, zero_px]))

        self.num_dots = num_dots
        self.active_pos = 0
        self.active_acc = 0
        self.initialized = True

        logging.info(f"[INIT] Random initialization: N={num_dots} seed={seed} "
                     f"buffer={n}x{n} (capacity {n * n})")

    def total_dot_charge(self):
        """Charge carried by the seeded dots; the field total that balances them."""
        return self.num_dots * self.cfg.dot_charge

    # =========================================================================
    # Slot Flags
    # =========================================================================

    def active_acceleration_index(self):
        return self.active_acc

    def previous_acceleration_index(self):
        return 1 - self.active_acc

    def swap_acceleration(self):
        """Mark the previously inactive slot as newest. Once per timestep."""
        self.active_acc = 1 - self.active_acc

    def active_position_index(self):
        return self.active_pos

    def swap_position(self):
        self.active_pos = 1 - self.active_pos

    # =========================================================================
    # Readback (between steps only)
    # =========================================================================

    def _pixel(self, buf, slot, index):
        if not 0 <= index < self.num_dots:
            raise IndexError(f"particle index {index} outside [0, {self.num_dots})")
        row, col = divmod(index, self.buf_xy)
        px = buf[slot, row, col] if slot is not None else buf[row, col]
        return np.array([px[k] for k in range(4)], dtype=np.uint8)

    def current_position(self, index):
        """Decoded position of one particle, shape (2,)."""
        return codec.decode_vec2(self._pixel(self.pos, self.active_pos, index), self.pos_limit)

    def current_velocity(self, index):
        """Decoded velocity of one particle, shape (2,)."""
        return codec.decode_vec2(self._pixel(self.vel, None, index), self.vel_limit)

    def _flat(self, pixels):
        return pixels.reshape(-1, 4)[:self.num_dots]

    def positions(self):
        """Decoded positions of all particles, shape (num_dots, 2)."""
        return codec.decode_vec2(self._flat(self.pos.to_numpy()[self.active_pos]), self.pos_limit)

    def velocities(self):
        return codec.decode_vec2(self._flat(self.vel.to_numpy()), self.vel_limit)

    def accelerations(self, slot=None):
        """Decoded accelerations from a slot (default: newest)."""
        if slot is None:
            slot = self.active_acc
        return codec.decode_vec2(self._flat(self.acc.to_numpy()[slot]), self.acc_limit)

    def snapshot(self):
        """Copies of all raw buffers plus slot flags."""
        return {
            "pos": self.pos.to_numpy(),
            "vel": self.vel.to_numpy(),
            "acc": self.acc.to_numpy(),
            "active_pos": self.active_pos,
            "active_acc": self.active_acc,
        }

"""
Simulation Stepper: Ordered Pass Launches per Timestep
"""

import logging
import math
import time

import taichi as ti

import stipple_passes as passes


class Stepper:
    """
    Advances a ParticleState against the current field.

    Uniforms that do not change between timesteps (resolution, physical
    constants, codec ranges) are fixed at construction; the field limit is
    read at each launch since every rebuild may change it.
    """

    def __init__(self, cfg, state, field):
        self.cfg = cfg
        self.state = state
        self.field = field
        self.timesteps = 0

        self.resolution = ti.math.vec2(float(state.buf_xy), float(state.buf_xy))
        self.dot_charge = cfg.dot_charge
        self.softening = cfg.softening
        self.dt = cfg.dt
        self.half_dt = cfg.half_dt
        self.dt_sq = cfg.dt_sq
        self.v_sustain = cfg.v_sustain
        self.v_max = cfg.v_max
        self.max_displacement = cfg.max_displacement

    def step(self, count=1):
        """
        Run exactly `count` timesteps. count == 0 leaves every buffer untouched.
        """
        if count < 0:
            raise ValueError(f"step count must be non-negative, got {count}")
        if count == 0:
            return
        if not self.state.initialized:
            raise RuntimeError("ParticleState.initialize() must run before stepping")
        if not self.field.ready:
            raise RuntimeError("Field must be built before stepping")
        if not math.isclose(self.field.total_charge, self.state.total_dot_charge(), rel_tol=1e-6):
            logging.warning(f"[STEP] Field total {self.field.total_charge:.6g} does not match "
                            f"dot charge {self.state.total_dot_charge():.6g}")

        t0 = time.time()
        for _ in range(count):
            self._timestep()
            if self.timesteps % self.cfg.log_interval == 0:
                logging.info(f"[STEP] Timestep {self.timesteps}")
        ti.sync()
        logging.debug(f"[STEP] {count} timesteps in {(time.time() - t0) * 1000:.2f} ms")

    def _timestep(self):
        """Acceleration → velocity → position, then one slot swap each."""
        state = self.state
        n = state.num_dots

        prev_acc = state.active_acceleration_index()
        new_acc = state.previous_acceleration_index()
        src_pos = state.active_position_index()
        dst_pos = 1 - src_pos

        passes.acceleration_pass(
            state.pos, src_pos,
            self.field.buffer,
            state.acc, new_acc,
            self.resolution, n,
            self.dot_charge, self.softening,
            state.pos_limit, self.field.limit, state.acc_limit,
        )

        passes.velocity_pass(
            state.vel,
            state.acc, prev_acc, new_acc,
            self.resolution, n,
            self.half_dt, self.v_sustain, self.v_max,
            state.vel_limit, state.acc_limit,
        )

        passes.position_pass(
            state.pos, src_pos, dst_pos,
            state.vel,
            state.acc, new_acc,
            self.resolution, n,
            self.dt, self.dt_sq, self.max_displacement,
            state.pos_limit, state.vel_limit, state.acc_limit,
        )

        state.swap_position()
        state.swap_acceleration()
        self.timesteps += 1

"""
Main Loop: Field → Step → Sample, once per input frame
"""

import logging
import os
import time

import numpy as np

from stipple_errors import StippleError
from stipple_field import FieldBuilder
from stipple_io import load_frame, numbered_path, save_png
from stipple_render import render_dots
from stipple_state import ParticleState
from stipple_stepper import Stepper

# =============================================================================
# Schedule
# =============================================================================

def frame_indices(cfg):
    """Input frame numbers, first_frame..last_frame inclusive."""
    return range(cfg.first_frame, cfg.last_frame + 1, cfg.frame_step)


def transition_schedule(cfg, transition):
    """
    Steps and samples for one frame transition.

    Transition 0 (settling from the random layout) uses first_steps and
    first_samples; every later one uses the per-transition values.

    Returns:
        (steps, samples)
    """
    if transition == 0:
        return cfg.first_steps, cfg.first_samples
    return cfg.steps_per_transition, cfg.samples_per_transition


def sample_points(steps, samples):
    """
    Step counts (within a transition) after which to take a sample.

    Evenly spaced, non-decreasing, the last one equal to steps. With
    steps == 0 every sample is taken immediately.
    """
    return [(k + 1) * steps // samples for k in range(samples)]


# =============================================================================
# Output
# =============================================================================

def write_sample(cfg, state, out_index):
    """Render current positions to the output pattern; returns the path."""
    positions = state.positions()
    path = numbered_path(cfg.output_prefix, out_index, cfg.output_digits, cfg.output_suffix)
    save_png(render_dots(positions, cfg.output_size, cfg.dot_radius), path)
    if cfg.export_positions:
        np.save(os.path.splitext(path)[0] + ".npy", positions.astype(np.float32))
    logging.debug(f"[LOOP] Sample {out_index} → {path}")
    return path


# =============================================================================
# Main Loop
# =============================================================================

def run_frame(cfg, builder, state, stepper, frame, transition, out_index):
    """
    Process one input frame: rebuild the field, step, sample.

    Returns:
        next output index
    """
    path = numbered_path(cfg.input_prefix, frame, cfg.input_digits, cfg.input_suffix)
    image = load_frame(path)

    if transition == 0:
        state.initialize()

    # field total follows the seeded dot count
    t0 = time.time()
    field = builder.build_field(image, target_total_charge=state.total_dot_charge())
    t_field = time.time() - t0

    if cfg.field_dump_prefix:
        save_png(field.encoded(), numbered_path(cfg.field_dump_prefix, frame, cfg.input_digits, ".png"))

    steps, samples = transition_schedule(cfg, transition)
    logging.info(f"[LOOP] Frame {frame} ({path}): {steps} steps, {samples} samples")

    t0 = time.time()
    done = 0
    for target in sample_points(steps, samples):
        stepper.step(target - done)
        done = target
        write_sample(cfg, state, out_index)
        out_index += 1
    stepper.step(steps - done)
    t_step = time.time() - t0

    logging.info(f"[LOOP] Field: {t_field * 1000:.2f} ms | Steps: {t_step * 1000:.2f} ms "
                 f"| charge limit={field.limit:.6f}")
    return out_index


def run_sequence(cfg):
    """
    Run the whole input range.

    Any error aborts the run; samples already written stay on disk.

    Returns:
        number of samples written
    """
    frames = frame_indices(cfg)
    logging.info(f"[LOOP] {len(frames)} frames, N={cfg.num_dots}, "
                 f"buffer={cfg.buf_xy}x{cfg.buf_xy}, field={cfg.sim_xy}x{cfg.sim_xy}")
    logging.info(f"[LOOP] q={cfg.dot_charge} blank={cfg.blank_level} dt={cfg.dt} "
                 f"max_disp={cfg.max_displacement} v_max={cfg.v_max:.4f} sustain={cfg.v_sustain}")

    builder = FieldBuilder(cfg)
    state = ParticleState(cfg)
    stepper = Stepper(cfg, state, builder.field)

    out_index = cfg.output_start
    for transition, frame in enumerate(frames):
        try:
            out_index = run_frame(cfg, builder, state, stepper, frame, transition, out_index)
        except StippleError as e:
            logging.error(f"[LOOP] Aborting at frame {frame}: {e}")
            raise

    written = out_index - cfg.output_start
    logging.info(f"[LOOP] Done: {written} samples written")
    return written

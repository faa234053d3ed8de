import numpy as np
import pytest

import stipple_codec as codec
from stipple_field import FieldBuilder
from stipple_state import ParticleState
from stipple_stepper import Stepper


def reference_acceleration(p, charges, q, s):
    """Independent NumPy evaluation of the acceleration pass."""
    d = p[:, None, :] - p[None, :, :]
    r2 = (d ** 2).sum(-1) + s * s
    f_dots = (d / r2[..., None]).sum(axis=1)

    h, w = charges.shape
    xs = (np.arange(w) + 0.5) / w * 2.0 - 1.0
    ys = (np.arange(h) + 0.5) / h * 2.0 - 1.0
    cx, cy = np.meshgrid(xs, ys)
    centers = np.stack([cx.ravel(), cy.ravel()], axis=-1)
    dc = centers[None, :, :] - p[:, None, :]
    r2c = (dc ** 2).sum(-1) + s * s
    f_field = (charges.ravel()[None, :, None] * dc / r2c[..., None]).sum(axis=1)

    return q * (q * f_dots + f_field)


def clamp_norm(v, cap):
    n = np.linalg.norm(v, axis=-1, keepdims=True)
    return np.where(n > cap, v * (cap / np.maximum(n, 1e-30)), v)


@pytest.fixture
def sim(small_cfg, gradient_image):
    builder = FieldBuilder(small_cfg)
    builder.build_field(gradient_image)
    state = ParticleState(small_cfg)
    state.initialize()
    return small_cfg, builder.field, state, Stepper(small_cfg, state, builder.field)


def acc_atol(cfg):
    return 2 * codec.tolerance(cfg.acc_limit) + 1e-4


def test_step_zero_is_a_noop(sim):
    _, _, state, stepper = sim
    before = state.snapshot()
    stepper.step(0)
    after = state.snapshot()
    for key in ("pos", "vel", "acc"):
        assert np.array_equal(before[key], after[key])
    assert before["active_acc"] == after["active_acc"]
    assert before["active_pos"] == after["active_pos"]
    assert stepper.timesteps == 0


def test_negative_count_rejected(sim):
    with pytest.raises(ValueError):
        sim[3].step(-1)


def test_requires_initialized_state_and_built_field(small_cfg, gradient_image):
    builder = FieldBuilder(small_cfg)
    state = ParticleState(small_cfg)
    stepper = Stepper(small_cfg, state, builder.field)
    with pytest.raises(RuntimeError):
        stepper.step(1)
    state.initialize()
    with pytest.raises(RuntimeError):
        stepper.step(1)
    builder.build_field(gradient_image)
    stepper.step(1)


def test_first_step_matches_reference(sim):
    cfg, field, state, stepper = sim
    p0 = state.positions()

    stepper.step(1)

    a1 = state.accelerations()
    expected = reference_acceleration(p0, field.decoded(), cfg.dot_charge, cfg.softening)
    assert np.abs(expected).max() < cfg.acc_limit
    np.testing.assert_allclose(a1, expected, atol=acc_atol(cfg))

    # velocity: v1 = sustain * 0 + half_dt * (0 + a1), capped
    v_expected = clamp_norm(cfg.half_dt * a1, cfg.v_max)
    np.testing.assert_allclose(state.velocities(), v_expected,
                               atol=2 * codec.tolerance(cfg.v_max) + 1e-6)

    # position: p1 = p0 + capped(v1 dt + ½ a1 dt²)
    disp = clamp_norm(state.velocities() * cfg.dt + 0.5 * cfg.dt_sq * a1, cfg.max_displacement)
    np.testing.assert_allclose(state.positions(), np.clip(p0 + disp, -1.0, 1.0),
                               atol=2 * codec.tolerance(1.0) + 1e-6)


def test_previous_slot_holds_last_timestep(sim):
    cfg, field, state, stepper = sim

    stepper.step(1)
    assert state.active_acceleration_index() == 1
    # n == 1: previous slot is still the initial zero state
    assert np.all(state.accelerations(state.previous_acceleration_index()) == 0.0)
    newest_after_1 = state.acc.to_numpy()[state.active_acceleration_index()].copy()
    p1 = state.positions()

    stepper.step(1)
    assert state.active_acceleration_index() == 0
    previous = state.acc.to_numpy()[state.previous_acceleration_index()]
    assert np.array_equal(previous, newest_after_1)

    expected = reference_acceleration(p1, field.decoded(), cfg.dot_charge, cfg.softening)
    np.testing.assert_allclose(state.accelerations(), expected, atol=acc_atol(cfg))


def test_slot_parity_after_n_steps(sim):
    _, _, state, stepper = sim
    stepper.step(5)
    assert state.active_acceleration_index() == 1
    assert state.active_position_index() == 1
    assert stepper.timesteps == 5


def test_containment_after_one_step(sim):
    cfg, _, state, stepper = sim
    p0 = state.positions()
    stepper.step(1)
    p1 = state.positions()
    assert np.all(np.abs(p1) <= 1.0)
    moved = np.linalg.norm(p1 - p0, axis=1)
    assert moved.max() <= cfg.max_displacement + 2 * codec.tolerance(1.0)


def test_velocity_cap_holds(small_cfg, gradient_image):
    cfg = small_cfg.replace(dt=0.05, max_displacement=0.005, v_sustain=1.0, dot_charge=0.3)
    builder = FieldBuilder(cfg)
    builder.build_field(gradient_image)
    state = ParticleState(cfg)
    state.initialize()
    Stepper(cfg, state, builder.field).step(10)
    speeds = np.linalg.norm(state.velocities(), axis=1)
    assert speeds.max() <= cfg.v_max + 2 * codec.tolerance(cfg.v_max)


def test_stepping_is_deterministic(small_cfg, gradient_image):
    snaps = []
    for _ in range(2):
        builder = FieldBuilder(small_cfg)
        builder.build_field(gradient_image)
        state = ParticleState(small_cfg)
        state.initialize()
        Stepper(small_cfg, state, builder.field).step(3)
        snaps.append(state.snapshot())
    for key in ("pos", "vel", "acc"):
        assert np.array_equal(snaps[0][key], snaps[1][key])


def test_dots_drift_toward_dark_side(small_cfg, gradient_image):
    cfg = small_cfg.replace(dt=0.05, max_displacement=0.02)
    builder = FieldBuilder(cfg)
    builder.build_field(gradient_image)
    state = ParticleState(cfg)
    state.initialize()
    x0 = state.positions()[:, 0].mean()
    Stepper(cfg, state, builder.field).step(30)
    assert state.positions()[:, 0].mean() < x0


def test_unbalanced_field_is_logged(small_cfg, gradient_image, caplog):
    builder = FieldBuilder(small_cfg)
    builder.build_field(gradient_image)
    state = ParticleState(small_cfg)
    state.initialize(num_dots=5)

    with caplog.at_level("WARNING"):
        Stepper(small_cfg, state, builder.field).step(1)
    assert "does not match" in caplog.text

    caplog.clear()
    builder.build_field(gradient_image, target_total_charge=state.total_dot_charge())
    with caplog.at_level("WARNING"):
        Stepper(small_cfg, state, builder.field).step(1)
    assert "does not match" not in caplog.text

import numpy as np
import pytest

from stipple_config import SimConfig
from stipple_utils import init_taichi


@pytest.fixture(scope="session", autouse=True)
def taichi_cpu():
    init_taichi("cpu")


@pytest.fixture
def small_cfg():
    return SimConfig(
        arch="cpu",
        num_dots=16,
        buf_xy=4,
        sim_xy=8,
        dot_charge=0.05,
        blank_level=0.95,
        softening=0.05,
        dt=0.01,
        max_displacement=0.01,
        v_sustain=0.9,
        acc_limit=64.0,
        seed=3,
    )


@pytest.fixture
def gradient_image():
    """8x8 RGB uint8, dark on the left, bright on the right."""
    ramp = np.linspace(0, 230, 8).astype(np.uint8)
    return np.repeat(np.tile(ramp, (8, 1))[:, :, None], 3, axis=2)

"""
Configuration for Blue-Noise Stippling Simulation
Field → Accelerate → Velocity → Position

All tunables, caps, and constants in one place. The module-level values are
defaults; a run uses an immutable SimConfig built from them (optionally
overlaid with a JSON file and CLI flags).
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Optional

from stipple_errors import ConfigError

# =============================================================================
# Architecture & Platform
# =============================================================================
ARCH = "gpu"  # "gpu" picks CUDA → Metal → Vulkan → CPU

# =============================================================================
# Particle Count & Buffers
# =============================================================================
NUM_DOTS = 2000   # number of dots (particles)
BUF_XY = 64       # particle buffers are BUF_XY × BUF_XY pixels (capacity 4096)
SIM_XY = 128      # field buffer is SIM_XY × SIM_XY pixels

# Acceleration pass is O(N²); refuse configurations above this many pairs
MAX_PAIR_INTERACTIONS = 1 << 26

# =============================================================================
# Charges
# =============================================================================
DOT_CHARGE = 0.02        # per-dot charge; field total is NUM_DOTS * DOT_CHARGE
BLANK_LEVEL = 0.95       # luminance with zero charge (brighter pixels go negative)
INVERT_BRIGHTNESS = False  # True: bright regions attract dots instead of dark
SOFTENING = 0.01         # force softening length (domain is [-1, 1]²)

# =============================================================================
# Integration
# =============================================================================
DT = 0.01                # timestep
MAX_DISPLACEMENT = 0.002  # per-step position change cap (v_max = this / DT)
V_SUSTAIN = 0.9          # velocity kept per step (damping factor)

# Codec range for acceleration buffers (values beyond clamp)
ACC_LIMIT = 16.0

# =============================================================================
# Randomness
# =============================================================================
SEED = 1

# =============================================================================
# Schedule (per input frame transition)
# =============================================================================
FIRST_STEPS = 400        # first frame: settle from random layout
FIRST_SAMPLES = 1
STEPS_PER_TRANSITION = 40
SAMPLES_PER_TRANSITION = 1

# =============================================================================
# Input / Output
# =============================================================================
INPUT_PREFIX = "frames/in_"
INPUT_DIGITS = 4
INPUT_SUFFIX = ".png"
FIRST_FRAME = 1
LAST_FRAME = 1
FRAME_STEP = 1

OUTPUT_PREFIX = "out/dots_"
OUTPUT_DIGITS = 5
OUTPUT_SUFFIX = ".png"
OUTPUT_START = 0

OUTPUT_SIZE = 512        # rendered samples are OUTPUT_SIZE × OUTPUT_SIZE
DOT_RADIUS = 1.5         # in output pixels

FIELD_DUMP_PREFIX = None  # e.g. "out/field_" to save encoded field buffers
EXPORT_POSITIONS = False  # also write decoded positions as .npy

# =============================================================================
# Diagnostics
# =============================================================================
LOG_INTERVAL = 100       # log every N timesteps


@dataclass(frozen=True)
class SimConfig:
    """
    Immutable run configuration.

    Derived constants (half_dt, dt_sq, v_max, target_total_charge) are
    computed once at construction. Invalid values raise ConfigError.
    """

    arch: str = ARCH

    num_dots: int = NUM_DOTS
    buf_xy: int = BUF_XY
    sim_xy: int = SIM_XY
    max_pair_interactions: int = MAX_PAIR_INTERACTIONS

    dot_charge: float = DOT_CHARGE
    blank_level: float = BLANK_LEVEL
    invert_brightness: bool = INVERT_BRIGHTNESS
    softening: float = SOFTENING

    dt: float = DT
    max_displacement: float = MAX_DISPLACEMENT
    v_sustain: float = V_SUSTAIN
    acc_limit: float = ACC_LIMIT

    seed: int = SEED

    first_steps: int = FIRST_STEPS
    first_samples: int = FIRST_SAMPLES
    steps_per_transition: int = STEPS_PER_TRANSITION
    samples_per_transition: int = SAMPLES_PER_TRANSITION

    input_prefix: str = INPUT_PREFIX
    input_digits: int = INPUT_DIGITS
    input_suffix: str = INPUT_SUFFIX
    first_frame: int = FIRST_FRAME
    last_frame: int = LAST_FRAME
    frame_step: int = FRAME_STEP

    output_prefix: str = OUTPUT_PREFIX
    output_digits: int = OUTPUT_DIGITS
    output_suffix: str = OUTPUT_SUFFIX
    output_start: int = OUTPUT_START
    output_size: int = OUTPUT_SIZE
    dot_radius: float = DOT_RADIUS

    field_dump_prefix: Optional[str] = FIELD_DUMP_PREFIX
    export_positions: bool = EXPORT_POSITIONS

    log_interval: int = LOG_INTERVAL

    # Derived
    half_dt: float = field(init=False)
    dt_sq: float = field(init=False)
    v_max: float = field(init=False)
    target_total_charge: float = field(init=False)

    def __post_init__(self):
        self.validate()
        object.__setattr__(self, "half_dt", 0.5 * self.dt)
        object.__setattr__(self, "dt_sq", self.dt * self.dt)
        object.__setattr__(self, "v_max", self.max_displacement / self.dt)
        object.__setattr__(self, "target_total_charge", self.num_dots * self.dot_charge)

    @property
    def capacity(self):
        """Number of particles the state buffers can address."""
        return self.buf_xy * self.buf_xy

    def validate(self):
        for name in ("buf_xy", "sim_xy", "output_size"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")
        for name in ("dt", "softening", "max_displacement", "acc_limit", "dot_charge"):
            if not getattr(self, name) > 0.0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if not 0.0 <= self.v_sustain <= 1.0:
            raise ConfigError(f"v_sustain must lie in [0, 1], got {self.v_sustain}")
        for name in ("first_steps", "first_samples", "steps_per_transition", "samples_per_transition"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be non-negative, got {getattr(self, name)}")
        if self.frame_step < 1:
            raise ConfigError(f"frame_step must be >= 1, got {self.frame_step}")
        if self.log_interval < 1:
            raise ConfigError(f"log_interval must be >= 1, got {self.log_interval}")
        self.check_dot_count(self.num_dots)

    def check_dot_count(self, num_dots):
        """Raise ConfigError unless num_dots fits the buffers and the pair bound."""
        if num_dots < 1:
            raise ConfigError(f"num_dots must be >= 1, got {num_dots}")
        if num_dots > self.capacity:
            raise ConfigError(
                f"num_dots={num_dots} exceeds buffer capacity "
                f"{self.buf_xy}×{self.buf_xy}={self.capacity}")
        if num_dots * num_dots > self.max_pair_interactions:
            raise ConfigError(
                f"num_dots²={num_dots * num_dots} exceeds max_pair_interactions="
                f"{self.max_pair_interactions}")

    @classmethod
    def from_dict(cls, values):
        """
        Build a config from a flat dict (e.g. parsed JSON).

        Args:
            values: mapping of field name → value; None values are ignored

        Returns:
            SimConfig with defaults for missing keys
        """
        names = {f.name for f in dataclasses.fields(cls) if f.init}
        unknown = sorted(set(values) - names)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**{k: v for k, v in values.items() if v is not None})

    def replace(self, **changes):
        """Copy with some fields changed (re-validated)."""
        return dataclasses.replace(self, **changes)

    def as_dict(self):
        return {f.name: getattr(self, f.name) for f in dataclasses.fields(self) if f.init}

import json

import pytest

from run_stipple import build_config, parse_args
from stipple_config import SimConfig
from stipple_errors import ConfigError
from stipple_utils import load_config


def test_derived_constants():
    cfg = SimConfig(num_dots=100, buf_xy=10, dot_charge=0.5, dt=0.02, max_displacement=0.004)
    assert cfg.half_dt == pytest.approx(0.01)
    assert cfg.dt_sq == pytest.approx(0.0004)
    assert cfg.v_max == pytest.approx(0.2)
    assert cfg.target_total_charge == pytest.approx(50.0)
    assert cfg.capacity == 100


def test_config_is_immutable():
    cfg = SimConfig()
    with pytest.raises(Exception):
        cfg.num_dots = 5


@pytest.mark.parametrize("changes", [
    {"dt": 0.0},
    {"softening": -1.0},
    {"max_displacement": 0.0},
    {"v_sustain": 1.5},
    {"sim_xy": 0},
    {"frame_step": 0},
    {"first_steps": -1},
])
def test_invalid_values_raise(changes):
    with pytest.raises(ConfigError):
        SimConfig(**changes)


def test_replace_revalidates():
    with pytest.raises(ConfigError):
        SimConfig().replace(num_dots=10 ** 6)


def test_from_dict_rejects_unknown_keys():
    with pytest.raises(ConfigError):
        SimConfig.from_dict({"num_dots": 10, "bogus": 1})
    with pytest.raises(ConfigError):
        SimConfig.from_dict({"v_max": 1.0})


def test_json_then_cli_overrides(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({"num_dots": 100, "buf_xy": 16, "seed": 4, "last_frame": 9}))
    assert load_config(str(path))["seed"] == 4

    args = parse_args(["--config", str(path), "--seed", "11", "--frames", "2", "5", "--arch", "cpu"])
    cfg = build_config(args)

    assert cfg.num_dots == 100
    assert cfg.buf_xy == 16
    assert cfg.seed == 11
    assert (cfg.first_frame, cfg.last_frame) == (2, 5)
    assert cfg.arch == "cpu"
    assert SimConfig.from_dict(cfg.as_dict()) == cfg


def test_field_dump_prefix_is_optional():
    assert SimConfig().field_dump_prefix is None
    cfg = SimConfig.from_dict({"field_dump_prefix": "field/f_"})
    assert cfg.field_dump_prefix == "field/f_"

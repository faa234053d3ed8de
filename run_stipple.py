"""
Main Entry Point: Blue-Noise Stippling Simulation
Field → Accelerate → Velocity → Position
"""

import argparse
import logging
import sys

from stipple_config import SimConfig
from stipple_errors import StippleError
from stipple_utils import init_taichi, load_config, setup_logging


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Blue-noise stippling of an image sequence")
    parser.add_argument("--config", type=str, default=None, help="JSON file with SimConfig fields")
    parser.add_argument("--arch", type=str, default=None, help="gpu, cuda, metal, vulkan or cpu")
    parser.add_argument("--num-dots", type=int, default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--input-prefix", type=str, default=None)
    parser.add_argument("--output-prefix", type=str, default=None)
    parser.add_argument("--frames", type=int, nargs=2, metavar=("FIRST", "LAST"), default=None)
    parser.add_argument("--frame-step", type=int, default=None)
    parser.add_argument("--log-level", type=str, default="INFO")
    parser.add_argument("--log-file", type=str, default=None)
    return parser.parse_args(argv)


def build_config(args):
    """Defaults ← JSON file ← CLI flags."""
    values = load_config(args.config) if args.config else {}
    overrides = {
        "arch": args.arch,
        "num_dots": args.num_dots,
        "seed": args.seed,
        "input_prefix": args.input_prefix,
        "output_prefix": args.output_prefix,
        "frame_step": args.frame_step,
    }
    if args.frames:
        overrides["first_frame"], overrides["last_frame"] = args.frames
    values.update({k: v for k, v in overrides.items() if v is not None})
    return SimConfig.from_dict(values)


def main(argv=None):
    """
    Steps:
        1. Build and validate configuration
        2. Initialize Taichi
        3. Run the frame sequence
    """
    args = parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    logging.info("=" * 60)
    logging.info("Blue-Noise Stippling Simulation")
    logging.info("=" * 60)

    try:
        cfg = build_config(args)
        init_taichi(cfg.arch)

        import stipple_loop as loop
        loop.run_sequence(cfg)
    except StippleError as e:
        logging.error(f"FATAL: {e}")
        return 1

    logging.info("Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())

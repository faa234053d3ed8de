"""
Utility functions shared across the simulation.

Logging setup, JSON configuration loading, and Taichi backend selection.
None of these belong to a specific stage (field, state, stepping, output).
"""
import json
import logging
import logging.handlers
import os
from typing import Any, Dict, Optional

import taichi as ti

_TAICHI_INITIALIZED = False


def setup_logging(level: str = "INFO", log_file: Optional[str] = None,
                  fmt: str = "%(asctime)s - %(levelname)s - %(message)s") -> None:
    """
    Configures the root logger.

    Logs to the console and, when log_file is given, to a rotating file
    (1MB per file, 5 backups).
    """
    logger = logging.getLogger()
    logger.setLevel(level.upper())

    # Clear existing handlers to avoid duplication
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(fmt)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=1024 * 1024, backupCount=5
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logging.debug(f"Log level set to {level.upper()}.")


def load_config(path: str) -> Dict[str, Any]:
    """Loads a JSON configuration file (flat mapping of SimConfig fields)."""
    logging.info(f"Loading configuration from {path}...")
    try:
        with open(path, 'r') as f:
            config = json.load(f)
    except FileNotFoundError:
        logging.error(f"Configuration file not found at {path}.")
        raise
    except json.JSONDecodeError:
        logging.error(f"Error decoding JSON from {path}.")
        raise
    logging.info("Configuration loaded successfully.")
    return config


def init_taichi(arch: str = "gpu") -> None:
    """
    Initializes the Taichi runtime once per process.

    "gpu" tries CUDA, then Metal, then Vulkan, and falls back to CPU.
    """
    global _TAICHI_INITIALIZED
    if _TAICHI_INITIALIZED:
        return

    ti_arch = ti.cpu
    if arch == "gpu":
        if ti.core.with_cuda():
            ti_arch = ti.cuda
        elif ti.core.with_metal():
            ti_arch = ti.metal
        elif ti.core.with_vulkan():
            ti_arch = ti.vulkan
    elif arch == "cuda":
        ti_arch = ti.cuda
    elif arch == "metal":
        ti_arch = ti.metal
    elif arch == "vulkan":
        ti_arch = ti.vulkan

    logging.info(f"[INIT] Initializing Taichi with backend: {ti_arch}")
    ti.init(arch=ti_arch, default_fp=ti.f32)
    _TAICHI_INITIALIZED = True

"""
Configuration & Constants
=========================
This module serves as the central registry for generation limits, defaults
and output locations.

Why is this file needed?
------------------------
1. Single source of truth: the CLI, the Qt worker and the pipeline all agree
   on which resolutions and projection counts are valid.
2. Separation: the user-facing choices (what a UI offers) are kept apart from
   the core bounds (what the engine accepts before raising ConfigurationError).

Exports:
    RESOLUTION_CHOICES (tuple[int, ...]): Grid sizes offered to users.
    PROJECTION_CHOICES (tuple[int, ...]): Projection counts offered to users.
    CHECKPOINT_INTERVAL (int): Angles between cooperative checkpoints.
"""
import os
from pathlib import Path


# User-facing choices
RESOLUTION_CHOICES: tuple[int, ...] = (64, 128, 192, 256)
PROJECTION_CHOICES: tuple[int, ...] = tuple(range(36, 721, 36))

DEFAULT_RESOLUTION: int = 128
DEFAULT_PROJECTIONS: int = 180
DEFAULT_MODEL: str = "gear"

# Core bounds, anything outside is rejected with ConfigurationError
MIN_RESOLUTION: int = 8
MAX_RESOLUTION: int = 512
MIN_PROJECTIONS: int = 1
MAX_PROJECTIONS: int = 3600

# The pipeline hands control back to its host after this many angles
CHECKPOINT_INTERVAL: int = 10


def get_output_dir() -> Path:
    """
    Directory for exported archives.

    Honours the CALPROJECTOR_OUTPUT environment variable, otherwise the
    current working directory.
    """
    return Path(os.environ.get("CALPROJECTOR_OUTPUT", os.getcwd()))

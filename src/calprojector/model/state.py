"""
Generation State (Data Model)
=============================
This module defines the run configuration and the explicit state value that
the generation pipeline passes from one step to the next.

Why is this file needed?
------------------------
1. Validation: GenerationConfig rejects out-of-range inputs before a run starts.
2. Testability: PipelineState is an immutable value, so every transition of
   the pipeline can be exercised in isolation.

Classes:
    ModelType: Built-in shape selector (plus "custom").
    GenerationConfig: Read-only input of one pipeline run.
    Stage: Pipeline stages.
    PipelineState: Snapshot of a run between two transitions.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Optional, Union

from calprojector.config import (
    MAX_PROJECTIONS,
    MAX_RESOLUTION,
    MIN_PROJECTIONS,
    MIN_RESOLUTION,
)
from calprojector.errors import ConfigurationError
from calprojector.model.geometry import Mesh, OccupancyGrid, Projection


class ModelType(StrEnum):
    GEAR = "gear"
    CUBE = "cube"
    SPHERE = "sphere"
    CUSTOM = "custom"  # externally supplied grid or mesh


# What may be handed to a "custom" run
VolumeSource = Union[Mesh, OccupancyGrid]


@dataclass(frozen=True)
class GenerationConfig:
    resolution: int = 128
    projection_count: int = 180
    model: ModelType = ModelType.GEAR

    def validate(self) -> None:
        """Raise ConfigurationError if the run cannot start with these values."""
        if isinstance(self.resolution, bool) or not isinstance(self.resolution, int):
            raise ConfigurationError(f"Resolution must be an integer, got {self.resolution!r}.")
        if not MIN_RESOLUTION <= self.resolution <= MAX_RESOLUTION:
            raise ConfigurationError(
                f"Resolution {self.resolution} is outside [{MIN_RESOLUTION}, {MAX_RESOLUTION}]."
            )
        if isinstance(self.projection_count, bool) or not isinstance(self.projection_count, int):
            raise ConfigurationError(f"Projection count must be an integer, got {self.projection_count!r}.")
        if not MIN_PROJECTIONS <= self.projection_count <= MAX_PROJECTIONS:
            raise ConfigurationError(
                f"Projection count {self.projection_count} is outside [{MIN_PROJECTIONS}, {MAX_PROJECTIONS}]."
            )
        try:
            ModelType(self.model)
        except ValueError as e:
            raise ConfigurationError(f"Unknown model '{self.model}'.") from e

    def angle(self, index: int) -> float:
        """Rotation angle in degrees of projection ``index``."""
        return index / self.projection_count * 360

    @property
    def angles(self) -> list[float]:
        return [self.angle(i) for i in range(self.projection_count)]


class Stage(StrEnum):
    """Stages of one generation run."""
    IDLE = "idle"
    BUILDING_VOLUME = "building_volume"
    PROJECTING = "projecting"
    NORMALIZING = "normalizing"
    READY = "ready"
    ERROR = "error"


TERMINAL_STAGES = frozenset({Stage.READY, Stage.ERROR})


@dataclass(frozen=True, eq=False)
class PipelineState:
    """
    Immutable snapshot of a generation run.

    Logic:
    1. IDLE carries nothing.
    2. BUILDING_VOLUME carries the config (and the custom source, if any).
    3. PROJECTING(i) additionally carries the volume and i finished projections.
    4. READY carries the complete, normalized projection set.
    5. ERROR carries only the failure; partial results are dropped.
    """
    stage: Stage = Stage.IDLE
    config: Optional[GenerationConfig] = None
    source: Optional[VolumeSource] = None
    volume: Optional[OccupancyGrid] = None
    projections: tuple[Projection, ...] = ()
    failure: Optional[BaseException] = None

    @property
    def index(self) -> int:
        """Index of the next angle to project."""
        return len(self.projections)

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    @property
    def progress(self) -> float:
        if self.stage == Stage.READY:
            return 1.0
        if self.config is None or self.stage != Stage.PROJECTING:
            return 0.0
        return self.index / self.config.projection_count

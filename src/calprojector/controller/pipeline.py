"""
Generation Pipeline
===================
Runs a generation: volume → one projection per angle → normalization.

Why is this file needed?
------------------------
1. State machine: every step is a pure transition from one PipelineState to
   the next, so each can be tested on its own.
2. Cooperative execution: the driver hands control back to its host every few
   angles, so a GUI hosting the run stays responsive.
3. Failure policy: a failing substrate aborts the whole run and the partial
   projection set is discarded, never returned as if complete.

Transitions:
    start -> build -> project_next (x M) -> normalize
    any non-terminal stage -> fail
"""
from __future__ import annotations

import logging
from typing import Callable, Iterator, Optional

from calprojector.config import CHECKPOINT_INTERVAL
from calprojector.controller.kernel import project
from calprojector.controller.normalizer import normalize_projections
from calprojector.controller.substrate import ComputeSubstrate, default_substrate
from calprojector.controller.volume_builder import build_volume
from calprojector.errors import ComputeSubstrateError, InvalidMeshError
from calprojector.model.geometry import Projection, ProjectionSet
from calprojector.model.state import GenerationConfig, PipelineState, Stage, VolumeSource

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]


def reset() -> PipelineState:
    """A fresh, idle pipeline. Results of any previous run are not carried over."""
    return PipelineState()


def start(config: GenerationConfig, source: Optional[VolumeSource] = None) -> PipelineState:
    """
    Begin a run.

    Raises:
        ConfigurationError: Invalid config, rejected before the run starts.
    """
    config.validate()
    logger.info(
        f"Starting generation: model={config.model}, resolution={config.resolution}, "
        f"projections={config.projection_count}"
    )
    return PipelineState(stage=Stage.BUILDING_VOLUME, config=config, source=source)


def fail(state: PipelineState, error: BaseException) -> PipelineState:
    """Move to ERROR, dropping the volume and any partial projections."""
    if state.is_terminal:
        raise ValueError(f"Cannot fail a pipeline in terminal stage '{state.stage}'.")
    logger.error(f"Generation failed during '{state.stage}': {error}")
    return PipelineState(stage=Stage.ERROR, config=state.config, failure=error)


def _expect(state: PipelineState, stage: Stage) -> None:
    if state.stage != stage:
        raise ValueError(f"Expected pipeline stage '{stage}', got '{state.stage}'.")


def build(state: PipelineState) -> PipelineState:
    _expect(state, Stage.BUILDING_VOLUME)
    try:
        volume = build_volume(state.config, state.source)
    except (InvalidMeshError, ComputeSubstrateError) as e:
        return fail(state, e)
    logger.info(f"Volume ready: {volume.occupied_count} occupied cells.")
    return PipelineState(stage=Stage.PROJECTING, config=state.config, volume=volume)


def project_next(state: PipelineState, substrate: Optional[ComputeSubstrate] = None) -> PipelineState:
    """Project the next angle; after the last one the run moves on to NORMALIZING."""
    _expect(state, Stage.PROJECTING)
    config = state.config
    angle = config.angle(state.index)
    try:
        data = project(state.volume, angle, substrate=substrate)
    except ComputeSubstrateError as e:
        return fail(state, e)

    projections = state.projections + (Projection(angle=angle, data=data),)
    stage = Stage.NORMALIZING if len(projections) == config.projection_count else Stage.PROJECTING
    return PipelineState(stage=stage, config=config, volume=state.volume, projections=projections)


def normalize(state: PipelineState) -> PipelineState:
    _expect(state, Stage.NORMALIZING)
    try:
        normalize_projections(state.projections)
    except ComputeSubstrateError as e:
        return fail(state, e)
    logger.info(f"Generated {len(state.projections)} projections.")
    return PipelineState(stage=Stage.READY, config=state.config, projections=state.projections)


def advance(state: PipelineState, substrate: Optional[ComputeSubstrate] = None) -> PipelineState:
    """Apply the single transition that follows ``state``."""
    if state.stage == Stage.BUILDING_VOLUME:
        return build(state)
    if state.stage == Stage.PROJECTING:
        return project_next(state, substrate)
    if state.stage == Stage.NORMALIZING:
        return normalize(state)
    raise ValueError(f"Nothing to advance from stage '{state.stage}'.")


def iter_generation(
    config: GenerationConfig,
    source: Optional[VolumeSource] = None,
    substrate: Optional[ComputeSubstrate] = None,
    progress: Optional[ProgressCallback] = None,
    checkpoint_every: Optional[int] = CHECKPOINT_INTERVAL,
) -> Iterator[PipelineState]:
    """
    Drive one run, pausing at cooperative checkpoints.

    Yields the state after every ``checkpoint_every``-th angle and always the
    terminal state (READY or ERROR) last. ``checkpoint_every=None`` only yields
    the terminal state. Closing the generator early abandons the run; an angle
    already being computed runs to completion first.

    Args:
        config: Run parameters.
        source: Mesh or grid for a custom model.
        substrate: Compute substrate, numba by default.
        progress: Called after each angle with (fraction, status text).
        checkpoint_every: Angles between checkpoints.

    Raises:
        ConfigurationError: Invalid config (before anything is computed).
    """
    if substrate is None:
        substrate = default_substrate()
    state = start(config, source)
    total = config.projection_count

    while not state.is_terminal:
        state = advance(state, substrate)
        if state.stage in (Stage.PROJECTING, Stage.NORMALIZING) and state.projections:
            done = state.index
            logger.debug(f"Angle {done}/{total} done ({state.projections[-1].angle:.2f} deg).")
            if progress is not None:
                progress(done / total, f"Processing angle {done}/{total}")
            if checkpoint_every and done % checkpoint_every == 0 and done < total:
                yield state

    yield state


def result_of(state: PipelineState) -> ProjectionSet:
    """
    The finished projection set of a terminal state.

    Raises:
        CALProjectorError: The run ended in ERROR (the stored failure).
    """
    if state.stage == Stage.ERROR:
        raise state.failure
    _expect(state, Stage.READY)
    return list(state.projections)


def run_generation(
    config: GenerationConfig,
    source: Optional[VolumeSource] = None,
    substrate: Optional[ComputeSubstrate] = None,
    progress: Optional[ProgressCallback] = None,
    checkpoint_every: Optional[int] = CHECKPOINT_INTERVAL,
    on_checkpoint: Optional[Callable[[PipelineState], None]] = None,
) -> ProjectionSet:
    """
    Run a generation to completion and return its projections.

    ``on_checkpoint`` is invoked at every cooperative checkpoint; hosts use it
    to service their own event loop.

    Raises:
        ConfigurationError, InvalidMeshError, ComputeSubstrateError
    """
    state = reset()
    for state in iter_generation(config, source, substrate, progress, checkpoint_every):
        if not state.is_terminal and on_checkpoint is not None:
            on_checkpoint(state)
    return result_of(state)

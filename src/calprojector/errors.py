"""
Error Hierarchy
===============
Exceptions raised by the projection engine.

Classes:
    CALProjectorError: Base class for every error raised by the core.
    ConfigurationError: Out-of-range resolution / projection count or unknown model.
    InvalidMeshError: Degenerate or malformed mesh handed to the voxelizer.
    ComputeSubstrateError: The parallel compute backend failed (usually memory).
"""
from __future__ import annotations


class CALProjectorError(Exception):
    """Base class for all projection engine errors."""


class ConfigurationError(CALProjectorError, ValueError):
    """A generation parameter is outside the range the core accepts."""


class InvalidMeshError(CALProjectorError, ValueError):
    """The mesh cannot be voxelized (empty, non-finite or zero extent)."""


class ComputeSubstrateError(CALProjectorError, RuntimeError):
    """
    The compute substrate could not evaluate a kernel.

    Typically raised on resource exhaustion at high resolution. The run that
    hit it is aborted as a whole; retrying at a lower resolution is up to the
    caller.
    """
    user_message = "Hardware limit reached. Try a lower resolution."

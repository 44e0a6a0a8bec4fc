"""Zero-drift validation pipeline core."""

from .cache import CacheManager, ConfigSurfaceResolver, GlobSurfaceResolver, compute_config_hash
from .pipeline import RunContext, Selection, ValidationPipeline, resolve_selection
from .steps import VALIDATION_PRESETS, VALIDATION_STEPS, CacheStrategy, ExecutionMode, StepId, UsageError

__all__ = [
    "CacheManager",
    "CacheStrategy",
    "ConfigSurfaceResolver",
    "ExecutionMode",
    "GlobSurfaceResolver",
    "RunContext",
    "Selection",
    "StepId",
    "UsageError",
    "VALIDATION_PRESETS",
    "VALIDATION_STEPS",
    "ValidationPipeline",
    "compute_config_hash",
    "resolve_selection",
]

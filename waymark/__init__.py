"""Waymark: checkpoint commits and progress snapshots for automated dev sessions."""

__version__ = "0.3.0"

from waymark.config import CheckpointConfig
from waymark.orchestrator import Checkpointer, CheckpointResult
from waymark.policy import CheckpointCategory

__all__ = [
    "__version__",
    "CheckpointCategory",
    "CheckpointConfig",
    "Checkpointer",
    "CheckpointResult",
]

"""Position adjustment: adjuster, pipeline and fetch backends."""

from predpos.positions.adjuster import decrease_position
from predpos.positions.backends import AsyncBackend, BlockingBackend
from predpos.positions.pipeline import PositionPipeline

__all__ = ["AsyncBackend", "BlockingBackend", "PositionPipeline", "decrease_position"]

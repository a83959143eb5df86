"""
Buffers
====================

RolloutStorage
    Fixed-horizon (T+1, N, ...) storage written by the collection loop and
    read by the A2C update step.
"""

from __future__ import annotations

from .rollout_storage import RolloutStorage

__all__ = ["RolloutStorage"]

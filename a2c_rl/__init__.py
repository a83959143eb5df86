"""
a2c_rl

Top-level package initializer.

This file exposes the stable public API intended for end-users, while keeping the
internal module layout flexible.

Usage
-----
from a2c_rl import a2c, ActionSpace, RolloutStorage
from a2c_rl import build_logger
"""

from __future__ import annotations

from .baselines.a2c import A2C, LossBundle, METRIC_KEYS, NonFiniteLossError, a2c
from .common.buffers import RolloutStorage
from .common.loggers import Logger, build_logger
from .common.networks import MLPBase
from .common.optimizers import build_optimizer
from .common.policies import BaseCore, Policy
from .common.spaces import ActionSpace

__version__ = "0.1.0"

__all__ = [
    "a2c",
    "A2C",
    "LossBundle",
    "METRIC_KEYS",
    "NonFiniteLossError",
    "ActionSpace",
    "BaseCore",
    "MLPBase",
    "Policy",
    "RolloutStorage",
    "build_optimizer",
    "Logger",
    "build_logger",
]

"""
Optimizers
====================

build_optimizer
    Name-keyed factory over torch.optim (adam / adamw / sgd / rmsprop / radam).
clip_grad_norm
    Global gradient-norm clipping returning the pre-clip norm.
optimizer_state_dict, load_optimizer_state_dict
    In-memory optimizer state helpers.
"""

from __future__ import annotations

from .optimizer_builder import (
    OPTIMIZER_NAMES,
    build_optimizer,
    clip_grad_norm,
    load_optimizer_state_dict,
    optimizer_state_dict,
)

__all__ = [
    "OPTIMIZER_NAMES",
    "build_optimizer",
    "clip_grad_norm",
    "load_optimizer_state_dict",
    "optimizer_state_dict",
]

"""
A2C
=======

Synchronous Advantage Actor-Critic update step.

Public API
----------
a2c : callable
    High-level builder that wires an `MLPBase`, a
    :class:`a2c_rl.common.policies.Policy` and the :class:`A2C` engine.

A2C : BaseCore
    Update engine implementing one A2C optimization step:
    - one batched `evaluate_actions` call over the whole rollout
    - squared-advantage value loss, detached-advantage policy loss, entropy bonus
    - global gradient clipping and a single RMSprop step

LossBundle : NamedTuple
    Scalar loss tensors returned by :meth:`A2C.compute_losses`.

NonFiniteLossError : FloatingPointError
    Raised when ``check_finite=True`` and a loss term is NaN/Inf.

Examples
--------
Build and update::

    from a2c_rl.baselines.a2c import a2c
    from a2c_rl.common.spaces import ActionSpace

    algo = a2c(obs_dim=4, action_space=ActionSpace.discrete(2))
    metrics = algo.update(storage)
"""

from __future__ import annotations

from .a2c import a2c
from .core import A2C, LossBundle, METRIC_KEYS, NonFiniteLossError

__all__ = [
    "a2c",
    "A2C",
    "LossBundle",
    "METRIC_KEYS",
    "NonFiniteLossError",
]

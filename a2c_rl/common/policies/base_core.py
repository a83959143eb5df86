from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Mapping, Optional

import torch as th
import torch.nn as nn
from torch.optim import Optimizer

from ..optimizers.optimizer_builder import (
    clip_grad_norm,
    load_optimizer_state_dict,
    optimizer_state_dict,
)


class BaseCore(ABC):
    """
    Base class for update engines ("cores").

    A core owns the optimizer bound to a policy's parameters and performs
    parameter updates from rollout batches. This base provides:

    - A reference to the policy and its device.
    - A monotonically increasing update-call counter.
    - Gradient-norm clipping helper.
    - Optimizer state (de)serialization for in-memory snapshots.

    Parameters
    ----------
    policy : nn.Module
        Network whose parameters the core updates.

    Notes
    -----
    Concrete subclasses create ``self.optimizer`` and implement `update`.
    """

    optimizer: Optimizer

    def __init__(self, *, policy: nn.Module) -> None:
        self.policy = policy
        first = next(iter(policy.parameters()), None)
        self.device = first.device if first is not None else th.device("cpu")
        self._update_calls: int = 0

    # ---------------------------------------------------------------------
    # Bookkeeping
    # ---------------------------------------------------------------------
    @property
    def update_calls(self) -> int:
        """Number of completed update steps."""
        return int(self._update_calls)

    def _bump(self) -> None:
        """Increment the update counter; called once after each optimizer step."""
        self._update_calls += 1

    # ---------------------------------------------------------------------
    # Gradient clipping
    # ---------------------------------------------------------------------
    def _clip_params(self, params: Iterable[nn.Parameter], *, max_grad_norm: float) -> Optional[float]:
        """
        Clip gradients in place.

        Parameters
        ----------
        params : Iterable[nn.Parameter]
            Parameters whose gradients are clipped as one global vector.
        max_grad_norm : float
            Maximum allowed norm. ``<= 0`` disables clipping.

        Returns
        -------
        total_norm : float or None
            Pre-clip norm, or None when clipping is disabled.
        """
        mg = float(max_grad_norm)
        if mg <= 0.0:
            return None
        return clip_grad_norm(params, mg)

    # ---------------------------------------------------------------------
    # Persistence (in-memory)
    # ---------------------------------------------------------------------
    def state_dict(self) -> Dict[str, Any]:
        """
        Snapshot of optimizer state and the update counter.

        Network weights are not included; use ``policy.state_dict()``.
        """
        return {
            "update_calls": int(self._update_calls),
            "optimizer": optimizer_state_dict(self.optimizer),
        }

    def load_state_dict(self, state: Mapping[str, Any]) -> None:
        """Restore a snapshot produced by `state_dict`."""
        if "optimizer" in state:
            load_optimizer_state_dict(self.optimizer, state["optimizer"])
        self._update_calls = int(state.get("update_calls", self._update_calls))

    # ---------------------------------------------------------------------
    # Update
    # ---------------------------------------------------------------------
    @abstractmethod
    def update(self, rollouts: Any) -> Mapping[str, float]:
        """Perform one optimization step from a rollout batch and return metrics."""
        raise NotImplementedError

from __future__ import annotations

import math
from types import MappingProxyType
from typing import Any, Dict, Mapping, NamedTuple, Tuple

import torch as th
import torch.nn as nn

from a2c_rl.common.optimizers.optimizer_builder import build_optimizer
from a2c_rl.common.policies.base_core import BaseCore
from a2c_rl.common.utils.common_utils import _flatten_steps, _shape_str, _to_scalar


METRIC_KEYS: Tuple[str, str, str] = ("loss/value", "loss/action", "stats/entropy")


class NonFiniteLossError(FloatingPointError):
    """Raised by `A2C.update(check_finite=True)` when a loss term is NaN/Inf."""


class LossBundle(NamedTuple):
    """Scalar loss tensors of one A2C objective evaluation."""

    value_loss: th.Tensor
    action_loss: th.Tensor
    entropy: th.Tensor
    total_loss: th.Tensor


class A2C(BaseCore):
    """
    Synchronous Advantage Actor-Critic update engine.

    What this core does
    -------------------
    One call to `update` evaluates every stored (state, action) pair of a
    rollout in a single policy forward pass and takes one RMSprop step on

        L = value_loss_coef * mean(A^2) - mean(stopgrad(A) * log pi(a|s))
            - entropy_coef * H

    where ``A = returns[:-1] - V(s)`` is the advantage. The advantage is
    detached inside the policy term, so the action loss never pushes
    gradient into the value head; the value head is trained by the squared
    advantage alone.

    Batch contract
    --------------
    `rollouts` is duck-typed (see `RolloutStorage`). Required fields:

      - observations  : (T+1, N, *obs_shape)
      - actions       : (T, N, action_dim)
      - rewards       : (T, N, 1)        (defines T and N)
      - returns       : (T+1, N, 1)      (rows 0..T-1 are regression targets)
      - hidden_states : (T+1, N, hidden) (only row 0 is used)
      - masks         : (T+1, N, 1)

    Policy contract
    ---------------
    ``policy.evaluate_actions(obs, hidden, masks, actions)`` returns a mapping
    with "value" (B, 1), "action_log_probs" (B, 1) and a scalar "entropy".

    Parameters
    ----------
    policy : nn.Module
        Policy whose full parameter set is bound to the optimizer now. Later
        parameter changes on the module are not picked up.
    value_loss_coef : float, default=0.5
        Weight of the value loss.
    entropy_coef : float, default=0.01
        Weight of the entropy bonus.
    learning_rate : float, default=7e-4
        RMSprop learning rate.
    epsilon : float, default=1e-5
        RMSprop denominator epsilon.
    alpha : float, default=0.99
        RMSprop smoothing constant.
    max_grad_norm : float, default=0.5
        Global gradient-norm clip applied before the step. ``0`` disables it.
    check_finite : bool, default=False
        If True, raise `NonFiniteLossError` before backpropagation when any loss
        term is NaN/Inf. Parameters and optimizer state are left untouched.

    Raises
    ------
    ValueError
        On negative or non-finite coefficients, negative `max_grad_norm`, or
        invalid optimizer hyperparameters. A policy without parameters raises
        torch's own optimizer error.
    """

    def __init__(
        self,
        policy: nn.Module,
        value_loss_coef: float = 0.5,
        entropy_coef: float = 0.01,
        learning_rate: float = 7e-4,
        epsilon: float = 1e-5,
        alpha: float = 0.99,
        max_grad_norm: float = 0.5,
        *,
        check_finite: bool = False,
    ) -> None:
        for name, v in (
            ("value_loss_coef", value_loss_coef),
            ("entropy_coef", entropy_coef),
            ("max_grad_norm", max_grad_norm),
        ):
            if not math.isfinite(float(v)) or float(v) < 0.0:
                raise ValueError(f"{name} must be finite and >= 0, got {v}")

        super().__init__(policy=policy)

        self.value_loss_coef = float(value_loss_coef)
        self.entropy_coef = float(entropy_coef)
        self.learning_rate = float(learning_rate)
        self.epsilon = float(epsilon)
        self.alpha = float(alpha)
        self.max_grad_norm = float(max_grad_norm)
        self.check_finite = bool(check_finite)

        self.optimizer = build_optimizer(
            policy.parameters(),
            name="rmsprop",
            lr=self.learning_rate,
            eps=self.epsilon,
            alpha=self.alpha,
        )

    # =============================================================================
    # Batch validation
    # =============================================================================
    @staticmethod
    def _check_batch(rollouts: Any) -> Tuple[int, int]:
        """
        Validate the time/env layout of a rollout batch.

        Returns
        -------
        (num_steps, num_envs) : Tuple[int, int]

        Raises
        ------
        ValueError
            Naming the first tensor whose shape breaks the layout.
        """
        rewards = rollouts.rewards
        if rewards.dim() != 3 or rewards.size(-1) != 1:
            raise ValueError(f"rewards must have shape (T, N, 1), got {_shape_str(rewards.shape)}")
        T, N = int(rewards.size(0)), int(rewards.size(1))
        if T == 0 or N == 0:
            raise ValueError(f"rollout batch is empty: rewards {_shape_str(rewards.shape)}")

        expected = {
            "observations": (T + 1, N),
            "actions": (T, N),
            "returns": (T + 1, N),
            "hidden_states": (T + 1, N),
            "masks": (T + 1, N),
        }
        for name, lead in expected.items():
            t = getattr(rollouts, name)
            if t.dim() < 3 or tuple(t.shape[:2]) != lead:
                raise ValueError(
                    f"{name} must have shape ({lead[0]}, {lead[1]}, ...) for rewards "
                    f"{_shape_str(rewards.shape)}, got {_shape_str(t.shape)}"
                )

        for name in ("returns", "masks"):
            t = getattr(rollouts, name)
            if t.dim() != 3 or t.size(-1) != 1:
                raise ValueError(f"{name} must have shape ({T + 1}, {N}, 1), got {_shape_str(t.shape)}")
        if rollouts.actions.dim() != 3:
            raise ValueError(f"actions must have shape ({T}, {N}, action_dim), got {_shape_str(rollouts.actions.shape)}")

        return T, N

    # =============================================================================
    # Losses
    # =============================================================================
    def compute_losses(self, rollouts: Any) -> LossBundle:
        """
        Evaluate the A2C objective on a rollout batch (no optimizer side effects).

        Parameters
        ----------
        rollouts : Any
            Batch satisfying the contract in the class docstring.

        Returns
        -------
        LossBundle
            Scalar tensors attached to the autograd graph of the policy.
        """
        T, N = self._check_batch(rollouts)
        out = self.policy.evaluate_actions(
            _flatten_steps(rollouts.observations[:-1]),
            rollouts.hidden_states[0].reshape(N, -1),
            _flatten_steps(rollouts.masks[:-1]),
            _flatten_steps(rollouts.actions),
        )

        values = out["value"].view(T, N, 1)
        action_log_probs = out["action_log_probs"].view(T, N, 1)
        entropy = out["entropy"]

        advantages = rollouts.returns[:-1] - values
        value_loss = advantages.pow(2).mean()
        action_loss = -(advantages.detach() * action_log_probs).mean()

        total_loss = value_loss * self.value_loss_coef + action_loss - entropy * self.entropy_coef
        return LossBundle(value_loss, action_loss, entropy, total_loss)

    @staticmethod
    def _raise_if_non_finite(losses: LossBundle) -> None:
        bad = [name for name, v in losses._asdict().items() if not bool(th.isfinite(v.detach()).all())]
        if bad:
            raise NonFiniteLossError(f"non-finite loss terms before backward: {', '.join(bad)}")

    # =============================================================================
    # Update
    # =============================================================================
    def update(self, rollouts: Any) -> Mapping[str, float]:
        """
        Perform one A2C optimization step.

        Exactly one forward pass, one backward pass and one optimizer step.
        Gradients are zeroed before backpropagation, so a call that raised can
        simply be retried. The batch is read, never written.

        Parameters
        ----------
        rollouts : Any
            Batch satisfying the contract in the class docstring.

        Returns
        -------
        metrics : Mapping[str, float]
            Read-only mapping, in order: "loss/value", "loss/action",
            "stats/entropy". Values are taken before the parameter step.

        Raises
        ------
        ValueError
            If the batch layout is inconsistent (raised before any forward pass).
        NonFiniteLossError
            If ``check_finite=True`` and a loss term is NaN/Inf.
        """
        losses = self.compute_losses(rollouts)
        if self.check_finite:
            self._raise_if_non_finite(losses)

        self.optimizer.zero_grad(set_to_none=True)
        losses.total_loss.backward()

        metrics: Dict[str, float] = {
            "loss/value": float(_to_scalar(losses.value_loss)),
            "loss/action": float(_to_scalar(losses.action_loss)),
            "stats/entropy": float(_to_scalar(losses.entropy)),
        }

        self._clip_params(self.policy.parameters(), max_grad_norm=self.max_grad_norm)
        self.optimizer.step()
        self._bump()

        return MappingProxyType(metrics)

    # =============================================================================
    # Configuration / persistence
    # =============================================================================
    def config(self) -> Dict[str, Any]:
        """JSON-safe hyperparameters (e.g. for ``Logger.dump_config``)."""
        return {
            "algo": "a2c",
            "optimizer": "rmsprop",
            "value_loss_coef": self.value_loss_coef,
            "entropy_coef": self.entropy_coef,
            "learning_rate": self.learning_rate,
            "epsilon": self.epsilon,
            "alpha": self.alpha,
            "max_grad_norm": self.max_grad_norm,
            "check_finite": self.check_finite,
        }

    def state_dict(self) -> Dict[str, Any]:
        """
        Extend the base snapshot with A2C loss coefficients.

        Notes
        -----
        Optimizer hyperparameters live inside the optimizer state itself.
        """
        s = super().state_dict()
        s.update(
            {
                "value_loss_coef": float(self.value_loss_coef),
                "entropy_coef": float(self.entropy_coef),
                "max_grad_norm": float(self.max_grad_norm),
            }
        )
        return s

    def load_state_dict(self, state: Mapping[str, Any]) -> None:
        super().load_state_dict(state)
        if "value_loss_coef" in state:
            self.value_loss_coef = float(state["value_loss_coef"])
        if "entropy_coef" in state:
            self.entropy_coef = float(state["entropy_coef"])
        if "max_grad_norm" in state:
            self.max_grad_norm = float(state["max_grad_norm"])

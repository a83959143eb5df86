from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import torch as th
import torch.nn as nn

from ..networks.base_networks import MLPBase
from ..networks.distributions import BaseDistribution
from ..networks.policy_networks import build_output_layer
from ..spaces import ActionSpace
from ..utils.network_utils import _ensure_batch
from ..utils.normalization_utils import RunningMeanStd


class Policy(nn.Module):
    """
    Actor-critic policy: a shared `MLPBase` plus a distribution output layer.

    Every trainable parameter (base towers, value head, output layer) is
    reachable through ``policy.parameters()``, which is the set the update
    algorithm binds its optimizer to.

    Parameters
    ----------
    action_space : ActionSpace
        Selects the output distribution (Categorical / DiagGaussian / Bernoulli).
    base : MLPBase
        Actor-critic body producing (value, actor features, hidden state).
    normalize_observations : bool, default=False
        If True, observations pass through a running mean/std normalizer whose
        statistics are updated explicitly via `update_observation_normalizer`.

    Shapes
    ------
    For a batch of B observations with N hidden-state rows (N == B for a single
    step, B == T * N for a flattened rollout):

    - obs     : (B, num_inputs)
    - hidden  : (N, recurrent_hidden_state_size)
    - masks   : (B, 1)
    - actions : (B, 1) long for Discrete, (B, A) float otherwise
    """

    def __init__(
        self,
        action_space: ActionSpace,
        base: MLPBase,
        *,
        normalize_observations: bool = False,
    ) -> None:
        super().__init__()
        self.action_space = action_space
        self.base = base
        self.dist = build_output_layer(action_space, base.output_size)

        self.obs_normalizer: Optional[RunningMeanStd] = None
        if normalize_observations:
            self.obs_normalizer = RunningMeanStd((base.num_inputs,))

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def is_recurrent(self) -> bool:
        return self.base.is_recurrent

    @property
    def recurrent_hidden_state_size(self) -> int:
        return self.base.recurrent_hidden_state_size

    @property
    def device(self) -> th.device:
        return next(self.parameters()).device

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _prepare(
        self,
        obs: Any,
        hidden: Optional[th.Tensor],
        masks: Optional[th.Tensor],
    ) -> Tuple[th.Tensor, th.Tensor, th.Tensor]:
        dev = self.device
        x = _ensure_batch(obs, dev)
        if self.obs_normalizer is not None:
            x = self.obs_normalizer(x)

        if hidden is None:
            hidden = th.zeros((x.size(0), self.recurrent_hidden_state_size), device=dev)
        if masks is None:
            masks = th.ones((x.size(0), 1), device=dev)
        return x, hidden.to(dev), masks.to(dev)

    def _forward(
        self,
        obs: Any,
        hidden: Optional[th.Tensor],
        masks: Optional[th.Tensor],
    ) -> Tuple[th.Tensor, BaseDistribution, th.Tensor]:
        x, hidden, masks = self._prepare(obs, hidden, masks)
        value, actor_features, hidden = self.base(x, hidden, masks)
        return value, self.dist(actor_features), hidden

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def act(
        self,
        obs: Any,
        hidden: Optional[th.Tensor] = None,
        masks: Optional[th.Tensor] = None,
        *,
        deterministic: bool = False,
    ) -> Dict[str, th.Tensor]:
        """
        Choose actions for a batch of observations.

        Parameters
        ----------
        obs : Any
            Observations, shape (B, num_inputs) or a single (num_inputs,).
        hidden : torch.Tensor, optional
            Hidden state, shape (B, recurrent_hidden_state_size). Zeros if None.
        masks : torch.Tensor, optional
            Continuation masks, shape (B, 1). Ones if None.
        deterministic : bool, default=False
            Use the distribution mode instead of sampling.

        Returns
        -------
        out : Dict[str, torch.Tensor]
            - "value"            : (B, 1)
            - "action"           : (B, action_dim)
            - "action_log_probs" : (B, 1)
            - "hidden"           : (B, recurrent_hidden_state_size)
        """
        value, dist, hidden = self._forward(obs, hidden, masks)
        action = dist.mode() if deterministic else dist.sample()
        return {
            "value": value,
            "action": action,
            "action_log_probs": dist.log_prob(action),
            "hidden": hidden,
        }

    def evaluate_actions(
        self,
        obs: Any,
        hidden: th.Tensor,
        masks: th.Tensor,
        actions: th.Tensor,
    ) -> Dict[str, th.Tensor]:
        """
        Re-evaluate stored actions under the current parameters (with grad).

        Parameters
        ----------
        obs : Any
            Observations, shape (B, num_inputs).
        hidden : torch.Tensor
            Initial hidden state, shape (N, recurrent_hidden_state_size).
        masks : torch.Tensor
            Continuation masks, shape (B, 1).
        actions : torch.Tensor
            Actions to score, shape (B, action_dim).

        Returns
        -------
        out : Dict[str, torch.Tensor]
            - "value"            : (B, 1)
            - "action_log_probs" : (B, 1)
            - "entropy"          : scalar, batch mean of the per-sample entropy
            - "hidden"           : (N, recurrent_hidden_state_size)
        """
        value, dist, hidden = self._forward(obs, hidden, masks)
        return {
            "value": value,
            "action_log_probs": dist.log_prob(actions),
            "entropy": dist.entropy().mean(),
            "hidden": hidden,
        }

    def get_values(
        self,
        obs: Any,
        hidden: Optional[th.Tensor] = None,
        masks: Optional[th.Tensor] = None,
    ) -> th.Tensor:
        """State values V(s), shape (B, 1)."""
        x, hidden, masks = self._prepare(obs, hidden, masks)
        value, _, _ = self.base(x, hidden, masks)
        return value

    def get_probs(
        self,
        obs: Any,
        hidden: Optional[th.Tensor] = None,
        masks: Optional[th.Tensor] = None,
    ) -> th.Tensor:
        """
        Action probabilities, shape (B, num_outputs).

        Raises
        ------
        NotImplementedError
            For continuous (Box) action spaces.
        """
        _, dist, _ = self._forward(obs, hidden, masks)
        return dist.probs

    @th.no_grad()
    def update_observation_normalizer(self, obs: Any) -> None:
        """
        Merge a batch of raw observations into the running statistics.

        Raises
        ------
        RuntimeError
            If the policy was built with ``normalize_observations=False``.
        """
        if self.obs_normalizer is None:
            raise RuntimeError("Policy was built without observation normalization.")
        self.obs_normalizer.update(_ensure_batch(obs, self.device))

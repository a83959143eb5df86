from __future__ import annotations

from typing import Any, Sequence, Tuple, Union

import torch as th

from ..spaces import ActionSpace
from ..utils.buffer_utils import compute_discounted_returns, compute_gae_returns
from ..utils.common_utils import _to_tensor


class RolloutStorage:
    """
    Fixed-horizon rollout storage for N synchronous environments.

    Every per-step tensor is laid out as (time, env, feature). Tensors that
    need a bootstrap slot hold one extra time step:

    ================== ======================== =========================
    field              shape                    dtype
    ================== ======================== =========================
    observations       (T+1, N, *obs_shape)     float32
    hidden_states      (T+1, N, hidden_size)    float32
    rewards            (T, N, 1)                float32
    value_predictions  (T+1, N, 1)              float32
    returns            (T+1, N, 1)              float32
    action_log_probs   (T, N, 1)                float32
    actions            (T, N, action_dim)       long (Discrete) / float32
    masks              (T+1, N, 1)              float32, initialised to 1
    ================== ======================== =========================

    Parameters
    ----------
    num_steps : int
        Horizon T (steps per environment per update).
    num_envs : int
        Number of parallel environments N.
    obs_shape : Sequence[int]
        Shape of a single observation.
    action_space : ActionSpace
        Determines the action slot width and dtype.
    hidden_size : int
        Width of the recurrent hidden state; use 1 for stateless policies.
    device : str or torch.device, default="cpu"
        Device on which all tensors are allocated.

    Notes
    -----
    - ``masks[t] == 0`` means the observation at step t starts a new episode;
      the recurrent state and the bootstrapped return are cut there.
    - The storage is written by the collection loop and read by the update
      step; it does not synchronize between the two.
    """

    def __init__(
        self,
        num_steps: int,
        num_envs: int,
        obs_shape: Sequence[int],
        action_space: ActionSpace,
        hidden_size: int,
        *,
        device: Union[str, th.device] = "cpu",
    ) -> None:
        if int(num_steps) <= 0:
            raise ValueError(f"num_steps must be > 0, got {num_steps}")
        if int(num_envs) <= 0:
            raise ValueError(f"num_envs must be > 0, got {num_envs}")
        if int(hidden_size) <= 0:
            raise ValueError(f"hidden_size must be > 0, got {hidden_size}")

        self.num_steps = int(num_steps)
        self.num_envs = int(num_envs)
        self.obs_shape: Tuple[int, ...] = tuple(int(s) for s in obs_shape)
        self.action_space = action_space
        self.hidden_size = int(hidden_size)
        self.device = th.device(device)

        T, N = self.num_steps, self.num_envs
        dev = self.device

        self.observations = th.zeros((T + 1, N, *self.obs_shape), device=dev)
        self.hidden_states = th.zeros((T + 1, N, self.hidden_size), device=dev)
        self.rewards = th.zeros((T, N, 1), device=dev)
        self.value_predictions = th.zeros((T + 1, N, 1), device=dev)
        self.returns = th.zeros((T + 1, N, 1), device=dev)
        self.action_log_probs = th.zeros((T, N, 1), device=dev)

        action_dtype = th.long if action_space.is_discrete else th.float32
        self.actions = th.zeros((T, N, action_space.action_dim), dtype=action_dtype, device=dev)

        self.masks = th.ones((T + 1, N, 1), device=dev)

        self.step = 0

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------
    def set_first_observation(self, observation: Any) -> None:
        """Write the observation at step 0 (e.g. right after ``env.reset()``)."""
        self.observations[0].copy_(_to_tensor(observation, self.device))

    def insert(
        self,
        observation: Any,
        hidden_state: Any,
        action: Any,
        action_log_prob: Any,
        value_prediction: Any,
        reward: Any,
        mask: Any,
    ) -> None:
        """
        Record one transition for all environments and advance the cursor.

        Parameters
        ----------
        observation : array-like
            Next observation, written at step t+1, shape (N, *obs_shape).
        hidden_state : array-like
            Hidden state after acting, written at step t+1, shape (N, hidden_size).
        action : array-like
            Action taken, written at step t, shape (N, action_dim).
        action_log_prob : array-like
            Log-probability of `action`, written at step t, shape (N, 1).
        value_prediction : array-like
            V(s_t), written at step t, shape (N, 1).
        reward : array-like
            Reward, written at step t, shape (N, 1).
        mask : array-like
            Continuation mask of the next observation, written at step t+1,
            shape (N, 1).

        Notes
        -----
        Values are copied with broadcasting, so e.g. an (obs_dim,) observation
        is expanded to every environment. After the write the cursor becomes
        ``(t + 1) % num_steps``.
        """
        t = self.step
        dev = self.device

        self.observations[t + 1].copy_(_to_tensor(observation, dev))
        self.hidden_states[t + 1].copy_(_to_tensor(hidden_state, dev))
        self.actions[t].copy_(_to_tensor(action, dev, dtype=self.actions.dtype))
        self.action_log_probs[t].copy_(_to_tensor(action_log_prob, dev))
        self.value_predictions[t].copy_(_to_tensor(value_prediction, dev))
        self.rewards[t].copy_(_to_tensor(reward, dev))
        self.masks[t + 1].copy_(_to_tensor(mask, dev))

        self.step = (t + 1) % self.num_steps

    def after_update(self) -> None:
        """Carry the last observation, hidden state and mask into step 0."""
        self.observations[0].copy_(self.observations[-1])
        self.hidden_states[0].copy_(self.hidden_states[-1])
        self.masks[0].copy_(self.masks[-1])

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------
    def compute_returns(self, next_value: Any, use_gae: bool, gamma: float, tau: float) -> None:
        """
        Fill ``returns[0:T]`` with regression targets for the value head.

        Parameters
        ----------
        next_value : array-like
            Bootstrap value V(s_T), shape (N, 1).
        use_gae : bool
            If True, GAE-λ targets (advantage + value); ``value_predictions[T]``
            is set to `next_value`. Otherwise plain discounted returns with
            ``returns[T] = next_value``.
        gamma : float
            Discount factor in [0, 1].
        tau : float
            GAE λ in [0, 1]; validated but unused when ``use_gae=False``.

        Raises
        ------
        ValueError
            If `gamma` or `tau` is outside [0, 1].
        """
        if not (0.0 <= float(tau) <= 1.0):
            raise ValueError(f"tau must be in [0, 1], got {tau}")

        nv = _to_tensor(next_value, self.device).reshape(self.num_envs, 1)
        if use_gae:
            compute_gae_returns(
                self.rewards,
                self.value_predictions,
                self.masks,
                self.returns,
                next_value=nv,
                gamma=float(gamma),
                tau=float(tau),
            )
        else:
            compute_discounted_returns(
                self.rewards,
                self.masks,
                self.returns,
                next_value=nv,
                gamma=float(gamma),
            )

    # ------------------------------------------------------------------
    # Device
    # ------------------------------------------------------------------
    def to(self, device: Union[str, th.device]) -> "RolloutStorage":
        """Move every tensor to `device`; returns self."""
        dev = th.device(device)
        self.observations = self.observations.to(dev)
        self.hidden_states = self.hidden_states.to(dev)
        self.rewards = self.rewards.to(dev)
        self.value_predictions = self.value_predictions.to(dev)
        self.returns = self.returns.to(dev)
        self.action_log_probs = self.action_log_probs.to(dev)
        self.actions = self.actions.to(dev)
        self.masks = self.masks.to(dev)
        self.device = dev
        return self

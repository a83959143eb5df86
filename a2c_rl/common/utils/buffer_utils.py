from __future__ import annotations

import torch as th


# =============================================================================
# Return estimation over a (T+1, N, 1) rollout layout
# =============================================================================
def _check_discount(gamma: float, tau: float = 1.0) -> None:
    if not (0.0 <= gamma <= 1.0):
        raise ValueError(f"gamma must be in [0, 1], got {gamma}")
    if not (0.0 <= tau <= 1.0):
        raise ValueError(f"tau must be in [0, 1], got {tau}")


@th.no_grad()
def compute_discounted_returns(
    rewards: th.Tensor,
    masks: th.Tensor,
    returns: th.Tensor,
    *,
    next_value: th.Tensor,
    gamma: float,
) -> th.Tensor:
    """
    Fill `returns` in place with bootstrapped discounted returns.

    Parameters
    ----------
    rewards : torch.Tensor
        Rewards, shape (T, N, 1).
    masks : torch.Tensor
        Continuation masks, shape (T+1, N, 1). ``masks[t+1] == 0`` means the
        episode ended after step t.
    returns : torch.Tensor
        Output buffer, shape (T+1, N, 1).
    next_value : torch.Tensor
        Bootstrap value V(s_T), shape (N, 1).
    gamma : float
        Discount factor in [0, 1].

    Returns
    -------
    returns : torch.Tensor
        The same buffer, for chaining.

    Formula
    -------
    R_T = V(s_T)
    R_t = r_t + γ m_{t+1} R_{t+1}
    """
    _check_discount(gamma)
    T = rewards.shape[0]

    returns[-1] = next_value
    for t in reversed(range(T)):
        returns[t] = returns[t + 1] * gamma * masks[t + 1] + rewards[t]
    return returns


@th.no_grad()
def compute_gae_returns(
    rewards: th.Tensor,
    values: th.Tensor,
    masks: th.Tensor,
    returns: th.Tensor,
    *,
    next_value: th.Tensor,
    gamma: float,
    tau: float,
) -> th.Tensor:
    """
    Fill `returns` in place with GAE-λ targets (advantage + value).

    Parameters
    ----------
    rewards : torch.Tensor
        Rewards, shape (T, N, 1).
    values : torch.Tensor
        Value predictions, shape (T+1, N, 1). ``values[T]`` is overwritten with
        `next_value`.
    masks : torch.Tensor
        Continuation masks, shape (T+1, N, 1).
    returns : torch.Tensor
        Output buffer, shape (T+1, N, 1). ``returns[T]`` is left untouched.
    next_value : torch.Tensor
        Bootstrap value V(s_T), shape (N, 1).
    gamma : float
        Discount factor in [0, 1].
    tau : float
        GAE smoothing parameter λ in [0, 1].

    Returns
    -------
    returns : torch.Tensor
        The same buffer, for chaining.

    Formula
    -------
    δ_t = r_t + γ V_{t+1} m_{t+1} - V_t
    A_t = δ_t + γ λ m_{t+1} A_{t+1}
    R_t = A_t + V_t
    """
    _check_discount(gamma, tau)
    T = rewards.shape[0]

    values[-1] = next_value
    gae = th.zeros_like(rewards[0])
    for t in reversed(range(T)):
        delta = rewards[t] + gamma * values[t + 1] * masks[t + 1] - values[t]
        gae = delta + gamma * tau * masks[t + 1] * gae
        returns[t] = gae + values[t]
    return returns

from __future__ import annotations

from typing import Union

import torch as th

from a2c_rl.common.networks.base_networks import MLPBase
from a2c_rl.common.policies.policy import Policy
from a2c_rl.common.spaces import ActionSpace

from .core import A2C


def a2c(
    *,
    # -------------------------------------------------------------------------
    # Environment I/O sizes
    # -------------------------------------------------------------------------
    obs_dim: int,
    action_space: ActionSpace,
    device: Union[str, th.device] = "cpu",
    # -------------------------------------------------------------------------
    # Network hyperparameters
    # -------------------------------------------------------------------------
    recurrent: bool = False,
    hidden_size: int = 64,
    num_layers: int = 2,
    normalize_observations: bool = False,
    # -------------------------------------------------------------------------
    # A2C update hyperparameters
    # -------------------------------------------------------------------------
    value_loss_coef: float = 0.5,
    entropy_coef: float = 0.01,
    learning_rate: float = 7e-4,
    epsilon: float = 1e-5,
    alpha: float = 0.99,
    max_grad_norm: float = 0.5,
    check_finite: bool = False,
) -> A2C:
    """
    Build an A2C update engine together with the policy it trains.

    This is the convenience entry point: it wires

      1) `MLPBase` (optionally GRU-recurrent actor/critic body),
      2) `Policy` (body + distribution output layer for `action_space`),
      3) `A2C` (RMSprop bound to ``policy.parameters()``).

    The policy is reachable as ``algo.policy``.

    Parameters
    ----------
    obs_dim : int
        Flattened observation dimensionality.
    action_space : ActionSpace
        Action space of the environment (use ``ActionSpace.from_gym`` for
        gymnasium spaces).
    device : str or torch.device, default="cpu"
        Device the policy is moved to before the optimizer is built.
    recurrent : bool, default=False
        Use a GRU in front of the actor/critic towers.
    hidden_size : int, default=64
        Width of every hidden layer (and of the GRU state).
    num_layers : int, default=2
        (Linear -> Tanh) layers per tower.
    normalize_observations : bool, default=False
        Attach a running mean/std observation normalizer to the policy.
    value_loss_coef, entropy_coef, learning_rate, epsilon, alpha, max_grad_norm, check_finite
        Forwarded to :class:`A2C`.

    Returns
    -------
    algo : A2C
        Update engine; ``algo.policy`` is the trained `Policy`.

    Examples
    --------
    >>> algo = a2c(obs_dim=4, action_space=ActionSpace.discrete(2))
    >>> out = algo.policy.act(th.zeros(8, 4))
    >>> out["action"].shape
    torch.Size([8, 1])
    """
    base = MLPBase(
        int(obs_dim),
        recurrent=bool(recurrent),
        hidden_size=int(hidden_size),
        num_layers=int(num_layers),
    )
    policy = Policy(action_space, base, normalize_observations=bool(normalize_observations)).to(device)

    return A2C(
        policy,
        value_loss_coef=value_loss_coef,
        entropy_coef=entropy_coef,
        learning_rate=learning_rate,
        epsilon=epsilon,
        alpha=alpha,
        max_grad_norm=max_grad_norm,
        check_finite=check_finite,
    )

from __future__ import annotations

import torch as th
import torch.nn as nn

from ..spaces import ActionSpace, BOX, DISCRETE, MULTI_BINARY
from ..utils.network_utils import _make_weights_init
from .distributions import (
    BaseDistribution,
    BernoulliDistribution,
    CategoricalDistribution,
    DiagGaussianDistribution,
)


# =============================================================================
# Distribution output layers
# =============================================================================
class CategoricalOutput(nn.Module):
    """Linear logits head (orthogonal init, gain 0.01) -> CategoricalDistribution."""

    def __init__(self, num_inputs: int, num_outputs: int) -> None:
        super().__init__()
        self.linear = nn.Linear(int(num_inputs), int(num_outputs))
        self.linear.apply(_make_weights_init("orthogonal", gain=0.01, bias=0.0))

    def forward(self, x: th.Tensor) -> BaseDistribution:
        return CategoricalDistribution(self.linear(x))


class DiagGaussianOutput(nn.Module):
    """
    Gaussian head with a state-independent log standard deviation.

    Parameters
    ----------
    num_inputs : int
        Feature dimensionality.
    num_outputs : int
        Action dimensionality A.
    log_std_init : float, default=0.0
        Initial value of every log-std entry.
    """

    def __init__(self, num_inputs: int, num_outputs: int, *, log_std_init: float = 0.0) -> None:
        super().__init__()
        self.mu = nn.Linear(int(num_inputs), int(num_outputs))
        self.mu.apply(_make_weights_init("orthogonal", gain=1.0, bias=0.0))
        self.log_std = nn.Parameter(th.full((int(num_outputs),), float(log_std_init)))

    def forward(self, x: th.Tensor) -> BaseDistribution:
        mean = self.mu(x)
        return DiagGaussianDistribution(mean, self.log_std)


class BernoulliOutput(nn.Module):
    """Linear logits head (orthogonal init, gain 0.01) -> BernoulliDistribution."""

    def __init__(self, num_inputs: int, num_outputs: int) -> None:
        super().__init__()
        self.linear = nn.Linear(int(num_inputs), int(num_outputs))
        self.linear.apply(_make_weights_init("orthogonal", gain=0.01, bias=0.0))

    def forward(self, x: th.Tensor) -> BaseDistribution:
        return BernoulliDistribution(self.linear(x))


def build_output_layer(action_space: ActionSpace, num_inputs: int) -> nn.Module:
    """
    Select the distribution output layer for an action space.

    Parameters
    ----------
    action_space : ActionSpace
        Target action space.
    num_inputs : int
        Width of the actor features feeding the layer.

    Returns
    -------
    nn.Module
        Module mapping features (B, num_inputs) to a `BaseDistribution`.
    """
    if action_space.kind == DISCRETE:
        return CategoricalOutput(num_inputs, action_space.num_outputs)
    if action_space.kind == BOX:
        return DiagGaussianOutput(num_inputs, action_space.num_outputs)
    if action_space.kind == MULTI_BINARY:
        return BernoulliOutput(num_inputs, action_space.num_outputs)
    # ActionSpace validates kind on construction; this only triggers for foreign objects.
    raise ValueError(f"Unsupported action space kind: {action_space.kind!r}")

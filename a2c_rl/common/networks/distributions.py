from __future__ import annotations

from abc import ABC, abstractmethod

import torch as th
from torch.distributions import Bernoulli, Categorical, Normal


LOG_STD_MIN = -20.0
LOG_STD_MAX = 2.0


# =============================================================================
# Base interface
# =============================================================================
class BaseDistribution(ABC):
    """
    Uniform capability set shared by every action distribution.

    Contract
    --------
    - `sample()`   : stochastic action, same layout as stored actions.
    - `mode()`     : deterministic action (argmax / mean / p > 0.5).
    - `log_prob()` : shape (B, 1), summed over action dims when needed.
    - `entropy()`  : shape (B, 1), summed over action dims when needed.
    - `probs`      : action probabilities where the distribution has them.

    The update algorithm only ever calls `log_prob` and `entropy`, so it never
    needs to know which concrete distribution a policy produces.
    """

    @abstractmethod
    def sample(self) -> th.Tensor:
        raise NotImplementedError

    @abstractmethod
    def mode(self) -> th.Tensor:
        raise NotImplementedError

    @abstractmethod
    def log_prob(self, action: th.Tensor) -> th.Tensor:
        raise NotImplementedError

    @abstractmethod
    def entropy(self) -> th.Tensor:
        raise NotImplementedError

    @property
    def probs(self) -> th.Tensor:
        raise NotImplementedError(f"{type(self).__name__} has no finite action probabilities.")


# =============================================================================
# Discrete: Categorical
# =============================================================================
class CategoricalDistribution(BaseDistribution):
    """
    Categorical distribution over ``n`` discrete actions.

    Parameters
    ----------
    logits : torch.Tensor
        Unnormalized logits, shape (B, n).

    Notes
    -----
    Actions are (B, 1) long tensors so they line up with the (T, N, 1) action
    slot in rollout storage.
    """

    def __init__(self, logits: th.Tensor) -> None:
        self.logits = logits
        self.dist = Categorical(logits=logits)

    def sample(self) -> th.Tensor:
        return self.dist.sample().unsqueeze(-1)

    def mode(self) -> th.Tensor:
        return th.argmax(self.dist.probs, dim=-1, keepdim=True)

    def log_prob(self, action: th.Tensor) -> th.Tensor:
        """
        Parameters
        ----------
        action : torch.Tensor
            Indices, shape (B, 1) or (B,).

        Returns
        -------
        log_prob : torch.Tensor
            Shape (B, 1).
        """
        if action.dim() == 2 and action.size(-1) == 1:
            action = action.squeeze(-1)
        return self.dist.log_prob(action.long()).unsqueeze(-1)

    def entropy(self) -> th.Tensor:
        return self.dist.entropy().unsqueeze(-1)

    @property
    def probs(self) -> th.Tensor:
        return self.dist.probs


# =============================================================================
# Continuous: Diagonal Gaussian
# =============================================================================
class DiagGaussianDistribution(BaseDistribution):
    """
    Diagonal Gaussian distribution (continuous actions, no squashing).

    Parameters
    ----------
    mean : torch.Tensor
        Mean, shape (B, A).
    log_std : torch.Tensor
        Log standard deviation, broadcastable to (B, A). Clamped to
        [LOG_STD_MIN, LOG_STD_MAX].
    """

    def __init__(self, mean: th.Tensor, log_std: th.Tensor) -> None:
        self.mean = mean
        self.log_std = th.clamp(log_std, LOG_STD_MIN, LOG_STD_MAX).expand_as(mean)
        self.dist = Normal(self.mean, self.log_std.exp())

    def sample(self) -> th.Tensor:
        return self.dist.sample()

    def mode(self) -> th.Tensor:
        return self.mean

    def log_prob(self, action: th.Tensor) -> th.Tensor:
        return self.dist.log_prob(action).sum(dim=-1, keepdim=True)

    def entropy(self) -> th.Tensor:
        return self.dist.entropy().sum(dim=-1, keepdim=True)


# =============================================================================
# Multi-binary: independent Bernoulli
# =============================================================================
class BernoulliDistribution(BaseDistribution):
    """
    Independent Bernoulli per action dimension.

    Parameters
    ----------
    logits : torch.Tensor
        Logits, shape (B, A).

    Notes
    -----
    Actions are float {0, 1} tensors of shape (B, A); log-prob and entropy are
    summed over the A dimensions.
    """

    def __init__(self, logits: th.Tensor) -> None:
        self.logits = logits
        self.dist = Bernoulli(logits=logits)

    def sample(self) -> th.Tensor:
        return self.dist.sample()

    def mode(self) -> th.Tensor:
        return (self.dist.probs > 0.5).to(self.logits.dtype)

    def log_prob(self, action: th.Tensor) -> th.Tensor:
        return self.dist.log_prob(action.to(self.logits.dtype)).sum(dim=-1, keepdim=True)

    def entropy(self) -> th.Tensor:
        return self.dist.entropy().sum(dim=-1, keepdim=True)

    @property
    def probs(self) -> th.Tensor:
        return self.dist.probs

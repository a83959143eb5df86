from __future__ import annotations

from typing import Tuple

import torch as th
import torch.nn as nn


# =============================================================================
# Running mean / variance (online, mergeable; Chan et al.-style)
# =============================================================================
class RunningMeanStd(nn.Module):
    """
    Running mean/variance estimator kept as module buffers.

    Statistics live in registered buffers, so they move with ``.to(device)``
    and travel with the owning policy's ``state_dict()``, but are never seen
    by an optimizer.

    Parameters
    ----------
    shape : Tuple[int, ...]
        Shape of a single sample (excluding batch dimension).
    epsilon : float, default=1e-4
        Initial count; acts as a small prior with mean 0 and variance 1.
    clip : float, default=10.0
        Normalized values are clipped to [-clip, +clip]. ``<= 0`` disables it.
    """

    def __init__(self, shape: Tuple[int, ...], *, epsilon: float = 1e-4, clip: float = 10.0) -> None:
        super().__init__()
        if epsilon <= 0:
            raise ValueError(f"epsilon must be > 0, got: {epsilon}")
        self.clip = float(clip)
        self.register_buffer("mean", th.zeros(shape, dtype=th.float64))
        self.register_buffer("var", th.ones(shape, dtype=th.float64))
        self.register_buffer("count", th.tensor(float(epsilon), dtype=th.float64))

    @th.no_grad()
    def update(self, x: th.Tensor) -> None:
        """
        Merge a batch of samples of shape (B, *shape) into the statistics.

        Raises
        ------
        ValueError
            If `x` does not end with the configured sample shape.
        """
        x = x.detach().to(dtype=th.float64, device=self.mean.device)
        if x.shape == self.mean.shape:
            x = x.unsqueeze(0)
        if x.dim() != self.mean.dim() + 1 or x.shape[1:] != self.mean.shape:
            raise ValueError(
                f"Invalid shape for update(). Expected (B, {tuple(self.mean.shape)}), got: {tuple(x.shape)}"
            )

        batch_mean = x.mean(dim=0)
        batch_var = x.var(dim=0, unbiased=False)
        batch_count = float(x.shape[0])

        delta = batch_mean - self.mean
        tot_count = self.count + batch_count

        m_a = self.var * self.count
        m_b = batch_var * batch_count
        m2 = m_a + m_b + delta.pow(2) * (self.count * batch_count / tot_count)

        self.mean.add_(delta * (batch_count / tot_count))
        self.var.copy_(m2 / tot_count)
        self.count.copy_(tot_count)

    def std(self, eps: float = 1e-8) -> th.Tensor:
        return th.sqrt(self.var + float(eps))

    def forward(self, x: th.Tensor, eps: float = 1e-8) -> th.Tensor:
        """Normalize `x` with the current statistics, keeping its dtype."""
        y = (x - self.mean.to(x.dtype)) / self.std(eps).to(x.dtype)
        if self.clip > 0.0:
            y = th.clamp(y, -self.clip, self.clip)
        return y

from __future__ import annotations

from typing import Any, Callable, Sequence, Tuple, Union
import math

import torch as th
import torch.nn as nn


# Hidden-layer gain for tanh/ReLU towers.
SQRT2 = math.sqrt(2.0)


# =============================================================================
# Network utilities
# =============================================================================
def _validate_hidden_sizes(hidden_sizes: Sequence[int]) -> Tuple[int, ...]:
    """
    Validate an MLP hidden layer size specification.

    Parameters
    ----------
    hidden_sizes : Sequence[int]
        Hidden layer sizes (e.g., (64, 64)).

    Returns
    -------
    hs : Tuple[int, ...]
        Validated sizes as a tuple of positive integers.

    Raises
    ------
    ValueError
        If empty or contains non-positive entries.
    """
    hs = tuple(int(h) for h in hidden_sizes)
    if len(hs) == 0:
        raise ValueError("hidden_sizes must have at least one layer (e.g., (64, 64)).")
    if any(h <= 0 for h in hs):
        raise ValueError(f"hidden_sizes must be positive integers, got: {hs}")
    return hs


def _make_weights_init(
    init_type: str = "orthogonal",
    gain: float = 1.0,
    bias: float = 0.0,
) -> Callable[[nn.Module], None]:
    """
    Create an initializer function compatible with `nn.Module.apply()`.

    Parameters
    ----------
    init_type : str, default="orthogonal"
        One of "orthogonal", "xavier_uniform", "xavier_normal", "normal".
    gain : float, default=1.0
        Gain for orthogonal/Xavier, std for "normal".
    bias : float, default=0.0
        Constant value for linear biases.

    Returns
    -------
    init_fn : Callable[[nn.Module], None]
        Function intended to be used as ``model.apply(init_fn)``.

    Raises
    ------
    ValueError
        If `init_type` is unknown (raised eagerly, not on first apply).

    Notes
    -----
    Only `nn.Linear` modules are initialized; other modules are ignored. GRU
    weights are handled by `_init_gru`.
    """
    name = str(init_type).lower().strip()
    if name not in ("orthogonal", "xavier_uniform", "xavier_normal", "normal"):
        raise ValueError(f"Unknown init_type: {init_type!r}")
    gain = float(gain)
    bias = float(bias)

    def init_fn(module: nn.Module) -> None:
        if not isinstance(module, nn.Linear):
            return

        if name == "orthogonal":
            nn.init.orthogonal_(module.weight, gain=gain)
        elif name == "xavier_uniform":
            nn.init.xavier_uniform_(module.weight, gain=gain)
        elif name == "xavier_normal":
            nn.init.xavier_normal_(module.weight, gain=gain)
        else:
            nn.init.normal_(module.weight, mean=0.0, std=gain)

        if module.bias is not None:
            nn.init.constant_(module.bias, bias)

    return init_fn


def _init_gru(gru: nn.GRU) -> None:
    """
    Orthogonal input/recurrent weights and zero biases for a GRU.

    Parameters
    ----------
    gru : nn.GRU
        Recurrent module, initialized in place.
    """
    for name, param in gru.named_parameters():
        if "bias" in name:
            nn.init.constant_(param, 0.0)
        elif "weight" in name:
            nn.init.orthogonal_(param)


# =============================================================================
# Input shape/device normalization
# =============================================================================
def _ensure_batch(x: Any, device: Union[th.device, str]) -> th.Tensor:
    """
    Convert input to a floating-point tensor on `device` with a batch dimension.

    Parameters
    ----------
    x : Any
        Tensor, NumPy array or sequence. A single 1D sample (D,) becomes (1, D).
    device : torch.device or str
        Target device.

    Returns
    -------
    x_t : torch.Tensor
        Float tensor on `device`, shape (B, ...).
    """
    x_t = x if isinstance(x, th.Tensor) else th.as_tensor(x)
    if not x_t.is_floating_point():
        x_t = x_t.float()
    x_t = x_t.to(device)
    if x_t.dim() == 1:
        x_t = x_t.unsqueeze(0)
    return x_t

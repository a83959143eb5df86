from __future__ import annotations

from typing import Any, Optional, Sequence, Union

import numpy as np
import torch as th


# =============================================================================
# NumPy / Torch conversion utilities
# =============================================================================
def _to_tensor(
    x: Any,
    device: Union[str, th.device],
    dtype: Optional[th.dtype] = th.float32,
) -> th.Tensor:
    """
    Convert input to a torch.Tensor on the given device.

    Parameters
    ----------
    x : Any
        Tensor, NumPy array, Python scalar or nested sequence.
    device : Union[str, torch.device]
        Target device.
    dtype : torch.dtype or None, default=torch.float32
        Target dtype. ``None`` keeps the dtype inferred by torch, which is what
        rollout storage wants for integer action indices.

    Returns
    -------
    t : torch.Tensor
        Tensor placed on ``device``.
    """
    dev = th.device(device)

    if th.is_tensor(x):
        return x.to(device=dev) if dtype is None else x.to(device=dev, dtype=dtype)

    if isinstance(x, np.ndarray):
        t = th.from_numpy(x)
        return t.to(device=dev) if dtype is None else t.to(device=dev, dtype=dtype)

    return th.as_tensor(x, dtype=dtype, device=dev)


def _to_scalar(x: Any) -> Optional[float]:
    """
    Convert a scalar-like input to a Python float.

    Tensors and arrays with more than one element return None rather than
    silently discarding data.

    Parameters
    ----------
    x : Any
        Python number, NumPy scalar, or a one-element array/tensor.

    Returns
    -------
    s : float or None
        Python float if convertible, else None.
    """
    if th.is_tensor(x):
        if x.numel() == 1:
            return float(x.detach().cpu().item())
        return None

    if isinstance(x, (bool, int, float, np.number)):
        return float(x)

    try:
        arr = np.asarray(x)
    except Exception:
        return None
    if arr.dtype.kind in "biuf" and arr.size == 1:
        return float(arr.reshape(-1)[0])
    return None


def _flatten_steps(x: th.Tensor) -> th.Tensor:
    """
    Merge the leading (T, N) axes of a rollout tensor into one batch axis.

    Parameters
    ----------
    x : torch.Tensor
        Tensor of shape (T, N, *rest).

    Returns
    -------
    y : torch.Tensor
        View of shape (T * N, *rest).
    """
    return x.reshape(-1, *x.shape[2:])


def _shape_str(shape: Sequence[int]) -> str:
    """Render a shape as ``(a, b, c)`` for error messages."""
    return "(" + ", ".join(str(int(s)) for s in shape) + ")"

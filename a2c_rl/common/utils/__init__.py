"""
Utils
====================

Small helpers shared across the package.

Modules included
----------------
- buffer_utils
    Discounted-return and GAE computation over the (T+1, N, 1) rollout layout.
- common_utils
    Torch conversion helpers, scalar coercion, rollout reshaping.
- logger_utils
    Run-directory management and CSV/JSON serialization helpers.
- network_utils
    Weight initialization and input batching helpers.

Functions prefixed with '_' are semi-private: importable for internal use, but
not a stable public API.
"""

from __future__ import annotations

from .buffer_utils import compute_discounted_returns, compute_gae_returns
from .common_utils import _flatten_steps, _shape_str, _to_scalar, _to_tensor
from .network_utils import _ensure_batch, _init_gru, _make_weights_init, _validate_hidden_sizes

__all__ = [
    # buffer_utils
    "compute_discounted_returns",
    "compute_gae_returns",
    # common_utils
    "_flatten_steps",
    "_shape_str",
    "_to_scalar",
    "_to_tensor",
    # network_utils
    "_ensure_batch",
    "_init_gru",
    "_make_weights_init",
    "_validate_hidden_sizes",
]

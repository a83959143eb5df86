from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Tuple

import numpy as np
from gymnasium import spaces


# Closed set of supported action-space kinds.
DISCRETE = "Discrete"
BOX = "Box"
MULTI_BINARY = "MultiBinary"
ACTION_SPACE_KINDS: Tuple[str, str, str] = (DISCRETE, BOX, MULTI_BINARY)


@dataclass(frozen=True)
class ActionSpace:
    """
    Description of a policy's action space.

    Parameters
    ----------
    kind : str
        One of ``"Discrete"``, ``"Box"``, ``"MultiBinary"``.
    shape : Tuple[int, ...]
        - Discrete    : ``(n,)`` number of actions.
        - Box         : ``(A,)`` action dimensionality.
        - MultiBinary : ``(A,)`` number of independent binary actions.

    Raises
    ------
    ValueError
        If `kind` is not supported or `shape` is not a single positive size.

    Notes
    -----
    Rollout storage keeps one action row per (step, env):

    - Discrete actions are stored as a single long index, ``action_dim == 1``.
    - Box / MultiBinary actions are stored as floats, ``action_dim == shape[0]``.
    """

    kind: str
    shape: Tuple[int, ...]

    def __post_init__(self) -> None:
        if self.kind not in ACTION_SPACE_KINDS:
            raise ValueError(f"Unsupported action space kind: {self.kind!r} (expected one of {ACTION_SPACE_KINDS})")
        shape = tuple(int(s) for s in self.shape)
        if len(shape) != 1 or shape[0] <= 0:
            raise ValueError(f"{self.kind} action space needs shape=(n,) with n > 0, got {self.shape}")
        object.__setattr__(self, "shape", shape)

    # ------------------------------------------------------------------
    # Derived sizes
    # ------------------------------------------------------------------
    @property
    def is_discrete(self) -> bool:
        return self.kind == DISCRETE

    @property
    def num_outputs(self) -> int:
        """Width of the distribution parameter vector produced by the output layer."""
        return int(self.shape[0])

    @property
    def action_dim(self) -> int:
        """Width of one stored action row."""
        return 1 if self.is_discrete else int(self.shape[0])

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------
    @classmethod
    def discrete(cls, n: int) -> "ActionSpace":
        return cls(DISCRETE, (int(n),))

    @classmethod
    def box(cls, dim: int) -> "ActionSpace":
        return cls(BOX, (int(dim),))

    @classmethod
    def multi_binary(cls, n: int) -> "ActionSpace":
        return cls(MULTI_BINARY, (int(n),))

    @classmethod
    def from_gym(cls, space: Any) -> "ActionSpace":
        """
        Convert a gymnasium action space.

        Parameters
        ----------
        space : gymnasium.spaces.Space
            ``Discrete``, ``Box`` (flattened) or 1D ``MultiBinary``.

        Returns
        -------
        ActionSpace

        Raises
        ------
        TypeError
            For any other gymnasium space type.
        ValueError
            For a ``Discrete`` space whose ``start`` is not 0. Sampled indices
            are always ``0..n-1`` and are passed to the env unshifted.
        """
        if isinstance(space, spaces.Discrete):
            start = int(getattr(space, "start", 0))
            if start != 0:
                raise ValueError(f"Discrete action space must start at 0, got start={start}")
            return cls.discrete(int(space.n))
        if isinstance(space, spaces.Box):
            return cls.box(int(np.prod(space.shape)))
        if isinstance(space, spaces.MultiBinary):
            return cls.multi_binary(int(np.prod(space.shape)))
        raise TypeError(f"Unsupported gymnasium action space: {type(space).__name__}")

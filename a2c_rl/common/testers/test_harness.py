from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple
import shutil
import tempfile

import numpy as np
import torch as th

from a2c_rl.common.loggers.base_writer import Writer
from a2c_rl.common.spaces import ActionSpace


# =============================================================================
# Filesystem
# =============================================================================
class TempDir:
    """Context manager yielding a fresh temporary directory, removed on exit."""

    def __init__(self, prefix: str = "a2c_rl_tests_") -> None:
        self.prefix = prefix
        self.path = ""

    def __enter__(self) -> str:
        self.path = tempfile.mkdtemp(prefix=self.prefix)
        return self.path

    def __exit__(self, exc_type, exc, tb) -> None:
        shutil.rmtree(self.path, ignore_errors=True)


# =============================================================================
# Writers
# =============================================================================
class MemoryWriter(Writer):
    """
    Writer capturing rows in memory.

    Parameters
    ----------
    fail_on : str, optional
        Name of the operation ("write" / "flush" / "close") that raises OSError.
    """

    def __init__(self, *, fail_on: Optional[str] = None) -> None:
        self.rows: List[Dict[str, float]] = []
        self.flushes = 0
        self.closed = False
        self.fail_on = fail_on

    def _maybe_fail(self, op: str) -> None:
        if self.fail_on == op:
            raise OSError(f"MemoryWriter: simulated {op} failure")

    def write(self, row: Mapping[str, float]) -> None:
        self._maybe_fail("write")
        self.rows.append(dict(row))

    def flush(self) -> None:
        self._maybe_fail("flush")
        self.flushes += 1

    def close(self) -> None:
        self._maybe_fail("close")
        self.closed = True


# =============================================================================
# Rollout batches
# =============================================================================
@dataclass
class RolloutBatch:
    """Plain rollout batch with the field layout the A2C update reads."""

    observations: th.Tensor   # (T+1, N, obs_dim)
    actions: th.Tensor        # (T, N, action_dim)
    rewards: th.Tensor        # (T, N, 1)
    returns: th.Tensor        # (T+1, N, 1)
    hidden_states: th.Tensor  # (T+1, N, hidden)
    masks: th.Tensor          # (T+1, N, 1)


def make_rollout_batch(
    *,
    num_steps: int,
    num_envs: int,
    obs_dim: int,
    action_space: ActionSpace,
    hidden_size: int = 1,
    done_prob: float = 0.0,
    seed: int = 0,
) -> RolloutBatch:
    """
    Random but reproducible rollout batch.

    ``done_prob`` > 0 zeroes a random subset of ``masks[1:]`` (episode
    boundaries); ``masks[0]`` stays 1.
    """
    g = th.Generator().manual_seed(int(seed))
    T, N = int(num_steps), int(num_envs)

    if action_space.kind == "Discrete":
        actions = th.randint(0, action_space.num_outputs, (T, N, 1), generator=g)
    elif action_space.kind == "Box":
        actions = th.randn((T, N, action_space.action_dim), generator=g)
    else:
        actions = th.randint(0, 2, (T, N, action_space.action_dim), generator=g).float()

    masks = th.ones((T + 1, N, 1))
    if done_prob > 0.0:
        done = th.rand((T, N, 1), generator=g) < float(done_prob)
        masks[1:][done] = 0.0

    return RolloutBatch(
        observations=th.randn((T + 1, N, obs_dim), generator=g),
        actions=actions,
        rewards=th.randn((T, N, 1), generator=g),
        returns=th.randn((T + 1, N, 1), generator=g),
        hidden_states=th.zeros((T + 1, N, hidden_size)),
        masks=masks,
    )


# =============================================================================
# Environments
# =============================================================================
class TwoObservationGame:
    """
    Vectorized one-step bandit with two one-hot observations.

    Each env shows ``[1, 0]`` or ``[0, 1]``; choosing the action equal to the
    index of the hot entry pays 1, anything else pays 0. Every step ends the
    episode (mask 0) and a new observation is drawn.

    Parameters
    ----------
    num_envs : int
        Number of parallel environments.
    seed : int, default=0
        Seed of the observation sampler.
    """

    obs_dim = 2
    num_actions = 2

    def __init__(self, num_envs: int, seed: int = 0) -> None:
        self.num_envs = int(num_envs)
        self._rng = np.random.RandomState(int(seed))
        self._state = np.zeros((self.num_envs,), dtype=np.int64)

    def _obs(self) -> np.ndarray:
        return np.eye(self.obs_dim, dtype=np.float32)[self._state]

    def reset(self) -> np.ndarray:
        self._state = self._rng.randint(0, self.obs_dim, size=self.num_envs)
        return self._obs()

    def step(self, actions: Any) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Returns
        -------
        obs : np.ndarray
            Next observation, shape (N, 2).
        reward : np.ndarray
            Shape (N, 1).
        mask : np.ndarray
            Continuation mask of `obs`, always 0, shape (N, 1).
        """
        a = np.asarray(actions).reshape(self.num_envs)
        reward = (a == self._state).astype(np.float32).reshape(self.num_envs, 1)
        mask = np.zeros((self.num_envs, 1), dtype=np.float32)
        return self.reset(), reward, mask


# =============================================================================
# Helpers
# =============================================================================
def param_vector(module: th.nn.Module) -> th.Tensor:
    """Detached copy of all parameters as one flat float32 vector."""
    parts = [p.detach().reshape(-1).cpu().float().clone() for p in module.parameters()]
    if not parts:
        return th.zeros((0,), dtype=th.float32)
    return th.cat(parts, dim=0)


def grad_norm(module: th.nn.Module) -> float:
    """Global L2 norm of the current gradients (0 when none are set)."""
    grads = [p.grad.detach().reshape(-1) for p in module.parameters() if p.grad is not None]
    if not grads:
        return 0.0
    return float(th.linalg.vector_norm(th.cat(grads)).item())

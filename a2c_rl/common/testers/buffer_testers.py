from __future__ import annotations

from typing import Callable, List, Optional, Tuple

import numpy as np
import torch as th

from a2c_rl.common.testers.test_utils import (
    run_tests,
    assert_eq,
    assert_true,
    assert_allclose,
    assert_raises,
    assert_shape,
)

from a2c_rl.common.buffers.rollout_storage import RolloutStorage
from a2c_rl.common.spaces import ActionSpace
from a2c_rl.common.utils.buffer_utils import compute_discounted_returns, compute_gae_returns


def _col(values) -> th.Tensor:
    """[v0, v1, ...] -> (len, 1, 1) float tensor (single env)."""
    return th.tensor(values, dtype=th.float32).view(-1, 1, 1)


# =============================================================================
# Tests: return estimators
# =============================================================================
def test_discounted_returns_hand_computed():
    # R2 = 3 + .5*4 = 5, R1 = 2 + .5*5 = 4.5, R0 = 1 + .5*4.5 = 3.25
    rewards = _col([1.0, 2.0, 3.0])
    masks = th.ones((4, 1, 1))
    returns = th.zeros((4, 1, 1))

    out = compute_discounted_returns(rewards, masks, returns, next_value=th.tensor([[4.0]]), gamma=0.5)

    assert_true(out is returns, "returns buffer should be filled in place")
    assert_allclose(returns, _col([3.25, 4.5, 5.0, 4.0]))


def test_discounted_returns_cut_at_episode_end():
    # masks[2] == 0: the episode ended after step 1, so R1 = r1.
    rewards = _col([1.0, 2.0, 3.0])
    masks = _col([1.0, 1.0, 0.0, 1.0])
    returns = th.zeros((4, 1, 1))

    compute_discounted_returns(rewards, masks, returns, next_value=th.tensor([[4.0]]), gamma=0.5)
    assert_allclose(returns[:-1], _col([2.0, 2.0, 5.0]))


def test_gae_returns_hand_computed():
    # delta1 = 1 + 1 - .5 = 1.5, A1 = 1.5
    # delta0 = 1 + .5 - .5 = 1.0, A0 = 1 + .5 * 1.5 = 1.75
    rewards = _col([1.0, 1.0])
    values = _col([0.5, 0.5, 0.0])
    masks = th.ones((3, 1, 1))
    returns = th.zeros((3, 1, 1))

    compute_gae_returns(rewards, values, masks, returns, next_value=th.tensor([[1.0]]), gamma=1.0, tau=0.5)

    assert_allclose(returns[:-1], _col([2.25, 2.0]))
    assert_allclose(values[-1], th.tensor([[1.0]]))


def test_gae_with_tau_one_matches_discounted_returns():
    g = th.Generator().manual_seed(0)
    T, N = 6, 3
    rewards = th.randn((T, N, 1), generator=g)
    values = th.randn((T + 1, N, 1), generator=g)
    masks = (th.rand((T + 1, N, 1), generator=g) > 0.3).float()
    nv = th.randn((N, 1), generator=g)

    r_gae = compute_gae_returns(rewards, values.clone(), masks, th.zeros((T + 1, N, 1)), next_value=nv, gamma=0.9, tau=1.0)
    r_disc = compute_discounted_returns(rewards, masks, th.zeros((T + 1, N, 1)), next_value=nv, gamma=0.9)
    assert_allclose(r_gae[:-1], r_disc[:-1], atol=1e-5)


def test_invalid_discount_raises():
    rewards = th.zeros((2, 1, 1))
    masks = th.ones((3, 1, 1))
    nv = th.zeros((1, 1))
    assert_raises(ValueError, lambda: compute_discounted_returns(rewards, masks, th.zeros((3, 1, 1)), next_value=nv, gamma=1.5))
    assert_raises(
        ValueError,
        lambda: compute_gae_returns(rewards, th.zeros((3, 1, 1)), masks, th.zeros((3, 1, 1)), next_value=nv, gamma=0.9, tau=-0.1),
    )


# =============================================================================
# Tests: RolloutStorage
# =============================================================================
def test_storage_shapes_and_dtypes():
    st = RolloutStorage(5, 3, (4,), ActionSpace.discrete(6), 8)
    assert_shape(st.observations, (6, 3, 4))
    assert_shape(st.hidden_states, (6, 3, 8))
    assert_shape(st.rewards, (5, 3, 1))
    assert_shape(st.value_predictions, (6, 3, 1))
    assert_shape(st.returns, (6, 3, 1))
    assert_shape(st.action_log_probs, (5, 3, 1))
    assert_shape(st.actions, (5, 3, 1))
    assert_shape(st.masks, (6, 3, 1))
    assert_eq(st.actions.dtype, th.long)
    assert_true(bool((st.masks == 1).all()), "masks must start at 1")
    assert_eq(st.step, 0)

    box = RolloutStorage(5, 3, (4,), ActionSpace.box(2), 1)
    assert_shape(box.actions, (5, 3, 2))
    assert_eq(box.actions.dtype, th.float32)


def test_storage_invalid_sizes_raise():
    space = ActionSpace.discrete(2)
    assert_raises(ValueError, lambda: RolloutStorage(0, 1, (2,), space, 1))
    assert_raises(ValueError, lambda: RolloutStorage(2, 0, (2,), space, 1))
    assert_raises(ValueError, lambda: RolloutStorage(2, 1, (2,), space, 0))


def test_storage_insert_slots_and_wrap():
    T, N = 3, 2
    st = RolloutStorage(T, N, (2,), ActionSpace.discrete(4), 1)
    st.set_first_observation(np.full((N, 2), -1.0, dtype=np.float32))

    for t in range(T):
        st.insert(
            observation=np.full((N, 2), float(t), dtype=np.float32),
            hidden_state=np.zeros((N, 1), dtype=np.float32),
            action=np.full((N, 1), t, dtype=np.int64),
            action_log_prob=np.full((N, 1), -0.5, dtype=np.float32),
            value_prediction=np.full((N, 1), 0.1 * t, dtype=np.float32),
            reward=np.full((N, 1), 1.0 + t, dtype=np.float32),
            mask=np.full((N, 1), 0.0 if t == 1 else 1.0, dtype=np.float32),
        )
        assert_eq(st.step, (t + 1) % T)

    assert_allclose(st.observations[0], th.full((N, 2), -1.0))
    assert_allclose(st.observations[2], th.full((N, 2), 1.0))
    assert_eq(st.actions[:, 0, 0].tolist(), [0, 1, 2])
    assert_allclose(st.rewards[:, 0, 0], th.tensor([1.0, 2.0, 3.0]))
    assert_allclose(st.masks[:, 0, 0], th.tensor([1.0, 1.0, 0.0, 1.0]))


def test_storage_insert_broadcasts_scalar_fields():
    st = RolloutStorage(2, 3, (2,), ActionSpace.box(1), 1)
    st.insert(
        observation=[1.0, 2.0],
        hidden_state=0.0,
        action=[0.5],
        action_log_prob=-1.0,
        value_prediction=0.0,
        reward=2.0,
        mask=1.0,
    )
    assert_allclose(st.observations[1], th.tensor([[1.0, 2.0]] * 3))
    assert_allclose(st.rewards[0], th.full((3, 1), 2.0))


def test_storage_after_update_carries_last_step():
    T, N = 2, 2
    st = RolloutStorage(T, N, (3,), ActionSpace.discrete(2), 4)
    st.observations[-1].fill_(7.0)
    st.hidden_states[-1].fill_(3.0)
    st.masks[-1].fill_(0.0)

    st.after_update()
    assert_allclose(st.observations[0], th.full((N, 3), 7.0))
    assert_allclose(st.hidden_states[0], th.full((N, 4), 3.0))
    assert_allclose(st.masks[0], th.zeros((N, 1)))


def test_storage_compute_returns_both_modes():
    T, N = 3, 2
    st = RolloutStorage(T, N, (1,), ActionSpace.discrete(2), 1)
    st.rewards.fill_(1.0)
    st.value_predictions.fill_(0.5)

    st.compute_returns(np.full((N,), 2.0, dtype=np.float32), use_gae=False, gamma=1.0, tau=0.95)
    assert_allclose(st.returns[:, 0, 0], th.tensor([5.0, 4.0, 3.0, 2.0]))

    st.compute_returns(th.full((N, 1), 0.5), use_gae=True, gamma=1.0, tau=1.0)
    # tau = 1, gamma = 1: GAE target equals the undiscounted bootstrapped return
    assert_allclose(st.returns[:-1, 0, 0], th.tensor([3.5, 2.5, 1.5]))
    assert_allclose(st.value_predictions[-1], th.full((N, 1), 0.5))


def test_storage_compute_returns_invalid_tau_raises():
    st = RolloutStorage(2, 1, (1,), ActionSpace.discrete(2), 1)
    assert_raises(ValueError, lambda: st.compute_returns(th.zeros((1, 1)), use_gae=False, gamma=0.9, tau=2.0))
    assert_raises(ValueError, lambda: st.compute_returns(th.zeros((1, 1)), use_gae=True, gamma=-0.1, tau=0.9))


def test_storage_to_device_keeps_layout():
    st = RolloutStorage(2, 2, (3,), ActionSpace.discrete(2), 1)
    out = st.to("cpu")
    assert_true(out is st)
    assert_eq(st.device, th.device("cpu"))
    assert_eq(st.actions.dtype, th.long)


# =============================================================================
# Main
# =============================================================================
TESTS: List[Tuple[str, Callable[[], None]]] = [
    ("discounted_returns_hand_computed", test_discounted_returns_hand_computed),
    ("discounted_returns_cut_at_episode_end", test_discounted_returns_cut_at_episode_end),
    ("gae_returns_hand_computed", test_gae_returns_hand_computed),
    ("gae_with_tau_one_matches_discounted_returns", test_gae_with_tau_one_matches_discounted_returns),
    ("invalid_discount_raises", test_invalid_discount_raises),
    ("storage_shapes_and_dtypes", test_storage_shapes_and_dtypes),
    ("storage_invalid_sizes_raise", test_storage_invalid_sizes_raise),
    ("storage_insert_slots_and_wrap", test_storage_insert_slots_and_wrap),
    ("storage_insert_broadcasts_scalar_fields", test_storage_insert_broadcasts_scalar_fields),
    ("storage_after_update_carries_last_step", test_storage_after_update_carries_last_step),
    ("storage_compute_returns_both_modes", test_storage_compute_returns_both_modes),
    ("storage_compute_returns_invalid_tau_raises", test_storage_compute_returns_invalid_tau_raises),
    ("storage_to_device_keeps_layout", test_storage_to_device_keeps_layout),
]


def main(argv: Optional[List[str]] = None) -> int:
    return run_tests(TESTS, argv=argv, suite_name="buffers")


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

from typing import Any, Callable, List, Optional, Tuple

import math

import numpy as np
import torch as th
import torch.nn as nn

from a2c_rl.common.testers.test_utils import (
    seed_all,
    run_tests,
    assert_eq,
    assert_true,
    assert_raises,
    assert_close,
    assert_allclose,
    assert_finite,
    assert_ge,
)
from a2c_rl.common.testers.test_harness import (
    TwoObservationGame,
    grad_norm,
    make_rollout_batch,
    param_vector,
)

from a2c_rl.baselines.a2c import A2C, METRIC_KEYS, NonFiniteLossError, a2c
from a2c_rl.common.buffers import RolloutStorage
from a2c_rl.common.spaces import ActionSpace


# =============================================================================
# Helpers
# =============================================================================
def _make_small_algo(
    action_space: Optional[ActionSpace] = None,
    *,
    obs_dim: int = 4,
    recurrent: bool = False,
    **kwargs: Any,
) -> A2C:
    return a2c(
        obs_dim=obs_dim,
        action_space=action_space or ActionSpace.discrete(3),
        device="cpu",
        recurrent=recurrent,
        hidden_size=16,
        num_layers=2,
        **kwargs,
    )


def _batch_for(algo: A2C, *, num_steps: int = 5, num_envs: int = 3, obs_dim: int = 4, seed: int = 0, **kw: Any):
    return make_rollout_batch(
        num_steps=num_steps,
        num_envs=num_envs,
        obs_dim=obs_dim,
        action_space=algo.policy.action_space,
        hidden_size=algo.policy.recurrent_hidden_state_size,
        seed=seed,
        **kw,
    )


# =============================================================================
# Tests: update contract
# =============================================================================
def test_a2c_update_returns_exactly_three_metrics():
    seed_all(0)
    for T, N in ((1, 1), (5, 3), (16, 4)):
        algo = _make_small_algo()
        m = algo.update(_batch_for(algo, num_steps=T, num_envs=N))

        assert_eq(tuple(m.keys()), METRIC_KEYS)
        for k in METRIC_KEYS:
            assert_true(isinstance(m[k], float), f"{k} must be a python float, got {type(m[k])}")
            assert_finite(m[k], f"{k} not finite for T={T}, N={N}")


def test_a2c_metrics_are_read_only():
    seed_all(0)
    algo = _make_small_algo()
    m = algo.update(_batch_for(algo))

    def _mutate():
        m["loss/value"] = 0.0  # type: ignore[index]

    assert_raises(TypeError, _mutate)


def test_a2c_value_loss_non_negative():
    seed_all(1)
    algo = _make_small_algo()
    for i in range(5):
        m = algo.update(_batch_for(algo, seed=i))
        assert_ge(m["loss/value"], 0.0, "value loss must be >= 0")


def test_a2c_losses_match_manual_computation():
    seed_all(0)
    algo = _make_small_algo(value_loss_coef=0.7, entropy_coef=0.05)
    batch = _batch_for(algo, num_steps=4, num_envs=2)
    T, N = 4, 2

    losses = algo.compute_losses(batch)

    with th.no_grad():
        out = algo.policy.evaluate_actions(
            batch.observations[:-1].reshape(T * N, -1),
            batch.hidden_states[0],
            batch.masks[:-1].reshape(T * N, 1),
            batch.actions.reshape(T * N, -1),
        )
        adv = batch.returns[:-1] - out["value"].view(T, N, 1)
        value_loss = adv.pow(2).mean()
        action_loss = -(adv * out["action_log_probs"].view(T, N, 1)).mean()
        total = 0.7 * value_loss + action_loss - 0.05 * out["entropy"]

    assert_close(losses.value_loss.item(), value_loss.item(), rtol=1e-5, atol=1e-6)
    assert_close(losses.action_loss.item(), action_loss.item(), rtol=1e-5, atol=1e-6)
    assert_close(losses.entropy.item(), out["entropy"].item(), rtol=1e-5, atol=1e-6)
    assert_close(losses.total_loss.item(), total.item(), rtol=1e-5, atol=1e-6)


def test_a2c_metrics_are_pre_step_losses():
    seed_all(0)
    algo = _make_small_algo()
    batch = _batch_for(algo)

    with th.no_grad():
        expected = algo.compute_losses(batch)
    m = algo.update(batch)

    assert_close(m["loss/value"], expected.value_loss.item(), rtol=1e-6, atol=1e-7)
    assert_close(m["loss/action"], expected.action_loss.item(), rtol=1e-6, atol=1e-7)
    assert_close(m["stats/entropy"], expected.entropy.item(), rtol=1e-6, atol=1e-7)


def test_a2c_action_loss_does_not_reach_value_head():
    seed_all(0)
    algo = _make_small_algo()
    losses = algo.compute_losses(_batch_for(algo))

    base = algo.policy.base
    critic_params = list(base.critic_linear.parameters()) + list(base.critic.parameters())

    grads = th.autograd.grad(losses.action_loss, critic_params, retain_graph=True, allow_unused=True)
    for g in grads:
        assert_true(g is None or bool((g == 0).all()), "action loss must not produce value-head gradients")

    grads_v = th.autograd.grad(losses.value_loss, list(base.critic_linear.parameters()), allow_unused=True)
    assert_true(any(g is not None and bool((g != 0).any()) for g in grads_v), "value loss must train the value head")


def test_a2c_value_head_shift_changes_value_loss_only():
    seed_all(0)
    algo = _make_small_algo()
    batch = _batch_for(algo)
    N = batch.rewards.size(1)
    args = (
        batch.observations[:-1].reshape(-1, batch.observations.size(-1)),
        batch.hidden_states[0].reshape(N, -1),
        batch.masks[:-1].reshape(-1, 1),
        batch.actions.reshape(-1, batch.actions.size(-1)),
    )

    with th.no_grad():
        before = algo.compute_losses(batch)
        out_before = algo.policy.evaluate_actions(*args)
        algo.policy.base.critic_linear.bias.add_(1.0)
        after = algo.compute_losses(batch)
        out_after = algo.policy.evaluate_actions(*args)

    assert_true(
        abs(after.value_loss.item() - before.value_loss.item()) > 1e-4,
        "shifting the value head must change the value loss",
    )
    assert_allclose(out_after["value"], out_before["value"] + 1.0, atol=1e-5)
    assert_allclose(out_after["action_log_probs"], out_before["action_log_probs"])
    assert_close(out_after["entropy"].item(), out_before["entropy"].item())


def test_a2c_update_changes_parameters_and_counts_calls():
    seed_all(0)
    algo = _make_small_algo()
    batch = _batch_for(algo)

    before = param_vector(algo.policy)
    assert_eq(algo.update_calls, 0)
    algo.update(batch)
    assert_eq(algo.update_calls, 1)
    algo.update(batch)
    assert_eq(algo.update_calls, 2)

    diff = float(th.linalg.vector_norm(param_vector(algo.policy) - before).item())
    assert_true(diff > 0.0, "expected parameters to change after update")


def test_a2c_update_does_not_modify_batch():
    seed_all(0)
    algo = _make_small_algo()
    batch = _batch_for(algo, done_prob=0.3)
    snap = {k: getattr(batch, k).clone() for k in ("observations", "actions", "rewards", "returns", "hidden_states", "masks")}

    algo.update(batch)
    for k, v in snap.items():
        assert_true(th.equal(getattr(batch, k), v), f"update modified batch field {k}")


def test_a2c_deterministic_under_fixed_seed():
    def _run() -> Tuple[List[Tuple[float, ...]], th.Tensor]:
        seed_all(123)
        algo = _make_small_algo()
        out = []
        for i in range(3):
            m = algo.update(_batch_for(algo, seed=i))
            out.append(tuple(m[k] for k in METRIC_KEYS))
        return out, param_vector(algo.policy)

    m1, p1 = _run()
    m2, p2 = _run()
    assert_eq(m1, m2)
    assert_true(th.equal(p1, p2), "parameters differ between identically seeded runs")


# =============================================================================
# Tests: gradient clipping
# =============================================================================
def test_a2c_gradient_clipping_bounds_norm():
    seed_all(0)
    algo = _make_small_algo(max_grad_norm=1e-3)
    batch = _batch_for(algo)
    batch.returns.mul_(100.0)

    algo.update(batch)
    assert_true(grad_norm(algo.policy) <= 1e-3 * (1.0 + 1e-3), f"grad norm not clipped: {grad_norm(algo.policy)}")


def test_a2c_max_grad_norm_zero_disables_clipping():
    seed_all(0)
    algo = _make_small_algo(max_grad_norm=0.0)
    batch = _batch_for(algo)
    batch.returns.mul_(100.0)
    algo.update(batch)
    unclipped = grad_norm(algo.policy)

    seed_all(0)
    algo2 = _make_small_algo(max_grad_norm=unclipped / 2.0)
    algo2.update(batch)

    assert_true(unclipped > 0.0)
    assert_close(grad_norm(algo2.policy), unclipped / 2.0, rtol=1e-3)


# =============================================================================
# Tests: action spaces / recurrence
# =============================================================================
def test_a2c_update_continuous_and_multi_binary():
    seed_all(0)
    for space in (ActionSpace.box(2), ActionSpace.multi_binary(3)):
        algo = _make_small_algo(space)
        before = param_vector(algo.policy)
        m = algo.update(_batch_for(algo, num_steps=6, num_envs=2))
        assert_eq(tuple(m.keys()), METRIC_KEYS)
        for k in METRIC_KEYS:
            assert_finite(m[k], f"{space.kind}: {k} not finite")
        assert_true(not th.equal(before, param_vector(algo.policy)), f"{space.kind}: params unchanged")


def test_a2c_recurrent_update_with_episode_boundaries():
    seed_all(0)
    algo = _make_small_algo(recurrent=True)
    assert_true(algo.policy.is_recurrent)

    batch = _batch_for(algo, num_steps=8, num_envs=3, done_prob=0.3)
    batch.hidden_states[0].normal_()

    m = algo.update(batch)
    assert_eq(tuple(m.keys()), METRIC_KEYS)
    for k in METRIC_KEYS:
        assert_finite(m[k])

    gru_grads = [p.grad for p in algo.policy.base.gru.parameters()]
    assert_true(all(g is not None for g in gru_grads), "GRU must receive gradients")


# =============================================================================
# Tests: validation / errors
# =============================================================================
def test_a2c_shape_mismatch_raises_before_step():
    seed_all(0)
    algo = _make_small_algo()
    batch = _batch_for(algo, num_steps=5, num_envs=3)
    batch.returns = batch.returns[:-1]  # (T, N, 1) instead of (T+1, N, 1)

    before = param_vector(algo.policy)
    assert_raises(ValueError, lambda: algo.update(batch))
    assert_true(th.equal(before, param_vector(algo.policy)), "params changed on rejected batch")
    assert_eq(algo.update_calls, 0)

    bad = _batch_for(algo)
    bad.actions = bad.actions[:, :2]
    assert_raises(ValueError, lambda: algo.update(bad))

    bad = _batch_for(algo)
    bad.rewards = bad.rewards.squeeze(-1)
    assert_raises(ValueError, lambda: algo.update(bad))

    bad = _batch_for(algo)
    bad.masks = th.ones((bad.masks.size(0), bad.masks.size(1), 2))
    assert_raises(ValueError, lambda: algo.update(bad))


def test_a2c_invalid_hyperparameters_raise():
    assert_raises(ValueError, lambda: _make_small_algo(max_grad_norm=-1.0))
    assert_raises(ValueError, lambda: _make_small_algo(value_loss_coef=-0.5))
    assert_raises(ValueError, lambda: _make_small_algo(entropy_coef=math.nan))
    assert_raises(ValueError, lambda: _make_small_algo(learning_rate=0.0))
    assert_raises(ValueError, lambda: _make_small_algo(epsilon=0.0))
    assert_raises(ValueError, lambda: _make_small_algo(alpha=1.0))


def test_a2c_policy_without_parameters_raises():
    assert_raises(ValueError, lambda: A2C(nn.Module()))


def test_a2c_check_finite_rejects_nan_loss():
    seed_all(0)
    algo = _make_small_algo(check_finite=True)
    batch = _batch_for(algo)
    batch.returns[0, 0, 0] = float("nan")

    before = param_vector(algo.policy)
    assert_raises(NonFiniteLossError, lambda: algo.update(batch))
    assert_true(th.equal(before, param_vector(algo.policy)), "params changed after non-finite loss")
    assert_eq(len(algo.optimizer.state), 0)
    assert_eq(algo.update_calls, 0)

    # retry with a clean batch succeeds
    m = algo.update(_batch_for(algo, seed=1))
    assert_finite(m["loss/value"])
    assert_eq(algo.update_calls, 1)


# =============================================================================
# Tests: persistence / config
# =============================================================================
def test_a2c_state_dict_roundtrip():
    seed_all(0)
    algo = _make_small_algo(value_loss_coef=0.25)
    algo.update(_batch_for(algo))
    state = algo.state_dict()

    algo2 = _make_small_algo()
    algo2.load_state_dict(state)
    assert_eq(algo2.update_calls, 1)
    assert_close(algo2.value_loss_coef, 0.25)
    assert_eq(len(algo2.optimizer.state), len(algo.optimizer.state))


def test_a2c_config_reports_hyperparameters():
    algo = _make_small_algo(learning_rate=1e-3, max_grad_norm=0.0)
    cfg = algo.config()
    assert_eq(cfg["optimizer"], "rmsprop")
    assert_close(cfg["learning_rate"], 1e-3)
    assert_close(cfg["max_grad_norm"], 0.0)
    group = algo.optimizer.param_groups[0]
    assert_close(group["lr"], 1e-3)
    assert_close(group["alpha"], 0.99)
    assert_close(group["eps"], 1e-5)


# =============================================================================
# Tests: learning signal
# =============================================================================
def test_a2c_learning_signal_prefers_rewarded_action():
    """Fixed batch: obs [1, 0], action 0 returns 1, action 1 returns 0."""
    seed_all(0)
    algo = _make_small_algo(ActionSpace.discrete(2), obs_dim=2, entropy_coef=0.0, learning_rate=1e-2)

    T, N = 4, 8
    batch = make_rollout_batch(num_steps=T, num_envs=N, obs_dim=2, action_space=ActionSpace.discrete(2), seed=0)
    batch.observations.zero_()
    batch.observations[..., 0] = 1.0
    batch.actions.copy_((th.arange(T * N).view(T, N, 1) % 2).long())
    batch.returns.zero_()
    batch.returns[:-1] = (batch.actions == 0).float()

    obs0 = th.tensor([[1.0, 0.0]])
    with th.no_grad():
        p0_before = float(algo.policy.get_probs(obs0)[0, 0])

    for _ in range(30):
        algo.update(batch)

    with th.no_grad():
        p0_after = float(algo.policy.get_probs(obs0)[0, 0])
    assert_true(p0_after > p0_before + 0.05, f"expected P(a=0|[1,0]) to rise: {p0_before:.3f} -> {p0_after:.3f}")


def test_a2c_end_to_end_with_rollout_storage():
    seed_all(0)
    env = TwoObservationGame(num_envs=8, seed=0)
    space = ActionSpace.discrete(env.num_actions)
    algo = _make_small_algo(space, obs_dim=env.obs_dim, learning_rate=1e-2)
    storage = RolloutStorage(5, env.num_envs, (env.obs_dim,), space, algo.policy.recurrent_hidden_state_size)
    with th.no_grad():
        pre = algo.policy.get_probs(th.eye(2))

    storage.set_first_observation(env.reset())
    rewards: List[float] = []
    for _ in range(40):
        for t in range(storage.num_steps):
            with th.no_grad():
                out = algo.policy.act(storage.observations[t], storage.hidden_states[t], storage.masks[t])
            obs, reward, mask = env.step(out["action"].cpu().numpy())
            storage.insert(obs, out["hidden"], out["action"], out["action_log_probs"], out["value"], reward, mask)
            rewards.append(float(reward.mean()))

        with th.no_grad():
            next_value = algo.policy.get_values(storage.observations[-1], storage.hidden_states[-1], storage.masks[-1])
        storage.compute_returns(next_value, use_gae=False, gamma=0.99, tau=0.95)
        algo.update(storage)
        storage.after_update()

    assert_eq(algo.update_calls, 40)
    early = float(np.mean(rewards[:25]))
    late = float(np.mean(rewards[-25:]))
    assert_true(late > early, f"expected mean reward to improve: {early:.3f} -> {late:.3f}")

    with th.no_grad():
        post = algo.policy.get_probs(th.eye(2))
    pre, post = pre.numpy(), post.numpy()
    assert_allclose(post.sum(axis=-1), np.ones(2), atol=1e-5)
    for i in range(2):
        j = 1 - i
        assert_true(post[i, i] > pre[i, i], f"P(a={i}|obs {i}) should rise: {pre[i, i]:.3f} -> {post[i, i]:.3f}")
        assert_true(post[i, j] < pre[i, j], f"P(a={j}|obs {i}) should fall: {pre[i, j]:.3f} -> {post[i, j]:.3f}")


# =============================================================================
# Main
# =============================================================================
TESTS: List[Tuple[str, Callable[[], None]]] = [
    ("a2c_update_returns_exactly_three_metrics", test_a2c_update_returns_exactly_three_metrics),
    ("a2c_metrics_are_read_only", test_a2c_metrics_are_read_only),
    ("a2c_value_loss_non_negative", test_a2c_value_loss_non_negative),
    ("a2c_losses_match_manual_computation", test_a2c_losses_match_manual_computation),
    ("a2c_metrics_are_pre_step_losses", test_a2c_metrics_are_pre_step_losses),
    ("a2c_action_loss_does_not_reach_value_head", test_a2c_action_loss_does_not_reach_value_head),
    ("a2c_value_head_shift_changes_value_loss_only", test_a2c_value_head_shift_changes_value_loss_only),
    ("a2c_update_changes_parameters_and_counts_calls", test_a2c_update_changes_parameters_and_counts_calls),
    ("a2c_update_does_not_modify_batch", test_a2c_update_does_not_modify_batch),
    ("a2c_deterministic_under_fixed_seed", test_a2c_deterministic_under_fixed_seed),
    ("a2c_gradient_clipping_bounds_norm", test_a2c_gradient_clipping_bounds_norm),
    ("a2c_max_grad_norm_zero_disables_clipping", test_a2c_max_grad_norm_zero_disables_clipping),
    ("a2c_update_continuous_and_multi_binary", test_a2c_update_continuous_and_multi_binary),
    ("a2c_recurrent_update_with_episode_boundaries", test_a2c_recurrent_update_with_episode_boundaries),
    ("a2c_shape_mismatch_raises_before_step", test_a2c_shape_mismatch_raises_before_step),
    ("a2c_invalid_hyperparameters_raise", test_a2c_invalid_hyperparameters_raise),
    ("a2c_policy_without_parameters_raises", test_a2c_policy_without_parameters_raises),
    ("a2c_check_finite_rejects_nan_loss", test_a2c_check_finite_rejects_nan_loss),
    ("a2c_state_dict_roundtrip", test_a2c_state_dict_roundtrip),
    ("a2c_config_reports_hyperparameters", test_a2c_config_reports_hyperparameters),
    ("a2c_learning_signal_prefers_rewarded_action", test_a2c_learning_signal_prefers_rewarded_action),
    ("a2c_end_to_end_with_rollout_storage", test_a2c_end_to_end_with_rollout_storage),
]


def main(argv: Optional[List[str]] = None) -> int:
    return run_tests(TESTS, argv=argv, suite_name="a2c")


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

import numpy as np
import torch as th

from a2c_rl.common.testers.test_utils import (
    seed_all,
    run_tests,
    assert_eq,
    assert_true,
    assert_allclose,
    assert_raises,
    assert_shape,
)

from a2c_rl.common.networks.base_networks import MLPBase
from a2c_rl.common.policies.base_core import BaseCore
from a2c_rl.common.policies.policy import Policy
from a2c_rl.common.spaces import ActionSpace
from a2c_rl.common.utils.normalization_utils import RunningMeanStd


def _policy(space: ActionSpace, *, obs_dim: int = 4, recurrent: bool = False, **kw) -> Policy:
    return Policy(space, MLPBase(obs_dim, recurrent=recurrent, hidden_size=16), **kw)


# =============================================================================
# Tests: act / evaluate_actions
# =============================================================================
def test_policy_act_shapes_per_action_space():
    seed_all(0)
    B = 5
    for space, width, dtype in (
        (ActionSpace.discrete(3), 1, th.long),
        (ActionSpace.box(2), 2, th.float32),
        (ActionSpace.multi_binary(4), 4, th.float32),
    ):
        pol = _policy(space)
        out = pol.act(th.randn(B, 4))
        assert_eq(set(out.keys()), {"value", "action", "action_log_probs", "hidden"})
        assert_shape(out["value"], (B, 1))
        assert_shape(out["action"], (B, width))
        assert_eq(out["action"].dtype, dtype)
        assert_shape(out["action_log_probs"], (B, 1))
        assert_shape(out["hidden"], (B, 1))


def test_policy_act_single_observation():
    pol = _policy(ActionSpace.discrete(2))
    out = pol.act(np.zeros((4,), dtype=np.float32))
    assert_shape(out["action"], (1, 1))


def test_policy_deterministic_act_is_repeatable():
    seed_all(0)
    pol = _policy(ActionSpace.box(3))
    obs = th.randn(6, 4)
    a1 = pol.act(obs, deterministic=True)["action"]
    a2 = pol.act(obs, deterministic=True)["action"]
    assert_allclose(a1, a2)


def test_policy_evaluate_actions_matches_act():
    seed_all(0)
    for space in (ActionSpace.discrete(3), ActionSpace.box(2), ActionSpace.multi_binary(2)):
        pol = _policy(space)
        obs = th.randn(8, 4)
        hidden = th.zeros(8, pol.recurrent_hidden_state_size)
        masks = th.ones(8, 1)

        with th.no_grad():
            acted = pol.act(obs, hidden, masks)
            ev = pol.evaluate_actions(obs, hidden, masks, acted["action"])

        assert_allclose(ev["action_log_probs"], acted["action_log_probs"], atol=1e-6)
        assert_allclose(ev["value"], acted["value"], atol=1e-6)
        assert_eq(ev["entropy"].dim(), 0, "entropy must be a scalar batch mean")


def test_policy_evaluate_actions_is_differentiable():
    seed_all(0)
    pol = _policy(ActionSpace.discrete(3))
    obs = th.randn(8, 4)
    actions = th.randint(0, 3, (8, 1))
    ev = pol.evaluate_actions(obs, th.zeros(8, 1), th.ones(8, 1), actions)
    (ev["action_log_probs"].mean() + ev["value"].mean() + ev["entropy"]).backward()
    assert_true(all(p.grad is not None for p in pol.dist.parameters()))


def test_policy_recurrent_hidden_flows():
    seed_all(0)
    pol = _policy(ActionSpace.discrete(2), recurrent=True)
    assert_true(pol.is_recurrent)
    assert_eq(pol.recurrent_hidden_state_size, 16)

    out = pol.act(th.randn(3, 4), th.zeros(3, 16), th.ones(3, 1))
    assert_shape(out["hidden"], (3, 16))
    assert_true(bool((out["hidden"] != 0).any()), "GRU should produce a non-zero hidden state")


def test_policy_get_values_and_probs():
    seed_all(0)
    pol = _policy(ActionSpace.discrete(3))
    obs = th.randn(4, 4)
    assert_shape(pol.get_values(obs), (4, 1))

    probs = pol.get_probs(obs)
    assert_shape(probs, (4, 3))
    assert_allclose(probs.sum(dim=-1), th.ones(4), atol=1e-6)

    assert_shape(_policy(ActionSpace.multi_binary(2)).get_probs(obs), (4, 2))
    assert_raises(NotImplementedError, lambda: _policy(ActionSpace.box(2)).get_probs(obs))


def test_policy_parameters_cover_all_heads():
    pol = _policy(ActionSpace.box(2))
    ids = {id(p) for p in pol.parameters()}
    for mod in (pol.base.actor, pol.base.critic, pol.base.critic_linear, pol.dist):
        for p in mod.parameters():
            assert_true(id(p) in ids, f"{type(mod).__name__} parameter missing from policy.parameters()")
    assert_true(id(pol.dist.log_std) in ids, "log_std must be trainable through the policy")


# =============================================================================
# Tests: observation normalization
# =============================================================================
def test_running_mean_std_matches_numpy():
    seed_all(0)
    rms = RunningMeanStd((3,), epsilon=1e-8)
    data = np.random.randn(200, 3) * 2.0 + 5.0
    for chunk in np.array_split(data, 4):
        rms.update(th.as_tensor(chunk))

    assert_allclose(rms.mean, data.mean(axis=0), atol=1e-6)
    assert_allclose(rms.var, data.var(axis=0), atol=1e-5)
    assert_raises(ValueError, lambda: rms.update(th.zeros(5, 2)))


def test_policy_observation_normalizer():
    seed_all(0)
    pol = _policy(ActionSpace.discrete(2), normalize_observations=True)
    assert_true("obs_normalizer.mean" in pol.state_dict(), "normalizer statistics must be in the state_dict")
    assert_true(all("obs_normalizer" not in n for n, _ in pol.named_parameters()))

    obs = th.randn(64, 4) * 3.0 + 10.0
    pol.update_observation_normalizer(obs)
    assert_allclose(pol.obs_normalizer.mean.float(), obs.mean(dim=0), atol=1e-3)

    normed = pol.obs_normalizer(obs)
    assert_allclose(normed.mean(dim=0), th.zeros(4), atol=1e-3)

    plain = _policy(ActionSpace.discrete(2))
    assert_raises(RuntimeError, lambda: plain.update_observation_normalizer(obs))


# =============================================================================
# Tests: BaseCore
# =============================================================================
def test_base_core_is_abstract_and_clips():
    assert_raises(TypeError, lambda: BaseCore(policy=_policy(ActionSpace.discrete(2))))  # type: ignore[abstract]

    class _Core(BaseCore):
        def update(self, rollouts):
            return {}

    pol = _policy(ActionSpace.discrete(2))
    core = _Core(policy=pol)
    assert_eq(core.device, th.device("cpu"))

    pol.get_values(th.randn(4, 4)).sum().mul(100.0).backward()
    assert_true(core._clip_params(pol.parameters(), max_grad_norm=0.0) is None)
    norm = core._clip_params(pol.parameters(), max_grad_norm=1e-3)
    assert_true(norm is not None and norm > 1e-3)


# =============================================================================
# Main
# =============================================================================
TESTS: List[Tuple[str, Callable[[], None]]] = [
    ("policy_act_shapes_per_action_space", test_policy_act_shapes_per_action_space),
    ("policy_act_single_observation", test_policy_act_single_observation),
    ("policy_deterministic_act_is_repeatable", test_policy_deterministic_act_is_repeatable),
    ("policy_evaluate_actions_matches_act", test_policy_evaluate_actions_matches_act),
    ("policy_evaluate_actions_is_differentiable", test_policy_evaluate_actions_is_differentiable),
    ("policy_recurrent_hidden_flows", test_policy_recurrent_hidden_flows),
    ("policy_get_values_and_probs", test_policy_get_values_and_probs),
    ("policy_parameters_cover_all_heads", test_policy_parameters_cover_all_heads),
    ("running_mean_std_matches_numpy", test_running_mean_std_matches_numpy),
    ("policy_observation_normalizer", test_policy_observation_normalizer),
    ("base_core_is_abstract_and_clips", test_base_core_is_abstract_and_clips),
]


def main(argv: Optional[List[str]] = None) -> int:
    return run_tests(TESTS, argv=argv, suite_name="policies")


if __name__ == "__main__":
    raise SystemExit(main())

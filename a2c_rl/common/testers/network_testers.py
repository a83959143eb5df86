from __future__ import annotations

from typing import Callable, List, Optional, Tuple

import torch as th
import torch.nn as nn

from a2c_rl.common.testers.test_utils import (
    seed_all,
    run_tests,
    assert_eq,
    assert_true,
    assert_allclose,
    assert_raises,
    assert_shape,
    assert_finite,
)

from a2c_rl.common.networks.base_networks import MLPBase, MLPFeaturesExtractor
from a2c_rl.common.networks.distributions import (
    BernoulliDistribution,
    CategoricalDistribution,
    DiagGaussianDistribution,
    LOG_STD_MAX,
)
from a2c_rl.common.networks.policy_networks import (
    BernoulliOutput,
    CategoricalOutput,
    DiagGaussianOutput,
    build_output_layer,
)
from a2c_rl.common.spaces import ActionSpace
from a2c_rl.common.utils.network_utils import _ensure_batch, _make_weights_init, _validate_hidden_sizes


# =============================================================================
# Tests: distributions
# =============================================================================
def test_categorical_distribution_shapes():
    seed_all(0)
    d = CategoricalDistribution(th.randn(5, 3))

    a = d.sample()
    assert_shape(a, (5, 1))
    assert_eq(a.dtype, th.long)
    assert_shape(d.mode(), (5, 1))
    assert_shape(d.log_prob(a), (5, 1))
    assert_shape(d.log_prob(a.squeeze(-1)), (5, 1))
    assert_shape(d.entropy(), (5, 1))
    assert_allclose(d.probs.sum(dim=-1), th.ones(5), atol=1e-6)


def test_categorical_mode_is_argmax():
    logits = th.tensor([[0.0, 3.0, 1.0], [5.0, 0.0, 0.0]])
    d = CategoricalDistribution(logits)
    assert_eq(d.mode().view(-1).tolist(), [1, 0])


def test_diag_gaussian_sums_over_action_dims():
    seed_all(0)
    mean = th.randn(4, 2)
    log_std = th.zeros(2)
    d = DiagGaussianDistribution(mean, log_std)

    a = d.sample()
    assert_shape(a, (4, 2))
    lp = d.log_prob(a)
    assert_shape(lp, (4, 1))

    ref = th.distributions.Normal(mean, th.ones_like(mean)).log_prob(a).sum(dim=-1, keepdim=True)
    assert_allclose(lp, ref, atol=1e-6)
    assert_shape(d.entropy(), (4, 1))
    assert_allclose(d.mode(), mean)


def test_diag_gaussian_clamps_log_std_and_has_no_probs():
    d = DiagGaussianDistribution(th.zeros(2, 3), th.full((3,), 100.0))
    assert_allclose(d.log_std, th.full((2, 3), LOG_STD_MAX))
    assert_raises(NotImplementedError, lambda: d.probs)


def test_bernoulli_distribution_shapes_and_mode():
    logits = th.tensor([[5.0, -5.0, 0.1]])
    d = BernoulliDistribution(logits)

    assert_eq(d.mode().tolist(), [[1.0, 0.0, 1.0]])
    a = d.sample()
    assert_shape(a, (1, 3))
    assert_shape(d.log_prob(a), (1, 1))
    assert_shape(d.entropy(), (1, 1))
    assert_shape(d.probs, (1, 3))


# =============================================================================
# Tests: output layers
# =============================================================================
def test_build_output_layer_selects_distribution():
    cases = (
        (ActionSpace.discrete(4), CategoricalOutput, CategoricalDistribution),
        (ActionSpace.box(2), DiagGaussianOutput, DiagGaussianDistribution),
        (ActionSpace.multi_binary(3), BernoulliOutput, BernoulliDistribution),
    )
    x = th.randn(6, 8)
    for space, layer_cls, dist_cls in cases:
        layer = build_output_layer(space, 8)
        assert_true(isinstance(layer, layer_cls), f"{space.kind}: got {type(layer).__name__}")
        assert_true(isinstance(layer(x), dist_cls), f"{space.kind}: wrong distribution type")


def test_output_layer_small_init():
    layer = CategoricalOutput(16, 4)
    # gain 0.01 keeps the initial policy close to uniform
    probs = layer(th.randn(32, 16)).probs
    assert_allclose(probs, th.full((32, 4), 0.25), atol=0.05)


# =============================================================================
# Tests: MLPBase
# =============================================================================
def test_mlp_base_feedforward_shapes():
    seed_all(0)
    base = MLPBase(5, hidden_size=32, num_layers=2)
    assert_true(not base.is_recurrent)
    assert_eq(base.recurrent_hidden_state_size, 1)
    assert_eq(base.output_size, 32)

    hxs = th.randn(7, 1)
    value, feats, h = base(th.randn(7, 5), hxs, th.ones(7, 1))
    assert_shape(value, (7, 1))
    assert_shape(feats, (7, 32))
    assert_true(h is hxs, "stateless base must return the hidden placeholder unchanged")


def test_mlp_base_invalid_sizes_raise():
    assert_raises(ValueError, lambda: MLPBase(4, hidden_size=0))
    assert_raises(ValueError, lambda: MLPBase(4, num_layers=0))


def test_gru_mask_zero_resets_hidden():
    seed_all(0)
    base = MLPBase(3, recurrent=True, hidden_size=8)
    x = th.randn(4, 3)

    _, f_reset, h_reset = base(x, th.randn(4, 8), th.zeros(4, 1))
    _, f_zero, h_zero = base(x, th.zeros(4, 8), th.ones(4, 1))
    assert_allclose(f_reset, f_zero, atol=1e-6)
    assert_allclose(h_reset, h_zero, atol=1e-6)


def test_gru_segmented_unroll_matches_stepwise():
    seed_all(0)
    T, N, D, H = 6, 3, 4, 8
    base = MLPBase(D, recurrent=True, hidden_size=H)

    x = th.randn(T, N, D)
    masks = th.ones(T, N, 1)
    masks[2, 0] = 0.0
    masks[4, 1] = 0.0
    masks[4, 2] = 0.0
    hxs = th.randn(N, H)

    with th.no_grad():
        v_all, f_all, h_all = base(x.view(T * N, D), hxs, masks.view(T * N, 1))

        h = hxs
        vs, fs = [], []
        for t in range(T):
            v, f, h = base(x[t], h, masks[t])
            vs.append(v)
            fs.append(f)

    assert_allclose(v_all, th.cat(vs, dim=0), atol=1e-5)
    assert_allclose(f_all, th.cat(fs, dim=0), atol=1e-5)
    assert_allclose(h_all, h, atol=1e-5)


def test_gru_unroll_rejects_indivisible_batch():
    base = MLPBase(3, recurrent=True, hidden_size=4)
    assert_raises(ValueError, lambda: base(th.randn(7, 3), th.zeros(3, 4), th.ones(7, 1)))


# =============================================================================
# Tests: network utils
# =============================================================================
def test_weights_init_and_validation():
    assert_raises(ValueError, lambda: _make_weights_init("kaiming"))
    assert_raises(ValueError, lambda: _validate_hidden_sizes(()))
    assert_raises(ValueError, lambda: _validate_hidden_sizes((64, -1)))

    lin = nn.Linear(8, 8)
    lin.apply(_make_weights_init("orthogonal", gain=1.0, bias=0.3))
    eye = lin.weight @ lin.weight.t()
    assert_allclose(eye, th.eye(8), atol=1e-5)
    assert_allclose(lin.bias, th.full((8,), 0.3))

    ext = MLPFeaturesExtractor(3, (5, 6))
    assert_eq(ext.out_dim, 6)
    assert_finite(ext(th.randn(2, 3)))


def test_ensure_batch_adds_leading_dim():
    x = _ensure_batch([1, 2, 3], "cpu")
    assert_shape(x, (1, 3))
    assert_true(x.is_floating_point())
    assert_shape(_ensure_batch(th.zeros(4, 3), "cpu"), (4, 3))


# =============================================================================
# Main
# =============================================================================
TESTS: List[Tuple[str, Callable[[], None]]] = [
    ("categorical_distribution_shapes", test_categorical_distribution_shapes),
    ("categorical_mode_is_argmax", test_categorical_mode_is_argmax),
    ("diag_gaussian_sums_over_action_dims", test_diag_gaussian_sums_over_action_dims),
    ("diag_gaussian_clamps_log_std_and_has_no_probs", test_diag_gaussian_clamps_log_std_and_has_no_probs),
    ("bernoulli_distribution_shapes_and_mode", test_bernoulli_distribution_shapes_and_mode),
    ("build_output_layer_selects_distribution", test_build_output_layer_selects_distribution),
    ("output_layer_small_init", test_output_layer_small_init),
    ("mlp_base_feedforward_shapes", test_mlp_base_feedforward_shapes),
    ("mlp_base_invalid_sizes_raise", test_mlp_base_invalid_sizes_raise),
    ("gru_mask_zero_resets_hidden", test_gru_mask_zero_resets_hidden),
    ("gru_segmented_unroll_matches_stepwise", test_gru_segmented_unroll_matches_stepwise),
    ("gru_unroll_rejects_indivisible_batch", test_gru_unroll_rejects_indivisible_batch),
    ("weights_init_and_validation", test_weights_init_and_validation),
    ("ensure_batch_adds_leading_dim", test_ensure_batch_adds_leading_dim),
]


def main(argv: Optional[List[str]] = None) -> int:
    return run_tests(TESTS, argv=argv, suite_name="networks")


if __name__ == "__main__":
    raise SystemExit(main())

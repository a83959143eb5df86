from __future__ import annotations

from typing import Callable, List, Optional, Tuple

import torch as th
import torch.nn as nn
import torch.optim as optim

from a2c_rl.common.testers.test_utils import (
    seed_all,
    run_tests,
    assert_eq,
    assert_true,
    assert_close,
    assert_raises,
)
from a2c_rl.common.testers.test_harness import grad_norm

from a2c_rl.common.optimizers.optimizer_builder import (
    OPTIMIZER_NAMES,
    build_optimizer,
    clip_grad_norm,
    load_optimizer_state_dict,
    optimizer_state_dict,
)


def _tiny_model() -> nn.Module:
    return nn.Sequential(nn.Linear(3, 4), nn.Tanh(), nn.Linear(4, 1))


def _backward(model: nn.Module, scale: float = 1.0) -> None:
    model.zero_grad(set_to_none=True)
    (model(th.randn(8, 3)).pow(2).mean() * scale).backward()


# =============================================================================
# Tests: build_optimizer
# =============================================================================
def test_build_optimizer_all_names():
    expected = {
        "adam": optim.Adam,
        "adamw": optim.AdamW,
        "sgd": optim.SGD,
        "rmsprop": optim.RMSprop,
        "radam": optim.RAdam,
    }
    assert_eq(set(expected), set(OPTIMIZER_NAMES))
    for name, cls in expected.items():
        opt = build_optimizer(_tiny_model().parameters(), name=name, lr=1e-3)
        assert_true(isinstance(opt, cls), f"{name}: got {type(opt).__name__}")


def test_build_optimizer_name_normalization():
    assert_true(isinstance(build_optimizer(_tiny_model().parameters(), name="RMS_Prop"), optim.RMSprop))
    assert_true(isinstance(build_optimizer(_tiny_model().parameters(), name="adam-w"), optim.AdamW))


def test_build_optimizer_rmsprop_defaults():
    opt = build_optimizer(_tiny_model().parameters())
    group = opt.param_groups[0]
    assert_true(isinstance(opt, optim.RMSprop))
    assert_close(group["lr"], 7e-4)
    assert_close(group["eps"], 1e-5)
    assert_close(group["alpha"], 0.99)


def test_build_optimizer_rejects_bad_arguments():
    params = lambda: _tiny_model().parameters()  # noqa: E731
    assert_raises(ValueError, lambda: build_optimizer(params(), name="lion"))
    assert_raises(ValueError, lambda: build_optimizer(params(), lr=0.0))
    assert_raises(ValueError, lambda: build_optimizer(params(), weight_decay=-1.0))
    assert_raises(ValueError, lambda: build_optimizer(params(), eps=0.0))
    assert_raises(ValueError, lambda: build_optimizer(params(), momentum=-0.1))
    assert_raises(ValueError, lambda: build_optimizer(params(), alpha=1.0))
    assert_raises(ValueError, lambda: build_optimizer(params(), name="adam", betas=(0.9, 1.0)))
    assert_raises(ValueError, lambda: build_optimizer(iter(())))


# =============================================================================
# Tests: clip_grad_norm
# =============================================================================
def test_clip_grad_norm_returns_pre_clip_norm():
    seed_all(0)
    model = _tiny_model()
    _backward(model, scale=100.0)
    before = grad_norm(model)

    total = clip_grad_norm(model.parameters(), max_norm=0.1)
    assert_close(total, before, rtol=1e-5)
    assert_true(grad_norm(model) <= 0.1 * (1.0 + 1e-4), "gradients were not clipped")


def test_clip_grad_norm_disabled_is_noop():
    seed_all(0)
    model = _tiny_model()
    _backward(model, scale=100.0)
    before = grad_norm(model)

    assert_eq(clip_grad_norm(model.parameters(), max_norm=0.0), 0.0)
    assert_close(grad_norm(model), before)


# =============================================================================
# Tests: state dict
# =============================================================================
def test_optimizer_state_roundtrip():
    seed_all(0)
    model = _tiny_model()
    opt = build_optimizer(model.parameters(), name="rmsprop", lr=1e-2)
    _backward(model)
    opt.step()

    state = optimizer_state_dict(opt)
    opt2 = build_optimizer(model.parameters(), name="rmsprop", lr=1e-2)
    load_optimizer_state_dict(opt2, state)

    p0 = next(iter(model.parameters()))
    assert_true(th.allclose(opt.state[p0]["square_avg"], opt2.state[p0]["square_avg"]))


# =============================================================================
# Main
# =============================================================================
TESTS: List[Tuple[str, Callable[[], None]]] = [
    ("build_optimizer_all_names", test_build_optimizer_all_names),
    ("build_optimizer_name_normalization", test_build_optimizer_name_normalization),
    ("build_optimizer_rmsprop_defaults", test_build_optimizer_rmsprop_defaults),
    ("build_optimizer_rejects_bad_arguments", test_build_optimizer_rejects_bad_arguments),
    ("clip_grad_norm_returns_pre_clip_norm", test_clip_grad_norm_returns_pre_clip_norm),
    ("clip_grad_norm_disabled_is_noop", test_clip_grad_norm_disabled_is_noop),
    ("optimizer_state_roundtrip", test_optimizer_state_roundtrip),
]


def main(argv: Optional[List[str]] = None) -> int:
    return run_tests(TESTS, argv=argv, suite_name="optimizers")


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

from dataclasses import FrozenInstanceError
from typing import Callable, List, Optional, Tuple

import numpy as np
from gymnasium import spaces

from a2c_rl.common.testers.test_utils import (
    run_tests,
    assert_eq,
    assert_true,
    assert_raises,
)

from a2c_rl.common.spaces import ACTION_SPACE_KINDS, ActionSpace


# =============================================================================
# Tests: ActionSpace
# =============================================================================
def test_action_space_constructors_and_sizes():
    d = ActionSpace.discrete(5)
    assert_eq((d.kind, d.shape), ("Discrete", (5,)))
    assert_true(d.is_discrete)
    assert_eq((d.num_outputs, d.action_dim), (5, 1))

    b = ActionSpace.box(3)
    assert_true(not b.is_discrete)
    assert_eq((b.num_outputs, b.action_dim), (3, 3))

    m = ActionSpace.multi_binary(4)
    assert_eq((m.kind, m.num_outputs, m.action_dim), ("MultiBinary", 4, 4))


def test_action_space_rejects_unknown_kind_and_bad_shape():
    assert_eq(ACTION_SPACE_KINDS, ("Discrete", "Box", "MultiBinary"))
    assert_raises(ValueError, lambda: ActionSpace("MultiDiscrete", (3,)))
    assert_raises(ValueError, lambda: ActionSpace.discrete(0))
    assert_raises(ValueError, lambda: ActionSpace("Box", (2, 2)))


def test_action_space_is_immutable_and_hashable():
    a = ActionSpace.discrete(2)

    def _mutate():
        a.kind = "Box"  # type: ignore[misc]

    assert_raises(FrozenInstanceError, _mutate)
    assert_eq(len({ActionSpace.discrete(2), ActionSpace("Discrete", [2])}), 1)


def test_action_space_from_gym():
    d = ActionSpace.from_gym(spaces.Discrete(4))
    assert_eq(d, ActionSpace.discrete(4))

    b = ActionSpace.from_gym(spaces.Box(low=-1.0, high=1.0, shape=(2, 3), dtype=np.float32))
    assert_eq(b, ActionSpace.box(6))

    m = ActionSpace.from_gym(spaces.MultiBinary(3))
    assert_eq(m, ActionSpace.multi_binary(3))

    assert_raises(TypeError, lambda: ActionSpace.from_gym(spaces.MultiDiscrete([2, 3])))
    assert_raises(TypeError, lambda: ActionSpace.from_gym(spaces.Tuple((spaces.Discrete(2), spaces.Discrete(2)))))


def test_action_space_from_gym_rejects_shifted_discrete():
    assert_eq(ActionSpace.from_gym(spaces.Discrete(3, start=0)), ActionSpace.discrete(3))
    assert_raises(ValueError, lambda: ActionSpace.from_gym(spaces.Discrete(3, start=1)))
    assert_raises(ValueError, lambda: ActionSpace.from_gym(spaces.Discrete(2, start=-1)))


# =============================================================================
# Main
# =============================================================================
TESTS: List[Tuple[str, Callable[[], None]]] = [
    ("action_space_constructors_and_sizes", test_action_space_constructors_and_sizes),
    ("action_space_rejects_unknown_kind_and_bad_shape", test_action_space_rejects_unknown_kind_and_bad_shape),
    ("action_space_is_immutable_and_hashable", test_action_space_is_immutable_and_hashable),
    ("action_space_from_gym", test_action_space_from_gym),
    ("action_space_from_gym_rejects_shifted_discrete", test_action_space_from_gym_rejects_shifted_discrete),
]


def main(argv: Optional[List[str]] = None) -> int:
    return run_tests(TESTS, argv=argv, suite_name="spaces")


if __name__ == "__main__":
    raise SystemExit(main())

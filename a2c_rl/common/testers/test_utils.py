from __future__ import annotations

from typing import Any, Callable, List, Optional, Sequence, Tuple

import math
import sys
import traceback
import numpy as np
import torch as th


class Color:
    RESET = "\033[0m"
    GREEN = "\033[32m"
    RED = "\033[31m"
    CYAN = "\033[36m"


def colorize(text: str, color: str, *, enable: bool = True) -> str:
    if not enable:
        return text
    return f"{color}{text}{Color.RESET}"


# =============================================================================
# Mini test framework (script mode; pytest collects the same functions)
# =============================================================================
class TestFailure(AssertionError):
    __test__ = False


def assert_true(cond: bool, msg: str = "") -> None:
    if not cond:
        raise TestFailure(msg or "assert_true failed")


def assert_eq(a: Any, b: Any, msg: str = "") -> None:
    if a != b:
        raise TestFailure(msg or f"assert_eq failed: {a!r} != {b!r}")


def assert_in(x: Any, xs: Any, msg: str = "") -> None:
    if x not in xs:
        raise TestFailure(msg or f"assert_in failed: {x!r} not in {xs!r}")


def assert_ge(a: float, b: float, msg: str = "") -> None:
    if float(a) < float(b):
        raise TestFailure(msg or f"assert_ge failed: {a} < {b}")


def assert_close(a: float, b: float, *, rtol: float = 1e-6, atol: float = 1e-8, msg: str = "assert_close failed") -> None:
    if not math.isclose(float(a), float(b), rel_tol=rtol, abs_tol=atol):
        raise TestFailure(f"{msg}: {a} vs {b} (rtol={rtol}, atol={atol})")


def assert_allclose(
    a: Any,
    b: Any,
    msg: str = "",
    *,
    rtol: float = 1e-6,
    atol: float = 1e-8,
) -> None:
    """
    Assert two numeric objects are close (supports scalar / ndarray / torch tensor).

    - torch.Tensor -> torch.allclose (after casting both sides to float64)
    - array-like   -> np.allclose
    """
    if th.is_tensor(a) or th.is_tensor(b):
        ta = (a if th.is_tensor(a) else th.as_tensor(a)).detach().cpu().double()
        tb = (b if th.is_tensor(b) else th.as_tensor(b)).detach().cpu().double()
        if ta.shape != tb.shape or not bool(th.allclose(ta, tb, rtol=rtol, atol=atol)):
            raise TestFailure(msg or f"assert_allclose failed: {ta} != {tb}")
        return

    aa = np.asarray(a, dtype=np.float64)
    bb = np.asarray(b, dtype=np.float64)
    if aa.shape != bb.shape or not bool(np.allclose(aa, bb, rtol=rtol, atol=atol)):
        raise TestFailure(msg or f"assert_allclose failed: {aa} != {bb}")


def assert_raises(exc_type: type, fn: Callable[[], Any], *, msg: str = "assert_raises failed") -> None:
    try:
        fn()
    except exc_type:
        return
    except Exception as e:
        raise TestFailure(f"{msg}: expected {exc_type.__name__}, got {type(e).__name__}: {e}")
    raise TestFailure(f"{msg}: expected {exc_type.__name__} but no exception raised")


def _shape_of(x: Any) -> Tuple[int, ...]:
    if th.is_tensor(x):
        return tuple(int(d) for d in x.shape)
    return tuple(int(d) for d in np.asarray(x).shape)


def assert_shape(x: Any, shape: Sequence[int], msg: str = "") -> None:
    got = _shape_of(x)
    exp = tuple(int(s) for s in shape)
    if got != exp:
        raise TestFailure(msg or f"assert_shape failed: got {got}, expected {exp}")


def assert_finite(x: Any, msg: str = "") -> None:
    """
    Assert all values are finite (no NaN/Inf).

    Works for torch tensors, numpy arrays / array-likes and Python scalars.
    """
    if th.is_tensor(x):
        if not bool(th.isfinite(x).all().item()):
            raise TestFailure(msg or "assert_finite failed: tensor has NaN/Inf")
        return

    arr = np.asarray(x, dtype=np.float64)
    if not np.all(np.isfinite(arr)):
        raise TestFailure(msg or f"assert_finite failed: array has NaN/Inf, shape={arr.shape}")


def seed_all(seed: int = 0) -> None:
    np.random.seed(seed)
    th.manual_seed(seed)
    if th.cuda.is_available():
        th.cuda.manual_seed_all(seed)


def run_tests(
    tests: Sequence[Tuple[str, Callable[[], Any]]],
    *,
    argv: Optional[List[str]] = None,
    suite_name: str = "tests",
) -> int:
    """
    Run a list of zero-arg test callables and print colored PASS/FAIL + summary.

    Parameters
    ----------
    tests : Sequence[Tuple[str, Callable[[], Any]]]
        List of (test_name, test_fn). Each test_fn must be callable with no args.
    argv : Optional[List[str]]
        CLI args (excluding program name). If None, uses sys.argv[1:].
        If argv[0] exists, it is used as a substring filter on test names.
    suite_name : str
        Label used in console output, e.g. "a2c" or "buffers".

    Returns
    -------
    int
        0 if all passed, 1 if any failed, 2 if filter matched no tests.
    """
    argv = sys.argv[1:] if argv is None else argv
    filt = argv[0] if argv else ""

    selected = [(n, f) for (n, f) in tests if (not filt or filt in n)]
    if not selected:
        print(f"[{suite_name}] No tests matched filter: {filt!r}")
        return 2

    passed: List[str] = []
    failed: List[Tuple[str, str]] = []  # (test_name, error_summary)

    print(f"[{suite_name}] Running {len(selected)} tests" + (f" (filter={filt!r})" if filt else ""))

    for name, fn in selected:
        try:
            fn()
            passed.append(name)
            print(colorize(f" [ PASS ] {name}", Color.GREEN))
        except Exception as e:
            err = f"{type(e).__name__}: {e}"
            failed.append((name, err))
            print(colorize(f" [ FAIL ] {name}: {err}", Color.RED))
            traceback.print_exc()

    # -----------------------------
    # Summary (grouped results)
    # -----------------------------
    print()
    print(colorize(f"[{suite_name}] ========================= Summary =========================", Color.CYAN))
    print(colorize(f"[{suite_name}] Passed ({len(passed)})", Color.GREEN))
    if failed:
        print(colorize(f"[{suite_name}] Failed ({len(failed)}):", Color.RED))
        for n, err in failed:
            print(colorize(f"  - {n}", Color.RED))
            print(colorize(f"      {err}", Color.RED))
    else:
        print(colorize(f"[{suite_name}] Failed (0)", Color.GREEN))
    print()

    return 0 if len(failed) == 0 else 1

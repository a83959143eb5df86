from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

import csv
import json
import os

from a2c_rl.common.testers.test_utils import (
    run_tests,
    assert_eq,
    assert_true,
    assert_in,
    assert_close,
    assert_raises,
)
from a2c_rl.common.testers.test_harness import MemoryWriter, TempDir

from a2c_rl.common.loggers import CSVWriter, JSONLWriter, Logger, SafeWriter, build_logger
from a2c_rl.common.utils.logger_utils import _make_run_dir


def _read_jsonl(path: str) -> List[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


def _read_csv(path: str) -> List[List[str]]:
    with open(path, "r", newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


def _logger(td: str, **kw: Any) -> Logger:
    kw.setdefault("console_every", 0)
    return Logger(log_dir=td, exp_name="t", run_id="r", **kw)


# =============================================================================
# Tests: Logger frontend
# =============================================================================
def test_logger_prefix_and_meta_keys():
    with TempDir() as td:
        w = MemoryWriter()
        lg = _logger(td, writers=[w])
        lg.log({"loss/value": 1.5, "/loss/action": -0.25}, step=7, prefix="train")
        lg.close()

        row = w.rows[0]
        assert_close(row["train/loss/value"], 1.5)
        assert_close(row["train/loss/action"], -0.25)
        for k in ("step", "wall_time", "timestamp"):
            assert_in(k, row)
        assert_close(row["step"], 7.0)
        assert_true(w.closed)
        assert_true(os.path.exists(os.path.join(lg.run_dir, "metadata.json")))


def test_logger_skips_non_scalars_and_drops_non_finite():
    with TempDir() as td:
        w = MemoryWriter()
        lg = _logger(td, writers=[w], drop_non_finite=True)
        lg.log({"ok": 1, "vec": [1.0, 2.0], "name": "x", "bad": float("nan")}, step=0)

        row = w.rows[0]
        assert_in("ok", row)
        for k in ("vec", "name", "bad"):
            assert_true(k not in row, f"{k} should have been skipped")


def test_logger_step_fn_and_key_throttling():
    with TempDir() as td:
        w = MemoryWriter()
        lg = _logger(td, writers=[w])
        counter = {"n": 0}
        lg.set_step_fn(lambda: counter["n"])
        lg.set_key_every({"slow": 2})

        for i in range(4):
            counter["n"] = i
            lg.log({"slow": float(i), "fast": float(i)})

        assert_eq([r["step"] for r in w.rows], [0.0, 1.0, 2.0, 3.0])
        assert_eq([("slow" in r) for r in w.rows], [True, False, True, False])
        assert_true(all("fast" in r for r in w.rows))


def test_logger_record_and_dump():
    with TempDir() as td:
        w = MemoryWriter()
        lg = _logger(td, writers=[w])
        for v in (1.0, 2.0, 3.0):
            lg.record({"loss/value": v}, prefix="train")
        lg.dump(step=10, agg="max")

        assert_eq(len(w.rows), 1)
        assert_close(w.rows[0]["train/loss/value"], 3.0)

        lg.dump(step=11)
        assert_eq(len(w.rows), 1, "empty buffer must not emit a row")
        assert_raises(ValueError, lambda: lg.dump(agg="median"))


def test_logger_flush_every():
    with TempDir() as td:
        w = MemoryWriter()
        lg = _logger(td, writers=[w], flush_every=2)
        for i in range(5):
            lg.log({"x": i}, step=i)
        assert_eq(w.flushes, 2)


def test_logger_strict_and_non_strict_writer_errors():
    with TempDir() as td:
        lenient = Logger(log_dir=td, exp_name="t", run_id="a", writers=[MemoryWriter(fail_on="write")], console_every=0)
        lenient.log({"x": 1.0}, step=0)
        assert_eq(len(lenient.errors), 1)
        assert_in("MemoryWriter", lenient.errors[0])

        strict = Logger(
            log_dir=td, exp_name="t", run_id="b", writers=[MemoryWriter(fail_on="write")], console_every=0, strict=True
        )
        assert_raises(OSError, lambda: strict.log({"x": 1.0}, step=0))


def test_logger_console_output_uses_pbar():
    class _Bar:
        def __init__(self) -> None:
            self.desc = ""

        def set_description_str(self, s: str, refresh: bool = True) -> None:
            self.desc = s

    with TempDir() as td:
        lg = Logger(log_dir=td, exp_name="t", run_id="r", console_every=1)
        bar = _Bar()
        lg.log({"loss/value": 0.5, "loss/action": 0.1, "stats/entropy": 0.7}, step=3, pbar=bar, prefix="train")
        assert_in("step=3", bar.desc)
        assert_in("train/loss/value=0.5", bar.desc)


def test_logger_dump_config():
    with TempDir() as td:
        lg = _logger(td)
        lg.dump_config({"algo": "a2c", "lr": 7e-4})
        with open(os.path.join(lg.run_dir, "config.json"), "r", encoding="utf-8") as f:
            cfg = json.load(f)
        assert_eq(cfg["algo"], "a2c")


# =============================================================================
# Tests: run directories
# =============================================================================
def test_make_run_dir_suffix_overwrite_resume():
    with TempDir() as td:
        first = _make_run_dir(td, "exp", run_id="run")
        os.makedirs(first)
        assert_eq(_make_run_dir(td, "exp", run_id="run"), first + "_1")
        assert_eq(_make_run_dir(td, "exp", run_id="run", overwrite=True), first)
        assert_eq(_make_run_dir(td, "exp", run_id="run", resume=True), first)
        assert_raises(FileNotFoundError, lambda: _make_run_dir(td, "exp", run_id="missing", resume=True))


# =============================================================================
# Tests: writers
# =============================================================================
def test_jsonl_writer_one_object_per_row():
    with TempDir() as td:
        w = JSONLWriter(td)
        w.write({"step": 1.0, "a": 0.5})
        w.write({"step": 2.0, "a": 0.25})
        w.close()
        w.close()

        rows = _read_jsonl(w.path)
        assert_eq(len(rows), 2)
        assert_close(rows[1]["a"], 0.25)
        assert_raises(ValueError, lambda: w.write({"a": 1.0}))


def test_csv_writer_wide_schema_frozen_and_long_rows():
    with TempDir() as td:
        w = CSVWriter(td)
        w.write({"a": 1.0, "step": 0.0, "wall_time": 0.1, "timestamp": 1.0})
        w.write({"a": 2.0, "b": 9.0, "step": 1.0, "wall_time": 0.2, "timestamp": 2.0})
        w.close()

        wide = _read_csv(w.wide_path)
        assert_eq(wide[0], ["a", "step", "wall_time", "timestamp"])
        assert_eq(len(wide), 3)

        long_rows = _read_csv(w.long_path)
        assert_eq(long_rows[0], ["step", "wall_time", "timestamp", "key", "value"])
        assert_eq([r[3] for r in long_rows[1:]], ["a", "a", "b"])


def test_csv_writer_resume_reuses_header():
    with TempDir() as td:
        w = CSVWriter(td, long=False)
        w.write({"a": 1.0, "step": 0.0})
        w.close()

        w2 = CSVWriter(td, long=False)
        w2.write({"step": 1.0, "a": 2.0, "extra": 3.0})
        w2.close()

        wide = _read_csv(w2.wide_path)
        assert_eq(wide[0], ["a", "step"])
        assert_eq(wide[2], ["2.0", "1.0"])
        assert_true(not os.path.exists(w2.long_path))


def test_safe_writer_isolates_failures():
    inner = MemoryWriter(fail_on="write")
    sw = SafeWriter(inner, max_errors=2)
    for _ in range(3):
        sw.write({"x": 1.0})
    sw.flush()
    sw.close()

    assert_eq(sw.failures, 3)
    assert_eq(len(sw.errors), 2)
    assert_true(inner.closed)


# =============================================================================
# Tests: builder
# =============================================================================
def test_build_logger_writes_csv_and_jsonl():
    with TempDir() as td:
        lg = build_logger(log_dir=td, exp_name="a2c", run_id="r0", console_every=0)
        lg.log({"loss/value": 0.5, "loss/action": -0.1, "stats/entropy": 0.69}, step=1, prefix="train")
        lg.close()

        files = set(os.listdir(lg.run_dir))
        for name in ("metrics.csv", "metrics_long.csv", "metrics.jsonl", "metadata.json"):
            assert_in(name, files)

        rows = _read_jsonl(os.path.join(lg.run_dir, "metrics.jsonl"))
        assert_close(rows[0]["train/stats/entropy"], 0.69)


def test_build_logger_safe_writers_wraps_backends():
    with TempDir() as td:
        lg = build_logger(log_dir=td, exp_name="a2c", run_id="r1", use_csv=False, safe_writers=True, console_every=0)
        lg.close()
        # writes after close are absorbed by SafeWriter instead of reaching the caller
        lg.log({"x": 1.0}, step=0)
        assert_eq(lg.errors, [])


# =============================================================================
# Main
# =============================================================================
TESTS: List[Tuple[str, Callable[[], None]]] = [
    ("logger_prefix_and_meta_keys", test_logger_prefix_and_meta_keys),
    ("logger_skips_non_scalars_and_drops_non_finite", test_logger_skips_non_scalars_and_drops_non_finite),
    ("logger_step_fn_and_key_throttling", test_logger_step_fn_and_key_throttling),
    ("logger_record_and_dump", test_logger_record_and_dump),
    ("logger_flush_every", test_logger_flush_every),
    ("logger_strict_and_non_strict_writer_errors", test_logger_strict_and_non_strict_writer_errors),
    ("logger_console_output_uses_pbar", test_logger_console_output_uses_pbar),
    ("logger_dump_config", test_logger_dump_config),
    ("make_run_dir_suffix_overwrite_resume", test_make_run_dir_suffix_overwrite_resume),
    ("jsonl_writer_one_object_per_row", test_jsonl_writer_one_object_per_row),
    ("csv_writer_wide_schema_frozen_and_long_rows", test_csv_writer_wide_schema_frozen_and_long_rows),
    ("csv_writer_resume_reuses_header", test_csv_writer_resume_reuses_header),
    ("safe_writer_isolates_failures", test_safe_writer_isolates_failures),
    ("build_logger_writes_csv_and_jsonl", test_build_logger_writes_csv_and_jsonl),
    ("build_logger_safe_writers_wraps_backends", test_build_logger_safe_writers_wraps_backends),
]


def main(argv: Optional[List[str]] = None) -> int:
    return run_tests(TESTS, argv=argv, suite_name="loggers")


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import json
import os
import socket
import sys
import time
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import numpy as np
import torch as th

from ..utils.common_utils import _to_scalar
from ..utils.logger_utils import _make_run_dir


class Logger:
    """
    Scalar-first experiment logger (frontend).

    The `Logger` owns frontend concerns:

    - Resolving and creating a per-run directory (`run_dir`)
    - Step inference (explicit argument or a bound step callable)
    - Metric key normalization (prefixing, path-like keys)
    - Per-key throttling (log a key every N steps)
    - Optional dropping of non-finite values
    - In-memory aggregation (`record` -> `dump`)
    - Console output at a configured cadence

    Writer backends own I/O (file formats, buffering, flush/close).

    Parameters
    ----------
    log_dir : str, default="./runs"
        Root directory for experiment runs.
    exp_name : str, default="exp"
        Experiment subdirectory under `log_dir`.
    run_id : str, optional
        Explicit run identifier (highest priority).
    run_name : str, optional
        Human-friendly identifier used when `run_id` is not provided.
    overwrite : bool, default=False
        Reuse an existing run directory instead of suffixing ``_k``.
    resume : bool, default=False
        Append to an existing run directory (must exist).
    writers : Iterable, optional
        Writer backends attached at construction.
    console_every : int, default=1
        Print every N calls to `log()`. ``<= 0`` disables console output.
    flush_every : int, default=200
        Flush writers every N calls to `log()`. ``<= 0`` disables it.
    drop_non_finite : bool, default=False
        Discard NaN/Inf scalars rather than writing them.
    strict : bool, default=False
        Re-raise writer/metadata errors. Otherwise they are recorded in
        `errors` and logging continues.

    Attributes
    ----------
    run_dir : str
        Resolved run directory owned by this logger.
    errors : list of str
        Messages of errors absorbed in non-strict mode.
    """

    def __init__(
        self,
        *,
        log_dir: str = "./runs",
        exp_name: str = "exp",
        run_id: Optional[str] = None,
        run_name: Optional[str] = None,
        overwrite: bool = False,
        resume: bool = False,
        writers: Optional[Iterable[Any]] = None,
        console_every: int = 1,
        flush_every: int = 200,
        drop_non_finite: bool = False,
        strict: bool = False,
    ) -> None:
        self.strict = bool(strict)
        self.errors: List[str] = []

        self.run_dir = _make_run_dir(
            log_dir=log_dir,
            exp_name=exp_name,
            run_id=run_id,
            run_name=run_name,
            overwrite=bool(overwrite),
            resume=bool(resume),
        )
        os.makedirs(self.run_dir, exist_ok=True)

        self.console_every = int(console_every)
        self.flush_every = int(flush_every)
        self.drop_non_finite = bool(drop_non_finite)

        self._start_time = time.time()
        self._log_calls = 0
        self._step_fn: Optional[Callable[[], int]] = None

        # full_key -> every_n_steps
        self._key_every: Dict[str, int] = {}
        # full_key -> buffered values
        self._buffer: Dict[str, List[float]] = defaultdict(list)

        self._writers: List[Any] = list(writers) if writers is not None else []

        try:
            self.dump_metadata(filename="metadata.json")
        except OSError as e:
            self._handle_exception(e, "dump_metadata")

    # ---------------------------------------------------------------------
    # Context manager
    # ---------------------------------------------------------------------
    def __enter__(self) -> "Logger":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------------------------------------------------------------
    # Step inference
    # ---------------------------------------------------------------------
    def set_step_fn(self, fn: Optional[Callable[[], int]]) -> None:
        """
        Set a callable returning the current global step (e.g. the number of
        completed updates). Used when `log()` is called without `step`.
        """
        self._step_fn = fn

    def _infer_step(self, step: Optional[int]) -> int:
        if step is not None:
            return int(step)
        if self._step_fn is not None:
            return int(self._step_fn())
        return 0

    # ---------------------------------------------------------------------
    # Error handling
    # ---------------------------------------------------------------------
    def _handle_exception(self, err: BaseException, context: str) -> None:
        """Record `err`; re-raise it in strict mode."""
        msg = f"[{self.__class__.__name__}] {context}: {type(err).__name__}: {err}"
        self.errors.append(msg)
        if self.strict:
            raise err

    # ---------------------------------------------------------------------
    # Key normalization and throttling
    # ---------------------------------------------------------------------
    @staticmethod
    def _norm_prefix(prefix: str) -> str:
        p = str(prefix).strip()
        if not p:
            return ""
        return p.replace("\\", "/").strip("/") + "/"

    @staticmethod
    def _norm_key(key: Any) -> str:
        return str(key).strip().replace("\\", "/").lstrip("/")

    def _join_name(self, prefix: str, key: Any) -> str:
        """``("train", "loss/value") -> "train/loss/value"``."""
        return f"{self._norm_prefix(prefix)}{self._norm_key(key)}"

    def set_key_every(self, mapping: Mapping[str, int]) -> None:
        """
        Log a full key only every N steps. ``N <= 0`` removes throttling.

        Parameters
        ----------
        mapping : Mapping[str, int]
            Full metric key (after prefixing) -> every_n_steps.
        """
        for k, v in mapping.items():
            kk = self._norm_key(k)
            if int(v) <= 0:
                self._key_every.pop(kk, None)
            else:
                self._key_every[kk] = int(v)

    def _should_log_key(self, full_key: str, step: int) -> bool:
        every = self._key_every.get(full_key)
        return every is None or (int(step) % every) == 0

    def _coerce(self, v: Any) -> Optional[float]:
        val = _to_scalar(v)
        if val is None:
            return None
        if self.drop_non_finite and not np.isfinite(val):
            return None
        return float(val)

    # ---------------------------------------------------------------------
    # Public logging APIs
    # ---------------------------------------------------------------------
    def log(
        self,
        metrics: Mapping[str, Any],
        step: Optional[int] = None,
        *,
        pbar: Optional[Any] = None,
        prefix: str = "",
    ) -> None:
        """
        Write metrics to every writer (and optionally the console) right away.

        Parameters
        ----------
        metrics : Mapping[str, Any]
            Metric mapping. Values are converted with `_to_scalar`;
            non-scalar values are skipped.
        step : int, optional
            Explicit step. Inferred via `set_step_fn` when omitted.
        pbar : Any, optional
            tqdm-like object; console output goes to its description.
        prefix : str, default=""
            Prefix applied to all keys (e.g. "train").

        Notes
        -----
        Every emitted row carries ``step``, ``wall_time`` and ``timestamp``.
        """
        s = self._infer_step(step)
        self._log_calls += 1

        row: Dict[str, float] = {}
        for k, v in metrics.items():
            name = self._join_name(prefix, k)
            fval = self._coerce(v)
            if fval is None or not self._should_log_key(name, s):
                continue
            row[name] = fval

        now = time.time()
        row["step"] = float(s)
        row["wall_time"] = float(now - self._start_time)
        row["timestamp"] = float(now)

        for w in self._writers:
            try:
                w.write(row)
            except Exception as e:
                self._handle_exception(e, f"writer.write({w.__class__.__name__})")

        if self.console_every > 0 and (self._log_calls % self.console_every == 0):
            self._print_console(row, pbar=pbar)

        if self.flush_every > 0 and (self._log_calls % self.flush_every == 0):
            self.flush()

    def record(self, metrics: Mapping[str, Any], *, prefix: str = "") -> None:
        """Buffer metrics for later aggregation by `dump()` (no writer I/O)."""
        for k, v in metrics.items():
            fval = self._coerce(v)
            if fval is not None:
                self._buffer[self._join_name(prefix, k)].append(fval)

    def dump(self, step: Optional[int] = None, *, agg: str = "mean", clear: bool = True) -> None:
        """
        Aggregate buffered values per key and emit them via `log()`.

        Parameters
        ----------
        step : int, optional
            Explicit step.
        agg : {"mean", "min", "max", "std"}, default="mean"
            Aggregation operator.
        clear : bool, default=True
            Empty the buffer afterwards.

        Raises
        ------
        ValueError
            If `agg` is unknown.
        """
        ops = {"mean": np.mean, "min": np.min, "max": np.max, "std": np.std}
        op = ops.get(str(agg).lower().strip())
        if op is None:
            raise ValueError(f"Unknown agg={agg!r}. Use mean|min|max|std.")

        out = {k: float(op(np.asarray(vals, dtype=np.float64))) for k, vals in self._buffer.items() if vals}
        if clear:
            self._buffer.clear()
        if out:
            self.log(out, step=step)

    # ---------------------------------------------------------------------
    # Config / metadata
    # ---------------------------------------------------------------------
    def dump_config(self, config: Mapping[str, Any], filename: str = "config.json") -> None:
        """Write an experiment configuration as JSON into `run_dir`."""
        path = os.path.join(self.run_dir, filename)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(dict(config), f, indent=2, ensure_ascii=False, default=str)

    def dump_metadata(self, filename: str = "metadata.json") -> None:
        """Write host / interpreter / torch information as JSON into `run_dir`."""
        meta: Dict[str, Any] = {
            "run_dir": self.run_dir,
            "start_time_unix": float(self._start_time),
            "start_time_iso": datetime.fromtimestamp(self._start_time).isoformat(),
            "host": socket.gethostname(),
            "pid": os.getpid(),
            "python": sys.version.replace("\n", " "),
            "platform": sys.platform,
            "torch": str(th.__version__),
            "cuda_available": bool(th.cuda.is_available()),
        }
        path = os.path.join(self.run_dir, filename)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(meta, f, indent=2, ensure_ascii=False, default=str)

    # ---------------------------------------------------------------------
    # Writer lifecycle
    # ---------------------------------------------------------------------
    def add_writer(self, writer: Any) -> None:
        self._writers.append(writer)

    def add_writers(self, writers: Iterable[Any]) -> None:
        for w in writers:
            self.add_writer(w)

    def flush(self) -> None:
        for w in self._writers:
            try:
                w.flush()
            except Exception as e:
                self._handle_exception(e, f"writer.flush({w.__class__.__name__})")

    def close(self) -> None:
        """Flush, then close every writer even if flushing failed."""
        try:
            self.flush()
        finally:
            for w in self._writers:
                try:
                    w.close()
                except Exception as e:
                    self._handle_exception(e, f"writer.close({w.__class__.__name__})")

    # ---------------------------------------------------------------------
    # Console output
    # ---------------------------------------------------------------------
    @staticmethod
    def _print_console(row: Mapping[str, float], *, pbar: Optional[Any] = None) -> None:
        step = int(row.get("step", 0.0))
        wall = float(row.get("wall_time", 0.0))

        preferred = (
            "train/loss/value",
            "train/loss/action",
            "train/stats/entropy",
            "rollout/reward_mean",
        )
        shown = [f"{k}={row[k]:.4g}" for k in preferred if k in row]
        if not shown:
            shown = [f"{k}={v:.4g}" for k, v in row.items() if k not in ("step", "wall_time", "timestamp")][:6]

        msg = f"[step={step} | t={wall:.1f}s] " + " ".join(shown)
        if pbar is not None:
            pbar.set_description_str(msg, refresh=True)
            return
        print(msg)

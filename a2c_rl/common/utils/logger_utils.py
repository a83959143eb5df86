from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, TextIO, Tuple
import csv
import json
import os
import uuid


# =============================================================================
# Metadata convention
# =============================================================================
# Keys injected by Logger.log into every row; writers index by them.
META_KEYS: Tuple[str, str, str] = ("step", "wall_time", "timestamp")


# =============================================================================
# Run directory utilities
# =============================================================================
def _generate_run_id() -> str:
    """
    Generate a filesystem-safe run identifier.

    Returns
    -------
    run_id : str
        ``"{YYYY-mm-dd_HH-MM-SS}_{8-hex}"``, e.g. ``"2026-01-22_14-03-12_a1b2c3d4"``.
    """
    ts = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    return f"{ts}_{uuid.uuid4().hex[:8]}"


def _make_run_dir(
    log_dir: str,
    exp_name: str,
    *,
    run_id: Optional[str] = None,
    run_name: Optional[str] = None,
    overwrite: bool = False,
    resume: bool = False,
) -> str:
    """
    Resolve ``{log_dir}/{exp_name}/{rid}`` for a run.

    Parameters
    ----------
    log_dir : str
        Root logging directory.
    exp_name : str
        Experiment name (subdirectory under ``log_dir``).
    run_id : Optional[str]
        Explicit identifier; highest priority.
    run_name : Optional[str]
        Used only when ``run_id`` is None. Falls back to `_generate_run_id()`.
    overwrite : bool
        Reuse the computed directory even if it exists.
    resume : bool
        Return the computed path as-is; it must already exist.

    Returns
    -------
    run_dir : str
        Resolved run directory path (not created here).

    Raises
    ------
    FileNotFoundError
        If ``resume=True`` and the directory does not exist.

    Notes
    -----
    For a fresh run whose path exists, the first free ``{path}_{k}`` is used.
    """
    base = os.path.join(str(log_dir), str(exp_name))
    rid = run_id or run_name or _generate_run_id()
    path = os.path.join(base, str(rid))

    if resume:
        if not os.path.exists(path):
            raise FileNotFoundError(f"resume=True but run_dir does not exist: {path}")
        return path

    if overwrite or (not os.path.exists(path)):
        return path

    i = 1
    while os.path.exists(f"{path}_{i}"):
        i += 1
    return f"{path}_{i}"


# =============================================================================
# Metric row helpers
# =============================================================================
def _split_meta(row: Mapping[str, Any]) -> Tuple[Dict[str, float], Dict[str, float]]:
    """Split a row into (meta, metrics) based on META_KEYS."""
    meta = {k: float(row[k]) for k in META_KEYS if k in row}
    metrics = {str(k): float(v) for k, v in row.items() if k not in META_KEYS}
    return meta, metrics


def _get_step(row: Mapping[str, Any]) -> int:
    """Integer step of a row, 0 when absent or not castable."""
    try:
        return int(row.get("step", 0))
    except (TypeError, ValueError):
        return 0


def _extract_meta(row: Mapping[str, Any], meta_keys: Sequence[str] = META_KEYS) -> Tuple[Any, Any, Any]:
    """(step, wall_time, timestamp) with empty-string defaults, for CSV rows."""
    if len(meta_keys) != 3:
        meta_keys = META_KEYS
    return tuple(row.get(k, "") for k in meta_keys)  # type: ignore[return-value]


# =============================================================================
# Serialization / filesystem helpers for writers
# =============================================================================
def _json_dumps(obj: Any) -> str:
    """JSON with readable Unicode and ``default=str`` for non-JSON objects."""
    return json.dumps(obj, ensure_ascii=False, default=str)


def _open_append(path: str, *, newline: Optional[str] = None, encoding: str = "utf-8") -> TextIO:
    """
    Open a file in append mode, creating the parent directory if needed.

    Notes
    -----
    Caller owns the returned handle. For CSV pass ``newline=""``.
    """
    dirpath = os.path.dirname(path)
    if dirpath:
        os.makedirs(dirpath, exist_ok=True)
    return open(path, "a", newline=newline, encoding=encoding)


def _safe_call(obj: Optional[Any], method: str) -> None:
    """
    Call ``obj.method()`` if it exists, ignoring I/O and state errors.

    Used for ``flush``/``close`` on handles that may already be closed.
    """
    if obj is None:
        return
    fn = getattr(obj, method, None)
    if not callable(fn):
        return
    try:
        fn()
    except (OSError, ValueError):
        pass


def _file_size(f: TextIO) -> int:
    """Size of an open file via seek/tell; leaves the pointer at EOF."""
    try:
        f.seek(0, os.SEEK_END)
        return int(f.tell())
    except (OSError, ValueError):
        return 0


def _read_csv_header(path: str, *, encoding: str = "utf-8") -> Optional[List[str]]:
    """First row of a CSV file, or None if missing/empty/unreadable."""
    try:
        with open(path, "r", newline="", encoding=encoding) as rf:
            header = next(csv.reader(rf), None)
    except OSError:
        return None
    if not header:
        return None
    return [str(h) for h in header]

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .base_writer import SafeWriter, Writer
from .csv_writer import CSVWriter
from .jsonl_writer import JSONLWriter
from .logger import Logger
from .tensorboard_writer import TensorBoardWriter


def build_logger(
    *,
    log_dir: str = "./runs",
    exp_name: str = "exp",
    run_id: Optional[str] = None,
    run_name: Optional[str] = None,
    overwrite: bool = False,
    resume: bool = False,
    # backend enable flags
    use_csv: bool = True,
    use_jsonl: bool = True,
    use_tensorboard: bool = False,
    safe_writers: bool = False,
    # backend kwargs
    csv_kwargs: Optional[Dict[str, Any]] = None,
    jsonl_kwargs: Optional[Dict[str, Any]] = None,
    # logger behavior
    console_every: int = 1,
    flush_every: int = 200,
    drop_non_finite: bool = False,
    strict: bool = False,
) -> Logger:
    """
    Construct a :class:`Logger` and attach the selected writer backends.

    The logger is created first because it resolves ``run_dir``; writers are
    then opened inside that directory.

    Parameters
    ----------
    log_dir, exp_name, run_id, run_name, overwrite, resume
        Forwarded to :class:`Logger` (run directory resolution).
    use_csv : bool, default=True
        Attach :class:`CSVWriter` (wide + long layouts unless overridden).
    use_jsonl : bool, default=True
        Attach :class:`JSONLWriter`.
    use_tensorboard : bool, default=False
        Attach :class:`TensorBoardWriter`.
    safe_writers : bool, default=False
        Wrap every writer in :class:`SafeWriter` so backend failures never
        reach the caller, regardless of `strict`.
    csv_kwargs : dict, optional
        Extra keyword arguments for ``CSVWriter(run_dir, **csv_kwargs)``.
    jsonl_kwargs : dict, optional
        Extra keyword arguments for ``JSONLWriter(run_dir, **jsonl_kwargs)``.
    console_every, flush_every, drop_non_finite, strict
        Forwarded to :class:`Logger`.

    Returns
    -------
    Logger
        Configured logger with writers attached.
    """
    logger = Logger(
        log_dir=str(log_dir),
        exp_name=str(exp_name),
        run_id=run_id,
        run_name=run_name,
        overwrite=bool(overwrite),
        resume=bool(resume),
        writers=None,
        console_every=int(console_every),
        flush_every=int(flush_every),
        drop_non_finite=bool(drop_non_finite),
        strict=bool(strict),
    )

    writers: List[Writer] = []
    if use_csv:
        csv_defaults: Dict[str, Any] = {"wide": True, "long": True}
        csv_defaults.update(csv_kwargs or {})
        writers.append(CSVWriter(logger.run_dir, **csv_defaults))
    if use_jsonl:
        writers.append(JSONLWriter(logger.run_dir, **(jsonl_kwargs or {})))
    if use_tensorboard:
        writers.append(TensorBoardWriter(logger.run_dir))

    if safe_writers:
        writers = [SafeWriter(w) for w in writers]

    logger.add_writers(writers)
    return logger

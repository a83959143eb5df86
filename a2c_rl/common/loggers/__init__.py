"""
Loggers
====================

This package provides:
- Logger frontend (step inference, buffering, console printing)
- Writer backends (CSV, JSONL, TensorBoard)
- A builder that constructs a Logger with selected backends

Typical usage
-------------
from a2c_rl.common.loggers import build_logger

logger = build_logger(log_dir="./runs", exp_name="a2c", use_csv=True)
logger.log(algo.update(storage), step=1, prefix="train")
logger.close()
"""

from __future__ import annotations

# -----------------------------------------------------------------------------
# Core logger
# -----------------------------------------------------------------------------
from .logger import Logger

# -----------------------------------------------------------------------------
# Writer base + concrete writers
# -----------------------------------------------------------------------------
from .base_writer import SafeWriter, Writer
from .csv_writer import CSVWriter
from .jsonl_writer import JSONLWriter
from .tensorboard_writer import TensorBoardWriter

# -----------------------------------------------------------------------------
# Builder utility
# -----------------------------------------------------------------------------
from .logger_builder import build_logger

__all__ = [
    "Logger",
    "Writer",
    "SafeWriter",
    "CSVWriter",
    "JSONLWriter",
    "TensorBoardWriter",
    "build_logger",
]

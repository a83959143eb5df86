from __future__ import annotations

import csv
import os
from typing import Any, List, Mapping, Optional, TextIO, Tuple

from .base_writer import Writer
from ..utils.logger_utils import (
    META_KEYS,
    _extract_meta,
    _file_size,
    _open_append,
    _read_csv_header,
    _safe_call,
)


class CSVWriter(Writer):
    """
    CSV backend with two complementary, append-only layouts.

    1) Wide CSV (``metrics.csv``)
       One row per `write()`. The column set is frozen once: from the first
       row for a new file, or from the existing header when resuming. Keys
       outside the frozen schema are dropped; missing keys are left empty.

    2) Long CSV (``metrics_long.csv``)
       One row per metric: ``[step, wall_time, timestamp, key, value]``.
       Lossless when metric names change over time.

    Parameters
    ----------
    run_dir : str
        Directory where CSV files are created/appended.
    wide : bool, default=True
        Enable the wide layout.
    long : bool, default=True
        Enable the long layout.
    wide_filename : str, default="metrics.csv"
    long_filename : str, default="metrics_long.csv"
    """

    def __init__(
        self,
        run_dir: str,
        *,
        wide: bool = True,
        long: bool = True,
        wide_filename: str = "metrics.csv",
        long_filename: str = "metrics_long.csv",
    ) -> None:
        self.meta_keys: Tuple[str, ...] = META_KEYS
        self.wide_path = os.path.join(run_dir, wide_filename)
        self.long_path = os.path.join(run_dir, long_filename)

        self._wide_file: Optional[TextIO] = _open_append(self.wide_path, newline="") if wide else None
        self._wide_writer: Optional[csv.DictWriter] = None
        self._wide_fieldnames: List[str] = []

        self._long_file: Optional[TextIO] = _open_append(self.long_path, newline="") if long else None
        self._long_writer: Optional[Any] = None

    # ---------------------------------------------------------------------
    # Writer interface
    # ---------------------------------------------------------------------
    def write(self, row: Mapping[str, float]) -> None:
        if self._wide_file is not None:
            self._write_wide(row)
        if self._long_file is not None:
            self._write_long(row)

    def flush(self) -> None:
        _safe_call(self._wide_file, "flush")
        _safe_call(self._long_file, "flush")

    def close(self) -> None:
        try:
            self.flush()
        finally:
            _safe_call(self._wide_file, "close")
            _safe_call(self._long_file, "close")
            self._wide_file = None
            self._long_file = None
            self._wide_writer = None
            self._long_writer = None

    # ---------------------------------------------------------------------
    # Wide CSV
    # ---------------------------------------------------------------------
    def _write_wide(self, row: Mapping[str, float]) -> None:
        assert self._wide_file is not None
        if self._wide_writer is None:
            self._prepare_wide_schema(first_row=row)
        assert self._wide_writer is not None

        self._wide_writer.writerow({k: row.get(k, "") for k in self._wide_fieldnames})

    def _prepare_wide_schema(self, first_row: Mapping[str, float]) -> None:
        assert self._wide_file is not None

        # The append handle sits at EOF; the header is read with a separate handle.
        header = _read_csv_header(self.wide_path) if _file_size(self._wide_file) > 0 else None

        if header:
            self._wide_fieldnames = [h for h in header if h]
            self._wide_writer = csv.DictWriter(self._wide_file, fieldnames=self._wide_fieldnames)
            return

        self._wide_fieldnames = list(first_row.keys())
        self._wide_writer = csv.DictWriter(self._wide_file, fieldnames=self._wide_fieldnames)
        self._wide_writer.writeheader()

    # ---------------------------------------------------------------------
    # Long CSV
    # ---------------------------------------------------------------------
    def _write_long(self, row: Mapping[str, float]) -> None:
        assert self._long_file is not None
        if self._long_writer is None:
            self._long_writer = csv.writer(self._long_file)
            if _file_size(self._long_file) == 0:
                self._long_writer.writerow(["step", "wall_time", "timestamp", "key", "value"])

        step, wall_time, timestamp = _extract_meta(row, self.meta_keys)
        for k, v in row.items():
            if k in self.meta_keys:
                continue
            self._long_writer.writerow([step, wall_time, timestamp, str(k), str(v)])

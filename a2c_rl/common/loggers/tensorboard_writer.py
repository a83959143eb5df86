from __future__ import annotations

from typing import Mapping

from torch.utils.tensorboard import SummaryWriter

from .base_writer import Writer
from ..utils.logger_utils import _get_step, _split_meta


class TensorBoardWriter(Writer):
    """
    TensorBoard backend: every non-meta key becomes a scalar series.

    Parameters
    ----------
    run_dir : str
        Directory for the event files.

    Notes
    -----
    The global step is the row's "step" meta key, so TensorBoard, CSV and
    JSONL outputs share one x-axis.
    """

    def __init__(self, run_dir: str) -> None:
        self._tb = SummaryWriter(log_dir=run_dir)

    def write(self, row: Mapping[str, float]) -> None:
        step = _get_step(row)
        _, metrics = _split_meta(row)
        for k, v in metrics.items():
            self._tb.add_scalar(str(k), float(v), global_step=int(step))

    def flush(self) -> None:
        self._tb.flush()

    def close(self) -> None:
        self._tb.close()

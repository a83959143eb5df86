from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Mapping, Optional


class Writer(ABC):
    """
    Abstract sink for rows of scalar metrics.

    Contract
    --------
    - `write(row)` consumes one mapping of metric name -> float. Rows produced
      by `Logger.log` always carry the meta keys "step", "wall_time" and
      "timestamp".
    - `flush()` and `close()` are idempotent.
    - Implementations raise on failure; isolation is the job of `SafeWriter`
      or of the logger's `strict` policy.
    """

    @abstractmethod
    def write(self, row: Mapping[str, float]) -> None:
        raise NotImplementedError

    @abstractmethod
    def flush(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError


class SafeWriter(Writer):
    """
    Failure-isolating wrapper for a :class:`Writer`.

    Exceptions raised by the wrapped writer do not reach the training loop.
    They are counted and the last few messages are kept in `errors`.

    Parameters
    ----------
    inner : Writer
        Concrete writer to wrap.
    name : str, optional
        Identifier used in recorded error messages. Defaults to the class name.
    max_errors : int, default=20
        Number of most recent error messages retained.
    """

    def __init__(self, inner: Writer, *, name: Optional[str] = None, max_errors: int = 20) -> None:
        self._inner = inner
        self._name = name or inner.__class__.__name__
        self._max_errors = max(1, int(max_errors))
        self.failures = 0
        self.errors: List[str] = []

    def _record(self, op: str, err: Exception) -> None:
        self.failures += 1
        self.errors.append(f"[{self._name}] {op}: {type(err).__name__}: {err}")
        del self.errors[: -self._max_errors]

    def write(self, row: Mapping[str, float]) -> None:
        try:
            self._inner.write(row)
        except Exception as e:
            self._record("write", e)

    def flush(self) -> None:
        try:
            self._inner.flush()
        except Exception as e:
            self._record("flush", e)

    def close(self) -> None:
        try:
            self._inner.close()
        except Exception as e:
            self._record("close", e)

"""
BatchRunner — bounded-concurrency execution of independent work units.

Callers queue units (download one tarball, provision one server, run a
command on one host) and ``run()`` executes up to ``max_workers`` at a
time, refilling from the backlog as units finish. A unit's failure is
recorded in its result and never cancels the others.

    runner = BatchRunner(max_workers=4)
    for name in names:
        runner.add(name, download, name)
    report = runner.run()
    if not report.all_ok:
        ...
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class UnitResult:
    """Outcome of one unit."""

    key: str
    value: Any = None
    error: BaseException | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchReport:
    """Results of one drained backlog, keyed by unit."""

    results: dict[str, UnitResult] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results.values() if r.ok)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def all_ok(self) -> bool:
        return self.failed == 0

    @property
    def errors(self) -> dict[str, BaseException]:
        return {k: r.error for k, r in self.results.items() if r.error is not None}

    def value(self, key: str) -> Any:
        return self.results[key].value

    def raise_first(self, order: list[str] | None = None) -> None:
        """Re-raise the first failure (in ``order`` if given)."""
        for key in order or list(self.results):
            result = self.results.get(key)
            if result is not None and result.error is not None:
                raise result.error


@dataclass
class _Unit:
    key: str
    fn: Callable[..., Any]
    args: tuple
    kwargs: dict


class BatchRunner:
    """Fixed-width worker pool over a backlog of units."""

    def __init__(self, max_workers: int = 4) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self._backlog: list[_Unit] = []

    def __len__(self) -> int:
        return len(self._backlog)

    def add(self, key: str, fn: Callable[..., Any], *args, **kwargs) -> None:
        """Queue ``fn(*args, **kwargs)`` under ``key``."""
        if any(u.key == key for u in self._backlog):
            raise ValueError(f"duplicate batch key: {key}")
        self._backlog.append(_Unit(key, fn, args, kwargs))

    def run(self, on_done: Callable[[UnitResult], None] | None = None) -> BatchReport:
        """Drain the backlog; ``on_done`` fires as each unit completes.

        No ordering is guaranteed among units.
        """
        backlog, self._backlog = self._backlog, []
        report = BatchReport()
        if not backlog:
            return report

        def _exec(unit: _Unit) -> UnitResult:
            start = time.monotonic()
            try:
                value = unit.fn(*unit.args, **unit.kwargs)
            except Exception as e:
                logger.debug("Batch unit %s failed: %s", unit.key, e)
                return UnitResult(unit.key, error=e, duration_ms=_ms(start))
            return UnitResult(unit.key, value=value, duration_ms=_ms(start))

        workers = min(self.max_workers, len(backlog))
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(_exec, unit): unit.key for unit in backlog}
            for future in concurrent.futures.as_completed(futures):
                result = future.result()
                report.results[result.key] = result
                if on_done:
                    try:
                        on_done(result)
                    except Exception:
                        logger.exception("Batch callback failed for %s", result.key)

        logger.debug(
            "Batch finished: %d ok, %d failed", report.succeeded, report.failed,
        )
        return report


def _ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)

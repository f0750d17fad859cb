"""Per-tile outcome of an export or scaling run."""

import logging
import threading
from concurrent.futures import Executor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Union

import pandas as pd

from .addressing import TileAddress
from .errors import ConfigurationError, TileError

logger = logging.getLogger(__name__)

COLUMNS = ["s", "z", "r", "c", "path", "error"]


@dataclass
class TileFailure:
    address: TileAddress
    path: str
    error: str


@dataclass
class TileReport:
    """
    Written tile count and every failed tile, with full addressing.

    Safe to update from worker threads.
    """
    written: int = 0
    failures: List[TileFailure] = field(default_factory=list)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    @property
    def ok(self) -> bool:
        return not self.failures

    def add_written(self, count: int = 1) -> None:
        with self._lock:
            self.written += count

    def add_failure(self, address: TileAddress, path, error: BaseException) -> None:
        failure = TileFailure(TileAddress(*address), str(path), str(error))
        with self._lock:
            self.failures.append(failure)
        logger.error(
            f"Tile s={address.s} z={address.z} r={address.r} c={address.c} failed: {error}"
        )

    def merge(self, other: "TileReport") -> "TileReport":
        with self._lock:
            self.written += other.written
            self.failures.extend(other.failures)
        return self

    def to_frame(self) -> pd.DataFrame:
        rows = [
            {**f.address._asdict(), "path": f.path, "error": f.error}
            for f in self.failures
        ]
        return pd.DataFrame(rows, columns=COLUMNS)

    def write_csv(self, path: Union[str, Path]) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_frame().to_csv(path, index=False)
        logger.info(f"Wrote report with {len(self.failures)} failure(s) to {path}")


def read_failures(path: Union[str, Path]) -> List[TileAddress]:
    """Addresses listed in a report written by `TileReport.write_csv`."""
    df = pd.read_csv(path)
    missing = [c for c in ("s", "z", "r", "c") if c not in df.columns]
    if missing:
        raise ConfigurationError(f"Report '{path}' lacks column(s) {', '.join(missing)}")
    return [
        TileAddress(int(row.s), int(row.z), int(row.r), int(row.c))
        for row in df.itertuples(index=False)
    ]


def run_tiles(
    work: Callable[[TileAddress], object],
    addresses: Iterable[TileAddress],
    report: TileReport,
    executor: Optional[Executor] = None,
    fail_fast: bool = True,
    path_of: Optional[Callable[[TileAddress], object]] = None,
) -> TileReport:
    """
    Run `work` once per tile address and record each outcome in `report`.

    A `TileError` is recorded against the address being worked on, under
    `path_of(address)` when given and the error's own path otherwise. With
    `fail_fast` it is then re-raised and pending work is cancelled; otherwise
    the batch continues. Any other exception propagates immediately.
    """
    def record(address: TileAddress, error: TileError) -> None:
        path = path_of(address) if path_of is not None else error.path
        report.add_failure(address, path or "", error)
        if fail_fast:
            raise error

    if executor is None:
        for address in addresses:
            try:
                work(address)
            except TileError as e:
                record(address, e)
            else:
                report.add_written()
        return report

    futures = {executor.submit(work, address): address for address in addresses}
    try:
        for future in as_completed(futures):
            try:
                future.result()
            except TileError as e:
                record(futures[future], e)
            else:
                report.add_written()
    except BaseException:
        for future in futures:
            future.cancel()
        raise
    return report

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import psycopg2  # noqa: E402
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential  # noqa: E402

from t2.candidate import Candidate  # noqa: E402
from t2.utils import get_logger, redact_secrets  # noqa: E402

logger = get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

INSERT_SQL = "INSERT INTO t2_cands (mjds, snr, ibox, dm) VALUES (%s, %s, %s, %s)"


class SinkError(RuntimeError):
    """A sink failed to take a candidate."""


class Sink:
    """Destination for surviving candidates.

    ``accept`` is called once per survivor. ``on_batch`` receives the whole
    pre-filter gulp first (for diagnostics) and ``flush`` runs at the end of
    every pass.
    """

    name = "sink"

    def on_batch(self, batch: Sequence[Candidate]) -> None:
        pass

    def accept(self, cand: Candidate) -> None:
        raise NotImplementedError

    def flush(self) -> None:
        pass

    def close(self) -> None:
        pass


def dispatch(
    cands: Iterable[Candidate],
    sinks: Sequence[Sink],
    *,
    batch: Optional[Sequence[Candidate]] = None,
) -> int:
    """Hand every candidate to every sink; return the number of failures.

    A failing sink never blocks delivery of other candidates or to other sinks.
    """
    failures = 0
    if batch is not None:
        for sink in sinks:
            try:
                sink.on_batch(batch)
            except SinkError as e:
                failures += 1
                logger.error("sink.%s on_batch failed: %s", sink.name, e)

    for cand in cands:
        for sink in sinks:
            try:
                sink.accept(cand)
            except SinkError as e:
                failures += 1
                logger.error(
                    "sink.%s accept failed mjds=%.8f dm=%.2f snr=%.2f: %s",
                    sink.name,
                    cand.timestamp,
                    cand.dispersion_measure,
                    cand.significance,
                    e,
                )

    for sink in sinks:
        try:
            sink.flush()
        except SinkError as e:
            failures += 1
            logger.error("sink.%s flush failed: %s", sink.name, e)
    return failures


# ---------- PostgreSQL ----------

def _connect_timeout() -> int:
    return int(os.getenv("DB_CONNECT_TIMEOUT", "5"))


@retry(stop=stop_after_attempt(5), wait=wait_exponential(multiplier=1, min=1, max=10),
       retry=retry_if_exception_type(psycopg2.OperationalError), reraise=True)
def connect_db(url: str):
    return psycopg2.connect(url, connect_timeout=_connect_timeout())


class PostgresSink(Sink):
    """Writes survivors into ``t2_cands``, one committed row per candidate."""

    name = "database"

    def __init__(self, url: str, *, connect: Callable[[str], Any] = connect_db):
        self.url = url
        self._connect = connect
        self._conn = None

    def _connection(self):
        if self._conn is None or getattr(self._conn, "closed", 0):
            logger.info("database connect url=%s", redact_secrets(self.url))
            try:
                self._conn = self._connect(self.url)
            except psycopg2.Error as e:
                raise SinkError(f"connect failed: {e}") from e
        return self._conn

    def migrate(self) -> List[str]:
        """Apply the bundled SQL migrations in name order."""
        conn = self._connection()
        applied = []
        for path in sorted(MIGRATIONS_DIR.glob("*.sql")):
            sql = path.read_text(encoding="utf-8")
            try:
                with conn.cursor() as cur:
                    cur.execute(sql)
                conn.commit()
            except psycopg2.Error as e:
                conn.rollback()
                raise SinkError(f"migration {path.name} failed: {e}") from e
            applied.append(path.name)
        logger.info("database migrations applied=%s", applied)
        return applied

    def accept(self, cand: Candidate) -> None:
        conn = self._connection()
        row = cand.to_row()
        try:
            with conn.cursor() as cur:
                cur.execute(INSERT_SQL, (row["mjds"], row["snr"], row["ibox"], row["dm"]))
            conn.commit()
        except psycopg2.Error as e:
            try:
                conn.rollback()
            except psycopg2.Error:
                # connection is gone; reconnect on the next call
                self._conn = None
            raise SinkError(f"insert failed: {e}") from e

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


# ---------- Plotting ----------

class PlotSink(Sink):
    """DM vs MJD scatter per gulp, survivors coloured by SNR."""

    name = "plot"

    def __init__(self, out_dir: str, *, plot_batch: bool = True):
        self.out_dir = Path(out_dir)
        self.plot_batch = plot_batch
        self._seq = 0
        self._batch: List[Candidate] = []
        self._kept: List[Candidate] = []

    def on_batch(self, batch: Sequence[Candidate]) -> None:
        if self.plot_batch:
            self._batch = list(batch)

    def accept(self, cand: Candidate) -> None:
        self._kept.append(cand)

    def flush(self) -> None:
        batch, kept = self._batch, self._kept
        self._batch, self._kept = [], []
        if not batch and not kept:
            return
        self._seq += 1
        out_path = self.out_dir / f"gulp_{self._seq:06d}.png"
        try:
            self.out_dir.mkdir(parents=True, exist_ok=True)
            self._render(batch, kept, out_path)
        except (OSError, ValueError, RuntimeError) as e:
            raise SinkError(f"plot {out_path} failed: {e}") from e
        logger.info("plot written: %s batch=%d kept=%d", out_path, len(batch), len(kept))

    @staticmethod
    def _render(batch: Sequence[Candidate], kept: Sequence[Candidate], out_path: Path) -> None:
        fig, ax = plt.subplots(figsize=(10, 6))
        try:
            if batch:
                ax.scatter(
                    [c.timestamp for c in batch],
                    [c.dispersion_measure for c in batch],
                    s=6,
                    c="lightgrey",
                    label=f"gulp ({len(batch)})",
                )
            if kept:
                sc = ax.scatter(
                    [c.timestamp for c in kept],
                    [c.dispersion_measure for c in kept],
                    s=60,
                    marker="*",
                    c=[c.significance for c in kept],
                    cmap="viridis",
                    label=f"kept ({len(kept)})",
                )
                fig.colorbar(sc, ax=ax, label="SNR")
            ax.set_xlabel("MJD")
            ax.set_ylabel(r"DM (pc cm$^{-3}$)")
            ax.ticklabel_format(axis="x", useOffset=False)
            ax.legend(loc="upper right")
            fig.savefig(out_path, dpi=120, bbox_inches="tight", facecolor="white", edgecolor="none")
        finally:
            plt.close(fig)


# ---------- Log ----------

class LogSink(Sink):
    name = "log"

    def accept(self, cand: Candidate) -> None:
        logger.info("candidate %s", json.dumps(cand.to_row()))

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from t2.candidate import Candidate, ParseError, is_sentinel, parse_candidate
from t2.config import PipelineConfig, load_config
from t2.receiver import UdpReceiver
from t2.sinks import LogSink, PlotSink, PostgresSink, Sink, dispatch
from t2.stages.accumulator import BatchAccumulator
from t2.stages.clustering import NOISE, ClusteringError, cluster
from t2.stages.features import candidate_features
from t2.stages.filtering import filter_candidates
from t2.stages.select import select_representatives
from t2.utils import get_logger

logger = get_logger(__name__)


class PipelineState(str, Enum):
    ACCRUING = "accruing"
    PROCESSING = "processing"


class PipelineBusyError(RuntimeError):
    """A record was fed while a gulp was being processed."""


@dataclass
class PassResult:
    batch_size: int
    n_clusters: int = 0
    n_noise: int = 0
    representatives: List[Candidate] = field(default_factory=list)
    survivors: List[Candidate] = field(default_factory=list)
    sink_failures: int = 0
    took_ms: int = 0
    error: Optional[str] = None


class Pipeline:
    """One sequential T2 worker: accrue a gulp, then cluster/filter/dispatch it."""

    def __init__(self, config: PipelineConfig, sinks: Sequence[Sink] = ()):
        self.config = config
        self.sinks = list(sinks)
        self.accumulator = BatchAccumulator(config.gulp_policy, config.gulp_size)
        self.state = PipelineState.ACCRUING
        self.skipped_records = 0

    def feed(self, record: Union[str, bytes]) -> Optional[PassResult]:
        """Take one raw record; returns the pass result when it closed a gulp."""
        if self.state is not PipelineState.ACCRUING:
            raise PipelineBusyError("gulp in progress; record must be buffered upstream")

        if is_sentinel(record):
            self.accumulator.close()
        else:
            try:
                cand = parse_candidate(record)
            except ParseError as e:
                self.skipped_records += 1
                logger.warning("skipping malformed record %r: %s", e.record, e)
                return None
            self.accumulator.add(cand)

        if self.accumulator.is_closed():
            return self.process(self.accumulator.drain())
        return None

    def process(self, batch: List[Candidate]) -> PassResult:
        """Run one clustering-and-filtering pass over a drained gulp."""
        self.state = PipelineState.PROCESSING
        try:
            return self._process(batch)
        finally:
            self.state = PipelineState.ACCRUING

    def _process(self, batch: List[Candidate]) -> PassResult:
        cfg = self.config
        t0 = time.monotonic()
        logger.info("Clustering gulp of size - %d", len(batch))
        result = PassResult(batch_size=len(batch))
        if not batch:
            return self._finish(result, t0)

        try:
            labels = cluster(
                candidate_features(batch, mode=cfg.features),
                min_pts=cfg.min_pts,
                eps=cfg.eps,
            )
        except ClusteringError as e:
            logger.error("gulp.cluster failed size=%d: %s", len(batch), e)
            result.error = str(e)
            return self._finish(result, t0)

        result.n_clusters = len({x for x in labels.tolist() if x != NOISE})
        result.n_noise = int((labels == NOISE).sum())
        result.representatives = select_representatives(batch, labels)
        result.survivors = filter_candidates(
            result.representatives,
            min_snr=cfg.min_snr,
            min_dm=cfg.min_dm,
            max_dm=cfg.max_dm,
        )

        logger.info("Writing %d candidates to sinks", len(result.survivors))
        result.sink_failures = dispatch(result.survivors, self.sinks, batch=batch)
        return self._finish(result, t0)

    @staticmethod
    def _finish(result: PassResult, t0: float) -> PassResult:
        result.took_ms = int((time.monotonic() - t0) * 1000)
        logger.info(
            "gulp done size=%d clusters=%d noise=%d kept=%d sink_failures=%d took_ms=%d",
            result.batch_size,
            result.n_clusters,
            result.n_noise,
            len(result.survivors),
            result.sink_failures,
            result.took_ms,
        )
        return result

    def run(self, records: Iterable[Union[str, bytes]]) -> int:
        """Feed every record; returns the number of completed passes."""
        passes = 0
        for record in records:
            if self.feed(record) is not None:
                passes += 1
        return passes

    def close(self) -> None:
        pending = len(self.accumulator)
        if pending:
            logger.info("discarding open gulp size=%d", pending)
        self.accumulator.drain()
        for sink in self.sinks:
            sink.close()


def build_sinks(cfg: Dict[str, Any]) -> List[Sink]:
    sinks_cfg = cfg.get("sinks", {})
    sinks: List[Sink] = []

    db_cfg = sinks_cfg.get("database") or {}
    if db_cfg.get("url"):
        db = PostgresSink(db_cfg["url"])
        if db_cfg.get("migrate", True):
            db.migrate()
        sinks.append(db)

    plot_cfg = sinks_cfg.get("plot") or {}
    if plot_cfg.get("dir"):
        sinks.append(PlotSink(plot_cfg["dir"], plot_batch=bool(plot_cfg.get("batch", True))))

    if (sinks_cfg.get("log") or {}).get("enabled"):
        sinks.append(LogSink())

    if not sinks:
        logger.warning("no sinks configured; survivors will only be counted")
    return sinks


def run(config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> None:
    """Load config, then serve the UDP feed until interrupted."""
    run_id = uuid.uuid4().hex[:8]
    logger.info("=== run start id=%s ===", run_id)

    try:
        cfg = load_config(config_path, overrides)
        pcfg = PipelineConfig.from_dict(cfg)
        logger.info(
            "config loaded min_dm=%.1f max_dm=%.1f min_snr=%.1f gulp=%s/%d min_pts=%d eps=%.2f features=%s",
            pcfg.min_dm,
            pcfg.max_dm,
            pcfg.min_snr,
            pcfg.gulp_policy,
            pcfg.gulp_size,
            pcfg.min_pts,
            pcfg.eps,
            pcfg.features,
        )
        pipeline = Pipeline(pcfg, build_sinks(cfg))
        rx = cfg["receiver"]
        try:
            with UdpReceiver(rx["host"], rx["port"], rx.get("bufsize", 512)) as receiver:
                pipeline.run(receiver)
        except KeyboardInterrupt:
            logger.info("interrupted")
        finally:
            pipeline.close()
    except Exception as e:
        logger.error("Pipeline execution failed: %s", e)
        raise
    finally:
        logger.info("=== run end id=%s ===", run_id)

"""One sampling pass: bridge snapshot -> stored round -> charts."""

import logging

from thrud.config import ThrudConfig
from thrud.core.models import CollectionRound, Sample, now_ms
from thrud.core.ports import ChartStoragePort, CounterBridgePort, SampleStoragePort
from thrud.core.samples import cpu_tick_samples, gpu_samples
from thrud.core.service import generate_charts

logger = logging.getLogger(__name__)


def collect_samples(bridge: CounterBridgePort, timestamp: int) -> list[Sample]:
    """Gather CPU and GPU samples from the bridge.

    A failing side is logged and skipped so the other one is still stored.
    """
    samples: list[Sample] = []

    try:
        gpus = bridge.collect_gpu()
    except Exception:
        logger.warning("GPU collection failed", exc_info=True)
    else:
        samples.extend(gpu_samples(gpus, timestamp))

    try:
        cpu = bridge.collect_cpu()
    except Exception:
        logger.warning("CPU collection failed", exc_info=True)
    else:
        if cpu is not None:
            samples.extend(cpu_tick_samples(cpu, timestamp))

    return samples


async def collect_round(
    bridge: CounterBridgePort,
    sample_storage: SampleStoragePort,
    chart_storage: ChartStoragePort,
    config: ThrudConfig,
    now: int | None = None,
) -> CollectionRound | None:
    """Run one collection pass.

    Stores the collected samples as a single atomic round, applies the
    sample retention policy, then regenerates the utilization charts.
    Storage errors propagate to the caller.

    Returns:
        The stored round, or None when the bridge produced no samples.
    """
    timestamp = now_ms() if now is None else now
    samples = collect_samples(bridge, timestamp)
    if not samples:
        logger.info("No samples collected")
        return None

    round_ = await sample_storage.store_round(samples)
    logger.info("Stored %d samples (round %s)", round_.sample_count, round_.id[:8])

    if config.sample_retention is not None:
        deleted = await sample_storage.delete_before(
            config.sample_retention.cutoff(timestamp)
        )
        if deleted:
            logger.info("Deleted %d expired samples", deleted)

    await generate_charts(
        sample_storage,
        chart_storage,
        round_.id,
        points=config.chart_points,
        metric_names=config.chart_metrics,
    )
    return round_

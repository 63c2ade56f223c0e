"""Sample builders turning counter-bridge snapshots into Sample objects."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from thrud.core.models import CoreTag, CoreType, Sample, now_ms

CPU_USER_TICKS = "cpu_user_ticks"
CPU_SYSTEM_TICKS = "cpu_system_ticks"
CPU_NICE_TICKS = "cpu_nice_ticks"
CPU_IDLE_TICKS = "cpu_idle_ticks"
CPU_CORE_COUNT = "cpu_core_count"
GPU_UTILIZATION = "gpu_utilization"
GPU_TEMPERATURE = "gpu_temperature"

ACTIVE_TICK_METRICS = (CPU_USER_TICKS, CPU_SYSTEM_TICKS, CPU_NICE_TICKS)
IDLE_TICK_METRICS = (CPU_IDLE_TICKS,)
CPU_TICK_METRICS = ACTIVE_TICK_METRICS + IDLE_TICK_METRICS


@dataclass(frozen=True)
class CoreInfo:
    """Identity and classification of one core as reported by the bridge."""

    id: int
    core_type: CoreType
    cluster_id: int


@dataclass(frozen=True)
class CoreTicks:
    """Cumulative tick counters of one core."""

    core_id: int
    user: int
    system: int
    nice: int
    idle: int


@dataclass(frozen=True)
class CpuSnapshot:
    """Point-in-time CPU counter snapshot."""

    total_cores: int
    cores: list[CoreInfo] = field(default_factory=list)
    ticks: list[CoreTicks] = field(default_factory=list)


@dataclass(frozen=True)
class GpuSnapshot:
    """Point-in-time GPU reading.

    Attributes:
        name: Device name.
        utilization: Busy fraction in [0, 1], None when unavailable.
        temperature: Degrees Celsius, None when unavailable.
    """

    name: str
    utilization: float | None = None
    temperature: float | None = None


def core_tag(core_id: int, cores: Iterable[CoreInfo]) -> CoreTag:
    """Return the tag for core_id, UNKNOWN when the bridge did not describe it."""
    for info in cores:
        if info.id == core_id:
            return CoreTag(
                core_id=core_id,
                core_type=info.core_type,
                cluster_id=info.cluster_id if info.cluster_id >= 0 else None,
            )
    return CoreTag(core_id=core_id)


def cpu_tick_samples(
    snapshot: CpuSnapshot,
    timestamp: int | None = None,
) -> list[Sample]:
    """Create tick counter samples for every core in a CPU snapshot.

    Args:
        snapshot: Snapshot produced by the counter bridge.
        timestamp: Epoch milliseconds (default: now).

    Returns:
        Four tick samples per core followed by one cpu_core_count sample.
    """
    ts = now_ms() if timestamp is None else timestamp
    samples: list[Sample] = []

    for ticks in snapshot.ticks:
        metadata = core_tag(ticks.core_id, snapshot.cores).to_metadata()
        for name, value in (
            (CPU_USER_TICKS, ticks.user),
            (CPU_SYSTEM_TICKS, ticks.system),
            (CPU_NICE_TICKS, ticks.nice),
            (CPU_IDLE_TICKS, ticks.idle),
        ):
            samples.append(
                Sample(name=name, value=value, timestamp=ts, metadata=dict(metadata))
            )

    efficiency = sum(1 for c in snapshot.cores if c.core_type is CoreType.EFFICIENCY)
    performance = sum(1 for c in snapshot.cores if c.core_type is CoreType.PERFORMANCE)
    samples.append(
        Sample(
            name=CPU_CORE_COUNT,
            value=snapshot.total_cores,
            timestamp=ts,
            metadata={
                "total_cores": str(snapshot.total_cores),
                "efficiency_cores": str(efficiency),
                "performance_cores": str(performance),
            },
        )
    )
    return samples


def gpu_samples(
    snapshots: Iterable[GpuSnapshot],
    timestamp: int | None = None,
) -> list[Sample]:
    """Create utilization and temperature samples for each GPU.

    Readings the bridge could not provide are omitted.
    """
    ts = now_ms() if timestamp is None else timestamp
    samples: list[Sample] = []
    for index, gpu in enumerate(snapshots):
        metadata = {"gpu_name": gpu.name, "gpu_index": str(index)}
        if gpu.utilization is not None:
            samples.append(
                Sample(
                    name=GPU_UTILIZATION,
                    value=float(gpu.utilization),
                    timestamp=ts,
                    metadata=dict(metadata),
                )
            )
        if gpu.temperature is not None:
            samples.append(
                Sample(
                    name=GPU_TEMPERATURE,
                    value=float(gpu.temperature),
                    timestamp=ts,
                    metadata=dict(metadata),
                )
            )
    return samples

"""timing package - monotonic clock, ISI sampling, latency correction and scheduling."""

from timing.latency import (
    apply_latency_correction,
    compute_raw_rt,
    device_latency_offset,
    monotonic_ms,
    sample_isi,
)
from timing.scheduler import AsyncioScheduler, ScheduledCall, Scheduler, VirtualScheduler

__all__ = [
    "apply_latency_correction",
    "compute_raw_rt",
    "device_latency_offset",
    "monotonic_ms",
    "sample_isi",
    "AsyncioScheduler",
    "ScheduledCall",
    "Scheduler",
    "VirtualScheduler",
]

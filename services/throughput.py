# User value: This file estimates live speed and time remaining so operators know how long a run will take.
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ThroughputSample:
    timestamp_ms: float
    processed_records: int


@dataclass(frozen=True)
class ThroughputUpdate:
    speed_per_minute: float
    sample: Optional[ThroughputSample]


# User value: recomputes speed only when progress advanced, so the displayed rate never flickers to zero.
def update_throughput(
    previous_sample: Optional[ThroughputSample],
    current_processed: int,
    now_ms: float,
    previous_speed: float = 0.0,
) -> ThroughputUpdate:
    current = int(current_processed or 0)

    if previous_sample is None:
        # No baseline yet: this snapshot becomes the baseline, speed stays undecided.
        return ThroughputUpdate(previous_speed, ThroughputSample(now_ms, current))

    if current <= previous_sample.processed_records:
        return ThroughputUpdate(previous_speed, previous_sample)

    elapsed_min = (now_ms - previous_sample.timestamp_ms) / 1000.0 / 60.0
    if elapsed_min <= 0:
        # Same-instant advance; keep the old baseline so the next tick measures a real window.
        return ThroughputUpdate(previous_speed, previous_sample)

    speed = (current - previous_sample.processed_records) / elapsed_min
    return ThroughputUpdate(speed, ThroughputSample(now_ms, current))


# User value: converts speed into minutes remaining; None until a real speed exists.
def estimate_eta_minutes(total_records: int, processed_records: int, speed_per_minute: float) -> Optional[float]:
    if not speed_per_minute or speed_per_minute <= 0:
        return None
    remaining = max(0, int(total_records or 0) - int(processed_records or 0))
    return remaining / speed_per_minute


class ThroughputEstimator:
    """Holds the last advancing sample and the speed derived from it for one job."""

    def __init__(self):
        self.sample: Optional[ThroughputSample] = None
        self.speed_per_minute: float = 0.0

    def reset(self, sample: Optional[ThroughputSample] = None) -> None:
        self.sample = sample
        self.speed_per_minute = 0.0

    def observe(self, processed_records: int, now_ms: float) -> float:
        out = update_throughput(self.sample, processed_records, now_ms, self.speed_per_minute)
        self.sample = out.sample
        self.speed_per_minute = out.speed_per_minute
        return self.speed_per_minute

    def eta_minutes(self, total_records: int, processed_records: int) -> Optional[float]:
        return estimate_eta_minutes(total_records, processed_records, self.speed_per_minute)

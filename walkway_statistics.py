"""
Travel-time statistics
Collects arrival and discard events and aggregates them with pandas
"""

from collections import Counter
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class ArrivalEvent:
    """A walker reached its target zone"""
    walker_id: int
    flow: str
    direction: str
    etiquette: str
    spawn_time: float
    arrival_time: float
    travel_time: float
    timed_travel_time: Optional[float] = None


@dataclass(frozen=True)
class DiscardEvent:
    """A walker was removed without producing a travel-time sample"""
    walker_id: int
    time: float
    reason: str
    flow: str = ''


# ==================== COLLECTOR CLASS ====================
class TravelTimeCollector:
    """Accumulates events emitted by the simulation"""

    def __init__(self):
        self.arrivals: List[ArrivalEvent] = []
        self.discards: List[DiscardEvent] = []

    def record_arrival(self, event: ArrivalEvent):
        self.arrivals.append(event)

    def record_discard(self, event: DiscardEvent):
        self.discards.append(event)

    def reset(self):
        self.arrivals.clear()
        self.discards.clear()

    @property
    def arrival_count(self) -> int:
        return len(self.arrivals)

    @property
    def discard_count(self) -> int:
        return len(self.discards)

    def _trimmed_arrivals(self, trim: int = 0) -> List[ArrivalEvent]:
        """
        Arrivals ordered by spawn time with ``trim`` walkers removed at each
        end, so warm-up and run-out effects do not bias the averages.
        """
        ordered = sorted(self.arrivals, key=lambda e: (e.spawn_time, e.walker_id))
        if trim <= 0:
            return ordered
        if 2 * trim >= len(ordered):
            return []
        return ordered[trim:len(ordered) - trim]

    def travel_times(self, trim: int = 0, timed: bool = False) -> np.ndarray:
        """
        Travel-time samples.

        Args:
            trim: Number of arrivals dropped at each temporal extreme
            timed: Use the time between timing lines instead of spawn-to-arrival

        Returns:
            1-D array of samples (possibly empty)
        """
        events = self._trimmed_arrivals(trim)
        if timed:
            values = [e.timed_travel_time for e in events if e.timed_travel_time is not None]
        else:
            values = [e.travel_time for e in events]
        return np.array(values, dtype=float)

    def summary(self, trim: int = 0, timed: bool = False) -> Dict:
        """Overall travel-time summary; statistics are None when nothing arrived"""
        times = self.travel_times(trim, timed)
        count = len(times)
        if count == 0:
            return {'count': 0, 'total': 0.0, 'mean': None, 'std': None,
                    'variance': None, 'min': None, 'max': None}
        variance = float(np.var(times))
        return {
            'count': count,
            'total': float(np.sum(times)),
            'mean': float(np.mean(times)),
            'std': float(np.sqrt(variance)),
            'variance': variance,
            'min': float(np.min(times)),
            'max': float(np.max(times)),
        }

    def to_frame(self) -> pd.DataFrame:
        """One row per arrival event"""
        columns = list(ArrivalEvent.__dataclass_fields__)
        if not self.arrivals:
            return pd.DataFrame(columns=columns)
        return pd.DataFrame([asdict(e) for e in self.arrivals], columns=columns)

    def summary_frame(self, by: Sequence[str] = ('direction',), trim: int = 0) -> pd.DataFrame:
        """
        Mean and variance of travel time grouped by the given event fields,
        e.g. ``('direction',)``, ``('etiquette',)`` or ``('flow', 'etiquette')``.
        """
        events = self._trimmed_arrivals(trim)
        by = list(by)
        if not events:
            return pd.DataFrame(columns=by + ['count', 'mean', 'variance', 'std'])

        frame = pd.DataFrame([asdict(e) for e in events])
        grouped = frame.groupby(by)['travel_time'].agg(
            count='count',
            mean='mean',
            variance=lambda s: float(np.var(s)),
            std=lambda s: float(np.std(s)),
        )
        return grouped.reset_index()

    def throughput(self, duration: float) -> float:
        """Arrivals per second over ``duration`` seconds"""
        if duration <= 0:
            return 0.0
        return len(self.arrivals) / duration

    def discard_reasons(self) -> Dict[str, int]:
        return dict(Counter(e.reason for e in self.discards))

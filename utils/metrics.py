import logging
import threading
from collections import defaultdict
from typing import Any, Dict, List, Tuple

logger = logging.getLogger("extractor.metrics")

_LOCK = threading.Lock()
_COUNTERS: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], float] = defaultdict(float)
# Running aggregate per key: [count, total_ms, max_ms].
_OBSERVATIONS: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], List[float]] = {}


def _key(name: str, labels: Dict[str, Any]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
    return name, tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def incr(name: str, amount: float = 1, **labels: Any) -> None:
    with _LOCK:
        _COUNTERS[_key(name, labels)] += amount


def observe_ms(name: str, value_ms: float, **labels: Any) -> None:
    value = float(value_ms)
    with _LOCK:
        agg = _OBSERVATIONS.get(_key(name, labels))
        if agg is None:
            _OBSERVATIONS[_key(name, labels)] = [1, value, value]
            return
        agg[0] += 1
        agg[1] += value
        agg[2] = max(agg[2], value)


def counter_value(name: str, **labels: Any) -> float:
    with _LOCK:
        return _COUNTERS.get(_key(name, labels), 0.0)


def snapshot() -> dict:
    with _LOCK:
        counters = [
            {"name": name, "labels": dict(labels), "value": value}
            for (name, labels), value in _COUNTERS.items()
        ]
        observations = [
            {
                "name": name,
                "labels": dict(labels),
                "count": int(count),
                "max_ms": max_ms,
                "avg_ms": (total / count) if count else 0.0,
            }
            for (name, labels), (count, total, max_ms) in _OBSERVATIONS.items()
        ]
    return {"counters": counters, "observations": observations}


def reset() -> None:
    with _LOCK:
        _COUNTERS.clear()
        _OBSERVATIONS.clear()

"""In-memory counters and distributions keyed by label values."""

from __future__ import annotations

from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from time import perf_counter
from typing import Callable, Iterable, Iterator, Mapping

LabelValues = tuple[str, ...]


class Metric:
    """Common label handling shared by the concrete metric types."""

    kind = "untyped"

    def __init__(self, name: str, *, description: str = "", label_names: Iterable[str] | None = None) -> None:
        self.name = name
        self.description = description
        self.label_names: LabelValues = tuple(label_names or ())
        self._lock = Lock()

    def _key(self, labels: Mapping[str, str] | None) -> LabelValues:
        labels = labels or {}
        unexpected = set(labels) - set(self.label_names)
        if unexpected:
            raise ValueError(f"Metric '{self.name}' got unexpected labels {sorted(unexpected)}")
        missing = [label for label in self.label_names if label not in labels]
        if missing:
            raise ValueError(f"Metric '{self.name}' is missing labels {missing}")
        return tuple(str(labels[label]) for label in self.label_names)

    def snapshot(self) -> dict[LabelValues, dict[str, float]]:
        raise NotImplementedError


class CounterMetric(Metric):
    kind = "counter"

    def __init__(self, name: str, *, description: str = "", label_names: Iterable[str] | None = None) -> None:
        super().__init__(name, description=description, label_names=label_names)
        self._values: dict[LabelValues, float] = defaultdict(float)

    def inc(self, amount: float = 1.0, *, labels: Mapping[str, str] | None = None) -> None:
        if amount < 0:
            raise ValueError("Counters can only increase")
        key = self._key(labels)
        with self._lock:
            self._values[key] += amount

    def value(self, *, labels: Mapping[str, str] | None = None) -> float:
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def snapshot(self) -> dict[LabelValues, dict[str, float]]:
        with self._lock:
            return {key: {"value": value} for key, value in self._values.items()}


@dataclass
class _Summary:
    count: int = 0
    total: float = 0.0

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value


class DistributionMetric(Metric):
    kind = "summary"

    def __init__(self, name: str, *, description: str = "", label_names: Iterable[str] | None = None) -> None:
        super().__init__(name, description=description, label_names=label_names)
        self._values: dict[LabelValues, _Summary] = defaultdict(_Summary)

    def observe(self, value: float, *, labels: Mapping[str, str] | None = None) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key].add(value)

    @contextmanager
    def time(self, *, labels: Mapping[str, str] | None = None) -> Iterator[None]:
        start = perf_counter()
        try:
            yield
        finally:
            self.observe(perf_counter() - start, labels=labels)

    def snapshot(self) -> dict[LabelValues, dict[str, float]]:
        with self._lock:
            return {key: {"count": float(item.count), "sum": item.total} for key, item in self._values.items()}


class MetricsRegistry:
    """Registry holding metric instances by name."""

    def __init__(self) -> None:
        self._metrics: dict[str, Metric] = {}
        self._lock = Lock()

    def _get_or_create(self, name: str, kind: type[Metric], factory: Callable[[], Metric]) -> Metric:
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = self._metrics[name] = factory()
        if not isinstance(metric, kind):
            raise TypeError(f"Metric '{name}' already exists with a different type")
        return metric

    def counter(self, name: str, *, description: str = "", label_names: Iterable[str] | None = None) -> CounterMetric:
        metric = self._get_or_create(
            name,
            CounterMetric,
            lambda: CounterMetric(name, description=description, label_names=label_names),
        )
        return metric  # type: ignore[return-value]

    def distribution(
        self, name: str, *, description: str = "", label_names: Iterable[str] | None = None
    ) -> DistributionMetric:
        metric = self._get_or_create(
            name,
            DistributionMetric,
            lambda: DistributionMetric(name, description=description, label_names=label_names),
        )
        return metric  # type: ignore[return-value]

    def metrics(self) -> tuple[Metric, ...]:
        with self._lock:
            return tuple(self._metrics.values())

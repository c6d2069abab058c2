"""Render the metrics registry in Prometheus text exposition format."""
from __future__ import annotations

import logging

from .registry import MetricsRegistry

logger = logging.getLogger(__name__)


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _format_labels(names: tuple[str, ...], values: tuple[str, ...]) -> str:
    if not values:
        return ""
    pairs = ",".join(f'{name}="{_escape_label_value(value)}"' for name, value in zip(names, values))
    return "{" + pairs + "}"


def render_prometheus(registry: MetricsRegistry) -> str:
    lines: list[str] = []
    for metric in registry.metrics():
        lines.append(f"# HELP {metric.name} {metric.description}")
        lines.append(f"# TYPE {metric.name} {metric.kind}")
        for label_values, values in sorted(metric.snapshot().items()):
            label_text = _format_labels(metric.label_names, label_values)
            if "value" in values:
                lines.append(f"{metric.name}{label_text} {values['value']}")
            else:
                lines.append(f"{metric.name}_count{label_text} {values['count']}")
                lines.append(f"{metric.name}_sum{label_text} {values['sum']}")
    payload = "\n".join(lines) + "\n"
    logger.debug("Rendered %d metrics", len(registry.metrics()))
    return payload

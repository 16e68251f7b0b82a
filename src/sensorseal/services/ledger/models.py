"""Dataclasses capturing the account schema of the ledger."""
from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Iterable, Mapping

__all__ = [
    "AggregateStats",
    "DeviceRecord",
    "WindowAggregateRecord",
    "MetricSummary",
    "WindowSummary",
]

_METRICS = ("temp", "humidity", "pressure")


@dataclass(frozen=True, slots=True)
class AggregateStats:
    """Nine f32 statistics of one window.  Opaque to the ledger."""

    temp_min: float = 0.0
    temp_max: float = 0.0
    temp_avg: float = 0.0
    humidity_min: float = 0.0
    humidity_max: float = 0.0
    humidity_avg: float = 0.0
    pressure_min: float = 0.0
    pressure_max: float = 0.0
    pressure_avg: float = 0.0

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AggregateStats":
        return cls(**{name: float(data.get(name, 0.0)) for name in cls.field_names()})

    def as_tuple(self) -> tuple[float, ...]:
        return tuple(getattr(self, name) for name in self.field_names())

    def as_dict(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in self.field_names()}


@dataclass(slots=True)
class DeviceRecord:
    address: bytes
    authority: bytes
    device_pubkey: bytes
    calibration_hash: bytes
    is_active: bool
    created_at: int

    def as_dict(self) -> dict[str, object]:
        return {
            "address": self.address.hex(),
            "authority": self.authority.hex(),
            "device_pubkey": self.device_pubkey.hex(),
            "calibration_hash": self.calibration_hash.hex(),
            "is_active": self.is_active,
            "created_at": self.created_at,
        }


@dataclass(frozen=True, slots=True)
class WindowAggregateRecord:
    address: bytes
    device: bytes
    window_start: int
    stats: AggregateStats
    sample_count: int
    merkle_root: bytes
    offchain_uri: str
    submitted_at: int
    bump: int

    def as_dict(self) -> dict[str, object]:
        return {
            "address": self.address.hex(),
            "device": self.device.hex(),
            "window_start": self.window_start,
            "stats": self.stats.as_dict(),
            "sample_count": self.sample_count,
            "merkle_root": self.merkle_root.hex(),
            "offchain_uri": self.offchain_uri,
            "submitted_at": self.submitted_at,
            "bump": self.bump,
        }


@dataclass(slots=True)
class MetricSummary:
    min: float | None = None
    max: float | None = None
    avg: float | None = None

    def as_dict(self) -> dict[str, float | None]:
        return {"min": self.min, "max": self.max, "avg": self.avg}


@dataclass(slots=True)
class WindowSummary:
    """Roll-up of stored windows: extremes plus sample-weighted averages.

    Windows with ``sample_count == 0`` still contribute their min/max but are
    excluded from the weighted average.
    """

    device: bytes
    windows: int
    total_samples: int
    first_window_start: int | None
    last_window_start: int | None
    metrics: dict[str, MetricSummary]

    @classmethod
    def from_aggregates(cls, device: bytes, aggregates: Iterable[WindowAggregateRecord]) -> "WindowSummary":
        items = sorted(aggregates, key=lambda item: item.window_start)
        metrics: dict[str, MetricSummary] = {}
        for metric in _METRICS:
            summary = MetricSummary()
            weighted = 0.0
            weight = 0
            for item in items:
                low = getattr(item.stats, f"{metric}_min")
                high = getattr(item.stats, f"{metric}_max")
                summary.min = low if summary.min is None else min(summary.min, low)
                summary.max = high if summary.max is None else max(summary.max, high)
                if item.sample_count > 0:
                    weighted += getattr(item.stats, f"{metric}_avg") * item.sample_count
                    weight += item.sample_count
            summary.avg = weighted / weight if weight else None
            metrics[metric] = summary
        return cls(
            device=device,
            windows=len(items),
            total_samples=sum(item.sample_count for item in items),
            first_window_start=items[0].window_start if items else None,
            last_window_start=items[-1].window_start if items else None,
            metrics=metrics,
        )

    def as_dict(self) -> dict[str, object]:
        return {
            "device": self.device.hex(),
            "windows": self.windows,
            "total_samples": self.total_samples,
            "first_window_start": self.first_window_start,
            "last_window_start": self.last_window_start,
            "metrics": {name: value.as_dict() for name, value in self.metrics.items()},
        }

from __future__ import annotations

from dataclasses import dataclass, field

from prometheus_client import Counter, Gauge, Info


@dataclass(frozen=True)
class ConfiguratorMetrics:
    """Prometheus metrics exported by the configurator on ``/metrics``.

    Degraded configuration reads are counted by ``reason`` so operators can
    alert on a missing or malformed ConfigMap without scraping logs.
    """

    events_total: Counter = field(
        default_factory=lambda: Counter(
            "configurator_events_total",
            "Total watch events observed by the informer",
            ["informer", "kind"],
        )
    )
    events_filtered_total: Counter = field(
        default_factory=lambda: Counter(
            "configurator_events_filtered_total",
            "Total watch events rejected by the namespace filter",
            ["informer"],
        )
    )
    announcements_published_total: Counter = field(
        default_factory=lambda: Counter(
            "configurator_announcements_published_total",
            "Total announcements placed on the outbound relay",
        )
    )
    announcements_dropped_total: Counter = field(
        default_factory=lambda: Counter(
            "configurator_announcements_dropped_total",
            "Total announcements dropped because the relay was full",
        )
    )
    watch_errors_total: Counter = field(
        default_factory=lambda: Counter(
            "configurator_watch_errors_total",
            "Total Kubernetes list/watch errors",
        )
    )
    watch_reconnects_total: Counter = field(
        default_factory=lambda: Counter(
            "configurator_watch_reconnects_total",
            "Total watch stream reconnects after the initial connection",
        )
    )
    cache_synced: Gauge = field(
        default_factory=lambda: Gauge(
            "configurator_cache_synced",
            "Whether the ConfigMap cache finished its initial sync (1=yes, 0=no)",
        )
    )
    config_read_errors_total: Counter = field(
        default_factory=lambda: Counter(
            "configurator_config_read_errors_total",
            "Total configuration reads that fell back to defaults",
            ["reason"],
        )
    )
    build_info: Info = field(
        default_factory=lambda: Info(
            "configurator",
            "Build information for the configurator",
        )
    )


METRICS = ConfiguratorMetrics()

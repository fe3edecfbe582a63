from __future__ import annotations

import json
import logging
import re
import signal
import threading

from configurator.src.announcements import AnnouncementRelay
from configurator.src.client import Configurator, new_configurator
from configurator.src.config import ConfiguratorSettings, load_settings
from configurator.src.health import start_health_server
from configurator.src.kube import build_core_client, load_kube_configuration
from configurator.src.metrics import METRICS

RUNTIME_VERSION = "0.1.0"
_REDACTION_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(r"(?i)(bearer\s+)([A-Za-z0-9._~+/=-]+)"),
        r"\1[REDACTED]",
    ),
    (
        re.compile(
            r"(?i)(\b(?:authorization|token|password|passwd|secret|api[_-]?key)\b\s*[:=]\s*)([^\s,;]+)"
        ),
        r"\1[REDACTED]",
    ),
)


def redact_sensitive_text(value: str) -> str:
    redacted = value
    for pattern, replacement in _REDACTION_RULES:
        redacted = pattern.sub(replacement, redacted)
    return redacted


class JSONFormatter(logging.Formatter):
    """Emit logs as single-line JSON objects for structured log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": redact_sensitive_text(record.getMessage()),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["error"] = redact_sensitive_text(self.formatException(record.exc_info))
        return json.dumps(log_entry)


def configure_logging(level: str) -> None:
    log_handler = logging.StreamHandler()
    log_handler.setFormatter(JSONFormatter())
    logging.root.addHandler(log_handler)
    logging.root.setLevel(getattr(logging, level, logging.INFO))


def consume_announcements(
    configurator: Configurator,
    relay: AnnouncementRelay,
    stop: threading.Event,
    poll_seconds: float = 1.0,
) -> int:
    """Log the effective mesh config after every announcement until *stop* is set.

    Returns the number of announcements consumed.
    """
    logger = logging.getLogger(__name__)
    consumed = 0
    while not stop.is_set():
        announcement = relay.get(timeout=poll_seconds)
        if announcement is None:
            continue
        consumed += 1
        config = configurator.get_config()
        logger.info(
            "ConfigMap %s %s; config_version=%d permissive_traffic_policy_mode=%s",
            configurator.get_config_map_cache_key(),
            announcement.kind.value,
            config.config_version,
            config.permissive_traffic_policy_mode,
        )
    return consumed


def run(settings: ConfiguratorSettings, shutdown_event: threading.Event) -> None:
    """Start the configurator and health server, then consume announcements until shutdown."""
    load_kube_configuration()
    core_api = build_core_client()

    configurator = new_configurator(
        core_api,
        shutdown_event,
        settings.osm_namespace,
        settings.config_map_name,
        payload_key=settings.payload_key,
        announcement_buffer_size=settings.announcement_buffer_size,
        watch_timeout_seconds=settings.watch_timeout_seconds,
        resync_seconds=settings.resync_seconds,
    )
    health_server = start_health_server(
        is_ready=configurator.cache_synced.is_closed,
        port=settings.health_port,
        current_config=lambda: configurator.get_config().to_dict(),
    )
    try:
        consume_announcements(configurator, configurator.get_announcements(), shutdown_event)
    finally:
        configurator.stop()
        health_server.shutdown()


def main() -> None:
    """Configurator entrypoint: configure logging, start the ConfigMap watch, and serve health."""
    settings = load_settings()
    configure_logging(settings.log_level)
    METRICS.build_info.info({"version": RUNTIME_VERSION})

    shutdown_event = threading.Event()

    def _handle_signal(signum: int, frame: object) -> None:
        logging.getLogger(__name__).info("Received signal %d, shutting down", signum)
        shutdown_event.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    run(settings, shutdown_event)
    logging.getLogger(__name__).info("Configurator stopped")


if __name__ == "__main__":
    main()

"""Telemetry utilities for the activity log, run export and metrics."""

from .activity_log import ActivityEntry, ActivityLog
from .event_sink import EventSink, FileEventSink, NullEventSink, sink_from_settings
from .metrics import (
    configure_metrics,
    record_pipeline_outcome,
    record_pipeline_duration,
    increment_distribution_failure,
    shutdown_metrics,
    collect_prometheus_metrics,
)

__all__ = [
    "ActivityEntry",
    "ActivityLog",
    "EventSink",
    "FileEventSink",
    "NullEventSink",
    "sink_from_settings",
    "configure_metrics",
    "record_pipeline_outcome",
    "record_pipeline_duration",
    "increment_distribution_failure",
    "shutdown_metrics",
    "collect_prometheus_metrics",
]

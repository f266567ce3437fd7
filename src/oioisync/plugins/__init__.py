"""Plugin framework for observing OIOI requests and sync runs."""

from .base import PluginContext, PluginHook, PluginManager, SyncPlugin
from .fluentd_audit import FluentdAuditPlugin
from .prometheus_metrics import PrometheusMetricsPlugin

__all__ = [
    "FluentdAuditPlugin",
    "PluginContext",
    "PluginHook",
    "PluginManager",
    "PrometheusMetricsPlugin",
    "SyncPlugin",
]

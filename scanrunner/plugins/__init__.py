"""Plugin discovery, plugin sets and per-invocation services."""

from scanrunner.plugins.plugin_host import PluginHost, resolve_plugin_dir
from scanrunner.plugins.plugin_set import PluginSet
from scanrunner.plugins.services import EventSink, PluginLogger, ServiceBundle, build_services

__all__ = [
    "EventSink",
    "PluginHost",
    "PluginLogger",
    "PluginSet",
    "ServiceBundle",
    "build_services",
    "resolve_plugin_dir",
]

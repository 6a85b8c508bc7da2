"""Pydantic models for scanrunner."""

from scanrunner.models.model_auth import AuthConfig, RegistryAuth
from scanrunner.models.model_event import DetectType, Event, EventType, Level, Report
from scanrunner.models.model_plugin import PluginCommand, PluginDescriptor
from scanrunner.models.model_scanner import (
    ImageHandle,
    RegistryScanResult,
    RepositoryResult,
    ScanSummary,
)

__all__ = [
    "AuthConfig",
    "DetectType",
    "Event",
    "EventType",
    "ImageHandle",
    "Level",
    "PluginCommand",
    "PluginDescriptor",
    "RegistryAuth",
    "RegistryScanResult",
    "Report",
    "RepositoryResult",
    "ScanSummary",
]

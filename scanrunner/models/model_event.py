from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from scanrunner.models.common import _utc_now


class Level(str, Enum):
    """Severity of a finding."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DetectType(str, Enum):
    """What kind of object the finding was detected on."""

    IMAGE = "image"
    CONTAINER = "container"


class EventType(str, Enum):
    """Finding category."""

    RISK = "risk"
    INVASION = "invasion"


class Event(BaseModel):
    """One structured finding emitted by a plugin invocation."""

    model_config = ConfigDict(frozen=True)

    plugin: str = Field(description="Name of the plugin that emitted the event")
    command: str = Field(description="Joined command path, e.g. 'scan/image'")
    image_id: str = Field(default="", description="ID of the scanned image")
    image_ref: str = Field(default="", description="Human-readable reference of the scanned image")
    level: Level = Field(default=Level.NONE, description="Severity")
    detect_type: DetectType = Field(default=DetectType.IMAGE)
    event_type: EventType = Field(default=EventType.RISK)
    alert_type: str = Field(default="", description="Weakpass, Vulnerability, Backdoor, ...")
    detail: dict[str, Any] = Field(default_factory=dict, description="Plugin-specific payload")
    time: datetime = Field(default_factory=_utc_now)

    @field_validator("level", "detect_type", "event_type", mode="before")
    @classmethod
    def _lowercase_enum(cls, value: Any) -> Any:
        """Plugins report enum values in any case ('High', 'HIGH')."""
        if isinstance(value, str):
            return value.strip().lower()
        return value


class Report(BaseModel):
    """Ordered aggregation of all events of a session."""

    targets: list[str] = Field(default_factory=list, description="Scanned image refs/repositories")
    started_at: datetime = Field(default_factory=_utc_now)
    finished_at: datetime | None = Field(default=None)
    events: list[Event] = Field(default_factory=list)

from pydantic import BaseModel, ConfigDict, Field

from scanrunner.consts import PLUGIN_IMAGE_COMMAND_TYPE


class PluginCommand(BaseModel):
    """A command a plugin declares in its `info` manifest."""

    model_config = ConfigDict(frozen=True)

    path: tuple[str, ...] = Field(description="Sub-command words, e.g. ('scan', 'image')")
    type: str = Field(default=PLUGIN_IMAGE_COMMAND_TYPE, description="Target kind the command scans")

    @property
    def joined_path(self) -> str:
        """Command path joined with '/', used to tag logs and events."""
        return "/".join(self.path)


class PluginDescriptor(BaseModel):
    """A discovered plugin. Immutable for the lifetime of a session."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Plugin name, unique within a session")
    path: str = Field(description="Filesystem location of the plugin executable")
    version: str = Field(default="", description="Plugin version from its manifest")
    description: str = Field(default="", description="Short description from its manifest")
    author: str = Field(default="", description="Plugin author")
    tags: tuple[str, ...] = Field(default=(), description="Free-form plugin tags")
    commands: tuple[PluginCommand, ...] = Field(default=(), description="Declared commands")

    def commands_of_type(self, command_type: str) -> list[PluginCommand]:
        """Return the declared commands applicable to a target kind."""
        return [c for c in self.commands if c.type == command_type]

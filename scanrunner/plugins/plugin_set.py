"""Immutable set of plugins discovered for a session."""

import logging
from collections.abc import Iterable, Iterator

from scanrunner.consts import PLUGIN_IMAGE_COMMAND_TYPE
from scanrunner.models.model_plugin import PluginCommand, PluginDescriptor

logger = logging.getLogger(__name__)


class PluginSet:
    """Discovered plugins, keyed by unique name.

    When two plugins share a name the first one wins; the duplicate is
    logged and left out.
    """

    def __init__(self, plugins: Iterable[PluginDescriptor] = ()) -> None:
        unique: dict[str, PluginDescriptor] = {}
        for plugin in plugins:
            if plugin.name in unique:
                logger.warning(
                    f"Skipping plugin {plugin.name!r} at {plugin.path}: "
                    f"name already used by {unique[plugin.name].path}"
                )
                continue
            unique[plugin.name] = plugin
        self._plugins: tuple[PluginDescriptor, ...] = tuple(unique.values())

    @property
    def names(self) -> list[str]:
        return [p.name for p in self._plugins]

    def get(self, name: str) -> PluginDescriptor | None:
        """Get plugin by name."""
        for plugin in self._plugins:
            if plugin.name == name:
                return plugin
        return None

    def invocations(
        self, command_type: str = PLUGIN_IMAGE_COMMAND_TYPE
    ) -> list[tuple[PluginDescriptor, PluginCommand]]:
        """List every (plugin, command) pair applicable to a target kind."""
        return [
            (plugin, command)
            for plugin in self._plugins
            for command in plugin.commands_of_type(command_type)
        ]

    def __iter__(self) -> Iterator[PluginDescriptor]:
        return iter(self._plugins)

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, name: object) -> bool:
        return any(p.name == name for p in self._plugins)

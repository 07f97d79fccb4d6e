"""Plugin placement lookups: which plugin namespaces render on which page."""

from typing import Any, Iterable, Mapping, Optional, Protocol


class PluginRegistry(Protocol):
    def is_plugin_rendered_on_page(self, page_id: Any, plugin_name: str) -> bool:
        ...


class StaticPluginRegistry:
    """Plugin placements held in memory, usually from the plugin_placements config block."""

    def __init__(self, placements: Optional[Mapping[Any, Iterable[str]]] = None):
        # Page ids are normalized to str so YAML int keys and request strings agree
        self.placements = {
            str(page_id): set(plugins or [])
            for page_id, plugins in (placements or {}).items()
        }

    def is_plugin_rendered_on_page(self, page_id: Any, plugin_name: str) -> bool:
        return plugin_name in self.placements.get(str(page_id), set())

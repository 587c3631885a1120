"""
Plugin registry.

Holds the source and export plugins available to the orchestrator,
tracks per-plugin call statistics and owns plugin setup and teardown.
Built-in plugins come from an explicit constructor list; extra plugins
may be discovered from a directory of Python files.
"""

import importlib.util
import inspect
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from models.config import ExportFormat
from plugins.base import BaseExportPlugin, BaseSourcePlugin
from plugins.types import PluginStats, QueryContext

__all__ = ["PluginRegistry", "Plugin", "plugin_config_from_env"]

logger = logging.getLogger(__name__)

Plugin = Union[BaseSourcePlugin, BaseExportPlugin]


def plugin_config_from_env(plugin_id: str) -> Dict[str, str]:
    """Collect ``PLUGIN_<ID>_<KEY>`` variables into ``{"key": value}``."""
    prefix = f"PLUGIN_{plugin_id.upper().replace('-', '_')}_"
    return {
        name[len(prefix):].lower(): value
        for name, value in os.environ.items()
        if name.startswith(prefix)
    }


def _builtin_source_plugins() -> List[Callable[[], BaseSourcePlugin]]:
    from plugins.sources import BUILTIN_SOURCE_PLUGINS

    return list(BUILTIN_SOURCE_PLUGINS)


def _builtin_export_plugins() -> List[Callable[[], BaseExportPlugin]]:
    from plugins.exports import BUILTIN_EXPORT_PLUGINS

    return list(BUILTIN_EXPORT_PLUGINS)


class PluginRegistry:
    def __init__(
        self,
        source_factories: Optional[List[Callable[[], BaseSourcePlugin]]] = None,
        export_factories: Optional[List[Callable[[], BaseExportPlugin]]] = None,
        plugin_dir: Optional[str] = None,
    ):
        self._source_factories = source_factories
        self._export_factories = export_factories
        self.plugin_dir = plugin_dir
        self.source_plugins: Dict[str, BaseSourcePlugin] = {}
        self.export_plugins: Dict[str, BaseExportPlugin] = {}
        self.stats: Dict[str, PluginStats] = {}
        self.initialized = False

    # ══════════════════════════════════════════════════════════════════════
    # Registration
    # ══════════════════════════════════════════════════════════════════════

    def register(self, plugin: Plugin) -> bool:
        """Register a plugin of either kind. First registration of an id wins."""
        if isinstance(plugin, BaseSourcePlugin):
            return self.register_source_plugin(plugin)
        if isinstance(plugin, BaseExportPlugin):
            return self.register_export_plugin(plugin)
        raise TypeError(f"Not a plugin: {type(plugin).__name__}")

    def register_source_plugin(self, plugin: BaseSourcePlugin) -> bool:
        if plugin.id in self.source_plugins:
            logger.warning(f"Source plugin {plugin.id} already registered, ignoring duplicate")
            return False
        self.source_plugins[plugin.id] = plugin
        self.stats.setdefault(plugin.id, PluginStats())
        logger.info(f"Registered source plugin: {plugin.name} ({plugin.id})")
        return True

    def register_export_plugin(self, plugin: BaseExportPlugin) -> bool:
        if plugin.id in self.export_plugins:
            logger.warning(f"Export plugin {plugin.id} already registered, ignoring duplicate")
            return False
        self.export_plugins[plugin.id] = plugin
        self.stats.setdefault(plugin.id, PluginStats())
        logger.info(f"Registered export plugin: {plugin.name} ({plugin.id})")
        return True

    # ══════════════════════════════════════════════════════════════════════
    # Lookup
    # ══════════════════════════════════════════════════════════════════════

    def query(self, query: str, context: QueryContext) -> List[BaseSourcePlugin]:
        """Source plugins that support the query; a raising predicate excludes its plugin."""
        matched = []
        for plugin in self.source_plugins.values():
            try:
                if plugin.supports(query, context):
                    matched.append(plugin)
            except Exception as e:
                logger.error(f"Plugin {plugin.id} supports() check failed: {e}")
        return matched

    def get_source_plugin(self, plugin_id: str) -> Optional[BaseSourcePlugin]:
        return self.source_plugins.get(plugin_id)

    def get_export_plugin(self, export_format: Union[ExportFormat, str]) -> Optional[BaseExportPlugin]:
        value = export_format.value if isinstance(export_format, ExportFormat) else str(export_format)
        for plugin in self.export_plugins.values():
            if plugin.format.value == value:
                return plugin
        return None

    def get_all_source_plugins(self) -> List[BaseSourcePlugin]:
        return list(self.source_plugins.values())

    def get_all_export_plugins(self) -> List[BaseExportPlugin]:
        return list(self.export_plugins.values())

    # ══════════════════════════════════════════════════════════════════════
    # Statistics
    # ══════════════════════════════════════════════════════════════════════

    def update_stats(
        self,
        plugin_id: str,
        success: bool,
        duration: float,
        error: Optional[str] = None,
    ) -> None:
        self.stats.setdefault(plugin_id, PluginStats()).record(success, duration, error)

    def get_stats(self, plugin_id: str) -> Optional[Dict[str, Any]]:
        stats = self.stats.get(plugin_id)
        return stats.to_dict() if stats else None

    def get_all_stats(self) -> Dict[str, Dict[str, Any]]:
        return {plugin_id: stats.to_dict() for plugin_id, stats in self.stats.items()}

    def describe(self) -> Dict[str, List[Dict[str, Any]]]:
        """Registered plugins with their statistics, for operators."""
        return {
            "sources": [
                {
                    "id": p.id,
                    "name": p.name,
                    "description": p.description,
                    "version": p.version,
                    "available": p.is_available(),
                    "stats": self.get_stats(p.id),
                }
                for p in self.source_plugins.values()
            ],
            "exports": [
                {
                    "id": p.id,
                    "name": p.name,
                    "description": p.description,
                    "format": p.format.value,
                    "stats": self.get_stats(p.id),
                }
                for p in self.export_plugins.values()
            ],
        }

    # ══════════════════════════════════════════════════════════════════════
    # Lifecycle
    # ══════════════════════════════════════════════════════════════════════

    async def initialize(self) -> None:
        """Register built-in and discovered plugins, then initialise each."""
        if self.initialized:
            logger.warning("Plugin registry already initialized")
            return

        source_factories = (
            self._source_factories
            if self._source_factories is not None
            else _builtin_source_plugins()
        )
        export_factories = (
            self._export_factories
            if self._export_factories is not None
            else _builtin_export_plugins()
        )
        for factory in [*source_factories, *export_factories]:
            try:
                self.register(factory())
            except Exception as e:
                logger.error(f"Failed to construct plugin {factory!r}: {e}")

        if self.plugin_dir:
            self.discover(self.plugin_dir)

        for plugin in [*self.source_plugins.values(), *self.export_plugins.values()]:
            try:
                await plugin.initialize(plugin_config_from_env(plugin.id))
            except Exception as e:
                logger.error(f"Failed to initialize plugin {plugin.id}: {e}")

        self.initialized = True
        logger.info(
            f"Plugin registry ready: {len(self.source_plugins)} source, "
            f"{len(self.export_plugins)} export plugins"
        )

    def discover(self, directory: str) -> int:
        """
        Import plugins from ``*.py`` files in a directory.

        Each module contributes its ``plugin`` attribute if present, otherwise
        an instance of every concrete plugin class it defines. A file that
        fails to import is logged and skipped.

        Returns:
            Number of plugins registered
        """
        path = Path(directory)
        if not path.is_dir():
            logger.warning(f"Plugin directory {directory} does not exist")
            return 0

        registered = 0
        for file in sorted(path.glob("*.py")):
            if file.name.startswith(("_", "test_")):
                continue
            try:
                spec = importlib.util.spec_from_file_location(
                    f"research_plugins.{file.stem}", file
                )
                if spec is None or spec.loader is None:
                    raise ImportError(f"cannot load {file}")
                module = importlib.util.module_from_spec(spec)
                spec.loader.exec_module(module)

                for plugin in self._plugins_from_module(module):
                    if self.register(plugin):
                        registered += 1
            except Exception as e:
                logger.error(f"Failed to load plugin from {file.name}: {e}")

        return registered

    @staticmethod
    def _plugins_from_module(module: Any) -> List[Plugin]:
        explicit = getattr(module, "plugin", None)
        if isinstance(explicit, (BaseSourcePlugin, BaseExportPlugin)):
            return [explicit]

        plugins: List[Plugin] = []
        for _, obj in inspect.getmembers(module, inspect.isclass):
            if obj.__module__ != module.__name__ or inspect.isabstract(obj):
                continue
            if issubclass(obj, (BaseSourcePlugin, BaseExportPlugin)):
                plugins.append(obj())
        return plugins

    async def dispose(self) -> None:
        for plugin in [*self.source_plugins.values(), *self.export_plugins.values()]:
            try:
                await plugin.dispose()
            except Exception as e:
                logger.error(f"Failed to dispose plugin {plugin.id}: {e}")

        self.source_plugins.clear()
        self.export_plugins.clear()
        self.stats.clear()
        self.initialized = False

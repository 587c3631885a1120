"""Built-in export plugins."""

from plugins.exports.json_export import JsonExportPlugin
from plugins.exports.markdown import MarkdownExportPlugin, render_markdown
from plugins.exports.notion import NotionExportPlugin

__all__ = [
    "JsonExportPlugin",
    "MarkdownExportPlugin",
    "NotionExportPlugin",
    "render_markdown",
    "BUILTIN_EXPORT_PLUGINS",
]

BUILTIN_EXPORT_PLUGINS = [
    MarkdownExportPlugin,
    NotionExportPlugin,
    JsonExportPlugin,
]

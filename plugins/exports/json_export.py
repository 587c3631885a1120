"""JSON export: the analysis as JSON-ready data."""

from models.config import ExportFormat
from models.research import AnalysisResult, ExportResult
from plugins.base import BaseExportPlugin
from plugins.types import ExportContext


class JsonExportPlugin(BaseExportPlugin):
    id = "json"
    name = "JSON Export"
    description = "Returns the analysis as structured JSON"
    format = ExportFormat.JSON

    async def do_export(self, analysis: AnalysisResult, context: ExportContext) -> ExportResult:
        return ExportResult(success=True, format=self.format.value, data=analysis.to_wire())

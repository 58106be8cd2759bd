"""Export-Modul: Ergebnis-Tabelle als Excel (openpyxl)."""

from export.excel_export import ResultExporter, export_results

__all__ = ["ResultExporter", "export_results"]

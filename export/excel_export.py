"""Excel-Export der Losergebnisse (openpyxl)."""

import logging
from pathlib import Path
from typing import Optional

from models.roster import RosterData
from models.user import User

from export.helpers import (
    COLORS, RESULT_COLUMNS, RESULT_WIDTHS, STATUS_DRAWN,
    build_result_rows, safe_filename,
)

logger = logging.getLogger(__name__)


class ResultExporter:
    """Schreibt die Ergebnis-Tabelle für alle Lehrkräfte oder ein einzelnes Konto."""

    SHEET_ALL = "Kết Quả Bốc Thăm"
    SHEET_SINGLE = "Kết Quả Chi Tiết"
    DEFAULT_FILENAME = "ket_qua_boc_tham_tong_hop.xlsx"

    ROW_HEADER_H = 22

    def __init__(self, roster: RosterData):
        self.roster = roster

    # ─── Öffentliche API ──────────────────────────────────────────────────────

    def export(self, output_path: Path) -> Path:
        """Exportiert alle Lehrkräfte (ohne ADMIN-Konten)."""
        rows = build_result_rows(self.roster)
        return self._write(Path(output_path), self.SHEET_ALL, rows)

    def export_user(self, user: User, output_dir: Path) -> Path:
        """Exportiert das Ergebnis eines Kontos nach ket_qua_<name>.xlsx."""
        path = Path(output_dir) / f"ket_qua_{safe_filename(user.name)}.xlsx"
        rows = build_result_rows(self.roster, [user])
        return self._write(path, self.SHEET_SINGLE, rows)

    # ─── Style-Helpers ────────────────────────────────────────────────────────

    def _fill(self, hex_color: str):
        from openpyxl.styles import PatternFill
        return PatternFill(start_color=hex_color, end_color=hex_color, fill_type="solid")

    def _thin_border(self):
        from openpyxl.styles import Border, Side
        s = Side(border_style="thin", color="BBBBBB")
        return Border(left=s, right=s, top=s, bottom=s)

    def _write_header_row(self, ws) -> None:
        from openpyxl.styles import Alignment, Font
        from openpyxl.utils import get_column_letter
        fill = self._fill(COLORS["header"])
        border = self._thin_border()
        for col, (text, width) in enumerate(zip(RESULT_COLUMNS, RESULT_WIDTHS), 1):
            cell = ws.cell(row=1, column=col, value=text)
            cell.fill = fill
            cell.font = Font(bold=True, color="FFFFFF", size=10)
            cell.alignment = Alignment(horizontal="center", vertical="center")
            cell.border = border
            ws.column_dimensions[get_column_letter(col)].width = width
        ws.row_dimensions[1].height = self.ROW_HEADER_H
        ws.freeze_panes = "A2"

    # ─── Schreiben ────────────────────────────────────────────────────────────

    def _write(self, path: Path, sheet_title: str, rows: list[list]) -> Path:
        from openpyxl import Workbook
        wb = Workbook()
        ws = wb.active
        ws.title = sheet_title
        self._write_header_row(ws)

        border = self._thin_border()
        status_col = RESULT_COLUMNS.index("Trạng thái") + 1
        for r, values in enumerate(rows, 2):
            for col, val in enumerate(values, 1):
                cell = ws.cell(row=r, column=col, value=val)
                cell.border = border
            status_cell = ws.cell(row=r, column=status_col)
            key = "drawn" if status_cell.value == STATUS_DRAWN else "pending"
            status_cell.fill = self._fill(COLORS[key])

        path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(path)
        logger.info(f"Ergebnis exportiert: {path} ({len(rows)} Zeilen)")
        return path


def export_results(
    roster: RosterData,
    output_path: Path,
    user: Optional[User] = None,
) -> Path:
    """Kurzform: alle Lehrkräfte nach output_path bzw. ein Konto in dessen Verzeichnis."""
    exporter = ResultExporter(roster)
    if user is None:
        return exporter.export(output_path)
    return exporter.export_user(user, Path(output_path))

"""Excel-Import und Template-Generator für Lektionskatalog und Konten.

Template-Generator: Excel-Vorlage mit den Blättern "Bài dạy", "Giáo viên", "Lớp".
Import-Funktion:    Excel → RosterData + Klassen + ImportReport.

Blätter werden über ihren Namen gefunden (auch englische Namen "Lessons",
"Users", "Classes"), Spalten über die Kopfzeile. Ein Import ersetzt den
gesamten Katalog bzw. alle Konten; Losergebnisse werden dabei nicht übernommen.
"""

import difflib
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from pydantic import BaseModel, ValidationError

from config.schema import ContestConfig
from data.helpers import (
    cell_text,
    fallback_admin,
    parse_int,
    parse_local_datetime,
)
from models.classroom import Classroom
from models.lesson import Lesson
from models.roster import RosterData
from models.user import Role, User

logger = logging.getLogger(__name__)


class ExcelImportError(Exception):
    """Fehler beim Excel-Import."""


class ImportReport(BaseModel):
    """Zusammenfassung eines Imports."""

    lesson_count: int = 0
    user_count: int = 0
    class_count: int = 0
    warnings: list[str] = []
    admin_added: bool = False

    def print_rich(self) -> None:
        from rich.console import Console

        console = Console()
        console.print(
            f"[green]✓[/green] Nhập thành công: {self.lesson_count} bài dạy, "
            f"{self.user_count} người dùng, {self.class_count} lớp."
        )
        if self.admin_added:
            console.print("[yellow]File không có tài khoản ADMIN – đã thêm admin mặc định.[/yellow]")
        for w in self.warnings:
            console.print(f"  [yellow]• {w}[/yellow]")


# ─── Blatt- und Spaltennamen ──────────────────────────────────────────────────

LESSON_SHEET = "Bài dạy"
USER_SHEET = "Giáo viên"
CLASS_SHEET = "Lớp"

LESSON_HEADERS = ["Môn", "Khối", "Tuần", "Tiết", "Tên bài"]
USER_HEADERS = ["Họ tên", "Email", "Mật khẩu", "Vai trò", "Môn", "Bắt đầu", "Kết thúc"]
CLASS_HEADERS = ["Khối", "Lớp"]

# Kopfzeilen-Aliase (kleingeschrieben) → Feldname
_LESSON_COLUMNS = {
    "môn": "subject", "subject": "subject",
    "khối": "grade", "grade": "grade",
    "tuần": "week", "week": "week",
    "tiết": "period", "period": "period",
    "tên bài": "name", "tên bài dạy": "name", "name": "name",
}
_USER_COLUMNS = {
    "họ tên": "name", "tên giáo viên": "name", "name": "name",
    "email": "email",
    "mật khẩu": "password", "password": "password",
    "vai trò": "role", "role": "role",
    "môn": "subject", "môn giảng dạy": "subject", "subject": "subject",
    "bắt đầu": "start", "bắt đầu bốc thăm": "start", "start": "start",
    "kết thúc": "end", "kết thúc bốc thăm": "end", "end": "end",
}
_CLASS_COLUMNS = {
    "khối": "grade", "grade": "grade",
    "lớp": "name", "tên lớp": "name", "class": "name", "name": "name",
}


def _sheet_matches(sheet_name: str, exact: tuple[str, ...], contains: str) -> bool:
    n = sheet_name.strip().lower()
    return n in exact or contains in n


# ─── TEMPLATE-GENERATOR ───────────────────────────────────────────────────────

def generate_template(config: ContestConfig, path: Path) -> None:
    """Erzeugt eine Excel-Vorlage mit Beispielzeilen.

    Blätter:
      - Bài dạy:   Môn, Khối, Tuần, Tiết, Tên bài (eine Beispielzeile pro Fach)
      - Giáo viên: Họ tên, Email, Mật khẩu, Vai trò, Môn, Bắt đầu, Kết thúc
      - Lớp:       Khối, Lớp (aus der Config)
    """
    try:
        import openpyxl
        from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
        from openpyxl.utils import get_column_letter
        from openpyxl.worksheet.datavalidation import DataValidation
    except ImportError:
        raise ImportError("openpyxl chưa được cài. Vui lòng: pip install openpyxl")

    wb = openpyxl.Workbook()

    # ── Hilfs-Styles ─────────────────────────────────────────────────────────
    hdr_font = Font(bold=True, color="FFFFFF", size=11)
    hdr_fill = PatternFill("solid", fgColor="2E6DA4")
    ex_font = Font(italic=True, color="888888")
    center = Alignment(horizontal="center", vertical="center")
    thin = Side(style="thin", color="BBBBBB")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)

    def write_header(ws, headers: list[str], widths: list[int]) -> None:
        for col, (h, w) in enumerate(zip(headers, widths), 1):
            cell = ws.cell(row=1, column=col, value=h)
            cell.font = hdr_font
            cell.fill = hdr_fill
            cell.alignment = center
            cell.border = border
            ws.column_dimensions[get_column_letter(col)].width = w
        ws.freeze_panes = "A2"

    def write_row(ws, row: int, values: list, example: bool = False) -> None:
        for col, val in enumerate(values, 1):
            cell = ws.cell(row=row, column=col, value=val)
            cell.border = border
            if example:
                cell.font = ex_font

    # ── Blatt 1: Bài dạy ──────────────────────────────────────────────────────
    ws_l = wb.active
    ws_l.title = LESSON_SHEET
    write_header(ws_l, LESSON_HEADERS, [22, 12, 8, 8, 48])
    first_grade = config.grades[0] if config.grades else "Khối 6"
    for r, subject in enumerate(config.subjects, 2):
        write_row(ws_l, r, [subject, first_grade, 1, 1, f"Bài mẫu môn {subject}"], example=True)

    # ── Blatt 2: Giáo viên ────────────────────────────────────────────────────
    ws_u = wb.create_sheet(USER_SHEET)
    write_header(ws_u, USER_HEADERS, [24, 28, 12, 12, 22, 18, 18])
    start = datetime.now().replace(hour=7, minute=0, second=0, microsecond=0)
    end = start + timedelta(hours=config.rules.default_window_hours)
    write_row(ws_u, 2, [
        "Nguyễn Văn A", "nguyenvana@edu.vn", "123", Role.TEACHER.value,
        config.subjects[0] if config.subjects else "",
        start.strftime("%Y-%m-%d %H:%M"), end.strftime("%Y-%m-%d %H:%M"),
    ], example=True)

    role_dv = DataValidation(
        type="list",
        formula1='"' + ",".join(r.value for r in Role) + '"',
        allow_blank=True,
    )
    ws_u.add_data_validation(role_dv)
    role_dv.add("D2:D500")

    # ── Blatt 3: Lớp ──────────────────────────────────────────────────────────
    ws_c = wb.create_sheet(CLASS_SHEET)
    write_header(ws_c, CLASS_HEADERS, [14, 14])
    for r, c in enumerate(config.classes, 2):
        write_row(ws_c, r, [c.grade, c.name])

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(str(path))
    logger.info(f"Vorlage geschrieben: {path}")


# ─── IMPORTER ─────────────────────────────────────────────────────────────────

class ExcelImporter:
    """Importiert Lektionen, Konten und Klassen aus einer Excel-Datei.

    Args:
        path:     Pfad zur .xlsx-Datei
        config:   Config für Fach-/Khối-Abgleich und Standard-Zeitfenster
        existing: Bisheriger Bestand (ADMIN-Konto wird übernommen, wenn die
                  Datei keines enthält)
        clock:    Zeitquelle für Standard-Zeitfenster
    """

    def __init__(
        self,
        path: Path,
        config: ContestConfig,
        existing: Optional[RosterData] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.path = Path(path)
        self.config = config
        self.existing = existing or RosterData()
        self._clock = clock or datetime.now
        self._wb = None
        self._warnings: list[str] = []

    def _open(self) -> None:
        try:
            import openpyxl
            self._wb = openpyxl.load_workbook(
                str(self.path), read_only=True, data_only=True
            )
        except FileNotFoundError:
            raise ExcelImportError(f"Không tìm thấy file: {self.path}")
        except Exception as e:
            raise ExcelImportError(f"Lỗi khi đọc file Excel: {e}")

    def close(self) -> None:
        """Schließt die Arbeitsmappe (read_only hält die Datei offen)."""
        if self._wb is not None:
            self._wb.close()
            self._wb = None

    def _find_sheet(self, exact: tuple[str, ...], contains: str):
        if self._wb is None:
            self._open()
        for sn in self._wb.sheetnames:
            if _sheet_matches(sn, exact, contains):
                return self._wb[sn]
        return None

    def _sheet_rows(self, sheet, columns: dict[str, str]) -> list[tuple[int, dict]]:
        """Tabellenblatt → [(Zeilennummer, {Feld: Wert})] über die Kopfzeile."""
        rows = list(sheet.iter_rows(values_only=True))
        if not rows:
            return []
        fields = [
            columns.get(cell_text(h).lower()) if h is not None else None
            for h in rows[0]
        ]
        result = []
        for i, row in enumerate(rows[1:], 2):
            if all(v is None or cell_text(v) == "" for v in row):
                continue
            result.append((i, {
                fields[j]: v
                for j, v in enumerate(row)
                if j < len(fields) and fields[j] is not None
            }))
        return result

    def _check_known(self, value: str, known: list[str], label: str, row_id: str) -> None:
        if not known or value in known:
            return
        close = difflib.get_close_matches(value, known, n=1, cutoff=0.6)
        hint = f" – có phải '{close[0]}'?" if close else ""
        self._warnings.append(f"{row_id}: {label} '{value}' không có trong cấu hình{hint}")

    # ── Bài dạy ─────────────────────────────────────────────────────────────

    def import_lessons(self) -> list[Lesson]:
        sheet = self._find_sheet(("lessons",), "bài")
        if sheet is None:
            return []
        lessons = []
        for i, row in self._sheet_rows(sheet, _LESSON_COLUMNS):
            subject = cell_text(row.get("subject"))
            grade = cell_text(row.get("grade"))
            name = cell_text(row.get("name"))
            if not subject or not grade or not name:
                self._warnings.append(f"Bài dạy, dòng {i}: thiếu môn, khối hoặc tên bài – bỏ qua")
                continue
            row_id = f"Bài dạy, dòng {i}"
            self._check_known(subject, self.config.subjects, "Môn", row_id)
            self._check_known(grade, self.config.grades, "Khối", row_id)
            lessons.append(Lesson(
                id=f"imported-lesson-{len(lessons)}",
                subject=subject,
                grade=grade,
                week=parse_int(row.get("week")),
                period=parse_int(row.get("period")),
                name=name,
            ))
        return lessons

    # ── Giáo viên ───────────────────────────────────────────────────────────

    def import_users(self) -> list[User]:
        sheet = self._find_sheet(("users",), "giáo")
        if sheet is None:
            return []
        now = self._clock().replace(second=0, microsecond=0)
        default_end = now + timedelta(hours=self.config.rules.default_window_hours)
        users: list[User] = []
        seen: set[str] = set()
        for i, row in self._sheet_rows(sheet, _USER_COLUMNS):
            email = cell_text(row.get("email")).lower()
            if not email:
                continue
            if email in seen:
                self._warnings.append(f"Giáo viên, dòng {i}: email trùng lặp '{email}' – bỏ qua")
                continue
            seen.add(email)
            subject = cell_text(row.get("subject")) or None
            if subject:
                self._check_known(subject, self.config.subjects, "Môn", f"Giáo viên, dòng {i}")
            try:
                users.append(User(
                    id=f"imported-user-{len(users)}",
                    name=cell_text(row.get("name")) or "Chưa đặt tên",
                    email=email,
                    password=cell_text(row.get("password")) or "123",
                    role=Role.parse(cell_text(row.get("role"))),
                    subject_group=subject,
                    draw_start_time=parse_local_datetime(row.get("start"), now),
                    draw_end_time=parse_local_datetime(row.get("end"), default_end),
                ))
            except ValidationError as e:
                self._warnings.append(f"Giáo viên, dòng {i}: dữ liệu không hợp lệ ({e.error_count()} lỗi) – bỏ qua")
        return users

    # ── Lớp ─────────────────────────────────────────────────────────────────

    def import_classes(self) -> list[Classroom]:
        sheet = self._find_sheet(("classes",), "lớp")
        if sheet is None:
            return []
        classes: list[Classroom] = []
        seen: set[tuple[str, str]] = set()
        for i, row in self._sheet_rows(sheet, _CLASS_COLUMNS):
            grade = cell_text(row.get("grade"))
            name = cell_text(row.get("name"))
            if not grade or not name or (grade, name) in seen:
                continue
            seen.add((grade, name))
            self._check_known(grade, self.config.grades, "Khối", f"Lớp, dòng {i}")
            classes.append(Classroom(id=f"imported-class-{len(classes)}", grade=grade, name=name))
        return classes

    # ── Gesamt ──────────────────────────────────────────────────────────────

    def import_all(self) -> tuple[RosterData, list[Classroom], ImportReport]:
        """Importiert alle Blätter.

        Fehlt ein Blatt, bleibt der entsprechende Teil des bisherigen Bestands
        erhalten. Fehlt das Klassen-Blatt, ist die Klassenliste leer und der
        Aufrufer behält die konfigurierten Klassen.

        Raises:
            ExcelImportError: Datei nicht lesbar oder keine verwertbaren Daten.
        """
        self._open()
        self._warnings = []
        try:
            lessons = self.import_lessons()
            users = self.import_users()
            classes = self.import_classes()

            if not lessons and not users:
                raise ExcelImportError(
                    "Không tìm thấy dữ liệu hợp lệ trong file "
                    "(kiểm tra tên sheet 'Bài dạy'/'Lessons' và 'Giáo viên'/'Users')."
                )

            admin_added = False
            if users and not any(u.is_admin for u in users):
                current = next((u for u in self.existing.users if u.is_admin), None)
                if current is not None:
                    users.insert(0, current.cleared())
                else:
                    users.insert(0, fallback_admin(self._clock()))
                    admin_added = True

            roster = self.existing.model_copy(update={
                "users": users or list(self.existing.users),
                "lessons": lessons or list(self.existing.lessons),
            })
            if lessons and not users:
                # Alte Losergebnisse verweisen auf den ersetzten Katalog
                roster = roster.model_copy(update={"users": [u.cleared() for u in roster.users]})

            report = ImportReport(
                lesson_count=len(lessons),
                user_count=len(users),
                class_count=len(classes),
                warnings=self._warnings,
                admin_added=admin_added,
            )
            logger.info(
                f"Excel-Import {self.path.name}: {report.lesson_count} Lektionen, "
                f"{report.user_count} Konten, {report.class_count} Klassen, "
                f"{len(report.warnings)} Warnungen"
            )
        finally:
            self.close()
        return roster, classes, report


def import_from_excel(
    path: Path,
    config: ContestConfig,
    existing: Optional[RosterData] = None,
) -> tuple[RosterData, list[Classroom], ImportReport]:
    """Importiert Katalog und Konten aus einer Excel-Datei.

    Returns:
        (RosterData, Klassen, ImportReport)

    Raises:
        ExcelImportError: Bei nicht lesbarer Datei oder fehlenden Daten.
    """
    return ExcelImporter(path, config, existing).import_all()

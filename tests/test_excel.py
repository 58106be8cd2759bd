"""Tests für Excel-Vorlage, Excel-Import und Ergebnis-Export (openpyxl)."""

from datetime import datetime, timedelta

import openpyxl
import pytest

from config.defaults import default_contest_config
from data.excel_import import (
    CLASS_SHEET,
    LESSON_SHEET,
    USER_SHEET,
    ExcelImportError,
    ExcelImporter,
    generate_template,
    import_from_excel,
)
from export.excel_export import ResultExporter, export_results
from export.helpers import RESULT_COLUMNS, STATUS_DRAWN, STATUS_PENDING, safe_filename
from models.lesson import Lesson
from models.roster import RosterData
from models.user import Role, User

NOW = datetime(2024, 10, 20, 9, 0)


# ─── Testdaten-Hilfsfunktionen ────────────────────────────────────────────────

def _user(uid: str, name: str, role: Role = Role.TEACHER, drawn: str = None) -> User:
    return User(
        id=uid,
        email=f"{uid}@edu.vn",
        name=name,
        password="123",
        role=role,
        subject_group="Toán",
        draw_start_time=NOW,
        draw_end_time=NOW + timedelta(hours=2),
        has_drawn=drawn is not None,
        drawn_lesson_id=drawn,
        drawn_class="6A1" if drawn else None,
    )


def _roster() -> RosterData:
    return RosterData(
        users=[
            _user("admin", "Quản Trị", Role.ADMIN),
            _user("t1", "Nguyễn Văn A", drawn="l1"),
            _user("t2", "Trần Thị B"),
        ],
        lessons=[Lesson(id="l1", subject="Toán", grade="Khối 6", week=2, period=3,
                        name="Phân số")],
    )


def _workbook(path, sheets: dict[str, list[list]]):
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title)
        for row in rows:
            ws.append(row)
    wb.save(path)
    return path


# ─── VORLAGE ──────────────────────────────────────────────────────────────────

class TestTemplate:
    def test_template_sheets_and_headers(self, tmp_path):
        path = tmp_path / "vorlage.xlsx"
        generate_template(default_contest_config(), path)
        wb = openpyxl.load_workbook(path)
        assert wb.sheetnames == [LESSON_SHEET, USER_SHEET, CLASS_SHEET]
        assert [c.value for c in wb[LESSON_SHEET][1]] == ["Môn", "Khối", "Tuần", "Tiết", "Tên bài"]
        assert wb[CLASS_SHEET].max_row == 1 + len(default_contest_config().classes)

    def test_template_imports_cleanly(self, tmp_path):
        """Eine unveränderte Vorlage lässt sich ohne Warnungen importieren."""
        config = default_contest_config()
        path = tmp_path / "vorlage.xlsx"
        generate_template(config, path)

        roster, classes, report = import_from_excel(path, config)
        assert report.lesson_count == len(config.subjects)
        assert report.warnings == []
        assert report.admin_added
        assert roster.users[0].is_admin
        assert [c.name for c in classes] == [c.name for c in config.classes]
        assert all(l.id.startswith("imported-lesson-") for l in roster.lessons)


# ─── IMPORT ───────────────────────────────────────────────────────────────────

class TestImport:
    def test_english_sheet_names_and_headers(self, tmp_path):
        path = _workbook(tmp_path / "en.xlsx", {
            "Lessons": [
                ["Subject", "Grade", "Week", "Period", "Name"],
                ["Toán", "Khối 6", 2, 3, "Phân số"],
                [None, None, None, None, None],
                ["Ngữ Văn", "Khối 7", "x", 0, "Thơ"],
            ],
            "Users": [
                ["Name", "Email", "Password", "Role", "Subject", "Start", "End"],
                ["Admin", "Boss@Edu.vn", "pw", "admin", "", None, None],
                ["GV A", "a@edu.vn", None, "", "Toán", datetime(2024, 10, 21, 7, 30), "21/10/2024 11:00"],
            ],
        })
        roster, classes, report = ExcelImporter(path, default_contest_config(), clock=lambda: NOW).import_all()

        assert [(l.week, l.period) for l in roster.lessons] == [(2, 3), (1, 1)]
        admin, teacher = roster.users
        assert admin.email == "boss@edu.vn" and admin.role == Role.ADMIN
        assert teacher.password == "123"
        assert teacher.role == Role.TEACHER
        assert teacher.draw_start_time == datetime(2024, 10, 21, 7, 30)
        assert teacher.draw_end_time == datetime(2024, 10, 21, 11, 0)
        assert not report.admin_added
        assert classes == []

    def test_default_window_when_missing(self, tmp_path):
        path = _workbook(tmp_path / "u.xlsx", {
            "Users": [["Email", "Họ tên"], ["a@edu.vn", "A"]],
        })
        config = default_contest_config()
        roster, _, _ = ExcelImporter(path, config, clock=lambda: NOW).import_all()
        teacher = roster.find_by_email("a@edu.vn")
        assert teacher.draw_start_time == NOW
        assert teacher.draw_end_time == NOW + timedelta(hours=config.rules.default_window_hours)

    def test_unknown_subject_warns_with_hint(self, tmp_path):
        path = _workbook(tmp_path / "w.xlsx", {
            "Bài dạy": [["Môn", "Khối", "Tuần", "Tiết", "Tên bài"], ["Toan", "Khối 6", 1, 1, "X"]],
        })
        _, _, report = import_from_excel(path, default_contest_config())
        assert any("'Toan'" in w and "Toán" in w for w in report.warnings)

    def test_duplicate_email_skipped(self, tmp_path):
        path = _workbook(tmp_path / "d.xlsx", {
            "Giáo viên": [["Email", "Họ tên"], ["a@edu.vn", "A"], ["A@edu.vn", "A2"]],
        })
        roster, _, report = import_from_excel(path, default_contest_config())
        assert [u.email for u in roster.teachers()] == ["a@edu.vn"]
        assert any("trùng lặp" in w for w in report.warnings)

    def test_existing_admin_kept(self, tmp_path):
        path = _workbook(tmp_path / "k.xlsx", {
            "Giáo viên": [["Email", "Họ tên"], ["x@edu.vn", "X"]],
        })
        roster, _, report = import_from_excel(path, default_contest_config(), existing=_roster())
        assert roster.users[0].id == "admin"
        assert not report.admin_added

    def test_lessons_only_clears_results(self, tmp_path):
        """Neuer Katalog ohne Konten-Blatt: Konten bleiben, Ergebnisse werden gelöscht."""
        path = _workbook(tmp_path / "l.xlsx", {
            "Bài dạy": [["Môn", "Khối", "Tuần", "Tiết", "Tên bài"], ["Toán", "Khối 6", 1, 1, "Neu"]],
        })
        roster, _, _ = import_from_excel(path, default_contest_config(), existing=_roster())
        assert [u.id for u in roster.users] == ["admin", "t1", "t2"]
        assert not any(u.has_drawn for u in roster.users)
        assert [l.name for l in roster.lessons] == ["Neu"]

    def test_empty_workbook_rejected(self, tmp_path):
        path = _workbook(tmp_path / "leer.xlsx", {"Sonstiges": [["a"]]})
        with pytest.raises(ExcelImportError):
            import_from_excel(path, default_contest_config())

    def test_missing_file(self, tmp_path):
        with pytest.raises(ExcelImportError):
            import_from_excel(tmp_path / "fehlt.xlsx", default_contest_config())

    def test_workbook_closed_after_import(self, tmp_path):
        path = tmp_path / "vorlage.xlsx"
        generate_template(default_contest_config(), path)
        importer = ExcelImporter(path, default_contest_config())
        importer.import_all()
        assert importer._wb is None

    def test_workbook_closed_after_failed_import(self, tmp_path):
        path = _workbook(tmp_path / "leer.xlsx", {"Sonstiges": [["a"]]})
        importer = ExcelImporter(path, default_contest_config())
        with pytest.raises(ExcelImportError):
            importer.import_all()
        assert importer._wb is None


# ─── EXPORT ───────────────────────────────────────────────────────────────────

class TestResultExport:
    def test_all_teachers(self, tmp_path):
        """Alle Lehrkräfte ohne ADMIN, Spalten in fester Reihenfolge."""
        path = ResultExporter(_roster()).export(tmp_path / "out" / "ket_qua.xlsx")
        ws = openpyxl.load_workbook(path)[ResultExporter.SHEET_ALL]

        assert [c.value for c in ws[1]] == RESULT_COLUMNS
        assert ws.max_row == 3
        drawn = [c.value for c in ws[2]]
        assert drawn[0] == "Nguyễn Văn A"
        assert drawn[5] == STATUS_DRAWN
        assert drawn[6:] == ["Phân số", "Khối 6", "6A1", 2, 3]
        pending = [c.value for c in ws[3]]
        assert pending[5] == STATUS_PENDING
        assert all(v in (None, "") for v in pending[6:])

    def test_single_user(self, tmp_path):
        roster = _roster()
        path = export_results(roster, tmp_path, user=roster.get_user("t1"))
        assert path.name == f"ket_qua_{safe_filename('Nguyễn Văn A')}.xlsx"
        ws = openpyxl.load_workbook(path)[ResultExporter.SHEET_SINGLE]
        assert ws.max_row == 2

    def test_safe_filename_keeps_vietnamese(self):
        assert safe_filename("Lê Văn/B") == "lê_văn_b"

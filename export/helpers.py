"""Gemeinsame Hilfsfunktionen für den Ergebnis-Export."""

import re
from datetime import date
from typing import Optional

from models.lesson import Lesson
from models.roster import RosterData
from models.user import User

# ─── Farbpalette (RRGGBB, ohne #) ─────────────────────────────────────────────

COLORS: dict[str, str] = {
    "header":  "4472C4",
    "drawn":   "C6EFCE",
    "pending": "FFF2CC",
    "alt":     "F2F2F2",
}

# ─── Ergebnis-Tabelle ─────────────────────────────────────────────────────────

RESULT_COLUMNS: list[str] = [
    "Tên Giáo Viên",
    "Email",
    "Môn Giảng Dạy",
    "Bắt đầu bốc thăm",
    "Kết thúc bốc thăm",
    "Trạng thái",
    "Tên Bài Dạy",
    "Khối",
    "Lớp dạy",
    "Tuần",
    "Tiết",
]

# Spaltenbreiten (Zeichen), gleiche Reihenfolge wie RESULT_COLUMNS
RESULT_WIDTHS: list[int] = [20, 25, 15, 20, 20, 10, 40, 10, 10, 8, 8]

STATUS_DRAWN = "Đã bốc"
STATUS_PENDING = "Chưa bốc"


def today_str() -> str:
    """Gibt das heutige Datum als DD/MM/YYYY zurück."""
    return date.today().strftime("%d/%m/%Y")


def result_row(user: User, lesson: Optional[Lesson]) -> list:
    """Eine Zeile der Ergebnis-Tabelle; Lektionsfelder leer ohne Ergebnis."""
    return [
        user.name,
        user.email,
        user.subject_group or "",
        user.draw_start_time.strftime("%Y-%m-%d %H:%M"),
        user.draw_end_time.strftime("%Y-%m-%d %H:%M"),
        STATUS_DRAWN if user.has_drawn else STATUS_PENDING,
        lesson.name if lesson else "",
        lesson.grade if lesson else "",
        user.drawn_class or "",
        lesson.week if lesson else "",
        lesson.period if lesson else "",
    ]


def build_result_rows(roster: RosterData, users: Optional[list[User]] = None) -> list[list]:
    """Ergebniszeilen für die angegebenen Konten (Standard: alle Lehrkräfte)."""
    lessons = roster.lesson_map()
    selected = roster.teachers() if users is None else users
    return [
        result_row(u, lessons.get(u.drawn_lesson_id) if u.drawn_lesson_id else None)
        for u in selected
    ]


def safe_filename(name: str) -> str:
    """Dateiname aus einem Personennamen: nur Buchstaben/Ziffern, sonst "_".

    Vietnamesische Buchstaben bleiben erhalten.
    """
    return re.sub(r"[^0-9a-zA-ZÀ-ỹ]", "_", name).lower()

"""Gemeinsame Hilfsfunktionen für Excel-Import und Sync-Endpunkt."""

import re
from datetime import datetime
from typing import Any, Optional

from models.user import Role, User

# "YYYY-MM-DD HH:mm" (Tabellen-Endpunkt) bzw. "YYYY-MM-DDTHH:mm" (ISO)
_LOCAL_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})[ T](\d{2}):(\d{2})")
# "DD/MM/YYYY HH:mm" (Excel-Zellen als Text, vietnamesisches Format)
_VN_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})(?:\s+(\d{1,2}):(\d{2}))?")

SHEET_TIME_FORMAT = "%Y-%m-%d %H:%M"
DRAW_TIMESTAMP_FORMAT = "%H:%M:%S %d/%m/%Y"

# Werte der hasDrawn-Spalte, die als "gelost" gelten
DRAWN_MARKERS = {"TRUE", "ĐÃ BỐC", "YES"}


def parse_local_datetime(value: Any, fallback: datetime) -> datetime:
    """Liest eine lokale Zeitangabe minutengenau; ungültig/leer → fallback.

    Akzeptiert datetime-Objekte, "YYYY-MM-DD HH:mm", ISO mit "T" (eine
    Zeitzonenangabe wird ignoriert, die Uhrzeit gilt als lokal) sowie
    "DD/MM/YYYY [HH:mm]".
    """
    if isinstance(value, datetime):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    if value is None:
        return fallback
    text = str(value).strip()
    if not text:
        return fallback

    m = _LOCAL_RE.match(text)
    if m:
        y, mo, d, h, mi = (int(x) for x in m.groups())
        return _safe_datetime(y, mo, d, h, mi, fallback)

    m = _VN_RE.match(text)
    if m:
        d, mo, y = int(m.group(1)), int(m.group(2)), int(m.group(3))
        h = int(m.group(4) or 0)
        mi = int(m.group(5) or 0)
        return _safe_datetime(y, mo, d, h, mi, fallback)

    return fallback


def _safe_datetime(y: int, mo: int, d: int, h: int, mi: int, fallback: datetime) -> datetime:
    try:
        return datetime(y, mo, d, h, mi)
    except ValueError:
        return fallback


def parse_int(value: Any, default: int = 1) -> int:
    """Ganzzahl aus Zelle/JSON; ungültig oder < 1 → default."""
    if isinstance(value, bool):
        return default
    try:
        number = int(float(str(value).strip()))
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


def parse_optional_int(value: Any) -> Optional[int]:
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return None


def cell_text(value: Any) -> str:
    """Zelleninhalt als getrimmter String (None → "")."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def is_drawn_marker(value: Any) -> bool:
    return cell_text(value).upper() in DRAWN_MARKERS


def format_sheet_time(value: datetime) -> str:
    return value.strftime(SHEET_TIME_FORMAT)


def fallback_admin(now: datetime) -> User:
    """Standard-Admin, falls ein Import/Sync kein ADMIN-Konto enthält."""
    return User(
        id="admin-fallback",
        email="admin@edu.vn",
        password="admin",
        name="Quản Trị Viên (Mặc định)",
        role=Role.ADMIN,
        draw_start_time=now.replace(second=0, microsecond=0),
        draw_end_time=now.replace(second=0, microsecond=0),
    )

"""Anbindung an den tabellengestützten Web-Endpunkt (Apps-Script-Web-App).

GET liefert einen Schnappschuss als Zeilen-Arrays:
    {"users": [[...], ...], "lessons": [[...], ...], "classes": [[...], ...]}

POST-Bodies sind JSON, gesendet als text/plain (der Endpunkt akzeptiert
keinen Preflight):
    {"action": "addUser" | "updateUser", "data": {...}}
    {"action": "updateDraw", "email": ..., "lesson": {...}, "className": ..., "timestamp": ...}

pull_from_sheet() ersetzt Konten und Katalog vollständig durch den
Schnappschuss. mirror_user()/mirror_draw() spiegeln lokale Änderungen und
schlucken Netzwerkfehler (nur Log), der lokale Bestand bleibt maßgeblich.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import requests
from pydantic import BaseModel

from config.schema import ContestConfig
from data.helpers import (
    DRAW_TIMESTAMP_FORMAT,
    cell_text,
    fallback_admin,
    format_sheet_time,
    is_drawn_marker,
    parse_int,
    parse_local_datetime,
    parse_optional_int,
)
from data.roster_store import RosterStore
from models.classroom import Classroom
from models.lesson import Lesson
from models.roster import RosterData
from models.user import Role, User

logger = logging.getLogger(__name__)

_POST_HEADERS = {"Content-Type": "text/plain;charset=utf-8"}


class SheetSyncError(Exception):
    """Endpunkt nicht erreichbar oder Antwort unbrauchbar."""


class SyncReport(BaseModel):
    """Ergebnis eines Pulls."""

    user_count: int = 0
    lesson_count: int = 0
    class_count: int = 0
    admin_added: bool = False
    warnings: list[str] = []

    @property
    def message(self) -> str:
        return (
            f"Đồng bộ thành công! Đã tải {self.user_count} giáo viên, "
            f"{self.lesson_count} bài học và {self.class_count} lớp."
        )


# ─── HTTP-Client ──────────────────────────────────────────────────────────────

class SheetSyncClient:
    """Dünner HTTP-Client für den Endpunkt.

    Args:
        script_url: URL der veröffentlichten Web-App
        timeout:    Timeout pro Anfrage in Sekunden
        session:    Optionale requests.Session (Tests, Connection-Pooling)
    """

    def __init__(
        self,
        script_url: str,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not script_url:
            raise SheetSyncError("Lỗi cấu hình hệ thống (Thiếu Script URL).")
        self.script_url = script_url
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: ContestConfig) -> "SheetSyncClient":
        return cls(config.sync.script_url or "", config.sync.timeout_seconds)

    def fetch_snapshot(self) -> dict:
        """Lädt den aktuellen Schnappschuss.

        Raises:
            SheetSyncError: Verbindungsfehler, HTTP-Fehler oder falsches Format.
        """
        try:
            resp = self.session.get(self.script_url, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as e:
            raise SheetSyncError(f"Lỗi kết nối: {e}") from e
        except ValueError as e:
            raise SheetSyncError("Dữ liệu trả về không đúng định dạng.") from e
        if not isinstance(data, dict) or "users" not in data or "lessons" not in data:
            raise SheetSyncError("Dữ liệu trả về không đúng định dạng.")
        return data

    def _post(self, payload: dict) -> None:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        try:
            resp = self.session.post(
                self.script_url, data=body, headers=_POST_HEADERS, timeout=self.timeout
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise SheetSyncError(f"Lỗi khi đồng bộ lên Google Sheet: {e}") from e

    def push_user(self, user: User, action: str = "updateUser") -> None:
        """Sendet ein Konto (addUser / updateUser)."""
        if action not in ("addUser", "updateUser"):
            raise ValueError(f"Unbekannte Aktion: {action}")
        self._post({"action": action, "data": user_payload(user)})

    def push_draw(self, user: User, lesson: Lesson, class_name: str, when: datetime) -> None:
        """Meldet ein Losergebnis."""
        self._post({
            "action": "updateDraw",
            "email": user.email,
            "lesson": lesson.model_dump(),
            "className": class_name,
            "timestamp": when.strftime(DRAW_TIMESTAMP_FORMAT),
        })


def user_payload(user: User) -> dict:
    """Konto im Feldformat des Endpunkts (Zeiten als "YYYY-MM-DD HH:mm")."""
    return {
        "id": user.id,
        "email": user.email,
        "password": user.password or "",
        "name": user.name,
        "role": user.role.value,
        "subjectGroup": user.subject_group or "",
        "drawStartTime": format_sheet_time(user.draw_start_time),
        "drawEndTime": format_sheet_time(user.draw_end_time),
        "hasDrawn": user.has_drawn,
        "drawnLessonId": user.drawn_lesson_id or "",
        "drawnClass": user.drawn_class or "",
        "forceSingleGrade": user.force_single_grade,
    }


# ─── Zeilen-Parser ────────────────────────────────────────────────────────────

def parse_lesson_rows(rows: Any) -> list[Lesson]:
    """[Fach, Khối, Woche, Stunde, Name]; kürzere Zeilen werden übersprungen."""
    lessons = []
    for i, row in enumerate(rows or []):
        if not isinstance(row, list) or len(row) < 5:
            continue
        lessons.append(Lesson(
            id=f"imported-lesson-{i}",
            subject=cell_text(row[0]),
            grade=cell_text(row[1]),
            week=parse_int(row[2]),
            period=parse_int(row[3]),
            name=cell_text(row[4]),
        ))
    return lessons


def parse_class_rows(rows: Any) -> list[Classroom]:
    """[Khối, Klassenname]."""
    classes = []
    for i, row in enumerate(rows or []):
        if not isinstance(row, list) or len(row) < 2:
            continue
        classes.append(Classroom(
            id=f"imported-class-{i}",
            grade=cell_text(row[0]),
            name=cell_text(row[1]),
        ))
    return classes


def parse_user_rows(
    rows: Any,
    lessons: list[Lesson],
    now: datetime,
    window_hours: int = 24,
) -> tuple[list[User], list[str]]:
    """Liest Konten samt Losstatus.

    Spalten: Name, E-Mail, Passwort, Rolle, Fach, Beginn, Ende, hasDrawn,
    Lektion-Fach, Lektion-Khối, Lektion-Name, Klasse, Lektion-Woche, Lektion-Stunde.

    Ein als gelost markiertes Konto, dessen Lektion nicht eindeutig im Katalog
    gefunden wird, wird als ungelost übernommen (Warnung im Report).
    """
    users: list[User] = []
    warnings: list[str] = []
    seen: set[str] = set()
    default_end = now + timedelta(hours=window_hours)
    for i, row in enumerate(rows or []):
        if not isinstance(row, list) or len(row) < 2 or not cell_text(row[1]):
            continue
        cells = list(row) + [None] * (14 - len(row))
        email = cell_text(cells[1]).lower()
        if email in seen:
            warnings.append(f"Email trùng lặp bị bỏ qua: {email}")
            continue
        seen.add(email)

        drawn_lesson_id = None
        drawn_class = None
        if is_drawn_marker(cells[7]):
            lesson = _resolve_lesson(lessons, cells)
            drawn_class = cell_text(cells[11]) or None
            if lesson is None or drawn_class is None:
                warnings.append(
                    f"{email}: đã bốc nhưng không tìm thấy bài dạy/lớp tương ứng – "
                    f"đặt lại trạng thái chưa bốc."
                )
                drawn_class = None
            else:
                drawn_lesson_id = lesson.id

        users.append(User(
            id=f"imported-user-{i}",
            name=cell_text(cells[0]) or "Chưa đặt tên",
            email=email,
            password=cell_text(cells[2]) or "123",
            role=Role.parse(cell_text(cells[3])),
            subject_group=cell_text(cells[4]) or None,
            draw_start_time=parse_local_datetime(cells[5], now),
            draw_end_time=parse_local_datetime(cells[6], default_end),
            has_drawn=drawn_lesson_id is not None,
            drawn_lesson_id=drawn_lesson_id,
            drawn_class=drawn_class,
        ))
    return users, warnings


def _resolve_lesson(lessons: list[Lesson], cells: list) -> Optional[Lesson]:
    """Volle Übereinstimmung über Fach, Khối, Name, Woche und Stunde."""
    subject, grade, name = cell_text(cells[8]), cell_text(cells[9]), cell_text(cells[10])
    week, period = parse_optional_int(cells[12]), parse_optional_int(cells[13])
    for lesson in lessons:
        if (lesson.subject == subject and lesson.grade == grade and lesson.name == name
                and lesson.week == week and lesson.period == period):
            return lesson
    return None


# ─── Pull ─────────────────────────────────────────────────────────────────────

def build_roster_from_snapshot(
    snapshot: dict,
    previous: RosterData,
    config: ContestConfig,
    now: datetime,
) -> tuple[RosterData, list[Classroom], SyncReport]:
    """Wandelt einen Schnappschuss in einen Bestand um (ohne Schreiben).

    force_single_grade bekannter E-Mails wird übernommen, da der Endpunkt
    diese Spalte nicht liefert.
    """
    lessons = parse_lesson_rows(snapshot.get("lessons"))
    classes = parse_class_rows(snapshot.get("classes"))
    users, warnings = parse_user_rows(
        snapshot.get("users"), lessons, now, config.rules.default_window_hours
    )
    if not users and not lessons:
        raise SheetSyncError("Dữ liệu từ Script rỗng.")

    known = {u.email: u for u in previous.users}
    users = [
        u.model_copy(update={"force_single_grade": known[u.email].force_single_grade})
        if u.email in known else u
        for u in users
    ]

    admin_added = False
    if not any(u.is_admin for u in users):
        users.insert(0, fallback_admin(now))
        admin_added = True

    roster = previous.model_copy(update={"users": users, "lessons": lessons})
    report = SyncReport(
        user_count=len(users),
        lesson_count=len(lessons),
        class_count=len(classes),
        admin_added=admin_added,
        warnings=warnings,
    )
    return roster, classes, report


def pull_from_sheet(
    client: SheetSyncClient,
    store: RosterStore,
    config: ContestConfig,
    clock: Optional[Callable[[], datetime]] = None,
) -> tuple[ContestConfig, SyncReport]:
    """Lädt den Schnappschuss und ersetzt Konten und Katalog im Store.

    Returns:
        (Config mit ggf. ersetzten Klassen, SyncReport). Das Speichern der
        Config ist Sache des Aufrufers.

    Raises:
        SheetSyncError: Endpunkt nicht erreichbar oder leerer Schnappschuss.
        PersistenceError: Schreiben des Bestands fehlgeschlagen.
    """
    now = (clock or datetime.now)()
    snapshot = client.fetch_snapshot()
    with store.transaction(reason="sync_pull", timeout_s=config.rules.lock_timeout_seconds):
        roster, classes, report = build_roster_from_snapshot(
            snapshot, store.snapshot(), config, now
        )
        store.replace(users=roster.users, lessons=roster.lessons)

    if classes:
        config = config.model_copy(update={"classes": classes})
    logger.info(
        f"Sync-Pull: {report.user_count} Konten, {report.lesson_count} Lektionen, "
        f"{report.class_count} Klassen, {len(report.warnings)} Warnungen"
    )
    for w in report.warnings:
        logger.warning(w)
    return config, report


# ─── Spiegeln (best effort) ───────────────────────────────────────────────────

def mirror_user(client: Optional[SheetSyncClient], user: User, action: str = "updateUser") -> bool:
    """Spiegelt ein Konto; Fehler werden nur geloggt."""
    if client is None:
        return False
    try:
        client.push_user(user, action)
    except SheetSyncError as e:
        logger.warning(f"Spiegelung von {user.email} fehlgeschlagen: {e}")
        return False
    return True


def mirror_draw(
    client: Optional[SheetSyncClient],
    user: User,
    lesson: Lesson,
    class_name: str,
    when: datetime,
) -> bool:
    """Spiegelt ein Losergebnis; Fehler werden nur geloggt."""
    if client is None:
        return False
    try:
        client.push_draw(user, lesson, class_name, when)
    except SheetSyncError as e:
        logger.warning(f"Losergebnis von {user.email} nicht gespiegelt: {e}")
        return False
    return True

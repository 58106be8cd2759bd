"""Tests für die Anbindung an den Tabellen-Endpunkt (HTTP gemockt)."""

import json
from datetime import datetime
from unittest.mock import MagicMock

import pytest
import requests

from config.defaults import default_contest_config
from data.roster_store import InMemoryRosterStore
from data.sheet_sync import (
    SheetSyncClient,
    SheetSyncError,
    build_roster_from_snapshot,
    mirror_draw,
    mirror_user,
    parse_class_rows,
    parse_lesson_rows,
    parse_user_rows,
    pull_from_sheet,
    user_payload,
)
from models.lesson import Lesson
from models.roster import RosterData
from models.user import Role, User

NOW = datetime(2024, 10, 20, 9, 0)
URL = "https://script.example/macros/s/abc/exec"

LESSON_ROWS = [
    ["Toán", "Khối 6", 1, 2, "Phân số"],
    ["Ngữ Văn", "Khối 7", "3", "4", "Thơ"],
    ["kaputt"],
]
USER_ROWS = [
    ["Quản Trị", "admin@edu.vn", "admin", "ADMIN", "", "", "", "FALSE"],
    ["GV A", "A@edu.vn", "123", "TEACHER", "Toán", "2024-10-20 08:00", "2024-10-20 17:00",
     "ĐÃ BỐC", "Toán", "Khối 6", "Phân số", "6A1", 1, 2],
    ["GV B", "b@edu.vn", "123", "", "Ngữ Văn", "2024-10-20 08:00", "2024-10-20 17:00",
     "TRUE", "Ngữ Văn", "Khối 7", "Gibt es nicht", "7A1", 3, 4],
]
CLASS_ROWS = [["Khối 6", "6A1"], ["Khối 7", "7A1"]]


def _snapshot(**overrides) -> dict:
    data = {"users": USER_ROWS, "lessons": LESSON_ROWS, "classes": CLASS_ROWS}
    data.update(overrides)
    return data


def _client(payload=None, get_error=None, post_error=None) -> tuple[SheetSyncClient, MagicMock]:
    session = MagicMock()
    if get_error is not None:
        session.get.side_effect = get_error
    else:
        session.get.return_value.json.return_value = payload
    if post_error is not None:
        session.post.side_effect = post_error
    return SheetSyncClient(URL, timeout=5, session=session), session


def _user(uid: str, email: str, **kw) -> User:
    return User(id=uid, email=email, name=uid, draw_start_time=NOW, draw_end_time=NOW, **kw)


# ─── PARSER ───────────────────────────────────────────────────────────────────

class TestParsers:
    def test_lesson_rows(self):
        lessons = parse_lesson_rows(LESSON_ROWS)
        assert [l.id for l in lessons] == ["imported-lesson-0", "imported-lesson-1"]
        assert (lessons[1].week, lessons[1].period) == (3, 4)

    def test_class_rows(self):
        classes = parse_class_rows(CLASS_ROWS + [["nur Khối"]])
        assert [(c.grade, c.name) for c in classes] == [("Khối 6", "6A1"), ("Khối 7", "7A1")]

    def test_user_rows_resolve_draw(self):
        lessons = parse_lesson_rows(LESSON_ROWS)
        users, warnings = parse_user_rows(USER_ROWS, lessons, NOW)
        admin, a, b = users

        assert admin.role == Role.ADMIN
        assert admin.draw_start_time == NOW
        assert a.email == "a@edu.vn"
        assert a.has_drawn and a.drawn_lesson_id == "imported-lesson-0"
        assert a.drawn_class == "6A1"
        assert a.draw_end_time == datetime(2024, 10, 20, 17, 0)

        # Lektion nicht im Katalog → ungelost mit Warnung
        assert not b.has_drawn and b.drawn_lesson_id is None
        assert any("b@edu.vn" in w for w in warnings)

    def test_duplicate_email_skipped(self):
        rows = [["A", "a@edu.vn"], ["A2", "A@EDU.VN"], ["", ""]]
        users, warnings = parse_user_rows(rows, [], NOW)
        assert len(users) == 1
        assert warnings

    def test_user_payload_camel_case(self):
        payload = user_payload(_user("t1", "t1@edu.vn", subject_group="Toán"))
        assert payload["subjectGroup"] == "Toán"
        assert payload["drawStartTime"] == "2024-10-20 09:00"
        assert payload["hasDrawn"] is False
        assert payload["drawnLessonId"] == ""


# ─── SNAPSHOT → BESTAND ───────────────────────────────────────────────────────

class TestBuildRoster:
    def test_keeps_force_single_grade(self):
        previous = RosterData(users=[_user("old", "a@edu.vn", force_single_grade=True)])
        roster, classes, report = build_roster_from_snapshot(
            _snapshot(), previous, default_contest_config(), NOW
        )
        assert roster.find_by_email("a@edu.vn").force_single_grade
        assert not roster.find_by_email("b@edu.vn").force_single_grade
        assert report.user_count == 3
        assert report.lesson_count == 2
        assert len(classes) == 2

    def test_fallback_admin(self):
        snap = _snapshot(users=USER_ROWS[1:])
        roster, _, report = build_roster_from_snapshot(snap, RosterData(), default_contest_config(), NOW)
        assert report.admin_added
        assert roster.users[0].email == "admin@edu.vn"
        assert roster.users[0].is_admin

    def test_empty_snapshot(self):
        with pytest.raises(SheetSyncError):
            build_roster_from_snapshot(
                {"users": [], "lessons": []}, RosterData(), default_contest_config(), NOW
            )


# ─── HTTP ─────────────────────────────────────────────────────────────────────

class TestClient:
    def test_missing_url(self):
        with pytest.raises(SheetSyncError):
            SheetSyncClient("")

    def test_connection_error(self):
        client, _ = _client(get_error=requests.ConnectionError("offline"))
        with pytest.raises(SheetSyncError):
            client.fetch_snapshot()

    def test_malformed_payload(self):
        client, _ = _client(payload={"users": []})
        with pytest.raises(SheetSyncError):
            client.fetch_snapshot()

    def test_invalid_json(self):
        client, session = _client()
        session.get.return_value.json.side_effect = ValueError("kein JSON")
        with pytest.raises(SheetSyncError):
            client.fetch_snapshot()

    def test_push_draw_body(self):
        client, session = _client()
        lesson = Lesson(id="l1", subject="Toán", grade="Khối 6", week=1, period=2, name="Phân số")
        client.push_draw(_user("t1", "t1@edu.vn"), lesson, "6A1", datetime(2024, 10, 20, 9, 5, 7))

        _, kwargs = session.post.call_args
        body = json.loads(kwargs["data"].decode("utf-8"))
        assert body["action"] == "updateDraw"
        assert body["email"] == "t1@edu.vn"
        assert body["className"] == "6A1"
        assert body["timestamp"] == "09:05:07 20/10/2024"
        assert body["lesson"]["name"] == "Phân số"
        assert kwargs["headers"]["Content-Type"].startswith("text/plain")

    def test_push_user_rejects_unknown_action(self):
        client, _ = _client()
        with pytest.raises(ValueError):
            client.push_user(_user("t1", "t1@edu.vn"), "deleteUser")


# ─── PULL & SPIEGELN ──────────────────────────────────────────────────────────

class TestPullAndMirror:
    def test_pull_replaces_store(self):
        store = InMemoryRosterStore(RosterData(
            users=[_user("old", "old@edu.vn")],
            lessons=[Lesson(id="x", subject="Toán", grade="Khối 6", week=1, period=1, name="Alt")],
        ))
        client, _ = _client(payload=_snapshot())
        config, report = pull_from_sheet(client, store, default_contest_config(), clock=lambda: NOW)

        assert store.find_by_email("old@edu.vn") is None
        assert [l.name for l in store.list_lessons()] == ["Phân số", "Thơ"]
        assert [c.name for c in config.classes] == ["6A1", "7A1"]
        assert report.warnings

    def test_pull_failure_leaves_store(self):
        store = InMemoryRosterStore(RosterData(users=[_user("old", "old@edu.vn")]))
        client, _ = _client(get_error=requests.Timeout("zu langsam"))
        with pytest.raises(SheetSyncError):
            pull_from_sheet(client, store, default_contest_config(), clock=lambda: NOW)
        assert store.find_by_email("old@edu.vn") is not None

    def test_mirror_swallows_errors(self):
        client, _ = _client(post_error=requests.ConnectionError("offline"))
        user = _user("t1", "t1@edu.vn")
        assert mirror_user(client, user, "addUser") is False
        lesson = Lesson(id="l1", subject="Toán", grade="Khối 6", week=1, period=2, name="X")
        assert mirror_draw(client, user, lesson, "6A1", NOW) is False

    def test_mirror_without_client(self):
        assert mirror_user(None, _user("t1", "t1@edu.vn")) is False

    def test_mirror_success(self):
        client, session = _client()
        assert mirror_user(client, _user("t1", "t1@edu.vn"), "updateUser") is True
        assert session.post.call_count == 1

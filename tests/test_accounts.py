"""Tests für RosterAdmin: Anmeldung und Rechte der Rollen."""

from datetime import datetime, timedelta

import pytest

from config.defaults import default_contest_config
from config.manager import StaticSettings
from data.roster_store import DuplicateEmailError, InMemoryRosterStore
from engine.accounts import RosterAdmin
from engine.draw import DrawEngine
from engine.errors import AuthenticationError, PermissionDeniedError, TeacherNotFoundError
from models.lesson import Lesson
from models.roster import RosterData
from models.user import Role, User

NOW = datetime(2024, 10, 20, 9, 0)


def _user(uid: str, role: Role = Role.TEACHER, **kw) -> User:
    return User(
        id=uid,
        email=f"{uid}@edu.vn",
        name=uid,
        password=uid,
        role=role,
        subject_group="Toán",
        draw_start_time=NOW - timedelta(hours=1),
        draw_end_time=NOW + timedelta(hours=1),
        **kw,
    )


def _setup(mirror=None):
    store = InMemoryRosterStore(RosterData(
        users=[_user("admin", Role.ADMIN), _user("mgr", Role.MANAGER), _user("t1"), _user("t2")],
        lessons=[Lesson(id="l1", subject="Toán", grade="Khối 6", week=1, period=1, name="Bài 1")],
    ))
    engine = DrawEngine(store, StaticSettings(default_contest_config()), clock=lambda: NOW)
    return RosterAdmin(store, engine, mirror=mirror), store


class TestAuthenticate:
    def test_success_case_insensitive_email(self):
        admin, _ = _setup()
        assert admin.authenticate(" ADMIN@edu.vn", "admin").role == Role.ADMIN

    def test_wrong_password(self):
        admin, _ = _setup()
        with pytest.raises(AuthenticationError):
            admin.authenticate("admin@edu.vn", "falsch")

    def test_unknown_email(self):
        admin, _ = _setup()
        with pytest.raises(AuthenticationError):
            admin.authenticate("niemand@edu.vn", "x")


class TestPermissions:
    def test_manager_adds_teacher(self):
        admin, store = _setup()
        mgr = store.get_user("mgr")
        user = admin.add_teacher(
            mgr, name="Lê Văn C", email="C@edu.vn", password="123",
            draw_start_time=NOW, draw_end_time=NOW + timedelta(hours=2),
        )
        assert user.email == "c@edu.vn"
        assert user.id.startswith("teacher-")
        assert store.find_by_email("c@edu.vn") is not None

    def test_manager_cannot_grant_role(self):
        admin, store = _setup()
        with pytest.raises(PermissionDeniedError):
            admin.add_teacher(
                store.get_user("mgr"), name="X", email="x@edu.vn", password="1",
                draw_start_time=NOW, draw_end_time=NOW, role=Role.ADMIN,
            )

    def test_teacher_cannot_manage(self):
        admin, store = _setup()
        with pytest.raises(PermissionDeniedError):
            admin.set_force_single_grade(store.get_user("t1"), "t2", True)

    def test_duplicate_email_rejected(self):
        admin, store = _setup()
        with pytest.raises(DuplicateEmailError):
            admin.add_teacher(
                store.get_user("admin"), name="X", email="t1@edu.vn", password="1",
                draw_start_time=NOW, draw_end_time=NOW,
            )

    def test_empty_fields_rejected(self):
        admin, store = _setup()
        with pytest.raises(ValueError):
            admin.add_teacher(
                store.get_user("admin"), name=" ", email="x@edu.vn", password="1",
                draw_start_time=NOW, draw_end_time=NOW,
            )

    def test_bulk_window_admin_only(self):
        """MANAGER darf ein Fenster einzeln setzen, aber nicht mehrere auf einmal."""
        admin, store = _setup()
        mgr = store.get_user("mgr")
        start, end = NOW + timedelta(days=1), NOW + timedelta(days=1, hours=3)

        updated = admin.set_window(mgr, ["t1"], start, end)
        assert updated[0].draw_start_time == start
        with pytest.raises(PermissionDeniedError):
            admin.set_window(mgr, ["t1", "t2"], start, end)

        admin.set_window(store.get_user("admin"), ["t1", "t2"], start, end)
        assert store.get_user("t2").draw_end_time == end

    def test_window_start_after_end(self):
        admin, store = _setup()
        with pytest.raises(ValueError):
            admin.set_window(store.get_user("admin"), ["t1"], NOW, NOW - timedelta(minutes=1))

    def test_delete_admin_only_not_self(self):
        admin, store = _setup()
        with pytest.raises(PermissionDeniedError):
            admin.delete_user(store.get_user("mgr"), "t1")
        with pytest.raises(PermissionDeniedError):
            admin.delete_user(store.get_user("admin"), "admin")
        admin.delete_user(store.get_user("admin"), "t1")
        assert store.get_user("t1") is None
        with pytest.raises(TeacherNotFoundError):
            admin.delete_user(store.get_user("admin"), "t1")

    def test_change_role(self):
        admin, store = _setup()
        updated = admin.change_role(store.get_user("admin"), "t1", Role.MANAGER)
        assert updated.role == Role.MANAGER
        with pytest.raises(PermissionDeniedError):
            admin.change_role(store.get_user("mgr"), "t2", Role.MANAGER)

    def test_update_teacher_fields(self):
        admin, store = _setup()
        updated = admin.update_teacher(store.get_user("mgr"), "t1", name="Neu", subject_group="Ngữ Văn")
        assert updated.name == "Neu"
        assert store.get_user("t1").subject_group == "Ngữ Văn"
        with pytest.raises(ValueError):
            admin.update_teacher(store.get_user("admin"), "t1", has_drawn=True)


class TestReset:
    def test_reset_requires_admin(self):
        admin, store = _setup()
        admin.engine.draw("t1", ["Khối 6"])
        with pytest.raises(PermissionDeniedError):
            admin.reset_draw(store.get_user("mgr"), "t1")
        assert store.get_user("t1").has_drawn

        user = admin.reset_draw(store.get_user("admin"), "t1")
        assert not user.has_drawn
        assert not store.get_user("t1").has_drawn

    def test_reset_all(self):
        admin, store = _setup()
        admin.engine.draw("t1", ["Khối 6"])
        admin.engine.draw("t2", ["Khối 6"])
        cleared = admin.reset_all(store.get_user("admin"))
        assert {u.id for u in cleared} == {"t1", "t2"}
        assert not any(u.has_drawn for u in store.list_users())


class TestMirror:
    def test_changes_are_mirrored(self):
        calls = []
        admin, store = _setup(mirror=lambda user, action: calls.append((user.id, action)) or True)
        actor = store.get_user("admin")
        new = admin.add_teacher(
            actor, name="D", email="d@edu.vn", password="1",
            draw_start_time=NOW, draw_end_time=NOW,
        )
        admin.set_force_single_grade(actor, "t1", True)
        assert calls == [(new.id, "addUser"), ("t1", "updateUser")]

    def test_failed_mirror_keeps_local_change(self):
        admin, store = _setup(mirror=lambda user, action: False)
        admin.set_force_single_grade(store.get_user("admin"), "t1", True)
        assert store.get_user("t1").force_single_grade

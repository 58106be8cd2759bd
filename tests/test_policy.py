"""Tests für die Auswahlregeln der Auslosung (engine.policy)."""

import random
from collections import Counter
from datetime import datetime

import pytest

from config.schema import DrawRules
from engine.policy import (
    MAX_USAGE_TOLERANCE,
    UNASSIGNED_CLASS,
    PoolTier,
    allowed_grade_counts,
    eligible_lessons,
    normalize_grades,
    pick_classroom,
    select_pool,
    slot_usage,
)
from models.classroom import Classroom
from models.lesson import Lesson
from models.user import Role, User

NOW = datetime(2024, 10, 20, 9, 0)


def _lesson(lid: str, subject: str = "Toán", grade: str = "Khối 6",
            week: int = 1, period: int = 1) -> Lesson:
    return Lesson(id=lid, subject=subject, grade=grade, week=week, period=period,
                  name=f"Bài {lid}")


def _user(uid: str, subject: str = "Toán", drawn: str = None, **kw) -> User:
    return User(
        id=uid,
        email=f"{uid}@edu.vn",
        name=uid,
        subject_group=subject,
        draw_start_time=NOW,
        draw_end_time=NOW,
        has_drawn=drawn is not None,
        drawn_lesson_id=drawn,
        drawn_class="6A1" if drawn else None,
        **kw,
    )


# ─── KHỐI-WAHL ────────────────────────────────────────────────────────────────

class TestGradeSelection:
    def test_normalize_strips_and_dedupes(self):
        """Leereinträge und Duplikate werden entfernt, Reihenfolge bleibt."""
        assert normalize_grades([" Khối 7", "", "Khối 6", "Khối 7 "]) == ["Khối 7", "Khối 6"]

    def test_force_single_grade(self):
        """force_single_grade erlaubt genau einen Khối – auch bei Pflichtfächern."""
        t = _user("t1", subject="Tin Học", force_single_grade=True)
        assert allowed_grade_counts(t, DrawRules(two_grade_subjects=["Tin Học"])) == (1,)

    def test_two_grade_subject(self):
        """Pflichtfach mit 2 Khối → genau 2 (Groß-/Kleinschreibung egal)."""
        t = _user("t1", subject="tin học")
        assert allowed_grade_counts(t, DrawRules(two_grade_subjects=["Tin Học", "GDCD"])) == (2,)

    def test_default_one_or_two(self):
        t = _user("t1", subject="Toán")
        assert allowed_grade_counts(t, DrawRules(two_grade_subjects=["Tin Học"])) == (1, 2)

    def test_no_subject_defaults(self):
        t = _user("t1", subject=None)
        assert allowed_grade_counts(t, DrawRules(two_grade_subjects=["Tin Học"])) == (1, 2)


# ─── EIGNUNG ──────────────────────────────────────────────────────────────────

class TestEligibility:
    def test_filters_subject_and_grade(self):
        lessons = [
            _lesson("a", "Toán", "Khối 6"),
            _lesson("b", "Toán", "Khối 7"),
            _lesson("c", "Ngữ Văn", "Khối 6"),
        ]
        result = eligible_lessons(lessons, _user("t1", "Toán"), ["Khối 6"])
        assert [l.id for l in result] == ["a"]

    def test_no_subject_matches_all_subjects(self):
        """Ohne hinterlegtes Fach zählt nur der Khối."""
        lessons = [_lesson("a", "Toán"), _lesson("c", "Ngữ Văn"), _lesson("d", "Toán", "Khối 9")]
        result = eligible_lessons(lessons, _user("t1", subject=None), ["Khối 6"])
        assert {l.id for l in result} == {"a", "c"}


# ─── SLOT-ZÄHLUNG ─────────────────────────────────────────────────────────────

class TestSlotUsage:
    def test_counts_by_signature(self):
        """Zwei Lektionen mit gleicher Signatur zählen auf dieselbe Signatur."""
        lessons = [_lesson("a"), _lesson("b"), _lesson("c", week=2)]
        users = [_user("u1", drawn="a"), _user("u2", drawn="b"), _user("u3", drawn="c")]
        usage = slot_usage(users, lessons)
        assert usage[lessons[0].signature] == 2
        assert usage[lessons[2].signature] == 1

    def test_excludes_user(self):
        lessons = [_lesson("a")]
        users = [_user("u1", drawn="a"), _user("u2", drawn="a")]
        usage = slot_usage(users, lessons, exclude_user_id="u1")
        assert usage[lessons[0].signature] == 1

    def test_ignores_dangling_and_undrawn(self):
        """Ergebnisse ohne Lektion im Katalog und offene Konten zählen nicht."""
        lessons = [_lesson("a")]
        users = [_user("u1", drawn="gone"), _user("u2")]
        assert sum(slot_usage(users, lessons).values()) == 0


# ─── TIER-POOLS ───────────────────────────────────────────────────────────────

class TestSelectPool:
    def test_fresh_preferred(self):
        used, fresh = _lesson("a", period=1), _lesson("b", period=2)
        pool, tier = select_pool([used, fresh], Counter({used.signature: 1}))
        assert tier == PoolTier.FRESH
        assert pool == [fresh]

    def test_tolerated_when_no_fresh(self):
        a, b = _lesson("a", period=1), _lesson("b", period=2)
        usage = Counter({a.signature: 1, b.signature: MAX_USAGE_TOLERANCE})
        pool, tier = select_pool([a, b], usage)
        assert tier == PoolTier.TOLERATED
        assert pool == [a]

    def test_exhausted(self):
        a = _lesson("a")
        pool, tier = select_pool([a], Counter({a.signature: MAX_USAGE_TOLERANCE}))
        assert pool == []
        assert tier is None

    def test_tolerance_constant(self):
        assert MAX_USAGE_TOLERANCE == 2


# ─── KLASSENWAHL ──────────────────────────────────────────────────────────────

class TestPickClassroom:
    def test_only_same_grade(self):
        classes = [
            Classroom(id="c1", grade="Khối 6", name="6A1"),
            Classroom(id="c2", grade="Khối 6", name="6A2"),
            Classroom(id="c3", grade="Khối 7", name="7A1"),
        ]
        rng = random.Random(1)
        picks = {pick_classroom(classes, "Khối 6", rng) for _ in range(50)}
        assert picks == {"6A1", "6A2"}

    def test_unassigned_sentinel(self):
        classes = [Classroom(id="c3", grade="Khối 7", name="7A1")]
        assert pick_classroom(classes, "Khối 9", random.Random(0)) == UNASSIGNED_CLASS


# ─── USER-MODELL ──────────────────────────────────────────────────────────────

class TestUserModel:
    def test_partial_result_rejected(self):
        """has_drawn ohne Klasse verletzt die Invariante."""
        with pytest.raises(ValueError):
            User(id="u", email="u@edu.vn", name="u", draw_start_time=NOW,
                 draw_end_time=NOW, has_drawn=True, drawn_lesson_id="a")

    def test_result_without_flag_rejected(self):
        with pytest.raises(ValueError):
            User(id="u", email="u@edu.vn", name="u", draw_start_time=NOW,
                 draw_end_time=NOW, drawn_lesson_id="a", drawn_class="6A1")

    def test_email_normalized_and_role_parse(self):
        u = User(id="u", email="  GV@Edu.VN ", name="u", draw_start_time=NOW, draw_end_time=NOW)
        assert u.email == "gv@edu.vn"
        assert Role.parse(" manager ") == Role.MANAGER
        assert Role.parse("unbekannt") == Role.TEACHER

    def test_window_inclusive(self):
        u = _user("u")
        assert u.is_within_window(NOW)

"""Auswahlregeln der Auslosung: Eignung, Slot-Zählung, Tier-Pools, Klassenwahl.

Alle Funktionen sind rein (keine I/O) und arbeiten auf Snapshots des Rosters.
Die Slot-Nutzung wird bei jedem Aufruf neu aus dem Roster berechnet; es gibt
keinen persistenten Zähler, der veralten könnte.
"""

import random
from collections import Counter
from enum import Enum
from typing import Iterable, Optional, Sequence

from config.schema import DrawRules
from models.classroom import Classroom
from models.lesson import Lesson
from models.slot import SlotSignature
from models.user import User

# Eine Signatur darf von höchstens einer weiteren Lehrkraft belegt sein,
# bevor sie aus dem Pool fällt. Fester Wert ohne Konfigurationsfläche.
MAX_USAGE_TOLERANCE = 2

# Vergebener Klassenname, wenn für den Khối keine Klasse konfiguriert ist
UNASSIGNED_CLASS = "Chưa xếp lớp"


class PoolTier(str, Enum):
    FRESH = "fresh"          # Tier A: Signatur noch unbenutzt
    TOLERATED = "tolerated"  # Tier B: Nutzung < MAX_USAGE_TOLERANCE


def normalize_grades(grades: Iterable[str]) -> list[str]:
    """Trimmt, entfernt Leereinträge und Duplikate (Reihenfolge bleibt)."""
    out: list[str] = []
    for g in grades:
        g = str(g).strip()
        if g and g not in out:
            out.append(g)
    return out


def allowed_grade_counts(teacher: User, rules: DrawRules) -> tuple[int, ...]:
    """Erlaubte Anzahl gewählter Khối für eine Lehrkraft.

    force_single_grade → genau 1; Pflichtfach mit 2 Khối → genau 2; sonst 1 oder 2.
    """
    if teacher.force_single_grade:
        return (1,)
    if rules.requires_two_grades(teacher.subject_group):
        return (2,)
    return (1, 2)


def eligible_lessons(lessons: Iterable[Lesson], teacher: User, grades: Sequence[str]) -> list[Lesson]:
    """Kandidaten: Khối gewählt UND (kein Fach hinterlegt ODER Fach passt)."""
    wanted = set(grades)
    subject = teacher.subject_group
    return [
        lesson for lesson in lessons
        if lesson.grade in wanted and (not subject or lesson.subject == subject)
    ]


def slot_usage(
    users: Iterable[User],
    lessons: Iterable[Lesson],
    exclude_user_id: Optional[str] = None,
) -> Counter:
    """Zählt belegte Signaturen über alle Lehrkräfte mit Losergebnis.

    Ergebnisse, deren Lektion nicht mehr im Katalog ist, zählen nicht.
    """
    by_id = {lesson.id: lesson for lesson in lessons}
    usage: Counter = Counter()
    for u in users:
        if u.id == exclude_user_id or not u.has_drawn or not u.drawn_lesson_id:
            continue
        lesson = by_id.get(u.drawn_lesson_id)
        if lesson is not None:
            usage[lesson.signature] += 1
    return usage


def select_pool(
    candidates: Sequence[Lesson],
    usage: "Counter[SlotSignature]",
    tolerance: int = MAX_USAGE_TOLERANCE,
) -> tuple[list[Lesson], Optional[PoolTier]]:
    """Bestimmt den finalen Pool: erst Tier A, sonst Tier B, sonst leer."""
    fresh = [l for l in candidates if usage.get(l.signature, 0) == 0]
    if fresh:
        return fresh, PoolTier.FRESH
    tolerated = [l for l in candidates if usage.get(l.signature, 0) < tolerance]
    if tolerated:
        return tolerated, PoolTier.TOLERATED
    return [], None


def pick_classroom(classes: Iterable[Classroom], grade: str, rng: random.Random) -> str:
    """Zufällige Klasse des Khối; ohne Klasse wird UNASSIGNED_CLASS vergeben."""
    matching = [c for c in classes if c.grade == grade]
    if not matching:
        return UNASSIGNED_CLASS
    return rng.choice(matching).name

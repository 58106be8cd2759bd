"""DrawEngine – lost einer Lehrkraft genau einmal eine Lektion und eine Klasse zu.

Ablauf pro Aufruf (komplett innerhalb einer Store-Transaktion):
  1. Vorbedingungen: Konto existiert → noch nicht gelost → Zeitfenster → Khối-Wahl
  2. Kandidaten: Khối gewählt, Fach passt
  3. Slot-Nutzung aller anderen Lehrkräfte frisch zählen
  4. Tier A (unbenutzt) → Tier B (< Toleranz) → NotAvailable
  5. Gleichverteilte Wahl von Lektion und Klasse
  6. Ein einziger Write des aktualisierten Kontos

Das Spiegeln an den Sync-Endpunkt ist Aufgabe des Aufrufers.
"""

import logging
import random
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Protocol, Sequence, Union

from pydantic import BaseModel

from config.schema import ContestConfig
from data.roster_store import RecordChangedError, RosterStore
from engine.errors import (
    AlreadyDrawnError,
    InvalidGradeSelectionError,
    OutsideWindowError,
    TeacherNotFoundError,
)
from engine.policy import (
    PoolTier,
    allowed_grade_counts,
    eligible_lessons,
    normalize_grades,
    pick_classroom,
    select_pool,
    slot_usage,
)
from models.lesson import Lesson
from models.user import User

logger = logging.getLogger(__name__)


class SettingsSource(Protocol):
    def load(self) -> ContestConfig: ...


# ─── Ergebnis-Modelle ─────────────────────────────────────────────────────────

class DrawResult(BaseModel):
    """Erfolgreiche Auslosung."""

    teacher_id: str
    lesson: Lesson
    class_name: str
    tier: PoolTier
    drawn_at: datetime


class NotAvailableReason(str, Enum):
    NO_CANDIDATES = "no_candidates"    # Keine Lektion für Fach + Khối
    POOL_EXHAUSTED = "pool_exhausted"  # Alle Signaturen an der Toleranzgrenze


class NotAvailable(BaseModel):
    """Kein Los möglich – regulärer Ausgang, kein Fehler. Zustand unverändert."""

    teacher_id: str
    selected_grades: list[str]
    reason: NotAvailableReason
    candidate_count: int = 0

    @property
    def message(self) -> str:
        return ("Hiện tại đã hết tiết dạy phù hợp trong các khối đã chọn. "
                "Vui lòng chọn khối lớp khác.")


DrawOutcome = Union[DrawResult, NotAvailable]


# ─── Engine ───────────────────────────────────────────────────────────────────

class DrawEngine:
    """Auslosung über einem Roster-Store und einem Settings-Store.

    Verwendung:
        engine = DrawEngine(JsonRosterStore(path), ConfigManager())
        outcome = engine.draw(teacher_id, ["Khối 6", "Khối 7"])
    """

    def __init__(
        self,
        store: RosterStore,
        settings: SettingsSource,
        *,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self._rng = rng or random.Random()
        self._clock = clock or datetime.now

    def draw(self, teacher_id: str, selected_grades: Sequence[str]) -> DrawOutcome:
        """Führt eine Auslosung für teacher_id durch.

        Returns:
            DrawResult bei Erfolg, NotAvailable wenn kein Pool übrig ist.

        Raises:
            TeacherNotFoundError, AlreadyDrawnError, OutsideWindowError,
            InvalidGradeSelectionError: Vorbedingung verletzt, nichts geändert.
            PersistenceError: Lesen/Schreiben fehlgeschlagen (wiederholbar),
                das Konto bleibt ungelost.
        """
        grades = normalize_grades(selected_grades)
        config = self.settings.load()

        with self.store.transaction(
            reason=f"draw:{teacher_id}",
            timeout_s=config.rules.lock_timeout_seconds,
        ):
            roster = self.store.snapshot()
            teacher = roster.get_user(teacher_id)
            self._check_preconditions(teacher, teacher_id, grades, config)

            candidates = eligible_lessons(roster.lessons, teacher, grades)
            if not candidates:
                logger.info(f"Keine Kandidaten für {teacher_id} ({teacher.subject_group}, {grades})")
                return NotAvailable(
                    teacher_id=teacher_id,
                    selected_grades=grades,
                    reason=NotAvailableReason.NO_CANDIDATES,
                )

            usage = slot_usage(roster.users, roster.lessons, exclude_user_id=teacher_id)
            pool, tier = select_pool(candidates, usage)
            if not pool:
                logger.info(
                    f"Pool erschöpft für {teacher_id}: {len(candidates)} Kandidaten, "
                    f"alle Signaturen an der Toleranzgrenze"
                )
                return NotAvailable(
                    teacher_id=teacher_id,
                    selected_grades=grades,
                    reason=NotAvailableReason.POOL_EXHAUSTED,
                    candidate_count=len(candidates),
                )

            lesson = self._rng.choice(pool)
            class_name = pick_classroom(config.classes, lesson.grade, self._rng)

            updated = teacher.model_copy(update={
                "has_drawn": True,
                "drawn_lesson_id": lesson.id,
                "drawn_class": class_name,
            })
            try:
                self.store.save_user(updated, require_undrawn=True)
            except RecordChangedError as e:
                raise AlreadyDrawnError(teacher_id, e.current.drawn_lesson_id) from e

        logger.info(
            f"Los gezogen: {teacher.email} → {lesson.id} ({lesson.signature.key}), "
            f"Klasse {class_name}, Tier {tier.value}, Pool {len(pool)}/{len(candidates)}"
        )
        return DrawResult(
            teacher_id=teacher_id,
            lesson=lesson,
            class_name=class_name,
            tier=tier,
            drawn_at=self._clock(),
        )

    def _check_preconditions(
        self,
        teacher: Optional[User],
        teacher_id: str,
        grades: list[str],
        config: ContestConfig,
    ) -> None:
        """Prüft die Vorbedingungen in fester Reihenfolge."""
        if teacher is None or not teacher.is_participant:
            raise TeacherNotFoundError(teacher_id)
        if teacher.has_drawn:
            raise AlreadyDrawnError(teacher_id, teacher.drawn_lesson_id)
        now = self._clock()
        if not teacher.is_within_window(now):
            raise OutsideWindowError(teacher.draw_start_time, teacher.draw_end_time, now)
        allowed = allowed_grade_counts(teacher, config.rules)
        if len(grades) not in allowed:
            raise InvalidGradeSelectionError(grades, allowed)

    def reset(self, teacher_id: str) -> User:
        """Löscht das Losergebnis einer Lehrkraft (Berechtigung prüft der Aufrufer).

        Idempotent: ein Konto ohne Ergebnis wird unverändert zurückgegeben.
        """
        with self.store.transaction(reason=f"reset:{teacher_id}"):
            user = self.store.snapshot().get_user(teacher_id)
            if user is None:
                raise TeacherNotFoundError(teacher_id)
            if not user.has_drawn and user.drawn_lesson_id is None:
                return user
            cleared = user.cleared()
            self.store.save_user(cleared)
        logger.info(f"Losergebnis zurückgesetzt: {user.email} (war {user.drawn_lesson_id})")
        return cleared

    def reset_many(self, teacher_ids: Sequence[str]) -> list[User]:
        """Setzt mehrere Ergebnisse in einem einzigen Write zurück."""
        with self.store.transaction(reason="reset_many"):
            roster = self.store.snapshot()
            users = []
            for tid in teacher_ids:
                user = roster.get_user(tid)
                if user is None:
                    raise TeacherNotFoundError(tid)
                users.append(user.cleared())
            if users:
                self.store.save_users(users)
        logger.info(f"{len(users)} Losergebnisse zurückgesetzt")
        return users

"""Demo-Daten-Generator für die Auslosung.

Erzeugt einen zufälligen Lektionskatalog und passende Lehrkräfte auf Basis
der ContestConfig, damit sich Auslosung, Export und Statusbericht ohne
echte Schuldaten ausprobieren lassen.

Eigenschaften:
  - 50 Lektionen (Fach × Khối zufällig, Woche 1–4, Stunde 1–5)
  - Jedes Fach mit Lektionen bekommt mindestens eine Lehrkraft,
    sofern genug Lehrkräfte angefordert sind
  - Zeitfenster: überwiegend offen um "jetzt", einige in Zukunft/Vergangenheit
  - Genau ein ADMIN-Konto (admin@edu.vn / admin)
"""

import random
import unicodedata
from datetime import datetime, timedelta
from typing import Callable, Optional

from config.schema import ContestConfig
from models.lesson import Lesson
from models.roster import RosterData
from models.user import Role, User

# ─── Namens-Listen ────────────────────────────────────────────────────────────

_LAST_NAMES = [
    "Nguyễn", "Trần", "Lê", "Phạm", "Hoàng", "Huỳnh", "Phan", "Vũ", "Võ",
    "Đặng", "Bùi", "Đỗ", "Hồ", "Ngô", "Dương", "Lý",
]

_MIDDLE_NAMES = ["Văn", "Thị", "Hữu", "Minh", "Thanh", "Ngọc", "Quốc", "Thu"]

_FIRST_NAMES = [
    "An", "Bình", "Châu", "Dũng", "Giang", "Hà", "Hải", "Hạnh", "Hùng",
    "Lan", "Linh", "Long", "Mai", "Nam", "Nga", "Phong", "Phương", "Quân",
    "Sơn", "Tâm", "Thảo", "Trang", "Tuấn", "Vy", "Yến",
]

LESSON_COUNT = 50


def _ascii_slug(text: str) -> str:
    """"Nguyễn Văn An" → "nguyenvanan" (für E-Mail-Adressen)."""
    text = text.replace("Đ", "D").replace("đ", "d")
    normalized = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in normalized if ch.isascii() and ch.isalnum()).lower()


class DemoDataGenerator:
    """Generiert einen vollständigen Demo-Bestand auf Basis der ContestConfig."""

    def __init__(
        self,
        config: ContestConfig,
        seed: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config
        self.rng = random.Random(seed)
        self._clock = clock or datetime.now
        self._used_emails: set[str] = set()

    # ─── Lektionen ────────────────────────────────────────────────────────────

    def _generate_lessons(self, count: int) -> list[Lesson]:
        if not self.config.subjects or not self.config.grades:
            return []
        return [
            Lesson(
                id=f"lesson-{i}",
                subject=self.rng.choice(self.config.subjects),
                grade=self.rng.choice(self.config.grades),
                week=self.rng.randint(1, 4),
                period=self.rng.randint(1, 5),
                name=f"Bài giảng mẫu số {i + 1}: Chủ đề tự chọn nâng cao",
            )
            for i in range(count)
        ]

    # ─── Lehrkräfte ───────────────────────────────────────────────────────────

    def _random_name(self) -> str:
        return " ".join((
            self.rng.choice(_LAST_NAMES),
            self.rng.choice(_MIDDLE_NAMES),
            self.rng.choice(_FIRST_NAMES),
        ))

    def _email_for(self, name: str) -> str:
        base = _ascii_slug(name) or "giaovien"
        email, n = f"{base}@edu.vn", 2
        while email in self._used_emails:
            email = f"{base}{n}@edu.vn"
            n += 1
        self._used_emails.add(email)
        return email

    def _window(self, now: datetime) -> tuple[datetime, datetime]:
        """80 % offen um jetzt, 10 % in der Zukunft, 10 % abgelaufen."""
        hours = self.config.rules.default_window_hours
        roll = self.rng.random()
        if roll < 0.8:
            start = now - timedelta(hours=1)
        elif roll < 0.9:
            start = now + timedelta(days=1)
        else:
            start = now - timedelta(hours=hours + 2)
        return start, start + timedelta(hours=hours)

    def _generate_teachers(self, subjects: list[str], count: int, now: datetime) -> list[User]:
        # Jedes Fach mit Lektionen mindestens einmal (soweit count reicht), Rest zufällig
        assigned = list(subjects[:count])
        while len(assigned) < count and subjects:
            assigned.append(self.rng.choice(subjects))

        teachers = []
        for i, subject in enumerate(assigned):
            name = self._random_name()
            start, end = self._window(now)
            teachers.append(User(
                id=f"teacher-{i + 1}",
                email=self._email_for(name),
                name=name,
                password="123",
                role=Role.MANAGER if i == 0 else Role.TEACHER,
                subject_group=subject,
                draw_start_time=start,
                draw_end_time=end,
                force_single_grade=self.rng.random() < 0.1,
            ))
        return teachers

    # ─── Gesamt ───────────────────────────────────────────────────────────────

    def generate(self, teacher_count: int = 20, lesson_count: int = LESSON_COUNT) -> RosterData:
        """Erzeugt einen Bestand mit Admin, Lehrkräften und Lektionskatalog."""
        now = self._clock().replace(second=0, microsecond=0)
        lessons = self._generate_lessons(lesson_count)
        subjects = sorted({l.subject for l in lessons}, key=self.config.subjects.index)

        admin = User(
            id="admin-1",
            email="admin@edu.vn",
            name="Quản Trị Viên",
            password="admin",
            role=Role.ADMIN,
            draw_start_time=now,
            draw_end_time=now,
        )
        self._used_emails.add(admin.email)
        teachers = self._generate_teachers(subjects, teacher_count, now)

        return RosterData(users=[admin] + teachers, lessons=lessons, created_at=now)

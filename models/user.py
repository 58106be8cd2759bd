"""Datenmodell für Benutzer und Lehrkräfte (Pydantic v2)."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator


class Role(str, Enum):
    ADMIN = "ADMIN"      # Quản trị viên: Vollzugriff inkl. Sync, Löschen, Reset
    MANAGER = "MANAGER"  # Quản lý: Verwaltung ohne Sync/Löschen
    TEACHER = "TEACHER"  # Giáo viên: nur Auslosung

    @classmethod
    def parse(cls, raw: str) -> "Role":
        """Unbekannte Werte werden als TEACHER gelesen."""
        value = str(raw or "").strip().upper()
        for role in cls:
            if role.value == value:
                return role
        return cls.TEACHER


class User(BaseModel):
    """Ein Benutzerkonto. Nicht-Admins nehmen an der Auslosung teil."""

    id: str
    email: str
    name: str
    password: Optional[str] = None  # Klartext (bekannte Lücke, siehe DESIGN.md)
    role: Role = Role.TEACHER
    subject_group: Optional[str] = None  # Môn giảng dạy; leer = alle Fächer
    draw_start_time: datetime             # Lokale Zeit, ohne Zeitzone
    draw_end_time: datetime
    has_drawn: bool = False
    drawn_lesson_id: Optional[str] = None
    drawn_class: Optional[str] = None
    force_single_grade: bool = False      # True = genau 1 Khối wählbar

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("subject_group", "drawn_lesson_id", "drawn_class", mode="before")
    @classmethod
    def _empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @model_validator(mode="after")
    def _check_draw_state(self):
        has_result = self.drawn_lesson_id is not None and self.drawn_class is not None
        partial = (self.drawn_lesson_id is None) != (self.drawn_class is None)
        if partial or (self.has_drawn and not has_result):
            raise ValueError(
                f"{self.email}: has_drawn erfordert drawn_lesson_id UND drawn_class"
            )
        if not self.has_drawn and has_result:
            raise ValueError(
                f"{self.email}: Losergebnis gesetzt, obwohl has_drawn=False"
            )
        return self

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_participant(self) -> bool:
        """True für alle Konten, die auslosen dürfen (alles außer ADMIN)."""
        return self.role != Role.ADMIN

    def is_within_window(self, now: datetime) -> bool:
        """Prüft das persönliche Zeitfenster, beide Grenzen inklusive."""
        return self.draw_start_time <= now <= self.draw_end_time

    def cleared(self) -> "User":
        """Kopie ohne Losergebnis."""
        return self.model_copy(update={
            "has_drawn": False,
            "drawn_lesson_id": None,
            "drawn_class": None,
        })

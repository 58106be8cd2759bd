"""Datenmodell für eine Lektion aus dem Katalog (Pydantic v2)."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.slot import SlotSignature


class Lesson(BaseModel):
    """Katalogeintrag: eine auslosbare Unterrichtsstunde.

    Lektionen werden nur durch Import/Sync angelegt und nie verändert;
    gelöscht werden sie ausschließlich durch einen vollständigen Katalog-Ersatz.
    """

    model_config = ConfigDict(frozen=True)

    id: str                    # "lesson-0", "imported-lesson-12"
    subject: str               # Môn học, z.B. "Toán"
    grade: str                 # Khối lớp, z.B. "Khối 6"
    week: int = Field(ge=1)    # Tuần
    period: int = Field(ge=1)  # Tiết
    name: str                  # Tên bài

    @field_validator("subject", "grade")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()

    @property
    def signature(self) -> SlotSignature:
        return SlotSignature(self.subject, self.grade, self.week, self.period)

"""Datenmodell für eine Lehrklasse (Pydantic v2)."""

from pydantic import BaseModel, field_validator


class Classroom(BaseModel):
    """Eine konkrete Klasse, in der die Vorführstunde gehalten wird."""

    id: str     # "c-6a1", "imported-class-3"
    grade: str  # "Khối 6" (verweist auf ContestConfig.grades)
    name: str   # "6A1"

    @field_validator("grade", "name")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()

from pydantic import BaseModel, Field, field_validator
from typing import Optional

from models.classroom import Classroom


def _dedupe(values: list[str]) -> list[str]:
    out: list[str] = []
    for v in values:
        v = str(v).strip()
        if v and v not in out:
            out.append(v)
    return out


# ─── SYNCHRONISATION (Google-Apps-Script-Endpunkt) ───

class SyncConfig(BaseModel):
    """Anbindung an den tabellengestützten Web-Endpunkt."""
    # URL der veröffentlichten Apps-Script-Web-App (None = Sync deaktiviert)
    script_url: Optional[str] = Field(None,
        description="URL des Sync-Endpunkts (leer = deaktiviert)")
    # HTTP-Timeout pro Anfrage
    timeout_seconds: float = Field(15.0, gt=0, le=120,
        description="HTTP-Timeout in Sekunden")
    # Losergebnisse nach erfolgreicher Auslosung an den Endpunkt spiegeln
    mirror_draws: bool = Field(True,
        description="Losergebnisse an den Endpunkt spiegeln")

    @property
    def enabled(self) -> bool:
        return bool(self.script_url)


# ─── AUSLOSUNGSREGELN ───

class DrawRules(BaseModel):
    """Regeln rund um die Auslosung.

    Die Kollisions-Toleranz ist bewusst KEIN Teil der Konfiguration
    (siehe engine.policy.MAX_USAGE_TOLERANCE).
    """
    # Fächer, deren Lehrkräfte genau 2 Khối wählen müssen (außer force_single_grade)
    two_grade_subjects: list[str] = Field(
        default=["Tin Học", "GDCD", "Mĩ thuật", "Âm nhạc"],
        description="Fächer mit Pflicht zu 2 Khối")
    # Maximale Wartezeit auf die Store-Transaktion
    lock_timeout_seconds: float = Field(10.0, gt=0, le=300,
        description="Timeout für die Roster-Sperre (Sekunden)")
    # Länge des Zeitfensters, wenn ein Import kein Ende angibt
    default_window_hours: int = Field(24, ge=1, le=24 * 60,
        description="Standard-Länge des Zeitfensters (Stunden)")

    def requires_two_grades(self, subject: Optional[str]) -> bool:
        if not subject:
            return False
        s = subject.strip().lower()
        return any(x.strip().lower() == s for x in self.two_grade_subjects)


# ─── GESAMT-CONFIG ───

class ContestConfig(BaseModel):
    """Gesamtkonfiguration des Wettbewerbs (Fächer, Khối, Klassen, Regeln)."""
    # Name der Schule
    school_name: str = Field("Trường THCS",
        description="Name der Schule")
    # Môn học (Fächer)
    subjects: list[str] = Field(description="Fächer")
    # Khối lớp (Jahrgänge)
    grades: list[str] = Field(description="Khối")
    # Klassen, gruppiert über Classroom.grade
    classes: list[Classroom] = Field(default_factory=list)
    # Auslosungsregeln
    rules: DrawRules = Field(default_factory=DrawRules)
    # Sync-Endpunkt
    sync: SyncConfig = Field(default_factory=SyncConfig)

    @field_validator("subjects", "grades")
    @classmethod
    def _normalize_names(cls, v: list[str]) -> list[str]:
        return _dedupe(v)

    def classes_for_grade(self, grade: str) -> list[Classroom]:
        return [c for c in self.classes if c.grade == grade]

    # ─── Bearbeitung (liefert jeweils eine neue Config) ───

    def with_subject(self, name: str) -> "ContestConfig":
        return self.model_copy(update={"subjects": _dedupe(self.subjects + [name])})

    def without_subject(self, name: str) -> "ContestConfig":
        return self.model_copy(update={"subjects": [s for s in self.subjects if s != name]})

    def with_grade(self, name: str) -> "ContestConfig":
        return self.model_copy(update={"grades": _dedupe(self.grades + [name])})

    def without_grade(self, name: str) -> "ContestConfig":
        """Entfernt einen Khối samt aller zugehörigen Klassen."""
        return self.model_copy(update={
            "grades": [g for g in self.grades if g != name],
            "classes": [c for c in self.classes if c.grade != name],
        })

    def with_class(self, grade: str, name: str, class_id: Optional[str] = None) -> "ContestConfig":
        """Fügt eine Klasse hinzu; doppelte (Khối, Name)-Paare werden ignoriert."""
        grade, name = grade.strip(), name.strip()
        if not grade or not name:
            return self
        if any(c.grade == grade and c.name == name for c in self.classes):
            return self
        cid = class_id or f"c-{name.lower().replace(' ', '')}"
        existing_ids = {c.id for c in self.classes}
        base, n = cid, 2
        while cid in existing_ids:
            cid = f"{base}-{n}"
            n += 1
        return self.model_copy(update={
            "classes": self.classes + [Classroom(id=cid, grade=grade, name=name)],
        })

    def without_class(self, class_id: str) -> "ContestConfig":
        return self.model_copy(update={
            "classes": [c for c in self.classes if c.id != class_id],
        })

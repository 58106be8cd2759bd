"""Slot-Signatur: Fach × Khối × Woche × Stunde."""

from dataclasses import dataclass


@dataclass(frozen=True)
class SlotSignature:
    """Identifiziert einen Unterrichts-Slot unabhängig von der konkreten Lektion.

    Mehrere Lektionen dürfen dieselbe Signatur tragen (Parallelabschnitte).
    Die Kollisionszählung der Auslosung läuft ausschließlich über Signaturen.
    Immutable (frozen=True) damit sie als Dict-Key nutzbar ist.
    """

    subject: str
    grade: str
    week: int
    period: int

    @property
    def key(self) -> str:
        """String-Bezeichner im Format "Fach-Khối-Woche-Stunde"."""
        return f"{self.subject}-{self.grade}-{self.week}-{self.period}"

    def __str__(self) -> str:
        return f"{self.subject} | {self.grade} | Tuần {self.week} | Tiết {self.period}"

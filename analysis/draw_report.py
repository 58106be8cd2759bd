"""Statusbericht der Auslosung.

Zeigt Fortschritt (gelost / offen), belegte Signaturen, verbleibende
Kapazität pro Fach × Khối unter der Kollisions-Toleranz und die Verteilung
der Ergebnisse auf Klassen.
"""

from collections import Counter, defaultdict
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from config.schema import ContestConfig
from engine.policy import MAX_USAGE_TOLERANCE, UNASSIGNED_CLASS, slot_usage
from models.roster import RosterData


# ─── Metriken-Modelle ─────────────────────────────────────────────────────────

class SignatureUsage(BaseModel):
    """Belegung einer Slot-Signatur."""

    key: str
    label: str
    used: int
    lessons: int  # Anzahl Lektionen mit dieser Signatur


class CapacityRow(BaseModel):
    """Kapazität pro Fach × Khối."""

    subject: str
    grade: str
    signatures: int        # verschiedene Signaturen im Katalog
    fresh: int             # davon unbenutzt (Tier A)
    remaining_draws: int   # Summe (Toleranz − Nutzung) über alle Signaturen
    pending_teachers: int  # offene Lehrkräfte dieses Fachs


class DrawStatusReport(BaseModel):
    """Vollständiger Statusbericht."""

    generated_at: datetime
    teacher_count: int
    drawn_count: int
    pending_count: int
    open_now: int      # offene Lehrkräfte mit aktuell offenem Zeitfenster
    expired: int       # offene Lehrkräfte mit abgelaufenem Zeitfenster
    usage: list[SignatureUsage]
    capacity: list[CapacityRow]
    class_counts: dict[str, int]
    unassigned: int    # Ergebnisse ohne konkrete Klasse

    @property
    def progress(self) -> float:
        return self.drawn_count / self.teacher_count if self.teacher_count else 0.0

    def print_rich(self) -> None:
        """Gibt den Bericht formatiert über Rich aus."""
        from rich.console import Console
        from rich.panel import Panel
        from rich.table import Table
        from rich import box

        console = Console()

        color = "green" if self.progress >= 0.9 else "yellow" if self.progress >= 0.5 else "red"
        console.print(Panel(
            f"Giáo viên: [bold]{self.teacher_count}[/bold]   "
            f"Đã bốc: [bold {color}]{self.drawn_count}[/bold {color}] "
            f"({self.progress:.0%})   Chưa bốc: [bold]{self.pending_count}[/bold]\n"
            f"Đang mở: {self.open_now}   Hết giờ: {self.expired}   "
            f"Chưa xếp lớp: {self.unassigned}",
            title=f"Tình hình bốc thăm – {self.generated_at:%d/%m/%Y %H:%M}",
            border_style="cyan",
        ))

        if self.capacity:
            table = Table(title="Sức chứa còn lại", box=box.ROUNDED)
            table.add_column("Môn", style="bold")
            table.add_column("Khối")
            table.add_column("Slot", justify="right")
            table.add_column("Chưa dùng", justify="right")
            table.add_column("Còn bốc được", justify="right")
            table.add_column("GV chờ", justify="right")
            for row in self.capacity:
                short = row.pending_teachers > row.remaining_draws
                style = "red" if short else ""
                table.add_row(
                    row.subject, row.grade, str(row.signatures), str(row.fresh),
                    f"[{style}]{row.remaining_draws}[/{style}]" if style else str(row.remaining_draws),
                    str(row.pending_teachers),
                )
            console.print(table)

        used = [u for u in self.usage if u.used > 0]
        if used:
            table = Table(title="Slot đã dùng", box=box.SIMPLE)
            table.add_column("Slot")
            table.add_column("Lượt", justify="right")
            for u in used:
                mark = "[yellow]" if u.used >= MAX_USAGE_TOLERANCE else ""
                table.add_row(u.label, f"{mark}{u.used}/{MAX_USAGE_TOLERANCE}")
            console.print(table)

        if self.class_counts:
            console.print("[bold]Theo lớp:[/bold] " + ", ".join(
                f"{name}: {n}" for name, n in sorted(self.class_counts.items())
            ))


# ─── Analyzer ─────────────────────────────────────────────────────────────────

class DrawStatusAnalyzer:
    """Berechnet den Statusbericht aus einem Roster-Snapshot."""

    def __init__(self, config: Optional[ContestConfig] = None) -> None:
        self.config = config

    def analyze(self, roster: RosterData, now: Optional[datetime] = None) -> DrawStatusReport:
        now = now or datetime.now()
        teachers = roster.teachers()
        pending = [t for t in teachers if not t.has_drawn]
        usage = slot_usage(roster.users, roster.lessons)

        # Lektionen pro Signatur
        per_sig: dict = defaultdict(int)
        for lesson in roster.lessons:
            per_sig[lesson.signature] += 1

        usage_rows = [
            SignatureUsage(key=sig.key, label=str(sig), used=usage.get(sig, 0), lessons=n)
            for sig, n in sorted(per_sig.items(), key=lambda kv: kv[0].key)
        ]

        # Kapazität pro Fach × Khối
        by_pair: dict[tuple[str, str], list] = defaultdict(list)
        for sig in per_sig:
            by_pair[(sig.subject, sig.grade)].append(sig)
        pending_by_subject = Counter(t.subject_group or "" for t in pending)
        grade_order = {g: i for i, g in enumerate(self.config.grades)} if self.config else {}

        capacity = []
        for (subject, grade), sigs in sorted(
            by_pair.items(), key=lambda kv: (kv[0][0], grade_order.get(kv[0][1], 99), kv[0][1])
        ):
            capacity.append(CapacityRow(
                subject=subject,
                grade=grade,
                signatures=len(sigs),
                fresh=sum(1 for s in sigs if usage.get(s, 0) == 0),
                remaining_draws=sum(max(0, MAX_USAGE_TOLERANCE - usage.get(s, 0)) for s in sigs),
                pending_teachers=pending_by_subject.get(subject, 0),
            ))

        drawn = [t for t in teachers if t.has_drawn]
        class_counts = Counter(t.drawn_class for t in drawn if t.drawn_class)
        unassigned = class_counts.pop(UNASSIGNED_CLASS, 0)

        return DrawStatusReport(
            generated_at=now,
            teacher_count=len(teachers),
            drawn_count=len(drawn),
            pending_count=len(pending),
            open_now=sum(1 for t in pending if t.is_within_window(now)),
            expired=sum(1 for t in pending if now > t.draw_end_time),
            usage=usage_rows,
            capacity=capacity,
            class_counts=dict(class_counts),
            unassigned=unassigned,
        )

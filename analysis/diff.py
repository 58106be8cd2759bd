"""Vergleich zweier Roster-Bestände (Diff / Changelog).

Wird von ``sync pull --dry-run`` genutzt, um vor dem Ersetzen zu zeigen,
was sich ändern würde. Konten werden über die E-Mail verglichen, Lektionen
über Signatur + Name (IDs werden bei jedem Import neu vergeben).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from models.lesson import Lesson
    from models.roster import RosterData


@dataclass
class DrawStatusChange:
    """Ein Konto, dessen Losstatus sich ändert."""

    email: str
    old_status: str
    new_status: str


@dataclass
class RosterDiff:
    """Vollständiger Diff zwischen zwei Beständen."""

    users_added: list[str] = field(default_factory=list)
    users_removed: list[str] = field(default_factory=list)
    draw_changes: list[DrawStatusChange] = field(default_factory=list)
    window_changes: list[str] = field(default_factory=list)
    lessons_added: list[str] = field(default_factory=list)
    lessons_removed: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        """Gibt True zurück wenn kein Unterschied gefunden wurde."""
        return (
            not self.users_added
            and not self.users_removed
            and not self.draw_changes
            and not self.window_changes
            and not self.lessons_added
            and not self.lessons_removed
        )

    def to_dict(self) -> dict:
        """Serialisiert den Diff als Dictionary (für JSON-Ausgabe)."""
        return {
            "users_added": self.users_added,
            "users_removed": self.users_removed,
            "draw_changes": [
                {"email": c.email, "old": c.old_status, "new": c.new_status}
                for c in self.draw_changes
            ],
            "window_changes": self.window_changes,
            "lessons_added": self.lessons_added,
            "lessons_removed": self.lessons_removed,
        }

    def to_json(self, indent: int = 2) -> str:
        """Gibt den Diff als JSON-String zurück."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def print_rich(self) -> None:
        from rich.console import Console
        from rich.table import Table

        console = Console()
        if self.is_empty():
            console.print("[green]Không có thay đổi.[/green]")
            return
        table = Table(title="Thay đổi khi đồng bộ", show_lines=False)
        table.add_column("Loại", style="bold")
        table.add_column("Chi tiết")
        for e in self.users_added:
            table.add_row("[green]+ Tài khoản[/green]", e)
        for e in self.users_removed:
            table.add_row("[red]− Tài khoản[/red]", e)
        for c in self.draw_changes:
            table.add_row("[yellow]~ Bốc thăm[/yellow]", f"{c.email}: {c.old_status} → {c.new_status}")
        for w in self.window_changes:
            table.add_row("[yellow]~ Khung giờ[/yellow]", w)
        for l in self.lessons_added:
            table.add_row("[green]+ Bài dạy[/green]", l)
        for l in self.lessons_removed:
            table.add_row("[red]− Bài dạy[/red]", l)
        console.print(table)


def _lesson_key(lesson: "Lesson") -> str:
    return f"{lesson.signature.key} | {lesson.name}"


def _draw_status(roster: "RosterData", email: str) -> str:
    user = roster.find_by_email(email)
    if user is None or not user.has_drawn:
        return "Chưa bốc"
    lesson = roster.get_lesson(user.drawn_lesson_id)
    label = _lesson_key(lesson) if lesson else user.drawn_lesson_id
    return f"{label} @ {user.drawn_class}"


def diff_rosters(a: "RosterData", b: "RosterData") -> RosterDiff:
    """Vergleicht zwei Bestände und gibt einen strukturierten Diff zurück.

    Vergleicht:
    - Konten (hinzugefügt / entfernt, per E-Mail)
    - Losstatus gemeinsamer Konten (inkl. Lektion und Klasse)
    - Zeitfenster gemeinsamer Konten
    - Lektionskatalog (Signatur + Name, Mehrfachvorkommen werden gezählt)

    Args:
        a: Bisheriger Bestand.
        b: Neuer Bestand.
    """
    diff = RosterDiff()

    # ── Konten ───────────────────────────────────────────────────────────────
    users_a = {u.email: u for u in a.users}
    users_b = {u.email: u for u in b.users}
    diff.users_added = sorted(set(users_b) - set(users_a))
    diff.users_removed = sorted(set(users_a) - set(users_b))

    for email in sorted(set(users_a) & set(users_b)):
        old_status = _draw_status(a, email)
        new_status = _draw_status(b, email)
        if old_status != new_status:
            diff.draw_changes.append(DrawStatusChange(email, old_status, new_status))
        ua, ub = users_a[email], users_b[email]
        if (ua.draw_start_time, ua.draw_end_time) != (ub.draw_start_time, ub.draw_end_time):
            diff.window_changes.append(
                f"{email}: {ua.draw_start_time:%Y-%m-%d %H:%M}–{ua.draw_end_time:%Y-%m-%d %H:%M} → "
                f"{ub.draw_start_time:%Y-%m-%d %H:%M}–{ub.draw_end_time:%Y-%m-%d %H:%M}"
            )

    # ── Katalog ──────────────────────────────────────────────────────────────
    keys_a = [_lesson_key(l) for l in a.lessons]
    keys_b = [_lesson_key(l) for l in b.lessons]
    remaining = list(keys_a)
    for key in keys_b:
        if key in remaining:
            remaining.remove(key)
        else:
            diff.lessons_added.append(key)
    diff.lessons_removed = remaining
    diff.lessons_added.sort()
    diff.lessons_removed.sort()

    return diff

"""RosterData: Benutzer + Lektionskatalog + Konsistenz-Check (Pydantic v2)."""

from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel

from models.lesson import Lesson
from models.user import User

if TYPE_CHECKING:
    from config.schema import ContestConfig


class ConsistencyReport(BaseModel):
    """Ergebnis des Konsistenz-Checks."""

    is_consistent: bool
    errors: list[str]      # Verletzte Invarianten (Auslosung liefert falsche Zählungen)
    warnings: list[str]    # Hinweise (z.B. Fach ohne Lektionen)

    def print_rich(self) -> None:
        """Gibt den Report formatiert über Rich aus."""
        from rich.console import Console
        from rich.panel import Panel

        console = Console()
        if self.is_consistent:
            status = "[bold green]✓ HỢP LỆ[/bold green]"
        else:
            status = "[bold red]✗ CÓ LỖI[/bold red]"

        lines = [status]
        if self.errors:
            lines.append("\n[red bold]Lỗi:[/red bold]")
            for e in self.errors:
                lines.append(f"  [red]• {e}[/red]")
        if self.warnings:
            lines.append("\n[yellow bold]Cảnh báo:[/yellow bold]")
            for w in self.warnings:
                lines.append(f"  [yellow]• {w}[/yellow]")
        if not self.errors and not self.warnings:
            lines.append("[dim]Không phát hiện vấn đề.[/dim]")

        console.print(Panel("\n".join(lines), title="Kiểm tra dữ liệu", border_style="cyan"))


class RosterData(BaseModel):
    """Vollständiger Datenbestand: Konten und Lektionskatalog."""

    users: list[User] = []
    lessons: list[Lesson] = []
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    data_version: str = "1.0"

    # ─── Zugriff ───

    def get_user(self, user_id: str) -> Optional[User]:
        for u in self.users:
            if u.id == user_id:
                return u
        return None

    def find_by_email(self, email: str) -> Optional[User]:
        email = email.strip().lower()
        for u in self.users:
            if u.email == email:
                return u
        return None

    def get_lesson(self, lesson_id: Optional[str]) -> Optional[Lesson]:
        if lesson_id is None:
            return None
        for lesson in self.lessons:
            if lesson.id == lesson_id:
                return lesson
        return None

    def lesson_map(self) -> dict[str, Lesson]:
        return {lesson.id: lesson for lesson in self.lessons}

    def teachers(self) -> list[User]:
        """Alle Konten außer ADMIN (Teilnehmer der Auslosung)."""
        return [u for u in self.users if u.is_participant]

    # ─── Übersicht ───

    def summary(self) -> str:
        """Kurze Übersicht über den Datenbestand."""
        teachers = self.teachers()
        drawn = sum(1 for t in teachers if t.has_drawn)
        lines = [
            f"Tài khoản: {len(self.users)} "
            f"({len(teachers)} giáo viên, {len(self.users) - len(teachers)} admin)",
            f"Đã bốc thăm: {drawn}/{len(teachers)}",
            f"Bài dạy: {len(self.lessons)} "
            f"({len({l.subject for l in self.lessons})} môn, "
            f"{len({l.grade for l in self.lessons})} khối)",
        ]
        return "\n".join(lines)

    # ─── Konsistenz-Check ───

    def validate_consistency(
        self, config: Optional["ContestConfig"] = None
    ) -> ConsistencyReport:
        """Prüft die Invarianten des Datenbestands.

        Prüfungen:
        1. E-Mails eindeutig, IDs eindeutig
        2. Losergebnis verweist auf existierende Lektion
        3. Zeitfenster: Beginn ≤ Ende
        4. Slot-Nutzung ≤ Toleranz
        5. Katalog gegen Config (unbekannte Khối/Fächer, Khối ohne Klassen)
        6. Lehrkräfte, deren Fach keine Lektionen hat
        """
        from engine.policy import MAX_USAGE_TOLERANCE, slot_usage

        errors: list[str] = []
        warnings: list[str] = []

        # ── 1. Eindeutigkeit ────────────────────────────────────────────
        seen_emails: set[str] = set()
        seen_ids: set[str] = set()
        for u in self.users:
            if u.email in seen_emails:
                errors.append(f"Email trùng lặp: {u.email}")
            seen_emails.add(u.email)
            if u.id in seen_ids:
                errors.append(f"ID tài khoản trùng lặp: {u.id}")
            seen_ids.add(u.id)

        lesson_ids: set[str] = set()
        for lesson in self.lessons:
            if lesson.id in lesson_ids:
                errors.append(f"ID bài dạy trùng lặp: {lesson.id}")
            lesson_ids.add(lesson.id)

        # ── 2. + 3. Pro Konto ───────────────────────────────────────────
        for u in self.users:
            if u.has_drawn and u.drawn_lesson_id not in lesson_ids:
                errors.append(
                    f"{u.name} ({u.email}): bài đã bốc '{u.drawn_lesson_id}' "
                    f"không còn trong danh mục."
                )
            if u.draw_start_time > u.draw_end_time:
                warnings.append(
                    f"{u.name} ({u.email}): thời gian bắt đầu sau thời gian kết thúc "
                    f"– giáo viên không thể bốc thăm."
                )

        # ── 4. Slot-Nutzung ─────────────────────────────────────────────
        usage = slot_usage(self.users, self.lessons)
        for sig, count in sorted(usage.items(), key=lambda kv: kv[0].key):
            if count > MAX_USAGE_TOLERANCE:
                errors.append(
                    f"Slot '{sig}' đã được dùng {count} lần "
                    f"(tối đa {MAX_USAGE_TOLERANCE})."
                )

        # ── 5. Katalog gegen Config ─────────────────────────────────────
        if config is not None:
            known_grades = set(config.grades)
            known_subjects = set(config.subjects)
            unknown_grades = sorted({l.grade for l in self.lessons} - known_grades)
            unknown_subjects = sorted({l.subject for l in self.lessons} - known_subjects)
            if unknown_grades:
                warnings.append(f"Khối không có trong cấu hình: {', '.join(unknown_grades)}")
            if unknown_subjects:
                warnings.append(f"Môn không có trong cấu hình: {', '.join(unknown_subjects)}")
            for grade in sorted({l.grade for l in self.lessons}):
                if not config.classes_for_grade(grade):
                    warnings.append(
                        f"{grade}: chưa có lớp nào – kết quả sẽ là 'Chưa xếp lớp'."
                    )

        # ── 6. Fächer ohne Lektionen ────────────────────────────────────
        lesson_subjects = {l.subject for l in self.lessons}
        for t in self.teachers():
            if t.subject_group and t.subject_group not in lesson_subjects:
                warnings.append(
                    f"{t.name}: môn '{t.subject_group}' không có bài dạy nào."
                )

        return ConsistencyReport(
            is_consistent=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )

    # ─── Persistenz ────────────────────────────────────────────────────────

    def stamped(self) -> "RosterData":
        """Kopie mit aktualisiertem modified_at (created_at bleibt erhalten)."""
        now = datetime.now(timezone.utc)
        return self.model_copy(update={
            "modified_at": now,
            "created_at": self.created_at or now,
        })

    @classmethod
    def load_json(cls, path: Path) -> "RosterData":
        """Lädt einen Datenbestand aus einer JSON-Datei."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"JSON-Datei nicht gefunden: {path}")
        with open(path, "r", encoding="utf-8") as f:
            return cls.model_validate_json(f.read())

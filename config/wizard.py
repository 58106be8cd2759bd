"""Interaktiver Setup-Wizard für die Ersteinrichtung des Hội thi.

Führt den Nutzer Schritt für Schritt durch Schule, Khối, Fächer und Klassen.
Nutzt rich für schöne Konsolenausgabe.
"""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table
from rich import box

from config.schema import ContestConfig, DrawRules, SyncConfig
from config.defaults import (
    DEFAULT_GRADES,
    DEFAULT_SUBJECTS,
    TWO_GRADE_SUBJECTS,
    default_classes,
)

console = Console()


def _header(title: str) -> None:
    console.print()
    console.print(Panel(f"[bold cyan]{title}[/bold cyan]", expand=False))


def _success(text: str) -> None:
    console.print(f"[green]✓[/green] {text}")


def show_names_table(title: str, names: list[str]) -> None:
    """Zeigt eine nummerierte Namensliste (Fächer, Khối) an."""
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("#", style="bold", width=4)
    table.add_column("Tên")
    for i, name in enumerate(names, 1):
        table.add_row(str(i), name)
    console.print(table)


def show_classes_table(config: ContestConfig) -> None:
    """Zeigt die Klassen gruppiert nach Khối an."""
    table = Table(title="Lớp theo khối", box=box.ROUNDED)
    table.add_column("Khối", style="bold")
    table.add_column("Lớp")
    table.add_column("ID", style="dim")
    for grade in config.grades:
        classes = config.classes_for_grade(grade)
        if not classes:
            table.add_row(grade, "[yellow]—[/yellow]", "")
            continue
        table.add_row(
            grade,
            ", ".join(c.name for c in classes),
            ", ".join(c.id for c in classes),
        )
    console.print(table)


def _ask_list(prompt: str, default: list[str]) -> list[str]:
    raw = Prompt.ask(prompt, default=", ".join(default))
    return [x.strip() for x in raw.split(",") if x.strip()]


def _wizard_school() -> str:
    _header("Schritt 1/4: Trường")
    return Prompt.ask("Tên trường", default="Trường THCS")


def _wizard_grades() -> list[str]:
    _header("Schritt 2/4: Khối lớp")
    return _ask_list("Các khối (phân cách bằng dấu phẩy)", DEFAULT_GRADES)


def _wizard_subjects() -> tuple[list[str], list[str]]:
    _header("Schritt 3/4: Môn học")
    subjects = _ask_list("Các môn (phân cách bằng dấu phẩy)", DEFAULT_SUBJECTS)
    two_grade = _ask_list(
        "Môn bắt buộc chọn 2 khối",
        [s for s in TWO_GRADE_SUBJECTS if s in subjects],
    )
    return subjects, two_grade


def _wizard_classes(grades: list[str]) -> ContestConfig:
    """Klassen pro Khối abfragen; Vorschlag aus den Default-Klassen."""
    _header("Schritt 4/4: Lớp")
    defaults = default_classes()
    config = ContestConfig(subjects=[], grades=grades)
    for grade in grades:
        suggested = [c.name for c in defaults if c.grade == grade]
        if not suggested:
            n = IntPrompt.ask(f"Số lớp của {grade}", default=1)
            prefix = "".join(ch for ch in grade if ch.isdigit()) or grade
            suggested = [f"{prefix}A{i}" for i in range(1, n + 1)]
        for name in _ask_list(f"Lớp của {grade}", suggested):
            config = config.with_class(grade, name)
    return config


def run_wizard() -> Optional[ContestConfig]:
    """Führt den vollständigen interaktiven Setup-Wizard aus.

    Returns:
        Fertige ContestConfig oder None, wenn der Nutzer abbricht.
    """
    console.print()
    console.print(Panel(
        "[bold]Chào mừng đến với công cụ bốc thăm tiết dạy![/bold]\n\n"
        "Trình hướng dẫn sẽ thiết lập trường, khối, môn học và lớp.\n"
        "[dim]Nhấn Enter để giữ giá trị mặc định.[/dim]",
        title="[bold cyan]Bốc thăm tiết dạy[/bold cyan]",
        border_style="cyan",
    ))

    if not Confirm.ask("\nThiết lập ngay bây giờ?", default=True):
        console.print("[yellow]Đã hủy thiết lập.[/yellow]")
        return None

    try:
        name = _wizard_school()
        grades = _wizard_grades()
        subjects, two_grade = _wizard_subjects()
        with_classes = _wizard_classes(grades)

        config = ContestConfig(
            school_name=name,
            subjects=subjects,
            grades=grades,
            classes=with_classes.classes,
            rules=DrawRules(two_grade_subjects=two_grade),
            sync=SyncConfig(),
        )

        show_names_table("Môn học", config.subjects)
        show_classes_table(config)

        if not Confirm.ask("\nLưu cấu hình?", default=True):
            console.print("[yellow]Cấu hình không được lưu.[/yellow]")
            return None

        _success("Đang lưu cấu hình...")
        return config

    except KeyboardInterrupt:
        console.print("\n[yellow]Đã hủy.[/yellow]")
        return None

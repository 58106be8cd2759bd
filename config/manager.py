"""Konfigurationsmanager: Laden, Speichern, Validieren und interaktives Bearbeiten.

Nutzt ruamel.yaml für YAML-Serialisierung mit Kommentaren. Der Manager ist
zugleich der Settings-Store der Auslosung: DrawEngine ruft nur ``load()`` auf.
"""

import json
from datetime import date
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, FloatPrompt, Prompt
from rich.table import Table
from rich import box
from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

from config.schema import ContestConfig, DrawRules, SyncConfig

console = Console()
yaml = YAML()
yaml.default_flow_style = False
yaml.width = 120


# ─── YAML-KOMMENTAR-AUFBAU ───

_YAML_HEADER = f"""\
# ============================================
# Bốc thăm tiết dạy – Cấu hình hội thi
# Version: 1.0
# Erstellt: {date.today().isoformat()}
# ============================================
"""

_SECTION_COMMENTS = {
    "subjects": (
        "Môn học",
        "Fächer, die Lehrkräften zugeordnet werden können.",
    ),
    "grades": (
        "Khối lớp",
        None,
    ),
    "classes": (
        "Lớp",
        "Klassen pro Khối. Ohne Klasse wird 'Chưa xếp lớp' vergeben.",
    ),
    "rules": (
        "Quy định bốc thăm",
        "two_grade_subjects: Fächer mit Pflicht zu 2 Khối.",
    ),
    "sync": (
        "Đồng bộ Google Sheet",
        "script_url leer lassen, um die Synchronisation zu deaktivieren.",
    ),
}


class StaticSettings:
    """Settings-Store über einer festen Config (Tests, eingebettete Nutzung)."""

    def __init__(self, config: ContestConfig) -> None:
        self.config = config

    def load(self) -> ContestConfig:
        return self.config


class ConfigManager:
    CONFIG_DIR = Path("config")
    DEFAULT_CONFIG = CONFIG_DIR / "contest_config.yaml"

    def __init__(self, path: Optional[Path] = None) -> None:
        if path is not None:
            self.DEFAULT_CONFIG = Path(path)

    def first_run_check(self) -> bool:
        """Gibt True zurück wenn noch keine Config existiert (Erstaufruf)."""
        return not self.DEFAULT_CONFIG.exists()

    # ─── Laden ───

    def load(self, path: Optional[Path] = None) -> ContestConfig:
        """Lade Config aus YAML. Validiert automatisch via Pydantic."""
        target = path or self.DEFAULT_CONFIG
        if not target.exists():
            raise FileNotFoundError(
                f"Konfigurationsdatei nicht gefunden: {target}\n"
                f"Führen Sie 'lesson-draw setup' aus, um die Schule einzurichten."
            )
        with open(target, "r", encoding="utf-8") as f:
            raw = yaml.load(f)
        try:
            return ContestConfig.model_validate(dict(raw or {}))
        except Exception as e:
            raise ValueError(
                f"Konfigurationsdatei ungültig: {target}\n"
                f"Pydantic-Fehler: {e}"
            ) from e

    # ─── Speichern ───

    def save(self, config: ContestConfig, path: Optional[Path] = None,
             quiet: bool = False) -> None:
        """Speichere Config als YAML mit Abschnitts-Kommentaren."""
        target = path or self.DEFAULT_CONFIG
        target.parent.mkdir(parents=True, exist_ok=True)

        data = self._build_commented_yaml(config)

        with open(target, "w", encoding="utf-8") as f:
            f.write(_YAML_HEADER + "\n")
            yaml.dump(data, f)

        if not quiet:
            console.print(f"[green]✓[/green] Đã lưu cấu hình: {target}")

    def _build_commented_yaml(self, config: ContestConfig) -> CommentedMap:
        """Baut die YAML-Struktur mit Kommentaren auf."""
        raw = json.loads(config.model_dump_json())
        cm = CommentedMap(raw)

        for field, (label, comment) in _SECTION_COMMENTS.items():
            cm.yaml_set_comment_before_after_key(
                field,
                before=f"\n─── {label} ───" + (f"\n{comment}" if comment else ""),
            )

        if "rules" in cm:
            rules_map = CommentedMap(cm["rules"])
            rules_map.yaml_add_eol_comment("Sekunden", "lock_timeout_seconds")
            cm["rules"] = rules_map

        return cm

    # ─── Interaktives Bearbeiten ───

    def edit_interactive(self, config: ContestConfig) -> ContestConfig:
        """Interaktives Bearbeitungsmenü für die Konfiguration."""
        while True:
            console.print()
            console.print(Panel(
                "[bold]Chỉnh sửa cấu hình[/bold]",
                border_style="cyan",
            ))
            console.print("  [bold]1.[/bold] Môn học")
            console.print("  [bold]2.[/bold] Khối lớp")
            console.print("  [bold]3.[/bold] Lớp")
            console.print("  [bold]4.[/bold] Quy định bốc thăm")
            console.print("  [bold]5.[/bold] Đồng bộ Google Sheet")
            console.print("  [bold]0.[/bold] Lưu & quay lại")

            choice = Prompt.ask("\nLựa chọn", default="0")

            if choice == "1":
                config = self._edit_names(config, "subjects")
            elif choice == "2":
                config = self._edit_names(config, "grades")
            elif choice == "3":
                config = self._edit_classes(config)
            elif choice == "4":
                config = config.model_copy(update={"rules": self._edit_rules(config.rules)})
            elif choice == "5":
                config = config.model_copy(update={"sync": self._edit_sync(config.sync)})
            elif choice == "0":
                self.save(config)
                break
            else:
                console.print("[yellow]Lựa chọn không hợp lệ.[/yellow]")

        return config

    def _edit_names(self, config: ContestConfig, field: str) -> ContestConfig:
        """Fächer oder Khối hinzufügen/entfernen."""
        from config.wizard import show_names_table
        label = "Môn học" if field == "subjects" else "Khối lớp"
        while True:
            show_names_table(label, getattr(config, field))
            console.print("\n[1] Thêm  [2] Xóa  [0] Xong")
            sub = Prompt.ask("Lựa chọn", default="0")
            if sub == "0":
                break
            elif sub == "1":
                name = Prompt.ask("Tên")
                config = (config.with_subject(name) if field == "subjects"
                          else config.with_grade(name))
            elif sub == "2":
                name = Prompt.ask("Tên cần xóa")
                if field == "grades" and config.classes_for_grade(name):
                    if not Confirm.ask(
                        f"Xóa '{name}' sẽ xóa luôn các lớp thuộc khối. Tiếp tục?",
                        default=False,
                    ):
                        continue
                config = (config.without_subject(name) if field == "subjects"
                          else config.without_grade(name))
        return config

    def _edit_classes(self, config: ContestConfig) -> ContestConfig:
        """Klassen pro Khối anpassen."""
        from config.wizard import show_classes_table
        while True:
            show_classes_table(config)
            console.print("\n[1] Thêm lớp  [2] Xóa lớp  [0] Xong")
            sub = Prompt.ask("Lựa chọn", default="0")
            if sub == "0":
                break
            elif sub == "1":
                grade = Prompt.ask("Khối", choices=config.grades)
                name = Prompt.ask("Tên lớp (vd. 6A3)")
                config = config.with_class(grade, name)
            elif sub == "2":
                cid = Prompt.ask("ID lớp cần xóa")
                config = config.without_class(cid)
        return config

    def _edit_rules(self, rules: DrawRules) -> DrawRules:
        """Auslosungsregeln anpassen."""
        table = Table(box=box.SIMPLE)
        table.add_column("Tham số", style="bold")
        table.add_column("Hiện tại")
        for k, v in rules.model_dump().items():
            table.add_row(k, str(v))
        console.print(table)

        if not Confirm.ask("Thay đổi?", default=False):
            return rules

        raw = Prompt.ask(
            "Môn bắt buộc chọn 2 khối (phân cách bằng dấu phẩy)",
            default=", ".join(rules.two_grade_subjects),
        )
        timeout = FloatPrompt.ask("Timeout khóa dữ liệu (giây)",
                                  default=rules.lock_timeout_seconds)
        return rules.model_copy(update={
            "two_grade_subjects": [s.strip() for s in raw.split(",") if s.strip()],
            "lock_timeout_seconds": timeout,
        })

    def _edit_sync(self, sc: SyncConfig) -> SyncConfig:
        """Sync-Endpunkt anpassen."""
        url = Prompt.ask("Script URL (để trống = tắt)", default=sc.script_url or "")
        mirror = Confirm.ask("Gửi kết quả bốc thăm lên Sheet?", default=sc.mirror_draws)
        return SyncConfig(
            script_url=url.strip() or None,
            timeout_seconds=sc.timeout_seconds,
            mirror_draws=mirror,
        )

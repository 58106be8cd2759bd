"""Bốc thăm tiết dạy – Haupt-CLI.

Verwendung:
  lesson-draw setup                          Ersteinrichtung (Wizard)
  lesson-draw config show | edit             Konfiguration anzeigen / bearbeiten
  lesson-draw generate                       Demo-Daten erzeugen
  lesson-draw template                       Excel-Import-Vorlage erzeugen
  lesson-draw import <datei.xlsx>            Katalog + Konten aus Excel
  lesson-draw export                         Ergebnis-Tabelle als Excel
  lesson-draw sync pull [--dry-run]          Bestand vom Google Sheet laden
  lesson-draw teacher list|add|delete|...    Konten verwalten
  lesson-draw draw -g "Khối 6"               Auslosung (angemeldete Lehrkraft)
  lesson-draw reset <email> | --all          Losergebnisse zurücksetzen
  lesson-draw status                         Fortschritt und Kapazität
  lesson-draw validate                       Konsistenz-Check

Anmeldung über --login/--password (oder LESSON_DRAW_PASSWORD).
"""

import logging
import sys
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich import box

console = Console()

# Standard-Pfad für den gespeicherten Bestand
DEFAULT_ROSTER_JSON = Path("output/roster.json")

_DT_FORMATS = ["%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M", "%d/%m/%Y %H:%M"]


# ─── Kontext ──────────────────────────────────────────────────────────────────

class AppContext:
    """Hält Pfade und Anmeldedaten; Store, Engine und Admin werden lazy gebaut."""

    def __init__(self, roster_path: Path, config_path: Optional[Path],
                 login: Optional[str], password: Optional[str]) -> None:
        self.roster_path = roster_path
        self.config_path = config_path
        self.login = login
        self.password = password
        self._store = None
        self._mgr = None

    @property
    def mgr(self):
        if self._mgr is None:
            from config.manager import ConfigManager
            self._mgr = ConfigManager(self.config_path)
        return self._mgr

    @property
    def store(self):
        if self._store is None:
            from data.roster_store import JsonRosterStore
            self._store = JsonRosterStore(self.roster_path)
        return self._store

    def config(self):
        """Lädt die Konfiguration oder bricht mit Fehlermeldung ab."""
        if self.mgr.first_run_check():
            console.print(
                "[red]Chưa có cấu hình.[/red]\n"
                "Vui lòng chạy [bold]lesson-draw setup[/bold] trước."
            )
            sys.exit(1)
        try:
            return self.mgr.load()
        except ValueError as e:
            _fail(str(e))

    def sync_client(self, config):
        from data.sheet_sync import SheetSyncClient
        if not config.sync.enabled:
            return None
        return SheetSyncClient.from_config(config)

    def engine(self):
        from engine.draw import DrawEngine
        return DrawEngine(self.store, self.mgr)

    def admin(self):
        from data.sheet_sync import mirror_user
        from engine.accounts import RosterAdmin
        client = self.sync_client(self.config())
        mirror = partial(mirror_user, client) if client is not None else None
        return RosterAdmin(self.store, self.engine(), mirror=mirror)

    def actor(self, *roles):
        """Angemeldetes Konto mit einer der Rollen, sonst Abbruch."""
        from engine.errors import AuthenticationError
        if not self.login or self.password is None:
            _fail("Vui lòng đăng nhập (--login / --password).")
        try:
            user = self.admin().authenticate(self.login, self.password)
        except AuthenticationError as e:
            _fail(str(e))
        if roles and user.role not in roles:
            _fail("Bạn không có quyền thực hiện thao tác này.")
        return user

    def require_admin_or_bootstrap(self):
        """ADMIN-Anmeldung; ohne ADMIN-Konto im Bestand ist alles erlaubt."""
        from models.user import Role
        if not any(u.is_admin for u in self.store.list_users()):
            return None
        return self.actor(Role.ADMIN)


pass_app = click.make_pass_decorator(AppContext)


def _fail(message: str) -> None:
    console.print(f"[red bold]Lỗi:[/red bold] {message}")
    sys.exit(1)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


def _find_user_or_fail(app: AppContext, email: str):
    user = app.store.find_by_email(email)
    if user is None:
        _fail(f"Không tìm thấy tài khoản: {email}")
    return user


# ─── SETUP ────────────────────────────────────────────────────────────────────

@click.command("setup")
@pass_app
def cmd_setup(app: AppContext):
    """Ersteinrichtung: Wettbewerbskonfiguration mit dem Wizard anlegen."""
    from config.wizard import run_wizard

    if not app.mgr.first_run_check():
        console.print(
            "[yellow]Đã có cấu hình.[/yellow]\n"
            "Dùng [bold]lesson-draw config edit[/bold] để chỉnh sửa."
        )
        if not click.confirm("Vẫn thiết lập lại?", default=False):
            return

    config = run_wizard()
    if config is not None:
        app.mgr.save(config)
        console.print("[bold green]Thiết lập hoàn tất![/bold green]")
        console.print("Tiếp theo: [bold]lesson-draw import <file.xlsx>[/bold] "
                      "hoặc [bold]lesson-draw generate[/bold].")


# ─── CONFIG ───────────────────────────────────────────────────────────────────

@click.group("config")
def cmd_config():
    """Konfiguration anzeigen oder bearbeiten."""


@cmd_config.command("show")
@pass_app
def config_show(app: AppContext):
    """Zeigt die aktuelle Konfiguration an."""
    from config.wizard import show_classes_table, show_names_table
    config = app.config()

    sync = config.sync.script_url or "[dim]tắt[/dim]"
    console.print(Panel(
        f"[bold]{config.school_name}[/bold]\n"
        f"Môn bắt buộc 2 khối: {', '.join(config.rules.two_grade_subjects) or '—'}\n"
        f"Đồng bộ: {sync}",
        title="Cấu hình hội thi",
        border_style="cyan",
    ))
    show_names_table("Môn học", config.subjects)
    show_classes_table(config)


@cmd_config.command("edit")
@pass_app
def config_edit(app: AppContext):
    """Bearbeitet die Konfiguration interaktiv."""
    app.mgr.edit_interactive(app.config())


# ─── GENERATE ─────────────────────────────────────────────────────────────────

@click.command("generate")
@click.option("--seed", default=42, help="Zufalls-Seed für reproduzierbare Daten.")
@click.option("--teachers", default=20, help="Anzahl Lehrkräfte.")
@click.option("--yes", is_flag=True, default=False, help="Bestehenden Bestand ohne Rückfrage ersetzen.")
@pass_app
def cmd_generate(app: AppContext, seed: int, teachers: int, yes: bool):
    """Erzeugt Demo-Daten (Lektionskatalog, Lehrkräfte, Admin)."""
    from data.fake_data import DemoDataGenerator
    config = app.config()
    app.require_admin_or_bootstrap()

    if app.store.list_users() and not yes:
        if not click.confirm("Dữ liệu hiện tại sẽ bị thay thế. Tiếp tục?", default=False):
            return

    data = DemoDataGenerator(config, seed=seed).generate(teacher_count=teachers)
    app.store.replace(users=data.users, lessons=data.lessons)
    console.print(f"[green]✓[/green] Đã tạo dữ liệu mẫu: {app.roster_path}")
    console.print(f"\n[dim]{data.summary()}[/dim]")
    console.print("[dim]Admin: admin@edu.vn / admin – giáo viên: mật khẩu 123[/dim]")


# ─── TEMPLATE ─────────────────────────────────────────────────────────────────

@click.command("template")
@click.option("--output", "-o", default="output/mau_nhap_lieu.xlsx",
              help="Ausgabepfad für die Excel-Vorlage.")
@pass_app
def cmd_template(app: AppContext, output: str):
    """Erzeugt eine Excel-Import-Vorlage."""
    from data.excel_import import generate_template

    out_path = Path(output)
    generate_template(app.config(), out_path)
    console.print(f"[green]✓[/green] Đã lưu file mẫu: {out_path}")
    console.print(
        "\nCác sheet trong file mẫu:\n"
        "  [cyan]Bài dạy[/cyan]    – Môn, Khối, Tuần, Tiết, Tên bài\n"
        "  [cyan]Giáo viên[/cyan]  – Họ tên, Email, Mật khẩu, Vai trò, Môn, Bắt đầu, Kết thúc\n"
        "  [cyan]Lớp[/cyan]        – Khối, Lớp"
    )


# ─── IMPORT ───────────────────────────────────────────────────────────────────

@click.command("import")
@click.argument("datei", type=click.Path(exists=True, path_type=Path))
@pass_app
def cmd_import(app: AppContext, datei: Path):
    """Importiert Lektionskatalog, Konten und Klassen aus einer Excel-Datei."""
    from data.excel_import import ExcelImportError, import_from_excel
    config = app.config()
    app.require_admin_or_bootstrap()

    try:
        roster, classes, report = import_from_excel(datei, config, app.store.snapshot())
    except ExcelImportError as e:
        _fail(str(e))

    app.store.replace(users=roster.users, lessons=roster.lessons)
    if classes:
        app.mgr.save(config.model_copy(update={"classes": classes}), quiet=True)
    report.print_rich()
    console.print(f"\n{roster.summary()}")


# ─── EXPORT ───────────────────────────────────────────────────────────────────

@click.command("export")
@click.option("--output", "-o", default="output/ket_qua_boc_tham_tong_hop.xlsx",
              help="Ausgabepfad (bei --email: Verzeichnis).")
@click.option("--email", default=None, help="Nur das Ergebnis dieses Kontos exportieren.")
@pass_app
def cmd_export(app: AppContext, output: str, email: Optional[str]):
    """Exportiert die Ergebnis-Tabelle als Excel."""
    from export.excel_export import ResultExporter
    from models.user import Role

    app.actor(Role.ADMIN, Role.MANAGER)
    roster = app.store.snapshot()
    exporter = ResultExporter(roster)
    if email:
        user = _find_user_or_fail(app, email)
        out_dir = Path(output).parent if Path(output).suffix else Path(output)
        path = exporter.export_user(user, out_dir)
    else:
        path = exporter.export(Path(output))
    console.print(f"[green]✓[/green] Đã xuất file: {path}")


# ─── SYNC ─────────────────────────────────────────────────────────────────────

@click.group("sync")
def cmd_sync():
    """Abgleich mit dem Google-Sheet-Endpunkt."""


@cmd_sync.command("pull")
@click.option("--dry-run", is_flag=True, default=False, help="Nur Unterschiede anzeigen.")
@pass_app
def sync_pull(app: AppContext, dry_run: bool):
    """Ersetzt Konten, Katalog und Klassen durch den Stand des Sheets."""
    from analysis.diff import diff_rosters
    from data.sheet_sync import SheetSyncError, build_roster_from_snapshot, pull_from_sheet
    from data.roster_store import PersistenceError

    config = app.config()
    app.require_admin_or_bootstrap()
    client = app.sync_client(config)
    if client is None:
        _fail("Chưa cấu hình Script URL (lesson-draw config edit → 5).")

    try:
        if dry_run:
            current = app.store.snapshot()
            roster, _, report = build_roster_from_snapshot(
                client.fetch_snapshot(), current, config, datetime.now()
            )
            diff_rosters(current, roster).print_rich()
            for w in report.warnings:
                console.print(f"  [yellow]• {w}[/yellow]")
            return
        new_config, report = pull_from_sheet(client, app.store, config)
    except (SheetSyncError, PersistenceError) as e:
        _fail(str(e))

    if new_config is not config:
        app.mgr.save(new_config, quiet=True)
    console.print(f"[green]✓[/green] {report.message}")
    if report.admin_added:
        console.print("[yellow]Sheet không có ADMIN – đã thêm admin@edu.vn (mật khẩu: admin).[/yellow]")
    for w in report.warnings:
        console.print(f"  [yellow]• {w}[/yellow]")


# ─── TEACHER ──────────────────────────────────────────────────────────────────

@click.group("teacher")
def cmd_teacher():
    """Konten verwalten."""


@cmd_teacher.command("list")
@click.option("--pending", is_flag=True, default=False, help="Nur Lehrkräfte ohne Ergebnis.")
@pass_app
def teacher_list(app: AppContext, pending: bool):
    """Listet alle Konten mit Zeitfenster und Losstatus."""
    from models.user import Role
    app.actor(Role.ADMIN, Role.MANAGER)
    roster = app.store.snapshot()

    table = Table(title="Danh sách tài khoản", box=box.ROUNDED)
    table.add_column("Họ tên", style="bold")
    table.add_column("Email")
    table.add_column("Vai trò")
    table.add_column("Môn")
    table.add_column("Khung giờ")
    table.add_column("1 khối", justify="center")
    table.add_column("Kết quả")
    for u in roster.users:
        if pending and (u.has_drawn or u.is_admin):
            continue
        if u.has_drawn:
            lesson = roster.get_lesson(u.drawn_lesson_id)
            result = f"[green]{lesson.name if lesson else u.drawn_lesson_id} @ {u.drawn_class}[/green]"
        else:
            result = "[yellow]Chưa bốc[/yellow]" if u.is_participant else ""
        table.add_row(
            u.name, u.email, u.role.value, u.subject_group or "—",
            f"{u.draw_start_time:%d/%m %H:%M} – {u.draw_end_time:%d/%m %H:%M}",
            "✓" if u.force_single_grade else "",
            result,
        )
    console.print(table)


@cmd_teacher.command("add")
@click.option("--name", required=True)
@click.option("--email", required=True)
@click.option("--user-password", "user_password", required=True, help="Passwort des neuen Kontos.")
@click.option("--subject", default=None, help="Môn giảng dạy.")
@click.option("--start", type=click.DateTime(_DT_FORMATS), required=True)
@click.option("--end", type=click.DateTime(_DT_FORMATS), required=True)
@click.option("--role", type=click.Choice(["TEACHER", "MANAGER", "ADMIN"]), default="TEACHER")
@pass_app
def teacher_add(app: AppContext, name, email, user_password, subject, start, end, role):
    """Legt ein neues Konto an (ADMIN, MANAGER)."""
    from data.roster_store import DuplicateEmailError
    from engine.errors import PermissionDeniedError
    from models.user import Role

    actor = app.actor(Role.ADMIN, Role.MANAGER)
    try:
        user = app.admin().add_teacher(
            actor, name=name, email=email, password=user_password,
            draw_start_time=start, draw_end_time=end,
            subject_group=subject, role=Role(role),
        )
    except (DuplicateEmailError, PermissionDeniedError, ValueError) as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Thêm giáo viên thành công: {user.name} ({user.email})")


@cmd_teacher.command("delete")
@click.argument("email")
@click.option("--yes", is_flag=True, default=False)
@pass_app
def teacher_delete(app: AppContext, email: str, yes: bool):
    """Löscht ein Konto (nur ADMIN)."""
    from engine.errors import DrawError
    from models.user import Role

    actor = app.actor(Role.ADMIN)
    user = _find_user_or_fail(app, email)
    if not yes and not click.confirm(
        f'Xóa giáo viên "{user.name}"? Hành động này không thể hoàn tác.', default=False
    ):
        return
    try:
        app.admin().delete_user(actor, user.id)
    except DrawError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Đã xóa {user.name}.")


@cmd_teacher.command("window")
@click.argument("emails", nargs=-1, required=True)
@click.option("--start", type=click.DateTime(_DT_FORMATS), required=True)
@click.option("--end", type=click.DateTime(_DT_FORMATS), required=True)
@pass_app
def teacher_window(app: AppContext, emails, start, end):
    """Setzt das Zeitfenster für ein oder mehrere Konten."""
    from engine.errors import DrawError
    from models.user import Role

    actor = app.actor(Role.ADMIN, Role.MANAGER)
    ids = [_find_user_or_fail(app, e).id for e in emails]
    try:
        updated = app.admin().set_window(actor, ids, start, end)
    except (DrawError, ValueError) as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Đã cập nhật thời gian cho {len(updated)} giáo viên.")


@cmd_teacher.command("single-grade")
@click.argument("email")
@click.option("--on/--off", "value", default=True, help="Nur 1 Khối erlauben.")
@pass_app
def teacher_single_grade(app: AppContext, email: str, value: bool):
    """Schaltet die Beschränkung auf genau einen Khối."""
    from engine.errors import DrawError
    from models.user import Role

    actor = app.actor(Role.ADMIN, Role.MANAGER)
    user = _find_user_or_fail(app, email)
    try:
        app.admin().set_force_single_grade(actor, user.id, value)
    except DrawError as e:
        _fail(str(e))
    state = "chỉ được chọn 1 khối" if value else "được chọn 1-2 khối"
    console.print(f"[green]✓[/green] {user.name}: {state}.")


@cmd_teacher.command("role")
@click.argument("email")
@click.argument("role", type=click.Choice(["TEACHER", "MANAGER", "ADMIN"]))
@pass_app
def teacher_role(app: AppContext, email: str, role: str):
    """Ändert die Rolle eines Kontos (nur ADMIN)."""
    from engine.errors import DrawError
    from models.user import Role

    actor = app.actor(Role.ADMIN)
    user = _find_user_or_fail(app, email)
    try:
        updated = app.admin().change_role(actor, user.id, Role(role))
    except DrawError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] {updated.name}: {updated.role.value}")


# ─── DRAW ─────────────────────────────────────────────────────────────────────

@click.command("draw")
@click.option("--grade", "-g", "grades", multiple=True, required=True,
              help="Gewählter Khối (1–2 Mal angeben).")
@pass_app
def cmd_draw(app: AppContext, grades: tuple[str, ...]):
    """Lost der angemeldeten Lehrkraft eine Lektion und eine Klasse zu."""
    from data.roster_store import PersistenceError
    from data.sheet_sync import mirror_draw
    from engine.draw import NotAvailable
    from engine.errors import DrawError

    config = app.config()
    actor = app.actor()
    engine = app.engine()
    try:
        outcome = engine.draw(actor.id, list(grades))
    except PersistenceError as e:
        _fail(f"{e} (có thể thử lại)")
    except DrawError as e:
        _fail(str(e))

    if isinstance(outcome, NotAvailable):
        console.print(f"[yellow]{outcome.message}[/yellow]")
        sys.exit(2)

    lesson = outcome.lesson
    console.print(Panel(
        f"[bold]{lesson.name}[/bold]\n\n"
        f"Môn: {lesson.subject}   Khối: {lesson.grade}\n"
        f"Tuần: {lesson.week}   Tiết: {lesson.period}\n"
        f"Lớp dạy: [bold cyan]{outcome.class_name}[/bold cyan]",
        title="🎉 Kết quả bốc thăm",
        border_style="green",
    ))

    if config.sync.enabled and config.sync.mirror_draws:
        client = app.sync_client(config)
        if not mirror_draw(client, actor, lesson, outcome.class_name, outcome.drawn_at):
            console.print("[yellow]Kết quả đã lưu nhưng chưa đồng bộ được lên Google Sheet.[/yellow]")


# ─── RESET ────────────────────────────────────────────────────────────────────

@click.command("reset")
@click.argument("email", required=False)
@click.option("--all", "reset_all", is_flag=True, default=False, help="Alle Ergebnisse zurücksetzen.")
@click.option("--yes", is_flag=True, default=False)
@pass_app
def cmd_reset(app: AppContext, email: Optional[str], reset_all: bool, yes: bool):
    """Löscht Losergebnisse, damit erneut gelost werden kann (nur ADMIN)."""
    from engine.errors import DrawError
    from models.user import Role

    if not email and not reset_all:
        _fail("Vui lòng nhập email hoặc dùng --all.")
    actor = app.actor(Role.ADMIN)
    admin = app.admin()
    try:
        if reset_all:
            if not yes and not click.confirm("Xóa TẤT CẢ kết quả bốc thăm?", default=False):
                return
            users = admin.reset_all(actor)
            console.print(f"[green]✓[/green] Đã xóa kết quả của {len(users)} giáo viên.")
            return
        user = _find_user_or_fail(app, email)
        if not yes and not click.confirm(
            f'Xóa kết quả bốc thăm của "{user.name}" để họ bốc lại?', default=False
        ):
            return
        admin.reset_draw(actor, user.id)
    except DrawError as e:
        _fail(str(e))
    console.print(f"[green]✓[/green] Đã xóa kết quả của {user.name}, giáo viên có thể bốc lại ngay.")


# ─── STATUS / VALIDATE ────────────────────────────────────────────────────────

@click.command("status")
@pass_app
def cmd_status(app: AppContext):
    """Zeigt Fortschritt, Slot-Belegung und Restkapazität."""
    from analysis.draw_report import DrawStatusAnalyzer
    config = app.config()
    report = DrawStatusAnalyzer(config).analyze(app.store.snapshot())
    report.print_rich()


@click.command("validate")
@pass_app
def cmd_validate(app: AppContext):
    """Führt den Konsistenz-Check auf dem gespeicherten Bestand durch."""
    config = app.config()
    roster = app.store.snapshot()
    console.print(f"\n{roster.summary()}\n")
    report = roster.validate_consistency(config)
    report.print_rich()
    sys.exit(0 if report.is_consistent else 1)


# ─── HAUPT-CLI ────────────────────────────────────────────────────────────────

@click.group()
@click.option("--roster", "roster_path", type=click.Path(path_type=Path),
              default=str(DEFAULT_ROSTER_JSON), show_default=True,
              help="JSON-Datei des Bestands.")
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None,
              help="YAML-Konfiguration (Standard: config/contest_config.yaml).")
@click.option("--login", envvar="LESSON_DRAW_LOGIN", default=None, help="E-Mail des Kontos.")
@click.option("--password", envvar="LESSON_DRAW_PASSWORD", default=None, help="Passwort.")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug-Logging.")
@click.pass_context
def cli(ctx, roster_path, config_path, login, password, verbose):
    """Bốc thăm tiết dạy – Auslosung von Vorführstunden.

    Starten Sie mit: lesson-draw setup
    """
    _setup_logging(verbose)
    ctx.obj = AppContext(roster_path, config_path, login, password)


def needs_first_run(args: list[str]) -> bool:
    """True, wenn ohne Unterbefehl gestartet wurde und die (ggf. per --config
    angegebene) Konfiguration noch fehlt."""
    from config.manager import ConfigManager

    if "--help" in args or any(a in cli.commands for a in args):
        return False
    config_path = None
    for i, arg in enumerate(args):
        if arg == "--config" and i + 1 < len(args):
            config_path = Path(args[i + 1])
        elif arg.startswith("--config="):
            config_path = Path(arg.split("=", 1)[1])
    return ConfigManager(config_path).first_run_check()


def main():
    """Einstiegspunkt. Startet automatisch den Wizard beim ersten Aufruf."""
    if needs_first_run(sys.argv[1:]):
        console.print(Panel(
            "[bold]Chào mừng đến với công cụ bốc thăm tiết dạy![/bold]\n\n"
            "Chưa có cấu hình.\n"
            "Trình hướng dẫn thiết lập sẽ được khởi động...",
            border_style="cyan",
        ))
        sys.argv.append("setup")

    cli()


# Befehle registrieren
cli.add_command(cmd_setup)
cli.add_command(cmd_config)
cli.add_command(cmd_generate)
cli.add_command(cmd_template)
cli.add_command(cmd_import)
cli.add_command(cmd_export)
cli.add_command(cmd_sync)
cli.add_command(cmd_teacher)
cli.add_command(cmd_draw)
cli.add_command(cmd_reset)
cli.add_command(cmd_status)
cli.add_command(cmd_validate)


if __name__ == "__main__":
    main()

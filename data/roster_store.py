"""Roster-Store: Lese-/Schreibzugriff auf Konten und Lektionskatalog.

Alle Schreibzugriffe ersetzen den gespeicherten Bestand als Ganzes. Der
In-Memory-Stand wird erst übernommen, wenn das Schreiben erfolgreich war;
ein fehlgeschlagener Write hinterlässt daher keinen Teilzustand.

``transaction()`` serialisiert kritische Abschnitte (Prüfen → Zählen →
Schreiben) über ein RLock je Instanz. ``JsonRosterStore`` hält zusätzlich
eine Dateisperre (filelock) neben der JSON-Datei, damit auch mehrere
Instanzen und Prozesse auf derselben Datei nacheinander laufen.
"""

import logging
import os
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from threading import RLock
from typing import Iterable, Iterator, Optional

from filelock import FileLock, Timeout
from pydantic import ValidationError

from models.lesson import Lesson
from models.roster import RosterData
from models.user import User

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Schreiben/Lesen des Bestands fehlgeschlagen. Zustand unverändert."""

    retryable = True


class StoreBusyError(PersistenceError):
    """Sperre nicht innerhalb des Timeouts erhalten."""


class RecordChangedError(Exception):
    """Bedingter Write abgelehnt: das Konto ist inzwischen bereits gelost."""

    def __init__(self, current: User) -> None:
        self.current = current
        super().__init__(f"Konto bereits gelost: {current.id}")


class DuplicateEmailError(ValueError):
    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"Email đã tồn tại trong hệ thống: {email}")


class RosterStore:
    """Basis-Store. Unterklassen implementieren _read() und _write(),
    optional eine prozessübergreifende Sperre (_acquire_shared/_release_shared)."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._data: RosterData = RosterData()

    # ─── Persistenz-Hooks ──────────────────────────────────────────────────

    def _read(self) -> RosterData:
        raise NotImplementedError

    def _write(self, data: RosterData) -> None:
        raise NotImplementedError

    def _acquire_shared(self, timeout_s: Optional[float]) -> bool:
        return True

    def _release_shared(self) -> None:
        pass

    # ─── Transaktion ───────────────────────────────────────────────────────

    @contextmanager
    def transaction(self, *, reason: str = "", timeout_s: Optional[float] = None) -> Iterator[None]:
        """Serialisiert einen kritischen Abschnitt und lädt den Bestand frisch.

        Re-entrant: verschachtelte Transaktionen desselben Threads sind erlaubt.
        timeout_s gilt für beide Sperren zusammen.

        Raises:
            StoreBusyError: Sperre nicht innerhalb von timeout_s erhalten.
        """
        deadline = None if timeout_s is None else time.monotonic() + max(0.0, float(timeout_s))
        if deadline is None:
            acquired = self._lock.acquire()
        else:
            acquired = self._lock.acquire(timeout=max(0.0, deadline - time.monotonic()))
        if acquired:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                shared = self._acquire_shared(remaining)
            except BaseException:
                self._lock.release()
                raise
            if not shared:
                self._lock.release()
                acquired = False
        if not acquired:
            msg = f"Roster-Sperre nach {timeout_s}s nicht erhalten"
            if reason:
                msg += f" ({reason})"
            logger.warning(msg)
            raise StoreBusyError("Hệ thống đang bận, vui lòng thử lại.")
        try:
            self._data = self._read()
            yield
        finally:
            self._release_shared()
            self._lock.release()

    # ─── Lesen ─────────────────────────────────────────────────────────────

    def snapshot(self) -> RosterData:
        """Tiefe Kopie des aktuellen Bestands."""
        with self.transaction(reason="snapshot"):
            return self._data.model_copy(deep=True)

    def get_user(self, user_id: str) -> Optional[User]:
        return self.snapshot().get_user(user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        return self.snapshot().find_by_email(email)

    def list_users(self) -> list[User]:
        return list(self.snapshot().users)

    def list_lessons(self) -> list[Lesson]:
        return list(self.snapshot().lessons)

    # ─── Schreiben ─────────────────────────────────────────────────────────

    def _commit(self, data: RosterData) -> None:
        stamped = data.stamped()
        try:
            self._write(stamped)
        except OSError as e:
            logger.error(f"Roster konnte nicht gespeichert werden: {e}")
            raise PersistenceError(
                "Lỗi khi lưu dữ liệu, thao tác chưa được thực hiện. Vui lòng thử lại."
            ) from e
        self._data = stamped

    def save_user(self, user: User, *, require_undrawn: bool = False) -> None:
        """Ersetzt ein bestehendes Konto (Schlüssel: id)."""
        self.save_users([user], require_undrawn=require_undrawn)

    def save_users(self, users: Iterable[User], *, require_undrawn: bool = False) -> None:
        """Ersetzt mehrere Konten in einem einzigen Write.

        require_undrawn: Write nur, wenn jedes Konto im frisch gelesenen
        Bestand noch ungelost ist (has_drawn False → True).

        Raises:
            KeyError: Konto unbekannt.
            RecordChangedError: require_undrawn gesetzt und ein Konto ist
                bereits gelost. Nichts wird geschrieben.
        """
        updates = {u.id: u for u in users}
        with self.transaction(reason="save_users"):
            current = {u.id: u for u in self._data.users}
            missing = sorted(set(updates) - set(current))
            if missing:
                raise KeyError(f"Unbekannte Konten: {', '.join(missing)}")
            if require_undrawn:
                for uid in updates:
                    if current[uid].has_drawn:
                        raise RecordChangedError(current[uid])
            new_users = [updates.get(u.id, u) for u in self._data.users]
            self._commit(self._data.model_copy(update={"users": new_users}))

    def add_user(self, user: User) -> None:
        """Legt ein Konto an. E-Mail muss eindeutig sein."""
        with self.transaction(reason="add_user"):
            if self._data.find_by_email(user.email) is not None:
                raise DuplicateEmailError(user.email)
            if self._data.get_user(user.id) is not None:
                raise ValueError(f"ID tài khoản đã tồn tại: {user.id}")
            self._commit(self._data.model_copy(update={"users": self._data.users + [user]}))

    def delete_user(self, user_id: str) -> bool:
        """Entfernt ein Konto. Gibt True zurück wenn etwas entfernt wurde."""
        with self.transaction(reason="delete_user"):
            remaining = [u for u in self._data.users if u.id != user_id]
            if len(remaining) == len(self._data.users):
                return False
            self._commit(self._data.model_copy(update={"users": remaining}))
            return True

    def replace(self, users: Optional[list[User]] = None,
                lessons: Optional[list[Lesson]] = None) -> None:
        """Ersetzt Konten und/oder den kompletten Lektionskatalog."""
        with self.transaction(reason="replace"):
            update = {}
            if users is not None:
                update["users"] = list(users)
            if lessons is not None:
                update["lessons"] = list(lessons)
            self._commit(self._data.model_copy(update=update))


class InMemoryRosterStore(RosterStore):
    """Store ohne Datei (Tests, Vorschau)."""

    def __init__(self, data: Optional[RosterData] = None) -> None:
        super().__init__()
        self._stored = (data or RosterData()).model_copy(deep=True)

    def _read(self) -> RosterData:
        return self._stored

    def _write(self, data: RosterData) -> None:
        self._stored = data


class JsonRosterStore(RosterStore):
    """Store auf einer JSON-Datei.

    Jede Transaktion liest die Datei neu ein, damit Zählungen immer auf dem
    gespeicherten Stand beruhen. Geschrieben wird über eine temporäre Datei
    und os.replace, ein Abbruch hinterlässt die alte Datei intakt.
    Die Sperrdatei ``<name>.lock`` liegt neben der JSON-Datei.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self._file_lock = FileLock(str(self.lock_path))

    def _acquire_shared(self, timeout_s: Optional[float]) -> bool:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._file_lock.acquire(timeout=-1 if timeout_s is None else timeout_s)
        except Timeout:
            logger.warning(f"Dateisperre belegt: {self.lock_path}")
            return False
        except OSError as e:
            raise PersistenceError(f"Không khóa được dữ liệu: {self.lock_path}") from e
        return True

    def _release_shared(self) -> None:
        self._file_lock.release()

    def _read(self) -> RosterData:
        if not self.path.exists():
            return RosterData()
        try:
            return RosterData.load_json(self.path)
        except (OSError, ValidationError) as e:
            raise PersistenceError(f"Không đọc được dữ liệu: {self.path}") from e

    def _write(self, data: RosterData) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data.model_dump_json(indent=2))
            os.replace(tmp, self.path)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

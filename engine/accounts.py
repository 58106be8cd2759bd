"""Kontoverwaltung: Anmeldung, Lehrkräfte pflegen, Zeitfenster, Reset.

Rechte:
  ADMIN   – alles (Löschen, Rollen, Reset, Sammeländerung der Zeitfenster)
  MANAGER – Lehrkräfte anlegen, Zeitfenster einzeln, Khối-Beschränkung
  TEACHER – nur Auslosung (kein Zugriff auf diese Klasse)

Jede Änderung an einem Konto wird nach dem lokalen Write an den optionalen
Mirror weitergereicht (best effort, Fehler dort ändern den Bestand nicht).
"""

import hmac
import logging
import uuid
from datetime import datetime
from typing import Callable, Iterable, Optional

from data.roster_store import RosterStore
from engine.draw import DrawEngine
from engine.errors import AuthenticationError, PermissionDeniedError, TeacherNotFoundError
from models.user import Role, User

logger = logging.getLogger(__name__)

# Signatur des Mirrors: (Konto, "addUser" | "updateUser") -> Erfolg
UserMirror = Callable[[User, str], bool]


class RosterAdmin:
    """Verwaltungsoperationen über einem Roster-Store.

    Verwendung:
        admin = RosterAdmin(store, engine)
        actor = admin.authenticate("admin@edu.vn", "admin")
        admin.set_window(actor, [t.id for t in teachers], start, end)
    """

    def __init__(
        self,
        store: RosterStore,
        engine: DrawEngine,
        mirror: Optional[UserMirror] = None,
    ) -> None:
        self.store = store
        self.engine = engine
        self.mirror = mirror

    # ─── Anmeldung ─────────────────────────────────────────────────────────

    def authenticate(self, email: str, password: str) -> User:
        """Sucht das Konto per E-Mail und vergleicht das Klartext-Passwort.

        Raises:
            AuthenticationError: unbekannte E-Mail oder falsches Passwort.
        """
        user = self.store.find_by_email(email)
        if user is None or user.password is None:
            raise AuthenticationError()
        if not hmac.compare_digest(user.password.encode("utf-8"), password.encode("utf-8")):
            logger.info(f"Fehlgeschlagene Anmeldung: {user.email}")
            raise AuthenticationError()
        logger.debug(f"Angemeldet: {user.email} ({user.role.value})")
        return user

    # ─── Rechte ────────────────────────────────────────────────────────────

    @staticmethod
    def _require(actor: User, *roles: Role, action: str) -> None:
        if actor.role not in roles:
            logger.info(f"Verweigert: {actor.email} ({actor.role.value}) → {action}")
            raise PermissionDeniedError("Bạn không có quyền thực hiện thao tác này.")

    def _require_teacher(self, teacher_id: str) -> User:
        user = self.store.get_user(teacher_id)
        if user is None:
            raise TeacherNotFoundError(teacher_id)
        return user

    def _mirror(self, user: User, action: str) -> None:
        if self.mirror is None:
            return
        if not self.mirror(user, action):
            logger.warning(f"Spiegelung von {user.email} ({action}) fehlgeschlagen")

    # ─── Konten ────────────────────────────────────────────────────────────

    def add_teacher(
        self,
        actor: User,
        *,
        name: str,
        email: str,
        password: str,
        draw_start_time: datetime,
        draw_end_time: datetime,
        subject_group: Optional[str] = None,
        role: Role = Role.TEACHER,
    ) -> User:
        """Legt ein neues Konto an. Nur ADMIN darf andere Rollen als TEACHER vergeben.

        Raises:
            ValueError: Pflichtfeld leer.
            DuplicateEmailError: E-Mail bereits vergeben.
        """
        self._require(actor, Role.ADMIN, Role.MANAGER, action="add_teacher")
        if role != Role.TEACHER:
            self._require(actor, Role.ADMIN, action="add_teacher:role")
        if not name.strip() or not email.strip() or not password:
            raise ValueError("Vui lòng điền đầy đủ thông tin.")

        user = User(
            id=f"teacher-{uuid.uuid4().hex[:12]}",
            name=name.strip(),
            email=email,
            password=password,
            role=role,
            subject_group=subject_group,
            draw_start_time=draw_start_time,
            draw_end_time=draw_end_time,
        )
        self.store.add_user(user)
        logger.info(f"Konto angelegt: {user.email} ({user.role.value}) von {actor.email}")
        self._mirror(user, "addUser")
        return user

    def update_teacher(self, actor: User, teacher_id: str, **changes) -> User:
        """Ändert Stammdaten (name, subject_group, password) eines Kontos."""
        self._require(actor, Role.ADMIN, Role.MANAGER, action="update_teacher")
        allowed = {"name", "subject_group", "password"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Nicht änderbare Felder: {', '.join(sorted(unknown))}")
        with self.store.transaction(reason=f"update:{teacher_id}"):
            user = self._require_teacher(teacher_id)
            updated = User.model_validate({**user.model_dump(), **changes})
            self.store.save_user(updated)
        self._mirror(updated, "updateUser")
        return updated

    def delete_user(self, actor: User, user_id: str) -> None:
        """Entfernt ein Konto (nur ADMIN, nicht das eigene)."""
        self._require(actor, Role.ADMIN, action="delete_user")
        if user_id == actor.id:
            raise PermissionDeniedError("Không thể xóa tài khoản đang đăng nhập.")
        if not self.store.delete_user(user_id):
            raise TeacherNotFoundError(user_id)
        logger.info(f"Konto gelöscht: {user_id} von {actor.email}")

    def change_role(self, actor: User, user_id: str, role: Role) -> User:
        self._require(actor, Role.ADMIN, action="change_role")
        with self.store.transaction(reason=f"role:{user_id}"):
            user = self._require_teacher(user_id)
            if user.role == role:
                return user
            updated = user.model_copy(update={"role": role})
            self.store.save_user(updated)
        logger.info(f"Rolle geändert: {user.email} {user.role.value} → {role.value}")
        self._mirror(updated, "updateUser")
        return updated

    # ─── Zeitfenster & Khối-Beschränkung ──────────────────────────────────

    def set_window(
        self,
        actor: User,
        teacher_ids: Iterable[str],
        start: datetime,
        end: datetime,
    ) -> list[User]:
        """Setzt das Zeitfenster für eine oder mehrere Lehrkräfte in einem Write.

        MANAGER dürfen nur einzelne Konten ändern, Sammeländerungen sind ADMIN
        vorbehalten.
        """
        ids = list(dict.fromkeys(teacher_ids))
        if not ids:
            raise ValueError("Vui lòng chọn ít nhất 1 giáo viên để cập nhật.")
        if len(ids) > 1:
            self._require(actor, Role.ADMIN, action="set_window:bulk")
        else:
            self._require(actor, Role.ADMIN, Role.MANAGER, action="set_window")
        if start > end:
            raise ValueError("Thời gian bắt đầu phải trước thời gian kết thúc.")

        with self.store.transaction(reason="set_window"):
            updated = [
                self._require_teacher(tid).model_copy(update={
                    "draw_start_time": start,
                    "draw_end_time": end,
                })
                for tid in ids
            ]
            self.store.save_users(updated)
        logger.info(f"Zeitfenster {start:%Y-%m-%d %H:%M} – {end:%Y-%m-%d %H:%M} für {len(updated)} Konten")
        for user in updated:
            self._mirror(user, "updateUser")
        return updated

    def set_force_single_grade(self, actor: User, teacher_id: str, value: bool) -> User:
        self._require(actor, Role.ADMIN, Role.MANAGER, action="set_force_single_grade")
        with self.store.transaction(reason=f"single_grade:{teacher_id}"):
            updated = self._require_teacher(teacher_id).model_copy(
                update={"force_single_grade": value}
            )
            self.store.save_user(updated)
        self._mirror(updated, "updateUser")
        return updated

    # ─── Reset ─────────────────────────────────────────────────────────────

    def reset_draw(self, actor: User, teacher_id: str) -> User:
        """Löscht das Losergebnis, damit die Lehrkraft erneut losen kann."""
        self._require(actor, Role.ADMIN, action="reset_draw")
        user = self.engine.reset(teacher_id)
        self._mirror(user, "updateUser")
        return user

    def reset_all(self, actor: User) -> list[User]:
        """Setzt alle vorhandenen Losergebnisse zurück."""
        self._require(actor, Role.ADMIN, action="reset_all")
        drawn = [u.id for u in self.store.list_users() if u.has_drawn]
        users = self.engine.reset_many(drawn)
        for user in users:
            self._mirror(user, "updateUser")
        return users

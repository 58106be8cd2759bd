"""Fehlerklassen der Auslosung.

Vorbedingungsfehler werden nie intern wiederholt und ändern keinen Zustand.
Persistenzfehler stammen aus data.roster_store (retryable=True).
"""

from datetime import datetime
from typing import Sequence


class DrawError(Exception):
    """Basisklasse aller Vorbedingungsfehler der Auslosung."""

    retryable = False


class TeacherNotFoundError(DrawError):
    def __init__(self, teacher_id: str) -> None:
        self.teacher_id = teacher_id
        super().__init__(f"Không tìm thấy giáo viên: {teacher_id}")


class AlreadyDrawnError(DrawError):
    def __init__(self, teacher_id: str, lesson_id: str | None = None) -> None:
        self.teacher_id = teacher_id
        self.lesson_id = lesson_id
        super().__init__("Giáo viên đã bốc thăm rồi.")


class OutsideWindowError(DrawError):
    def __init__(self, start: datetime, end: datetime, now: datetime) -> None:
        self.start = start
        self.end = end
        self.now = now
        if now < start:
            detail = f"chưa đến giờ (bắt đầu {start:%d/%m/%Y %H:%M})"
        else:
            detail = f"đã hết giờ (kết thúc {end:%d/%m/%Y %H:%M})"
        super().__init__(f"Không nằm trong khung giờ được phép bốc thăm: {detail}.")

    @property
    def too_early(self) -> bool:
        return self.now < self.start


class InvalidGradeSelectionError(DrawError):
    def __init__(self, selected: Sequence[str], allowed: Sequence[int]) -> None:
        self.selected = list(selected)
        self.allowed = tuple(allowed)
        if not self.selected:
            msg = "Vui lòng chọn ít nhất 1 khối lớp để bốc thăm."
        elif self.allowed == (1,):
            msg = "Quý thầy/cô chỉ được chọn đúng 1 khối lớp."
        elif self.allowed == (2,):
            msg = "Môn của quý thầy/cô bắt buộc phải chọn đủ 2 khối lớp."
        else:
            msg = "Quý thầy/cô chỉ được chọn tối đa 2 khối lớp."
        super().__init__(msg)


class PermissionDeniedError(DrawError):
    """Aktion erfordert eine höhere Rolle."""


class AuthenticationError(DrawError):
    def __init__(self) -> None:
        super().__init__("Email hoặc mật khẩu không chính xác.")

from config.schema import ContestConfig, DrawRules, SyncConfig
from models.classroom import Classroom


DEFAULT_SUBJECTS = [
    "Toán", "Khoa học tự nhiên", "Lịch sử & Địa lí", "Tin Học", "Ngữ Văn",
    "Mĩ thuật", "Âm nhạc", "Tiếng Anh", "GDCD", "Giáo dục thể chất",
    "Công nghệ", "HĐTN-HN",
]

DEFAULT_GRADES = ["Khối 6", "Khối 7", "Khối 8", "Khối 9"]

# Fächer, bei denen die Lehrkraft 2 Khối wählen muss
TWO_GRADE_SUBJECTS = ["Tin Học", "GDCD", "Mĩ thuật", "Âm nhạc"]


def default_classes() -> list[Classroom]:
    """Start-Klassen: 6A1, 6A2, 7A1, 8A1, 9A1."""
    return [
        Classroom(id="c-6a1", grade="Khối 6", name="6A1"),
        Classroom(id="c-6a2", grade="Khối 6", name="6A2"),
        Classroom(id="c-7a1", grade="Khối 7", name="7A1"),
        Classroom(id="c-8a1", grade="Khối 8", name="8A1"),
        Classroom(id="c-9a1", grade="Khối 9", name="9A1"),
    ]


def default_contest_config() -> ContestConfig:
    """Vollständige Default-Config (Sync deaktiviert)."""
    return ContestConfig(
        school_name="Trường THCS",
        subjects=list(DEFAULT_SUBJECTS),
        grades=list(DEFAULT_GRADES),
        classes=default_classes(),
        rules=DrawRules(two_grade_subjects=list(TWO_GRADE_SUBJECTS)),
        sync=SyncConfig(),
    )

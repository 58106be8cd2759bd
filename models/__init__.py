from models.classroom import Classroom
from models.slot import SlotSignature
from models.lesson import Lesson
from models.user import Role, User
from models.roster import RosterData, ConsistencyReport

__all__ = [
    "Classroom",
    "SlotSignature",
    "Lesson",
    "Role",
    "User",
    "RosterData",
    "ConsistencyReport",
]

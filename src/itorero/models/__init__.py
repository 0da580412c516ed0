# src/itorero/models/__init__.py
from .user import User
from .refresh_token import RefreshToken
from .audit_log import AuditLog
from .org import District, Sector, Cell, IntoreGroup
from .ops.activity import Activity, ActivityAttendee
from .ops.attendance import Attendance
from .ops.media import Media
from .ops.notification import Notification
from .ops.report import Report
from .ops.cultural_content import CulturalContent
from .ops.chat import ChatGroup, ChatGroupMember, Message, MessageRead

__all__ = [
    "User", "RefreshToken", "AuditLog",
    "District", "Sector", "Cell", "IntoreGroup",
    "Activity", "ActivityAttendee", "Attendance", "Media", "Notification",
    "Report", "CulturalContent", "ChatGroup", "ChatGroupMember", "Message", "MessageRead",
]

from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Text
from sqlalchemy.orm import relationship
import enum

from sims.core.database import Base
from sims.core.types import GUID, TimestampMixin, enum_column_type, generate_uuid


class TargetAudience(str, enum.Enum):
    ALL = "all"
    STUDENTS = "students"
    FACULTY = "faculty"
    SPECIFIC_COURSE = "specific_course"  # target_id holds the section id


class AnnouncementPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotificationType(str, enum.Enum):
    ANNOUNCEMENT = "announcement"
    DOCUMENT_UPLOAD = "document_upload"
    STATUS_CHANGE = "status_change"
    GENERAL = "general"


class Announcement(TimestampMixin, Base):
    """Faculty/admin message to an audience"""
    __tablename__ = "announcements"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    author_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    target_audience = Column(enum_column_type(TargetAudience), default=TargetAudience.ALL, nullable=False)
    target_id = Column(GUID, nullable=True)
    priority = Column(enum_column_type(AnnouncementPriority), default=AnnouncementPriority.NORMAL, nullable=False)
    expires_at = Column(DateTime, nullable=True)

    author = relationship("User")

    def __repr__(self):
        return f"<Announcement {self.title}>"


class Notification(TimestampMixin, Base):
    """Per-recipient fan-out record"""
    __tablename__ = "notifications"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(enum_column_type(NotificationType), default=NotificationType.GENERAL, nullable=False)
    related_id = Column(GUID, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)

    def __repr__(self):
        return f"<Notification {self.user_id} {self.title}>"

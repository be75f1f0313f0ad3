from pydantic import BaseModel, Field, model_validator
from typing import Optional
from datetime import datetime

from sims.models.communication import AnnouncementPriority, TargetAudience
from sims.models.document import DocumentStatus


class AnnouncementCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    target_audience: TargetAudience = TargetAudience.ALL
    target_id: Optional[str] = None
    priority: AnnouncementPriority = AnnouncementPriority.NORMAL
    expires_at: Optional[datetime] = None

    @model_validator(mode='after')
    def validate_target(self):
        if self.target_audience == TargetAudience.SPECIFIC_COURSE and not self.target_id:
            raise ValueError("target_id is required for course announcements")
        return self


class DocumentReview(BaseModel):
    status: DocumentStatus
    review_notes: Optional[str] = None

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class GradebookCreate(BaseModel):
    course_id: int
    enabled: bool = True


class GradebookUpdate(BaseModel):
    enabled: Optional[bool] = None


class GradebookRead(BaseModel):
    id: int
    course_id: int
    enabled: bool
    created_at: datetime

    class Config:
        from_attributes = True

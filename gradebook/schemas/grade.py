from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class GradeResult(BaseModel):
    # percentage on a 0-100 scale; None while nothing counting is graded
    percentage: Optional[float] = None
    earned_points: float = 0.0
    possible_points: float = 0.0
    category_percentages: dict[int, Optional[float]] = Field(default_factory=dict)
    # scopes whose graded weights sum to zero (None = root)
    invalid_scopes: list[Optional[int]] = Field(default_factory=list)


class EnrollmentGrade(GradeResult):
    gradebook_id: int
    enrollment_id: int


class ScoreUpdate(BaseModel):
    # None clears the score back to "ungraded"
    score: Optional[float] = None
    feedback: Optional[str] = None


class ScoreEntry(ScoreUpdate):
    item_id: int


class BulkScoreUpdate(BaseModel):
    # written together: one bad entry rejects the whole batch
    grades: list[ScoreEntry] = Field(min_length=1)


class UserGradeRead(BaseModel):
    id: int
    enrollment_id: int
    gradebook_item_id: int
    base_grade: Optional[float]
    feedback: Optional[str]
    graded_at: Optional[datetime]

    class Config:
        from_attributes = True

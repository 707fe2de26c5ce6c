from typing import Optional

from pydantic import BaseModel, Field

from gradebook.core.config import DEFAULT_MAX_GRADE, DEFAULT_MIN_GRADE


class ItemCreate(BaseModel):
    name: str = Field(max_length=255)
    category_id: Optional[int] = None
    description: Optional[str] = None
    max_grade: float = DEFAULT_MAX_GRADE
    min_grade: float = DEFAULT_MIN_GRADE
    weight: Optional[float] = None
    extra_credit: bool = False
    activity_module_type: Optional[str] = None
    activity_module_name: Optional[str] = None


class ItemUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    max_grade: Optional[float] = None
    min_grade: Optional[float] = None
    weight: Optional[float] = None
    extra_credit: Optional[bool] = None


class ItemMove(BaseModel):
    category_id: Optional[int] = None


class ItemRead(BaseModel):
    id: int
    gradebook_id: int
    category_id: Optional[int]
    name: str
    description: Optional[str]
    max_grade: float
    min_grade: float
    weight: Optional[float]
    extra_credit: bool
    sort_order: int
    activity_module_type: Optional[str] = None
    activity_module_name: Optional[str] = None

    class Config:
        from_attributes = True

"""
Flat category/item records the read-side engine works on.

Rows are loaded once per call and handed over as plain lists; the tree is
rebuilt from the parent pointers, never from ORM relationships.
"""

from typing import Optional

from pydantic import BaseModel, Field

from gradebook.core.config import DEFAULT_MAX_GRADE, DEFAULT_MIN_GRADE


class CategoryRecord(BaseModel):
    id: int
    gradebook_id: Optional[int] = None
    parent_id: Optional[int] = None
    name: str
    weight: Optional[float] = None
    extra_credit: bool = False
    sort_order: int = 0

    # views over the parent pointers, filled in by the loader
    subcategories: list[int] = Field(default_factory=list)
    items: list[int] = Field(default_factory=list)

    class Config:
        from_attributes = True


class ItemRecord(BaseModel):
    id: int
    gradebook_id: Optional[int] = None
    category_id: Optional[int] = None
    name: str
    weight: Optional[float] = None
    max_grade: float = DEFAULT_MAX_GRADE
    min_grade: float = DEFAULT_MIN_GRADE
    extra_credit: bool = False
    sort_order: int = 0
    activity_module_type: Optional[str] = None
    activity_module_name: Optional[str] = None

    class Config:
        from_attributes = True

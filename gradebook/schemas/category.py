from typing import Optional

from pydantic import BaseModel, Field


class CategoryCreate(BaseModel):
    name: str = Field(max_length=255)
    parent_id: Optional[int] = None
    description: Optional[str] = None
    weight: Optional[float] = None
    extra_credit: bool = False


class CategoryUpdate(BaseModel):
    # parent_id is deliberately absent: moving is its own operation
    name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    weight: Optional[float] = None
    extra_credit: Optional[bool] = None


class CategoryMove(BaseModel):
    parent_id: Optional[int] = None


class CategoryRead(BaseModel):
    id: int
    gradebook_id: int
    parent_id: Optional[int]
    name: str
    description: Optional[str]
    weight: Optional[float]
    extra_credit: bool
    sort_order: int

    class Config:
        from_attributes = True

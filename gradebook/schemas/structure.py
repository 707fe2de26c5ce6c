from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class ItemNode(BaseModel):
    id: int
    type: Literal["manual_item", "activity_item"] = "manual_item"
    name: str
    weight: Optional[float] = None
    max_grade: Optional[float] = Field(default=None, alias="maxGrade")
    extra_credit: bool = Field(default=False, alias="extraCredit")

    class Config:
        populate_by_name = True


class CategoryNode(BaseModel):
    id: int
    type: Literal["category"] = "category"
    name: str
    weight: Optional[float] = None
    extra_credit: bool = Field(default=False, alias="extraCredit")
    entries: list[StructureNode] = Field(default_factory=list)

    class Config:
        populate_by_name = True


StructureNode = Annotated[Union[CategoryNode, ItemNode], Field(discriminator="type")]

CategoryNode.model_rebuild()


class NodeRef(BaseModel):
    kind: Literal["category", "item"]
    id: int


class ReorderRequest(BaseModel):
    # children of this scope (None = root), listed in the new order
    scope_id: Optional[int] = None
    nodes: list[NodeRef]

from typing import Optional

from pydantic import BaseModel, Field

from gradebook.schemas.structure import StructureNode


class WeightWarning(BaseModel):
    scope_id: Optional[int]
    path: str
    total: float
    message: str


class ItemOverallWeight(BaseModel):
    id: int
    name: str
    extra_credit: bool
    overall_weight: Optional[float]
    explanation: Optional[str]


class WeightSummary(BaseModel):
    calculated_total: float
    extra_credit_total: float
    total_max_grade: float
    has_extra_credit: bool
    invalid_scopes: list[Optional[int]] = Field(default_factory=list)
    warnings: list[WeightWarning] = Field(default_factory=list)
    item_weights: list[ItemOverallWeight] = Field(default_factory=list)


class GradebookSetup(BaseModel):
    gradebook_id: int
    course_id: int
    entries: list[StructureNode]
    totals: WeightSummary

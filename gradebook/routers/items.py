from fastapi import APIRouter, Depends, status

from gradebook.core.deps import get_service, unwrap
from gradebook.schemas.grade import ScoreUpdate, UserGradeRead
from gradebook.schemas.item import ItemCreate, ItemMove, ItemRead, ItemUpdate
from gradebook.services.lifecycle import GradebookService

router = APIRouter()


@router.post(
    "/gradebooks/{gradebook_id}/items",
    response_model=ItemRead,
    status_code=status.HTTP_201_CREATED,
)
def create_item(
    gradebook_id: int,
    payload: ItemCreate,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.create_item(gradebook_id, payload))


@router.get("/items/{item_id}", response_model=ItemRead)
def get_item(
    item_id: int,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.get_item(item_id))


@router.patch("/items/{item_id}", response_model=ItemRead)
def update_item(
    item_id: int,
    payload: ItemUpdate,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.update_item(item_id, payload))


@router.delete("/items/{item_id}", response_model=ItemRead)
def delete_item(
    item_id: int,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.delete_item(item_id))


@router.post("/items/{item_id}/move", response_model=ItemRead)
def move_item(
    item_id: int,
    payload: ItemMove,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.move_item(item_id, payload))


@router.put("/items/{item_id}/grades/{enrollment_id}", response_model=UserGradeRead)
def record_score(
    item_id: int,
    enrollment_id: int,
    payload: ScoreUpdate,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.record_score(item_id, enrollment_id, payload))


@router.get("/items/{item_id}/grades", response_model=list[UserGradeRead])
def item_scores(
    item_id: int,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.list_item_grades(item_id))

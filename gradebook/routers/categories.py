from fastapi import APIRouter, Depends, status

from gradebook.core.deps import get_service, unwrap
from gradebook.schemas.category import CategoryCreate, CategoryMove, CategoryRead, CategoryUpdate
from gradebook.services.lifecycle import GradebookService

router = APIRouter()


@router.post(
    "/gradebooks/{gradebook_id}/categories",
    response_model=CategoryRead,
    status_code=status.HTTP_201_CREATED,
)
def create_category(
    gradebook_id: int,
    payload: CategoryCreate,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.create_category(gradebook_id, payload))


@router.get("/categories/{category_id}", response_model=CategoryRead)
def get_category(
    category_id: int,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.get_category(category_id))


@router.patch("/categories/{category_id}", response_model=CategoryRead)
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.update_category(category_id, payload))


@router.delete(
    "/categories/{category_id}",
    response_model=CategoryRead,
    responses={
        409: {"description": "Category still has subcategories or items"},
    },
)
def delete_category(
    category_id: int,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.delete_category(category_id))


@router.post("/categories/{category_id}/move", response_model=CategoryRead)
def move_category(
    category_id: int,
    payload: CategoryMove,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.move_category(category_id, payload))

from fastapi import APIRouter, Depends, status

from gradebook.core.deps import get_service, unwrap
from gradebook.schemas.grade import BulkScoreUpdate, EnrollmentGrade, UserGradeRead
from gradebook.schemas.gradebook import GradebookCreate, GradebookRead, GradebookUpdate
from gradebook.schemas.structure import ReorderRequest, StructureNode
from gradebook.schemas.weights import GradebookSetup
from gradebook.services.lifecycle import GradebookService

router = APIRouter()


@router.post(
    "",
    response_model=GradebookRead,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"description": "Gradebook already exists for course"},
    },
)
def create_gradebook(
    payload: GradebookCreate,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.create_gradebook(payload))


@router.get("/{gradebook_id}", response_model=GradebookRead)
def get_gradebook(
    gradebook_id: int,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.get_gradebook(gradebook_id))


@router.patch("/{gradebook_id}", response_model=GradebookRead)
def update_gradebook(
    gradebook_id: int,
    payload: GradebookUpdate,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.update_gradebook(gradebook_id, payload))


@router.get("/{gradebook_id}/structure", response_model=list[StructureNode])
def gradebook_structure(
    gradebook_id: int,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.get_structure(gradebook_id))


@router.get("/{gradebook_id}/setup", response_model=GradebookSetup)
def gradebook_setup(
    gradebook_id: int,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.get_setup(gradebook_id))


@router.post("/{gradebook_id}/reorder", response_model=list[StructureNode])
def reorder_scope(
    gradebook_id: int,
    payload: ReorderRequest,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.reorder_scope(gradebook_id, payload))


@router.get(
    "/{gradebook_id}/enrollments/{enrollment_id}/grade",
    response_model=EnrollmentGrade,
)
def enrollment_grade(
    gradebook_id: int,
    enrollment_id: int,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.compute_enrollment_grade(gradebook_id, enrollment_id))


@router.get(
    "/{gradebook_id}/enrollments/{enrollment_id}/grades",
    response_model=list[UserGradeRead],
)
def enrollment_scores(
    gradebook_id: int,
    enrollment_id: int,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.list_enrollment_grades(gradebook_id, enrollment_id))


@router.put(
    "/{gradebook_id}/enrollments/{enrollment_id}/grades",
    response_model=list[UserGradeRead],
    responses={
        400: {"description": "A score is out of bounds or an item belongs to another gradebook"},
    },
)
def record_scores(
    gradebook_id: int,
    enrollment_id: int,
    payload: BulkScoreUpdate,
    service: GradebookService = Depends(get_service),
):
    return unwrap(service.record_scores(gradebook_id, enrollment_id, payload))

import pytest

from gradebook.core.errors import (
    DuplicateGradebookError,
    ErrorCode,
    NotFoundError,
    StructuralInvariantError,
    ValidationError,
)
from gradebook.models.category import GradebookCategory
from gradebook.models.item import GradebookItem
from gradebook.models.user_grade import UserGrade
from gradebook.schemas.category import CategoryCreate, CategoryMove, CategoryUpdate
from gradebook.schemas.grade import BulkScoreUpdate, ScoreEntry, ScoreUpdate
from gradebook.schemas.gradebook import GradebookCreate, GradebookUpdate
from gradebook.schemas.item import ItemCreate, ItemMove, ItemUpdate
from gradebook.schemas.structure import NodeRef, ReorderRequest
from gradebook.services.structure import build_category_structure


def add_category(service, gradebook_id, name, **fields):
    return service.create_category(gradebook_id, CategoryCreate(name=name, **fields)).unwrap()


def add_item(service, gradebook_id, name, **fields):
    return service.create_item(gradebook_id, ItemCreate(name=name, **fields)).unwrap()


# --- creation ---


def test_sort_order_is_shared_by_categories_and_items(service, gradebook_id):
    homework = add_category(service, gradebook_id, "Homework", weight=40)
    exam = add_item(service, gradebook_id, "Exam", weight=60)
    bonus = add_category(service, gradebook_id, "Bonus", weight=5, extra_credit=True)

    assert [homework.sort_order, exam.sort_order, bonus.sort_order] == [0, 1, 2]

    essay = add_item(service, gradebook_id, "Essay", category_id=homework.id)
    assert essay.sort_order == 0


def test_create_trims_name(service, gradebook_id):
    category = add_category(service, gradebook_id, "  Labs  ")

    assert category.name == "Labs"


@pytest.mark.parametrize(
    "payload",
    [
        CategoryCreate(name="   "),
        CategoryCreate(name="Heavy", weight=150),
        CategoryCreate(name="Negative", weight=-1),
        CategoryCreate(name="Orphan", parent_id=9999),
    ],
)
def test_invalid_category_is_rejected(service, gradebook_id, payload):
    result = service.create_category(gradebook_id, payload)

    assert not result.ok
    assert isinstance(result.error, ValidationError)
    assert result.error.code is ErrorCode.VALIDATION_FAILED


@pytest.mark.parametrize(
    "fields",
    [
        {"max_grade": 5, "min_grade": 10},
        {"min_grade": -1},
        {"weight": 101},
    ],
)
def test_invalid_item_is_rejected(service, gradebook_id, fields):
    result = service.create_item(gradebook_id, ItemCreate(name="Quiz", **fields))

    assert isinstance(result.error, ValidationError)


def test_unknown_gradebook_is_not_found(service):
    result = service.create_category(9999, CategoryCreate(name="Homework"))

    assert isinstance(result.error, NotFoundError)
    assert result.error.status_code == 404


def test_parent_from_other_gradebook_is_rejected(service, gradebook_id):
    other = service.create_gradebook(GradebookCreate(course_id=2)).unwrap()
    foreign = add_category(service, other.id, "Foreign")

    result = service.create_item(gradebook_id, ItemCreate(name="Quiz", category_id=foreign.id))

    assert isinstance(result.error, StructuralInvariantError)


def test_one_gradebook_per_course(service):
    result = service.create_gradebook(GradebookCreate(course_id=1))

    assert isinstance(result.error, DuplicateGradebookError)
    assert result.error.status_code == 409


# --- update ---


def test_update_never_changes_parent(service, gradebook_id):
    parent = add_category(service, gradebook_id, "Parent")
    child = add_category(service, gradebook_id, "Child", parent_id=parent.id)

    payload = CategoryUpdate.model_validate({"name": "Renamed", "parent_id": None})
    updated = service.update_category(child.id, payload).unwrap()

    assert updated.name == "Renamed"
    assert updated.parent_id == parent.id


def test_update_item_checks_bounds_against_stored_values(service, gradebook_id):
    quiz = add_item(service, gradebook_id, "Quiz", max_grade=20)

    result = service.update_item(quiz.id, ItemUpdate(min_grade=25))

    assert isinstance(result.error, ValidationError)
    assert service.get_item(quiz.id).unwrap().min_grade == 0


def test_update_item_weight(service, gradebook_id):
    quiz = add_item(service, gradebook_id, "Quiz", weight=10)

    updated = service.update_item(quiz.id, ItemUpdate(weight=35)).unwrap()

    assert updated.weight == 35
    assert updated.sort_order == 0


# --- delete ---


def test_delete_non_empty_category_is_rejected(service, gradebook_id):
    homework = add_category(service, gradebook_id, "Homework")
    add_item(service, gradebook_id, "Essay", category_id=homework.id)

    result = service.delete_category(homework.id)

    assert isinstance(result.error, StructuralInvariantError)
    assert result.error.status_code == 409
    assert service.get_category(homework.id).ok


def test_delete_sees_children_added_before_the_lock(service, other_service, gradebook_id, monkeypatch):
    homework = add_category(service, gradebook_id, "Homework")
    homework_id = homework.id
    lock = service._lock_gradebook

    def lock_after_concurrent_create(locked_id):
        add_item(other_service, gradebook_id, "Late", category_id=homework_id)
        return lock(locked_id)

    monkeypatch.setattr(service, "_lock_gradebook", lock_after_concurrent_create)
    result = service.delete_category(homework_id)
    monkeypatch.undo()

    assert isinstance(result.error, StructuralInvariantError)
    structure = other_service.get_structure(gradebook_id).unwrap()
    assert [(node.type, node.id) for node in structure] == [("category", homework_id)]
    assert [node.name for node in structure[0].entries] == ["Late"]


def test_deleting_a_category_row_never_reparents_children(service, gradebook_id, db):
    homework = add_category(service, gradebook_id, "Homework")
    essay = add_item(service, gradebook_id, "Essay", category_id=homework.id)
    homework_id, essay_id = homework.id, essay.id

    db.delete(homework)
    db.flush()

    assert db.query(GradebookItem.category_id).filter(GradebookItem.id == essay_id).scalar() == homework_id
    db.rollback()


def test_delete_closes_the_gap(service, gradebook_id):
    first = add_item(service, gradebook_id, "First")
    middle = add_category(service, gradebook_id, "Middle")
    last = add_item(service, gradebook_id, "Last")

    deleted = service.delete_category(middle.id).unwrap()

    assert deleted.id == middle.id
    assert service.get_item(first.id).unwrap().sort_order == 0
    assert service.get_item(last.id).unwrap().sort_order == 1
    assert isinstance(service.get_category(middle.id).error, NotFoundError)


def test_delete_item_removes_its_scores(service, gradebook_id, db):
    quiz = add_item(service, gradebook_id, "Quiz")
    service.record_score(quiz.id, 7, ScoreUpdate(score=50)).unwrap()

    service.delete_item(quiz.id).unwrap()

    assert db.query(UserGrade).filter(UserGrade.gradebook_item_id == quiz.id).count() == 0


# --- move ---


def test_move_category_under_descendant_is_rejected(service, gradebook_id):
    outer = add_category(service, gradebook_id, "Outer")
    inner = add_category(service, gradebook_id, "Inner", parent_id=outer.id)

    into_child = service.move_category(outer.id, CategoryMove(parent_id=inner.id))
    into_self = service.move_category(outer.id, CategoryMove(parent_id=outer.id))

    assert isinstance(into_child.error, StructuralInvariantError)
    assert isinstance(into_self.error, StructuralInvariantError)
    assert service.get_category(outer.id).unwrap().parent_id is None


def test_move_item_appends_and_densifies_source(service, gradebook_id):
    homework = add_category(service, gradebook_id, "Homework")
    add_item(service, gradebook_id, "Essay", category_id=homework.id)
    quiz = add_item(service, gradebook_id, "Quiz")
    lab = add_item(service, gradebook_id, "Lab")

    moved = service.move_item(quiz.id, ItemMove(category_id=homework.id)).unwrap()

    assert moved.category_id == homework.id
    assert moved.sort_order == 1
    assert service.get_item(lab.id).unwrap().sort_order == 1


def test_move_category_to_root(service, gradebook_id):
    outer = add_category(service, gradebook_id, "Outer")
    inner = add_category(service, gradebook_id, "Inner", parent_id=outer.id)

    moved = service.move_category(inner.id, CategoryMove(parent_id=None)).unwrap()

    assert moved.parent_id is None
    assert moved.sort_order == 1


# --- reorder ---


def test_reorder_scope(service, gradebook_id):
    homework = add_category(service, gradebook_id, "Homework", weight=40)
    exam = add_item(service, gradebook_id, "Exam", weight=60)

    nodes = [NodeRef(kind="item", id=exam.id), NodeRef(kind="category", id=homework.id)]
    structure = service.reorder_scope(gradebook_id, ReorderRequest(nodes=nodes)).unwrap()

    assert [(node.type, node.id) for node in structure] == [
        ("manual_item", exam.id),
        ("category", homework.id),
    ]
    assert service.get_category(homework.id).unwrap().sort_order == 1


def test_reorder_must_list_every_child(service, gradebook_id):
    homework = add_category(service, gradebook_id, "Homework")
    exam = add_item(service, gradebook_id, "Exam")

    partial = ReorderRequest(nodes=[NodeRef(kind="item", id=exam.id)])
    result = service.reorder_scope(gradebook_id, partial)

    assert isinstance(result.error, StructuralInvariantError)
    assert service.get_category(homework.id).unwrap().sort_order == 0


# --- scores and grades ---


def test_enrollment_grade(service, gradebook_id):
    homework = add_category(service, gradebook_id, "Homework", weight=40)
    essay = add_item(service, gradebook_id, "Essay", category_id=homework.id, weight=100, max_grade=10)
    exam = add_item(service, gradebook_id, "Exam", weight=60)

    service.record_score(essay.id, 7, ScoreUpdate(score=8)).unwrap()
    service.record_score(exam.id, 7, ScoreUpdate(score=90, feedback="Well done")).unwrap()

    grade = service.compute_enrollment_grade(gradebook_id, 7).unwrap()

    assert grade.enrollment_id == 7
    assert grade.percentage == pytest.approx(86.0)
    assert grade.category_percentages == {homework.id: pytest.approx(80.0)}
    assert grade.possible_points == pytest.approx(110.0)


def test_cleared_score_counts_as_ungraded(service, gradebook_id):
    essay = add_item(service, gradebook_id, "Essay", weight=50)
    exam = add_item(service, gradebook_id, "Exam", weight=50)
    service.record_score(essay.id, 7, ScoreUpdate(score=40)).unwrap()
    service.record_score(exam.id, 7, ScoreUpdate(score=100)).unwrap()

    cleared = service.record_score(essay.id, 7, ScoreUpdate(score=None)).unwrap()
    grade = service.compute_enrollment_grade(gradebook_id, 7).unwrap()

    assert cleared.base_grade is None
    assert cleared.graded_at is None
    assert grade.percentage == pytest.approx(100.0)


def test_enrollment_without_scores_has_no_grade(service, gradebook_id):
    add_item(service, gradebook_id, "Exam", weight=100)

    grade = service.compute_enrollment_grade(gradebook_id, 42).unwrap()

    assert grade.percentage is None
    assert grade.invalid_scopes == []


def test_score_outside_bounds_is_rejected(service, gradebook_id):
    exam = add_item(service, gradebook_id, "Exam", max_grade=50)

    result = service.record_score(exam.id, 7, ScoreUpdate(score=51))

    assert isinstance(result.error, ValidationError)


# --- read side ---


def test_setup_reports_totals(service, gradebook_id):
    homework = add_category(service, gradebook_id, "Homework", weight=40)
    add_item(service, gradebook_id, "Essay", category_id=homework.id, weight=100, max_grade=20)
    add_item(service, gradebook_id, "Exam", weight=60)
    add_item(service, gradebook_id, "Bonus", weight=5, max_grade=10, extra_credit=True)

    setup = service.get_setup(gradebook_id).unwrap()

    assert setup.course_id == 1
    assert [node.name for node in setup.entries] == ["Homework", "Exam", "Bonus"]
    assert setup.totals.calculated_total == 100
    assert setup.totals.extra_credit_total == 5
    assert setup.totals.total_max_grade == 130
    assert setup.totals.warnings == []


def test_structure_of_unknown_gradebook(service):
    assert isinstance(service.get_structure(9999).error, NotFoundError)


def test_structure_builds_from_orm_rows(service, gradebook_id, db):
    homework = add_category(service, gradebook_id, "Homework")
    add_item(
        service,
        gradebook_id,
        "Quiz 1",
        category_id=homework.id,
        activity_module_type="quiz",
        activity_module_name="Week 1 Quiz",
    )
    add_item(service, gradebook_id, "Essay", category_id=homework.id)

    nodes = build_category_structure(
        homework.id,
        db.query(GradebookCategory).all(),
        db.query(GradebookItem).all(),
    )

    assert [(node.type, node.name) for node in nodes] == [
        ("activity_item", "Week 1 Quiz"),
        ("manual_item", "Essay"),
    ]


# --- integrity ---


def test_duplicate_sort_order_is_detected_on_write(service, gradebook_id, db):
    add_item(service, gradebook_id, "First")
    second = add_item(service, gradebook_id, "Second")
    second.sort_order = 0
    db.commit()

    result = service.create_item(gradebook_id, ItemCreate(name="Third"))

    assert isinstance(result.error, StructuralInvariantError)
    assert db.query(GradebookItem).filter(GradebookItem.name == "Third").count() == 0


# --- gradebook settings ---


def test_update_gradebook_toggles_enabled(service, gradebook_id):
    updated = service.update_gradebook(gradebook_id, GradebookUpdate(enabled=False)).unwrap()

    assert updated.enabled is False
    assert service.get_gradebook(gradebook_id).unwrap().enabled is False


def test_update_gradebook_rejects_null_enabled(service, gradebook_id):
    result = service.update_gradebook(gradebook_id, GradebookUpdate(enabled=None))

    assert isinstance(result.error, ValidationError)
    assert isinstance(service.update_gradebook(9999, GradebookUpdate()).error, NotFoundError)


# --- bulk scores ---


def test_record_scores_upserts_in_one_batch(service, gradebook_id):
    essay = add_item(service, gradebook_id, "Essay", weight=50)
    exam = add_item(service, gradebook_id, "Exam", weight=50)
    service.record_score(essay.id, 7, ScoreUpdate(score=10)).unwrap()

    payload = BulkScoreUpdate(
        grades=[
            ScoreEntry(item_id=essay.id, score=60, feedback="Revised"),
            ScoreEntry(item_id=exam.id, score=80),
        ]
    )
    grades = service.record_scores(gradebook_id, 7, payload).unwrap()

    assert [(g.gradebook_item_id, g.base_grade) for g in grades] == [(essay.id, 60), (exam.id, 80)]
    assert grades[0].feedback == "Revised"
    listed = service.list_enrollment_grades(gradebook_id, 7).unwrap()
    assert len(listed) == 2
    assert service.compute_enrollment_grade(gradebook_id, 7).unwrap().percentage == pytest.approx(70.0)


def test_record_scores_is_all_or_nothing(service, gradebook_id):
    essay = add_item(service, gradebook_id, "Essay")
    exam = add_item(service, gradebook_id, "Exam", max_grade=50)

    payload = BulkScoreUpdate(
        grades=[
            ScoreEntry(item_id=essay.id, score=60),
            ScoreEntry(item_id=exam.id, score=75),
        ]
    )
    result = service.record_scores(gradebook_id, 7, payload)

    assert isinstance(result.error, ValidationError)
    assert service.list_enrollment_grades(gradebook_id, 7).unwrap() == []


@pytest.mark.parametrize("duplicate", [True, False])
def test_record_scores_rejects_bad_items(service, gradebook_id, duplicate):
    essay = add_item(service, gradebook_id, "Essay")
    other = service.create_gradebook(GradebookCreate(course_id=2)).unwrap()
    foreign = add_item(service, other.id, "Foreign")

    second = essay.id if duplicate else foreign.id
    payload = BulkScoreUpdate(
        grades=[ScoreEntry(item_id=essay.id, score=1), ScoreEntry(item_id=second, score=2)]
    )
    result = service.record_scores(gradebook_id, 7, payload)

    assert isinstance(result.error, ValidationError)


def test_record_scores_unknown_item(service, gradebook_id):
    payload = BulkScoreUpdate(grades=[ScoreEntry(item_id=9999, score=1)])

    assert isinstance(service.record_scores(gradebook_id, 7, payload).error, NotFoundError)


def test_list_item_grades(service, gradebook_id):
    exam = add_item(service, gradebook_id, "Exam")
    service.record_score(exam.id, 9, ScoreUpdate(score=55)).unwrap()
    service.record_score(exam.id, 3, ScoreUpdate(score=95)).unwrap()

    grades = service.list_item_grades(exam.id).unwrap()

    assert [(g.enrollment_id, g.base_grade) for g in grades] == [(3, 95), (9, 55)]
    assert isinstance(service.list_item_grades(9999).error, NotFoundError)


def test_unwrap_raises_the_stored_error(service):
    result = service.get_item(9999)

    with pytest.raises(NotFoundError):
        result.unwrap()

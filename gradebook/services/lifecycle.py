import logging
import math
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gradebook.core.config import MAX_WEIGHT
from gradebook.core.errors import (
    DuplicateGradebookError,
    NotFoundError,
    StructuralInvariantError,
    ValidationError,
)
from gradebook.core.result import wrap_result
from gradebook.models.category import GradebookCategory
from gradebook.models.gradebook import Gradebook
from gradebook.models.item import GradebookItem
from gradebook.models.user_grade import UserGrade
from gradebook.schemas.category import CategoryCreate, CategoryMove, CategoryRead, CategoryUpdate
from gradebook.schemas.grade import BulkScoreUpdate, EnrollmentGrade, ScoreUpdate
from gradebook.schemas.gradebook import GradebookCreate, GradebookUpdate
from gradebook.schemas.item import ItemCreate, ItemMove, ItemRead, ItemUpdate
from gradebook.schemas.records import CategoryRecord, ItemRecord
from gradebook.schemas.structure import ReorderRequest
from gradebook.schemas.weights import GradebookSetup
from gradebook.services.aggregation import compute_grade
from gradebook.services.sort_order import dense_sort_orders, is_category, next_sort_order
from gradebook.services.structure import (
    ScopeIndex,
    build_category_structure,
    build_gradebook_structure,
)
from gradebook.services.weights import summarize_structure

logger = logging.getLogger(__name__)


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Name must not be empty")
    return cleaned


def _check_weight(weight: Optional[float]) -> None:
    if weight is None:
        return
    if not math.isfinite(weight) or weight < 0 or weight > MAX_WEIGHT:
        raise ValidationError(f"Weight must be between 0 and {MAX_WEIGHT:g}")


def _check_grade_bounds(max_grade: float, min_grade: float) -> None:
    if not (math.isfinite(max_grade) and math.isfinite(min_grade)):
        raise ValidationError("Grade bounds must be finite numbers")
    if min_grade < 0:
        raise ValidationError("Minimum grade must be non-negative")
    if max_grade < min_grade:
        raise ValidationError("Maximum grade must be greater than or equal to minimum grade")


class GradebookService:
    """
    Category/item lifecycle plus the read-side views of one gradebook.

    Every public method returns a `Result`. Mutations touching more than one
    record (sort-order allocation, densifying a scope after a delete or move,
    reordering) run in a single transaction with the gradebook row locked, so
    the read-compute-write of the next sort order cannot interleave.
    """

    def __init__(self, db: Session):
        self.db = db

    # === transactions ===

    @contextmanager
    def _write(self):
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _lock_gradebook(self, gradebook_id: int) -> Gradebook:
        gradebook = (
            self.db.query(Gradebook)
            .filter(Gradebook.id == gradebook_id)
            .with_for_update()
            .first()
        )
        if not gradebook:
            raise NotFoundError(f"Gradebook with ID {gradebook_id} not found")
        return gradebook

    # === lookups ===

    def _gradebook(self, gradebook_id: int) -> Gradebook:
        gradebook = self.db.query(Gradebook).filter(Gradebook.id == gradebook_id).first()
        if not gradebook:
            raise NotFoundError(f"Gradebook with ID {gradebook_id} not found")
        return gradebook

    def _category(self, category_id: int) -> GradebookCategory:
        category = (
            self.db.query(GradebookCategory).filter(GradebookCategory.id == category_id).first()
        )
        if not category:
            raise NotFoundError(f"Category with ID {category_id} not found")
        return category

    def _item(self, item_id: int) -> GradebookItem:
        item = self.db.query(GradebookItem).filter(GradebookItem.id == item_id).first()
        if not item:
            raise NotFoundError(f"Item with ID {item_id} not found")
        return item

    def _parent_scope(self, gradebook_id: int, category_id: int) -> GradebookCategory:
        parent = (
            self.db.query(GradebookCategory).filter(GradebookCategory.id == category_id).first()
        )
        if not parent:
            raise ValidationError(f"Parent category with ID {category_id} not found")
        if parent.gradebook_id != gradebook_id:
            raise StructuralInvariantError("Parent category must belong to the same gradebook")
        return parent

    def _scope_children(self, gradebook_id: int, scope_id: Optional[int]) -> list:
        categories = self.db.query(GradebookCategory).filter(
            GradebookCategory.gradebook_id == gradebook_id
        )
        items = self.db.query(GradebookItem).filter(GradebookItem.gradebook_id == gradebook_id)
        if scope_id is None:
            categories = categories.filter(GradebookCategory.parent_id.is_(None))
            items = items.filter(GradebookItem.category_id.is_(None))
        else:
            categories = categories.filter(GradebookCategory.parent_id == scope_id)
            items = items.filter(GradebookItem.category_id == scope_id)
        return items.all() + categories.all()

    # === structural helpers ===

    def _densify(self, gradebook_id: int, scope_id: Optional[int]) -> None:
        for node, index in dense_sort_orders(self._scope_children(gradebook_id, scope_id)):
            if node.sort_order != index:
                node.sort_order = index

    def _check_scope_integrity(self, gradebook_id: int, scope_id: Optional[int]) -> None:
        self.db.flush()
        orders = [node.sort_order for node in self._scope_children(gradebook_id, scope_id)]
        if len(orders) != len(set(orders)):
            raise StructuralInvariantError(
                f"Duplicate sort order in scope {scope_id} of gradebook {gradebook_id}"
            )

    def _load_records(self, gradebook_id: int) -> tuple[list[CategoryRecord], list[ItemRecord]]:
        categories = (
            self.db.query(GradebookCategory)
            .filter(GradebookCategory.gradebook_id == gradebook_id)
            .order_by(GradebookCategory.sort_order.asc(), GradebookCategory.id.asc())
            .all()
        )
        items = (
            self.db.query(GradebookItem)
            .filter(GradebookItem.gradebook_id == gradebook_id)
            .order_by(GradebookItem.sort_order.asc(), GradebookItem.id.asc())
            .all()
        )

        subcategory_ids: dict[int, list[int]] = defaultdict(list)
        item_ids: dict[int, list[int]] = defaultdict(list)
        for c in categories:
            if c.parent_id is not None:
                subcategory_ids[c.parent_id].append(c.id)
        for i in items:
            if i.category_id is not None:
                item_ids[i.category_id].append(i.id)

        category_records = [
            CategoryRecord(
                id=c.id,
                gradebook_id=c.gradebook_id,
                parent_id=c.parent_id,
                name=c.name,
                weight=c.weight,
                extra_credit=c.extra_credit,
                sort_order=c.sort_order,
                subcategories=subcategory_ids[c.id],
                items=item_ids[c.id],
            )
            for c in categories
        ]
        item_records = [ItemRecord.model_validate(i) for i in items]

        cycle = ScopeIndex(category_records, []).find_cycle()
        if cycle:
            logger.error("Gradebook %s has a cyclic category chain: %s", gradebook_id, cycle)
            raise StructuralInvariantError(
                f"Categories {cycle} form a cycle in gradebook {gradebook_id}"
            )
        return category_records, item_records

    # === gradebooks ===

    @wrap_result
    def create_gradebook(self, payload: GradebookCreate) -> Gradebook:
        existing = self.db.query(Gradebook).filter(Gradebook.course_id == payload.course_id).first()
        if existing:
            raise DuplicateGradebookError(f"Gradebook already exists for course {payload.course_id}")

        gradebook = Gradebook(course_id=payload.course_id, enabled=payload.enabled)
        self.db.add(gradebook)

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateGradebookError(f"Gradebook already exists for course {payload.course_id}")

        self.db.refresh(gradebook)
        logger.info("Created gradebook %s for course %s", gradebook.id, gradebook.course_id)
        return gradebook

    @wrap_result
    def get_gradebook(self, gradebook_id: int) -> Gradebook:
        return self._gradebook(gradebook_id)

    @wrap_result
    def update_gradebook(self, gradebook_id: int, payload: GradebookUpdate) -> Gradebook:
        gradebook = self._gradebook(gradebook_id)

        changes = payload.model_dump(exclude_unset=True)
        if "enabled" in changes and changes["enabled"] is None:
            raise ValidationError("enabled must be true or false")

        with self._write():
            for field, value in changes.items():
                setattr(gradebook, field, value)

        self.db.refresh(gradebook)
        logger.info("Updated gradebook %s (enabled=%s)", gradebook.id, gradebook.enabled)
        return gradebook

    # === categories ===

    @wrap_result
    def create_category(self, gradebook_id: int, payload: CategoryCreate) -> GradebookCategory:
        name = _clean_name(payload.name)
        _check_weight(payload.weight)

        with self._write():
            self._lock_gradebook(gradebook_id)
            if payload.parent_id is not None:
                self._parent_scope(gradebook_id, payload.parent_id)

            siblings = self._scope_children(gradebook_id, payload.parent_id)
            category = GradebookCategory(
                gradebook_id=gradebook_id,
                parent_id=payload.parent_id,
                name=name,
                description=payload.description,
                weight=payload.weight,
                extra_credit=payload.extra_credit,
                sort_order=next_sort_order(payload.parent_id, siblings),
            )
            self.db.add(category)
            self._check_scope_integrity(gradebook_id, payload.parent_id)

        self.db.refresh(category)
        logger.info(
            "Created category %s in gradebook %s (parent=%s, sort_order=%s)",
            category.id,
            gradebook_id,
            category.parent_id,
            category.sort_order,
        )
        return category

    @wrap_result
    def get_category(self, category_id: int) -> GradebookCategory:
        return self._category(category_id)

    @wrap_result
    def update_category(self, category_id: int, payload: CategoryUpdate) -> GradebookCategory:
        category = self._category(category_id)

        changes = payload.model_dump(exclude_unset=True)
        if "name" in changes:
            changes["name"] = _clean_name(changes["name"])
        if "weight" in changes:
            _check_weight(changes["weight"])
        if changes.get("extra_credit", False) is None:
            raise ValidationError("extra_credit must be true or false")

        with self._write():
            for field, value in changes.items():
                setattr(category, field, value)

        self.db.refresh(category)
        return category

    @wrap_result
    def delete_category(self, category_id: int) -> CategoryRead:
        category = self._category(category_id)

        with self._write():
            self._lock_gradebook(category.gradebook_id)

            # non-empty categories are rejected rather than cascaded or reparented;
            # checked under the lock so a concurrent create cannot slip in
            has_subcategories = (
                self.db.query(GradebookCategory.id)
                .filter(GradebookCategory.parent_id == category_id)
                .first()
                is not None
            )
            has_items = (
                self.db.query(GradebookItem.id)
                .filter(GradebookItem.category_id == category_id)
                .first()
                is not None
            )
            if has_subcategories or has_items:
                raise StructuralInvariantError(
                    f"Category {category_id} still has subcategories or items; move or delete them first"
                )

            snapshot = CategoryRead.model_validate(category)
            self.db.delete(category)
            self.db.flush()
            self._densify(snapshot.gradebook_id, snapshot.parent_id)

        logger.info("Deleted category %s from gradebook %s", category_id, snapshot.gradebook_id)
        return snapshot

    @wrap_result
    def move_category(self, category_id: int, payload: CategoryMove) -> GradebookCategory:
        category = self._category(category_id)
        gradebook_id = category.gradebook_id
        source, target = category.parent_id, payload.parent_id
        if source == target:
            return category

        with self._write():
            self._lock_gradebook(gradebook_id)
            if target is not None:
                self._parent_scope(gradebook_id, target)
                records, _ = self._load_records(gradebook_id)
                index = ScopeIndex(records, [])
                if target == category_id or category_id in index.ancestor_ids(target):
                    raise StructuralInvariantError(
                        f"Moving category {category_id} under {target} would create a cycle"
                    )

            siblings = self._scope_children(gradebook_id, target)
            category.parent_id = target
            category.sort_order = next_sort_order(target, siblings)
            self.db.flush()
            self._densify(gradebook_id, source)
            self._check_scope_integrity(gradebook_id, target)

        self.db.refresh(category)
        logger.info("Moved category %s from scope %s to %s", category_id, source, target)
        return category

    # === items ===

    @wrap_result
    def create_item(self, gradebook_id: int, payload: ItemCreate) -> GradebookItem:
        name = _clean_name(payload.name)
        _check_weight(payload.weight)
        _check_grade_bounds(payload.max_grade, payload.min_grade)

        with self._write():
            self._lock_gradebook(gradebook_id)
            if payload.category_id is not None:
                self._parent_scope(gradebook_id, payload.category_id)

            siblings = self._scope_children(gradebook_id, payload.category_id)
            item = GradebookItem(
                gradebook_id=gradebook_id,
                category_id=payload.category_id,
                name=name,
                description=payload.description,
                max_grade=payload.max_grade,
                min_grade=payload.min_grade,
                weight=payload.weight,
                extra_credit=payload.extra_credit,
                activity_module_type=payload.activity_module_type,
                activity_module_name=payload.activity_module_name,
                sort_order=next_sort_order(payload.category_id, siblings),
            )
            self.db.add(item)
            self._check_scope_integrity(gradebook_id, payload.category_id)

        self.db.refresh(item)
        logger.info(
            "Created item %s in gradebook %s (category=%s, sort_order=%s)",
            item.id,
            gradebook_id,
            item.category_id,
            item.sort_order,
        )
        return item

    @wrap_result
    def get_item(self, item_id: int) -> GradebookItem:
        return self._item(item_id)

    @wrap_result
    def update_item(self, item_id: int, payload: ItemUpdate) -> GradebookItem:
        item = self._item(item_id)

        changes = payload.model_dump(exclude_unset=True)
        if "name" in changes:
            changes["name"] = _clean_name(changes["name"])
        if "weight" in changes:
            _check_weight(changes["weight"])
        for field in ("max_grade", "min_grade", "extra_credit"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be cleared")
        _check_grade_bounds(
            changes.get("max_grade", item.max_grade),
            changes.get("min_grade", item.min_grade),
        )

        with self._write():
            for field, value in changes.items():
                setattr(item, field, value)

        self.db.refresh(item)
        return item

    @wrap_result
    def delete_item(self, item_id: int) -> ItemRead:
        item = self._item(item_id)
        snapshot = ItemRead.model_validate(item)

        with self._write():
            self._lock_gradebook(item.gradebook_id)
            # user grades go with the item (ORM cascade)
            self.db.delete(item)
            self.db.flush()
            self._densify(snapshot.gradebook_id, snapshot.category_id)

        logger.info("Deleted item %s from gradebook %s", item_id, snapshot.gradebook_id)
        return snapshot

    @wrap_result
    def move_item(self, item_id: int, payload: ItemMove) -> GradebookItem:
        item = self._item(item_id)
        gradebook_id = item.gradebook_id
        source, target = item.category_id, payload.category_id
        if source == target:
            return item

        with self._write():
            self._lock_gradebook(gradebook_id)
            if target is not None:
                self._parent_scope(gradebook_id, target)

            siblings = self._scope_children(gradebook_id, target)
            item.category_id = target
            item.sort_order = next_sort_order(target, siblings)
            self.db.flush()
            self._densify(gradebook_id, source)
            self._check_scope_integrity(gradebook_id, target)

        self.db.refresh(item)
        logger.info("Moved item %s from scope %s to %s", item_id, source, target)
        return item

    # === ordering ===

    @wrap_result
    def reorder_scope(self, gradebook_id: int, payload: ReorderRequest) -> list:
        with self._write():
            self._lock_gradebook(gradebook_id)
            if payload.scope_id is not None:
                self._parent_scope(gradebook_id, payload.scope_id)

            current = {
                ("category" if is_category(node) else "item", node.id): node
                for node in self._scope_children(gradebook_id, payload.scope_id)
            }
            requested = [(ref.kind, ref.id) for ref in payload.nodes]
            if len(set(requested)) != len(requested) or set(requested) != set(current):
                raise StructuralInvariantError(
                    "Reorder must list every child of the scope exactly once"
                )

            for index, key in enumerate(requested):
                current[key].sort_order = index

        categories, items = self._load_records(gradebook_id)
        if payload.scope_id is None:
            return build_gradebook_structure(categories, items)
        return build_category_structure(payload.scope_id, categories, items)

    # === scores ===

    def _upsert_grade(
        self,
        item: GradebookItem,
        enrollment_id: int,
        payload: ScoreUpdate,
        now: datetime,
    ) -> UserGrade:
        if payload.score is not None:
            if not math.isfinite(payload.score):
                raise ValidationError("Score must be a finite number")
            if payload.score < item.min_grade or payload.score > item.max_grade:
                raise ValidationError(
                    f"score for item {item.id} must be between {item.min_grade:g} and {item.max_grade:g}"
                )

        grade = (
            self.db.query(UserGrade)
            .filter(
                UserGrade.gradebook_item_id == item.id,
                UserGrade.enrollment_id == enrollment_id,
            )
            .first()
        )
        if grade is None:
            grade = UserGrade(enrollment_id=enrollment_id, gradebook_item_id=item.id)
            self.db.add(grade)
        grade.base_grade = payload.score
        grade.feedback = payload.feedback
        grade.graded_at = now if payload.score is not None else None
        return grade

    @wrap_result
    def record_score(self, item_id: int, enrollment_id: int, payload: ScoreUpdate) -> UserGrade:
        item = self._item(item_id)

        with self._write():
            grade = self._upsert_grade(item, enrollment_id, payload, datetime.now(timezone.utc))

        self.db.refresh(grade)
        return grade

    @wrap_result
    def record_scores(
        self, gradebook_id: int, enrollment_id: int, payload: BulkScoreUpdate
    ) -> list[UserGrade]:
        """Upsert several scores of one enrollment; all entries land or none do."""
        self._gradebook(gradebook_id)

        item_ids = [entry.item_id for entry in payload.grades]
        if len(set(item_ids)) != len(item_ids):
            raise ValidationError("Each item may appear only once per batch")

        items = {
            item.id: item
            for item in self.db.query(GradebookItem).filter(GradebookItem.id.in_(item_ids)).all()
        }
        for item_id in item_ids:
            item = items.get(item_id)
            if item is None:
                raise NotFoundError(f"Item with ID {item_id} not found")
            if item.gradebook_id != gradebook_id:
                raise ValidationError(f"Item {item_id} does not belong to gradebook {gradebook_id}")

        now = datetime.now(timezone.utc)
        with self._write():
            grades = [
                self._upsert_grade(items[entry.item_id], enrollment_id, entry, now)
                for entry in payload.grades
            ]

        for grade in grades:
            self.db.refresh(grade)
        logger.info(
            "Recorded %s scores for enrollment %s in gradebook %s",
            len(grades),
            enrollment_id,
            gradebook_id,
        )
        return grades

    @wrap_result
    def list_enrollment_grades(self, gradebook_id: int, enrollment_id: int) -> list[UserGrade]:
        self._gradebook(gradebook_id)
        return (
            self.db.query(UserGrade)
            .join(GradebookItem, GradebookItem.id == UserGrade.gradebook_item_id)
            .filter(
                GradebookItem.gradebook_id == gradebook_id,
                UserGrade.enrollment_id == enrollment_id,
            )
            .order_by(UserGrade.gradebook_item_id.asc())
            .all()
        )

    @wrap_result
    def list_item_grades(self, item_id: int) -> list[UserGrade]:
        self._item(item_id)
        return (
            self.db.query(UserGrade)
            .filter(UserGrade.gradebook_item_id == item_id)
            .order_by(UserGrade.enrollment_id.asc())
            .all()
        )

    def _scores(self, gradebook_id: int, enrollment_id: int) -> dict[int, Optional[float]]:
        rows = (
            self.db.query(UserGrade.gradebook_item_id, UserGrade.base_grade)
            .join(GradebookItem, GradebookItem.id == UserGrade.gradebook_item_id)
            .filter(
                GradebookItem.gradebook_id == gradebook_id,
                UserGrade.enrollment_id == enrollment_id,
            )
            .all()
        )
        return {r.gradebook_item_id: r.base_grade for r in rows}

    # === read side ===

    @wrap_result
    def get_structure(self, gradebook_id: int) -> list:
        self._gradebook(gradebook_id)
        categories, items = self._load_records(gradebook_id)
        return build_gradebook_structure(categories, items)

    @wrap_result
    def get_setup(self, gradebook_id: int) -> GradebookSetup:
        gradebook = self._gradebook(gradebook_id)
        categories, items = self._load_records(gradebook_id)
        entries = build_gradebook_structure(categories, items)
        return GradebookSetup(
            gradebook_id=gradebook.id,
            course_id=gradebook.course_id,
            entries=entries,
            totals=summarize_structure(entries),
        )

    @wrap_result
    def compute_enrollment_grade(self, gradebook_id: int, enrollment_id: int) -> EnrollmentGrade:
        self._gradebook(gradebook_id)
        categories, items = self._load_records(gradebook_id)
        result = compute_grade(None, categories, items, self._scores(gradebook_id, enrollment_id))
        return EnrollmentGrade(
            gradebook_id=gradebook_id,
            enrollment_id=enrollment_id,
            **result.model_dump(),
        )

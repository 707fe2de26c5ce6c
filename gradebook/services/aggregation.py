"""
Per-enrollment weighted grade computation.

The tree is walked post-order. At every level only children that already
have a percentage take part: an ungraded item (no score) or a category with
nothing graded underneath is left out of both the weighted sum and the
weight denominator, so missing work never counts as zero. Extra-credit
children are added on top of the normalized result as bonus points.
"""

import logging
from typing import Mapping, Optional, Sequence

from gradebook.core.errors import NotFoundError, StructuralInvariantError
from gradebook.schemas.grade import GradeResult
from gradebook.services.sort_order import is_category
from gradebook.services.structure import ScopeIndex
from gradebook.services.weights import normalize

logger = logging.getLogger(__name__)


class _Outcome:
    __slots__ = ("percentage", "earned", "possible")

    def __init__(self, percentage: Optional[float], earned: float = 0.0, possible: float = 0.0):
        self.percentage = percentage
        self.earned = earned
        self.possible = possible


class _Walk:
    """State shared by one compute_grade call."""

    def __init__(self, index: ScopeIndex, scores: Mapping[int, Optional[float]]):
        self.index = index
        self.scores = scores
        self.category_percentages: dict[int, Optional[float]] = {}
        self.invalid_scopes: list[Optional[int]] = []

    def leaf(self, item, bonus: bool) -> _Outcome:
        score = self.scores.get(item.id)
        if score is None:
            return _Outcome(None)

        max_grade = float(item.max_grade or 0.0)
        if max_grade <= 0:
            return _Outcome(None)

        min_grade = float(item.min_grade or 0.0)
        clamped = min(max(float(score), min_grade), max_grade)
        return _Outcome(
            clamped / max_grade * 100,
            earned=clamped,
            possible=0.0 if bonus else max_grade,
        )

    def scope(self, scope_id: Optional[int], path: frozenset, bonus: bool) -> _Outcome:
        if scope_id is not None:
            if scope_id in path:
                raise StructuralInvariantError(f"Category {scope_id} is its own ancestor")
            path = path | {scope_id}

        graded = []
        earned = 0.0
        possible = 0.0

        for child in self.index.children(scope_id):
            child_bonus = bonus or bool(child.extra_credit)
            if is_category(child):
                outcome = self.scope(child.id, path, child_bonus)
                self.category_percentages[child.id] = outcome.percentage
            else:
                outcome = self.leaf(child, child_bonus)

            earned += outcome.earned
            possible += outcome.possible
            if outcome.percentage is not None:
                graded.append((child, outcome.percentage))

        base = [(child, pct) for child, pct in graded if not child.extra_credit]
        if not base:
            return _Outcome(None, earned, possible)

        normalization = normalize(child for child, _ in base)
        if not normalization.valid:
            logger.warning("Scope %s has graded entries but zero total weight", scope_id)
            self.invalid_scopes.append(scope_id)
            return _Outcome(None, earned, possible)

        percentage = sum(pct * normalization.share(child.weight) for child, pct in base) / 100
        for child, pct in graded:
            if child.extra_credit:
                percentage += pct * float(child.weight or 0.0) / 100

        return _Outcome(percentage, earned, possible)


def compute_grade(
    scope_id: Optional[int],
    categories: Sequence,
    items: Sequence,
    scores: Mapping[int, Optional[float]],
) -> GradeResult:
    """
    Weighted grade of one enrollment for a scope (None = the final grade).

    `scores` maps item id to raw score; a missing key or None means ungraded.
    Returns a `GradeResult` whose `percentage` is None while nothing that
    counts has been graded. Pure: identical inputs give identical output.
    """
    index = ScopeIndex(categories, items)

    bonus = False
    if scope_id is not None:
        category = index.categories.get(scope_id)
        if category is None:
            raise NotFoundError(f"Category with ID {scope_id} not found")
        # a subtree inside an extra-credit category is bonus all the way down
        bonus = bool(category.extra_credit) or any(
            index.categories[ancestor].extra_credit
            for ancestor in index.ancestor_ids(scope_id)
            if ancestor in index.categories
        )

    walk = _Walk(index, scores)
    outcome = walk.scope(scope_id, frozenset(), bonus)

    return GradeResult(
        percentage=outcome.percentage,
        earned_points=outcome.earned,
        possible_points=outcome.possible,
        category_percentages=dict(sorted(walk.category_percentages.items())),
        invalid_scopes=walk.invalid_scopes,
    )

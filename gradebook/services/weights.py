"""
Weight normalization and advisory validation for gradebook scopes.

Within a scope every non-extra-credit child gets a share of 100% in
proportion to its weight. Extra-credit children never enter the denominator;
their weight is added on top as bonus percentage points. A scope whose
non-extra-credit weights sum to zero cannot be normalized and is reported as
invalid instead of being treated as an even split.

Weight totals that drift from 100 are allowed to persist (drafts in
progress); they surface as `WeightWarning` data, never as errors.
"""

from typing import Iterable, Optional, Sequence

from gradebook.core.config import ROOT_SCOPE_LABEL, WEIGHT_TOLERANCE
from gradebook.schemas.structure import CategoryNode, StructureNode
from gradebook.schemas.weights import ItemOverallWeight, WeightSummary, WeightWarning
from gradebook.services.structure import build_gradebook_structure, iter_leaves, iter_nodes


def _weight(node) -> float:
    return float(node.weight or 0.0)


class Normalization:
    """Denominator of one scope and the share it gives each child."""

    def __init__(self, denominator: float, has_base_children: bool):
        self.denominator = denominator
        self.has_base_children = has_base_children

    @property
    def valid(self) -> bool:
        return not (self.has_base_children and self.denominator <= 0)

    def share(self, weight: Optional[float], extra_credit: bool = False) -> Optional[float]:
        """Normalized percentage share, or None when the scope cannot normalize."""
        if extra_credit:
            return float(weight or 0.0)
        if self.denominator <= 0:
            return None
        return float(weight or 0.0) / self.denominator * 100

    def __repr__(self) -> str:
        return f"Normalization(denominator={self.denominator}, valid={self.valid})"


def normalize(children: Iterable) -> Normalization:
    """Normalization for the given siblings (anything with weight/extra_credit)."""
    base = [child for child in children if not child.extra_credit]
    return Normalization(sum(_weight(child) for child in base), bool(base))


def validate_weights(
    nodes: Sequence[StructureNode],
    path: str = ROOT_SCOPE_LABEL,
    scope: Optional[CategoryNode] = None,
) -> list[WeightWarning]:
    """
    Advisory checks for every scope of a built tree, root first.

    - a scope with non-extra-credit children should total exactly 100%;
    - a scope whose non-extra-credit weights sum to 0 cannot be normalized;
    - a weighted category with no non-extra-credit entries contributes nothing.
    """
    scope_id = scope.id if scope is not None else None
    warnings: list[WeightWarning] = []

    base = [node for node in nodes if not node.extra_credit]
    total = sum(_weight(node) for node in base)

    if not base:
        if scope is not None and not scope.extra_credit and _weight(scope) > 0:
            warnings.append(
                WeightWarning(
                    scope_id=scope_id,
                    path=path,
                    total=0.0,
                    message=f"{path} has a weight but no non-extra-credit entries to grade.",
                )
            )
    elif total <= 0:
        warnings.append(
            WeightWarning(
                scope_id=scope_id,
                path=path,
                total=total,
                message=f"Weights at {path} sum to 0%; grades in this scope cannot be weighted.",
            )
        )
    elif abs(total - 100) > WEIGHT_TOLERANCE:
        warnings.append(
            WeightWarning(
                scope_id=scope_id,
                path=path,
                total=total,
                message=f"Total weight at {path} is {total:.2f}%. Total should equal exactly 100%.",
            )
        )

    for node in nodes:
        if isinstance(node, CategoryNode):
            warnings.extend(validate_weights(node.entries, f"{path} > {node.name}", node))
    return warnings


def invalid_scopes(nodes: Sequence[StructureNode], scope_id: Optional[int] = None) -> list[Optional[int]]:
    found: list[Optional[int]] = []
    if not normalize(nodes).valid:
        found.append(scope_id)
    for node in nodes:
        if isinstance(node, CategoryNode):
            found.extend(invalid_scopes(node.entries, node.id))
    return found


def overall_weights(
    nodes: Sequence[StructureNode],
    chain: tuple = (),
) -> list[ItemOverallWeight]:
    """
    Effective weight of every leaf: the product of the normalized shares on
    its path, e.g. Homework (40%) x Essay (50%) = 20% of the final grade.
    """
    normalization = normalize(nodes)
    result: list[ItemOverallWeight] = []

    for node in nodes:
        share = normalization.share(node.weight, node.extra_credit)
        link = (node.name, share)
        if isinstance(node, CategoryNode):
            result.extend(overall_weights(node.entries, chain + (link,)))
            continue

        links = chain + (link,)
        if any(s is None for _, s in links):
            result.append(
                ItemOverallWeight(
                    id=node.id,
                    name=node.name,
                    extra_credit=node.extra_credit,
                    overall_weight=None,
                    explanation=None,
                )
            )
            continue

        overall = 1.0
        for _, s in links:
            overall *= s / 100
        overall *= 100

        parts = " × ".join(f"{name} ({s:.2f}%)" for name, s in links)
        result.append(
            ItemOverallWeight(
                id=node.id,
                name=node.name,
                extra_credit=node.extra_credit,
                overall_weight=overall,
                explanation=f"{parts} = {overall:.2f}%",
            )
        )
    return result


def summarize_structure(nodes: Sequence[StructureNode]) -> WeightSummary:
    root_base = [node for node in nodes if not node.extra_credit]
    root_extra = [node for node in nodes if node.extra_credit]

    return WeightSummary(
        calculated_total=sum(_weight(node) for node in root_base),
        extra_credit_total=sum(_weight(node) for node in root_extra),
        total_max_grade=sum(float(leaf.max_grade or 0.0) for leaf in iter_leaves(nodes)),
        has_extra_credit=any(node.extra_credit for node in iter_nodes(nodes)),
        invalid_scopes=invalid_scopes(nodes),
        warnings=validate_weights(nodes),
        item_weights=overall_weights(nodes),
    )


def summarize_weights(categories: Sequence, items: Sequence) -> WeightSummary:
    """Totals and warnings for a gradebook given its flat category/item lists."""
    return summarize_structure(build_gradebook_structure(categories, items))

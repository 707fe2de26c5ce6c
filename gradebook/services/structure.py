"""
Builds the display tree of a gradebook from flat category/item lists.

Categories point at their parent (`parent_id`) and items at their category
(`category_id`); `None` means the gradebook root. Each call indexes the lists
by scope once and then walks the index by id, carrying the set of scopes on
the current path so corrupted (cyclic) parent chains fail loudly instead of
recursing forever.
"""

from collections import defaultdict
from typing import Iterable, Iterator, Optional, Sequence

from gradebook.core.errors import StructuralInvariantError
from gradebook.schemas.structure import CategoryNode, ItemNode, StructureNode
from gradebook.services.sort_order import is_category, sibling_key


class ScopeIndex:
    """Children of every scope, keyed by scope id (None = root)."""

    def __init__(self, categories: Iterable, items: Iterable):
        self.categories = {}
        self._child_categories = defaultdict(list)
        self._child_items = defaultdict(list)

        for category in categories:
            self.categories[category.id] = category
            self._child_categories[category.parent_id].append(category)
        for item in items:
            self._child_items[item.category_id].append(item)

    def child_categories(self, scope_id: Optional[int]) -> list:
        return sorted(self._child_categories.get(scope_id, []), key=sibling_key)

    def children(self, scope_id: Optional[int]) -> list:
        """Direct categories and items of a scope in display order."""
        merged = self._child_items.get(scope_id, []) + self._child_categories.get(scope_id, [])
        return sorted(merged, key=sibling_key)

    def ancestor_ids(self, category_id: int) -> list[int]:
        """Parent chain of a category, nearest first."""
        chain: list[int] = []
        seen = {category_id}
        current = self.categories.get(category_id)
        while current is not None and current.parent_id is not None:
            if current.parent_id in seen:
                raise StructuralInvariantError(
                    f"Category {category_id} has a cyclic parent chain"
                )
            seen.add(current.parent_id)
            chain.append(current.parent_id)
            current = self.categories.get(current.parent_id)
        return chain

    def find_cycle(self) -> Optional[list[int]]:
        """Ids of the first cyclic parent chain found, or None."""
        for category_id in sorted(self.categories):
            try:
                self.ancestor_ids(category_id)
            except StructuralInvariantError:
                return _cycle_members(self.categories, category_id)
        return None


def _cycle_members(categories: dict, start: int) -> list[int]:
    path: list[int] = []
    current: Optional[int] = start
    while current is not None and current not in path:
        path.append(current)
        current = categories[current].parent_id if current in categories else None
    return sorted(path[path.index(current):]) if current in path else sorted(path)


def item_node(item) -> ItemNode:
    linked = item.activity_module_type is not None
    return ItemNode(
        id=item.id,
        type="activity_item" if linked else "manual_item",
        name=(item.activity_module_name or item.name) if linked else item.name,
        weight=item.weight,
        max_grade=item.max_grade,
        extra_credit=bool(item.extra_credit),
    )


def _category_node(index: ScopeIndex, category, path: frozenset) -> CategoryNode:
    return CategoryNode(
        id=category.id,
        name=category.name,
        weight=category.weight,
        extra_credit=bool(category.extra_credit),
        entries=_build_scope(index, category.id, path, include_items=True),
    )


def _build_scope(
    index: ScopeIndex,
    scope_id: Optional[int],
    path: frozenset,
    include_items: bool,
) -> list[StructureNode]:
    if scope_id is not None:
        if scope_id in path:
            raise StructuralInvariantError(f"Category {scope_id} is its own ancestor")
        path = path | {scope_id}

    children = index.children(scope_id) if include_items else index.child_categories(scope_id)

    nodes: list[StructureNode] = []
    for child in children:
        if is_category(child):
            nodes.append(_category_node(index, child, path))
        else:
            nodes.append(item_node(child))
    return nodes


def build_category_structure(
    scope_id: Optional[int],
    categories: Sequence,
    items: Sequence,
) -> list[StructureNode]:
    """
    Direct children of one scope, each category expanded recursively.

    For a category scope both its items and its subcategories are returned
    (never the category itself). For the root scope (`None`) only root
    categories are returned; root items come from the separate items pass in
    `build_gradebook_structure`, so a root item is never emitted twice.
    """
    index = ScopeIndex(categories, items)
    return _build_scope(index, scope_id, frozenset(), include_items=scope_id is not None)


def build_gradebook_structure(categories: Sequence, items: Sequence) -> list[StructureNode]:
    """The whole root scope: root items and root categories in sort order."""
    index = ScopeIndex(categories, items)
    category_nodes = {
        node.id: node
        for node in _build_scope(index, None, frozenset(), include_items=False)
    }

    nodes: list[StructureNode] = []
    for child in index.children(None):
        if is_category(child):
            nodes.append(category_nodes[child.id])
        else:
            nodes.append(item_node(child))
    return nodes


def iter_nodes(nodes: Iterable[StructureNode]) -> Iterator[StructureNode]:
    """Pre-order walk over a built tree."""
    for node in nodes:
        yield node
        if isinstance(node, CategoryNode):
            yield from iter_nodes(node.entries)


def iter_leaves(nodes: Iterable[StructureNode]) -> Iterator[ItemNode]:
    for node in iter_nodes(nodes):
        if isinstance(node, ItemNode):
            yield node

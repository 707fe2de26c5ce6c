from typing import Iterable, Optional


def is_category(node) -> bool:
    return hasattr(node, "parent_id")


def scope_of(node) -> Optional[int]:
    """Parent scope of a category or item (None = gradebook root)."""
    if is_category(node):
        return node.parent_id
    return node.category_id


def sibling_key(node) -> tuple[int, int]:
    # items before categories on equal sort_order
    return (node.sort_order or 0, 1 if is_category(node) else 0)


def next_sort_order(scope_id: Optional[int], siblings: Iterable) -> int:
    """
    Next free position in a scope: max(sort_order) + 1, or 0 when empty.

    Categories and items of the same scope share one sequence, so both kinds
    may be passed together. Nodes from other scopes are ignored. Callers must
    fetch `siblings` inside the same transaction as the insert.
    """
    orders = [node.sort_order for node in siblings if scope_of(node) == scope_id]
    if not orders:
        return 0
    return max(orders) + 1


def dense_sort_orders(nodes: Iterable) -> list[tuple[object, int]]:
    """Pairs each node with its position 0..n-1, keeping the current order."""
    ordered = sorted(nodes, key=lambda node: (*sibling_key(node), node.id))
    return [(node, index) for index, node in enumerate(ordered)]

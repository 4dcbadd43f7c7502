"""
Category hierarchy resolution over the flat parent-pointer category table.

The tree is rebuilt from one scan of all categories on every resolution; no
materialized path is persisted. Traversal is iterative with a visited set, so
a parent graph that has been edited into a cycle still terminates.
"""
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Set

from catalog.utils.logger import get_logger

logger = get_logger("query.category_tree")


class CategoryTree:
    """Read-only view of the category hierarchy built from a flat scan."""

    def __init__(self, categories: Iterable[Any]):
        self._by_id: Dict[str, Any] = {}
        self._by_slug: Dict[str, Any] = {}
        self._children: Dict[Optional[str], List[Any]] = defaultdict(list)
        for category in categories:
            self._by_id[category.id] = category
            self._by_slug[category.slug] = category
        for category in self._by_id.values():
            parent_id = category.parent_id if category.parent_id in self._by_id else None
            self._children[parent_id].append(category)

    @classmethod
    def from_store(cls, store) -> "CategoryTree":
        return cls(store.all_categories())

    def get(self, category_id: str) -> Optional[Any]:
        return self._by_id.get(category_id)

    def get_by_slug(self, slug: str) -> Optional[Any]:
        return self._by_slug.get(slug)

    def descendant_ids(self, category_id: str, include_self: bool = True) -> Set[str]:
        """
        Return the ids of ``category_id`` and every category below it.

        An unknown id yields an empty set; callers treat that as "no
        matching products".
        """
        if category_id not in self._by_id:
            return set()

        visited: Set[str] = {category_id}
        stack = [category_id]
        while stack:
            current = stack.pop()
            for child in self._children.get(current, ()):
                if child.id in visited:
                    logger.warning(f"Category cycle detected at {child.id}; skipping revisit")
                    continue
                visited.add(child.id)
                stack.append(child.id)

        if not include_self:
            visited.discard(category_id)
        return visited

    def descendant_ids_for_slug(self, slug: str) -> Set[str]:
        category = self._by_slug.get(slug)
        if category is None:
            return set()
        return self.descendant_ids(category.id)

    def is_descendant(self, candidate_id: str, ancestor_id: str) -> bool:
        return candidate_id in self.descendant_ids(ancestor_id)

    def nested(self) -> List[Dict[str, Any]]:
        """
        Roots with nested ``children`` lists, siblings ordered by sort_order.

        Categories whose parent chain never reaches a root (a cycle) are not
        reachable from any root and are left out.
        """
        def _node(category) -> Dict[str, Any]:
            return {**category.to_dict(), "children": []}

        roots = sorted(self._children.get(None, []), key=lambda c: c.sort_order)
        result = [_node(root) for root in roots]
        visited: Set[str] = {root.id for root in roots}
        stack = list(zip(roots, result))
        while stack:
            category, node = stack.pop()
            for child in sorted(self._children.get(category.id, []), key=lambda c: c.sort_order):
                if child.id in visited:
                    continue
                visited.add(child.id)
                child_node = _node(child)
                node["children"].append(child_node)
                stack.append((child, child_node))

        unreachable = len(self._by_id) - len(visited)
        if unreachable:
            logger.warning(f"{unreachable} categories are not reachable from a root (parent cycle)")
        return result

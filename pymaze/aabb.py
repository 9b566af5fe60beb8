from dataclasses import dataclass
from typing import Optional, TypeAlias, Self

from loguru import logger

from pymaze.utils import Vec2d

Bbox: TypeAlias = tuple[float, float, float, float]


@dataclass
class AABBNode:
    bbox: Bbox
    left: Optional["AABBNode"] = None
    right: Optional["AABBNode"] = None
    items: Optional[list[int]] = None
    parent: Optional["AABBNode"] = None

    def is_leaf(self):
        return self.items is not None


def merge_bbox(a: Bbox, b: Bbox) -> Bbox:
    return min(a[0], b[0]), min(a[1], b[1]), max(a[2], b[2]), max(a[3], b[3])


def bbox_area(b: Bbox) -> float:
    return (b[2] - b[0]) * (b[3] - b[1])


def bbox_overlaps(a: Bbox, b: Bbox) -> bool:
    return a[0] <= b[2] and b[0] <= a[2] and a[1] <= b[3] and b[1] <= a[3]


def bbox_around(p: Vec2d, half_size: float) -> Bbox:
    return (
        float(p[0]) - half_size,
        float(p[1]) - half_size,
        float(p[0]) + half_size,
        float(p[1]) + half_size,
    )


def enlargement_cost(parent_bbox: Bbox, item_bbox: Bbox):
    merged = merge_bbox(parent_bbox, item_bbox)
    enlargement = bbox_area(merged) - bbox_area(parent_bbox)
    if enlargement < 0:
        raise ValueError(f"Enlargement cost {enlargement} is less than zero")
    return enlargement


class AABBTree:
    """Bounding volume hierarchy over indexed axis aligned boxes."""

    def __init__(self, max_leaf_size: int = 8) -> None:
        self.root: Optional[AABBNode] = None
        self.bboxes: dict[int, Bbox] = {}
        self.max_leaf_size = max_leaf_size

    def __len__(self) -> int:
        return len(self.bboxes)

    def _compute_group_bbox(self, indices: list[int]) -> Bbox:
        xmins, ymins, xmaxs, ymaxs = zip(*(self.bboxes[i] for i in indices))
        return min(xmins), min(ymins), max(xmaxs), max(ymaxs)

    def _split_leaf(self, node: AABBNode) -> None:
        items = node.items or []
        if not items:
            return
        node.items = None

        bbox = self._compute_group_bbox(items)
        dx = bbox[2] - bbox[0]
        dy = bbox[3] - bbox[1]
        axis = 0 if dx > dy else 1

        centers = {i: (self.bboxes[i][axis] + self.bboxes[i][axis + 2]) / 2 for i in items}
        mid = sorted(centers.values())[len(centers) // 2]

        left_indices = [i for i in items if centers[i] <= mid]
        right_indices = [i for i in items if centers[i] > mid]

        # Fallback: degenerate partition, split by sorted center
        if not left_indices or not right_indices:
            items_sorted = sorted(items, key=lambda i: centers[i])
            half = len(items_sorted) // 2
            left_indices, right_indices = items_sorted[:half], items_sorted[half:]

        node.left = AABBNode(
            self._compute_group_bbox(left_indices), items=left_indices, parent=node
        )
        node.right = AABBNode(
            self._compute_group_bbox(right_indices), items=right_indices, parent=node
        )

    def insert(self, index: int, bbox: Bbox) -> None:
        """Insert a bounding box into the tree."""
        self.bboxes[index] = bbox

        if self.root is None:
            self.root = AABBNode(bbox=bbox, items=[index])
            return

        node = self.root
        # Descend to the leaf with minimum enlargement
        while not node.is_leaf():
            cost_left = (
                enlargement_cost(node.left.bbox, bbox) if node.left else float("inf")
            )
            cost_right = (
                enlargement_cost(node.right.bbox, bbox) if node.right else float("inf")
            )
            node = node.left if cost_left < cost_right else node.right  # type: ignore[assignment]

        node.items.append(index)  # type: ignore[union-attr]
        node.bbox = merge_bbox(node.bbox, bbox)

        if len(node.items) > self.max_leaf_size:  # type: ignore[arg-type]
            logger.trace("Splitting aabb tree")
            self._split_leaf(node)

        # Update ancestors
        n = node.parent
        while n:
            n.bbox = merge_bbox(n.left.bbox, n.right.bbox)  # type: ignore[union-attr]
            n = n.parent

    def query(self, bbox: Bbox) -> list[int]:
        """Indices of all stored boxes overlapping ``bbox`` (touching counts)."""
        found: list[int] = []

        def _query(node: Optional[AABBNode]) -> None:
            if node is None or not bbox_overlaps(node.bbox, bbox):
                return
            if node.is_leaf():
                found.extend(i for i in node.items if bbox_overlaps(self.bboxes[i], bbox))  # type: ignore[union-attr]
                return
            _query(node.left)
            _query(node.right)

        _query(self.root)
        return sorted(found)

    def query_point(self, pt: Vec2d) -> list[int]:
        return self.query((float(pt[0]), float(pt[1]), float(pt[0]), float(pt[1])))

    @classmethod
    def from_boxes(cls, boxes: list[Bbox], max_leaf_size: int = 8) -> Self:
        """
        Build an AABBTree from a list of (xmin, zmin, xmax, zmax) boxes; box
        ``i`` is stored under index ``i``.
        """
        tree = cls(max_leaf_size=max_leaf_size)
        for i, box in enumerate(boxes):
            xmin, zmin, xmax, zmax = (float(v) for v in box)
            if xmax < xmin or zmax < zmin:
                raise ValueError(f"Invalid bounding box {box}")
            tree.insert(i, (xmin, zmin, xmax, zmax))
        return tree

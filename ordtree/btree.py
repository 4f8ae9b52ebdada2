# pyright: reportOperatorIssue=false
import logging
import msgspec
import numpy
from typing import Any, Callable, Generic, Iterator, List, Tuple, TypeVar, cast

from ordtree.errors import IncomparableElement, InternalInvariantViolation, InvalidConfiguration, NullElement


logger = logging.getLogger("ordtree/btree.py")

ElementType = TypeVar('ElementType')

# three-way comparison: < 0, 0, > 0
Comparator = Callable[[Any, Any], int]

# (pointer to the promoted key, index of the new right sibling)
Split = Tuple[int, int]


def _empty_index() -> numpy.ndarray:
    return numpy.array([], dtype=numpy.int32)


class OrderedTree(Generic[ElementType]):
    """
        B-Tree of a fixed order kept entirely in memory.

        - nodes live in the ``tree`` list and reference each other by index,
          elements live in the ``keys`` list and nodes hold indices into it
        - a node holds at most ``order - 1`` elements and ``order`` children
        - equal elements are placed after the ones already stored
        - only insertion is supported, nodes are never removed
    """

    class Node(msgspec.Struct):
        node_index: int | None = None   # position of the node in OrderedTree.tree
        parent: int | None = None       # index of the parent node, None for the root
        level: int = 0                  # 0 - leaf, > 0 - inner node
        pointers: numpy.ndarray = msgspec.field(default_factory=_empty_index)     # indices in OrderedTree.keys
        descendants: numpy.ndarray = msgspec.field(default_factory=_empty_index)  # indices in OrderedTree.tree

        def is_leaf(self):
            return self.level == 0

    def __init__(self, order: int, comparator: Comparator | None = None):
        if isinstance(order, bool) or not isinstance(order, (int, numpy.integer)) or order < 2:
            raise InvalidConfiguration(f"Illegal tree order: {order!r}")
        self._order = int(order)
        self.max_values = self._order - 1
        self.mid_index = self._order // 2
        self.comparator = comparator

        self.tree: List[OrderedTree.Node] = []   # all nodes of the tree
        self.keys: List[ElementType] = []        # all stored elements
        self.root_node: int | None = None
        self._size = 0

    def order(self) -> int:
        return self._order

    def size(self) -> int:
        return self._size

    def is_empty(self) -> bool:
        return self._size == 0

    def depth(self) -> int:
        if self.root_node is None:
            return 0
        return self.tree[self.root_node].level + 1

    def __len__(self) -> int:
        return self._size

    def node_factory(self, level: int = 0) -> Node:
        node = OrderedTree.Node(level=level)
        node.node_index = len(self.tree)
        self.tree.append(node)
        return node

    def new_key(self, element: ElementType) -> int:
        self.keys.append(element)
        return len(self.keys) - 1

    def compare(self, a: Any, b: Any) -> int:
        try:
            if self.comparator is not None:
                return self.comparator(a, b)
            if a < b:
                return -1
            if b < a:
                return 1
            return 0
        except TypeError as ex:
            raise IncomparableElement(f"cannot compare {a!r} with {b!r}") from ex

    def find_slot(self, node: Node, element: ElementType) -> int:
        """number of values in the node that are <= element"""
        slot = 0
        for ptr in node.pointers:
            if self.compare(element, self.keys[ptr]) < 0:
                break
            slot += 1
        return slot

    def insert(self, element: ElementType) -> ElementType:
        """
            Insert the element and return it.

            Every comparison is done on the way down, before anything is changed,
            so a failed insert leaves the tree exactly as it was.
        """
        if element is None and self.comparator is None:
            raise NullElement("None cannot be inserted into a tree with natural ordering")

        if self.root_node is None:
            root = self.node_factory()
            root.pointers = numpy.array([self.new_key(element)], dtype=numpy.int32)
            self.root_node = cast(int, root.node_index)
            self._size = 1
            return element

        if self.insert_into(self.root_node, element) is not None:
            raise InternalInvariantViolation("split was not absorbed by the root")
        self._size += 1
        return element

    def insert_into(self, node_index: int, element: ElementType) -> Split | None:
        """descend to the leaf under node_index, returns a split the caller has to absorb"""
        node = self.tree[node_index]
        slot = self.find_slot(node, element)

        if node.is_leaf():
            return self.splittable_insert(node, slot, self.new_key(element), None)

        if slot >= len(node.descendants):
            raise InternalInvariantViolation(f"node {node_index} has no child at slot {slot}")
        split = self.insert_into(int(node.descendants[slot]), element)
        if split is None:
            return None
        promoted, right = split
        return self.splittable_insert(node, slot, promoted, right)

    def splittable_insert(self, node: Node, slot: int, key_ptr: int, right: int | None) -> Split | None:
        """
            Put key_ptr at slot and the right child after it.

            A full node is split in the middle: the left half stays in ``node``,
            the right half moves to a new sibling and the middle key goes up.
            A split of the root is absorbed here by growing a new root,
            any other split is returned to the parent.
        """
        if node.is_leaf() != (right is None):
            raise InternalInvariantViolation(f"node {node.node_index}: child link does not match node level")

        if len(node.pointers) < self.max_values:
            node.pointers = numpy.insert(node.pointers, slot, key_ptr)
            if right is not None:
                node.descendants = numpy.insert(node.descendants, slot + 1, right)
            return None

        # order keys and order + 1 children
        pointers = numpy.insert(node.pointers, slot, key_ptr)
        descendants = node.descendants if right is None else numpy.insert(node.descendants, slot + 1, right)

        new_node = self.node_factory(level=node.level)
        new_node.parent = node.parent
        promoted = int(pointers[self.mid_index])
        new_node.pointers = pointers[self.mid_index + 1:]
        node.pointers = pointers[:self.mid_index]
        if not node.is_leaf():
            new_node.descendants = descendants[self.mid_index + 1:]
            node.descendants = descendants[:self.mid_index + 1]
            for d in new_node.descendants:
                self.tree[d].parent = new_node.node_index

        if node.parent is not None:
            return (promoted, cast(int, new_node.node_index))

        if node.node_index != self.root_node:
            raise InternalInvariantViolation(f"node {node.node_index} has no parent but is not the root")
        root = self.node_factory(level=node.level + 1)
        root.pointers = numpy.array([promoted], dtype=numpy.int32)
        root.descendants = numpy.array([node.node_index, new_node.node_index], dtype=numpy.int32)
        node.parent = root.node_index
        new_node.parent = root.node_index
        self.root_node = cast(int, root.node_index)
        logger.debug(f"root split: new root {root.node_index}, depth {self.depth()}")
        return None

    def walk(self, node_index: int) -> Iterator[ElementType]:
        node = self.tree[node_index]
        if node.is_leaf():
            for ptr in node.pointers:
                yield self.keys[ptr]
            return
        for i, ptr in enumerate(node.pointers):
            yield from self.walk(int(node.descendants[i]))
            yield self.keys[ptr]
        yield from self.walk(int(node.descendants[-1]))

    def __iter__(self) -> Iterator[ElementType]:
        if self.root_node is not None:
            yield from self.walk(self.root_node)

    def in_order_sequence(self) -> List[ElementType]:
        return list(self)

    def validate_node(self, node_index: int) -> int:
        err_cnt = 0
        node = self.tree[node_index]
        if len(node.pointers) > self.max_values:
            err_cnt += 1
            logger.error(f"node {node_index}: {len(node.pointers)} keys, max is {self.max_values}")

        for i in range(1, len(node.pointers)):
            kp, kn = self.keys[node.pointers[i - 1]], self.keys[node.pointers[i]]
            if self.compare(kn, kp) < 0:
                err_cnt += 1
                logger.error(f"wrong order: node {node_index}/{i - 1}/{i}: {kp} > {kn}")

        if node.is_leaf():
            if len(node.descendants) != 0:
                err_cnt += 1
                logger.error(f"leaf {node_index} has descendants")
            return err_cnt

        if len(node.descendants) != len(node.pointers) + 1:
            err_cnt += 1
            logger.error(f"node {node_index}: {len(node.pointers)} keys, {len(node.descendants)} descendants")
        for d in node.descendants:
            child = self.tree[d]
            if child.parent != node_index:
                err_cnt += 1
                logger.error(f"node {child.node_index}: parent is {child.parent}, expected {node_index}")
            if child.level != node.level - 1:
                err_cnt += 1
                logger.error(f"node {child.node_index}: level {child.level} under level {node.level}")
        return err_cnt

    def validate(self) -> dict[str, str]:
        """empty dict on success"""
        result: dict[str, str] = {}

        if self.root_node is None:
            if self.tree or self.keys or self._size:
                result["Empty tree must have no nodes"] = f"nodes: {len(self.tree)}, size: {self._size}"
            return result

        if self.tree[self.root_node].parent is not None:
            result["Root must have no parent"] = f"{self.root_node} -> {self.tree[self.root_node].parent}"

        for i, n in enumerate(self.tree):
            if i != n.node_index:
                result["Wrong node index:"] = f"{i} -> {n.node_index}"
            if (err_cnt := self.validate_node(i)) > 0:
                result["Node corrupted:"] = f"node:{i}, errors count:{err_cnt}"

        leaf_depths: set[int] = set()
        reachable = 0
        stack = [(self.root_node, 0)]
        while stack:
            idx, d = stack.pop()
            reachable += 1
            node = self.tree[idx]
            if node.is_leaf():
                leaf_depths.add(d)
            stack.extend((int(c), d + 1) for c in node.descendants)
        if len(leaf_depths) != 1:
            result["Leaves must be at equal depth"] = f"depths: {sorted(leaf_depths)}"
        if reachable != len(self.tree):
            result["Every node must be reachable from the root"] = f"{reachable} of {len(self.tree)}"

        elements = self.in_order_sequence()
        if len(elements) != self._size or len(self.keys) != self._size:
            result["Element count must match size"] = f"walked: {len(elements)}, keys: {len(self.keys)}, size: {self._size}"
        for i in range(1, len(elements)):
            if self.compare(elements[i], elements[i - 1]) < 0:
                result["In-order sequence must be non-decreasing"] = f"position {i}: {elements[i - 1]} > {elements[i]}"
                break
        return result

    def print_node(self, node: Node):
        space = "   " * node.level
        root = " <============ *ROOT*" if node.node_index == self.root_node else ""
        print(f"node-idx:{node.node_index}, parent:{node.parent}, level: {node.level} {root}")
        if node.is_leaf():
            for i in node.pointers:
                print(f"{space}|-> {self.keys[i]}")
        else:
            for i, p in enumerate(node.pointers):
                print(f"{space}|-> {self.keys[p]}: {node.descendants[i]}, {node.descendants[i + 1]}")

    def print(self, msg: Any = "") -> None:
        """prints the whole tree, for debugging small trees only"""
        print(self.validate())
        for n in self.tree:
            self.print_node(n)
        print("─" * 120)
        print(f"-> {msg}")

    def __str__(self) -> str:
        elements = self.in_order_sequence()
        return f"Order : {self._order}, size : {self._size}\nElements : {elements if elements else 'Empty'}"

    def __repr__(self) -> str:
        return f"OrderedTree(order={self._order}, size={self._size}, depth={self.depth()})"

"""Tests for MessageTree and depth-first traversal."""

import uuid
from dataclasses import replace

import pytest

from branchgpt.conversations import Message, MessageTree, Role, TraversalIterator
from branchgpt.exceptions import (
    CorruptAggregateError,
    InvalidMessageRoleError,
    NotFoundError,
    ValidationError,
)


@pytest.fixture
def tree():
    """Tree with a single system root."""
    return MessageTree.create("You are a helpful assistant")


@pytest.fixture
def deep_tree(tree):
    """Tree with two levels of branching.

    Layout::

        root
        ├── Q1
        │   ├── A1
        │   └── A2
        └── Q2
            └── A3
                ├── Q3
                └── Q4
    """
    root = tree.root()
    q1, q2 = tree.insert_children(root.id, ["Q1", "Q2"], Role.USER)
    tree.insert_children(q1.id, ["A1", "A2"], Role.ASSISTANT)
    a3, = tree.insert_children(q2.id, ["A3"], Role.ASSISTANT)
    tree.insert_children(a3.id, ["Q3", "Q4"], Role.USER)
    return tree


def by_content(tree, content):
    return next(m for m in tree if m.content == content)


class TestTreeCreation:
    """Tests for building trees."""

    def test_new_tree_frontier_is_root(self, tree):
        """Test a fresh tree has the root as its only latest message."""
        root = tree.root()

        assert tree.frontier() == [root]
        assert root.role is Role.SYSTEM
        assert root.content == "You are a helpful assistant"
        assert len(tree) == 1

    def test_empty_system_content(self):
        """Test the root content must not be empty."""
        with pytest.raises(ValidationError):
            MessageTree.create("")

    def test_root_must_be_system(self):
        """Test a tree cannot be rooted at a user message."""
        root = Message.create(Role.SYSTEM, "S")
        with pytest.raises(CorruptAggregateError):
            MessageTree(replace(root, role=Role.USER))


class TestInsertChildren:
    """Tests for inserting messages."""

    def test_sibling_indexes_follow_creation_order(self, tree):
        """Test indexes continue after the existing children."""
        root = tree.root()

        first = tree.insert_children(root.id, ["Q1", "Q2", "Q3"], Role.USER)
        assert [m.sibling_index for m in first] == [1, 2, 3]

        second = tree.insert_children(root.id, ["Q4"], Role.USER)
        assert [m.sibling_index for m in second] == [4]
        assert [m.content for m in tree.children_of(root.id)] == ["Q1", "Q2", "Q3", "Q4"]

    def test_inserted_messages_reference_parent(self, tree):
        """Test new messages point at the parent."""
        root = tree.root()
        added = tree.insert_children(root.id, ["Q1"], Role.USER)

        assert added[0].parent_id == root.id
        assert added[0] in tree.children_of(root.id)
        assert added[0].id in tree

    def test_unknown_parent(self, tree):
        """Test inserting below an unknown id."""
        with pytest.raises(NotFoundError):
            tree.insert_children(uuid.uuid4(), ["Q1"], Role.USER)

    def test_system_role_rejected(self, tree):
        """Test only the root can be a system message."""
        with pytest.raises(InvalidMessageRoleError):
            tree.insert_children(tree.root().id, ["S2"], Role.SYSTEM)

    def test_empty_contents_rejected(self, tree):
        """Test at least one content is required."""
        with pytest.raises(ValidationError):
            tree.insert_children(tree.root().id, [], Role.USER)

    def test_insert_is_atomic(self, tree):
        """Test one invalid content leaves the tree unchanged."""
        root = tree.root()

        with pytest.raises(ValidationError):
            tree.insert_children(root.id, ["Q1", ""], Role.USER)

        assert len(tree) == 1
        assert tree.children_of(root.id) == []


class TestTreeQueries:
    """Tests for read operations."""

    def test_depth_first_order(self, deep_tree):
        """Test pre-order traversal by ascending sibling index."""
        contents = [m.content for m in deep_tree]
        assert contents == [
            "You are a helpful assistant", "Q1", "A1", "A2", "Q2", "A3", "Q3", "Q4",
        ]

    def test_iterator_visits_each_message_once(self, deep_tree):
        """Test the iterator covers the whole tree."""
        iterator = deep_tree.iter_depth_first()
        assert isinstance(iterator, TraversalIterator)

        visited = list(iterator)
        assert len(visited) == len(deep_tree)
        assert len({m.id for m in visited}) == len(deep_tree)
        assert list(iterator) == []

    def test_frontier(self, deep_tree):
        """Test the latest messages are the leaves."""
        contents = {m.content for m in deep_tree.frontier()}
        assert contents == {"A1", "A2", "Q3", "Q4"}

    def test_frontier_order_is_stable(self, deep_tree):
        """Test the frontier is ordered by id."""
        frontier = deep_tree.frontier()
        assert [str(m.id) for m in frontier] == sorted(str(m.id) for m in frontier)

    def test_children_of_returns_copy(self, deep_tree):
        """Test callers cannot modify the children index."""
        root = deep_tree.root()
        children = deep_tree.children_of(root.id)
        children.clear()

        assert len(deep_tree.children_of(root.id)) == 2

    def test_children_of_leaf(self, deep_tree):
        """Test leaves have no children."""
        a1 = by_content(deep_tree, "A1")
        assert deep_tree.children_of(a1.id) == []

    def test_siblings(self, deep_tree):
        """Test siblings include the message itself."""
        a2 = by_content(deep_tree, "A2")
        siblings = deep_tree.siblings_of(a2.id)

        assert [m.content for m in siblings] == ["A1", "A2"]

    def test_root_siblings(self, deep_tree):
        """Test the root is its own only sibling."""
        root = deep_tree.root()
        assert deep_tree.siblings_of(root.id) == [root]

    def test_ancestry_and_depth(self, deep_tree):
        """Test the path from the root to a message."""
        q4 = by_content(deep_tree, "Q4")

        assert [m.content for m in deep_tree.ancestry(q4.id)] == [
            "You are a helpful assistant", "Q2", "A3", "Q4",
        ]
        assert deep_tree.depth(q4.id) == 3
        assert deep_tree.depth(deep_tree.root().id) == 0

    def test_get_unknown(self, deep_tree):
        """Test looking up an unknown id."""
        with pytest.raises(NotFoundError):
            deep_tree.get(uuid.uuid4())


class TestPathTo:
    """Tests for linear views of the tree."""

    def test_default_path_follows_first_children(self, deep_tree):
        """Test the root path takes the lowest index at each level."""
        assert [m.content for m in deep_tree.path_to()] == [
            "You are a helpful assistant", "Q1", "A1",
        ]

    def test_path_through_anchor(self, deep_tree):
        """Test the path goes through the anchor and continues below it."""
        q2 = by_content(deep_tree, "Q2")
        path = deep_tree.path_to(q2.id)

        assert [m.content for m in path] == [
            "You are a helpful assistant", "Q2", "A3", "Q3",
        ]

    def test_path_is_linked(self, deep_tree):
        """Test each message is the parent of the next one."""
        path = deep_tree.path_to(by_content(deep_tree, "A3").id)

        assert path[0].is_root
        assert not deep_tree.children_of(path[-1].id)
        for parent, child in zip(path, path[1:]):
            assert child.parent_id == parent.id

    def test_path_to_leaf(self, deep_tree):
        """Test the path length is depth + 1 for a leaf anchor."""
        q4 = by_content(deep_tree, "Q4")
        path = deep_tree.path_to(q4.id)

        assert len(path) == deep_tree.depth(q4.id) + 1
        assert path[-1] == q4

    def test_path_to_root_only_tree(self, tree):
        """Test a single-message tree."""
        assert tree.path_to() == [tree.root()]

    def test_unknown_anchor(self, deep_tree):
        """Test an unknown anchor."""
        with pytest.raises(NotFoundError):
            deep_tree.path_to(uuid.uuid4())


class TestFromMessages:
    """Tests for rebuilding trees from stored messages."""

    def test_round_trip(self, deep_tree):
        """Test rebuilding preserves structure and traversal order."""
        messages = deep_tree.messages()
        messages.reverse()

        rebuilt = MessageTree.from_messages(messages)

        assert list(rebuilt) == list(deep_tree)
        assert rebuilt.root() == deep_tree.root()

    def test_two_roots(self):
        """Test a second root is rejected."""
        with pytest.raises(CorruptAggregateError, match="root"):
            MessageTree.from_messages([
                Message.create(Role.SYSTEM, "S1"),
                Message.create(Role.SYSTEM, "S2"),
            ])

    def test_no_root(self):
        """Test a tree without root is rejected."""
        with pytest.raises(CorruptAggregateError):
            MessageTree.from_messages([
                Message.create(Role.USER, "Q", parent_id=uuid.uuid4()),
            ])

    def test_dangling_parent(self):
        """Test a parent outside the tree is rejected."""
        root = Message.create(Role.SYSTEM, "S")
        orphan = Message.create(Role.USER, "Q", parent_id=uuid.uuid4())

        with pytest.raises(CorruptAggregateError, match="parent"):
            MessageTree.from_messages([root, orphan])

    def test_duplicate_sibling_index(self):
        """Test siblings must not share an index."""
        root = Message.create(Role.SYSTEM, "S")
        q1 = Message.create(Role.USER, "Q1", parent_id=root.id, sibling_index=1)
        q2 = Message.create(Role.USER, "Q2", parent_id=root.id, sibling_index=1)

        with pytest.raises(CorruptAggregateError, match="unique"):
            MessageTree.from_messages([root, q1, q2])

    def test_duplicate_id(self):
        """Test the same id cannot appear twice."""
        root = Message.create(Role.SYSTEM, "S")
        with pytest.raises(CorruptAggregateError, match="Duplicate"):
            MessageTree.from_messages([root, root])

    def test_cycle(self):
        """Test messages that only reference each other are rejected."""
        root = Message.create(Role.SYSTEM, "S")
        a = Message.create(Role.USER, "A", parent_id=uuid.uuid4())
        b = Message.create(Role.ASSISTANT, "B", parent_id=a.id)
        a = replace(a, parent_id=b.id)

        with pytest.raises(CorruptAggregateError, match="cycle"):
            MessageTree.from_messages([root, a, b])

    def test_gaps_in_indexes_are_kept(self):
        """Test insertion continues after the highest stored index."""
        root = Message.create(Role.SYSTEM, "S")
        q = Message.create(Role.USER, "Q", parent_id=root.id, sibling_index=2)
        tree = MessageTree.from_messages([root, q])

        added, = tree.insert_children(root.id, ["Q3"], Role.USER)
        assert added.sibling_index == 3

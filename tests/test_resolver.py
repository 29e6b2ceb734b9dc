"""
Tests for the thread resolver.

Tests cover:
- Self reference and ancestry cycle detection
- In-thread parent resolution (ghost parent, forks, flat fallback)
- Ghost promotion cascade re-linking waiting children
- Filing stored messages on a late-registered board
"""

import pytest

from threadtree.boards import BoardIndex
from threadtree.exceptions import ResolverInvariantError, StructuralCycle
from threadtree.resolver import ThreadResolver
from threadtree.store import MessageStore


@pytest.fixture
def resolver():
    store = MessageStore()
    index = BoardIndex(store)
    index.get_or_create_board("en.test")
    return ThreadResolver(store, index)


def deliver(resolver, message):
    _, waiting = resolver._store.put(message)
    return resolver.attach(message, ["en.test"], waiting)


class TestCheckStructure:
    """Test structural validation before storing."""

    def test_self_parent(self, resolver, factory):
        """Test a message naming itself as parent is rejected."""
        message = factory.create()
        message = message.model_copy(update={"parent_id": message.id})

        with pytest.raises(StructuralCycle) as exc_info:
            resolver.check_structure(message)

        assert exc_info.value.message_id == message.id

    def test_self_thread_root(self, resolver, factory):
        """Test a message naming itself as thread root is rejected."""
        message = factory.create()
        message = message.model_copy(update={"thread_root_id": message.id})

        with pytest.raises(StructuralCycle):
            resolver.check_structure(message)

    def test_ancestry_cycle(self, resolver, factory):
        """Test a late parent that would descend from its own child is rejected."""
        thread = factory.create()
        deliver(resolver, thread)
        parent = factory.create(thread=thread)
        child = factory.create(parent=parent, thread=thread)
        deliver(resolver, child)

        cyclic_parent = parent.model_copy(update={"parent_id": child.id})

        with pytest.raises(StructuralCycle):
            resolver.check_structure(cyclic_parent)

    def test_valid_chain(self, resolver, factory):
        """Test an ordinary reply chain passes."""
        thread = factory.create()
        reply = factory.create(parent=thread, thread=thread)
        deliver(resolver, thread)

        resolver.check_structure(reply)


class TestThreadParent:
    """Test where a reply is shown inside its own thread."""

    def test_thread_message_has_no_thread_parent(self, resolver, factory):
        """Test thread roots have no in-thread parent."""
        assert resolver.thread_parent(factory.create()) is None

    def test_flat_fallback(self, resolver, factory):
        """Test a reply without parent sits under the thread root."""
        thread = factory.create()
        reply = factory.create(thread=thread)

        assert resolver.thread_parent(reply) == thread.id

    def test_missing_parent_uses_root(self, resolver, factory):
        """Test a reply whose parent is a ghost sits under the thread root."""
        thread = factory.create()
        parent = factory.create(parent=thread, thread=thread)
        reply = factory.create(parent=parent, thread=thread)

        assert resolver.thread_parent(reply) == thread.id

    def test_known_parent_in_same_thread(self, resolver, factory):
        """Test a reply sits under its parent once the parent is stored."""
        thread = factory.create()
        parent = factory.create(parent=thread, thread=thread)
        reply = factory.create(parent=parent, thread=thread)
        deliver(resolver, thread)
        deliver(resolver, parent)

        assert resolver.thread_parent(reply) == parent.id

    def test_parent_on_other_board_uses_root(self, resolver, factory):
        """Test a reply sits under the root on a board its parent is not posted to."""
        thread = factory.create(boards=["en.test", "de.test"])
        parent = factory.create(parent=thread, thread=thread, boards=["en.test"])
        reply = factory.create(parent=parent, thread=thread, boards=["en.test", "de.test"])
        deliver(resolver, thread)
        deliver(resolver, parent)

        assert resolver.thread_parent(reply, "en.test") == parent.id
        assert resolver.thread_parent(reply, "de.test") == thread.id

    def test_fork_parent_uses_root(self, resolver, factory):
        """Test a parent from another thread does not nest the reply."""
        thread_a = factory.create()
        parent = factory.create(parent=thread_a, thread=thread_a)
        thread_b = factory.create()
        fork = factory.create(parent=parent, thread=thread_b)
        for message in (thread_a, parent, thread_b):
            deliver(resolver, message)

        assert resolver.thread_parent(fork) == thread_b.id


class TestCascade:
    """Test ghost promotion re-links waiting children."""

    def test_promotion_relinks_children(self, resolver, factory):
        """Test children that arrived first move under their parent."""
        thread = factory.create()
        parent = factory.create(parent=thread, thread=thread)
        child_a = factory.create(parent=parent, thread=thread)
        child_b = factory.create(parent=parent, thread=thread)
        deliver(resolver, thread)
        deliver(resolver, child_a)
        deliver(resolver, child_b)

        board = resolver._index.get_board("en.test")
        direct = [link.message_id for link in board.get_all_thread_replies(thread.id, recursive=False)]
        assert direct == [child_a.id, child_b.id]

        relinked = deliver(resolver, parent)

        assert relinked == 2
        direct = [link.message_id for link in board.get_all_thread_replies(thread.id, recursive=False)]
        assert direct == [parent.id]
        assert resolver._store.children_of(parent.id) == [child_a.id, child_b.id]

    def test_cascade_with_unstored_child_is_fatal(self, resolver, factory):
        """Test a waiting child missing from the store is an invariant violation."""
        thread = factory.create()
        resolver._store.put(thread)

        with pytest.raises(ResolverInvariantError):
            resolver.attach(thread, ["en.test"], ["never-stored@bob"])


class TestIndexBoard:
    """Test filing stored messages on a board registered later."""

    def test_late_board_gets_stored_messages(self, resolver, factory):
        """Test only messages naming the board are filed, with their activity."""
        thread = factory.create(boards=["en.test", "de.test"])
        reply = factory.create(parent=thread, thread=thread, boards=["de.test"])
        other = factory.create(boards=["en.test"])
        for message in (reply, thread, other):
            _, waiting = resolver._store.put(message)
            resolver.attach(message, [], waiting)
        resolver._index.get_or_create_board("de.test")

        filed = resolver.index_board("de.test")

        assert filed == 2
        board = resolver._index.get_board("de.test")
        assert [link.thread_id for link in board.get_threads()] == [thread.id]
        assert [link.message_id for link in board.get_all_thread_replies(thread.id)] == [reply.id]
        assert board.get_thread_reference(thread.id).last_activity == reply.date

"""Unit tests for listable objects and the list traversal helper."""

import pytest

from flcore.modules.lists import List, ListableMixin, listable, make_listable, traverse_containers


pytestmark = pytest.mark.unit


@pytest.fixture
def lst(db, actor) -> List:
    """Create a persisted, empty list."""
    rv = List(owner=actor, title="Reading")
    db.add(rv)
    db.flush()
    return rv


class TestListableClasses:
    """Tests for the listable decorator and make_listable."""

    def test_callable_summary(self):
        """Test a summary computed by a callable."""

        @listable(summary=lambda obj: obj.name.upper())
        class Crate(ListableMixin):
            name = "crate"

        assert Crate.is_listable()
        assert Crate().list_item_summary() == "CRATE"

    def test_make_listable(self):
        """Test making an existing class listable."""

        class Shelf:
            name = "Shelf one"

            @classmethod
            def is_listable(cls) -> bool:
                return False

        assert make_listable(Shelf, summary="name") is Shelf
        assert Shelf.is_listable()
        assert Shelf().list_item_summary() == "Shelf one"
        assert hasattr(Shelf, "add_to_list")

        make_listable(Shelf, summary="other")
        assert Shelf.listable_summary == "name"

    def test_default_summary(self, book, actor):
        """Test the title summary and that other models are not listable."""
        assert book.list_item_summary() == "Dune"
        assert not actor.is_listable()
        assert actor.list_item_summary() == ""


class TestListMembership:
    """Tests for adding objects to lists from the object side."""

    def test_add_to_list(self, db, lst, book, actor):
        """Test adding an object, and that adding it again returns its item."""
        li = book.add_to_list(db, lst)

        assert li.id is not None
        assert li.owner is actor
        assert book.list_item_errors == {}
        assert book.in_list(db, lst) is li
        assert book.add_to_list(db, lst) is li
        assert book.lists(db) == [lst]

    def test_add_to_list_failure(self, db, lst, book):
        """Test that an invalid item is discarded and its errors kept."""
        pending = lst.add_object(book)

        assert book.add_to_list(db, lst) is None
        assert lst.list_items == [pending]
        assert book.list_item_errors == {
            "list_item.listed_object": [f"The object '{book.fingerprint()}' is already in list '{lst.fingerprint()}'"],
        }

    def test_remove_from_list(self, db, lst, book):
        """Test removing an object from a list."""
        book.add_to_list(db, lst)

        assert book.remove_from_list(db, lst) is True
        assert book.in_list(db, lst) is None
        assert lst.list_items == []
        assert book.remove_from_list(db, lst) is False

    def test_lists_in_dict(self, db, lst, book, actor):
        """Test the lists key of the dict representation."""
        book.add_to_list(db, lst)
        rv = book.to_dict(actor, {"include": ["lists"]})
        assert [d["fingerprint"] for d in rv["lists"]] == [lst.fingerprint()]


class TestTraverseContainers:
    """Tests for traverse_containers."""

    @pytest.fixture
    def outer(self, db, lst, book) -> List:
        """A list holding ``lst``, which holds the book."""
        rv = List(title="Outer")
        db.add(rv)
        db.flush()
        book.add_to_list(db, lst)
        lst.add_to_list(db, rv)
        return rv

    def test_walk(self, db, lst, outer, book):
        """Test that containers are visited from the innermost outwards."""
        visited = []

        def visit(obj, container, level, context):
            visited.append((obj, container, level, context))
            return True

        assert traverse_containers(db, book, visit, "ctx") is True
        assert visited == [(book, lst, 0, "ctx"), (book, outer, 1, "ctx")]

    def test_stop(self, db, lst, outer, book):
        """Test that a False return stops the walk."""
        visited = []

        def visit(obj, container, level, context):
            visited.append(container)
            return False

        assert traverse_containers(db, book, visit) is False
        assert visited == [lst]

    def test_nothing_to_walk(self, db, book, actor):
        """Test objects that are not listable, and a missing callback."""
        assert traverse_containers(db, actor, lambda *a: True) is None
        assert traverse_containers(db, book, None) is None
        assert traverse_containers(db, book, lambda *a: True) is True

"""Unit tests for the Comment model and commentables.

These tests verify:
- Comment validation and title extraction
- Commentable and author references
- Counter maintenance on insert, delete, hide and unhide
- Comment queries built from query options
"""

import pytest

from flcore.modules.comments import Comment
from tests.models import SampleDocument


pytestmark = pytest.mark.unit


def visible_count(db, commentable) -> int:
    return commentable.comments_count(db, {"visibility": "visible"})


class TestCommentValidation:
    """Tests for Comment.validate."""

    def test_empty_comment(self):
        """Test that commentable, author and contents are required."""
        errors = Comment().validate()
        assert errors["commentable"] == ["can't be blank"]
        assert errors["author"] == ["can't be blank"]
        assert errors["contents_html"] == ["can't be blank"]

    def test_valid_comment(self, actor, page):
        """Test a valid comment; the title is extracted from the contents."""
        comment = Comment(commentable=page, author=actor, contents_html="<p>Hello <b>world</b></p>")
        assert comment.validate() == {}
        assert comment.title == "Hello world"
        assert comment.commentable_fingerprint == page.fingerprint()
        assert comment.author_fingerprint == actor.fingerprint()

    def test_long_title_truncated(self, actor, page):
        """Test that extracted titles are truncated with a tail."""
        comment = Comment(commentable=page, author=actor, contents_html="<p>" + "word " * 20 + "</p>")
        comment.validate()
        assert len(comment.title) == 40
        assert comment.title.endswith("...")

    def test_explicit_title_kept(self, actor, page):
        """Test that a given title is not replaced."""
        comment = Comment(commentable=page, author=actor, contents_html="<p>Body</p>", title="Subject")
        comment.validate()
        assert comment.title == "Subject"

    def test_title_too_long(self, actor, page):
        """Test the title length limit."""
        comment = Comment(commentable=page, author=actor, contents_html="x", title="t" * 101)
        assert comment.validate() == {"title": ["is too long (maximum is 100 characters)"]}

    def test_bad_reference(self, actor):
        """Test that unconvertible references are reported."""
        comment = Comment(commentable="junk", author=actor, contents_html="x")
        assert comment.validate() == {"commentable": ["cannot convert 'junk' to an object"]}

    def test_not_commentable(self, actor, other_actor):
        """Test that objects that do not accept comments are rejected."""
        comment = Comment(commentable=other_actor, author=actor, contents_html="x")
        assert comment.validate() == {"commentable": ["SampleActor is not a commentable"]}

    def test_contents_json(self, actor, page):
        """Test that JSON strings are parsed and invalid JSON is reported."""
        comment = Comment(commentable=page, author=actor, contents_html="x", contents_json='{"ops": []}')
        assert comment.contents_json == {"ops": []}
        assert comment.validate() == {}

        comment.contents_json = "{not json"
        assert comment.validate() == {"contents_json": ["invalid JSON contents"]}


class TestCommentReferences:
    """Tests for the commentable and author attributes."""

    def test_references_resolved_through_session(self, db, actor, document):
        """Test that fingerprints are resolved to objects."""
        comment = Comment(commentable=document.to_global_id(), author=actor.fingerprint(), contents_html="x")
        db.add(comment)
        db.flush()

        assert comment.commentable is document
        assert comment.author is actor

    def test_references_locked_after_save(self, db, actor, other_actor, page):
        """Test that the commentable and author cannot change once saved."""
        comment = page.add_comment(db, actor, "<p>Hi</p>")
        comment.author = other_actor
        comment.commentable = "SamplePage/999"
        assert comment.author_fingerprint == actor.fingerprint()
        assert comment.commentable_fingerprint == page.fingerprint()


class TestCommentCounters:
    """Tests for the comment counter."""

    def test_insert_increments(self, db, actor, document):
        """Test that each new visible comment increments the counter."""
        document.add_comment(db, actor, "<p>One</p>")
        document.add_comment(db, actor, "<p>Two</p>")
        assert document.num_comments == 2

    def test_hidden_insert_not_counted(self, db, actor, document):
        """Test that comments created hidden are not counted."""
        comment = document.build_comment(author=actor, contents_html="<p>Hidden</p>", is_visible=False)
        db.add(comment)
        db.flush()
        assert document.num_comments == 0

    def test_hide_and_unhide(self, db, actor, document):
        """Test that hiding decrements and unhiding increments the counter."""
        comment = document.add_comment(db, actor, "<p>One</p>")
        document.add_comment(db, actor, "<p>Two</p>")

        comment.is_visible = False
        db.flush()
        assert document.num_comments == 1

        comment.is_visible = True
        db.flush()
        assert document.num_comments == 2

    def test_delete(self, db, actor, document):
        """Test that deleting visible comments decrements and hidden ones do not."""
        visible = document.add_comment(db, actor, "<p>Visible</p>")
        hidden = document.add_comment(db, actor, "<p>Hidden</p>")
        hidden.is_visible = False
        db.flush()
        assert document.num_comments == 1

        db.delete(hidden)
        db.flush()
        assert document.num_comments == 1

        db.delete(visible)
        db.flush()
        assert document.num_comments == 0

    def test_counter_matches_visible_count(self, db, actor, document):
        """Test that the counter equals the number of visible comments."""
        for i in range(3):
            document.add_comment(db, actor, f"<p>{i}</p>")
        first = db.scalars(Comment.build_query({"only_commentables": [document], "order": "id"})).first()
        first.is_visible = False
        db.flush()
        assert document.num_comments == visible_count(db, document) == 2

    def test_no_counter(self, db, actor, page):
        """Test that commentables without a counter are left alone."""
        assert page.add_comment(db, actor, "<p>x</p>") is not None
        assert not hasattr(page, "num_comments")

    def test_comments_on_comments(self, db, actor, page):
        """Test that comments are commentable and counted."""
        comment = page.add_comment(db, actor, "<p>Parent</p>")
        reply = comment.add_comment(db, actor, "<p>Reply</p>")
        assert reply.commentable is comment
        assert comment.num_comments == 1


class TestCommentable:
    """Tests for CommentableMixin."""

    def test_add_comment_failure(self, db, actor, document):
        """Test that invalid comments are not saved and report prefixed errors."""
        assert document.add_comment(db, actor, "   ") is None
        assert document.comment_errors == {"comment.contents_html": ["can't be blank"]}
        assert document.num_comments == 0

    def test_comment_summary(self, document, page):
        """Test the configured summary attribute."""
        assert document.comment_summary() == document.title
        assert page.comment_summary() == page.title
        assert SampleDocument.comments_counter == "num_comments"

    def test_is_commentable(self, document, actor):
        """Test commentable detection on classes and instances."""
        assert document.is_commentable()
        assert SampleDocument.is_commentable()
        assert not actor.is_commentable()

    def test_comments_count(self, db, actor, other_actor, document, page):
        """Test counting an object's comments with options."""
        document.add_comment(db, actor, "<p>a</p>")
        document.add_comment(db, other_actor, "<p>b</p>")
        page.add_comment(db, actor, "<p>c</p>")

        assert document.comments_count(db) == 2
        assert document.comments_count(db, {"only_authors": [other_actor]}) == 1
        assert document.comments_count(db, {"except_commentables": [document]}) == 2


class TestCommentQueries:
    """Tests for Comment.query_filters and Comment.build_query."""

    def test_query_filters(self, actor):
        """Test translating shorthand options; explicit filters win."""
        body = Comment.query_filters(
            {
                "only_authors": [actor],
                "created_after": "2024-01-01",
                "visibility": "hidden",
                "filters": {"authors": {"except": ["SampleActor/9"]}},
            }
        )
        assert body == {
            "authors": {"except": ["SampleActor/9"]},
            "created": {"after": "2024-01-01"},
            "visibility": "hidden",
        }
        assert Comment.query_filters({}) is None

    def test_build_query_filters_rows(self, db, actor, other_actor, document, page):
        """Test running queries built from options."""
        a = document.add_comment(db, actor, "<p>a</p>")
        b = document.add_comment(db, other_actor, "<p>b</p>")
        c = page.add_comment(db, actor, "<p>c</p>")
        b.is_visible = False
        db.flush()

        def run(opts):
            return db.scalars(Comment.build_query({"order": "id", **opts})).all()

        assert run({}) == [a, b, c]
        assert run({"only_commentables": [document]}) == [a, b]
        assert run({"except_authors": [actor]}) == [b]
        assert run({"visibility": "visible"}) == [a, c]
        assert run({"visibility": "hidden"}) == [b]
        assert run({"created_before": "2100-01-01"}) == [a, b, c]
        assert run({"created_after": "2100-01-01"}) == []
        assert run({"limit": 1, "offset": 1}) == [b]

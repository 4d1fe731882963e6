"""Unit tests for CommentService.

These tests verify:
- Creating comments on commentables with and without access control
- Author-only updates
- Index limited to the commentables the actor may list
"""

import pytest

from flcore.modules.comments import Comment, CommentService, CreateComments, IndexComments
from flcore.services import ServiceStatus
from tests.factories.comments import CommentCreateFactory
from tests.models import SampleDocument


pytestmark = pytest.mark.unit


@pytest.fixture
def doc_checker(checkers):
    return checkers[SampleDocument]


class TestCreateComment:
    """Tests for creating comments."""

    def test_create_on_unrestricted_commentable(self, db, actor, page):
        """Test creating a comment on an object without access control."""
        params = {"comment": {"commentable": page.fingerprint(), "contents_html": "<p>Hi there</p>"}}
        service = CommentService(actor, params, db)

        comment = service.create()

        assert service.success()
        assert comment.author_fingerprint == actor.fingerprint()
        assert comment.commentable is page
        assert comment.title == "Hi there"

    def test_create_with_flat_params(self, db, actor, page):
        """Test that parameters need not be nested under the comment key."""
        params = CommentCreateFactory.build(commentable=page.to_global_id()).model_dump()
        service = CommentService(actor, params, db)

        comment = service.create()

        assert service.success()
        assert comment.title == "A comment"
        assert comment.contents_json == {"ops": [{"insert": "text"}]}

    def test_create_requires_create_comments(self, db, actor, document, doc_checker):
        """Test that access controlled commentables need create_comments."""
        params = {"comment": {"commentable": document.fingerprint(), "contents_html": "<p>x</p>"}}

        service = CommentService(actor, params, db)
        assert service.create() is None
        assert service.status == ServiceStatus.FORBIDDEN

        doc_checker.grant(CreateComments.NAME, actor, document)
        service = CommentService(actor, params, db)
        assert service.create() is not None
        assert document.num_comments == 1

    def test_create_without_actor(self, db, page):
        """Test that anonymous comments are refused."""
        service = CommentService(None, {"commentable": page.fingerprint(), "contents_html": "x"}, db)
        assert service.create() is None
        assert service.status == ServiceStatus.FORBIDDEN

    @pytest.mark.parametrize("commentable", [None, "SamplePage/999", "junk"])
    def test_create_on_missing_commentable(self, db, actor, commentable):
        """Test that unresolvable commentables are refused."""
        service = CommentService(actor, {"commentable": commentable, "contents_html": "x"}, db)
        assert service.create() is None
        assert service.status == ServiceStatus.FORBIDDEN

    def test_create_on_non_commentable(self, db, actor, other_actor):
        """Test that objects that do not accept comments are refused."""
        service = CommentService(actor, {"commentable": other_actor.fingerprint(), "contents_html": "x"}, db)
        assert service.create() is None
        assert service.status == ServiceStatus.FORBIDDEN

    def test_create_invalid(self, db, actor, page):
        """Test that invalid comments give 422 with field details."""
        service = CommentService(actor, {"commentable": page.fingerprint(), "contents_html": " "}, db)
        assert service.create() is None
        assert service.status == ServiceStatus.UNPROCESSABLE_ENTITY
        details = service.status_response_data()["_error"]["details"]
        assert details["messages"] == {"contents_html": ["can't be blank"]}


class TestUpdateComment:
    """Tests for updating comments."""

    @pytest.fixture
    def comment(self, db, actor, page) -> Comment:
        return page.add_comment(db, actor, "<p>Original</p>")

    def test_author_updates(self, db, actor, comment):
        """Test that the author can update the comment."""
        service = CommentService(actor, {"id": comment.id, "comment": {"title": "Edited"}}, db)
        assert service.update() is comment
        assert service.success()
        assert comment.title == "Edited"

    def test_other_actor_cannot_update(self, db, other_actor, comment):
        """Test that only the author can update."""
        service = CommentService(other_actor, {"id": comment.id, "title": "Hijacked"}, db)
        assert service.update() is None
        assert service.status == ServiceStatus.FORBIDDEN
        assert comment.title == "Original"

    def test_update_only_set_fields(self, db, actor, comment):
        """Test that fields missing from the parameters are not cleared."""
        service = CommentService(actor, {"id": comment.id, "contents_html": "<p>New body</p>"}, db)
        service.update()
        assert comment.contents_html == "<p>New body</p>"
        assert comment.title == "Original"


class TestShowAndDestroy:
    """Tests for show and destroy."""

    def test_show_follows_commentable(self, db, actor, other_actor, document, doc_checker):
        """Test that reading a comment requires reading its commentable."""
        comment = document.add_comment(db, actor, "<p>x</p>")
        assert CommentService(actor, {"id": comment.id}, db).show() is comment

        service = CommentService(other_actor, {"id": comment.id}, db)
        assert service.show() is None
        assert service.status == ServiceStatus.FORBIDDEN

        doc_checker.grant("read", other_actor, document)
        assert CommentService(other_actor, {"id": comment.id}, db).show() is comment

    def test_destroy_denied_by_checker(self, db, actor, page):
        """Test that comments cannot be deleted through their own permissions."""
        comment = page.add_comment(db, actor, "<p>x</p>")
        service = CommentService(actor, {"id": comment.id}, db)
        assert service.destroy() == (False, None)
        assert service.status == ServiceStatus.FORBIDDEN

    def test_destroy_without_access_checks(self, db, actor, document):
        """Test deletion with access checks disabled; the counter follows."""
        comment = document.add_comment(db, actor, "<p>x</p>")
        service = CommentService(actor, {"id": comment.id}, db, disable_access_checks=True)
        assert service.destroy() == (True, comment)
        assert document.num_comments == 0


class TestCommentIndex:
    """Tests for listing comments."""

    @pytest.fixture
    def comments(self, db, actor, other_actor, document, page):
        return {
            "document": document.add_comment(db, actor, "<p>doc</p>"),
            "page": page.add_comment(db, other_actor, "<p>page</p>"),
            "hidden": page.add_comment(db, actor, "<p>hidden</p>"),
        }

    def index(self, db, actor, **q):
        return CommentService(actor, {"_q": {"order": "id", **q}}, db).index()

    def test_index_limited_to_listable_commentables(self, db, other_actor, document, page, comments, doc_checker):
        """Test that commentables without index_comments are dropped."""
        refs = [document.fingerprint(), page.fingerprint()]

        rv = self.index(db, other_actor, only_commentables=refs)
        assert rv["result"] == [comments["page"], comments["hidden"]]

        doc_checker.grant(IndexComments.NAME, other_actor, document)
        rv = self.index(db, other_actor, only_commentables=refs)
        assert rv["result"] == [comments["document"], comments["page"], comments["hidden"]]

    def test_index_without_commentables(self, db, actor, comments):
        """Test that an index without listable commentables is empty."""
        rv = self.index(db, actor)
        assert rv == {"result": [], "_pg": {"_c": 0, "_s": 20, "_p": 2}}

    def test_index_filters(self, db, actor, page, comments):
        """Test the author and visibility query parameters."""
        comments["hidden"].is_visible = False
        db.flush()
        refs = [page.fingerprint()]

        assert self.index(db, actor, only_commentables=refs, only_authors=[actor.fingerprint()])["result"] == [
            comments["hidden"]
        ]
        assert self.index(db, actor, only_commentables=refs, visibility="visible")["result"] == [comments["page"]]

    def test_index_pagination(self, db, actor, page, comments):
        """Test paging through the comments of a commentable."""
        params = {"_q": {"only_commentables": [page.fingerprint()], "order": "id"}, "_pg": {"_s": 1}}
        rv = CommentService(actor, params, db).index()
        assert rv["result"] == [comments["page"]]
        assert rv["_pg"] == {"_c": 1, "_s": 1, "_p": 2}

    def test_invalid_query_params(self, db, actor):
        """Test that malformed query parameters are reported."""
        service = CommentService(actor, {"_q": {"limit": "many"}}, db)
        assert service.index() is None
        assert service.status == ServiceStatus.UNPROCESSABLE_ENTITY
        assert service.status_response_data()["_error"]["type"] == "query_error"

"""
Tests: Request lifecycle — create, update, delete, list.

All test data is created via ORM helpers or the service itself.
The `session` autouse fixture rolls back after every test.
"""

from datetime import date, datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dealroom.core.exceptions import NotFoundError, StoreError, ValidationError
from dealroom.models import db as _db
from dealroom.models.diligence import DiligenceComment, DiligenceRequest, RequestView
from dealroom.models.notification import DiligenceNotification
from dealroom.services import request_lifecycle as svc

DEAL = "deal-1"


# ── ORM helpers ───────────────────────────────────────────────────────────────


def _make_request(category_id, deal_id=DEAL, title="Tax returns", **kw) -> DiligenceRequest:
    kw.setdefault("created_by", "creator")
    r = DiligenceRequest(deal_id=deal_id, category_id=category_id, title=title, **kw)
    _db.session.add(r)
    _db.session.commit()
    return r


def _notifications(**filters):
    return DiligenceNotification.query.filter_by(**filters).all()


# ═════════════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateRequest:
    def test_defaults_applied(self, category):
        result = svc.create_request(
            {"deal_id": DEAL, "category_id": category.id, "title": "  Cap table  "},
            actor_id="alice",
        )
        assert result["title"] == "Cap table"
        assert result["priority"] == "medium"
        assert result["status"] == "open"
        assert result["order_index"] == 0
        assert result["created_by"] == "alice"
        assert result["assignee_ids"] == []
        assert result["assignee_id"] is None
        assert result["last_activity_at"] is not None
        assert result["category"]["name"] == "Financial"
        assert "notification_warning" not in result

    def test_missing_required_fields_rejected_before_write(self, category):
        with pytest.raises(ValidationError) as exc:
            svc.create_request({"category_id": category.id}, actor_id="alice")
        assert set(exc.value.details) == {"deal_id", "title"}
        assert DiligenceRequest.query.count() == 0

    def test_unknown_category_rejected(self):
        with pytest.raises(ValidationError) as exc:
            svc.create_request(
                {"deal_id": DEAL, "category_id": "nope", "title": "X"}, actor_id="alice",
            )
        assert "category_id" in exc.value.details

    def test_subcategory_must_belong_to_category(self, category, other_category):
        sub_id = category.subcategories[0].id
        with pytest.raises(ValidationError):
            svc.create_request(
                {"deal_id": DEAL, "category_id": other_category.id, "title": "X",
                 "subcategory_id": sub_id},
                actor_id="alice",
            )

    def test_invalid_priority_rejected(self, category):
        with pytest.raises(ValidationError):
            svc.create_request(
                {"deal_id": DEAL, "category_id": category.id, "title": "X", "priority": "urgent"},
                actor_id="alice",
            )

    def test_unknown_field_rejected(self, category):
        with pytest.raises(ValidationError) as exc:
            svc.create_request(
                {"deal_id": DEAL, "category_id": category.id, "title": "X", "colour": "red"},
                actor_id="alice",
            )
        assert "colour" in exc.value.details

    def test_actor_required(self, category):
        with pytest.raises(ValidationError):
            svc.create_request({"deal_id": DEAL, "category_id": category.id, "title": "X"}, None)

    def test_legacy_assignee_translated_and_notified(self, category):
        result = svc.create_request(
            {"deal_id": DEAL, "category_id": category.id, "title": "X", "assignee_id": "bob"},
            actor_id="alice",
        )
        assert result["assignee_ids"] == ["bob"]
        assert result["assignee_id"] == "bob"
        notes = _notifications(user_id="bob")
        assert len(notes) == 1
        assert notes[0].type == "assignment"

    def test_creator_assigning_self_is_not_notified(self, category):
        svc.create_request(
            {"deal_id": DEAL, "category_id": category.id, "title": "X", "assignee_id": "alice"},
            actor_id="alice",
        )
        assert DiligenceNotification.query.count() == 0

    def test_duplicate_assignees_collapsed_in_order(self, category):
        result = svc.create_request(
            {"deal_id": DEAL, "category_id": category.id, "title": "X",
             "assignee_ids": ["carol", "bob", "carol"]},
            actor_id="alice",
        )
        assert result["assignee_ids"] == ["carol", "bob"]
        assert result["assignee_id"] == "carol"
        assert sorted(n.user_id for n in _notifications(type="assignment")) == ["bob", "carol"]

    def test_store_failure_raises_and_writes_nothing(self, category):
        with patch.object(Session, "commit", side_effect=SQLAlchemyError("disk full")):
            with pytest.raises(StoreError):
                svc.create_request(
                    {"deal_id": DEAL, "category_id": category.id, "title": "X",
                     "assignee_ids": ["bob"]},
                    actor_id="alice",
                )
        assert DiligenceRequest.query.count() == 0
        assert DiligenceNotification.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════════
# Update
# ═════════════════════════════════════════════════════════════════════════════


class TestUpdateRequest:
    def test_update_stamps_actor_and_activity(self, category):
        req = _make_request(category.id)
        result = svc.update_request(req.id, {"notes": "chased seller"}, actor_id="bob")
        assert result["notes"] == "chased seller"
        assert result["updated_by"] == "bob"
        assert result["last_activity_at"] is not None

    def test_deal_and_category_are_immutable(self, category, other_category):
        req = _make_request(category.id)
        with pytest.raises(ValidationError):
            svc.update_request(req.id, {"deal_id": "deal-2"}, actor_id="bob")
        with pytest.raises(ValidationError):
            svc.update_request(req.id, {"category_id": other_category.id}, actor_id="bob")
        _db.session.refresh(req)
        assert req.deal_id == DEAL
        assert req.category_id == category.id

    def test_invalid_value_leaves_row_untouched(self, category):
        req = _make_request(category.id)
        with pytest.raises(ValidationError):
            svc.update_request(req.id, {"title": "Renamed", "status": "done"}, actor_id="bob")
        assert _db.session.get(DiligenceRequest, req.id).title == "Tax returns"

    def test_completed_stamps_completion_date(self, category):
        req = _make_request(category.id)
        result = svc.update_request(req.id, {"status": "completed"}, actor_id="bob")
        assert result["completion_date"] == datetime.now(timezone.utc).date().isoformat()

    def test_explicit_completion_date_kept(self, category):
        req = _make_request(category.id)
        result = svc.update_request(
            req.id, {"status": "completed", "completion_date": "2026-01-15"}, actor_id="bob",
        )
        assert result["completion_date"] == "2026-01-15"

    def test_reopen_keeps_completion_date(self, category):
        req = _make_request(category.id, status="completed", completion_date=date(2026, 1, 2))
        result = svc.update_request(req.id, {"status": "open"}, actor_id="bob")
        assert result["status"] == "open"
        assert result["completion_date"] == "2026-01-02"

    def test_bad_date_rejected(self, category):
        req = _make_request(category.id)
        with pytest.raises(ValidationError):
            svc.update_request(req.id, {"due_date": "next friday"}, actor_id="bob")

    def test_missing_request(self):
        with pytest.raises(NotFoundError):
            svc.update_request("missing", {"title": "X"}, actor_id="bob")

    def test_empty_update_rejected(self, category):
        req = _make_request(category.id)
        with pytest.raises(ValidationError):
            svc.update_request(req.id, {}, actor_id="bob")


# ═════════════════════════════════════════════════════════════════════════════
# Delete & list
# ═════════════════════════════════════════════════════════════════════════════


class TestDeleteRequest:
    def test_wrong_deal_is_not_found(self, category):
        req = _make_request(category.id)
        with pytest.raises(NotFoundError):
            svc.delete_request(req.id, "deal-other", actor_id="alice")
        assert _db.session.get(DiligenceRequest, req.id) is not None

    def test_delete_removes_comments_and_views(self, category):
        req = _make_request(category.id)
        top = DiligenceComment(request_id=req.id, user_id="bob", content="top")
        _db.session.add(top)
        _db.session.flush()
        _db.session.add(DiligenceComment(request_id=req.id, user_id="carol", content="re",
                                         parent_comment_id=top.id))
        _db.session.add(RequestView(request_id=req.id, user_id="bob"))
        _db.session.commit()
        req_id = req.id

        svc.delete_request(req_id, DEAL, actor_id="alice")

        assert _db.session.get(DiligenceRequest, req_id) is None
        assert DiligenceComment.query.filter_by(request_id=req_id).count() == 0
        assert RequestView.query.filter_by(request_id=req_id).count() == 0


class TestListRequests:
    def test_ordered_by_order_index_and_filtered(self, category):
        _make_request(category.id, title="second", order_index=2)
        _make_request(category.id, title="first", order_index=1)
        _make_request(category.id, deal_id="deal-2", title="elsewhere")

        items = svc.list_requests(DEAL)
        assert [i["title"] for i in items] == ["first", "second"]
        assert items[0]["category"]["id"] == category.id
        assert "has_unread_updates" not in items[0]

    def test_all_deals_when_unfiltered(self, category):
        _make_request(category.id)
        _make_request(category.id, deal_id="deal-2")
        assert len(svc.list_requests()) == 2

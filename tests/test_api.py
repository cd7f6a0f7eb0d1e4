"""
Tests: HTTP surface — diligence, notifications and health blueprints.
"""

from unittest.mock import patch

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dealroom.models import db as _db
from dealroom.models.deal import Deal
from dealroom.models.diligence import DiligenceTemplate

ALICE = {"X-User": "alice"}
BOB = {"X-User": "bob"}


def _create(client, category_id, **extra):
    body = {"deal_id": "deal-1", "category_id": category_id, "title": "Cap table", **extra}
    res = client.post("/api/v1/diligence/requests", json=body, headers=ALICE)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


class TestHealth:
    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}
        assert "X-Request-ID" in res.headers

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["database"]["status"] == "ok"


class TestRequestsApi:
    def test_create_list_update_delete(self, client, category):
        created = _create(client, category.id, assignee_ids=["bob"])
        assert created["assignee_id"] == "bob"

        res = client.get("/api/v1/diligence/requests?deal_id=deal-1", headers=BOB)
        items = res.get_json()
        assert [i["id"] for i in items] == [created["id"]]
        assert items[0]["has_unread_updates"] is True

        res = client.patch(f"/api/v1/diligence/requests/{created['id']}",
                           json={"status": "in_progress"}, headers=ALICE)
        assert res.status_code == 200
        assert res.get_json()["status"] == "in_progress"

        res = client.delete(f"/api/v1/diligence/requests/{created['id']}?deal_id=deal-1",
                            headers=ALICE)
        assert res.status_code == 200
        assert client.get(f"/api/v1/diligence/requests/{created['id']}").status_code == 404

    def test_missing_actor_is_400(self, client, category):
        res = client.post("/api/v1/diligence/requests",
                          json={"deal_id": "d", "category_id": category.id, "title": "x"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_validation_error_is_422_with_details(self, client, category):
        res = client.post("/api/v1/diligence/requests",
                          json={"category_id": category.id}, headers=ALICE)
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_RULE"
        assert "title" in body["details"]

    def test_immutable_field_is_422(self, client, category):
        created = _create(client, category.id)
        res = client.patch(f"/api/v1/diligence/requests/{created['id']}",
                           json={"deal_id": "other"}, headers=ALICE)
        assert res.status_code == 422

    def test_unknown_request_is_404(self, client):
        res = client.patch("/api/v1/diligence/requests/nope", json={"title": "x"}, headers=ALICE)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_delete_requires_deal_id(self, client, category):
        created = _create(client, category.id)
        res = client.delete(f"/api/v1/diligence/requests/{created['id']}", headers=ALICE)
        assert res.status_code == 400

    def test_store_error_is_500(self, client, category):
        with patch.object(Session, "commit", side_effect=SQLAlchemyError("boom")):
            res = client.post(
                "/api/v1/diligence/requests",
                json={"deal_id": "deal-1", "category_id": category.id, "title": "x"},
                headers=ALICE,
            )
        assert res.status_code == 500
        assert res.get_json()["code"] == "ERR_DATABASE"

    def test_counts_activity_and_view(self, client, category):
        created = _create(client, category.id, document_ids=["doc-1"])
        res = client.post(f"/api/v1/diligence/requests/{created['id']}/view", headers=BOB)
        assert res.status_code == 200
        assert res.get_json()["user_id"] == "bob"

        counts = client.get("/api/v1/diligence/request-counts?deal_id=deal-1").get_json()
        assert counts[created["id"]] == {"document_count": 1, "comment_count": 0}

        timeline = client.get(f"/api/v1/diligence/requests/{created['id']}/activity").get_json()
        assert timeline[0]["type"] == "created"


class TestTaxonomyApi:
    def test_catalogue_endpoints(self, client, category):
        assert client.get("/api/v1/diligence/categories").get_json()[0]["name"] == "Financial"
        assert len(client.get("/api/v1/diligence/subcategories").get_json()) == 1
        assert client.get("/api/v1/diligence/templates").get_json() == []


class TestCommentsApi:
    def test_thread_and_approval_flow(self, client, category):
        req = _create(client, category.id)
        url = f"/api/v1/diligence/requests/{req['id']}/comments"

        res = client.post(url, json={"content": "Where is FY23?"}, headers=BOB)
        assert res.status_code == 201
        top = res.get_json()

        res = client.post(url, json={"content": "Uploaded", "parent_comment_id": top["id"]},
                          headers=ALICE)
        assert res.status_code == 201
        reply = res.get_json()

        res = client.post(url, json={"content": "nested", "parent_comment_id": reply["id"]},
                          headers=BOB)
        assert res.status_code == 422

        res = client.post(f"/api/v1/diligence/comments/{reply['id']}/approve", headers=BOB)
        assert res.get_json()["comment_type"] == "approved"

        threads = client.get(url).get_json()
        assert len(threads) == 1
        assert threads[0]["replies"][0]["approved_by"] == "bob"

        res = client.post(f"/api/v1/diligence/comments/{reply['id']}/unapprove", headers=BOB)
        assert res.get_json()["approved_by"] is None

        res = client.patch(f"/api/v1/diligence/comments/{top['id']}",
                           json={"content": "Where is FY2023?"}, headers=BOB)
        assert res.get_json()["content"] == "Where is FY2023?"

        res = client.delete(f"/api/v1/diligence/comments/{top['id']}", headers=BOB)
        assert res.status_code == 200
        assert client.get(url).get_json() == []

    def test_approve_immediately_requires_boolean(self, client, category):
        req = _create(client, category.id)
        url = f"/api/v1/diligence/requests/{req['id']}/comments"

        res = client.post(url, json={"content": "Draft", "approve_immediately": "false"},
                          headers=BOB)
        assert res.status_code == 422
        assert "approve_immediately" in res.get_json()["details"]
        assert client.get(url).get_json() == []

        res = client.post(url, json={"content": "Final", "approve_immediately": True},
                          headers=BOB)
        assert res.get_json()["comment_type"] == "approved"


class TestTemplateAndProgressApi:
    def test_apply_template_and_progress(self, client, category):
        template = DiligenceTemplate(name="Std", template_data={"categories": [
            {"name": "Financial", "requests": [{"title": "P&L"}, {"title": "Balance sheet"}]},
        ]})
        deal = Deal(title="Falcon", company_name="Falcon Ltd")
        _db.session.add_all([template, deal])
        _db.session.commit()

        res = client.post(f"/api/v1/deals/{deal.id}/diligence/apply-template",
                          json={"template_id": template.id}, headers=ALICE)
        assert res.status_code == 201
        assert res.get_json()["requests_created"] == 2

        progress = client.get(f"/api/v1/deals/{deal.id}/diligence/progress").get_json()
        assert progress["total_requests"] == 2
        assert progress["progress_percentage"] == 0

        rollup = client.get("/api/v1/diligence/progress").get_json()
        assert rollup[0]["deal_id"] == deal.id
        assert rollup[0]["title"] == "Falcon"

    def test_apply_missing_template_is_404(self, client):
        res = client.post("/api/v1/deals/deal-1/diligence/apply-template",
                          json={"template_id": "nope"}, headers=ALICE)
        assert res.status_code == 404


class TestNotificationsApi:
    def test_inbox_flow(self, client, category):
        _create(client, category.id, assignee_ids=["bob"])

        res = client.get("/api/v1/notifications", headers=BOB)
        body = res.get_json()
        assert body["total"] == 1
        assert body["unread_count"] == 1
        notif_id = body["items"][0]["id"]

        assert client.get("/api/v1/notifications/unread-count",
                          headers=BOB).get_json() == {"unread_count": 1}

        res = client.post(f"/api/v1/notifications/{notif_id}/read", headers=ALICE)
        assert res.status_code == 404

        res = client.post(f"/api/v1/notifications/{notif_id}/read", headers=BOB)
        assert res.get_json()["read"] is True

        res = client.get("/api/v1/notifications?unread_only=true", headers=BOB)
        assert res.get_json()["total"] == 0

        res = client.post("/api/v1/notifications/read-all", headers=BOB)
        assert res.get_json() == {"marked_read": 0}

    def test_inbox_requires_user(self, client):
        assert client.get("/api/v1/notifications").status_code == 400

    def test_inbox_pagination(self, client, category):
        _create(client, category.id, assignee_ids=["bob"])
        _create(client, category.id, assignee_ids=["bob"])

        body = client.get("/api/v1/notifications?limit=1", headers=BOB).get_json()
        assert body["total"] == 2
        assert len(body["items"]) == 1

        body = client.get("/api/v1/notifications?limit=1&offset=1", headers=BOB).get_json()
        assert len(body["items"]) == 1
        assert body["unread_count"] == 2

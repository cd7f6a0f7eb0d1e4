"""
Tests: Progress aggregation per deal and across active deals.
"""

import pytest

from dealroom.models import db as _db
from dealroom.models.deal import Deal
from dealroom.models.diligence import DiligenceRequest
from dealroom.services import progress_service as svc


def _make_deal(title="Project Falcon", status="active", company="Falcon Ltd") -> Deal:
    d = Deal(title=title, company_name=company, status=status)
    _db.session.add(d)
    _db.session.commit()
    return d


def _make_requests(category_id, deal_id, statuses):
    for i, status in enumerate(statuses):
        _db.session.add(DiligenceRequest(
            deal_id=deal_id, category_id=category_id, title=f"Item {i}",
            status=status, created_by="seed", order_index=i,
        ))
    _db.session.commit()


class TestPercentage:
    @pytest.mark.parametrize("completed,total,expected", [
        (0, 0, 0),
        (1, 4, 25),
        (1, 3, 33),
        (2, 3, 67),
        (1, 8, 13),
        (3, 8, 38),
        (4, 4, 100),
    ])
    def test_rounds_half_up(self, completed, total, expected):
        assert svc.progress_percentage(completed, total) == expected

    @pytest.mark.parametrize("pct,stage", [
        (0, "early"), (24, "early"), (25, "due_diligence"),
        (74, "due_diligence"), (75, "final_review"), (100, "final_review"),
    ])
    def test_derive_stage(self, pct, stage):
        assert svc.derive_stage(pct) == stage


class TestDealProgress:
    def test_four_requests_one_completed(self, category):
        _make_requests(category.id, "D1", ["completed", "open", "in_progress", "blocked"])
        progress = svc.deal_progress("D1")
        assert progress["total_requests"] == 4
        assert progress["completed_requests"] == 1
        assert progress["progress_percentage"] == 25
        assert progress["by_status"] == {
            "blocked": 1, "completed": 1, "in_progress": 1, "open": 1,
        }
        assert progress["stage"] == "due_diligence"

    def test_no_requests_is_zero(self):
        progress = svc.deal_progress("empty-deal")
        assert progress["total_requests"] == 0
        assert progress["progress_percentage"] == 0
        assert progress["stage"] == "early"


class TestAllDealsProgress:
    def test_consistent_with_per_deal_and_active_only(self, category):
        falcon = _make_deal("Falcon")
        heron = _make_deal("Heron")
        archived = _make_deal("Old", status="archived")
        _make_requests(category.id, falcon.id, ["completed", "completed", "open"])
        _make_requests(category.id, heron.id, ["open"])
        _make_requests(category.id, archived.id, ["completed"])

        rollup = {item["deal_id"]: item for item in svc.all_deals_progress()}
        assert set(rollup) == {falcon.id, heron.id}
        for deal_id, item in rollup.items():
            single = svc.deal_progress(deal_id)
            for key in ("total_requests", "completed_requests", "progress_percentage",
                        "by_status", "stage"):
                assert item[key] == single[key]
        assert rollup[falcon.id]["progress_percentage"] == 67
        assert rollup[falcon.id]["title"] == "Falcon"
        assert rollup[falcon.id]["company_name"] == "Falcon Ltd"

    def test_active_deal_without_requests(self):
        deal = _make_deal()
        [item] = svc.all_deals_progress()
        assert item["deal_id"] == deal.id
        assert item["progress_percentage"] == 0

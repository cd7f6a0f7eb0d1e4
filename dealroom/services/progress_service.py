"""
Deal-level progress rollups computed from request status counts.

progress_percentage = round(100 * completed / total), half rounding up,
and exactly 0 for a deal with no requests.
"""

import logging

from sqlalchemy import func, select

from dealroom.models import db
from dealroom.models.deal import Deal
from dealroom.models.diligence import REQUEST_STATUSES, DiligenceRequest

logger = logging.getLogger(__name__)

EARLY_BELOW = 25
DUE_DILIGENCE_BELOW = 75


def progress_percentage(completed: int, total: int) -> int:
    """Integer percentage, .5 rounds up (Python's round() would go to even)."""
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


def derive_stage(percentage: int) -> str:
    if percentage < EARLY_BELOW:
        return "early"
    if percentage < DUE_DILIGENCE_BELOW:
        return "due_diligence"
    return "final_review"


def _summarise(deal_id: str, status_counts: dict[str, int]) -> dict:
    by_status = {status: 0 for status in sorted(REQUEST_STATUSES)}
    by_status.update(status_counts)
    total = sum(by_status.values())
    completed = by_status.get("completed", 0)
    pct = progress_percentage(completed, total)
    return {
        "deal_id": deal_id,
        "total_requests": total,
        "completed_requests": completed,
        "progress_percentage": pct,
        "by_status": by_status,
        "stage": derive_stage(pct),
    }


def deal_progress(deal_id: str) -> dict:
    rows = db.session.execute(
        select(DiligenceRequest.status, func.count(DiligenceRequest.id))
        .where(DiligenceRequest.deal_id == deal_id)
        .group_by(DiligenceRequest.status)
    ).all()
    return _summarise(deal_id, {status: count for status, count in rows})


def all_deals_progress() -> list[dict]:
    """
    Progress for every active deal, from a single grouped query.

    Each item matches what ``deal_progress`` returns for that deal, plus the
    deal's title and company_name.
    """
    deals = db.session.execute(
        select(Deal).where(Deal.status == "active").order_by(Deal.created_at.desc())
    ).scalars().all()
    if not deals:
        return []

    counts: dict[str, dict[str, int]] = {d.id: {} for d in deals}
    rows = db.session.execute(
        select(DiligenceRequest.deal_id, DiligenceRequest.status, func.count(DiligenceRequest.id))
        .where(DiligenceRequest.deal_id.in_(list(counts)))
        .group_by(DiligenceRequest.deal_id, DiligenceRequest.status)
    ).all()
    for deal_id, status, count in rows:
        counts[deal_id][status] = count

    results = []
    for deal in deals:
        item = _summarise(deal.id, counts[deal.id])
        item["title"] = deal.title
        item["company_name"] = deal.company_name
        results.append(item)
    return results

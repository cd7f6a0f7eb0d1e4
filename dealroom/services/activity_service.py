"""
Read tracking, per-request counts and the request activity timeline.

A request "has unread updates" for a user when its last_activity_at is
newer than that user's last RequestView of it.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select

from dealroom.core.exceptions import NotFoundError
from dealroom.models import db
from dealroom.models.diligence import DiligenceComment, DiligenceRequest, RequestView
from dealroom.services import identity_service
from dealroom.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

STATUS_ACTIVITY_LABELS = {
    "in_progress": "In Progress",
    "completed": "Resolved",
    "blocked": "Blocked",
}


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat those as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def has_unread_updates(request: DiligenceRequest, last_viewed_at: datetime | None) -> bool:
    if request.last_activity_at is None:
        return False
    if last_viewed_at is None:
        return True
    return _as_utc(request.last_activity_at) > _as_utc(last_viewed_at)


def get_view_map(user_id: str, request_ids) -> dict[str, datetime]:
    """{request_id: last_viewed_at} for the given user (one query)."""
    ids = list(request_ids)
    if not ids:
        return {}
    rows = db.session.execute(
        select(RequestView.request_id, RequestView.last_viewed_at).where(
            RequestView.user_id == user_id,
            RequestView.request_id.in_(ids),
        )
    ).all()
    return {request_id: viewed_at for request_id, viewed_at in rows}


def mark_request_viewed(request_id: str, user_id: str) -> dict:
    """Record that ``user_id`` has just opened the request (upsert)."""
    if db.session.get(DiligenceRequest, request_id) is None:
        raise NotFoundError(resource="DiligenceRequest", resource_id=request_id)

    now = datetime.now(timezone.utc)
    view = db.session.execute(
        select(RequestView).where(
            RequestView.request_id == request_id,
            RequestView.user_id == user_id,
        )
    ).scalar_one_or_none()
    if view is None:
        view = RequestView(request_id=request_id, user_id=user_id, last_viewed_at=now)
        db.session.add(view)
    else:
        view.last_viewed_at = now

    commit_or_raise("mark_request_viewed")
    return view.to_dict()


def request_counts(deal_id: str | None = None) -> dict[str, dict]:
    """
    Document and comment counts per request.

    Returns:
        {request_id: {"document_count": int, "comment_count": int}}
    """
    req_stmt = select(DiligenceRequest.id, DiligenceRequest.document_ids)
    comment_stmt = (
        select(DiligenceComment.request_id, func.count(DiligenceComment.id))
        .group_by(DiligenceComment.request_id)
    )
    if deal_id:
        req_stmt = req_stmt.where(DiligenceRequest.deal_id == deal_id)
        comment_stmt = comment_stmt.join(
            DiligenceRequest, DiligenceRequest.id == DiligenceComment.request_id,
        ).where(DiligenceRequest.deal_id == deal_id)

    comment_counts = dict(db.session.execute(comment_stmt).all())
    return {
        request_id: {
            "document_count": len(document_ids or []),
            "comment_count": comment_counts.get(request_id, 0),
        }
        for request_id, document_ids in db.session.execute(req_stmt).all()
    }


def request_activity(request_id: str) -> list[dict]:
    """
    Newest-first timeline for one request.

    Entries: created, assigned (when anyone is assigned), status / resolved
    (when not open) and one comment or reply entry per comment.
    """
    req = db.session.get(DiligenceRequest, request_id)
    if req is None:
        raise NotFoundError(resource="DiligenceRequest", resource_id=request_id)

    comments = db.session.execute(
        select(DiligenceComment).where(DiligenceComment.request_id == request_id)
    ).scalars().all()

    people = identity_service.resolve_profiles(
        [req.created_by, req.updated_by, *(req.assignee_ids or []),
         *(c.user_id for c in comments)]
    )

    def who(user_id):
        identity = people.get(user_id) or identity_service.identity_for(user_id, None)
        return {"user_id": user_id, "user_name": identity["name"],
                "user_initials": identity["initials"]}

    activities = [{
        "id": "created",
        "type": "created",
        "content": "Request created",
        "timestamp": _as_utc(req.created_at),
        **who(req.created_by),
    }]

    if req.assignee_ids:
        names = ", ".join(who(uid)["user_name"] for uid in req.assignee_ids)
        activities.append({
            "id": "assigned",
            "type": "assigned",
            "content": f"Assigned to {names}",
            "timestamp": _as_utc(req.updated_at),
            **who(req.updated_by or req.created_by),
        })

    if req.status != "open":
        label = STATUS_ACTIVITY_LABELS.get(req.status, req.status)
        activities.append({
            "id": "status",
            "type": "resolved" if req.status == "completed" else "status",
            "content": f"Status changed to {label}",
            "timestamp": _as_utc(req.updated_at),
            **who(req.updated_by or req.created_by),
        })

    for comment in comments:
        is_reply = comment.parent_comment_id is not None
        activities.append({
            "id": f"comment-{comment.id}",
            "type": "reply" if is_reply else "comment",
            "content": "Posted a reply" if is_reply else "Added a comment",
            "timestamp": _as_utc(comment.created_at),
            **who(comment.user_id),
        })

    activities.sort(key=lambda a: a["timestamp"], reverse=True)
    for item in activities:
        item["timestamp"] = item["timestamp"].isoformat()
    return activities

"""
Comment Thread Service.

Comments hang off a diligence request with exactly one level of nesting:
a reply must target a top-level comment of the same request. Approval
promotes a comment to the request's accepted answer; approve/unapprove
always set or clear (comment_type, approved_by, approved_at) together.

Notifications:
    add (internal)               → comment
    add (approved) / approve     → approved_answer
    unapprove / update / delete  → nothing
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from dealroom.core.exceptions import NotFoundError, ValidationError
from dealroom.models import db
from dealroom.models.diligence import COMMENT_TYPES, DiligenceComment, DiligenceRequest
from dealroom.services import identity_service
from dealroom.services.notification import (
    NotificationService,
    fan_out_or_warn,
    prior_commenter_ids,
)
from dealroom.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)


def _clean_content(content) -> str:
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("content is required", details={"content": "required"})
    return content.strip()


def _get_comment_or_404(comment_id: str) -> DiligenceComment:
    comment = db.session.get(DiligenceComment, comment_id)
    if comment is None:
        raise NotFoundError(resource="DiligenceComment", resource_id=comment_id)
    return comment


def _get_request_or_404(request_id: str) -> DiligenceRequest:
    req = db.session.get(DiligenceRequest, request_id)
    if req is None:
        raise NotFoundError(resource="DiligenceRequest", resource_id=request_id)
    return req


def _serialize(comment: DiligenceComment, people: dict) -> dict:
    data = comment.to_dict()
    data["profile"] = people.get(comment.user_id) or identity_service.identity_for(
        comment.user_id, None,
    )
    data["approver_profile"] = None
    if comment.is_approved and comment.approved_by:
        data["approver_profile"] = people.get(comment.approved_by) or \
            identity_service.identity_for(comment.approved_by, None)
    return data


def _serialize_one(comment: DiligenceComment) -> dict:
    people = identity_service.resolve_profiles([comment.user_id, comment.approved_by])
    return _serialize(comment, people)


# ── Queries ───────────────────────────────────────────────────────────────────


def list_comments(request_id: str) -> list[dict]:
    """
    Top-level comments in creation order, each with its direct replies.

    Every comment carries ``profile`` (author identity) and
    ``approver_profile`` (approver identity, approved comments only).
    """
    _get_request_or_404(request_id)
    comments = db.session.execute(
        select(DiligenceComment)
        .where(DiligenceComment.request_id == request_id)
        .order_by(DiligenceComment.created_at)
    ).scalars().all()

    people = identity_service.resolve_profiles(
        [c.user_id for c in comments] + [c.approved_by for c in comments if c.approved_by]
    )

    replies_by_parent: dict[str, list[dict]] = {}
    for c in comments:
        if c.parent_comment_id:
            replies_by_parent.setdefault(c.parent_comment_id, []).append(_serialize(c, people))

    threads = []
    for c in comments:
        if c.parent_comment_id is None:
            item = _serialize(c, people)
            item["replies"] = replies_by_parent.get(c.id, [])
            threads.append(item)
    return threads


# ── Mutations ─────────────────────────────────────────────────────────────────


def add_comment(
    request_id: str,
    content: str,
    actor_id: str,
    *,
    comment_type: str = "internal",
    parent_comment_id: str | None = None,
    approve_immediately: bool = False,
) -> dict:
    """
    Add a comment or reply to a request.

    With ``approve_immediately`` (or ``comment_type="approved"``) the
    comment is created already approved by the actor, and the fan-out sends
    ``approved_answer`` instead of ``comment``.

    Raises:
        ValidationError: empty content, bad type, reply to a reply or to a
            comment of another request.
        NotFoundError: request or parent comment does not exist.
        StoreError: the insert failed; nobody notified.
    """
    if not actor_id:
        raise ValidationError("An acting user is required", details={"actor_id": "required"})
    text = _clean_content(content)
    if comment_type not in COMMENT_TYPES:
        raise ValidationError(
            f"comment_type must be one of {sorted(COMMENT_TYPES)}",
            details={"comment_type": f"invalid value: {comment_type!r}"},
        )
    if not isinstance(approve_immediately, bool):
        raise ValidationError(
            "approve_immediately must be a boolean",
            details={"approve_immediately": "expected boolean"},
        )
    approved = approve_immediately or comment_type == "approved"

    req = _get_request_or_404(request_id)
    if parent_comment_id:
        parent = _get_comment_or_404(parent_comment_id)
        if parent.request_id != request_id:
            raise ValidationError(
                "Parent comment belongs to a different request",
                details={"parent_comment_id": "different request"},
            )
        if parent.parent_comment_id is not None:
            raise ValidationError(
                "Replies can only be added to top-level comments",
                details={"parent_comment_id": "nested reply"},
            )

    prior = prior_commenter_ids(request_id)

    now = datetime.now(timezone.utc)
    comment = DiligenceComment(
        request_id=request_id,
        user_id=actor_id,
        content=text,
        comment_type="internal",
        parent_comment_id=parent_comment_id or None,
        created_at=now,
        updated_at=now,
    )
    if approved:
        comment.approve(actor_id, now)
    req.last_activity_at = now

    db.session.add(comment)
    commit_or_raise("add_comment")
    logger.info(
        "Added comment id=%s request=%s approved=%s reply=%s",
        comment.id, request_id, approved, bool(parent_comment_id),
        extra={"diligence_request_id": request_id, "comment_id": comment.id,
               "actor_id": actor_id},
    )

    result = _serialize_one(comment)
    return fan_out_or_warn(
        result, NotificationService.notify_comment, req, comment,
        actor_id=actor_id, prior_commenters=prior, approved=approved,
    )


def approve_comment(comment_id: str, actor_id: str) -> dict:
    """
    Mark a comment as the approved answer.

    Approving an already-approved comment is a no-op: the original
    approver and timestamp are kept and nobody is notified again.
    """
    if not actor_id:
        raise ValidationError("An acting user is required", details={"actor_id": "required"})
    comment = _get_comment_or_404(comment_id)
    if comment.is_approved:
        return _serialize_one(comment)

    req = _get_request_or_404(comment.request_id)
    prior = prior_commenter_ids(comment.request_id)

    comment.approve(actor_id, datetime.now(timezone.utc))
    commit_or_raise("approve_comment")
    logger.info(
        "Approved comment id=%s request=%s", comment.id, comment.request_id,
        extra={"diligence_request_id": comment.request_id, "comment_id": comment.id,
               "actor_id": actor_id},
    )

    result = _serialize_one(comment)
    return fan_out_or_warn(
        result, NotificationService.notify_comment, req, comment,
        actor_id=actor_id, prior_commenters=prior, approved=True,
    )


def unapprove_comment(comment_id: str, actor_id: str) -> dict:
    comment = _get_comment_or_404(comment_id)
    comment.unapprove()
    commit_or_raise("unapprove_comment")
    logger.info(
        "Unapproved comment id=%s", comment.id,
        extra={"comment_id": comment.id, "actor_id": actor_id},
    )
    return _serialize_one(comment)


def update_comment(comment_id: str, content: str, actor_id: str) -> dict:
    """Replace a comment's text. Threading and approval state are untouched."""
    text = _clean_content(content)
    comment = _get_comment_or_404(comment_id)
    comment.content = text
    comment.updated_at = datetime.now(timezone.utc)
    commit_or_raise("update_comment")
    logger.info(
        "Updated comment id=%s", comment.id,
        extra={"comment_id": comment.id, "actor_id": actor_id},
    )
    return _serialize_one(comment)


def delete_comment(comment_id: str, actor_id: str) -> None:
    """Delete a comment; a top-level comment takes its replies with it."""
    comment = _get_comment_or_404(comment_id)
    request_id = comment.request_id
    db.session.delete(comment)
    commit_or_raise("delete_comment")
    logger.info(
        "Deleted comment id=%s request=%s", comment_id, request_id,
        extra={"diligence_request_id": request_id, "comment_id": comment_id,
               "actor_id": actor_id},
    )

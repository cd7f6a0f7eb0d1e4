"""
Deal Room Diligence
Notification Service — fan-out engine and in-app inbox.

Fan-out runs synchronously after a request or comment mutation has been
committed. It derives the recipient set for the event, builds one
DiligenceNotification per recipient and writes them as a single batch
(one commit). A failed batch is rolled back and raised as
PartialNotificationFailure; it is never retried here.

Recipient rules (the actor is always excluded):
    assignment       new_assignees − old_assignees
    status_change    every current assignee
    comment          primary assignee ∪ request creator ∪ prior commenters
    approved_answer  same set as comment
"""

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from dealroom.core.exceptions import NotFoundError, PartialNotificationFailure
from dealroom.models import db
from dealroom.models.diligence import DiligenceComment
from dealroom.models.notification import DiligenceNotification
from dealroom.services import identity_service

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    "open": "Open",
    "in_progress": "In Progress",
    "completed": "Completed",
    "blocked": "Blocked",
}


# ── Recipient computation (pure) ─────────────────────────────────────────────


def _ordered_unique(user_ids) -> list[str]:
    return [uid for uid in dict.fromkeys(user_ids) if uid]


def assignment_recipients(old_assignee_ids, new_assignee_ids, actor_id) -> list[str]:
    """new − old − {actor}, in the order the new set lists them."""
    old = set(old_assignee_ids or [])
    return [
        uid for uid in _ordered_unique(new_assignee_ids or [])
        if uid not in old and uid != actor_id
    ]


def legacy_assignee_recipients(old_assignee_ids, new_assignee_ids, actor_id) -> list[str]:
    """The new primary assignee, when it changed and is not the actor."""
    old_primary = (old_assignee_ids or [None])[0]
    new_primary = (new_assignee_ids or [None])[0]
    if new_primary and new_primary != old_primary and new_primary != actor_id:
        return [new_primary]
    return []


def status_change_recipients(assignee_ids, actor_id) -> list[str]:
    return [uid for uid in _ordered_unique(assignee_ids or []) if uid != actor_id]


def comment_recipients(primary_assignee_id, creator_id, prior_commenter_ids, actor_id) -> list[str]:
    """Primary assignee, creator and prior commenters, each notified once."""
    candidates = [primary_assignee_id, creator_id, *(prior_commenter_ids or [])]
    return [uid for uid in _ordered_unique(candidates) if uid != actor_id]


def prior_commenter_ids(request_id: str, exclude_comment_id: str | None = None) -> list[str]:
    """Distinct authors of comments on a request, in first-comment order."""
    stmt = (
        select(DiligenceComment.user_id, DiligenceComment.id)
        .where(DiligenceComment.request_id == request_id)
        .order_by(DiligenceComment.created_at)
    )
    rows = db.session.execute(stmt).all()
    return _ordered_unique(uid for uid, cid in rows if cid != exclude_comment_id)


def fan_out_or_warn(result: dict, notify, *args, **kwargs) -> dict:
    """
    Run a fan-out call after the primary mutation has committed.

    A failed batch is logged and attached to ``result`` as
    ``notification_warning``; the operation itself still succeeds.
    """
    try:
        notify(*args, **kwargs)
    except PartialNotificationFailure as exc:
        logger.error(
            "Notification fan-out failed event=%s target=%s recipients=%d",
            exc.event, result.get("id"), len(exc.recipients),
            exc_info=exc,
            extra={"event_type": exc.event},
        )
        result["notification_warning"] = exc.to_dict()
    return result


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Batch write ───────────────────────────────────────────────────────

    @staticmethod
    def _title(text: str) -> str:
        limit = current_app.config.get("NOTIFICATION_TITLE_MAX", 300)
        return text if len(text) <= limit else text[: limit - 1] + "…"

    @staticmethod
    def build(request, *, user_id, type, title, message):
        """Build (but do not persist) one notification about ``request``."""
        return DiligenceNotification(
            user_id=user_id,
            request_id=request.id,
            deal_id=request.deal_id,
            type=type,
            title=NotificationService._title(title),
            message=message,
        )

    @staticmethod
    def dispatch(event, notifications, request):
        """
        Write a batch of notifications with a single commit.

        Args:
            event: Fan-out event name, used for logging and failure reports.
            notifications: Unsaved DiligenceNotification instances, at most
                one per recipient per type.
            request: The DiligenceRequest the event concerns.

        Returns:
            The persisted notifications (empty list: nothing was written).

        Raises:
            PartialNotificationFailure: the batch insert failed and was rolled back.
        """
        if not notifications:
            return []

        recipients = [n.user_id for n in notifications]
        try:
            db.session.add_all(notifications)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PartialNotificationFailure(event, recipients, exc) from exc

        logger.info(
            "Notified %d recipient(s) event=%s request=%s",
            len(notifications), event, request.id,
            extra={"event_type": event, "diligence_request_id": request.id},
        )
        return notifications

    # ── Fan-out per event ─────────────────────────────────────────────────

    @staticmethod
    def notify_request_created(request, actor_id):
        """Every initial assignee except the creator gets an assignment notice."""
        recipients = assignment_recipients([], request.assignee_ids, actor_id)
        if not recipients:
            return []
        actor_name = identity_service.resolve_name(actor_id)
        batch = [
            NotificationService.build(
                request, user_id=uid, type="assignment",
                title="New diligence request assigned",
                message=f'{actor_name} assigned you to "{request.title}"',
            )
            for uid in recipients
        ]
        return NotificationService.dispatch("assignment", batch, request)

    @staticmethod
    def notify_request_updated(request, *, old_assignee_ids, old_status, actor_id,
                               legacy_update=False):
        """
        Fan out what one request update implies.

        Newly added assignees get ``assignment``; on a status change every
        current assignee gets ``status_change``. Both go out in one batch.
        A ``legacy_update`` (single-assignee caller) also notifies a new
        primary assignee who was already in the set.
        """
        added = assignment_recipients(old_assignee_ids, request.assignee_ids, actor_id)
        if legacy_update:
            added = _ordered_unique(
                added + legacy_assignee_recipients(old_assignee_ids, request.assignee_ids, actor_id)
            )
        status_targets = []
        if request.status != old_status:
            status_targets = status_change_recipients(request.assignee_ids, actor_id)
        if not added and not status_targets:
            return []

        actor_name = identity_service.resolve_name(actor_id)
        batch = [
            NotificationService.build(
                request, user_id=uid, type="assignment",
                title="New diligence request assigned",
                message=f'{actor_name} assigned you to "{request.title}"',
            )
            for uid in added
        ]
        old_label = STATUS_LABELS.get(old_status, old_status)
        new_label = STATUS_LABELS.get(request.status, request.status)
        batch.extend(
            NotificationService.build(
                request, user_id=uid, type="status_change",
                title=f"Request status changed to {new_label}",
                message=f'{actor_name} moved "{request.title}" from {old_label} to {new_label}',
            )
            for uid in status_targets
        )

        events = [name for name, hit in (("assignment", added), ("status_change", status_targets)) if hit]
        return NotificationService.dispatch("+".join(events), batch, request)

    @staticmethod
    def notify_comment(request, comment, *, actor_id, prior_commenters, approved=False):
        """Notify the primary assignee, the creator and prior commenters once each."""
        recipients = comment_recipients(
            request.assignee_id, request.created_by, prior_commenters, actor_id,
        )
        if not recipients:
            return []

        actor_name = identity_service.resolve_name(actor_id)
        if approved:
            event = "approved_answer"
            title = "Answer approved"
            message = f'{actor_name} approved an answer on "{request.title}"'
        else:
            event = "comment"
            title = "New comment on diligence request"
            noun = "a reply" if comment.parent_comment_id else "a comment"
            message = f'{actor_name} added {noun} on "{request.title}"'

        batch = [
            NotificationService.build(request, user_id=uid, type=event, title=title, message=message)
            for uid in recipients
        ]
        return NotificationService.dispatch(event, batch, request)

    # ── Inbox queries ─────────────────────────────────────────────────────

    @staticmethod
    def inbox_query(user_id, *, unread_only=False):
        """Query of a user's notifications, newest first."""
        q = DiligenceNotification.query.filter_by(user_id=user_id)
        if unread_only:
            q = q.filter_by(read=False)
        return q.order_by(DiligenceNotification.created_at.desc())

    @staticmethod
    def unread_count(user_id):
        return DiligenceNotification.query.filter_by(user_id=user_id, read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark one of the user's notifications as read."""
        notif = db.session.get(DiligenceNotification, notification_id)
        if notif is None or notif.user_id != user_id:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        if not notif.read:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        """Mark every unread notification for a user as read. Returns the count."""
        result = db.session.execute(
            update(DiligenceNotification)
            .where(DiligenceNotification.user_id == user_id,
                   DiligenceNotification.read.is_(False))
            .values(read=True, read_at=datetime.now(timezone.utc))
        )
        db.session.commit()
        return result.rowcount

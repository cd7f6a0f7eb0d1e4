"""
Request Lifecycle Service.

Business context:
    A diligence request is one item a buyer asks the seller to produce or
    answer for a deal (e.g. "3 years of tax returns"). Requests move through
    open → in_progress → completed, with blocked reachable from anywhere.
    Transitions are unconstrained: any status can be set, a completed
    request can be reopened. Side effects fire on *change* only.

    Every operation takes the acting user explicitly (``actor_id``); the
    actor is excluded from every notification it triggers.

Sequence per mutation:
    validate → read pre-state → write + commit → fan-out (separate commit).

    A failed fan-out batch never fails the operation: it is logged and
    returned as ``notification_warning`` next to the committed request.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from dealroom.core.exceptions import NotFoundError, ValidationError
from dealroom.models import db
from dealroom.models.diligence import (
    REQUEST_PRIORITIES,
    REQUEST_STAGES,
    REQUEST_STATUSES,
    DiligenceCategory,
    DiligenceRequest,
    DiligenceSubcategory,
)
from dealroom.services import activity_service
from dealroom.services.notification import NotificationService, fan_out_or_warn
from dealroom.utils.helpers import commit_or_raise, parse_date_input

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS: frozenset[str] = frozenset({
    "subcategory_id", "title", "description", "priority", "status",
    "assignee_ids", "assignee_id", "reviewer_ids", "due_date",
    "completion_date", "document_ids", "notes", "order_index",
    "risk_score", "stage",
})
IMMUTABLE_FIELDS: frozenset[str] = frozenset({"deal_id", "category_id"})
CREATE_FIELDS: frozenset[str] = UPDATABLE_FIELDS | IMMUTABLE_FIELDS


# ── Input normalisation ───────────────────────────────────────────────────────


def _id_list(value, field: str) -> list[str]:
    """Validate a list of ids; collapse duplicates keeping first appearance."""
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{field} must be a list", details={field: "expected a list"})
    for item in value:
        if not isinstance(item, str) or not item:
            raise ValidationError(
                f"{field} must contain non-empty string ids",
                details={field: "invalid id"},
            )
    return list(dict.fromkeys(value))


def _assignees_from(fields: dict, current: list[str]) -> list[str] | None:
    """
    Resolve the incoming assignee set against the ``current`` one.

    ``assignee_ids`` wins. A bare legacy ``assignee_id`` moves that user to
    the front of the current set; null drops only the current first member.
    None means "not supplied".
    """
    if "assignee_ids" in fields:
        return _id_list(fields["assignee_ids"], "assignee_ids")
    if "assignee_id" in fields:
        legacy = fields["assignee_id"]
        if legacy is not None and (not isinstance(legacy, str) or not legacy):
            raise ValidationError("assignee_id must be a string id",
                                  details={"assignee_id": "invalid id"})
        if legacy is None:
            return list(current[1:])
        return [legacy] + [uid for uid in current if uid != legacy]
    return None


def _check_choice(value, allowed, field: str, *, nullable=False):
    if value is None and nullable:
        return None
    if value not in allowed:
        raise ValidationError(
            f"{field} must be one of {sorted(allowed)}",
            details={field: f"invalid value: {value!r}"},
        )
    return value


def _check_title(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("title is required", details={"title": "required"})
    return value.strip()


def _check_subcategory(subcategory_id, category_id):
    if subcategory_id is None:
        return None
    sub = db.session.get(DiligenceSubcategory, subcategory_id)
    if sub is None or sub.category_id != category_id:
        raise ValidationError(
            "subcategory_id must belong to the request's category",
            details={"subcategory_id": "not in category"},
        )
    return subcategory_id


def _reject_unknown(fields: dict, allowed: frozenset[str]):
    unknown = sorted(set(fields) - allowed)
    if unknown:
        raise ValidationError(
            f"Unknown field(s): {', '.join(unknown)}",
            details={name: "unknown field" for name in unknown},
        )


def _apply_fields(req: DiligenceRequest, fields: dict) -> None:
    """Copy validated mutable fields onto ``req`` (deal/category untouched)."""
    if "title" in fields:
        req.title = _check_title(fields["title"])
    if "description" in fields:
        req.description = fields["description"]
    if "notes" in fields:
        req.notes = fields["notes"]
    if "priority" in fields:
        req.priority = _check_choice(fields["priority"], REQUEST_PRIORITIES, "priority")
    if "status" in fields:
        req.status = _check_choice(fields["status"], REQUEST_STATUSES, "status")
    if "stage" in fields:
        req.stage = _check_choice(fields["stage"], REQUEST_STAGES, "stage", nullable=True)
    if "subcategory_id" in fields:
        req.subcategory_id = _check_subcategory(fields["subcategory_id"], req.category_id)

    assignees = _assignees_from(fields, list(req.assignee_ids or []))
    if assignees is not None:
        req.assignee_ids = assignees
    if "reviewer_ids" in fields:
        req.reviewer_ids = _id_list(fields["reviewer_ids"], "reviewer_ids")
    if "document_ids" in fields:
        req.document_ids = _id_list(fields["document_ids"], "document_ids")

    if "due_date" in fields:
        req.due_date = parse_date_input(fields["due_date"], "due_date")
    if "completion_date" in fields:
        req.completion_date = parse_date_input(fields["completion_date"], "completion_date")

    if "order_index" in fields:
        value = fields["order_index"]
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError("order_index must be an integer",
                                  details={"order_index": "expected integer"})
        req.order_index = value
    if "risk_score" in fields:
        value = fields["risk_score"]
        if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
            raise ValidationError("risk_score must be a number",
                                  details={"risk_score": "expected number"})
        req.risk_score = value

    # completed without an explicit date is stamped with today
    if (
        req.status == "completed"
        and req.completion_date is None
        and "completion_date" not in fields
    ):
        req.completion_date = datetime.now(timezone.utc).date()


def _require_actor(actor_id):
    if not actor_id:
        raise ValidationError("An acting user is required", details={"actor_id": "required"})


def _get_or_404(request_id: str) -> DiligenceRequest:
    req = db.session.get(DiligenceRequest, request_id)
    if req is None:
        raise NotFoundError(resource="DiligenceRequest", resource_id=request_id)
    return req


# ── Queries ───────────────────────────────────────────────────────────────────


def get_request(request_id: str) -> dict:
    return _get_or_404(request_id).to_dict(include_taxonomy=True)


def list_requests(deal_id: str | None = None, viewer_id: str | None = None) -> list[dict]:
    """
    Requests ordered by order_index, each with its category and subcategory.

    When ``viewer_id`` is given every item also carries
    ``has_unread_updates`` for that viewer.
    """
    stmt = (
        select(DiligenceRequest)
        .options(
            selectinload(DiligenceRequest.category),
            selectinload(DiligenceRequest.subcategory),
        )
        .order_by(DiligenceRequest.order_index, DiligenceRequest.created_at)
    )
    if deal_id:
        stmt = stmt.where(DiligenceRequest.deal_id == deal_id)
    requests = db.session.execute(stmt).scalars().all()

    items = [r.to_dict(include_taxonomy=True) for r in requests]
    if viewer_id:
        views = activity_service.get_view_map(viewer_id, [r.id for r in requests])
        for req, item in zip(requests, items):
            item["has_unread_updates"] = activity_service.has_unread_updates(
                req, views.get(req.id),
            )
    return items


# ── Mutations ─────────────────────────────────────────────────────────────────


def create_request(fields: dict, actor_id: str) -> dict:
    """
    Create a request and notify its initial assignees.

    Args:
        fields: deal_id, category_id and title are required; any updatable
            field may also be given. Defaults: priority=medium,
            status=open, order_index=0.
        actor_id: The creating user; becomes ``created_by``.

    Returns:
        Request dict (with taxonomy), plus ``notification_warning`` when the
        assignment batch failed.

    Raises:
        ValidationError: missing/invalid field, unknown category.
        StoreError: the insert failed; nothing was written.
    """
    _require_actor(actor_id)
    fields = dict(fields or {})
    _reject_unknown(fields, CREATE_FIELDS)

    missing = [name for name in ("deal_id", "category_id", "title") if not fields.get(name)]
    if missing:
        raise ValidationError(
            f"Missing required field(s): {', '.join(missing)}",
            details={name: "required" for name in missing},
        )

    category_id = fields["category_id"]
    if db.session.get(DiligenceCategory, category_id) is None:
        raise ValidationError("category_id does not reference a category",
                              details={"category_id": "unknown category"})

    now = datetime.now(timezone.utc)
    req = DiligenceRequest(
        deal_id=fields["deal_id"],
        category_id=category_id,
        priority="medium",
        status="open",
        order_index=0,
        assignee_ids=[],
        reviewer_ids=[],
        document_ids=[],
        created_by=actor_id,
        created_at=now,
        updated_at=now,
        last_activity_at=now,
    )
    _apply_fields(req, {k: v for k, v in fields.items() if k not in IMMUTABLE_FIELDS})

    db.session.add(req)
    commit_or_raise("create_request")
    logger.info(
        "Created diligence request id=%s deal=%s assignees=%d",
        req.id, req.deal_id, len(req.assignee_ids),
        extra={"deal_id": req.deal_id, "diligence_request_id": req.id, "actor_id": actor_id},
    )

    result = req.to_dict(include_taxonomy=True)
    return fan_out_or_warn(result, NotificationService.notify_request_created, req, actor_id)


def update_request(request_id: str, fields: dict, actor_id: str) -> dict:
    """
    Apply a partial update and fan out assignment / status notifications.

    Concurrent updates are last-writer-wins; the pre-read used for diffing
    may be stale relative to another in-flight update.

    Raises:
        ValidationError: immutable or unknown field, invalid value.
        NotFoundError: no such request.
        StoreError: the update failed; nothing changed, nobody notified.
    """
    _require_actor(actor_id)
    fields = dict(fields or {})
    if not fields:
        raise ValidationError("No fields to update")

    immutable = sorted(set(fields) & IMMUTABLE_FIELDS)
    if immutable:
        raise ValidationError(
            f"Field(s) cannot be changed after creation: {', '.join(immutable)}",
            details={name: "immutable" for name in immutable},
        )
    _reject_unknown(fields, UPDATABLE_FIELDS)

    req = _get_or_404(request_id)
    old_assignee_ids = list(req.assignee_ids or [])
    old_status = req.status

    try:
        _apply_fields(req, fields)
    except ValidationError:
        db.session.rollback()
        raise
    now = datetime.now(timezone.utc)
    req.updated_by = actor_id
    req.updated_at = now
    req.last_activity_at = now

    commit_or_raise("update_request")
    logger.info(
        "Updated diligence request id=%s fields=%s",
        req.id, ",".join(sorted(fields)),
        extra={"deal_id": req.deal_id, "diligence_request_id": req.id, "actor_id": actor_id},
    )

    result = req.to_dict(include_taxonomy=True)
    return fan_out_or_warn(
        result, NotificationService.notify_request_updated, req,
        old_assignee_ids=old_assignee_ids, old_status=old_status, actor_id=actor_id,
        legacy_update=fields.get("assignee_id") is not None and "assignee_ids" not in fields,
    )


def delete_request(request_id: str, deal_id: str, actor_id: str) -> None:
    """Permanently delete a request of the given deal, with its comments and views."""
    _require_actor(actor_id)
    req = db.session.get(DiligenceRequest, request_id)
    if req is None or req.deal_id != deal_id:
        raise NotFoundError(resource="DiligenceRequest", resource_id=request_id)

    db.session.delete(req)
    commit_or_raise("delete_request")
    logger.info(
        "Deleted diligence request id=%s deal=%s", request_id, deal_id,
        extra={"deal_id": deal_id, "diligence_request_id": request_id, "actor_id": actor_id},
    )

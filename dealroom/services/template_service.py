"""
Template expansion: instantiate a template's request list under a deal.

Category names in template_data are matched exactly (case-sensitive)
against the taxonomy; entries with no matching category are skipped.
order_index runs from 0 across the whole template, not per category.
The instantiated requests are inserted in one commit: either all of them
are persisted or none are.

Applying the same template twice creates the requests twice.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from dealroom.core.exceptions import NotFoundError, ValidationError
from dealroom.models import db
from dealroom.models.diligence import (
    REQUEST_PRIORITIES,
    DiligenceCategory,
    DiligenceRequest,
    DiligenceTemplate,
)
from dealroom.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)


def _template_entries(template: DiligenceTemplate) -> list[dict]:
    data = template.template_data or {}
    categories = data.get("categories") if isinstance(data, dict) else None
    if categories is None:
        return []
    if not isinstance(categories, list):
        raise ValidationError(
            "template_data.categories must be a list",
            details={"template_data": "malformed"},
        )
    return categories


def apply_template(deal_id: str, template_id: str, actor_id: str) -> dict:
    """
    Expand a template into concrete requests for ``deal_id``.

    Returns:
        {"deal_id": ..., "template_id": ..., "requests_created": int}
        A count of zero (no category matched) is a valid result.

    Raises:
        ValidationError: missing deal/actor, or a malformed template entry.
        NotFoundError: the template does not exist.
        StoreError: the batch insert failed; zero requests were created.
    """
    if not deal_id:
        raise ValidationError("deal_id is required", details={"deal_id": "required"})
    if not actor_id:
        raise ValidationError("An acting user is required", details={"actor_id": "required"})

    template = db.session.get(DiligenceTemplate, template_id)
    if template is None:
        raise NotFoundError(resource="DiligenceTemplate", resource_id=template_id)

    category_ids = {
        name: cid for cid, name in db.session.execute(
            select(DiligenceCategory.id, DiligenceCategory.name)
        ).all()
    }

    now = datetime.now(timezone.utc)
    batch: list[DiligenceRequest] = []
    skipped: list[str] = []
    for entry in _template_entries(template):
        name = entry.get("name") if isinstance(entry, dict) else None
        category_id = category_ids.get(name) if isinstance(name, str) else None
        if category_id is None:
            skipped.append(str(name))
            continue

        items = entry.get("requests") or []
        if not isinstance(items, list):
            raise ValidationError(
                f"Template category '{name}' requests must be a list",
                details={"template_data": "malformed"},
            )
        for item in items:
            title = item.get("title") if isinstance(item, dict) else None
            title = title.strip() if isinstance(title, str) else ""
            if not title:
                raise ValidationError(
                    f"Template request under '{name}' has no title",
                    details={"template_data": "request without title"},
                )
            priority = item.get("priority") or "medium"
            if priority not in REQUEST_PRIORITIES:
                raise ValidationError(
                    f"Template request '{title}' has invalid priority {priority!r}",
                    details={"template_data": "invalid priority"},
                )
            batch.append(DiligenceRequest(
                deal_id=deal_id,
                category_id=category_id,
                title=title,
                description=item.get("description"),
                priority=priority,
                status="open",
                order_index=len(batch),
                assignee_ids=[],
                reviewer_ids=[],
                document_ids=[],
                created_by=actor_id,
                created_at=now,
                updated_at=now,
                last_activity_at=now,
            ))

    if skipped:
        logger.info("Template %s: no taxonomy match for categories %s", template_id, skipped)

    if batch:
        db.session.add_all(batch)
        commit_or_raise("apply_template")

    logger.info(
        "Applied template %s to deal %s: %d request(s) created",
        template_id, deal_id, len(batch),
        extra={"deal_id": deal_id, "actor_id": actor_id},
    )
    return {"deal_id": deal_id, "template_id": template_id, "requests_created": len(batch)}

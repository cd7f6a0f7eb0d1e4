"""Diligence tracking blueprint.

REST API over the request tracking engine.

Endpoint groups:
  Taxonomy            GET    /api/v1/diligence/categories
                      GET    /api/v1/diligence/subcategories
                      GET    /api/v1/diligence/templates
  Requests            GET    /api/v1/diligence/requests?deal_id=
                      POST   /api/v1/diligence/requests
                      PATCH  /api/v1/diligence/requests/<id>
                      DELETE /api/v1/diligence/requests/<id>?deal_id=
  Comments            GET    /api/v1/diligence/requests/<id>/comments
                      POST   /api/v1/diligence/requests/<id>/comments
                      POST   /api/v1/diligence/comments/<id>/approve
                      POST   /api/v1/diligence/comments/<id>/unapprove
                      PATCH  /api/v1/diligence/comments/<id>
                      DELETE /api/v1/diligence/comments/<id>
  Templates           POST   /api/v1/deals/<deal_id>/diligence/apply-template
  Progress            GET    /api/v1/deals/<deal_id>/diligence/progress
                      GET    /api/v1/diligence/progress
  Read tracking       GET    /api/v1/diligence/requests/<id>/activity
                      POST   /api/v1/diligence/requests/<id>/view
                      GET    /api/v1/diligence/request-counts?deal_id=

The acting user comes from the X-User header; mutations without one get 400.
Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from dealroom.blueprints import current_actor
from dealroom.core.exceptions import NotFoundError, StoreError, ValidationError
from dealroom.services import (
    activity_service,
    comment_service,
    progress_service,
    request_lifecycle,
    taxonomy_service,
    template_service,
)
from dealroom.utils.errors import E, api_error

logger = logging.getLogger(__name__)

diligence_bp = Blueprint("diligence", __name__, url_prefix="/api/v1")


def _actor_required() -> tuple[str | None, tuple | None]:
    actor = current_actor()
    if not actor:
        return None, api_error(E.VALIDATION_REQUIRED, "X-User header is required")
    return actor, None


# ── Error handlers ────────────────────────────────────────────────────────────


@diligence_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@diligence_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_RULE, str(error), details=error.details)


@diligence_bp.errorhandler(StoreError)
def _handle_store(error: StoreError):
    logger.error("Store failure in diligence_bp endpoint=%s op=%s",
                 request.endpoint, error.operation)
    return api_error(E.DATABASE, "Database error", details={"operation": error.operation})


# ═════════════════════════════════════════════════════════════════════════
# Taxonomy & templates
# ═════════════════════════════════════════════════════════════════════════


@diligence_bp.route("/diligence/categories", methods=["GET"])
def list_categories():
    return jsonify(taxonomy_service.list_categories())


@diligence_bp.route("/diligence/subcategories", methods=["GET"])
def list_subcategories():
    return jsonify(taxonomy_service.list_subcategories())


@diligence_bp.route("/diligence/templates", methods=["GET"])
def list_templates():
    return jsonify(taxonomy_service.list_templates())


# ═════════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════════


@diligence_bp.route("/diligence/requests", methods=["GET"])
def list_requests():
    """Requests (optionally for one deal) with has_unread_updates for the caller."""
    items = request_lifecycle.list_requests(
        deal_id=request.args.get("deal_id") or None,
        viewer_id=current_actor(),
    )
    return jsonify(items)


@diligence_bp.route("/diligence/requests", methods=["POST"])
def create_request():
    actor, err = _actor_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    return jsonify(request_lifecycle.create_request(data, actor)), 201


@diligence_bp.route("/diligence/requests/<request_id>", methods=["GET"])
def get_request(request_id):
    return jsonify(request_lifecycle.get_request(request_id))


@diligence_bp.route("/diligence/requests/<request_id>", methods=["PATCH"])
def update_request(request_id):
    actor, err = _actor_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    return jsonify(request_lifecycle.update_request(request_id, data, actor))


@diligence_bp.route("/diligence/requests/<request_id>", methods=["DELETE"])
def delete_request(request_id):
    actor, err = _actor_required()
    if err:
        return err
    deal_id = request.args.get("deal_id")
    if not deal_id:
        return api_error(E.VALIDATION_REQUIRED, "deal_id query parameter is required")
    request_lifecycle.delete_request(request_id, deal_id, actor)
    return jsonify({"deleted": True, "id": request_id})


# ═════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════


@diligence_bp.route("/diligence/requests/<request_id>/comments", methods=["GET"])
def list_comments(request_id):
    return jsonify(comment_service.list_comments(request_id))


@diligence_bp.route("/diligence/requests/<request_id>/comments", methods=["POST"])
def add_comment(request_id):
    """Body: {content, comment_type?, parent_comment_id?, approve_immediately?}"""
    actor, err = _actor_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    result = comment_service.add_comment(
        request_id,
        data.get("content"),
        actor,
        comment_type=data.get("comment_type", "internal"),
        parent_comment_id=data.get("parent_comment_id"),
        approve_immediately=data.get("approve_immediately", False),
    )
    return jsonify(result), 201


@diligence_bp.route("/diligence/comments/<comment_id>/approve", methods=["POST"])
def approve_comment(comment_id):
    actor, err = _actor_required()
    if err:
        return err
    return jsonify(comment_service.approve_comment(comment_id, actor))


@diligence_bp.route("/diligence/comments/<comment_id>/unapprove", methods=["POST"])
def unapprove_comment(comment_id):
    actor, err = _actor_required()
    if err:
        return err
    return jsonify(comment_service.unapprove_comment(comment_id, actor))


@diligence_bp.route("/diligence/comments/<comment_id>", methods=["PATCH"])
def update_comment(comment_id):
    actor, err = _actor_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    return jsonify(comment_service.update_comment(comment_id, data.get("content"), actor))


@diligence_bp.route("/diligence/comments/<comment_id>", methods=["DELETE"])
def delete_comment(comment_id):
    actor, err = _actor_required()
    if err:
        return err
    comment_service.delete_comment(comment_id, actor)
    return jsonify({"deleted": True, "id": comment_id})


# ═════════════════════════════════════════════════════════════════════════
# Templates & progress
# ═════════════════════════════════════════════════════════════════════════


@diligence_bp.route("/deals/<deal_id>/diligence/apply-template", methods=["POST"])
def apply_template(deal_id):
    actor, err = _actor_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    template_id = data.get("template_id")
    if not template_id:
        return api_error(E.VALIDATION_REQUIRED, "template_id is required")
    return jsonify(template_service.apply_template(deal_id, template_id, actor)), 201


@diligence_bp.route("/deals/<deal_id>/diligence/progress", methods=["GET"])
def deal_progress(deal_id):
    return jsonify(progress_service.deal_progress(deal_id))


@diligence_bp.route("/diligence/progress", methods=["GET"])
def all_deals_progress():
    return jsonify(progress_service.all_deals_progress())


# ═════════════════════════════════════════════════════════════════════════
# Read tracking & activity
# ═════════════════════════════════════════════════════════════════════════


@diligence_bp.route("/diligence/requests/<request_id>/activity", methods=["GET"])
def request_activity(request_id):
    return jsonify(activity_service.request_activity(request_id))


@diligence_bp.route("/diligence/requests/<request_id>/view", methods=["POST"])
def mark_viewed(request_id):
    actor, err = _actor_required()
    if err:
        return err
    return jsonify(activity_service.mark_request_viewed(request_id, actor))


@diligence_bp.route("/diligence/request-counts", methods=["GET"])
def request_counts():
    return jsonify(activity_service.request_counts(request.args.get("deal_id") or None))

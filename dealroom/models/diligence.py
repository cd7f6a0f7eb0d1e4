"""
Deal Room Diligence
Due-diligence tracking models.

DiligenceCategory, DiligenceSubcategory, DiligenceTemplate,
DiligenceRequest, DiligenceComment, RequestView.
"""

from dealroom.models import db
from dealroom.models.deal import _utcnow, _uuid


__all__ = [
    "REQUEST_PRIORITIES",
    "REQUEST_STATUSES",
    "REQUEST_STAGES",
    "COMMENT_TYPES",
    "DiligenceCategory",
    "DiligenceSubcategory",
    "DiligenceTemplate",
    "DiligenceRequest",
    "DiligenceComment",
    "RequestView",
]


# ── Constants ────────────────────────────────────────────────────────────────

REQUEST_PRIORITIES = {"high", "medium", "low"}
REQUEST_STATUSES = {"open", "in_progress", "completed", "blocked"}
REQUEST_STAGES = {"early", "due_diligence", "final_review", "closed"}
COMMENT_TYPES = {"internal", "approved"}


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# Taxonomy
# ═════════════════════════════════════════════════════════════════════════════

class DiligenceCategory(db.Model):
    """Top-level request classification. Reference data; order is display-only."""

    __tablename__ = "diligence_categories"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False, unique=True)
    icon = db.Column(db.String(50), nullable=False, default="folder")
    color = db.Column(db.String(20), nullable=False, default="#6B7280")
    order_index = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    subcategories = db.relationship(
        "DiligenceSubcategory", back_populates="category",
        order_by="DiligenceSubcategory.order_index",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color,
            "order_index": self.order_index,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<DiligenceCategory {self.name}>"


class DiligenceSubcategory(db.Model):
    __tablename__ = "diligence_subcategories"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    category_id = db.Column(
        db.String(36), db.ForeignKey("diligence_categories.id"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    order_index = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    category = db.relationship("DiligenceCategory", back_populates="subcategories")

    def to_dict(self):
        return {
            "id": self.id,
            "category_id": self.category_id,
            "name": self.name,
            "order_index": self.order_index,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<DiligenceSubcategory {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# Templates
# ═════════════════════════════════════════════════════════════════════════════

class DiligenceTemplate(db.Model):
    """
    Reusable request list, tagged by industry / deal type.

    template_data shape:
        {"categories": [{"name": str,
                         "requests": [{"title", "priority", "description"}]}]}
    """

    __tablename__ = "diligence_templates"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    industry = db.Column(db.String(100), nullable=True)
    deal_type = db.Column(db.String(100), nullable=True)
    template_data = db.Column(db.JSON, nullable=False, default=lambda: {"categories": []})
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    created_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "industry": self.industry,
            "deal_type": self.deal_type,
            "template_data": self.template_data,
            "is_default": self.is_default,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<DiligenceTemplate {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════════════

class DiligenceRequest(db.Model):
    """
    A single due-diligence item tracked against a deal.

    assignee_ids is the authoritative, ordered, duplicate-free assignee set.
    assignee_id is a read-only projection kept for single-assignee callers.
    deal_id and category_id never change after creation.
    """

    __tablename__ = "diligence_requests"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    deal_id = db.Column(db.String(36), nullable=False, index=True, comment="FK → deals (external)")
    category_id = db.Column(
        db.String(36), db.ForeignKey("diligence_categories.id"),
        nullable=False, index=True,
    )
    subcategory_id = db.Column(
        db.String(36), db.ForeignKey("diligence_subcategories.id"),
        nullable=True,
    )
    title = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, nullable=True)
    priority = db.Column(db.String(10), nullable=False, default="medium",
                         comment="high | medium | low")
    status = db.Column(db.String(20), nullable=False, default="open", index=True,
                       comment="open | in_progress | completed | blocked")
    assignee_ids = db.Column(db.JSON, nullable=False, default=list)
    reviewer_ids = db.Column(db.JSON, nullable=False, default=list)
    due_date = db.Column(db.Date, nullable=True)
    completion_date = db.Column(db.Date, nullable=True)
    document_ids = db.Column(db.JSON, nullable=False, default=list)
    notes = db.Column(db.Text, nullable=True)
    order_index = db.Column(db.Integer, nullable=False, default=0)
    risk_score = db.Column(db.Float, nullable=True)
    stage = db.Column(db.String(20), nullable=True,
                      comment="early | due_diligence | final_review | closed")

    created_by = db.Column(db.String(36), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow,
                           onupdate=_utcnow)
    updated_by = db.Column(db.String(36), nullable=True)
    last_activity_at = db.Column(db.DateTime(timezone=True), nullable=True)

    category = db.relationship("DiligenceCategory")
    subcategory = db.relationship("DiligenceSubcategory")
    comments = db.relationship(
        "DiligenceComment", back_populates="request",
        cascade="all, delete", passive_deletes=True,
    )

    @property
    def assignee_id(self):
        """Legacy single-assignee view: first member of assignee_ids."""
        ids = self.assignee_ids or []
        return ids[0] if ids else None

    def to_dict(self, include_taxonomy=False):
        d = {
            "id": self.id,
            "deal_id": self.deal_id,
            "category_id": self.category_id,
            "subcategory_id": self.subcategory_id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "status": self.status,
            "assignee_id": self.assignee_id,
            "assignee_ids": list(self.assignee_ids or []),
            "reviewer_ids": list(self.reviewer_ids or []),
            "due_date": _iso(self.due_date),
            "completion_date": _iso(self.completion_date),
            "document_ids": list(self.document_ids or []),
            "notes": self.notes,
            "order_index": self.order_index,
            "risk_score": self.risk_score,
            "stage": self.stage,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "updated_by": self.updated_by,
            "last_activity_at": _iso(self.last_activity_at),
        }
        if include_taxonomy:
            d["category"] = self.category.to_dict() if self.category else None
            d["subcategory"] = self.subcategory.to_dict() if self.subcategory else None
        return d

    def __repr__(self):
        return f"<DiligenceRequest {self.id[:8]}: {self.title[:40]}>"


# ═════════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════════

class DiligenceComment(db.Model):
    """
    Comment on a request. One level of nesting via parent_comment_id.

    comment_type == "approved" iff approved_by and approved_at are both set.
    """

    __tablename__ = "diligence_comments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    request_id = db.Column(
        db.String(36), db.ForeignKey("diligence_requests.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id = db.Column(db.String(36), nullable=False)
    content = db.Column(db.Text, nullable=False)
    comment_type = db.Column(db.String(20), nullable=False, default="internal",
                             comment="internal | approved")
    parent_comment_id = db.Column(
        db.String(36), db.ForeignKey("diligence_comments.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )
    approved_by = db.Column(db.String(36), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow,
                           onupdate=_utcnow)

    request = db.relationship("DiligenceRequest", back_populates="comments")
    replies = db.relationship(
        "DiligenceComment",
        cascade="all, delete",
        order_by="DiligenceComment.created_at",
    )

    @property
    def is_approved(self):
        return self.comment_type == "approved"

    def approve(self, approver_id, at):
        self.comment_type = "approved"
        self.approved_by = approver_id
        self.approved_at = at

    def unapprove(self):
        self.comment_type = "internal"
        self.approved_by = None
        self.approved_at = None

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "user_id": self.user_id,
            "content": self.content,
            "comment_type": self.comment_type,
            "parent_comment_id": self.parent_comment_id,
            "approved_by": self.approved_by,
            "approved_at": _iso(self.approved_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<DiligenceComment {self.id[:8]} on REQ:{self.request_id[:8]}>"


# ═════════════════════════════════════════════════════════════════════════════
# Read tracking
# ═════════════════════════════════════════════════════════════════════════════

class RequestView(db.Model):
    """Last time a user opened a request; drives the "unread updates" marker."""

    __tablename__ = "diligence_request_views"
    __table_args__ = (
        db.UniqueConstraint("request_id", "user_id", name="uq_request_view_user"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    request_id = db.Column(
        db.String(36), db.ForeignKey("diligence_requests.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id = db.Column(db.String(36), nullable=False, index=True)
    last_viewed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "request_id": self.request_id,
            "user_id": self.user_id,
            "last_viewed_at": _iso(self.last_viewed_at),
        }

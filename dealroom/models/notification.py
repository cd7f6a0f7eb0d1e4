"""
Deal Room Diligence
Notification domain model.

Models:
    - DiligenceNotification: in-app notification record with read tracking
"""

from datetime import datetime, timezone

from dealroom.models import db
from dealroom.models.deal import _utcnow, _uuid


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {"assignment", "status_change", "comment", "approved_answer"}


class DiligenceNotification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event. Written only by the fan-out engine;
    afterwards only the read state changes. request_id is deliberately not a
    foreign key so that notifications outlive a deleted request.
    """

    __tablename__ = "diligence_notifications"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), nullable=False, index=True, comment="Recipient")
    request_id = db.Column(db.String(36), nullable=True, index=True)
    deal_id = db.Column(db.String(36), nullable=True, index=True)
    type = db.Column(db.String(30), nullable=False,
                     comment="assignment | status_change | comment | approved_answer")
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, nullable=False, default="")

    # Read tracking
    read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def mark_read(self):
        self.read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "request_id": self.request_id,
            "deal_id": self.deal_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "read": self.read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<DiligenceNotification {self.id[:8]}: {self.title[:40]}>"

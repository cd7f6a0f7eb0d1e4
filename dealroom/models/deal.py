"""
Deal Room Diligence
Reference tables owned by neighbouring systems.

Models:
    - Deal: the M&A deal a diligence tracker hangs off (CRUD lives elsewhere)
    - Profile: user identity used for display-name enrichment
"""

import uuid
from datetime import datetime, timezone

from dealroom.models import db


DEAL_STATUSES = {"active", "archived", "draft"}


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class Deal(db.Model):
    """A deal under diligence. Only the columns the tracker reads are modelled."""

    __tablename__ = "deals"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(300), nullable=False)
    company_name = db.Column(db.String(300), nullable=False, default="")
    status = db.Column(db.String(20), nullable=False, default="active", index=True,
                       comment="active | archived | draft")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "company_name": self.company_name,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Deal {self.id[:8]}: {self.title[:40]}>"


class Profile(db.Model):
    """Display identity for a user id."""

    __tablename__ = "profiles"

    user_id = db.Column(db.String(36), primary_key=True)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    email = db.Column(db.String(255), nullable=False, default="")

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
        }

    def __repr__(self):
        return f"<Profile {self.user_id[:8]}>"

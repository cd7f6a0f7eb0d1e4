"""
Identity enrichment for comments, notifications and activity feeds.

Resolves user ids to a display identity ``{user_id, name, initials, email}``.
Lookups never abort the calling operation: a store failure degrades every
requested id to the placeholder label.
"""

import logging

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from dealroom.models import db
from dealroom.models.deal import Profile

logger = logging.getLogger(__name__)

DEFAULT_PLACEHOLDER = "Unknown User"


def _placeholder_label() -> str:
    return current_app.config.get("PLACEHOLDER_USER_LABEL", DEFAULT_PLACEHOLDER)


def display_name(profile: Profile | None) -> str:
    """First + last name, then either alone, then the email local part."""
    if profile is None:
        return _placeholder_label()

    first = (profile.first_name or "").strip()
    last = (profile.last_name or "").strip()
    if first and last:
        return f"{first} {last}"
    if first:
        return first
    if last:
        return last

    local_part = (profile.email or "").split("@")[0]
    return local_part or _placeholder_label()


def initials(profile: Profile | None) -> str:
    if profile is None:
        return "U"

    first = (profile.first_name or "").strip()
    last = (profile.last_name or "").strip()
    if first and last:
        return f"{first[0]}{last[0]}".upper()
    if first:
        return first[0].upper()
    if last:
        return last[0].upper()

    email = (profile.email or "").strip()
    return email[0].upper() if email else "U"


def identity_for(user_id: str | None, profile: Profile | None) -> dict:
    return {
        "user_id": user_id,
        "name": display_name(profile),
        "initials": initials(profile),
        "email": profile.email if profile else None,
    }


def resolve_profiles(user_ids) -> dict[str, dict]:
    """Bulk-resolve user ids to display identities (one query).

    Unknown ids and lookup failures map to the placeholder identity.

    Returns:
        {user_id: {"user_id", "name", "initials", "email"}}
    """
    ids = [uid for uid in dict.fromkeys(user_ids) if uid]
    if not ids:
        return {}

    profiles: dict[str, Profile] = {}
    try:
        rows = db.session.execute(
            select(Profile).where(Profile.user_id.in_(ids))
        ).scalars().all()
        profiles = {p.user_id: p for p in rows}
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning("Profile lookup failed for %d user(s); using placeholders",
                       len(ids), exc_info=True)

    return {uid: identity_for(uid, profiles.get(uid)) for uid in ids}


def resolve_name(user_id: str | None) -> str:
    """Display name for a single user id; placeholder when unknown."""
    if not user_id:
        return _placeholder_label()
    return resolve_profiles([user_id])[user_id]["name"]

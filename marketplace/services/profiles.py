import logging
from typing import Dict, Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.core.auth import Identity
from marketplace.core.errors import Conflict, NotFound, ValidationError
from marketplace.models.profile import Profile

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[Profile]:
        return self.db.query(Profile).filter(Profile.user_id == user_id).first()

    def require(self, user_id: str) -> Profile:
        profile = self.get(user_id)
        if profile is None:
            raise NotFound("PROFILE_NOT_FOUND", "Profile not found")
        return profile

    def by_user_ids(self, user_ids: Iterable[str]) -> Dict[str, Profile]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        rows = self.db.query(Profile).filter(Profile.user_id.in_(ids)).all()
        return {p.user_id: p for p in rows}

    def onboard(self, identity: Identity, name: Optional[str] = None, phone: Optional[str] = None) -> Profile:
        """Create the caller's profile; a second attempt is a Conflict."""
        if self.get(identity.user_id) is not None:
            raise Conflict("PROFILE_EXISTS", "Your profile already exists")
        display_name = (name or identity.display_name or "").strip()
        if not display_name:
            raise ValidationError("NAME_REQUIRED", "Please tell us your name")
        profile = Profile(
            user_id=identity.user_id,
            name=display_name,
            email=identity.email,
            avatar_url=identity.avatar_url,
            phone=(phone or identity.phone or None),
        )
        self.db.add(profile)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("PROFILE_EXISTS", "Your profile already exists")
        self.db.refresh(profile)
        logger.info("profile created user=%s", identity.user_id)
        return profile

    def update_phone(self, user_id: str, phone: Optional[str]) -> Profile:
        # everything except the phone number is fixed after onboarding
        profile = self.require(user_id)
        profile.phone = (phone or "").strip() or None
        self.db.commit()
        self.db.refresh(profile)
        return profile

"""
User profiles and account settings.

The `user_profiles` relation holds the public profile; notification and
privacy preferences live in the signed-in user's auth metadata.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Dict, Optional

from .base import BaseEntity, BaseCollectionProxy, Field
from ..exceptions import APIError, AuthenticationError, NotFoundError

logger = logging.getLogger(__name__)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class Profile(BaseEntity):
    """Public profile of a user; `id` equals the user's auth id."""

    TABLE = "user_profiles"

    id: str = Field("id", read_only=True)
    username: str = Field("username", default="")
    email: Optional[str] = Field("email", read_only=True)
    bio: Optional[str] = Field("bio")
    avatar_url: Optional[str] = Field("avatar_url")
    created_at: Optional[str] = Field("created_at", read_only=True)
    updated_at: Optional[str] = Field("updated_at", read_only=True)


@dataclass
class NotificationSettings:
    email_notifications: bool = True
    comment_notifications: bool = True
    like_notifications: bool = True
    new_article_notifications: bool = False

    METADATA_KEY = "notificationSettings"

    def to_metadata(self) -> Dict[str, bool]:
        return {_camel(k): v for k, v in asdict(self).items()}

    @classmethod
    def from_metadata(cls, metadata: Dict[str, Any]) -> "NotificationSettings":
        stored = metadata.get(cls.METADATA_KEY) or {}
        defaults = cls()
        return cls(**{
            k: bool(stored.get(_camel(k), v)) for k, v in asdict(defaults).items()
        })


@dataclass
class PrivacySettings:
    allow_comments: bool = True
    allow_likes: bool = True

    METADATA_KEY = "privacySettings"

    def to_metadata(self) -> Dict[str, bool]:
        return {_camel(k): v for k, v in asdict(self).items()}

    @classmethod
    def from_metadata(cls, metadata: Dict[str, Any]) -> "PrivacySettings":
        stored = metadata.get(cls.METADATA_KEY) or {}
        defaults = cls()
        return cls(**{
            k: bool(stored.get(_camel(k), v)) for k, v in asdict(defaults).items()
        })


class ProfilesProxy(BaseCollectionProxy):
    ENTITY_CLS = Profile
    TABLE = "user_profiles"

    def _require_identity(self, action: str):
        identity = self.client.current_identity()
        if identity is None:
            raise AuthenticationError(status_code=401, detail=f"Sign in to {action}.")
        return identity

    def get(self, user_id: Optional[str] = None) -> Profile:
        """
        Profile of `user_id`, or of the signed-in user when omitted.

        When the signed-in user has no profile row yet, one is synthesized
        from their auth metadata (not persisted).

        Raises:
            NotFoundError: If no profile exists for someone else's id
            AuthenticationError: If no id is given and nobody is signed in
        """
        identity = self.client.current_identity()
        target = user_id or (identity.id if identity else None)
        if not target:
            raise AuthenticationError(status_code=401, detail="Sign in to view your profile.")

        row = self.client.maybe_one(self.TABLE, filters={"id": target})
        if row is not None:
            return Profile(client=self.client, data=row, sync=False)

        if identity is not None and identity.id == target:
            return Profile(
                client=self.client,
                data={
                    "id": identity.id,
                    "username": identity.display_name,
                    "email": identity.email,
                    "avatar_url": identity.avatar_url or None,
                    "bio": identity.metadata.get("bio"),
                    "created_at": identity.created_at,
                },
                sync=False,
            )

        raise NotFoundError(status_code=404, detail=f"No profile for user {target}.", code="PGRST116")

    def update(
        self,
        *,
        username: Optional[str] = None,
        bio: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> Profile:
        """
        Upsert the signed-in user's profile with only the given fields.

        The same fields are mirrored into the auth metadata; a failure
        there is logged and does not undo the profile update.

        Raises:
            AuthenticationError: If nobody is signed in
            AuthorizationError: If the row-level policy refuses the write
        """
        identity = self._require_identity("update your profile")

        changes = {
            k: v
            for k, v in (("username", username), ("bio", bio), ("avatar_url", avatar_url))
            if v is not None
        }
        row = {
            "id": identity.id,
            "updated_at": datetime.now(timezone.utc).isoformat(),
            **changes,
        }
        saved = self.client.upsert(self.TABLE, row, on_conflict="id")

        if changes:
            try:
                self.client.update_user_metadata(**changes)
            except APIError as exc:
                logger.warning("Profile saved but auth metadata update failed: %s", exc)

        logger.info("Updated profile of %s (%s)", identity.id, ", ".join(sorted(changes)) or "no fields")
        return Profile(client=self.client, data=saved, sync=False)

    # ------------------------------------------------------------------ #
    # Settings kept in auth metadata
    # ------------------------------------------------------------------ #

    def notification_settings(self) -> NotificationSettings:
        identity = self._require_identity("read your settings")
        return NotificationSettings.from_metadata(identity.metadata)

    def update_notification_settings(self, settings: NotificationSettings) -> NotificationSettings:
        self._require_identity("change your settings")
        identity = self.client.update_user_metadata(
            **{NotificationSettings.METADATA_KEY: settings.to_metadata()}
        )
        return NotificationSettings.from_metadata(identity.metadata)

    def privacy_settings(self) -> PrivacySettings:
        identity = self._require_identity("read your settings")
        return PrivacySettings.from_metadata(identity.metadata)

    def update_privacy_settings(self, settings: PrivacySettings) -> PrivacySettings:
        self._require_identity("change your settings")
        identity = self.client.update_user_metadata(
            **{PrivacySettings.METADATA_KEY: settings.to_metadata()}
        )
        return PrivacySettings.from_metadata(identity.metadata)

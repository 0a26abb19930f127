"""
Profile management: read, update, avatar replacement, listing and deletion.
"""
from __future__ import annotations

import logging
from typing import BinaryIO, List, Tuple

from models.avatar import Avatar
from models.user import User
from services.avatars import AvatarStorage
from services.errors import AccountError
from services.stores import AvatarStore, UserStore

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "phone")


class ProfileService:
    def __init__(self, users: UserStore, avatars: AvatarStore, avatar_storage: AvatarStorage, dispatcher):
        self.users = users
        self.avatars = avatars
        self.avatar_storage = avatar_storage
        self.dispatcher = dispatcher

    def get(self, user_id: str) -> User:
        return self.users.get_by_id(user_id)

    def list(self, limit: int, offset: int) -> Tuple[List[User], int]:
        return self.users.list(limit, offset), self.users.count()

    def update(self, user_id: str, changes: dict) -> User:
        user = self.users.get_by_id(user_id)
        for field in UPDATABLE_FIELDS:
            if field in changes:
                setattr(user, field, changes[field])
        return self.users.update(user)

    def update_avatar(self, user_id: str, stream: BinaryIO, content_type: str) -> User:
        """
        Store the new image, point the user at it, then remove the replaced
        file in the background.
        """
        user = self.users.get_by_id(user_id)
        stored = self.avatar_storage.save(user_id, stream, content_type)

        avatar = self.avatars.get_by_user_id(user_id)
        old_key = avatar.storage_key if avatar else None
        if avatar is None:
            avatar = Avatar(user_id=user_id, storage_key=stored.key, url=stored.url)
        else:
            avatar.storage_key = stored.key
            avatar.url = stored.url
        user.avatar_url = stored.url

        try:
            self.avatars.save(avatar)
            self.users.update(user)
        except AccountError:
            self._discard(stored.key)
            raise

        if old_key and old_key != stored.key:
            self._discard(old_key)
        return user

    def delete(self, user_id: str) -> None:
        self.users.get_by_id(user_id)
        avatar = self.avatars.get_by_user_id(user_id)
        key = avatar.storage_key if avatar else None
        self.users.delete(user_id)
        logger.info("Deleted user %s", user_id)
        if key:
            self._discard(key)

    def _discard(self, key: str) -> None:
        self.dispatcher.submit(self.avatar_storage.delete, key, description=f"avatar cleanup {key}")

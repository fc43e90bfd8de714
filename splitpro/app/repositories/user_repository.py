"""
repositories/user_repository.py — Read access to users.

Users are owned by the identity service; nothing here writes them.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from splitpro.app.models.user import User


class UserRepository:

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_id(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def find_all_by_id(self, user_ids: Iterable[int]) -> dict[int, User]:
        """Returns {user_id: User} for the ids that exist; unknown ids are absent."""
        ids = set(user_ids)
        if not ids:
            return {}
        stmt = select(User).where(User.id.in_(ids))
        return {user.id: user for user in self.session.execute(stmt).scalars().all()}

    def exists_by_id(self, user_id: int) -> bool:
        stmt = select(User.id).where(User.id == user_id)
        return self.session.execute(stmt).scalar_one_or_none() is not None

"""
repositories/group_repository.py — Read access to groups.

Membership management lives outside this service; Group.is_member() is the
only question the expense core asks.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from splitpro.app.models.group import Group


class GroupRepository:

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_id(self, group_id: int) -> Group | None:
        """Returns the group if it exists and is active."""
        group = self.session.get(Group, group_id)
        if group is None or not group.active:
            return None
        return group

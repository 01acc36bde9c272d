from typing import List

from sqlalchemy.orm import Session

from inventory.db.models import Role, User


class UserDirectory:
    """Resolves notification audiences to user ids."""

    def __init__(self, db: Session):
        self.db = db

    def get_user_ids_by_role(self, role_name: str) -> List[int]:
        rows = self.db.query(User.id).join(Role, User.role_id == Role.id).filter(
            Role.name == role_name,
            User.is_active == True,  # noqa: E712
        ).order_by(User.id).all()
        return [row.id for row in rows]

    def get_all_user_ids(self) -> List[int]:
        rows = self.db.query(User.id).filter(User.is_active == True).order_by(User.id).all()  # noqa: E712
        return [row.id for row in rows]

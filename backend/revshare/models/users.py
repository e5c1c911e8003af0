from sqlalchemy import Column, Index, Integer, String, UniqueConstraint

from revshare.core.db import Base
from revshare.models.enums import UserRoleEnum
from revshare.models.mixins import TimestampMixin


class User(TimestampMixin, Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        Index("ix_users_role", "role"),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, nullable=False)
    name = Column(String, nullable=True)
    role = Column(String, nullable=False, default=UserRoleEnum.MARKETER.value)
    # Stripe Connect account (acct_...) transfers are paid into.
    connected_account_id = Column(String, nullable=True)

    @property
    def display_name(self) -> str:
        return self.name or self.email

from sqlalchemy.orm import Session

from revshare.models.enums import UserRoleEnum
from revshare.models.users import User


def create_user(
    db: Session,
    *,
    email: str,
    role: str = UserRoleEnum.MARKETER.value,
    name: str | None = None,
    connected_account_id: str | None = None,
) -> User:
    user = User(
        email=email.strip().lower(),
        role=UserRoleEnum(role).value,
        name=name,
        connected_account_id=connected_account_id,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def get_user(db: Session, user_id: int) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def set_connected_account(db: Session, *, user: User, account_id: str | None) -> User:
    user.connected_account_id = account_id or None
    db.commit()
    db.refresh(user)
    return user

from sqlalchemy.orm import Session

from boarding.models.users import User, UserGroup, UserGroupMembership


def get_user(db: Session, user_id: int) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_username(db: Session, username: str) -> User | None:
    return db.query(User).filter(User.username == username).first()


def create_user(
    db: Session,
    username: str,
    *,
    first_name: str | None = None,
    last_name: str | None = None,
    email: str | None = None,
    can_manage_tours: bool = False,
) -> User:
    if get_user_by_username(db, username):
        raise ValueError("Username already exists.")
    user = User(
        username=username,
        first_name=first_name,
        last_name=last_name,
        email=email,
        can_manage_tours=can_manage_tours,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_user_group(db: Session, handle: str, name: str | None = None, *, group_id: int | None = None) -> UserGroup:
    group = UserGroup(handle=handle, name=name or handle)
    if group_id is not None:
        group.id = group_id
    db.add(group)
    db.commit()
    db.refresh(group)
    return group


def add_user_to_group(db: Session, user_id: int, group_id: int) -> UserGroupMembership:
    existing = (
        db.query(UserGroupMembership)
        .filter(UserGroupMembership.user_id == user_id, UserGroupMembership.group_id == group_id)
        .first()
    )
    if existing:
        return existing
    membership = UserGroupMembership(user_id=user_id, group_id=group_id)
    db.add(membership)
    db.commit()
    db.refresh(membership)
    return membership


def get_user_group_ids(db: Session, user_id: int) -> list[int]:
    rows = (
        db.query(UserGroupMembership.group_id)
        .filter(UserGroupMembership.user_id == user_id)
        .order_by(UserGroupMembership.group_id.asc())
        .all()
    )
    return [row[0] for row in rows]

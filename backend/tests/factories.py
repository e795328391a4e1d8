from uuid import uuid4

import sqlalchemy as sa

from boarding.crud.sites import create_site, get_primary_site, list_site_ids
from boarding.crud.users import add_user_to_group, create_user, create_user_group
from boarding.services.mutation import TourMutationService
from boarding.sites.context import SiteContext, build_site_context


def make_site(db, *, handle: str | None = None, name: str | None = None, primary: bool = False):
    handle = handle or f"site_{uuid4().hex[:6]}"
    return create_site(db, handle, name or handle.title(), primary=primary)


def make_sites(db, count: int = 2):
    """A primary site followed by ``count - 1`` secondary sites."""
    sites = [make_site(db, handle="default", name="Default", primary=True)]
    for index in range(1, count):
        sites.append(make_site(db, handle=f"site{index + 1}", name=f"Site {index + 1}"))
    return sites


def site_context(db, site, request_id: str | None = None) -> SiteContext:
    return build_site_context(site, get_primary_site(db), list_site_ids(db), request_id)


def make_user(
    db,
    *,
    username: str | None = None,
    group_ids=(),
    first_name=None,
    last_name=None,
    can_manage_tours: bool = False,
):
    username = username or f"user_{uuid4().hex[:8]}"
    user = create_user(
        db, username, first_name=first_name, last_name=last_name, can_manage_tours=can_manage_tours
    )
    for group_id in group_ids:
        add_user_to_group(db, user.id, group_id)
    return user


def make_group(db, group_id: int, *, handle: str | None = None):
    return create_user_group(db, handle or f"group_{group_id}", group_id=group_id)


def step(title: str = "Hi", text: str = "Welcome!", **extra) -> dict:
    return {"title": title, "text": text, **extra}


def tour_payload(name: str = "Welcome", steps=None, **overrides) -> dict:
    payload = {
        "name": name,
        "description": "",
        "enabled": True,
        "translatable": False,
        "steps": steps if steps is not None else [step()],
    }
    payload.update(overrides)
    return payload


def make_tour(db, site: SiteContext, **overrides) -> int:
    return TourMutationService(db, site).save_tour(tour_payload(**overrides))


def create_legacy_schema(engine) -> None:
    """Tables as an install that predates autoplay, propagation_method and translations."""
    metadata = sa.MetaData()
    sa.Table(
        "sites",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("handle", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("language", sa.String(12), nullable=False),
        sa.Column("primary", sa.Boolean, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )
    sa.Table(
        "users",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(255)),
        sa.Column("last_name", sa.String(255)),
        sa.Column("email", sa.String(255)),
        sa.Column("can_manage_tours", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )
    sa.Table(
        "tours",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("site_id", sa.Integer),
        sa.Column("tour_id", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("data", sa.Text),
        sa.Column("enabled", sa.Boolean, nullable=False),
        sa.Column("translatable", sa.Boolean, nullable=False),
        sa.Column("progress_position", sa.String(16)),
        sa.Column("uid", sa.String(36), nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )
    sa.Table(
        "tour_completions",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("tour_id", sa.Integer, nullable=False),
        sa.Column("user_id", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )
    sa.Table(
        "tours_usergroups",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("tour_id", sa.Integer, nullable=False),
        sa.Column("user_group_id", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )
    metadata.create_all(bind=engine)


class QueryCounter:
    """Counts statements sent to the database while attached."""

    def __init__(self, engine):
        self.engine = engine
        self.statements: list[str] = []

    def _record(self, conn, cursor, statement, parameters, context, executemany):
        self.statements.append(statement)

    def __enter__(self):
        sa.event.listen(self.engine, "before_cursor_execute", self._record)
        return self

    def __exit__(self, *exc):
        sa.event.remove(self.engine, "before_cursor_execute", self._record)
        return False

    @property
    def count(self) -> int:
        return len(self.statements)


def make_engine(db_path):
    return sa.create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
        future=True,
    )

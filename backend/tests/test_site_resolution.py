import pytest

from boarding.core.config import settings
from boarding.sites.context import SiteContext
from boarding.sites.dependencies import resolve_site
from boarding.sites.errors import SiteNotFound, SiteNotSelected
from boarding.sites.middleware import clean_site_ref
from tests.factories import make_sites


def test_resolve_by_handle_id_and_fallback(db):
    primary, secondary = make_sites(db, 2)

    assert resolve_site(db, "site2").site_id == secondary.id
    assert resolve_site(db, str(secondary.id)).handle == "site2"

    ctx = resolve_site(db, None, "req-1")
    assert ctx.site_id == primary.id
    assert ctx.is_primary
    assert ctx.is_multi_site
    assert ctx.site_ids == [primary.id, secondary.id]
    assert ctx.request_id == "req-1"


def test_default_site_handle_setting(db, monkeypatch):
    _, secondary = make_sites(db, 2)
    monkeypatch.setattr(settings, "DEFAULT_SITE_HANDLE", "site2")
    assert resolve_site(db, None).site_id == secondary.id


def test_resolution_failures(db, monkeypatch):
    with pytest.raises(SiteNotSelected):
        resolve_site(db, "default")

    make_sites(db, 1)
    with pytest.raises(SiteNotFound):
        resolve_site(db, "missing")

    monkeypatch.setattr(settings, "REQUIRE_SITE_PARAM", True)
    with pytest.raises(SiteNotSelected):
        resolve_site(db, None)


@pytest.mark.parametrize(
    "raw, expected",
    [(None, None), ("  ", None), (" de ", "de"), ("de?ref=nav", "de"), (3, "3")],
)
def test_clean_site_ref(raw, expected):
    assert clean_site_ref(raw) == expected


def test_home_site_for():
    ctx = SiteContext(site_id=2, handle="de", name="DE", primary_site_id=1, site_ids=[1, 2])
    assert ctx.home_site_for({"site_id": 2}) == 2
    assert ctx.home_site_for({"site_id": None}) == 1
    assert ctx.home_site_for(None) == 1
    assert ctx.is_home_for({"site_id": 2})
    assert ctx.export_payload() == {"id": 2, "handle": "de", "name": "DE"}

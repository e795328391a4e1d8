import json
from datetime import datetime

import pytest

from boarding.crud.tours import TourRepository
from boarding.models.tours import TourCompletion, TourTranslation, TourUserGroup
from tests.factories import make_group, make_sites, make_user


def _tour(repo, name="Welcome", **extra):
    record = {"name": name, "data": {"steps": [{"title": "Hi", "text": "Welcome!"}]}, **extra}
    return repo.save(record)


def test_save_creates_tour_with_generated_keys(db):
    repo = TourRepository(db)
    tour_pk = _tour(repo)

    row = repo.find_by_id(tour_pk)
    assert row["name"] == "Welcome"
    assert row["tour_id"].startswith("tour_")
    assert row["uid"]
    assert row["enabled"] is True
    assert row["translatable"] is False
    assert json.loads(row["data"])["steps"][0]["title"] == "Hi"
    assert repo.find_by_natural_key(row["tour_id"])["id"] == tour_pk


def test_save_updates_in_place(db):
    repo = TourRepository(db)
    tour_pk = _tour(repo, tour_id="tour_fixed")

    assert repo.save({"id": tour_pk, "name": "Renamed", "enabled": False}) == tour_pk

    row = repo.find_by_id(tour_pk)
    assert row["name"] == "Renamed"
    assert row["enabled"] is False
    assert row["tour_id"] == "tour_fixed"
    assert repo.count_tours() == 1


def test_update_of_missing_tour_returns_none(db):
    assert TourRepository(db).save({"id": 999, "name": "Ghost"}) is None


def test_duplicate_natural_key_fails_soft(db, caplog):
    repo = TourRepository(db)
    _tour(repo, tour_id="tour_same")

    assert _tour(repo, tour_id="tour_same") is None
    assert any(r.getMessage() == "repository.save_failed" for r in caplog.records)
    assert repo.count_tours() == 1


def test_find_all_orders_newest_first_and_filters_enabled(db):
    repo = TourRepository(db)
    first = _tour(repo, name="First")
    second = _tour(repo, name="Second", enabled=False)

    assert [t["id"] for t in repo.find_all()] == [second, first]
    assert [t["id"] for t in repo.find_all(enabled_only=True)] == [first]


def test_find_all_can_omit_translatable(db):
    repo = TourRepository(db)
    _tour(repo)
    assert "translatable" not in repo.find_all(include_translatable=False)[0]


@pytest.mark.parametrize(
    "tour_groups, user_groups, visible",
    [
        ([], [], True),
        ([], [7], True),
        ([5], [5], True),
        ([5], [7], False),
        ([5, 6], [6, 9], True),
        ([5], [], False),
    ],
)
def test_visibility_law(db, tour_groups, user_groups, visible):
    repo = TourRepository(db)
    tour_pk = _tour(repo)
    repo.replace_user_groups({tour_pk: set(tour_groups)})

    found = [t["id"] for t in repo.find_for_user(1, user_groups)]
    assert (tour_pk in found) is visible


def test_find_for_user_flags_completion(db):
    repo = TourRepository(db)
    user = make_user(db)
    other = make_user(db)
    tour_pk = _tour(repo)
    repo.mark_completed(tour_pk, user.id)

    assert repo.find_for_user(user.id, [])[0]["completed"] is True
    assert repo.find_for_user(other.id, [])[0]["completed"] is False


def test_find_for_user_applies_site_enablement(db):
    home, second = make_sites(db, 2)
    repo = TourRepository(db)
    on_home = _tour(repo, name="Home only", site_id=home.id)
    disabled_home = _tour(repo, name="Disabled", site_id=home.id, enabled=False)
    repo.set_enabled_for_site(on_home, second.id, False, home.id)
    repo.set_enabled_for_site(disabled_home, second.id, True, home.id)

    home_ids = [t["id"] for t in repo.find_for_user(1, [], site_id=home.id, primary_site_id=home.id)]
    second_ids = [t["id"] for t in repo.find_for_user(1, [], site_id=second.id, primary_site_id=home.id)]

    assert home_ids == [on_home]
    assert second_ids == [disabled_home]


def test_rows_without_site_belong_to_primary(db):
    home, second = make_sites(db, 2)
    repo = TourRepository(db)
    tour_pk = _tour(repo, enabled=False)

    assert repo.find_for_user(1, [], site_id=home.id, primary_site_id=home.id) == []
    repo.set_enabled_for_site(tour_pk, second.id, True, home.id)
    assert [t["id"] for t in repo.find_for_user(1, [], site_id=second.id, primary_site_id=home.id)] == [tour_pk]


def test_enabled_resolution_per_site(db):
    home, second, third = make_sites(db, 3)
    repo = TourRepository(db)
    tour_pk = _tour(repo, site_id=home.id)

    repo.set_enabled_for_site(tour_pk, second.id, False, home.id)

    assert repo.is_enabled_for_site(tour_pk, home.id, home.id) is True
    assert repo.is_enabled_for_site(tour_pk, second.id, home.id) is False
    # No translation row: inherits canonical.
    assert repo.is_enabled_for_site(tour_pk, third.id, home.id) is True

    repo.set_enabled_for_site(tour_pk, home.id, False, home.id)
    assert repo.is_enabled_for_site(tour_pk, third.id, home.id) is False


def test_set_enabled_seeds_translation_from_canonical(db):
    home, second = make_sites(db, 2)
    repo = TourRepository(db)
    tour_pk = _tour(repo, site_id=home.id, description="Intro")

    repo.set_enabled_for_site(tour_pk, second.id, False, home.id)

    translation = repo.get_translation(tour_pk, second.id)
    assert translation["name"] == "Welcome"
    assert translation["description"] == "Intro"
    assert translation["enabled"] is False
    assert repo.get_translation(tour_pk, home.id) is None


def test_save_translation_upserts(db):
    home, second = make_sites(db, 2)
    repo = TourRepository(db)
    tour_pk = _tour(repo, site_id=home.id)

    assert repo.save_translation(tour_pk, second.id, {"name": "Bienvenue", "data": {"steps": []}})
    assert repo.save_translation(tour_pk, second.id, {"enabled": False})

    translations = repo.get_translations(tour_pk)
    assert list(translations) == [second.id]
    assert translations[second.id]["name"] == "Bienvenue"
    assert translations[second.id]["enabled"] is False
    assert json.loads(translations[second.id]["data"]) == {"steps": []}


def test_mark_completed_is_idempotent(db):
    repo = TourRepository(db)
    user = make_user(db, first_name="Ada", last_name="Lovelace")
    tour_pk = _tour(repo)

    assert repo.mark_completed(tour_pk, user.id)
    assert repo.mark_completed(tour_pk, user.id)

    assert db.query(TourCompletion).filter(TourCompletion.tour_id == tour_pk).count() == 1
    assert repo.has_completed(tour_pk, user.id)
    completions = repo.get_completions(tour_pk)
    assert completions[0]["username"] == user.username
    assert completions[0]["first_name"] == "Ada"
    assert isinstance(completions[0]["completed_at"], datetime)


def test_replace_user_groups_replaces_all_rows(db):
    repo = TourRepository(db)
    make_group(db, 5)
    make_group(db, 6)
    tour_pk = _tour(repo)

    assert repo.replace_user_groups({tour_pk: {5, 6}})
    assert repo.get_user_groups(tour_pk) == [5, 6]
    assert repo.replace_user_groups({tour_pk: set()})
    assert repo.get_user_groups(tour_pk) == []


def test_delete_cascades_dependent_rows(db):
    home, second = make_sites(db, 2)
    repo = TourRepository(db)
    user = make_user(db)
    tour_pk = _tour(repo, site_id=home.id)
    keep = _tour(repo, name="Keep", site_id=home.id)
    for pk in (tour_pk, keep):
        repo.mark_completed(pk, user.id)
        repo.replace_user_groups({pk: {5}})
        repo.save_translation(pk, second.id, {"name": "T"})

    assert repo.delete(tour_pk)

    assert repo.find_by_id(tour_pk) is None
    for model in (TourCompletion, TourUserGroup, TourTranslation):
        assert db.query(model).filter(model.tour_id == tour_pk).count() == 0
        assert db.query(model).filter(model.tour_id == keep).count() == 1


def test_delete_of_missing_tour_returns_false(db):
    assert TourRepository(db).delete(12345) is False

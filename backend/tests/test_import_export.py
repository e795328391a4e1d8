import csv
import io
import json
from datetime import datetime

import pytest
from sqlalchemy.orm import sessionmaker

from boarding.core.config import settings
from boarding.core.db import Base
from boarding.core.errors import TourAccessError, TourValidationError
from boarding.services.export import ExportService, export_tour
from boarding.services.importer import (
    ImportService,
    normalize_field_name,
    normalize_tabular_row,
    parse_csv,
    wrap_tours,
)
from boarding.services.mutation import TourMutationService
from boarding.services.query import TourQueryService
from boarding.tours.caches import RequestCaches
from tests.factories import make_engine, make_sites, make_tour, make_user, site_context, step


@pytest.fixture
def home(db):
    primary, _ = make_sites(db, 2)
    return site_context(db, primary)


@pytest.fixture
def empty_store(tmp_path):
    engine = make_engine(tmp_path / "target.db")
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autoflush=False, future=True)()
    yield session
    session.close()
    engine.dispose()


def _export(db, site):
    tours = TourQueryService(db, site).get_all_tours()
    return json.loads(json.dumps(ExportService(site).export_tours(tours)))


def _comparable(tour):
    return {
        "name": tour["name"],
        "steps": tour["steps"],
        "progressPosition": tour["progressPosition"],
    }


def test_export_import_round_trip(db, home, empty_store):
    make_tour(
        db,
        home,
        progress_position="top",
        steps=[step("Hi", "Welcome!"), step("Next", "Go on", type="navigation", navigationUrl="/x")],
    )
    user = make_user(db, username="ada", first_name="Ada", last_name="Lovelace")
    tour_pk = RequestCaches(db).repository.find_all()[0]["id"]
    TourMutationService(db, home).mark_tour_completed(tour_pk, user.id)

    exported = _export(db, home)
    envelope = exported["boardingExport"]
    assert envelope["version"] == settings.EXPORT_FORMAT_VERSION
    assert envelope["site"]["handle"] == "default"
    assert envelope["tours"][0]["completedBy"][0]["username"] == "ada"
    assert "id" not in envelope["tours"][0]

    make_user(empty_store, username="ada")
    target_primary, _ = make_sites(empty_store, 2)
    target = site_context(empty_store, target_primary)
    results = ImportService(empty_store, target).import_data(exported)

    assert results == {"imported": 1, "updated": 0, "skipped": 0, "errors": []}
    reexported = _export(empty_store, target)["boardingExport"]["tours"]
    assert [_comparable(t) for t in reexported] == [_comparable(t) for t in envelope["tours"]]
    assert reexported[0]["tourId"] == envelope["tours"][0]["tourId"]
    assert [c["username"] for c in reexported[0]["completedBy"]] == ["ada"]


def test_reimport_updates_existing_tours(db, home):
    make_tour(db, home, name="Original")
    exported = _export(db, home)
    exported["boardingExport"]["tours"][0]["name"] = "Changed"

    results = ImportService(db, home).import_data(exported)

    assert results["updated"] == 1
    assert results["imported"] == 0
    tours = RequestCaches(db).repository.find_all()
    assert [t["name"] for t in tours] == ["Changed"]


def test_unknown_completion_users_are_reported(db, home):
    data = wrap_tours(
        [
            {
                "name": "Imported",
                "tourId": "tour_imported",
                "steps": [step()],
                "completedBy": [{"username": "ghost", "completedAt": "2024-01-01T00:00:00+00:00"}],
            }
        ]
    )
    results = ImportService(db, home).import_data(data)
    assert results["imported"] == 1
    assert results["errors"] == ["Tour #1: 1 completion(s) could not be imported, 0 imported successfully"]


def test_import_skips_entries_that_fail(db, home):
    results = ImportService(db, home).process_tours_import(
        [
            {"name": "No key"},
            {"name": "No steps", "tourId": "tour_empty", "steps": []},
            {"name": "Good", "tourId": "tour_good", "steps": [step()]},
        ]
    )
    assert results["imported"] == 1
    assert results["skipped"] == 2
    assert results["errors"][0] == "Tour #1: Missing required name or tourId"
    assert results["errors"][1].startswith('Tour #2: Failed to save "No steps"')
    assert ImportService.build_import_message(results) == (
        "Import completed: 1 imported, 0 updated, 2 skipped. Errors: 2"
    )


@pytest.mark.parametrize(
    "data, expected",
    [
        ({}, "Invalid export file format. This doesn't appear to be a valid Boarding export."),
        ({"boardingExport": {}}, "Export file is missing tours data"),
        ({"boardingExport": {"tours": {}}}, "Tours data must be an array"),
        ({"boardingExport": {"tours": []}}, "No tours found in the export file"),
    ],
)
def test_validate_import_envelope(db, home, data, expected):
    assert ImportService(db, home).validate_import_data(data) == [expected]


def test_validate_import_tour_fields(db, home):
    data = wrap_tours(
        [
            {"name": "", "tourId": 5, "steps": "x", "progressPosition": "middle", "enabled": "maybe"},
            "not a tour",
        ]
    )
    errors = ImportService(db, home).validate_import_data(data)
    assert errors == [
        "Tour #1: Missing or invalid name field",
        "Tour #1: Missing or invalid tourId field",
        "Tour #1: Steps must be an array",
        'Tour #1: Invalid progressPosition value "middle"',
        "Tour #1: Invalid enabled value",
        "Tour #2: Invalid tour data structure",
    ]
    with pytest.raises(TourValidationError):
        ImportService(db, home).import_data(data)


def test_validate_upload():
    ImportService.validate_upload("tours.json", 100)
    with pytest.raises(TourValidationError) as excinfo:
        ImportService.validate_upload("tours.txt", settings.IMPORT_MAX_FILE_SIZE_MB * 1024 * 1024 + 1)
    assert excinfo.value.validation_errors == [
        "Invalid file type. Allowed types: json, csv",
        f"File too large. Maximum size is {settings.IMPORT_MAX_FILE_SIZE_MB}MB.",
    ]


@pytest.mark.parametrize(
    "column, expected",
    [
        ("Name", "name"),
        ("title", "name"),
        ("Tour ID", "tourId"),
        ("user_group_ids", "userGroupIds"),
        ("Progress Position", "progressPosition"),
        ("Date Created", None),
        ("uid", None),
        ("Whatever", None),
    ],
)
def test_normalize_field_name(column, expected):
    assert normalize_field_name(column) == expected


def test_normalize_tabular_row():
    row = normalize_tabular_row(
        {
            "Name": " Welcome ",
            "Enabled": "false",
            "Translatable": "1",
            "Steps": '[{"title": "Hi", "text": "x"}]',
            "Completed By": "",
            "ID": "7",
        }
    )
    assert row == {
        "name": "Welcome",
        "enabled": False,
        "translatable": True,
        "steps": [{"title": "Hi", "text": "x"}],
        "completedBy": [],
    }


def test_csv_import(db, home):
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["Name", "Tour ID", "Enabled", "User Groups", "Steps", "Progress Position", "Date Created"])
    writer.writerow(["From CSV", "tour_csv", "0", "1,2", json.dumps([step()]), "top", "2024-01-01"])
    writer.writerow(["", "", "", "", "", "", ""])
    text = "\ufeff" + buffer.getvalue()

    rows = parse_csv(text)
    assert len(rows) == 1
    assert rows[0]["tourId"] == "tour_csv"

    results = ImportService(db, home).import_data(wrap_tours(rows))

    assert results["imported"] == 1
    repository = RequestCaches(db).repository
    tour = repository.find_by_natural_key("tour_csv")
    assert tour["enabled"] is False
    assert tour["progress_position"] == "top"
    assert repository.get_user_groups(tour["id"]) == [1, 2]


def test_export_tour_shape():
    entry = export_tour(
        {
            "id": 1,
            "tour_id": "tour_1",
            "name": "Welcome",
            "enabled": 1,
            "steps": [{"title": "Hi", "translations": {2: {"title": "Salut"}}}],
            "completed_by": [
                {"username": "ada", "first_name": "Ada", "last_name": None, "completed_at": datetime(2024, 1, 2)}
            ],
        }
    )
    assert entry == {
        "name": "Welcome",
        "tourId": "tour_1",
        "description": "",
        "enabled": True,
        "translatable": False,
        "userGroupIds": [],
        "steps": [{"title": "Hi"}],
        "progressPosition": "bottom",
        "completedBy": [
            {
                "username": "ada",
                "firstName": "Ada",
                "lastName": None,
                "completedAt": "2024-01-02T00:00:00+00:00",
            }
        ],
    }


def test_export_filenames():
    now = datetime(2024, 1, 2, 3, 4, 5)
    assert ExportService.generate_tour_filename({"name": "Welcome", "tour_id": "tour_1"}, now) == (
        "Welcome-tour_1-2024-01-02-03-04-05.json"
    )
    assert ExportService.generate_all_tours_filename(now) == "all-tours-2024-01-02-03-04-05.json"


def test_import_export_requires_pro(db, home, monkeypatch):
    monkeypatch.setattr(settings, "BOARDING_EDITION", "standard")
    with pytest.raises(TourAccessError):
        ExportService(home).export_tours([])
    with pytest.raises(TourAccessError):
        ImportService(db, home).import_data(wrap_tours([]))

import re

import pytest

from services.dataclips import DataclipService, generate_slug


@pytest.fixture
def service(database, guard):
    return DataclipService(database, guard)


def valid_params(**overrides):
    params = {
        "title": "Total User Count",
        "sql_query": "SELECT COUNT(*) AS total_users FROM users",
        "description": "Get the total number of users",
        "created_by": "admin",
    }
    params.update(overrides)
    return params


def test_generate_slug():
    slug = generate_slug()

    assert re.fullmatch(r"[a-z0-9]{16}", slug)
    assert generate_slug() != slug


def test_create_trims_and_stores(service):
    result = service.create(valid_params(title="  Padded title  ", addon_id="  "))

    assert result.success
    dataclip = result.dataclip
    assert dataclip.title == "Padded title"
    assert dataclip.addon_id is None
    assert re.fullmatch(r"[a-z0-9]{16}", dataclip.slug)
    assert service.get(dataclip.slug).sql_query == valid_params()["sql_query"]


def test_create_requires_title_and_sql(service):
    result = service.create({"title": " ", "sql_query": ""})

    assert not result.success
    assert result.errors == ["Title is required", "SQL query is required"]
    assert service.list_all() == []


def test_create_enforces_lengths(service):
    result = service.create(valid_params(title="t" * 256, sql_query="SELECT 1 " * 2000))

    assert result.errors == [
        "Title must be 255 characters or less",
        "SQL query must be 10,000 characters or less",
    ]


def test_update_changes_only_submitted_fields(service):
    slug = service.create(valid_params()).dataclip.slug

    result = service.update(slug, {"title": "Renamed", "description": ""})

    assert result.success
    assert result.dataclip.title == "Renamed"
    assert result.dataclip.description is None
    assert result.dataclip.sql_query == valid_params()["sql_query"]
    assert result.dataclip.updated_at >= result.dataclip.created_at


def test_update_unknown_slug(service):
    result = service.update("missing", {"title": "x"})

    assert result.errors == ["Dataclip not found"]


def test_update_rejects_blank_required_field(service):
    slug = service.create(valid_params()).dataclip.slug

    result = service.update(slug, {"sql_query": "   "})

    assert result.errors == ["SQL query is required"]
    assert service.get(slug).sql_query == valid_params()["sql_query"]


def test_update_of_sql_invalidates_cached_results(service, guard):
    slug = service.create(valid_params()).dataclip.slug
    guard.execute_named(slug)
    assert guard.execute_named(slug).cached is True

    service.update(slug, {"sql_query": "SELECT COUNT(*) AS total_users FROM users WHERE active = 1"})
    result = guard.execute_named(slug)

    assert result.cached is False
    assert result.data == [{"total_users": 2}]


def test_delete(service, guard):
    slug = service.create(valid_params()).dataclip.slug
    guard.execute_named(slug)

    result = service.delete(slug)

    assert result.success
    assert result.dataclip.slug == slug
    assert service.get(slug) is None
    assert guard.cache_stats()["total_entries"] == 0


@pytest.mark.parametrize("slug, error", [("", "Slug is required"), (None, "Slug is required"),
                                         ("missing", "Dataclip not found")])
def test_delete_errors(service, slug, error):
    assert service.delete(slug).errors == [error]

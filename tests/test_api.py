"""API tests against a fresh container and a SQLite target database."""


def create_clip(client, **overrides):
    body = {"title": "Active users", "sql_query": "SELECT email FROM users WHERE active = 1 ORDER BY id"}
    body.update(overrides)
    response = client.post("/api/dataclips", json=body)
    assert response.status_code == 201
    return response.json()["dataclip"]


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "dataclips"
    assert data["status"] == "healthy"
    assert data["checks"] == {"database": True, "cache": True}


def test_dataclip_crud(client):
    clip = create_clip(client, description="  ")
    slug = clip["slug"]
    assert clip["description"] is None

    listed = client.get("/api/dataclips").json()["dataclips"]
    assert [item["slug"] for item in listed] == [slug]

    updated = client.put(f"/api/dataclips/{slug}", json={"title": "Renamed"})
    assert updated.status_code == 200
    assert updated.json()["dataclip"]["title"] == "Renamed"
    assert updated.json()["dataclip"]["sql_query"] == clip["sql_query"]

    assert client.get(f"/api/dataclips/{slug}").json()["dataclip"]["title"] == "Renamed"
    assert client.delete(f"/api/dataclips/{slug}").status_code == 200
    assert client.get(f"/api/dataclips/{slug}").status_code == 404


def test_create_validation_errors(client):
    response = client.post("/api/dataclips", json={"title": "", "sql_query": "SELECT 1"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "errors": ["Title is required"]}


def test_missing_dataclip_returns_404(client):
    assert client.put("/api/dataclips/nope", json={"title": "x"}).status_code == 404
    assert client.delete("/api/dataclips/nope").status_code == 404


def test_execute_dataclip_uses_cache(client):
    slug = create_clip(client)["slug"]

    first = client.post(f"/api/dataclips/{slug}/execute").json()
    second = client.post(f"/api/dataclips/{slug}/execute").json()

    assert first["success"] is True
    assert first["cached"] is False
    assert first["columns"] == ["email"]
    assert first["data"] == [{"email": "ada@example.com"}, {"email": "grace@example.com"}]
    assert second["cached"] is True
    assert second["cache_key"].endswith(f":scope:{slug}")
    assert second["data"] == first["data"]

    bypass = client.post(f"/api/dataclips/{slug}/execute", json={"use_cache": False}).json()
    assert bypass["cached"] is False


def test_execute_unknown_dataclip(client):
    result = client.post("/api/dataclips/nope/execute").json()

    assert result["success"] is False
    assert result["errors"] == ["Dataclip with slug 'nope' not found"]


def test_sql_execute(client):
    response = client.post("/api/sql/execute", json={
        "sql": "SELECT email FROM users WHERE id = :id",
        "parameters": {"id": 2},
    })

    assert response.status_code == 200
    assert response.json()["data"] == [{"email": "grace@example.com"}]


def test_mutating_sql_is_rejected_with_400(client):
    response = client.post("/api/sql/execute", json={"sql": "DELETE FROM users"})

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "errors": ["Query contains potentially dangerous SQL operations"],
    }


def test_sql_errors_are_returned_in_the_body(client):
    result = client.post("/api/sql/execute", json={"sql": "SELECT * FROM nowhere"}).json()

    assert result["success"] is False
    assert result["errors"][0].startswith("Database error:")


def test_schema(client):
    first = client.get("/api/schema").json()
    second = client.get("/api/schema").json()

    assert first["success"] is True
    assert sorted(first["schema"]) == ["orders", "users"]
    assert second["cached"] is True


def test_query_cache_admin(client):
    slug = create_clip(client)["slug"]
    client.post(f"/api/dataclips/{slug}/execute")
    client.post(f"/api/dataclips/{slug}/execute")
    client.post("/api/sql/execute", json={"sql": "SELECT 42 AS answer"})

    stats = client.get("/api/cache/stats").json()
    assert stats["stats"]["total_entries"] == 2
    assert stats["stats"]["total_hits"] == 1
    assert stats["metrics"]["query_cache_write"] == 2

    top = client.get("/api/cache/top", params={"limit": 1}).json()["entries"]
    assert len(top) == 1
    assert top[0]["scope_label"] == slug

    assert client.post("/api/cache/cleanup").json()["deleted_count"] == 0
    assert client.delete(f"/api/cache/dataclip/{slug}").json()["deleted_count"] == 1
    assert client.delete("/api/cache").json()["deleted_count"] == 1


def test_schema_cache_admin(client):
    client.get("/api/schema")

    assert client.get("/api/cache/schema/stats").json()["stats"]["total_entries"] == 1
    assert client.post("/api/cache/schema/cleanup").json()["deleted_count"] == 0
    assert client.delete("/api/cache/schema").json()["deleted_count"] == 1


def test_addons(client):
    assert client.get("/api/addons").json() == {"success": True, "addons": []}

    result = client.post("/api/addons/sync").json()
    assert result["success"] is False
    assert result["errors"][0].startswith("Heroku API not configured")


def test_invalidate_cached_results_by_sql(client):
    sql = "SELECT email FROM users WHERE active = 1 ORDER BY id"
    slug = create_clip(client, sql_query=sql)["slug"]
    client.post(f"/api/dataclips/{slug}/execute")
    client.post("/api/sql/execute", json={"sql": sql})
    client.post("/api/sql/execute", json={"sql": "SELECT 42 AS answer"})

    # Matches both the scoped and the ad-hoc entry, case and spacing aside
    response = client.post("/api/cache/invalidate", json={"sql": f"  {sql.lower()} "})

    assert response.json() == {"success": True, "deleted_count": 2}
    assert client.get("/api/cache/stats").json()["stats"]["total_entries"] == 1

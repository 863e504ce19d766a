from conftest import bearer


def test_navigation_groups_for_nurse(client, app_context):
    r = client.get("/navigation", headers=bearer(app_context, ["nurse"]))
    assert r.status_code == 200
    groups = r.json()["groups"]
    categories = [g["category"] for g in groups]
    assert categories == ["management", "system"]
    management = [route["path"] for route in groups[0]["routes"]]
    # patients is tenant scoped; no facility selected
    assert management == ["/"]
    system = [route["title"] for route in groups[1]["routes"]]
    assert system == sorted(system)


def test_navigation_with_facility_includes_patients(client, app_context):
    headers = bearer(
        app_context,
        ["nurse"],
        facilities={"f1": {"access": "read", "type": "clinic"}},
        facility="f1",
    )
    groups = client.get("/navigation", headers=headers).json()["groups"]
    paths = [r["path"] for g in groups for r in g["routes"]]
    assert "/patients" in paths


def test_navigation_requires_token(client):
    assert client.get("/navigation").status_code == 401


def test_routes_access_check(client, app_context):
    headers = bearer(app_context, ["onboardingTeam"])
    r = client.get("/routes/access", params={"path": "/onboarding/42"}, headers=headers)
    assert r.status_code == 200
    assert r.json() == {"path": "/onboarding/:id", "allowed": True, "reason": "granted"}

    r = client.get("/routes/access", params={"path": "/users"}, headers=headers)
    assert r.json()["allowed"] is False
    assert r.json()["reason"] == "role_required"

    r = client.get("/routes/access", params={"path": "/nowhere"}, headers=headers)
    assert r.status_code == 404


def test_route_stats_admin_only(client, app_context):
    r = client.get("/routes/stats", headers=bearer(app_context, ["nurse"]))
    assert r.status_code == 403

    r = client.get("/routes/stats", headers=bearer(app_context, ["admin"]))
    assert r.status_code == 200
    body = r.json()
    assert body["total_routes"] == 15
    assert body["public_routes"] == 1
    assert body["conflicts"] == []


def test_generated_pages_render(client, app_context):
    r = client.get("/login")
    assert r.status_code == 200
    assert r.json()["page"]["dev_login"] is True

    headers = bearer(app_context, ["onboardingTeam"])
    r = client.get("/onboarding/case-7", headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["params"] == {"id": "case-7"}
    assert body["page"] == {"id": "case-7", "case": None}

    r = client.get("/modules", headers=bearer(app_context, ["admin"]))
    names = [m["name"] for m in r.json()["page"]["modules"]]
    assert "Facilities" in names

    r = client.get("/role-management", headers=bearer(app_context, ["admin"]))
    assert r.status_code == 403

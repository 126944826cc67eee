SNAPSHOT = {
    "items": [
        {"id": 1, "hasUnread": False, "isActive": True, "displayName": "Anna Smith", "lastActivity": "2024-05-01T09:00:00Z"},
        {"id": 2, "hasUnread": True, "isActive": True, "displayName": "Bob Jones", "lastActivity": "2024-05-01T09:30:00Z"},
        {"id": 3, "hasUnread": False, "isActive": False, "displayName": "Carla Diaz", "lastActivity": "2024-04-30T16:00:00Z"},
    ]
}


def _ids(items):
    return [item["id"] for item in items]


def _load(api_client, session_id="s1"):
    resp = api_client.put(f"/api/sessions/{session_id}/triage/items", json=SNAPSHOT)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


def _section(payload, section_id):
    for section in payload["sections"]:
        if section["id"] == section_id:
            return section
        for child in section["children"]:
            if child["id"] == section_id:
                return child
    raise AssertionError(f"section {section_id} missing")


def test_health(api_client):
    resp = api_client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["status"] == "ok"


def test_navigation_resolves_aliased_path(api_client):
    resp = api_client.get("/api/sessions/s1/navigation", params={"path": "/chronic-conditions"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["activeSection"] == "patients"
    patients = _section(data, "patients")
    assert patients["active"] is True
    assert patients["hasSubmenu"] is True
    assert [child["id"] for child in patients["children"]] == [
        "chronicConditions",
        "medicationRefills",
        "urgentCare",
    ]
    assert _section(data, "home")["active"] is False


def test_navigation_defaults_to_home(api_client):
    data = api_client.get("/api/sessions/s1/navigation").json()["data"]
    assert data["activeSection"] == "home"
    data = api_client.get("/api/sessions/s1/navigation", params={"path": "/nope"}).json()["data"]
    assert data["activeSection"] == "home"


def test_badge_refresh(api_client):
    resp = api_client.put(
        "/api/sessions/s1/navigation/badges",
        json={"counts": {"patients": 120, "inbox": 3, "urgentCare": 1}},
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert _section(data, "patients")["badgeCount"] == 120
    assert _section(data, "patients")["badge"] == "99+"
    assert _section(data, "inbox")["badge"] == "3"
    assert _section(data, "urgentCare")["badgeCount"] == 1
    assert _section(data, "home")["badge"] == ""

    data = api_client.put(
        "/api/sessions/s1/navigation/badges", json={"counts": {"inbox": 1}}
    ).json()["data"]
    assert _section(data, "patients")["badgeCount"] == 0
    assert _section(data, "inbox")["badgeCount"] == 1


def test_toggle_section(api_client):
    resp = api_client.post("/api/sessions/s1/navigation/sections/patients/toggle")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["expanded"] == {"patients": True}
    assert _section(data, "patients")["expanded"] is True
    assert _section(data, "settings")["expanded"] is False

    data = api_client.post("/api/sessions/s1/navigation/sections/patients/toggle").json()["data"]
    assert _section(data, "patients")["expanded"] is False


def test_toggle_unknown_section_returns_error_envelope(api_client):
    resp = api_client.post("/api/sessions/s1/navigation/sections/pharmacy/toggle")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == 404
    assert "pharmacy" in body["error"]["message"]


def test_triage_snapshot_partitions_and_autoselects(api_client):
    data = _load(api_client)
    state = data["state"]
    assert _ids(state["activeItems"]) == [1, 2]
    assert _ids(state["hiddenItems"]) == [3]
    assert state["selectedId"] == 2
    assert data["selected"]["displayName"] == "Bob Jones"
    assert data["counts"] == {"new": 1, "ongoing": 1, "hidden": 1, "total": 3}


def test_select_hide_restore_flow(api_client):
    _load(api_client)

    data = api_client.post("/api/sessions/s1/triage/items/2/select").json()["data"]
    assert data["applied"] is True
    assert data["state"]["selectedId"] == 2
    assert data["counts"]["new"] == 0

    data = api_client.post("/api/sessions/s1/triage/items/2/hide").json()["data"]
    assert _ids(data["state"]["activeItems"]) == [1]
    assert _ids(data["state"]["hiddenItems"]) == [3, 2]
    hidden = data["state"]["hiddenItems"][1]
    assert hidden["isActive"] is False
    assert hidden["hasUnread"] is False
    assert data["state"]["selectedId"] == 1

    data = api_client.post("/api/sessions/s1/triage/items/3/restore").json()["data"]
    assert _ids(data["state"]["activeItems"]) == [1, 3]
    assert data["state"]["activeItems"][1]["isActive"] is True
    assert data["state"]["selectedId"] == 3


def test_unknown_item_is_noop(api_client):
    before = _load(api_client)["state"]
    for action in ("select", "hide", "restore"):
        resp = api_client.post(f"/api/sessions/s1/triage/items/999/{action}")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["applied"] is False
        assert data["state"] == before


def test_clear_selection(api_client):
    _load(api_client)
    data = api_client.delete("/api/sessions/s1/triage/selection").json()["data"]
    assert data["state"]["selectedId"] is None
    assert data["selected"] is None
    data = api_client.delete("/api/sessions/s1/triage/selection").json()["data"]
    assert data["applied"] is False


def test_filter_and_tabs(api_client):
    _load(api_client)
    data = api_client.get("/api/sessions/s1/triage", params={"filter": "ANN"}).json()["data"]
    assert data["tab"] == "new"
    assert data["items"] == []
    assert _ids(data["view"]["filteredActive"]) == [1]

    data = api_client.get("/api/sessions/s1/triage", params={"tab": "hidden"}).json()["data"]
    assert _ids(data["items"]) == [3]

    data = api_client.put("/api/sessions/s1/triage/filter", json={"text": "bob"}).json()["data"]
    assert data["state"]["filterText"] == "bob"
    data = api_client.get("/api/sessions/s1/triage", params={"tab": "new"}).json()["data"]
    assert _ids(data["items"]) == [2]


def test_invalid_tab_returns_validation_envelope(api_client):
    resp = api_client.get("/api/sessions/s1/triage", params={"tab": "archived"})
    assert resp.status_code == 422
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == 422


def test_invalid_timestamp_rejected(api_client):
    resp = api_client.put(
        "/api/sessions/s1/triage/items",
        json={"items": [{"id": 1, "displayName": "X", "lastActivity": "yesterday-ish"}]},
    )
    assert resp.status_code == 422
    assert resp.json()["success"] is False


def test_sessions_do_not_share_state(api_client):
    _load(api_client, "s1")
    data = api_client.get("/api/sessions/s2/triage", params={"tab": "all"}).json()["data"]
    assert data["state"]["activeItems"] == []
    assert data["state"]["selectedId"] is None


def test_drop_session(api_client):
    _load(api_client)
    resp = api_client.delete("/api/sessions/s1")
    assert resp.status_code == 200
    assert resp.json()["data"]["removed"] is True
    resp = api_client.delete("/api/sessions/s1")
    assert resp.status_code == 404


def test_trace_id_is_propagated(api_client):
    resp = api_client.get("/health", headers={"X-Trace-Id": "trace-123"})
    assert resp.headers["X-Trace-Id"] == "trace-123"
    assert api_client.get("/health").headers.get("X-Trace-Id")


def test_metrics_exposition(api_client):
    _load(api_client)
    api_client.post("/api/sessions/s1/triage/items/999/hide")
    resp = api_client.get("/metrics")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    body = resp.text
    assert 'clinicnav_triage_transitions_total{operation="hide",outcome="noop"}' in body
    assert 'endpoint="/api/sessions/{session_id}/triage/items/{id}/hide"' in body

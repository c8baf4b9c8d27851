"""
End-to-end API flow over the in-memory backend.
"""
import asyncio

from civicfix.main import app

POTHOLE = {
    "title": "Pothole",
    "description": "Deep pothole in the right lane.",
    "category": "Public Works",
    "location_lat": 40.7128,
    "location_lng": -74.006,
}


async def _submit(client, headers, **overrides):
    response = await client.post("/reports", json={**POTHOLE, **overrides}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def test_health(client):
    assert (await client.get("/health")).json()["status"] == "healthy"
    assert (await client.get("/health/db")).status_code == 200

    sync = (await client.get("/health/sync")).json()
    assert sync["status"] == "live"
    assert sync["suspect"] is False


async def test_unknown_user_is_rejected(client):
    assert (await client.get("/reports")).status_code == 401
    assert (await client.get("/reports", headers={"X-User-Id": "nobody"})).status_code == 401


async def test_submit_and_list(client, citizen, other_citizen, staff, headers_for):
    report = await _submit(client, headers_for(citizen))
    assert report["status"] == "pending"
    assert report["priority"] == "medium"
    assert report["reporter_id"] == citizen.id

    await _submit(client, headers_for(other_citizen), title="Broken swing", category="Parks & Recreation")

    own = (await client.get("/reports", headers=headers_for(citizen))).json()
    assert [r["id"] for r in own] == [report["id"]]

    everything = (await client.get("/reports", headers=headers_for(staff))).json()
    assert len(everything) == 2

    parks = (await client.get(
        "/reports", params={"category": "Parks & Recreation"}, headers=headers_for(staff)
    )).json()
    assert [r["title"] for r in parks] == ["Broken swing"]

    fetched = await client.get(f"/reports/{report['id']}", headers=headers_for(citizen))
    assert fetched.json()["id"] == report["id"]


async def test_submit_validation_names_missing_fields(client, citizen, headers_for):
    response = await client.post(
        "/reports", json={"title": "Pothole", "category": "Public Works"}, headers=headers_for(citizen)
    )
    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["fields"] == ["description"]
    assert detail["retryable"] is False


async def test_staff_cannot_submit(client, staff, headers_for):
    response = await client.post("/reports", json=POTHOLE, headers=headers_for(staff))
    assert response.status_code == 403


async def test_other_citizens_report_is_not_found(client, citizen, other_citizen, headers_for):
    report = await _submit(client, headers_for(citizen))
    response = await client.get(f"/reports/{report['id']}", headers=headers_for(other_citizen))
    assert response.status_code == 404


async def test_status_lifecycle(client, citizen, staff, headers_for):
    report = await _submit(client, headers_for(citizen))
    url = f"/admin/reports/{report['id']}/status"

    denied = await client.patch(url, json={"status": "in-progress"}, headers=headers_for(citizen))
    assert denied.status_code == 403

    skipped = await client.patch(
        url, json={"status": "resolved", "completion_image_ref": "mem://after.jpg"}, headers=headers_for(staff)
    )
    assert skipped.status_code == 409
    assert skipped.json()["detail"]["allowed"] == ["in-progress"]

    started = await client.patch(url, json={"status": "in-progress"}, headers=headers_for(staff))
    assert started.status_code == 200
    assert started.json()["assigned_employee_id"] == staff.id

    transitions = (await client.get(f"/admin/reports/{report['id']}/transitions", headers=headers_for(staff))).json()
    assert transitions["allowed"] == ["resolved", "pending"]

    no_evidence = await client.patch(url, json={"status": "resolved"}, headers=headers_for(staff))
    assert no_evidence.status_code == 422
    assert no_evidence.json()["detail"]["fields"] == ["completion_image_ref"]

    resolved = await client.patch(
        url,
        json={"status": "resolved", "completion_image_ref": "mem://after.jpg", "resolution_notes": "Filled"},
        headers=headers_for(staff),
    )
    assert resolved.status_code == 200
    body = resolved.json()
    assert body["status"] == "resolved"
    assert body["completed_at"] is not None

    reopened = await client.patch(url, json={"status": "pending"}, headers=headers_for(staff))
    assert reopened.status_code == 409

    summary = (await client.get("/reports/summary", headers=headers_for(citizen))).json()
    assert summary["counts"]["resolved"] == 1
    assert summary["suspect"] is False


async def test_assign(client, citizen, staff, headers_for):
    report = await _submit(client, headers_for(citizen))

    response = await client.post(
        f"/admin/reports/{report['id']}/assign", json={"employee_id": "staff-dee"}, headers=headers_for(staff)
    )

    assert response.status_code == 200
    assert response.json()["status"] == "in-progress"
    assert response.json()["assigned_employee_id"] == "staff-dee"


async def test_write_failure_is_retryable(client, api_backend, citizen, staff, headers_for):
    report = await _submit(client, headers_for(citizen))
    api_backend.fail_next("update")

    response = await client.patch(
        f"/admin/reports/{report['id']}/status", json={"status": "in-progress"}, headers=headers_for(staff)
    )

    assert response.status_code == 503
    assert response.json()["detail"]["retryable"] is True
    current = (await client.get(f"/reports/{report['id']}", headers=headers_for(staff))).json()
    assert current["status"] == "pending"


async def test_map_markers_skip_reports_without_coordinates(client, citizen, headers_for):
    placed = await _submit(client, headers_for(citizen))
    await _submit(client, headers_for(citizen), location_lat=None, location_lng=None, location_address="Main St")

    markers = (await client.get("/map/markers", headers=headers_for(citizen))).json()

    assert [m["id"] for m in markers] == [placed["id"]]
    assert markers[0]["color"] == "#f59e0b"


async def test_analytics_is_staff_only(client, citizen, staff, headers_for):
    await _submit(client, headers_for(citizen))

    assert (await client.get("/analytics", headers=headers_for(citizen))).status_code == 403

    result = (await client.get("/analytics", headers=headers_for(staff))).json()
    assert result["total_reports"] == 1
    assert len(result["weekly_trends"]) == 7


async def test_evidence_upload(client, citizen, staff, headers_for):
    photo = {"file": ("after.jpg", b"\xff\xd8jpeg", "image/jpeg")}

    uploaded = await client.post(
        "/evidence", data={"kind": "original_image"}, files=photo, headers=headers_for(citizen)
    )
    assert uploaded.status_code == 201
    assert uploaded.json()["ref"].startswith("mem://")

    denied = await client.post(
        "/evidence", data={"kind": "completion_image"}, files=photo, headers=headers_for(citizen)
    )
    assert denied.status_code == 403

    wrong_type = await client.post(
        "/evidence", data={"kind": "audio"}, files=photo, headers=headers_for(staff)
    )
    assert wrong_type.status_code == 422


async def test_remote_changes_reach_the_shared_store(client, api_backend, citizen, headers_for):
    """A row committed by another process shows up without a reload."""
    row = await api_backend.insert("reports", {
        "title": "Fallen tree",
        "description": "Blocking the path",
        "category": "Parks & Recreation",
        "status": "pending",
        "priority": "medium",
        "reporter_id": citizen.id,
    })
    await asyncio.sleep(0)

    ids = [r["id"] for r in (await client.get("/reports", headers=headers_for(citizen))).json()]
    assert row["id"] in ids
    assert app.state.reconciler.events_applied >= 1


async def test_rest_views_only_show_confirmed_reports(client, api_backend, citizen, staff, headers_for):
    api_backend.stall_next("insert", 0.2)
    submit = asyncio.create_task(client.post("/reports", json=POTHOLE, headers=headers_for(citizen)))
    await asyncio.sleep(0.05)

    # The placeholder exists in the shared store but stays out of REST responses
    in_flight = app.state.store.list()
    assert len(in_flight) == 1
    assert in_flight[0].id.startswith("local-")

    assert (await client.get("/reports", headers=headers_for(staff))).json() == []
    summary = (await client.get("/reports/summary", headers=headers_for(staff))).json()
    assert summary["counts"]["total"] == 0
    assert (await client.get("/map/markers", headers=headers_for(staff))).json() == []
    placeholder = await client.get(f"/reports/{in_flight[0].id}", headers=headers_for(staff))
    assert placeholder.status_code == 404

    created = await submit
    assert created.status_code == 201
    listed = (await client.get("/reports", headers=headers_for(staff))).json()
    assert [r["id"] for r in listed] == [created.json()["id"]]


async def test_overlapping_status_change_is_a_conflict(client, api_backend, citizen, staff, headers_for):
    report = await _submit(client, headers_for(citizen))
    url = f"/admin/reports/{report['id']}/status"
    api_backend.stall_next("update", 0.2)

    first = asyncio.create_task(client.patch(url, json={"status": "in-progress"}, headers=headers_for(staff)))
    await asyncio.sleep(0.05)
    second = await client.patch(
        url, json={"status": "resolved", "completion_image_ref": "mem://after.jpg"}, headers=headers_for(staff)
    )

    assert second.status_code == 409
    assert second.json()["detail"]["retryable"] is True
    assert (await first).status_code == 200

    current = (await client.get(f"/reports/{report['id']}", headers=headers_for(staff))).json()
    assert current["status"] == "in-progress"

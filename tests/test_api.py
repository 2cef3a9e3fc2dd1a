"""HTTP contract tests for the booking API."""

from conftest import make_proposal

BODY = {
    "teamName": "Platform",
    "date": "2024-01-12",
    "startTime": "10:00",
    "duration": 60,
    "password": "hunter2",
}


def body(**overrides):
    return {**BODY, **overrides}


async def delete_booking(client, booking_id, password):
    return await client.request("DELETE", f"/api/bookings/{booking_id}", json={"password": password})


class TestCreate:
    async def test_created(self, client):
        resp = await client.post("/api/bookings", json=body())
        assert resp.status_code == 201
        data = resp.json()
        assert set(data) == {
            "id", "teamName", "date", "startTime", "endTime",
            "duration", "startMinutes", "endMinutes",
        }
        assert data["teamName"] == "Platform"
        assert data["date"] == "2024-01-12"
        assert data["endTime"] == "11:00"
        assert data["startMinutes"] == 600
        assert data["endMinutes"] == 660

    async def test_numeric_string_duration(self, client):
        resp = await client.post("/api/bookings", json=body(duration="30"))
        assert resp.status_code == 201
        assert resp.json()["duration"] == 30

    async def test_validation_failure_is_400_with_message(self, client):
        resp = await client.post("/api/bookings", json=body(duration=121))
        assert resp.status_code == 400
        assert "message" in resp.json()

    async def test_missing_fields(self, client):
        resp = await client.post("/api/bookings", json={"teamName": "Platform"})
        assert resp.status_code == 400
        assert resp.json()["message"]

    async def test_conflict_is_409(self, client):
        await client.post("/api/bookings", json=body())
        resp = await client.post("/api/bookings", json=body(startTime="10:59", duration=5))
        assert resp.status_code == 409
        assert resp.json()["message"]

    async def test_malformed_body_is_400(self, client):
        resp = await client.post("/api/bookings", content=b"not json", headers={"content-type": "application/json"})
        assert resp.status_code == 400
        assert "message" in resp.json()

    async def test_wrong_type_is_400(self, client):
        resp = await client.post("/api/bookings", json=body(teamName=["a"]))
        assert resp.status_code == 400

    async def test_oversized_numeric_duration_is_400(self, client):
        resp = await client.post("/api/bookings", json=body(duration="1" * 5000))
        assert resp.status_code == 400
        assert resp.json()["message"]


class TestList:
    async def test_ordered(self, client):
        await client.post("/api/bookings", json=body(teamName="late", date="2024-01-14"))
        await client.post("/api/bookings", json=body(teamName="early", date="2024-01-11", startTime="13:00"))
        await client.post("/api/bookings", json=body(teamName="first", date="2024-01-11", startTime="08:00"))

        resp = await client.get("/api/bookings")
        assert resp.status_code == 200
        assert [b["teamName"] for b in resp.json()] == ["first", "early", "late"]

    async def test_hides_password_hash(self, client):
        await client.post("/api/bookings", json=body())
        [booking] = (await client.get("/api/bookings")).json()
        assert not any("password" in key.lower() for key in booking)


class TestDelete:
    async def test_deleted(self, client):
        booking_id = (await client.post("/api/bookings", json=body())).json()["id"]
        resp = await delete_booking(client, booking_id, "hunter2")
        assert resp.status_code == 204
        assert (await client.get("/api/bookings")).json() == []

    async def test_wrong_password_is_403(self, client):
        booking_id = (await client.post("/api/bookings", json=body())).json()["id"]
        resp = await delete_booking(client, booking_id, "wrong-password")
        assert resp.status_code == 403
        assert len((await client.get("/api/bookings")).json()) == 1

    async def test_no_body_is_403(self, client):
        booking_id = (await client.post("/api/bookings", json=body())).json()["id"]
        resp = await client.delete(f"/api/bookings/{booking_id}")
        assert resp.status_code == 403

    async def test_unknown_id_is_404(self, client):
        resp = await delete_booking(client, "does-not-exist", "hunter2")
        assert resp.status_code == 404
        assert resp.json()["message"]

    async def test_delete_all(self, client):
        await client.post("/api/bookings", json=body(date="2024-01-11"))
        await client.post("/api/bookings", json=body(date="2024-01-13"))
        resp = await client.delete("/api/bookings")
        assert resp.status_code == 204
        assert (await client.get("/api/bookings")).json() == []


class TestCheckAndWindow:
    async def test_check_previews_without_saving(self, client):
        resp = await client.post("/api/bookings/check", json=body(startTime="23:00", duration=60))
        assert resp.status_code == 200
        assert resp.json()["endTime"] == "24:00"
        assert "id" not in resp.json()
        assert (await client.get("/api/bookings")).json() == []

    async def test_check_reports_conflict(self, client):
        await client.post("/api/bookings", json=body())
        resp = await client.post("/api/bookings/check", json=body(startTime="10:30", duration=15))
        assert resp.status_code == 409

    async def test_window(self, client):
        resp = await client.get("/api/window")
        assert resp.json() == {"start": "2024-01-10", "end": "2024-01-17"}

    async def test_health(self, client):
        assert (await client.get("/health")).json() == {"status": "ok"}


class TestStorageFailure:
    async def test_returns_500(self, client, store, monkeypatch):
        from store import StorageError

        async def broken():
            raise StorageError("boom")

        monkeypatch.setattr(store, "list", broken)
        resp = await client.get("/api/bookings")
        assert resp.status_code == 500
        assert resp.json()["message"]


def test_proposal_accepts_camel_case():
    proposal = make_proposal()
    assert proposal.team_name == "Platform"
    assert proposal.booking_date == "2024-01-12"
    assert proposal.start_time == "10:00"


class TestResponseSchemas:
    async def test_booking_out_carries_id(self, store):
        from main import BookingOut

        booking = (await store.insert(make_proposal())).value
        out = BookingOut.from_booking(booking).model_dump(by_alias=True)
        assert out["id"] == booking.id
        assert out["teamName"] == "Platform"
        assert "passwordHash" not in out and "password_hash" not in out

    def test_preview_from_unsaved_booking(self):
        from datetime import date

        from main import BookingPreview
        from validation import normalize

        booking = normalize(make_proposal(), date(2024, 1, 10)).value
        preview = BookingPreview.from_booking(booking).model_dump(by_alias=True)
        assert "id" not in preview
        assert preview["endTime"] == "11:00"

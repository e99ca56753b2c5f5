"""Usage routes - batch, undo and their error statuses."""


async def test_batch_then_undo(client, fake_server):
    response = await client.post(
        "/api/v1/usage", json={"deltas": {"1": 4.0, "3": 1.5}, "metric": "weight"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert sorted(body["succeeded_ids"]) == [1, 3]
    assert fake_server.spools[1]["used_weight"] == 104.0

    status = (await client.get("/api/v1/sync/status")).json()
    assert status["undo_available"] is True
    assert status["last_usage_metric"] == "weight"

    response = await client.post("/api/v1/usage/undo")
    assert response.status_code == 200
    assert fake_server.spools[1]["used_weight"] == 100.0


async def test_second_undo_is_409(client):
    await client.post("/api/v1/usage", json={"deltas": {"2": 1.0}, "metric": "length"})
    await client.post("/api/v1/usage/undo")

    response = await client.post("/api/v1/usage/undo")

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "NOTHING_TO_UNDO"


async def test_invalid_metric_is_400(client, fake_server):
    response = await client.post("/api/v1/usage", json={"deltas": {"1": 1.0}, "metric": "volume"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_USAGE_METRIC"
    assert fake_server.count("PUT", "spool/1/use") == 0


async def test_unknown_spool_is_400(client):
    response = await client.post("/api/v1/usage", json={"deltas": {"42": 1.0}, "metric": "weight"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "UNKNOWN_SPOOL"


async def test_malformed_body_is_400(client):
    response = await client.post("/api/v1/usage", json={"deltas": {"x": "y"}})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_failed_write_is_502_with_failed_ids(client, fake_server):
    fake_server.fail_paths["spool/2/use"] = 500

    response = await client.post(
        "/api/v1/usage", json={"deltas": {"1": 1.0, "2": 1.0}, "metric": "weight"},
    )

    assert response.status_code == 502
    body = response.json()
    assert body["ok"] is False
    assert body["failed_ids"] == [2]
    assert body["succeeded_ids"] == [1]

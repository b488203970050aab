from conftest import signup, auth_headers


def add(client, token, **fields):
    body = {"date": "2024-01-10"}
    body.update(fields)
    return client.post("/api/vitals", json=body, headers=auth_headers(token))


def test_add_and_get(client, user_token):
    res = add(client, user_token, bp="120/80", sugar=95, weight=70.5, pulse=72, temperature=36.6, notes=" morning ")
    assert res.status_code == 201
    data = res.json()["data"]
    assert data["bp"] == "120/80"
    assert data["weight"] == 70.5
    assert data["notes"] == "morning"

    got = client.get(f"/api/vitals/{data['id']}", headers=auth_headers(user_token))
    assert got.status_code == 200
    assert got.json()["data"]["pulse"] == 72


def test_all_measurements_optional(client, user_token):
    res = add(client, user_token)
    assert res.status_code == 201
    data = res.json()["data"]
    assert all(data[k] is None for k in ("bp", "sugar", "weight", "pulse", "temperature", "notes"))


def test_date_required(client, user_token):
    res = client.post("/api/vitals", json={"pulse": 70}, headers=auth_headers(user_token))
    assert res.status_code == 400
    assert res.json()["message"] == "Please provide date"

    bad = add(client, user_token, date="yesterday")
    assert bad.status_code == 400


def test_non_numeric_measurement_rejected(client, user_token):
    res = add(client, user_token, sugar="lots")
    assert res.status_code == 400
    assert res.json()["success"] is False


def test_partial_update_only_touches_supplied_fields(client, user_token):
    created = add(client, user_token, sugar=100, weight=80).json()["data"]
    res = client.put(
        f"/api/vitals/{created['id']}",
        json={"weight": 78.5},
        headers=auth_headers(user_token),
    )
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["weight"] == 78.5
    assert data["sugar"] == 100
    assert data["date"] == created["date"]

    cleared = client.put(f"/api/vitals/{created['id']}", json={"sugar": None}, headers=auth_headers(user_token))
    assert cleared.json()["data"]["sugar"] is None


def test_update_rejects_blank_date(client, user_token):
    created = add(client, user_token, pulse=70).json()["data"]
    h = auth_headers(user_token)
    for date in ("", None, "someday"):
        res = client.put(f"/api/vitals/{created['id']}", json={"date": date}, headers=h)
        assert res.status_code == 400
        assert res.json()["message"] == "Invalid date format"
    got = client.get(f"/api/vitals/{created['id']}", headers=h).json()["data"]
    assert got["date"] == created["date"]

    moved = client.put(f"/api/vitals/{created['id']}", json={"date": "2024-02-01"}, headers=h)
    assert moved.json()["data"]["date"].startswith("2024-02-01")


def test_list_filters(client, user_token):
    add(client, user_token, date="2024-01-01", pulse=60)
    add(client, user_token, date="2024-02-01", pulse=70)
    add(client, user_token, date="2024-03-01T18:00:00", pulse=80)

    res = client.get("/api/vitals", headers=auth_headers(user_token)).json()
    assert res["count"] == 3
    assert [v["pulse"] for v in res["data"]] == [80, 70, 60]

    day = client.get("/api/vitals", params={"date": "2024-03-01"}, headers=auth_headers(user_token)).json()
    assert day["count"] == 1

    timeline = client.get(
        "/api/vitals/timeline",
        params={"startDate": "2024-01-15"},
        headers=auth_headers(user_token),
    ).json()
    assert timeline["count"] == 2


def test_vitals_are_owner_scoped(client, user_token):
    vital_id = add(client, user_token, pulse=66).json()["data"]["id"]
    other = signup(client, email="other@mail.com").json()["token"]

    assert client.get(f"/api/vitals/{vital_id}", headers=auth_headers(other)).status_code == 404
    assert client.put(f"/api/vitals/{vital_id}", json={"pulse": 1}, headers=auth_headers(other)).status_code == 404
    assert client.delete(f"/api/vitals/{vital_id}", headers=auth_headers(other)).status_code == 404


def test_delete(client, user_token):
    vital_id = add(client, user_token).json()["data"]["id"]
    assert client.delete(f"/api/vitals/{vital_id}", headers=auth_headers(user_token)).status_code == 200
    assert client.get(f"/api/vitals/{vital_id}", headers=auth_headers(user_token)).status_code == 404

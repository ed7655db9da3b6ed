"""Registration, login and role checks."""
from conftest import auth_headers


async def test_register_login_and_me(client, db):
    registered = await client.post(
        "/auth/register",
        json={"email": "carol@example.com", "password": "longenough", "full_name": "Carol", "roles": ["growth_team"]},
    )
    login = await client.post("/auth/login", json={"email": "carol@example.com", "password": "longenough"})
    me = await client.get("/auth/me", headers={"Authorization": f"Bearer {login.json()['access_token']}"})

    assert registered.status_code == 200
    assert registered.json()["user"]["roles"] == ["growth_team"]
    assert login.status_code == 200
    assert me.json()["email"] == "carol@example.com"
    assert me.json()["roles"] == ["growth_team"]


async def test_register_rejects_unknown_role_and_duplicate_email(client, team):
    unknown = await client.post(
        "/auth/register",
        json={"email": "dave@example.com", "password": "longenough", "full_name": "Dave", "roles": ["admin"]},
    )
    duplicate = await client.post(
        "/auth/register",
        json={"email": "alice@example.com", "password": "longenough", "full_name": "Alice"},
    )

    assert unknown.status_code == 400
    assert duplicate.status_code == 400
    assert duplicate.json() == {"error": "Email already registered"}


async def test_bad_credentials(client, team):
    wrong = await client.post("/auth/login", json={"email": "alice@example.com", "password": "wrong-password"})
    garbage = await client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})

    assert wrong.status_code == 401
    assert garbage.status_code == 401


async def test_project_listing_is_scoped(client, db, team):
    created = await client.post(
        "/projects",
        json={"title": "Scoped", "start_date": "2025-03-03", "duration_weeks": 2, "product_manager_id": team["pm"].id},
        headers=auth_headers(team["growth"]),
    )

    as_pm = await client.get("/projects", headers=auth_headers(team["pm"]))
    as_outsider = await client.get("/projects", headers=auth_headers(team["bob"]))
    as_growth = await client.get("/projects", headers=auth_headers(team["growth"]))

    project_id = created.json()["id"]
    assert [p["id"] for p in as_pm.json()] == [project_id]
    assert as_outsider.json() == []
    assert [p["id"] for p in as_growth.json()] == [project_id]

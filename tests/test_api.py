from datetime import timedelta

import pytest

from src.models.group import GroupPrivacy
from src.models.group_member import GroupRole
from src.services import invites
from src.utils.dt import utc_now


@pytest.fixture
def people(make_user):
    return {
        "owner": make_user("owner"),
        "moder": make_user("moder"),
        "member": make_user("member"),
        "guest": make_user("guest"),
        "admin": make_user("root", is_admin=True),
    }


@pytest.fixture
def group(make_group, join, people):
    g = make_group(people["owner"])
    join(g, people["moder"], GroupRole.moderator)
    join(g, people["member"])
    return g


def test_healthcheck(client):
    assert client.get("/").status_code == 200


def test_create_and_list_groups(client, auth, people):
    auth.login(people["guest"])
    r = client.post("/api/groups", json={"name": "Climbers", "privacy": "open"})
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["owner_id"] == people["guest"].id
    assert body["privacy"] == "open"

    mine = client.get("/api/groups").json()
    assert [g["id"] for g in mine] == [body["id"]]


def test_create_group_requires_login(client):
    r = client.post("/api/groups", json={"name": "Climbers"})
    assert r.status_code == 401


def test_member_gate(client, auth, people, group):
    auth.logout()
    assert client.get(f"/api/groups/{group.id}").status_code == 401

    auth.login(people["guest"])
    r = client.get(f"/api/groups/{group.id}")
    assert r.status_code == 403
    assert r.json()["detail"]["code"] == "forbidden"

    auth.login(people["member"])
    assert client.get(f"/api/groups/{group.id}").status_code == 200
    assert client.get("/api/groups/99999").status_code == 404


def test_update_group_privacy_owner_only(client, auth, people, group):
    auth.login(people["moder"])
    assert client.patch(f"/api/groups/{group.id}", json={"name": "New name"}).status_code == 200
    assert client.patch(f"/api/groups/{group.id}", json={"privacy": "open"}).status_code == 403

    auth.login(people["member"])
    assert client.patch(f"/api/groups/{group.id}", json={"name": "x"}).status_code == 403

    auth.login(people["owner"])
    r = client.patch(f"/api/groups/{group.id}", json={"privacy": "owner_invite"})
    assert r.status_code == 200
    assert r.json()["privacy"] == "owner_invite"
    assert r.json()["name"] == "New name"


def test_delete_group_owner_or_admin(client, auth, people, make_group):
    g1 = make_group(people["owner"], name="One")
    g2 = make_group(people["owner"], name="Two")

    auth.login(people["member"])
    assert client.delete(f"/api/groups/{g1.id}").status_code == 403

    auth.login(people["owner"])
    assert client.delete(f"/api/groups/{g1.id}").status_code == 204

    auth.login(people["admin"])
    assert client.delete(f"/api/groups/{g2.id}").status_code == 204
    assert client.delete(f"/api/groups/{g2.id}").status_code == 404


def test_join_and_leave(client, auth, people, make_group, group):
    open_group = make_group(people["owner"], privacy=GroupPrivacy.open, name="Open")

    auth.login(people["guest"])
    assert client.post(f"/api/groups/{open_group.id}/join").status_code == 200
    assert client.post(f"/api/groups/{open_group.id}/join").status_code == 409
    assert client.post(f"/api/groups/{group.id}/join").status_code == 403
    assert client.post("/api/groups/99999/join").status_code == 404
    assert client.post(f"/api/groups/{open_group.id}/leave").status_code == 204

    auth.login(people["owner"])
    assert client.post(f"/api/groups/{group.id}/leave").status_code == 409


def test_members_endpoints(client, auth, people, group):
    auth.login(people["member"])
    r = client.get(f"/api/groups/{group.id}/members")
    assert r.status_code == 200
    assert [m["role"] for m in r.json()] == ["owner", "moderator", "member"]
    assert r.json()[0]["user"]["username"] == "owner"

    assert client.patch(
        f"/api/groups/{group.id}/members/{people['member'].id}", json={"role": "moderator"}
    ).status_code == 403

    auth.login(people["owner"])
    r = client.patch(f"/api/groups/{group.id}/members/{people['member'].id}", json={"role": "moderator"})
    assert r.status_code == 200
    assert r.json()["role"] == "moderator"

    assert client.patch(
        f"/api/groups/{group.id}/members/{people['owner'].id}", json={"role": "member"}
    ).status_code == 400
    assert client.patch(
        f"/api/groups/{group.id}/members/{people['moder'].id}", json={"role": "owner"}
    ).status_code == 400
    assert client.delete(f"/api/groups/{group.id}/members/{people['guest'].id}").status_code == 404
    assert client.delete(f"/api/groups/{group.id}/members/{people['member'].id}").status_code == 204

    auth.login(people["admin"])
    assert client.delete(f"/api/groups/{group.id}/members/{people['owner'].id}").status_code == 409


def test_invite_create_and_list(client, auth, people, group, monkeypatch):
    monkeypatch.setattr(invites, "_random_code", lambda length: "AB12CD34")

    auth.login(people["member"])
    assert client.post(f"/api/groups/{group.id}/invites", json={}).status_code == 403

    auth.login(people["moder"])
    r = client.post(f"/api/groups/{group.id}/invites", json={})
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["code"] == "AB12CD34"
    assert body["state"] == "active"
    assert body["one_time_use"] is True

    listed = client.get(f"/api/groups/{group.id}/invites").json()
    assert [i["id"] for i in listed] == [body["id"]]


def test_invite_create_validation_errors(client, auth, people, group):
    auth.login(people["owner"])
    past = (utc_now() - timedelta(hours=1)).isoformat()
    r = client.post(
        f"/api/groups/{group.id}/invites",
        json={"username": "ghost", "expires_at": past},
    )
    assert r.status_code == 422
    detail = r.json()["detail"]
    assert detail["code"] == "validation_error"
    assert set(detail["fields"]) == {"username", "expires_at"}


def test_owner_invite_group_blocks_moderator(client, auth, people, make_group, join):
    g = make_group(people["owner"], privacy=GroupPrivacy.owner_invite, name="Strict")
    join(g, people["moder"], GroupRole.moderator)

    auth.login(people["moder"])
    assert client.post(f"/api/groups/{g.id}/invites", json={}).status_code == 403

    auth.login(people["owner"])
    assert client.post(f"/api/groups/{g.id}/invites", json={}).status_code == 201


def test_invite_patch(client, auth, people, group):
    auth.login(people["owner"])
    created = client.post(f"/api/groups/{group.id}/invites", json={"one_time_use": False}).json()

    future = (utc_now() + timedelta(days=3)).isoformat()
    r = client.patch(
        f"/api/groups/{group.id}/invites/{created['id']}",
        json={"one_time_use": True, "expires_at": future},
    )
    assert r.status_code == 200, r.text
    assert r.json()["one_time_use"] is True
    assert r.json()["expires_at"] is not None

    assert client.patch(f"/api/groups/{group.id}/invites/99999", json={}).status_code == 404


def test_preview_and_redeem(client, auth, people, group):
    auth.login(people["moder"])
    code = client.post(f"/api/groups/{group.id}/invites", json={}).json()["code"]

    auth.login(people["guest"])
    preview = client.get(f"/api/invites/{code.lower()}")
    assert preview.status_code == 200
    assert preview.json()["group"]["id"] == group.id
    assert preview.json()["already_member"] is False

    r = client.post(f"/api/invites/{code}/redeem")
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "success"
    assert r.json()["membership"]["role"] == "member"

    assert client.post(f"/api/invites/{code}/redeem").status_code == 409

    auth.login(people["admin"])
    r = client.post(f"/api/invites/{code}/redeem")
    assert r.status_code == 410
    assert r.json()["detail"]["code"] == "invite_exhausted"

    assert client.post("/api/invites/NOPE0000/redeem").status_code == 404
    assert client.get("/api/invites/NOPE0000").status_code == 404


def test_targeted_invite_over_http(client, auth, people, group):
    auth.login(people["owner"])
    code = client.post(f"/api/groups/{group.id}/invites", json={"username": "guest"}).json()["code"]

    auth.login(people["admin"])
    assert client.get(f"/api/invites/{code}").status_code == 404
    assert client.post(f"/api/invites/{code}/redeem").status_code == 403

    auth.login(people["guest"])
    assert client.get(f"/api/invites/{code}").json()["personal"] is True
    assert client.post(f"/api/invites/{code}/redeem").status_code == 200


def test_redeem_requires_login(client):
    assert client.post("/api/invites/AB12CD34/redeem").status_code == 401

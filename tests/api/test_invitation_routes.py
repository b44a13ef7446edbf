import uuid
from datetime import datetime, timezone

import pytest

from fleetdesk.models.company import Company
from fleetdesk.models.dispatcher_association import DispatcherAssociation
from fleetdesk.models.driver_association import DriverAssociation
from fleetdesk.models.profile import Profile


def _create_profile(db, user_id, role):
    db.add(Profile(id=user_id, email=f"{user_id}@example.com", role=role))
    db.commit()


def _generate(client, kind="driver", **body):
    response = client.post(f"/{kind}-invitations/codes", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_generate_driver_code(client, owner_company):
    data = _generate(client, expires_in_days=7)

    assert len(data["code"]) == 8
    assert data["display_code"] == f"{data['code'][:4]}-{data['code'][4:]}"
    assert data["association"]["status"] == "pending"
    assert data["association"]["company_id"] == str(owner_company.id)
    assert data["association"]["display_code"] == data["display_code"]
    assert data["association"]["fee_percentage"] is None


def test_generate_dispatcher_code_with_fee(client, owner_company):
    data = _generate(client, kind="dispatcher", fee_percentage=15)

    assert data["association"]["fee_percentage"] == 15.0


def test_generate_dispatcher_code_rejects_fee_out_of_range(client, owner_company):
    response = client.post("/dispatcher-invitations/codes", json={"fee_percentage": 101})

    assert response.status_code == 422


def test_generate_code_requires_owner(client, db, owner_company, current_user):
    _create_profile(db, "driver-1", "driver")
    current_user["user_id"] = "driver-1"

    response = client.post("/driver-invitations/codes", json={})

    assert response.status_code == 403


def test_generate_code_requires_profile(client, current_user):
    current_user["user_id"] = "nobody"

    response = client.post("/driver-invitations/codes", json={})

    assert response.status_code == 404


def test_preview_and_redeem_flow(client, db, owner_company, current_user):
    _create_profile(db, "driver-1", "driver")
    code = _generate(client)["display_code"]

    current_user["user_id"] = "driver-1"
    preview = client.get(f"/driver-invitations/codes/{code.lower()}/preview")
    assert preview.status_code == 200
    assert preview.json()["company_name"] == "Acme Freight"

    redeemed = client.post(f"/driver-invitations/codes/{code}/redeem")
    assert redeemed.status_code == 200
    body = redeemed.json()
    assert body["status"] == "active"
    assert body["invitee_id"] == "driver-1"
    assert body["invite_code"] is None

    again = client.post(f"/driver-invitations/codes/{code}/redeem")
    assert again.status_code == 409

    mine = client.get("/driver-invitations/me")
    assert [row["status"] for row in mine.json()] == ["active"]

    current_user["user_id"] = "owner-1"
    members = client.get("/driver-invitations/members")
    assert [row["invitee_id"] for row in members.json()] == ["driver-1"]
    assert client.get("/driver-invitations/codes").json() == []


@pytest.mark.parametrize(
    "code, status_code",
    [
        ("ZZZZ-9999", 400),
        ("short", 400),
    ],
)
def test_redeem_invalid_code(client, owner_company, code, status_code):
    response = client.post(f"/driver-invitations/codes/{code}/redeem")

    assert response.status_code == status_code


def test_redeem_expired_code(client, db, owner_company, current_user):
    data = _generate(client)
    row = db.query(DriverAssociation).filter(DriverAssociation.invite_code == data["code"]).one()
    row.expires_at = datetime(2000, 1, 1, tzinfo=timezone.utc)
    db.commit()

    current_user["user_id"] = "driver-1"
    response = client.post(f"/driver-invitations/codes/{data['code']}/redeem")

    assert response.status_code == 410


def test_redeem_used_code_by_someone_else(client, owner_company, current_user):
    code = _generate(client)["code"]
    current_user["user_id"] = "driver-1"
    assert client.post(f"/driver-invitations/codes/{code}/redeem").status_code == 200

    current_user["user_id"] = "driver-2"
    response = client.post(f"/driver-invitations/codes/{code}/redeem")

    assert response.status_code == 409
    assert response.json()["detail"] == "This invite code has already been used"


def test_revoke_unused_code(client, db, owner_company):
    data = _generate(client)

    response = client.delete(f"/driver-invitations/codes/{data['association']['id']}")

    assert response.status_code == 200
    assert response.json() == {"deleted": True, "association": None}
    assert db.query(DriverAssociation).count() == 0


def test_revoke_used_code_deactivates(client, owner_company, current_user):
    data = _generate(client)
    current_user["user_id"] = "driver-1"
    client.post(f"/driver-invitations/codes/{data['code']}/redeem")

    current_user["user_id"] = "owner-1"
    response = client.delete(f"/driver-invitations/codes/{data['association']['id']}")

    assert response.status_code == 200
    assert response.json()["deleted"] is False
    assert response.json()["association"]["status"] == "inactive"


def test_revoke_code_by_non_owner(client, owner_company, current_user):
    data = _generate(client)
    current_user["user_id"] = "driver-1"

    response = client.delete(f"/driver-invitations/codes/{data['association']['id']}")

    assert response.status_code == 403


def test_revoke_unknown_code(client, owner_company):
    response = client.delete(f"/driver-invitations/codes/{uuid.uuid4()}")

    assert response.status_code == 404


def test_member_status_and_removal(client, owner_company, current_user):
    data = _generate(client)
    association_id = data["association"]["id"]
    current_user["user_id"] = "driver-1"
    client.post(f"/driver-invitations/codes/{data['code']}/redeem")
    current_user["user_id"] = "owner-1"

    suspended = client.patch(f"/driver-invitations/members/{association_id}/status", json={"status": "suspended"})
    assert suspended.status_code == 200
    assert suspended.json()["status"] == "suspended"

    invalid = client.patch(f"/driver-invitations/members/{association_id}/status", json={"status": "pending"})
    assert invalid.status_code == 422

    removed = client.delete(f"/driver-invitations/members/{association_id}")
    assert removed.status_code == 200
    assert removed.json()["status"] == "inactive"

    removed_again = client.delete(f"/driver-invitations/members/{association_id}")
    assert removed_again.status_code == 200
    assert removed_again.json()["status"] == "inactive"


def test_remove_unused_code_as_member_fails(client, owner_company):
    data = _generate(client)

    response = client.delete(f"/driver-invitations/members/{data['association']['id']}")

    assert response.status_code == 400


def test_update_dispatcher_fee(client, owner_company, current_user):
    data = _generate(client, kind="dispatcher", fee_percentage=10)
    association_id = data["association"]["id"]
    current_user["user_id"] = "dispatcher-1"
    client.post(f"/dispatcher-invitations/codes/{data['code']}/redeem")
    current_user["user_id"] = "owner-1"

    response = client.patch(f"/dispatcher-invitations/members/{association_id}/fee", json={"fee_percentage": 8.5})
    assert response.status_code == 200
    assert response.json()["fee_percentage"] == 8.5
    assert response.json()["status"] == "active"

    too_high = client.patch(f"/dispatcher-invitations/members/{association_id}/fee", json={"fee_percentage": 120})
    assert too_high.status_code == 422


def test_driver_router_has_no_fee_route(client, owner_company):
    response = client.patch(f"/driver-invitations/members/{uuid.uuid4()}/fee", json={"fee_percentage": 1})

    assert response.status_code in (404, 405)


def test_dispatcher_preview_includes_fee(client, owner_company):
    code = _generate(client, kind="dispatcher")["code"]

    response = client.get(f"/dispatcher-invitations/codes/{code}/preview")

    assert response.status_code == 200
    assert response.json()["fee_percentage"] == 12.0


def test_rejoin_reactivates_previous_membership(client, db, owner_company, current_user):
    first = _generate(client, kind="dispatcher")
    current_user["user_id"] = "dispatcher-1"
    client.post(f"/dispatcher-invitations/codes/{first['code']}/redeem")
    current_user["user_id"] = "owner-1"
    client.delete(f"/dispatcher-invitations/members/{first['association']['id']}")

    second = _generate(client, kind="dispatcher")
    current_user["user_id"] = "dispatcher-1"
    response = client.post(f"/dispatcher-invitations/codes/{second['code']}/redeem")

    assert response.status_code == 200
    assert response.json()["id"] == first["association"]["id"]
    assert db.query(DispatcherAssociation).count() == 1


def test_members_listing_scoped_to_owned_company(client, db, owner_company, current_user):
    other = Company(name="Other", owner_id="owner-2")
    db.add(other)
    db.commit()
    db.add(Profile(id="owner-2", role="owner", company_id=other.id))
    db.commit()

    _generate(client)
    current_user["user_id"] = "owner-2"

    assert client.get("/driver-invitations/codes").json() == []


def test_my_companies_lists_only_active_memberships(client, db, owner_company, current_user):
    first = _generate(client)
    current_user["user_id"] = "driver-1"
    client.post(f"/driver-invitations/codes/{first['code']}/redeem")

    mine = client.get("/driver-invitations/me/companies")
    assert mine.status_code == 200
    assert mine.json() == [{"id": str(owner_company.id), "name": "Acme Freight", "owner_id": "owner-1"}]

    current_user["user_id"] = "owner-1"
    client.delete(f"/driver-invitations/members/{first['association']['id']}")
    current_user["user_id"] = "driver-1"

    assert client.get("/driver-invitations/me/companies").json() == []

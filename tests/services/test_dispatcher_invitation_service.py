from decimal import Decimal

import pytest

from fleetdesk.auth.session import CallerSession
from fleetdesk.models.dispatcher_association import DispatcherAssociation
from fleetdesk.models.profile import Profile
from fleetdesk.services.invitation_service import DispatcherInvitationService
from fleetdesk.services.invite_code_service import format_invite_code


DISPATCHER_1 = CallerSession(user_id="dispatcher-1", role="dispatcher")


def _redeemed_member(service, owner, company, caller=DISPATCHER_1, **kwargs):
    generated = service.generate_code(owner, company.id, **kwargs)
    assert generated.success, generated.error
    redeemed = service.redeem_code(caller, generated.code)
    assert redeemed.success, redeemed.error
    return redeemed.association.id


def test_generate_code_uses_default_fee(db, owner, owner_company):
    service = DispatcherInvitationService(db)

    result = service.generate_code(owner, owner_company.id)

    assert result.success
    assert result.association.fee_percentage == Decimal("12.00")


@pytest.mark.parametrize("fee", [0, 100, "7.5", 15.25])
def test_generate_code_accepts_fee_in_range(db, owner, owner_company, fee):
    service = DispatcherInvitationService(db)

    result = service.generate_code(owner, owner_company.id, fee_percentage=fee)

    assert result.success
    assert result.association.fee_percentage == Decimal(str(fee))


@pytest.mark.parametrize("fee", [-1, 100.01, "abc", None, True, float("nan")])
def test_generate_code_rejects_invalid_fee(db, owner, owner_company, fee):
    service = DispatcherInvitationService(db)

    result = service.generate_code(owner, owner_company.id, fee_percentage=fee)

    assert not result.success
    assert result.error_code == "invalid_fee"
    assert db.query(DispatcherAssociation).count() == 0


def test_preview_includes_fee(db, owner, owner_company):
    service = DispatcherInvitationService(db)
    generated = service.generate_code(owner, owner_company.id, fee_percentage=15)

    result = service.preview_code(format_invite_code(generated.code))

    assert result.success
    assert result.preview.fee_percentage == 15.0
    assert result.preview.company_name == "Acme Freight"


def test_update_fee_keeps_status(db, owner, owner_company):
    service = DispatcherInvitationService(db)
    association_id = _redeemed_member(service, owner, owner_company)

    result = service.update_fee(owner, association_id, 9.5)

    assert result.success
    assert result.association.fee_percentage == Decimal("9.50")
    assert result.association.status == "active"


def test_update_fee_rejects_out_of_range(db, owner, owner_company):
    service = DispatcherInvitationService(db)
    association_id = _redeemed_member(service, owner, owner_company, fee_percentage=10)

    result = service.update_fee(owner, association_id, 150)

    assert result.error_code == "invalid_fee"
    assert service.repo.get_by_id(db, association_id).fee_percentage == Decimal("10.00")


def test_update_fee_by_non_owner(db, owner, owner_company):
    service = DispatcherInvitationService(db)
    association_id = _redeemed_member(service, owner, owner_company)

    result = service.update_fee(DISPATCHER_1, association_id, 1)

    assert result.error_code == "unauthorized"


def test_dispatcher_lifecycle_end_to_end(db, owner, owner_company):
    db.add(Profile(id="dispatcher-1", email="d1@example.com", role="dispatcher"))
    db.commit()
    service = DispatcherInvitationService(db)

    # Owner issues a code and shares it as XXXX-XXXX
    generated = service.generate_code(owner, owner_company.id, expires_in_days=7, fee_percentage=15)
    display = format_invite_code(generated.code)
    assert len(display) == 9 and display[4] == "-"

    # Dispatcher previews and joins
    assert service.preview_code(display).preview.fee_percentage == 15.0
    joined = service.redeem_code(DISPATCHER_1, display)
    assert joined.success
    member_id = joined.association.id

    members = service.list_active(owner_company.id)
    assert [m.dispatcher_id for m in members] == ["dispatcher-1"]
    assert service.list_unused_codes(owner_company.id) == []

    # Owner removes the dispatcher; the row is kept as history
    assert service.remove_member(owner, member_id).association.status == "inactive"
    assert service.list_active(owner_company.id) == []

    # A fresh code brings the same row back with its fee
    again = service.generate_code(owner, owner_company.id, fee_percentage=20)
    rejoined = service.redeem_code(DISPATCHER_1, again.code)
    assert rejoined.success
    assert rejoined.association.id == member_id
    assert rejoined.association.fee_percentage == Decimal("15.00")
    assert db.query(DispatcherAssociation).count() == 1

    profile = db.query(Profile).filter(Profile.id == "dispatcher-1").one()
    assert profile.company_id == owner_company.id

from unittest.mock import MagicMock

from fleetdesk.models.profile import Profile
from fleetdesk.repositories.company_repository import CompanyRepository


def test_create_company_commits():
    fake_db = MagicMock()

    company = CompanyRepository.create(fake_db, name="Acme Freight", owner_id="owner-1")

    fake_db.add.assert_called_once_with(company)
    fake_db.commit.assert_called_once()
    fake_db.refresh.assert_called_once_with(company)
    assert company.owner_id == "owner-1"


def test_list_by_ids_skips_query_when_empty():
    fake_db = MagicMock()

    assert CompanyRepository.list_by_ids(fake_db, set()) == []
    fake_db.query.assert_not_called()


def test_get_by_owner(db):
    company = CompanyRepository.create(db, name="First", owner_id="owner-9")

    assert CompanyRepository.get_by_owner(db, "owner-9").id == company.id
    assert CompanyRepository.get_by_owner(db, "nobody") is None


def test_backfill_profile_company_only_fills_empty_pointer(db):
    first = CompanyRepository.create(db, name="First", owner_id="owner-9")
    second = CompanyRepository.create(db, name="Second", owner_id="owner-8")
    db.add(Profile(id="driver-1", role="driver"))
    db.commit()

    assert CompanyRepository.backfill_profile_company(db, "driver-1", first.id) == 1
    assert CompanyRepository.backfill_profile_company(db, "driver-1", second.id) == 0

    assert CompanyRepository.get_profile(db, "driver-1").company_id == first.id


def test_backfill_profile_company_without_profile(db):
    company = CompanyRepository.create(db, name="First", owner_id="owner-9")

    assert CompanyRepository.backfill_profile_company(db, "ghost", company.id) == 0

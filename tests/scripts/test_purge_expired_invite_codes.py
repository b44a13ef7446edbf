import importlib.util
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path

import pytest

from fleetdesk.auth.session import CallerSession
from fleetdesk.models.driver_association import DriverAssociation
from fleetdesk.services.invitation_service import DispatcherInvitationService, DriverInvitationService
from fleetdesk.utils.time_utils import utcnow


SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "purge_expired_invite_codes.py"


@pytest.fixture
def purge_script(db, monkeypatch):
    spec = importlib.util.spec_from_file_location("purge_expired_invite_codes", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    @contextmanager
    def _shared_session():
        yield db

    monkeypatch.setattr(module, "session_scope", _shared_session)
    return module


def test_purge_script_sweeps_every_kind(db, owner_company, purge_script):
    owner = CallerSession(user_id="owner-1")
    driver_code = DriverInvitationService(db).generate_code(owner, owner_company.id).association.id
    DispatcherInvitationService(db).generate_code(owner, owner_company.id)

    row = db.query(DriverAssociation).filter(DriverAssociation.id == driver_code).one()
    row.expires_at = utcnow() - timedelta(days=3)
    db.commit()

    assert purge_script.main(["--grace-days", "7"]) == 0
    assert purge_script.main([]) == 1
    assert db.query(DriverAssociation).count() == 0

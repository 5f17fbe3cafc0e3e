import pytest

from app.core.errors import InvalidStateError, NotFoundError
from app.models.entities import Account, AuditLog, Family, MemberRecord, MemberRequest, Role
from app.services import accounts, member_requests, purge, roles
from app.services.family import MemberDetails
from app.services.purge import DependentSource, hard_delete_account


def _comments(counts, released):
    return DependentSource(
        name="comments",
        count=lambda db, account_id: counts.get(account_id, 0),
        release=lambda db, account_id: released.append(account_id),
    )


def test_primary_with_records_is_blocked_without_cascade(db_session, make_account, make_member):
    head = make_account()
    make_member(head, "Kiran")
    make_member(head, "Meera")

    outcome = hard_delete_account(db_session, head.id, cascade=False, actor_id=None)
    db_session.commit()

    assert outcome.deleted is False
    assert outcome.dependencies.as_dict() == {
        "familyMembers": 2,
        "familyUserAccounts": 0,
        "totalFamilyMembers": 2,
        "isPrimaryAccount": True,
    }
    assert db_session.get(Account, head.id) is not None
    assert db_session.query(MemberRecord).count() == 2


def test_primary_with_sibling_accounts_is_blocked(db_session, make_account):
    head = make_account("Ramesh")
    make_account("Sita", family=db_session.get(Family, head.family_id), is_primary=False)

    outcome = hard_delete_account(db_session, head.id, cascade=False, actor_id=None)
    assert outcome.deleted is False
    assert outcome.dependencies.family_user_accounts == 1
    assert outcome.dependencies.total_family_members == 1


def test_cascade_deletes_records_and_sibling_accounts(db_session, make_account, make_member):
    admin = make_account("Admin", role="admin")
    head = make_account("Ramesh")
    family = db_session.get(Family, head.family_id)
    sibling = make_account("Sita", family=family, is_primary=False)
    kept = make_member(head, "Kiran", linked_account_id=sibling.id)
    sibling.linked_member_record_id = kept.id
    sibling_owned = make_member(sibling, "Baby")
    role = roles.create_role(db_session, name="Treasurer", requested_grants={"canViewReports": True}, created_by=head.id)
    db_session.commit()

    outcome = hard_delete_account(db_session, head.id, cascade=True, actor_id=admin.id, reason="cleanup")
    db_session.commit()

    assert outcome.deleted
    assert sorted(outcome.deleted_account_ids) == sorted([head.id, sibling.id])
    assert sorted(outcome.deleted_member_ids) == sorted([kept.id, sibling_owned.id])
    assert db_session.get(Account, head.id) is None
    assert db_session.get(Account, sibling.id) is None
    assert db_session.query(MemberRecord).count() == 0
    assert db_session.get(Role, role.id).created_by_id is None
    assert db_session.get(Account, admin.id) is not None
    entry = db_session.query(AuditLog).filter_by(action="account_hard_deleted").one()
    assert entry.target_account_id == head.id
    assert entry.details["cascade"] is True


def test_non_primary_records_pass_to_family_primary(db_session, make_account, make_member):
    head = make_account("Ramesh")
    manager = make_account("Sita", family=db_session.get(Family, head.family_id), is_primary=False)
    record = make_member(manager, "Baby")

    outcome = hard_delete_account(db_session, manager.id, cascade=False, actor_id=None)
    db_session.commit()

    assert outcome.deleted
    assert outcome.deleted_member_ids == []
    moved = db_session.get(MemberRecord, record.id)
    assert moved.owner_account_id == head.id
    assert moved.family_id == db_session.get(Account, head.id).family_id


def test_external_dependents_block_and_are_released_on_cascade(db_session, make_account):
    head = make_account("Ramesh")
    member = make_account("Sita", family=db_session.get(Family, head.family_id), is_primary=False)
    released = []
    source = _comments({member.id: 3}, released)

    blocked = hard_delete_account(db_session, member.id, cascade=False, actor_id=None, sources=[source])
    assert blocked.deleted is False
    assert blocked.dependencies.as_dict()["comments"] == 3
    assert blocked.dependencies.as_dict()["isPrimaryAccount"] is False
    assert released == []

    done = hard_delete_account(db_session, member.id, cascade=True, actor_id=None, sources=[source])
    db_session.commit()
    assert done.deleted
    assert released == [member.id]
    assert db_session.get(Account, head.id).is_primary


def test_registered_sources_are_consulted(db_session, make_account):
    account = make_account()
    purge.register_dependent_source(_comments({account.id: 1}, []))

    outcome = hard_delete_account(db_session, account.id, cascade=False, actor_id=None)
    assert outcome.deleted is False
    assert outcome.dependencies.external == {"comments": 1}


def test_hard_delete_missing_account(db_session, system_roles):
    with pytest.raises(NotFoundError):
        hard_delete_account(db_session, 999, cascade=True, actor_id=None)


def test_restore_after_hard_delete_is_invalid_state(db_session, make_account):
    account = make_account()
    account_id = account.id
    hard_delete_account(db_session, account_id, cascade=False, actor_id=None)
    db_session.commit()

    with pytest.raises(InvalidStateError):
        accounts.restore_account(db_session, account_id, actor_id=None)


def test_soft_deleted_account_can_be_hard_deleted(db_session, make_account):
    account = make_account()
    accounts.soft_delete_account(db_session, account.id, actor_id=None)
    db_session.commit()

    outcome = hard_delete_account(db_session, account.id, cascade=False, actor_id=None)
    db_session.commit()
    assert outcome.deleted


def test_hard_delete_removes_member_requests(db_session, make_account):
    admin = make_account("Admin", role="admin")
    head = make_account("Ramesh")
    relative = make_account("Sita", family=db_session.get(Family, head.family_id), is_primary=False)
    own_request = member_requests.create_request(
        db_session, head.id, MemberDetails(relationship_to_owner="Son", first_name="Kiran", last_name="Patel")
    )
    relative_request = member_requests.create_request(
        db_session, relative.id, MemberDetails(relationship_to_owner="Son", first_name="Mohan", last_name="Patel")
    )
    db_session.commit()
    approval = member_requests.approve_request(db_session, admin.id, relative_request.id)
    record_id = approval.outcome.record.id
    own_request_id = own_request.id

    outcome = hard_delete_account(db_session, head.id, cascade=True, actor_id=admin.id)
    db_session.commit()

    assert outcome.deleted
    assert record_id in outcome.deleted_member_ids
    assert db_session.get(MemberRequest, own_request_id) is None
    assert db_session.query(MemberRequest).count() == 0

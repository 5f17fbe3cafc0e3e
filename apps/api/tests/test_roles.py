import pytest

from app.core.errors import ConflictError, ForbiddenError, InvalidArgumentError, NotFoundError
from app.models.entities import Account, AuditLog, Role
from app.services import roles


def test_derive_role_key():
    assert roles.derive_role_key("Event Manager") == "event_manager"
    assert roles.derive_role_key("  Youth -- Wing!! ") == "youth_wing"


def test_system_roles_are_seeded_with_expected_grants(system_roles):
    admin = system_roles["admin"]
    user = system_roles["user"]
    committee = system_roles["committee"]
    assert all(admin.permissions.values())
    assert {key for key, value in user.permissions.items() if value} == {"canViewEvents", "canViewCommittee"}
    assert roles.has_permission(committee, "canViewReports")
    assert not roles.has_permission(committee, "canManageRoles")
    assert all(role.is_system_role for role in system_roles.values())


def test_initialize_is_idempotent_and_assigns_default_role(db_session, system_roles, make_account):
    account = make_account()
    account.role_id = None
    db_session.commit()

    again = roles.initialize_system_roles(db_session)
    db_session.commit()

    assert again["admin"].id == system_roles["admin"].id
    assert db_session.query(Role).count() == 3
    db_session.refresh(account)
    assert account.role_id == system_roles["user"].id


def test_create_role_keeps_only_catalog_booleans(db_session, system_roles):
    role = roles.create_role(
        db_session,
        name="Event Manager",
        description="Runs events",
        requested_grants={"canCreateEvents": True, "canFlyPlanes": True, "canEditEvents": "yes"},
    )
    db_session.commit()

    assert role.key == "event_manager"
    assert role.permissions["canCreateEvents"] is True
    assert role.permissions["canEditEvents"] is False
    assert "canFlyPlanes" not in role.permissions
    assert not role.is_system_role


@pytest.mark.parametrize("name", ["ab", "x" * 51, "   "])
def test_create_role_rejects_bad_names(db_session, system_roles, name):
    with pytest.raises(InvalidArgumentError):
        roles.create_role(db_session, name=name, requested_grants={"canViewEvents": True})


def test_create_role_requires_a_true_grant(db_session, system_roles):
    with pytest.raises(InvalidArgumentError):
        roles.create_role(db_session, name="Nobody", requested_grants={"canViewEvents": False})


def test_create_role_conflicts_with_active_name(db_session, system_roles):
    roles.create_role(db_session, name="Treasurer", requested_grants={"canViewReports": True})
    db_session.commit()
    with pytest.raises(ConflictError):
        roles.create_role(db_session, name="treasurer", requested_grants={"canViewReports": True})


def test_create_role_revives_disabled_role(db_session, system_roles):
    role = roles.create_role(db_session, name="Treasurer", requested_grants={"canViewReports": True})
    db_session.commit()
    roles.delete_role(db_session, role.id)
    db_session.commit()

    revived = roles.create_role(db_session, name="Treasurer", requested_grants={"canExportData": True})
    db_session.commit()

    assert revived.id == role.id
    assert revived.is_active
    assert revived.permissions["canExportData"] is True
    assert revived.permissions["canViewReports"] is False


def test_update_role_replaces_permission_map(db_session, system_roles):
    role = roles.create_role(db_session, name="Treasurer", requested_grants={"canViewReports": True})
    db_session.commit()
    before = role.permissions

    updated = roles.update_role(db_session, role.id, grants={"canExportData": True, "bogus": True})
    db_session.commit()

    assert updated.permissions is not before
    assert updated.permissions["canExportData"] is True
    assert updated.permissions["canViewReports"] is True
    assert "bogus" not in updated.permissions


def test_update_custom_role_must_keep_a_true_grant(db_session, system_roles):
    role = roles.create_role(db_session, name="Treasurer", requested_grants={"canViewReports": True})
    db_session.commit()
    with pytest.raises(InvalidArgumentError):
        roles.update_role(db_session, role.id, grants={"canViewReports": False})


def test_update_role_rename_conflict(db_session, system_roles):
    roles.create_role(db_session, name="Treasurer", requested_grants={"canViewReports": True})
    other = roles.create_role(db_session, name="Secretary", requested_grants={"canViewReports": True})
    db_session.commit()
    with pytest.raises(ConflictError):
        roles.update_role(db_session, other.id, name="Treasurer")


def test_system_role_cannot_be_renamed(db_session, system_roles):
    with pytest.raises(ForbiddenError):
        roles.update_role(db_session, system_roles["user"].id, name="Member")


def test_system_role_grants_can_be_edited(db_session, system_roles):
    updated = roles.update_role(db_session, system_roles["user"].id, grants={"canViewEvents": False})
    db_session.commit()
    assert updated.permissions["canViewEvents"] is False


def test_admin_cannot_lose_critical_capabilities(db_session, system_roles):
    admin_id = system_roles["admin"].id
    with pytest.raises(ForbiddenError) as exc_info:
        roles.update_role(db_session, admin_id, grants={"canManageRoles": False})
    assert exc_info.value.detail["permissions"] == ["canManageRoles"]
    db_session.rollback()
    assert db_session.get(Role, admin_id).permissions["canManageRoles"] is True


def test_update_missing_role_is_not_found(db_session, system_roles):
    with pytest.raises(NotFoundError):
        roles.update_role(db_session, 999, description="nope")


def test_delete_system_role_is_forbidden(db_session, system_roles):
    with pytest.raises(ForbiddenError):
        roles.delete_role(db_session, system_roles["committee"].id)


def test_delete_role_in_use_conflicts(db_session, system_roles, make_account):
    role = roles.create_role(db_session, name="Treasurer", requested_grants={"canViewReports": True})
    db_session.commit()
    account = make_account()
    roles.assign_role(db_session, account.id, role.id)
    db_session.commit()

    assert roles.count_role_accounts(db_session, role.id) == 1
    with pytest.raises(ConflictError) as exc_info:
        roles.delete_role(db_session, role.id)
    assert exc_info.value.detail["user_count"] == 1


def test_delete_role_soft_disables(db_session, system_roles):
    role = roles.create_role(db_session, name="Treasurer", requested_grants={"canViewReports": True})
    db_session.commit()
    roles.delete_role(db_session, role.id)
    db_session.commit()

    assert db_session.get(Role, role.id).is_active is False
    assert role.id not in [item.id for item in roles.list_roles(db_session)]
    assert role.id in [item.id for item in roles.list_roles(db_session, include_inactive=True)]


def test_has_permission_fails_closed(system_roles):
    user = system_roles["user"]
    assert roles.has_permission(user, "canViewEvents")
    assert not roles.has_permission(user, "canDeleteUsers")
    assert not roles.has_permission(user, "canFlyPlanes")
    assert not roles.has_permission(None, "canViewEvents")


def test_assign_role_records_audit_entry(db_session, system_roles, make_account):
    account = make_account()
    roles.assign_role(db_session, account.id, system_roles["committee"].id, assigned_by=account.id)
    db_session.commit()

    assert db_session.get(Account, account.id).role_id == system_roles["committee"].id
    entry = db_session.query(AuditLog).filter_by(action="role_changed").one()
    assert entry.target_account_id == account.id
    assert entry.details["new_role_key"] == "committee"


def test_assign_inactive_role_is_not_found(db_session, system_roles, make_account):
    role = roles.create_role(db_session, name="Treasurer", requested_grants={"canViewReports": True})
    db_session.commit()
    roles.delete_role(db_session, role.id)
    db_session.commit()
    account = make_account()

    with pytest.raises(NotFoundError):
        roles.assign_role(db_session, account.id, role.id)
    with pytest.raises(NotFoundError):
        roles.assign_role(db_session, 999, system_roles["user"].id)

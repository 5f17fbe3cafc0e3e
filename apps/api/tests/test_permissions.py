import pytest

from app.core.errors import InvalidArgumentError
from app.services import permissions


def test_catalog_keys_are_unique_and_grouped():
    keys = permissions.all_keys()
    assert len(keys) == len(set(keys))
    grouped = permissions.by_category()
    assert sum(len(caps) for caps in grouped.values()) == len(keys)
    assert "canManageRoles" in [cap.key for cap in grouped["SETTINGS"]]
    assert "canApproveFamilyMembers" in [cap.key for cap in grouped["FAMILY_MANAGEMENT"]]


def test_default_grant_set_denies_everything():
    grants = permissions.default_grant_set()
    assert set(grants) == set(permissions.all_keys())
    assert not any(grants.values())


def test_exists_and_get():
    assert permissions.exists("canViewUsers")
    assert not permissions.exists("canFlyPlanes")
    assert permissions.get("canViewUsers").category == "USER_MANAGEMENT"
    assert permissions.get("canFlyPlanes") is None


def test_validate_keys_rejects_unknown_keys():
    with pytest.raises(InvalidArgumentError) as exc_info:
        permissions.validate_keys(["canViewUsers", "canFlyPlanes"])
    assert exc_info.value.status_code == 400
    assert exc_info.value.detail["invalid"] == ["canFlyPlanes"]


def test_validate_keys_rejects_empty_list():
    with pytest.raises(InvalidArgumentError):
        permissions.validate_keys([])

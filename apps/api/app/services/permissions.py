"""
Capability catalog.

Every named boolean permission the application knows about, grouped by
category. The catalog is fixed at import time; roles store grants against
these keys and anything outside the catalog is treated as not granted.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from app.core.errors import InvalidArgumentError


@dataclass(frozen=True)
class Capability:
    key: str
    label: str
    category: str
    description: str = ""


# Keys used directly by the core.
CAN_VIEW_USERS = "canViewUsers"
CAN_APPROVE_USERS = "canApproveUsers"
CAN_REJECT_USERS = "canRejectUsers"
CAN_DELETE_USERS = "canDeleteUsers"
CAN_CHANGE_ROLES = "canChangeRoles"
CAN_MANAGE_USERS = "canManageUsers"
CAN_BULK_APPROVE_USERS = "canBulkApproveUsers"
CAN_BULK_REJECT_USERS = "canBulkRejectUsers"
CAN_VIEW_FAMILY_MEMBERS = "canViewFamilyMembers"
CAN_APPROVE_FAMILY_MEMBERS = "canApproveFamilyMembers"
CAN_REJECT_FAMILY_MEMBERS = "canRejectFamilyMembers"
CAN_EDIT_FAMILY_MEMBERS = "canEditFamilyMembers"
CAN_DELETE_FAMILY_MEMBERS = "canDeleteFamilyMembers"
CAN_VIEW_PENDING_FAMILY_MEMBERS = "canViewPendingFamilyMembers"
CAN_MANAGE_FAMILY_MEMBERS = "canManageFamilyMembers"
CAN_MANAGE_SETTINGS = "canManageSettings"
CAN_MANAGE_ROLES = "canManageRoles"
CAN_VIEW_ACTIVITY_LOGS = "canViewActivityLogs"

_CATALOG: tuple[Capability, ...] = (
    # USER_MANAGEMENT
    Capability(CAN_VIEW_USERS, "View Users", "USER_MANAGEMENT", "Can see list of all users"),
    Capability(CAN_APPROVE_USERS, "Approve Users", "USER_MANAGEMENT", "Can approve pending registrations"),
    Capability(CAN_REJECT_USERS, "Reject Users", "USER_MANAGEMENT", "Can reject pending registrations"),
    Capability("canEditUsers", "Edit Users", "USER_MANAGEMENT", "Can modify user details"),
    Capability(CAN_DELETE_USERS, "Delete Users", "USER_MANAGEMENT", "Can remove users from system"),
    Capability(CAN_CHANGE_ROLES, "Change User Roles", "USER_MANAGEMENT", "Can assign roles to users"),
    Capability("canDeactivateUsers", "Deactivate Users", "USER_MANAGEMENT", "Can deactivate user accounts"),
    Capability("canSearchUsers", "Search Users", "USER_MANAGEMENT", "Can search and filter users"),
    Capability(CAN_BULK_APPROVE_USERS, "Bulk Approve Users", "USER_MANAGEMENT", "Can approve multiple users at once"),
    Capability(CAN_BULK_REJECT_USERS, "Bulk Reject Users", "USER_MANAGEMENT", "Can reject multiple users at once"),
    Capability(
        CAN_MANAGE_USERS,
        "Manage Users",
        "USER_MANAGEMENT",
        "Can transfer primary accounts and manage user relationships",
    ),
    # FAMILY_MANAGEMENT
    Capability(CAN_VIEW_FAMILY_MEMBERS, "View Family Members", "FAMILY_MANAGEMENT", "Can see family member lists"),
    Capability(
        CAN_APPROVE_FAMILY_MEMBERS,
        "Approve Family Members",
        "FAMILY_MANAGEMENT",
        "Can approve family members (6+ member approval)",
    ),
    Capability(
        CAN_REJECT_FAMILY_MEMBERS, "Reject Family Members", "FAMILY_MANAGEMENT", "Can reject family member requests"
    ),
    Capability(CAN_EDIT_FAMILY_MEMBERS, "Edit Family Members", "FAMILY_MANAGEMENT", "Can modify family member details"),
    Capability(CAN_DELETE_FAMILY_MEMBERS, "Delete Family Members", "FAMILY_MANAGEMENT", "Can remove family members"),
    Capability("canAddFamilyMembers", "Add Family Members", "FAMILY_MANAGEMENT", "Can add new family members"),
    Capability(
        CAN_VIEW_PENDING_FAMILY_MEMBERS,
        "View Pending Family Members",
        "FAMILY_MANAGEMENT",
        "Can see pending family member requests",
    ),
    Capability(
        CAN_MANAGE_FAMILY_MEMBERS,
        "Manage Family Members",
        "FAMILY_MANAGEMENT",
        "Can add/edit family members (only within own family)",
    ),
    # COMMITTEE_MANAGEMENT
    Capability("canManageCommittee", "Manage Committee", "COMMITTEE_MANAGEMENT", "Can add/edit/delete committee members"),
    Capability("canViewCommittee", "View Committee", "COMMITTEE_MANAGEMENT", "Can see committee members list"),
    # EVENT_MANAGEMENT
    Capability("canCreateEvents", "Create Events", "EVENT_MANAGEMENT", "Can add new events"),
    Capability("canEditEvents", "Edit Events", "EVENT_MANAGEMENT", "Can modify existing events"),
    Capability("canDeleteEvents", "Delete Events", "EVENT_MANAGEMENT", "Can remove events"),
    Capability("canViewEvents", "View Events", "EVENT_MANAGEMENT", "Can see events list and details"),
    Capability("canManageEventMedia", "Manage Event Media", "EVENT_MANAGEMENT", "Can upload/remove event media"),
    Capability("canManageEventRSVP", "Manage Event RSVP", "EVENT_MANAGEMENT", "Can view and export RSVP lists"),
    Capability("canModerateEvents", "Moderate Events", "EVENT_MANAGEMENT", "Can approve/reject event requests"),
    # POLL_MANAGEMENT
    Capability("canViewPolls", "View Polls", "POLL_MANAGEMENT", "Can see polls on events"),
    Capability("canVoteInPolls", "Vote in Polls", "POLL_MANAGEMENT", "Can cast votes in polls"),
    Capability("canCreatePolls", "Create Polls", "POLL_MANAGEMENT", "Can create new polls"),
    Capability("canManagePolls", "Manage Polls", "POLL_MANAGEMENT", "Can edit/delete/close any poll"),
    # COMMENT_MANAGEMENT
    Capability("canViewComments", "View Comments", "COMMENT_MANAGEMENT", "Can see comments on events"),
    Capability("canPostComments", "Post Comments", "COMMENT_MANAGEMENT", "Can write comments on events"),
    Capability("canModerateComments", "Moderate Comments", "COMMENT_MANAGEMENT", "Can approve/reject/delete any comments"),
    Capability("canDeleteAnyComment", "Delete Any Comment", "COMMENT_MANAGEMENT", "Can delete any comment"),
    # NOTIFICATION_MANAGEMENT
    Capability("canSendNotifications", "Send Notifications", "NOTIFICATION_MANAGEMENT", "Can send notifications to users"),
    Capability("canManageNotifications", "Manage Notifications", "NOTIFICATION_MANAGEMENT", "Can edit/delete notifications"),
    # MEDIA_MANAGEMENT
    Capability("canUploadMedia", "Upload Media", "MEDIA_MANAGEMENT", "Can upload photos/videos"),
    Capability("canDeleteMedia", "Delete Media", "MEDIA_MANAGEMENT", "Can remove media files"),
    # REPORTS_ANALYTICS
    Capability("canViewReports", "View Reports", "REPORTS_ANALYTICS", "Can access reports and analytics"),
    Capability("canExportData", "Export Data", "REPORTS_ANALYTICS", "Can export data to CSV/Excel"),
    Capability("canViewStats", "View Statistics", "REPORTS_ANALYTICS", "Can view dashboard statistics"),
    # SETTINGS
    Capability(CAN_MANAGE_SETTINGS, "Manage App Settings", "SETTINGS", "Can modify application settings"),
    Capability(CAN_MANAGE_ROLES, "Manage Roles", "SETTINGS", "Can create/edit/delete custom roles"),
    Capability("canManageEnums", "Manage Enums", "SETTINGS", "Can manage enum values and types"),
    # ACTIVITY_LOGS
    Capability(CAN_VIEW_ACTIVITY_LOGS, "View Activity Logs", "ACTIVITY_LOGS", "Can view system activity and audit logs"),
    Capability("canManageActivityLogs", "Manage Activity Logs", "ACTIVITY_LOGS", "Can delete or manage activity logs"),
    # ADMIN_MANAGEMENT
    Capability("canCreateAdmin", "Create Admin Users", "ADMIN_MANAGEMENT", "Can create new admin users"),
    Capability("canManageAdmins", "Manage Admin Users", "ADMIN_MANAGEMENT", "Can edit or remove admin users"),
)

_BY_KEY: dict[str, Capability] = {cap.key: cap for cap in _CATALOG}

if len(_BY_KEY) != len(_CATALOG):
    raise RuntimeError("duplicate capability keys in catalog")


def list_all() -> list[Capability]:
    return list(_CATALOG)


def exists(key: str) -> bool:
    return key in _BY_KEY


def get(key: str) -> Capability | None:
    return _BY_KEY.get(key)


def all_keys() -> list[str]:
    return [cap.key for cap in _CATALOG]


def default_grant_set() -> dict[str, bool]:
    return {cap.key: False for cap in _CATALOG}


def by_category() -> dict[str, list[Capability]]:
    grouped: dict[str, list[Capability]] = {}
    for cap in _CATALOG:
        grouped.setdefault(cap.category, []).append(cap)
    return grouped


def validate_keys(keys: Iterable[str]) -> list[str]:
    checked = list(keys)
    if not checked:
        raise InvalidArgumentError("at least one permission key is required")
    unknown = [key for key in checked if not exists(key)]
    if unknown:
        raise InvalidArgumentError(f"invalid permission: {', '.join(unknown)}", invalid=unknown)
    return checked

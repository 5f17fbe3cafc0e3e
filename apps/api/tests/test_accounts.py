import pytest

from app.core.errors import ConflictError, InvalidArgumentError, InvalidStateError, NotFoundError
from app.models.entities import Account, AccountStatusEnum, AuditLog, DeleteTypeEnum, Family
from app.services import accounts
from app.services.contact import mobile_digits, normalize_email, normalize_mobile
from app.services.passwords import verify_password


def test_normalize_mobile_variants():
    assert normalize_mobile("98765 43210") == "+919876543210"
    assert normalize_mobile("+91 98765-43210") == "+919876543210"
    assert normalize_mobile("09876543210") == "+919876543210"
    assert normalize_mobile(None) is None
    assert mobile_digits("12345") is None
    with pytest.raises(InvalidArgumentError):
        normalize_mobile("12345")
    with pytest.raises(InvalidArgumentError):
        normalize_mobile("1234567890")


def test_normalize_email():
    assert normalize_email("  Asha.Patel@Example.COM ") == "asha.patel@example.com"
    assert normalize_email("") is None
    with pytest.raises(InvalidArgumentError) as exc_info:
        normalize_email("not-an-email")
    assert exc_info.value.detail["field"] == "email"


def test_register_creates_family_and_pending_primary(db_session, system_roles):
    account = accounts.register_account(
        db_session,
        first_name="Asha",
        last_name="Patel",
        email="Asha@Example.com",
        mobile="9876543210",
        password="s3cret-pass",
    )
    db_session.commit()

    family = db_session.get(Family, account.family_id)
    assert family.family_number.startswith("FAM-")
    assert len(family.family_number) == len("FAM-YYYYMMDD-XXXX")
    assert account.is_primary
    assert account.status == AccountStatusEnum.pending
    assert account.email == "asha@example.com"
    assert account.mobile == "+919876543210"
    assert account.role_id == system_roles["user"].id
    assert verify_password("s3cret-pass", account.password_hash)
    assert db_session.query(AuditLog).filter_by(action="account_registered").count() == 1


def test_register_requires_contact_and_password(db_session, system_roles):
    with pytest.raises(InvalidArgumentError):
        accounts.register_account(db_session, first_name="A", last_name="B", password="s3cret-pass")
    with pytest.raises(InvalidArgumentError):
        accounts.register_account(
            db_session, first_name="A", last_name="B", email="a@example.com", password="short"
        )


def test_register_rejects_duplicate_contact(db_session, make_account):
    make_account(email="asha@example.com", mobile="+919876543210")
    with pytest.raises(ConflictError):
        accounts.register_account(
            db_session, first_name="Asha", last_name="P", email="asha@example.com", password="s3cret-pass"
        )
    with pytest.raises(ConflictError):
        accounts.register_account(
            db_session, first_name="Asha", last_name="P", mobile="9876543210", password="s3cret-pass"
        )


def test_rejected_accounts_release_their_contact(db_session, make_account):
    make_account(email="asha@example.com", status=AccountStatusEnum.rejected)
    account = accounts.register_account(
        db_session, first_name="Asha", last_name="P", email="asha@example.com", password="s3cret-pass"
    )
    db_session.commit()
    assert account.id is not None


def test_approve_and_reject_account(db_session, make_account):
    admin = make_account(role="admin")
    applicant = make_account(status=AccountStatusEnum.pending)

    accounts.approve_account(db_session, applicant.id, actor_id=admin.id)
    db_session.commit()
    assert db_session.get(Account, applicant.id).status == AccountStatusEnum.approved

    accounts.reject_account(db_session, applicant.id, actor_id=admin.id, reason="duplicate")
    db_session.commit()
    assert db_session.get(Account, applicant.id).status == AccountStatusEnum.rejected

    entry = db_session.query(AuditLog).filter_by(action="account_rejected").one()
    assert entry.details == {"old_status": "approved", "new_status": "rejected", "rejection_reason": "duplicate"}


def test_approve_missing_account_is_not_found(db_session, system_roles):
    with pytest.raises(NotFoundError):
        accounts.approve_account(db_session, 999, actor_id=None)


def test_soft_delete_and_restore(db_session, make_account):
    admin = make_account(role="admin")
    member = make_account()

    accounts.soft_delete_account(db_session, member.id, actor_id=admin.id, reason="moved away")
    db_session.commit()
    deleted = db_session.get(Account, member.id)
    assert deleted.is_deleted
    assert deleted.delete_type == DeleteTypeEnum.soft
    assert deleted.is_active is False

    with pytest.raises(InvalidStateError):
        accounts.soft_delete_account(db_session, member.id, actor_id=admin.id)

    accounts.restore_account(db_session, member.id, actor_id=admin.id)
    db_session.commit()
    restored = db_session.get(Account, member.id)
    assert not restored.is_deleted
    assert restored.is_active
    assert restored.delete_type is None

    with pytest.raises(InvalidStateError):
        accounts.restore_account(db_session, member.id, actor_id=admin.id)


def test_soft_delete_primary_with_family_requires_transfer(db_session, make_account):
    head = make_account("Ramesh")
    make_account("Sita", family=db_session.get(Family, head.family_id), is_primary=False)

    with pytest.raises(InvalidStateError):
        accounts.soft_delete_account(db_session, head.id, actor_id=None)


def test_restore_missing_account_is_not_found(db_session, system_roles):
    with pytest.raises(NotFoundError):
        accounts.restore_account(db_session, 999, actor_id=None)


def test_bulk_status_change_skips_missing_accounts(db_session, make_account):
    admin = make_account(role="admin")
    first = make_account("Ravi", status=AccountStatusEnum.pending)
    second = make_account("Meena", status=AccountStatusEnum.pending)

    changed = accounts.bulk_set_status(
        db_session, [first.id, 999, second.id, first.id], AccountStatusEnum.approved, actor_id=admin.id
    )
    db_session.commit()

    assert [item.id for item in changed] == [first.id, second.id]
    assert db_session.get(Account, first.id).status == AccountStatusEnum.approved
    assert db_session.get(Account, second.id).status == AccountStatusEnum.approved
    entries = db_session.query(AuditLog).filter_by(action="account_approved").all()
    assert len(entries) == 2
    assert all(entry.details["bulk_operation"] is True for entry in entries)


def test_bulk_reject_records_reason(db_session, make_account):
    admin = make_account(role="admin")
    applicant = make_account("Ravi", status=AccountStatusEnum.pending)

    accounts.bulk_set_status(
        db_session, [applicant.id], AccountStatusEnum.rejected, actor_id=admin.id, reason="spam"
    )
    db_session.commit()

    assert db_session.get(Account, applicant.id).status == AccountStatusEnum.rejected
    entry = db_session.query(AuditLog).filter_by(action="account_rejected").one()
    assert entry.details["rejection_reason"] == "spam"


def test_bulk_status_change_needs_ids_and_a_review_status(db_session, make_account):
    admin = make_account(role="admin")

    with pytest.raises(InvalidArgumentError):
        accounts.bulk_set_status(db_session, [], AccountStatusEnum.approved, actor_id=admin.id)
    with pytest.raises(InvalidArgumentError):
        accounts.bulk_set_status(db_session, [admin.id], AccountStatusEnum.deceased, actor_id=admin.id)

import pytest
from sqlalchemy import func, select

from app.core.errors import ConflictError, InvalidArgumentError, NotFoundError
from app.models.entities import Account, AccountStatusEnum, AuditLog, Family, MemberRecord
from app.services import transfer
from app.services.transfer import DEFAULT_REASON, transfer_candidates, transfer_primary


@pytest.fixture
def household(db_session, make_account, make_member):
    head = make_account("Ramesh")
    family = db_session.get(Family, head.family_id)
    heir = make_account("Vikram", family=family, is_primary=False)
    records = [make_member(head, name) for name in ("Kiran", "Meera", "Anil")]
    return head, heir, records


def _primaries(db_session, family_id):
    return db_session.execute(
        select(func.count(Account.id)).where(Account.family_id == family_id, Account.is_primary.is_(True))
    ).scalar_one()


def test_transfer_moves_primary_and_all_records(db_session, household):
    head, heir, records = household
    outcome = transfer_primary(db_session, head.id, heir.id, reason="Moving abroad", transferred_by=head.id)

    assert outcome.migrated_count == 3
    assert outcome.previous_marked_deceased is False
    old = db_session.get(Account, head.id)
    new = db_session.get(Account, heir.id)
    assert old.is_primary is False
    assert old.status == AccountStatusEnum.approved
    assert new.is_primary is True
    assert new.transferred_from_id == head.id
    assert new.transfer_reason == "Moving abroad"
    assert _primaries(db_session, head.family_id) == 1
    for record in records:
        refreshed = db_session.get(MemberRecord, record.id)
        assert refreshed.owner_account_id == heir.id
        assert refreshed.family_id == new.family_id
    assert db_session.query(AuditLog).filter_by(action="primary_account_transferred").count() == 1


def test_transfer_record_is_shared_by_both_histories(db_session, household):
    head, heir, _ = household
    outcome = transfer_primary(db_session, head.id, heir.id, reason="Moving abroad", transferred_by=None)

    expected = outcome.record.as_dict()
    assert expected["from_name"] == "Ramesh Patel"
    assert expected["to_name"] == "Vikram Patel"
    assert expected["member_records_migrated"] == 3
    assert db_session.get(Account, head.id).transfer_history == [expected]
    assert db_session.get(Account, heir.id).transfer_history == [expected]


@pytest.mark.parametrize("reason", ["Deceased", "death in family", "Father PASSED AWAY last month"])
def test_deceased_reason_marks_previous_primary(db_session, household, reason):
    head, heir, _ = household
    outcome = transfer_primary(db_session, head.id, heir.id, reason=reason, transferred_by=None)

    old = db_session.get(Account, head.id)
    assert outcome.previous_marked_deceased
    assert old.status == AccountStatusEnum.deceased
    assert old.is_active is False


def test_partial_migration(db_session, household):
    head, heir, records = household
    m1, m2, m3 = records
    outcome = transfer_primary(
        db_session, head.id, heir.id, reason="Split household", transferred_by=None, member_record_ids=[m1.id, m2.id]
    )

    assert outcome.migrated_count == 2
    assert db_session.get(MemberRecord, m1.id).owner_account_id == heir.id
    assert db_session.get(MemberRecord, m2.id).owner_account_id == heir.id
    assert db_session.get(MemberRecord, m3.id).owner_account_id == head.id
    assert db_session.get(MemberRecord, m3.id).family_id == db_session.get(Account, head.id).family_id


def test_migration_ids_must_belong_to_current_primary(db_session, household, make_account, make_member):
    head, heir, records = household
    stranger = make_account("Stranger")
    foreign = make_member(stranger, "Other")

    with pytest.raises(InvalidArgumentError) as exc_info:
        transfer_primary(
            db_session,
            head.id,
            heir.id,
            reason="Split",
            transferred_by=None,
            member_record_ids=[records[0].id, foreign.id],
        )
    assert exc_info.value.detail["invalid_member_ids"] == [foreign.id]
    assert db_session.get(Account, head.id).is_primary


def test_transfer_to_existing_primary_conflicts_without_changes(db_session, household, make_account):
    head, heir, records = household
    stray = make_account("Stray", family=db_session.get(Family, head.family_id), is_primary=True)

    with pytest.raises(ConflictError):
        transfer_primary(db_session, head.id, stray.id, reason="Oops", transferred_by=None)

    assert db_session.get(Account, head.id).is_primary
    assert db_session.get(Account, head.id).transfer_history == []
    assert db_session.get(Account, stray.id).transfer_history == []
    assert all(db_session.get(MemberRecord, item.id).owner_account_id == head.id for item in records)


def test_stray_primaries_are_demoted(db_session, household, make_account):
    head, heir, _ = household
    stray = make_account("Stray", family=db_session.get(Family, head.family_id), is_primary=True)

    transfer_primary(db_session, head.id, heir.id, reason="Cleanup", transferred_by=None)

    assert db_session.get(Account, stray.id).is_primary is False
    assert _primaries(db_session, head.family_id) == 1


def test_transfer_preconditions(db_session, household, make_account):
    head, heir, _ = household
    outsider = make_account("Outsider", is_primary=False)

    with pytest.raises(InvalidArgumentError):
        transfer_primary(db_session, heir.id, head.id, reason="Not primary", transferred_by=None)
    with pytest.raises(InvalidArgumentError):
        transfer_primary(db_session, head.id, outsider.id, reason="Other family", transferred_by=None)
    with pytest.raises(NotFoundError):
        transfer_primary(db_session, head.id, 999, reason="Missing", transferred_by=None)
    with pytest.raises(InvalidArgumentError):
        transfer_primary(db_session, head.id, head.id, reason="Self", transferred_by=None)


def test_history_chain_grows_monotonically(db_session, make_account):
    first = make_account("Gen1")
    family = db_session.get(Family, first.family_id)
    heirs = [make_account(f"Gen{i}", family=family, is_primary=False) for i in range(2, 5)]

    snapshots = []
    current = first
    for heir in heirs:
        transfer_primary(db_session, current.id, heir.id, reason=f"Handover to {heir.first_name}", transferred_by=None)
        snapshots.append(list(db_session.get(Account, heir.id).transfer_history))
        current = heir

    final = db_session.get(Account, heirs[-1].id).transfer_history
    assert len(final) == 3
    assert [entry["to_account_id"] for entry in final] == [heir.id for heir in heirs]
    assert [entry["transferred_at"] for entry in final] == sorted(entry["transferred_at"] for entry in final)
    for index, snapshot in enumerate(snapshots):
        assert final[: index + 1] == snapshot
    assert _primaries(db_session, family.id) == 1


def test_failure_mid_transfer_rolls_back_everything(db_session, household, monkeypatch):
    head, heir, records = household

    def explode(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(transfer, "reassign_records", explode)
    with pytest.raises(RuntimeError):
        transfer_primary(db_session, head.id, heir.id, reason="Deceased", transferred_by=None)

    old = db_session.get(Account, head.id)
    assert old.is_primary is True
    assert old.status == AccountStatusEnum.approved
    assert old.transfer_history == []
    assert db_session.get(Account, heir.id).is_primary is False
    assert all(db_session.get(MemberRecord, item.id).owner_account_id == head.id for item in records)
    assert db_session.query(AuditLog).filter_by(action="primary_account_transferred").count() == 0


def test_blank_reason_uses_default(db_session, household):
    head, heir, _ = household
    outcome = transfer_primary(db_session, head.id, heir.id, reason="   ", transferred_by=None)

    assert outcome.record.reason == DEFAULT_REASON == "Primary account transfer"
    assert db_session.get(Account, heir.id).transfer_reason == DEFAULT_REASON
    assert outcome.previous_marked_deceased is False


def test_empty_migration_list_moves_nothing(db_session, household):
    head, heir, records = household
    outcome = transfer_primary(
        db_session, head.id, heir.id, reason="Keep records", transferred_by=None, member_record_ids=[]
    )

    assert outcome.migrated_count == 0
    assert outcome.record.member_records_migrated == 0
    assert db_session.get(Account, heir.id).is_primary
    assert all(db_session.get(MemberRecord, item.id).owner_account_id == head.id for item in records)


def test_concurrent_transfer_sees_committed_demotion(db_session, second_session, household, make_account):
    head, heir, records = household
    other_heir = make_account("Suresh", family=db_session.get(Family, head.family_id), is_primary=False)

    # The second caller loaded the primary before the first transfer committed.
    stale = second_session.get(Account, head.id)
    assert stale.is_primary is True

    transfer_primary(db_session, head.id, heir.id, reason="Moving abroad", transferred_by=None)

    with pytest.raises(InvalidArgumentError):
        transfer_primary(second_session, head.id, other_heir.id, reason="Also moving", transferred_by=None)

    db_session.expire_all()
    assert db_session.get(Account, heir.id).is_primary is True
    assert db_session.get(Account, other_heir.id).is_primary is False
    assert _primaries(db_session, head.family_id) == 1
    assert all(db_session.get(MemberRecord, item.id).owner_account_id == heir.id for item in records)


def test_transfer_candidates(db_session, household, make_account, make_member):
    head, heir, records = household
    family = db_session.get(Family, head.family_id)
    make_account("Pending", family=family, is_primary=False, status=AccountStatusEnum.pending)
    make_account("Outsider", is_primary=False)
    gone = make_member(head, "Gone")
    gone.deleted_at = gone.created_at
    db_session.commit()

    candidates = transfer_candidates(db_session, head.id)

    assert candidates.primary.id == head.id
    assert [item.id for item in candidates.eligible] == [heir.id]
    assert [item.id for item in candidates.records] == [item.id for item in records]


def test_transfer_candidates_requires_primary(db_session, household):
    head, heir, _ = household

    with pytest.raises(InvalidArgumentError):
        transfer_candidates(db_session, heir.id)
    with pytest.raises(NotFoundError):
        transfer_candidates(db_session, 999)

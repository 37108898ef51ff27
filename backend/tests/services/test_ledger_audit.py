"""Tests for the ledger audit and pending-record sweep."""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import update

from app.models.reward import RewardActionType, RewardRecord, RewardStatus
from app.services.audit import LedgerAuditService
from app.services.ledger import RewardLedger
from app.services.transfer import TransferService


@pytest.mark.asyncio
async def test_clean_ledger_is_healthy(test_db, alice, bob, now):
    ledger = RewardLedger(test_db)
    await ledger.append(user_id=alice, amount=100, action_type=RewardActionType.SIGNUP)
    await test_db.commit()
    await TransferService(test_db).transfer(alice, bob, 40, now=now)

    report = await LedgerAuditService(test_db).audit()

    assert report == {
        "checked_records": 3,
        "unbalanced_transfers": [],
        "tampered_records": [],
        "healthy": True,
    }


@pytest.mark.asyncio
async def test_one_legged_transfer_reported(test_db, alice, bob):
    transfer_id = str(uuid4())
    await RewardLedger(test_db).append(
        user_id=alice,
        amount=-10,
        action_type=RewardActionType.TRANSFER,
        reference_id=bob,
        transfer_id=transfer_id,
    )
    await test_db.commit()

    report = await LedgerAuditService(test_db).audit()

    assert not report["healthy"]
    assert report["unbalanced_transfers"] == [
        {"transfer_id": transfer_id, "legs": 1, "net": -10, "statuses": 1}
    ]


@pytest.mark.asyncio
async def test_tampered_amount_reported(test_db, alice):
    record = await RewardLedger(test_db).append(
        user_id=alice, amount=5, action_type=RewardActionType.POST_CREATE
    )
    record_id = record.id
    await test_db.commit()
    await test_db.execute(
        update(RewardRecord).where(RewardRecord.id == record_id).values(amount=50_000)
    )
    await test_db.commit()

    report = await LedgerAuditService(test_db).audit()

    assert report["tampered_records"] == [record_id]
    assert not report["healthy"]


@pytest.mark.asyncio
async def test_audit_scans_in_batches(test_db, alice, monkeypatch):
    monkeypatch.setattr(LedgerAuditService, "BATCH_SIZE", 2)
    ledger = RewardLedger(test_db)
    for _ in range(5):
        await ledger.append(user_id=alice, amount=1, action_type=RewardActionType.POST_LIKE)
    await test_db.commit()

    checked, tampered = await LedgerAuditService(test_db).find_tampered_records()

    assert checked == 5
    assert tampered == []


@pytest.mark.asyncio
async def test_expire_stale_pending(test_db, alice, now):
    ledger = RewardLedger(test_db)
    stale = await ledger.append(
        user_id=alice, amount=50, action_type=RewardActionType.REFERRAL,
        status=RewardStatus.PENDING, created_at=now - timedelta(hours=30),
    )
    fresh = await ledger.append(
        user_id=alice, amount=50, action_type=RewardActionType.REFERRAL,
        status=RewardStatus.PENDING, created_at=now - timedelta(hours=2),
    )
    stale_id, fresh_id = stale.id, fresh.id
    await test_db.commit()

    expired = await LedgerAuditService(test_db).expire_stale_pending(timedelta(hours=24), now=now)

    assert expired == 1
    assert (await ledger.get(stale_id)).status == RewardStatus.CANCELLED
    assert (await ledger.get(fresh_id)).status == RewardStatus.PENDING
    assert await ledger.sum_completed_by_user(alice) == 0

"""Unit tests for AuditService."""

from datetime import datetime, timedelta, timezone

import pytest

from inphrone.services.audit_service import AuditService

BASE = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_log_action_round_trip(db):
    """Test that values are stored as JSON and read back decoded."""
    entry_id = await AuditService.log_action(
        admin_username="admin1",
        action_type="CREATE_COUPON",
        entity_type="coupon",
        entity_id=7,
        old_value={"is_active": False},
        new_value={"is_active": True},
        reason="Spring campaign",
        ip_address="192.168.1.1",
        now=BASE,
    )

    logs = await AuditService.get_audit_logs()

    assert logs[0]["id"] == entry_id
    assert logs[0]["old_value"] == {"is_active": False}
    assert logs[0]["new_value"] == {"is_active": True}
    assert logs[0]["reason"] == "Spring campaign"


@pytest.mark.asyncio
async def test_optional_fields(db):
    """Test that only admin, action and entity type are required."""
    await AuditService.log_action("admin1", "BROADCAST", "notification")

    log = (await AuditService.get_audit_logs())[0]

    assert log["entity_id"] is None
    assert log["old_value"] is None
    assert log["new_value"] is None


@pytest.mark.asyncio
async def test_filters_and_order(db):
    """Test filtering and newest-first ordering."""
    await AuditService.log_action("admin1", "MODERATE_OPINION", "opinion", 1, now=BASE)
    await AuditService.log_action("admin2", "MODERATE_QUESTION", "question", 1, now=BASE + timedelta(minutes=1))
    await AuditService.log_action("admin1", "MODERATE_OPINION", "opinion", 2, now=BASE + timedelta(minutes=2))

    newest_first = await AuditService.get_audit_logs()
    by_admin = await AuditService.get_audit_logs(admin_username="admin2")
    history = await AuditService.get_entity_history("opinion", 1)
    page = await AuditService.get_audit_logs(limit=1, offset=1)

    assert [log["entity_type"] for log in newest_first] == ["opinion", "question", "opinion"]
    assert [log["action_type"] for log in by_admin] == ["MODERATE_QUESTION"]
    assert [log["entity_id"] for log in history] == [1]
    assert page[0]["admin_username"] == "admin2"

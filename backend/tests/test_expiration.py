"""Expired allocation sweep and its cron endpoint."""
import smtplib
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import func, insert, select

from agility.config import get_settings
from agility.models.allocation import ApprovalStatus, PlanningStatus, UnplannedExpiredHours, UnplannedHoursStatus
from agility.models.notification import Notification, NotificationType
from agility.services import email_service, expiration_service
from agility.services.expiration_service import detect_expired_allocations, send_expiry_summaries
from conftest import add_week, create_allocation, create_phase, create_project

NOW = datetime(2025, 6, 2, 9, 0, tzinfo=timezone.utc)
CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}


async def _expired_rows(db) -> list[UnplannedExpiredHours]:
    result = await db.execute(select(UnplannedExpiredHours).order_by(UnplannedExpiredHours.id))
    return list(result.scalars().all())


async def test_sweep_records_unplanned_hours_exactly_once(db, team):
    project = await create_project(db, team, date(2025, 4, 7))
    # Ended four weeks before NOW
    phase = await create_phase(db, project, date(2025, 4, 21), date(2025, 5, 4))
    allocation = await create_allocation(db, phase, team["alice"], "50")

    first, lines = await detect_expired_allocations(db, NOW)
    await db.commit()

    assert (first.checked, first.expired, first.skipped) == (1, 1, 0)
    assert first.success is True
    rows = await _expired_rows(db)
    assert len(rows) == 1
    assert rows[0].phase_allocation_id == allocation.id
    assert rows[0].unplanned_hours == Decimal(50)
    assert rows[0].status == UnplannedHoursStatus.EXPIRED
    assert lines[0].unplanned_hours == Decimal(50)

    second, lines = await detect_expired_allocations(db, NOW)
    await db.commit()

    assert (second.checked, second.expired, second.skipped) == (1, 0, 1)
    assert lines == []
    assert len(await _expired_rows(db)) == 1


async def test_sweep_leaves_allocation_approved(db, team):
    project = await create_project(db, team, date(2025, 4, 7))
    phase = await create_phase(db, project, date(2025, 4, 21), date(2025, 5, 4))
    allocation = await create_allocation(db, phase, team["alice"], "50")

    await detect_expired_allocations(db, NOW)
    await db.commit()
    await db.refresh(allocation)

    assert allocation.approval_status == ApprovalStatus.APPROVED


async def test_only_approved_and_modified_weeks_count_as_planned(db, team):
    project = await create_project(db, team, date(2025, 4, 7))
    phase = await create_phase(db, project, date(2025, 4, 7), date(2025, 5, 4))
    allocation = await create_allocation(db, phase, team["alice"], "40")
    await add_week(db, allocation, date(2025, 4, 7), "10")
    await add_week(db, allocation, date(2025, 4, 14), "12", PlanningStatus.MODIFIED, approved="5")
    await add_week(db, allocation, date(2025, 4, 21), "20", PlanningStatus.PENDING)
    await add_week(db, allocation, date(2025, 4, 28), "8", PlanningStatus.REJECTED)

    _, lines = await detect_expired_allocations(db, NOW)
    await db.commit()

    assert lines[0].unplanned_hours == Decimal(25)
    assert (await _expired_rows(db))[0].unplanned_hours == Decimal(25)


async def test_fully_planned_and_unfinished_phases_are_ignored(db, team):
    project = await create_project(db, team, date(2025, 4, 7))
    done = await create_phase(db, project, date(2025, 4, 28), date(2025, 5, 4), "Done")
    planned = await create_allocation(db, done, team["alice"], "10")
    await add_week(db, planned, date(2025, 4, 28), "10")
    # Ends today: not yet expired
    ending = await create_phase(db, project, date(2025, 5, 26), date(2025, 6, 2), "Ending")
    await create_allocation(db, ending, team["bob"], "30")
    # Not approved
    await create_allocation(db, done, team["bob"], "30", ApprovalStatus.PENDING)

    response, lines = await detect_expired_allocations(db, NOW)
    await db.commit()

    assert response.checked == 1
    assert response.expired == 0
    assert lines == []
    assert await _expired_rows(db) == []


async def test_sweep_notifies_pm_growth_team_and_consultant(db, team):
    project = await create_project(db, team, date(2025, 4, 7))
    phase = await create_phase(db, project, date(2025, 4, 21), date(2025, 5, 4))
    allocation = await create_allocation(db, phase, team["alice"], "50")
    await add_week(db, allocation, date(2025, 4, 21), "12.5")

    await detect_expired_allocations(db, NOW)
    await db.commit()

    result = await db.execute(
        select(Notification).where(Notification.type == NotificationType.PHASE_ALLOCATION_EXPIRED.value)
    )
    notifications = result.scalars().all()
    assert sorted(n.user_id for n in notifications) == sorted([team["pm"].id, team["growth"].id, team["alice"].id])
    for n in notifications:
        assert n.extra["unplanned_hours"] == 37.5
        assert n.extra["planned_hours"] == 12.5
        assert n.action_url == f"/dashboard/projects/{project.id}"


async def test_summary_emails_skipped_without_smtp(db, team):
    project = await create_project(db, team, date(2025, 4, 7))
    phase = await create_phase(db, project, date(2025, 4, 21), date(2025, 5, 4))
    await create_allocation(db, phase, team["alice"], "50")

    _, lines = await detect_expired_allocations(db, NOW)
    await db.commit()

    assert await send_expiry_summaries(db, lines) == 0


async def test_cron_endpoint_requires_secret(client):
    missing = await client.get("/cron/detect-expired-allocations")
    wrong = await client.get("/cron/detect-expired-allocations", headers={"Authorization": "Bearer nope"})

    assert missing.status_code == 401
    assert missing.json() == {"error": "Unauthorized"}
    assert wrong.status_code == 401


async def test_cron_endpoint_rejects_everything_without_configured_secret(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "cron_secret", "")

    response = await client.get("/cron/detect-expired-allocations", headers={"Authorization": "Bearer "})

    assert response.status_code == 401


async def test_cron_endpoint_runs_sweep(client, db, team):
    project = await create_project(db, team, date(2024, 1, 1))
    phase = await create_phase(db, project, date(2024, 1, 1), date(2024, 1, 14))
    await create_allocation(db, phase, team["alice"], "20")

    response = await client.get("/cron/detect-expired-allocations", headers=CRON_HEADERS)
    again = await client.get("/cron/detect-expired-allocations", headers=CRON_HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert (body["checked"], body["expired"], body["skipped"]) == (1, 1, 0)
    assert body["emailsSent"] == 0
    assert "timestamp" in body
    assert (again.json()["expired"], again.json()["skipped"]) == (0, 1)
    count = (await db.execute(select(func.count()).select_from(UnplannedExpiredHours))).scalar_one()
    assert count == 1


async def test_cron_endpoint_rejects_non_ascii_secret(client):
    response = await client.get("/cron/detect-expired-allocations", headers={"Authorization": b"Bearer caf\xe9"})

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


async def test_failed_emails_keep_detected_records(client, db, team, monkeypatch):
    project = await create_project(db, team, date(2024, 1, 1))
    phase = await create_phase(db, project, date(2024, 1, 1), date(2024, 1, 14))
    await create_allocation(db, phase, team["alice"], "20")
    attempts = []

    def refuse(recipients, subject, html_body, text_body):
        attempts.append(recipients)
        raise smtplib.SMTPException("relay down")

    monkeypatch.setattr(get_settings(), "smtp_host", "smtp.test")
    monkeypatch.setattr(email_service, "_send_sync", refuse)

    response = await client.get("/cron/detect-expired-allocations", headers=CRON_HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["expired"] == 1
    assert body["emailsSent"] == 0
    assert len(attempts) == 3
    rows = await _expired_rows(db)
    assert len(rows) == 1
    assert rows[0].unplanned_hours == Decimal(20)


async def test_record_written_by_concurrent_sweep_counts_as_skipped(db, team, monkeypatch):
    project = await create_project(db, team, date(2025, 4, 7))
    phase = await create_phase(db, project, date(2025, 4, 21), date(2025, 5, 4))
    allocation = await create_allocation(db, phase, team["alice"], "50")
    growth_team_ids = expiration_service.get_growth_team_member_ids

    async def record_first(session):
        # Lands after the candidates were loaded, as another sweep would
        await session.execute(insert(UnplannedExpiredHours).values(
            phase_allocation_id=allocation.id,
            unplanned_hours=Decimal(50),
            status=UnplannedHoursStatus.EXPIRED,
            detected_at=NOW,
        ))
        return await growth_team_ids(session)

    monkeypatch.setattr(expiration_service, "get_growth_team_member_ids", record_first)

    response, lines = await detect_expired_allocations(db, NOW)
    await db.commit()

    assert (response.checked, response.expired, response.skipped) == (1, 0, 1)
    assert lines == []
    assert len(await _expired_rows(db)) == 1
    notified = (await db.execute(select(func.count()).select_from(Notification))).scalar_one()
    assert notified == 0

"""Projects: sprint generation, phases, cascading delete and the error payload."""
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import func, select

from agility.models.allocation import PhaseAllocation, UnplannedExpiredHours, UnplannedHoursStatus, WeeklyAllocation
from agility.models.audit import AuditLog
from agility.models.hour_change import ChangeStatus, ChangeType, HourChangeRequest
from agility.models.project import Phase, Project, ProjectMember, Sprint
from agility.services.project_service import generate_sprints
from conftest import add_week, auth_headers, create_allocation, create_phase, create_project


def test_sprints_from_a_monday():
    sprints = generate_sprints(date(2025, 3, 3), 4)

    assert sprints == [
        (1, date(2025, 3, 3), date(2025, 3, 16)),
        (2, date(2025, 3, 17), date(2025, 3, 30)),
    ]


def test_mid_week_start_gets_kickoff_sprint():
    sprints = generate_sprints(date(2025, 3, 5), 2)

    assert sprints == [
        (0, date(2025, 3, 5), date(2025, 3, 9)),
        (1, date(2025, 3, 10), date(2025, 3, 23)),
    ]


def test_sunday_start_kickoff_is_one_day():
    sprints = generate_sprints(date(2025, 3, 9), 3)

    assert sprints[0] == (0, date(2025, 3, 9), date(2025, 3, 9))
    assert sprints[1][1] == date(2025, 3, 10)
    for (_, _, end), (_, start, _) in zip(sprints, sprints[1:]):
        assert start == end + timedelta(days=1)


async def test_growth_team_creates_project_with_sprints(client, team):
    response = await client.post(
        "/projects",
        json={
            "title": "Data Platform",
            "start_date": "2025-03-03",
            "duration_weeks": 6,
            "budgeted_hours": 300,
            "product_manager_id": team["pm"].id,
            "consultant_ids": [team["alice"].id, team["bob"].id],
        },
        headers=auth_headers(team["growth"]),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["end_date"] == "2025-04-14"
    assert [s["sprint_number"] for s in body["sprints"]] == [1, 2, 3]
    assert sorted(body["consultant_ids"]) == sorted([team["pm"].id, team["alice"].id, team["bob"].id])


async def test_consultant_cannot_create_project(client, team):
    response = await client.post(
        "/projects",
        json={"title": "Nope", "start_date": "2025-03-03", "duration_weeks": 2},
        headers=auth_headers(team["alice"]),
    )

    assert response.status_code == 403
    assert response.json() == {"error": "Only the Growth Team can create projects"}


async def test_phase_from_contiguous_sprints(client, team):
    project = (await client.post(
        "/projects",
        json={"title": "Mobile App", "start_date": "2025-03-03", "duration_weeks": 6, "product_manager_id": team["pm"].id},
        headers=auth_headers(team["growth"]),
    )).json()
    sprint_ids = [s["id"] for s in project["sprints"]]

    gap = await client.post(
        f"/projects/{project['id']}/phases",
        json={"name": "Gappy", "sprint_ids": [sprint_ids[0], sprint_ids[2]]},
        headers=auth_headers(team["pm"]),
    )
    ok = await client.post(
        f"/projects/{project['id']}/phases",
        json={"name": "Build", "sprint_ids": sprint_ids[:2]},
        headers=auth_headers(team["pm"]),
    )
    denied = await client.post(
        f"/projects/{project['id']}/phases",
        json={"name": "Rogue", "start_date": "2025-03-03", "end_date": "2025-03-09"},
        headers=auth_headers(team["alice"]),
    )

    assert gap.status_code == 400
    assert "contiguous" in gap.json()["error"]
    assert ok.status_code == 201
    assert (ok.json()["start_date"], ok.json()["end_date"]) == ("2025-03-03", "2025-03-30")
    assert ok.json()["is_locked"] is True
    assert denied.status_code == 403


async def test_phase_allocation_flow(client, db, team):
    start = date.today() + timedelta(days=7)
    project = await create_project(db, team, start)
    phase = await create_phase(db, project, start, start + timedelta(days=27))

    created = await client.post(
        f"/phases/{phase.id}/allocations",
        json={"consultant_id": team["alice"].id, "total_hours": 40},
        headers=auth_headers(team["pm"]),
    )
    duplicate = await client.post(
        f"/phases/{phase.id}/allocations",
        json={"consultant_id": team["alice"].id, "total_hours": 10},
        headers=auth_headers(team["pm"]),
    )
    pending = await client.get("/approvals/phase-allocations", headers=auth_headers(team["growth"]))
    approved = await client.post(
        f"/approvals/phase-allocations/{created.json()['id']}",
        json={"action": "modify", "total_hours": 36},
        headers=auth_headers(team["growth"]),
    )
    status = await client.get(f"/phases/{phase.id}/status", headers=auth_headers(team["alice"]))

    assert created.status_code == 201
    assert created.json()["approval_status"] == "PENDING"
    assert duplicate.status_code == 409
    assert [a["id"] for a in pending.json()] == [created.json()["id"]]
    assert approved.json()["approval_status"] == "APPROVED"
    assert Decimal(approved.json()["total_hours"]) == Decimal(36)
    assert status.status_code == 200
    assert status.json()["status"] == "planning"
    assert status.json()["label"] == "Planning Phase"
    assert status.json()["details"]["time"]["status"] == "future"


async def test_delete_project_removes_everything_in_one_go(client, db, team):
    project = await create_project(db, team, date(2025, 3, 3))
    phase = await create_phase(db, project, date(2025, 3, 3), date(2025, 3, 30))
    db.add(Sprint(project_id=project.id, phase_id=phase.id, sprint_number=1, start_date=date(2025, 3, 3), end_date=date(2025, 3, 16)))
    allocation = await create_allocation(db, phase, team["alice"], "40")
    await add_week(db, allocation, date(2025, 3, 3), "10")
    db.add(UnplannedExpiredHours(phase_allocation_id=allocation.id, unplanned_hours=Decimal(30), status=UnplannedHoursStatus.EXPIRED))
    db.add(HourChangeRequest(
        phase_id=phase.id,
        phase_allocation_id=allocation.id,
        requester_id=team["pm"].id,
        change_type=ChangeType.ADJUSTMENT,
        status=ChangeStatus.PENDING,
        requested_hours=Decimal(20),
        reason="Trim",
    ))
    db.add(AuditLog(project_id=project.id, user_id=team["pm"].id, action="create", entity_type="phase", entity_id=phase.id))
    await db.commit()

    denied = await client.delete(f"/projects/{project.id}", headers=auth_headers(team["pm"]))
    response = await client.delete(f"/projects/{project.id}", headers=auth_headers(team["growth"]))
    missing = await client.delete(f"/projects/{project.id}", headers=auth_headers(team["growth"]))

    assert denied.status_code == 403
    assert response.status_code == 200
    assert response.json() == {"deleted": True, "project_id": project.id, "phases": 1, "allocations": 1}
    assert missing.status_code == 404
    assert missing.json() == {"error": "Project not found"}
    for model in (Project, Phase, Sprint, ProjectMember, PhaseAllocation, WeeklyAllocation, UnplannedExpiredHours, HourChangeRequest):
        assert (await db.execute(select(func.count()).select_from(model))).scalar_one() == 0, model.__name__
    audit = (await db.execute(select(AuditLog).where(AuditLog.entity_type == "project"))).scalars().all()
    assert [(a.action, a.project_id) for a in audit] == [("delete", None)]
    assert (await db.execute(select(func.count()).select_from(AuditLog).where(AuditLog.project_id.is_not(None)))).scalar_one() == 0


async def test_unknown_route_and_validation_errors_use_error_payload(client, team):
    unknown = await client.get("/nope")
    invalid = await client.post(
        "/projects",
        json={"title": "", "start_date": "2025-03-03", "duration_weeks": 2},
        headers=auth_headers(team["growth"]),
    )
    anonymous = await client.get("/projects")

    assert unknown.status_code == 404
    assert "error" in unknown.json()
    assert invalid.status_code == 422
    assert set(invalid.json()) == {"error"}
    assert anonymous.status_code == 401
    assert anonymous.json() == {"error": "Not authenticated"}

"""Phase status derivation."""
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from agility.engine.phase_status import PhaseStatusEngine
from agility.engine.weeks import week_end, week_key, week_start
from agility.models.allocation import ApprovalStatus, PhaseAllocation, PlanningStatus, WeeklyAllocation
from agility.models.project import Phase, Sprint
from agility.schemas.phase_status import PlanningSummary, TimeWindow, WorkProgress


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def weekly(day: date, hours: str, status=PlanningStatus.APPROVED, approved: str | None = None) -> WeeklyAllocation:
    monday = week_start(day)
    number, year = week_key(monday)
    return WeeklyAllocation(
        week_start_date=monday,
        week_end_date=week_end(monday),
        week_number=number,
        year=year,
        proposed_hours=Decimal(hours),
        approved_hours=Decimal(approved) if approved is not None else None,
        planning_status=status,
    )


def allocation(total: str, weeks=(), status=ApprovalStatus.APPROVED) -> PhaseAllocation:
    a = PhaseAllocation(consultant_id=1, total_hours=Decimal(total), approval_status=status)
    a.weekly_allocations = list(weeks)
    return a


def phase(start: date, end: date, allocations=(), sprints=()) -> Phase:
    p = Phase(id=1, project_id=1, name="Build", start_date=start, end_date=end)
    p.allocations = list(allocations)
    p.sprints = list(sprints)
    return p


@pytest.fixture
def engine():
    return PhaseStatusEngine()


def test_single_week_partially_elapsed(engine):
    monday = date(2025, 3, 3)
    p = phase(monday, monday + timedelta(days=6), [allocation("20", [weekly(monday, "20")])])

    result = engine.phase_status(p, utc(2025, 3, 7))

    work = result.details.work
    assert work.expected_completion_by_now == Decimal("11.43")
    assert work.work_completion_percentage == 57
    assert work.status == "in_progress"
    assert work.current_week_progress.week_progress == Decimal("0.5714")
    assert work.weekly_breakdown[0].status == "current"
    assert result.status == "in_progress"
    assert result.label == "In Progress"
    assert result.phase_id == 1


def test_planning_remaining_and_percentage(engine):
    a = allocation("60", [weekly(date(2025, 3, 3), "15"), weekly(date(2025, 3, 10), "15")])

    planning = engine.planning_status([a])

    assert planning.total_allocated_hours == Decimal(60)
    assert planning.total_distributed_hours == Decimal(30)
    assert planning.remaining_to_distribute == Decimal(30)
    assert planning.completion_percentage == 50
    assert planning.status == "pending"


def test_planning_uses_approved_figure_and_ignores_rejected_weeks(engine):
    a = allocation("40", [
        weekly(date(2025, 3, 3), "20", PlanningStatus.MODIFIED, approved="10"),
        weekly(date(2025, 3, 10), "10", PlanningStatus.PENDING),
        weekly(date(2025, 3, 17), "30", PlanningStatus.REJECTED),
    ])

    planning = engine.planning_status([a])

    assert planning.total_distributed_hours == Decimal(20)
    assert planning.remaining_to_distribute == Decimal(20)


def test_over_distribution_gives_negative_remaining(engine):
    a = allocation("10", [weekly(date(2025, 3, 3), "12")])

    planning = engine.planning_status([a])

    assert planning.remaining_to_distribute == Decimal(-2)
    assert planning.status == "complete"
    assert planning.completion_percentage == 120


@pytest.mark.parametrize("status", [ApprovalStatus.FORFEITED, ApprovalStatus.EXPIRED])
def test_inactive_allocations_are_excluded(engine, status):
    active = allocation("20", [weekly(date(2025, 3, 3), "10")])
    inactive = allocation("50", [weekly(date(2025, 3, 3), "25")], status=status)

    planning = engine.planning_status([active, inactive])

    assert planning.total_allocated_hours == Decimal(20)
    assert planning.total_distributed_hours == Decimal(10)


def test_zero_allocated_hours_is_zero_percent(engine):
    assert engine.planning_status([]).completion_percentage == 0


@pytest.mark.parametrize(
    "now, expected",
    [
        (utc(2025, 3, 1), "future"),
        (utc(2025, 3, 3), "active"),
        (utc(2025, 3, 6, 12), "active"),
        (utc(2025, 3, 9), "active"),
        (utc(2025, 3, 9, 0, 0, 1), "past"),
        (utc(2025, 5, 1), "past"),
    ],
)
def test_time_window_classification(engine, now, expected):
    window = engine.time_status(date(2025, 3, 3), date(2025, 3, 9), now)

    assert window.status == expected
    if expected == "past":
        assert window.time_elapsed_percentage == 100
        assert window.elapsed_duration == window.total_duration
    if expected == "future":
        assert window.time_elapsed_percentage == 0


def test_time_window_elapsed_days(engine):
    window = engine.time_status(date(2025, 3, 3), date(2025, 3, 9), utc(2025, 3, 6))

    assert window.total_duration == 6
    assert window.elapsed_duration == 3
    assert window.time_elapsed_percentage == 50
    assert window.days_until_end == 3
    assert window.days_until_start == -3


def test_zero_planned_hours_before_start_is_not_started(engine):
    p = phase(date(2025, 3, 3), date(2025, 3, 30), [allocation("40")])

    work = engine.work_status(p, utc(2025, 3, 1))

    assert work.work_completion_percentage == 0
    assert work.status == "not_started"


def test_zero_planned_hours_after_start_is_behind_schedule(engine):
    p = phase(date(2025, 3, 3), date(2025, 3, 30), [allocation("40")])

    result = engine.phase_status(p, utc(2025, 3, 12))

    assert result.details.work.status == "behind_schedule"
    assert result.details.work.work_completion_percentage == 0
    assert result.status == "overdue"
    assert result.label == "Behind Schedule"
    assert result.details.overall.risk_level == "high"


def test_weeks_planned_later_than_now_after_phase_start_are_behind_schedule(engine):
    p = phase(date(2025, 3, 3), date(2025, 3, 30), [allocation("20", [weekly(date(2025, 3, 24), "20")])])

    work = engine.work_status(p, utc(2025, 3, 12))

    assert work.status == "behind_schedule"
    assert work.weekly_breakdown[0].status == "future"


def test_weeks_merge_across_consultants(engine):
    monday = date(2025, 3, 3)
    p = phase(monday, date(2025, 3, 16), [
        allocation("20", [weekly(monday, "8"), weekly(date(2025, 3, 10), "12")]),
        allocation("10", [weekly(monday, "10")]),
    ])

    work = engine.work_status(p, utc(2025, 3, 10))

    assert [w.planned_hours for w in work.weekly_breakdown] == [Decimal(18), Decimal(12)]
    assert [w.status for w in work.weekly_breakdown] == ["complete", "current"]
    assert work.expected_completion_by_now == Decimal(18)
    assert work.total_planned_hours == Decimal(30)
    assert work.work_completion_percentage == 60


def test_breakdown_carries_sprint_and_week_in_sprint(engine):
    sprints = [
        Sprint(sprint_number=1, start_date=date(2025, 3, 3), end_date=date(2025, 3, 16)),
        Sprint(sprint_number=2, start_date=date(2025, 3, 17), end_date=date(2025, 3, 30)),
    ]
    a = allocation("30", [weekly(date(2025, 3, 3), "10"), weekly(date(2025, 3, 10), "10"), weekly(date(2025, 3, 17), "10")])
    p = phase(date(2025, 3, 3), date(2025, 3, 30), [a], sprints)

    work = engine.work_status(p, utc(2025, 3, 1))

    assert [(w.sprint_number, w.sprint_week) for w in work.weekly_breakdown] == [(1, 1), (1, 2), (2, 1)]


def test_complete_wins_over_past(engine):
    monday = date(2025, 3, 3)
    p = phase(monday, date(2025, 3, 9), [allocation("20", [weekly(monday, "20")])])

    result = engine.phase_status(p, utc(2025, 6, 1))

    assert result.details.time.status == "past"
    assert result.details.planning.status == "complete"
    assert result.details.work.status == "complete"
    assert result.status == "complete"
    assert result.color == "green"


def _work(status: str, pct: int) -> WorkProgress:
    return WorkProgress(
        status=status,
        expected_completion_by_now=Decimal(pct),
        total_planned_hours=Decimal(100),
        work_completion_percentage=pct,
    )


def _planning(status: str, pct: int = 100) -> PlanningSummary:
    return PlanningSummary(
        status=status,
        total_allocated_hours=Decimal(100),
        total_distributed_hours=Decimal(pct),
        remaining_to_distribute=Decimal(100 - pct),
        completion_percentage=pct,
    )


def _time(status: str, pct: int = 50) -> TimeWindow:
    return TimeWindow(
        status=status,
        days_until_start=0,
        days_until_end=0,
        total_duration=10,
        elapsed_duration=pct // 10,
        time_elapsed_percentage=pct,
    )


@pytest.mark.parametrize(
    "planning, time, work, expected",
    [
        (_planning("complete"), _time("past", 100), _work("in_progress", 80), ("overdue", "Overdue")),
        (_planning("complete"), _time("past", 100), _work("in_progress", 95), ("in_progress", "Nearly Complete")),
        (_planning("pending", 40), _time("active"), _work("behind_schedule", 0), ("overdue", "Behind Schedule")),
        (_planning("pending", 40), _time("active"), _work("in_progress", 30), ("in_progress", "In Progress")),
        (_planning("complete"), _time("future", 0), _work("not_started", 0), ("ready", "Ready to Start")),
        (_planning("pending", 40), _time("active"), _work("not_started", 0), ("planning", "Needs Planning")),
        (_planning("pending", 40), _time("future", 0), _work("not_started", 0), ("planning", "Planning Phase")),
        (_planning("complete"), _time("active"), _work("not_started", 0), ("not_started", "Not Started")),
    ],
)
def test_primary_status_precedence(engine, planning, time, work, expected):
    primary = engine.primary_status(planning, time, work)

    assert (primary.status, primary.label) == expected


@pytest.mark.parametrize(
    "planning, time, work, expected",
    [
        (_planning("complete"), _time("active"), _work("behind_schedule", 0), "high"),
        (_planning("complete"), _time("past", 100), _work("in_progress", 99), "high"),
        (_planning("pending", 40), _time("active", 20), _work("in_progress", 20), "medium"),
        (_planning("complete"), _time("active", 80), _work("in_progress", 40), "medium"),
        (_planning("complete"), _time("active", 80), _work("in_progress", 60), "low"),
    ],
)
def test_risk_level(engine, planning, time, work, expected):
    assert engine.overall_progress(planning, time, work).risk_level == expected


def test_overall_completion_is_weaker_dimension(engine):
    overall = engine.overall_progress(_planning("pending", 40), _time("active"), _work("in_progress", 70))

    assert overall.completion_percentage == 40
    assert overall.is_on_track is False

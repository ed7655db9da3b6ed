"""Phase status engine - derives planning, time, work and overall status from raw allocation rows.

Nothing is cached: every call recomputes from the phase's allocations and weekly rows.
"""
import math
from collections.abc import Iterable
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP

from agility.config import get_settings
from agility.engine.weeks import DAY, WEEK, sprint_week, to_utc, utc_now
from agility.models.allocation import INACTIVE_APPROVAL_STATUSES, PhaseAllocation
from agility.models.project import Phase, Sprint
from agility.schemas.phase_status import (
    CurrentWeekProgress,
    OverallProgress,
    PhaseStatusDetails,
    PhaseStatusResponse,
    PlanningSummary,
    PrimaryStatus,
    TimeWindow,
    WeekBreakdown,
    WorkProgress,
)


def _active_allocations(allocations: Iterable[PhaseAllocation]) -> list[PhaseAllocation]:
    """Forfeited and expired allocations no longer count toward planning or work."""
    return [a for a in allocations if a.approval_status not in INACTIVE_APPROVAL_STATUSES]


def _ceil_days(delta) -> int:
    return math.ceil(delta / DAY)


def _sprint_info(week_start: date, sprints: Iterable[Sprint]) -> tuple[int | None, int | None]:
    for sprint in sprints:
        if sprint.start_date <= week_start <= sprint.end_date:
            return sprint.sprint_number, sprint_week(week_start, sprint.start_date)
    return None, None


class PhaseStatusEngine:
    """Deterministic phase status derivation. Hours are Decimal, percentages whole numbers."""

    def __init__(self) -> None:
        self.settings = get_settings()

    @staticmethod
    def _round(value: Decimal, places: int = 2) -> Decimal:
        quantize = Decimal(10) ** -places
        return value.quantize(quantize, rounding=ROUND_HALF_UP)

    @staticmethod
    def _percent(part: Decimal, whole: Decimal) -> int:
        """round(part / whole * 100), half-up; 0 when whole is 0."""
        if whole == 0:
            return 0
        return int((Decimal(part) / Decimal(whole) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))

    def planning_status(self, allocations: Iterable[PhaseAllocation]) -> PlanningSummary:
        """Budgeted versus distributed hours across the phase's active allocations."""
        active = _active_allocations(allocations)
        allocated = sum((Decimal(a.total_hours) for a in active), Decimal(0))
        distributed = sum(
            (w.planned_hours for a in active for w in a.weekly_allocations),
            Decimal(0),
        )
        remaining = allocated - distributed
        return PlanningSummary(
            status="complete" if remaining <= 0 else "pending",
            total_allocated_hours=allocated,
            total_distributed_hours=distributed,
            remaining_to_distribute=remaining,
            completion_percentage=self._percent(distributed, allocated),
        )

    def time_status(self, start_date: date, end_date: date, now: datetime) -> TimeWindow:
        """Position of now relative to the phase window. Dates are taken as UTC midnights."""
        start = to_utc(start_date)
        end = to_utc(end_date)
        now = to_utc(now)
        total = _ceil_days(end - start)

        if now < start:
            status, elapsed, pct = "future", 0, 0
        elif now > end:
            status, elapsed, pct = "past", total, 100
        else:
            status = "active"
            elapsed = _ceil_days(now - start)
            pct = min(max(self._percent(Decimal(elapsed), Decimal(total)), 0), 100)

        return TimeWindow(
            status=status,
            days_until_start=_ceil_days(start - now),
            days_until_end=_ceil_days(end - now),
            total_duration=total,
            elapsed_duration=elapsed,
            time_elapsed_percentage=pct,
        )

    def work_status(self, phase: Phase, now: datetime) -> WorkProgress:
        """Hours expected complete by now, from the merged weekly buckets of every consultant."""
        now = to_utc(now)
        buckets: dict[tuple[int, int], dict] = {}
        for allocation in _active_allocations(phase.allocations):
            for week in allocation.weekly_allocations:
                key = (week.year, week.week_number)
                bucket = buckets.get(key)
                if bucket is None:
                    buckets[key] = {
                        "week_number": week.week_number,
                        "year": week.year,
                        "week_start_date": week.week_start_date,
                        "week_end_date": week.week_end_date,
                        "planned_hours": week.planned_hours,
                    }
                else:
                    bucket["planned_hours"] += week.planned_hours

        sprints = list(phase.sprints or [])
        expected_total = Decimal(0)
        planned_total = Decimal(0)
        current: CurrentWeekProgress | None = None
        breakdown: list[WeekBreakdown] = []

        for key in sorted(buckets):
            bucket = buckets[key]
            planned = bucket["planned_hours"]
            planned_total += planned
            sprint_number, in_sprint_week = _sprint_info(bucket["week_start_date"], sprints)
            span_start = to_utc(bucket["week_start_date"])
            span_end = span_start + WEEK

            if span_end <= now:
                status, expected = "complete", planned
            elif span_start <= now:
                status = "current"
                fraction = Decimal(str((now - span_start).total_seconds())) / Decimal(str(WEEK.total_seconds()))
                fraction = min(max(fraction, Decimal(0)), Decimal(1))
                expected = planned * fraction
                current = CurrentWeekProgress(
                    week_number=bucket["week_number"],
                    year=bucket["year"],
                    sprint_number=sprint_number,
                    sprint_week=in_sprint_week,
                    planned_hours=planned,
                    expected_hours_complete=self._round(expected),
                    week_progress=self._round(fraction, 4),
                )
            else:
                status, expected = "future", Decimal(0)
            expected_total += expected

            breakdown.append(
                WeekBreakdown(
                    sprint_number=sprint_number,
                    sprint_week=in_sprint_week,
                    status=status,
                    hours_expected_complete=self._round(expected),
                    **bucket,
                )
            )

        pct = self._percent(expected_total, planned_total)
        started = now >= to_utc(phase.start_date)
        if pct >= 100:
            status = "complete"
        elif expected_total > 0:
            status = "in_progress"
        elif started:
            # Includes phases with nothing planned at all once they have begun
            status = "behind_schedule"
        else:
            status = "not_started"

        return WorkProgress(
            status=status,
            expected_completion_by_now=self._round(expected_total),
            total_planned_hours=planned_total,
            work_completion_percentage=pct,
            current_week_progress=current,
            weekly_breakdown=breakdown,
        )

    def primary_status(self, planning: PlanningSummary, time: TimeWindow, work: WorkProgress) -> PrimaryStatus:
        """First matching rule wins."""
        nearly_complete = self.settings.nearly_complete_threshold_pct

        if planning.status == "complete" and work.status == "complete":
            return PrimaryStatus(status="complete", label="Complete", color="green")
        if time.status == "past" and work.status != "complete":
            if work.work_completion_percentage < nearly_complete:
                return PrimaryStatus(status="overdue", label="Overdue", color="red")
            return PrimaryStatus(status="in_progress", label="Nearly Complete", color="blue")
        if work.status == "behind_schedule":
            return PrimaryStatus(status="overdue", label="Behind Schedule", color="red")
        if work.status == "in_progress":
            return PrimaryStatus(status="in_progress", label="In Progress", color="blue")
        if time.status == "future" and planning.status == "complete":
            return PrimaryStatus(status="ready", label="Ready to Start", color="purple")
        if planning.status == "pending":
            if time.status == "active":
                return PrimaryStatus(status="planning", label="Needs Planning", color="red")
            return PrimaryStatus(status="planning", label="Planning Phase", color="yellow")
        return PrimaryStatus(status="not_started", label="Not Started", color="gray")

    def overall_progress(self, planning: PlanningSummary, time: TimeWindow, work: WorkProgress) -> OverallProgress:
        """Overall completion is the weaker of planning and work; risk is a separate axis."""
        is_on_track = work.status != "behind_schedule" and (
            planning.status == "complete" or time.status == "future"
        )

        if work.status == "behind_schedule" or (time.status == "past" and work.work_completion_percentage < 100):
            risk = "high"
        elif (time.status == "active" and planning.status == "pending") or (
            time.time_elapsed_percentage > self.settings.risk_time_elapsed_pct
            and work.work_completion_percentage < self.settings.risk_work_completion_pct
        ):
            risk = "medium"
        else:
            risk = "low"

        return OverallProgress(
            completion_percentage=min(planning.completion_percentage, work.work_completion_percentage),
            is_on_track=is_on_track,
            risk_level=risk,
        )

    def phase_status(self, phase: Phase, now: datetime | None = None) -> PhaseStatusResponse:
        """Full status for a phase with its sprints and allocations (and their weekly rows) loaded."""
        now = to_utc(now) if now is not None else utc_now()
        planning = self.planning_status(phase.allocations)
        time = self.time_status(phase.start_date, phase.end_date, now)
        work = self.work_status(phase, now)
        primary = self.primary_status(planning, time, work)
        overall = self.overall_progress(planning, time, work)
        return PhaseStatusResponse(
            phase_id=phase.id,
            details=PhaseStatusDetails(planning=planning, time=time, work=work, overall=overall),
            **primary.model_dump(),
        )

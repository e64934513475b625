# -*- coding: utf-8 -*-
"""
Показатели выполнения ППР: соблюдение графика по месяцам, сводка для дашборда,
динамика и разбивка по типам оборудования. Только чтение.
"""
import re
from collections import Counter
from dataclasses import dataclass
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from .entities import ScheduleStatus
from .errors import InvalidField
from .parsing import parse_int
from .store import ScheduleFilter

S = ScheduleStatus

PERIOD_RE = re.compile(r'^(\d{4})-(\d{2})$')
MAX_PERIODS = 60
UNKNOWN_TYPE = 'Unknown'


def compliance_rate(completed_count, overdue_count):
    """
    Процент выполненных работ среди оценённых (выполненные + просроченные).
    Если оценивать нечего — 100.
    """
    total_evaluated = completed_count + overdue_count
    if total_evaluated == 0:
        return 100
    # Округление половины вверх
    return (completed_count * 200 + total_evaluated) // (total_evaluated * 2)


def period_bounds(period):
    """
    Первый и последний день месяца 'YYYY-MM'.

    Raises:
        InvalidField: строка не в формате YYYY-MM
    """
    match = PERIOD_RE.match(period) if isinstance(period, str) else None
    if not match or not 1 <= int(match.group(2)) <= 12:
        raise InvalidField(f'Период должен быть в формате YYYY-MM: {period!r}', field='period')
    first = date(int(match.group(1)), int(match.group(2)), 1)
    return first, first + relativedelta(months=1) - timedelta(days=1)


def period_of(day):
    return day.strftime('%Y-%m')


@dataclass(frozen=True)
class PeriodCompliance:
    period: str
    scheduled_count: int
    completed_count: int
    overdue_count: int
    cancelled_count: int
    compliance_rate: int

    def to_dict(self):
        return {
            'period': self.period,
            'scheduled_count': self.scheduled_count,
            'completed_count': self.completed_count,
            'overdue_count': self.overdue_count,
            'cancelled_count': self.cancelled_count,
            'compliance_rate': self.compliance_rate,
        }


@dataclass(frozen=True)
class DashboardStats:
    total_scheduled: int
    completed_this_month: int
    overdue_count: int
    upcoming_week: int
    compliance_rate: int

    def to_dict(self):
        return {
            'total_scheduled': self.total_scheduled,
            'completed_this_month': self.completed_this_month,
            'overdue_count': self.overdue_count,
            'upcoming_week': self.upcoming_week,
            'compliance_rate': self.compliance_rate,
        }


class ComplianceCalculator:

    def __init__(self, store, clock, directory=None):
        self.store = store
        self.clock = clock
        self.directory = directory

    def _month_counts(self, period):
        first, last = period_bounds(period)
        schedules = self.store.schedules.list(ScheduleFilter(date_from=first, date_to=last))
        return Counter(s.status for s in schedules)

    def _recent_periods(self, count):
        count = parse_int(count, 'period_count', minimum=1, maximum=MAX_PERIODS)
        this_month = self.clock.today().replace(day=1)
        return [period_of(this_month - relativedelta(months=offset)) for offset in range(count - 1, -1, -1)]

    def for_period(self, period):
        """
        Соблюдение графика за месяц 'YYYY-MM'.
        scheduled_count — все графики месяца в любом статусе.
        """
        counts = self._month_counts(period)
        completed, overdue = counts[S.COMPLETED], counts[S.OVERDUE]
        return PeriodCompliance(
            period=period,
            scheduled_count=sum(counts.values()),
            completed_count=completed,
            overdue_count=overdue,
            cancelled_count=counts[S.CANCELLED],
            compliance_rate=compliance_rate(completed, overdue),
        )

    def compliance_stats(self, period_count=6):
        """Показатели за последние period_count месяцев, от старого к текущему."""
        return [self.for_period(period) for period in self._recent_periods(period_count)]

    def dashboard(self):
        """
        Счётчики для главной страницы. overdue_count — все просроченные графики,
        compliance_rate — соблюдение графика за текущий месяц.
        """
        today = self.clock.today()
        this_month = period_of(today)
        first, last = period_bounds(this_month)
        active = (S.SCHEDULED, S.IN_PROGRESS)

        total_scheduled = len(self.store.schedules.list(ScheduleFilter(statuses=active)))
        overdue_count = len(self.store.schedules.list(ScheduleFilter(statuses=(S.OVERDUE,))))
        completed_this_month = len(self.store.schedules.list(ScheduleFilter(
            statuses=(S.COMPLETED,), date_from=first, date_to=last)))
        upcoming_week = len(self.store.schedules.list(ScheduleFilter(
            statuses=active, date_from=today, date_to=today + timedelta(days=7))))

        return DashboardStats(
            total_scheduled=total_scheduled,
            completed_this_month=completed_this_month,
            overdue_count=overdue_count,
            upcoming_week=upcoming_week,
            compliance_rate=self.for_period(this_month).compliance_rate,
        )

    def monthly_trend(self, months=6):
        """
        Динамика по месяцам: все графики месяца, выполненные и доля выполненных.
        Пустой месяц — 0%.
        """
        trend = []
        for period in self._recent_periods(months):
            counts = self._month_counts(period)
            scheduled = sum(counts.values())
            completed = counts[S.COMPLETED]
            trend.append({
                'month': period,
                'scheduled': scheduled,
                'completed': completed,
                'compliance': (completed * 200 + scheduled) // (scheduled * 2) if scheduled else 0,
            })
        return trend

    def by_equipment_type(self):
        """Выполненные и просроченные работы по типам оборудования."""
        schedules = self.store.schedules.list(ScheduleFilter(statuses=(S.COMPLETED, S.OVERDUE)))
        type_names = {}
        if self.directory is not None:
            type_names = {t.id: t.name for t in self.directory.list_equipment_types()}

        equipment_types = {}
        groups = {}
        for schedule in schedules:
            if schedule.equipment_id not in equipment_types:
                equipment = self.directory.get_equipment(schedule.equipment_id) if self.directory else None
                equipment_types[schedule.equipment_id] = equipment.equipment_type_id if equipment else None
            name = type_names.get(equipment_types[schedule.equipment_id]) or UNKNOWN_TYPE
            group = groups.setdefault(name, {'name': name, 'completed': 0, 'overdue': 0})
            group['completed' if schedule.status == S.COMPLETED else 'overdue'] += 1
        return sorted(groups.values(), key=lambda g: g['name'])

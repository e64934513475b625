# -*- coding: utf-8 -*-
from datetime import date, timedelta

import pytest

from pm.compliance import compliance_rate, period_bounds
from pm.directory import Equipment
from pm.errors import InvalidField

from .conftest import TODAY

DONE = [{'item_id': 'oil', 'is_checked': True}, {'item_id': 'filter', 'is_checked': True}]


def _complete(service, schedule_id):
    execution = service.start_execution(schedule_id, 'u-tech1')
    return service.complete_execution(execution.id, checklist_results=DONE)


@pytest.mark.parametrize('completed, overdue, expected', [
    (8, 2, 80),
    (0, 0, 100),
    (0, 3, 0),
    (1, 2, 33),
    (2, 1, 67),
    (1, 7, 13),
])
def test_compliance_rate(completed, overdue, expected):
    assert compliance_rate(completed, overdue) == expected


def test_period_bounds():
    assert period_bounds('2024-02') == (date(2024, 2, 1), date(2024, 2, 29))
    assert period_bounds('2023-12') == (date(2023, 12, 1), date(2023, 12, 31))
    for bad in ('2024-13', '2024-2', 'март', None):
        with pytest.raises(InvalidField):
            period_bounds(bad)


def test_period_with_eight_completed_and_two_overdue(service):
    daily = service.create_template(name='Ежедневный осмотр', interval_type='daily')
    schedules = service.generate_schedules(daily.id, ['eq-2'], start_date=date(2024, 2, 1),
                                           months_ahead=1).created
    assert len(schedules) == 29

    for schedule in schedules[:8]:
        execution = service.start_execution(schedule.id, 'u-tech1')
        service.complete_execution(execution.id)
    for schedule in schedules[8:27]:
        service.cancel_schedule(schedule.id)
    service.run_overdue_sweep()

    stats = service.get_compliance_for_period('2024-02')

    assert (stats.completed_count, stats.overdue_count, stats.cancelled_count) == (8, 2, 19)
    assert stats.scheduled_count == 29
    assert stats.compliance_rate == 80


def test_empty_period_is_fully_compliant(service):
    stats = service.get_compliance_for_period('2024-05')
    assert stats.to_dict() == {
        'period': '2024-05',
        'scheduled_count': 0,
        'completed_count': 0,
        'overdue_count': 0,
        'cancelled_count': 0,
        'compliance_rate': 100,
    }


def test_scheduled_count_covers_every_schedule_of_the_month(service, template):
    done = service.create_schedule(template.id, 'eq-1', date(2024, 3, 1))
    service.create_schedule(template.id, 'eq-2', date(2024, 3, 2))
    cancelled = service.create_schedule(template.id, 'eq-3', date(2024, 3, 3))
    started = service.create_schedule(template.id, 'eq-1', TODAY)
    service.create_schedule(template.id, 'eq-2', TODAY + timedelta(days=5))
    _complete(service, done.id)
    service.cancel_schedule(cancelled.id)
    service.start_execution(started.id, 'u-tech2')
    service.run_overdue_sweep()

    stats = service.get_compliance_for_period('2024-03')

    assert stats.scheduled_count == 5
    assert (stats.completed_count, stats.overdue_count, stats.cancelled_count) == (1, 1, 1)
    assert stats.compliance_rate == 50


def test_compliance_stats_cover_recent_months_oldest_first(service, template):
    service.create_schedule(template.id, 'eq-1', date(2024, 1, 20))
    service.run_overdue_sweep()

    stats = service.get_compliance_stats(3)

    assert [s.period for s in stats] == ['2024-01', '2024-02', '2024-03']
    assert stats[0].overdue_count == 1
    assert stats[0].compliance_rate == 0
    assert stats[1].compliance_rate == 100


def test_compliance_stats_period_count_is_validated(service):
    with pytest.raises(InvalidField):
        service.get_compliance_stats(0)


def test_dashboard(service, template):
    done = service.create_schedule(template.id, 'eq-1', date(2024, 3, 1))
    service.create_schedule(template.id, 'eq-2', date(2024, 3, 5))
    started = service.create_schedule(template.id, 'eq-1', TODAY + timedelta(days=2))
    service.create_schedule(template.id, 'eq-2', TODAY + timedelta(days=7))
    service.create_schedule(template.id, 'eq-2', TODAY + timedelta(days=8))
    _complete(service, done.id)
    service.start_execution(started.id, 'u-tech2')
    service.run_overdue_sweep()

    stats = service.get_dashboard_stats().to_dict()

    assert stats == {
        'total_scheduled': 3,
        'completed_this_month': 1,
        'overdue_count': 1,
        'upcoming_week': 2,
        'compliance_rate': 50,
    }


def test_dashboard_rate_ignores_overdue_from_earlier_months(service, template):
    service.create_schedule(template.id, 'eq-2', date(2023, 1, 15))
    done = service.create_schedule(template.id, 'eq-1', date(2024, 3, 1))
    _complete(service, done.id)
    service.run_overdue_sweep()

    stats = service.get_dashboard_stats()

    assert stats.overdue_count == 1
    assert stats.completed_this_month == 1
    assert stats.compliance_rate == service.get_compliance_for_period('2024-03').compliance_rate == 100


def test_monthly_trend(service, template):
    first = service.create_schedule(template.id, 'eq-1', date(2024, 3, 1))
    service.create_schedule(template.id, 'eq-2', date(2024, 3, 2))
    service.create_schedule(template.id, 'eq-3', date(2024, 3, 3))
    _complete(service, first.id)

    trend = service.get_monthly_trend(2)

    assert trend == [
        {'month': '2024-02', 'scheduled': 0, 'completed': 0, 'compliance': 0},
        {'month': '2024-03', 'scheduled': 3, 'completed': 1, 'compliance': 33},
    ]


def test_compliance_by_equipment_type(service, template, directory):
    directory.add_equipment(Equipment('eq-9', 'X-9', 'Без типа'))
    done = service.create_schedule(template.id, 'eq-1', date(2024, 3, 1))
    service.create_schedule(template.id, 'eq-3', date(2024, 3, 2))
    service.create_schedule(template.id, 'eq-9', date(2024, 3, 2))
    _complete(service, done.id)
    service.run_overdue_sweep()

    assert service.get_compliance_by_equipment_type() == [
        {'name': 'Unknown', 'completed': 0, 'overdue': 1},
        {'name': 'Компрессор', 'completed': 1, 'overdue': 0},
        {'name': 'Насос', 'completed': 0, 'overdue': 1},
    ]

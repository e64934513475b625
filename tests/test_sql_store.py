# -*- coding: utf-8 -*-
"""Движок поверх SqlStore (SQLite в памяти)."""
from datetime import date, timedelta

import pytest

from models import PMScheduleRecord, db
from pm.entities import ExecutionStatus, NotificationThreshold, ScheduleStatus
from pm.errors import (
    AlreadyInProgress, DuplicateExecution, DuplicateSchedule, RequiredItemsIncomplete, ScheduleNotDeletable,
    TemplateInUse,
)
from pm.sql_store import SqlStore

from .conftest import CHECKLIST, TODAY


@pytest.fixture
def sql_template(sql_service):
    return sql_service.create_template(
        name='ТО компрессора',
        interval_type='monthly',
        equipment_type_id='type-compressor',
        checklist_items=CHECKLIST,
    )


def test_sql_backend_is_selected(sql_service):
    assert isinstance(sql_service.store, SqlStore)


def test_template_round_trip(sql_service, sql_template):
    loaded = sql_service.get_template(sql_template.id)
    assert loaded.checklist_items == sql_template.checklist_items
    assert [item.id for item in loaded.required_items] == ['oil', 'filter']
    assert loaded.created_at.tzinfo is not None


def test_generate_is_idempotent_in_database(sql_service, sql_template):
    first = sql_service.generate_schedules(sql_template.id, ['eq-1', 'eq-2'], start_date=date(2024, 1, 15))
    second = sql_service.generate_schedules(sql_template.id, ['eq-1', 'eq-2'], start_date=date(2024, 1, 15))

    assert len(first.created) == 12
    assert second.skipped_duplicates == 12
    assert db.session.query(PMScheduleRecord).count() == 12


def test_schedule_key_is_unique(sql_service, sql_template):
    sql_service.create_schedule(sql_template.id, 'eq-1', TODAY)
    with pytest.raises(DuplicateSchedule):
        sql_service.create_schedule(sql_template.id, 'eq-1', TODAY)


def test_filters(sql_service, sql_template):
    sql_service.generate_schedules(sql_template.id, ['eq-1', 'eq-2'], start_date=TODAY, months_ahead=3,
                                   assigned_technician_id='u-tech2')
    sql_service.create_schedule(sql_template.id, 'eq-3', TODAY, priority='high')

    assert len(sql_service.list_schedules()) == 7
    assert len(sql_service.list_schedules(equipment_type_id='type-compressor')) == 6
    assert len(sql_service.list_schedules(equipment_id='eq-1', technician_id='u-tech2')) == 3
    assert len(sql_service.list_schedules(priority='high')) == 1
    assert len(sql_service.list_schedules(date_from='2024-04-01', date_to='2024-04-30')) == 2
    assert sql_service.list_schedules(equipment_type_id='type-none') == []
    dates = [s.scheduled_date for s in sql_service.list_schedules()]
    assert dates == sorted(dates)


def test_execution_flow(sql_service, sql_template, clock):
    schedule = sql_service.create_schedule(sql_template.id, 'eq-1', TODAY - timedelta(days=2))
    assert [s.id for s in sql_service.run_overdue_sweep()] == [schedule.id]
    assert sql_service.run_overdue_sweep() == []

    execution = sql_service.start_execution(schedule.id, 'u-tech1')
    with pytest.raises(AlreadyInProgress):
        sql_service.start_execution(schedule.id, 'u-tech1')
    with pytest.raises(ScheduleNotDeletable):
        sql_service.delete_schedule(schedule.id)

    with pytest.raises(RequiredItemsIncomplete):
        sql_service.complete_execution(execution.id, checklist_results=[{'item_id': 'oil', 'is_checked': True}])

    clock.advance(minutes=30)
    completed = sql_service.complete_execution(execution.id, checklist_results=[
        {'item_id': 'oil', 'is_checked': True},
        {'item_id': 'filter', 'is_checked': True},
    ], rating=9)

    assert completed.status == ExecutionStatus.COMPLETED
    assert completed.duration_minutes == 30
    assert completed.result_for('filter').is_checked
    assert sql_service.get_schedule(schedule.id).status == ScheduleStatus.COMPLETED
    assert sql_service.get_execution_by_schedule(schedule.id).rating == 9


def test_start_rolls_back_when_execution_exists(sql_service, sql_template, monkeypatch):
    schedule = sql_service.create_schedule(sql_template.id, 'eq-1', TODAY)

    def refuse(execution):
        raise DuplicateExecution('exists', schedule_id=execution.schedule_id)
    monkeypatch.setattr(sql_service.store.executions, 'add', refuse)

    with pytest.raises(DuplicateExecution):
        sql_service.start_execution(schedule.id, 'u-tech1')
    assert sql_service.get_schedule(schedule.id).status == ScheduleStatus.SCHEDULED


def test_notification_flags_persist(sql_service, sql_template, deliverer):
    schedule = sql_service.create_schedule(sql_template.id, 'eq-1', TODAY + timedelta(days=1))

    assert sql_service.run_notification_sweep().sent == 1
    assert sql_service.run_notification_sweep().sent == 0
    assert sql_service.get_schedule(schedule.id).was_notified(NotificationThreshold.ONE_DAY)
    assert db.session.get(PMScheduleRecord, schedule.id).sent_1day is True
    assert [event.kind for event in deliverer.events] == ['one_day']


def test_template_in_use(sql_service, sql_template):
    schedule = sql_service.create_schedule(sql_template.id, 'eq-1', TODAY)
    with pytest.raises(TemplateInUse):
        sql_service.delete_template(sql_template.id)

    sql_service.delete_schedule(schedule.id)
    sql_service.delete_template(sql_template.id)
    assert sql_service.list_templates() == []


def test_compliance_in_database(sql_service, sql_template):
    done = sql_service.create_schedule(sql_template.id, 'eq-1', date(2024, 3, 1))
    sql_service.create_schedule(sql_template.id, 'eq-2', date(2024, 3, 2))
    execution = sql_service.start_execution(done.id, 'u-tech1')
    sql_service.complete_execution(execution.id, checklist_results=[
        {'item_id': 'oil', 'is_checked': True},
        {'item_id': 'filter', 'is_checked': True},
    ])
    sql_service.run_overdue_sweep()

    stats = sql_service.get_compliance_for_period('2024-03')
    assert (stats.completed_count, stats.overdue_count, stats.compliance_rate) == (1, 1, 50)
    assert sql_service.get_compliance_by_equipment_type() == [
        {'name': 'Компрессор', 'completed': 1, 'overdue': 1},
    ]

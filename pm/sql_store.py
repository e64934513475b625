# -*- coding: utf-8 -*-
"""
Хранилище движка ППР поверх Flask-SQLAlchemy.

Переходы статусов — условные UPDATE ... WHERE status IN (...) с проверкой rowcount,
поэтому фоновая проверка просрочки не перетирает одновременный «старт» работ.
atomic() — одна транзакция: commit при успехе, rollback при исключении.
Вне atomic() каждое изменение фиксируется сразу.
"""
import threading
from contextlib import contextmanager
from datetime import timezone

from sqlalchemy import func, select, update, delete as sql_delete
from sqlalchemy.exc import IntegrityError

from models import PMExecutionRecord, PMScheduleRecord, PMTemplateRecord, db
from .entities import (
    ChecklistItem, ChecklistResult, ExecutionStatus, FindingsSeverity, IntervalType,
    NotificationThreshold, PMExecution, PMSchedule, PMTemplate, Priority, RequiredPart,
    ScheduleStatus, UsedPart,
)
from .errors import DuplicateExecution, DuplicateSchedule, ExecutionNotFound, ScheduleNotFound
from .store import (
    ExecutionsRepository, PMStore, ScheduleFilter, SchedulesRepository, TemplatesRepository, utcnow,
)


def _aware(value):
    # SQLite возвращает naive datetime, считаем его UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _values(statuses):
    return [getattr(s, 'value', s) for s in statuses]


# === ПРЕОБРАЗОВАНИЕ ЗАПИСЕЙ ===

def template_from_row(row):
    return PMTemplate(
        id=row.id,
        name=row.name,
        description=row.description or '',
        equipment_type_id=row.equipment_type_id,
        interval_type=IntervalType(row.interval_type),
        interval_value=row.interval_value,
        estimated_duration_minutes=row.estimated_duration_minutes or 0,
        checklist_items=tuple(ChecklistItem(**item) for item in (row.checklist_items or [])),
        required_parts=tuple(RequiredPart(**part) for part in (row.required_parts or [])),
        is_active=bool(row.is_active),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _template_columns(template):
    return {
        'name': template.name,
        'description': template.description,
        'equipment_type_id': template.equipment_type_id,
        'interval_type': template.interval_type.value,
        'interval_value': template.interval_value,
        'estimated_duration_minutes': template.estimated_duration_minutes,
        'checklist_items': [item.to_dict() for item in template.checklist_items],
        'required_parts': [part.to_dict() for part in template.required_parts],
        'is_active': template.is_active,
    }


def schedule_from_row(row):
    sent = frozenset(t for t in NotificationThreshold if getattr(row, t.flag_name))
    return PMSchedule(
        id=row.id,
        template_id=row.template_id,
        equipment_id=row.equipment_id,
        scheduled_date=row.scheduled_date,
        status=ScheduleStatus(row.status),
        priority=Priority(row.priority),
        assigned_technician_id=row.assigned_technician_id,
        notes=row.notes,
        notifications_sent=sent,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _schedule_columns(changes):
    columns = {}
    for name, value in changes.items():
        if name == 'notifications_sent':
            for threshold in NotificationThreshold:
                columns[threshold.flag_name] = threshold in value
        else:
            columns[name] = getattr(value, 'value', value)
    return columns


def execution_from_row(row):
    return PMExecution(
        id=row.id,
        schedule_id=row.schedule_id,
        equipment_id=row.equipment_id,
        technician_id=row.technician_id,
        status=ExecutionStatus(row.status),
        started_at=_aware(row.started_at),
        completed_at=_aware(row.completed_at),
        checklist_results=tuple(ChecklistResult(**r) for r in (row.checklist_results or [])),
        used_parts=tuple(UsedPart(**p) for p in (row.used_parts or [])),
        findings=row.findings,
        findings_severity=FindingsSeverity(row.findings_severity or 'none'),
        rating=row.rating,
        notes=row.notes,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _execution_columns(changes):
    columns = {}
    for name, value in changes.items():
        if name in ('checklist_results', 'used_parts'):
            columns[name] = [entry.to_dict() for entry in value]
        else:
            columns[name] = getattr(value, 'value', value)
    return columns


# === ХРАНИЛИЩЕ ===

class SqlStore(PMStore):
    """Хранилище на сессии Flask-SQLAlchemy. Требует контекст приложения Flask."""

    def __init__(self, now=utcnow):
        self.now = now
        self._local = threading.local()
        self.templates = SqlTemplatesRepository(self)
        self.schedules = SqlSchedulesRepository(self)
        self.executions = SqlExecutionsRepository(self)

    @property
    def session(self):
        return db.session

    @property
    def _depth(self):
        return getattr(self._local, 'depth', 0)

    @contextmanager
    def atomic(self):
        self._local.depth = self._depth + 1
        try:
            yield self
        except BaseException:
            self._local.depth -= 1
            if self._local.depth == 0:
                self.session.rollback()
            raise
        else:
            self._local.depth -= 1
            if self._local.depth == 0:
                self.session.commit()

    def _commit(self):
        """Фиксирует изменения, если мы не внутри atomic()."""
        if self._depth == 0:
            self.session.commit()

    def _rollback(self):
        if self._depth == 0:
            self.session.rollback()


class SqlTemplatesRepository(TemplatesRepository):

    def __init__(self, store):
        self._store = store

    def add(self, template):
        now = self._store.now()
        row = PMTemplateRecord(id=template.id, created_at=template.created_at or now, updated_at=now,
                               **_template_columns(template))
        self._store.session.add(row)
        self._store.session.flush()
        result = template_from_row(row)
        self._store._commit()
        return result

    def get(self, template_id):
        row = self._store.session.get(PMTemplateRecord, template_id)
        return template_from_row(row) if row else None

    def list(self, equipment_type_id=None, active_only=False):
        query = select(PMTemplateRecord)
        if equipment_type_id is not None:
            query = query.where(PMTemplateRecord.equipment_type_id == equipment_type_id)
        if active_only:
            query = query.where(PMTemplateRecord.is_active.is_(True))
        query = query.order_by(PMTemplateRecord.name, PMTemplateRecord.id)
        return [template_from_row(row) for row in self._store.session.scalars(query)]

    def save(self, template):
        row = self._store.session.get(PMTemplateRecord, template.id)
        for name, value in _template_columns(template).items():
            setattr(row, name, value)
        row.updated_at = self._store.now()
        self._store.session.flush()
        result = template_from_row(row)
        self._store._commit()
        return result

    def delete(self, template_id):
        result = self._store.session.execute(
            sql_delete(PMTemplateRecord).where(PMTemplateRecord.id == template_id)
        )
        self._store._commit()
        return result.rowcount > 0


class SqlSchedulesRepository(SchedulesRepository):

    def __init__(self, store):
        self._store = store

    def _find_key(self, equipment_id, template_id, scheduled_date):
        return self._store.session.scalar(
            select(PMScheduleRecord.id).where(
                PMScheduleRecord.equipment_id == equipment_id,
                PMScheduleRecord.template_id == template_id,
                PMScheduleRecord.scheduled_date == scheduled_date,
            )
        )

    def add_if_absent(self, schedule):
        if self._find_key(*schedule.key) is not None:
            return None
        now = self._store.now()
        columns = _schedule_columns({
            'template_id': schedule.template_id,
            'equipment_id': schedule.equipment_id,
            'scheduled_date': schedule.scheduled_date,
            'status': schedule.status,
            'priority': schedule.priority,
            'assigned_technician_id': schedule.assigned_technician_id,
            'notes': schedule.notes,
            'notifications_sent': schedule.notifications_sent,
        })
        row = PMScheduleRecord(id=schedule.id, created_at=schedule.created_at or now, updated_at=now, **columns)
        self._store.session.add(row)
        try:
            self._store.session.flush()
        except IntegrityError:
            # Параллельная вставка того же ключа; внутри atomic() откатывается весь блок
            if self._store._depth:
                raise
            self._store.session.rollback()
            return None
        result = schedule_from_row(row)
        self._store._commit()
        return result

    def get(self, schedule_id):
        row = self._store.session.get(PMScheduleRecord, schedule_id, populate_existing=True)
        return schedule_from_row(row) if row else None

    def list(self, schedule_filter=None):
        f = schedule_filter or ScheduleFilter()
        query = select(PMScheduleRecord)
        if f.equipment_id is not None:
            query = query.where(PMScheduleRecord.equipment_id == f.equipment_id)
        if f.equipment_ids is not None:
            query = query.where(PMScheduleRecord.equipment_id.in_(list(f.equipment_ids)))
        if f.template_id is not None:
            query = query.where(PMScheduleRecord.template_id == f.template_id)
        if f.technician_id is not None:
            query = query.where(PMScheduleRecord.assigned_technician_id == f.technician_id)
        if f.statuses is not None:
            query = query.where(PMScheduleRecord.status.in_(_values(f.statuses)))
        if f.priority is not None:
            query = query.where(PMScheduleRecord.priority == getattr(f.priority, 'value', f.priority))
        if f.date_from is not None:
            query = query.where(PMScheduleRecord.scheduled_date >= f.date_from)
        if f.date_to is not None:
            query = query.where(PMScheduleRecord.scheduled_date <= f.date_to)
        query = query.order_by(PMScheduleRecord.scheduled_date, PMScheduleRecord.id)
        query = query.execution_options(populate_existing=True)
        return [schedule_from_row(row) for row in self._store.session.scalars(query)]

    def count_by_template(self, template_id):
        return self._store.session.scalar(
            select(func.count(PMScheduleRecord.id)).where(PMScheduleRecord.template_id == template_id)
        )

    def compare_and_set(self, schedule_id, expected_statuses, new_status=None, **changes):
        if new_status is not None:
            changes['status'] = new_status
        if 'scheduled_date' in changes:
            current = self.get(schedule_id)
            if current is None:
                raise ScheduleNotFound(schedule_id)
            other_id = self._find_key(current.equipment_id, current.template_id, changes['scheduled_date'])
            if other_id is not None and other_id != schedule_id:
                raise DuplicateSchedule(
                    'График с таким оборудованием, шаблоном и датой уже существует',
                    current_status=current.status,
                )
        columns = _schedule_columns(changes)
        columns['updated_at'] = self._store.now()
        try:
            result = self._store.session.execute(
                update(PMScheduleRecord)
                .where(PMScheduleRecord.id == schedule_id,
                       PMScheduleRecord.status.in_(_values(expected_statuses)))
                .values(**columns)
                .execution_options(synchronize_session=False)
            )
        except IntegrityError:
            self._store._rollback()
            raise DuplicateSchedule('График с таким оборудованием, шаблоном и датой уже существует')
        if result.rowcount == 0:
            self._store._rollback()
            if self.get(schedule_id) is None:
                raise ScheduleNotFound(schedule_id)
            return None
        self._store.session.flush()
        updated = self.get(schedule_id)
        self._store._commit()
        return updated

    def mark_notified(self, schedule_id, threshold, expected_statuses=(ScheduleStatus.SCHEDULED,)):
        flag = getattr(PMScheduleRecord, threshold.flag_name)
        result = self._store.session.execute(
            update(PMScheduleRecord)
            .where(PMScheduleRecord.id == schedule_id,
                   PMScheduleRecord.status.in_(_values(expected_statuses)),
                   flag.is_(False))
            .values({threshold.flag_name: True, 'updated_at': self._store.now()})
            .execution_options(synchronize_session=False)
        )
        self._store._commit()
        return result.rowcount > 0

    def delete(self, schedule_id, expected_statuses):
        result = self._store.session.execute(
            sql_delete(PMScheduleRecord)
            .where(PMScheduleRecord.id == schedule_id,
                   PMScheduleRecord.status.in_(_values(expected_statuses)))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self._store._rollback()
            if self.get(schedule_id) is None:
                raise ScheduleNotFound(schedule_id)
            return False
        self._store._commit()
        return True


class SqlExecutionsRepository(ExecutionsRepository):

    def __init__(self, store):
        self._store = store

    def add(self, execution):
        if self.get_by_schedule(execution.schedule_id) is not None:
            raise DuplicateExecution(
                f'У графика {execution.schedule_id} уже есть выполнение',
                schedule_id=execution.schedule_id,
            )
        now = self._store.now()
        columns = _execution_columns({
            'schedule_id': execution.schedule_id,
            'equipment_id': execution.equipment_id,
            'technician_id': execution.technician_id,
            'status': execution.status,
            'started_at': execution.started_at,
            'completed_at': execution.completed_at,
            'checklist_results': execution.checklist_results,
            'used_parts': execution.used_parts,
            'findings': execution.findings,
            'findings_severity': execution.findings_severity,
            'rating': execution.rating,
            'notes': execution.notes,
        })
        row = PMExecutionRecord(id=execution.id, created_at=execution.created_at or now, updated_at=now, **columns)
        self._store.session.add(row)
        try:
            self._store.session.flush()
        except IntegrityError:
            if self._store._depth == 0:
                self._store.session.rollback()
            raise DuplicateExecution(
                f'У графика {execution.schedule_id} уже есть выполнение',
                schedule_id=execution.schedule_id,
            )
        result = execution_from_row(row)
        self._store._commit()
        return result

    def get(self, execution_id):
        row = self._store.session.get(PMExecutionRecord, execution_id, populate_existing=True)
        return execution_from_row(row) if row else None

    def get_for_update(self, execution_id):
        row = self._store.session.get(PMExecutionRecord, execution_id, populate_existing=True,
                                      with_for_update=True)
        return execution_from_row(row) if row else None

    def get_by_schedule(self, schedule_id):
        row = self._store.session.scalar(
            select(PMExecutionRecord)
            .where(PMExecutionRecord.schedule_id == schedule_id)
            .execution_options(populate_existing=True)
        )
        return execution_from_row(row) if row else None

    def list(self, schedule_id=None):
        query = select(PMExecutionRecord)
        if schedule_id is not None:
            query = query.where(PMExecutionRecord.schedule_id == schedule_id)
        query = query.order_by(PMExecutionRecord.started_at.desc(), PMExecutionRecord.id.desc())
        query = query.execution_options(populate_existing=True)
        return [execution_from_row(row) for row in self._store.session.scalars(query)]

    def compare_and_set(self, execution_id, expected_statuses, new_status=None, **changes):
        if new_status is not None:
            changes['status'] = new_status
        columns = _execution_columns(changes)
        columns['updated_at'] = self._store.now()
        result = self._store.session.execute(
            update(PMExecutionRecord)
            .where(PMExecutionRecord.id == execution_id,
                   PMExecutionRecord.status.in_(_values(expected_statuses)))
            .values(**columns)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self._store._rollback()
            if self.get(execution_id) is None:
                raise ExecutionNotFound(execution_id)
            return None
        self._store.session.flush()
        updated = self.get(execution_id)
        self._store._commit()
        return updated

# -*- coding: utf-8 -*-
"""
Хранилище движка ППР: интерфейсы репозиториев и реализация в памяти.

Компоненты движка получают PMStore явно и не знают, что за ним — база данных
(pm.sql_store.SqlStore) или память (MemoryStore, режим TEST_MODE и тесты).
Все изменения статуса выполняются условно (compare_and_set): переход применяется
только если запись всё ещё в ожидаемом статусе.
"""
import abc
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Collection, Optional
from uuid import uuid4

from .entities import ScheduleStatus
from .errors import DuplicateExecution, DuplicateSchedule, ExecutionNotFound, ScheduleNotFound


def new_id(prefix):
    return f'{prefix}-{uuid4().hex[:12]}'


def utcnow():
    return datetime.now(timezone.utc)


@dataclass
class ScheduleFilter:
    """
    Фильтр графиков. Все условия необязательные и объединяются через И.
    equipment_ids — уже разрешённый список оборудования (например, по типу);
    пустой список не совпадает ни с чем.
    """
    equipment_id: Optional[str] = None
    equipment_ids: Optional[Collection[str]] = None
    template_id: Optional[str] = None
    technician_id: Optional[str] = None
    statuses: Optional[Collection[ScheduleStatus]] = None
    priority: Optional[str] = None
    date_from: Optional[object] = None
    date_to: Optional[object] = None

    def matches(self, schedule):
        if self.equipment_id is not None and schedule.equipment_id != self.equipment_id:
            return False
        if self.equipment_ids is not None and schedule.equipment_id not in self.equipment_ids:
            return False
        if self.template_id is not None and schedule.template_id != self.template_id:
            return False
        if self.technician_id is not None and schedule.assigned_technician_id != self.technician_id:
            return False
        if self.statuses is not None and schedule.status not in self.statuses:
            return False
        if self.priority is not None and schedule.priority != self.priority:
            return False
        if self.date_from is not None and schedule.scheduled_date < self.date_from:
            return False
        if self.date_to is not None and schedule.scheduled_date > self.date_to:
            return False
        return True


# === ИНТЕРФЕЙСЫ ===

class TemplatesRepository(abc.ABC):

    @abc.abstractmethod
    def add(self, template):
        """Сохраняет новый шаблон и возвращает его."""

    @abc.abstractmethod
    def get(self, template_id):
        """Шаблон или None."""

    @abc.abstractmethod
    def list(self, equipment_type_id=None, active_only=False):
        """Шаблоны, отсортированные по имени."""

    @abc.abstractmethod
    def save(self, template):
        """Заменяет существующий шаблон целиком."""

    @abc.abstractmethod
    def delete(self, template_id):
        """Удаляет шаблон; False, если его не было."""


class SchedulesRepository(abc.ABC):

    @abc.abstractmethod
    def add_if_absent(self, schedule):
        """
        Добавляет график, если ключа (equipment_id, template_id, scheduled_date) ещё нет.

        Returns:
            PMSchedule или None, если график с таким ключом уже существует
        """

    @abc.abstractmethod
    def get(self, schedule_id):
        """График или None."""

    @abc.abstractmethod
    def list(self, schedule_filter=None):
        """Графики по фильтру, по возрастанию scheduled_date."""

    @abc.abstractmethod
    def count_by_template(self, template_id):
        """Число графиков, ссылающихся на шаблон."""

    @abc.abstractmethod
    def compare_and_set(self, schedule_id, expected_statuses, new_status=None, **changes):
        """
        Условное обновление: применяется, только если статус графика в expected_statuses.

        Returns:
            PMSchedule после изменения или None, если статус уже другой

        Raises:
            ScheduleNotFound: графика нет
            DuplicateSchedule: смена даты столкнулась с существующим ключом
        """

    @abc.abstractmethod
    def mark_notified(self, schedule_id, threshold, expected_statuses=(ScheduleStatus.SCHEDULED,)):
        """
        Ставит отметку об отправке напоминания.

        Returns:
            bool: True только для первого вызова при статусе из expected_statuses
        """

    @abc.abstractmethod
    def delete(self, schedule_id, expected_statuses):
        """Физически удаляет график, если его статус в expected_statuses."""


class ExecutionsRepository(abc.ABC):

    @abc.abstractmethod
    def add(self, execution):
        """
        Raises:
            DuplicateExecution: у графика уже есть выполнение
        """

    @abc.abstractmethod
    def get(self, execution_id):
        """Выполнение или None."""

    @abc.abstractmethod
    def get_for_update(self, execution_id):
        """
        Выполнение или None; запись заблокирована от параллельных изменений
        до конца текущего atomic().
        """

    @abc.abstractmethod
    def get_by_schedule(self, schedule_id):
        """Выполнение графика или None."""

    @abc.abstractmethod
    def list(self, schedule_id=None):
        """Выполнения, по убыванию started_at."""

    @abc.abstractmethod
    def compare_and_set(self, execution_id, expected_statuses, new_status=None, **changes):
        """Условное обновление выполнения; None, если статус уже другой."""


class PMStore(abc.ABC):
    """Набор репозиториев с единицей работы atomic()."""

    templates: TemplatesRepository
    schedules: SchedulesRepository
    executions: ExecutionsRepository

    @abc.abstractmethod
    def atomic(self):
        """
        Контекстный менеджер: изменения внутри блока применяются целиком
        или не применяются вовсе.
        """


# === РЕАЛИЗАЦИЯ В ПАМЯТИ ===

class MemoryStore(PMStore):
    """
    Хранилище в памяти с единственным писателем: один реентерабельный замок
    защищает все изменения. atomic() держит замок на весь блок и откатывает
    словари к снимку, если блок завершился исключением.
    """

    def __init__(self, now=utcnow):
        self.now = now
        self._lock = threading.RLock()
        self._templates = {}
        self._schedules = {}
        self._schedule_keys = {}
        self._executions = {}
        self._execution_by_schedule = {}
        self.templates = MemoryTemplatesRepository(self)
        self.schedules = MemorySchedulesRepository(self)
        self.executions = MemoryExecutionsRepository(self)

    def _snapshot(self):
        return (
            dict(self._templates),
            dict(self._schedules),
            dict(self._schedule_keys),
            dict(self._executions),
            dict(self._execution_by_schedule),
        )

    def _restore(self, snapshot):
        (self._templates, self._schedules, self._schedule_keys,
         self._executions, self._execution_by_schedule) = snapshot

    @contextmanager
    def atomic(self):
        with self._lock:
            snapshot = self._snapshot()
            try:
                yield self
            except BaseException:
                self._restore(snapshot)
                raise


class MemoryTemplatesRepository(TemplatesRepository):

    def __init__(self, store):
        self._store = store

    def add(self, template):
        with self._store._lock:
            now = self._store.now()
            template = replace(template, created_at=template.created_at or now, updated_at=now)
            self._store._templates[template.id] = template
            return template

    def get(self, template_id):
        return self._store._templates.get(template_id)

    def list(self, equipment_type_id=None, active_only=False):
        templates = [
            t for t in self._store._templates.values()
            if (equipment_type_id is None or t.equipment_type_id == equipment_type_id)
            and (not active_only or t.is_active)
        ]
        return sorted(templates, key=lambda t: (t.name, t.id))

    def save(self, template):
        with self._store._lock:
            template = replace(template, updated_at=self._store.now())
            self._store._templates[template.id] = template
            return template

    def delete(self, template_id):
        with self._store._lock:
            return self._store._templates.pop(template_id, None) is not None


class MemorySchedulesRepository(SchedulesRepository):

    def __init__(self, store):
        self._store = store

    def add_if_absent(self, schedule):
        with self._store._lock:
            if schedule.key in self._store._schedule_keys:
                return None
            now = self._store.now()
            schedule = replace(schedule, created_at=schedule.created_at or now, updated_at=now)
            self._store._schedules[schedule.id] = schedule
            self._store._schedule_keys[schedule.key] = schedule.id
            return schedule

    def get(self, schedule_id):
        return self._store._schedules.get(schedule_id)

    def list(self, schedule_filter=None):
        schedule_filter = schedule_filter or ScheduleFilter()
        schedules = [s for s in list(self._store._schedules.values()) if schedule_filter.matches(s)]
        return sorted(schedules, key=lambda s: (s.scheduled_date, s.id))

    def count_by_template(self, template_id):
        return sum(1 for s in list(self._store._schedules.values()) if s.template_id == template_id)

    def compare_and_set(self, schedule_id, expected_statuses, new_status=None, **changes):
        with self._store._lock:
            current = self._store._schedules.get(schedule_id)
            if current is None:
                raise ScheduleNotFound(schedule_id)
            if current.status not in expected_statuses:
                return None
            if new_status is not None:
                changes['status'] = new_status
            updated = replace(current, updated_at=self._store.now(), **changes)
            if updated.key != current.key:
                if updated.key in self._store._schedule_keys:
                    raise DuplicateSchedule(
                        'График с таким оборудованием, шаблоном и датой уже существует',
                        current_status=current.status,
                    )
                del self._store._schedule_keys[current.key]
                self._store._schedule_keys[updated.key] = schedule_id
            self._store._schedules[schedule_id] = updated
            return updated

    def mark_notified(self, schedule_id, threshold, expected_statuses=(ScheduleStatus.SCHEDULED,)):
        with self._store._lock:
            current = self._store._schedules.get(schedule_id)
            if current is None or current.status not in expected_statuses:
                return False
            if current.was_notified(threshold):
                return False
            self._store._schedules[schedule_id] = replace(
                current,
                notifications_sent=current.notifications_sent | {threshold},
                updated_at=self._store.now(),
            )
            return True

    def delete(self, schedule_id, expected_statuses):
        with self._store._lock:
            current = self._store._schedules.get(schedule_id)
            if current is None:
                raise ScheduleNotFound(schedule_id)
            if current.status not in expected_statuses:
                return False
            del self._store._schedules[schedule_id]
            del self._store._schedule_keys[current.key]
            return True


class MemoryExecutionsRepository(ExecutionsRepository):

    def __init__(self, store):
        self._store = store

    def add(self, execution):
        with self._store._lock:
            if execution.schedule_id in self._store._execution_by_schedule:
                raise DuplicateExecution(
                    f'У графика {execution.schedule_id} уже есть выполнение',
                    schedule_id=execution.schedule_id,
                )
            now = self._store.now()
            execution = replace(execution, created_at=execution.created_at or now, updated_at=now)
            self._store._executions[execution.id] = execution
            self._store._execution_by_schedule[execution.schedule_id] = execution.id
            return execution

    def get(self, execution_id):
        return self._store._executions.get(execution_id)

    def get_for_update(self, execution_id):
        # Замок хранилища удерживается atomic()
        with self._store._lock:
            return self._store._executions.get(execution_id)

    def get_by_schedule(self, schedule_id):
        execution_id = self._store._execution_by_schedule.get(schedule_id)
        return self._store._executions.get(execution_id) if execution_id else None

    def list(self, schedule_id=None):
        executions = [
            e for e in list(self._store._executions.values())
            if schedule_id is None or e.schedule_id == schedule_id
        ]
        return sorted(executions, key=lambda e: (e.started_at, e.id), reverse=True)

    def compare_and_set(self, execution_id, expected_statuses, new_status=None, **changes):
        with self._store._lock:
            current = self._store._executions.get(execution_id)
            if current is None:
                raise ExecutionNotFound(execution_id)
            if current.status not in expected_statuses:
                return None
            if new_status is not None:
                changes['status'] = new_status
            updated = replace(current, updated_at=self._store.now(), **changes)
            self._store._executions[execution_id] = updated
            return updated

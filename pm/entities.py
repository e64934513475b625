# -*- coding: utf-8 -*-
"""
Доменные записи движка ППР: шаблоны, графики и выполнения.

Записи неизменяемые (frozen dataclasses): хранилище заменяет запись целиком через
dataclasses.replace(), поэтому читатель никогда не видит частично применённое изменение.
"""
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import FrozenSet, Optional, Tuple


class IntervalType(str, Enum):
    """Тип периодичности шаблона."""
    DAILY = 'daily'
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'
    QUARTERLY = 'quarterly'
    YEARLY = 'yearly'


class ScheduleStatus(str, Enum):
    """Статус графика ППР. Допустимые переходы — в pm.lifecycle.TRANSITIONS."""
    SCHEDULED = 'scheduled'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    OVERDUE = 'overdue'
    CANCELLED = 'cancelled'


class Priority(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'


class ExecutionStatus(str, Enum):
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'


class FindingsSeverity(str, Enum):
    NONE = 'none'
    MINOR = 'minor'
    MAJOR = 'major'
    CRITICAL = 'critical'


class NotificationThreshold(str, Enum):
    """Порог напоминания: за 3 дня, за 1 день, в день работ."""
    THREE_DAYS = 'three_days'
    ONE_DAY = 'one_day'
    SAME_DAY = 'same_day'

    @property
    def days_before(self):
        return _DAYS_BEFORE[self]

    @property
    def flag_name(self):
        """Имя булевого флага в таблице pm_schedules."""
        return _FLAG_NAMES[self]


_DAYS_BEFORE = {
    NotificationThreshold.THREE_DAYS: 3,
    NotificationThreshold.ONE_DAY: 1,
    NotificationThreshold.SAME_DAY: 0,
}

_FLAG_NAMES = {
    NotificationThreshold.THREE_DAYS: 'sent_3days',
    NotificationThreshold.ONE_DAY: 'sent_1day',
    NotificationThreshold.SAME_DAY: 'sent_today',
}


def _iso(value):
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class ChecklistItem:
    id: str
    order: int
    description: str
    is_required: bool = False

    def to_dict(self):
        return {
            'id': self.id,
            'order': self.order,
            'description': self.description,
            'is_required': self.is_required,
        }


@dataclass(frozen=True)
class RequiredPart:
    code: str
    name: str
    quantity: int = 1

    def to_dict(self):
        return {'code': self.code, 'name': self.name, 'quantity': self.quantity}


@dataclass(frozen=True)
class ChecklistResult:
    item_id: str
    is_checked: bool = False
    has_issue: bool = False
    notes: Optional[str] = None

    def to_dict(self):
        return {
            'item_id': self.item_id,
            'is_checked': self.is_checked,
            'has_issue': self.has_issue,
            'notes': self.notes,
        }


@dataclass(frozen=True)
class UsedPart:
    code: str
    name: str
    quantity: int = 1

    def to_dict(self):
        return {'code': self.code, 'name': self.name, 'quantity': self.quantity}


@dataclass(frozen=True)
class PMTemplate:
    """
    Шаблон ППР — многоразовое описание работ: периодичность, чек-лист, запчасти.
    """
    id: str
    name: str
    interval_type: IntervalType
    interval_value: int
    checklist_items: Tuple[ChecklistItem, ...] = ()
    required_parts: Tuple[RequiredPart, ...] = ()
    estimated_duration_minutes: int = 0
    equipment_type_id: Optional[str] = None
    description: str = ''
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def required_items(self):
        return [item for item in self.checklist_items if item.is_required]

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'equipment_type_id': self.equipment_type_id,
            'interval_type': self.interval_type.value,
            'interval_value': self.interval_value,
            'estimated_duration_minutes': self.estimated_duration_minutes,
            'checklist_items': [item.to_dict() for item in self.checklist_items],
            'required_parts': [part.to_dict() for part in self.required_parts],
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


@dataclass(frozen=True)
class PMSchedule:
    """
    График ППР — одна датированная работа по шаблону для единицы оборудования.
    Ключ уникальности: (equipment_id, template_id, scheduled_date).
    """
    id: str
    template_id: str
    equipment_id: str
    scheduled_date: date
    status: ScheduleStatus = ScheduleStatus.SCHEDULED
    priority: Priority = Priority.MEDIUM
    assigned_technician_id: Optional[str] = None
    notes: Optional[str] = None
    # Отправленные напоминания; множество только растёт
    notifications_sent: FrozenSet[NotificationThreshold] = field(default_factory=frozenset)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self):
        return (self.equipment_id, self.template_id, self.scheduled_date)

    def was_notified(self, threshold):
        return threshold in self.notifications_sent

    def to_dict(self):
        data = {
            'id': self.id,
            'template_id': self.template_id,
            'equipment_id': self.equipment_id,
            'scheduled_date': self.scheduled_date.isoformat(),
            'status': self.status.value,
            'priority': self.priority.value,
            'assigned_technician_id': self.assigned_technician_id,
            'notes': self.notes,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        for threshold in NotificationThreshold:
            data[threshold.flag_name] = self.was_notified(threshold)
        return data


@dataclass(frozen=True)
class PMExecution:
    """
    Выполнение ППР — работа техника по графику. Не более одного на график.
    Длительность не хранится, а вычисляется из started_at и completed_at.
    """
    id: str
    schedule_id: str
    equipment_id: str
    technician_id: str
    started_at: datetime
    status: ExecutionStatus = ExecutionStatus.IN_PROGRESS
    checklist_results: Tuple[ChecklistResult, ...] = ()
    used_parts: Tuple[UsedPart, ...] = ()
    findings: Optional[str] = None
    findings_severity: FindingsSeverity = FindingsSeverity.NONE
    rating: Optional[int] = None
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def duration_minutes(self):
        if self.completed_at is None:
            return None
        minutes = (self.completed_at - self.started_at).total_seconds() / 60
        # Округление половины вверх, как в отчётах
        return int(math.floor(minutes + 0.5))

    def result_for(self, item_id):
        for result in self.checklist_results:
            if result.item_id == item_id:
                return result
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'schedule_id': self.schedule_id,
            'equipment_id': self.equipment_id,
            'technician_id': self.technician_id,
            'status': self.status.value,
            'started_at': _iso(self.started_at),
            'completed_at': _iso(self.completed_at),
            'duration_minutes': self.duration_minutes,
            'checklist_results': [result.to_dict() for result in self.checklist_results],
            'used_parts': [part.to_dict() for part in self.used_parts],
            'findings': self.findings,
            'findings_severity': self.findings_severity.value,
            'rating': self.rating,
            'notes': self.notes,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }

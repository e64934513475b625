# -*- coding: utf-8 -*-
"""
PMService — единая точка входа движка ППР для веб-слоя, CLI и фоновых проходов.

Собирает компоненты (реестр шаблонов, генератор, жизненный цикл, учёт выполнения,
напоминания, показатели) вокруг одного хранилища и справочников.
"""
import logging
from datetime import timedelta

from .compliance import ComplianceCalculator, period_bounds
from .directory import Clock
from .entities import Priority, ScheduleStatus
from .errors import InvalidField, ScheduleNotFound, TechnicianNotFound
from .execution import ExecutionTracker
from .generator import DEFAULT_MONTHS_AHEAD, ScheduleGenerator
from .lifecycle import LifecycleManager
from .notifications import NotificationEvaluator, dispatch
from .parsing import parse_date, parse_enum, parse_int
from .store import ScheduleFilter
from .templates import TemplateRegistry

_logger = logging.getLogger(__name__)

S = ScheduleStatus

# Поля графика, которые можно менять вне жизненного цикла
SCHEDULE_EDITABLE_FIELDS = ('assigned_technician_id', 'priority', 'notes', 'scheduled_date')


def _statuses(status):
    """Статус фильтра: строка, список или строка через запятую."""
    if status is None or status == '':
        return None
    if isinstance(status, str):
        status = [part for part in status.split(',') if part.strip()]
    elif isinstance(status, ScheduleStatus):
        status = [status]
    return tuple(parse_enum(ScheduleStatus, value.strip() if isinstance(value, str) else value, 'status')
                 for value in status)


class PMService:

    def __init__(self, store, directory, clock=None, deliverer=None, default_months_ahead=DEFAULT_MONTHS_AHEAD):
        self.store = store
        self.directory = directory
        self.clock = clock or Clock()
        self.templates = TemplateRegistry(store)
        self.lifecycle = LifecycleManager(store, self.clock)
        self.generator = ScheduleGenerator(store, directory, self.clock, default_months_ahead)
        self.executions = ExecutionTracker(store, directory, self.clock, self.lifecycle)
        self.notifications = NotificationEvaluator(store, self.clock, deliverer, directory)
        self.compliance = ComplianceCalculator(store, self.clock, directory)

    # === ШАБЛОНЫ ===

    def _check_equipment_type(self, equipment_type_id):
        if equipment_type_id and equipment_type_id not in {t.id for t in self.directory.list_equipment_types()}:
            raise InvalidField(f'Тип оборудования {equipment_type_id} не найден', field='equipment_type_id')

    def create_template(self, **fields):
        self._check_equipment_type(fields.get('equipment_type_id'))
        return self.templates.create(**fields)

    def update_template(self, template_id, **changes):
        self._check_equipment_type(changes.get('equipment_type_id'))
        return self.templates.update(template_id, **changes)

    def delete_template(self, template_id):
        self.templates.delete(template_id)

    def get_template(self, template_id):
        return self.templates.get(template_id)

    def list_templates(self, equipment_type_id=None, active_only=False):
        return self.templates.list(equipment_type_id=equipment_type_id, active_only=active_only)

    # === ГРАФИКИ ===

    def generate_schedules(self, template_id, equipment_ids, start_date=None, months_ahead=None,
                           priority=Priority.MEDIUM, assigned_technician_id=None):
        return self.generator.generate(
            template_id, equipment_ids,
            start_date=start_date,
            months_ahead=months_ahead,
            priority=priority,
            assigned_technician_id=assigned_technician_id,
        )

    def create_schedule(self, template_id, equipment_id, scheduled_date, priority=Priority.MEDIUM,
                        assigned_technician_id=None, notes=None):
        return self.generator.create_schedule(
            template_id, equipment_id, scheduled_date,
            priority=priority,
            assigned_technician_id=assigned_technician_id,
            notes=notes,
        )

    def update_schedule(self, schedule_id, **changes):
        """Меняет техника, приоритет, заметки или дату графика до начала работ."""
        unknown = set(changes) - set(SCHEDULE_EDITABLE_FIELDS)
        if unknown:
            raise InvalidField(f'Эти поля графика нельзя менять напрямую: {", ".join(sorted(unknown))}',
                               field=sorted(unknown)[0])
        values = {}
        if 'assigned_technician_id' in changes:
            technician_id = changes['assigned_technician_id'] or None
            if technician_id and self.directory.get_user(technician_id) is None:
                raise TechnicianNotFound(technician_id)
            values['assigned_technician_id'] = technician_id
        if 'priority' in changes:
            values['priority'] = parse_enum(Priority, changes['priority'], 'priority')
        if 'notes' in changes:
            values['notes'] = changes['notes'] or None
        if 'scheduled_date' in changes:
            values['scheduled_date'] = parse_date(changes['scheduled_date'], 'scheduled_date')
        return self.lifecycle.update_details(schedule_id, **values)

    def list_schedules(self, equipment_id=None, equipment_type_id=None, technician_id=None, status=None,
                       priority=None, date_from=None, date_to=None):
        """
        Графики по фильтру; все условия необязательные и объединяются через И.

        Args:
            equipment_id: ID оборудования
            equipment_type_id: ID типа оборудования (разворачивается в список оборудования)
            technician_id: Назначенный техник
            status: Статус, список статусов или строка 'scheduled,overdue'
            priority: low / medium / high
            date_from, date_to: Границы scheduled_date включительно

        Returns:
            list[PMSchedule]: по возрастанию даты
        """
        schedule_filter = ScheduleFilter(
            equipment_id=equipment_id or None,
            technician_id=technician_id or None,
            statuses=_statuses(status),
            priority=parse_enum(Priority, priority, 'priority') if priority else None,
            date_from=parse_date(date_from, 'date_from') if date_from else None,
            date_to=parse_date(date_to, 'date_to') if date_to else None,
        )
        if equipment_type_id:
            schedule_filter.equipment_ids = self.directory.equipment_ids_of_type(equipment_type_id)
        return self.store.schedules.list(schedule_filter)

    def get_schedule(self, schedule_id):
        schedule = self.store.schedules.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFound(schedule_id)
        return schedule

    def get_upcoming_schedules(self, days=7):
        days = parse_int(days, 'days', minimum=0, maximum=366)
        today = self.clock.today()
        return self.store.schedules.list(ScheduleFilter(
            statuses=(S.SCHEDULED, S.IN_PROGRESS),
            date_from=today,
            date_to=today + timedelta(days=days),
        ))

    def get_overdue_schedules(self):
        return self.store.schedules.list(ScheduleFilter(statuses=(S.OVERDUE,)))

    def get_today_schedules(self):
        today = self.clock.today()
        return self.store.schedules.list(ScheduleFilter(
            statuses=(S.SCHEDULED, S.IN_PROGRESS), date_from=today, date_to=today))

    def get_schedules_by_month(self, period):
        first, last = period_bounds(period)
        return self.store.schedules.list(ScheduleFilter(date_from=first, date_to=last))

    def cancel_schedule(self, schedule_id):
        return self.lifecycle.cancel(schedule_id)

    def delete_schedule(self, schedule_id):
        return self.lifecycle.delete(schedule_id)

    # === ВЫПОЛНЕНИЕ ===

    def start_execution(self, schedule_id, technician_id=None):
        return self.executions.start(schedule_id, technician_id)

    def update_execution(self, execution_id, **fields):
        return self.executions.update(execution_id, **fields)

    def complete_execution(self, execution_id, **fields):
        return self.executions.complete(execution_id, **fields)

    def get_execution(self, execution_id):
        return self.executions.get(execution_id)

    def get_execution_by_schedule(self, schedule_id):
        return self.executions.get_by_schedule(schedule_id)

    def list_executions(self, schedule_id=None):
        return self.executions.list(schedule_id)

    # === ФОНОВЫЕ ПРОХОДЫ ===

    def run_overdue_sweep(self, today=None):
        """
        Переводит пропущенные графики в overdue и отправляет по каждому одно
        уведомление о просрочке.

        Returns:
            list[PMSchedule]: графики, переведённые этим проходом
        """
        promoted = self.lifecycle.run_overdue_sweep(today)
        if promoted:
            dispatch(self.notifications.deliverer, self.notifications.overdue_events(promoted))
        return promoted

    def run_notification_sweep(self, today=None):
        return self.notifications.run(today)

    # === ПОКАЗАТЕЛИ ===

    def get_dashboard_stats(self):
        return self.compliance.dashboard()

    def get_compliance_stats(self, period_count=6):
        return self.compliance.compliance_stats(period_count)

    def get_compliance_for_period(self, period):
        return self.compliance.for_period(period)

    def get_monthly_trend(self, months=6):
        return self.compliance.monthly_trend(months)

    def get_compliance_by_equipment_type(self):
        return self.compliance.by_equipment_type()

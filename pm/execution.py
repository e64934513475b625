# -*- coding: utf-8 -*-
"""
Учёт выполнения ППР: старт работ техником, сохранение прогресса, завершение.

Старт и завершение меняют сразу две записи (график и выполнение), поэтому
выполняются внутри store.atomic(): либо применяются обе, либо ни одна.
"""
import logging

from .entities import ChecklistResult, ExecutionStatus, FindingsSeverity, PMExecution, ScheduleStatus
from .errors import (
    AlreadyCompleted, ExecutionNotFound, InvalidField, RequiredItemsIncomplete, ScheduleNotFound,
    TechnicianNotFound,
)
from .lifecycle import check_transition
from .parsing import parse_checklist_results, parse_enum, parse_int, parse_used_parts
from .store import new_id

_logger = logging.getLogger(__name__)

# Поля, которые техник сохраняет по ходу работ и при завершении
PROGRESS_FIELDS = ('checklist_results', 'used_parts', 'findings', 'findings_severity', 'rating', 'notes')


class ExecutionTracker:

    def __init__(self, store, directory, clock, lifecycle):
        self.store = store
        self.directory = directory
        self.clock = clock
        self.lifecycle = lifecycle

    # === ЧТЕНИЕ ===

    def get(self, execution_id):
        execution = self.store.executions.get(execution_id)
        if execution is None:
            raise ExecutionNotFound(execution_id)
        return execution

    def get_by_schedule(self, schedule_id):
        if self.store.schedules.get(schedule_id) is None:
            raise ScheduleNotFound(schedule_id)
        execution = self.store.executions.get_by_schedule(schedule_id)
        if execution is None:
            raise ExecutionNotFound(schedule_id, message=f'По графику {schedule_id} работы не начинались')
        return execution

    def list(self, schedule_id=None):
        return self.store.executions.list(schedule_id=schedule_id)

    # === ИЗМЕНЕНИЕ ===

    def start(self, schedule_id, technician_id=None):
        """
        Начинает работы по графику.

        Если на график уже назначен техник, выполнение записывается на него;
        иначе на technician_id, и он же закрепляется за графиком.

        Returns:
            PMExecution

        Raises:
            ScheduleNotFound, TechnicianNotFound
            AlreadyInProgress / AlreadyCompleted / InvalidTransition: график не в scheduled или overdue
            DuplicateExecution: у графика уже есть выполнение
        """
        schedule = self.store.schedules.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFound(schedule_id)
        check_transition(schedule.status, ScheduleStatus.IN_PROGRESS)

        technician_id = schedule.assigned_technician_id or technician_id
        if not technician_id:
            raise InvalidField('Не указан техник', field='technician_id')
        if self.directory.get_user(technician_id) is None:
            raise TechnicianNotFound(technician_id)

        template = self.store.templates.get(schedule.template_id)
        checklist_items = template.checklist_items if template else ()

        with self.store.atomic():
            schedule = self.lifecycle.transition(
                schedule_id, ScheduleStatus.IN_PROGRESS, assigned_technician_id=technician_id)
            execution = self.store.executions.add(PMExecution(
                id=new_id('exe'),
                schedule_id=schedule_id,
                equipment_id=schedule.equipment_id,
                technician_id=technician_id,
                started_at=self.clock.now(),
                checklist_results=tuple(ChecklistResult(item_id=item.id) for item in checklist_items),
            ))
        _logger.info('PM execution %s started on schedule %s by %s', execution.id, schedule_id, technician_id)
        return execution

    def update(self, execution_id, **fields):
        """
        Сохраняет прогресс работ. Допустимо сколько угодно раз, пока выполнение не завершено.

        Raises:
            AlreadyCompleted: выполнение уже завершено
        """
        # Слияние чек-листа и запись идут под блокировкой выполнения
        with self.store.atomic():
            execution = self._open(execution_id)
            changes = self._prepare(execution, fields)
            updated = self.store.executions.compare_and_set(
                execution_id, (ExecutionStatus.IN_PROGRESS,), **changes)
            if updated is None:
                raise AlreadyCompleted('Выполнение уже завершено', current_status=ExecutionStatus.COMPLETED)
        return updated

    def complete(self, execution_id, **fields):
        """
        Завершает работы: проверяет обязательные пункты чек-листа, фиксирует
        completed_at и переводит график в completed.

        Raises:
            RequiredItemsIncomplete: не отмечен хотя бы один обязательный пункт
            AlreadyCompleted: выполнение уже завершено
        """
        with self.store.atomic():
            execution = self._open(execution_id)
            changes = self._prepare(execution, fields)
            results = changes.get('checklist_results', execution.checklist_results)
            checked = {result.item_id for result in results if result.is_checked}

            missing = [
                (item.id, item.description)
                for item in self._checklist_items(execution)
                if item.is_required and item.id not in checked
            ]
            if missing:
                _logger.warning('PM execution %s not completed: %d required item(s) unchecked',
                                execution_id, len(missing))
                raise RequiredItemsIncomplete(missing)

            updated = self.store.executions.compare_and_set(
                execution_id, (ExecutionStatus.IN_PROGRESS,), ExecutionStatus.COMPLETED,
                completed_at=self.clock.now(), **changes)
            if updated is None:
                raise AlreadyCompleted('Выполнение уже завершено', current_status=ExecutionStatus.COMPLETED)
            self.lifecycle.complete(execution.schedule_id)
        _logger.info('PM execution %s completed in %s min (schedule %s)',
                     execution_id, updated.duration_minutes, execution.schedule_id)
        return updated

    # === ВСПОМОГАТЕЛЬНОЕ ===

    def _open(self, execution_id):
        """Незавершённое выполнение, заблокированное до конца atomic()."""
        execution = self.store.executions.get_for_update(execution_id)
        if execution is None:
            raise ExecutionNotFound(execution_id)
        if execution.status == ExecutionStatus.COMPLETED:
            raise AlreadyCompleted('Выполнение уже завершено', current_status=execution.status)
        return execution

    def _checklist_items(self, execution):
        schedule = self.store.schedules.get(execution.schedule_id)
        template = self.store.templates.get(schedule.template_id) if schedule else None
        return template.checklist_items if template else ()

    def _prepare(self, execution, fields):
        """Проверяет присланные поля и возвращает изменения для записи."""
        unknown = set(fields) - set(PROGRESS_FIELDS)
        if unknown:
            raise InvalidField(f'Неизвестные поля выполнения: {", ".join(sorted(unknown))}',
                               field=sorted(unknown)[0])

        changes = {}
        if fields.get('checklist_results') is not None:
            known_items = {item.id for item in self._checklist_items(execution)}
            submitted = parse_checklist_results(fields['checklist_results'])
            foreign = [result.item_id for result in submitted if result.item_id not in known_items]
            if foreign:
                raise InvalidField(f'Пункты не из чек-листа шаблона: {", ".join(foreign)}',
                                   field='checklist_results', items=foreign)
            # Присланные результаты поверх уже сохранённых
            merged = {result.item_id: result for result in execution.checklist_results}
            merged.update((result.item_id, result) for result in submitted)
            changes['checklist_results'] = tuple(merged.values())
        if fields.get('used_parts') is not None:
            changes['used_parts'] = parse_used_parts(fields['used_parts'])
        if 'findings' in fields:
            changes['findings'] = fields['findings'] or None
        if fields.get('findings_severity') is not None:
            changes['findings_severity'] = parse_enum(
                FindingsSeverity, fields['findings_severity'], 'findings_severity')
        if 'rating' in fields:
            changes['rating'] = (
                None if fields['rating'] is None
                else parse_int(fields['rating'], 'rating', minimum=1, maximum=10)
            )
        if 'notes' in fields:
            changes['notes'] = fields['notes'] or None
        return changes

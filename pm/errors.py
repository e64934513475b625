# -*- coding: utf-8 -*-
"""
Типизированные ошибки движка ППР (планово-предупредительного ремонта).

Четыре семейства:
- NotFound            — запись не найдена (шаблон, оборудование, техник, график, выполнение);
- StateViolation      — недопустимый переход состояния;
- ValidationFailure   — некорректные данные (обязательные пункты чек-листа, периодичность);
- ReferentialConflict — удаление шаблона, на который ссылаются графики.

Слой API отображает их в HTTP-ответы, сам движок возвращает только структурированные ошибки.
"""


class PMError(Exception):
    """Базовая ошибка движка ППР."""

    code = 'pm_error'

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        data = {'code': self.code, 'message': self.message}
        data.update(self.details)
        return data


# === NotFound ===

class NotFound(PMError):
    code = 'not_found'
    entity = 'record'

    def __init__(self, entity_id, message=None):
        super().__init__(
            message or f'{self.entity} {entity_id} не найден(а)',
            entity=self.entity,
            entity_id=entity_id,
        )
        self.entity_id = entity_id


class TemplateNotFound(NotFound):
    code = 'template_not_found'
    entity = 'template'


class EquipmentNotFound(NotFound):
    code = 'equipment_not_found'
    entity = 'equipment'


class TechnicianNotFound(NotFound):
    code = 'technician_not_found'
    entity = 'technician'


class ScheduleNotFound(NotFound):
    code = 'schedule_not_found'
    entity = 'schedule'


class ExecutionNotFound(NotFound):
    code = 'execution_not_found'
    entity = 'execution'


# === StateViolation ===

class StateViolation(PMError):
    code = 'state_violation'

    def __init__(self, message, current_status=None, **details):
        super().__init__(message, current_status=_status_value(current_status), **details)
        self.current_status = current_status


class AlreadyInProgress(StateViolation):
    code = 'already_in_progress'


class AlreadyCompleted(StateViolation):
    code = 'already_completed'


class ScheduleNotInProgress(StateViolation):
    code = 'schedule_not_in_progress'


class ScheduleNotCancellable(StateViolation):
    code = 'schedule_not_cancellable'


class ScheduleNotDeletable(StateViolation):
    code = 'schedule_not_deletable'


class InvalidTransition(StateViolation):
    code = 'invalid_transition'


class DuplicateExecution(StateViolation):
    code = 'duplicate_execution'


class DuplicateSchedule(StateViolation):
    code = 'duplicate_schedule'


# === ValidationFailure ===

class ValidationFailure(PMError):
    code = 'validation_failure'

    def __init__(self, message, field=None, **details):
        super().__init__(message, field=field, **details)
        self.field = field


class InvalidField(ValidationFailure):
    code = 'invalid_field'


class InvalidRecurrence(ValidationFailure):
    code = 'invalid_recurrence'


class RequiredItemsIncomplete(ValidationFailure):
    code = 'required_items_incomplete'

    def __init__(self, missing_items):
        # missing_items: список пар (item_id, description)
        super().__init__(
            'Не выполнены обязательные пункты чек-листа: '
            + ', '.join(description for _, description in missing_items),
            field='checklist_results',
            items=[{'item_id': item_id, 'description': description}
                   for item_id, description in missing_items],
        )
        self.missing_items = [item_id for item_id, _ in missing_items]


# === ReferentialConflict ===

class ReferentialConflict(PMError):
    code = 'referential_conflict'


class TemplateInUse(ReferentialConflict):
    code = 'template_in_use'

    def __init__(self, template_id, schedule_count):
        super().__init__(
            f'Шаблон {template_id} используется в {schedule_count} график(ах) и не может быть удалён',
            template_id=template_id,
            schedule_count=schedule_count,
        )


def _status_value(status):
    return getattr(status, 'value', status)

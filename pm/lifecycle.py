# -*- coding: utf-8 -*-
"""
Жизненный цикл графика ППР.

    scheduled ──► in_progress ──► completed
        │  ▲            ▲
        │  └─ overdue ──┘
        └──────┴──► cancelled

Все допустимые переходы перечислены в TRANSITIONS; любое изменение статуса графика
проходит через LifecycleManager и применяется условно (только если статус не изменился
с момента проверки).
"""
import logging
from datetime import timedelta

from .entities import ScheduleStatus
from .errors import (
    AlreadyCompleted, AlreadyInProgress, InvalidTransition, ScheduleNotCancellable,
    ScheduleNotDeletable, ScheduleNotFound, ScheduleNotInProgress,
)
from .store import ScheduleFilter

_logger = logging.getLogger(__name__)

S = ScheduleStatus

TRANSITIONS = {
    S.SCHEDULED: frozenset({S.IN_PROGRESS, S.OVERDUE, S.CANCELLED}),
    S.OVERDUE: frozenset({S.IN_PROGRESS, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

# Физически удалять можно всё, кроме начатых и завершённых работ
DELETABLE = frozenset({S.SCHEDULED, S.OVERDUE, S.CANCELLED})

# Сколько раз перечитывать график, если его статус изменился между проверкой и записью
MAX_ATTEMPTS = 3


def is_terminal(status):
    return not TRANSITIONS[ScheduleStatus(status)]


def check_transition(current, target):
    """
    Проверяет переход current -> target.

    Raises:
        AlreadyInProgress / AlreadyCompleted: повторный старт
        ScheduleNotInProgress: завершение не начатой работы
        ScheduleNotCancellable: отмена начатой или завершённой работы
        InvalidTransition: любой другой переход вне TRANSITIONS
    """
    current = ScheduleStatus(current)
    target = ScheduleStatus(target)
    if target in TRANSITIONS[current]:
        return

    if target == S.IN_PROGRESS:
        if current == S.IN_PROGRESS:
            raise AlreadyInProgress('Работы по графику уже начаты', current_status=current)
        if current == S.COMPLETED:
            raise AlreadyCompleted('Работы по графику уже завершены', current_status=current)
    elif target == S.COMPLETED:
        if current == S.COMPLETED:
            raise AlreadyCompleted('Работы по графику уже завершены', current_status=current)
        raise ScheduleNotInProgress('Завершить можно только начатые работы', current_status=current)
    elif target == S.CANCELLED and current in (S.IN_PROGRESS, S.COMPLETED):
        raise ScheduleNotCancellable(
            'Нельзя отменить начатые или завершённые работы', current_status=current)

    raise InvalidTransition(
        f'Переход {current.value} -> {target.value} недопустим',
        current_status=current,
        target_status=target.value,
    )


def check_deletable(current):
    current = ScheduleStatus(current)
    if current not in DELETABLE:
        raise ScheduleNotDeletable(
            'Нельзя удалить начатые или завершённые работы', current_status=current)


class LifecycleManager:

    def __init__(self, store, clock):
        self.store = store
        self.clock = clock

    def _get(self, schedule_id):
        schedule = self.store.schedules.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFound(schedule_id)
        return schedule

    def transition(self, schedule_id, target, **changes):
        """
        Переводит график в статус target, по пути применяя changes.

        Returns:
            PMSchedule: график после перехода
        """
        target = ScheduleStatus(target)
        for _ in range(MAX_ATTEMPTS):
            schedule = self._get(schedule_id)
            check_transition(schedule.status, target)
            updated = self.store.schedules.compare_and_set(
                schedule_id, (schedule.status,), target, **changes)
            if updated is not None:
                _logger.info('PM schedule %s: %s -> %s', schedule_id, schedule.status.value, target.value)
                return updated
        current = self._get(schedule_id)
        check_transition(current.status, target)
        raise InvalidTransition(
            'Статус графика меняется параллельно, повторите операцию',
            current_status=current.status,
            target_status=target.value,
        )

    def cancel(self, schedule_id):
        return self.transition(schedule_id, S.CANCELLED)

    def complete(self, schedule_id):
        return self.transition(schedule_id, S.COMPLETED)

    def delete(self, schedule_id):
        """Физически удаляет график в статусе scheduled, overdue или cancelled."""
        for _ in range(MAX_ATTEMPTS):
            schedule = self._get(schedule_id)
            check_deletable(schedule.status)
            if self.store.schedules.delete(schedule_id, (schedule.status,)):
                _logger.info('PM schedule %s deleted (was %s)', schedule_id, schedule.status.value)
                return schedule
        current = self._get(schedule_id)
        check_deletable(current.status)
        raise ScheduleNotDeletable(
            'Статус графика меняется параллельно, повторите операцию', current_status=current.status)

    def update_details(self, schedule_id, **changes):
        """
        Меняет назначение, приоритет, заметки или дату графика, не трогая статус.
        Разрешено только до начала работ (scheduled, overdue). Дату просроченного
        графика не переносят: его можно отменить и создать новый.
        """
        editable = (S.SCHEDULED,) if 'scheduled_date' in changes else (S.SCHEDULED, S.OVERDUE)
        schedule = self._get(schedule_id)
        if schedule.status not in editable:
            raise InvalidTransition(self._edit_refusal(schedule.status, changes), current_status=schedule.status)
        updated = self.store.schedules.compare_and_set(schedule_id, editable, **changes)
        if updated is None:
            current = self._get(schedule_id)
            raise InvalidTransition(self._edit_refusal(current.status, changes), current_status=current.status)
        return updated

    @staticmethod
    def _edit_refusal(status, changes):
        if status == S.OVERDUE and 'scheduled_date' in changes:
            return 'Дату просроченного графика перенести нельзя'
        return 'Изменять можно только графики, по которым работы ещё не начаты'

    def run_overdue_sweep(self, today=None):
        """
        Переводит в overdue все графики scheduled с датой раньше сегодняшней.
        Идемпотентна: повторный запуск без изменений ничего не делает.

        Returns:
            list[PMSchedule]: графики, переведённые этим запуском
        """
        today = today or self.clock.today()
        candidates = self.store.schedules.list(ScheduleFilter(
            statuses=(S.SCHEDULED,),
            date_to=today - timedelta(days=1),
        ))
        promoted = []
        for schedule in candidates:
            # Условное обновление: одновременный «старт» работ выигрывает
            updated = self.store.schedules.compare_and_set(schedule.id, (S.SCHEDULED,), S.OVERDUE)
            if updated is not None:
                promoted.append(updated)
        _logger.info('PM overdue sweep for %s: %d of %d schedule(s) promoted',
                     today, len(promoted), len(candidates))
        return promoted

# -*- coding: utf-8 -*-
"""
Напоминания о графиках ППР.

NotificationEvaluator периодически просматривает графики в статусе scheduled и
формирует событие для каждого достигнутого порога (за 3 дня, за 1 день, в день работ).
Отметка об отправке ставится атомарно до передачи события в доставку, поэтому
повторные проходы не дублируют напоминания. Доставка — «выстрелил и забыл»:
ошибки транспорта логируются и не влияют на состояние графиков.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List

import requests

from .entities import NotificationThreshold, ScheduleStatus
from .store import ScheduleFilter

_logger = logging.getLogger(__name__)

OVERDUE = 'overdue'

_TITLES = {
    NotificationThreshold.THREE_DAYS: 'ППР через 3 дня',
    NotificationThreshold.ONE_DAY: 'ППР завтра',
    NotificationThreshold.SAME_DAY: 'ППР сегодня',
    OVERDUE: 'ППР просрочено',
}


@dataclass(frozen=True)
class NotificationEvent:
    """Событие напоминания, передаваемое транспорту доставки."""
    kind: str
    schedule_id: str
    equipment_id: str
    template_id: str
    scheduled_date: object
    priority: str
    recipients: tuple = ()
    title: str = ''
    body: str = ''

    def to_dict(self):
        return {
            'type': 'pm_schedule',
            'kind': self.kind,
            'title': self.title,
            'body': self.body,
            'recipients': list(self.recipients),
            'schedule_id': self.schedule_id,
            'equipment_id': self.equipment_id,
            'template_id': self.template_id,
            'scheduled_date': self.scheduled_date.isoformat(),
            'priority': self.priority,
            'url': f'/pm/schedules/{self.schedule_id}',
        }


def build_event(schedule, kind, equipment=None, template=None):
    """
    Формирует событие по графику.

    Args:
        schedule: PMSchedule
        kind: NotificationThreshold или 'overdue'
        equipment: Equipment из справочника (для текста), необязательно
        template: PMTemplate (для текста), необязательно
    """
    kind_value = getattr(kind, 'value', kind)
    equipment_label = f'[{equipment.code}] {equipment.name}' if equipment else f'[{schedule.equipment_id}]'
    template_label = template.name if template else schedule.template_id
    recipients = (schedule.assigned_technician_id,) if schedule.assigned_technician_id else ()
    return NotificationEvent(
        kind=kind_value,
        schedule_id=schedule.id,
        equipment_id=schedule.equipment_id,
        template_id=schedule.template_id,
        scheduled_date=schedule.scheduled_date,
        priority=schedule.priority.value,
        recipients=recipients,
        title=_TITLES[kind],
        body=f'{equipment_label} {template_label}: плановое обслуживание {schedule.scheduled_date.isoformat()}',
    )


# === ДОСТАВКА ===

class Deliverer:
    """Транспорт доставки. Подклассы переопределяют deliver()."""

    def deliver(self, event):
        raise NotImplementedError


class LoggingDeliverer(Deliverer):
    """Пишет события в журнал — транспорт по умолчанию."""

    def deliver(self, event):
        _logger.info('PM notification %s for schedule %s (%s): %s',
                     event.kind, event.schedule_id, event.scheduled_date, event.title)


class WebhookDeliverer(Deliverer):
    """Отправляет событие POST-запросом с JSON на внешний адрес (push-шлюз)."""

    def __init__(self, url, timeout=5, session=None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def deliver(self, event):
        response = self.session.post(self.url, json=event.to_dict(), timeout=self.timeout)
        response.raise_for_status()
        return response


def dispatch(deliverer, events):
    """Передаёт события транспорту; ошибки доставки только логируются."""
    delivered = 0
    for event in events:
        try:
            deliverer.deliver(event)
            delivered += 1
        except Exception:
            _logger.exception('Не удалось доставить напоминание %s по графику %s', event.kind, event.schedule_id)
    return delivered


# === ОЦЕНКА ПОРОГОВ ===

@dataclass
class NotificationRun:
    """Итог прохода: сколько напоминаний сформировано и по каким графикам."""
    events: List[NotificationEvent] = field(default_factory=list)
    schedules: list = field(default_factory=list)
    delivered: int = 0

    @property
    def sent(self):
        return len(self.events)

    def to_dict(self):
        return {
            'sent': self.sent,
            'delivered': self.delivered,
            'schedules': [s.to_dict() for s in self.schedules],
            'events': [e.to_dict() for e in self.events],
        }


class NotificationEvaluator:

    def __init__(self, store, clock, deliverer=None, directory=None):
        self.store = store
        self.clock = clock
        self.deliverer = deliverer or LoggingDeliverer()
        self.directory = directory

    def due_thresholds(self, schedule, today):
        """Пороги, которым соответствует дата графика на сегодня (без учёта флагов)."""
        return [
            threshold for threshold in NotificationThreshold
            if schedule.scheduled_date == today + timedelta(days=threshold.days_before)
        ]

    def run(self, today=None):
        """
        Один проход по графикам.

        Returns:
            NotificationRun: события этого прохода и графики, по которым они сформированы
        """
        today = today or self.clock.today()
        horizon = today + timedelta(days=max(t.days_before for t in NotificationThreshold))
        candidates = self.store.schedules.list(ScheduleFilter(
            statuses=(ScheduleStatus.SCHEDULED,),
            date_from=today,
            date_to=horizon,
        ))

        result = NotificationRun()
        for schedule in candidates:
            notified = False
            for threshold in self.due_thresholds(schedule, today):
                if schedule.was_notified(threshold):
                    continue
                # Отметку получает только первый из конкурирующих проходов
                if not self.store.schedules.mark_notified(schedule.id, threshold):
                    continue
                result.events.append(self._event(schedule, threshold))
                notified = True
            if notified:
                result.schedules.append(self.store.schedules.get(schedule.id) or schedule)

        result.delivered = dispatch(self.deliverer, result.events)
        _logger.info('PM notification sweep for %s: %d candidate(s), %d notification(s) emitted',
                     today, len(candidates), result.sent)
        return result

    def _event(self, schedule, kind):
        equipment = self.directory.get_equipment(schedule.equipment_id) if self.directory else None
        template = self.store.templates.get(schedule.template_id)
        return build_event(schedule, kind, equipment=equipment, template=template)

    def overdue_events(self, schedules):
        """События о просрочке для графиков, только что переведённых в overdue."""
        return [self._event(schedule, OVERDUE) for schedule in schedules]

# -*- coding: utf-8 -*-
"""
Генератор графиков ППР: разворачивает периодичность шаблона в датированные графики
для набора оборудования.

Повторный запуск с теми же аргументами ничего не дублирует: график с ключом
(оборудование, шаблон, дата) добавляется только если такого ещё нет.
"""
import logging
from dataclasses import dataclass, field
from typing import List

from .entities import PMSchedule, Priority
from .errors import DuplicateSchedule, EquipmentNotFound, InvalidField, TechnicianNotFound, TemplateNotFound
from .parsing import parse_date, parse_enum, parse_id_list, parse_int
from .recurrence import horizon, occurrences
from .store import new_id

_logger = logging.getLogger(__name__)

DEFAULT_MONTHS_AHEAD = 6
MAX_MONTHS_AHEAD = 60


@dataclass
class GenerationResult:
    """Итог генерации: созданные графики, пропущенные дубликаты и неизвестное оборудование."""
    created: List[PMSchedule] = field(default_factory=list)
    skipped_duplicates: int = 0
    invalid_equipment_ids: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'created_count': len(self.created),
            'skipped_duplicates': self.skipped_duplicates,
            'invalid_equipment_ids': list(self.invalid_equipment_ids),
            'schedules': [s.to_dict() for s in self.created],
        }


class ScheduleGenerator:

    def __init__(self, store, directory, clock, default_months_ahead=DEFAULT_MONTHS_AHEAD):
        self.store = store
        self.directory = directory
        self.clock = clock
        self.default_months_ahead = default_months_ahead

    def _template(self, template_id):
        template = self.store.templates.get(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        return template

    def _check_technician(self, technician_id):
        if technician_id and self.directory.get_user(technician_id) is None:
            raise TechnicianNotFound(technician_id)

    def generate(self, template_id, equipment_ids, start_date=None, months_ahead=None,
                 priority=Priority.MEDIUM, assigned_technician_id=None):
        """
        Создаёт графики по шаблону на окно [start_date, start_date + months_ahead).

        Args:
            template_id: ID шаблона
            equipment_ids: Список ID оборудования
            start_date: Дата первого графика (по умолчанию — сегодня)
            months_ahead: Горизонт в месяцах (по умолчанию — из настроек)
            priority: Приоритет новых графиков
            assigned_technician_id: Техник, назначаемый на все новые графики

        Returns:
            GenerationResult

        Raises:
            TemplateNotFound: шаблона нет
            EquipmentNotFound: ни один ID оборудования не найден
            InvalidField: шаблон неактивен, пустой список оборудования, неверный горизонт
        """
        template = self._template(template_id)
        if not template.is_active:
            raise InvalidField('Неактивный шаблон не может порождать графики', field='template_id')

        equipment_ids = parse_id_list(equipment_ids, 'equipment_ids')
        if not equipment_ids:
            raise InvalidField('Не указано оборудование', field='equipment_ids')

        start_date = parse_date(start_date, 'start_date') if start_date else self.clock.today()
        months_ahead = parse_int(
            self.default_months_ahead if months_ahead is None else months_ahead,
            'months_ahead', minimum=1, maximum=MAX_MONTHS_AHEAD,
        )
        priority = parse_enum(Priority, priority or Priority.MEDIUM, 'priority')
        self._check_technician(assigned_technician_id)

        result = GenerationResult()
        valid_ids = []
        for equipment_id in equipment_ids:
            if self.directory.get_equipment(equipment_id) is None:
                result.invalid_equipment_ids.append(equipment_id)
            else:
                valid_ids.append(equipment_id)
        if result.invalid_equipment_ids:
            _logger.warning('PM generation for template %s: skipping unknown equipment %s',
                            template_id, ', '.join(result.invalid_equipment_ids))
        if not valid_ids:
            raise EquipmentNotFound(equipment_ids[0])

        until = horizon(start_date, months_ahead)
        for scheduled_date in occurrences(start_date, template.interval_type, template.interval_value, until):
            for equipment_id in valid_ids:
                schedule = self.store.schedules.add_if_absent(PMSchedule(
                    id=new_id('sch'),
                    template_id=template.id,
                    equipment_id=equipment_id,
                    scheduled_date=scheduled_date,
                    priority=priority,
                    assigned_technician_id=assigned_technician_id or None,
                ))
                if schedule is None:
                    result.skipped_duplicates += 1
                else:
                    result.created.append(schedule)

        _logger.info('PM generation for template %s (%s..%s, %d equipment): %d created, %d duplicate(s) skipped',
                     template_id, start_date, until, len(valid_ids),
                     len(result.created), result.skipped_duplicates)
        return result

    def create_schedule(self, template_id, equipment_id, scheduled_date, priority=Priority.MEDIUM,
                        assigned_technician_id=None, notes=None):
        """
        Создаёт один график вручную.

        Raises:
            DuplicateSchedule: график с таким ключом уже есть
        """
        template = self._template(template_id)
        if self.directory.get_equipment(equipment_id) is None:
            raise EquipmentNotFound(equipment_id)
        self._check_technician(assigned_technician_id)

        schedule = self.store.schedules.add_if_absent(PMSchedule(
            id=new_id('sch'),
            template_id=template.id,
            equipment_id=equipment_id,
            scheduled_date=parse_date(scheduled_date, 'scheduled_date'),
            priority=parse_enum(Priority, priority or Priority.MEDIUM, 'priority'),
            assigned_technician_id=assigned_technician_id or None,
            notes=notes,
        ))
        if schedule is None:
            raise DuplicateSchedule(
                'График с таким оборудованием, шаблоном и датой уже существует',
                equipment_id=equipment_id,
                template_id=template_id,
            )
        _logger.info('PM schedule %s created manually for %s on %s', schedule.id, equipment_id,
                     schedule.scheduled_date)
        return schedule

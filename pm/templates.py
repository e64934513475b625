# -*- coding: utf-8 -*-
"""
Реестр шаблонов ППР.
"""
import logging
from dataclasses import replace

from .entities import PMTemplate
from .errors import InvalidField, TemplateInUse, TemplateNotFound
from .parsing import parse_checklist_items, parse_int, parse_required_parts
from .recurrence import validate_recurrence
from .store import new_id

_logger = logging.getLogger(__name__)

# Поля, которые можно менять через update()
EDITABLE_FIELDS = (
    'name', 'description', 'equipment_type_id', 'interval_type', 'interval_value',
    'estimated_duration_minutes', 'checklist_items', 'required_parts', 'is_active',
)


def _clean_name(name):
    if not isinstance(name, str) or not name.strip():
        raise InvalidField('Название шаблона обязательно', field='name')
    return name.strip()


class TemplateRegistry:

    def __init__(self, store):
        self.store = store

    def get(self, template_id):
        template = self.store.templates.get(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        return template

    def list(self, equipment_type_id=None, active_only=False):
        return self.store.templates.list(equipment_type_id=equipment_type_id, active_only=active_only)

    def create(self, name, interval_type, interval_value=1, checklist_items=None, required_parts=None,
               estimated_duration_minutes=0, equipment_type_id=None, description='', is_active=True):
        """
        Создаёт шаблон.

        Raises:
            InvalidRecurrence: неизвестный тип периодичности или interval_value < 1
            InvalidField: пустое название, некорректный чек-лист или запчасти
        """
        interval_type, interval_value = validate_recurrence(interval_type, interval_value)
        template = PMTemplate(
            id=new_id('tpl'),
            name=_clean_name(name),
            description=description or '',
            equipment_type_id=equipment_type_id or None,
            interval_type=interval_type,
            interval_value=interval_value,
            estimated_duration_minutes=parse_int(
                estimated_duration_minutes or 0, 'estimated_duration_minutes', minimum=0),
            checklist_items=parse_checklist_items(checklist_items),
            required_parts=parse_required_parts(required_parts),
            is_active=bool(is_active),
        )
        template = self.store.templates.add(template)
        _logger.info('PM template %s created: %s (%s x%d, %d checklist item(s))',
                     template.id, template.name, template.interval_type.value,
                     template.interval_value, len(template.checklist_items))
        return template

    def update(self, template_id, **changes):
        """
        Частично обновляет шаблон. Периодичность проверяется заново целиком.
        Уже созданные графики не пересчитываются.
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise InvalidField(f'Неизвестные поля шаблона: {", ".join(sorted(unknown))}',
                               field=sorted(unknown)[0])

        current = self.get(template_id)
        values = {}
        if 'name' in changes:
            values['name'] = _clean_name(changes['name'])
        if 'description' in changes:
            values['description'] = changes['description'] or ''
        if 'equipment_type_id' in changes:
            values['equipment_type_id'] = changes['equipment_type_id'] or None
        if 'interval_type' in changes or 'interval_value' in changes:
            values['interval_type'], values['interval_value'] = validate_recurrence(
                changes.get('interval_type', current.interval_type),
                changes.get('interval_value', current.interval_value),
            )
        if 'estimated_duration_minutes' in changes:
            values['estimated_duration_minutes'] = parse_int(
                changes['estimated_duration_minutes'] or 0, 'estimated_duration_minutes', minimum=0)
        if 'checklist_items' in changes:
            values['checklist_items'] = parse_checklist_items(changes['checklist_items'])
        if 'required_parts' in changes:
            values['required_parts'] = parse_required_parts(changes['required_parts'])
        if 'is_active' in changes:
            values['is_active'] = bool(changes['is_active'])

        template = self.store.templates.save(replace(current, **values))
        _logger.info('PM template %s updated: %s', template_id, ', '.join(sorted(values)) or 'no changes')
        return template

    def delete(self, template_id):
        """
        Удаляет шаблон, если на него не ссылается ни один график.

        Raises:
            TemplateNotFound: шаблона нет
            TemplateInUse: есть графики по шаблону
        """
        with self.store.atomic():
            self.get(template_id)
            count = self.store.schedules.count_by_template(template_id)
            if count:
                _logger.warning('PM template %s not deleted: referenced by %d schedule(s)', template_id, count)
                raise TemplateInUse(template_id, count)
            self.store.templates.delete(template_id)
        _logger.info('PM template %s deleted', template_id)

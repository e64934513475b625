# -*- coding: utf-8 -*-
"""
Приведение входных данных (JSON форм и API) к доменным типам.
Любая ошибка формата превращается в InvalidField с именем поля.
"""
from datetime import date, datetime

from .entities import ChecklistItem, ChecklistResult, RequiredPart, UsedPart
from .errors import InvalidField


def parse_enum(enum_cls, value, field_name):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidField(
            f'Недопустимое значение поля {field_name}: {value!r}',
            field=field_name,
            allowed=[member.value for member in enum_cls],
        )


def parse_date(value, field_name):
    """Принимает date или строку YYYY-MM-DD."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise InvalidField(f'Некорректная дата в поле {field_name}: {value!r}', field=field_name)


def parse_int(value, field_name, minimum=None, maximum=None):
    if isinstance(value, bool):
        raise InvalidField(f'Поле {field_name} должно быть целым числом', field=field_name)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidField(f'Поле {field_name} должно быть целым числом', field=field_name)
    if isinstance(value, float) and number != value:
        raise InvalidField(f'Поле {field_name} должно быть целым числом', field=field_name)
    if minimum is not None and number < minimum:
        raise InvalidField(f'Поле {field_name} должно быть не меньше {minimum}', field=field_name)
    if maximum is not None and number > maximum:
        raise InvalidField(f'Поле {field_name} должно быть не больше {maximum}', field=field_name)
    return number


def _require_list(raw, field_name):
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        raise InvalidField(f'Поле {field_name} должно быть списком', field=field_name)
    return list(raw)


def _require_mapping(entry, field_name):
    if isinstance(entry, dict):
        return entry
    raise InvalidField(f'Элементы поля {field_name} должны быть объектами', field=field_name)


def parse_id_list(raw, field_name):
    """Список идентификаторов без повторов; одиночная строка — список из одного ID."""
    if isinstance(raw, str):
        raw = [raw]
    ids = []
    for value in _require_list(raw, field_name):
        if isinstance(value, bool) or not isinstance(value, (str, int)) or str(value).strip() == '':
            raise InvalidField(f'Некорректный ID в поле {field_name}: {value!r}', field=field_name)
        ids.append(str(value).strip())
    return list(dict.fromkeys(ids))


def parse_checklist_items(raw):
    """
    Пункты чек-листа шаблона. Без id получают item-<порядок>, без order — позицию в списке.
    Идентификаторы должны быть уникальны; результат отсортирован по order.
    """
    items = []
    seen = set()
    for position, entry in enumerate(_require_list(raw, 'checklist_items'), start=1):
        if isinstance(entry, ChecklistItem):
            item = entry
        else:
            entry = _require_mapping(entry, 'checklist_items')
            description = (entry.get('description') or '').strip()
            if not description:
                raise InvalidField('У пункта чек-листа нет описания', field='checklist_items', position=position)
            order = parse_int(entry.get('order', position), 'checklist_items.order', minimum=0)
            item = ChecklistItem(
                id=str(entry.get('id') or f'item-{position}'),
                order=order,
                description=description,
                is_required=bool(entry.get('is_required', False)),
            )
        if item.id in seen:
            raise InvalidField(f'Повторяющийся пункт чек-листа: {item.id}', field='checklist_items')
        seen.add(item.id)
        items.append(item)
    return tuple(sorted(items, key=lambda i: i.order))


def parse_required_parts(raw):
    parts = []
    for entry in _require_list(raw, 'required_parts'):
        if isinstance(entry, RequiredPart):
            parts.append(entry)
            continue
        entry = _require_mapping(entry, 'required_parts')
        code = str(entry.get('code') or entry.get('part_code') or '').strip()
        if not code:
            raise InvalidField('У запчасти не указан код', field='required_parts')
        parts.append(RequiredPart(
            code=code,
            name=str(entry.get('name') or entry.get('part_name') or code),
            quantity=parse_int(entry.get('quantity', 1), 'required_parts.quantity', minimum=1),
        ))
    return tuple(parts)


def parse_used_parts(raw):
    return tuple(
        UsedPart(code=part.code, name=part.name, quantity=part.quantity)
        for part in parse_required_parts(raw)
    )


def parse_checklist_results(raw):
    results = {}
    for entry in _require_list(raw, 'checklist_results'):
        if isinstance(entry, ChecklistResult):
            result = entry
        else:
            entry = _require_mapping(entry, 'checklist_results')
            item_id = entry.get('item_id')
            if not item_id:
                raise InvalidField('У результата чек-листа нет item_id', field='checklist_results')
            result = ChecklistResult(
                item_id=str(item_id),
                is_checked=bool(entry.get('is_checked', False)),
                has_issue=bool(entry.get('has_issue', False)),
                notes=entry.get('notes'),
            )
        # Последний результат по пункту побеждает
        results[result.item_id] = result
    return tuple(results.values())

# -*- coding: utf-8 -*-
"""
Календарная арифметика периодичности ППР.

Месяцы, кварталы и годы считаются через relativedelta, а не приближением в 30 дней:
31 января + 1 месяц = 29 февраля (в високосный год), а не 1 или 2 марта.
"""
from dateutil.relativedelta import relativedelta

from .entities import IntervalType
from .errors import InvalidRecurrence


def validate_recurrence(interval_type, interval_value):
    """
    Проверяет и нормализует правило периодичности.

    Returns:
        tuple: (IntervalType, int)

    Raises:
        InvalidRecurrence: неизвестный тип или interval_value < 1
    """
    try:
        interval_type = IntervalType(interval_type)
    except ValueError:
        raise InvalidRecurrence(
            f'Неизвестный тип периодичности: {interval_type!r}',
            field='interval_type',
            allowed=[t.value for t in IntervalType],
        )
    if isinstance(interval_value, bool) or not isinstance(interval_value, int):
        raise InvalidRecurrence('Значение периодичности должно быть целым числом', field='interval_value')
    if interval_value < 1:
        raise InvalidRecurrence('Значение периодичности должно быть не меньше 1', field='interval_value')
    return interval_type, interval_value


def _delta(interval_type, interval_value):
    if interval_type == IntervalType.DAILY:
        return relativedelta(days=interval_value)
    if interval_type == IntervalType.WEEKLY:
        return relativedelta(days=interval_value * 7)
    if interval_type == IntervalType.MONTHLY:
        return relativedelta(months=interval_value)
    if interval_type == IntervalType.QUARTERLY:
        return relativedelta(months=interval_value * 3)
    return relativedelta(years=interval_value)


def advance(start, interval_type, interval_value):
    """
    Сдвигает дату на interval_value шагов периодичности.

    Args:
        start: Исходная дата (date)
        interval_type: daily / weekly / monthly / quarterly / yearly
        interval_value: Число шагов (>= 1)

    Returns:
        date: Новая дата; день месяца прижимается к последнему дню, если его нет
    """
    interval_type, interval_value = validate_recurrence(interval_type, interval_value)
    return start + _delta(interval_type, interval_value)


def occurrences(start, interval_type, interval_value, until):
    """
    Даты повторений в полуинтервале [start, until).

    k-е повторение считается от start (advance(start, type, value * k)), а не от
    предыдущего: график, начатый 31-го, остаётся на последнем дне коротких месяцев
    и возвращается на 31-е в длинных.
    """
    interval_type, interval_value = validate_recurrence(interval_type, interval_value)
    step = 0
    current = start
    while current < until:
        yield current
        step += 1
        current = start + _delta(interval_type, interval_value * step)


def horizon(start, months_ahead):
    """Граница окна генерации: start + months_ahead календарных месяцев."""
    return start + relativedelta(months=months_ahead)

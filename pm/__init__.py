# -*- coding: utf-8 -*-
"""
Движок планово-предупредительного ремонта (ППР).

Содержит:
- Реестр шаблонов ППР и генератор графиков по периодичности
- Жизненный цикл графиков и проверку просрочки
- Учёт выполнения работ техниками
- Напоминания о предстоящих работах
- Показатели соблюдения графика
"""

from .directory import Clock, Directory, FixedClock, MemoryDirectory, SqlDirectory
from .errors import NotFound, PMError, ReferentialConflict, StateViolation, ValidationFailure
from .notifications import LoggingDeliverer, WebhookDeliverer
from .service import PMService
from .sql_store import SqlStore
from .store import MemoryStore, ScheduleFilter
from .ticker import Ticker

__all__ = [
    'Clock',
    'Directory',
    'FixedClock',
    'LoggingDeliverer',
    'MemoryDirectory',
    'MemoryStore',
    'NotFound',
    'PMError',
    'PMService',
    'ReferentialConflict',
    'ScheduleFilter',
    'SqlDirectory',
    'SqlStore',
    'StateViolation',
    'Ticker',
    'ValidationFailure',
    'WebhookDeliverer',
]

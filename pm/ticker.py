# -*- coding: utf-8 -*-
"""
Фоновый запуск периодических проходов (просрочка, напоминания).
"""
import logging
import threading

_logger = logging.getLogger(__name__)


class Ticker:
    """
    Вызывает func каждые interval секунд в фоновом потоке до вызова stop().
    Ошибка одного прохода логируется, следующий проход выполняется по расписанию.
    """

    def __init__(self, name, interval, func, run_immediately=True):
        if interval <= 0:
            raise ValueError(f'Интервал {name} должен быть положительным: {interval}')
        self.name = name
        self.interval = interval
        self.func = func
        self.run_immediately = run_immediately
        self._stop = threading.Event()
        self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def tick(self):
        try:
            return self.func()
        except Exception:
            _logger.exception('Проход %s завершился ошибкой', self.name)
            return None

    def _loop(self):
        if self.run_immediately:
            self.tick()
        while not self._stop.wait(self.interval):
            self.tick()

    def start(self):
        if self.running:
            return self
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=f'pm-{self.name}', daemon=True)
        self._thread.start()
        _logger.info('Ticker %s started (every %s s)', self.name, self.interval)
        return self

    def stop(self, timeout=None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        _logger.info('Ticker %s stopped', self.name)

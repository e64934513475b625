# -*- coding: utf-8 -*-
"""
Flask-приложение движка ППР (планово-предупредительного ремонта).

JSON API под /api/pm поверх PMService, команды `flask pm ...` для фоновых проходов.
В тестовом режиме (TEST_MODE=true) работает без БД: хранилище и справочники в памяти
с демонстрационными данными.
"""
import logging
import os
import threading

import click
from dotenv import load_dotenv
from flask import Blueprint, Flask, abort, current_app, jsonify, request
from flask.cli import AppGroup
from flask_login import LoginManager, UserMixin, current_user, login_required

from models import db
from pm import (
    Clock, LoggingDeliverer, MemoryStore, PMService, SqlDirectory, SqlStore, Ticker, WebhookDeliverer,
)
from pm import demo
from pm.errors import NotFound, PMError, ReferentialConflict, StateViolation, ValidationFailure
from pm.execution import PROGRESS_FIELDS

_logger = logging.getLogger(__name__)

# Поля шаблона, принимаемые из JSON
TEMPLATE_FIELDS = (
    'description', 'equipment_type_id', 'interval_value', 'estimated_duration_minutes',
    'checklist_items', 'required_parts', 'is_active',
)

# Соответствие семейств ошибок HTTP-кодам
HTTP_STATUS = (
    (NotFound, 404),
    (StateViolation, 409),
    (ValidationFailure, 422),
    (ReferentialConflict, 409),
)


def _env_flag(name, default='false'):
    return os.getenv(name, default).lower() == 'true'


# === ИНИЦИАЛИЗАЦИЯ Flask-Login ===

login_manager = LoginManager()


class ApiUser(UserMixin):
    """Пользователь из справочника, от имени которого выполняется запрос."""

    def __init__(self, user):
        self.id = user.id
        self.name = user.name
        self.role = user.role
        self.active = user.is_active

    @property
    def is_active(self):
        return bool(self.active)


@login_manager.user_loader
def load_user(user_id):
    """Загружает пользователя по ID для Flask-Login."""
    user = current_app.extensions['pm'].directory.get_user(user_id)
    if user is None or not user.is_active:
        return None
    return ApiUser(user)


@login_manager.request_loader
def load_user_from_request(req):
    """Пользователь из заголовка X-User-Id (для интеграций и мобильного клиента)."""
    user_id = req.headers.get('X-User-Id')
    return load_user(user_id) if user_id else None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'success': False, 'error': {'code': 'unauthorized', 'message': 'Требуется авторизация'}}), 401


# === ОБРАБОТКА ОШИБОК ===

def handle_pm_error(error):
    """Типизированные ошибки движка -> JSON с кодом и деталями."""
    status = next((code for cls, code in HTTP_STATUS if isinstance(error, cls)), 400)
    if status >= 409:
        _logger.warning('PM request %s %s refused: %s', request.method, request.path, error.message)
    return jsonify({'success': False, 'error': error.to_dict()}), status


def handle_bad_request(error):
    return jsonify({
        'success': False,
        'error': {'code': 'bad_request', 'message': error.description},
    }), 400


# === СБОРКА СЕРВИСА ===

def build_service(app):
    """
    Собирает PMService по настройкам приложения.

    TEST_MODE=true — хранилище и справочники в памяти (демо-данные),
    иначе — таблицы БД из DATABASE_URL.
    """
    clock = app.config.get('PM_CLOCK') or Clock(app.config['PM_TIMEZONE'])

    deliverer = app.config.get('PM_DELIVERER')
    if deliverer is None:
        url = app.config['PM_NOTIFY_WEBHOOK_URL']
        deliverer = WebhookDeliverer(url, timeout=app.config['PM_NOTIFY_TIMEOUT']) if url else LoggingDeliverer()

    if app.config['TEST_MODE']:
        store = MemoryStore(now=clock.now)
        directory = demo.build_directory()
    else:
        store = SqlStore(now=clock.now)
        directory = SqlDirectory()

    service = PMService(
        store, directory,
        clock=clock,
        deliverer=deliverer,
        default_months_ahead=app.config['PM_DEFAULT_MONTHS_AHEAD'],
    )
    if app.config['TEST_MODE'] and app.config.get('PM_DEMO_DATA', True):
        demo.seed(service)
    return service


def create_app(config=None):
    """
    Создаёт Flask-приложение.

    Args:
        config: Словарь настроек поверх переменных окружения (для тестов)
    """
    # Загружаем переменные окружения из .env
    load_dotenv()

    app = Flask(__name__)
    app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'fallback-secret-key-for-dev')
    app.config['SQLALCHEMY_DATABASE_URI'] = os.getenv('DATABASE_URL', 'sqlite:///pm.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['TEST_MODE'] = _env_flag('TEST_MODE')
    app.config['PM_TIMEZONE'] = os.getenv('PM_TIMEZONE', 'UTC')
    app.config['PM_DEFAULT_MONTHS_AHEAD'] = int(os.getenv('PM_DEFAULT_MONTHS_AHEAD', '6'))
    app.config['PM_OVERDUE_SWEEP_SECONDS'] = int(os.getenv('PM_OVERDUE_SWEEP_SECONDS', '3600'))
    app.config['PM_NOTIFICATION_SWEEP_SECONDS'] = int(os.getenv('PM_NOTIFICATION_SWEEP_SECONDS', '900'))
    app.config['PM_NOTIFY_WEBHOOK_URL'] = os.getenv('PM_NOTIFY_WEBHOOK_URL')
    app.config['PM_NOTIFY_TIMEOUT'] = float(os.getenv('PM_NOTIFY_TIMEOUT', '5'))
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO').upper()
    if config:
        app.config.update(config)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    db.init_app(app)
    login_manager.init_app(app)

    app.extensions['pm'] = build_service(app)
    app.register_blueprint(api)
    app.register_error_handler(PMError, handle_pm_error)
    app.register_error_handler(400, handle_bad_request)
    app.cli.add_command(pm_cli)

    _logger.info('PM engine started (%s backend, timezone %s)',
                 'memory' if app.config['TEST_MODE'] else 'sql', app.config['PM_TIMEZONE'])
    return app


# === ВСПОМОГАТЕЛЬНЫЕ ФУНКЦИИ МАРШРУТОВ ===

api = Blueprint('pm_api', __name__, url_prefix='/api/pm')


def _service():
    return current_app.extensions['pm']


def _json():
    """Тело запроса как словарь; пустое тело — пустой словарь."""
    data = request.get_json(silent=True)
    if data is None:
        if request.get_data():
            abort(400, description='Тело запроса должно быть корректным JSON')
        return {}
    if not isinstance(data, dict):
        abort(400, description='Тело запроса должно быть JSON-объектом')
    return data


def _ok(data, status=200):
    return jsonify({'success': True, 'data': data}), status


def _dump(records):
    return [record.to_dict() for record in records]


def _pick(data, fields):
    return {name: data[name] for name in fields if name in data}


@api.before_request
def create_tables_once():
    """Создаёт таблицы при первом запросе (только при работе с БД)."""
    if not current_app.config['TEST_MODE'] and not current_app.extensions.get('pm_tables_created'):
        db.create_all()
        current_app.extensions['pm_tables_created'] = True


# === ШАБЛОНЫ ===

@api.route('/templates', methods=['GET'])
@login_required
def list_templates():
    active_only = request.args.get('active_only', 'false').lower() == 'true'
    templates = _service().list_templates(
        equipment_type_id=request.args.get('equipment_type_id') or None,
        active_only=active_only,
    )
    return _ok(_dump(templates))


@api.route('/templates', methods=['POST'])
@login_required
def create_template():
    data = _json()
    template = _service().create_template(
        name=data.get('name'),
        interval_type=data.get('interval_type'),
        **_pick(data, TEMPLATE_FIELDS),
    )
    return _ok(template.to_dict(), 201)


@api.route('/templates/<template_id>', methods=['GET'])
@login_required
def get_template(template_id):
    return _ok(_service().get_template(template_id).to_dict())


@api.route('/templates/<template_id>', methods=['PATCH', 'PUT'])
@login_required
def update_template(template_id):
    template = _service().update_template(template_id, **_json())
    return _ok(template.to_dict())


@api.route('/templates/<template_id>', methods=['DELETE'])
@login_required
def delete_template(template_id):
    _service().delete_template(template_id)
    return _ok({'id': template_id})


# === ГРАФИКИ ===

@api.route('/schedules/generate', methods=['POST'])
@login_required
def generate_schedules():
    """
    Генерация графиков по шаблону. Оборудование — списком equipment_ids
    или всё оборудование типа equipment_type_id.
    """
    data = _json()
    service = _service()
    equipment_ids = data.get('equipment_ids')
    if not equipment_ids and data.get('equipment_type_id'):
        equipment_ids = sorted(service.directory.equipment_ids_of_type(data['equipment_type_id']))
    result = service.generate_schedules(
        data.get('template_id'),
        equipment_ids,
        start_date=data.get('start_date'),
        months_ahead=data.get('months_ahead'),
        priority=data.get('priority'),
        assigned_technician_id=data.get('assigned_technician_id'),
    )
    return _ok(result.to_dict(), 201)


@api.route('/schedules', methods=['POST'])
@login_required
def create_schedule():
    data = _json()
    schedule = _service().create_schedule(
        data.get('template_id'),
        data.get('equipment_id'),
        data.get('scheduled_date'),
        priority=data.get('priority'),
        assigned_technician_id=data.get('assigned_technician_id'),
        notes=data.get('notes'),
    )
    return _ok(schedule.to_dict(), 201)


@api.route('/schedules', methods=['GET'])
@login_required
def list_schedules():
    args = request.args
    schedules = _service().list_schedules(
        equipment_id=args.get('equipment_id'),
        equipment_type_id=args.get('equipment_type_id'),
        technician_id=args.get('technician_id'),
        status=args.get('status'),
        priority=args.get('priority'),
        date_from=args.get('start_date'),
        date_to=args.get('end_date'),
    )
    return _ok(_dump(schedules))


@api.route('/schedules/upcoming', methods=['GET'])
@login_required
def upcoming_schedules():
    return _ok(_dump(_service().get_upcoming_schedules(request.args.get('days', 7))))


@api.route('/schedules/overdue', methods=['GET'])
@login_required
def overdue_schedules():
    return _ok(_dump(_service().get_overdue_schedules()))


@api.route('/schedules/today', methods=['GET'])
@login_required
def today_schedules():
    return _ok(_dump(_service().get_today_schedules()))


@api.route('/schedules/month/<period>', methods=['GET'])
@login_required
def schedules_by_month(period):
    return _ok(_dump(_service().get_schedules_by_month(period)))


@api.route('/schedules/<schedule_id>', methods=['GET'])
@login_required
def get_schedule(schedule_id):
    return _ok(_service().get_schedule(schedule_id).to_dict())


@api.route('/schedules/<schedule_id>', methods=['PATCH'])
@login_required
def update_schedule(schedule_id):
    schedule = _service().update_schedule(schedule_id, **_json())
    return _ok(schedule.to_dict())


@api.route('/schedules/<schedule_id>', methods=['DELETE'])
@login_required
def delete_schedule(schedule_id):
    _service().delete_schedule(schedule_id)
    return _ok({'id': schedule_id})


@api.route('/schedules/<schedule_id>/cancel', methods=['POST'])
@login_required
def cancel_schedule(schedule_id):
    return _ok(_service().cancel_schedule(schedule_id).to_dict())


# === ВЫПОЛНЕНИЕ ===

@api.route('/schedules/<schedule_id>/start', methods=['POST'])
@login_required
def start_execution(schedule_id):
    """Начало работ: техник из тела запроса или текущий пользователь."""
    data = _json()
    technician_id = data.get('technician_id') or current_user.get_id()
    execution = _service().start_execution(schedule_id, technician_id)
    return _ok(execution.to_dict(), 201)


@api.route('/schedules/<schedule_id>/execution', methods=['GET'])
@login_required
def schedule_execution(schedule_id):
    return _ok(_service().get_execution_by_schedule(schedule_id).to_dict())


@api.route('/executions', methods=['GET'])
@login_required
def list_executions():
    return _ok(_dump(_service().list_executions(request.args.get('schedule_id') or None)))


@api.route('/executions/<execution_id>', methods=['GET'])
@login_required
def get_execution(execution_id):
    return _ok(_service().get_execution(execution_id).to_dict())


@api.route('/executions/<execution_id>', methods=['PATCH'])
@login_required
def update_execution(execution_id):
    execution = _service().update_execution(execution_id, **_pick(_json(), PROGRESS_FIELDS))
    return _ok(execution.to_dict())


@api.route('/executions/<execution_id>/complete', methods=['POST'])
@login_required
def complete_execution(execution_id):
    execution = _service().complete_execution(execution_id, **_pick(_json(), PROGRESS_FIELDS))
    return _ok(execution.to_dict())


# === ФОНОВЫЕ ПРОХОДЫ (ручной запуск) ===

@api.route('/sweeps/overdue', methods=['POST'])
@login_required
def sweep_overdue():
    promoted = _service().run_overdue_sweep()
    return _ok({'promoted': len(promoted), 'schedules': _dump(promoted)})


@api.route('/sweeps/notifications', methods=['POST'])
@login_required
def sweep_notifications():
    return _ok(_service().run_notification_sweep().to_dict())


# === ПОКАЗАТЕЛИ ===

@api.route('/stats/dashboard', methods=['GET'])
@login_required
def dashboard_stats():
    return _ok(_service().get_dashboard_stats().to_dict())


@api.route('/stats/compliance', methods=['GET'])
@login_required
def compliance_stats():
    return _ok(_dump(_service().get_compliance_stats(request.args.get('months', 6))))


@api.route('/stats/compliance/<period>', methods=['GET'])
@login_required
def compliance_for_period(period):
    return _ok(_service().get_compliance_for_period(period).to_dict())


@api.route('/stats/trend', methods=['GET'])
@login_required
def monthly_trend():
    return _ok(_service().get_monthly_trend(request.args.get('months', 6)))


@api.route('/stats/by-equipment-type', methods=['GET'])
@login_required
def compliance_by_equipment_type():
    return _ok(_service().get_compliance_by_equipment_type())


# === КОМАНДЫ CLI ===

pm_cli = AppGroup('pm', help='Обслуживание графиков ППР.')


@pm_cli.command('init-db')
def init_db_command():
    """Создаёт таблицы в БД."""
    db.create_all()
    click.echo('Таблицы созданы')


@pm_cli.command('sweep-overdue')
def sweep_overdue_command():
    """Переводит пропущенные графики в overdue."""
    promoted = current_app.extensions['pm'].run_overdue_sweep()
    click.echo(f'Просрочено графиков: {len(promoted)}')


@pm_cli.command('notify')
def notify_command():
    """Отправляет напоминания о предстоящих работах."""
    run = current_app.extensions['pm'].run_notification_sweep()
    click.echo(f'Напоминаний отправлено: {run.sent} (доставлено: {run.delivered})')


@pm_cli.command('run-scheduler')
def run_scheduler_command():
    """Запускает оба периодических прохода и ждёт Ctrl+C."""
    app = current_app._get_current_object()
    service = app.extensions['pm']

    def in_app_context(func):
        def run():
            with app.app_context():
                return func()
        return run

    tickers = [
        Ticker('overdue', app.config['PM_OVERDUE_SWEEP_SECONDS'], in_app_context(service.run_overdue_sweep)),
        Ticker('notifications', app.config['PM_NOTIFICATION_SWEEP_SECONDS'],
               in_app_context(service.run_notification_sweep)),
    ]
    for ticker in tickers:
        ticker.start()
    click.echo('Планировщик ППР запущен, Ctrl+C для остановки')
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        for ticker in tickers:
            ticker.stop()


# === ЗАПУСК ПРИЛОЖЕНИЯ ===

if __name__ == '__main__':
    # В продакшене используйте Gunicorn/uWSGI, а не встроенный сервер
    create_app().run(host='0.0.0.0', port=5000, debug=True)

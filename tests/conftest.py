# -*- coding: utf-8 -*-
"""
Общие фикстуры тестов движка ППР.
"""
from datetime import date

import pytest

from app import create_app
from models import Equipment as EquipmentRow, EquipmentType as EquipmentTypeRow, Users, db
from pm import FixedClock, MemoryDirectory, MemoryStore, PMService
from pm.directory import Equipment, EquipmentType, User
from pm.notifications import Deliverer

TODAY = date(2024, 3, 10)

EQUIPMENT_TYPES = [
    EquipmentType('type-compressor', 'Компрессор'),
    EquipmentType('type-pump', 'Насос'),
]

EQUIPMENT = [
    Equipment('eq-1', 'CMP-001', 'Компрессор №1', 'type-compressor'),
    Equipment('eq-2', 'CMP-002', 'Компрессор №2', 'type-compressor'),
    Equipment('eq-3', 'PMP-001', 'Насос', 'type-pump'),
]

USERS = [
    User('u-tech1', 'Иванов И. И.', role=3),
    User('u-tech2', 'Сидоров С. С.', role=3),
    User('u-gone', 'Уволен', role=3, is_active=False),
]

CHECKLIST = [
    {'id': 'oil', 'description': 'Проверить уровень масла', 'is_required': True},
    {'id': 'filter', 'description': 'Заменить фильтр', 'is_required': True},
    {'id': 'belts', 'description': 'Проверить ремни'},
    {'id': 'drain', 'description': 'Слить конденсат'},
]


class RecordingDeliverer(Deliverer):
    """Запоминает доставленные события."""

    def __init__(self):
        self.events = []

    def deliver(self, event):
        self.events.append(event)


class FailingDeliverer(Deliverer):

    def deliver(self, event):
        raise ConnectionError('push gateway is down')


@pytest.fixture
def clock():
    return FixedClock(TODAY)


@pytest.fixture
def directory():
    return MemoryDirectory(equipment=EQUIPMENT, users=USERS, equipment_types=EQUIPMENT_TYPES)


@pytest.fixture
def store(clock):
    return MemoryStore(now=clock.now)


@pytest.fixture
def deliverer():
    return RecordingDeliverer()


@pytest.fixture
def service(store, directory, clock, deliverer):
    return PMService(store, directory, clock=clock, deliverer=deliverer)


@pytest.fixture
def template(service):
    """Ежемесячный шаблон: 4 пункта чек-листа, 2 обязательных."""
    return service.create_template(
        name='ТО компрессора',
        interval_type='monthly',
        interval_value=1,
        equipment_type_id='type-compressor',
        estimated_duration_minutes=90,
        checklist_items=CHECKLIST,
        required_parts=[{'code': 'FLT-01', 'name': 'Фильтр', 'quantity': 1}],
    )


@pytest.fixture
def schedule(service, template):
    """Один график на сегодня без назначенного техника."""
    return service.create_schedule(template.id, 'eq-1', TODAY)


# === ПРИЛОЖЕНИЕ НА SQLite В ПАМЯТИ ===

@pytest.fixture
def app(clock, deliverer):
    app = create_app({
        'TESTING': True,
        'TEST_MODE': False,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'PM_CLOCK': clock,
        'PM_DELIVERER': deliverer,
    })
    with app.app_context():
        db.create_all()
        for equipment_type in EQUIPMENT_TYPES:
            db.session.add(EquipmentTypeRow(id=equipment_type.id, name=equipment_type.name))
        for equipment in EQUIPMENT:
            db.session.add(EquipmentRow(id=equipment.id, code=equipment.code, name=equipment.name,
                                        equipment_type_id=equipment.equipment_type_id))
        for user in USERS:
            db.session.add(Users(id=user.id, login=user.id, fio=user.name, role=user.role,
                                 active=user.is_active))
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def sql_service(app):
    return app.extensions['pm']


@pytest.fixture
def client(app):
    client = app.test_client()
    client.environ_base['HTTP_X_USER_ID'] = 'u-tech1'
    return client

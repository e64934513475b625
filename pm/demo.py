# -*- coding: utf-8 -*-
"""
Демонстрационные данные для тестового режима (TEST_MODE) без реальной БД:
справочники оборудования и пользователей в памяти и пара шаблонов ППР.
"""
import logging

from .directory import Equipment, EquipmentType, MemoryDirectory, User

_logger = logging.getLogger(__name__)

EQUIPMENT_TYPES = [
    EquipmentType('type-compressor', 'Компрессор'),
    EquipmentType('type-pump', 'Насос'),
    EquipmentType('type-cnc', 'Станок ЧПУ'),
]

EQUIPMENT = [
    Equipment('eq-1', 'CMP-001', 'Компрессор воздушный №1', 'type-compressor'),
    Equipment('eq-2', 'CMP-002', 'Компрессор воздушный №2', 'type-compressor'),
    Equipment('eq-3', 'PMP-001', 'Насос циркуляционный', 'type-pump'),
    Equipment('eq-4', 'CNC-001', 'Фрезерный станок ЧПУ', 'type-cnc'),
]

# Роли: 1 админ, 2 мастер, 3 техник, 4 наблюдатель
USERS = [
    User('u-admin', 'Администратор', role=1),
    User('u-master', 'Петров П. П.', role=2),
    User('u-tech1', 'Иванов И. И.', role=3),
    User('u-tech2', 'Сидоров С. С.', role=3),
]

TEMPLATES = [
    {
        'name': 'Ежемесячное ТО компрессора',
        'equipment_type_id': 'type-compressor',
        'interval_type': 'monthly',
        'interval_value': 1,
        'estimated_duration_minutes': 90,
        'checklist_items': [
            {'description': 'Проверить уровень масла', 'is_required': True},
            {'description': 'Заменить воздушный фильтр', 'is_required': True},
            {'description': 'Проверить ремни привода'},
            {'description': 'Слить конденсат'},
        ],
        'required_parts': [
            {'code': 'FLT-AIR-01', 'name': 'Фильтр воздушный', 'quantity': 1},
        ],
    },
    {
        'name': 'Квартальная проверка насоса',
        'equipment_type_id': 'type-pump',
        'interval_type': 'quarterly',
        'interval_value': 1,
        'estimated_duration_minutes': 60,
        'checklist_items': [
            {'description': 'Проверить сальники на протечки', 'is_required': True},
            {'description': 'Измерить вибрацию'},
        ],
    },
]


def build_directory():
    """Справочники для тестового режима."""
    return MemoryDirectory(equipment=EQUIPMENT, users=USERS, equipment_types=EQUIPMENT_TYPES)


def seed(service, months_ahead=3):
    """
    Создаёт демонстрационные шаблоны и графики на months_ahead месяцев
    для всего оборудования подходящего типа.
    """
    for fields in TEMPLATES:
        template = service.create_template(**fields)
        equipment_ids = sorted(service.directory.equipment_ids_of_type(template.equipment_type_id))
        service.generate_schedules(
            template.id, equipment_ids,
            months_ahead=months_ahead,
            assigned_technician_id='u-tech1',
        )
    _logger.info('Демонстрационные данные ППР загружены: %d шаблон(а)', len(TEMPLATES))

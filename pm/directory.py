# -*- coding: utf-8 -*-
"""
Внешние справочники для движка ППР: оборудование, типы оборудования, пользователи.
Движок только читает их; ведение справочников — вне движка.
"""
import abc
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from dateutil import tz
from sqlalchemy import select

from models import Equipment as EquipmentRow, EquipmentType as EquipmentTypeRow, Users, db


@dataclass(frozen=True)
class Equipment:
    id: str
    code: str
    name: str
    equipment_type_id: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class EquipmentType:
    id: str
    name: str


@dataclass(frozen=True)
class User:
    id: str
    name: str
    role: int = 3
    is_active: bool = True


class Directory(abc.ABC):

    @abc.abstractmethod
    def get_equipment(self, equipment_id):
        """Equipment или None."""

    @abc.abstractmethod
    def get_user(self, user_id):
        """User или None."""

    @abc.abstractmethod
    def equipment_ids_of_type(self, equipment_type_id):
        """Множество id оборудования данного типа."""

    @abc.abstractmethod
    def list_equipment_types(self):
        """Список EquipmentType."""


class MemoryDirectory(Directory):
    """Справочники в памяти — для TEST_MODE и тестов."""

    def __init__(self, equipment=(), users=(), equipment_types=()):
        self.equipment = {e.id: e for e in equipment}
        self.users = {u.id: u for u in users}
        self.equipment_types = {t.id: t for t in equipment_types}

    def add_equipment(self, equipment):
        self.equipment[equipment.id] = equipment
        return equipment

    def add_user(self, user):
        self.users[user.id] = user
        return user

    def get_equipment(self, equipment_id):
        return self.equipment.get(equipment_id)

    def get_user(self, user_id):
        return self.users.get(user_id)

    def equipment_ids_of_type(self, equipment_type_id):
        return {e.id for e in self.equipment.values() if e.equipment_type_id == equipment_type_id}

    def list_equipment_types(self):
        return sorted(self.equipment_types.values(), key=lambda t: t.name)


class SqlDirectory(Directory):
    """Справочники из таблиц equipment, equipment_type и users."""

    def get_equipment(self, equipment_id):
        row = db.session.get(EquipmentRow, equipment_id)
        if row is None:
            return None
        return Equipment(
            id=row.id,
            code=row.code,
            name=row.name,
            equipment_type_id=row.equipment_type_id,
            is_active=bool(row.active),
        )

    def get_user(self, user_id):
        row = db.session.get(Users, user_id)
        if row is None:
            return None
        return User(id=row.id, name=row.fio or row.login, role=row.role, is_active=bool(row.active))

    def equipment_ids_of_type(self, equipment_type_id):
        return set(db.session.scalars(
            select(EquipmentRow.id).where(EquipmentRow.equipment_type_id == equipment_type_id)
        ))

    def list_equipment_types(self):
        rows = db.session.scalars(select(EquipmentTypeRow).order_by(EquipmentTypeRow.name))
        return [EquipmentType(id=row.id, name=row.name) for row in rows]


class Clock:
    """
    Часы движка. now() — момент в UTC, today() — календарный день на площадке
    (часовой пояс PM_TIMEZONE), относительно которого считаются просрочка и напоминания.
    """

    def __init__(self, timezone_name='UTC'):
        self.timezone = tz.gettz(timezone_name)
        if self.timezone is None:
            raise ValueError(f'Неизвестный часовой пояс: {timezone_name}')

    def now(self):
        return datetime.now(timezone.utc)

    def today(self):
        return self.now().astimezone(self.timezone).date()


class FixedClock(Clock):
    """Часы с ручным управлением временем."""

    def __init__(self, moment, timezone_name='UTC'):
        super().__init__(timezone_name)
        if isinstance(moment, date) and not isinstance(moment, datetime):
            moment = datetime(moment.year, moment.month, moment.day, 9, 0, tzinfo=self.timezone)
        self.moment = moment

    def now(self):
        return self.moment.astimezone(timezone.utc)

    def advance(self, **delta):
        self.moment = self.moment + timedelta(**delta)
        return self.moment

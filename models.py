# models.py
# Определение моделей данных для приложения на основе SQLAlchemy.
# Модели описывают структуру таблиц в базе данных и их взаимосвязи.
# Используется в связке с Flask-SQLAlchemy.
from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _utcnow():
    return datetime.now(timezone.utc)


class EquipmentType(db.Model):
    """
    Типы оборудования — справочник (например, "Компрессор", "Насос").
    Шаблоны ППР привязываются к типу оборудования.
    """
    __tablename__ = 'equipment_type'
    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)  # Уникальное название
    active = db.Column(db.Boolean, nullable=False, default=True)   # Активен ли тип

    equipment = db.relationship('Equipment', backref='equipment_type', lazy=True)

    def __repr__(self):
        return f'<EquipmentType {self.id}: {self.name}>'


class Equipment(db.Model):
    """
    Модель оборудования — единица техники, по которой ведутся графики ППР.
    """
    __tablename__ = 'equipment'
    id = db.Column(db.String(64), primary_key=True)
    code = db.Column(db.String(100), nullable=False, unique=True)   # Инвентарный код
    name = db.Column(db.String(255), nullable=False)
    equipment_type_id = db.Column(db.String(64), db.ForeignKey('equipment_type.id'), nullable=True)
    sernum = db.Column(db.String(100), nullable=True, default='')   # Серийный номер
    location = db.Column(db.String(255), nullable=True, default='')  # Здание / цех
    active = db.Column(db.Boolean, nullable=False, default=True)

    def __repr__(self):
        return f'<Equipment {self.id}: {self.name}>'


class Users(db.Model):
    """
    Пользователи системы (техники, мастера, администраторы).
    Для Flask-Login оборачиваются в app.ApiUser.
    """
    __tablename__ = 'users'
    id = db.Column(db.String(64), primary_key=True)
    login = db.Column(db.String(50), nullable=False, unique=True)     # Логин (уникальный)
    fio = db.Column(db.String(255), nullable=False, default='')       # ФИО
    email = db.Column(db.String(100), nullable=True)
    role = db.Column(db.Integer, nullable=False, default=3)           # 1 админ, 2 мастер, 3 техник, 4 наблюдатель
    active = db.Column(db.Boolean, nullable=False, default=True)      # Активен ли пользователь

    def __repr__(self):
        return f'<User {self.login}>'


class PMTemplateRecord(db.Model):
    """
    Шаблоны ППР — периодичность, чек-лист и необходимые запчасти.
    Пункты чек-листа и запчасти хранятся в JSON-колонках.
    """
    __tablename__ = 'pm_templates'
    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default='')
    equipment_type_id = db.Column(db.String(64), db.ForeignKey('equipment_type.id'), nullable=True)
    interval_type = db.Column(db.String(20), nullable=False)          # daily / weekly / monthly / quarterly / yearly
    interval_value = db.Column(db.Integer, nullable=False, default=1)
    estimated_duration_minutes = db.Column(db.Integer, nullable=False, default=0)
    checklist_items = db.Column(db.JSON, nullable=False, default=list)
    required_parts = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self):
        return f'<PMTemplateRecord {self.id}: {self.name}>'


class PMScheduleRecord(db.Model):
    """
    Графики ППР — конкретная дата работ по шаблону для единицы оборудования.
    Не более одного графика на (оборудование, шаблон, дата).
    """
    __tablename__ = 'pm_schedules'
    __table_args__ = (
        db.UniqueConstraint('equipment_id', 'template_id', 'scheduled_date', name='uq_pm_schedule_key'),
    )
    id = db.Column(db.String(64), primary_key=True)
    template_id = db.Column(db.String(64), db.ForeignKey('pm_templates.id'), nullable=False, index=True)
    equipment_id = db.Column(db.String(64), nullable=False, index=True)  # Оборудование из внешнего справочника
    scheduled_date = db.Column(db.Date, nullable=False, index=True)
    assigned_technician_id = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(20), nullable=False, default='scheduled', index=True)
    priority = db.Column(db.String(10), nullable=False, default='medium')
    notes = db.Column(db.Text, nullable=True)
    # Флаги напоминаний: только false -> true
    sent_3days = db.Column(db.Boolean, nullable=False, default=False)
    sent_1day = db.Column(db.Boolean, nullable=False, default=False)
    sent_today = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self):
        return f'<PMScheduleRecord {self.id}: {self.equipment_id} @ {self.scheduled_date} [{self.status}]>'


class PMExecutionRecord(db.Model):
    """
    Выполнения ППР — работа техника по графику (чек-лист, находки, запчасти, оценка).
    """
    __tablename__ = 'pm_executions'
    id = db.Column(db.String(64), primary_key=True)
    schedule_id = db.Column(db.String(64), db.ForeignKey('pm_schedules.id'), nullable=False, unique=True)  # 1:1 с графиком
    equipment_id = db.Column(db.String(64), nullable=False)
    technician_id = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='in_progress')
    started_at = db.Column(db.DateTime(timezone=True), nullable=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    checklist_results = db.Column(db.JSON, nullable=False, default=list)
    used_parts = db.Column(db.JSON, nullable=False, default=list)
    findings = db.Column(db.Text, nullable=True)
    findings_severity = db.Column(db.String(10), nullable=False, default='none')  # none / minor / major / critical
    rating = db.Column(db.Integer, nullable=True)                     # 1..10
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    schedule = db.relationship('PMScheduleRecord', backref=db.backref('execution', uselist=False))  # Один к одному

    def __repr__(self):
        return f'<PMExecutionRecord {self.id}: schedule {self.schedule_id} [{self.status}]>'

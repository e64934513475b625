# -*- coding: utf-8 -*-
import pytest

from pm.entities import IntervalType
from pm.errors import InvalidField, InvalidRecurrence, TemplateInUse, TemplateNotFound


def test_create_template_normalises_checklist(service, template):
    assert template.id.startswith('tpl-')
    assert template.interval_type == IntervalType.MONTHLY
    assert [item.id for item in template.checklist_items] == ['oil', 'filter', 'belts', 'drain']
    assert [item.id for item in template.required_items] == ['oil', 'filter']
    assert template.required_parts[0].code == 'FLT-01'
    assert service.get_template(template.id) == template


def test_checklist_items_get_default_ids_and_order(service):
    template = service.create_template(
        name='Осмотр',
        interval_type='weekly',
        checklist_items=[
            {'description': 'Второй', 'order': 2},
            {'description': 'Первый', 'order': 1, 'is_required': True},
        ],
    )
    assert [(item.id, item.description) for item in template.checklist_items] == [
        ('item-2', 'Первый'),
        ('item-1', 'Второй'),
    ]


@pytest.mark.parametrize('fields, error', [
    ({'name': '', 'interval_type': 'monthly'}, InvalidField),
    ({'name': 'X', 'interval_type': 'fortnightly'}, InvalidRecurrence),
    ({'name': 'X', 'interval_type': 'monthly', 'interval_value': 0}, InvalidRecurrence),
    ({'name': 'X', 'interval_type': 'monthly', 'equipment_type_id': 'type-crane'}, InvalidField),
    ({'name': 'X', 'interval_type': 'monthly',
      'checklist_items': [{'id': 'a', 'description': 'A'}, {'id': 'a', 'description': 'B'}]}, InvalidField),
])
def test_create_template_validation(service, fields, error):
    with pytest.raises(error):
        service.create_template(**fields)


def test_update_template_revalidates_recurrence(service, template):
    updated = service.update_template(template.id, interval_type='quarterly', name='ТО компрессора (кв.)')
    assert updated.interval_type == IntervalType.QUARTERLY
    assert updated.interval_value == 1
    assert updated.name == 'ТО компрессора (кв.)'

    with pytest.raises(InvalidRecurrence):
        service.update_template(template.id, interval_value=-1)
    assert service.get_template(template.id).interval_value == 1


def test_update_template_rejects_unknown_fields(service, template):
    with pytest.raises(InvalidField):
        service.update_template(template.id, colour='red')


def test_list_templates_filters(service, template):
    service.create_template(name='Насос', interval_type='yearly', equipment_type_id='type-pump', is_active=False)
    assert [t.id for t in service.list_templates(equipment_type_id='type-compressor')] == [template.id]
    assert [t.id for t in service.list_templates(active_only=True)] == [template.id]
    assert len(service.list_templates()) == 2


def test_delete_unreferenced_template(service, template):
    service.delete_template(template.id)
    with pytest.raises(TemplateNotFound):
        service.get_template(template.id)


def test_delete_referenced_template_is_refused(service, template, schedule):
    with pytest.raises(TemplateInUse) as excinfo:
        service.delete_template(template.id)
    assert excinfo.value.details['schedule_count'] == 1
    assert service.get_template(template.id) == template


def test_delete_missing_template(service):
    with pytest.raises(TemplateNotFound):
        service.delete_template('tpl-missing')

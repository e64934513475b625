# -*- coding: utf-8 -*-
from datetime import timedelta
from unittest import mock

import pytest
import requests

from pm.entities import NotificationThreshold
from pm.notifications import NotificationEvaluator, WebhookDeliverer, build_event

from .conftest import TODAY, FailingDeliverer


@pytest.fixture
def in_three_days(service, template):
    return service.create_schedule(template.id, 'eq-1', TODAY + timedelta(days=3), assigned_technician_id='u-tech1')


def test_three_day_notification_is_sent_once(service, deliverer, in_three_days):
    first = service.run_notification_sweep()

    assert first.sent == 1
    assert [s.id for s in first.schedules] == [in_three_days.id]
    assert first.schedules[0].was_notified(NotificationThreshold.THREE_DAYS)
    assert service.get_schedule(in_three_days.id).to_dict()['sent_3days'] is True

    second = service.run_notification_sweep()
    assert second.sent == 0
    assert second.schedules == []
    assert len(deliverer.events) == 1
    assert deliverer.events[0].kind == 'three_days'
    assert deliverer.events[0].recipients == ('u-tech1',)


def test_each_threshold_fires_on_its_day(service, clock, deliverer, in_three_days):
    kinds = []
    for _ in range(4):
        kinds.extend(event.kind for event in service.run_notification_sweep().events)
        clock.advance(days=1)

    assert kinds == ['three_days', 'one_day', 'same_day']
    flags = service.get_schedule(in_three_days.id).to_dict()
    assert flags['sent_3days'] and flags['sent_1day'] and flags['sent_today']


def test_only_scheduled_schedules_are_notified(service, template):
    started = service.create_schedule(template.id, 'eq-1', TODAY)
    cancelled = service.create_schedule(template.id, 'eq-2', TODAY + timedelta(days=1))
    service.start_execution(started.id, 'u-tech1')
    service.cancel_schedule(cancelled.id)

    assert service.run_notification_sweep().sent == 0


def test_other_offsets_are_ignored(service, template):
    service.create_schedule(template.id, 'eq-1', TODAY + timedelta(days=2))
    service.create_schedule(template.id, 'eq-1', TODAY + timedelta(days=10))
    assert service.run_notification_sweep().sent == 0


def test_delivery_failure_does_not_reset_flags(store, clock, directory, in_three_days):
    evaluator = NotificationEvaluator(store, clock, deliverer=FailingDeliverer(), directory=directory)

    run = evaluator.run()

    assert run.sent == 1
    assert run.delivered == 0
    assert store.schedules.get(in_three_days.id).was_notified(NotificationThreshold.THREE_DAYS)
    assert evaluator.run().sent == 0


def test_concurrent_claim_is_won_once(store, in_three_days):
    claims = [store.schedules.mark_notified(in_three_days.id, NotificationThreshold.THREE_DAYS) for _ in range(3)]
    assert claims == [True, False, False]


def test_event_content(service, directory, template, in_three_days):
    event = build_event(in_three_days, NotificationThreshold.THREE_DAYS,
                        equipment=directory.get_equipment('eq-1'), template=template)
    data = event.to_dict()
    assert data['kind'] == 'three_days'
    assert data['schedule_id'] == in_three_days.id
    assert data['scheduled_date'] == '2024-03-13'
    assert 'CMP-001' in data['body']
    assert template.name in data['body']


def test_webhook_deliverer_posts_json(in_three_days):
    session = mock.Mock(spec=requests.Session)
    deliverer = WebhookDeliverer('https://push.example/pm', timeout=3, session=session)
    event = build_event(in_three_days, NotificationThreshold.ONE_DAY)

    deliverer.deliver(event)

    session.post.assert_called_once_with('https://push.example/pm', json=event.to_dict(), timeout=3)
    session.post.return_value.raise_for_status.assert_called_once_with()

from datetime import timedelta

import pytest

from app.models import WindowNotOpenError
from conftest import START, forward_landmarks, turned_landmarks

ASHA = [0.0, 0.0, 0.0, 0.0]
BEN = [1.0, 1.0, 1.0, 1.0]
STRANGER = [5.0, 5.0, 5.0, 5.0]


@pytest.fixture
def classroom(register_student, add_class):
    math = add_class('Math101', '09:00', '10:00')
    asha = register_student(name='Asha Rao', roll='CS101', descriptor=ASHA)
    ben = register_student(name='Ben', roll='CS102', descriptor=BEN)
    register_student(name='Otto', roll='PH201', class_name='Physics', descriptor=ASHA)
    return math, asha, ben


def _frame(client, class_id, at, *detections):
    return client.post(f'/api/monitoring/{class_id}/frames', json={
        'timestamp': at.isoformat(),
        'detections': [{'descriptor': d, 'landmarks': l} for d, l in detections],
    })


def _roster(client):
    return {r['rollNumber']: r for r in client.get('/api/attendance/today/Math101').get_json()['attendance']}


def test_start_creates_default_absent_records(client, classroom):
    math, _, _ = classroom
    response = client.post('/api/monitoring/start', json={'classId': math['id']})
    assert response.status_code == 201
    window = response.get_json()['window']
    assert window['enrolled'] == 2
    assert window['matchable'] == 2
    assert window['source'] == 'manual'

    roster = _roster(client)
    assert sorted(roster) == ['CS101', 'CS102']
    assert all(r['status'] == 'Absent' and r['presenceDuration'] == 0 for r in roster.values())
    assert all(r['requiredDuration'] == 2700 and r['classDuration'] == 3600 for r in roster.values())

    again = client.post('/api/monitoring/start', json={'classId': math['id']})
    assert again.status_code == 200
    assert len(_roster(client)) == 2


def test_start_validation(client, classroom):
    math, _, _ = classroom
    assert client.post('/api/monitoring/start', json={}).status_code == 400
    assert client.post('/api/monitoring/start', json={'classId': 999}).status_code == 404
    assert client.post('/api/monitoring/start', json={'classId': math['id'], 'presenceFraction': 1.5}).status_code == 400


def test_two_frames_ten_seconds_apart(client, classroom):
    math, asha, _ = classroom
    client.post('/api/monitoring/start', json={'classId': math['id']})
    t0 = START.replace(hour=9, minute=0)

    first = _frame(client, math['id'], t0, ([0.05, 0, 0, 0], forward_landmarks())).get_json()
    assert first['accepted'] == 1
    assert first['updates'][0]['studentId'] == asha['id']
    assert first['updates'][0]['presenceDuration'] == 0

    second = _frame(client, math['id'], t0 + timedelta(seconds=10), ([0.05, 0, 0, 0], turned_landmarks())).get_json()
    assert second['updates'][0]['presenceDuration'] == 10
    assert second['updates'][0]['engagementScore'] == 50
    assert second['updates'][0]['engaged'] is False


def test_unmatched_frames_are_dropped(client, classroom):
    math, _, _ = classroom
    client.post('/api/monitoring/start', json={'classId': math['id']})
    body = _frame(client, math['id'], START, (STRANGER, forward_landmarks())).get_json()
    assert body == {'processed': 1, 'accepted': 0, 'updates': []}


def test_frame_validation(client, classroom):
    math, _, _ = classroom
    client.post('/api/monitoring/start', json={'classId': math['id']})
    bad_descriptor = _frame(client, math['id'], START, ('abc', forward_landmarks()))
    assert bad_descriptor.status_code == 400
    bad_landmarks = _frame(client, math['id'], START, (ASHA, {'nose': {'x': 1, 'y': 1}}))
    assert bad_landmarks.status_code == 400
    assert _frame(client, 999, START, (ASHA, forward_landmarks())).status_code == 404


def test_stop_flushes_tallies(client, classroom):
    math, _, _ = classroom
    client.post('/api/monitoring/start', json={'classId': math['id']})
    t0 = START.replace(hour=9, minute=0)
    _frame(client, math['id'], t0, (ASHA, forward_landmarks()))
    _frame(client, math['id'], t0 + timedelta(minutes=46), (ASHA, forward_landmarks()))

    response = client.post(f"/api/monitoring/{math['id']}/stop")
    assert response.status_code == 200
    (result,) = response.get_json()['results']
    assert result['rollNumber'] == 'CS101'
    assert result['status'] == 'Present'
    assert result['presenceDuration'] == 2760

    roster = _roster(client)
    assert roster['CS101']['status'] == 'Present'
    assert roster['CS101']['presenceDuration'] == 2760
    assert roster['CS101']['engagementData'] == {'framesForward': 2, 'framesAway': 0, 'totalFrames': 2, 'score': 100}
    assert len(roster['CS101']['detectionLog']) == 2
    assert roster['CS102']['status'] == 'Absent'

    assert client.post(f"/api/monitoring/{math['id']}/stop").status_code == 404
    assert _frame(client, math['id'], t0, (ASHA, forward_landmarks())).status_code == 404


def test_window_fraction_governs_required_duration(client, classroom):
    math, _, _ = classroom
    client.post('/api/monitoring/start', json={'classId': math['id'], 'presenceFraction': 0.5})
    t0 = START.replace(hour=9, minute=0)
    _frame(client, math['id'], t0, (ASHA, forward_landmarks()))
    _frame(client, math['id'], t0 + timedelta(minutes=31), (ASHA, forward_landmarks()))
    client.post(f"/api/monitoring/{math['id']}/stop")

    record = _roster(client)['CS101']
    assert record['requiredDuration'] == 1800
    assert record['status'] == 'Present'


def test_prematched_results(client, classroom):
    math, asha, _ = classroom
    client.post('/api/monitoring/start', json={'classId': math['id']})
    response = client.post(f"/api/monitoring/{math['id']}/frames", json={
        'matches': [{'rollNumber': 'cs101', 'distance': 0.2, 'landmarks': forward_landmarks()}],
    })
    assert response.get_json()['updates'][0]['studentId'] == asha['id']

    stranger = client.post(f"/api/monitoring/{math['id']}/frames", json={
        'matches': [{'rollNumber': 'PH201', 'distance': 0.2, 'landmarks': forward_landmarks()}],
    })
    assert stranger.status_code == 400


def test_status_endpoints(client, classroom):
    math, _, _ = classroom
    assert client.get(f"/api/monitoring/{math['id']}").status_code == 404
    client.post('/api/monitoring/start', json={'classId': math['id']})
    _frame(client, math['id'], START, (ASHA, forward_landmarks()))

    window = client.get(f"/api/monitoring/{math['id']}").get_json()['window']
    assert window['tracked'] == 1
    assert window['students'][0]['rollNumber'] == 'CS101'

    overview = client.get('/api/monitoring').get_json()
    assert [w['classId'] for w in overview['windows']] == [math['id']]
    assert overview['scheduled'] == []


def test_scheduled_window_and_manual_stop_flush_once(app, client, classroom, clock, timers):
    math, _, _ = classroom
    monitor = app.extensions['attendance_monitor']
    scheduler = app.extensions['session_scheduler']
    scheduler.start()

    open_timer = next(t for t in timers.pending() if t.delay == 300)
    clock.advance(minutes=5)
    open_timer.fire()
    assert monitor.is_open(math['id'])
    assert client.get('/api/monitoring').get_json()['scheduled'][0]['phase'] == 'close'

    _frame(client, math['id'], clock(), (ASHA, forward_landmarks()))
    clock.advance(minutes=50)
    _frame(client, math['id'], clock(), (ASHA, forward_landmarks()))
    client.post(f"/api/monitoring/{math['id']}/stop")
    assert _roster(client)['CS101']['presenceDuration'] == 3000

    close_timer = next(t for t in timers.pending() if t.delay == 3600)
    clock.advance(minutes=10)
    close_timer.fire()

    assert not monitor.is_open(math['id'])
    assert _roster(client)['CS101']['status'] == 'Present'
    assert scheduler.get_job(math['id']).phase == 'open'


def test_windows_are_independent(app, classroom, add_class):
    math, asha, _ = classroom
    physics = add_class('Physics', '09:00', '10:00')
    otto = app.extensions['attendance_db'].get_student_by_roll('PH201')
    monitor = app.extensions['attendance_monitor']
    db = app.extensions['attendance_db']

    monitor.open_window(db.get_class_by_id(math['id']))
    monitor.open_window(db.get_class_by_id(physics['id']))
    monitor.record_match(math['id'], 'CS101', START, 0.1, forward_landmarks())
    monitor.record_match(physics['id'], 'PH201', START + timedelta(seconds=30), 0.1, forward_landmarks())
    monitor.record_match(math['id'], 'CS101', START + timedelta(seconds=90), 0.1, forward_landmarks())

    assert monitor.snapshot(math['id'])['students'][0]['presenceDuration'] == 90
    assert monitor.snapshot(physics['id'])['students'][0]['presenceDuration'] == 0

    assert [r['studentId'] for r in monitor.close_window(physics['id'])] == [otto['id']]
    assert monitor.close_window(physics['id']) is None
    with pytest.raises(WindowNotOpenError):
        monitor.flush(physics['id'])
    assert [r['studentId'] for r in monitor.flush(math['id'])] == [asha['id']]


def test_rejected_frame_changes_nothing(client, classroom):
    math, _, _ = classroom
    client.post('/api/monitoring/start', json={'classId': math['id']})
    t0 = START.replace(hour=9, minute=0)

    short_descriptor = _frame(client, math['id'], t0, (ASHA, forward_landmarks()), ([0.0, 0.0, 0.0], forward_landmarks()))
    assert short_descriptor.status_code == 400
    assert client.get(f"/api/monitoring/{math['id']}").get_json()['window']['tracked'] == 0

    _frame(client, math['id'], t0, (ASHA, forward_landmarks()))
    not_enrolled = client.post(f"/api/monitoring/{math['id']}/frames", json={
        'timestamp': (t0 + timedelta(minutes=50)).isoformat(),
        'detections': [{'descriptor': ASHA, 'landmarks': forward_landmarks()}],
        'matches': [{'rollNumber': 'NOPE', 'distance': 0.1, 'landmarks': forward_landmarks()}],
    })
    assert not_enrolled.status_code == 400

    (result,) = client.post(f"/api/monitoring/{math['id']}/stop").get_json()['results']
    assert result['presenceDuration'] == 0
    assert result['status'] == 'Absent'


def test_frame_with_detections_and_matches(client, classroom):
    math, asha, ben = classroom
    client.post('/api/monitoring/start', json={'classId': math['id']})
    body = client.post(f"/api/monitoring/{math['id']}/frames", json={
        'detections': [{'descriptor': ASHA, 'landmarks': forward_landmarks()}],
        'matches': [{'rollNumber': 'cs102', 'distance': 0.3, 'landmarks': turned_landmarks()}],
    }).get_json()
    assert body['accepted'] == 2
    assert [u['studentId'] for u in body['updates']] == [asha['id'], ben['id']]


def test_failed_student_does_not_sink_the_flush(app, client, classroom, monkeypatch):
    math, asha, ben = classroom
    ledger = app.extensions['attendance_ledger']
    client.post('/api/monitoring/start', json={'classId': math['id']})
    t0 = START.replace(hour=9, minute=0)
    _frame(client, math['id'], t0, (ASHA, forward_landmarks()), (BEN, forward_landmarks()))
    _frame(client, math['id'], t0 + timedelta(minutes=47), (ASHA, forward_landmarks()), (BEN, forward_landmarks()))

    real_get = ledger.get

    def flaky_get(student_id, class_id, day=None):
        if student_id == asha['id']:
            raise RuntimeError('database is locked')
        return real_get(student_id, class_id, day)

    monkeypatch.setattr(ledger, 'get', flaky_get)
    response = client.post(f"/api/monitoring/{math['id']}/stop")
    assert response.status_code == 200
    results = {r['rollNumber']: r for r in response.get_json()['results']}
    assert results['CS101']['error'] == 'database is locked'
    assert results['CS102']['status'] == 'Present'

    roster = _roster(client)
    assert roster['CS102']['status'] == 'Present'
    assert roster['CS102']['presenceDuration'] == 2820
    assert roster['CS101']['status'] == 'Absent'


def test_close_keeps_window_when_flush_fails(app, classroom, monkeypatch):
    math, _, _ = classroom
    monitor = app.extensions['attendance_monitor']
    db = app.extensions['attendance_db']
    monitor.open_window(db.get_class_by_id(math['id']))
    monitor.record_match(math['id'], 'CS101', START, 0.1, forward_landmarks())

    def broken_flush(window):
        raise RuntimeError('disk full')

    monkeypatch.setattr(monitor, '_flush_window', broken_flush)
    with pytest.raises(RuntimeError):
        monitor.close_window(math['id'])
    assert monitor.is_open(math['id'])

    monkeypatch.undo()
    (result,) = monitor.close_window(math['id'])
    assert result['rollNumber'] == 'CS101'
    assert not monitor.is_open(math['id'])

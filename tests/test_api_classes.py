def test_add_class_computes_duration(client):
    response = client.post('/api/classes/add', json={
        'className': ' Math101 ', 'startTime': '09:00', 'endTime': '10:00', 'dayOfWeek': 'monday',
    })
    assert response.status_code == 201
    created = response.get_json()['class']
    assert created['className'] == 'Math101'
    assert created['duration'] == 60
    assert created['dayOfWeek'] == 'Monday'
    assert created['isActive'] is True


def test_day_of_week_defaults_to_daily(client):
    response = client.post('/api/classes/add', json={'className': 'Physics', 'startTime': '11:00', 'endTime': '11:45'})
    assert response.get_json()['class']['dayOfWeek'] == 'Daily'
    assert response.get_json()['class']['duration'] == 45


def test_end_before_start_is_rejected(client, app):
    response = client.post('/api/classes/add', json={
        'className': 'Math101', 'startTime': '10:00', 'endTime': '09:00',
    })
    assert response.status_code == 400
    assert response.get_json() == {'error': 'End time must be after start time'}
    assert app.extensions['attendance_db'].get_active_classes() == []


def test_missing_fields_and_bad_day(client):
    assert client.post('/api/classes/add', json={'className': 'Math101'}).status_code == 400
    response = client.post('/api/classes/add', json={
        'className': 'Math101', 'startTime': '09:00', 'endTime': '10:00', 'dayOfWeek': 'Funday',
    })
    assert response.status_code == 400
    assert 'Funday' in response.get_json()['error']


def test_list_and_get(client, add_class):
    add_class('Physics', '11:00', '12:00')
    math = add_class('Math101')
    listed = client.get('/api/classes').get_json()['classes']
    assert [c['className'] for c in listed] == ['Math101', 'Physics']

    assert client.get(f"/api/classes/{math['id']}").get_json()['class']['startTime'] == '09:00'
    assert client.get('/api/classes/999').status_code == 404


def test_update_recomputes_duration(client, add_class):
    math = add_class('Math101')
    response = client.put(f"/api/classes/{math['id']}", json={'endTime': '10:30'})
    assert response.status_code == 200
    assert response.get_json()['class']['duration'] == 90

    response = client.put(f"/api/classes/{math['id']}", json={'startTime': '11:00'})
    assert response.status_code == 400
    assert client.get(f"/api/classes/{math['id']}").get_json()['class']['startTime'] == '09:00'


def test_deactivated_class_leaves_the_list(client, add_class):
    math = add_class('Math101')
    response = client.put(f"/api/classes/{math['id']}", json={'isActive': False})
    assert response.get_json()['class']['isActive'] is False
    assert client.get('/api/classes').get_json()['classes'] == []


def test_update_and_delete_unknown(client):
    assert client.put('/api/classes/42', json={'className': 'X'}).status_code == 404
    assert client.delete('/api/classes/42').status_code == 404


def test_delete(client, add_class):
    math = add_class('Math101')
    response = client.delete(f"/api/classes/{math['id']}")
    assert response.get_json() == {'message': 'Class deleted successfully'}
    assert client.get(f"/api/classes/{math['id']}").status_code == 404


def test_changes_reach_a_running_scheduler(client, app, add_class, timers):
    scheduler = app.extensions['session_scheduler']
    scheduler.start()

    math = add_class('Math101')
    assert scheduler.active_keys() == [math['id']]
    assert scheduler.get_job(math['id']).open_at.hour == 9

    client.put(f"/api/classes/{math['id']}", json={'startTime': '09:30', 'endTime': '10:30'})
    assert scheduler.get_job(math['id']).open_at.minute == 30

    client.put(f"/api/classes/{math['id']}", json={'isActive': False})
    assert scheduler.active_keys() == []

    client.put(f"/api/classes/{math['id']}", json={'isActive': True})
    assert scheduler.active_keys() == [math['id']]
    client.delete(f"/api/classes/{math['id']}")
    assert scheduler.active_keys() == []


def test_health(client):
    body = client.get('/health').get_json()
    assert body['status'] == 'ok'
    assert body['scheduler'] is False

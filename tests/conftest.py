import base64
import io
import os
from datetime import datetime, timedelta, timezone

import pytest
from PIL import Image

from app import create_app
from database import DatabaseManager


class FakeClock:
    """Settable clock; call it to read the current time."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, now):
        self.now = now


class FakeTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.fired = True
        self.callback()


class FakeTimerFactory:
    """Records armed timers instead of starting threads."""

    def __init__(self):
        self.timers = []

    def __call__(self, delay, callback):
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    def pending(self):
        return [t for t in self.timers if not t.cancelled and not t.fired]


# Monday 2024-01-15 08:55 UTC
START = datetime(2024, 1, 15, 8, 55, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def timers():
    return FakeTimerFactory()


@pytest.fixture
def db(tmp_path):
    return DatabaseManager(str(tmp_path / 'attendance.db'))


@pytest.fixture
def app(tmp_path, clock, timers):
    app = create_app(
        {
            'TESTING': True,
            'DATABASE_PATH': str(tmp_path / 'attendance.db'),
            'LOG_DIR': str(tmp_path / 'logs'),
            'SCHEDULER_ENABLED': False,
            'PRESENCE_FRACTION': 0.75,
            'DETECTION_THRESHOLD': 0.6,
            'MAX_DETECTION_LOG': 0,
        },
        clock=clock,
        timer_factory=timers,
    )
    yield app
    app.extensions['session_scheduler'].stop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def reference_image():
    buffer = io.BytesIO()
    Image.frombytes('RGB', (16, 16), os.urandom(16 * 16 * 3)).save(buffer, format='PNG')
    return 'data:image/png;base64,' + base64.b64encode(buffer.getvalue()).decode('ascii')


def forward_landmarks():
    """Nose centred between the eyes: looking at the camera."""
    return {
        'nose': {'x': 50, 'y': 55},
        'leftEye': {'x': 30, 'y': 40},
        'rightEye': {'x': 70, 'y': 40},
        'leftMouth': {'x': 38, 'y': 75},
        'rightMouth': {'x': 62, 'y': 75},
    }


def turned_landmarks():
    """Nose far to the right of the eye midpoint."""
    landmarks = forward_landmarks()
    landmarks['nose'] = {'x': 68, 'y': 45}
    return landmarks


@pytest.fixture
def register_student(client, reference_image):
    def _register(name='Asha Rao', roll='cs101', class_name='Math101', descriptor=None):
        response = client.post('/api/students/register', json={
            'name': name,
            'rollNumber': roll,
            'className': class_name,
            'referenceImage': reference_image,
        })
        assert response.status_code == 201, response.get_json()
        student = response.get_json()['student']
        if descriptor is not None:
            ack = client.post(f"/api/students/{student['rollNumber']}/descriptor",
                              json={'faceDescriptor': descriptor})
            assert ack.status_code == 200
        return student
    return _register


@pytest.fixture
def add_class(client):
    def _add(class_name='Math101', start='09:00', end='10:00', day='Daily'):
        response = client.post('/api/classes/add', json={
            'className': class_name,
            'startTime': start,
            'endTime': end,
            'dayOfWeek': day,
        })
        assert response.status_code == 201, response.get_json()
        return response.get_json()['class']
    return _add

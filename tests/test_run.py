from flask import Flask

import config
import run


def test_main_serves_without_reloader(tmp_path, monkeypatch):
    monkeypatch.setattr(config, 'DATABASE_PATH', str(tmp_path / 'attendance.db'))
    monkeypatch.setattr(config, 'LOG_DIR', str(tmp_path / 'logs'))
    monkeypatch.setattr(config, 'SCHEDULER_ENABLED', False)
    monkeypatch.setattr(config, 'FLASK_PORT', 5099)

    calls = []
    monkeypatch.setattr(Flask, 'run', lambda self, **kwargs: calls.append(kwargs))
    run.main()

    (kwargs,) = calls
    assert kwargs['port'] == 5099
    assert kwargs['use_reloader'] is False
    assert kwargs['threaded'] is True

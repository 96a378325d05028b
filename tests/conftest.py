import os
import json
import sys

import fakeredis
import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from heysprech import create_app
from heysprech.extensions import db
from heysprech.models import Video

FAKE_ENGINE = os.path.join(os.path.dirname(__file__), 'fixtures', 'fake_engine.py')


@pytest.fixture
def redis_conn():
    return fakeredis.FakeStrictRedis(server=fakeredis.FakeServer())


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / 'data'
    for name in ('uploads', 'audios', 'temp', 'de', 'fr', 'en'):
        (path / name).mkdir(parents=True)
    return path


@pytest.fixture
def app(data_dir, redis_conn):
    app = create_app(
        overrides={
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite://',
            'DATA_DIR': str(data_dir),
            'ENGINE_COMMAND': [sys.executable, FAKE_ENGINE],
            'ENGINE_TIMEOUT': 20,
            'ENGINE_SLOT_POLL_INTERVAL': 0.05,
            'ENGINE_KILL_GRACE': 1,
            'JOB_BACKOFF_SECONDS': 0,
            'QUEUE_NAME': 'test-audio-processing',
        },
        redis_connection=redis_conn,
    )
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def queue(app):
    return app.extensions['processing_queue']


@pytest.fixture
def make_audio(data_dir):
    """Write a dummy audio file under audios/ (or another data_dir subfolder)."""
    def make(name='lesson.wav', folder='audios', payload=None):
        path = data_dir / folder / name
        path.write_bytes(b'RIFF....WAVE')
        if payload is not None:
            stem = os.path.splitext(name)[0]
            (data_dir / 'audios' / f"{stem}.payload.json").write_text(json.dumps(payload))
        return path
    return make


@pytest.fixture
def make_video(app):
    def make(file_path='audios/lesson.wav', status='pending', language='de'):
        video = Video(
            title=os.path.basename(file_path),
            original_filename=os.path.basename(file_path),
            file_path=file_path,
            language=language,
            transcription_status=status,
        )
        db.session.add(video)
        db.session.commit()
        return video
    return make


@pytest.fixture
def write_output(data_dir):
    """Write an engine output document and return its path."""
    def write(payload, name='lesson.json', raw=None):
        path = data_dir / 'fr' / name
        path.write_text(raw if raw is not None else json.dumps(payload), encoding='utf-8')
        return str(path)
    return write

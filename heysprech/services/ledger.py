"""Video lifecycle state and the append-only processing log.

Each write commits on its own so the audit trail survives a rollback of the
import transaction that failed.
"""

from datetime import datetime, timezone

from flask import current_app

from ..errors import InvalidTransition, NotFound
from ..extensions import db
from ..models import ProcessingLog, Video
from .storage import remove_file

STEP_UPLOAD = 'upload'
STEP_TRANSCRIPTION = 'transcription'
STEP_DATABASE_IMPORT = 'database_import'
STEP_EXERCISES = 'exercises'
STEP_PRONUNCIATIONS = 'pronunciations'
STEP_RETRY = 'retry'

# target status -> statuses it may be entered from
TRANSITIONS = {
    'processing': {'pending', 'failed'},  # failed: next automatic attempt from the queue
    'completed': {'processing'},
    'failed': {'pending', 'processing'},
    'pending': {'failed', 'completed'},  # explicit retry
}


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_video(video_id):
    video = db.session.get(Video, video_id)
    if video is None:
        raise NotFound(f"Video with ID {video_id} not found")
    return video


def log_step(video_id, step, status, message=None):
    entry = ProcessingLog(video_id=video_id, step=step, status=status, message=message or None)
    db.session.add(entry)
    db.session.commit()
    current_app.logger.info('video %s step %s %s%s', video_id, step, status, f": {message}" if message else '')
    return entry


def _transition(video, status, **fields):
    current = video.transcription_status or 'pending'
    if current not in TRANSITIONS[status]:
        raise InvalidTransition(f"Video {video.id} cannot go from {current} to {status}")
    video.transcription_status = status
    video.updated_at = _utcnow()
    for name, value in fields.items():
        setattr(video, name, value)
    db.session.commit()
    return video


def mark_processing(video_id, job_id=None):
    video = get_video(video_id)
    fields = {'error_message': None}
    if job_id:
        fields['queue_job_id'] = job_id
    return _transition(video, 'processing', **fields)


def mark_completed(video_id, transcription_file):
    video = get_video(video_id)
    _transition(
        video, 'completed',
        transcription_file=transcription_file, processed_at=_utcnow(), error_message=None,
    )
    cleanup_temp_file(video)
    return video


def mark_failed(video_id, message, step=STEP_TRANSCRIPTION):
    """Write the failure to the log and to the Video row."""
    # the caller may be unwinding a failed transaction
    db.session.rollback()
    video = get_video(video_id)
    current = video.transcription_status or 'pending'
    if current != 'failed' and current not in TRANSITIONS['failed']:
        raise InvalidTransition(f"Video {video.id} cannot go from {current} to failed")
    log_step(video_id, step, 'failed', message)
    if current == 'failed':
        video.error_message = message
        video.updated_at = _utcnow()
        db.session.commit()
        return video
    return _transition(video, 'failed', error_message=message)


def mark_pending(video_id, job_id=None, message=None):
    """Explicit retry: completed/failed videos go back to the queue."""
    video = get_video(video_id)
    _transition(video, 'pending', queue_job_id=job_id or video.queue_job_id, error_message=None)
    log_step(video_id, STEP_RETRY, 'started', message)
    return video


def latest_failure(video_id):
    return (
        ProcessingLog.query.filter_by(video_id=video_id, status='failed')
        .order_by(ProcessingLog.id.desc())
        .first()
    )


def cleanup_temp_file(video):
    if video.temp_info_file:
        remove_file(video.temp_info_file)

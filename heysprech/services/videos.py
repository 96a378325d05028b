"""Upload registration, explicit retry and queue housekeeping for videos."""

import json
import os
import time
from datetime import datetime, timezone

from flask import current_app

from ..extensions import db, processing
from ..models import Video
from . import ledger
from .storage import TEMP_DIR, remove_file


def _write_info_file(data_dir, info):
    path = os.path.join(os.path.abspath(data_dir), TEMP_DIR, f"info_{int(time.time() * 1000)}.txt")
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(info, f, indent=2)
    return path


def register_upload(original_filename, file_path, file_size, language=None, title=None, target_lang=None):
    """Create a pending Video for an uploaded file and queue it.

    Returns the Video; its ``queue_job_id`` holds the RQ job id.
    """
    queue = processing.queue
    language = language or queue.settings.default_source_lang
    target_lang = target_lang or queue.settings.default_target_lang
    # reject before anything is written
    queue.check_language(language, 'source')
    queue.check_language(target_lang, 'target')

    title = title or original_filename
    temp_info_file = _write_info_file(queue.settings.data_dir, {
        'originalFilename': original_filename,
        'filePath': file_path,
        'fileSize': file_size,
        'language': language,
        'title': title,
        'uploadedAt': datetime.now(timezone.utc).isoformat(),
    })

    video = Video(
        title=title,
        original_filename=original_filename,
        file_path=file_path,
        file_size=file_size,
        language=language,
        transcription_status='pending',
        temp_info_file=temp_info_file,
    )
    db.session.add(video)
    db.session.commit()

    try:
        job = queue.enqueue(video.id, file_path, source_lang=language, target_lang=target_lang)
    except Exception as e:
        ledger.mark_failed(video.id, f"Could not queue video: {e}", step=ledger.STEP_UPLOAD)
        raise
    video.queue_job_id = job.id
    db.session.commit()
    ledger.log_step(video.id, ledger.STEP_UPLOAD, 'completed', f"File: {original_filename}")
    return video


def retry_processing(video_id, target_lang=None):
    """Re-run the whole pipeline for a failed (or completed) video."""
    video = ledger.get_video(video_id)
    ledger.mark_pending(video_id, message='Retrying processing')
    try:
        job = processing.queue.enqueue(
            video.id, video.file_path, source_lang=video.language, target_lang=target_lang,
        )
    except Exception as e:
        ledger.mark_failed(video_id, f"Could not queue retry: {e}", step=ledger.STEP_RETRY)
        raise
    video.queue_job_id = job.id
    db.session.commit()
    return job


def delete_video(video_id):
    """Delete the Video row (cascading to its segments and logs) and its files."""
    video = ledger.get_video(video_id)
    for path in (video.file_path, video.transcription_file, video.temp_info_file):
        remove_file(path)
    db.session.delete(video)
    db.session.commit()
    current_app.logger.info('video %s deleted', video_id)


def get_queue_status():
    return processing.queue.status()


def clean_queue(max_age=None):
    return processing.queue.clean(max_age)

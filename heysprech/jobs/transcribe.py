
from flask import current_app, has_app_context
from rq import get_current_job

from ..extensions import processing
from ..services import ledger
from ..services.importer import TranscriptionImporter
from ..services.progress import ProgressReporter
from ..services.storage import validate_audio_file


def _progress_sink(job, video_id):
    def save(percent):
        current_app.logger.info('job progress videoId=%s jobId=%s progress=%s', video_id, job.id, percent)
        job.meta['progress'] = percent
        job.save_meta()
    return save


def _run_process(video_id, audio_path, source_lang, target_lang):
    queue = processing.queue
    job = get_current_job()
    job_id = job.id if job else None
    reporter = ProgressReporter(sink=_progress_sink(job, video_id) if job else None)
    stage = ledger.STEP_TRANSCRIPTION

    try:
        resolved = validate_audio_file(audio_path, queue.settings.data_dir)

        video = ledger.get_video(video_id)
        if video.transcription_status == 'processing':
            # the previous attempt died without reporting back
            ledger.mark_failed(video_id, 'Previous attempt stalled', step=stage)
        if video.file_path != resolved:
            # uploads/ files were moved; retries must find the new location
            video.file_path = resolved
        ledger.log_step(video_id, stage, 'started', f"Processing audio with {source_lang} -> {target_lang}")
        ledger.mark_processing(video_id, job_id)

        result = queue.engine().run(video_id, resolved, source_lang, target_lang, reporter)
        result.raise_for_failure(stage)
        ledger.log_step(video_id, stage, 'completed', f"Output: {result.output_path}")

        stage = ledger.STEP_DATABASE_IMPORT
        ledger.log_step(video_id, stage, 'started', 'Importing transcription into database')
        stats = TranscriptionImporter().load(video_id, result.output_path)
        ledger.log_step(
            video_id, stage, 'completed',
            f"Imported {stats.segments} segments and {stats.vocabulary} vocabulary words",
        )
        if stats.exercises:
            ledger.log_step(video_id, ledger.STEP_EXERCISES, 'completed', f"Created {stats.exercises} exercises")
        if stats.pronunciations:
            ledger.log_step(
                video_id, ledger.STEP_PRONUNCIATIONS, 'completed', f"Stored {stats.pronunciations} pronunciations"
            )

        ledger.mark_completed(video_id, result.output_path)
        reporter.complete()
    except Exception as e:
        message = str(e) or e.__class__.__name__
        current_app.logger.error('[video %s] processing failed at %s: %s', video_id, getattr(e, 'stage', None) or stage, message)
        try:
            ledger.mark_failed(video_id, message, step=getattr(e, 'stage', None) or stage)
        except Exception:
            current_app.logger.exception('[video %s] could not record failure', video_id)
        raise

    out = stats.as_dict()
    out.update(video_id=video_id, output_path=result.output_path)
    return out


def process_video(video_id: int, audio_path: str, source_lang: str = 'de', target_lang: str = 'fr'):
    """Job entrypoint run by RQ workers.

    Reuses the caller's app context when there is one (worker started inside
    ``app.app_context()``, tests); otherwise builds the app first.
    """
    if has_app_context():
        return _run_process(video_id, audio_path, source_lang, target_lang)
    # lazy import to avoid circular imports at module import time
    from heysprech import create_app
    app = create_app()
    with app.app_context():
        return _run_process(video_id, audio_path, source_lang, target_lang)

"""Durable processing queue on top of RQ.

``ProcessingQueue`` is built once per Flask app (see ``extensions.py``) from
``QueueSettings``; it owns the RQ queue, the retry/backoff policy, job
retention and the worker processes started by ``start()``.
"""

import logging
import multiprocessing
import shlex
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from rq import Callback, Queue, Retry, Worker
from rq.exceptions import NoSuchJobError
from rq.job import Job
from rq.registry import FailedJobRegistry, FinishedJobRegistry
from rq.results import Result
from rq.suspension import is_suspended, resume, suspend

from ..errors import UnsupportedLanguage, is_retryable
from .engine import EngineInvoker, check_engine_available
from .slots import EngineSlots
from .storage import ensure_directories

logger = logging.getLogger(__name__)

JOB_FUNC = 'heysprech.jobs.transcribe.process_video'


@dataclass
class QueueSettings:
    redis_url: str = 'redis://localhost:6379/0'
    queue_name: str = 'audio-processing'
    concurrency: int = 2
    attempts: int = 3
    backoff_seconds: int = 5
    job_timeout: int = 1800
    keep_completed: int = 10
    keep_failed: int = 20
    completed_ttl: int = 7 * 24 * 3600
    failed_ttl: int = 30 * 24 * 3600
    clean_max_age: int = 24 * 3600
    data_dir: str = 'heysprech-data'
    supported_languages: Tuple[str, ...] = ('de', 'fr', 'en')
    default_source_lang: str = 'de'
    default_target_lang: str = 'fr'
    engine_command: List[str] = field(default_factory=lambda: ['docker'])
    engine_image: str = 'heysprech-api'
    engine_container_root: str = '/app'
    engine_timeout: int = 600
    engine_slot_poll_interval: float = 1.0
    engine_kill_grace: float = 10

    @classmethod
    def from_mapping(cls, config):
        command = config.get('ENGINE_COMMAND', 'docker')
        if isinstance(command, str):
            command = shlex.split(command)
        return cls(
            redis_url=config.get('REDIS_URL', cls.redis_url),
            queue_name=config.get('QUEUE_NAME', cls.queue_name),
            concurrency=int(config.get('QUEUE_CONCURRENCY', cls.concurrency)),
            attempts=int(config.get('JOB_ATTEMPTS', cls.attempts)),
            backoff_seconds=int(config.get('JOB_BACKOFF_SECONDS', cls.backoff_seconds)),
            job_timeout=int(config.get('JOB_TIMEOUT', cls.job_timeout)),
            keep_completed=int(config.get('KEEP_COMPLETED_JOBS', cls.keep_completed)),
            keep_failed=int(config.get('KEEP_FAILED_JOBS', cls.keep_failed)),
            completed_ttl=int(config.get('COMPLETED_JOB_TTL', cls.completed_ttl)),
            failed_ttl=int(config.get('FAILED_JOB_TTL', cls.failed_ttl)),
            clean_max_age=int(config.get('QUEUE_CLEAN_MAX_AGE', cls.clean_max_age)),
            data_dir=config.get('DATA_DIR', cls.data_dir),
            supported_languages=tuple(config.get('SUPPORTED_LANGUAGES', cls.supported_languages)),
            default_source_lang=config.get('DEFAULT_SOURCE_LANG', cls.default_source_lang),
            default_target_lang=config.get('DEFAULT_TARGET_LANG', cls.default_target_lang),
            engine_command=list(command),
            engine_image=config.get('ENGINE_IMAGE', cls.engine_image),
            engine_container_root=config.get('ENGINE_CONTAINER_ROOT', cls.engine_container_root),
            engine_timeout=int(config.get('ENGINE_TIMEOUT', cls.engine_timeout)),
            engine_slot_poll_interval=float(config.get('ENGINE_SLOT_POLL_INTERVAL', cls.engine_slot_poll_interval)),
            engine_kill_grace=float(config.get('ENGINE_KILL_GRACE', cls.engine_kill_grace)),
        )

    def backoff_intervals(self):
        """5, 10, 20, ... seconds: one entry per retry."""
        return [self.backoff_seconds * 2 ** i for i in range(max(self.attempts - 1, 0))]


def _as_utc(dt):
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _failed_reason(job):
    result = job.latest_result()
    if result is None or result.type != Result.Type.FAILED or not result.exc_string:
        return None
    lines = [line for line in result.exc_string.strip().splitlines() if line.strip()]
    return lines[-1] if lines else None


def _trim_registry(registry, keep):
    """Delete the oldest job records beyond ``keep``."""
    ids = registry.get_job_ids(cleanup=False)
    excess = ids[:-keep] if keep > 0 else ids
    for job_id in excess:
        registry.remove(job_id)
        try:
            Job.fetch(job_id, connection=registry.connection).delete(remove_from_queue=False)
        except NoSuchJobError:
            pass
    return len(excess)


# RQ callbacks: run inside the worker right after the job function returns/raises

def on_job_success(job, connection, result, *args, **kwargs):
    video_id = job.kwargs.get('video_id')
    logger.info('job completed videoId=%s jobId=%s stats=%s', video_id, job.id, result)
    keep = job.meta.get('keep_completed')
    if keep is not None:
        _trim_registry(FinishedJobRegistry(job.origin, connection=connection), max(int(keep) - 1, 0))


def on_job_failure(job, connection, exc_type, exc_value, tb):
    video_id = job.kwargs.get('video_id')
    if exc_type is not None and exc_type.__name__ == 'AbandonedJobError':
        logger.warning('job stalled videoId=%s jobId=%s', video_id, job.id)
    if exc_value is not None and not is_retryable(exc_value) and job.retries_left:
        # bad input or bad engine output: re-running will not help
        logger.info('job %s failed with a non-retryable error, dropping %s retries', job.id, job.retries_left)
        job.retries_left = 0
    logger.error(
        'job failed videoId=%s jobId=%s error=%s retries_left=%s audioPath=%s',
        video_id, job.id, exc_value, job.retries_left or 0, job.kwargs.get('audio_path'),
    )
    keep = job.meta.get('keep_failed')
    if keep is not None and not job.retries_left:
        _trim_registry(FailedJobRegistry(job.origin, connection=connection), max(int(keep) - 1, 0))


def worker_overrides(config):
    """The plain-valued uppercase settings of an app config.

    Worker processes rebuild the app from these so jobs see the same
    database, DATA_DIR and engine settings as the app that started them.
    """
    return {
        key: value for key, value in config.items()
        if key.isupper() and isinstance(value, (str, int, float, bool, list, tuple, dict, type(None)))
    }


def _run_worker_process(queue_name, redis_url, logging_level, overrides=None):
    # worker processes build their own app so jobs and callbacks see the config
    from redis import Redis
    from heysprech import create_app

    connection = Redis.from_url(redis_url)
    app = create_app(overrides=overrides, redis_connection=connection)
    with app.app_context():
        worker = Worker([Queue(queue_name, connection=connection)], connection=connection)
        worker.work(burst=False, with_scheduler=True, logging_level=logging_level)


class ProcessingQueue:

    def __init__(self, connection, settings=None, logger=None, app_config=None):
        self.connection = connection
        self.settings = settings or QueueSettings()
        # handed to worker processes started by start()
        self.app_config = worker_overrides(app_config or {})
        self.log = logger or logging.getLogger(__name__)
        self.queue = Queue(self.settings.queue_name, connection=connection)
        self._workers = []

    @property
    def concurrency(self):
        return self.settings.concurrency

    # -- building blocks used by the job ------------------------------------

    def engine_slots(self):
        return EngineSlots(
            self.connection,
            limit=self.settings.concurrency,
            key=f"heysprech:{self.settings.queue_name}:engine-slots",
            lease_seconds=self.settings.engine_timeout + 300,
            poll_interval=self.settings.engine_slot_poll_interval,
        )

    def engine(self):
        return EngineInvoker(
            command=self.settings.engine_command,
            image=self.settings.engine_image,
            data_dir=self.settings.data_dir,
            languages=self.settings.supported_languages,
            timeout=self.settings.engine_timeout,
            container_root=self.settings.engine_container_root,
            slots=self.engine_slots(),
            kill_grace=self.settings.engine_kill_grace,
        )

    def prepare_directories(self):
        return ensure_directories(self.settings.data_dir, self.settings.supported_languages)

    # -- enqueueing ---------------------------------------------------------

    def check_language(self, lang, role):
        supported = self.settings.supported_languages
        if lang not in supported:
            raise UnsupportedLanguage(f"Unsupported {role} language: {lang}. Supported: {', '.join(supported)}")

    def enqueue(self, video_id, audio_path, source_lang=None, target_lang=None, priority=None, delay=None):
        """Queue one video for transcription.

        ``priority``: any truthy value puts the job at the front of the queue.
        ``delay``: seconds (or a timedelta) before the job becomes runnable.
        """
        source_lang = source_lang or self.settings.default_source_lang
        target_lang = target_lang or self.settings.default_target_lang
        self.check_language(source_lang, 'source')
        self.check_language(target_lang, 'target')
        self.prepare_directories()

        retry = None
        if self.settings.attempts > 1:
            retry = Retry(max=self.settings.attempts - 1, interval=self.settings.backoff_intervals())
        options = dict(
            kwargs={
                'video_id': video_id,
                'audio_path': audio_path,
                'source_lang': source_lang,
                'target_lang': target_lang,
            },
            retry=retry,
            job_timeout=self.settings.job_timeout,
            result_ttl=self.settings.completed_ttl,
            failure_ttl=self.settings.failed_ttl,
            meta={
                'progress': 0,
                'keep_completed': self.settings.keep_completed,
                'keep_failed': self.settings.keep_failed,
            },
            description=f"transcribe video {video_id}",
            on_success=Callback(on_job_success),
            on_failure=Callback(on_job_failure),
        )
        if delay:
            when = delay if isinstance(delay, timedelta) else timedelta(seconds=delay)
            job = self.queue.enqueue_in(when, JOB_FUNC, **options)
        else:
            job = self.queue.enqueue(JOB_FUNC, at_front=bool(priority), **options)
        self.log.info('job queued videoId=%s jobId=%s %s->%s', video_id, job.id, source_lang, target_lang)
        return job

    # -- inspection ---------------------------------------------------------

    def status(self):
        q = self.queue
        return {
            'waiting': q.count,
            'active': q.started_job_registry.get_job_count(cleanup=False),
            'completed': q.finished_job_registry.get_job_count(cleanup=False),
            'failed': q.failed_job_registry.get_job_count(cleanup=False),
            'delayed': q.scheduled_job_registry.get_job_count(cleanup=False),
            'concurrency': self.settings.concurrency,
        }

    def get_job(self, job_id):
        try:
            return Job.fetch(job_id, connection=self.connection)
        except NoSuchJobError:
            return None

    def job_details(self, job_id):
        job = self.get_job(job_id)
        if job is None:
            return None
        return {
            'id': job.id,
            'data': dict(job.kwargs),
            'progress': job.get_meta().get('progress', 0),
            'state': job.get_status().value,
            'created_at': _as_utc(job.created_at),
            'processed_at': _as_utc(job.started_at),
            'finished_at': _as_utc(job.ended_at),
            'failed_reason': _failed_reason(job),
        }

    def metrics(self, recent=10):
        def summary(ids, with_reason=False):
            out = []
            for job in Job.fetch_many(ids, connection=self.connection):
                if job is None:
                    continue
                item = {'id': job.id, 'data': dict(job.kwargs)}
                if with_reason:
                    item['reason'] = _failed_reason(job)
                out.append(item)
            return out

        q = self.queue
        return {
            'status': self.status(),
            'recent_jobs': {
                'active': summary(q.started_job_registry.get_job_ids(cleanup=False)),
                'waiting': summary(q.job_ids),
                'recent_completed': summary(q.finished_job_registry.get_job_ids(0, recent - 1, desc=True, cleanup=False)),
                'recent_failed': summary(
                    q.failed_job_registry.get_job_ids(0, recent - 1, desc=True, cleanup=False), with_reason=True
                ),
            },
        }

    def detect_stalled(self):
        """Report started jobs whose worker stopped heartbeating.

        Only logs; RQ's registry maintenance moves them to failed and the
        retry policy takes it from there.
        """
        stalled = list(dict.fromkeys(self.queue.started_job_registry.get_expired_job_ids()))
        for job_id in stalled:
            job = self.get_job(job_id)
            video_id = job.kwargs.get('video_id') if job else None
            self.log.warning('job stalled videoId=%s jobId=%s', video_id, job_id)
        return stalled

    # -- administration -----------------------------------------------------

    def retry_failed_jobs(self):
        registry = self.queue.failed_job_registry
        retried = 0
        for job_id in registry.get_job_ids(cleanup=False):
            try:
                registry.requeue(job_id)
                retried += 1
            except Exception:
                self.log.exception('Failed to retry job %s', job_id)
        self.log.info('requeued %s failed job(s)', retried)
        return retried

    def clean(self, max_age=None):
        """Delete finished and failed job records older than ``max_age`` seconds."""
        max_age = self.settings.clean_max_age if max_age is None else max_age
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=max_age)
        removed = 0
        for registry in (self.queue.finished_job_registry, self.queue.failed_job_registry):
            ids = registry.get_job_ids(cleanup=False)
            for job_id, job in zip(ids, Job.fetch_many(ids, connection=self.connection)):
                if job is None:
                    registry.remove(job_id)
                    removed += 1
                    continue
                ended = _as_utc(job.ended_at) or _as_utc(job.created_at)
                if ended is not None and ended <= cutoff:
                    registry.remove(job, delete_job=True)
                    removed += 1
        self.log.info('Queue cleaned (%s jobs older than %ss removed)', removed, max_age)
        return removed

    def pause(self):
        suspend(self.connection)
        self.log.info('Queue paused')

    def resume(self):
        resume(self.connection)
        self.log.info('Queue resumed')

    def is_paused(self):
        return bool(is_suspended(self.connection))

    # -- lifecycle ----------------------------------------------------------

    def start(self, logging_level='INFO'):
        """Check the engine runtime and launch ``concurrency`` workers."""
        check_engine_available(self.settings.engine_command)
        self.prepare_directories()
        for _ in range(self.settings.concurrency):
            proc = multiprocessing.Process(
                target=_run_worker_process,
                args=(self.settings.queue_name, self.settings.redis_url, logging_level, self.app_config),
                daemon=False,
            )
            proc.start()
            self._workers.append(proc)
        self.log.info('started %s worker(s) on queue %s', len(self._workers), self.settings.queue_name)
        return [p.pid for p in self._workers]

    def join(self):
        for proc in self._workers:
            proc.join()

    def close(self, timeout=30):
        for proc in self._workers:
            if proc.is_alive():
                proc.terminate()  # SIGTERM -> warm shutdown in rq
        for proc in self._workers:
            proc.join(timeout)
        self._workers = []
        self.log.info('Processing queue closed')

import os
from dotenv import load_dotenv
load_dotenv()

class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///heysprech.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "alembic")

    # storage layout: uploads/ (staging), audios/ (engine input), de/ fr/ en/ (engine output), temp/
    DATA_DIR = os.getenv("DATA_DIR", os.path.join(os.path.expanduser("~"), "heysprech-data"))
    SUPPORTED_LANGUAGES = ("de", "fr", "en")
    DEFAULT_SOURCE_LANG = os.getenv("DEFAULT_SOURCE_LANG", "de")
    DEFAULT_TARGET_LANG = os.getenv("DEFAULT_TARGET_LANG", "fr")

    # queue
    QUEUE_NAME = os.getenv("QUEUE_NAME", "audio-processing")
    QUEUE_CONCURRENCY = int(os.getenv("QUEUE_CONCURRENCY", "2"))
    JOB_ATTEMPTS = int(os.getenv("JOB_ATTEMPTS", "3"))
    JOB_BACKOFF_SECONDS = int(os.getenv("JOB_BACKOFF_SECONDS", "5"))
    JOB_TIMEOUT = int(os.getenv("JOB_TIMEOUT", "1800"))
    KEEP_COMPLETED_JOBS = int(os.getenv("KEEP_COMPLETED_JOBS", "10"))
    KEEP_FAILED_JOBS = int(os.getenv("KEEP_FAILED_JOBS", "20"))
    COMPLETED_JOB_TTL = int(os.getenv("COMPLETED_JOB_TTL", str(7 * 24 * 3600)))
    FAILED_JOB_TTL = int(os.getenv("FAILED_JOB_TTL", str(30 * 24 * 3600)))
    QUEUE_CLEAN_MAX_AGE = int(os.getenv("QUEUE_CLEAN_MAX_AGE", str(24 * 3600)))

    # sandboxed transcription engine
    ENGINE_COMMAND = os.getenv("ENGINE_COMMAND", "docker")
    ENGINE_IMAGE = os.getenv("ENGINE_IMAGE", "heysprech-api")
    ENGINE_CONTAINER_ROOT = os.getenv("ENGINE_CONTAINER_ROOT", "/app")
    ENGINE_TIMEOUT = int(os.getenv("ENGINE_TIMEOUT", "600"))
    ENGINE_SLOT_POLL_INTERVAL = float(os.getenv("ENGINE_SLOT_POLL_INTERVAL", "1.0"))
    # seconds between SIGTERM, `<command> kill <container>` and SIGKILL after a timeout
    ENGINE_KILL_GRACE = float(os.getenv("ENGINE_KILL_GRACE", "10"))

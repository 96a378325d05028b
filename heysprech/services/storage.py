import logging
import os
import shutil

from ..errors import FileNotFound, InvalidLocation, InfrastructureError

logger = logging.getLogger(__name__)

UPLOADS_DIR = 'uploads'
AUDIOS_DIR = 'audios'
TEMP_DIR = 'temp'
SUPPORTED_AUDIO_FORMATS = ('.wav', '.mp3', '.m4a', '.flac', '.ogg')


def _is_within(path, directory):
    path = os.path.realpath(path)
    directory = os.path.realpath(directory)
    return path == directory or path.startswith(directory + os.sep)


def audios_dir(data_dir):
    return os.path.join(os.path.abspath(data_dir), AUDIOS_DIR)


def output_dir(data_dir, language):
    return os.path.join(os.path.abspath(data_dir), language)


def ensure_directories(data_dir, languages):
    """Create the staging, input and per-language output folders and make
    sure each one is writable. Returns the list of directories."""
    dirs = [UPLOADS_DIR, AUDIOS_DIR, TEMP_DIR] + list(languages)
    created = []
    for name in dirs:
        path = os.path.join(os.path.abspath(data_dir), name)
        try:
            os.makedirs(path, exist_ok=True)
            probe = os.path.join(path, '.write-test')
            with open(probe, 'w') as f:
                f.write('ok')
            os.remove(probe)
        except OSError as e:
            raise InfrastructureError(
                f"Failed to create or access directory {path}: {e}. "
                "This might be due to insufficient permissions or a read-only filesystem."
            ) from e
        created.append(path)
    logger.debug('storage directories ready under %s', data_dir)
    return created


def validate_audio_file(audio_path, data_dir):
    """Resolve ``audio_path`` to an absolute path inside ``<data_dir>/audios``.

    Relative paths are taken relative to ``data_dir``. A file still sitting in
    the ``uploads/`` staging folder is moved into ``audios/`` first.
    """
    base = os.path.abspath(data_dir)
    absolute = audio_path if os.path.isabs(audio_path) else os.path.join(base, audio_path)
    absolute = os.path.abspath(absolute)

    if not os.path.isfile(absolute):
        raise FileNotFound(f"Audio file not found: {audio_path}", stage='transcription')

    target_dir = audios_dir(base)
    if _is_within(absolute, os.path.join(base, UPLOADS_DIR)):
        os.makedirs(target_dir, exist_ok=True)
        moved = os.path.join(target_dir, os.path.basename(absolute))
        shutil.move(absolute, moved)
        logger.info('Moved file from %s to %s', audio_path, moved)
        absolute = moved

    if not _is_within(absolute, target_dir):
        raise InvalidLocation(
            f"Audio file must be in the audios directory. Expected in: {target_dir}, got: {audio_path}",
            stage='transcription',
        )

    ext = os.path.splitext(absolute)[1].lower()
    if ext not in SUPPORTED_AUDIO_FORMATS:
        logger.warning('Format %s may not be supported. Supported: %s', ext, ', '.join(SUPPORTED_AUDIO_FORMATS))

    resolved = os.path.realpath(absolute)
    logger.info('Audio file validated: %s', resolved)
    return resolved


def remove_file(path):
    """Best-effort delete; failures are logged and swallowed."""
    if not path:
        return False
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning('Could not delete temp file %s: %s', path, e)
        return False

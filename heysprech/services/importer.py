"""Imports the engine's JSON output into segments, words and vocabulary.

The whole import for one video runs inside a single ``atomic()`` scope: a bad
word, exercise or pronunciation anywhere rolls back the segments too, so
readers never see a half-imported video.
"""

import json
from contextlib import contextmanager
from dataclasses import asdict, dataclass

from flask import current_app
from pydantic import ValidationError as PydanticValidationError

from ..errors import ImportConstraintError, MalformedOutput, NotFound
from ..extensions import db
from ..models import (
    AudioSegment, Exercise, ExerciseOption, ExerciseQuestion, Pronunciation,
    Video, WordEntry, WordSegment,
)
from ..schemas.transcription import (
    MultipleChoicePair, PronunciationPayload, TranscriptionPayload, exercise_adapter,
)
from .ledger import STEP_DATABASE_IMPORT
from .timing import find_overlap, score_to_fixed, seconds_to_ms

DEFAULT_LANGUAGE = 'de'


@dataclass
class ImportStats:
    segments: int = 0
    vocabulary: int = 0
    language: str = DEFAULT_LANGUAGE
    exercises: int = 0
    pronunciations: int = 0

    def as_dict(self):
        return asdict(self)


@contextmanager
def atomic():
    """Commit on clean exit, roll back on any exception."""
    try:
        yield db.session
        db.session.commit()
    except BaseException:
        db.session.rollback()
        raise


def _error_summary(exc):
    if isinstance(exc, PydanticValidationError):
        parts = []
        for err in exc.errors()[:5]:
            loc = '.'.join(str(p) for p in err.get('loc', ()))
            parts.append(f"{loc}: {err.get('msg')}")
        return '; '.join(parts)
    return str(exc)


def read_output(output_path):
    try:
        with open(output_path, encoding='utf-8') as f:
            raw = json.load(f)
    except FileNotFoundError as e:
        raise MalformedOutput(f"Transcription file not found: {output_path}", stage=STEP_DATABASE_IMPORT) from e
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedOutput(f"Invalid transcription file {output_path}: {e}", stage=STEP_DATABASE_IMPORT) from e
    if not isinstance(raw, dict):
        raise MalformedOutput('Transcription file must contain a JSON object', stage=STEP_DATABASE_IMPORT)
    try:
        return TranscriptionPayload.model_validate(raw)
    except PydanticValidationError as e:
        raise MalformedOutput(f"Invalid transcription data: {_error_summary(e)}", stage=STEP_DATABASE_IMPORT) from e


def _ms(value, what):
    try:
        return seconds_to_ms(value)
    except ValueError as e:
        raise MalformedOutput(f"Invalid time for {what}: {e}", stage=STEP_DATABASE_IMPORT) from e


class TranscriptionImporter:

    def __init__(self, session=None):
        self.session = session or db.session

    def load(self, video_id, output_path):
        """Parse ``output_path`` and persist it for ``video_id``.

        Returns :class:`ImportStats`. Raises ``MalformedOutput`` for unreadable
        or invalid data and ``ImportConstraintError`` for overlap/bounds
        violations; nothing is written in either case.
        """
        current_app.logger.info('[video %s] reading transcription file %s', video_id, output_path)
        payload = read_output(output_path)
        language = payload.language or DEFAULT_LANGUAGE
        stats = ImportStats(language=language)

        with atomic():
            if self.session.get(Video, video_id) is None:
                raise NotFound(f"Video with ID {video_id} not found", stage=STEP_DATABASE_IMPORT)
            self._purge_previous_import(video_id)

            current_app.logger.info('[video %s] importing %s audio segments', video_id, len(payload.segments))
            stats.segments = self._insert_segments(video_id, payload.segments, language)

            current_app.logger.info('[video %s] importing %s vocabulary words', video_id, len(payload.vocabulary))
            for entry in payload.vocabulary:
                exercises, pronunciations = self._insert_vocabulary_entry(video_id, entry)
                stats.vocabulary += 1
                stats.exercises += exercises
                stats.pronunciations += pronunciations

        current_app.logger.info(
            '[video %s] import done: segments=%s vocabulary=%s exercises=%s pronunciations=%s language=%s',
            video_id, stats.segments, stats.vocabulary, stats.exercises, stats.pronunciations, stats.language,
        )
        return stats

    def _purge_previous_import(self, video_id):
        # a re-run replaces what an earlier successful import wrote for this video
        old_segments = AudioSegment.query.filter_by(video_id=video_id).all()
        old_exercises = Exercise.query.filter_by(video_id=video_id).all()
        for row in old_segments + old_exercises:
            self.session.delete(row)
        if old_segments or old_exercises:
            self.session.flush()
            current_app.logger.info(
                '[video %s] replaced previous import (%s segments, %s exercises)',
                video_id, len(old_segments), len(old_exercises),
            )

    def _insert_segments(self, video_id, segments, language):
        placed = []
        for index, segment in enumerate(segments):
            start_ms = _ms(segment.start, f"segment {index}")
            end_ms = _ms(segment.end, f"segment {index}")
            if start_ms >= end_ms:
                raise ImportConstraintError(
                    f"Segment {index} has end time <= start time ({start_ms}ms, {end_ms}ms)",
                    stage=STEP_DATABASE_IMPORT,
                )
            clash = find_overlap(start_ms, end_ms, placed)
            if clash:
                raise ImportConstraintError(
                    f"Segment {index} [{start_ms}, {end_ms}) overlaps segment {clash[2]} [{clash[0]}, {clash[1]})",
                    stage=STEP_DATABASE_IMPORT,
                )
            placed.append((start_ms, end_ms, index))

            row = AudioSegment(
                video_id=video_id, start_time=start_ms, end_time=end_ms,
                text=segment.text or '', language=language, translation=segment.translation,
            )
            self.session.add(row)
            self.session.flush()
            self._insert_words(row, index, segment.words)
        return len(segments)

    def _insert_words(self, segment_row, segment_index, words):
        placed = []
        for position, word in enumerate(words, start=1):
            what = f"word {position} of segment {segment_index}"
            start_ms, end_ms = _ms(word.start, what), _ms(word.end, what)
            if start_ms >= end_ms:
                raise ImportConstraintError(f"{what} has end time <= start time", stage=STEP_DATABASE_IMPORT)
            if start_ms < segment_row.start_time or end_ms > segment_row.end_time:
                raise ImportConstraintError(
                    f"{what} [{start_ms}, {end_ms}) is outside its segment "
                    f"[{segment_row.start_time}, {segment_row.end_time})",
                    stage=STEP_DATABASE_IMPORT,
                )
            if find_overlap(start_ms, end_ms, placed):
                raise ImportConstraintError(f"{what} overlaps a previous word", stage=STEP_DATABASE_IMPORT)
            placed.append((start_ms, end_ms))
            try:
                confidence = score_to_fixed(word.score)
            except ValueError as e:
                raise MalformedOutput(f"Invalid score for {what}: {e}", stage=STEP_DATABASE_IMPORT) from e
            self.session.add(WordSegment(
                audio_segment_id=segment_row.id, word=word.word or '',
                start_time=start_ms, end_time=end_ms,
                confidence_score=confidence, position_in_segment=position,
            ))

    def _insert_vocabulary_entry(self, video_id, entry):
        # duplicates across imports are kept as separate rows
        word_row = WordEntry(
            word=entry.word,
            language=entry.source_language,
            translations=entry.translations,
            examples=entry.examples,
            level=entry.level,
            word_metadata=entry.metadata,
        )
        self.session.add(word_row)
        self.session.flush()

        exercises = 0
        if entry.exercises:
            current_app.logger.debug('[video %s] exercises for word %s', video_id, entry.word)
            self._insert_exercise(video_id, word_row, entry.exercises)
            exercises = 1

        pronunciations = 0
        if entry.pronunciations:
            for raw in entry.pronunciations:
                try:
                    p = PronunciationPayload.model_validate(raw)
                except PydanticValidationError as e:
                    raise MalformedOutput(
                        f"Invalid pronunciation data for word {entry.word}: {_error_summary(e)}",
                        stage='pronunciations',
                    ) from e
                self.session.add(Pronunciation(
                    word_id=word_row.id, file_path=p.file, type=p.type, language=p.language,
                ))
                pronunciations += 1
        return exercises, pronunciations

    def _insert_exercise(self, video_id, word_row, raw):
        try:
            payload = exercise_adapter.validate_python(raw)
        except PydanticValidationError as e:
            raise MalformedOutput(
                f"Invalid exercise data for word {word_row.word}: {_error_summary(e)}",
                stage='exercises',
            ) from e

        exercise = Exercise(
            word_id=word_row.id, video_id=video_id, type=payload.type, level=payload.level,
            exercise_metadata=payload.model_dump(mode='json'),
        )
        self.session.add(exercise)
        self.session.flush()

        if isinstance(payload, MultipleChoicePair):
            for direction, question in payload.directions():
                q = ExerciseQuestion(
                    exercise_id=exercise.id,
                    direction=direction,
                    question_de=question.question.de,
                    question_fr=question.question.fr,
                    word_to_translate=question.word_to_translate,
                    correct_answer=question.correct_answer,
                )
                self.session.add(q)
                self.session.flush()
                for option in question.options:
                    self.session.add(ExerciseOption(
                        question_id=q.id, option_text=option, is_correct=option == question.correct_answer,
                    ))
        else:
            current_app.logger.debug('exercise of type %s stored as metadata only', payload.type)
        return exercise

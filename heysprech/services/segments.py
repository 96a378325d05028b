"""Editing of imported segments and words.

Used by the editing collaborators after an import; every write keeps the same
invariants the importer enforces: ``start < end``, no overlap between
segments of a video, words inside their segment and not overlapping each
other, dense 1-based word positions.
"""


from sqlalchemy import func

from ..errors import BoundsError, NotFound, OverlapError, ValidationError
from ..extensions import db
from ..models import AudioSegment, Video, WordSegment
from .timing import find_overlap, score_to_fixed, seconds_to_ms


def _to_ms(seconds, label):
    try:
        return seconds_to_ms(seconds)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {label}: {e}") from e


def _check_order(start_ms, end_ms):
    if start_ms < 0:
        raise BoundsError('Start time must not be negative')
    if start_ms >= end_ms:
        raise BoundsError('End time must be greater than start time')


def _segment_intervals(video_id, exclude_id=None):
    q = db.session.query(AudioSegment.start_time, AudioSegment.end_time, AudioSegment.id).filter(
        AudioSegment.video_id == video_id
    )
    if exclude_id is not None:
        q = q.filter(AudioSegment.id != exclude_id)
    return q.all()


def _word_intervals(segment_id, exclude_id=None):
    q = db.session.query(WordSegment.start_time, WordSegment.end_time, WordSegment.id).filter(
        WordSegment.audio_segment_id == segment_id
    )
    if exclude_id is not None:
        q = q.filter(WordSegment.id != exclude_id)
    return q.all()


def get_segment(video_id, segment_id):
    seg = db.session.get(AudioSegment, segment_id)
    if seg is None or seg.video_id != video_id:
        raise NotFound('Segment not found or does not belong to this video')
    return seg


def add_segment(video_id, start, end, text, translation=None, language=None):
    """Add a segment; ``start``/``end`` are seconds."""
    video = db.session.get(Video, video_id)
    if video is None:
        raise NotFound(f"Video with ID {video_id} not found")
    start_ms, end_ms = _to_ms(start, 'start time'), _to_ms(end, 'end time')
    _check_order(start_ms, end_ms)
    if find_overlap(start_ms, end_ms, _segment_intervals(video_id)):
        raise OverlapError('New segment overlaps with existing segments')

    seg = AudioSegment(
        video_id=video_id, start_time=start_ms, end_time=end_ms, text=text or '',
        translation=translation, language=language or video.language,
    )
    db.session.add(seg)
    db.session.commit()
    return seg


def update_segment(video_id, segment_id, start=None, end=None, text=None, translation=None):
    seg = get_segment(video_id, segment_id)
    start_ms = seg.start_time if start is None else _to_ms(start, 'start time')
    end_ms = seg.end_time if end is None else _to_ms(end, 'end time')
    _check_order(start_ms, end_ms)

    if (start_ms, end_ms) != (seg.start_time, seg.end_time):
        if find_overlap(start_ms, end_ms, _segment_intervals(video_id, exclude_id=seg.id)):
            raise OverlapError('Updated segment would overlap with existing segments')
        # shrinking a segment must not strand its words outside it
        for word in seg.words:
            if word.start_time < start_ms or word.end_time > end_ms:
                raise BoundsError(f"Word '{word.word}' would fall outside the updated segment")
        seg.start_time, seg.end_time = start_ms, end_ms
    if text is not None:
        seg.text = text
    if translation is not None:
        seg.translation = translation
    db.session.commit()
    return seg


def delete_segment(video_id, segment_id):
    seg = get_segment(video_id, segment_id)
    db.session.delete(seg)
    db.session.commit()


def add_word(video_id, segment_id, word, start, end, confidence=0.0):
    """Append a word to a segment; position is max(position) + 1."""
    seg = get_segment(video_id, segment_id)
    start_ms, end_ms = _to_ms(start, 'start time'), _to_ms(end, 'end time')
    _check_order(start_ms, end_ms)
    if start_ms < seg.start_time or end_ms > seg.end_time:
        raise BoundsError('Word times must be within segment bounds')
    if find_overlap(start_ms, end_ms, _word_intervals(seg.id)):
        raise OverlapError('Word would overlap with existing words')
    try:
        confidence_fixed = score_to_fixed(confidence)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid confidence score: {e}") from e

    max_position = db.session.query(func.coalesce(func.max(WordSegment.position_in_segment), 0)).filter(
        WordSegment.audio_segment_id == seg.id
    ).scalar()
    ws = WordSegment(
        audio_segment_id=seg.id, word=word, start_time=start_ms, end_time=end_ms,
        confidence_score=confidence_fixed, position_in_segment=max_position + 1,
    )
    db.session.add(ws)
    db.session.commit()
    return ws


def delete_word(video_id, segment_id, word_id):
    """Remove a word and close the gap in positions."""
    seg = get_segment(video_id, segment_id)
    ws = db.session.get(WordSegment, word_id)
    if ws is None or ws.audio_segment_id != seg.id:
        raise NotFound('Word not found or does not belong to this segment')
    removed_position = ws.position_in_segment
    db.session.delete(ws)
    db.session.flush()
    db.session.query(WordSegment).filter(
        WordSegment.audio_segment_id == seg.id,
        WordSegment.position_in_segment > removed_position,
    ).update({WordSegment.position_in_segment: WordSegment.position_in_segment - 1}, synchronize_session='fetch')
    db.session.commit()

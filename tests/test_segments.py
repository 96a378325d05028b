import pytest

from heysprech.errors import BoundsError, NotFound, OverlapError, ValidationError
from heysprech.models import AudioSegment, WordSegment
from heysprech.services import segments


def test_overlapping_segment_is_rejected(make_video):
    video = make_video()
    segments.add_segment(video.id, 1.0, 2.0, 'eins')
    with pytest.raises(OverlapError):
        segments.add_segment(video.id, 1.5, 2.5, 'zwei')
    assert AudioSegment.query.filter_by(video_id=video.id).count() == 1


def test_touching_segments_are_accepted(make_video):
    video = make_video()
    segments.add_segment(video.id, 1.0, 2.0, 'eins')
    seg = segments.add_segment(video.id, 2.0, 3.0, 'zwei', translation='deux')
    assert (seg.start_time, seg.end_time) == (2000, 3000)
    assert seg.language == 'de'
    assert seg.translation == 'deux'


def test_segments_of_other_videos_do_not_clash(make_video):
    first, second = make_video(), make_video()
    segments.add_segment(first.id, 0, 5, 'a')
    segments.add_segment(second.id, 0, 5, 'b')


@pytest.mark.parametrize('start,end', [(2.0, 2.0), (3.0, 2.0), (-1.0, 1.0)])
def test_invalid_bounds(make_video, start, end):
    video = make_video()
    with pytest.raises(BoundsError):
        segments.add_segment(video.id, start, end, 'x')


def test_non_numeric_time(make_video):
    video = make_video()
    with pytest.raises(ValidationError):
        segments.add_segment(video.id, 'soon', 2.0, 'x')


def test_unknown_video(app):
    with pytest.raises(NotFound):
        segments.add_segment(9999, 0, 1, 'x')


def test_update_segment_checks_neighbours_and_words(make_video):
    video = make_video()
    first = segments.add_segment(video.id, 0.0, 1.0, 'a')
    second = segments.add_segment(video.id, 1.0, 2.0, 'b')
    segments.add_word(video.id, second.id, 'b', 1.2, 1.8)

    with pytest.raises(OverlapError):
        segments.update_segment(video.id, first.id, end=1.5)
    with pytest.raises(BoundsError):
        segments.update_segment(video.id, second.id, start=1.5)

    updated = segments.update_segment(video.id, second.id, end=2.5, text='bb')
    assert (updated.start_time, updated.end_time, updated.text) == (1000, 2500, 'bb')


def test_segment_must_belong_to_video(make_video):
    owner, other = make_video(), make_video()
    seg = segments.add_segment(owner.id, 0, 1, 'x')
    with pytest.raises(NotFound):
        segments.delete_segment(other.id, seg.id)


def test_words_get_dense_positions(make_video):
    video = make_video()
    seg = segments.add_segment(video.id, 0.0, 3.0, 'a b c')
    a = segments.add_word(video.id, seg.id, 'a', 0.0, 0.5, confidence=0.9999)
    b = segments.add_word(video.id, seg.id, 'b', 0.5, 1.0)
    c = segments.add_word(video.id, seg.id, 'c', 1.0, 1.5)
    assert [a.position_in_segment, b.position_in_segment, c.position_in_segment] == [1, 2, 3]
    assert a.confidence_score == 999

    segments.delete_word(video.id, seg.id, b.id)
    rows = WordSegment.query.filter_by(audio_segment_id=seg.id).order_by(WordSegment.position_in_segment).all()
    assert [(w.word, w.position_in_segment) for w in rows] == [('a', 1), ('c', 2)]

    d = segments.add_word(video.id, seg.id, 'd', 2.0, 2.5)
    assert d.position_in_segment == 3


def test_word_outside_segment_or_overlapping(make_video):
    video = make_video()
    seg = segments.add_segment(video.id, 1.0, 2.0, 'x')
    with pytest.raises(BoundsError):
        segments.add_word(video.id, seg.id, 'early', 0.5, 1.2)
    with pytest.raises(BoundsError):
        segments.add_word(video.id, seg.id, 'late', 1.8, 2.1)
    segments.add_word(video.id, seg.id, 'ok', 1.0, 1.5)
    with pytest.raises(OverlapError):
        segments.add_word(video.id, seg.id, 'clash', 1.4, 1.6)


def test_deleting_segment_removes_words(make_video):
    video = make_video()
    seg = segments.add_segment(video.id, 0, 1, 'x')
    segments.add_word(video.id, seg.id, 'x', 0, 0.5)
    segments.delete_segment(video.id, seg.id)
    assert WordSegment.query.count() == 0

import copy

import pytest

from heysprech.errors import ImportConstraintError, MalformedOutput, NotFound
from heysprech.models import (
    AudioSegment, Exercise, ExerciseOption, ExerciseQuestion, Pronunciation, WordEntry, WordSegment,
)
from heysprech.services.importer import TranscriptionImporter

PAYLOAD = {
    "language": "de",
    "segments": [
        {
            "start": 0.0, "end": 1.5, "text": "Guten Morgen", "translation": "Bonjour",
            "words": [
                {"word": "Guten", "start": 0.0, "end": 0.6, "score": 0.98},
                {"word": "Morgen", "start": 0.7, "end": 1.4, "score": 0.9999},
            ],
        },
        {"start": 1.5, "end": 3.0, "text": "Wie geht's?", "words": []},
    ],
    "vocabulary": [
        {
            "word": "Morgen",
            "translations": ["matin"],
            "examples": ["Guten Morgen!"],
            "level": "beginner",
            "exercises": {
                "type": "multiple_choice_pair",
                "level": "beginner",
                "de_to_fr": {
                    "question": {"de": "Was bedeutet 'Morgen'?", "fr": "Que signifie 'Morgen' ?"},
                    "word_to_translate": "Morgen",
                    "correct_answer": "matin",
                    "options": ["matin", "soir", "nuit"],
                },
                "fr_to_de": {
                    "question": {"de": "Wie sagt man 'matin'?", "fr": "Comment dit-on 'matin' ?"},
                    "word_to_translate": "matin",
                    "correct_answer": "Morgen",
                    "options": ["Morgen", "Abend"],
                },
            },
            "pronunciations": [{"file": "p/morgen.mp3", "type": "word", "language": "de"}],
        },
        {
            "word": "gehen",
            "translations": ["aller"],
            "examples": [],
            "exercises": {
                "type": "fill_in_blank",
                "sentence": "Ich ___ nach Hause",
                "blanks": [{"word": "gehe", "position": 1}],
            },
        },
    ],
}


def _payload():
    return copy.deepcopy(PAYLOAD)


def test_scenario_counts(make_video, write_output):
    video = make_video()
    stats = TranscriptionImporter().load(video.id, write_output(PAYLOAD))
    assert stats.as_dict() == {
        'segments': 2, 'vocabulary': 2, 'language': 'de', 'exercises': 2, 'pronunciations': 1,
    }

    rows = AudioSegment.query.filter_by(video_id=video.id).order_by(AudioSegment.start_time).all()
    assert [(s.start_time, s.end_time) for s in rows] == [(0, 1500), (1500, 3000)]
    words = rows[0].words
    assert [(w.word, w.position_in_segment, w.confidence_score) for w in words] == [
        ('Guten', 1, 980), ('Morgen', 2, 999),
    ]
    assert rows[1].translation is None


def test_exercises_and_pronunciations(make_video, write_output):
    video = make_video()
    TranscriptionImporter().load(video.id, write_output(PAYLOAD))

    morgen = WordEntry.query.filter_by(word='Morgen').one()
    assert morgen.language == 'de'
    assert morgen.level == 'beginner'
    assert [p.file_path for p in morgen.pronunciations] == ['p/morgen.mp3']

    mc = Exercise.query.filter_by(type='multiple_choice_pair').one()
    assert mc.video_id == video.id
    assert [q.direction for q in mc.questions] == ['de_to_fr', 'fr_to_de']
    de_to_fr = mc.questions[0]
    assert [(o.option_text, o.is_correct) for o in de_to_fr.options] == [
        ('matin', True), ('soir', False), ('nuit', False),
    ]

    fill = Exercise.query.filter_by(type='fill_in_blank').one()
    assert fill.level == 'intermediate'
    assert fill.exercise_metadata['sentence'] == 'Ich ___ nach Hause'
    assert fill.questions == []


def test_missing_language_defaults_to_german(make_video, write_output):
    video = make_video()
    payload = _payload()
    payload['language'] = None
    assert TranscriptionImporter().load(video.id, write_output(payload)).language == 'de'


@pytest.mark.parametrize('raw', ['{not json', '[]', '{"segments": [{"start": "soon", "end": 1}]}'])
def test_malformed_output(make_video, write_output, raw):
    video = make_video()
    with pytest.raises(MalformedOutput):
        TranscriptionImporter().load(video.id, write_output(None, raw=raw))
    assert AudioSegment.query.count() == 0


def test_missing_output_file(make_video, data_dir):
    video = make_video()
    with pytest.raises(MalformedOutput):
        TranscriptionImporter().load(video.id, str(data_dir / 'fr' / 'absent.json'))


def test_unknown_video(app, write_output):
    with pytest.raises(NotFound):
        TranscriptionImporter().load(4242, write_output(PAYLOAD))


def test_overlapping_segments_roll_back(make_video, write_output):
    video = make_video()
    payload = _payload()
    payload['segments'][1]['start'] = 1.0
    with pytest.raises(ImportConstraintError):
        TranscriptionImporter().load(video.id, write_output(payload))
    assert AudioSegment.query.count() == 0
    assert WordSegment.query.count() == 0


def test_word_outside_segment(make_video, write_output):
    video = make_video()
    payload = _payload()
    payload['segments'][0]['words'][1]['end'] = 1.6
    with pytest.raises(ImportConstraintError):
        TranscriptionImporter().load(video.id, write_output(payload))


def test_bad_exercise_rolls_back_everything(make_video, write_output):
    video = make_video()
    payload = _payload()
    payload['vocabulary'][1]['exercises'] = {'type': 'crossword', 'grid': []}
    with pytest.raises(MalformedOutput) as exc:
        TranscriptionImporter().load(video.id, write_output(payload))
    assert exc.value.stage == 'exercises'
    assert AudioSegment.query.count() == 0
    assert WordEntry.query.count() == 0
    assert Exercise.query.count() == 0
    assert ExerciseQuestion.query.count() == 0
    assert Pronunciation.query.count() == 0


def test_bad_pronunciation(make_video, write_output):
    video = make_video()
    payload = _payload()
    payload['vocabulary'][0]['pronunciations'] = [{"file": "x.mp3"}]
    with pytest.raises(MalformedOutput) as exc:
        TranscriptionImporter().load(video.id, write_output(payload))
    assert exc.value.stage == 'pronunciations'
    assert WordEntry.query.count() == 0


def test_reimport_replaces_segments_and_keeps_vocabulary_rows(make_video, write_output):
    video = make_video()
    path = write_output(PAYLOAD)
    TranscriptionImporter().load(video.id, path)
    TranscriptionImporter().load(video.id, path)

    assert AudioSegment.query.filter_by(video_id=video.id).count() == 2
    assert WordSegment.query.count() == 2
    assert Exercise.query.filter_by(video_id=video.id).count() == 2
    assert ExerciseOption.query.count() == 5
    # vocabulary entries are never merged
    assert WordEntry.query.filter_by(word='Morgen').count() == 2


def test_same_file_gives_same_counts_for_fresh_videos(make_video, write_output):
    path = write_output(PAYLOAD)
    first = TranscriptionImporter().load(make_video().id, path)
    second = TranscriptionImporter().load(make_video().id, path)
    assert first.as_dict() == second.as_dict()
    assert AudioSegment.query.count() == 4

"""Shapes of the JSON document the engine writes per audio file."""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

Level = Literal['beginner', 'intermediate', 'advanced']


class WordPayload(BaseModel):
    model_config = ConfigDict(extra='ignore')

    word: str = ''
    start: float
    end: float
    score: float = 0.0


class SegmentPayload(BaseModel):
    model_config = ConfigDict(extra='ignore')

    start: float
    end: float
    text: str = ''
    translation: Optional[str] = None
    words: List[WordPayload] = Field(default_factory=list)


class PronunciationPayload(BaseModel):
    file: str
    type: str
    language: str


class QuestionText(BaseModel):
    de: str
    fr: str


class ExerciseQuestionPayload(BaseModel):
    question: QuestionText
    word_to_translate: str
    correct_answer: str
    options: List[str]


class ExercisePayloadBase(BaseModel):
    model_config = ConfigDict(extra='allow')

    level: Level = 'intermediate'


class MultipleChoicePair(ExercisePayloadBase):
    """The only exercise type decomposed into question/option rows."""
    type: Literal['multiple_choice_pair']
    de_to_fr: Optional[ExerciseQuestionPayload] = None
    fr_to_de: Optional[ExerciseQuestionPayload] = None

    def directions(self):
        return [(name, q) for name, q in (('de_to_fr', self.de_to_fr), ('fr_to_de', self.fr_to_de)) if q is not None]


class OpaquePayload(ExercisePayloadBase):
    """Exercise types kept only as metadata on the Exercise row."""


class Blank(BaseModel):
    word: str
    position: float
    hint: Optional[str] = None


class FillInBlank(OpaquePayload):
    type: Literal['fill_in_blank']
    sentence: str
    blanks: List[Blank]


class SentenceFormation(OpaquePayload):
    type: Literal['sentence_formation']
    words: List[str]
    correctSentence: str
    hint: Optional[str] = None


class ComprehensionQuestion(BaseModel):
    question: str
    correctAnswer: str
    options: List[str]


class ListeningComprehension(OpaquePayload):
    type: Literal['listening_comprehension']
    audioUrl: str
    questions: List[ComprehensionQuestion]


class PhrasePair(BaseModel):
    german: str
    french: str


class PhraseMatching(OpaquePayload):
    type: Literal['phrase_matching']
    pairs: List[PhrasePair]


ExercisePayload = Annotated[
    Union[MultipleChoicePair, FillInBlank, SentenceFormation, ListeningComprehension, PhraseMatching],
    Field(discriminator='type'),
]
exercise_adapter = TypeAdapter(ExercisePayload)


class VocabularyPayload(BaseModel):
    model_config = ConfigDict(extra='ignore')

    word: str
    translations: List[Any] = Field(default_factory=list)
    examples: List[Any] = Field(default_factory=list)
    level: Level = 'intermediate'
    metadata: Optional[Dict[str, Any]] = None
    # validated separately so the error can name the word
    exercises: Optional[Any] = None
    pronunciations: Optional[List[Any]] = None

    @property
    def source_language(self):
        return (self.metadata or {}).get('source_language') or 'de'


class TranscriptionPayload(BaseModel):
    model_config = ConfigDict(extra='ignore')

    language: Optional[str] = None
    segments: List[SegmentPayload] = Field(default_factory=list)
    vocabulary: List[VocabularyPayload] = Field(default_factory=list)

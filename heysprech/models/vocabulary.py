from ..extensions import db
from .base import TimestampMixin, CreatedAtMixin

LANGUAGE_LEVELS = ('beginner', 'intermediate', 'advanced')
QUESTION_DIRECTIONS = ('de_to_fr', 'fr_to_de')


class WordEntry(db.Model, TimestampMixin):
    # no uniqueness on `word`: every import creates its own rows
    __tablename__ = "word_entries"
    id = db.Column(db.Integer, primary_key=True)
    word = db.Column(db.String(255), nullable=False, index=True)
    language = db.Column(db.String(10), nullable=False)
    translations = db.Column(db.JSON, nullable=False, default=list)
    examples = db.Column(db.JSON, nullable=False, default=list)
    level = db.Column(db.String(20), nullable=False, default='intermediate')
    # `metadata` is reserved on declarative models
    word_metadata = db.Column('metadata', db.JSON, nullable=True)

    exercises = db.relationship('Exercise', backref='word', cascade='all, delete-orphan', lazy='select')
    pronunciations = db.relationship('Pronunciation', backref='word', cascade='all, delete-orphan', lazy='select')


class Exercise(db.Model, CreatedAtMixin):
    __tablename__ = "exercises"
    id = db.Column(db.Integer, primary_key=True)
    word_id = db.Column(db.Integer, db.ForeignKey("word_entries.id", ondelete="CASCADE"), nullable=False, index=True)
    video_id = db.Column(db.Integer, db.ForeignKey("videos.id", ondelete="CASCADE"), nullable=True, index=True)
    type = db.Column(db.String(50), nullable=False)
    level = db.Column(db.String(20), nullable=False)
    # full validated payload; the only storage for non multiple-choice types
    exercise_metadata = db.Column('metadata', db.JSON, nullable=True)

    questions = db.relationship(
        'ExerciseQuestion', backref='exercise', cascade='all, delete-orphan',
        order_by='ExerciseQuestion.id', lazy='select',
    )


class ExerciseQuestion(db.Model):
    __tablename__ = "exercise_questions"
    id = db.Column(db.Integer, primary_key=True)
    exercise_id = db.Column(db.Integer, db.ForeignKey("exercises.id", ondelete="CASCADE"), nullable=False, index=True)
    direction = db.Column(db.String(20), nullable=False)  # de_to_fr / fr_to_de
    question_de = db.Column(db.Text, nullable=False)
    question_fr = db.Column(db.Text, nullable=False)
    word_to_translate = db.Column(db.String(255), nullable=False)
    correct_answer = db.Column(db.String(255), nullable=False)

    options = db.relationship(
        'ExerciseOption', backref='question', cascade='all, delete-orphan',
        order_by='ExerciseOption.id', lazy='select',
    )


class ExerciseOption(db.Model, CreatedAtMixin):
    __tablename__ = "exercise_options"
    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(
        db.Integer, db.ForeignKey("exercise_questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    option_text = db.Column(db.String(255), nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False, default=False)


class Pronunciation(db.Model, CreatedAtMixin):
    __tablename__ = "pronunciations"
    id = db.Column(db.Integer, primary_key=True)
    word_id = db.Column(db.Integer, db.ForeignKey("word_entries.id", ondelete="CASCADE"), nullable=False, index=True)
    file_path = db.Column(db.String(1000), nullable=False)
    type = db.Column(db.String(50), nullable=False)
    language = db.Column(db.String(10), nullable=False)

"""videos, processing logs, segments and vocabulary

Revision ID: 0001_initial
Revises: None
Create Date: 2026-10-17 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated=True):
    cols = [sa.Column("created_at", sa.DateTime, server_default=sa.func.now())]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()))
    return cols


def upgrade():
    bind = op.get_bind()
    existing = set(sa.inspect(bind).get_table_names())

    if "videos" not in existing:
        op.create_table(
            "videos",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("title", sa.String(500), nullable=False),
            sa.Column("original_filename", sa.String(500), nullable=False),
            sa.Column("file_path", sa.String(1000), nullable=False),
            sa.Column("file_size", sa.Integer),
            sa.Column("duration", sa.Integer),
            sa.Column("language", sa.String(10), nullable=False, server_default="de"),
            sa.Column("transcription_status", sa.String(20), nullable=False, server_default="pending"),
            sa.Column("queue_job_id", sa.String(255)),
            sa.Column("error_message", sa.Text),
            sa.Column("temp_info_file", sa.String(1000)),
            sa.Column("transcription_file", sa.String(1000)),
            sa.Column("processed_at", sa.DateTime),
            *_timestamps(),
        )

    if "processing_logs" not in existing:
        op.create_table(
            "processing_logs",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("video_id", sa.Integer, sa.ForeignKey("videos.id", ondelete="CASCADE"), nullable=False),
            sa.Column("step", sa.String(100), nullable=False),
            sa.Column("status", sa.String(20), nullable=False),
            sa.Column("message", sa.Text),
            *_timestamps(updated=False),
        )
        op.create_index("ix_processing_logs_video_id", "processing_logs", ["video_id"])

    if "audio_segments" not in existing:
        op.create_table(
            "audio_segments",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("video_id", sa.Integer, sa.ForeignKey("videos.id", ondelete="CASCADE"), nullable=False),
            sa.Column("start_time", sa.Integer, nullable=False),
            sa.Column("end_time", sa.Integer, nullable=False),
            sa.Column("text", sa.Text, nullable=False),
            sa.Column("language", sa.String(10), nullable=False),
            sa.Column("translation", sa.Text),
            *_timestamps(updated=False),
            sa.CheckConstraint("start_time < end_time", name="ck_audio_segments_time_order"),
        )
        op.create_index("ix_audio_segments_video_id", "audio_segments", ["video_id"])

    if "word_segments" not in existing:
        op.create_table(
            "word_segments",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column(
                "audio_segment_id", sa.Integer,
                sa.ForeignKey("audio_segments.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column("word", sa.String(255), nullable=False),
            sa.Column("start_time", sa.Integer, nullable=False),
            sa.Column("end_time", sa.Integer, nullable=False),
            sa.Column("confidence_score", sa.Integer, nullable=False),
            sa.Column("position_in_segment", sa.Integer, nullable=False),
            sa.CheckConstraint("start_time < end_time", name="ck_word_segments_time_order"),
        )
        op.create_index("ix_word_segments_audio_segment_id", "word_segments", ["audio_segment_id"])

    if "word_entries" not in existing:
        op.create_table(
            "word_entries",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("word", sa.String(255), nullable=False),
            sa.Column("language", sa.String(10), nullable=False),
            sa.Column("translations", sa.JSON, nullable=False),
            sa.Column("examples", sa.JSON, nullable=False),
            sa.Column("level", sa.String(20), nullable=False, server_default="intermediate"),
            sa.Column("metadata", sa.JSON),
            *_timestamps(),
        )
        op.create_index("ix_word_entries_word", "word_entries", ["word"])

    if "exercises" not in existing:
        op.create_table(
            "exercises",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("word_id", sa.Integer, sa.ForeignKey("word_entries.id", ondelete="CASCADE"), nullable=False),
            sa.Column("video_id", sa.Integer, sa.ForeignKey("videos.id", ondelete="CASCADE"), nullable=True),
            sa.Column("type", sa.String(50), nullable=False),
            sa.Column("level", sa.String(20), nullable=False),
            sa.Column("metadata", sa.JSON),
            *_timestamps(updated=False),
        )
        op.create_index("ix_exercises_word_id", "exercises", ["word_id"])
        op.create_index("ix_exercises_video_id", "exercises", ["video_id"])

    if "exercise_questions" not in existing:
        op.create_table(
            "exercise_questions",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("exercise_id", sa.Integer, sa.ForeignKey("exercises.id", ondelete="CASCADE"), nullable=False),
            sa.Column("direction", sa.String(20), nullable=False),
            sa.Column("question_de", sa.Text, nullable=False),
            sa.Column("question_fr", sa.Text, nullable=False),
            sa.Column("word_to_translate", sa.String(255), nullable=False),
            sa.Column("correct_answer", sa.String(255), nullable=False),
        )
        op.create_index("ix_exercise_questions_exercise_id", "exercise_questions", ["exercise_id"])

    if "exercise_options" not in existing:
        op.create_table(
            "exercise_options",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column(
                "question_id", sa.Integer,
                sa.ForeignKey("exercise_questions.id", ondelete="CASCADE"), nullable=False,
            ),
            sa.Column("option_text", sa.String(255), nullable=False),
            sa.Column("is_correct", sa.Boolean, nullable=False, server_default=sa.false()),
            *_timestamps(updated=False),
        )
        op.create_index("ix_exercise_options_question_id", "exercise_options", ["question_id"])

    if "pronunciations" not in existing:
        op.create_table(
            "pronunciations",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("word_id", sa.Integer, sa.ForeignKey("word_entries.id", ondelete="CASCADE"), nullable=False),
            sa.Column("file_path", sa.String(1000), nullable=False),
            sa.Column("type", sa.String(50), nullable=False),
            sa.Column("language", sa.String(10), nullable=False),
            *_timestamps(updated=False),
        )
        op.create_index("ix_pronunciations_word_id", "pronunciations", ["word_id"])


def downgrade():
    existing = set(sa.inspect(op.get_bind()).get_table_names())
    # children first
    for name in (
        "pronunciations", "exercise_options", "exercise_questions", "exercises",
        "word_entries", "word_segments", "audio_segments", "processing_logs", "videos",
    ):
        if name in existing:
            op.drop_table(name)

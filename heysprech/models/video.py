from ..extensions import db
from .base import TimestampMixin, CreatedAtMixin

TRANSCRIPTION_STATUSES = ('pending', 'processing', 'completed', 'failed')
STEP_STATUSES = ('started', 'completed', 'failed')


class Video(db.Model, TimestampMixin):
    __tablename__ = "videos"
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(500), nullable=False)
    original_filename = db.Column(db.String(500), nullable=False)
    file_path = db.Column(db.String(1000), nullable=False)
    file_size = db.Column(db.Integer)
    duration = db.Column(db.Integer)
    language = db.Column(db.String(10), nullable=False, default='de')
    # pending -> processing -> completed | failed
    transcription_status = db.Column(db.String(20), nullable=False, default='pending')
    queue_job_id = db.Column(db.String(255))
    error_message = db.Column(db.Text, nullable=True)
    temp_info_file = db.Column(db.String(1000))
    transcription_file = db.Column(db.String(1000))
    processed_at = db.Column(db.DateTime)

    segments = db.relationship(
        'AudioSegment', backref='video', cascade='all, delete-orphan',
        order_by='AudioSegment.start_time', lazy='select',
    )
    logs = db.relationship(
        'ProcessingLog', backref='video', cascade='all, delete-orphan',
        order_by='ProcessingLog.id', lazy='select',
    )
    exercises = db.relationship('Exercise', backref='video', cascade='all, delete-orphan', lazy='select')

    def __repr__(self) -> str:
        return f"<Video id={self.id} status={self.transcription_status}>"


class ProcessingLog(db.Model, CreatedAtMixin):
    """Append-only audit row, one per pipeline stage transition."""
    __tablename__ = "processing_logs"
    id = db.Column(db.Integer, primary_key=True)
    video_id = db.Column(db.Integer, db.ForeignKey("videos.id", ondelete="CASCADE"), nullable=False, index=True)
    step = db.Column(db.String(100), nullable=False)
    status = db.Column(db.String(20), nullable=False)  # started/completed/failed
    message = db.Column(db.Text)

    def __repr__(self) -> str:
        return f"<ProcessingLog video_id={self.video_id} {self.step}:{self.status}>"


class AudioSegment(db.Model, CreatedAtMixin):
    __tablename__ = "audio_segments"
    id = db.Column(db.Integer, primary_key=True)
    video_id = db.Column(db.Integer, db.ForeignKey("videos.id", ondelete="CASCADE"), nullable=False, index=True)
    # milliseconds
    start_time = db.Column(db.Integer, nullable=False)
    end_time = db.Column(db.Integer, nullable=False)
    text = db.Column(db.Text, nullable=False)
    language = db.Column(db.String(10), nullable=False)
    translation = db.Column(db.Text)

    words = db.relationship(
        'WordSegment', backref='segment', cascade='all, delete-orphan',
        order_by='WordSegment.position_in_segment', lazy='select',
    )

    __table_args__ = (
        db.CheckConstraint('start_time < end_time', name='ck_audio_segments_time_order'),
    )


class WordSegment(db.Model):
    __tablename__ = "word_segments"
    id = db.Column(db.Integer, primary_key=True)
    audio_segment_id = db.Column(
        db.Integer, db.ForeignKey("audio_segments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    word = db.Column(db.String(255), nullable=False)
    start_time = db.Column(db.Integer, nullable=False)
    end_time = db.Column(db.Integer, nullable=False)
    # floor(score * 1000)
    confidence_score = db.Column(db.Integer, nullable=False)
    # 1-based, dense per segment
    position_in_segment = db.Column(db.Integer, nullable=False)

    __table_args__ = (
        db.CheckConstraint('start_time < end_time', name='ck_word_segments_time_order'),
    )

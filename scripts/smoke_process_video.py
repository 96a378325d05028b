"""Run the pipeline synchronously (without RQ) for one audio file.

Usage:
  python scripts/smoke_process_video.py <path-to-audio> [source_lang] [target_lang]
"""

import os
import sys

# ensure project root is on sys.path so `import heysprech` works when running this script
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from heysprech import create_app
from heysprech.extensions import db
from heysprech.jobs.transcribe import process_video
from heysprech.models import ProcessingLog, Video

# The file must be in DATA_DIR/uploads or DATA_DIR/audios and the engine
# runtime (ENGINE_COMMAND) must be installed.

if len(sys.argv) < 2:
    print(__doc__)
    sys.exit(2)

audio = sys.argv[1]
source = sys.argv[2] if len(sys.argv) > 2 else 'de'
target = sys.argv[3] if len(sys.argv) > 3 else 'fr'

app = create_app()
with app.app_context():
    db.create_all()
    video = Video(
        title=os.path.basename(audio),
        original_filename=os.path.basename(audio),
        file_path=audio,
        language=source,
    )
    db.session.add(video)
    db.session.commit()
    print('created video', video.id)

    try:
        stats = process_video(video.id, audio, source, target)
        print('stats:', stats)
    except Exception as e:
        print('pipeline failed:', e)

    db.session.refresh(video)
    print('status:', video.transcription_status, video.error_message or '')
    for log in ProcessingLog.query.filter_by(video_id=video.id).order_by(ProcessingLog.id):
        print(f"  {log.step:16} {log.status:10} {log.message or ''}")

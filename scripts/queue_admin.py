"""Inspect and maintain the processing queue.

Usage:
  python scripts/queue_admin.py status
  python scripts/queue_admin.py metrics
  python scripts/queue_admin.py job <job_id>
  python scripts/queue_admin.py stalled
  python scripts/queue_admin.py retry-failed
  python scripts/queue_admin.py retry-video <video_id>
  python scripts/queue_admin.py clean [max_age_seconds]
  python scripts/queue_admin.py pause | resume
"""

import json
import os
import sys

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from heysprech import create_app
from heysprech.extensions import processing
from heysprech.services import videos


def _print(value):
    print(json.dumps(value, indent=2, default=str, ensure_ascii=False))


def main(argv):
    if not argv:
        print(__doc__)
        return 2
    cmd, args = argv[0], argv[1:]

    app = create_app()
    with app.app_context():
        queue = processing.queue
        if cmd == 'status':
            _print(dict(queue.status(), paused=queue.is_paused()))
        elif cmd == 'metrics':
            _print(queue.metrics())
        elif cmd == 'job' and args:
            details = queue.job_details(args[0])
            if details is None:
                print('job not found:', args[0])
                return 1
            _print(details)
        elif cmd == 'stalled':
            _print(queue.detect_stalled())
        elif cmd == 'retry-failed':
            print('requeued', queue.retry_failed_jobs(), 'job(s)')
        elif cmd == 'retry-video' and args:
            job = videos.retry_processing(int(args[0]))
            print('queued job', job.id)
        elif cmd == 'clean':
            max_age = int(args[0]) if args else None
            print('removed', videos.clean_queue(max_age), 'job(s)')
        elif cmd == 'pause':
            queue.pause()
        elif cmd == 'resume':
            queue.resume()
        else:
            print(__doc__)
            return 2
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv[1:]))

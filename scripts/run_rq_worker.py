"""Start the processing queue workers inside the Flask app context.

Usage:
  source .venv/bin/activate
  export OBJC_DISABLE_INITIALIZE_FORK_SAFETY=YES   # macOS fork safety if needed
  python scripts/run_rq_worker.py            # QUEUE_CONCURRENCY worker processes
  python scripts/run_rq_worker.py --single   # one worker in this process

The engine runtime is checked first; if it is missing the script exits
with status 1 instead of starting workers that could only fail.
"""

import sys
import os

# Ensure project root is on sys.path when running from scripts/ or other cwd
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from heysprech import create_app
from heysprech.errors import EngineUnavailable, InfrastructureError
from heysprech.extensions import processing
from rq import Worker


def main():
    app = create_app()
    with app.app_context():
        queue = processing.queue
        if '--single' in sys.argv[1:]:
            queue.prepare_directories()
            worker = Worker([queue.queue], connection=queue.connection)
            print('RQ worker starting (pid', os.getpid(), ')')
            try:
                worker.work(burst=False, with_scheduler=True, logging_level=app.config.get('LOG_LEVEL', 'INFO'))
            finally:
                print('RQ worker exiting (pid', os.getpid(), ')')
            return 0

        try:
            pids = queue.start(logging_level=app.config.get('LOG_LEVEL', 'INFO'))
        except (EngineUnavailable, InfrastructureError) as e:
            app.logger.error('Cannot start processing queue: %s', e)
            return 1
        print('RQ workers started (pids', pids, ')')
        try:
            queue.join()
        except KeyboardInterrupt:
            queue.close()
        finally:
            print('RQ workers exiting')
    return 0


if __name__ == '__main__':
    sys.exit(main())

import os, sqlite3, sys

DBS = [
    os.path.join(os.getcwd(), 'heysprech.db'),
    os.path.join(os.getcwd(), 'instance', 'heysprech.db'),
]

def inspect(db, video_id=None):
    print(f"\n=== {db} ===")
    if not os.path.exists(db):
        print("missing")
        return
    conn = sqlite3.connect(db)
    cur = conn.cursor()
    def q(sql, params=()):
        cur.execute(sql, params)
        return cur.fetchall()
    try:
        print('videos:', q('select id,transcription_status,queue_job_id,coalesce(error_message,"") from videos order by id'))
        print('segments per video:', q('select video_id,count(*) from audio_segments group by video_id order by video_id'))
        print('word entries:', q('select count(*) from word_entries'))
        if video_id is not None:
            print(f'logs for video {video_id}:', q(
                'select step,status,coalesce(message,"") from processing_logs where video_id=? order by id', (video_id,)
            ))
    except Exception as e:
        print('error:', e)
    finally:
        conn.close()

if __name__ == '__main__':
    vid = int(sys.argv[1]) if len(sys.argv) > 1 else None
    for db in DBS:
        inspect(db, vid)
    print('\nDone.')

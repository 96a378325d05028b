"""Stand-in for the engine container, invoked as ENGINE_COMMAND in tests.

Understands ``--version``, ``kill <name>`` and the ``run --rm --volume host:container[:mode]
... image /app/audios/<file> --source-lang xx --target-lang yy`` form. The
audio file name selects the behaviour:

  *fail*      exit 3 with a message on stderr
  *slow*      sleep long enough to hit the engine timeout
  *nooutput*  exit 0 without writing the output file
  *garbage*   write a file that is not JSON
  *hang*      keep a long-lived child (the "container") and relay SIGTERM
              to it, like the runtime client's signal proxy
  *stuck*     same child, but SIGTERM is ignored; only `kill <name>` stops it
otherwise the output is ``<audios>/<stem>.payload.json`` when present, or a
small default document.
"""

import json
import os
import signal
import subprocess
import sys
import tempfile
import time

DEFAULT_PAYLOAD = {
    "language": "de",
    "segments": [
        {
            "start": 0.0,
            "end": 1.5,
            "text": "Guten Morgen",
            "translation": "Bonjour",
            "words": [
                {"word": "Guten", "start": 0.0, "end": 0.6, "score": 0.98},
                {"word": "Morgen", "start": 0.7, "end": 1.4, "score": 0.91},
            ],
        },
        {
            "start": 1.5,
            "end": 3.0,
            "text": "Wie geht's?",
            "translation": "Comment ça va ?",
            "words": [],
        },
    ],
    "vocabulary": [
        {
            "word": "Morgen",
            "translations": ["matin"],
            "examples": ["Guten Morgen!"],
            "level": "beginner",
            "metadata": {"source_language": "de"},
            "exercises": {
                "type": "multiple_choice_pair",
                "level": "beginner",
                "de_to_fr": {
                    "question": {"de": "Was bedeutet 'Morgen'?", "fr": "Que signifie 'Morgen' ?"},
                    "word_to_translate": "Morgen",
                    "correct_answer": "matin",
                    "options": ["matin", "soir", "nuit", "midi"],
                },
                "fr_to_de": {
                    "question": {"de": "Wie sagt man 'matin'?", "fr": "Comment dit-on 'matin' ?"},
                    "word_to_translate": "matin",
                    "correct_answer": "Morgen",
                    "options": ["Morgen", "Abend", "Nacht", "Mittag"],
                },
            },
            "pronunciations": [
                {"file": "pronunciations/morgen.mp3", "type": "word", "language": "de"},
            ],
        },
        {
            "word": "gehen",
            "translations": ["aller"],
            "examples": [],
            "level": "intermediate",
        },
    ],
}


def parse(argv):
    volumes = {}
    positional = []
    opts = {}
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg == '--volume':
            host, container = argv[i + 1].split(':')[:2]
            volumes[container] = host
            i += 2
        elif arg in ('--source-lang', '--target-lang', '--name'):
            opts[arg] = argv[i + 1]
            i += 2
        elif arg.startswith('--'):
            i += 1
        else:
            positional.append(arg)
            i += 1
    return volumes, positional, opts


def _registry(container_name):
    return os.path.join(tempfile.gettempdir(), f"{container_name}.pid")


def kill(container_name):
    try:
        with open(_registry(container_name)) as f:
            pid = int(f.read())
    except FileNotFoundError:
        print(f"Error: No such container: {container_name}", file=sys.stderr)
        return 1
    try:
        os.kill(pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    os.remove(_registry(container_name))
    print(container_name)
    return 0


def sandbox(stem, container_name, data_host):
    child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)'])
    if 'stuck' in stem:
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
    else:
        signal.signal(signal.SIGTERM, lambda signum, frame: child.send_signal(signum))
    pid_files = [os.path.join(data_host, 'temp', f"{stem}.child.pid")]
    if container_name:
        pid_files.append(_registry(container_name))
    for path in pid_files:
        with open(path, 'w') as f:
            f.write(str(child.pid))
    print('Transcribing...', flush=True)
    child.wait()
    return 128 + signal.SIGTERM


def main(argv):
    if argv[:1] == ['--version']:
        print('fake-engine version 1.0')
        return 0
    if argv[:1] == ['kill']:
        return kill(argv[1])

    volumes, positional, opts = parse(argv)
    # positional: run <image> <container audio path>
    container_audio = positional[-1]
    target = opts.get('--target-lang', 'fr')
    audios_host = volumes[os.path.dirname(container_audio)]
    out_host = volumes[f"{os.path.dirname(os.path.dirname(container_audio))}/{target}"]
    name = os.path.basename(container_audio)
    stem = os.path.splitext(name)[0]

    print(f"Processing audio {name}", flush=True)
    if 'fail' in stem:
        print('model crashed: CUDA out of memory', file=sys.stderr, flush=True)
        return 3
    if 'hang' in stem or 'stuck' in stem:
        return sandbox(stem, opts.get('--name'), os.path.dirname(audios_host))
    if 'slow' in stem:
        time.sleep(30)
    print('Transcribing...', flush=True)
    print('Translating...', flush=True)
    if 'nooutput' in stem:
        return 0

    out_path = os.path.join(out_host, f"{stem}.json")
    if 'garbage' in stem:
        with open(out_path, 'w') as f:
            f.write('{not json')
        return 0

    custom = os.path.join(audios_host, f"{stem}.payload.json")
    payload = DEFAULT_PAYLOAD
    if os.path.exists(custom):
        with open(custom) as f:
            payload = json.load(f)
    with open(out_path, 'w', encoding='utf-8') as f:
        json.dump(payload, f, ensure_ascii=False)
    print('Done', flush=True)
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv[1:]))

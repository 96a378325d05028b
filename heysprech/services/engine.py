"""Runs the sandboxed transcription/translation engine for one audio file.

The engine is a container image started through ``ENGINE_COMMAND`` (docker by
default) with the audio folder mounted read-only and one writable output
folder per language. Its stdout drives job progress; its stderr is kept for
the failure message.
"""

import asyncio
import logging
import os
import subprocess
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional

from ..errors import EngineFailed, EngineSpawnError, EngineTimeout, EngineUnavailable
from .storage import audios_dir, output_dir

logger = logging.getLogger(__name__)

STDERR_TAIL = 4000


@dataclass
class EngineResult:
    success: bool
    output_path: Optional[str] = None
    error: Optional[str] = None
    returncode: Optional[int] = None

    def raise_for_failure(self, stage='transcription'):
        if not self.success:
            raise EngineFailed(self.error or 'engine failed', stage=stage, returncode=self.returncode)


def check_engine_available(command: List[str], timeout: int = 30) -> str:
    """``<command> --version``; missing runtime is fatal for the pipeline."""
    try:
        proc = subprocess.run(
            list(command) + ['--version'],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout,
            text=True,
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise EngineUnavailable(
            f"Engine runtime not found: {e}. Please ensure {command[0]} is installed and running."
        ) from e
    if proc.returncode != 0:
        raise EngineUnavailable(f"Engine runtime check failed ({proc.returncode}): {proc.stderr.strip()}")
    version = proc.stdout.strip()
    logger.info('Engine runtime is available: %s', version)
    return version


class EngineInvoker:

    def __init__(self, command, image, data_dir, languages, timeout=600, container_root='/app', slots=None,
                 kill_grace=10):
        self.command = list(command)
        self.image = image
        self.data_dir = os.path.abspath(data_dir)
        self.languages = tuple(languages)
        self.timeout = timeout
        self.container_root = container_root.rstrip('/')
        self.slots = slots
        self.kill_grace = kill_grace

    def build_args(self, audio_path, source_lang, target_lang, name=None):
        root = self.container_root
        args = self.command + ['run', '--rm']
        if name:
            args += ['--name', name]
        args += ['--volume', f"{audios_dir(self.data_dir)}:{root}/audios:ro"]
        for lang in self.languages:
            args += ['--volume', f"{output_dir(self.data_dir, lang)}:{root}/{lang}:rw"]
        args += [
            self.image,
            f"{root}/audios/{os.path.basename(audio_path)}",
            '--source-lang', source_lang,
            '--target-lang', target_lang,
        ]
        return args

    def expected_output(self, audio_path, target_lang):
        stem = os.path.splitext(os.path.basename(audio_path))[0]
        return os.path.join(output_dir(self.data_dir, target_lang), f"{stem}.json")

    def run(self, video_id, audio_path, source_lang='de', target_lang='fr', reporter=None) -> EngineResult:
        """Blocking entrypoint used from RQ jobs.

        Waits for an engine slot when a limiter is configured, then runs the
        subprocess to completion. Spawn failures and timeouts raise; exit
        codes come back as an :class:`EngineResult`.
        """
        name = f"heysprech-{video_id}-{uuid.uuid4().hex[:12]}"
        args = self.build_args(audio_path, source_lang, target_lang, name=name)
        logger.info(
            'Starting engine process for video %s: audio=%s source=%s target=%s',
            video_id, os.path.basename(audio_path), source_lang, target_lang,
        )
        if self.slots is None:
            returncode, stderr = asyncio.run(self._execute(video_id, args, reporter, name))
        else:
            with self.slots.hold(token=f"video:{video_id}:{os.getpid()}"):
                returncode, stderr = asyncio.run(self._execute(video_id, args, reporter, name))
        return self._classify(video_id, returncode, stderr, audio_path, target_lang)

    def _classify(self, video_id, returncode, stderr, audio_path, target_lang):
        tail = stderr[-STDERR_TAIL:].strip()
        if returncode == 0:
            output_path = self.expected_output(audio_path, target_lang)
            if not os.path.isfile(output_path):
                return EngineResult(False, error=f"Engine finished but no output at {output_path}", returncode=0)
            logger.info('Engine finished for video %s: %s', video_id, output_path)
            return EngineResult(True, output_path=output_path, returncode=0)
        if returncode < 0:
            return EngineResult(False, error=f"Engine process killed by signal {-returncode}", returncode=returncode)
        return EngineResult(
            False,
            error=f"Engine process exited with code {returncode}: {tail or 'no stderr output'}",
            returncode=returncode,
        )

    async def _execute(self, video_id, args, reporter, name=None):
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EngineSpawnError(f"Failed to start engine process: {e}", stage='transcription') from e

        stderr_chunks = []
        readers = asyncio.gather(
            self._drain_stdout(video_id, proc.stdout, reporter),
            self._drain_stderr(video_id, proc.stderr, stderr_chunks),
        )
        try:
            returncode = await asyncio.wait_for(proc.wait(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error('Engine process for video %s exceeded %ss, stopping it', video_id, self.timeout)
            await self._stop(video_id, proc, name)
            readers.cancel()
            try:
                await asyncio.wait_for(proc.wait(), timeout=self.kill_grace)
            except asyncio.TimeoutError:
                logger.warning('Engine output pipes for video %s still open after the kill', video_id)
            raise EngineTimeout(f"Engine process timed out after {self.timeout}s", stage='transcription')
        await readers
        return returncode, ''.join(stderr_chunks)

    async def _stop(self, video_id, proc, name):
        """SIGTERM first, which the runtime client relays to the container.

        A client still running after ``kill_grace`` gets ``<command> kill
        <name>`` for its container and SIGKILL for itself.
        """
        _send(proc, 'terminate')
        if await _exited(proc, self.kill_grace):
            return
        logger.warning('Engine process for video %s ignored SIGTERM, killing container %s', video_id, name)
        if name:
            await self._kill_container(name)
        _send(proc, 'kill')
        if not await _exited(proc, self.kill_grace):
            logger.error('Engine process for video %s (pid %s) survived SIGKILL', video_id, proc.pid)

    async def _kill_container(self, name):
        try:
            killer = await asyncio.create_subprocess_exec(
                *self.command, 'kill', name,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.warning('Could not kill engine container %s: %s', name, e)
            return
        if not await _exited(killer, self.kill_grace):
            _send(killer, 'kill')
            logger.warning('Killing engine container %s timed out', name)
        elif killer.returncode != 0:
            logger.warning('Killing engine container %s exited with code %s', name, killer.returncode)

    async def _drain_stdout(self, video_id, stream, reporter):
        async for raw in stream:
            line = raw.decode('utf-8', errors='replace').rstrip()
            if not line:
                continue
            logger.info('[video %s] engine: %s', video_id, line)
            if reporter is not None:
                reporter.feed(line)

    async def _drain_stderr(self, video_id, stream, chunks):
        async for raw in stream:
            text = raw.decode('utf-8', errors='replace')
            chunks.append(text)
            logger.warning('[video %s] engine stderr: %s', video_id, text.rstrip())


def _send(proc, action):
    if proc.returncode is not None:
        return
    try:
        getattr(proc, action)()
    except ProcessLookupError:
        pass


async def _exited(proc, timeout, interval=0.05):
    # returncode is set as soon as the process is reaped; proc.wait() also
    # waits for its pipes, which a surviving descendant can hold open
    deadline = time.monotonic() + timeout
    while proc.returncode is None and time.monotonic() < deadline:
        await asyncio.sleep(interval)
    return proc.returncode is not None

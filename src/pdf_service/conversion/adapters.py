import base64
import hashlib
import hmac
import logging
import os
import signal
import subprocess
import threading
import time
from typing import BinaryIO, Sequence

from .interfaces import RendererGateway, RenderOutcome, SecurityGateway

logger = logging.getLogger(__name__)

_CHUNK = 64 * 1024
_STDERR_TAIL = 4096


class TokenSecurity(SecurityGateway):
    """Checks bearer tokens against a single configured secret.

    The plain token is never kept: it is reduced to an unpadded base64url
    SHA-256 digest. Operators may instead configure an Argon2 PHC string,
    which is verified with argon2-cffi (slower, but the secret never appears
    in the environment).
    """

    def __init__(self, token: str | None = None, token_hash: str | None = None) -> None:
        if token and token_hash:
            raise ValueError("configure either a token or a token hash, not both")
        self._hash = self.hash_token(token) if token else token_hash

    @property
    def enabled(self) -> bool:
        return bool(self._hash)

    @staticmethod
    def hash_token(token: str) -> str:
        digest = hashlib.sha256(token.encode("utf-8")).digest()
        return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")

    def verify(self, token: str) -> bool:
        if not self._hash:
            return True
        if self._hash.startswith("$argon2"):
            from argon2.exceptions import VerificationError
            from argon2.low_level import Type, verify_secret

            try:
                return verify_secret(self._hash.encode("utf-8"), token.encode("utf-8"), Type.ID)
            except VerificationError:
                return False
        return hmac.compare_digest(self.hash_token(token), self._hash)


class SubprocessRenderer(RendererGateway):
    """Runs an external renderer that reads stdin and writes stdout.

    stdin is fed from the source in a separate thread while stdout is
    collected in memory, up to ``max_output`` bytes (0 = no cap). The process
    is reaped with ``os.wait4`` so its resource usage can be reported.
    """

    def __init__(self, command: Sequence[str], *, max_output: int = 0, poll_interval: float = 0.01) -> None:
        if not command:
            raise ValueError("renderer command must not be empty")
        self._command = list(command)
        self._max_output = max_output
        self._poll_interval = poll_interval

    @property
    def command(self) -> list[str]:
        return list(self._command)

    def render(
        self,
        source: BinaryIO,
        *,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> RenderOutcome:
        cancel = cancel or threading.Event()
        outcome = RenderOutcome()
        started = time.monotonic()
        try:
            proc = subprocess.Popen(
                self._command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            outcome.spawn_error = e
            return outcome
        outcome.pid = proc.pid

        stdout = bytearray()
        stderr = bytearray()
        overflow = threading.Event()

        def feed() -> None:
            try:
                while chunk := source.read(_CHUNK):
                    proc.stdin.write(chunk)
            except (BrokenPipeError, ConnectionResetError):
                pass  # renderer exited early; its exit status tells the story
            except OSError as e:
                outcome.input_error = e
            finally:
                try:
                    proc.stdin.close()
                except OSError:
                    pass

        def collect_stdout() -> None:
            while chunk := proc.stdout.read1(_CHUNK):
                if self._max_output and len(stdout) + len(chunk) > self._max_output:
                    overflow.set()
                    cancel.set()
                    return
                stdout.extend(chunk)

        def collect_stderr() -> None:
            while chunk := proc.stderr.read1(_CHUNK):
                stderr.extend(chunk)
                del stderr[:-_STDERR_TAIL]

        threads = [
            threading.Thread(target=feed, name=f"render-{proc.pid}-stdin", daemon=True),
            threading.Thread(target=collect_stdout, name=f"render-{proc.pid}-stdout", daemon=True),
            threading.Thread(target=collect_stderr, name=f"render-{proc.pid}-stderr", daemon=True),
        ]
        for t in threads:
            t.start()

        status, rusage = self._wait(proc, outcome, started, timeout, cancel, overflow)
        outcome.wall_time = time.monotonic() - started
        outcome.wait_status = status
        outcome.rusage = rusage
        # Popen must not try to reap the pid again
        proc.returncode = os.waitstatus_to_exitcode(status)

        for t in threads:
            t.join()
        # the renderer may have exited on its own after overflowing
        if overflow.is_set() and not outcome.killed:
            outcome.killed = "output_limit"
        for pipe in (proc.stdout, proc.stderr):
            pipe.close()
        outcome.output = bytes(stdout)
        outcome.stderr_tail = bytes(stderr)
        return outcome

    def _wait(self, proc, outcome, started, timeout, cancel, overflow):
        deadline = started + timeout if timeout is not None else None
        while True:
            pid, status, rusage = os.wait4(proc.pid, os.WNOHANG)
            if pid:
                return status, rusage
            if overflow.is_set():
                outcome.killed = "output_limit"
            elif cancel.is_set():
                outcome.killed = "cancelled"
            elif deadline is not None and time.monotonic() >= deadline:
                outcome.killed = "deadline"
            if outcome.killed:
                logger.debug("Killing renderer pid %s (%s)", proc.pid, outcome.killed)
                # Popen.kill() polls first and could reap the pid behind our back
                os.kill(proc.pid, signal.SIGKILL)
                _, status, rusage = os.wait4(proc.pid, 0)
                return status, rusage
            cancel.wait(self._poll_interval)

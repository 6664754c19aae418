import sys

import pytest
from fastapi.testclient import TestClient

from pdf_service.config import Settings
from pdf_service.conversion import SubprocessRenderer
from pdf_service.spooling import SpoolPolicy
from pdf_service.webapi import create_app

PDF_MAGIC = b"%PDF-1.4\n"


def py(script: str) -> list[str]:
    return [sys.executable, "-c", script]


# Stand-ins for wkhtmltopdf: same stdin/stdout contract, no rendering.
ECHO = py("import sys; data = sys.stdin.buffer.read(); sys.stdout.buffer.write(b'%PDF-1.4\\n' + data)")
SLEEP = py("import sys, time; sys.stdin.buffer.read(); time.sleep(30)")
FAIL = py("import sys; sys.stdin.buffer.read(); sys.stderr.write('boom'); sys.exit(3)")
FLOOD = py("import sys; sys.stdout.buffer.write(b'x' * (1 << 20))")


class RecordingRenderer(SubprocessRenderer):
    def __init__(self, command, **kwargs):
        super().__init__(command, **kwargs)
        self.outcomes = []

    def render(self, source, *, timeout=None, cancel=None):
        outcome = super().render(source, timeout=timeout, cancel=cancel)
        self.outcomes.append(outcome)
        return outcome


@pytest.fixture
def make_client():
    """Build a TestClient around a freshly configured app."""

    def _make(command=ECHO, *, spool: SpoolPolicy | None = None, **overrides):
        renderer = RecordingRenderer(command)
        settings = Settings(spool=spool or SpoolPolicy(), **overrides)
        app = create_app(settings, renderer=renderer)
        client = TestClient(app, raise_server_exceptions=False)
        client.renderer = renderer
        return client

    return _make

import pytest
import requests

from pdf_service.client import ConversionRequestError, convert_html


class FakeResponse:
    def __init__(self, status_code, content=b"", text=""):
        self.status_code = status_code
        self.content = content
        self.text = text


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append((url, data, headers))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def test_posts_html_and_returns_pdf():
    session = FakeSession(FakeResponse(200, content=b"%PDF"))
    pdf = convert_html("<p>café</p>", api_base="http://pdf:8080/", token="secret", session=session)
    assert pdf == b"%PDF"
    url, data, headers = session.calls[0]
    assert url == "http://pdf:8080/"
    assert data == "<p>café</p>".encode("utf-8")
    assert headers["Content-Type"] == "text/html; charset=utf-8"
    assert headers["Authorization"] == "Bearer secret"


def test_retries_when_unavailable():
    session = FakeSession(FakeResponse(503, text="busy"), FakeResponse(200, content=b"%PDF"))
    assert convert_html(b"<p/>", session=session, backoff=0) == b"%PDF"
    assert len(session.calls) == 2


def test_gives_up_after_max_attempts():
    session = FakeSession(*[FakeResponse(503, text="busy")] * 3)
    with pytest.raises(ConversionRequestError) as excinfo:
        convert_html(b"<p/>", session=session, backoff=0, max_attempts=3)
    assert excinfo.value.status_code == 503


def test_other_errors_not_retried():
    session = FakeSession(FakeResponse(504, text="timeout"), FakeResponse(200))
    with pytest.raises(ConversionRequestError) as excinfo:
        convert_html(b"<p/>", session=session, backoff=0)
    assert excinfo.value.status_code == 504
    assert len(session.calls) == 1


def test_network_error():
    session = FakeSession(requests.ConnectionError("refused"))
    with pytest.raises(ConversionRequestError) as excinfo:
        convert_html(b"<p/>", session=session)
    assert excinfo.value.status_code is None

import time

import requests


class ConversionRequestError(Exception):
    def __init__(self, status_code: int | None, message: str) -> None:
        super().__init__(f"{status_code}: {message}" if status_code else message)
        self.status_code = status_code
        self.message = message


def convert_html(
    html: bytes | str,
    *,
    api_base: str = "http://localhost:8080",
    token: str | None = None,
    charset: str = "utf-8",
    timeout: float = 60,
    max_attempts: int = 5,
    backoff: float = 0.5,
    session: requests.Session | None = None,
) -> bytes:
    """POST an HTML document to the service and return the PDF bytes.

    503 means the server had no room to spool the upload; that one is retried
    with backoff. Everything else raises ``ConversionRequestError``.
    """
    if isinstance(html, str):
        html = html.encode(charset)
    headers = {"Content-Type": f"text/html; charset={charset}"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    http = session or requests
    url = f"{api_base.rstrip('/')}/"

    last_text = ""
    for attempt in range(1, max_attempts + 1):
        try:
            resp = http.post(url, data=html, headers=headers, timeout=timeout)
        except requests.RequestException as e:
            raise ConversionRequestError(None, f"request failed: {e}") from e
        if resp.status_code == 200:
            return resp.content
        last_text = resp.text
        if resp.status_code == 503 and attempt < max_attempts:
            time.sleep(backoff)
            backoff *= 1.5
            continue
        raise ConversionRequestError(resp.status_code, last_text)
    raise ConversionRequestError(503, f"still unavailable after {max_attempts} attempts: {last_text}")

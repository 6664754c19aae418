"""Normalize HTML request bodies to UTF-8 for the renderer.

The encoding comes from the Content-Type ``charset`` parameter when present,
otherwise from a byte order mark or a ``<meta>`` declaration near the start of
the document, and defaults to UTF-8.
"""

import codecs
import io
import re
from typing import BinaryIO

PRESCAN_SIZE = 1024
_CHUNK = 64 * 1024

_BOMS = (
    (codecs.BOM_UTF8, "utf-8"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
)
_META_CHARSET = re.compile(rb"""<meta[^>]+charset\s*=\s*["']?\s*([A-Za-z0-9._:-]+)""", re.IGNORECASE)


class UnsupportedCharset(LookupError):
    pass


def media_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


def charset_param(content_type: str) -> str | None:
    for param in content_type.split(";")[1:]:
        name, _, value = param.partition("=")
        if name.strip().lower() == "charset":
            return value.strip().strip('"').strip("'") or None
    return None


def lookup(label: str) -> str:
    """Canonical codec name for a charset label; raises UnsupportedCharset."""
    try:
        info = codecs.lookup(label)
    except LookupError:
        raise UnsupportedCharset(label) from None
    # rot13, base64 and friends are codecs too, but not text encodings
    if not getattr(info, "_is_text_encoding", True):
        raise UnsupportedCharset(label)
    return info.name


def sniff(head: bytes) -> str | None:
    for bom, name in _BOMS:
        if head.startswith(bom):
            return name
    match = _META_CHARSET.search(head)
    if match:
        label = match.group(1).decode("ascii")
        # a <meta> readable as ASCII means the document is not UTF-16
        if label.lower().replace("-", "").replace("_", "").startswith("utf16"):
            return "utf-8"
        return label
    return None


class Utf8Reader(io.RawIOBase):
    """Incrementally transcodes a byte stream to UTF-8.

    Undecodable sequences become U+FFFD rather than failing the request.
    """

    def __init__(self, source: BinaryIO, encoding: str) -> None:
        self._source = source
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = b""
        self._eof = False

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        while not self._pending and not self._eof:
            chunk = self._source.read(_CHUNK)
            if not chunk:
                self._eof = True
                self._pending = self._decoder.decode(b"", final=True).encode("utf-8")
            else:
                self._pending = self._decoder.decode(chunk).encode("utf-8")
        n = min(len(buffer), len(self._pending))
        buffer[:n] = self._pending[:n]
        self._pending = self._pending[n:]
        return n


def utf8_reader(source: BinaryIO, content_type: str) -> BinaryIO:
    """Wrap ``source`` so it yields UTF-8.

    ``source`` must be seekable when no charset is declared, since the
    document head is sniffed and then rewound. UTF-8 bodies are returned
    as-is.
    """
    label = charset_param(content_type)
    if label is None:
        start = source.tell()
        head = source.read(PRESCAN_SIZE)
        source.seek(start)
        label = sniff(head) or "utf-8"
        try:
            encoding = lookup(label)
        except UnsupportedCharset:
            # a bogus <meta> is not the client's declared intent
            encoding = "utf-8"
    else:
        encoding = lookup(label)
    if encoding == "utf-8":
        return source
    return io.BufferedReader(Utf8Reader(source, encoding))

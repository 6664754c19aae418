import os
from dataclasses import dataclass, field

from .spooling.store import SpoolPolicy

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, read once at startup."""

    host: str = "0.0.0.0"
    port: int = 8080
    reload: bool = False
    convert_timeout: float = 5.0
    convert_procs: int = 3
    token: str | None = None
    token_hash: str | None = None
    quiet: bool = False
    log_level: str = "INFO"
    max_output_size: int = 64 * 1024 * 1024
    renderer_binary: str = "wkhtmltopdf"
    spool: SpoolPolicy = field(default_factory=SpoolPolicy)

    def __post_init__(self) -> None:
        if self.convert_procs < 1:
            object.__setattr__(self, "convert_procs", 1)

    @property
    def renderer_command(self) -> list[str]:
        return [
            self.renderer_binary,
            "--disable-javascript",
            "--disable-local-file-access",
            "--encoding", "utf8",
            "-q", "-", "-",
        ]

    @classmethod
    def from_env(cls) -> "Settings":
        spool = SpoolPolicy(
            max_body_size=int(os.getenv("MAX_BODY_BYTES", str(1 << 20))),
            memory_threshold=int(os.getenv("MEMORY_BUFFER_BYTES", str(32 * 1024))),
            spool_dir=os.getenv("SPOOL_DIR") or None,
            max_spool_files=int(os.getenv("MAX_SPOOL_FILES", "0")),
            spool_wait=float(os.getenv("SPOOL_WAIT_SEC", "0")),
        )
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8080")),
            reload=_flag("RELOAD"),
            convert_timeout=float(os.getenv("CONVERT_TIMEOUT_SEC", "5")),
            convert_procs=int(os.getenv("CONVERT_PROCS", "3")),
            token=os.getenv("TOKEN") or None,
            token_hash=os.getenv("TOKEN_HASH") or None,
            quiet=_flag("QUIET"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            max_output_size=int(os.getenv("MAX_OUTPUT_MB", "64")) * 1024 * 1024,
            renderer_binary=os.getenv("WKHTMLTOPDF", "wkhtmltopdf"),
            spool=spool,
        )

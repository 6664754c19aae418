from pdf_service.config import Settings


def test_defaults(monkeypatch):
    for name in ("CONVERT_PROCS", "CONVERT_TIMEOUT_SEC", "MAX_BODY_BYTES", "TOKEN", "QUIET", "SPOOL_DIR"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings.from_env()
    assert settings.convert_procs == 3
    assert settings.convert_timeout == 5
    assert settings.token is None
    assert not settings.quiet
    assert settings.spool.max_body_size == 1 << 20
    assert settings.spool.memory_threshold == 32 * 1024
    assert settings.spool.spool_dir is None


def test_from_env(monkeypatch):
    monkeypatch.setenv("CONVERT_PROCS", "0")
    monkeypatch.setenv("CONVERT_TIMEOUT_SEC", "2.5")
    monkeypatch.setenv("TOKEN", "secret")
    monkeypatch.setenv("QUIET", "yes")
    monkeypatch.setenv("MAX_SPOOL_FILES", "8")
    monkeypatch.setenv("SPOOL_WAIT_SEC", "1.5")
    monkeypatch.setenv("WKHTMLTOPDF", "/opt/bin/wkhtmltopdf")
    settings = Settings.from_env()
    assert settings.convert_procs == 1
    assert settings.convert_timeout == 2.5
    assert settings.token == "secret"
    assert settings.quiet
    assert settings.spool.max_spool_files == 8
    assert settings.spool.spool_wait == 1.5
    assert settings.renderer_command == [
        "/opt/bin/wkhtmltopdf",
        "--disable-javascript",
        "--disable-local-file-access",
        "--encoding", "utf8",
        "-q", "-", "-",
    ]

import asyncio
import io
from pathlib import Path

import websockets
import websockets.exceptions

from folio.errors import BuildError, ValidationError
from folio.server import DevServer, _ChangeHandler, _ReloadHandler


class DummyEvent:
    def __init__(self, path, is_directory=False):
        self.src_path = path
        self.is_directory = is_directory


def make_handler(directory, path):
    handler = _ReloadHandler.__new__(_ReloadHandler)
    handler.path = path
    handler.directory = str(directory)
    handler.command = "GET"
    handler.request_version = "HTTP/1.1"
    handler.server_version = ""
    handler.sys_version = ""
    handler._headers_buffer = []
    handler.headers = {}
    handler.rfile = io.BytesIO(b"")
    handler.wfile = io.BytesIO()
    handler.codes = []
    handler.send_response = lambda code, message=None: handler.codes.append(code)
    handler.send_header = lambda *args, **kwargs: None
    handler.end_headers = lambda: None
    handler.send_error = lambda code, message=None: handler.codes.append(("error", code))
    return handler


def test_dev_server_ports(tmp_path):
    server = DevServer(tmp_path)
    assert (server.http_port, server.ws_port) == (4000, 4001)
    assert server._root_url == "http://localhost:4000"

    (tmp_path / "folio.yaml").write_text("port: 8000\nws_port: 9000\n", encoding="utf-8")
    configured = DevServer(tmp_path)
    assert (configured.http_port, configured.ws_port) == (8000, 9000)

    override = DevServer(tmp_path, http_port=5055)
    assert (override.http_port, override.ws_port) == (5055, 5056)

    explicit = DevServer(tmp_path, http_port=5055, ws_port=6000)
    assert explicit.ws_port == 6000
    assert f":{explicit.ws_port}" in explicit._reload_script


def test_change_handler_skips_output_and_staging(tmp_path):
    server = DevServer(tmp_path)
    called = []
    server.rebuild = lambda include_drafts: called.append(include_drafts)
    handler = _ChangeHandler(server, include_drafts=True)

    handler.on_any_event(DummyEvent(str(server.output_dir / "index.html")))
    handler.on_any_event(DummyEvent(str(server._staging_dir / "index.html")))
    handler.on_any_event(DummyEvent(str(tmp_path / "output.previous" / "index.html")))
    handler.on_any_event(DummyEvent(str(tmp_path / "content"), is_directory=True))
    assert called == []

    handler.on_any_event(DummyEvent(str(tmp_path / "content" / "posts" / "a.md")))
    assert called == [True]


def test_change_handler_only_watches_config_in_root(tmp_path):
    server = DevServer(tmp_path)
    called = []
    server.rebuild = lambda include_drafts: called.append("rebuild")
    handler = _ChangeHandler(server, include_drafts=False)

    handler.on_any_event(DummyEvent(str(tmp_path / "README.md")))
    handler.on_any_event(DummyEvent(str(tmp_path / ".gitignore")))
    assert called == []

    handler.on_any_event(DummyEvent(str(tmp_path / "folio.yaml")))
    assert called == ["rebuild"]


def test_async_broadcast_drops_closed_clients():
    server = DevServer(Path("."))

    class GoodWS:
        def __init__(self):
            self.messages = []

        async def send(self, msg):
            self.messages.append(msg)

    class ClosedWS:
        async def send(self, msg):
            raise websockets.exceptions.ConnectionClosedOK(None, None)

    good = GoodWS()
    closed = ClosedWS()
    server._ws_clients = {good, closed}
    asyncio.run(server._async_broadcast('{"type": "reload"}'))
    assert good.messages == ['{"type": "reload"}']
    assert server._ws_clients == {good}


def test_rebuild_builds_into_staging_then_reloads(monkeypatch, tmp_path):
    server = DevServer(tmp_path)
    server._post_build_delay = 0.01
    server._compute_signature = lambda: ("sig",)
    calls = []

    def fake_build(root, include_drafts=False, root_url=None, clean_output=True, output_dir_override=None):
        calls.append((root_url, clean_output, output_dir_override))
        (output_dir_override / "index.html").write_text("new", encoding="utf-8")

    monkeypatch.setattr("folio.server.build_site", fake_build)
    monkeypatch.setattr(
        "folio.server.DevServer._broadcast_reload",
        lambda self=server: calls.append("reload"),
    )
    slept = []
    monkeypatch.setattr("folio.server.time.sleep", lambda secs: slept.append(secs))

    server.rebuild(include_drafts=False)
    assert calls == [("http://localhost:4000", True, server._staging_dir), "reload"]
    assert slept == [0.01]
    assert (server.output_dir / "index.html").read_text(encoding="utf-8") == "new"
    assert not server._staging_dir.exists()


def test_failed_rebuild_keeps_previous_output(monkeypatch, tmp_path, capsys):
    server = DevServer(tmp_path)
    server.output_dir.mkdir()
    (server.output_dir / "index.html").write_text("old", encoding="utf-8")
    server._compute_signature = lambda: ("changed",)
    reloads = []
    server._broadcast_reload = lambda: reloads.append("reload")

    def broken_build(root, **kwargs):
        (kwargs["output_dir_override"] / "index.html").write_text("half", encoding="utf-8")
        raise BuildError(root / "content" / "index.md", "Invalid YAML")

    monkeypatch.setattr("folio.server.build_site", broken_build)
    server.rebuild(include_drafts=False)

    assert (server.output_dir / "index.html").read_text(encoding="utf-8") == "old"
    assert reloads == []
    assert "Build failed" in capsys.readouterr().out


def test_failed_validation_prints_every_issue(monkeypatch, tmp_path, capsys):
    server = DevServer(tmp_path)

    def invalid_build(root, **kwargs):
        raise ValidationError(
            [
                BuildError(root / "content" / "a.md", "Broken internal link /x/"),
                BuildError(root / "content" / "b.md", "Missing asset /assets/images/b.png"),
            ]
        )

    monkeypatch.setattr("folio.server.build_site", invalid_build)
    assert server._build(include_drafts=False) is False
    out = capsys.readouterr().out
    assert "Site validation failed with 2 issues" in out
    assert "Broken internal link /x/" in out
    assert "Missing asset /assets/images/b.png" in out


def test_rebuild_guard(monkeypatch, tmp_path):
    server = DevServer(tmp_path)
    calls = []
    monkeypatch.setattr(
        "folio.server.build_site", lambda *args, **kwargs: calls.append("built")
    )
    server._broadcast_reload = lambda: calls.append("reloaded")
    server._debounce_seconds = 0.0
    server._post_build_delay = 0

    sigs = [("a",), ("a",), ("b",)]
    server._compute_signature = lambda: sigs.pop(0) if sigs else ("b",)
    server.rebuild(include_drafts=False)
    server._rebuilding = True
    server.rebuild(include_drafts=False)  # skipped while rebuilding
    server._rebuilding = False
    server.rebuild(include_drafts=False)  # skipped: same signature
    server.rebuild(include_drafts=False)  # signature changed
    assert calls == ["built", "reloaded", "built", "reloaded"]


def test_activate_staging_replaces_existing_output(tmp_path):
    server = DevServer(tmp_path)
    server.output_dir.mkdir()
    (server.output_dir / "stale.html").write_text("stale", encoding="utf-8")
    staging = server._prepare_staging_dir()
    (staging / "index.html").write_text("fresh", encoding="utf-8")

    server._activate_staging(staging)
    assert (server.output_dir / "index.html").read_text(encoding="utf-8") == "fresh"
    assert not (server.output_dir / "stale.html").exists()
    assert not staging.exists()
    assert not (tmp_path / "output.previous").exists()


def test_prepare_staging_dir_removes_existing(tmp_path):
    server = DevServer(tmp_path)
    staging = server._staging_dir
    staging.mkdir(parents=True)
    (staging / "old_file.html").write_text("old content", encoding="utf-8")

    assert server._prepare_staging_dir() == staging
    assert staging.exists()
    assert not (staging / "old_file.html").exists()


def test_compute_signature(tmp_path):
    server = DevServer(tmp_path)
    assert server._compute_signature() is None

    (tmp_path / "content" / "posts").mkdir(parents=True)
    (tmp_path / "assets").mkdir()
    (tmp_path / "content" / "posts" / "a.md").write_text("hi", encoding="utf-8")
    (tmp_path / "assets" / "missing.txt").symlink_to(tmp_path / "nope.txt")
    (tmp_path / "folio.yaml").write_text("port: 4000\n", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    sig = server._compute_signature()
    assert [entry[0] for entry in sig] == ["folio.yaml", "content/posts/a.md"]


def test_start_watcher_schedules_project_folders(monkeypatch, tmp_path):
    for folder in ("content", "assets", "data"):
        (tmp_path / folder).mkdir()
    server = DevServer(tmp_path)
    scheduled = []

    class DummyObserver:
        def schedule(self, handler, path, recursive):
            scheduled.append((Path(path).name, recursive))

        def start(self):
            scheduled.append(("started", True))

    monkeypatch.setattr("folio.server.Observer", DummyObserver)
    server._start_watcher(include_drafts=False)
    assert scheduled == [
        ("content", True),
        ("assets", True),
        ("data", True),
        (tmp_path.name, False),
        ("started", True),
    ]


def test_stop_and_ws_handler(tmp_path):
    server = DevServer(tmp_path)
    server.stop()

    class DummyObserver:
        def __init__(self):
            self.calls = []

        def stop(self):
            self.calls.append("stop")

        def join(self):
            self.calls.append("join")

    server._observer = DummyObserver()
    server.stop()
    assert server._observer.calls == ["stop", "join"]

    class DummyWS:
        def __init__(self):
            self.closed = False

        async def wait_closed(self):
            self.closed = True

    ws = DummyWS()
    asyncio.run(server._ws_handler(ws))
    assert ws.closed
    assert ws not in server._ws_clients


def test_ws_start_failure(monkeypatch, tmp_path, capsys):
    server = DevServer(tmp_path, http_port=5055, ws_port=5057)

    async def fake_run():
        raise OSError("bind error")

    monkeypatch.setattr(server, "_run_ws_server", fake_run)
    server._start_ws()
    assert "failed to start (port 5057)" in capsys.readouterr().out


def test_broadcast_reload_schedules_on_loop(monkeypatch):
    server = DevServer(Path("."))
    called = {}

    def fake_runner(coro, loop):
        called["loop"] = loop
        asyncio.run(coro)

    monkeypatch.setattr("folio.server.asyncio.run_coroutine_threadsafe", fake_runner)
    server._broadcast_reload()
    assert called["loop"] is server._loop


def test_reload_handler_injects_script(tmp_path):
    (tmp_path / "index.html").write_text("<html><body>Hello</body></html>", encoding="utf-8")
    handler = make_handler(tmp_path, "/index.html")
    assert _ReloadHandler.send_head(handler) is None
    assert handler.codes == [200]
    body = handler.wfile.getvalue().decode()
    assert body.index("new WebSocket") < body.index("</body>")


def test_reload_handler_without_body_tag(tmp_path):
    (tmp_path / "plain.html").write_text("<html>No body here</html>", encoding="utf-8")
    handler = make_handler(tmp_path, "/plain.html")
    _ReloadHandler.send_head(handler)
    assert handler.wfile.getvalue().decode().endswith("</script>\n")


def test_reload_snippet_is_added_once_before_last_body_tag(tmp_path):
    page = "<html><body><script>const tag = '</body>';</script>Hi</body></html>"
    (tmp_path / "index.html").write_text(page, encoding="utf-8")
    handler = make_handler(tmp_path, "/")
    _ReloadHandler.send_head(handler)
    body = handler.wfile.getvalue().decode()
    assert body.count("new WebSocket") == 1
    assert body.startswith("<html><body><script>const tag = '</body>';</script>Hi<script>")
    assert body.endswith("</script>\n</body></html>")


def test_send_head_serves_directory_index(tmp_path):
    (tmp_path / "posts").mkdir()
    (tmp_path / "posts" / "index.html").write_text("<body>index</body>", encoding="utf-8")
    handler = make_handler(tmp_path, "/posts/")
    assert _ReloadHandler.send_head(handler) is None
    assert handler.codes == [200]
    assert b"index" in handler.wfile.getvalue()


def test_send_head_falls_back_for_static_files(tmp_path):
    (tmp_path / "style.css").write_text("body{}", encoding="utf-8")
    handler = make_handler(tmp_path, "/style.css")
    result = _ReloadHandler.send_head(handler)
    assert result is not None
    result.close()


def test_missing_paths_return_404(tmp_path):
    (tmp_path / "posts").mkdir()
    (tmp_path / "posts" / "note.txt").write_text("hi", encoding="utf-8")

    for path in ("/missing.html", "/posts/"):
        handler = make_handler(tmp_path, path)
        assert _ReloadHandler.send_head(handler) is None
        assert handler.codes == [("error", 404)]


def test_serve_404_uses_custom_page(tmp_path):
    (tmp_path / "404.html").write_text("<html><body>oops</body></html>", encoding="utf-8")
    handler = make_handler(tmp_path, "/missing/")
    assert _ReloadHandler.send_head(handler) is None
    assert handler.codes == [404]
    body = handler.wfile.getvalue().decode()
    assert "oops" in body
    assert "new WebSocket" in body

"""Local preview server for ``folio serve``.

The blog is served from the output folder over plain HTTP. A websocket tells
open tabs to refresh after every successful rebuild. Rebuilds run when
anything under content/, assets/ or data/ changes, or when folio.yaml does.
They write to a staging folder first, so a broken post never takes down the
preview of the last good build.

Key classes:
- DevServer: Owns the HTTP thread, the websocket loop and the file watcher.
- _ReloadHandler: Serves output files and appends the reload snippet to pages.
- _ChangeHandler: Forwards relevant file system events to DevServer.rebuild.
"""

from __future__ import annotations

import asyncio
import functools
import json
import os
import shutil
import threading
import time
from collections.abc import Iterator
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import build_site, load_config
from .errors import BuildError, ValidationError

WATCHED_FOLDERS = ("content", "assets", "data")
CONFIG_FILE = "folio.yaml"
RELOAD_MESSAGE = json.dumps({"type": "reload"})


class _ReloadHandler(SimpleHTTPRequestHandler):
    """Serves the output folder and adds the reload snippet to HTML pages.

    Unknown paths and folders without an ``index.html`` get a 404, using the
    blog's own ``404.html`` when it has one.
    """

    reload_script_template = (
        "<script>\n"
        "new WebSocket(`ws://${{location.hostname}}:{ws_port}`)"
        ".addEventListener('message', (event) => {{\n"
        "  if (JSON.parse(event.data).type === 'reload') location.reload();\n"
        "}});\n"
        "</script>\n"
    )
    reload_script = reload_script_template.format(ws_port=4001)

    def end_headers(self):
        # Every rebuild replaces the files.
        self.send_header("Cache-Control", "no-store")
        super().end_headers()

    def list_directory(self, path):  # pragma: no cover - send_head answers first
        return self._serve_404()

    def _inject(self, page: Path) -> bytes:
        """Read ``page`` and put the reload snippet before its closing body tag."""
        html = page.read_text(encoding="utf-8")
        before, body_end, after = html.rpartition("</body>")
        if body_end:
            html = f"{before}{self.reload_script}{body_end}{after}"
        else:
            html += self.reload_script
        return html.encode("utf-8")

    def _send_html(self, status: int, page: Path) -> None:
        payload = self._inject(page)
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def _serve_404(self):
        not_found = Path(self.directory) / "404.html"
        if not_found.is_file():
            self._send_html(404, not_found)
        else:
            self.send_error(404, "File not found")
        return None

    def _target(self) -> Path | None:
        """The output file for this request; a folder stands for its index.html."""
        target = Path(self.translate_path(self.path))
        if target.is_dir():
            target = target / "index.html"
        return target if target.is_file() else None

    def send_head(self):
        target = self._target()
        if target is None:
            return self._serve_404()
        if target.suffix != ".html":
            return super().send_head()
        self._send_html(200, target)
        return None


class DevServer:
    """Builds the blog, serves it and rebuilds it as sources change.

    Ports come from the arguments, then ``port`` and ``ws_port`` in
    folio.yaml. The websocket port follows the HTTP port when only the HTTP
    port is given on the command line.

    Attributes:
        project_root: Blog folder containing content/, assets/ and data/.
        config: Settings loaded from folio.yaml.
        output_dir: Folder the HTTP server serves.
        http_port: Port of the preview site.
        ws_port: Port of the reload websocket.
    """

    def __init__(self, project_root: Path, http_port: int | None = None, ws_port: int | None = None):
        self.project_root = project_root
        self.config = load_config(project_root)
        self.output_dir = project_root / self.config.get("output_dir", "output")
        self._staging_dir = self._sibling(".staging")
        self.http_port = int(http_port or self.config.get("port", 4000))
        if ws_port is None:
            default_ws = self.http_port + 1
            ws_port = default_ws if http_port is not None else self.config.get("ws_port", default_ws)
        self.ws_port = int(ws_port)
        self._reload_script = _ReloadHandler.reload_script_template.format(ws_port=self.ws_port)
        # Absolute links in the preview point back at this server.
        self._root_url = f"http://localhost:{self.http_port}"
        self._observer: Observer | None = None
        self._ws_clients: set = set()
        self._loop = asyncio.new_event_loop()
        self._rebuilding = False
        self._last_rebuild_at = 0.0
        self._last_signature: tuple | None = None
        self._debounce_seconds = 0.05
        self._post_build_delay = 0.05

    def _sibling(self, suffix: str) -> Path:
        return self.output_dir.with_suffix(self.output_dir.suffix + suffix)

    def start(
        self, include_drafts: bool = False
    ) -> None:  # pragma: no cover - integration path
        """Build once, then serve and watch until interrupted.

        A first build that fails still starts the server on an empty output
        folder, so fixing the error triggers the next build.
        """
        if not self._build(include_drafts):
            self.output_dir.mkdir(parents=True, exist_ok=True)
        self._last_signature = self._compute_signature()
        for target in (self._start_http, self._start_ws):
            threading.Thread(target=target, daemon=True).start()
        self._start_watcher(include_drafts)
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
        self._loop.call_soon_threadsafe(self._loop.stop)

    def _start_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type(
            "_PortReloadHandler", (_ReloadHandler,), {"reload_script": self._reload_script}
        )
        httpd = ThreadingHTTPServer(
            ("", self.http_port),
            functools.partial(handler_cls, directory=str(self.output_dir)),
        )
        print(f"Previewing {self.output_dir} at http://localhost:{self.http_port}")
        httpd.serve_forever()

    def _start_ws(self) -> None:  # pragma: no cover - integration path
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._run_ws_server())
        except OSError as exc:
            print(f"Live reload websocket failed to start (port {self.ws_port}): {exc}")

    async def _run_ws_server(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self._ws_handler, "0.0.0.0", self.ws_port):
            await asyncio.Future()

    async def _ws_handler(self, websocket):
        """Keep a browser tab registered for reloads until it disconnects."""
        self._ws_clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._ws_clients.discard(websocket)

    def _broadcast_reload(self):
        asyncio.run_coroutine_threadsafe(self._async_broadcast(RELOAD_MESSAGE), self._loop)

    async def _async_broadcast(self, message: str):
        closed = []
        for client in list(self._ws_clients):
            try:
                await client.send(message)
            except websockets.ConnectionClosed:
                closed.append(client)
        self._ws_clients.difference_update(closed)

    def _start_watcher(self, include_drafts: bool) -> None:
        handler = _ChangeHandler(self, include_drafts)
        observer = Observer()
        for folder in WATCHED_FOLDERS:
            source = self.project_root / folder
            if source.exists():
                observer.schedule(handler, str(source), recursive=True)
        # Non-recursive, for folio.yaml.
        observer.schedule(handler, str(self.project_root), recursive=False)
        observer.start()
        self._observer = observer

    def rebuild(self, include_drafts: bool) -> None:
        """Rebuild after a source change and reload open tabs on success.

        Events that arrive while a build runs, within the debounce window, or
        without any change to the watched files are ignored.
        """
        if self._rebuilding or time.time() - self._last_rebuild_at < self._debounce_seconds:
            return
        signature = self._compute_signature()
        if signature is not None and signature == self._last_signature:
            return
        self._rebuilding = True
        print("Sources changed, rebuilding...")
        try:
            self._last_signature = signature
            if not self._build(include_drafts):
                return
            if self._post_build_delay:
                time.sleep(self._post_build_delay)
            self._broadcast_reload()
        finally:
            self._rebuilding = False
            self._last_rebuild_at = time.time()

    def _build(self, include_drafts: bool) -> bool:
        """Build into the staging folder and publish it; False if the build failed.

        On failure the served output stays as it was and the errors are
        printed.
        """
        staging = self._prepare_staging_dir()
        try:
            build_site(
                self.project_root,
                include_drafts=include_drafts,
                root_url=self._root_url,
                clean_output=True,
                output_dir_override=staging,
            )
        except ValidationError as exc:
            print(f"Build failed: {exc}")
            for issue in exc.issues:
                print(f"  {issue}")
            return False
        except (BuildError, FileNotFoundError) as exc:
            print(f"Build failed: {exc}")
            return False
        self._activate_staging(staging)
        return True

    def _watched_files(self) -> Iterator[Path]:
        yield self.project_root / CONFIG_FILE
        for folder in WATCHED_FOLDERS:
            source = self.project_root / folder
            if source.exists():
                yield from sorted(source.rglob("*"))

    def _compute_signature(self) -> tuple | None:
        """Path, mtime and size of every watched file, or None when there are none."""
        signature = []
        for path in self._watched_files():
            if not path.is_file():
                continue
            try:
                info = path.stat()
            except OSError:
                # Deleted since it was listed.
                continue
            rel = path.relative_to(self.project_root).as_posix()
            signature.append((rel, info.st_mtime_ns, info.st_size))
        return tuple(signature) or None

    def _prepare_staging_dir(self) -> Path:
        if self._staging_dir.exists():
            shutil.rmtree(self._staging_dir)
        self._staging_dir.mkdir(parents=True)
        return self._staging_dir

    def _activate_staging(self, staging: Path) -> None:
        """Publish a finished build by swapping ``staging`` in for the output folder."""
        retired = self._sibling(".previous")
        if retired.exists():
            shutil.rmtree(retired)
        # os.replace cannot overwrite a non-empty folder.
        if self.output_dir.exists():
            os.replace(self.output_dir, retired)
        os.replace(staging, self.output_dir)
        if retired.exists():
            shutil.rmtree(retired)


class _ChangeHandler(FileSystemEventHandler):
    """Calls ``server.rebuild`` for changes to blog sources.

    Build output never triggers a rebuild. Neither do files in the project
    root other than folio.yaml.
    """

    def __init__(self, server: DevServer, include_drafts: bool):
        super().__init__()
        self.server = server
        self.include_drafts = include_drafts

    def _is_output(self, path: Path) -> bool:
        server = self.server
        generated = (server.output_dir, server._staging_dir, server._sibling(".previous"))
        return any(path.is_relative_to(folder) for folder in generated)

    def on_any_event(self, event):
        if event.is_directory:
            return
        path = Path(event.src_path)
        if path.parent == self.server.project_root and path.name != CONFIG_FILE:
            return
        if self._is_output(path):
            return
        self.server.rebuild(self.include_drafts)

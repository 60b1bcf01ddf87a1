"""REST API server for Satela Voice.

HTTP routes expose the dialogue status, command history and configuration,
open or close the recognition session and accept transcripts from outside.
/api/events is a WebSocket that relays every EventBus event. The aiohttp
loop lives in its own thread next to the service.
"""

import asyncio
import json
import threading
import time
from datetime import datetime
from typing import Any, Optional, Set

from aiohttp import web

from satela.event_bus import Event, EventBus, get_event_bus
from satela.utils import satela_log

_INDEX_HTML = """<!DOCTYPE html>
<html lang="ru">
<head>
  <meta charset="UTF-8">
  <title>Satela Voice</title>
  <style>
    body { font-family: sans-serif; max-width: 640px; margin: 2em auto;
           background: #101820; color: #eee; }
    #state { background: #1c2a38; padding: 1em; border-radius: 6px; }
    li { font-family: monospace; }
  </style>
</head>
<body>
  <h1>Satela Voice</h1>
  <div id="state">...</div>
  <ul id="history"></ul>
  <script>
    async function poll() {
      const status = await (await fetch('/api/status')).json();
      document.getElementById('state').textContent =
        status.state_text + ' | ' + (status.current_text || '');
      const history = await (await fetch('/api/history?limit=10')).json();
      document.getElementById('history').innerHTML = history.commands
        .map(c => '<li>' + c.text + ' &rarr; ' + c.response + '</li>').join('');
    }
    poll();
    setInterval(poll, 1000);
  </script>
</body>
</html>"""


def _json_response(data: Any, status: int = 200) -> web.Response:
    """JSON body, non-ASCII kept as is."""
    return web.json_response(
        data,
        status=status,
        dumps=lambda obj: json.dumps(obj, ensure_ascii=False, default=str),
    )


def _error_response(message: str, status: int = 400) -> web.Response:
    return _json_response({"error": message}, status=status)


class SatelaAPI:
    """aiohttp front end for a SatelaService."""

    def __init__(self, service: Any, host: str = "127.0.0.1", port: int = 7790,
                 event_bus: Optional[EventBus] = None):
        self.service = service
        self.host = host
        self.port = port
        self.event_bus = event_bus or getattr(service, "event_bus", None) or get_event_bus()

        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ws_clients: Set[web.WebSocketResponse] = set()
        self._event_sub_ids: list = []
        self._started_at = time.time()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        self._thread = threading.Thread(target=self._serve_forever, daemon=True, name="satela-api")
        self._thread.start()
        satela_log("API", f"Server starting on http://{self.host}:{self.port}")

    def stop(self):
        while self._event_sub_ids:
            self.event_bus.unsubscribe(self._event_sub_ids.pop())

        loop = self._loop
        if loop is not None and loop.is_running():
            loop.call_soon_threadsafe(loop.stop)
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        satela_log("API", "Server stopped")

    def _serve_forever(self):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        try:
            loop.run_until_complete(self._bind())
            loop.run_forever()
        except OSError as e:
            satela_log("API", f"Cannot listen on {self.host}:{self.port}: {e}", level="ERROR")
        finally:
            if self._runner is not None:
                loop.run_until_complete(self._runner.cleanup())
            loop.close()

    async def _bind(self):
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        await web.TCPSite(self._runner, self.host, self.port).start()
        self._setup_event_forwarding()
        satela_log("API", f"Server listening on http://{self.host}:{self.port}")

    def create_app(self) -> web.Application:
        """Application with every route registered; also used by tests."""
        app = web.Application()
        app.router.add_routes([
            web.get("/", self._handle_index),
            web.get("/api/status", self._handle_status),
            web.get("/api/history", self._handle_history),
            web.get("/api/config", self._handle_get_config),
            web.post("/api/session/start", self._handle_session_start),
            web.post("/api/session/stop", self._handle_session_stop),
            web.post("/api/transcript", self._handle_transcript),
            web.get("/api/events", self._handle_ws_events),
        ])
        self._app = app
        return app

    # ------------------------------------------------------------------
    # EventBus -> WebSocket
    # ------------------------------------------------------------------

    def _setup_event_forwarding(self):
        # Synchronous on the bus worker so clients see events in publish order;
        # the handler only schedules sends and never blocks
        self._event_sub_ids = self.event_bus.subscribe_all(
            self._on_event_bus_event, priority=-10, async_mode=False
        )

    def _on_event_bus_event(self, event: Event):
        # Called on bus threads; sends are scheduled onto the API loop
        loop = self._loop
        if loop is None or not self._ws_clients:
            return
        text = json.dumps(event.to_dict(), ensure_ascii=False, default=str)
        for ws in tuple(self._ws_clients):
            asyncio.run_coroutine_threadsafe(ws.send_str(text), loop)

    @staticmethod
    def _ws_message(event: str, data: Optional[dict] = None) -> dict:
        return {"event": event, "data": data or {}, "timestamp": datetime.now().isoformat()}

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _handle_index(self, request: web.Request) -> web.Response:
        return web.Response(text=_INDEX_HTML, content_type="text/html")

    async def _handle_status(self, request: web.Request) -> web.Response:
        """GET /api/status"""
        try:
            data = self.service.status()
        except Exception as e:
            satela_log("API", f"/api/status failed: {e}", level="ERROR")
            return _error_response(str(e), status=500)
        data["uptime_seconds"] = round(time.time() - self._started_at, 1)
        return _json_response(data)

    async def _handle_history(self, request: web.Request) -> web.Response:
        """GET /api/history?limit=N, newest command first."""
        limit = request.query.get("limit")
        commands = self.service.history()
        if limit is not None:
            try:
                commands = commands[:max(0, int(limit))]
            except ValueError:
                return _error_response("'limit' must be an integer")
        return _json_response({"commands": [cmd.to_dict() for cmd in commands]})

    async def _handle_get_config(self, request: web.Request) -> web.Response:
        """GET /api/config"""
        cfg = self.service.config
        return _json_response({
            "language": cfg.language,
            "wake_word": cfg.wake_word_keyword or self.service.status().get("wake_word"),
            "thinking_delay": cfg.thinking_delay,
            "speaking_delay": cfg.speaking_delay,
            "deactivation_delay": cfg.deactivation_delay,
            "transcript_source": cfg.transcript_source,
            "no_speech_policy": cfg.no_speech_policy,
            "tts_provider": cfg.tts_provider,
            "tts_rate": cfg.tts_rate,
            "api_host": cfg.api_host,
            "api_port": cfg.api_port,
            "log_level": cfg.log_level,
        })

    async def _handle_session_start(self, request: web.Request) -> web.Response:
        """POST /api/session/start; 503 when recognition is unavailable."""
        # start_session blocks until the engine thread has handled it
        opened = await asyncio.get_running_loop().run_in_executor(None, self.service.start_session)
        if not opened:
            return _error_response("Speech recognition is not available", status=503)
        return _json_response({"status": "ok", "session_open": True})

    async def _handle_session_stop(self, request: web.Request) -> web.Response:
        """POST /api/session/stop"""
        await asyncio.get_running_loop().run_in_executor(None, self.service.stop_session)
        return _json_response({"status": "ok", "session_open": False})

    @staticmethod
    async def _read_object(request: web.Request) -> Optional[dict]:
        try:
            body = await request.json()
        except ValueError:
            return None
        return body if isinstance(body, dict) else None

    async def _handle_transcript(self, request: web.Request) -> web.Response:
        """POST /api/transcript {"text": "...", "final": true}"""
        body = await self._read_object(request)
        if body is None:
            return _error_response("Body must be a JSON object")

        text = body.get("text")
        if not isinstance(text, str) or not text.strip():
            return _error_response("Field 'text' is required")

        final = bool(body.get("final", True))
        submit = self.service.submit_final_transcript if final else self.service.submit_interim_transcript
        submit(text)
        return _json_response({"status": "accepted", "text": text, "final": final}, status=202)

    async def _handle_ws_events(self, request: web.Request) -> web.WebSocketResponse:
        """GET /api/events

        Sends CONNECTED with the current status, then every bus event.
        Clients may send {"type": "ping"} or {"type": "status"}.
        """
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self._ws_clients.add(ws)
        satela_log("API", f"WebSocket client connected ({len(self._ws_clients)} open)")

        try:
            await ws.send_json(self._ws_message("CONNECTED", self.service.status()))
            async for msg in ws:
                if msg.type == web.WSMsgType.ERROR:
                    satela_log("API", f"WebSocket error: {ws.exception()}", level="ERROR")
                    break
                if msg.type != web.WSMsgType.TEXT:
                    continue
                try:
                    request_type = json.loads(msg.data).get("type")
                except (ValueError, AttributeError):
                    continue
                if request_type == "ping":
                    await ws.send_json(self._ws_message("pong"))
                elif request_type == "status":
                    await ws.send_json(self._ws_message("STATUS", self.service.status()))
        finally:
            self._ws_clients.discard(ws)
            satela_log("API", f"WebSocket client disconnected ({len(self._ws_clients)} open)")

        return ws


def create_api(service: Any, host: str = "127.0.0.1", port: int = 7790) -> SatelaAPI:
    return SatelaAPI(service, host=host, port=port)

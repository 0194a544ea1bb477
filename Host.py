# Host.py acts as both a Receiver and Application
#
# Responsibilities:
# - Receive device readings over Wi-Fi (HTTP POST /api/readings)
# - Validate, store to SQLite via DB.py (id + created_at assigned there)
# - Push realtime updates to dashboards (WebSocket /ws) via Hub.py
# - Fire the high temperature webhook via Alerts.py
# - Serve history (GET /api/readings), latest (GET /api/readings/latest)
#   and a live dashboard for mobile devices (GET /)

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

import MSG
from Alerts import AlertNotifier
from Config import Settings
from DB import SQLITE_MAX_INT, ReadingStore, StorageError
from Hub import BroadcastHub

# ----------------------------
# CONFIG
# ----------------------------
APP_TITLE = "Weather Station Host"
DEFAULT_HISTORY_LIMIT = 50

logger = logging.getLogger(__name__)


def now_iso() -> str:
    return datetime.now().astimezone().isoformat()


def parse_limit(raw: Optional[str]) -> int:
    try:
        limit = int(raw) if raw is not None else DEFAULT_HISTORY_LIMIT
    except ValueError:
        return DEFAULT_HISTORY_LIMIT
    if limit < 1:
        return DEFAULT_HISTORY_LIMIT
    return min(limit, SQLITE_MAX_INT)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    settings.configure_logging()

    store = ReadingStore(settings.db_path)
    hub = BroadcastHub(store)
    notifier = AlertNotifier(
        settings.webhook_url,
        threshold=settings.alert_threshold_c,
        timeout_s=settings.alert_timeout_s,
    )
    if not settings.webhook_url:
        logger.info("DISCORD_WEBHOOK_URL not set, temperature alerts disabled")

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        store.init_db()
        logger.info("Reading store ready at %s", settings.db_path)
        yield

    app = FastAPI(title=APP_TITLE, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.store = store
    app.state.hub = hub
    app.state.notifier = notifier

    # ----------------------------
    # ROUTES
    # ----------------------------
    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "ok": True,
            "service": "weather-host",
            "time": now_iso(),
            "subscribers": hub.open_count(),
        }

    @app.post("/api/readings")
    async def ingest(request: Request, background_tasks: BackgroundTasks) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})

        try:
            payload = MSG.validate_reading(body)
        except ValidationError:
            return JSONResponse(
                status_code=400,
                content={"error": "temperature and humidity must be numbers"},
            )

        # append + publish inside the hub lane so publish order == id order
        async with hub.lane:
            try:
                reading = await run_in_threadpool(
                    store.append, payload.temperature, payload.humidity
                )
            except StorageError:
                return JSONResponse(status_code=500, content={"error": "DB error"})

            # only queues messages; sockets are written by each subscriber's pump
            hub.publish(reading)

        # runs after the response has been sent
        background_tasks.add_task(notifier.evaluate, reading)

        return JSONResponse(
            status_code=201,
            content=reading.model_dump(),
            background=background_tasks,
        )

    @app.get("/api/readings")
    def history(limit: Optional[str] = None) -> JSONResponse:
        try:
            readings = store.recent(parse_limit(limit))
        except StorageError:
            return JSONResponse(status_code=500, content={"error": "DB error"})
        return JSONResponse(status_code=200, content=[r.model_dump() for r in readings])

    @app.get("/api/readings/latest")
    def latest() -> JSONResponse:
        try:
            reading = store.latest()
        except StorageError:
            return JSONResponse(status_code=500, content={"error": "DB error"})
        if reading is None:
            return JSONResponse(status_code=404, content={"error": "No data yet"})
        return JSONResponse(status_code=200, content=reading.model_dump())

    @app.get("/", response_class=HTMLResponse)
    def dashboard() -> str:
        return DASHBOARD_HTML.replace("__APP_TITLE__", APP_TITLE)

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        sub = await hub.join(ws)
        sender = asyncio.create_task(hub.pump(sub))
        try:
            # Nothing is expected from viewers; just wait for the close.
            while True:
                message = await ws.receive()
                if message["type"] == "websocket.disconnect":
                    break
        finally:
            hub.leave(sub)
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)

    return app


# IMPORTANT: do not use f-strings here because CSS/JS contain many { } braces.
DASHBOARD_HTML = """
<!doctype html>
<html>
<head>
  <meta charset="utf-8"/>
  <meta name="viewport" content="width=device-width, initial-scale=1"/>
  <title>__APP_TITLE__</title>
  <style>
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body {
      font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, "Helvetica Neue", Arial, sans-serif;
      background: #f5f7fa;
      color: #333;
    }
    .header {
      background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
      color: white;
      padding: 24px;
    }
    .header h1 { font-size: 28px; margin-bottom: 8px; }
    .container { max-width: 900px; margin: 0 auto; padding: 24px; }
    .card {
      background: white;
      border-radius: 8px;
      padding: 20px;
      margin-bottom: 24px;
      box-shadow: 0 2px 8px rgba(0,0,0,0.05);
    }
    .sensor-value { font-size: 40px; font-weight: 700; }
    .sensor-label { font-size: 12px; color: #666; text-transform: uppercase; }
    .row { display: flex; gap: 48px; flex-wrap: wrap; }
    table { width: 100%; border-collapse: collapse; font-size: 14px; }
    th, td { text-align: left; padding: 6px 8px; border-bottom: 1px solid #eee; }
  </style>
</head>
<body>

<div class="header">
  <h1>__APP_TITLE__</h1>
  <p style="font-size: 14px; opacity: 0.95;">Live Sensor Monitoring &middot; <span id="status">Connecting...</span></p>
</div>

<div class="container">
  <div class="card row">
    <div><div class="sensor-label">Temperature</div><span class="sensor-value" id="temp">&mdash;</span> &deg;C</div>
    <div><div class="sensor-label">Humidity</div><span class="sensor-value" id="hum">&mdash;</span> %</div>
    <div><div class="sensor-label">Last Update</div><span id="time">&mdash;</span></div>
  </div>

  <div class="card">
    <h3>Recent Readings</h3>
    <table>
      <thead><tr><th>#</th><th>Temp (&deg;C)</th><th>Humidity (%)</th><th>Time</th></tr></thead>
      <tbody id="history-body"></tbody>
    </table>
  </div>
</div>

<script>
(function() {
  const tempEl = document.getElementById("temp");
  const humEl = document.getElementById("hum");
  const timeEl = document.getElementById("time");
  const statusEl = document.getElementById("status");
  const historyBody = document.getElementById("history-body");

  function renderCurrent(r) {
    tempEl.textContent = r.temperature.toFixed(1);
    humEl.textContent = r.humidity.toFixed(1);
    timeEl.textContent = new Date(r.created_at).toLocaleString();
  }

  function addHistoryRow(r, prepend) {
    const tr = document.createElement("tr");
    tr.innerHTML = "<td>" + r.id + "</td><td>" + r.temperature.toFixed(1) + "</td><td>" +
      r.humidity.toFixed(1) + "</td><td>" + new Date(r.created_at).toLocaleString() + "</td>";
    if (prepend && historyBody.firstChild) {
      historyBody.insertBefore(tr, historyBody.firstChild);
    } else {
      historyBody.appendChild(tr);
    }
  }

  fetch("/api/readings?limit=20")
    .then(res => res.json())
    .then(data => {
      data.forEach(r => addHistoryRow(r, false));
      if (data.length > 0) renderCurrent(data[0]);
    })
    .catch(() => {});

  function connectWS() {
    statusEl.textContent = "Connecting...";
    const wsProto = (location.protocol === "https:") ? "wss" : "ws";
    const ws = new WebSocket(wsProto + "://" + location.host + "/ws");

    ws.onopen = () => { statusEl.textContent = "Connected"; };
    ws.onclose = () => {
      statusEl.textContent = "Disconnected - retrying...";
      setTimeout(connectWS, 3000);
    };
    ws.onerror = () => { ws.close(); };
    ws.onmessage = (msg) => {
      try {
        const e = JSON.parse(msg.data);
        if (e.type === "latest-reading" || e.type === "new-reading") {
          renderCurrent(e.data);
          if (e.type === "new-reading") addHistoryRow(e.data, true);
        }
      } catch (err) {}
    };
  }
  connectWS();
})();
</script>

</body>
</html>
"""


app = create_app()


def main() -> None:
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()

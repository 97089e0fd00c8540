"""
Static surfaces - the dashboard page and the client bootstrap script.

  GET /            (also /index.html)
  GET /api/script  (also /api/script.js)
"""
from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, PlainTextResponse

from usage_counter.services.client_script import render_client_script

router = APIRouter(tags=["dashboard"])

_DASHBOARD_HTML = """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>Usage Counter</title>
    <style>
        body { font-family: sans-serif; margin: 2rem; }
        dl { display: grid; grid-template-columns: max-content auto; gap: .4rem 1.5rem; }
        dt { font-weight: bold; }
    </style>
</head>
<body>
    <h1>Usage Counter</h1>
    <dl>
        <dt>Total</dt><dd id="total">-</dd>
        <dt>Today</dt><dd id="today">-</dd>
        <dt>Online</dt><dd id="online">-</dd>
        <dt>Unique</dt><dd id="unique">-</dd>
        <dt>Peak online</dt><dd id="peakOnline">-</dd>
        <dt>Peak today</dt><dd id="peakToday">-</dd>
    </dl>
    <p><small>Updated <span id="lastUpdate">never</span></small></p>
    <script>
        async function refresh() {
            const res = await fetch("/api/counter.js");
            const data = await res.json();
            for (const key of ["total", "today", "online", "unique", "peakOnline", "peakToday", "lastUpdate"]) {
                document.getElementById(key).textContent = data[key];
            }
        }
        refresh();
        setInterval(refresh, 10000);
    </script>
</body>
</html>
"""


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
@router.get("/index.html", response_class=HTMLResponse, include_in_schema=False)
async def dashboard_page() -> HTMLResponse:
    return HTMLResponse(_DASHBOARD_HTML)


@router.get("/api/script", response_class=PlainTextResponse)
@router.get("/api/script.js", response_class=PlainTextResponse)
async def client_script(request: Request) -> PlainTextResponse:
    """Return the Lua bootstrap script pointed at this server."""
    settings = request.app.state.settings
    script = render_client_script(str(request.base_url), settings.heartbeat_interval_seconds)
    return PlainTextResponse(script)

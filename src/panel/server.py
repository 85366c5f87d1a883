"""
Control panel - a tiny local HTTP front-end for running workflows.

Routes:
    GET  /        HTML page with a run form
    GET  /health  liveness check
    POST /run     run a workflow, JSON in / JSON out
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional, Union

import structlog
from aiohttp import web

from core.errors import FrameworkError
from orchestrator.engine import WorkflowEngine

logger = structlog.get_logger()

INDEX_HTML = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>siterunner</title>
  <style>
    body { font-family: system-ui, sans-serif; max-width: 40rem; margin: 3rem auto; }
    input { width: 100%; padding: .4rem; margin: .3rem 0 1rem; }
    pre { background: #f4f4f4; padding: 1rem; white-space: pre-wrap; }
  </style>
</head>
<body>
  <h1>siterunner</h1>
  <form id="run">
    <label>Workflow <input name="workflow" value="workflows/sample-workflow.yaml"></label>
    <label>Output directory <input name="outputDir" placeholder="(workflow default)"></label>
    <button type="submit">Run</button>
  </form>
  <pre id="result"></pre>
  <script>
    document.getElementById("run").addEventListener("submit", async (event) => {
      event.preventDefault();
      const form = new FormData(event.target);
      const body = { workflow: form.get("workflow") };
      if (form.get("outputDir")) body.outputDir = form.get("outputDir");
      document.getElementById("result").textContent = "Running...";
      const response = await fetch("/run", {
        method: "POST",
        headers: { "content-type": "application/json" },
        body: JSON.stringify(body)
      });
      document.getElementById("result").textContent = JSON.stringify(await response.json(), null, 2);
    });
  </script>
</body>
</html>
"""


def _optional_bool(value: Any) -> Optional[bool]:
    """JSON booleans pass through; anything else means not specified."""
    return value if isinstance(value, bool) else None


@web.middleware
async def json_errors(request: web.Request, handler):
    """Render HTTP errors (404, 405, ...) as JSON bodies."""
    try:
        return await handler(request)
    except web.HTTPException as e:
        if e.status < 400:
            raise
        message = "Not found" if e.status == 404 else e.reason
        return web.json_response({"ok": False, "message": message}, status=e.status)


class ControlPanel:
    """
    HTTP control panel.

    Runs are serialized: a second POST /run waits for the first to finish.
    """

    def __init__(
        self,
        engine: Optional[WorkflowEngine] = None,
        host: str = "127.0.0.1",
        port: int = 8787,
        base_dir: Optional[Union[str, Path]] = None,
        default_workflow: str = "workflows/sample-workflow.yaml",
    ):
        self.engine = engine or WorkflowEngine()
        self.host = host
        self.port = port
        self.base_dir = Path(base_dir or Path.cwd())
        self.default_workflow = default_workflow

        self._run_lock = asyncio.Lock()
        self._runner: Optional[web.AppRunner] = None

    def create_app(self) -> web.Application:
        app = web.Application(middlewares=[json_errors])
        app.router.add_get("/", self._index_handler)
        app.router.add_get("/health", self._health_handler)
        app.router.add_post("/run", self._run_handler)
        return app

    async def start(self) -> None:
        """Start serving on host:port."""
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()

        logger.info("control_panel_started", url=f"http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop serving."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("control_panel_stopped")

    async def _index_handler(self, request: web.Request) -> web.Response:
        return web.Response(text=INDEX_HTML, content_type="text/html")

    async def _health_handler(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def _run_handler(self, request: web.Request) -> web.Response:
        """Run a workflow named in the JSON body."""
        try:
            body: Any = await request.json() if request.can_read_body else {}
        except json.JSONDecodeError:
            return web.json_response({"ok": False, "message": "Invalid JSON body"}, status=400)

        if not isinstance(body, dict):
            return web.json_response({"ok": False, "message": "Body must be a JSON object"}, status=400)

        workflow = self.base_dir / (body.get("workflow") or self.default_workflow)

        try:
            async with self._run_lock:
                outcome = await self.engine.run_workflow(
                    workflow,
                    output_dir=body.get("outputDir"),
                    headless=_optional_bool(body.get("headless")),
                    continue_on_failure=_optional_bool(body.get("continueOnFailure")),
                    extra={"source": "panel"},
                )
        except FrameworkError as e:
            logger.warning("panel_run_failed", workflow=str(workflow), error=e.message)
            return web.json_response({"ok": False, "message": e.message}, status=500)
        except Exception as e:
            logger.exception("panel_run_error", workflow=str(workflow))
            return web.json_response({"ok": False, "message": str(e)}, status=500)

        return web.json_response({
            "ok": True,
            "runId": outcome.run_id,
            "status": outcome.report.status,
            "report": str(outcome.report_path),
        })

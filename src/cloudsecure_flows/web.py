"""
Web interface for CloudSecure Flows: preset management and filter runs.
"""

from pathlib import Path
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates

from .config import DEFAULT_CONFIG
from .errors import (
    CloudSecureFlowsError,
    ConfigError,
    FatalIOError,
    ParseError,
    PresetNotFoundError,
)
from .filter_engine import Preset, apply_preset, output_file_name
from .logging_utils import (
    configure_package_logging,
    generate_run_id,
    get_run_result,
    log_run_end,
    log_run_start,
    setup_logger,
)
from .presets import PresetStore

logger = setup_logger("cloudsecure_flows.web")


class WebApplicationFactory:
    """Factory for creating and configuring the FastAPI application."""

    @staticmethod
    def create_app(preset_path: str = DEFAULT_CONFIG["presets_file"]) -> FastAPI:
        """Create and configure FastAPI application."""
        from . import __version__

        configure_package_logging()
        app = FastAPI(title="CloudSecure Flows", version=__version__)

        templates_dir = Path(__file__).parent / "templates"
        templates = Jinja2Templates(directory=str(templates_dir))
        store = PresetStore(preset_path)

        RouteRegistrar.register_routes(app, templates, store)

        return app


class RouteRegistrar:
    """Handles registration of web routes."""

    @staticmethod
    def register_routes(
        app: FastAPI, templates: Jinja2Templates, store: PresetStore
    ) -> None:
        """Register all application routes."""

        @app.get("/", response_class=HTMLResponse)
        async def home(request: Request) -> Any:
            """Serve the preset overview page."""
            return templates.TemplateResponse(
                request, "index.html", {"presets": store.load()}
            )

        @app.get("/api/test")
        async def test_endpoint() -> Any:
            """Test endpoint to verify API is working."""
            return {"status": "ok", "message": "API is working"}

        @app.get("/api/presets")
        def list_presets() -> Any:
            return {"presets": [preset.to_json_dict() for preset in store.load()]}

        @app.get("/api/presets/{name}")
        def get_preset(name: str) -> Any:
            if (preset := store.get(name)) is None:
                raise HTTPException(status_code=404, detail=f"Preset '{name}' not found")
            return preset.to_json_dict()

        @app.post("/api/presets", status_code=201)
        def create_preset(preset: Preset) -> Any:
            store.add(preset)
            return preset.to_json_dict()

        @app.delete("/api/presets/{name}")
        def delete_preset(name: str) -> Any:
            if not (removed := store.delete(name)):
                raise HTTPException(status_code=404, detail=f"Preset '{name}' not found")
            return {"deleted": removed}

        @app.post("/api/filter")
        def run_filter(
            input_file: str = Form(...),
            preset: str = Form(...),
            output_file: Optional[str] = Form(None),
            list_dir: Optional[str] = Form(None),
        ) -> Any:
            """Run a saved preset over a flow CSV file on the server."""
            request_data = FilterRequest(input_file, preset, output_file, list_dir)
            return FilterService(store).run(request_data)

        @app.get("/api/runs/{run_id}")
        async def get_run_result_endpoint(run_id: str) -> Any:
            """Retrieve stored run result by ID."""
            if result := get_run_result(run_id):
                return JSONResponse(content=result)
            raise HTTPException(status_code=404, detail="Run result not found")


class FilterRequest:
    """Data class for filter request parameters."""

    def __init__(
        self,
        input_file: str,
        preset: str,
        output_file: Optional[str] = None,
        list_dir: Optional[str] = None,
        run_id: Optional[str] = None,
    ):
        self.input_file = input_file
        self.preset = preset
        self.output_file = output_file or None
        self.list_dir = list_dir or None
        self.run_id = run_id or generate_run_id()


class FilterService:
    """Runs presets on behalf of web requests."""

    STATUS_CODES: dict[type, int] = {
        PresetNotFoundError: 404,
        ParseError: 400,
        ConfigError: 400,
        FatalIOError: 400,
    }

    def __init__(self, store: PresetStore):
        self.store = store

    def run(self, request: FilterRequest) -> JSONResponse:
        run_id = request.run_id
        log_run_start(
            logger, run_id, input_file=request.input_file, preset=request.preset
        )

        try:
            preset = self.store.find(request.preset)
            output_file = request.output_file or output_file_name(
                request.input_file, preset.name
            )
            result = apply_preset(
                request.input_file, preset, output_file, list_dir=request.list_dir
            )
        except CloudSecureFlowsError as e:
            log_run_end(logger, run_id, False, error=str(e))
            status_code = next(
                (code for kind, code in self.STATUS_CODES.items() if isinstance(e, kind)),
                500,
            )
            raise HTTPException(status_code=status_code, detail=str(e))

        data = {"run_id": run_id, "preset": preset.name, **result.to_dict()}
        log_run_end(logger, run_id, True, result_data=data)
        return JSONResponse(content=data)


def run_server(
    host: str = "127.0.0.1",
    port: int = 8000,
    preset_path: str = DEFAULT_CONFIG["presets_file"],
) -> None:
    """Run the web server."""
    print("Starting CloudSecure Flows web interface...")
    print(f"Open your browser to: http://{host}:{port}")
    uvicorn.run(WebApplicationFactory.create_app(preset_path), host=host, port=port)

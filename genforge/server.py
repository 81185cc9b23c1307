"""FastAPI application and CLI entry point for GenForge.

Endpoints
---------
POST /generate           -> new project from a prompt
POST /chat               -> follow-up turn, upserts into ``projectId`` if given
POST /update-file        -> write one file directly (no model call)
GET  /project/{id}       -> every file of a project
GET  /download/{id}      -> project zip, rebuilt when missing or stale
GET  /projects           -> project listing
GET  /health             -> liveness probe

Typed :class:`~genforge.errors.GenForgeError` failures are answered with HTTP
200 and a ``{"success": false, "error", "code", "hint"?}`` body; only
``/download`` uses HTTP status codes, because its success body is a file.

Run with::

    genforge --port 5000
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from rich.console import Console
from rich.panel import Panel

from genforge import __version__
from genforge.config import Config
from genforge.errors import ConfigError, GenForgeError, ProjectNotFound
from genforge.pipeline import GenerationPipeline, failure_body
from genforge.storage import PackagingError, UnsafePathError
from genforge.utils import print_error

console = Console()


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

# Every field is optional at the schema level; the pipeline reports missing
# ones as ``missing_required_field`` rather than a 422.


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GenerateRequest(_CamelModel):
    prompt: str | None = None
    conversation_id: str | None = Field(default=None, alias="conversationId")


class ChatRequest(_CamelModel):
    prompt: str | None = None
    conversation_id: str | None = Field(default=None, alias="conversationId")
    project_id: str | None = Field(default=None, alias="projectId")


class UpdateFileRequest(_CamelModel):
    project_id: str | None = Field(default=None, alias="projectId")
    file_path: str | None = Field(default=None, alias="filePath")
    content: str | None = None


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(pipeline: GenerationPipeline) -> FastAPI:
    """Build the FastAPI app around an already-constructed pipeline."""
    config = pipeline.config
    app = FastAPI(title="GenForge", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.pipeline = pipeline

    @app.exception_handler(GenForgeError)
    async def _typed_failure(request: Request, exc: GenForgeError) -> JSONResponse:
        console.print(f"[red]{request.url.path} failed:[/red] [{exc.code}] {exc.message}")
        return JSONResponse(failure_body(exc, debug=config.debug))

    @app.exception_handler(Exception)
    async def _unexpected_failure(request: Request, exc: Exception) -> JSONResponse:
        console.print_exception()
        print_error(f"Unexpected error on {request.url.path}: {exc}")
        return JSONResponse(
            {"success": False, "error": "Internal error", "code": "internal_error"},
            status_code=500,
        )

    @app.post("/generate")
    async def generate(body: GenerateRequest) -> dict:
        outcome = await pipeline.generate(body.prompt, body.conversation_id)
        return outcome.to_dict()

    @app.post("/chat")
    async def chat(body: ChatRequest) -> dict:
        outcome = await pipeline.chat(body.prompt, body.conversation_id, body.project_id)
        return outcome.to_dict()

    @app.post("/update-file")
    async def update_file(body: UpdateFileRequest) -> dict:
        return await pipeline.update_file(body.project_id, body.file_path, body.content)

    @app.get("/project/{project_id}")
    async def get_project(project_id: str) -> dict:
        return await pipeline.get_project(project_id)

    @app.get("/download/{project_id}", response_model=None)
    async def download(project_id: str) -> FileResponse | JSONResponse:
        try:
            archive = await pipeline.archive_for_download(project_id)
        except (ProjectNotFound, UnsafePathError):
            return JSONResponse({"error": "Project not found"}, status_code=404)
        except PackagingError as exc:
            print_error(f"Download failed for {project_id}: {exc.message}")
            return JSONResponse({"error": "Failed to create ZIP"}, status_code=500)
        return FileResponse(
            archive.path,
            media_type="application/zip",
            filename=f"{project_id}.zip",
        )

    @app.get("/projects")
    async def list_projects() -> dict:
        return await pipeline.list_projects()

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def main() -> None:
    """CLI entry point for ``genforge`` / ``python -m genforge.server``."""
    parser = argparse.ArgumentParser(
        description="GenForge -- prompt-to-project generation service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  genforge\n"
            "  genforge --port 8080 --data-dir ./data\n"
            "  genforge --env-file prod.env --debug\n"
        ),
    )
    parser.add_argument("--host", default=None, help="Bind address (default: GENFORGE_HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Port (default: PORT or 5000)")
    parser.add_argument("--data-dir", default=None, help="Data root (default: GENFORGE_DATA_DIR or ./data)")
    parser.add_argument("--dataset-dir", default=None, help="Few-shot dataset directory")
    parser.add_argument("--env-file", default=None, help="Load environment from this file instead of .env")
    parser.add_argument("--debug", action="store_true", help="Attach raw-output previews to failures")

    args = parser.parse_args()

    load_dotenv(args.env_file)
    try:
        config = Config.from_env()
    except ValueError as exc:
        console.print(f"[bold red]Error:[/bold red] Invalid configuration: {exc}")
        sys.exit(1)

    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port
    if args.data_dir:
        config.data_dir = Path(args.data_dir)
    if args.dataset_dir:
        config.dataset_dir = Path(args.dataset_dir)
    if args.debug:
        config.debug = True

    try:
        pipeline = GenerationPipeline.from_config(config)
    except ConfigError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc.message}")
        if exc.hint:
            console.print(f"[dim]{exc.hint}[/dim]")
        sys.exit(1)

    console.print(
        Panel(
            f"[bold bright_cyan]GenForge {__version__}[/bold bright_cyan]\n"
            f"Model   : {config.model.name}\n"
            f"Data    : {config.data_dir.resolve()}\n"
            f"Dataset : {len(pipeline.examples)} example(s)\n"
            f"Listen  : http://{config.server.host}:{config.server.port}",
            title="[bold]Server Start[/bold]",
            border_style="bright_cyan",
        )
    )

    uvicorn.run(create_app(pipeline), host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()

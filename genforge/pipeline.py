"""GenForge request pipeline.

Drives one request from prompt to project:

1. Read the conversation history and call the model (serialised per
   conversation id).
2. Recover a validated file mapping from the raw response.
3. Materialize it into the project store (serialised per project id).
4. Package the project as a zip archive. Failure here only drops the
   archive from the response.

Components raise typed :class:`~genforge.errors.GenForgeError` subclasses;
the HTTP layer turns them into ``{"success": false, ...}`` bodies with
:func:`failure_body`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from rich.console import Console

from genforge.config import Config
from genforge.dataset import Example, load_dataset, render_examples
from genforge.errors import GenForgeError, MissingRequiredField, ModelCallError, ProjectNotFound
from genforge.extraction import ExtractionError, ExtractionResult, extract_file_mapping
from genforge.llm_client import GeminiClient, TextGenerator
from genforge.prompts import (
    build_system_instruction,
    chat_message,
    generate_message,
    to_model_messages,
)
from genforge.sessions import InMemorySessionStore, Role, SessionStore
from genforge.storage import (
    ArchiveHandle,
    ArchivePackager,
    LocalDiskBackend,
    PackagingError,
    ProjectMaterializer,
    StorageBackend,
)
from genforge.storage.backends import check_project_id
from genforge.utils import (
    KeyedLocks,
    format_duration,
    print_error,
    print_success,
    print_warning,
    save_text,
    timestamp_id,
    truncate,
)

console = Console()


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class GenerationOutcome:
    """Everything a successful generate/chat request produced."""

    project_id: str
    conversation_id: str
    files: dict[str, str]
    strategy: str
    warnings: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    archive: ArchiveHandle | None = None

    @property
    def file_count(self) -> int:
        return len(self.files)

    def to_dict(self) -> dict[str, Any]:
        """Return the camelCase response body."""
        body: dict[str, Any] = {
            "success": True,
            "projectId": self.project_id,
            "conversationId": self.conversation_id,
            "files": self.files,
            "fileCount": self.file_count,
            "warnings": self.warnings,
        }
        if self.failures:
            body["failures"] = self.failures
        if self.archive is not None:
            body["archive"] = self.archive.to_dict()
        return body


def failure_body(exc: GenForgeError, debug: bool = False) -> dict[str, Any]:
    """Build the ``{"success": false, ...}`` body for a typed failure.

    In debug mode extraction failures also carry a preview of the raw model
    output and the path of the saved diagnostics file.
    """
    body: dict[str, Any] = {"success": False, **exc.to_dict()}
    if debug and isinstance(exc, ExtractionError):
        body["rawPreview"] = exc.preview
        if exc.diagnostics_path:
            body["diagnosticsFile"] = exc.diagnostics_path
    return body


def _require(**fields: Any) -> None:
    missing = [
        name
        for name, value in fields.items()
        if value is None or (isinstance(value, str) and not value.strip())
    ]
    if missing:
        raise MissingRequiredField(missing)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class GenerationPipeline:
    """Orchestrates model calls, extraction, materialization and packaging.

    Attributes:
        config: Service configuration.
        generator: Text-generation provider.
        sessions: Conversation history store.
        materializer: Writes file mappings into the project store.
        packager: Builds project archives.
    """

    def __init__(
        self,
        config: Config,
        generator: TextGenerator,
        sessions: SessionStore | None = None,
        backend: StorageBackend | None = None,
        examples: list[Example] | None = None,
    ) -> None:
        self.config = config
        self.generator = generator
        if sessions is None:
            sessions = InMemorySessionStore(max_messages=config.max_history_messages)
        self.sessions = sessions

        if backend is None:
            backend = LocalDiskBackend(config.projects_dir)
        locks = KeyedLocks()
        self.materializer = ProjectMaterializer(backend, locks)
        self.packager = ArchivePackager(backend, config.archives_dir, locks)

        self.examples = examples or []
        self.system_instruction = build_system_instruction(
            render_examples(self.examples, config.few_shot_limit)
        )

    @classmethod
    def from_config(cls, config: Config) -> "GenerationPipeline":
        """Build the production pipeline: Gemini client, disk store, dataset.

        Raises:
            ConfigError: If the provider credential is missing.
        """
        api_key = config.require_api_key()
        config.ensure_directories()
        generator = GeminiClient(
            api_key=api_key,
            model=config.model.name,
            base_url=config.model.url,
            timeout=config.model.timeout,
            temperature=config.model.temperature,
        )
        return cls(config, generator, examples=load_dataset(config.dataset_dir))

    # ------------------------------------------------------------------
    # Internal steps
    # ------------------------------------------------------------------

    async def _call_model(self, conversation_id: str | None, user_message: str) -> tuple[str, str]:
        """Run one conversation turn and return ``(conversation_id, raw_text)``.

        The user message and the raw answer are both recorded, even if the
        answer later turns out to be unusable, so the next turn sees what the
        model actually said.
        """
        conversation_id, _ = await self.sessions.get_or_create(conversation_id)
        async with self.sessions.turn(conversation_id):
            history = await self.sessions.history(conversation_id)
            messages = to_model_messages(history, user_message)
            response = await self.generator.generate(messages, system=self.system_instruction)
            if not response.success:
                print_error(f"Model call failed: {response.error}")
                raise ModelCallError(response.error or "Model call failed")

            await self.sessions.append(conversation_id, Role.USER, user_message)
            await self.sessions.append(conversation_id, Role.MODEL, response.text)

        console.print(
            f"[cyan]Model response:[/cyan] {len(response.text)} chars "
            f"in {format_duration(response.duration_ms / 1000)}"
        )
        console.print(f"[dim]First 200 chars: {response.text[:200]!r}[/dim]")
        return conversation_id, response.text

    async def _save_diagnostics(self, raw: str) -> str | None:
        path = self.config.diagnostics_dir / f"failed_{timestamp_id()}.txt"
        try:
            await save_text(raw, path)
        except OSError as exc:
            print_warning(f"Could not save failed response to {path}: {exc}")
            return None
        return str(path)

    async def _extract(self, raw: str) -> ExtractionResult:
        """Extract the file mapping, persisting *raw* when that fails."""
        try:
            result = extract_file_mapping(raw)
        except ExtractionError as exc:
            print_error(f"JSON extraction failed: {exc.message}")
            console.print(f"[dim]Raw response: {truncate(raw, 1000)}[/dim]")
            exc.diagnostics_path = await self._save_diagnostics(raw)
            raise
        console.print(f"[green]JSON parsed successfully:[/green] {result.summary()}")
        return result

    async def _try_pack(self, project_id: str) -> ArchiveHandle | None:
        try:
            return await self.packager.pack(project_id)
        except PackagingError as exc:
            print_warning(f"ZIP creation failed: {exc.message}")
            return None

    async def _run(
        self,
        user_message: str,
        conversation_id: str | None,
        project_id: str | None,
    ) -> GenerationOutcome:
        conversation_id, raw = await self._call_model(conversation_id, user_message)
        result = await self._extract(raw)
        handle = await self.materializer.materialize(result.files, project_id)
        archive = await self._try_pack(handle.project_id)
        print_success(f"Project {handle.project_id} ready: {handle.files_written} file(s)")

        written = set(handle.written)
        return GenerationOutcome(
            project_id=handle.project_id,
            conversation_id=conversation_id,
            files={path: content for path, content in result.files.items() if path in written},
            strategy=result.strategy,
            warnings=result.warnings,
            failures=handle.failures,
            archive=archive,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def generate(self, prompt: str | None, conversation_id: str | None = None) -> GenerationOutcome:
        """Generate a brand-new project from *prompt*.

        Raises:
            MissingRequiredField: If *prompt* is empty.
            ModelCallError: If the provider returned no text.
            ExtractionError: If no file mapping could be recovered.
            MaterializationError: If nothing could be written.
        """
        _require(prompt=prompt)
        console.print(f"[bold cyan]Generating project for:[/bold cyan] {prompt}")
        return await self._run(generate_message(prompt), conversation_id, project_id=None)

    async def chat(
        self,
        prompt: str | None,
        conversation_id: str | None,
        project_id: str | None = None,
    ) -> GenerationOutcome:
        """Apply a follow-up instruction, upserting into *project_id* if given.

        Without *project_id* (``None`` or empty) the files land in a new
        project.
        """
        _require(prompt=prompt, conversationId=conversation_id)
        project_id = project_id or None
        if project_id is not None:
            check_project_id(project_id)
        console.print(f"[bold cyan]Chat request:[/bold cyan] {prompt}")
        return await self._run(chat_message(prompt), conversation_id, project_id)

    async def update_file(
        self,
        project_id: str | None,
        file_path: str | None,
        content: str | None,
    ) -> dict[str, Any]:
        """Write one file directly, without involving the model."""
        _require(projectId=project_id, filePath=file_path)
        if content is None:
            raise MissingRequiredField(["content"])
        written = await self.materializer.write_file(project_id, file_path, content)
        return {"success": True, "filePath": written, "projectId": project_id}

    async def get_project(self, project_id: str) -> dict[str, Any]:
        """Return every file of a project."""
        check_project_id(project_id)
        files = await self.materializer.read_project(project_id)
        return {
            "success": True,
            "projectId": project_id,
            "files": files,
            "fileCount": len(files),
        }

    async def list_projects(self) -> dict[str, Any]:
        projects = await self.materializer.list_projects()
        return {"success": True, "projects": [info.to_dict() for info in projects]}

    async def archive_for_download(self, project_id: str) -> ArchiveHandle:
        """Return a fresh archive for *project_id*, building it if needed.

        Raises:
            ProjectNotFound: If the project does not exist.
            PackagingError: If the archive cannot be built.
        """
        check_project_id(project_id)
        if not await self.materializer.project_exists(project_id):
            raise ProjectNotFound(project_id)
        return await self.packager.ensure_fresh(project_id)

"""Code tools: handler generation, server code sub-agent, saving and building."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
from pathlib import Path

from pydantic import BaseModel, Field

from doubletab.config import BuildConfig
from doubletab.llm import ChatClient
from doubletab.memory import SessionMemory
from doubletab.orchestrator import runAgent
from doubletab.prompts import GENERATE_SERVER_CODE_PROMPT
from doubletab.tools.registry import Tool, ToolRegistry

logger = logging.getLogger(__name__)

_SERVER_INTERFACE = re.compile(r"type ServerInterface interface \{\n(.*?)\n\}", re.DOTALL)


def apiDir(project_root: Path) -> Path:
    return project_root / "pkg" / "api"


def trimNonCode(text: str, lang: str) -> str:
    """Return the body of the first ```lang fence, or text unchanged if there is none."""
    parts = text.split("```" + lang, 1)
    if len(parts) == 1:
        return text
    return parts[1].split("```", 1)[0]


def extractServerInterface(path: Path) -> str:
    """Method signatures of oapi-codegen's ServerInterface as a Go interface block."""
    match = _SERVER_INTERFACE.search(path.read_text())
    if not match:
        raise ValueError(f"ServerInterface not found in {path}")
    methods = [
        line.strip()
        for line in match.group(1).splitlines()
        if line.strip() and not line.strip().startswith("//")
    ]
    if not methods:
        raise ValueError("ServerInterface has no methods")
    body = "\n".join(f"    {m}" for m in methods)
    return f"type ServerInterface interface {{\n{body}\n}}\n"


async def runCommand(
    argv: list[str], cwd: Path, timeout: float
) -> tuple[int, str]:
    """Run argv in cwd, return (exit code, combined output)."""
    proc = await asyncio.create_subprocess_exec(
        *argv,
        cwd=str(cwd),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    try:
        out, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except BaseException:
        # Timeout or cancellation: don't leave the child running
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
        raise
    return proc.returncode or 0, out.decode(errors="replace")


class GenerateHandlersCodeTool(Tool):
    name = "generate_handlers_code"
    description = "Generates Go code implementing handlers based on previously generated OpenAPI 3.0 spec."

    def __init__(self, project_root: Path, build: BuildConfig):
        self.project_root = project_root
        self.build = build

    async def invoke(self, args: BaseModel) -> str:
        root = self.project_root.resolve()
        cmd = " ".join(self.build.generate_command)
        try:
            code, output = await runCommand(self.build.generate_command, root, self.build.timeout)
        except asyncio.TimeoutError:
            return f"{cmd} failed: timed out after {self.build.timeout:g}s"
        except OSError as e:
            return f"{cmd} failed: {e}"
        if code != 0:
            return f"{cmd} failed: exit status {code}\n{output}"
        return "Handlers code generated successfully"


class SaveServerCodeArgs(BaseModel):
    server_go_code: str = Field(description="Complete contents of server.go.")


class SaveServerCodeTool(Tool):
    name = "save_server_code"
    description = "Save generated server Go code to the server.go file in the api package."
    Arguments = SaveServerCodeArgs

    def __init__(self, project_root: Path):
        self.project_root = project_root

    async def invoke(self, args: SaveServerCodeArgs) -> str:
        target = apiDir(self.project_root) / "server.go"
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(trimNonCode(args.server_go_code, "go"))
        except OSError as e:
            return f"Failed to write server.go file: {e}"
        return "Server code saved successfully"


class BuildCodeTool(Tool):
    name = "build_code"
    description = "Builds Go code generated based on previously generated OpenAPI 3.0 spec."

    def __init__(self, project_root: Path, build: BuildConfig, workspace: Path):
        self.project_root = project_root
        self.build = build
        self.workspace = workspace

    async def invoke(self, args: BaseModel) -> str:
        root = self.project_root.resolve()
        cmd = " ".join(self.build.build_command)
        try:
            code, output = await runCommand(self.build.build_command, root, self.build.timeout)
        except asyncio.TimeoutError:
            return f"{cmd} failed: timed out after {self.build.timeout:g}s"
        except OSError as e:
            return f"{cmd} failed: {e}"
        (self.workspace / "build.log").write_text(output)
        if code != 0:
            return f"{cmd} failed: exit status {code}\n{output}"
        return "Code built successfully"


class GenerateServerCodeArgs(BaseModel):
    openapi_spec: str = Field(description="OpenAPI 3.0 spec in YAML format.")
    build_errors: str = Field(default="", description="Errors from the previous build, if any.")


class GenerateServerCodeTool(Tool):
    name = "generate_server_code"
    description = "Generates Go code implementing server based on previously generated OpenAPI 3.0 spec."
    Arguments = GenerateServerCodeArgs

    def __init__(
        self,
        chat: ChatClient,
        tools: ToolRegistry,
        memory: SessionMemory,
        project_root: Path,
        model: str | None = None,
        cancel: asyncio.Event | None = None,
    ):
        self.chat = chat
        self.tools = tools
        self.memory = memory
        self.project_root = project_root
        self.model = model
        self.cancel = cancel

    async def invoke(self, args: GenerateServerCodeArgs) -> str:
        logger.debug("Creating server code for OpenAPI spec: %s", args.openapi_spec)
        try:
            iface = extractServerInterface(apiDir(self.project_root) / "handlers.gen.go")
        except (OSError, ValueError) as e:
            return f"Failed to extract ServerInterface methods: {e}"

        return await runAgent(
            self.chat,
            GENERATE_SERVER_CODE_PROMPT.format(interface=iface),
            [args.openapi_spec, args.build_errors],
            registry=self.tools,
            memory=self.memory,
            model=self.model,
            cancel=self.cancel,
        )

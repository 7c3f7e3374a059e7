"""generate_openapi_spec: sub-agent that drafts the API spec and lays out the project."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from pydantic import BaseModel, Field

from doubletab.llm import ChatClient
from doubletab.memory import SessionMemory
from doubletab.orchestrator import AGENT_CANCELLED, runAgent
from doubletab.prompts import GENERATE_OPENAPI_SPEC_PROMPT
from doubletab.tools.code import apiDir, trimNonCode
from doubletab.tools.registry import Tool, ToolRegistry

logger = logging.getLogger(__name__)

GENERATE_GO = """package api

//go:generate go run github.com/oapi-codegen/oapi-codegen/v2/cmd/oapi-codegen -generate types,std-http -package api -o handlers.gen.go doc/openapi.yaml
"""


def createBoilerplate(project_root: Path) -> Path:
    """Create pkg/api/doc and the go:generate stub. Returns the spec path."""
    api = apiDir(project_root)
    (api / "doc").mkdir(parents=True, exist_ok=True)
    generate = api / "generate.go"
    if not generate.exists():
        generate.write_text(GENERATE_GO)
    return api / "doc" / "openapi.yaml"


class GenerateOpenAPISpecArgs(BaseModel):
    user_input: str = Field(description="The user's description of entities and fields.")


class GenerateOpenAPISpecTool(Tool):
    name = "generate_openapi_spec"
    description = (
        "Generates an OpenAPI 3.0.0 spec in YAML format based on user input about entities and fields."
    )
    Arguments = GenerateOpenAPISpecArgs

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

    async def invoke(self, args: GenerateOpenAPISpecArgs) -> str:
        logger.debug("Creating spec for question: %s", args.user_input)
        spec = await runAgent(
            self.chat,
            GENERATE_OPENAPI_SPEC_PROMPT,
            args.user_input,
            registry=self.tools,
            memory=self.memory,
            model=self.model,
            cancel=self.cancel,
        )
        if spec == AGENT_CANCELLED:
            return spec
        spec = trimNonCode(spec, "yaml")

        try:
            path = createBoilerplate(self.project_root)
            path.write_text(spec)
        except OSError as e:
            return f"Failed to write openapi spec file: {e}"
        return spec

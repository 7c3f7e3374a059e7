"""The fixed tool catalogue for a session."""

from __future__ import annotations

from doubletab.session import Session
from doubletab.tools.code import (
    BuildCodeTool,
    GenerateHandlersCodeTool,
    GenerateServerCodeTool,
    SaveServerCodeTool,
)
from doubletab.tools.knowledge import QueryKnowledgeBaseTool
from doubletab.tools.memory import QueryMemoryTool
from doubletab.tools.openapi import GenerateOpenAPISpecTool
from doubletab.tools.registry import ToolRegistry
from doubletab.tools.schema import GenerateSchemaTool, ListTablesTool, StoreSchemaTool


def buildRegistry(session: Session) -> ToolRegistry:
    """Register every tool the main session advertises to the model."""
    cfg = session.config
    root = session.project_root
    code_model = cfg.llm.code_model

    registry = ToolRegistry(
        [
            QueryMemoryTool(session.memory),
            QueryKnowledgeBaseTool(session.knowledge),
            ListTablesTool(cfg.project_db_path),
            GenerateSchemaTool(session.chat, model=cfg.llm.chat_model),
            StoreSchemaTool(cfg.project_db_path),
            GenerateHandlersCodeTool(root, cfg.build),
            SaveServerCodeTool(root),
            BuildCodeTool(root, cfg.build, session.workspace),
        ]
    )
    registry.register(
        GenerateOpenAPISpecTool(
            session.chat,
            registry.subset("query_memory"),
            session.memory,
            root,
            model=cfg.llm.chat_model,
            cancel=session.cancel,
        )
    )
    registry.register(
        GenerateServerCodeTool(
            session.chat,
            registry.subset("query_knowledge_base", "save_server_code", "build_code"),
            session.memory,
            root,
            model=code_model,
            cancel=session.cancel,
        )
    )
    return registry

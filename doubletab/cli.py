"""doubletab CLI: interactive API builder session plus config and store inspection."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
import threading
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version
from typing import Any, NoReturn, get_args, get_origin

import typer
from pydantic import BaseModel, ValidationError
from rich import box
from rich.console import Console
from rich.table import Table

from doubletab.config import (
    BuildConfig,
    DoubleTabConfig,
    EmbeddingConfig,
    LLMConfig,
    MemoryConfig,
    loadConfig,
)
from doubletab.db import connect, listSessionMemories, listSessions
from doubletab.embeddings.factory import createProvider
from doubletab.errors import DoubleTabError, SessionCancelled
from doubletab.knowledge import KnowledgeRepository
from doubletab.models import AssistantTurn
from doubletab.orchestrator import Orchestrator
from doubletab.session import createSession
from doubletab.tools.catalog import buildRegistry

logger = logging.getLogger("doubletab")

FIRST_PROMPT = "What would you like to build? Describe your entities and their fields."

# ============================================================
# Console I/O
# ============================================================


def _readLine(prompt: str) -> asyncio.Future[str]:
    """Read one line on a daemon thread so a pending read never blocks shutdown."""
    loop = asyncio.get_running_loop()
    fut: asyncio.Future[str] = loop.create_future()

    def _settle(line: str | None, exc: BaseException | None) -> None:
        if fut.done():
            return
        if exc is not None:
            fut.set_exception(exc)
        else:
            fut.set_result(line or "")

    def _worker() -> None:
        try:
            line = _console.input(prompt)
        except (EOFError, KeyboardInterrupt) as e:
            loop.call_soon_threadsafe(_settle, None, EOFError(str(e)))
        else:
            loop.call_soon_threadsafe(_settle, line, None)

    threading.Thread(target=_worker, name="doubletab-input", daemon=True).start()
    return fut


async def _readInput() -> str:
    return await _readLine("\n[bold cyan]>[/bold cyan] ")


def _printDelta(text: str) -> None:
    _console.print(text, end="", markup=False, highlight=False, soft_wrap=True)


def _endTurn(turn: AssistantTurn) -> None:
    if turn.content:
        _console.print()
    for call in turn.tool_calls:
        _console.print(f"[dim]→ {call.name}[/dim]")


def _setupLogging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(name)s | %(message)s",
    )


async def _chat(cfg: DoubleTabConfig, first_input: str) -> None:
    session = await createSession(cfg)
    cancel = session.cancel
    loop = asyncio.get_running_loop()
    # Ctrl-C sets the event; the orchestrator notices at its next suspension point
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, cancel.set)
    try:
        orchestrator = Orchestrator(
            session.chat,
            buildRegistry(session),
            session.memory,
            readInput=_readInput,
            onDelta=_printDelta,
            onTurnEnd=_endTurn,
            cancel=cancel,
        )
        await orchestrator.run(first_input)
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)
        await session.close()


def _fmtTime(ms: int | None) -> str:
    if ms is None:
        return "-"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _checkFormat(format: str) -> None:
    if format not in ("human", "json"):
        raise typer.BadParameter(f"Invalid format {format!r}; choose human or json")


# ============================================================
# Config CLI helpers
# ============================================================


def _fmtVal(v: Any) -> str:
    if v is None:
        return "[dim](not set)[/dim]"
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, list):
        return " ".join(str(x) for x in v)
    return str(v)


def _annStr(ann: Any) -> str:
    """Return a simple string representation of a type annotation."""
    if get_origin(ann) is list:
        (item,) = get_args(ann) or (Any,)
        return f"list[{getattr(item, '__name__', str(item))}]"
    args = get_args(ann)
    if args:
        non_none = [a for a in args if a is not type(None)]
        has_none = type(None) in args
        base = non_none[0] if non_none else args[0]
        name = getattr(base, "__name__", str(base))
        return f"{name} | None" if has_none else name
    return getattr(ann, "__name__", str(ann))


def _unwrapModel(ann: Any) -> type[BaseModel] | None:
    """Extract a BaseModel subclass from Optional[X] / Union[X, None]."""
    if isinstance(ann, type) and issubclass(ann, BaseModel):
        return ann
    for arg in get_args(ann):
        if isinstance(arg, type) and issubclass(arg, BaseModel):
            return arg
    return None


def _getFieldAnnotation(dotpath: str) -> Any:
    """Walk model fields for dotpath, return annotation or None."""
    parts = dotpath.split(".")
    model: type[BaseModel] | None = DoubleTabConfig
    for part in parts[:-1]:
        f = model.model_fields.get(part)
        if f is None:
            return None
        model = _unwrapModel(f.annotation)
        if model is None:
            return None
    f = model.model_fields.get(parts[-1])
    return f.annotation if f else None


def _coerceTyped(value: str, annotation: Any) -> Any:
    """Coerce string value using the field annotation."""
    origin = get_origin(annotation)
    if origin is list:
        # Commands are given as one shell-style string
        return value.split()
    args = get_args(annotation) if origin else ()
    types = [a for a in args if a is not type(None)] if args else [annotation]
    base = types[0] if types else str

    if value.lower() in ("none", "null") and type(None) in (args or []):
        return None
    if base is bool:
        if value.lower() in ("true", "yes", "1"):
            return True
        if value.lower() in ("false", "no", "0"):
            return False
        raise ValueError(f"Expected bool, got {value!r}")
    if base is int:
        return int(value)
    if base is float:
        return float(value)
    return value


def _isSecret(dotpath: str) -> bool:
    return dotpath.rsplit(".", 1)[-1].endswith("api_key")


def _redact(value: Any, dotpath: str) -> Any:
    """Mask API keys in value (a scalar or a dumped section) down to their first four characters."""
    if isinstance(value, dict):
        return {k: _redact(v, f"{dotpath}.{k}" if dotpath else k) for k, v in value.items()}
    if _isSecret(dotpath) and isinstance(value, str) and value:
        return value[:4] + "…"
    return value


def _fail(format: str, message: str, label: str = "Error") -> NoReturn:
    if format == "json":
        print(json.dumps({"ok": False, "error": message}))
    else:
        _console.print(f"[red]{label}:[/red] {message}")
    raise typer.Exit(1)


def _renderConfigSection(title: str, pairs: list[tuple[str, Any, Any]]) -> None:
    """Print a section with title + key/value table. pairs = (key, value, default)."""
    _console.print(f"\n[bold]{title}[/bold]")
    t = Table(show_header=False, box=box.SIMPLE, padding=(0, 1))
    t.add_column("key", style="dim")
    t.add_column("val")
    for key, val, default in pairs:
        fmt = _fmtVal(_redact(val, key))
        if val != default:
            fmt = f"[yellow]{fmt}[/yellow]"
        t.add_row(key, fmt)
    _console.print(t)


def _lookup(dotpath: str) -> Any:
    node: Any = loadConfig().model_dump()
    for part in dotpath.split("."):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(dotpath)
        node = node[part]
    return node


def _readConfigFile() -> dict[str, Any]:
    """The config file as written: no defaults, no env overrides."""
    from doubletab.config import CONFIG_PATH

    if not CONFIG_PATH.exists():
        return {}
    try:
        return json.loads(CONFIG_PATH.read_text())
    except json.JSONDecodeError:
        logger.warning("%s is not valid JSON, starting from an empty config", CONFIG_PATH)
        return {}


def _writeConfigFile(raw: dict[str, Any]) -> None:
    from doubletab.config import CONFIG_PATH

    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_PATH.write_text(json.dumps(raw, indent=2) + "\n")


def _setDotted(raw: dict[str, Any], dotpath: str, value: Any) -> None:
    *parents, leaf = dotpath.split(".")
    node = raw
    for part in parents:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[leaf] = value


# ============================================================
# CLI (typer)
# ============================================================

_cli = typer.Typer(
    name="doubletab",
    help="Conversational Go API builder backed by an OpenAI-compatible model.",
    no_args_is_help=False,
    rich_markup_mode="rich",
)
_config_cli = typer.Typer(help="Read/write [bold]~/.doubletab/config.json[/bold].")
_memory_cli = typer.Typer(help="Inspect stored session memory.")
_knowledge_cli = typer.Typer(help="Query the knowledge corpus.")
_cli.add_typer(_config_cli, name="config")
_cli.add_typer(_memory_cli, name="memory")
_cli.add_typer(_knowledge_cli, name="knowledge")

_console = Console()


def _versionCallback(value: bool) -> None:
    if value:
        try:
            installed = version("doubletab")
        except PackageNotFoundError:
            installed = "unknown"
        _console.print(f"doubletab {installed}")
        raise typer.Exit()


@_cli.callback(invoke_without_command=True)
def _default(
    ctx: typer.Context,
    show_version: bool = typer.Option(
        False, "--version", callback=_versionCallback, is_eager=True, help="Show version and exit."
    ),
) -> None:
    """Start an interactive session (default when no subcommand given)."""
    if ctx.invoked_subcommand is None:
        chat(query=None, log_level=None)


@_cli.command()
def chat(
    query: str | None = typer.Argument(None, help="First request; prompted for when omitted."),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG|INFO|WARNING|ERROR"),
) -> None:
    """Start an interactive session."""
    cfg = loadConfig()
    _setupLogging(log_level or cfg.log_level)

    first = query or cfg.initial_query
    if not first:
        _console.print(f"[bold]{FIRST_PROMPT}[/bold]")
        try:
            first = _console.input("[bold cyan]>[/bold cyan] ")
        except (EOFError, KeyboardInterrupt):
            raise typer.Exit() from None
    if not first.strip():
        raise typer.Exit()

    try:
        asyncio.run(_chat(cfg, first))
    except SessionCancelled:
        _console.print("\n[dim]Cancelled.[/dim]")
        raise typer.Exit(130) from None
    except (DoubleTabError, ValueError, ConnectionError) as e:
        logger.debug("Session failed", exc_info=True)
        _console.print(f"\n[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


@_config_cli.command("list")
def config_list(
    format: str = typer.Option("human", "--format", "-f", help="Output format: human|json"),
) -> None:
    """Pretty-print the current config grouped by section."""
    _checkFormat(format)
    cfg = loadConfig()

    if format == "json":
        print(json.dumps(_redact(cfg.model_dump(), "")))
        raise typer.Exit()

    defaults = DoubleTabConfig()
    d = cfg.model_dump()
    dd = defaults.model_dump()

    general_keys = ["db_path", "project_db_path", "project_root", "initial_query", "log_level"]
    _renderConfigSection("General", [(k, d[k], dd[k]) for k in general_keys])

    def _subPairs(cfg_sub: Any, def_sub: Any, model: Any) -> list[tuple[str, Any, Any]]:
        return [(k, getattr(cfg_sub, k), getattr(def_sub, k)) for k in model.model_fields]

    _renderConfigSection("Embedding", _subPairs(cfg.embedding, defaults.embedding, EmbeddingConfig))
    _renderConfigSection("LLM", _subPairs(cfg.llm, defaults.llm, LLMConfig))
    _renderConfigSection("Memory", _subPairs(cfg.memory, defaults.memory, MemoryConfig))
    _renderConfigSection("Build", _subPairs(cfg.build, defaults.build, BuildConfig))


@_config_cli.command("get")
def config_get(
    dotpath: str = typer.Argument(help="Dot-separated key, e.g. llm.chat_model"),
    format: str = typer.Option("human", "--format", "-f", help="Output format: human|json"),
) -> None:
    """Print one effective config value (API keys masked)."""
    _checkFormat(format)
    try:
        value = _redact(_lookup(dotpath), dotpath)
    except KeyError:
        _fail(format, f"Key not found: {dotpath}")

    ann = _getFieldAnnotation(dotpath)
    type_name = _annStr(ann) if ann else "unknown"
    if format == "json":
        print(json.dumps({"key": dotpath, "value": value, "type": type_name}))
        return
    hint = f"  [dim]({type_name})[/dim]" if ann else ""
    _console.print(f"[bold]{dotpath}[/bold] = {_fmtVal(value)}{hint}")


@_config_cli.command("set")
def config_set(
    dotpath: str = typer.Argument(help="Dot-separated key path"),
    value: str = typer.Argument(help="Value, converted to the field's type"),
    format: str = typer.Option("human", "--format", "-f", help="Output format: human|json"),
) -> None:
    """Write one value to the config file. The whole file is validated before saving."""
    _checkFormat(format)
    ann = _getFieldAnnotation(dotpath)
    if ann is None:
        _fail(format, f"Unknown key: {dotpath}")
    try:
        coerced = _coerceTyped(value, ann)
    except ValueError as e:
        _fail(format, str(e), label="Invalid")

    raw = _readConfigFile()
    _setDotted(raw, dotpath, coerced)
    try:
        DoubleTabConfig(**raw)
    except ValidationError as e:
        _fail(format, str(e), label="Invalid value")
    _writeConfigFile(raw)

    shown = _redact(coerced, dotpath)
    if format == "json":
        print(json.dumps({"ok": True, "key": dotpath, "value": shown}))
    else:
        _console.print(f"[green]Set[/green] {dotpath} = {shown!r}")


@_memory_cli.command("sessions")
def memory_sessions(
    format: str = typer.Option("human", "--format", "-f", help="Output format: human|json"),
) -> None:
    """List sessions recorded in the store, most recent first."""
    _checkFormat(format)
    db = connect(loadConfig())
    try:
        rows = [dict(r) for r in listSessions(db)]
    finally:
        db.close()

    if format == "json":
        print(json.dumps({"sessions": rows}))
        return
    if not rows:
        _console.print("[dim]No sessions recorded.[/dim]")
        return
    t = Table(box=box.SIMPLE)
    t.add_column("session")
    t.add_column("entries", justify="right")
    t.add_column("last activity", style="dim")
    for r in rows:
        t.add_row(r["session_id"], str(r["entries"]), _fmtTime(r["last_at"]))
    _console.print(t)


@_memory_cli.command("show")
def memory_show(
    session: str | None = typer.Option(None, "--session", "-s", help="Session id to show"),
    limit: int | None = typer.Option(None, "--limit", "-n", help="Max entries"),
    format: str = typer.Option("human", "--format", "-f", help="Output format: human|json"),
) -> None:
    """Print stored memory entries in append order."""
    _checkFormat(format)
    db = connect(loadConfig())
    try:
        rows = [dict(r) for r in listSessionMemories(db, session_id=session, limit=limit)]
    finally:
        db.close()

    if format == "json":
        print(json.dumps({"memories": rows, "count": len(rows)}))
        return
    if not rows:
        _console.print("[dim]No memory entries.[/dim]")
        return
    for r in rows:
        content = r["content"][:200] + "..." if len(r["content"]) > 200 else r["content"]
        prefix = "" if session else f"[dim]{r['session_id'][:8]}[/dim] "
        _console.print(
            f"{prefix}[dim]{_fmtTime(r['created_at'])}[/dim] [bold]{r['role']}[/bold]: ",
            end="",
        )
        _console.print(content, markup=False, highlight=False)


async def _queryKnowledge(cfg: DoubleTabConfig, text: str) -> str | None:
    embedder = await createProvider(cfg.embedding)
    db = connect(cfg, dimensions=embedder.dimensions)
    try:
        return await KnowledgeRepository(db, embedder, limit=cfg.memory.knowledge_limit).query(text)
    finally:
        await embedder.close()
        db.close()


@_knowledge_cli.command("query")
def knowledge_query(
    text: str = typer.Argument(help="Question to look up"),
    format: str = typer.Option("human", "--format", "-f", help="Output format: human|json"),
) -> None:
    """Return the knowledge snippet nearest to TEXT."""
    _checkFormat(format)
    try:
        hit = asyncio.run(_queryKnowledge(loadConfig(), text))
    except (DoubleTabError, ValueError, ConnectionError) as e:
        _fail(format, str(e))

    if format == "json":
        print(json.dumps({"query": text, "content": hit}))
    elif hit is None:
        _console.print("[dim]The knowledge base has no entries.[/dim]")
    else:
        _console.print(hit, markup=False, highlight=False)


def main() -> None:
    _cli()


if __name__ == "__main__":
    main()

"""Command-line interface: run a task or list the built-in tools."""

import argparse
import asyncio
import logging
import sys
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Any

from .config import Settings, load_settings
from .errors import TaskloopError
from .llm import create_with_fallback
from .logging import JSONLLogger
from .runner import AgentRunner
from .sandbox import LocalSandboxExecutor, create_executor
from .tools import ToolRegistry, register_builtin_tools
from .transcript import TranscriptLogger


class ConsoleEvents:
    """EventSink that prints agent events to stdout."""

    def __init__(self, stream: Any = None) -> None:
        self.stream = stream or sys.stdout

    async def broadcast(self, agent_id: str, event: dict[str, Any]) -> None:
        kind = event.get("type")
        if kind == "cycle_start":
            line = f"\n── Cycle {event['cycle'] + 1} ──"
        elif kind == "thought":
            reasoning = " ".join(event.get("reasoning") or [])
            line = f"🤔 {event['command']} {event.get('arguments') or {}}"
            if reasoning:
                line += f"\n   {reasoning[:300]}"
        elif kind == "result":
            mark = "✓" if event.get("success") else "✗"
            line = f"{mark} {event.get('summary')}"
        elif kind == "agent_error":
            line = f"Error: {event.get('error')}"
        else:
            return
        print(line, file=self.stream)


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    agent = settings.agent
    if args.max_cycles is not None:
        agent = replace(agent, max_cycles=args.max_cycles)
    if args.continuous:
        agent = replace(agent, continuous=True)
    if args.workspace is not None:
        agent = replace(agent, workspace_root=Path(args.workspace))

    sandbox = settings.sandbox
    if args.executor is not None:
        sandbox = replace(sandbox, executor=args.executor)

    return replace(settings, agent=agent, sandbox=sandbox)


async def _run_task(settings: Settings, task: str, agent_id: str) -> int:
    event_log = JSONLLogger(settings.log_dir)
    executor = create_executor(
        settings.sandbox.executor,
        settings.sandbox.policy(),
        max_output_chars=settings.sandbox.max_output_chars,
        event_log=event_log,
    )
    registry = register_builtin_tools(ToolRegistry(), executor)
    provider = create_with_fallback(settings.llm, settings.fallbacks)

    runner = AgentRunner(
        provider,
        registry,
        settings.llm,
        settings.agent,
        events=ConsoleEvents(),
        event_log=event_log,
        transcript=TranscriptLogger(settings.log_dir / "transcripts"),
    )

    try:
        outcome = await runner.run(agent_id, task)
    finally:
        await provider.aclose()

    print(f"\nStopped after {outcome.cycles} cycle(s): {outcome.stop_reason.value}")
    last = outcome.last_proposal
    if last is not None and last.is_terminal:
        summary = last.arguments.get("summary")
        if summary:
            print(f"\n{summary}")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Run the agent on a task until it finishes."""
    try:
        settings = _apply_overrides(load_settings(), args)
    except TaskloopError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    agent_id = args.agent_id or f"agent-{uuid.uuid4().hex[:8]}"
    print(f"Agent {agent_id} ({settings.llm.provider}:{settings.llm.model})")
    print(f"Workspace: {settings.agent.workspace_root}")

    try:
        return asyncio.run(_run_task(settings, args.task, agent_id))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130
    except TaskloopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_tools(args: argparse.Namespace) -> int:
    """List built-in tools and their parameters."""
    registry = register_builtin_tools(ToolRegistry(), LocalSandboxExecutor())

    for tool in registry.tools():
        print(f"{tool.name}")
        print(f"  {tool.description}")
        for param in tool.parameters:
            marker = "*" if param.required else " "
            print(f"   {marker} {param.name} ({param.type}) {param.description}")
        print()

    print(f"Total: {len(registry)} tool(s)")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="taskloop",
        description="Autonomous task-execution agent",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Sub-command help")

    run_parser = subparsers.add_parser("run", help="Run the agent on a task")
    run_parser.add_argument("task", help="Task description")
    run_parser.add_argument("--max-cycles", type=int, help="Maximum number of cycles")
    run_parser.add_argument(
        "--executor",
        choices=["local", "docker"],
        help="Code executor to use",
    )
    run_parser.add_argument(
        "--continuous",
        action="store_true",
        help="Keep cycling after task_complete until the cycle bound",
    )
    run_parser.add_argument("--workspace", help="Workspace directory for file tools")
    run_parser.add_argument("--agent-id", help="Agent id (generated when omitted)")

    subparsers.add_parser("tools", help="List built-in tools")

    return parser


def run_cli(argv: list[str] | None = None) -> int:
    """Run the CLI with given arguments.

    Args:
        argv: Command-line arguments. Uses sys.argv[1:] if None.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "run": cmd_run,
        "tools": cmd_tools,
    }

    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    return handler(args)

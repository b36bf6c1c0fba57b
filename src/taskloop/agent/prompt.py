"""Prompt builder for the agent."""

from dataclasses import dataclass, field

from ..llm.types import ChatFunction
from ..tools.base import Tool
from .memory import MemorySnapshot

SYSTEM_PROMPT_BASE = """You are Taskloop, an autonomous agent that accomplishes tasks by calling tools.

CONSTRAINTS:
{constraints}

RESOURCES:
{resources}

BEST PRACTICES:
{best_practices}

Respond with your reasoning, then call exactly one function.
When the task is done, call `task_complete` with a short summary."""

TASK_COMPLETE_FUNCTION = ChatFunction(
    name="task_complete",
    description="Signal that the task is finished and stop the agent.",
    parameters={
        "type": "object",
        "properties": {
            "summary": {"type": "string", "description": "What was accomplished"},
        },
        "required": ["summary"],
    },
)


@dataclass(frozen=True)
class DirectiveBundle:
    """Standing instructions rendered into the system prompt."""

    constraints: list[str] = field(default_factory=list)
    resources: list[str] = field(default_factory=list)
    best_practices: list[str] = field(default_factory=list)


DEFAULT_DIRECTIVES = DirectiveBundle(
    constraints=[
        "You must use the available tools to accomplish your task",
        "You cannot interact directly with users except through tool outputs",
        "You must break down complex tasks into smaller, manageable steps",
        "You should verify the results of your actions before proceeding",
    ],
    resources=[
        "Filesystem access within the workspace",
        "Fetching public web pages",
        "Code execution in a sandboxed environment",
        "Short-term and long-term memory of earlier cycles",
    ],
    best_practices=[
        "Always explain your reasoning before taking action",
        "Create a plan and follow it systematically",
        "Learn from past failures and adapt your approach",
        "Be efficient and avoid unnecessary actions",
    ],
)


def _numbered(items: list[str]) -> str:
    if not items:
        return "(none)"
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, start=1))


def build_system_prompt(directives: DirectiveBundle = DEFAULT_DIRECTIVES) -> str:
    """Render the directive bundle into the system prompt."""
    return SYSTEM_PROMPT_BASE.format(
        constraints=_numbered(directives.constraints),
        resources=_numbered(directives.resources),
        best_practices=_numbered(directives.best_practices),
    )


def build_task_prompt(
    task: str,
    cycle: int,
    memory: MemorySnapshot,
    tools: list[Tool],
    user_feedback: str | None = None,
) -> str:
    """Build the per-cycle user message.

    Includes the five newest short-term records, up to three long-term
    records, operator feedback when present, and the tool catalog.
    Required parameters are marked with ``*``.
    """
    sections = [f"TASK: {task}", f"CYCLE: {cycle}"]

    if memory.short_term:
        lines = [f"- [{m.type}] {m.content}" for m in memory.short_term[-5:]]
        sections.append("RECENT MEMORY:\n" + "\n".join(lines))

    if memory.long_term:
        lines = [f"- {m.content}" for m in memory.long_term[:3]]
        sections.append("RELEVANT PAST EXPERIENCE:\n" + "\n".join(lines))

    if user_feedback:
        sections.append(f"USER FEEDBACK: {user_feedback}")

    if tools:
        lines = []
        for tool in tools:
            lines.append(f"- {tool.name}: {tool.description}")
            if tool.parameters:
                params = ", ".join(
                    f"{p.name}{'*' if p.required else ''} ({p.type})" for p in tool.parameters
                )
                lines.append(f"  Parameters: {params}")
        sections.append("AVAILABLE TOOLS:\n" + "\n".join(lines))
    else:
        sections.append("AVAILABLE TOOLS:\nNo tools available.")

    return "\n\n".join(sections) + "\n"


def format_tools_as_functions(tools: list[Tool]) -> list[ChatFunction]:
    """Function descriptors for every tool, plus ``task_complete``."""
    functions = [
        ChatFunction(
            name=tool.name,
            description=tool.description,
            parameters=tool.get_schema()["function"]["parameters"],
        )
        for tool in tools
    ]
    if not any(f.name == TASK_COMPLETE_FUNCTION.name for f in functions):
        functions.append(TASK_COMPLETE_FUNCTION)
    return functions

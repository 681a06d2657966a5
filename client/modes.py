"""Chat modes: system instructions and prompt scaffolding per mode."""

from typing import Literal

from pydantic import BaseModel

ModeId = Literal["default", "simple-coder", "advanced-coder"]

CONTEXT_PREAMBLE = (
    "The user has provided this project context. Use your tools to operate on it. "
    "Do not output this context in your response."
)

THINK_PRIMER = (
    "Alright, before providing the final response, I will think step-by-step through "
    "the reasoning process and put it inside a <think> block using this format:\n\n"
    "```jsx\n<think>\nHuman request: (My interpretation of Human's request)\n"
    "High-level Plan: (A high level plan of what I'm going to do)\n"
    "Detailed Plan: (A more detailed plan that expands on the above plan)\n</think>\n```"
)

_THINK_START = "<think>"
_THINK_END = "</think>"

_CODER_RULES = """**IMPORTANT RULE**: If the user asks for a simple, single-file script (e.g., a small Python script, a single HTML file), you **MUST NOT** use any tools. Instead, write the code directly in your response using markdown code blocks."""

_CODER_CLOSING = """**Crucially, you must complete the user's entire request in a single turn. Do not perform one file modification and then stop. You must plan all the required changes and then issue all the necessary function calls in the same response.** Announce which files you are modifying before you make a change. When you are finished with all file modifications, let the user know you are done and write a summary of your changes."""

_ADVANCED_INSTRUCTION = (
    "You are an expert programmer orchestrating a multi-phase code generation process. "
    "Your primary purpose is to help the user with their code. You have access to a "
    "virtual file system and have been granted a set of tools to modify it in the final "
    "phase."
)


class Mode(BaseModel):
    """A chat mode.

    Args:
        id: Mode identifier.
        name: Display name.
        system_instruction: System prompt when a project is linked.
        system_instruction_no_project: System prompt when none is linked.
        is_coder: Whether the mode operates on the project.
        is_pipeline: Whether the mode runs the multi-phase pipeline instead of
            the tool-call loop.
    """

    id: ModeId
    name: str
    system_instruction: str | None = None
    system_instruction_no_project: str | None = None
    is_coder: bool = False
    is_pipeline: bool = False

    def instruction_for(self, project_linked: bool) -> str | None:
        if self.is_coder and not project_linked:
            return self.system_instruction_no_project
        return self.system_instruction


MODES: dict[str, Mode] = {
    "default": Mode(id="default", name="Default"),
    "simple-coder": Mode(
        id="simple-coder",
        name="Simple Coder",
        is_coder=True,
        system_instruction=(
            "You are an expert programmer. Your primary purpose is to help the user with "
            "their code. A project has been synced, and you have been granted a set of "
            "tools to modify its virtual file system.\n\n"
            f"{_CODER_RULES}\n\n"
            "For any request that requires **modifying the synced project** (e.g., code "
            "changes, new files, refactoring), you **MUST** use the provided file system "
            "tools (`writeFile`, `createFolder`, `move`, `deletePath`).\n\n"
            f"{_CODER_CLOSING}"
        ),
        system_instruction_no_project=(
            "You are an expert programmer. Your primary purpose is to help the user with "
            "their code.\n\n"
            f"{_CODER_RULES}\n\n"
            "No project is synced, so you have no file system tools. Write any code "
            "directly in your response.\n\n"
            "Announce which files you are writing, and finish with a short summary."
        ),
    ),
    "advanced-coder": Mode(
        id="advanced-coder",
        name="Advanced Coder",
        is_coder=True,
        is_pipeline=True,
        system_instruction=_ADVANCED_INSTRUCTION,
        system_instruction_no_project=_ADVANCED_INSTRUCTION,
    ),
}


def get_mode(mode_id: str) -> Mode:
    """Look up a mode by id.

    Raises:
        ValueError: If the mode does not exist.
    """
    if mode_id not in MODES:
        raise ValueError(f"Unknown mode '{mode_id}'. Available: {', '.join(MODES)}")
    return MODES[mode_id]


def strip_think_block(text: str) -> str:
    """Drop a leading ``<think>...</think>`` reasoning block from model text."""
    start = text.find(_THINK_START)
    end = text.rfind(_THINK_END)
    if start != -1 and end != -1 and start < end:
        return text[end + len(_THINK_END):].strip()
    return text

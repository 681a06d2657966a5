"""Multi-phase generation pipeline behind the advanced coder mode.

Instead of a single tool-calling conversation, the advanced coder works
through six phases:

1. several planners write high-level plans in parallel,
2. a lead engineer merges them into one master plan,
3. the master plan is turned into a code draft,
4. several reviewers check the draft in parallel, each either calling
   ``noProblemDetected`` or writing feedback,
5. the feedback is merged into one list of changes (skipped when every
   reviewer approved or none left feedback),
6. a final request returns the file operations as JSON.

The JSON operations are converted into ordinary tool calls, so they go
through the same executor as the simple coder's function calls.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from client.exceptions import CancellationError
from client.models import ChatMessage, FunctionCall, GenerateRequest, GenerateResponse
from client.modes import THINK_PRIMER, strip_think_block

logger = logging.getLogger(__name__)

DEFAULT_PLANNER_MODEL = "gemini-flash-latest"
DEFAULT_LEAD_MODEL = "gemini-2.5-pro"
DEFAULT_PLANNER_COUNT = 3
DEFAULT_REVIEWER_COUNT = 3
PHASE_COUNT = 6

PIPELINE_CONTEXT_PREAMBLE = (
    "The user has provided the following files as context for their request. "
    "Use the contents of these files to inform your answer."
)

NO_PROBLEM_DETECTED = "noProblemDetected"

NO_PROBLEM_DETECTED_TOOL: dict[str, Any] = {
    "name": NO_PROBLEM_DETECTED,
    "description": (
        "Call this function if you have reviewed the code draft and found no critical "
        "errors, bugs, or violations of best practices. If you call this, your text "
        "feedback will be ignored."
    ),
    "parameters": {"type": "OBJECT", "properties": {}},
}


def _operation_list(description: str, properties: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "ARRAY",
        "description": description,
        "items": {"type": "OBJECT", "properties": properties, "required": list(properties)},
    }


FILE_OPERATIONS_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "summary": {
            "type": "STRING",
            "description": "A detailed, user-facing explanation of the changes.",
        },
        "writeFiles": _operation_list(
            "A list of files to create or overwrite.",
            {"path": {"type": "STRING"}, "content": {"type": "STRING"}},
        ),
        "createFolders": _operation_list(
            "A list of folders to create.", {"path": {"type": "STRING"}}
        ),
        "moves": _operation_list(
            "A list of files or folders to move/rename.",
            {"sourcePath": {"type": "STRING"}, "destinationPath": {"type": "STRING"}},
        ),
        "deletePaths": _operation_list(
            "A list of files or folders to delete.", {"path": {"type": "STRING"}}
        ),
    },
    "required": ["summary"],
}

PLANNER_INSTRUCTION = (
    "You are a Senior Software Architect. Your task is to create a high-level plan to "
    "address the user's request. Do NOT write any code. Focus on the overall strategy, "
    "file structure, and key components."
)

CONSOLIDATION_INSTRUCTION = (
    "You are a Principal Engineer. Your task is to synthesize multiple high-level plans "
    "from your team of architects into a single, cohesive, and highly detailed master "
    "plan. The final plan should be actionable for a skilled developer. Do not reference "
    "the previous planning phase or the planners themselves; present this as your own "
    "unified plan."
)

DRAFTING_INSTRUCTION = (
    "You are a Staff Engineer. Your task is to generate a complete code draft based on "
    "the master plan. The output should be in a diff format where applicable. Do not use "
    "any function tools."
)

REVIEWER_INSTRUCTION = (
    "You are a meticulous Code Reviewer. Review the provided code draft for critical "
    "errors, bugs, incomplete implementation, or violations of best practices. If the "
    f"draft is acceptable, you MUST call the `{NO_PROBLEM_DETECTED}` function. Otherwise, "
    'provide your feedback. Do not reference the "Master Plan" or the source of the '
    "reasoning."
)

REVIEW_CONSOLIDATION_INSTRUCTION = (
    "You are a Tech Lead. Consolidate the following debugging feedback into a single, "
    "concise list of required changes for the final implementation. Do not reference the "
    "debuggers or the source of the comments."
)

FINAL_INSTRUCTION = """You are a file system operations generator. Your sole purpose is to generate a JSON object representing all necessary file system operations and a summary for the user.

Your entire output MUST be a single JSON object that strictly adheres to the provided schema. Do not output any other text, reasoning, or markdown. The JSON object must contain:
1.  A 'summary' (string): A detailed, user-facing explanation of the changes.
2.  'writeFiles' (array, optional): An array of objects, each with 'path' and 'content', for files to be created or overwritten.
3.  'createFolders' (array, optional): An array of objects, each with a 'path' for new directories.
4.  'moves' (array, optional): An array of objects, each with 'sourcePath' and 'destinationPath'.
5.  'deletePaths' (array, optional): An array of objects, each with a 'path' to be deleted."""

GenerateFunc = Callable[[GenerateRequest], Awaitable[GenerateResponse]]
StatusCallback = Callable[[str], None]


class PipelineSettings(BaseModel):
    """Models and fan-out used by the advanced coder.

    Args:
        planner_model: Model for the parallel planners and reviewers.
        lead_model: Model for consolidation, drafting and the final phase.
        planner_count: Number of parallel planners.
        reviewer_count: Number of parallel reviewers.
    """

    planner_model: str = DEFAULT_PLANNER_MODEL
    lead_model: str = DEFAULT_LEAD_MODEL
    planner_count: int = Field(default=DEFAULT_PLANNER_COUNT, ge=1)
    reviewer_count: int = Field(default=DEFAULT_REVIEWER_COUNT, ge=1)


class FileOperations(BaseModel):
    """The JSON document returned by the final phase.

    Individual operations are kept as raw mappings; malformed ones are
    reported per call by the executor rather than failing the whole batch.
    """

    model_config = ConfigDict(populate_by_name=True)

    summary: str | None = None
    write_files: list[dict[str, Any]] = Field(default_factory=list, alias="writeFiles")
    create_folders: list[dict[str, Any]] = Field(default_factory=list, alias="createFolders")
    moves: list[dict[str, Any]] = Field(default_factory=list)
    delete_paths: list[dict[str, Any]] = Field(default_factory=list, alias="deletePaths")

    def to_function_calls(self) -> list[FunctionCall]:
        """Convert the operations to tool calls: writes, folders, moves, deletes."""
        calls = [
            FunctionCall(
                name="writeFile", args={"path": op.get("path"), "content": op.get("content")}
            )
            for op in self.write_files
        ]
        calls += [
            FunctionCall(name="createFolder", args={"path": op.get("path")})
            for op in self.create_folders
        ]
        calls += [
            FunctionCall(
                name="move",
                args={
                    "sourcePath": op.get("sourcePath"),
                    "destinationPath": op.get("destinationPath"),
                },
            )
            for op in self.moves
        ]
        calls += [
            FunctionCall(name="deletePath", args={"path": op.get("path")})
            for op in self.delete_paths
        ]
        return calls


def parse_file_operations(text: str) -> tuple[str, list[FunctionCall]]:
    """Parse the final phase's JSON into a summary and tool calls.

    Output that is not a valid operations document is shown to the user
    as-is, with no tool calls.

    Args:
        text: Raw model output.

    Returns:
        Tuple of (summary text, tool calls).
    """
    try:
        operations = FileOperations.model_validate_json(text)
    except ValidationError as e:
        logger.warning(f"Could not parse file operations from model output: {e}")
        return (
            "An error occurred while processing the model's response. The raw response "
            f"is provided below.\n\n---\n\n```json\n{text}\n```",
            [],
        )
    return operations.summary or "No summary provided.", operations.to_function_calls()


class PipelineResult(BaseModel):
    """What the pipeline produced: text for the user and calls to apply."""

    summary: str
    function_calls: list[FunctionCall] = Field(default_factory=list)


class AdvancedCoderPipeline:
    """Runs the six phases for one prompt.

    Attributes:
        settings: Models and fan-out.
    """

    def __init__(
        self,
        generate: GenerateFunc,
        settings: PipelineSettings | None = None,
        on_status: StatusCallback | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            generate: Sends one request, with retries, and returns the response.
            settings: Models and fan-out.
            on_status: Receives a progress line at the start of each phase.
        """
        self._generate = generate
        self.settings = settings or PipelineSettings()
        self._on_status = on_status

    def _phase(self, number: int, description: str) -> None:
        message = f"Phase {number}/{PHASE_COUNT}: {description}"
        logger.info(message)
        if self._on_status is not None:
            self._on_status(message)

    async def _request(
        self,
        model: str,
        contents: list[ChatMessage],
        instruction: str,
        tools: list[dict[str, Any]] | None = None,
        json_output: bool = False,
    ) -> GenerateResponse:
        request = GenerateRequest(
            model=model,
            contents=contents,
            system_instruction=instruction,
            tools=tools,
            response_mime_type="application/json" if json_output else None,
            response_schema=FILE_OPERATIONS_SCHEMA if json_output else None,
        )
        return await self._generate(request)

    async def _fan_out(
        self,
        count: int,
        contents: list[ChatMessage],
        instruction: str,
        tools: list[dict[str, Any]] | None = None,
    ) -> list[GenerateResponse]:
        results = await asyncio.gather(
            *(
                self._request(self.settings.planner_model, contents, instruction, tools)
                for _ in range(count)
            ),
            return_exceptions=True,
        )
        responses = []
        for result in results:
            if isinstance(result, CancellationError):
                raise result
            if isinstance(result, Exception):
                logger.warning(f"Parallel request failed: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            responses.append(result)
        return responses

    async def run(self, history: list[ChatMessage]) -> PipelineResult:
        """Run every phase against ``history``.

        Args:
            history: Backend-ready conversation, ending with the user's prompt
                (project context already injected).

        Returns:
            The summary and the tool calls from the final phase.

        Raises:
            RuntimeError: If every planner failed.
            CancellationError: If the user cancelled.
            BackendError: If a single-request phase failed.
        """
        primer = ChatMessage.from_text("model", THINK_PRIMER)

        self._phase(1, "Generating initial plans...")
        planning = await self._fan_out(
            self.settings.planner_count, [*history, primer], PLANNER_INSTRUCTION
        )
        plans = [strip_think_block(response.text) for response in planning if response.text]
        if not plans:
            raise RuntimeError("All planning instances failed.")

        self._phase(2, "Consolidating into a master plan...")
        plan_text = "\n\n".join(f"--- PLAN {i} ---\n{plan}" for i, plan in enumerate(plans, 1))
        consolidation = await self._request(
            self.settings.lead_model,
            [
                *history,
                ChatMessage.from_text(
                    "user", f"Here are the plans from the architects:\n\n{plan_text}"
                ),
                primer,
            ],
            CONSOLIDATION_INSTRUCTION,
        )
        master_plan = strip_think_block(consolidation.text)

        self._phase(3, "Drafting code...")
        drafting = await self._request(
            self.settings.lead_model,
            [
                *history,
                ChatMessage.from_text(
                    "user",
                    f"Here is the master plan. Please generate the code draft.\n\n{master_plan}",
                ),
                primer,
            ],
            DRAFTING_INSTRUCTION,
        )
        code_draft = strip_think_block(drafting.text)

        self._phase(4, "Debugging draft...")
        reviews = await self._fan_out(
            self.settings.reviewer_count,
            [
                *history,
                ChatMessage.from_text(
                    "user", f"Master Plan:\n{master_plan}\n\nCode Draft:\n{code_draft}"
                ),
                primer,
            ],
            REVIEWER_INSTRUCTION,
            tools=[NO_PROBLEM_DETECTED_TOOL],
        )
        approvals = 0
        reports = []
        for review in reviews:
            if any(call.name == NO_PROBLEM_DETECTED for call in review.function_calls):
                approvals += 1
            elif review.text:
                reports.append(strip_think_block(review.text))

        consolidated_review = ""
        if approvals < self.settings.reviewer_count and reports:
            self._phase(5, "Consolidating feedback...")
            feedback = "\n---\n".join(reports)
            review = await self._request(
                self.settings.planner_model,
                [
                    *history,
                    ChatMessage.from_text(
                        "user", f"Code Draft:\n{code_draft}\n\nDebugging Reports:\n{feedback}"
                    ),
                    primer,
                ],
                REVIEW_CONSOLIDATION_INSTRUCTION,
            )
            consolidated_review = strip_think_block(review.text)
        else:
            logger.info("Review consolidation skipped: no feedback to merge")

        self._phase(6, "Generating final implementation...")
        review_text = (
            f"Consolidated Review:\n{consolidated_review}"
            if consolidated_review
            else "No issues were found in the draft."
        )
        final = await self._request(
            self.settings.lead_model,
            [
                *history,
                ChatMessage.from_text(
                    "user",
                    "Here is the context for the final implementation. Generate the JSON "
                    "output containing the summary and file system operations.\n\n"
                    f"Code Draft:\n{code_draft}\n\n{review_text}",
                ),
            ],
            FINAL_INSTRUCTION,
            json_output=True,
        )
        summary, calls = parse_file_operations(final.text)
        logger.info(f"Pipeline produced {len(calls)} file operations")
        return PipelineResult(summary=summary, function_calls=calls)

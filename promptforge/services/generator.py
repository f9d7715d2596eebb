from __future__ import annotations

import json
from typing import Any, Optional, Sequence

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeSDKClient,
    ClaudeSDKError,
    ResultMessage,
    TextBlock,
)
from claude_agent_sdk.types import ClaudeAgentOptions
from jsonschema import Draft7Validator
from rich.console import Console

from ..config.manager import ConfigManager
from ..config.paths import PromptForgePaths
from ..config.resources import read_schema_text
from ..core.constants import DEFAULT_TEMPERATURE
from ..core.models import ClarifyingAnswer, ClarifyingOption, ClarifyingQuestion, Preferences
from ..core.session_log import log_exception, log_warn

MAX_CLARIFYING_QUESTIONS = 3

GENERIC_QUESTIONS: tuple[ClarifyingQuestion, ...] = (
    ClarifyingQuestion(
        id="q1",
        question="What do you want most from this?",
        options=(
            ClarifyingOption("a", "Get a clear explanation"),
            ClarifyingOption("b", "Generate something new (ready to use)"),
            ClarifyingOption("c", "Improve something I already have"),
        ),
    ),
    ClarifyingQuestion(
        id="q2",
        question="Who is the primary audience or user of the result?",
        options=(
            ClarifyingOption("a", "Myself or my team"),
            ClarifyingOption("b", "Non-technical stakeholders or clients"),
            ClarifyingOption("c", "Developers or technical users"),
        ),
    ),
    ClarifyingQuestion(
        id="q3",
        question="What format do you want the answer or output in?",
        options=(
            ClarifyingOption("a", "Short text summary"),
            ClarifyingOption("b", "Step-by-step instructions"),
            ClarifyingOption("c", "Structured list or bullet points"),
            ClarifyingOption("d", "Code or pseudo-code example"),
        ),
    ),
)

QUESTIONS_SYSTEM_PROMPT = (
    "You are PromptForge, an AI that designs short clarifying questions to improve prompts.\n"
    "Given a user's task, generate up to 3 short questions that will make the final prompt "
    "much more accurate.\n"
    "Each question should be tailored to the domain (coding, education, marketing, etc.).\n"
    "You may include 0-5 multiple-choice options per question.\n"
    "Return ONLY JSON with a `questions` array where each item has `id`, `question`, "
    "and `options` (each option has `id` and `label`).\n"
)
FINAL_SYSTEM_PROMPT = (
    "You are PromptForge, an expert at writing single, high-quality prompts for another AI model.\n"
    "Given the user's task, preferences, and any clarifying answers, write ONE final prompt.\n"
    "User input (task and clarifying answers) always takes priority over preferences.\n"
    "The result should be ready to paste into another AI chat or API directly.\n"
    'Return ONLY JSON as { "prompt": "..." }.\n'
)
EDIT_SYSTEM_PROMPT = (
    "You are PromptForge, an expert prompt editor.\n"
    "You receive an existing prompt and an edit request.\n"
    "Return the edited prompt only, without commentary or code fences.\n"
)


def build_style_line(preferences: Preferences) -> str:
    parts: list[str] = []
    labels = (
        ("tone", "tone"),
        ("audience", "audience"),
        ("domain", "domain"),
        ("depth", "depth"),
        ("language", "language"),
        ("output_format", "format"),
        ("citation_preference", "citations"),
        ("default_model", "target model"),
    )
    for key, label in labels:
        if preferences.has_value(key):
            parts.append(f"{label}: {preferences.value_for(key)}")
    if preferences.temperature is not None:
        parts.append(f"temperature bias: {preferences.temperature}")
    if preferences.style_guidelines:
        parts.append(f"style: {preferences.style_guidelines}")
    if preferences.persona_hints:
        parts.append(f"persona: {preferences.persona_hints}")
    if not parts:
        return "Keep the style clear, concrete, and concise."
    return f"Keep the style aligned with: {', '.join(parts)}."


def preference_lines(preferences: Preferences) -> list[str]:
    lines: list[str] = []
    labels = (
        ("output_format", "Desired output format"),
        ("language", "Primary language"),
        ("depth", "Depth/level"),
        ("citation_preference", "Citation preference"),
        ("default_model", "Target model to optimize for"),
        ("persona_hints", "Persona hints"),
        ("style_guidelines", "Style guidelines"),
    )
    for key, label in labels:
        if preferences.has_value(key):
            lines.append(f"{label}: {preferences.value_for(key)}")
    return lines


def answer_lines(answers: Sequence[ClarifyingAnswer]) -> list[str]:
    if not answers:
        return []
    lines = ["Clarifying answers:"]
    for idx, answer in enumerate(answers, start=1):
        lines.append(f"Q{idx} ({answer.question_id}): {answer.question}\nAnswer: {answer.answer}")
    return lines


def resolve_temperature(preferences: Preferences) -> float:
    if preferences.temperature is None:
        return DEFAULT_TEMPERATURE
    return preferences.temperature


def parse_questions_payload(text: str) -> Optional[list[ClarifyingQuestion]]:
    """Parse a model reply into clarifying questions, or None when unusable."""
    payload = _load_json_object(text)
    if payload is None:
        return None
    errors = validate_payload(payload, "clarifying_questions.schema.json")
    if errors:
        log_warn("generator", "questions.invalid", errors)
        return None
    questions: list[ClarifyingQuestion] = []
    for index, raw in enumerate(payload.get("questions", [])[:MAX_CLARIFYING_QUESTIONS]):
        question = _coerce_question(raw, index)
        if question is not None:
            questions.append(question)
    return questions or None


def parse_prompt_payload(text: str) -> Optional[str]:
    payload = _load_json_object(text)
    if payload is None:
        return None
    if validate_payload(payload, "final_prompt.schema.json"):
        return None
    prompt = payload["prompt"].strip()
    return prompt or None


def validate_payload(payload: Any, schema_name: str) -> list[str]:
    if not isinstance(payload, dict):
        return ["Payload must be a JSON object."]
    schema = json.loads(read_schema_text(schema_name))
    validator = Draft7Validator(schema)
    errors: list[str] = []
    for error in sorted(validator.iter_errors(payload), key=lambda err: list(err.path)):
        path = ".".join(str(part) for part in error.path)
        prefix = f"{path}: " if path else ""
        errors.append(prefix + error.message)
    return errors


def _load_json_object(text: str) -> Optional[dict[str, Any]]:
    body = _strip_outer_fence(text or "")
    start = body.find("{")
    end = body.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        data = json.loads(body[start : end + 1])
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _strip_outer_fence(text: str) -> str:
    lines = text.strip().splitlines()
    if not lines or not lines[0].strip().startswith("```"):
        return text.strip()
    inner = lines[1:]
    if inner and inner[-1].strip() == "```":
        inner = inner[:-1]
    return "\n".join(inner).strip()


def _coerce_question(raw: Any, index: int) -> Optional[ClarifyingQuestion]:
    if not isinstance(raw, dict):
        return None
    question_text = raw.get("question")
    if not isinstance(question_text, str) or not question_text.strip():
        return None
    question_id = raw.get("id")
    if isinstance(question_id, int):
        question_id = str(question_id)
    if not isinstance(question_id, str) or not question_id.strip():
        question_id = f"q{index + 1}"
    options: list[ClarifyingOption] = []
    for opt_index, item in enumerate(raw.get("options") or []):
        default_id = chr(ord("a") + opt_index)
        if isinstance(item, str):
            label, option_id = item.strip(), default_id
        elif isinstance(item, dict):
            label = str(item.get("label") or "").strip()
            option_id = item.get("id") if isinstance(item.get("id"), str) else default_id
            option_id = option_id.strip() or default_id
        else:
            continue
        if label:
            options.append(ClarifyingOption(option_id, label))
    return ClarifyingQuestion(
        id=question_id.strip(),
        question=question_text.strip(),
        options=tuple(options),
    )


class OfflinePromptGenerator:
    """Deterministic generator used when no model backend is configured."""

    async def generate_clarifying_questions(
        self, task: str, preferences: Preferences, allow_unclear: bool = False
    ) -> list[ClarifyingQuestion]:
        if not task.strip():
            return []
        return list(GENERIC_QUESTIONS)

    async def generate_final_prompt(
        self,
        task: str,
        preferences: Preferences,
        answers: Sequence[ClarifyingAnswer],
        allow_unclear: bool = False,
    ) -> str:
        task = task.strip()
        if not task:
            return ""
        parts = [
            "You are an AI assistant.",
            build_style_line(preferences),
            *preference_lines(preferences),
            *answer_lines(answers),
            "Task:",
            task,
        ]
        return "\n\n".join(parts)

    async def edit_prompt(
        self, current_prompt: str, edit_request: str, preferences: Preferences
    ) -> str:
        current = current_prompt.strip()
        request = edit_request.strip()
        if not current or not request:
            return current
        return "\n".join(
            [
                current,
                "",
                "# No model backend is configured. Edit this prompt manually based on the request below:",
                f"# Edit request: {request}",
            ]
        )


class ClaudePromptGenerator:
    """Prompt generator backed by a Claude Agent SDK client."""

    def __init__(
        self,
        config: ConfigManager,
        paths: PromptForgePaths,
        console: Optional[Console] = None,
        fallback: Optional[OfflinePromptGenerator] = None,
    ) -> None:
        self.config = config
        self.paths = paths
        self.console = console or Console()
        self.fallback = fallback or OfflinePromptGenerator()

    async def generate_clarifying_questions(
        self, task: str, preferences: Preferences, allow_unclear: bool = False
    ) -> list[ClarifyingQuestion]:
        task = task.strip()
        if not task:
            return []
        user_prompt = "\n\n".join([f"Task: {task}", f"Preferences: {build_style_line(preferences)}"])
        try:
            text = await self._run_llm(QUESTIONS_SYSTEM_PROMPT, user_prompt)
        except ClaudeSDKError as exc:
            log_exception("generator", exc)
            return await self.fallback.generate_clarifying_questions(task, preferences, allow_unclear)
        questions = parse_questions_payload(text)
        if questions is None:
            return await self.fallback.generate_clarifying_questions(task, preferences, allow_unclear)
        return questions

    async def generate_final_prompt(
        self,
        task: str,
        preferences: Preferences,
        answers: Sequence[ClarifyingAnswer],
        allow_unclear: bool = False,
    ) -> str:
        task = task.strip()
        if not task:
            return ""
        parts = [
            f"Task: {task}",
            f"Preferences: {build_style_line(preferences)}",
            *preference_lines(preferences),
            f"Temperature: {resolve_temperature(preferences)}",
            *answer_lines(answers),
        ]
        try:
            text = await self._run_llm(FINAL_SYSTEM_PROMPT, "\n\n".join(parts))
        except ClaudeSDKError as exc:
            log_exception("generator", exc)
            return await self.fallback.generate_final_prompt(task, preferences, answers, allow_unclear)
        return parse_prompt_payload(text) or task

    async def edit_prompt(
        self, current_prompt: str, edit_request: str, preferences: Preferences
    ) -> str:
        current = current_prompt.strip()
        request = edit_request.strip()
        if not current or not request:
            return current
        user_prompt = "\n\n".join(
            [
                f"Existing prompt:\n{current}",
                f"Edit request: {request}",
                f"Preferences: {build_style_line(preferences)}",
            ]
        )
        try:
            text = await self._run_llm(EDIT_SYSTEM_PROMPT, user_prompt)
        except ClaudeSDKError as exc:
            log_exception("generator", exc)
            return await self.fallback.edit_prompt(current, request, preferences)
        return _strip_outer_fence(text) or current

    def _build_options(self, system_prompt: str) -> ClaudeAgentOptions:
        settings = self.config.load_settings()
        env = self.config.build_env(settings)
        return ClaudeAgentOptions(
            system_prompt=system_prompt,
            cwd=str(self.paths.root),
            model=settings.model,
            permission_mode="acceptEdits",
            allowed_tools=[],
            env=env,
        )

    async def _run_llm(self, system_prompt: str, user_prompt: str) -> str:
        options = self._build_options(system_prompt)
        client = ClaudeSDKClient(options=options)
        await client.connect()
        try:
            await client.query(user_prompt)
            parts: list[str] = []
            last_result: str | None = None
            async for message in client.receive_response():
                if isinstance(message, AssistantMessage):
                    for block in message.content:
                        if isinstance(block, TextBlock) and block.text:
                            parts.append(block.text)
                elif isinstance(message, ResultMessage):
                    last_result = message.result or None
                    break
            text = "\n".join(part.strip("\n") for part in parts if part.strip())
            if not text:
                text = (last_result or "").strip()
            return text
        finally:
            await client.disconnect()

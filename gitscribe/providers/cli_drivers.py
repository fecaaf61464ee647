"""Adapters for locally installed AI command line tools."""

from __future__ import annotations

import contextlib
import os
import re
import tempfile
from typing import Iterator

from .base import CLIDriver, InvokeRequest, ModelDefinition, PreparedCommand

_EFFORT_SUFFIX_RE = re.compile(r"^(?P<model>.+)-(?P<effort>xhigh|high|medium|low)$")


class ClaudeCodeDriver(CLIDriver):
    """Runs ``claude -p`` with tools, sessions and MCP servers disabled."""

    LABEL = "Claude Code CLI"
    MODELS = (
        ModelDefinition("haiku", "Claude Haiku", 0),
        ModelDefinition("sonnet", "Claude Sonnet", 1),
        ModelDefinition("opus", "Claude Opus", 2),
    )

    @contextlib.contextmanager
    def prepare(
        self, binary: str, request: InvokeRequest
    ) -> Iterator[PreparedCommand]:
        argv = [
            binary,
            "-p",
            "--model",
            request.model,
            "--system-prompt",
            request.system,
            "--tools",
            "",
            "--no-session-persistence",
            "--disable-slash-commands",
            "--strict-mcp-config",
        ]
        yield PreparedCommand(argv=argv, stdin=request.prompt)


class GeminiCLIDriver(CLIDriver):
    """Runs ``gemini -p`` in plan mode.

    The Gemini CLI reads its system prompt from the file named by
    ``GEMINI_SYSTEM_MD``; a temporary file is written per call and removed
    afterwards.
    """

    LABEL = "Gemini CLI"
    MODELS = (
        ModelDefinition("gemini-2.5-flash", "Gemini 2.5 Flash", 0),
        ModelDefinition("gemini-2.5-flash-lite", "Gemini 2.5 Flash Lite", 1),
        ModelDefinition("gemini-2.5-pro", "Gemini 2.5 Pro", 2),
        ModelDefinition("gemini-3-flash-preview", "Gemini 3 Flash Preview", 3),
        ModelDefinition("gemini-3-pro-preview", "Gemini 3 Pro Preview", 4),
    )

    @contextlib.contextmanager
    def prepare(
        self, binary: str, request: InvokeRequest
    ) -> Iterator[PreparedCommand]:
        fd, system_path = tempfile.mkstemp(prefix="gitscribe-system-", suffix=".md")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(request.system)
            env = dict(os.environ)
            env["GEMINI_SYSTEM_MD"] = system_path
            argv = [
                binary,
                "-p",
                "",
                "--model",
                request.model,
                "--output-format",
                "text",
                "--approval-mode",
                "plan",
            ]
            yield PreparedCommand(argv=argv, stdin=request.prompt, env=env)
        finally:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(system_path)


class CodexDriver(CLIDriver):
    """Runs ``codex exec`` reading the prompt from stdin.

    Model ids may carry a reasoning effort suffix, e.g. ``gpt-5-codex-high``
    runs ``gpt-5-codex`` with ``model_reasoning_effort=high``.
    """

    LABEL = "Codex CLI"
    MODELS = (
        ModelDefinition("gpt-5-codex", "GPT-5 Codex", 0),
        ModelDefinition("gpt-5-codex-mini", "GPT-5 Codex Mini", 1),
        ModelDefinition("gpt-5-codex-high", "GPT-5 Codex (high effort)", 2),
        ModelDefinition("gpt-5", "GPT-5", 3),
    )

    @staticmethod
    def split_model_id(model_id: str) -> tuple[str, str]:
        match = _EFFORT_SUFFIX_RE.match(model_id)
        if match:
            return match.group("model"), match.group("effort")
        return model_id, "medium"

    @contextlib.contextmanager
    def prepare(
        self, binary: str, request: InvokeRequest
    ) -> Iterator[PreparedCommand]:
        model, effort = self.split_model_id(request.model)
        argv = [
            binary,
            "--model",
            model,
            "-c",
            f"model_reasoning_effort={effort}",
            "exec",
            "-",
        ]
        stdin = f"{request.system}\n\n{request.prompt}"
        yield PreparedCommand(argv=argv, stdin=stdin)

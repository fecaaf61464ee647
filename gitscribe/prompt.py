"""Prompt construction for commit message generation.

Everything here is pure: the same inputs always produce the same prompt
strings and nothing touches git or the network.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .validation import MAX_HEADER_LENGTH, ValidationVerdict

SYSTEM_PROMPT = """<role>
You generate git commit messages following Conventional Commits v1.0.0.
Output ONLY the raw commit message. No markdown, no code blocks, no preamble.
</role>

<constraints>
- Header MUST be <=50 characters (strictly enforced, will be rejected if longer)
- Start with type: feat|fix|refactor|perf|style|docs|test|build|ci|chore|revert
- Imperative mood: "add" not "added", "fix" not "fixed"
- Lowercase subject, no trailing period
- No markdown formatting (```, **, etc.)
</constraints>

<format>
Header: <type>(<scope>): <subject>
- Add ! before : for breaking changes: feat(api)!: remove v1 endpoints
- Scope is optional. Use when specific: filename, directory, or feature name
- Omit scope for cross-cutting changes

Body (only for non-trivial changes):
- Blank line after header
- Bulleted with hyphens (-)
- Explain WHAT and WHY, not HOW
- 3-6 bullets, wrap at 72 chars

Footer (only when applicable):
- BREAKING CHANGE: <description>
- Closes: #<number>
- Refs: <ticket-id>
</format>

<type-guide>
feat     -> New user-facing capability
fix      -> Bug fix (broken -> works)
refactor -> Code restructure, same behavior
perf     -> Measurable performance improvement
style    -> Formatting only (whitespace, semicolons)
docs     -> Documentation only
test     -> Test additions/changes only
build    -> Build system, dependencies
ci       -> CI/CD configuration
chore    -> Maintenance, tooling
revert   -> Reverting a previous commit

When unsure: Ask "what is the PRIMARY reason for these changes?"
</type-guide>

<scope-rules>
- Single file -> filename without extension
- Multiple files in same dir -> directory name
- Feature-related -> feature name
- Cross-cutting -> omit scope
- Abbreviate: authentication->auth, configuration->config, dependencies->deps
</scope-rules>

<adaptive-body>
- Trivial changes (rename, typo, single-line fix): header only, no body
- Small changes (<30 lines): header only unless context is needed
- Medium changes (30-150 lines): header + 3-4 bullets
- Large changes (>150 lines): header + 5-6 bullets, group by theme
</adaptive-body>"""

DEFAULT_EXAMPLES = """<examples>
fix(auth): correct token expiry check

style: apply prettier formatting

chore(deps): bump react to 18.3.1

feat(auth): add biometric authentication

- implement fingerprint and face recognition
- add fallback to PIN when unavailable
- store tokens in secure enclave

fix(cart): prevent duplicate items on click

- add 300ms debounce to add-to-cart button
- disable button during API request

refactor(api): extract HTTP client to lib

- move fetch wrapper from services to lib/http
- standardize error handling across endpoints
- reduce duplication by ~200 lines

feat(config)!: migrate to JSON config format

- replace .myapprc with config.json
- add automatic migration script

BREAKING CHANGE: .myapprc files must migrate to config.json
</examples>"""

REFINEMENT_REMINDER = (
    "IMPORTANT: Still adhere to Conventional Commits and "
    f"<={MAX_HEADER_LENGTH} char header limit."
)


@dataclass(frozen=True)
class PromptCustomization:
    """Optional per-project additions to the system prompt."""

    context: Optional[str] = None
    style: Optional[str] = None
    examples: tuple[str, ...] = ()


@dataclass(frozen=True)
class DiffContext:
    """Git state supplied by the git collaborator for one generation."""

    branch_name: str
    diff: str
    hint: Optional[str] = None
    recent_commits: tuple[str, ...] = ()
    staged_file_list: Optional[str] = None


@dataclass
class RefinementContext:
    """Previous candidate plus the ordered instructions layered on it.

    Instructions are only ever appended; later prompts repeat the whole
    history so the model does not drift back to a rejected form.
    """

    last_message: str
    instructions: list[str] = field(default_factory=list)

    def add(self, instruction: str) -> None:
        self.instructions.append(instruction)


def build_system_prompt(
    customization: Optional[PromptCustomization] = None,
) -> str:
    prompt = SYSTEM_PROMPT

    if customization and (customization.context or customization.style):
        prompt += "\n\n<project-context>"
        if customization.context:
            prompt += f"\nAbout: {customization.context}"
        if customization.style:
            prompt += f"\nStyle: {customization.style}"
        prompt += "\n</project-context>"

    if customization and customization.examples:
        joined = "\n\n".join(customization.examples)
        prompt += f"\n\n<examples>\n{joined}\n</examples>"
    else:
        prompt += f"\n\n{DEFAULT_EXAMPLES}"

    return prompt


def build_user_prompt(
    context: DiffContext,
    errors: Optional[str] = None,
    refinement: Optional[RefinementContext] = None,
) -> str:
    """Assemble the user prompt.

    Section order is fixed: branch first, staged diff last, and any
    refinement instructions before the diff.
    """
    parts = [f"# BRANCH\n{context.branch_name}"]

    if context.recent_commits:
        parts.append("# RECENT COMMITS\n" + "\n".join(context.recent_commits))
    if context.staged_file_list:
        parts.append(f"# CHANGED FILES\n{context.staged_file_list}")
    if context.hint:
        parts.append(f"# USER HINT\n{context.hint}")
    if errors:
        parts.append(errors.rstrip("\n"))
    if refinement is not None:
        parts.append(f"# PREVIOUS GENERATED MESSAGE\n{refinement.last_message}")
        parts.append(
            "# USER REFINEMENT INSTRUCTIONS\n"
            + "\n".join(refinement.instructions)
        )
        parts.append(REFINEMENT_REMINDER)

    parts.append(f"# STAGED DIFF\n{context.diff}")
    return "\n\n".join(parts)


def build_retry_context(message: str, verdict: ValidationVerdict) -> str:
    """Describe why the previous candidate was rejected."""
    header = message.split("\n", 1)[0] if message else ""
    lines = [
        "# VALIDATION ERRORS IN PREVIOUS ATTEMPT",
        "Previous output:",
        f'"{header}"',
        "",
        "Issues:",
    ]
    lines.extend(f"- {v.message}. Fix: {v.suggestion}" for v in verdict.violations)
    return "\n".join(lines)


def describe_violations(verdict: ValidationVerdict) -> str:
    """One-line instruction synthesized from a failed verdict."""
    return "Fix: " + "; ".join(
        f"{v.message} ({v.suggestion})" for v in verdict.violations
    )

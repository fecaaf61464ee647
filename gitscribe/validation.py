"""Conventional Commits checks for generated messages.

Blocking rules decide whether a candidate is accepted. Advisory rules are
reported as warnings and never reject a message.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

MAX_HEADER_LENGTH = 50

VALID_TYPES = (
    "feat",
    "fix",
    "refactor",
    "perf",
    "style",
    "docs",
    "test",
    "build",
    "ci",
    "chore",
    "revert",
)

_HEADER_RE = re.compile(
    r"^(?P<type>" + "|".join(VALID_TYPES) + r")"
    r"(?P<scope>\([^()\s]+\))?"
    r"(?P<breaking>!)?: (?P<subject>.*)$"
)
_PAST_TENSE_RE = re.compile(
    r"^(added|fixed|updated|removed|changed|implemented|created)\b",
    re.IGNORECASE,
)
_BREAKING_FOOTER_RE = re.compile(r"^BREAKING CHANGE:", re.MULTILINE)
_FENCE_RE = re.compile(r"^\s*```[\w-]*\s*$")
_MARKDOWN_RE = re.compile(r"```|\*\*")


@dataclass(frozen=True)
class Violation:
    rule: str
    message: str
    suggestion: str


@dataclass(frozen=True)
class ValidationVerdict:
    """Outcome of validating one candidate message."""

    violations: tuple[Violation, ...] = ()
    warnings: tuple[Violation, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.violations

    @property
    def violated_rules(self) -> list[str]:
        return [v.rule for v in self.violations]


def clean_response(text: str) -> str:
    """Strip markdown fences and surrounding blank space from model output."""
    lines = [
        line.rstrip()
        for line in (text or "").replace("\r\n", "\n").split("\n")
        if not _FENCE_RE.match(line)
    ]
    return "\n".join(lines).strip()


def validate_commit_message(message: str) -> ValidationVerdict:
    """Validate ``message`` and collect every violated rule.

    The header is the first line. Rules are evaluated in a fixed order:
    header length, header grammar, subject shape, body separation.
    """
    if not message or not message.strip():
        return ValidationVerdict(
            violations=(
                Violation(
                    "empty-message",
                    "Message is empty",
                    "Return a Conventional Commit header",
                ),
            )
        )

    lines = message.split("\n")
    header = lines[0]
    violations: list[Violation] = []
    warnings: list[Violation] = []

    if len(header) > MAX_HEADER_LENGTH:
        violations.append(
            Violation(
                "header-length",
                f"Header is {len(header)} chars (max {MAX_HEADER_LENGTH})",
                f"Shorten to {MAX_HEADER_LENGTH} characters or fewer",
            )
        )

    match = _HEADER_RE.match(header)
    if match is None:
        violations.append(
            Violation(
                "header-format",
                "Header must start with a valid type: " + ", ".join(VALID_TYPES),
                "Use '<type>(<scope>): <subject>' with no preamble text",
            )
        )
    else:
        subject = match.group("subject")
        if not subject.strip():
            violations.append(
                Violation(
                    "subject-format",
                    "Subject is empty",
                    "Describe the change after the colon",
                )
            )
        elif subject[0].isupper():
            violations.append(
                Violation(
                    "subject-format",
                    "Subject should start with lowercase",
                    f'Change to: "{subject[0].lower()}{subject[1:]}"',
                )
            )
        elif subject.rstrip().endswith("."):
            violations.append(
                Violation(
                    "subject-format",
                    "Subject should not end with a period",
                    "Remove trailing period",
                )
            )
        if _PAST_TENSE_RE.match(subject):
            warnings.append(
                Violation(
                    "imperative-mood",
                    "Subject uses past tense instead of imperative",
                    "Use imperative mood: 'add' not 'added'",
                )
            )
        has_bang = match.group("breaking") is not None
        has_footer = bool(_BREAKING_FOOTER_RE.search(message))
        if has_bang != has_footer:
            warnings.append(
                Violation(
                    "breaking-change-consistency",
                    "Header has ! but no BREAKING CHANGE footer"
                    if has_bang
                    else "Has BREAKING CHANGE footer but no ! in header",
                    "Use both ! in the header and a BREAKING CHANGE footer",
                )
            )

    if _MARKDOWN_RE.search(message):
        warnings.append(
            Violation(
                "no-markdown",
                "Message contains markdown formatting",
                "Output raw text only, no code blocks or bold markers",
            )
        )

    if len(lines) > 1 and lines[1].strip():
        violations.append(
            Violation(
                "body-separation",
                "Body must be separated from the header by a blank line",
                "Insert an empty line after the header",
            )
        )

    return ValidationVerdict(tuple(violations), tuple(warnings))

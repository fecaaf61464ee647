from gitscribe.prompt import (
    DEFAULT_EXAMPLES,
    REFINEMENT_REMINDER,
    DiffContext,
    PromptCustomization,
    RefinementContext,
    build_retry_context,
    build_system_prompt,
    build_user_prompt,
)
from gitscribe.validation import validate_commit_message

DIFF = "diff --git a/app.py b/app.py\n+print('hi')\n"


def _context(**kwargs):
    base = {"branch_name": "feature/login", "diff": DIFF}
    base.update(kwargs)
    return DiffContext(**base)


def test_system_prompt_defaults_to_builtin_examples():
    prompt = build_system_prompt()
    assert prompt.startswith("<role>")
    assert "<project-context>" not in prompt
    assert prompt.endswith(DEFAULT_EXAMPLES)


def test_system_prompt_with_context_and_custom_examples():
    custom = PromptCustomization(
        context="Billing service",
        style="Mention ticket ids",
        examples=("feat: add invoices", "fix: round totals"),
    )
    prompt = build_system_prompt(custom)

    assert "<project-context>\nAbout: Billing service\nStyle: Mention ticket ids\n</project-context>" in prompt
    assert prompt.endswith(
        "<examples>\nfeat: add invoices\n\nfix: round totals\n</examples>"
    )
    assert DEFAULT_EXAMPLES not in prompt
    assert prompt.index("<project-context>") < prompt.index("<examples>")


def test_system_prompt_style_only():
    prompt = build_system_prompt(PromptCustomization(style="terse"))
    assert "Style: terse" in prompt
    assert "About:" not in prompt


def test_minimal_user_prompt_has_branch_then_diff():
    prompt = build_user_prompt(_context())
    assert prompt == f"# BRANCH\nfeature/login\n\n# STAGED DIFF\n{DIFF}"


def test_user_prompt_section_order():
    refinement = RefinementContext("feat: add login")
    refinement.add("mention oauth")
    prompt = build_user_prompt(
        _context(
            hint="part of SSO work",
            recent_commits=("fix: typo", "feat: add sso"),
            staged_file_list="M\tapp.py",
        ),
        errors="# VALIDATION ERRORS IN PREVIOUS ATTEMPT",
        refinement=refinement,
    )
    order = [
        "# BRANCH",
        "# RECENT COMMITS",
        "# CHANGED FILES",
        "# USER HINT",
        "# VALIDATION ERRORS IN PREVIOUS ATTEMPT",
        "# PREVIOUS GENERATED MESSAGE",
        "# USER REFINEMENT INSTRUCTIONS",
        REFINEMENT_REMINDER,
        "# STAGED DIFF",
    ]
    positions = [prompt.index(marker) for marker in order]
    assert positions == sorted(positions)
    assert prompt.startswith("# BRANCH\n")
    assert prompt.endswith(DIFF)


def test_empty_recent_commits_are_omitted():
    prompt = build_user_prompt(_context(recent_commits=()))
    assert "# RECENT COMMITS" not in prompt


def test_refinement_keeps_every_instruction_in_order():
    refinement = RefinementContext("feat: add login")
    for instruction in ("use auth scope", "shorter", "mention tokens"):
        refinement.add(instruction)

    prompt = build_user_prompt(_context(), refinement=refinement)

    assert (
        "# USER REFINEMENT INSTRUCTIONS\nuse auth scope\nshorter\nmention tokens"
        in prompt
    )


def test_diff_is_passed_through_unmodified():
    diff = "  leading spaces\n\n\ttabs\n# STAGED DIFF lookalike\n"
    prompt = build_user_prompt(_context(diff=diff))
    assert prompt.endswith("# STAGED DIFF\n" + diff)


def test_retry_context_lists_each_violation():
    message = "Feat: Add a very long header that will not fit in fifty chars"
    verdict = validate_commit_message(message)

    block = build_retry_context(message, verdict)

    assert block.startswith("# VALIDATION ERRORS IN PREVIOUS ATTEMPT\n")
    assert f'"{message}"' in block
    assert block.count("\n- ") == len(verdict.violations)
    assert "Fix:" in block

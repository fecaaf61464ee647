"""Command line interface for gitscribe."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import shlex
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Any, Awaitable, Optional

from . import __version__
from .config import Config, describe_provider, load_config, save_config
from .exceptions import (
    ConfigError,
    GitError,
    GitScribeError,
    ValidationExhausted,
)
from .git import GitRepo, find_git_repo_root
from .orchestrator import GenerationOutcome, GenerationSession, GenerationSettings
from .prompt import DiffContext, build_system_prompt, build_user_prompt
from .providers.base import BaseDriver, ModelDefinition
from .providers.catalog import (
    check_configured_model,
    fetch_model_statuses,
    mark_deprecated,
)
from .providers.descriptors import PROVIDERS, ProviderMode
from .providers.registry import create_driver

RESET = "\033[0m"
BOLD = "\033[1m"
CYAN = "\033[96m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
DIM = "\033[2m"
RED = "\033[91m"

_EDITOR_FALLBACKS = ("nvim", "vim", "nano", "vi")

logger = logging.getLogger(__name__)


class CLI:
    """Argument parsing and the interactive review loop."""

    def __init__(self) -> None:
        self.parser = self._create_parser()

    def run(self, args: Optional[list[str]] = None) -> int:
        try:
            parsed = self.parser.parse_args(args)
        except SystemExit as exc:
            # argparse exits 0 for --help/--version and 2 for usage errors
            return int(exc.code or 0)

        self._configure_logging(parsed.debug)

        if parsed.list_providers:
            return self._list_providers()

        repo_root = Path(
            parsed.repo_path or find_git_repo_root() or Path.cwd()
        ).expanduser()
        try:
            config = load_config(repo_root=repo_root, overrides=self._overrides(parsed))
        except ConfigError as exc:
            self._error(str(exc))
            return 2

        if parsed.save:
            path = save_config(config, repo_root)
            print(f"{DIM}Saved configuration to {path}{RESET}")

        if parsed.list_models:
            return asyncio.run(self._list_models(config))
        if parsed.check_model:
            return asyncio.run(self._check_model(config))
        return self._generate(config, parsed)

    # ------------------------------------------------------------------
    # Parser
    # ------------------------------------------------------------------
    def _create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="gitscribe",
            description=(
                "Generate a Conventional Commit message for the staged "
                "changes using an AI provider."
            ),
        )
        parser.add_argument("--version", action="version", version=__version__)
        parser.add_argument(
            "--provider",
            choices=sorted(PROVIDERS),
            help="Provider to use (default: configured or auto-detected)",
        )
        parser.add_argument("--model", help="Model id for the provider")
        parser.add_argument("--hint", help="Extra context for the message")
        parser.add_argument(
            "--timeout",
            type=float,
            help="Seconds to wait for one provider call",
        )
        parser.add_argument(
            "--max-retries",
            type=int,
            dest="max_retries",
            help="Automatic retries when the message fails validation",
        )
        parser.add_argument("--repo-path", help="Path to the git repository")
        parser.add_argument(
            "-y",
            "--yes",
            action="store_true",
            help="Commit the first valid message without asking",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Print the prompts that would be sent without calling the provider",
        )
        parser.add_argument(
            "--list-providers",
            action="store_true",
            help="Show providers and whether they look usable",
        )
        parser.add_argument(
            "--list-models",
            action="store_true",
            help="List the models available for the provider",
        )
        parser.add_argument(
            "--check-model",
            action="store_true",
            help="Check the configured model exists and is not deprecated",
        )
        parser.add_argument(
            "--save",
            action="store_true",
            help="Persist provider/model/timeout settings for this repository",
        )
        parser.add_argument(
            "--debug",
            action="store_true",
            default=os.environ.get("GITSCRIBE_DEBUG", "").lower()
            in {"1", "true", "yes", "on"},
            help="Enable debug logging",
        )
        return parser

    @staticmethod
    def _overrides(parsed: argparse.Namespace) -> dict[str, Any]:
        overrides: dict[str, Any] = {}
        if parsed.provider:
            overrides["provider"] = parsed.provider
        if parsed.model:
            overrides["model"] = parsed.model
        if parsed.timeout is not None:
            overrides["request_timeout"] = parsed.timeout
        if parsed.max_retries is not None:
            overrides["max_auto_retries"] = parsed.max_retries
        if parsed.repo_path:
            overrides["repo_path"] = parsed.repo_path
        return overrides

    @staticmethod
    def _configure_logging(debug: bool) -> None:
        logging.basicConfig(
            level=logging.DEBUG if debug else logging.WARNING,
            format="%(levelname)s %(name)s: %(message)s",
        )

    @staticmethod
    def _error(message: str) -> None:
        print(f"{RED}Error:{RESET} {message}", file=sys.stderr)

    # ------------------------------------------------------------------
    # Provider and model listings
    # ------------------------------------------------------------------
    def _list_providers(self) -> int:
        for provider_id, descriptor in PROVIDERS.items():
            available = create_driver(provider_id).check_available()
            mark = f"{GREEN}✓{RESET}" if available else f"{DIM}✗{RESET}"
            print(f"{mark} {describe_provider(descriptor.id)}")
        return 0

    async def _load_models(self, driver: BaseDriver) -> list[ModelDefinition]:
        models = await driver.fetch_models()
        if driver.descriptor.mode is ProviderMode.API:
            statuses = await fetch_model_statuses(driver.provider_id)
            models = mark_deprecated(models, statuses)
        return models

    async def _list_models(self, config: Config) -> int:
        driver = create_driver(config.provider)
        try:
            models = await self._load_models(driver)
        except GitScribeError as exc:
            self._error(str(exc))
            return 1
        for model in models:
            flags = f" {YELLOW}(deprecated){RESET}" if model.deprecated else ""
            current = f" {GREEN}*{RESET}" if model.id == config.model else ""
            print(f"{model.id:<40} {DIM}{model.name}{RESET}{flags}{current}")
        return 0

    async def _check_model(self, config: Config) -> int:
        driver = create_driver(config.provider)
        try:
            models = await self._load_models(driver)
            match = check_configured_model(config.provider, models, config.model)
        except GitScribeError as exc:
            self._error(str(exc))
            return 1
        print(f"{GREEN}✓{RESET} {config.provider}/{match.id} ({match.name})")
        return 0

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    def _generate(self, config: Config, parsed: argparse.Namespace) -> int:
        try:
            repo = GitRepo(config.git_repo_path)
            if not repo.has_staged_changes():
                print(f"{YELLOW}No staged changes. Stage files with 'git add' first.{RESET}")
                return 1
            context = repo.build_diff_context(parsed.hint, config.recent_commit_count)
        except GitError as exc:
            self._error(str(exc))
            return 1

        if parsed.dry_run:
            self._print_prompts(config, context)
            return 0

        driver = create_driver(config.provider)
        settings = GenerationSettings.from_config(config, auto_accept=parsed.yes)
        label = f"{config.provider}/{config.model}"
        print(f"{DIM}Generating with {label}...{RESET}")

        try:
            session = GenerationSession(driver, config.model, context, settings)
            outcome = self._await(session.generate(), config, label)
            while True:
                if outcome.error is not None:
                    self._report_failure(outcome)
                    return 1
                self._show_candidate(outcome)
                choice = "commit" if parsed.yes else self._ask_choice()
                if choice == "abandon":
                    session.abandon()
                    print(f"{DIM}Abandoned; nothing committed.{RESET}")
                    return 0
                if choice == "refine":
                    instruction = input("How should it change? ").strip()
                    if not instruction:
                        continue
                    outcome = self._await(session.refine(instruction), config, label)
                    continue
                if choice == "regenerate":
                    session.abandon()
                    session = GenerationSession(driver, config.model, context, settings)
                    outcome = self._await(session.generate(), config, label)
                    continue
                if choice == "edit":
                    edited = self._edit_message(outcome.message or "", config.editor)
                    if edited is None:
                        continue
                    try:
                        outcome = session.edit(edited)
                    except ValueError:
                        session.abandon()
                        print(f"{DIM}Empty message; nothing committed.{RESET}")
                        return 0
                    continue

                try:
                    short_hash = repo.commit(outcome.message or "")
                except GitError as exc:
                    self._error(f"git commit failed: {exc}")
                    if parsed.yes:
                        session.abandon()
                        return 1
                    continue
                session.accept()
                print(f"{GREEN}✓ Committed {short_hash}{RESET}")
                return 0
        except KeyboardInterrupt:
            print(f"\n{YELLOW}Cancelled.{RESET}")
            return 130

    def _await(
        self, work: Awaitable[GenerationOutcome], config: Config, label: str
    ) -> GenerationOutcome:
        return asyncio.run(
            self._with_slow_notice(work, config.slow_warning_threshold, label)
        )

    @staticmethod
    async def _with_slow_notice(
        work: Awaitable[GenerationOutcome], threshold: float, label: str
    ) -> GenerationOutcome:
        """Await ``work``, printing a notice once it runs past ``threshold``."""
        task = asyncio.ensure_future(work)
        if threshold > 0:
            done, _ = await asyncio.wait({task}, timeout=threshold)
            if not done:
                print(
                    f"{YELLOW}Still generating with {label}... "
                    f"speed depends on the provider and model.{RESET}"
                )
        return await task

    @staticmethod
    def _print_prompts(config: Config, context: DiffContext) -> None:
        rule = f"{DIM}{'-' * 60}{RESET}"
        sections = (
            ("SYSTEM PROMPT", build_system_prompt(config.customization())),
            ("USER PROMPT", build_user_prompt(context)),
        )
        for title, text in sections:
            print(f"\n{BOLD}{CYAN}DRY RUN: {title}{RESET}")
            print(rule)
            print(text)
            print(rule)

    @staticmethod
    def _resolve_editor(configured: Optional[str]) -> Optional[list[str]]:
        for candidate in (
            configured,
            os.environ.get("VISUAL"),
            os.environ.get("EDITOR"),
        ):
            if candidate and candidate.strip():
                argv = shlex.split(candidate)
                if shutil.which(argv[0]):
                    return argv
        for name in _EDITOR_FALLBACKS:
            if shutil.which(name):
                return [name]
        return None

    def _edit_message(self, message: str, configured: Optional[str]) -> Optional[str]:
        """Open ``message`` in an editor and return the saved text.

        Returns None when no editor could be run, leaving the candidate as is.
        """
        editor = self._resolve_editor(configured)
        if editor is None:
            self._error("No suitable editor found. Set the EDITOR environment variable.")
            return None

        tmp = tempfile.NamedTemporaryFile(
            mode="w", suffix=".gitcommit", delete=False, encoding="utf-8"
        )
        try:
            tmp.write(message)
            tmp.close()
            subprocess.run([*editor, tmp.name], check=True)
            return Path(tmp.name).read_text(encoding="utf-8")
        except (subprocess.CalledProcessError, OSError) as exc:
            self._error(f"Editor failed: {exc}")
            return None
        finally:
            try:
                os.unlink(tmp.name)
            except OSError as exc:
                logger.warning("Could not delete %s: %s", tmp.name, exc)

    @staticmethod
    def _ask_choice() -> str:
        options = {
            "c": "commit",
            "e": "edit",
            "r": "refine",
            "g": "regenerate",
            "a": "abandon",
            "": "commit",
        }
        while True:
            answer = input(
                f"{BOLD}[c]ommit / [e]dit / [r]efine / re[g]enerate / [a]bandon?{RESET} "
            )
            choice = options.get(answer.strip().lower()[:1])
            if choice:
                return choice

    @staticmethod
    def _show_candidate(outcome: GenerationOutcome) -> None:
        print()
        print(f"{CYAN}{outcome.message}{RESET}")
        print()
        if outcome.violated_rules:
            print(f"{RED}Fails: {', '.join(outcome.violated_rules)}{RESET}")
        if outcome.warnings:
            print(f"{YELLOW}Note: {', '.join(outcome.warnings)}{RESET}")

    def _report_failure(self, outcome: GenerationOutcome) -> None:
        error = outcome.error
        self._error(str(error))
        if isinstance(error, ValidationExhausted):
            print(f"{DIM}Last candidate:{RESET}\n{error.last_message}", file=sys.stderr)
            for violation in error.violations:
                print(
                    f"  - {violation.message}. Fix: {violation.suggestion}",
                    file=sys.stderr,
                )
        logger.debug("generation failed after %d attempt(s)", outcome.attempts)


def main(argv: Optional[list[str]] = None) -> int:
    return CLI().run(argv)


if __name__ == "__main__":
    sys.exit(main())

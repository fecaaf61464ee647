"""Generation session state machine.

A :class:`GenerationSession` turns one :class:`~gitscribe.prompt.DiffContext`
into a commit message. Each round builds a prompt, makes exactly one
adapter call, and validates the answer. Invalid answers are fed back as a
synthesized refinement instruction until the auto-retry bound is reached.
Adapter failures end the session; nothing is retried behind the caller's
back.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from .config import DEFAULT_MAX_AUTO_RETRIES, Config
from .exceptions import (
    Cancelled,
    GitScribeError,
    ProviderError,
    ProviderTimeout,
    ProviderUnavailable,
    SessionClosed,
    ValidationExhausted,
)
from .prompt import (
    DiffContext,
    PromptCustomization,
    RefinementContext,
    build_retry_context,
    build_system_prompt,
    build_user_prompt,
    describe_violations,
)
from .providers.base import BaseDriver, InvokeRequest
from .providers.transport import DEFAULT_TIMEOUT, CancellationToken
from .validation import ValidationVerdict, clean_response, validate_commit_message

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    IDLE = "idle"
    BUILDING = "building"
    INVOKING = "invoking"
    VALIDATING = "validating"
    ACCEPTED = "accepted"
    AWAITING_USER_DECISION = "awaiting_user_decision"
    COMMITTED = "committed"
    ABANDONED = "abandoned"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {SessionState.COMMITTED, SessionState.ABANDONED, SessionState.FAILED}
)
_DECISION_STATES = frozenset(
    {SessionState.ACCEPTED, SessionState.AWAITING_USER_DECISION}
)
_ADAPTER_ERRORS = (ProviderUnavailable, ProviderTimeout, ProviderError, Cancelled)


@dataclass(frozen=True)
class GenerationSettings:
    """Explicit per-session settings; nothing is read from globals."""

    timeout: float = DEFAULT_TIMEOUT
    max_auto_retries: int = DEFAULT_MAX_AUTO_RETRIES
    customization: Optional[PromptCustomization] = None
    auto_accept: bool = False

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError("timeout must be greater than zero")
        if self.max_auto_retries < 0:
            raise ValueError("max_auto_retries must not be negative")

    @classmethod
    def from_config(
        cls, config: Config, auto_accept: bool = False
    ) -> "GenerationSettings":
        return cls(
            timeout=config.request_timeout,
            max_auto_retries=config.max_auto_retries,
            customization=config.customization(),
            auto_accept=auto_accept,
        )


@dataclass(frozen=True)
class GenerationOutcome:
    """What a session hands back to the calling UI layer."""

    state: SessionState
    message: Optional[str] = None
    violated_rules: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    error: Optional[GitScribeError] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None and self.state is not SessionState.ABANDONED


class GenerationSession:
    """One run from ``IDLE`` to ``COMMITTED``, ``ABANDONED`` or ``FAILED``."""

    def __init__(
        self,
        driver: BaseDriver,
        model: str,
        diff_context: DiffContext,
        settings: Optional[GenerationSettings] = None,
    ) -> None:
        self.driver = driver
        self.model = model
        self.diff_context = diff_context
        self.settings = settings or GenerationSettings()
        self.state = SessionState.IDLE
        self.refinement: Optional[RefinementContext] = None
        self.invocations = 0
        self.last_outcome: Optional[GenerationOutcome] = None
        self._errors: Optional[str] = None
        self._candidate: Optional[str] = None

    # ------------------------------------------------------------------
    # Public actions
    # ------------------------------------------------------------------
    async def generate(
        self, cancel_token: Optional[CancellationToken] = None
    ) -> GenerationOutcome:
        if self.state is not SessionState.IDLE:
            raise SessionClosed(
                f"Session already started (state: {self.state.value})"
            )
        return await self._run_round(cancel_token)

    async def refine(
        self,
        instruction: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> GenerationOutcome:
        """Re-prompt with ``instruction`` added to the full history."""
        self._require_decision("refine")
        instruction = (instruction or "").strip()
        if not instruction:
            raise ValueError("refinement instruction must not be empty")
        self._carry_forward(self._candidate or "", instruction)
        self._errors = None
        return await self._run_round(cancel_token)

    def edit(self, message: str) -> GenerationOutcome:
        """Replace the candidate with text the user edited by hand.

        Edited text is the user's call, so violations are reported but the
        session stays open for a decision.
        """
        self._require_decision("edit")
        message = clean_response(message or "")
        if not message:
            raise ValueError("edited message must not be empty")
        self._candidate = message
        verdict = validate_commit_message(message)
        self._transition(SessionState.AWAITING_USER_DECISION)
        return self._record(
            GenerationOutcome(
                state=self.state,
                message=message,
                violated_rules=tuple(verdict.violated_rules),
                warnings=tuple(w.rule for w in verdict.warnings),
                attempts=self.invocations,
            )
        )

    def accept(self) -> GenerationOutcome:
        self._require_decision("accept")
        self._transition(SessionState.COMMITTED)
        self.refinement = None
        return self._record(
            GenerationOutcome(
                state=self.state,
                message=self._candidate,
                attempts=self.invocations,
            )
        )

    def abandon(self) -> GenerationOutcome:
        if self.state.terminal:
            raise SessionClosed(f"Session already {self.state.value}")
        self._transition(SessionState.ABANDONED)
        self.refinement = None
        return self._record(
            GenerationOutcome(
                state=self.state,
                message=self._candidate,
                attempts=self.invocations,
            )
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _transition(self, new_state: SessionState) -> None:
        logger.debug("session %s -> %s", self.state.value, new_state.value)
        self.state = new_state

    def _require_decision(self, action: str) -> None:
        if self.state.terminal:
            raise SessionClosed(f"Cannot {action}: session already {self.state.value}")
        if self.state not in _DECISION_STATES:
            raise SessionClosed(
                f"Cannot {action} while session is {self.state.value}"
            )

    def _record(self, outcome: GenerationOutcome) -> GenerationOutcome:
        self.last_outcome = outcome
        return outcome

    def _carry_forward(self, message: str, instruction: str) -> None:
        if self.refinement is None:
            self.refinement = RefinementContext(last_message=message)
        else:
            self.refinement.last_message = message
        self.refinement.add(instruction)

    def _fail(
        self,
        error: GitScribeError,
        verdict: Optional[ValidationVerdict] = None,
    ) -> GenerationOutcome:
        self._transition(SessionState.FAILED)
        logger.debug("session failed: %s", error)
        self.refinement = None
        return self._record(
            GenerationOutcome(
                state=self.state,
                # Only a validation failure surfaces its last candidate.
                message=self._candidate if verdict is not None else None,
                violated_rules=tuple(verdict.violated_rules) if verdict is not None else (),
                error=error,
                attempts=self.invocations,
            )
        )

    def _build_request(self) -> InvokeRequest:
        system = build_system_prompt(self.settings.customization)
        prompt = build_user_prompt(
            self.diff_context, errors=self._errors, refinement=self.refinement
        )
        return InvokeRequest(
            provider_id=self.driver.provider_id,
            model=self.model,
            system=system,
            prompt=prompt,
            timeout=self.settings.timeout,
        )

    async def _run_round(
        self, cancel_token: Optional[CancellationToken]
    ) -> GenerationOutcome:
        auto_retries = 0
        while True:
            self._transition(SessionState.BUILDING)
            request = self._build_request()

            self._transition(SessionState.INVOKING)
            self.invocations += 1
            try:
                result = await self.driver.invoke(request, cancel_token)
            except _ADAPTER_ERRORS as exc:
                return self._fail(exc)
            except asyncio.CancelledError:
                self._fail(Cancelled("Generation task was cancelled"))
                raise

            self._transition(SessionState.VALIDATING)
            message = clean_response(result.text)
            self._candidate = message
            verdict = validate_commit_message(message)

            if verdict.ok:
                self._errors = None
                self._transition(
                    SessionState.ACCEPTED
                    if self.settings.auto_accept
                    else SessionState.AWAITING_USER_DECISION
                )
                return self._record(
                    GenerationOutcome(
                        state=self.state,
                        message=message,
                        warnings=tuple(w.rule for w in verdict.warnings),
                        attempts=self.invocations,
                    )
                )

            logger.debug(
                "candidate rejected (%s), auto-retry %d/%d",
                ", ".join(verdict.violated_rules),
                auto_retries,
                self.settings.max_auto_retries,
            )
            if auto_retries >= self.settings.max_auto_retries:
                return self._fail(
                    ValidationExhausted(message, verdict.violations), verdict
                )
            auto_retries += 1
            self._errors = build_retry_context(message, verdict)
            self._carry_forward(message, describe_violations(verdict))

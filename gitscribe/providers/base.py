"""Provider adapter contract and the two transport families.

Every concrete provider is either a :class:`CLIDriver` (spawns a local
executable, writes the prompt to its stdin, reads stdout) or an
:class:`APIDriver` (authenticated HTTP call). Both expose the same three
operations: ``invoke``, ``check_available`` and ``fetch_models``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Iterator, Optional, Sequence

import httpx

from ..config import env_secret_lookup
from ..exceptions import ProviderError, ProviderTimeout, ProviderUnavailable
from .catalog import resolve_models
from .descriptors import ModelDefinition, ProviderDescriptor
from .transport import CancellationToken, build_headers, run_guarded

logger = logging.getLogger(__name__)

SecretLookup = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class InvokeRequest:
    """One generation attempt against one provider/model."""

    provider_id: str
    model: str
    system: str
    prompt: str
    timeout: float

    def __post_init__(self) -> None:
        if not self.prompt or not self.prompt.strip():
            raise ValueError("prompt must be non-empty")
        if self.timeout <= 0:
            raise ValueError("timeout must be greater than zero")


@dataclass(frozen=True)
class InvokeResult:
    text: str
    elapsed: float


@dataclass(frozen=True)
class PreparedCommand:
    argv: list[str]
    stdin: str
    env: Optional[dict[str, str]] = None


class BaseDriver(ABC):
    """Abstract base for provider adapters.

    Drivers hold no per-call state and may be shared between sessions.
    They never retry: a failed call raises and retry policy belongs to
    the orchestrator.
    """

    def __init__(self, descriptor: ProviderDescriptor) -> None:
        self.descriptor = descriptor

    @property
    def provider_id(self) -> str:
        return self.descriptor.id

    async def invoke(
        self,
        request: InvokeRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> InvokeResult:
        """Run one bounded, cancellable call and return the raw text."""
        started = time.monotonic()
        text = await run_guarded(
            self._invoke(request),
            timeout=request.timeout,
            provider_id=self.provider_id,
            token=cancel_token,
        )
        elapsed = time.monotonic() - started
        logger.debug(
            "%s/%s answered in %.2fs (%d chars)",
            self.provider_id,
            request.model,
            elapsed,
            len(text or ""),
        )
        return InvokeResult(text=text or "", elapsed=elapsed)

    @abstractmethod
    async def _invoke(self, request: InvokeRequest) -> str:
        raise NotImplementedError

    @abstractmethod
    def check_available(self) -> bool:
        """Return True when credentials or the binary are present.

        Advisory only; must never raise.
        """
        raise NotImplementedError

    @abstractmethod
    async def fetch_models(
        self, api_key: Optional[str] = None
    ) -> list[ModelDefinition]:
        raise NotImplementedError


class CLIDriver(BaseDriver):
    """Adapter spawning a local AI CLI tool."""

    MODELS: Sequence[ModelDefinition] = ()
    LABEL = "CLI"

    def _resolve_binary(self) -> str:
        binary = self.descriptor.binary or ""
        path = shutil.which(binary) if binary else None
        if not path:
            raise ProviderUnavailable(
                self.provider_id, f"'{binary}' was not found on PATH"
            )
        return path

    def check_available(self) -> bool:
        binary = self.descriptor.binary
        return bool(binary and shutil.which(binary))

    async def fetch_models(
        self, api_key: Optional[str] = None
    ) -> list[ModelDefinition]:
        return list(self.MODELS)

    @abstractmethod
    @contextlib.contextmanager
    def prepare(
        self, binary: str, request: InvokeRequest
    ) -> Iterator[PreparedCommand]:
        """Yield the command line, stdin payload and environment."""
        raise NotImplementedError

    async def _invoke(self, request: InvokeRequest) -> str:
        binary = self._resolve_binary()
        with self.prepare(binary, request) as command:
            logger.debug("Spawning %s", command.argv[0])
            proc = await asyncio.create_subprocess_exec(
                *command.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=command.env,
            )
            try:
                stdout, stderr = await proc.communicate(
                    command.stdin.encode("utf-8")
                )
            except asyncio.CancelledError:
                if proc.returncode is None:
                    proc.kill()
                await proc.wait()
                raise

        out = stdout.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            err = stderr.decode("utf-8", errors="replace").strip()
            detail = err or out.strip() or "Unknown error"
            raise ProviderError(
                self.provider_id,
                proc.returncode,
                f"{self.LABEL} error (exit code {proc.returncode}):\n{detail}",
            )
        return out


class APIDriver(BaseDriver):
    """Adapter calling a remote HTTP model endpoint.

    ``secrets`` resolves the API key for a provider id. ``http_client``
    lets callers share one :class:`httpx.AsyncClient`; when omitted each
    call opens and closes its own.
    """

    def __init__(
        self,
        descriptor: ProviderDescriptor,
        *,
        secrets: Optional[SecretLookup] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        super().__init__(descriptor)
        self._secrets = secrets or env_secret_lookup
        self._http_client = http_client
        self._extra_headers = dict(headers or {})

    @property
    def base_url(self) -> str:
        return (self.descriptor.base_url or "").rstrip("/")

    def headers(self, extra: Optional[dict[str, str]] = None) -> dict[str, str]:
        merged = dict(self._extra_headers)
        if extra:
            merged.update(extra)
        return build_headers(merged)

    def api_key(self, override: Optional[str] = None) -> str:
        key = override or self._secrets(self.provider_id)
        if not key:
            env_name = self.descriptor.api_key_env or "an API key"
            raise ProviderUnavailable(
                self.provider_id, f"no credential found (set {env_name})"
            )
        return key

    def check_available(self) -> bool:
        try:
            return bool(self._secrets(self.provider_id))
        except Exception as exc:  # noqa: BLE001 - advisory check never raises
            logger.debug("Credential check for %s failed: %s", self.provider_id, exc)
            return False

    @contextlib.asynccontextmanager
    async def _client(self, timeout: float) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=timeout) as client:
            yield client

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        timeout: float,
        params: Optional[dict[str, str]] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> Any:
        async with self._client(timeout) as client:
            try:
                response = await client.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=payload,
                    timeout=timeout,
                )
            except httpx.TimeoutException as exc:
                raise ProviderTimeout(self.provider_id, timeout) from exc
            except httpx.HTTPError as exc:
                raise ProviderError(
                    self.provider_id,
                    None,
                    f"{self.descriptor.name} network error: {exc}",
                ) from exc
        if response.status_code >= 400:
            raise ProviderError(
                self.provider_id,
                response.status_code,
                f"{self.descriptor.name} API error ({response.status_code}): "
                f"{response.text}",
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(
                self.provider_id,
                response.status_code,
                f"{self.descriptor.name} returned invalid JSON",
            ) from exc

    async def fetch_models(
        self, api_key: Optional[str] = None
    ) -> list[ModelDefinition]:
        key = self.api_key(api_key)
        raw = await self._list_raw_models(key)
        return resolve_models(self.provider_id, raw)

    @abstractmethod
    async def _list_raw_models(self, api_key: str) -> list[dict[str, Any]]:
        raise NotImplementedError

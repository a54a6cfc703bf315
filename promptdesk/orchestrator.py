"""Generation orchestrator.

Composes substitution, request mapping, the provider client and response
mapping into one generation attempt, and records exactly one execution log
entry per attempt, whatever the outcome.

Attempt flow:
1. Merge tenant variables under the runtime variables
2. Render the prompt template
3. Map the request body (branching on the model type)
4. Resolve the tenant's provider secret
5. Build the outbound request (URL + headers)
6. Call the provider (timed)
7. Map the response
8. Assemble the result and append the log entry
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

from promptdesk.audit import attempt_hash
from promptdesk.entities import GenerationRequest, GenerationResult, LogEntry
from promptdesk.errors import (
    ConfigurationError,
    NotFoundError,
    PromptDeskError,
    ProviderError,
    ProviderErrorKind,
)
from promptdesk.mapper import (
    ResponseMapping,
    build_request,
    map_request_body,
    map_response,
    normalize_prompt,
)
from promptdesk.provider import DEFAULT_TIMEOUT_SECONDS, ProviderClient
from promptdesk.router import resolve_route
from promptdesk.stores import ModelStore, PromptStore, VariableStore
from promptdesk.substitution import render
from promptdesk.telemetry import log_generation

_logger = logging.getLogger("promptdesk")

CANCELLED_STATUS = 499


class LogSink(Protocol):
    async def append(self, entry: LogEntry) -> str:
        ...


class SecretResolver(Protocol):
    def resolve_api_key(self, tenant: str) -> Optional[str]:
        ...


@dataclass
class _Trace:
    """What an attempt got through before it finished or failed."""

    duration_ms: int = 0
    raw: Any = None
    data: Dict[str, Any] = field(default_factory=dict)


class Orchestrator:
    """Runs generation attempts.

    Args:
        log_sink: Receives one LogEntry per attempt.
        secrets: Resolves the provider secret for a model's organization.
        provider: Provider client; a default ProviderClient if omitted.
        variables: Optional tenant-wide variable store. Its values are
            available to templates but runtime variables take precedence.
        prompts: Prompt store, required by ``generate_for``.
        models: Model store, required by ``generate_for``.
        default_timeout: Upper bound in seconds on any provider call.
    """

    def __init__(
        self,
        *,
        log_sink: LogSink,
        secrets: SecretResolver,
        provider: Optional[ProviderClient] = None,
        variables: Optional[VariableStore] = None,
        prompts: Optional[PromptStore] = None,
        models: Optional[ModelStore] = None,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._log_sink = log_sink
        self._secrets = secrets
        self._provider = provider or ProviderClient()
        self._variables = variables
        self._prompts = prompts
        self._models = models
        self._default_timeout = default_timeout

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Run one generation attempt.

        Never raises for configuration, mapping or provider failures; they
        are reported through ``GenerationResult.status`` and ``error``.
        Cancellation is re-raised after a best-effort log write.
        """
        prompt, model = request.prompt, request.model
        tenant = prompt.organization_id
        trace = _Trace()

        try:
            output = await self._run(request, trace)
        except asyncio.CancelledError:
            result = GenerationResult(
                output=None,
                status=CANCELLED_STATUS,
                error="Generation cancelled.",
                duration_ms=trace.duration_ms,
            )
            await self._record(
                tenant, prompt.id, model.id, request.variables, result, trace, "cancelled"
            )
            raise
        except PromptDeskError as exc:
            result = GenerationResult(
                output=None,
                status=exc.status,
                error=exc.detail,
                duration_ms=trace.duration_ms,
            )
            outcome = _outcome(exc)
        except Exception as exc:
            _logger.exception("Unexpected failure during generation")
            result = GenerationResult(
                output=None,
                status=500,
                error="Internal error: {}".format(exc),
                duration_ms=trace.duration_ms,
            )
            outcome = "internal_error"
        else:
            result = GenerationResult(
                output=output, status=200, duration_ms=trace.duration_ms
            )
            outcome = "success"

        result.log_id = await self._record(
            tenant, prompt.id, model.id, request.variables, result, trace, outcome
        )
        return result

    async def generate_for(
        self,
        prompt_id: str,
        model_id: Optional[str],
        variables: Dict[str, Any],
        tenant: str,
        timeout: Optional[float] = None,
    ) -> GenerationResult:
        """Resolve a prompt (and model) by id within ``tenant`` and generate.

        A prompt or model that cannot be found still produces one log entry
        and a 404 result.
        """
        if self._prompts is None or self._models is None:
            raise RuntimeError("generate_for requires prompt and model stores")

        try:
            route = resolve_route(
                self._prompts, self._models, prompt_id, tenant, model_id=model_id
            )
        except NotFoundError as exc:
            result = GenerationResult(output=None, status=exc.status, error=exc.detail)
            result.log_id = await self._record(
                tenant, prompt_id, model_id, variables, result, _Trace(), "not_found"
            )
            return result

        return await self.generate(
            GenerationRequest(
                prompt=route.prompt,
                model=route.model,
                variables=variables,
                timeout=timeout,
            )
        )

    async def _run(self, request: GenerationRequest, trace: _Trace) -> Any:
        model = request.model
        variables = self._merged_variables(request.prompt.organization_id, request.variables)

        rendered = render(request.prompt.prompt_data, variables)
        prompt = normalize_prompt(model.type, rendered)
        trace.data["prompt"] = prompt

        body = map_request_body(
            model.type, model.request_mapping, prompt, model.model_parameters
        )
        response_mapping = ResponseMapping.parse(model.response_mapping)

        api_key = self._secrets.resolve_api_key(model.organization_id)
        outbound = build_request(
            model.api_call, body, model.model_parameters, api_key, variables
        )
        trace.data["request"] = {
            "method": outbound.method,
            "url": outbound.url,
            "body": outbound.body,
        }

        started = time.perf_counter()
        try:
            raw = await self._provider.execute(outbound, self._timeout_for(request))
            trace.raw = raw.body
            trace.data["provider_status"] = raw.status
            normalized = map_response(response_mapping, raw)
        finally:
            trace.duration_ms = int(round((time.perf_counter() - started) * 1000))

        if normalized.provider_error is not None:
            raise ProviderError(
                ProviderErrorKind.PROVIDER,
                normalized.provider_error,
                status=raw.status if raw.status >= 400 else 502,
            )
        return normalized.output

    def _merged_variables(self, tenant: str, runtime: Dict[str, Any]) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        if self._variables is not None:
            merged.update(self._variables.get(tenant))
        merged.update(runtime)
        return merged

    def _timeout_for(self, request: GenerationRequest) -> float:
        if request.timeout is None:
            return self._default_timeout
        return max(0.0, min(request.timeout, self._default_timeout))

    async def _record(
        self,
        tenant: str,
        prompt_id: Optional[str],
        model_id: Optional[str],
        variables: Dict[str, Any],
        result: GenerationResult,
        trace: _Trace,
        outcome: str,
    ) -> Optional[str]:
        """Append the attempt's log entry. Sink failures are only logged."""
        entry = LogEntry(
            id=uuid.uuid4().hex,
            organization_id=tenant,
            model_id=model_id,
            prompt_id=prompt_id,
            status=result.status,
            error=result.error is not None,
            message=result.output if result.error is None else result.error,
            hash=attempt_hash(
                organization_id=tenant,
                model_id=model_id,
                prompt_id=prompt_id,
                variables=variables,
            ),
            duration_ms=result.duration_ms,
            raw=trace.raw,
            data=dict(trace.data, variables=variables),
        )

        log_id: Optional[str] = None
        try:
            log_id = await self._log_sink.append(entry)
        except Exception:
            _logger.exception("Failed to append execution log entry %s", entry.id)

        log_generation(
            organization_id=tenant,
            prompt_id=prompt_id,
            model_id=model_id,
            outcome=outcome,
            status=result.status,
            duration_ms=result.duration_ms,
            error=result.error,
            log_id=log_id,
        )
        return log_id


def _outcome(exc: PromptDeskError) -> str:
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, ConfigurationError):
        return "configuration_error"
    if isinstance(exc, ProviderError):
        return "provider_{}".format(exc.kind.value)
    return "error"

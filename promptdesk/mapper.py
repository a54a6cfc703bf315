"""Request and response mapping between PromptDesk and provider wire formats.

The request side turns a rendered prompt plus model parameters into a
concrete OutboundRequest; the response side turns a provider's raw
response into a NormalizedOutput. Both are driven entirely by the mapping
rules stored on the model, and both are synchronous and side-effect free.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from promptdesk.entities import ApiCall, ModelType
from promptdesk.errors import MappingError, SubstitutionError
from promptdesk.mapping import Node, evaluate, parse_rule
from promptdesk.substitution import render

_DEFAULT_PROMPT_FIELD = {
    ModelType.CHAT: "messages",
    ModelType.COMPLETION: "prompt",
    ModelType.EMBEDDING: "input",
}


@dataclass(frozen=True)
class OutboundRequest:
    """A fully resolved provider call."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None


@dataclass(frozen=True)
class RawResponse:
    """What the provider sent back, whatever the HTTP status."""

    status: int
    body: Any
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class NormalizedOutput:
    """Provider response projected onto PromptDesk's result shape."""

    output: Any
    provider_error: Optional[str] = None


@dataclass(frozen=True)
class ResponseMapping:
    """Parsed response rules: where the output and the error indicator live."""

    output: Node
    error: Optional[Node] = None

    @classmethod
    def parse(cls, document: Any) -> "ResponseMapping":
        """Parse a model's ``response_mapping`` document.

        Raises:
            MappingError: If ``output`` is missing or any rule is malformed.
        """
        if not isinstance(document, dict) or "output" not in document:
            raise MappingError("Response mapping must define an 'output' rule.")
        error = document.get("error")
        return cls(
            output=parse_rule(document["output"]),
            error=parse_rule(error) if error is not None else None,
        )


def normalize_prompt(model_type: ModelType, prompt_data: Any) -> Any:
    """Bring rendered prompt data into the canonical shape for ``model_type``.

    Chat models get a list of ``{role, content}`` turns (a non-empty
    ``context`` becomes a leading system turn); completion and embedding
    models get a single string.

    Raises:
        MappingError: If the prompt data cannot take the required shape.
    """
    if model_type == ModelType.CHAT:
        return _chat_turns(prompt_data)

    if isinstance(prompt_data, dict) and "prompt" in prompt_data:
        prompt_data = prompt_data["prompt"]
    if not isinstance(prompt_data, str):
        raise MappingError(
            "A {} model needs a text prompt, got {}.".format(
                model_type.value, type(prompt_data).__name__
            )
        )
    return prompt_data


def _chat_turns(prompt_data: Any) -> List[Dict[str, Any]]:
    context = None
    messages = prompt_data
    if isinstance(prompt_data, dict):
        context = prompt_data.get("context")
        messages = prompt_data.get("messages", [])

    if not isinstance(messages, list):
        raise MappingError("A chat model needs a list of message turns.")

    turns: List[Dict[str, Any]] = []
    if context:
        turns.append({"role": "system", "content": context})
    for turn in messages:
        if not isinstance(turn, dict) or "role" not in turn or "content" not in turn:
            raise MappingError("Chat turns must be objects with 'role' and 'content'.")
        turns.append({"role": turn["role"], "content": turn["content"]})

    if not turns:
        raise MappingError("A chat prompt must contain at least one turn.")
    return turns


def default_request_rule(model_type: ModelType) -> Node:
    """Request rule used when a model has no ``request_mapping``."""
    return parse_rule(
        {
            "$merge": [
                {"$path": "parameters", "default": {}},
                {_DEFAULT_PROMPT_FIELD[model_type]: {"$path": "prompt"}},
            ]
        }
    )


def map_request_body(
    model_type: ModelType,
    request_mapping: Any,
    prompt: Any,
    model_parameters: Mapping[str, Any],
) -> Any:
    """Assemble the provider request body.

    Args:
        model_type: Type of the target model; decides the prompt shape.
        request_mapping: The model's stored rule document, or None for the
            per-type default.
        prompt: Normalized prompt from ``normalize_prompt``.
        model_parameters: Opaque model parameter bag.

    Returns:
        The body to send to the provider.

    Raises:
        MappingError: If the rule is malformed, references an absent
            field, or yields a body of the wrong shape for the model type.
    """
    if request_mapping is None:
        rule = default_request_rule(model_type)
    else:
        rule = parse_rule(request_mapping)

    source = {
        "prompt": prompt,
        "parameters": dict(model_parameters),
        "model_type": model_type.value,
    }
    body = evaluate(rule, source)

    if model_type == ModelType.CHAT and not _carries_turns(body):
        raise MappingError(
            "A chat model request body must carry the message turns as a "
            "sequence of {role, content} objects."
        )
    if model_type != ModelType.CHAT and isinstance(body, list):
        raise MappingError(
            "A {} model request body cannot be a sequence.".format(model_type.value)
        )
    return body


def _is_turn_sequence(value: Any) -> bool:
    return (
        isinstance(value, list)
        and len(value) > 0
        and all(
            isinstance(turn, dict) and "role" in turn and "content" in turn
            for turn in value
        )
    )


def _carries_turns(body: Any) -> bool:
    """True if ``body`` is a turn sequence or has one as a top-level field."""
    if isinstance(body, dict):
        return any(_is_turn_sequence(value) for value in body.values())
    return _is_turn_sequence(body)


def build_request(
    api_call: ApiCall,
    body: Any,
    model_parameters: Mapping[str, Any],
    api_key: Optional[str] = None,
    variables: Optional[Mapping[str, Any]] = None,
) -> OutboundRequest:
    """Render the URL and headers and pair them with a mapped body.

    Templates see three names: ``{{api_key}}`` (the tenant secret, absent
    when none resolved), ``{{parameters.<name>}}`` and
    ``{{variables.<name>}}``. Variables are only reachable under their
    prefix and never shadow ``api_key`` or ``parameters``.

    Raises:
        MappingError: If a URL or header template references an unknown
            name (for instance ``{{api_key}}`` when no secret resolved).
    """
    context: Dict[str, Any] = {
        "parameters": dict(model_parameters),
        "variables": dict(variables or {}),
    }
    if api_key is not None:
        context["api_key"] = api_key

    try:
        url = render(api_call.url, context)
        headers = {
            name: str(render(value, context))
            for name, value in api_call.headers.items()
        }
    except SubstitutionError as exc:
        raise MappingError(
            "Invalid API call template: {}".format(exc.detail)
        ) from exc

    return OutboundRequest(
        method=api_call.method.upper(),
        url=str(url),
        headers=headers,
        body=body,
    )


def map_response(mapping: ResponseMapping, raw: RawResponse) -> NormalizedOutput:
    """Project a raw provider response onto ``{output, provider_error}``.

    The error rule is evaluated first. A non-2xx status always yields a
    provider error, falling back to a generic message when the configured
    error field is empty. When a provider error is present, output
    extraction is best effort.

    Raises:
        MappingError: If the response looks successful but the output rule
            references an absent field.
    """
    source = {"status": raw.status, "body": raw.body, "headers": dict(raw.headers)}

    provider_error = None
    if mapping.error is not None:
        try:
            provider_error = evaluate(mapping.error, source)
        except MappingError:
            provider_error = None
    if not provider_error:
        provider_error = None
    if provider_error is None and not raw.is_success:
        provider_error = "Provider returned HTTP {}".format(raw.status)

    if provider_error is not None:
        try:
            output = evaluate(mapping.output, source)
        except MappingError:
            output = None
        return NormalizedOutput(output=output, provider_error=_error_text(provider_error))

    return NormalizedOutput(output=evaluate(mapping.output, source))


def _error_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and isinstance(value.get("message"), str):
        return value["message"]
    return str(value)

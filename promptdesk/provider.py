"""Provider client: executes one outbound HTTP call against a model provider.

The client never retries and never interprets the HTTP status. Non-2xx
responses come back as a RawResponse so the response mapping can apply
provider-specific error semantics. Only timeouts and transport failures
are raised, as ProviderError.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx

from promptdesk.errors import ProviderError, ProviderErrorKind
from promptdesk.mapper import OutboundRequest, RawResponse

DEFAULT_TIMEOUT_SECONDS = 60.0


class ProviderClient:
    """Async HTTP client for provider calls.

    Args:
        transport: Optional httpx transport. Tests inject
            ``httpx.MockTransport`` here; production leaves it unset.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._transport = transport

    async def execute(
        self,
        request: OutboundRequest,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> RawResponse:
        """Send ``request`` and return the provider's response.

        Args:
            request: The fully mapped provider call.
            timeout: Total budget in seconds, also used as the connect
                timeout.

        Returns:
            A RawResponse carrying the status and decoded body.

        Raises:
            ProviderError: With kind TIMEOUT if the budget is exceeded, or
                NETWORK if the provider cannot be reached.
        """
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(timeout),
                transport=self._transport,
            ) as client:
                resp = await asyncio.wait_for(
                    client.request(
                        request.method,
                        request.url,
                        headers=request.headers,
                        **_body_kwargs(request),
                    ),
                    timeout=timeout,
                )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise ProviderError(
                ProviderErrorKind.TIMEOUT,
                "Provider did not respond within {:g}s.".format(timeout),
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderError(
                ProviderErrorKind.NETWORK,
                "Failed to reach provider: {}".format(exc),
            ) from exc

        return RawResponse(
            status=resp.status_code,
            body=_decode_body(resp),
            headers=dict(resp.headers),
        )


def _body_kwargs(request: OutboundRequest) -> Dict[str, Any]:
    if request.body is None or request.method in ("GET", "HEAD"):
        return {}
    if isinstance(request.body, (str, bytes)):
        return {"content": request.body}
    return {"json": request.body}


def _decode_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text

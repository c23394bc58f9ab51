"""
HTTP transport for the chat completions endpoint.
Executes single-shot requests and decodes streaming responses into events.
"""
import contextlib
import logging
import uuid
from typing import AsyncIterator, Dict, Optional

import httpx
from pydantic import ValidationError

import settings
from errors import ApiError, NetworkError
from stream_debug import maybe_create_stream_tracer
from utils.logging_utils import log_request
from .events import StreamError, StreamEvent
from .models import ApiErrorBody, ChatCompletionRequest, ChatCompletionResponse
from .stream_decoder import StreamFrameDecoder

logger = logging.getLogger(__name__)


def new_request_id() -> str:
    return uuid.uuid4().hex[:12]


def decode_error_message(status_code: int, body: str) -> str:
    """Message from a structured error body, else the raw status and body"""
    try:
        return ApiErrorBody.model_validate_json(body).error.message
    except ValidationError:
        return f"API error: {status_code} - {body}"


class ChatTransport:
    """Transport for an OpenAI-style ``/chat/completions`` endpoint"""

    def __init__(
        self,
        api_host: str,
        client: Optional[httpx.AsyncClient] = None,
        verify: bool = True,
        trace_enabled: bool = settings.STREAM_TRACE_ENABLED,
    ):
        """
        Args:
            api_host: Base URL of the API (e.g. https://host/api/v1)
            client: Optional shared HTTP client; a client is created per call otherwise
            verify: TLS verification for per-call clients
            trace_enabled: Write raw stream traffic to STREAM_TRACE_DIR
        """
        self.api_host = api_host
        self._client = client
        self._verify = verify
        self.trace_enabled = trace_enabled

    @property
    def endpoint(self) -> str:
        """Build the chat completions endpoint URL"""
        base_url = self.api_host
        if base_url.endswith('/chat/completions'):
            return base_url
        return f"{base_url.rstrip('/')}/chat/completions"

    def _get_headers(self, token: str, accept: str = "application/json") -> Dict[str, str]:
        """Build request headers"""
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": accept,
        }

    @contextlib.asynccontextmanager
    async def _http_client(self, timeout: httpx.Timeout) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=timeout, verify=self._verify) as client:
            yield client

    async def send(
        self,
        request: ChatCompletionRequest,
        token: str,
        request_id: Optional[str] = None,
    ) -> ChatCompletionResponse:
        """Make a non-streaming chat request

        Args:
            request: Chat request (its stream flag is ignored)
            token: Bearer access token
            request_id: Request ID for logging

        Returns:
            The decoded completion

        Raises:
            ApiError: On a non-2xx status or an undecodable body
            NetworkError: On connection failures and timeouts
        """
        request_id = request_id or new_request_id()
        payload = request.model_copy(update={"stream": None}).to_payload()
        headers = self._get_headers(token)
        log_request(request_id, payload, self.endpoint, headers)

        # Use REQUEST_TIMEOUT for non-streaming with explicit connect/write limits
        timeout = httpx.Timeout(
            settings.REQUEST_TIMEOUT,
            connect=settings.CONNECT_TIMEOUT,
            write=settings.WRITE_TIMEOUT,
        )
        try:
            async with self._http_client(timeout) as client:
                response = await client.post(self.endpoint, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"[{request_id}] Chat request timed out: {e!r}")
            raise NetworkError(f"Request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"[{request_id}] Chat request failed: {e!r}")
            raise NetworkError(f"Network error: {e}") from e

        logger.debug(f"[{request_id}] Chat response status: {response.status_code}")

        if not response.is_success:
            message = decode_error_message(response.status_code, response.text)
            logger.error(f"[{request_id}] API error {response.status_code}: {response.text}")
            raise ApiError(message, status_code=response.status_code)

        try:
            return ChatCompletionResponse.model_validate_json(response.content)
        except ValidationError as e:
            logger.error(f"[{request_id}] Failed to decode chat response: {e}")
            raise ApiError(f"Malformed response from API: {e.error_count()} error(s)",
                           status_code=response.status_code) from e

    async def send_stream(
        self,
        request: ChatCompletionRequest,
        token: str,
        request_id: Optional[str] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream a chat request as decoded events

        The iterator is lazy and single-use. It ends after StreamDone, after a
        StreamError, or when the server closes the body. Closing it early
        (``aclose()`` or leaving an ``aclosing`` block) releases the
        connection.

        Args:
            request: Chat request (sent with stream=true)
            token: Bearer access token
            request_id: Request ID for logging

        Yields:
            StreamContent / StreamFinished events, then StreamDone or StreamError
        """
        request_id = request_id or new_request_id()
        payload = request.model_copy(update={"stream": True}).to_payload()
        headers = self._get_headers(token, accept="text/event-stream")
        log_request(request_id, payload, self.endpoint, headers)

        tracer = maybe_create_stream_tracer(
            self.trace_enabled,
            request_id=request_id,
            base_dir=settings.STREAM_TRACE_DIR,
            max_bytes=settings.STREAM_TRACE_MAX_BYTES,
        )
        decoder = StreamFrameDecoder(request_id)

        # Use STREAM_TIMEOUT for streaming requests with READ_TIMEOUT between chunks
        timeout = httpx.Timeout(
            settings.STREAM_TIMEOUT,
            connect=settings.CONNECT_TIMEOUT,
            read=settings.READ_TIMEOUT,
            write=settings.WRITE_TIMEOUT,
        )

        try:
            async with self._http_client(timeout) as client:
                async with client.stream("POST", self.endpoint, json=payload, headers=headers) as response:
                    if tracer:
                        tracer.log_note(f"responded with status={response.status_code}")

                    if not response.is_success:
                        body = (await response.aread()).decode("utf-8", "replace")
                        logger.error(f"[{request_id}] API error {response.status_code}: {body}")
                        if tracer:
                            tracer.log_error(f"status={response.status_code} body={body}")
                        error = ApiError(
                            decode_error_message(response.status_code, body),
                            status_code=response.status_code,
                        )
                        yield StreamError(error)
                        return

                    async for text in response.aiter_text():
                        if tracer:
                            tracer.log_raw_chunk(text)
                        for event in decoder.feed(text):
                            if tracer:
                                tracer.log_event(event)
                            yield event
                        if decoder.done:
                            logger.debug(f"[{request_id}] Stream finished with [DONE]")
                            return

                    for event in decoder.flush():
                        if tracer:
                            tracer.log_event(event)
                        yield event

                    logger.debug(f"[{request_id}] Stream body ended without [DONE]")
        except httpx.TimeoutException as e:
            logger.error(f"[{request_id}] Stream timed out: {e!r}")
            if tracer:
                tracer.log_error(f"timeout: {e!r}")
            yield StreamError(NetworkError(f"Stream timed out: {e}"))
        except httpx.HTTPError as e:
            logger.error(f"[{request_id}] Stream failed: {e!r}")
            if tracer:
                tracer.log_error(f"transport error: {e!r}")
            yield StreamError(NetworkError(f"Connection error: {e}"))
        finally:
            if decoder.skipped_frames:
                logger.warning(f"[{request_id}] Skipped {decoder.skipped_frames} malformed frame(s)")
            if tracer:
                tracer.close()

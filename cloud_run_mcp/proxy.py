"""stdio to HTTPS proxy for an authenticated remote MCP server.

Reads one JSON-RPC payload from stdin, forwards it to a Cloud Run hosted
MCP server with a Google identity token, writes the reply to stdout and
exits.
"""

import argparse
import asyncio
import json
import sys
import time
from typing import Any, Callable, NamedTuple, TextIO

import google.auth.transport.requests
import httpx
from google.auth import exceptions as auth_exceptions
from google.auth import jwt
from google.oauth2 import id_token

from cloud_run_mcp.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

TOKEN_REFRESH_BUFFER_SECONDS = 300

PARSE_ERROR = -32700
CONNECTION_ERROR = -32000

# Returns an identity token for an audience
TokenFetcher = Callable[[str], str]


def fetch_identity_token(audience: str) -> str:
    """Fetch an ID token from Application Default Credentials."""
    request = google.auth.transport.requests.Request()
    return id_token.fetch_id_token(request, audience)


def token_expiry(token: str) -> float:
    """Expiry of a JWT as a Unix timestamp. The signature is not checked."""
    claims = jwt.decode(token, verify=False)
    if "exp" not in claims:
        raise ValueError("Identity token has no exp claim")
    return float(claims["exp"])


class IdentityTokenCache:
    """Caches an identity token and refreshes it ahead of expiry.

    After each fetch a timer is armed ``refresh_buffer`` seconds before
    the token expires; the refresh re-arms it. Call ``close()`` to cancel.
    """

    def __init__(
        self,
        audience: str,
        fetcher: TokenFetcher = fetch_identity_token,
        refresh_buffer: float = TOKEN_REFRESH_BUFFER_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.audience = audience
        self.fetcher = fetcher
        self.refresh_buffer = refresh_buffer
        self.clock = clock
        self._token: str | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._refresh_task: asyncio.Task | None = None

    @property
    def timer(self) -> asyncio.TimerHandle | None:
        return self._timer

    def _is_fresh(self, token: str) -> bool:
        return token_expiry(token) > self.clock() + self.refresh_buffer

    async def get(self) -> str:
        """Return the cached token, fetching a new one when close to expiry."""
        if self._token and self._is_fresh(self._token):
            return self._token
        return await self.refresh()

    async def refresh(self) -> str:
        token = await asyncio.to_thread(self.fetcher, self.audience)
        self._schedule_refresh(token)
        self._token = token
        logger.info("proxy.token.fetched")
        return token

    def _schedule_refresh(self, token: str) -> None:
        delay = max(0.0, token_expiry(token) - self.clock() - self.refresh_buffer)
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._on_timer)
        logger.debug("proxy.token.refresh_scheduled", delay_seconds=round(delay, 1))

    def _on_timer(self) -> None:
        self._timer = None
        self._refresh_task = asyncio.ensure_future(self._background_refresh())

    async def _background_refresh(self) -> None:
        logger.info("proxy.token.refreshing")
        try:
            await self.refresh()
        except (auth_exceptions.GoogleAuthError, ValueError) as e:
            # No caller to report to; the next get() fetches again
            logger.error("proxy.token.refresh_failed", error=str(e))

    def close(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()


def _error_line(code: int, message: str, data: Any = None) -> str:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return json.dumps({"jsonrpc": "2.0", "error": error, "id": None}) + "\n"


def _sse_messages(body: str) -> list[str]:
    """Extract the ``data:`` payloads of a server-sent event stream."""
    messages = []
    for event in body.replace("\r\n", "\n").split("\n\n"):
        data = [line[5:].lstrip() for line in event.split("\n") if line.startswith("data:")]
        if data:
            messages.append("\n".join(data))
    return messages


class ForwardResult(NamedTuple):
    output: str
    ok: bool


async def forward_once(
    target_url: str,
    body: str,
    token: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ForwardResult:
    """POST ``body`` to the remote server and render its reply as JSON lines.

    A streamed reply yields one line per event; a plain JSON reply yields
    one line. A reply that is not JSON becomes a parse error message.
    Redirects are followed and an HTTP error status marks the result failed.
    """
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json, text/event-stream",
        "Authorization": f"Bearer {token}",
    }
    logger.debug("proxy.request", url=target_url, body_bytes=len(body.encode("utf-8")))

    try:
        async with httpx.AsyncClient(
            transport=transport, timeout=None, follow_redirects=True
        ) as client:
            response = await client.post(target_url, content=body, headers=headers)
    except httpx.TransportError as e:
        logger.error("proxy.connect_failed", url=target_url, error=str(e))
        return ForwardResult(
            _error_line(
                CONNECTION_ERROR,
                f"Proxy failed to connect to Cloud Run service: {e}",
            ),
            ok=False,
        )

    logger.info("proxy.response", status_code=response.status_code)
    if response.is_error:
        logger.error("proxy.http_error", status_code=response.status_code)
    text = response.text
    if response.headers.get("content-type", "").startswith("text/event-stream"):
        payloads = _sse_messages(text)
    else:
        payloads = [text]

    lines = []
    for payload in payloads:
        try:
            lines.append(json.dumps(json.loads(payload)) + "\n")
        except json.JSONDecodeError as e:
            logger.error("proxy.malformed_response", error=str(e))
            lines.append(
                _error_line(
                    PARSE_ERROR,
                    f"Proxy received malformed JSON from Cloud Run: {e}",
                    data=payload,
                )
            )
    if not lines:
        lines.append(
            _error_line(PARSE_ERROR, "Proxy received an empty response from Cloud Run", data=text)
        )
    return ForwardResult("".join(lines), ok=not response.is_error)


async def run_proxy(
    target_url: str,
    stdin: TextIO,
    stdout: TextIO,
    fetcher: TokenFetcher = fetch_identity_token,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """Proxy a single request; return the process exit code."""
    body = await asyncio.to_thread(stdin.read)
    logger.info("proxy.stdin_closed", body_bytes=len(body.encode("utf-8")))

    cache = IdentityTokenCache(target_url, fetcher)
    try:
        try:
            token = await cache.get()
        except auth_exceptions.GoogleAuthError as e:
            logger.error(
                "proxy.token.fetch_failed",
                error=str(e),
                hint=(
                    "Run 'gcloud auth application-default login' or point "
                    "GOOGLE_APPLICATION_CREDENTIALS at a service account key."
                ),
            )
            return 1

        result = await forward_once(target_url, body, token, transport)
        stdout.write(result.output)
        stdout.flush()
        return 0 if result.ok else 1
    finally:
        cache.close()


def main(argv: list[str] | None = None) -> None:
    """Console entry point for ``cloud-run-mcp-proxy``."""
    parser = argparse.ArgumentParser(
        prog="cloud-run-mcp-proxy",
        description="Forward one MCP request from stdin to an authenticated Cloud Run URL.",
    )
    parser.add_argument("target_url", help="URL of the remote MCP endpoint")
    args = parser.parse_args(argv)

    configure_logging()
    sys.exit(asyncio.run(run_proxy(args.target_url, sys.stdin, sys.stdout)))


if __name__ == "__main__":
    main()

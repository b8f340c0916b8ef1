"""HTTP page fetching for search providers."""

import httpx

from models.errors import ProviderError, ProviderErrorKind
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_S = 20.0
DEFAULT_USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) MagnetCurator/1.0"


class PageFetcher:
    """
    Thin synchronous wrapper around ``httpx.Client``.

    Every transport or HTTP failure is translated into a ProviderError so
    providers and the orchestrator only deal with one error type.
    """

    def __init__(
        self,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.BaseTransport | None = None,
    ):
        self.timeout_s = timeout_s
        self._client = httpx.Client(
            timeout=timeout_s,
            follow_redirects=True,
            headers={"User-Agent": user_agent},
            transport=transport,
        )

    def fetch(self, url: str, engine_id: str | None = None) -> str:
        """
        GET ``url`` and return the response body as text.

        Raises:
            ProviderError: timeout, unreachable, rate_limited or malformed_response
        """
        try:
            response = self._client.get(url)
        except httpx.TimeoutException as exc:
            raise ProviderError(
                ProviderErrorKind.TIMEOUT,
                f"Timed out after {self.timeout_s}s fetching {url}",
                engine_id=engine_id,
                details={"url": url},
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(
                ProviderErrorKind.UNREACHABLE,
                f"Could not reach {url}: {exc}",
                engine_id=engine_id,
                details={"url": url, "error_type": type(exc).__name__},
            ) from exc

        if response.status_code == 429:
            raise ProviderError(
                ProviderErrorKind.RATE_LIMITED,
                f"Rate limited by {response.url.host}",
                engine_id=engine_id,
                details={"url": url, "retry_after": response.headers.get("Retry-After")},
            )
        if response.status_code >= 400:
            raise ProviderError(
                ProviderErrorKind.UNREACHABLE,
                f"HTTP {response.status_code} from {url}",
                engine_id=engine_id,
                details={"url": url, "status_code": response.status_code},
            )

        text = response.text
        if not text.strip():
            raise ProviderError(
                ProviderErrorKind.MALFORMED_RESPONSE,
                f"Empty response body from {url}",
                engine_id=engine_id,
                details={"url": url},
            )

        logger.debug(
            "Fetched page",
            extra={"extra_fields": {"engine_id": engine_id, "url": url, "bytes": len(response.content)}},
        )
        return text

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "PageFetcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

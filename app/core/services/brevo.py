import asyncio
import random
from typing import Any

from fastapi import status as http_status
import httpx
from pydantic import BaseModel

from app.core.config import brevo_logger, settings
from app.core.exceptions.types import AppException, ServiceUnavailableException


class Contact(BaseModel):
    email: str
    name: str | None = None


class BrevoService:
    """
    Client for the Brevo transactional email API.

    Transient failures (5xx, 429, network errors) are retried with
    exponential backoff; other 4xx responses fail immediately.
    """

    _base_url: str = settings.BREVO_BASE_URL
    _api_key: str = settings.BREVO_API_KEY
    _sender_email: str = settings.BREVO_SENDER_EMAIL
    _sender_name: str = settings.BREVO_SENDER_NAME
    _client: httpx.AsyncClient | None = None

    _BACKOFF_BASE: float = 3.0
    _BACKOFF_MAX: float = 60.0
    _JITTER: float = 0.2

    @classmethod
    def _init_client(cls) -> None:
        if cls._client is None:
            cls._client = httpx.AsyncClient(
                base_url=cls._base_url,
                timeout=httpx.Timeout(30.0),
            )
            brevo_logger.info("Brevo HTTP client initialized")

    @classmethod
    async def aclose(cls) -> None:
        if cls._client is not None:
            try:
                await cls._client.aclose()
            finally:
                cls._client = None
                brevo_logger.info("Brevo HTTP client closed")

    @classmethod
    async def init(
        cls,
        api_key: str | None = None,
        sender_email: str | None = None,
        sender_name: str | None = None,
    ) -> None:
        """
        Configure credentials and (re)create the HTTP client.

        Args:
            api_key: The Brevo API key. Unchanged if None.
            sender_email: Default sender address. Unchanged if None.
            sender_name: Default sender name. Unchanged if None.
        """
        if api_key is not None:
            cls._api_key = api_key
        if sender_email is not None:
            cls._sender_email = sender_email
        if sender_name is not None:
            cls._sender_name = sender_name
        await cls.aclose()
        cls._init_client()

    @classmethod
    def _compute_backoff(
        cls, attempt: int, err_headers: httpx.Headers | None = None
    ) -> float:
        """
        Seconds to wait before retry `attempt` (1-based).

        Honors Brevo's `x-sib-ratelimit-reset` header when present, otherwise
        uses capped exponential backoff with multiplicative jitter.
        """
        if err_headers and "x-sib-ratelimit-reset" in err_headers:
            try:
                return float(err_headers.get("x-sib-ratelimit-reset"))
            except ValueError:
                pass
        base = min(cls._BACKOFF_BASE * (2 ** (attempt - 1)), cls._BACKOFF_MAX)
        return base * random.uniform(1 - cls._JITTER, 1 + cls._JITTER)

    @classmethod
    def _auth_headers(cls) -> dict[str, str]:
        return {
            "api-key": cls._api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    @classmethod
    async def _request(
        cls,
        method: str,
        endpoint: str,
        *,
        json: dict[str, Any] | None = None,
        max_attempts: int = 3,
    ) -> dict[str, Any] | str:
        """
        Perform a Brevo API request with retry and backoff.

        Returns:
            The parsed JSON body, or the raw text if the body is not JSON.

        Raises:
            AppException: Non-retriable 4xx, or 5xx/429 after all retries.
            ServiceUnavailableException: Network errors after all retries.
        """
        if cls._client is None:
            cls._init_client()
        assert cls._client is not None

        for attempt in range(1, max_attempts + 1):
            try:
                resp = await cls._client.request(
                    method, endpoint, headers=cls._auth_headers(), json=json
                )
                resp.raise_for_status()
                try:
                    return resp.json()
                except ValueError:
                    return resp.text

            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                try:
                    err_body = exc.response.json()
                except ValueError:
                    err_body = exc.response.text

                retriable = status >= 500 or status == 429
                if retriable and attempt < max_attempts:
                    headers = exc.response.headers if status == 429 else None
                    wait = cls._compute_backoff(attempt, headers)
                    brevo_logger.warning(
                        f"Brevo returned {status}; attempt {attempt}/{max_attempts}; "
                        f"wait={wait:.1f}s; body={err_body}"
                    )
                    await asyncio.sleep(wait)
                    continue

                brevo_logger.error(f"Brevo request failed with {status}: {err_body}")
                raise AppException(
                    message=f"Brevo request failed with status {status}",
                    status_code=(
                        http_status.HTTP_429_TOO_MANY_REQUESTS
                        if status == 429
                        else status
                    ),
                ) from exc

            except (httpx.TimeoutException, httpx.TransportError) as exc:
                if attempt < max_attempts:
                    wait = cls._compute_backoff(attempt)
                    brevo_logger.warning(
                        f"Brevo transport error; attempt {attempt}/{max_attempts}; "
                        f"wait={wait:.1f}s; err={exc}"
                    )
                    await asyncio.sleep(wait)
                    continue
                brevo_logger.error(f"Brevo network error after retries: {exc}")
                raise ServiceUnavailableException(
                    "Email provider unreachable."
                ) from exc

        raise AppException(message="Unexpected state: no response after all attempts")

    @classmethod
    async def send_transactional_email(
        cls,
        to: Contact,
        subject: str,
        html_content: str | None = None,
        text_content: str | None = None,
        sender: Contact | None = None,
    ) -> dict[str, Any] | str:
        """
        Send one transactional email.

        Raises:
            ValueError: If neither html_content nor text_content is given.
        """
        if not html_content and not text_content:
            raise ValueError("Either html_content or text_content must be provided")

        sender = sender or Contact(email=cls._sender_email, name=cls._sender_name)
        payload: dict[str, Any] = {
            "sender": sender.model_dump(exclude_none=True),
            "to": [to.model_dump(exclude_none=True)],
            "subject": subject,
        }
        if html_content:
            payload["htmlContent"] = html_content
        if text_content:
            payload["textContent"] = text_content

        return await cls._request("POST", "/smtp/email", json=payload)


__all__ = ["BrevoService", "Contact"]

"""CAPTCHA verification against a reCAPTCHA-compatible endpoint."""

from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from flcore.config import settings


logger = structlog.get_logger()

ERROR_MESSAGES: dict[str, str] = {
    "missing-input-secret": "The secret parameter is missing.",
    "invalid-input-secret": "The secret parameter is invalid or malformed.",
    "missing-input-response": "The response parameter is missing.",
    "invalid-input-response": "The response parameter is invalid or malformed.",
    "bad-request": "The request is invalid or malformed.",
    "timeout-or-duplicate": "The response is no longer valid.",
    "network-error": "The verification service could not be reached.",
    "no-captcha": "The request does not contain a CAPTCHA response.",
}


class CaptchaResult(BaseModel):
    """Verification response."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    error_codes: list[str] = Field(default_factory=list, alias="error-codes")
    hostname: str | None = None
    challenge_ts: str | None = None

    @property
    def error_messages(self) -> list[str]:
        return [ERROR_MESSAGES.get(c, c) for c in self.error_codes]

    def to_dict(self) -> dict[str, Any]:
        """Result in the verification service's dict shape, plus ``error-messages``."""
        return {
            "success": self.success,
            "error-codes": list(self.error_codes),
            "error-messages": self.error_messages,
        }


class CaptchaVerifier:
    """Verifies CAPTCHA responses with a POST to the verify URL.

    Args:
        secret: Site secret; defaults to ``settings.captcha_secret``
        verify_url: Endpoint; defaults to ``settings.captcha_verify_url``
        timeout: Request timeout in seconds
        client: HTTP client to use instead of a new one per call
    """

    def __init__(
        self,
        secret: str | None = None,
        verify_url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.secret = secret if secret is not None else settings.captcha_secret
        self.verify_url = verify_url or settings.captcha_verify_url
        self.timeout = timeout if timeout is not None else settings.captcha_timeout
        self.client = client

    def _post(self, data: dict[str, Any]) -> dict[str, Any]:
        if self.client is not None:
            response = self.client.post(self.verify_url, data=data, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        with httpx.Client(timeout=self.timeout) as client:
            response = client.post(self.verify_url, data=data)
            response.raise_for_status()
            return response.json()

    def verify(self, response: str, remote_ip: str | None = None) -> CaptchaResult:
        """Verify a CAPTCHA response.

        Network and HTTP errors are reported as a failed verification with
        the ``network-error`` code.

        Args:
            response: The client's CAPTCHA response token
            remote_ip: The client IP address, if known

        Returns:
            The verification result
        """
        data = {"secret": self.secret, "response": response}
        if remote_ip:
            data["remoteip"] = remote_ip

        try:
            payload = self._post(data)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("captcha_verification_unavailable", error=str(e), url=self.verify_url)
            return CaptchaResult(success=False, error_codes=["network-error"])

        result = CaptchaResult.model_validate(payload)
        if not result.success:
            logger.info("captcha_verification_failed", error_codes=result.error_codes)
        return result

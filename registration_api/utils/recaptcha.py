from typing import Optional

import requests

from .logger import logger
from .objects import CaptchaResult


GOOGLE_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"


class RecaptchaVerifier:
    """
    Client for Google's reCAPTCHA `siteverify` endpoint.

    Every failure (missing secret, transport error, unreadable answer, rejected
    token, score under the threshold) comes back as CaptchaResult(accepted=False)
    rather than an exception. Nothing is retried.

    Args:
        secret_key (str, optional): Server-side reCAPTCHA secret. Without it every
            token is rejected.
        verify_url (str): Verification endpoint.
        score_threshold (float): Minimum reCAPTCHA v3 score (0.0 bot, 1.0 human).
        timeout (float): Seconds to wait for Google before giving up.
    """
    def __init__(
        self,
        secret_key: Optional[str],
        verify_url: str = GOOGLE_VERIFY_URL,
        score_threshold: float = 0.5,
        timeout: float = 10.0,
    ) -> None:
        self.secret_key = secret_key
        self.verify_url = verify_url
        self.score_threshold = score_threshold
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> 'RecaptchaVerifier':
        return cls(
            secret_key=settings.captcha_secret_key,
            verify_url=settings.captcha_verify_url,
            score_threshold=settings.captcha_score_threshold,
            timeout=settings.captcha_timeout,
        )

    def check(self, token: Optional[str]) -> CaptchaResult:
        if not token:
            return CaptchaResult(accepted=False, reason="CAPTCHA token is required")

        if not self.secret_key:
            logger.error("reCAPTCHA secret key is not configured, rejecting submission")
            return CaptchaResult(accepted=False, reason="reCAPTCHA not configured on server")

        try:
            response = requests.post(
                self.verify_url,
                data={"secret": self.secret_key, "response": token},
                timeout=self.timeout,
            )
            data = response.json()
        except requests.RequestException as e:
            logger.error(f"reCAPTCHA verification request failed: {e}")
            return CaptchaResult(accepted=False, reason="CAPTCHA verification error")
        except ValueError as e:
            logger.error(f"reCAPTCHA returned an unreadable response: {e}")
            return CaptchaResult(accepted=False, reason="CAPTCHA verification error")

        if not isinstance(data, dict):
            logger.error(f"reCAPTCHA returned an unexpected payload: {data!r}")
            return CaptchaResult(accepted=False, reason="CAPTCHA verification error")

        if data.get("success") is not True:
            error_codes = tuple(data.get("error-codes") or ())
            logger.info(f"reCAPTCHA rejected token: {list(error_codes)}")
            return CaptchaResult(
                accepted=False,
                reason="CAPTCHA verification failed",
                error_codes=error_codes,
            )

        score = data.get("score")
        if score is not None:
            if isinstance(score, bool) or not isinstance(score, (int, float)):
                logger.error(f"reCAPTCHA returned a non-numeric score: {score!r}")
                return CaptchaResult(accepted=False, reason="CAPTCHA verification error")
            if score < self.score_threshold:
                logger.info(f"reCAPTCHA score {score} below threshold {self.score_threshold}")
                return CaptchaResult(
                    accepted=False,
                    score=score,
                    reason="CAPTCHA score too low, please try again",
                )

        return CaptchaResult(accepted=True, score=score)

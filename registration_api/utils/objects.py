from dataclasses import dataclass, field
from typing import List, Optional, Tuple


# Error kinds returned by the submission pipeline
VALIDATION = "validation"
ABUSE_REJECTED = "abuse_rejected"
DUPLICATE = "duplicate"
STORE_ERROR = "store_error"

OPTIONAL_TEXT_FIELDS = (
    "github_link",
    "linkedin_link",
    "instagram_link",
    "team_name",
    "referrer_name",
    "referrer_email",
)
CAPTCHA_TOKEN_FIELD = "captchaToken"


@dataclass(frozen=True)
class ValidationResult:

    valid: bool
    reason: Optional[str] = field(default=None)

    @classmethod
    def ok(cls) -> 'ValidationResult':
        return cls(valid=True)

    @classmethod
    def reject(cls, reason: str) -> 'ValidationResult':
        return cls(valid=False, reason=reason)


@dataclass(frozen=True)
class CaptchaResult:

    accepted: bool
    score: Optional[float] = field(default=None)
    reason: Optional[str] = field(default=None)
    error_codes: Tuple[str, ...] = field(default=())


@dataclass(frozen=True)
class SubmissionResult:
    """
    Outcome of one submission.

    On success only `id` is set. On failure `kind` is one of the error kinds above
    and `detail` is the human readable reason (or the colliding field name for
    duplicates).
    """

    ok: bool
    id: Optional[str] = field(default=None)
    kind: Optional[str] = field(default=None)
    detail: Optional[str] = field(default=None)
    error_codes: Tuple[str, ...] = field(default=())

    @classmethod
    def success(cls, id: str) -> 'SubmissionResult':
        return cls(ok=True, id=id)

    @classmethod
    def failure(
        cls,
        kind: str,
        detail: str,
        error_codes: Optional[List[str]] = None,
    ) -> 'SubmissionResult':
        return cls(ok=False, kind=kind, detail=detail, error_codes=tuple(error_codes or ()))

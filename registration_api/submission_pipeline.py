from datetime import datetime, timezone
from typing import Any, Callable, Dict

from registration_api.utils.logger import logger
from registration_api.utils.mongo_handler import DuplicateRegistrationError, StoreError
from registration_api.utils.objects import (
    ABUSE_REJECTED,
    CAPTCHA_TOKEN_FIELD,
    DUPLICATE,
    STORE_ERROR,
    VALIDATION,
    SubmissionResult,
    ValidationResult,
)
from registration_api.validator import validate_registration


# Never persisted: the CAPTCHA token and an admin key sent by older clients
STRIPPED_FIELDS = (CAPTCHA_TOKEN_FIELD, 'adminKey')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(moment: datetime) -> str:
    """ISO-8601 with milliseconds and a Z suffix, e.g. 2024-05-01T10:00:00.000Z"""
    return moment.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class SubmissionPipeline:
    """
    Runs one registration through validation, the reCAPTCHA check, the duplicate
    check and the insert, stopping at the first step that fails.

    Args:
        store: Object with find_existing(roll_number, email) and
            insert_registration(document), normally a MongoDBHandler.
        verifier: Object with check(token) -> CaptchaResult, normally a RecaptchaVerifier.
        validator (Callable): Record validator. Defaults to validate_registration.
        clock (Callable): Returns the current aware datetime. Defaults to utcnow.
    """
    def __init__(
        self,
        store,
        verifier,
        validator: Callable[[Any], ValidationResult] = validate_registration,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.verifier = verifier
        self.validator = validator
        self.clock = clock

    def submit(self, raw: Any) -> SubmissionResult:
        validation = self.validator(raw)
        if not validation.valid:
            logger.info(f"Validation failed: {validation.reason}")
            return SubmissionResult.failure(VALIDATION, validation.reason)

        captcha = self.verifier.check(raw.get(CAPTCHA_TOKEN_FIELD))
        if not captcha.accepted:
            logger.info(f"CAPTCHA verification failed: {captcha.reason}")
            return SubmissionResult.failure(ABUSE_REJECTED, captcha.reason, list(captcha.error_codes))

        if captcha.score is not None:
            logger.info(f"CAPTCHA verification successful (score: {captcha.score})")

        document = strip_secrets(raw)

        try:
            existing = self.store.find_existing(document['roll_number'], document['email'])
        except StoreError as e:
            return SubmissionResult.failure(STORE_ERROR, str(e))

        if existing:
            field = 'roll_number' if existing.get('roll_number') == document['roll_number'] else 'email'
            logger.info(f"Duplicate entry attempted on {field}")
            return SubmissionResult.failure(DUPLICATE, field)

        now = self.clock()
        document['createdAt'] = now
        document['submittedAt'] = iso_timestamp(now)

        try:
            inserted_id = self.store.insert_registration(document)
        except DuplicateRegistrationError as e:
            logger.info(f"Duplicate entry rejected by index on {e.field}")
            return SubmissionResult.failure(DUPLICATE, e.field)
        except StoreError as e:
            return SubmissionResult.failure(STORE_ERROR, str(e))

        logger.info(f"Registration saved with ID {inserted_id} (roll number {document['roll_number']})")
        return SubmissionResult.success(str(inserted_id))


def strip_secrets(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in raw.items() if key not in STRIPPED_FIELDS}

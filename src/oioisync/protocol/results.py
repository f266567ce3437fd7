"""Partner result codes, their classification and the uniform Result value."""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum, IntEnum
from typing import Any, Optional

from ..models.custom_data import EMPTY, CustomData


class ResponseCodes(IntEnum):
    """Numeric result codes documented by the partner, plus two local ones."""

    # 0xx - Success
    SUCCESS = 0
    SUCCESSFULLY_STARTED_A_CHARGING_SESSION = 11
    SUCCESSFULLY_AUTHORIZED_A_CHARGING_SESSION = 12

    # 1xx - Partner errors
    SYSTEM_ERROR = 100
    DATABASE_ERROR = 101
    SYSTEM_TIMEOUT = 102
    AUTHENTICATION_FAILED_NO_POSITIVE_RESPONSE = 140
    AUTHENTICATION_FAILED_INVALID_EMAIL_OR_PASSWORD = 141
    AUTHENTICATION_FAILED_INVALID_EMAIL = 142
    AUTHENTICATION_FAILED_EMAIL_ALREADY_EXISTS = 143
    AUTHENTICATION_FAILED_EMAIL_DOES_NOT_EXIST = 144
    AUTHENTICATION_FAILED_USER_TOKEN_NOT_VALID = 145
    ENTITY_NOT_FOUND = 180
    EVSE_NOT_FOUND = 181
    SESSION_NOT_FOUND = 182
    COMPANY_NOT_FOUND = 183
    VEHICLE_NOT_FOUND = 184
    SUBSCRIPTION_PLAN_NOT_FOUND = 185
    GROUP_NOT_FOUND = 186
    EVSE_DOES_NOT_SUPPORT_DIRECT_PAY = 187
    EVSE_DOES_NOT_SUPPORT_REMOTE_STOP = 188
    EVCOID_ERROR = 190
    EVCOID_NOT_FOUND = 191
    EVCOID_LOCKED = 192
    EVCOID_HAS_NO_VALID_PAYMENT_METHOD = 193

    # 2xx - Client errors
    CLIENT_REQUEST_ERROR = 200
    INVALID_API_KEY = 210
    INVALID_PARTNER_IDENTIFIER = 211
    API_KEY_NOT_ALLOWED = 220
    INVALID_REQUEST_FORMAT = 230

    # 3xx - Operator and EVSE errors
    OPERATOR_SYSTEM_ERROR = 300
    OPERATOR_SYSTEM_TIMEOUT = 302
    EVSE_ERROR = 310
    EVSE_TIMEOUT = 312
    EVSE_ALREADY_IN_USE = 320
    EVSE_NO_EV_CONNECTED = 321

    # 4xx - Hub errors
    HUB_SYSTEM_ERROR = 400
    HUB_SYSTEM_TIMEOUT = 402

    # 8xx - Payment provider errors
    PAYMENT_SYSTEM_ERROR = 800
    PAYMENT_SYSTEM_TIMEOUT = 802
    PAYMENT_METHOD_NOT_ALLOWED_FOR_USER = 805
    PAYMENT_INVALID_FORMAT = 830
    PAYMENT_INVALID_PAYMENT_METHOD = 850
    PAYMENT_BANK_TRANSFER_ERROR = 860
    PAYMENT_BANK_ACCOUNT_NOT_VALID = 861
    PAYMENT_INVALID_NAME = 862
    PAYMENT_INVALID_IBAN = 863
    PAYMENT_INVALID_BIC = 864
    PAYMENT_CREDIT_CARD_ERROR = 870
    PAYMENT_CREDIT_CARD_NOT_VALID = 871
    PAYMENT_INVALID_CARD_HOLDER_NAME = 872
    PAYMENT_INVALID_CREDIT_CARD_NUMBER = 874
    PAYMENT_INVALID_EXPIRATION_DATE = 875
    PAYMENT_INVALID_CVC = 876
    PAYMENT_PAYPAL_ERROR = 880

    # Local codes for responses that could not be decoded at all
    INVALID_HTTP_RESPONSE = 1240
    INVALID_RESPONSE_FORMAT = 1241


class Outcome(str, Enum):
    """Coarse classification of a result code."""

    SUCCESS = "success"
    AUTH_ERROR = "auth_error"
    CLIENT_ERROR = "client_error"
    PARTNER_SYSTEM_ERROR = "partner_system_error"
    NOT_FOUND = "not_found"
    OPERATOR_ERROR = "operator_error"
    HUB_ERROR = "hub_error"
    PAYMENT_ERROR = "payment_error"
    UNKNOWN = "unknown"


_AUTH_CODES = frozenset(
    {
        ResponseCodes.INVALID_API_KEY,
        ResponseCodes.INVALID_PARTNER_IDENTIFIER,
        ResponseCodes.API_KEY_NOT_ALLOWED,
    }
)

_TIMEOUT_CODES = frozenset(
    {
        ResponseCodes.SYSTEM_TIMEOUT,
        ResponseCodes.OPERATOR_SYSTEM_TIMEOUT,
        ResponseCodes.EVSE_TIMEOUT,
        ResponseCodes.HUB_SYSTEM_TIMEOUT,
        ResponseCodes.PAYMENT_SYSTEM_TIMEOUT,
    }
)

RETRYABLE_OUTCOMES = frozenset(
    {Outcome.PARTNER_SYSTEM_ERROR, Outcome.OPERATOR_ERROR, Outcome.HUB_ERROR}
)


def classify(code: int, message: str = "") -> Outcome:  # noqa: PLR0911
    """
    Map a partner result code onto an Outcome.

    The message is accepted for symmetry with the partner's result envelope
    but does not influence the classification.
    """
    _ = message
    code = int(code)
    if code in (ResponseCodes.INVALID_HTTP_RESPONSE, ResponseCodes.INVALID_RESPONSE_FORMAT):
        return Outcome.PARTNER_SYSTEM_ERROR
    if 0 <= code < 100:
        return Outcome.SUCCESS
    if 100 <= code < 140:
        return Outcome.PARTNER_SYSTEM_ERROR
    if 140 <= code < 180:
        return Outcome.AUTH_ERROR
    if 180 <= code < 190:
        return Outcome.NOT_FOUND
    if 190 <= code < 200:
        return Outcome.AUTH_ERROR
    if 200 <= code < 300:
        return Outcome.AUTH_ERROR if code in _AUTH_CODES else Outcome.CLIENT_ERROR
    if 300 <= code < 400:
        return Outcome.OPERATOR_ERROR
    if 400 <= code < 500:
        return Outcome.HUB_ERROR
    if 800 <= code < 900:
        return Outcome.PAYMENT_ERROR
    return Outcome.UNKNOWN


def is_retryable(code: int) -> bool:
    """True if a later attempt may succeed without any change on our side."""
    return classify(code) in RETRYABLE_OUTCOMES or int(code) in _TIMEOUT_CODES


@dataclass(frozen=True)
class Result:
    """
    Uniform response of every partner operation.

    Transport and decoding failures are represented as Results with one of
    the local codes, so callers always get a value back.
    """

    operation: str
    code: int
    message: str = ""
    success: Optional[bool] = None
    request: Optional[dict[str, Any]] = None
    custom_data: CustomData = EMPTY
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    retry_after: Optional[float] = None
    http_status: Optional[int] = None
    event_tracking_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "code", int(self.code))
        if not isinstance(self.custom_data, CustomData):
            object.__setattr__(self, "custom_data", CustomData(self.custom_data))

    @property
    def outcome(self) -> Outcome:
        return classify(self.code, self.message)

    @property
    def is_success(self) -> bool:
        if self.success is not None:
            return self.success
        return self.outcome is Outcome.SUCCESS

    @property
    def is_retryable(self) -> bool:
        return not self.is_success and is_retryable(self.code)

    @property
    def response_code(self) -> Optional[ResponseCodes]:
        try:
            return ResponseCodes(self.code)
        except ValueError:
            return None

    def to_draft(self) -> "ResultDraft":
        return ResultDraft(
            operation=self.operation,
            code=self.code,
            message=self.message,
            success=self.success,
            request=self.request,
            custom_data=dict(self.custom_data),
            timestamp=self.timestamp,
            retry_after=self.retry_after,
            http_status=self.http_status,
            event_tracking_id=self.event_tracking_id,
        )

    def add_custom_data(self, key: str, value: Any) -> "Result":
        return replace(self, custom_data=self.custom_data.add(key, value))

    @classmethod
    def ok(cls, operation: str, message: str = "Success", **kwargs: Any) -> "Result":
        return cls(operation, ResponseCodes.SUCCESS, message, **kwargs)

    @classmethod
    def transport_failure(cls, operation: str, error: BaseException, **kwargs: Any) -> "Result":
        text = str(error) or error.__class__.__name__
        return cls(operation, ResponseCodes.INVALID_HTTP_RESPONSE, text, **kwargs)

    @classmethod
    def invalid_http_response(
        cls, operation: str, status: int, body: str, **kwargs: Any
    ) -> "Result":
        return cls(
            operation,
            ResponseCodes.INVALID_HTTP_RESPONSE,
            f"HTTP {status}: {body}",
            http_status=status,
            **kwargs,
        )

    @classmethod
    def invalid_response_format(cls, operation: str, body: str, **kwargs: Any) -> "Result":
        return cls(operation, ResponseCodes.INVALID_RESPONSE_FORMAT, body, **kwargs)

    def __str__(self) -> str:
        return f"{self.operation}: {self.code} {self.message}".rstrip()


@dataclass
class ResultDraft:
    """Mutable builder for a Result, handed to response customization hooks."""

    operation: str
    code: int = ResponseCodes.SUCCESS
    message: str = ""
    success: Optional[bool] = None
    request: Optional[dict[str, Any]] = None
    custom_data: dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[datetime] = None
    retry_after: Optional[float] = None
    http_status: Optional[int] = None
    event_tracking_id: Optional[str] = None

    def build(self) -> Result:
        return Result(
            operation=self.operation,
            code=int(self.code),
            message=self.message or "",
            success=self.success,
            request=self.request,
            custom_data=CustomData(self.custom_data),
            timestamp=self.timestamp or datetime.now(UTC),
            retry_after=self.retry_after,
            http_status=self.http_status,
            event_tracking_id=self.event_tracking_id,
        )

"""OIOI v4 wire protocol: codec, result classification and the HTTP client."""

from .client import CPOClient, parse_retry_after
from .operations import CONNECTOR_POST_STATUS, OPERATIONS, RFID_VERIFY, SESSION_POST, STATION_POST, Operation
from .results import Outcome, ResponseCodes, Result, ResultDraft, classify, is_retryable

__all__ = [
    "CONNECTOR_POST_STATUS",
    "CPOClient",
    "OPERATIONS",
    "Operation",
    "Outcome",
    "RFID_VERIFY",
    "ResponseCodes",
    "Result",
    "ResultDraft",
    "SESSION_POST",
    "STATION_POST",
    "classify",
    "is_retryable",
    "parse_retry_after",
]

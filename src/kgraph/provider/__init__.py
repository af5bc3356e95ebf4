"""Provider abstraction: contract, errors, retry/circuit breaker, fallbacks."""

from .base import (
    CircuitOpenError,
    PermanentProviderError,
    Provider,
    ProviderError,
    QuotaExhaustedError,
    TransientProviderError,
    parse_json_response,
)
from .session import RunContext, call_with_retry

__all__ = [
    "CircuitOpenError",
    "PermanentProviderError",
    "Provider",
    "ProviderError",
    "QuotaExhaustedError",
    "RunContext",
    "TransientProviderError",
    "call_with_retry",
    "parse_json_response",
]

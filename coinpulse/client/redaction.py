"""
Redaction utilities for CoinGecko API interactions.

Ensures the API key never appears in logs or diagnostics output.
"""

from typing import Any

from coinpulse.logging import REDACTED, redact_text

# Patterns that indicate sensitive headers
SENSITIVE_HEADER_PATTERNS = {
    "x-cg-demo-api-key",
    "x-cg-pro-api-key",
    "authorization",
    "cookie",
}

# Query parameters that may carry the key
SENSITIVE_PARAM_PATTERNS = {
    "x_cg_demo_api_key",
    "x_cg_pro_api_key",
    "api_key",
}


def is_sensitive_header(header_name: str) -> bool:
    """Check if a header name is sensitive."""
    lower_name = header_name.lower()
    return any(pattern in lower_name for pattern in SENSITIVE_HEADER_PATTERNS)


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """
    Redact sensitive values from headers dict.

    Args:
        headers: Original headers dict

    Returns:
        New dict with sensitive values replaced by [REDACTED]
    """
    return {k: REDACTED if is_sensitive_header(k) else v for k, v in headers.items()}


def redact_params(params: dict[str, Any] | None) -> dict[str, Any]:
    """Redact key-bearing query parameters."""
    if not params:
        return {}
    return {
        k: REDACTED if k.lower() in SENSITIVE_PARAM_PATTERNS else v
        for k, v in params.items()
    }


def safe_log_request(method: str, url: str, headers: dict[str, str]) -> str:
    """
    Create a safe log string for an HTTP request.

    Args:
        method: HTTP method
        url: Request URL, key-bearing query parameters are masked
        headers: Request headers

    Returns:
        Log-safe string representation
    """
    return f"{method} {redact_text(url)} headers={redact_headers(headers)}"

"""
cryptorg — Python client for the Cryptorg trading-bot management API.

Submodules
----------
client          Signed request dispatch and the endpoint catalog.
validators      Input validation for CLI parameters.
logging_config  Dual-output logging (console + rotating file).
"""

from cryptorg.client import (
    ConfigurationError,
    Credentials,
    CryptorgClient,
    CryptorgError,
    HttpMethod,
    TransportError,
    UnsupportedMethodError,
    generate_signature,
)

__all__ = [
    "ConfigurationError",
    "Credentials",
    "CryptorgClient",
    "CryptorgError",
    "HttpMethod",
    "TransportError",
    "UnsupportedMethodError",
    "generate_signature",
]

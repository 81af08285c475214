"""Error types raised by the campaign client engine.

Two families of errors exist:

* :class:`CampaignException` describes a failed interaction with the remote
  service (unknown method, bad parameter, SOAP fault). It carries an HTTP-like
  ``status_code`` and, for server faults, the server ``error_code`` (for
  example ``SOP-330006`` when a method is not implemented by the server build).
* :class:`DomException` describes malformed metadata: a schema, path, ref,
  link or enumeration name that violates its documented shape. These are
  always raised, never turned into a "not found" result.

Example::

    from campaign_client.exceptions import CampaignException

    try:
        await client.call_method("nms:recipient", "DoesNotExist")
    except CampaignException as ex:
        print(ex.status_code, ex.error_code, ex.message)
"""

from __future__ import annotations

from typing import Any, Optional

# Server error code returned when a SOAP method does not exist in the server build
METHOD_NOT_FOUND_ERROR_CODE = "SOP-330006"


class DomException(ValueError):
    """Malformed schema metadata or markup."""


class CampaignException(Exception):
    """An error raised while talking to the remote service.

    Attributes:
        status_code: HTTP-like status (400 for caller errors, 500 for faults).
        error_code: Server error code when known (e.g. ``SOP-330006``).
        message: Short human readable message.
        detail: Longer description, often including the faulty value.
        cause: Underlying exception, if any.
    """

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        detail: str = "",
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.detail = detail
        self.cause = cause

    def __str__(self) -> str:
        text = f"{self.status_code} - Error {self.error_code}: {self.message}"
        if self.detail:
            text = f"{text} {self.detail}"
        return text

    @classmethod
    def bad_parameter(cls, name: str, value: Any, details: str) -> "CampaignException":
        return cls(400, "", f"Bad parameter '{name}' with value '{value}'", details)

    @classmethod
    def soap_unknown_method(
        cls, schema_id: str, method_name: str, details: str
    ) -> "CampaignException":
        return cls(
            400,
            "",
            f"Unknown method '{method_name}' of schema '{schema_id}'",
            details,
        )

    @classmethod
    def invalid_representation(
        cls, representation: Any, details: str
    ) -> "CampaignException":
        return cls(
            400,
            "",
            f"Invalid representation '{representation}'.",
            details,
        )

    @classmethod
    def unexpected_soap_response(
        cls, details: str, cause: Optional[BaseException] = None
    ) -> "CampaignException":
        return cls(500, "", "Unexpected SOAP call response", details, cause)

    @classmethod
    def soap_fault(
        cls, error_code: str, message: str, detail: str = ""
    ) -> "CampaignException":
        """Build the exception a method invoker raises for a server side fault."""
        return cls(500, error_code, message, detail)

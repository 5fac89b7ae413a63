"""Response envelope parsing.

Every exchange response is ``{"result": "success"|"error", ...}``. Error
codes arrive as ``error_code`` on current endpoints and ``errorCode`` on
the legacy v2 family; both are folded into ExchangeError here so nothing
else has to know about the two spellings.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import ExchangeError, HttpError, MalformedResponse

ERROR_CODE_FIELDS = ("error_code", "errorCode")
ERROR_MESSAGE_FIELDS = ("error_msg", "errorMsg")


@dataclass(frozen=True)
class HttpResponse:
    """Transport-level outcome: a response was received."""
    status: int
    text: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def _first_present(data: Dict[str, Any], names) -> Optional[str]:
    for name in names:
        value = data.get(name)
        if value not in (None, ""):
            return str(value)
    return None


def parse_envelope(response: HttpResponse) -> Dict[str, Any]:
    """Validate a response and return the decoded envelope.

    Raises:
        HttpError: status outside 200-299
        MalformedResponse: body is not a JSON object with a ``result`` field
        ExchangeError: ``result`` is anything but ``"success"``
    """
    if not response.ok:
        raise HttpError(response.status, response.text)

    try:
        data = json.loads(response.text)
    except ValueError as e:
        raise MalformedResponse(f"response body is not JSON: {e}", response.text)

    if not isinstance(data, dict) or "result" not in data:
        raise MalformedResponse("response is not a result envelope", response.text)

    if data["result"] != "success":
        raise ExchangeError(
            code=_first_present(data, ERROR_CODE_FIELDS),
            message=_first_present(data, ERROR_MESSAGE_FIELDS),
        )
    return data

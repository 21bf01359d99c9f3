import base64
import binascii
import time
from typing import Any, Optional

from .errors import PromptValidationError

EXPORT_FILENAME_TEMPLATE = "generated-image-{timestamp}.png"


def validate_prompt(prompt: Any) -> str:
    """
    Validate a user prompt before any network call is made.

    Args:
        prompt: The raw prompt value as received.

    Returns:
        str: The prompt unchanged.

    Raises:
        PromptValidationError: If the prompt is not a string or is blank.
    """
    if not isinstance(prompt, str):
        raise PromptValidationError("Prompt is required and must be a string")
    if not prompt.strip():
        raise PromptValidationError("Prompt must not be empty")
    return prompt


def export_filename(timestamp_ms: Optional[int] = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return EXPORT_FILENAME_TEMPLATE.format(timestamp=timestamp_ms)


def is_data_uri(value: object) -> bool:
    return isinstance(value, str) and value.startswith("data:") and ";base64," in value


def decode_data_uri(data_uri: str) -> bytes:
    """Decode a ``data:<mime>;base64,<payload>`` URI into raw bytes."""
    header, sep, payload = data_uri.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("Image is not a base64 data URI")
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise ValueError("Image data URI has an invalid base64 payload") from exc

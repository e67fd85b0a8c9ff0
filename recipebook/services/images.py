from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass

from recipebook.services.errors import InvalidInputError

DEFAULT_IMAGE_MIME = "image/jpeg"
DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,", re.I)


@dataclass(frozen=True)
class InlineImage:
    data: bytes
    mime_type: str = DEFAULT_IMAGE_MIME


def decode_inline_image(value: str) -> InlineImage:
    """Decode raw base64 or a `data:<mime>;base64,` URL."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError("Image payload is empty")

    payload = value.strip()
    mime_type = DEFAULT_IMAGE_MIME
    match = DATA_URL_PATTERN.match(payload)
    if match:
        mime_type = match.group("mime").lower()
        payload = payload[match.end():]

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as error:
        raise InvalidInputError("Image payload is not valid base64") from error

    if not data:
        raise InvalidInputError("Image payload is empty")
    return InlineImage(data=data, mime_type=mime_type)

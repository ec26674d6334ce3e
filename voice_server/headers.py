"""
Percent-encoding for text carried in response headers.

Header values cannot safely hold arbitrary UTF-8, so the transcript and reply
are sent percent-encoded. The safe set matches JavaScript's
encodeURIComponent so browser clients can decode with decodeURIComponent.
"""
from urllib.parse import quote, unquote

TRANSCRIPT_HEADER = "X-Transcript"
RESPONSE_HEADER = "X-Response"

_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_header_value(text: str) -> str:
    return quote(text, safe=_URI_COMPONENT_SAFE, encoding="utf-8", errors="strict")


def decode_header_value(value: str) -> str:
    return unquote(value, encoding="utf-8", errors="strict")


def reply_headers(transcript: str, completion: str) -> dict:
    return {
        TRANSCRIPT_HEADER: encode_header_value(transcript),
        RESPONSE_HEADER: encode_header_value(completion),
    }

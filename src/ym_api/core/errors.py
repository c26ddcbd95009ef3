from __future__ import annotations


class YMApiError(Exception):
    """Base error carrying a machine-readable code alongside the message."""

    code: str = "YM_API_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class AuthRequired(YMApiError):
    code = "AUTH_REQUIRED"

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class TrackNotFound(YMApiError):
    code = "TRACK_NOT_FOUND"

    def __init__(self, track_id: int | str) -> None:
        super().__init__(f"Track not found: {track_id}")
        self.track_id = track_id


class DownloadInfoMissing(YMApiError):
    code = "DOWNLOAD_INFO_ERROR"


class InvalidUrl(YMApiError):
    code = "INVALID_URL"

    def __init__(self, url: str, message: str | None = None) -> None:
        super().__init__(message or f"Invalid Yandex Music URL: {url}")
        self.url = url


class ExtractionFailed(InvalidUrl):
    code = "EXTRACTION_FAILED"

    def __init__(self, url: str, entity: str) -> None:
        super().__init__(url, f"non {entity} url received: {url}")
        self.entity = entity


class DownloadUrlNotFound(YMApiError):
    code = "DOWNLOAD_URL_NOT_FOUND"


class InvalidInput(YMApiError):
    code = "INVALID_INPUT"


class HttpError(YMApiError):
    code = "HTTP_ERROR"

    def __init__(self, status_code: int, reason: str, body: str, url: str | None = None) -> None:
        preview = body[:200]
        super().__init__(f"HTTP {status_code} {reason}: {preview}")
        self.status_code = status_code
        self.reason = reason
        self.body = body
        self.url = url


class NetworkError(YMApiError):
    code = "NETWORK_ERROR"


class JsonParseError(YMApiError):
    code = "JSON_PARSE_ERROR"

    def __init__(self, text: str) -> None:
        super().__init__(f"Invalid JSON response: {text[:200]}...")
        self.text = text


class DecodeError(YMApiError):
    code = "DECODE_ERROR"

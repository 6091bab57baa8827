"""
errors.py — Exception taxonomy shared by the store, the engine and the API.

Every class carries the HTTP status and the sanitized message the API returns.
The underlying cause is attached with ``raise ... from`` and logged server-side;
it is never sent to the client.
"""


class SEOSuggestError(Exception):
    """Base class. Subclasses set status_code and a client-safe message."""

    status_code = 500
    message = "Something went wrong"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class ValidationError(SEOSuggestError):
    """Missing or malformed request input."""

    status_code = 400
    message = "Invalid request"


class AuthenticationError(SEOSuggestError):
    """Missing or invalid bearer credential."""

    status_code = 401
    message = "Not authenticated"


class NotFoundOrUnauthorized(SEOSuggestError):
    # Absent and not-owned are reported identically so ids of other users' records don't leak.
    status_code = 404
    message = "Analysis not found or not authorized."


class NoExtractedTags(SEOSuggestError):
    status_code = 400
    message = "No extracted tags found for this analysis to generate recommendations."


class UpstreamFetchError(SEOSuggestError):
    """Raised when the target URL cannot be fetched (network, timeout, HTTP status)."""

    status_code = 502
    message = "Failed to fetch metadata"

    def __init__(self, url: str):
        super().__init__()
        self.url = url


class SuggestionError(SEOSuggestError):
    """The language model could not produce usable suggestions."""

    status_code = 502
    message = "Failed to get AI suggestions"


class EmptyModelResponse(SuggestionError):
    pass


class InvalidModelJSON(SuggestionError):
    """Model reply could not be parsed as a JSON object. Keeps the raw text for diagnosis."""

    def __init__(self, raw_text: str):
        super().__init__()
        self.raw_text = raw_text


class StorageError(SEOSuggestError):
    status_code = 500
    message = "A storage error occurred. Please try again later."

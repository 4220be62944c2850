"""Typed failures raised by the API client."""

from typing import Optional


class APIError(Exception):
    """Base exception for remote API failures."""

    message = "The request failed."

    def __str__(self) -> str:
        return self.message


class UnauthorizedError(APIError):
    message = "Your session has expired. Please sign in again."


class ForbiddenError(APIError):
    message = "You do not have permission to perform this action."


class RateLimitedError(APIError):
    """429 Too Many Requests."""

    def __init__(self, retry_after: Optional[float] = None):
        super().__init__(retry_after)
        self.retry_after = retry_after

    @property
    def message(self) -> str:
        if self.retry_after is not None:
            return (f"Too many requests. Try again in "
                    f"{int(self.retry_after)} seconds.")
        return "Too many requests. Please try again later."


class ServerError(APIError):
    """5xx, or any status the client has no specific handling for."""

    def __init__(self, status: int):
        super().__init__(status)
        self.status = status

    @property
    def message(self) -> str:
        return f"Server error ({self.status}). Please try again later."


class DecodingError(APIError):
    """The body did not match the expected schema."""

    message = "We ran into an unexpected response from the server."

    def __init__(self, cause: Optional[BaseException] = None):
        super().__init__(cause)
        self.cause = cause


class NetworkError(APIError):
    """Transport-level failure (DNS, connect, timeout, reset)."""

    def __init__(self, cause: BaseException):
        super().__init__(cause)
        self.cause = cause

    @property
    def message(self) -> str:
        return str(self.cause) or type(self.cause).__name__

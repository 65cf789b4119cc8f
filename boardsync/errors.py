from __future__ import annotations


class BoardSyncError(Exception):
  """Base for errors that travel between the API, the dispatch queue and the socket layer."""

  status_code = 500

  def __init__(self, message: str = "", *, details: dict | None = None) -> None:
    super().__init__(message or self.__class__.__name__)
    self.message = message or self.__class__.__name__
    self.details = details or {}


class AuthenticationError(BoardSyncError):
  status_code = 401


class ForbiddenError(BoardSyncError):
  status_code = 403


class NotFoundError(BoardSyncError):
  status_code = 404


class ValidationError(BoardSyncError):
  status_code = 400


class ConflictError(BoardSyncError):
  """The record changed underneath the caller; the caller must refetch, not retry."""

  status_code = 409


class TransportError(BoardSyncError):
  """Request never produced an authoritative answer (network error or timeout)."""

  status_code = 503


_BY_STATUS: dict[int, type[BoardSyncError]] = {
  401: AuthenticationError,
  403: ForbiddenError,
  404: NotFoundError,
  409: ConflictError,
  400: ValidationError,
  422: ValidationError,
}


def error_for_status(status_code: int, message: str) -> BoardSyncError:
  cls = _BY_STATUS.get(int(status_code))
  if cls is None:
    if int(status_code) >= 500:
      return TransportError(message)
    return ValidationError(message)
  return cls(message)

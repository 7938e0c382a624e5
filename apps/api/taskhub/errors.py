from __future__ import annotations


class TaskHubError(Exception):
  """Base for errors the HTTP layer maps onto a status code."""

  status_code = 500
  title = "Internal Server Error"

  def __init__(self, message: str | None = None) -> None:
    self.message = message or self.title
    super().__init__(self.message)


class NotFound(TaskHubError):
  status_code = 404
  title = "Not Found"


class ValidationError(TaskHubError):
  status_code = 400
  title = "Bad Request"


class Unauthorized(TaskHubError):
  status_code = 401
  title = "Unauthorised"


class Forbidden(TaskHubError):
  status_code = 403
  title = "Forbidden"


class Conflict(TaskHubError):
  status_code = 409
  title = "Conflict"

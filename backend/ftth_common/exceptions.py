"""
Standardized error handling for tenant routing and API responses.

This module defines the error taxonomy of the multi-tenant routing layer and the
helpers used by FastAPI routes to turn failures into safe HTTP responses.

Taxonomy:
    APIError
    └── TenancyError
        ├── TenantNotFound            (404) no directory record for a domain
        ├── UserNotFound              (404) no active tenant has the username
        ├── ExternalAccountNotFound   (404) no tenant links the external account
        ├── TenantAlreadyExists       (409) directory already holds the username
        ├── InvalidUsername           (400) username is not "admin@<domain>"
        ├── InvalidDatabaseName       (400) derived database name is unusable
        ├── ConnectionFailure         (503) driver could not reach a database
        ├── ProvisioningPartialFailure(500) provisioning stopped half-way
        ├── MissingIdentity           (400) request carries no identity
        └── InvalidAccountId          (400) external account id is not an integer
    └── SyncAlreadyRunning            (409) a sync for the account is in flight

    SyncCancelled is not an API error; it is raised inside a sync job when its
    cancellation token is tripped and caught by the job runner.

Propagation:
    - *NotFound errors are terminal for the request and never retried.
    - ConnectionFailure is raised before a pool is cached, so the next request
      makes a fresh attempt.
    - ProvisioningPartialFailure means the directory and the databases disagree
      and an operator has to look at it.

Example:
    ```python
    from ftth_common.exceptions import TenantNotFound, handle_database_error

    record = await directory.lookup_by_domain(domain)
    if record is None:
        raise TenantNotFound(domain)
    ```
"""

from fastapi import HTTPException
from loguru import logger

# HTTP Status Code Constants
HTTP_400_BAD_REQUEST = 400
HTTP_401_UNAUTHORIZED = 401
HTTP_403_FORBIDDEN = 403
HTTP_404_NOT_FOUND = 404
HTTP_409_CONFLICT = 409
HTTP_422_UNPROCESSABLE_ENTITY = 422
HTTP_500_INTERNAL_SERVER_ERROR = 500
HTTP_503_SERVICE_UNAVAILABLE = 503


class APIError(Exception):
    """
    Base exception class for API errors with user-friendly messages.

    Attributes:
        message (str): User-friendly error message that can be safely exposed to clients.
        status_code (int): HTTP status code to return (default: 500).
        internal_error (Exception | None): The original exception that caused this error,
            stored for logging purposes but not exposed to clients.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        internal_error: Exception | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.internal_error = internal_error
        super().__init__(self.message)


class TenancyError(APIError):
    """Base class for failures of the tenant routing and provisioning layer."""

    status = HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, internal_error: Exception | None = None) -> None:
        super().__init__(message, status_code=self.status, internal_error=internal_error)


class TenantNotFound(TenancyError):
    """No (active) tenant record exists for the requested domain."""

    status = HTTP_404_NOT_FOUND

    def __init__(self, domain: str, reason: str = "does not exist") -> None:
        self.domain = domain
        super().__init__(
            f"Tenant database {reason} for domain: {domain}. Please create an account first."
        )


class UserNotFound(TenancyError):
    """A plain username was not found in any active tenant database."""

    status = HTTP_404_NOT_FOUND

    def __init__(self, username: str, tenants_checked: int = 0) -> None:
        self.username = username
        self.tenants_checked = tenants_checked
        super().__init__(f"User {username} not found in any database")


class ExternalAccountNotFound(TenancyError):
    """No tenant database links the requested external account id."""

    status = HTTP_404_NOT_FOUND

    def __init__(self, account_id: int) -> None:
        self.account_id = account_id
        super().__init__(
            f"External account with id {account_id} not found in any database"
        )


class TenantAlreadyExists(TenancyError):
    status = HTTP_409_CONFLICT

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"Database already exists for username: {username}")


class InvalidUsername(TenancyError):
    status = HTTP_400_BAD_REQUEST

    def __init__(self, username: str | None) -> None:
        self.username = username
        super().__init__("Invalid username format. Must be admin@domain")


class InvalidDatabaseName(TenancyError):
    status = HTTP_400_BAD_REQUEST

    def __init__(self, source: str | None, reason: str = "Invalid domain name") -> None:
        self.source = source
        super().__init__(f"{reason}: {source!r}")


class ConnectionFailure(TenancyError):
    """
    A database could not be reached.

    Wraps the driver exception. The message names the database but never the
    host or credentials.
    """

    status = HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, database_name: str, internal_error: Exception | None = None) -> None:
        self.database_name = database_name
        super().__init__(
            f"Unable to connect to database {database_name}. Please try again later.",
            internal_error=internal_error,
        )


class ProvisioningPartialFailure(TenancyError):
    """
    Provisioning completed some steps and failed a later one.

    Attributes:
        database_name: The database that was created.
        step: The step that failed ("directory_insert" or "seed_admin").
    """

    status = HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        database_name: str,
        step: str,
        internal_error: Exception | None = None,
    ) -> None:
        self.database_name = database_name
        self.step = step
        super().__init__(
            f"Provisioning of {database_name} failed at step '{step}'. "
            "Manual recovery is required.",
            internal_error=internal_error,
        )


class MissingIdentity(TenancyError):
    """No identity was found in the query, the body or the X-Username header."""

    status = HTTP_400_BAD_REQUEST

    def __init__(self) -> None:
        super().__init__("username is required (query, body or X-Username header)")


class InvalidAccountId(TenancyError):
    status = HTTP_400_BAD_REQUEST

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"Invalid external account id: {value!r}")


class SyncAlreadyRunning(APIError):
    def __init__(self, account_id: int) -> None:
        self.account_id = account_id
        super().__init__(
            f"A customer sync is already running for external account {account_id}",
            status_code=HTTP_409_CONFLICT,
        )


class SyncCancelled(Exception):
    """Raised at a sync checkpoint once cancellation has been requested."""

    def __init__(self, user_id: str, message: str | None = None) -> None:
        self.user_id = user_id
        super().__init__(message or f"Sync cancelled for {user_id}")


def error_envelope(message: str) -> dict[str, object]:
    """Return the JSON body used for every failed dashboard response."""
    return {"success": False, "error": message}


def create_api_error(
    operation: str,
    status_code: int = 500,
    internal_error: Exception | None = None,
    user_message: str | None = None,
) -> HTTPException:
    """
    Create a standardized API error response with a safe error message.

    The full internal error is logged; the client only receives ``user_message``
    or a generic message for the status code.

    Args:
        operation: Description of the operation that failed, used for logging context.
        status_code: HTTP status code to return. Defaults to 500.
        internal_error: Optional original exception. Logged, never returned.
        user_message: Optional custom user-friendly message.

    Returns:
        HTTPException configured with the status code and safe message.
    """
    if internal_error:
        logger.exception(f"API error in {operation}: {internal_error}")

    if user_message:
        message = user_message
    elif status_code == HTTP_400_BAD_REQUEST:
        message = "Invalid request. Please check your input and try again."
    elif status_code == HTTP_401_UNAUTHORIZED:
        message = "Authentication failed. Please check your credentials."
    elif status_code == HTTP_403_FORBIDDEN:
        message = "Access denied. You don't have permission to perform this action."
    elif status_code == HTTP_404_NOT_FOUND:
        message = "Resource not found."
    elif status_code == HTTP_409_CONFLICT:
        message = "Resource already exists."
    elif status_code == HTTP_422_UNPROCESSABLE_ENTITY:
        message = "Validation error. Please check your request parameters."
    elif status_code == HTTP_503_SERVICE_UNAVAILABLE:
        message = "Service temporarily unavailable. Please try again later."
    else:
        message = (
            "An error occurred while processing your request. Please try again later."
        )

    return HTTPException(status_code=status_code, detail=message)


def handle_database_error(operation: str, error: Exception) -> HTTPException:
    """
    Handle database-related errors with generic, safe error messages.

    Always returns a 500 with a message that does not expose query or
    connection details.
    """
    logger.exception(f"Database error in {operation}: {error}")
    return create_api_error(
        operation=operation,
        status_code=500,
        internal_error=error,
        user_message="Failed to retrieve data. Please try again later.",
    )


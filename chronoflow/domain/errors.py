"""
Error taxonomy shared by use cases and the HTTP layer.

Every error carries a machine-stable ``code`` and the HTTP status the API
answers with. Ownership failures are reported as NotFoundError, same as
absence, so other users' ids are never confirmed to exist.
"""


class ChronoflowError(Exception):
    code = "internal"
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class InvalidArgumentError(ChronoflowError, ValueError):
    code = "invalid_argument"
    status_code = 400


class InvalidCategoryError(InvalidArgumentError):
    code = "invalid_category"

    def __init__(self, message: str = "Invalid category"):
        super().__init__(message)


class InvalidTimeRangeError(InvalidArgumentError):
    code = "invalid_time_range"

    def __init__(self, message: str = "End time must be after start time"):
        super().__init__(message)


class NotFoundError(ChronoflowError):
    code = "not_found"
    status_code = 404


class UnauthorizedError(ChronoflowError):
    code = "unauthorized"
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)

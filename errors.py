"""
Error taxonomy shared by the stores, the token service and the API layer.

Each error knows the HTTP status and the client-facing message it maps to.
Server-side failures (status 500) always present the same generic message.
"""


class FinanceError(Exception):
    status_code = 500
    message = "Server error"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.message)


class InvalidInputError(FinanceError):
    """Bad or missing input. Not distinguished from other server failures."""


class DuplicateUserError(FinanceError):
    status_code = 400
    message = "User already exists"


class InvalidCredentialsError(FinanceError):
    status_code = 400
    message = "Invalid credentials"


class MissingTokenError(FinanceError):
    status_code = 401
    message = "No token, authorization denied"


class InvalidTokenError(FinanceError):
    status_code = 401
    message = "Invalid token"


class TransactionNotFoundError(FinanceError):
    """Raised both for unknown ids and for transactions owned by someone else."""

    status_code = 404
    message = "Transaction not found"


class StoreUnavailableError(FinanceError):
    pass

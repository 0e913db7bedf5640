"""Error taxonomy shared by services and routers"""


class FileManagerError(Exception):
    """Base class for every error the file subsystem reports to callers"""

    status_code: int = 500
    error_class: str = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(FileManagerError):
    """A node, folder, project or upload session id does not resolve"""

    status_code = 404
    error_class = "not_found"


class UnauthorizedError(FileManagerError):
    """Caller is not the project owner"""

    status_code = 403
    error_class = "access_denied"


class InvalidOperationError(FileManagerError):
    """Self-move, cyclic move, non-folder target or cross-project reference"""

    status_code = 400
    error_class = "invalid"


class InvalidStateError(FileManagerError):
    """Out-of-order or duplicate chunk, or a chunk for a completed session"""

    status_code = 409
    error_class = "conflict"


class StorageFailureError(FileManagerError):
    """Object store or metadata store call failed; safe to retry"""

    status_code = 503
    error_class = "transient"


class ConfigurationError(FileManagerError):
    """Required storage configuration is missing"""

    status_code = 500
    error_class = "configuration"

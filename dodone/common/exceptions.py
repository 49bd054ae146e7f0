class DoDoneError(Exception):
    status_code: int = 500

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class ValidationError(DoDoneError):
    """Bad input to a snapshot operation. Raised before any state change."""

    status_code = 400


class NotFoundError(DoDoneError):
    status_code = 404

    def __init__(self, resource: str, resource_id: str | None = None):
        detail = f"{resource} not found"
        if resource_id:
            detail = f"{resource} '{resource_id}' not found"
        super().__init__(detail)
        self.resource = resource
        self.resource_id = resource_id


class PersistenceError(DoDoneError):
    """Local cache read/write failure. Recovered inside the cache codec."""

    status_code = 500


class SyncError(DoDoneError):
    """Remote push/pull failure. Recovered via retry, never surfaced to the UI."""

    status_code = 502

    def __init__(self, operation: str, detail: str | None = None):
        msg = f"Sync failed: {operation}"
        if detail:
            msg += f" - {detail}"
        super().__init__(msg)
        self.operation = operation

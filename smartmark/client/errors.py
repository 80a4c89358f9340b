class StoreError(Exception):
    """A load, insert or delete against the bookmark store failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthRequired(Exception):
    """No authenticated session; callers redirect instead of notifying."""

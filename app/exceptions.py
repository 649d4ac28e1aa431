# app/exceptions.py


class ProviderError(Exception):
    """A roster or alias-store backend is unreachable or returned bad data.

    This is the only failure that aborts a whole batch.
    """

    def __init__(self, message: str, provider: str, tenant_id: str | None = None):
        super().__init__(message)
        self.provider = provider
        self.tenant_id = tenant_id

    def __str__(self) -> str:
        base = super().__str__()
        if self.tenant_id:
            return f"[{self.provider}] tenant={self.tenant_id}: {base}"
        return f"[{self.provider}] {base}"

from repo_ingest_mcp.clients.errors.base import ClientError


class ArchiveError(ClientError):
    """An archive could not be opened."""

    def __init__(self, message: str):
        super().__init__(message=f"Failed to parse ZIP file: {message}")

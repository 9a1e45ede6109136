from repo_ingest_mcp.clients.errors.base import ClientError, ExtraInfoType


class RequestError(ClientError):
    """A request to GitHub failed."""

    def __init__(self, action: str, message: str | None = None, extra_info: ExtraInfoType | None = None):
        if not extra_info:
            extra_info = {}
        super().__init__(message="A request error occured.", extra_info={"action": action, "message": message, **extra_info})


class ResourceNotFoundError(RequestError):
    """A resource could not be found on GitHub."""

    def __init__(self, action: str, resource: str | None = None, extra_info: ExtraInfoType | None = None):
        if not extra_info:
            extra_info = {}
        super().__init__(
            action=action,
            message="The resource could not be found.",
            extra_info={"resource": resource, **extra_info},
        )


class ResourceTypeMismatchError(RequestError):
    """GitHub returned a different kind of resource than expected."""

    def __init__(self, action: str, resource: str, expected_type: type, actual_type: type):
        super().__init__(action, f"{resource}: Expected {expected_type}, got {actual_type}")


class InvalidRepositoryUrlError(ClientError):
    """A repository URL could not be parsed into an owner and a repository name."""

    def __init__(self, url: str):
        super().__init__(message="Invalid GitHub URL.", extra_info={"url": url})

ExtraInfoType = dict[str, str | None]


class ClientError(Exception):
    """An error raised while ingesting a source."""

    def __init__(self, message: str, extra_info: ExtraInfoType | None = None):
        msg = message
        if extra_info:
            msg += " (" + ", ".join([f"{key}: {value}" for key, value in extra_info.items() if value is not None]) + ")"
        super().__init__(msg)


class ConfigurationError(ClientError):
    """A setting read from the environment or passed to a client has an invalid value."""

    def __init__(self, setting: str, value: str, expected: str):
        super().__init__(message=f"{setting} must be {expected}.", extra_info={"value": value})

ExtraInfoType = dict[str, str | None]


class ServerError(Exception):
    """An error raised by the Repository Ingest server."""

    def __init__(self, message: str, extra_info: ExtraInfoType | None = None):
        msg = message
        if extra_info:
            msg += " (" + ", ".join([f"{key}: {value}" for key, value in extra_info.items() if value is not None]) + ")"
        super().__init__(msg)


class NoAnalyzableFilesError(ServerError):
    """An ingestion finished without retaining any files."""

    def __init__(self, source: str):
        super().__init__(
            message="No analyzable files found. Make sure the source contains source code files.",
            extra_info={"source": source},
        )

from typing import Annotated

from fastmcp.tools.tool_transform import ArgTransform
from pydantic import Field

OWNER_DESCRIPTION = "The owner of the repository."
OWNER = Annotated[str, Field(description=OWNER_DESCRIPTION)]
OWNER_ARG_TRANSFORM = ArgTransform(description=OWNER_DESCRIPTION)

REPO_DESCRIPTION = "The name of the repository."
REPO = Annotated[str, Field(description=REPO_DESCRIPTION)]
REPO_ARG_TRANSFORM = ArgTransform(description=REPO_DESCRIPTION)

REF_DESCRIPTION = "The branch, tag or commit to read the files from. If not provided, the default branch will be used."
REF = Annotated[str | None, Field(description=REF_DESCRIPTION)]

REPOSITORY_URL = Annotated[str, Field(description="The URL of the repository. For example, 'https://github.com/owner/repo'.")]

INCLUDE_CONTENT = Annotated[
    bool,
    Field(description="Whether to include the full content of each file. If false, only the first lines of each file are returned."),
]

ARCHIVE_BASE64 = Annotated[str, Field(description="The base64 encoded bytes of a ZIP archive.")]
ARCHIVE_NAME = Annotated[str | None, Field(description="The name of the archive, used to label the result.")]
ARCHIVE_PATH = Annotated[
    str, Field(description="The path to a ZIP archive on the server's local file system, relative to the server's archive directory.")
]

CHECK_PATHS = Annotated[list[str], Field(description="The file paths to check. For example, 'src/index.ts' or 'README.md'.")]

import json
from collections.abc import Iterable
from typing import Any, Self

from pydantic import RootModel

from repo_ingest_mcp.filters.relevance import split_path


class TreeSummary(RootModel[dict[str, Any]]):
    """A nested mapping of path segments. Directories map to nested mappings and files map to `None`."""

    @classmethod
    def from_paths(cls, paths: Iterable[str]) -> Self:
        tree: dict[str, Any] = {}

        for path in paths:
            segments = split_path(path)

            if not segments:
                continue

            current: dict[str, Any] = tree

            for segment in segments[:-1]:
                child = current.get(segment)

                # A path that is both a file and a directory keeps its directory contents
                if not isinstance(child, dict):
                    child = {}
                    current[segment] = child

                current = child

            if segments[-1] not in current:
                current[segments[-1]] = None

        return cls(root=tree)

    def render(self, indent: int = 2) -> str:
        """Render the tree as indented JSON text for use as prompt context."""

        return json.dumps(self.root, indent=indent)

    def file_paths(self) -> list[str]:
        """Return the path of every file in the tree."""

        paths: list[str] = []

        def walk(node: dict[str, Any], prefix: str) -> None:
            for name, child in node.items():
                path = f"{prefix}/{name}" if prefix else name

                if isinstance(child, dict):
                    walk(child, path)  # pyright: ignore[reportUnknownArgumentType]
                else:
                    paths.append(path)

        walk(self.root, "")

        return paths

    @property
    def count_files(self) -> int:
        return len(self.file_paths())

from collections.abc import Iterable, Sequence

from pydantic import BaseModel, ConfigDict, Field

from repo_ingest_mcp.models.files import CandidatePath, FileCategory

IGNORED_DIRECTORIES: frozenset[str] = frozenset(
    {
        # Dependencies and virtual environments
        "node_modules",
        "vendor",
        "venv",
        "env",
        ".venv",
        # Build output
        "dist",
        "build",
        "out",
        "target",
        "coverage",
        ".next",
        ".nuxt",
        ".output",
        ".angular",
        # Tool caches
        "__pycache__",
        ".pytest_cache",
        ".turbo",
        ".vercel",
        ".cache",
        ".parcel-cache",
        # Version control and editors
        ".git",
        ".vscode",
        ".idea",
        # Static assets
        "public/assets",
        "static/assets",
        "assets/images",
        "images",
    }
)

IGNORED_SUFFIXES: tuple[str, ...] = (
    # Media
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".svg",
    ".ico",
    ".webp",
    ".avif",
    ".bmp",
    ".mp4",
    ".mp3",
    ".wav",
    ".avi",
    ".mov",
    ".flv",
    ".webm",
    # Fonts
    ".woff",
    ".woff2",
    ".ttf",
    ".eot",
    ".otf",
    # Archives
    ".zip",
    ".tar",
    ".gz",
    ".rar",
    ".7z",
    ".bz2",
    ".xz",
    # Documents
    ".pdf",
    ".doc",
    ".docx",
    ".ppt",
    ".pptx",
    ".xls",
    ".xlsx",
    # Binaries
    ".exe",
    ".dll",
    ".so",
    ".dylib",
    ".bin",
    ".jar",
    ".war",
    # Lockfiles
    ".lock",
    "-lock.json",
    "-lock.yaml",
    # Minified and bundled
    ".min.js",
    ".min.css",
    ".bundle.js",
    ".chunk.js",
    # Source maps
    ".map",
)

IGNORED_FILE_NAMES: frozenset[str] = frozenset({".DS_Store", ".env"})

VALUABLE_SUFFIXES: tuple[str, ...] = (
    # JavaScript / TypeScript
    ".js",
    ".jsx",
    ".ts",
    ".tsx",
    ".mjs",
    ".cjs",
    # Python
    ".py",
    ".pyw",
    # Go, Rust
    ".go",
    ".rs",
    # JVM
    ".java",
    ".kt",
    ".kts",
    ".scala",
    # Ruby, PHP
    ".rb",
    ".rake",
    ".php",
    # C family
    ".c",
    ".cpp",
    ".h",
    ".hpp",
    ".cc",
    ".cs",
    # Apple and mobile
    ".swift",
    ".dart",
    ".m",
    ".mm",
    # Elixir
    ".ex",
    ".exs",
    # Frontend frameworks
    ".vue",
    ".svelte",
    # Config
    ".json",
    ".yaml",
    ".yml",
    ".toml",
    ".ini",
    ".conf",
    ".xml",
    ".properties",
    ".gitignore",
    ".dockerignore",
    ".editorconfig",
    # Documentation
    ".md",
    ".txt",
    ".rst",
    ".adoc",
    # Databases and schemas
    ".sql",
    ".prisma",
    ".graphql",
    ".gql",
    # Scripts
    ".sh",
    ".bash",
    ".zsh",
    ".fish",
    ".ps1",
    # Markup and styles
    ".html",
    ".htm",
    ".css",
    ".scss",
    ".sass",
    ".less",
)

VALUABLE_FILE_NAMES: tuple[str, ...] = ("Dockerfile", "Makefile", "Rakefile", "Procfile")


class RelevanceRules(BaseModel):
    """The tables that decide whether a file is worth sending to a model."""

    model_config = ConfigDict(frozen=True)

    ignored_directories: frozenset[str] = Field(
        default=IGNORED_DIRECTORIES,
        description="Directory names (or slash separated runs of names) whose contents are always ignored.",
    )
    ignored_suffixes: tuple[str, ...] = Field(
        default=IGNORED_SUFFIXES, description="Lowercase path suffixes that are always ignored. Takes precedence over valuable suffixes."
    )
    ignored_file_names: frozenset[str] = Field(default=IGNORED_FILE_NAMES, description="Exact file names that are always ignored.")
    valuable_suffixes: tuple[str, ...] = Field(default=VALUABLE_SUFFIXES, description="Lowercase path suffixes that are kept.")
    valuable_file_names: tuple[str, ...] = Field(
        default=VALUABLE_FILE_NAMES, description="Conventional file names without an extension that are kept, e.g. `Dockerfile`."
    )


DEFAULT_RELEVANCE_RULES = RelevanceRules()


def split_path(path: str) -> list[str]:
    """Split a path into its non-empty segments, treating back slashes as separators."""

    return [segment for segment in path.replace("\\", "/").split("/") if segment and segment != "."]


def contains_segments(segments: Sequence[str], needle: Sequence[str]) -> bool:
    if not needle or len(needle) > len(segments):
        return False

    return any(list(segments[i : i + len(needle)]) == list(needle) for i in range(len(segments) - len(needle) + 1))


def in_ignored_directory(segments: Sequence[str], rules: RelevanceRules) -> bool:
    for ignored_directory in rules.ignored_directories:
        ignored_segments = ignored_directory.split("/")

        if len(ignored_segments) == 1:
            if ignored_directory in segments:
                return True
            continue

        if contains_segments(segments, ignored_segments):
            return True

    return False


def is_valuable(path: str, rules: RelevanceRules = DEFAULT_RELEVANCE_RULES) -> bool:
    """Decide whether a file should be kept. Ignore rules are checked before allow rules; anything unmatched is rejected."""

    segments = split_path(path)

    if not segments:
        return False

    if in_ignored_directory(segments, rules):
        return False

    file_name = segments[-1]
    lower = "/".join(segments).lower()

    if file_name in rules.ignored_file_names or lower.endswith(rules.ignored_suffixes):
        return False

    if lower.endswith(rules.valuable_suffixes):
        return True

    return file_name.startswith(rules.valuable_file_names)


def filter_candidates(candidates: Iterable[CandidatePath], rules: RelevanceRules = DEFAULT_RELEVANCE_RULES) -> list[CandidatePath]:
    """Keep the file candidates that pass the relevance filter, in their original order."""

    return [candidate for candidate in candidates if candidate.kind == "file" and is_valuable(candidate.path, rules=rules)]


def categorize_path(path: str) -> FileCategory:
    lower = path.lower()

    if "readme" in lower or "docs/" in lower or lower.endswith(".md"):
        return "documentation"

    if "config" in lower or ".json" in lower or ".yml" in lower or ".yaml" in lower:
        return "config"

    if ".ts" in lower or ".js" in lower or ".py" in lower or ".go" in lower:
        return "code"

    return "other"

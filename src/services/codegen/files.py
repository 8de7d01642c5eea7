"""File naming for downloaded code."""

DOWNLOAD_BASENAME = "generated-code"

LANGUAGE_EXTENSIONS: dict[str, str] = {
    "javascript": "js",
    "typescript": "ts",
    "python": "py",
    "java": "java",
    "cpp": "cpp",
    "c": "c",
    "csharp": "cs",
    "go": "go",
    "rust": "rs",
    "php": "php",
    "ruby": "rb",
    "swift": "swift",
    "kotlin": "kt",
    "html": "html",
    "css": "css",
    "sql": "sql",
    "bash": "sh",
    "powershell": "ps1",
}


def file_extension(language: str | None) -> str:
    """Map a fence language tag to a file extension, ``txt`` when unknown."""
    if not language:
        return "txt"
    return LANGUAGE_EXTENSIONS.get(language.lower(), "txt")


def download_filename(language: str | None) -> str:
    return f"{DOWNLOAD_BASENAME}.{file_extension(language)}"

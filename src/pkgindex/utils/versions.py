"""
Version and module path helpers.

Semantic-version checks follow Go module conventions: a leading "v",
three numeric components, optional pre-release and build metadata.
"""

import re

_TAGGED_VERSION_RE = re.compile(
    r"^v\d+\.\d+\.\d+(-[a-zA-Z0-9.-]+)?(\+[a-zA-Z0-9.-]+)?$"
)


def escape_module_path(path: str) -> str:
    """
    Escape a Go module path for use in proxy URLs.

    Upper-case letters become "!" followed by the lower-case letter,
    so "github.com/Azure/sdk" becomes "github.com/!azure/sdk".
    """
    result = []
    for ch in path:
        if "A" <= ch <= "Z":
            result.append("!")
            result.append(ch.lower())
        else:
            result.append(ch)
    return "".join(result)


def is_tagged_version(version: str) -> bool:
    """Whether version is a semantic version tag, pseudo-versions included."""
    return bool(_TAGGED_VERSION_RE.match(version))


def is_stable_version(version: str) -> bool:
    """
    Whether version is a stable release.

    v0.x releases and anything with a pre-release suffix are unstable.
    Build metadata does not affect stability.
    """
    if not is_tagged_version(version):
        return False
    if version.startswith("v0."):
        return False
    return "-" not in version


def is_deprecated(doc: str) -> bool:
    """Whether a doc comment carries a "Deprecated:" paragraph."""
    doc = doc.strip()
    if doc.startswith("Deprecated:"):
        return True
    return "\nDeprecated:" in doc


def module_to_repo_url(module_path: str) -> str:
    """
    Derive a source repository URL from a Go module path.

    Returns an empty string for hosts without a known layout.
    """
    parts = module_path.split("/")
    if len(parts) < 2:
        return ""

    host = parts[0]
    if host in ("github.com", "gitlab.com", "bitbucket.org") and len(parts) >= 3:
        return f"https://{host}/{parts[1]}/{parts[2]}"
    if host.startswith("go.googlesource.com"):
        return f"https://go.googlesource.com/{parts[1]}"
    if host == "golang.org" and len(parts) >= 3 and parts[1] == "x":
        return f"https://go.googlesource.com/{parts[2]}"
    return ""


def clean_repo_url(url: str) -> str:
    """Normalize a registry repository URL ("git+https://...git" → "https://...")."""
    url = url.strip()
    if url.startswith("git+"):
        url = url[len("git+"):]
    if url.endswith(".git"):
        url = url[: -len(".git")]
    return url

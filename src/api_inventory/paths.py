"""URL path helpers shared by every dialect."""

import re

HTTP_METHODS = ("get", "post", "put", "patch", "delete", "options", "head")

_SLASHES_RE = re.compile(r"/+")
_COLON_PARAM_RE = re.compile(r":([A-Za-z0-9_]+)")
_BRACE_PARAM_RE = re.compile(r"\{([A-Za-z0-9_]+)\}")


def normalize_path(path: str | None) -> str:
    """Leading slash, no repeated slashes, no trailing slash except for root."""
    if not path:
        return "/"
    out = path.strip()
    if not out.startswith("/"):
        out = "/" + out
    out = _SLASHES_RE.sub("/", out)
    if len(out) > 1 and out.endswith("/"):
        out = out[:-1]
    return out


def join_paths(*parts: str | None) -> str:
    """Join path fragments, ignoring empty ones and normalizing the result."""
    joined = "/"
    for part in parts:
        child = normalize_path(part)
        if child == "/":
            continue
        joined = child if joined == "/" else normalize_path(f"{joined}/{child}")
    return joined


def to_key(method: str, path: str) -> str:
    return f"{method.upper()} {normalize_path(path)}"


def extract_path_params(path: str) -> list[str]:
    """Return `:name` and `{name}` tokens in order of first appearance."""
    found: list[str] = []
    for match in _COLON_PARAM_RE.finditer(path):
        if match.group(1) not in found:
            found.append(match.group(1))
    for match in _BRACE_PARAM_RE.finditer(path):
        if match.group(1) not in found:
            found.append(match.group(1))
    return found

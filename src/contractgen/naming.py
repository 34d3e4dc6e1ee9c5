"""Naming + path helpers shared by the document and client generators."""
from __future__ import annotations

import keyword
import re

# ":id", "{id}" and "[id]" all mark a path parameter.
PATH_PARAMETER_REGEX = re.compile(r"^(?::([A-Za-z_][\w-]*)|\{([A-Za-z_][\w-]*)\}|\[([A-Za-z_][\w-]*)\])$")
DOCUMENT_PARAMETER_REGEX = re.compile(r"\{([^}]+)\}")


def to_pascal_case(text: str) -> str:
    """Convert a path-like or dotted string into PascalCase."""
    normalized = re.sub(r"[\[\]{}:]", "_", text)
    normalized = normalized.replace(".", "_")
    normalized = re.sub(r"[^0-9a-zA-Z_]+", "_", normalized)
    parts = [part for part in normalized.split("_") if part]
    return "".join(part[:1].upper() + part[1:] for part in parts)


def to_identifier(text: str, *, fallback: str = "Type") -> str:
    """Return a syntactically valid identifier derived from ``text``."""
    candidate = re.sub(r"[^0-9a-zA-Z_$]", "", to_pascal_case(text))
    if not candidate:
        candidate = fallback
    if candidate[0].isdigit():
        candidate = f"_{candidate}"
    if keyword.iskeyword(candidate):
        candidate = f"{candidate}_"
    return candidate


def route_identifier(method: str, path: str, suffix: str = "") -> str:
    """``("get", "/v1/user/{id}", "input")`` -> ``GetV1UserIdInput``."""
    return to_identifier(f"{method}_{path}_{suffix}")


def split_path(raw_path: str) -> list[str]:
    """Split a routing key into non-empty segments."""
    return [segment.strip() for segment in raw_path.split("/") if segment.strip()]


def normalize_segment(segment: str) -> tuple[str, str]:
    """Classify a segment as ("param", name) or ("static", text)."""
    match = PATH_PARAMETER_REGEX.match(segment)
    if match is None:
        return ("static", segment)
    name = next(group for group in match.groups() if group)
    return ("param", name)


def join_path(segments: list[str]) -> str:
    """Join raw segments into the document path template (``/users/{id}``)."""
    tokens = [normalize_segment(segment) for segment in segments]
    pattern = "/" + "/".join(("{" + value + "}") if kind == "param" else value for kind, value in tokens)
    return pattern


def extract_path_parameters(path: str) -> list[str]:
    """Extract ``{name}`` parameters from a document path, in order, unique."""
    seen: set[str] = set()
    unique: list[str] = []
    for name in DOCUMENT_PARAMETER_REGEX.findall(path):
        if name not in seen:
            seen.add(name)
            unique.append(name)
    return unique


def path_shape(path: str) -> str:
    """Path with parameter names erased; two routes with one shape collide."""
    return DOCUMENT_PARAMETER_REGEX.sub("{}", path)

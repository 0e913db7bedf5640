"""Path and string utility functions"""
import re
import time
from typing import Optional

# Names containing any of these get a priority_docs segment in their object key
PRIORITY_KEYWORDS = ("brief", "inspiration", "moodboard", "proposal", "contract")


def normalize_path(path: str) -> str:
    """Normalize path separators and remove leading/trailing slashes"""
    if not path:
        return ""
    path = path.replace('\\', '/')
    path = path.strip('/')
    return path


def normalize_file_name(file_name: str) -> str:
    """Replace anything outside [A-Za-z0-9._-] with '_' and lower-case"""
    return re.sub(r'[^A-Za-z0-9._-]', '_', file_name).lower()


def file_extension(file_name: str) -> str:
    """Lower-cased text after the last dot, or empty"""
    name = file_name.lower()
    if '.' not in name:
        return ""
    return name.rsplit('.', 1)[-1]


def generate_object_path(
    owner_id: str,
    project_id: str,
    file_name: str,
    parent_id: Optional[str] = None,
    timestamp_ms: Optional[int] = None,
) -> str:
    """
    Build the object storage key for a file.

    Format: {owner}/{project}[/{parent}][/priority_docs]/{millis}_{name}

    The millisecond timestamp keeps re-uploads of the same name from
    overwriting each other, so two calls made at different instants return
    different keys.
    """
    safe_name = normalize_file_name(file_name)
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)

    parts = [owner_id, project_id]
    if parent_id:
        parts.append(parent_id)
    if any(keyword in safe_name for keyword in PRIORITY_KEYWORDS):
        parts.append("priority_docs")
    parts.append(f"{timestamp_ms}_{safe_name}")
    return "/".join(parts)

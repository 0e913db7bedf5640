"""Auto-sort: pick the system folder a new upload belongs in"""
from typing import Dict, Optional

from projectfiles.services.tree_store import TreeStore
from projectfiles.utils.path_utils import file_extension
from projectfiles.utils.logger import get_logger

logger = get_logger(__name__)

# System folder lookup names, lower-cased
FOLDER_ALIASES = {
    "assets": ("assets",),
    "design": ("design files", "design"),
    "documents": ("documents", "docs"),
    "print": ("print",),
}

IMPORTANT_DOCUMENT_KEYWORDS = (
    "brief", "inspiration", "moodboard", "mood board", "concept", "requirement", "scope",
)

DOCUMENT_KEYWORDS = (
    "proposal", "brief", "inspiration", "contract", "invoice", "agreement",
    "scope", "doc", "reference", "guide",
)
DOCUMENT_EXTENSIONS = {"doc", "docx", "txt", "pdf"}
DOCUMENT_MIME_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
}

ASSET_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "svg"}
ASSET_KEYWORDS = ("logo", "asset", "image", "photo")

DESIGN_EXTENSIONS = {"ai", "psd", "xd", "fig", "sketch", "indd", "aep"}
DESIGN_KEYWORDS = ("design", "figma", "sketch", "prototype")

PRINT_KEYWORDS = ("print", "cmyk")
PRINT_EXTENSIONS = {"indd", "eps"}


def _contains_any(text: str, keywords) -> bool:
    return any(keyword in text for keyword in keywords)


def resolve_system_folders(folders) -> Dict[str, str]:
    """Map 'assets'/'design'/'documents'/'print' to folder ids"""
    by_name = {}
    for folder in folders:
        by_name.setdefault(folder.name.strip().lower(), folder.id)

    resolved = {}
    for role, aliases in FOLDER_ALIASES.items():
        for alias in aliases:
            if alias in by_name:
                resolved[role] = by_name[alias]
                break
    return resolved


def choose_folder(folders, file_name: str, mime_type: Optional[str]) -> Optional[str]:
    """
    Apply the auto-sort rules to a list of system folders.

    Rules run in a fixed order and the first match wins: important documents,
    documents, assets, design, print. None means the project root.
    """
    resolved = resolve_system_folders(folders)
    if not resolved:
        return None

    name = file_name.lower()
    ext = file_extension(file_name)
    mime = (mime_type or "").lower()

    documents = resolved.get("documents")
    assets = resolved.get("assets")
    design = resolved.get("design")
    print_folder = resolved.get("print")

    if documents and _contains_any(name, IMPORTANT_DOCUMENT_KEYWORDS):
        return documents

    if documents and (
        _contains_any(name, DOCUMENT_KEYWORDS)
        or ext in DOCUMENT_EXTENSIONS
        or mime in DOCUMENT_MIME_TYPES
    ):
        return documents

    if assets and (
        ext in ASSET_EXTENSIONS
        or _contains_any(name, ASSET_KEYWORDS)
        or mime.startswith("image/")
    ):
        return assets

    if design and (ext in DESIGN_EXTENSIONS or _contains_any(name, DESIGN_KEYWORDS)):
        return design

    if print_folder and (_contains_any(name, PRINT_KEYWORDS) or ext in PRINT_EXTENSIONS):
        return print_folder

    return None


class AutoSortClassifier:
    """Chooses a destination folder for uploads that did not name one"""

    def __init__(self, tree_store: TreeStore):
        self.tree_store = tree_store

    def classify_target(self, project_id: str, file_name: str, mime_type: Optional[str]) -> Optional[str]:
        """Folder id for the file, or None for the root. Never raises."""
        try:
            folders = self.tree_store.system_folders(project_id)
            if not folders:
                return None
            target = choose_folder(folders, file_name, mime_type)
            logger.debug(f"Auto-sort placed '{file_name}' in {target or 'root'}")
            return target
        except Exception as e:
            logger.error(f"Auto-sort failed for '{file_name}' in project {project_id}: {e}")
            return None

"""Search and filter engine with ancestor-folder inclusion"""
import enum
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from projectfiles.models import NodeKind
from projectfiles.utils.tree import TreeIndex
from projectfiles.utils.logger import get_logger

logger = get_logger(__name__)


class MimeGroup(str, enum.Enum):
    IMAGES = "images"
    DOCUMENTS = "documents"
    SPREADSHEETS = "spreadsheets"
    PRESENTATIONS = "presentations"


MIME_GROUP_TYPES: Dict[MimeGroup, Tuple[str, ...]] = {
    MimeGroup.IMAGES: (
        "image/jpeg", "image/png", "image/gif", "image/webp", "image/svg+xml",
    ),
    MimeGroup.DOCUMENTS: (
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
        "application/rtf",
    ),
    MimeGroup.SPREADSHEETS: (
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ),
    MimeGroup.PRESENTATIONS: (
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ),
}


@dataclass(frozen=True)
class SearchFilters:
    query: Optional[str] = None
    kind: Optional[NodeKind] = None
    mime_group: Optional[MimeGroup] = None
    include_system_folders: bool = True

    @property
    def search_term(self) -> str:
        return (self.query or "").strip().lower()


def _kind_value(node) -> str:
    kind = node.kind
    return kind.value if isinstance(kind, NodeKind) else str(kind)


def matches_query(node, term: str) -> bool:
    """Substring match on name, description, tags, kind and MIME type, or extension match"""
    name = node.name.lower()
    fields = (
        name,
        (node.description or "").lower(),
        (node.tags or "").lower(),
        _kind_value(node).lower(),
        (node.mime_type or "").lower(),
    )
    if any(term in field for field in fields):
        return True
    if name.endswith(f".{term}"):
        return True
    return term.startswith(".") and name.endswith(term)


def matches_mime_group(node, group: MimeGroup) -> bool:
    if _kind_value(node) == NodeKind.FOLDER.value:
        return True
    if not node.mime_type:
        return False
    mime = node.mime_type.lower()
    return any(candidate in mime for candidate in MIME_GROUP_TYPES[group])


def sort_nodes(nodes: Iterable) -> list:
    """Folders first, then case-insensitive name"""
    return sorted(
        nodes,
        key=lambda n: (_kind_value(n) != NodeKind.FOLDER.value, n.name.casefold(), n.name),
    )


def search_nodes(nodes: List, filters: SearchFilters) -> list:
    """
    Filter a project's nodes.

    A query keeps its direct matches plus every folder above them, so results
    stay readable as a tree. A query with no matches returns nothing; with no
    query and nothing left after filtering, everything is returned.
    """
    results = list(nodes)
    term = filters.search_term

    if term:
        tree = TreeIndex(nodes)
        direct = [n for n in nodes if matches_query(n, term)]
        logger.debug(f"Search '{term}' matched {len(direct)} node(s) directly")

        matched: Dict[str, object] = {}
        for node in direct:
            for ancestor_id in tree.ancestor_ids(node.id):
                ancestor = tree.nodes[ancestor_id]
                if _kind_value(ancestor) == NodeKind.FOLDER.value:
                    matched.setdefault(ancestor_id, ancestor)
        for node in direct:
            matched[node.id] = node
        results = list(matched.values())

    if filters.kind is not None:
        results = [n for n in results if _kind_value(n) == filters.kind.value]

    if filters.mime_group is not None:
        results = [n for n in results if matches_mime_group(n, filters.mime_group)]

    if not filters.include_system_folders:
        results = [n for n in results if not n.is_system_folder]

    if not results and not term:
        results = list(nodes)

    return sort_nodes(results)

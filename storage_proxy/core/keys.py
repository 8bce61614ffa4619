"""
Mapping from request paths to object keys and content types.

Pure functions with no framework or storage dependencies, so the key
rules can be tested on their own.
"""

import mimetypes
from dataclasses import dataclass

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def object_key(path: str) -> str:
    """
    Turn a request path into a client-facing key.

    Exactly one leading slash is stripped. Nothing else is normalized:
    "//a" becomes "/a" and ".." segments pass through unchanged.
    """
    if path.startswith("/"):
        return path[1:]
    return path


def content_type_for(key: str) -> str:
    """
    Look up a MIME type from the key's file extension.

    The extension is everything from the last "." of the last path
    segment, so "v1.2/blob" has none, "logs.tar.gz" has ".gz" and the
    dot-file ".json" has ".json". Lookup is a direct table hit (exact
    case first, then lower case); suffix rewriting such as ".tgz" to
    ".tar.gz" is not applied. Unknown or missing extensions get
    application/octet-stream.
    """
    name = key.rsplit("/", 1)[-1]
    dot = name.rfind(".")
    if dot < 0:
        return DEFAULT_CONTENT_TYPE

    if not mimetypes.inited:
        mimetypes.init()

    ext = name[dot:]
    for table in (mimetypes.types_map, mimetypes.common_types):
        for candidate in (ext, ext.lower()):
            mime_type = table.get(candidate)
            if mime_type:
                return mime_type
    return DEFAULT_CONTENT_TYPE


@dataclass(frozen=True)
class KeyNamespace:
    """
    The namespace every client key lives under.

    Frozen because it is fixed at startup and shared by all requests.
    """
    prefix: str = ""

    def storage_key(self, key: str) -> str:
        """Qualify a client key with the namespace prefix."""
        return self.prefix + key

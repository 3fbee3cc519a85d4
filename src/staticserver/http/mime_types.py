"""
=============================================================================
CONTENT TYPE REGISTRY
=============================================================================

Maps file extensions to MIME types for the Content-Type header.

=============================================================================
A WHITELIST, NOT A GUESSER
=============================================================================

Most servers fall back to application/octet-stream for unknown extensions
and serve the file anyway. This one does not:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    LOOKUP RESULT → OUTCOME                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   /index.html   →  ".html" → "text/html"      → served (200)        │
    │   /style.css    →  ".css"  → "text/css"       → served (200)        │
    │   /app.js       →  ".js"   → "application/javascript"  (200)        │
    │   /data.json    →  ".json" → None             → 403 Forbidden       │
    │   /README       →  ""      → None             → 403 Forbidden       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The registry answers two questions with one lookup: "may this file be
served?" and "what is it?". An extension that is not registered can never
reach the disk read, whatever else sits in the document root (.env files,
backups, source code).

Extensions are compared lower-cased: /INDEX.HTML and /index.html have the
same type. The default registry is never mutated; with_types() builds a new
one.

=============================================================================
"""

from typing import Dict, Iterable, Mapping, Optional


# Extension (lower-case, leading dot) → MIME type.
DEFAULT_CONTENT_TYPES: Dict[str, str] = {
    ".html": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
}


def _normalize(extension: str) -> str:
    extension = extension.strip().lower()
    if extension and not extension.startswith("."):
        extension = "." + extension
    return extension


class ContentTypeRegistry:
    """
    Read-only extension → MIME type mapping.

    Usage:
        registry = ContentTypeRegistry()
        registry.lookup(".CSS")           # 'text/css'
        registry.lookup(".json")          # None
        ".html" in registry               # True

        # A wider whitelist for a different site
        images = registry.with_types({".png": "image/png"})
    """

    def __init__(self, types: Optional[Mapping[str, str]] = None):
        source = DEFAULT_CONTENT_TYPES if types is None else types
        self._types: Dict[str, str] = {
            _normalize(ext): mime for ext, mime in source.items() if _normalize(ext)
        }

    def lookup(self, extension: str) -> Optional[str]:
        """
        Get the MIME type for an extension.

        Args:
            extension: File extension, with or without the leading dot.
                       Case does not matter.

        Returns:
            The MIME type, or None if the extension is not servable.
        """
        normalized = _normalize(extension)
        if not normalized:
            return None
        return self._types.get(normalized)

    def with_types(self, types: Mapping[str, str]) -> "ContentTypeRegistry":
        """Return a new registry with extra (or overridden) entries."""
        merged = dict(self._types)
        merged.update({_normalize(ext): mime for ext, mime in types.items()})
        return ContentTypeRegistry(merged)

    @property
    def extensions(self) -> Iterable[str]:
        """Registered extensions, sorted."""
        return tuple(sorted(self._types))

    def __contains__(self, extension: object) -> bool:
        return isinstance(extension, str) and self.lookup(extension) is not None

    def __len__(self) -> int:
        return len(self._types)

    def __repr__(self) -> str:
        return f"ContentTypeRegistry({self._types!r})"

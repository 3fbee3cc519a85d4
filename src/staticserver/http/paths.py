"""
=============================================================================
PATH RESOLUTION
=============================================================================

Maps an untrusted request target onto a file inside the document root.

This is the security boundary of the whole server. Everything before it
(reading, parsing) only decides whether the request is well-formed;
everything after it (existence check, disk read) trusts that the path it
gets is inside the document root.

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  GET /../../etc/passwd HTTP/1.1                                     │
    │  GET /%2e%2e/%2e%2e/etc/passwd HTTP/1.1      (encoded dots)         │
    │  GET /..%5c..%5cwindows/win.ini HTTP/1.1     (encoded backslash)    │
    │  GET /link-to-etc/passwd HTTP/1.1            (symlink, no dots)     │
    │                                                                      │
    │  If not protected:                                                   │
    │    /srv/www + /../../etc/passwd  →  /etc/passwd  (BREACH!)          │
    └─────────────────────────────────────────────────────────────────────┘

Two independent layers, both always applied:

    1. PATTERN CHECK   Decoded path contains ".."?          → reject
                       Cheap, runs before touching the filesystem.

    2. CONTAINMENT     resolve() the joined path (follows "..", ".",
                       symlinks), then compare PATH COMPONENTS with the
                       canonical root                        → reject if
                                                               outside

Layer 2 is what catches the symlink case. Layer 1 is kept even though
layer 2 would catch every ".." that escapes: it refuses traversal attempts
before any filesystem call is made on attacker-controlled input.

=============================================================================
WHY COMPARE COMPONENTS, NOT STRINGS?
=============================================================================

    root      = /srv/www
    candidate = /srv/www-private/secret.html

    str(candidate).startswith(str(root))        → True   (WRONG!)
    candidate.parts[:3] == root.parts           → False  (right)

String prefixes need a trailing separator to be correct, and get it wrong
again on case-insensitive filesystems. Comparing parts() tuples has neither
problem; case folding is applied per component when the filesystem under
the root ignores case.

=============================================================================
OUTCOMES
=============================================================================

    BadPathError        → 400   decode failure, "..", escape, bad path
    ForbiddenPathError  → 403   extension missing or not whitelisted
    (caller)            → 404   resolved file does not exist

=============================================================================
"""

import os
import re
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union
from urllib.parse import unquote

from .mime_types import ContentTypeRegistry
from .status_codes import HTTPStatus


logger = logging.getLogger(__name__)

# A "%" not followed by two hex digits
_MALFORMED_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


class PathResolutionError(Exception):
    """Base class for rejected request targets. Carries the HTTP status."""

    status_code: int = HTTPStatus.BAD_REQUEST

    def __init__(self, message: str, target: str = ""):
        super().__init__(message)
        self.message = message
        self.target = target


class BadPathError(PathResolutionError):
    """Target could not be decoded or points outside the document root."""

    status_code = HTTPStatus.BAD_REQUEST


class ForbiddenPathError(PathResolutionError):
    """Target resolved, but its extension is not servable."""

    status_code = HTTPStatus.FORBIDDEN


@dataclass(frozen=True)
class ResolvedPath:
    """
    A request target mapped into the document root.

    Attributes:
        filesystem_path: Absolute, canonical path inside the document root.
        url_path: Same location as a "/"-separated URL path.
        extension: Lower-cased suffix with its dot (".html").
        content_type: MIME type the registry assigned to the extension.
    """

    filesystem_path: Path
    url_path: str
    extension: str
    content_type: str


def probe_case_sensitivity(directory: Path) -> bool:
    """
    Guess whether the filesystem holding `directory` is case-sensitive.

    Looks the directory up again under its swapped-case name: if that finds
    the same directory, case is ignored. Names without letters fall back to
    the platform default (os.path.normcase).
    """
    name = directory.name
    swapped = name.swapcase()
    if swapped == name:
        return os.path.normcase("Aa") == "Aa"
    twin = directory.with_name(swapped)
    try:
        return not (twin.exists() and os.path.samefile(directory, twin))
    except OSError:
        return True


class PathResolver:
    """
    Resolves request targets against a document root.

    =========================================================================
    ALGORITHM
    =========================================================================

        target "/css/%53tyle.CSS?v=2"
           │
           ├─ 1. percent-decode (strict)      "/css/Style.CSS?v=2"
           ├─ 2. drop query string            "/css/Style.CSS"
           ├─ 3. separators → os.sep, strip   "/css/Style.CSS"
           ├─ 4. contains ".."?               no
           ├─ 5. root / "css/Style.CSS", resolve()
           ├─ 6. inside root (by parts)?      yes
           ├─ 7. is it the root itself?       no (else → index.html)
           └─ 8. suffix ".css" whitelisted?   yes → ResolvedPath

    Steps 1-7 are locate(), step 8 is classify(); resolve() runs both.
    The connection handler calls them separately so it can report which
    stage rejected a request.

    =========================================================================
    THREAD SAFETY
    =========================================================================

    A resolver holds only read-only state once constructed, so one instance
    is shared by every worker thread.

    =========================================================================
    """

    def __init__(
        self,
        document_root: Union[str, Path],
        registry: Optional[ContentTypeRegistry] = None,
        index_file: str = "index.html",
        case_sensitive: Optional[bool] = None,
    ):
        """
        Args:
            document_root: Directory that bounds every served file.
                           Canonicalized here, once.
            registry: Extension whitelist. Defaults to .html/.css/.js.
            index_file: Served when the target is the root itself.
            case_sensitive: Whether the root's filesystem distinguishes
                            case. None = probe it.
        """
        self.document_root = Path(document_root).resolve()
        self.registry = registry or ContentTypeRegistry()
        self.index_file = index_file

        if case_sensitive is None:
            case_sensitive = probe_case_sensitivity(self.document_root)
        self.case_sensitive = case_sensitive

        self._root_parts = self._fold(self.document_root.parts)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def resolve(self, target: str) -> ResolvedPath:
        """
        Resolve a raw request target.

        Raises:
            BadPathError: Steps 1-6 rejected the target (400).
            ForbiddenPathError: Extension not whitelisted (403).
        """
        return self.classify(self.locate(target), target)

    def locate(self, target: str) -> Path:
        """
        Map a target to a canonical path inside the document root.

        Runs the decode, traversal and containment steps and the index
        substitution. Does not look at the extension or check existence.

        Raises:
            BadPathError: The target is undecodable or escapes the root.
        """
        relative = self._normalize(target)

        # ─────────────────────────────────────────────────────────────────
        # LAYER 1: PATTERN CHECK
        # ─────────────────────────────────────────────────────────────────
        if ".." in relative:
            raise BadPathError("Path contains '..'", target)

        # ─────────────────────────────────────────────────────────────────
        # CANONICALIZE
        # ─────────────────────────────────────────────────────────────────
        # resolve() follows symlinks and collapses "." components.
        # lstrip so "/etc/passwd" joins as relative, not absolute.
        relative = relative.lstrip(os.sep)
        if os.altsep:
            relative = relative.lstrip(os.altsep)

        candidate = self._canonical(relative, target)

        # The index file goes through the same containment check: it may
        # itself be a symlink out of the root
        if self._is_root(candidate):
            candidate = self._canonical(self.index_file, target)

        return candidate

    def classify(self, path: Path, target: str = "") -> ResolvedPath:
        """
        Check a located path's extension against the whitelist.

        Raises:
            ForbiddenPathError: No extension, or not in the registry (403).
        """
        extension = path.suffix.lower()
        content_type = self.registry.lookup(extension) if extension else None
        if content_type is None:
            raise ForbiddenPathError(
                f"Extension not allowed: {extension or '(none)'}", target
            )

        return ResolvedPath(
            filesystem_path=path,
            url_path=self._url_path(path),
            extension=extension,
            content_type=content_type,
        )

    def contains(self, path: Path) -> bool:
        """True if `path` is the document root or a descendant of it."""
        parts = self._fold(path.parts)
        return parts[: len(self._root_parts)] == self._root_parts

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _normalize(self, target: str) -> str:
        """Steps 1-3: decode, drop query, normalize separators."""
        if _MALFORMED_ESCAPE.search(target):
            raise BadPathError("Malformed percent-escape", target)
        try:
            decoded = unquote(target, encoding="utf-8", errors="strict")
        except UnicodeDecodeError as e:
            raise BadPathError("Percent-escapes are not valid UTF-8", target) from e

        decoded = decoded.split("?", 1)[0]

        if "\x00" in decoded:
            raise BadPathError("Path contains a NUL byte", target)

        normalized = decoded.replace("/", os.sep)
        if os.sep != "\\":
            # Backslashes are separators to Windows clients; treat them the
            # same here so "..\\" can't sneak past the pattern check
            normalized = normalized.replace("\\", os.sep)
        return normalized.strip()

    def _canonical(self, relative: str, target: str) -> Path:
        """Steps 5-6: join onto the root, resolve(), check containment."""
        try:
            candidate = (self.document_root / relative).resolve()
        except (OSError, RuntimeError, ValueError) as e:
            # RuntimeError: symlink loop on older Pythons
            raise BadPathError(f"Path could not be canonicalized: {e}", target) from e

        # ─────────────────────────────────────────────────────────────────
        # LAYER 2: CONTAINMENT
        # ─────────────────────────────────────────────────────────────────
        if not self.contains(candidate):
            logger.warning(f"Path escapes document root: {target!r} -> {candidate}")
            raise BadPathError("Path escapes the document root", target)

        return candidate

    def _is_root(self, path: Path) -> bool:
        return self._fold(path.parts) == self._root_parts

    def _url_path(self, path: Path) -> str:
        return "/" + "/".join(path.parts[len(self._root_parts):])

    def _fold(self, parts: Tuple[str, ...]) -> Tuple[str, ...]:
        if self.case_sensitive:
            return tuple(parts)
        return tuple(part.casefold() for part in parts)

"""
Build errors raised by Quire.

Every error aborts the whole build. Each one carries the context needed to fix
the problem without re-running: the offending unit path, the offending name,
or the cycle chain.
"""

from typing import Optional, Sequence


class BuildError(Exception):
    """Base class for every failure that aborts a build."""


class MalformedMetadataError(BuildError):
    """A front matter block is unterminated, invalid, or has duplicate keys."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        self.reason = message
        if source:
            message = f"{source}: {message}"
        super().__init__(message)


class ConfigParseError(BuildError):
    """The site configuration or a data table could not be parsed."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        self.reason = message
        if source:
            message = f"{source}: {message}"
        super().__init__(message)


class AmbiguousCollectionError(BuildError):
    def __init__(self, source: str, collections: Sequence[str]):
        self.source = source
        self.collections = list(collections)
        super().__init__(
            f"{source} matches the source root of more than one collection: "
            f"{', '.join(self.collections)}"
        )


class DuplicateOutputPathError(BuildError):
    def __init__(self, path: str, first: str, second: str):
        self.path = path
        self.first = first
        self.second = second
        self.sources = (first, second)
        super().__init__(
            f"Output path {path} is produced by both {first} and {second}"
        )


class InvalidPermalinkError(BuildError):
    def __init__(self, source: str, permalink: str):
        self.source = source
        self.permalink = permalink
        super().__init__(f"{source}: permalink {permalink!r} escapes the site root")


class LayoutCycleError(BuildError):
    def __init__(self, cycle: Sequence[str]):
        # cycle starts and ends with the same layout name
        self.cycle = list(cycle)
        super().__init__(f"Layout cycle detected: {' -> '.join(self.cycle)}")


class UnknownLayoutError(BuildError):
    def __init__(self, name: str, referrer: Optional[str] = None):
        self.name = name
        self.referrer = referrer
        message = f"Unknown layout {name!r}"
        if referrer:
            message += f" (referenced by {referrer})"
        super().__init__(message)


class UnknownFragmentError(BuildError):
    def __init__(self, name: str, origin: Optional[str] = None):
        self.name = name
        self.origin = origin
        message = f"Unknown fragment {name!r}"
        if origin:
            message += f" (included from {origin})"
        super().__init__(message)


class FragmentCycleError(BuildError):
    def __init__(self, cycle: Sequence[str], origin: Optional[str] = None):
        self.cycle = list(cycle)
        self.origin = origin
        message = f"Fragment cycle detected: {' -> '.join(self.cycle)}"
        if origin:
            message += f" (while rendering {origin})"
        super().__init__(message)


class TemplateRenderError(BuildError):
    """A Jinja2 syntax or runtime error inside a body, layout, or fragment."""

    def __init__(self, origin: str, error: Exception):
        self.origin = origin
        self.error = error
        lineno = getattr(error, 'lineno', None)
        location = f"{origin}:{lineno}" if lineno else origin
        super().__init__(f"Template error in {location}: {error}")


class AssetPipelineError(BuildError):
    def __init__(self, target: str, message: str):
        self.target = target
        super().__init__(f"{target}: {message}")

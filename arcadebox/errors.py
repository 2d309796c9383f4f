"""Error types raised by the archive pipeline and the game catalogue."""


class ArcadeError(Exception):
    """Base class for everything arcadebox raises on purpose."""


class ArchiveLoadError(ArcadeError):
    """A load attempt failed. Terminal for that attempt; no retry."""

    headline = "Failed to load game"


class FetchError(ArchiveLoadError):
    def __init__(self, url: str, detail: str, status=None):
        self.url = url
        self.status = status
        super().__init__(f"Failed to download game ({detail})")


class ArchiveFormatError(ArchiveLoadError):
    def __init__(self, detail: str):
        super().__init__(f"Game archive is not a valid ZIP file: {detail}")


class MissingEntryPointError(ArchiveLoadError):
    headline = "No index.html found"

    def __init__(self, path: str = "index.html"):
        self.path = path
        super().__init__(f"No {path} found in game ZIP")


class GameNotFoundError(ArcadeError, LookupError):
    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Game not found: {slug}")


class DuplicateSlugError(ArcadeError):
    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"A game with this slug already exists: {slug}")

import enum
import time
from dataclasses import dataclass, field


class ResourceKind(str, enum.Enum):
    SCRIPT = "script"
    MODULE = "module"          # wasm
    DOCUMENT = "document"
    STYLESHEET = "stylesheet"
    IMAGE = "image"
    BINARY = "binary"


class PlayState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class Blob:
    data: bytes
    mimetype: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ResourceEntry:
    path: str
    kind: ResourceKind
    handle: str


@dataclass
class GameRecord:
    slug: str
    title: str
    bundle_url: str
    description: str = ""
    author: str = ""
    cover_image: str = ""           # file name under COVER_DIR, "" = placeholder
    views: int = 0
    plays: int = 0
    featured: bool = False
    published: bool = True
    rating_sum: int = 0
    rating_count: int = 0
    created: float = field(default_factory=time.time)

    @property
    def rating(self) -> float:
        """Average of all 1-5 star ratings, 0.0 when unrated."""
        return self.rating_sum / self.rating_count if self.rating_count else 0.0

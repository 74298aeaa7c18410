"""Storage provider capabilities.

Providers differ in what they can do: the media store only accepts uploads, the
backup store also provisions folders and relocates files, the record-store bucket
resolves public URLs. Callers check capabilities with ``isinstance`` against these
runtime-checkable protocols instead of branching on provider names.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Protocol, runtime_checkable

ProgressCallback = Callable[[int], None]


@dataclass(frozen=True)
class MediaFile:
    """A binary file held in memory for the duration of one upload attempt."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class UploadResult:
    """Where a provider stored an uploaded file.

    Attributes:
        locator: Provider-side identifier (Cloudinary public_id, Dropbox file id, bucket key)
        path: Path inside the provider's namespace, when the provider is path-addressed
        public_url: Directly playable/downloadable URL, when the provider exposes one
    """

    locator: str
    path: Optional[str] = None
    public_url: Optional[str] = None


@runtime_checkable
class MediaUploader(Protocol):
    """Accepts a binary upload."""

    name: str

    async def upload(
        self, file: MediaFile, folder: str | None = None, on_progress: ProgressCallback | None = None
    ) -> UploadResult: ...


@runtime_checkable
class FolderProvisioner(Protocol):
    """Requires explicit folder creation before uploads are organised under it."""

    async def create_folder(self, path: str) -> bool: ...


@runtime_checkable
class ObjectMover(Protocol):
    """Can relocate an uploaded object to a new path."""

    async def move(self, from_path: str, to_path: str) -> bool: ...


@runtime_checkable
class PublicUrlResolver(Protocol):
    """Turns an object path into a public URL."""

    def get_public_url(self, path: str) -> str: ...

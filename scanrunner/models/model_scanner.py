"""Data models for scan orchestration results."""

from dataclasses import dataclass, field

from pydantic import BaseModel, Field


class ImageHandle(BaseModel):
    """A container image opened in a local runtime."""

    id: str = Field(description="Runtime-specific image identifier")
    repo_refs: list[str] = Field(default_factory=list, description="Repository references")
    runtime: str = Field(description="Kind of runtime owning the image (docker, containerd)")

    @property
    def ref(self) -> str:
        """First repository reference, or the id when the image has none."""
        return self.repo_refs[0] if self.repo_refs else self.id


@dataclass
class ScanSummary:
    """Outcome of running the plugin set against one image."""

    image_id: str
    invoked: int = 0
    failed: int = 0
    skipped: int = 0
    failures: dict[str, str] = field(default_factory=dict)  # "plugin:command" → error


@dataclass
class RepositoryResult:
    """Outcome of pull → scan → cleanup for one repository."""

    repository: str
    pulled: str | None = None
    scanned: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class RegistryScanResult:
    """Result of running the acquisition workflow over all repositories."""

    repositories: list[RepositoryResult] = field(default_factory=list)

    @property
    def pulled(self) -> int:
        return sum(1 for r in self.repositories if r.pulled)

    @property
    def scanned(self) -> int:
        return sum(len(r.scanned) for r in self.repositories)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.repositories if r.error) + sum(
            len(r.failed) for r in self.repositories
        )

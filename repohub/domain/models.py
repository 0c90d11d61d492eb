from enum import Enum
from typing import Dict, List, Optional, Union
from pydantic import BaseModel, Field, ConfigDict

RepoId = Union[int, str]


class Platform(str, Enum):
    """Hosting platforms a token can belong to."""
    GITHUB = "GitHub"
    GITLAB = "GitLab"
    BITBUCKET = "Bitbucket"


class PlatformToken(BaseModel):
    """
    A credential for one hosting platform.
    Unique by id; the (platform, token) pair is unique across the registry.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field("", description="Opaque identifier, assigned on save when blank")
    platform: Platform = Field(..., description="Platform the token authorizes")
    token: str = Field(..., description="The secret itself")
    name: Optional[str] = Field(None, description="Optional user-friendly label")

    @property
    def label(self) -> str:
        return self.name or self.id


class Repository(BaseModel):
    """
    Immutable domain model representing a repository on any platform.
    Rebuilt on every aggregation, never mutated in place.
    """
    # Enforces immutability: once created, fields cannot be modified.
    model_config = ConfigDict(frozen=True)

    id: RepoId = Field(..., description="Platform-supplied identifier")
    name: str = Field(..., description="Name of the repository")
    url: str = Field(..., description="Browser URL of the repository")
    description: Optional[str] = Field(None, description="Free-text description")
    owner: str = Field(..., description="Login or namespace of the owner")
    source: Platform = Field(..., description="Platform the repository lives on")
    source_platform: Optional[Platform] = Field(
        None, description="Platform of the token that produced this entry"
    )
    token_id: Optional[str] = Field(None, description="Id of the token that produced this entry")

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match on name, owner or source platform."""
        return (
            query in self.name.lower()
            or query in self.owner.lower()
            or query in self.source.value.lower()
        )


class RepoGroup(BaseModel):
    """A user-named bucket of repository ids. Membership is ordered and duplicate-free."""
    id: str
    name: str
    repo_ids: List[RepoId] = Field(default_factory=list)


class CacheSnapshot(BaseModel):
    """Timestamped copy of the aggregated repository list."""
    model_config = ConfigDict(frozen=True)

    version: int = 1
    timestamp: float = Field(..., strict=True, description="Capture time in epoch milliseconds")
    data: List[Repository]


class CacheLoadResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    is_stale: bool


class RepositoryView(BaseModel):
    """Repositories partitioned into named groups and an ungrouped remainder."""
    grouped: Dict[str, List[Repository]] = Field(default_factory=dict)
    ungrouped: List[Repository] = Field(default_factory=list)

    def repository_ids(self) -> List[RepoId]:
        ids = [repo.id for repos in self.grouped.values() for repo in repos]
        ids.extend(repo.id for repo in self.ungrouped)
        return ids


class StoreState(BaseModel):
    """
    Mutable aggregate root shared by the registries, the cache store and the
    aggregation engine of a single RepoHub instance.
    """
    tokens: List[PlatformToken] = Field(default_factory=list)
    repositories: List[Repository] = Field(default_factory=list)
    is_loading: bool = False
    error: Optional[str] = None
    search_query: str = ""
    groups: List[RepoGroup] = Field(default_factory=list)

    def append_error(self, message: str) -> None:
        if self.error:
            self.error = f"{self.error} | {message}"
        else:
            self.error = message

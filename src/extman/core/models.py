"""
extman Core Data Models

Defines the remote listing payloads and the manifest records shared by the
resolver, the manifest store and the lifecycle.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class GithubCommit(BaseModel):
    """Commit a tag or branch points at."""

    sha: str = Field(description="Commit SHA")
    url: str = Field(default="", description="Commit API URL")

    model_config = ConfigDict(extra="ignore")


class GithubTag(BaseModel):
    """Tag entry of GET /repos/{repo}/tags."""

    name: str = Field(description="Tag name")
    commit: GithubCommit = Field(description="Tagged commit")
    zipball_url: str = Field(default="", description="Archive URL of the tag")
    tarball_url: Optional[str] = Field(default=None, description="Tarball URL")

    model_config = ConfigDict(extra="ignore")

    @property
    def download_url(self) -> str:
        return self.zipball_url


class GithubBranch(BaseModel):
    """Branch entry of GET /repos/{repo}/branches."""

    name: str = Field(description="Branch name")
    commit: GithubCommit = Field(description="Head commit")
    protected: bool = Field(default=False, description="Branch protection flag")

    model_config = ConfigDict(extra="ignore")


class AuthorInfo(BaseModel):
    """Structured author of an extension."""

    name: str = Field(description="Author name")
    email: Optional[str] = Field(default=None, description="Author email")
    url: Optional[str] = Field(default=None, description="Author homepage")

    model_config = ConfigDict(extra="allow")


class ExtensionCommand(BaseModel):
    """Command declared by an extension, kept verbatim."""

    name: str = Field(description="Command name")
    title: Optional[str] = Field(default=None, description="Command title")
    description: Optional[str] = Field(default=None, description="Command summary")

    model_config = ConfigDict(extra="allow")


class ExtensionPreference(BaseModel):
    """Preference declared by an extension."""

    name: str = Field(description="Preference name")
    type: Optional[str] = Field(default=None, description="Preference type")
    default: Any = Field(default=None, description="Default value")
    required: bool = Field(default=False, description="Whether a value is required")
    title: Optional[str] = Field(default=None, description="Preference title")
    label: Optional[str] = Field(default=None, description="Preference label")
    description: Optional[str] = Field(default=None, description="Preference summary")

    model_config = ConfigDict(extra="allow")

    @field_validator("required", mode="before")
    @classmethod
    def normalize_required(cls, v: Any) -> bool:
        return bool(v) if v is not None else False


class ExtensionRecord(BaseModel):
    """
    One installed extension, or one package of a monorepo extension.

    Known fields are modeled; anything else found in the extension's package
    metadata is kept as an extra field.
    """

    repository: str = Field(description="Source repository (owner/name)")
    package: Optional[str] = Field(default=None, description="Monorepo package path")
    title: str = Field(description="Display title")
    url: Optional[str] = Field(default=None, description="Repository web URL")
    description: Optional[str] = Field(default=None, description="Summary")
    license: Optional[str] = Field(default=None, description="License identifier")
    author: Optional[Union[str, AuthorInfo]] = Field(default=None, description="Author")
    categories: Set[str] = Field(default_factory=set, description="Categories")
    contributors: List[str] = Field(default_factory=list, description="Contributors")
    commands: List[ExtensionCommand] = Field(default_factory=list)
    preferences: List[ExtensionPreference] = Field(default_factory=list)
    dependencies: Dict[str, str] = Field(default_factory=dict)
    dev_dependencies: Dict[str, str] = Field(
        default_factory=dict, alias="devDependencies"
    )
    optional_dependencies: Dict[str, str] = Field(
        default_factory=dict, alias="optionalDependencies"
    )
    peer_dependencies: Dict[str, str] = Field(
        default_factory=dict, alias="peerDependencies"
    )
    tag: Optional[str] = Field(default=None, description="Installed tag")
    branch: Optional[str] = Field(default=None, description="Installed branch")
    commit: Optional[GithubCommit] = Field(default=None, description="Resolved commit")

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @field_validator(
        "categories",
        "contributors",
        "commands",
        "preferences",
        mode="before",
    )
    @classmethod
    def none_as_empty_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator(
        "dependencies",
        "dev_dependencies",
        "optional_dependencies",
        "peer_dependencies",
        mode="before",
    )
    @classmethod
    def none_as_empty_dict(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("contributors", mode="before")
    @classmethod
    def contributor_names(cls, v: Any) -> Any:
        # package.json allows {"name": ...} objects as well as strings
        if isinstance(v, list):
            return [c.get("name", "") if isinstance(c, dict) else c for c in v]
        return v

    @model_validator(mode="after")
    def check_version_pointer(self) -> "ExtensionRecord":
        if self.tag and self.branch:
            raise ValueError(
                f"Record for {self.repository} points at both tag "
                f"{self.tag!r} and branch {self.branch!r}"
            )
        return self

    @property
    def version(self) -> Optional[str]:
        return self.tag or self.branch

    @property
    def is_branch(self) -> bool:
        return bool(self.branch) and not self.tag

    @classmethod
    def field_name(cls, key: str) -> str:
        """Map a serialized key (alias) to its attribute name."""
        for name, info in cls.model_fields.items():
            if info.alias == key:
                return name
        return key

    def to_document(self) -> Dict[str, Any]:
        """Serialize for the manifest document."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ResolvedVersion(BaseModel):
    """Concrete version picked for an install."""

    tag: Optional[str] = Field(default=None, description="Selected tag")
    branch: Optional[str] = Field(default=None, description="Selected branch")
    commit: Optional[GithubCommit] = Field(default=None, description="Commit")
    download_url: Optional[str] = Field(default=None, description="Archive URL")

    @model_validator(mode="after")
    def check_pointer(self) -> "ResolvedVersion":
        if bool(self.tag) == bool(self.branch):
            raise ValueError("Exactly one of tag or branch must be set")
        return self

    @property
    def version(self) -> str:
        return self.tag or self.branch or ""

    @property
    def is_branch(self) -> bool:
        return self.branch is not None


class CommitInfo(BaseModel):
    """Subset of GET /repos/{repo}/commits/{sha} used for ordering tags."""

    sha: str
    date: Optional[datetime] = None

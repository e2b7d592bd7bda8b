"""Pydantic model for build request validation.

A BuildRequest is the parsed-and-validated form of the four positional
inputs of a build: push target, source location, source ref and
credential. Everything downstream assumes a valid request.
"""

import re
from urllib.parse import urlsplit

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
)

from srcimage.errors import ConfigurationError

# Image reference: [registry[:port]/]path[/path...][:tag]
# Tags are capped at 120 characters so the derived "-<7 char hash>" suffix
# keeps them within the 128 character limit
_HOST_COMPONENT = r"[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?"
_PATH_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
PUSH_LOCATION_PATTERN = re.compile(
    rf"^(?:{_HOST_COMPONENT}(?:\.{_HOST_COMPONENT})*(?::[0-9]+)?/)?"
    rf"{_PATH_COMPONENT}(?:/{_PATH_COMPONENT})*"
    r"(?::\w[\w.-]{0,119})?$"
)

# Valid git remote names: no whitespace or ref-forbidden characters
SOURCE_REF_PATTERN = re.compile(
    r"^(?!-)(?!.*\.\.)(?!.*\.lock$)[^\s~^:?*\[\\]+(?<![/.])$"
)

SUPPORTED_SCHEMES = {"http", "https", "ssh", "git", "file"}


class BuildRequest(BaseModel):
    """Schema for a single build invocation.

    Attributes:
        push_location: Image reference the result is pushed under.
        source_location: Git URL or local path of the source repository.
        source_ref: Remote name bound to the source during clone.
        credential: Token sent as the git password (may be empty).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    push_location: str = Field(description="Image reference to push to")
    source_location: str = Field(description="Git repository URL or path")
    source_ref: str = Field(description="Remote name used for the clone")
    credential: SecretStr = Field(
        default=SecretStr(""), description="Token for git authentication"
    )

    @field_validator("push_location")
    @classmethod
    def validate_push_location(cls, v: str) -> str:
        """Validate push location is an image reference."""
        if not v:
            raise ValueError("push_location must not be empty")
        if not PUSH_LOCATION_PATTERN.match(v):
            raise ValueError(f"push_location is not a valid image reference: '{v}'")
        return v

    @field_validator("source_location")
    @classmethod
    def validate_source_location(cls, v: str) -> str:
        """Validate source location is a URL, scp-style address or path."""
        if not v or v != v.strip() or any(c.isspace() for c in v):
            raise ValueError("source_location must be non-empty without whitespace")
        if "://" in v:
            parts = urlsplit(v)
            if parts.scheme not in SUPPORTED_SCHEMES:
                raise ValueError(
                    f"source_location scheme must be one of "
                    f"{sorted(SUPPORTED_SCHEMES)}, got '{parts.scheme}'"
                )
            if parts.scheme != "file" and not parts.netloc:
                raise ValueError(f"source_location has no host: '{v}'")
        return v

    @field_validator("source_ref")
    @classmethod
    def validate_source_ref(cls, v: str) -> str:
        """Validate source ref is usable as a git remote name."""
        if not v:
            raise ValueError("source_ref must not be empty")
        if not SOURCE_REF_PATTERN.match(v):
            raise ValueError(f"source_ref is not a valid remote name: '{v}'")
        return v

    @classmethod
    def parse(
        cls,
        push_location: str,
        source_location: str,
        source_ref: str,
        credential: str = "",
    ) -> "BuildRequest":
        """Build a request from raw inputs.

        Raises:
            ConfigurationError: If any input is invalid.
        """
        try:
            return cls(
                push_location=push_location,
                source_location=source_location,
                source_ref=source_ref,
                credential=SecretStr(credential),
            )
        except ValidationError as e:
            fields = [str(err["loc"][0]) for err in e.errors() if err["loc"]]
            messages = "; ".join(err["msg"] for err in e.errors())
            raise ConfigurationError(
                f"Invalid build request: {messages}", fields=fields
            ) from e


__all__ = ["BuildRequest", "PUSH_LOCATION_PATTERN", "SOURCE_REF_PATTERN"]

"""Schema-aware parsing for API payloads.

Parsers return a ParseResult instead of raising for malformed input. The
service layer turns a failed result into ResponseParseError so the
retry path can classify it as a parser failure.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class ResponseParseError(ValueError):
    """Raised when a response body does not match the expected schema."""


@dataclass
class ParseResult(Generic[T]):
    """Outcome of parsing: either a value (with warnings) or an error."""

    value: Optional[T] = None
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    field_errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise ResponseParseError."""
        if self.error is not None:
            raise ResponseParseError(self.error)
        return self.value


@dataclass
class Post:
    """A post resource as served by the remote API."""

    id: int
    user_id: int
    title: str
    body: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Post":
        """Build a Post from an API record.

        Raises:
            ValueError: If a required field is missing or has the wrong type
        """
        errors = []
        for name in ("id", "userId"):
            if not isinstance(data.get(name), int) or isinstance(data.get(name), bool):
                errors.append(f"{name} should be int, got {type(data.get(name)).__name__}")
        for name in ("title", "body"):
            if not isinstance(data.get(name), str):
                errors.append(f"{name} should be str, got {type(data.get(name)).__name__}")
        if errors:
            raise ValueError("; ".join(errors))

        return cls(
            id=data["id"],
            user_id=data["userId"],
            title=data["title"],
            body=data["body"],
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the API's field names."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "body": self.body,
        }


def parse_post(data: Any) -> ParseResult[Post]:
    """Parse a single post object."""
    if not isinstance(data, dict):
        return ParseResult(error=f"Expected post object, got {type(data).__name__}")

    try:
        post = Post.from_dict(data)
    except ValueError as e:
        return ParseResult(error=f"Failed to parse post: {e}", field_errors=[str(e)])

    warnings = []
    if not post.title:
        warnings.append("Title is empty")
    return ParseResult(value=post, warnings=warnings)


def parse_posts(data: Any) -> ParseResult[List[Post]]:
    """Parse a list of posts, skipping invalid items.

    Fails when more than half of the items are invalid.
    """
    if not isinstance(data, list):
        return ParseResult(error=f"Expected array of posts, got {type(data).__name__}")

    posts: List[Post] = []
    errors: List[str] = []
    warnings: List[str] = []

    for i, item in enumerate(data):
        result = parse_post(item)
        if result.ok:
            posts.append(result.value)
        else:
            errors.append(f"Failed to parse post at index {i}: {result.error}")
            warnings.append(f"Skipped invalid post at position {i}")

    if len(errors) > len(data) / 2:
        return ParseResult(
            error=f"Too many parsing errors ({len(errors)}/{len(data)})",
            field_errors=errors,
        )

    return ParseResult(value=posts, warnings=warnings)


__all__ = [
    "ResponseParseError",
    "ParseResult",
    "Post",
    "parse_post",
    "parse_posts",
]

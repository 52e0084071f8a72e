"""
Registry of the cached resource collections.
"""

from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping, Union

from . import transforms


class InvalidResourceError(LookupError):
    """Raised when code asks for a collection that is not registered.

    This is a programming error: it is not a PortfolioException and is not
    meant to be caught by request handling.
    """


class Resource(str, Enum):
    """The five collections served through the cache."""

    SETTINGS = "settings"
    EXPERIENCES = "experiences"
    CERTIFICATIONS = "certifications"
    PROJECTS = "projects"
    POSTS = "posts"

    @classmethod
    def parse(cls, value: Union["Resource", str]) -> "Resource":
        """Resolve a resource name, failing loudly on unknown names."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidResourceError(f"Unknown cached resource: {value!r}") from None


class WriteOperation(str, Enum):
    """Mutations accepted by the store for a collection."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


Shaper = Callable[[Iterable[Mapping[str, Any]]], Any]

SHAPERS: Dict[Resource, Shaper] = {
    Resource.SETTINGS: transforms.shape_settings,
    Resource.EXPERIENCES: transforms.shape_experiences,
    Resource.CERTIFICATIONS: transforms.shape_certifications,
    Resource.PROJECTS: transforms.shape_projects,
    Resource.POSTS: transforms.shape_posts,
}


def shape(resource: Resource, rows: Iterable[Mapping[str, Any]]) -> Any:
    """Apply the registered transform for ``resource`` to raw store rows."""
    return SHAPERS[resource](rows)

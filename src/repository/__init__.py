"""Application-facing repositories."""

from repository.posts import POSTS_KEY, PostsRepository

__all__ = ["PostsRepository", "POSTS_KEY"]

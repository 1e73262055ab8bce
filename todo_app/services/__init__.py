"""Service layer: the mutation API and its collaborators."""

from .categories import CategoryService
from .teams import TeamService
from .todos import TodoService

__all__ = ["CategoryService", "TeamService", "TodoService"]

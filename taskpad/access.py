import enum
from dataclasses import dataclass

from .errors import Forbidden, NotAuthenticated


class Scope(enum.Enum):
    OWN = 'mine'
    ALL = 'all'

    @classmethod
    def parse(cls, raw):
        """Unknown or missing values mean OWN."""
        try:
            return cls((raw or '').strip().lower())
        except ValueError:
            return cls.OWN


@dataclass(frozen=True)
class View:
    scope: Scope
    is_admin: bool


def resolve_view(ctx, requested: Scope = Scope.OWN) -> View:
    if not ctx.is_authenticated:
        raise NotAuthenticated()
    # Non-admins asking for everything quietly get their own tasks
    scope = requested if ctx.is_admin else Scope.OWN
    return View(scope=scope, is_admin=ctx.is_admin)


def can_mutate(ctx, task) -> bool:
    return ctx.is_authenticated and (task.user_id == ctx.user_id or ctx.is_admin)


def require_mutation(ctx, task):
    if not ctx.is_authenticated:
        raise NotAuthenticated()
    if not can_mutate(ctx, task):
        raise Forbidden()

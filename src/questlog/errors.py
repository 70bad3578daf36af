"""Service-level exceptions shared by the quest and friendship state machines.

These carry no HTTP knowledge; routers translate them into status codes.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for all service-level errors."""


class NotFoundError(ServiceError):
    """The entity does not exist, or is not in the state the transition expects.

    A lost race on a conditional update is reported the same way.
    """


class ForbiddenError(ServiceError):
    """The caller is authenticated but is not allowed to perform the action."""


class ConflictError(ServiceError):
    """The transition would create a row that already exists."""

"""
The acting identity of a request.

A request is served either for a registered user or for an anonymous guest.
Both variants expose `id` (the tenant key used to scope questions, preferences
and sessions) and `tier`, and are resolved once per request by the dependencies
in app.core.middleware.
"""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class UserPrincipal:
    id: str
    email: Optional[str]
    tier: str

    @property
    def is_guest(self) -> bool:
        return False


@dataclass(frozen=True)
class GuestPrincipal:
    id: str
    tier: str

    @property
    def is_guest(self) -> bool:
        return True


Principal = Union[UserPrincipal, GuestPrincipal]

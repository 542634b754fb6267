"""
Optional OIDC protections: STATE (CSRF), NONCE (replay) and PKCE
(code interception).
"""

from enum import Enum
from typing import FrozenSet, Iterable, Optional, Union

from .exceptions import InvalidProtectionError


class Protection(str, Enum):
    STATE = "STATE"
    NONCE = "NONCE"
    PKCE = "PKCE"


DEFAULT_PROTECTIONS: FrozenSet[Protection] = frozenset(
    {Protection.STATE, Protection.PKCE}
)


class ProtectionSet:
    """Immutable set of enabled protections."""

    def __init__(self, protections: Iterable[Protection] = DEFAULT_PROTECTIONS):
        self._protections = frozenset(protections)

    @classmethod
    def parse(cls, raw: Optional[str]) -> "ProtectionSet":
        """
        Parse the IDP_ENABLED_PROTECTIONS value.

        None means unset and yields the defaults. An empty string disables
        every protection.

        Raises:
            InvalidProtectionError: If an entry is not STATE, NONCE or PKCE
        """
        if raw is None:
            return cls(DEFAULT_PROTECTIONS)

        protections = set()
        for token in raw.split(","):
            token = token.strip()
            if not token:
                continue
            try:
                protections.add(Protection(token))
            except ValueError:
                raise InvalidProtectionError(token) from None

        return cls(protections)

    def supports(self, protection: Union[Protection, str]) -> bool:
        try:
            return Protection(protection) in self._protections
        except ValueError:
            return False

    def __iter__(self):
        return iter(sorted(self._protections, key=lambda p: p.value))

    def __len__(self) -> int:
        return len(self._protections)

    def __repr__(self) -> str:
        return f"ProtectionSet({','.join(p.value for p in self)})"

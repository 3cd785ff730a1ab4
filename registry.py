import logging
from dataclasses import dataclass
from typing import Callable, Iterator

from config import MAX_COLLISION_SUFFIX
from errors import CollisionExhausted, InvalidArgument, UnknownIdentity

logger = logging.getLogger("referral.registry")

FNV_OFFSET_BASIS = 14695981039346656037
FNV_PRIME = 1099511628211
_MASK_64 = (1 << 64) - 1


def fnv1a_64(address: str) -> int:
    """64-bit FNV-1a over the UTF-8 bytes of address."""
    h = FNV_OFFSET_BASIS
    for byte in address.encode("utf-8"):
        h ^= byte
        h = (h * FNV_PRIME) & _MASK_64
    return h


@dataclass(frozen=True)
class Registration:
    identity: str
    created: bool  # False when the address was already known


class IdentityRegistry:
    """
    Bidirectional address <-> identity mapping.

    Identities are derived from the address hash and never change once
    issued. Two different addresses never share an identity: a collision on
    the derived token is resolved by appending _1, _2, ... to it.
    """

    def __init__(
        self,
        hash_fn: Callable[[str], int] = fnv1a_64,
        max_suffix: int = MAX_COLLISION_SUFFIX,
    ):
        self._hash_fn = hash_fn
        self._max_suffix = max_suffix
        self._by_address: dict[str, str] = {}
        self._by_identity: dict[str, str] = {}

    def _derive(self, address: str) -> str:
        base = f"token_{self._hash_fn(address)}"
        if base not in self._by_identity:
            return base
        logger.warning(f"Token collision on {base} for {address}")
        for suffix in range(1, self._max_suffix + 1):
            token = f"{base}_{suffix}"
            if token not in self._by_identity:
                return token
        raise CollisionExhausted(
            f"No unique token for {address} after {self._max_suffix} suffixes of {base}"
        )

    def register(self, address: str) -> Registration:
        if not isinstance(address, str) or not address:
            raise InvalidArgument("Address must be a non-empty string.")

        existing = self._by_address.get(address)
        if existing is not None:
            logger.info(f"User already exists: {address}")
            return Registration(existing, created=False)

        identity = self._derive(address)
        self._by_address[address] = identity
        self._by_identity[identity] = address
        logger.info(f"Registered {address} as {identity}")
        return Registration(identity, created=True)

    def resolve(self, address: str) -> str:
        try:
            return self._by_address[address]
        except KeyError:
            raise UnknownIdentity(address) from None

    def address_of(self, identity: str) -> str:
        try:
            return self._by_identity[identity]
        except KeyError:
            raise UnknownIdentity(identity) from None

    def addresses(self) -> Iterator[str]:
        """Registered addresses in registration order."""
        return iter(self._by_address)

    def __contains__(self, address: object) -> bool:
        return address in self._by_address

    def __len__(self) -> int:
        return len(self._by_address)

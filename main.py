import bisect
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from config import LOG_FORMAT, LOG_LEVEL
from errors import (
    AlreadyReferredError,
    CycleError,
    InvalidArgument,
    ReferralError,
    SelfReferralError,
)
from paths import is_on_shortest_path
from registry import IdentityRegistry, Registration

logger = logging.getLogger("referral.forest")


@dataclass
class Participant:
    """Everything the forest knows about one identity."""
    address: str
    identity: str
    referrer: Optional[str] = None  # identity of the referrer, lookup only
    children: list[str] = field(default_factory=list)  # identities, insertion order
    descendant_count: int = 0


class DisjointSet:
    """Union-find over identities, one component per connected subtree."""

    def __init__(self):
        self._parent: dict[str, str] = {}
        self._size: dict[str, int] = {}

    def add(self, item: str) -> None:
        if item not in self._parent:
            self._parent[item] = item
            self._size[item] = 1

    def find(self, item: str) -> str:
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        # path compression
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, a: str, b: str) -> bool:
        """Merge the components of a and b. False if they were already one."""
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return False
        if self._size[root_a] < self._size[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        self._size[root_a] += self._size[root_b]
        return True

    def component_size(self, item: str) -> int:
        return self._size[self.find(item)]


class RankIndex:
    """
    count -> identities currently holding that count, for positive counts.

    Buckets are dicts used as insertion-ordered sets; _counts keeps the live
    bucket keys sorted ascending.
    """

    def __init__(self):
        self._buckets: dict[int, dict[str, None]] = {}
        self._counts: list[int] = []

    def _remove(self, identity: str, count: int) -> None:
        bucket = self._buckets[count]
        del bucket[identity]
        if not bucket:
            del self._buckets[count]
            del self._counts[bisect.bisect_left(self._counts, count)]

    def _insert(self, identity: str, count: int) -> None:
        bucket = self._buckets.get(count)
        if bucket is None:
            bucket = self._buckets[count] = {}
            bisect.insort(self._counts, count)
        bucket[identity] = None

    def move(self, identity: str, old: int, new: int) -> None:
        if old > 0:
            self._remove(identity, old)
        if new > 0:
            self._insert(identity, new)

    def top(self, k: int) -> list[str]:
        result: list[str] = []
        for count in reversed(self._counts):
            for identity in self._buckets[count]:
                if len(result) == k:
                    return result
                result.append(identity)
        return result


class ReferralNetwork:
    """
    A directed graph where edges represent referrer → candidate relationships.

    Invariants:
    - No self-referrals
    - Each candidate has at most one referrer
    - Acyclic (no cycles allowed, even ignoring direction)
    - descendant_count of every user equals the size of its subtree
    """

    def __init__(self, registry: Optional[IdentityRegistry] = None):
        self.registry = registry if registry is not None else IdentityRegistry()
        self._participants: dict[str, Participant] = {}  # key identity, registration order
        self._components = DisjointSet()
        self._rank = RankIndex()

    def _participant(self, address: str) -> Participant:
        identity = self.registry.resolve(address)
        participant = self._participants.get(identity)
        if participant is None:
            # registered directly on a shared registry
            participant = self._materialize(address, identity)
        return participant

    def _materialize(self, address: str, identity: str) -> Participant:
        participant = Participant(address=address, identity=identity)
        self._participants[identity] = participant
        self._components.add(identity)
        return participant

    def register(self, address: str) -> Registration:
        registration = self.registry.register(address)
        if registration.identity not in self._participants:
            self._materialize(address, registration.identity)
        return registration

    def _check_constraints(self, referrer: Participant, candidate: Participant) -> None:
        """
        Check if adding edge referrer to candidate satisfies invariants.
        Raises an InvalidOperation subclass if invalid. The union is the last
        check, so nothing is mutated unless every other check passed.
        """
        if referrer.identity == candidate.identity:
            raise SelfReferralError("Self-referral is not allowed.")

        if candidate.referrer is not None:
            raise AlreadyReferredError(f"{candidate.address} already has a referrer.")

        if not self._components.union(referrer.identity, candidate.identity):
            raise CycleError("Adding this referral would create a cycle.")

    def add_referral(self, referrer: str, candidate: str) -> None:
        """Add edge referrer → candidate. Raises ReferralError if constraints violated."""
        parent = self._participant(referrer)
        child = self._participant(candidate)
        try:
            self._check_constraints(parent, child)
        except ReferralError as exc:
            logger.warning(f"Rejected referral {referrer} -> {candidate}: {exc}")
            raise

        child.referrer = parent.identity
        parent.children.append(child.identity)

        # the whole subtree of the candidate now hangs below every ancestor
        gained = 1 + child.descendant_count
        current: Optional[Participant] = parent
        while current is not None:
            old = current.descendant_count
            current.descendant_count = old + gained
            self._rank.move(current.identity, old, current.descendant_count)
            current = self._participants[current.referrer] if current.referrer is not None else None

        logger.info(f"Referral added: {referrer} -> {candidate}")

    def descendant_count(self, user: str) -> int:
        """Number of direct and indirect referrals of user, O(1)."""
        return self._participant(user).descendant_count

    def direct_referrals(self, user: str) -> list[str]:
        """Return immediate children of user in insertion order, empty if the user is unknown."""
        if user not in self.registry:
            return []
        participant = self._participant(user)
        return [self._participants[child].address for child in participant.children]

    def referrer_of(self, user: str) -> Optional[str]:
        participant = self._participant(user)
        if participant.referrer is None:
            return None
        return self._participants[participant.referrer].address

    def top_referrers(self, k: int) -> list[str]:
        """
        Up to k users with the highest descendant counts, highest first.
        Users without referrals are never included, so fewer than k may come back.
        """
        if k < 0:
            raise InvalidArgument(f"k must be >= 0, got {k}.")
        return [self._participants[identity].address for identity in self._rank.top(k)]

    def all_referrals(self, user: str) -> Iterable[str]:
        """DFS through graph to find all descendents either direct or indirect."""
        result = []
        stack = list(self._participant(user).children)
        while stack:
            node = self._participants[stack.pop()]
            result.append(node.address)
            stack.extend(node.children)
        return result

    def all_ancestors(self, user: str) -> list[str]:
        """Walk up through referrers to find all ancestors (direct or indirect)."""
        result = []
        current = self._participant(user)
        while current.referrer is not None:
            current = self._participants[current.referrer]
            result.append(current.address)
        return result

    def root_referrers(self) -> list[str]:
        """Users nobody referred, in registration order. Every tree hangs off one of them."""
        return [p.address for p in self._participants.values() if p.referrer is None]

    def get_all_nodes(self) -> set[str]:
        """Return all registered users."""
        return {p.address for p in self._participants.values()}

    def adjacency(self) -> dict[str, list[str]]:
        """Snapshot of forward edges keyed by identity; every participant is a key."""
        return {identity: list(p.children) for identity, p in self._participants.items()}

    def connected(self, a: str, b: str) -> bool:
        """True if a and b sit in the same referral tree."""
        first, second = self._participant(a), self._participant(b)
        return self._components.find(first.identity) == self._components.find(second.identity)

    def tree_size(self, user: str) -> int:
        """Number of users in user's referral tree, user and root included."""
        return self._components.component_size(self._participant(user).identity)


def demo() -> None:
    network = ReferralNetwork()
    for address in ("krish@gmail.com", "bob@gmail.com", "charlie@gmail.com", "hj@gmail.com", "dana@gmail.com"):
        network.register(address)

    network.add_referral("krish@gmail.com", "hj@gmail.com")
    network.add_referral("bob@gmail.com", "charlie@gmail.com")
    # krish -> bob gives the path krish -> bob -> charlie
    network.add_referral("krish@gmail.com", "bob@gmail.com")

    logger.info(f"krish@gmail.com referred: {network.direct_referrals('krish@gmail.com')}")
    for address in ("krish@gmail.com", "bob@gmail.com", "charlie@gmail.com"):
        logger.info(f"{address} total referrals: {network.descendant_count(address)}")

    logger.info(f"krish@gmail.com tree size: {network.tree_size('krish@gmail.com')}")
    for address in ("charlie@gmail.com", "dana@gmail.com"):
        same_tree = network.connected("hj@gmail.com", address)
        logger.info(f"hj@gmail.com and {address} in the same tree? {'YES' if same_tree else 'NO'}")

    for candidate in ("bob@gmail.com", "hj@gmail.com"):
        on_path, fraction = is_on_shortest_path(
            network, "krish@gmail.com", "charlie@gmail.com", candidate
        )
        logger.info(
            f"Is {candidate} on a shortest path krish->charlie? "
            f"{'YES' if on_path else 'NO'}  fraction={fraction:.4f}"
        )


if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    demo()

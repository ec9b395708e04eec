"""Resolve participant ids to display identities."""

from collections import defaultdict
from typing import Dict, Iterable, Optional, Set, Tuple

import structlog

from ..domain.models import Identity, SenderRole
from ..repositories.base import DataAccess, Row

logger = structlog.get_logger()

PROFILE_TABLES = {
    SenderRole.CUSTOMER: "customer_profiles",
    SenderRole.SELLER: "seller_profiles",
}

_PROFILE_COLUMNS = ("id", "first_name", "last_name", "business_name", "photo_url")

IdentityKey = Tuple[str, SenderRole]


def _full_name(row: Row) -> str:
    return f"{row.get('first_name') or ''} {row.get('last_name') or ''}".strip()


def identity_from_row(row: Row, role: SenderRole) -> Identity:
    """Build an identity from a profile row of the given role."""
    if role == SenderRole.SELLER:
        name = row.get("business_name") or _full_name(row) or "Seller"
    else:
        name = _full_name(row) or "Customer"
    return Identity(
        id=str(row["id"]),
        role=role,
        display_name=name,
        photo_url=row.get("photo_url"),
    )


class IdentityResolver:
    """Looks up customers and sellers by role tag.

    Each role is an independent scoped read against its own profile table.
    The two tables are never joined on a shared sender column.
    """

    def __init__(self, data_access: DataAccess) -> None:
        self.data_access = data_access

    async def resolve_identity(self, participant_id: str, role: SenderRole) -> Optional[Identity]:
        """Return the identity, or None when no profile matches."""
        role = SenderRole(role)
        rows = await self.data_access.query(
            PROFILE_TABLES[role],
            filters={"id": participant_id},
            columns=_PROFILE_COLUMNS,
            limit=1,
        )
        if not rows:
            logger.warning("identity_not_found", participant_id=participant_id, role=role.value)
            return None
        return identity_from_row(rows[0], role)

    async def resolve_or_placeholder(self, participant_id: str, role: SenderRole) -> Identity:
        identity = await self.resolve_identity(participant_id, role)
        return identity or Identity.placeholder(participant_id, SenderRole(role))

    async def resolve_many(self, refs: Iterable[IdentityKey]) -> Dict[IdentityKey, Identity]:
        """Resolve a batch with one read per role. Missing ids are omitted."""
        wanted: Dict[SenderRole, Set[str]] = defaultdict(set)
        for participant_id, role in refs:
            wanted[SenderRole(role)].add(participant_id)

        resolved: Dict[IdentityKey, Identity] = {}
        for role, ids in wanted.items():
            rows = await self.data_access.query(
                PROFILE_TABLES[role],
                filters={"id": sorted(ids)},
                columns=_PROFILE_COLUMNS,
            )
            for row in rows:
                identity = identity_from_row(row, role)
                resolved[(identity.id, role)] = identity

            missing = ids - {key[0] for key in resolved if key[1] == role}
            if missing:
                logger.warning("identities_not_found", role=role.value, count=len(missing))
        return resolved

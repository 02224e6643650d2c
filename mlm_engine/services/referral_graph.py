"""
Referral graph store.

Upline and downline queries over the sponsor links of members. The data
model forbids cycles; the walks still detect them and raise
GraphIntegrityError instead of looping.
"""

from dataclasses import dataclass

from loguru import logger

from mlm_engine.models.member import Member
from mlm_engine.repositories.member_repository import MemberRepository
from mlm_engine.utils.exceptions import GraphIntegrityError


@dataclass(frozen=True)
class UplineNode:
    """Ancestor with its distance from the source member."""

    member: Member
    level: int


@dataclass(frozen=True)
class DownlineNode:
    """Descendant with its depth below the root member."""

    member_id: int
    level: int
    is_active: bool


class ReferralGraphStore:
    """Read-only view of the referral forest."""

    def __init__(self, members: MemberRepository) -> None:
        self.members = members

    async def upline_chain(
        self, member_id: int, max_levels: int
    ) -> list[UplineNode]:
        """
        Sponsors of a member, nearest first.

        Args:
            member_id: Source member
            max_levels: Maximum number of ancestors

        Returns:
            Up to max_levels nodes; fewer when a root is reached

        Raises:
            GraphIntegrityError: Unknown source member, dangling sponsor
                reference or cycle
        """
        member = await self.members.get_member(member_id)
        if member is None:
            raise GraphIntegrityError(member_id, "member not found")

        chain: list[UplineNode] = []
        visited = {member.id}
        current = member

        while len(chain) < max_levels and current.sponsor_id is not None:
            sponsor_id = current.sponsor_id
            if sponsor_id in visited:
                logger.error(
                    "Cycle detected in referral graph",
                    extra={"member_id": member_id, "revisited": sponsor_id},
                )
                raise GraphIntegrityError(
                    sponsor_id, f"cycle in upline of member {member_id}"
                )
            sponsor = await self.members.get_member(sponsor_id)
            if sponsor is None:
                raise GraphIntegrityError(
                    current.id, f"sponsor {sponsor_id} does not exist"
                )
            visited.add(sponsor_id)
            chain.append(UplineNode(member=sponsor, level=len(chain) + 1))
            current = sponsor

        return chain

    async def downline_subtree(
        self, member_id: int, max_levels: int
    ) -> list[DownlineNode]:
        """
        Descendants of a member, breadth first, down to max_levels.

        Raises:
            GraphIntegrityError: If a descendant is reached twice
        """
        result: list[DownlineNode] = []
        visited = {member_id}
        frontier = [member_id]
        level = 0

        while frontier and level < max_levels:
            level += 1
            children = await self.members.list_children(frontier)
            next_frontier = []
            for child_id, _sponsor_id, is_active in children:
                if child_id in visited:
                    raise GraphIntegrityError(
                        child_id, f"cycle in downline of member {member_id}"
                    )
                visited.add(child_id)
                result.append(
                    DownlineNode(member_id=child_id, level=level, is_active=is_active)
                )
                next_frontier.append(child_id)
            frontier = next_frontier

        return result

    async def count_active_downline(self, member_id: int, max_levels: int) -> int:
        """Active descendants within max_levels."""
        nodes = await self.downline_subtree(member_id, max_levels)
        return sum(1 for node in nodes if node.is_active)

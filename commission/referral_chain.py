# commission/referral_chain.py
from typing import Iterator, Tuple, Optional, Dict, List
import logging

from models import User

logger = logging.getLogger(__name__)


class ReferralChainHelper:
    """
    The referral tree is only stored as `User.referred_by` -> `User.referral_code`
    links, so every traversal here is an explicit bounded loop.
    """

    @staticmethod
    def resolve(session, referral_code: Optional[str]) -> Optional[User]:
        if not referral_code:
            return None
        return session.query(User).filter(User.referral_code == referral_code).first()

    @staticmethod
    def iter_upline(session, referral_code: str, max_levels: int,
                    exclude_user_id: Optional[int] = None) -> Iterator[Tuple[int, User]]:
        """
        Yield (level, referrer) starting with the owner of `referral_code` as
        level 1. Stops at an unresolvable code, after `max_levels`, or when an
        account repeats (malformed back-reference).
        """
        visited = {exclude_user_id} if exclude_user_id is not None else set()
        current = ReferralChainHelper.resolve(session, referral_code)
        level = 1

        while current is not None and level <= max_levels:
            if current.id in visited:
                logger.warning(f"Referral cycle detected at user {current.id}, stopping walk at level {level}")
                return
            visited.add(current.id)
            yield level, current

            level += 1
            current = ReferralChainHelper.resolve(session, current.referred_by)

    @staticmethod
    def get_upline(session, user: User, max_levels: int) -> List[Dict]:
        return [
            {"level": level, "id": ancestor.id, "fullName": ancestor.full_name,
             "referralCode": ancestor.referral_code}
            for level, ancestor in ReferralChainHelper.iter_upline(
                session, user.referred_by, max_levels, exclude_user_id=user.id)
        ]

    @staticmethod
    def get_downline_counts(session, user: User, max_levels: int) -> Dict[int, int]:
        """Number of referred accounts on each level below `user`"""
        counts = {}
        frontier = [user.referral_code]
        seen = {user.id}

        for level in range(1, max_levels + 1):
            if not frontier:
                break
            members = session.query(User).filter(User.referred_by.in_(frontier)).all()
            members = [m for m in members if m.id not in seen]
            if not members:
                break
            seen.update(m.id for m in members)
            counts[level] = len(members)
            frontier = [m.referral_code for m in members]

        return counts

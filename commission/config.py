# commission/config.py
from collections import namedtuple
from decimal import Decimal, InvalidOperation
from typing import List, Dict, Any

from flask import current_app

from errors import ValidationError
from models import CommissionSetting

LevelRate = namedtuple("LevelRate", ["level", "percentage"])


class CommissionConfigHelper:
    """
    Commission configuration helper with level-based percentages.
    Defaults: Level 1: 10%, Level 2: 5%, Level 3: 3%, Level 4: 2%, Level 5: 1%
    """

    DEFAULT_LEVELS = [
        (1, Decimal('10'), 'Level 1 - Direct Referral'),
        (2, Decimal('5'), 'Level 2 - Indirect Referral'),
        (3, Decimal('3'), 'Level 3 - Indirect Referral'),
        (4, Decimal('2'), 'Level 4 - Indirect Referral'),
        (5, Decimal('1'), 'Level 5 - Indirect Referral'),
    ]

    @staticmethod
    def max_levels() -> int:
        return int(current_app.config.get("COMMISSION_MAX_LEVELS", 20))

    @staticmethod
    def get_active_levels(session) -> List[LevelRate]:
        """Active levels in ascending order, capped at COMMISSION_MAX_LEVELS"""
        settings = session.query(CommissionSetting).filter(
            CommissionSetting.is_active.is_(True)
        ).order_by(CommissionSetting.level.asc()).all()

        cap = CommissionConfigHelper.max_levels()
        return [LevelRate(s.level, Decimal(str(s.percentage))) for s in settings][:cap]

    @staticmethod
    def parse_levels(raw_levels) -> List[Dict[str, Any]]:
        """
        Validate an admin-supplied level list. Active levels must be numbered
        1..N without gaps so the Nth active setting always pays level N.
        """
        if not isinstance(raw_levels, list) or not raw_levels:
            raise ValidationError({"levels": "Must be a non-empty list"})

        cap = CommissionConfigHelper.max_levels()
        errors = {}
        parsed = []
        seen = set()

        for index, item in enumerate(raw_levels):
            key = f"levels[{index}]"
            if not isinstance(item, dict):
                errors[key] = "Must be an object"
                continue

            level = item.get("level")
            if not isinstance(level, int) or isinstance(level, bool) or not 1 <= level <= cap:
                errors[f"{key}.level"] = f"Must be an integer between 1 and {cap}"
                continue
            if level in seen:
                errors[f"{key}.level"] = "Duplicate level"
                continue
            seen.add(level)

            try:
                percentage = Decimal(str(item.get("percentage")))
            except (InvalidOperation, ValueError, TypeError):
                errors[f"{key}.percentage"] = "Must be a number"
                continue
            if not percentage.is_finite() or not Decimal("0") < percentage <= Decimal("100"):
                errors[f"{key}.percentage"] = "Must be greater than 0 and at most 100"
                continue

            parsed.append({
                "level": level,
                "percentage": percentage,
                "is_active": bool(item.get("isActive", True)),
                "description": item.get("description"),
            })

        if errors:
            raise ValidationError(errors)

        active = sorted(p["level"] for p in parsed if p["is_active"])
        if active != list(range(1, len(active) + 1)):
            raise ValidationError({"levels": "Active levels must be contiguous starting at level 1"})

        total = sum((p["percentage"] for p in parsed if p["is_active"]), Decimal("0"))
        if total > Decimal("100"):
            raise ValidationError({"levels": f"Total active percentage {total}% exceeds 100%"})

        return parsed

    @staticmethod
    def replace_levels(session, raw_levels) -> List[CommissionSetting]:
        """Upsert the given levels; levels not listed are deactivated. Caller commits."""
        parsed = CommissionConfigHelper.parse_levels(raw_levels)
        existing = {s.level: s for s in session.query(CommissionSetting).all()}
        listed = set()

        for item in parsed:
            setting = existing.get(item["level"])
            if setting is None:
                setting = CommissionSetting(level=item["level"])
                session.add(setting)
            setting.percentage = item["percentage"]
            setting.is_active = item["is_active"]
            setting.description = item["description"] or setting.description or f"Level {item['level']}"
            listed.add(item["level"])

        for level, setting in existing.items():
            if level not in listed:
                setting.is_active = False

        session.flush()
        return session.query(CommissionSetting).order_by(CommissionSetting.level.asc()).all()

    @staticmethod
    def seed_defaults(session) -> int:
        """Create the default five levels when no settings exist yet"""
        if session.query(CommissionSetting).count():
            return 0
        for level, percentage, description in CommissionConfigHelper.DEFAULT_LEVELS:
            session.add(CommissionSetting(level=level, percentage=percentage, description=description))
        return len(CommissionConfigHelper.DEFAULT_LEVELS)

    @staticmethod
    def get_distribution_summary(session) -> Dict[str, Any]:
        levels = CommissionConfigHelper.get_active_levels(session)
        total = sum((l.percentage for l in levels), Decimal("0"))
        return {
            "levels": [{"level": l.level, "percentage": float(l.percentage)} for l in levels],
            "totalPercentage": float(total),
            "maxLevels": CommissionConfigHelper.max_levels(),
        }

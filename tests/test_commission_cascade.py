from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from commission.cascade import (
    CommissionCascade, CommissionPayoutProcessor, distribute_commissions,
)
from commission.config import CommissionConfigHelper
from commission.referral_chain import ReferralChainHelper
from extensions import db
from models import (
    CommissionPayout, Investment, InvestmentPlan, PayoutStatus, ReferralCommission,
    Transaction, TransactionType, User,
)
from notifications import NotificationEvent
from wallet import WalletManager


def _investment(user_id, amount="1000"):
    """Committed investment row to hang ledger entries off."""
    plan = InvestmentPlan.query.filter_by(name=f"Plan {amount}").first()
    if plan is None:
        plan = InvestmentPlan(name=f"Plan {amount}", amount=Decimal(amount), daily_roi=Decimal("15"), duration=30)
        db.session.add(plan)
        db.session.flush()
    now = datetime.now(timezone.utc)
    investment = Investment(
        user_id=user_id, plan_id=plan.id, amount=Decimal(amount), daily_roi=plan.daily_roi,
        total_days=30, remaining_days=30, start_date=now, end_date=now + timedelta(days=30),
    )
    db.session.add(investment)
    db.session.commit()
    return investment.id


def _chain(make_user, length):
    """root <- u1 <- u2 ... ; returns ids ordered from root down"""
    ids = [make_user(name="Root")]
    for _ in range(length - 1):
        parent = db.session.get(User, ids[-1])
        ids.append(make_user(referred_by=parent.referral_code))
    return ids


def _balance(user_id):
    db.session.expire_all()
    return Decimal(str(db.session.get(User, user_id).wallet_balance))


def _code(user_id):
    return db.session.get(User, user_id).referral_code


# ----------------------------------------------------------------------------------
# amounts
# ----------------------------------------------------------------------------------
def test_calculate_rounds_half_up_to_cents():
    assert CommissionCascade.calculate(Decimal("1000"), Decimal("10")) == Decimal("100.00")
    assert CommissionCascade.calculate(Decimal("33.33"), Decimal("3")) == Decimal("1.00")
    assert CommissionCascade.calculate(Decimal("0.50"), Decimal("1")) == Decimal("0.01")


# ----------------------------------------------------------------------------------
# cascade over a referral chain
# ----------------------------------------------------------------------------------
def test_full_chain_pays_five_levels_and_stops(ctx, make_user, commission_levels, notifications):
    ids = _chain(make_user, 7)  # root + 6 descendants
    investor = ids[-1]
    investment_id = _investment(investor)
    immediate = db.session.get(User, investor).referred_by

    result = distribute_commissions(investor, immediate, Decimal("1000"), investment_id)

    assert result.error is None
    assert [(e.level, e.user_id) for e in result.entries] == [
        (1, ids[5]), (2, ids[4]), (3, ids[3]), (4, ids[2]), (5, ids[1]),
    ]
    assert [_balance(uid) for uid in ids[1:6]] == [
        Decimal("10.00"), Decimal("20.00"), Decimal("30.00"), Decimal("50.00"), Decimal("100.00"),
    ]
    # sixth ancestor is beyond the configured levels
    assert _balance(ids[0]) == Decimal("0.00")
    assert db.session.get(User, ids[5]).total_earnings == Decimal("100.00")

    referral_txs = Transaction.query.filter_by(type=TransactionType.REFERRAL.value).all()
    assert len(referral_txs) == 5
    assert {t.description for t in referral_txs} == {f"Level {n} referral commission" for n in range(1, 6)}

    credited = [n for n in notifications if n[1] == NotificationEvent.COMMISSION_CREDITED]
    assert len(credited) == 5


def test_short_chain_pays_only_existing_ancestors(ctx, make_user, commission_levels):
    ids = _chain(make_user, 3)
    investor = ids[-1]
    investment_id = _investment(investor)

    result = distribute_commissions(investor, _code(ids[1]), Decimal("1000"), investment_id)

    assert result.error is None
    assert len(result.entries) == 2
    assert ReferralCommission.query.count() == 2
    assert _balance(ids[1]) == Decimal("100.00")
    assert _balance(ids[0]) == Decimal("50.00")


def test_unresolved_referral_code_creates_nothing(ctx, make_user, commission_levels):
    investor = make_user()
    investment_id = _investment(investor)

    result = distribute_commissions(investor, "NOPE0000", Decimal("1000"), investment_id)

    assert result.entries == []
    assert result.error is None
    assert ReferralCommission.query.count() == 0


def test_missing_referral_code_creates_nothing(ctx, make_user, commission_levels):
    investor = make_user()
    investment_id = _investment(investor)

    result = distribute_commissions(investor, None, Decimal("1000"), investment_id)

    assert result.entries == []
    assert ReferralCommission.query.count() == 0


def test_no_active_levels_pays_nothing(ctx, make_user):
    parent = make_user()
    investor = make_user(referred_by=_code(parent))
    investment_id = _investment(investor)

    result = distribute_commissions(investor, _code(parent), Decimal("1000"), investment_id)

    assert result.entries == []
    assert _balance(parent) == Decimal("0.00")


def test_cycle_in_referral_links_stops_walk(ctx, make_user, commission_levels):
    a = make_user()
    b = make_user(referred_by=_code(a))
    # malformed back-reference: a points back at b
    db.session.get(User, a).referred_by = _code(b)
    db.session.commit()
    investor = make_user(referred_by=_code(b))
    investment_id = _investment(investor)

    result = distribute_commissions(investor, _code(b), Decimal("1000"), investment_id)

    assert [(e.level, e.user_id) for e in result.entries] == [(1, b), (2, a)]


def test_self_referral_pays_nothing(ctx, make_user, commission_levels):
    investor = make_user()
    user = db.session.get(User, investor)
    user.referred_by = user.referral_code
    db.session.commit()
    investment_id = _investment(investor)

    result = distribute_commissions(investor, _code(investor), Decimal("1000"), investment_id)

    assert result.entries == []
    assert _balance(investor) == Decimal("0.00")


def test_deactivated_level_shortens_cascade(ctx, make_user, commission_levels):
    CommissionConfigHelper.replace_levels(db.session, [
        {"level": 1, "percentage": 10},
        {"level": 2, "percentage": 5},
        {"level": 3, "percentage": 3},
    ])
    db.session.commit()
    ids = _chain(make_user, 6)
    investor = ids[-1]
    investment_id = _investment(investor)

    result = distribute_commissions(investor, _code(ids[-2]), Decimal("1000"), investment_id)

    assert len(result.entries) == 3
    assert _balance(ids[1]) == Decimal("0.00")


def test_storage_failure_is_swallowed_and_rolled_back(ctx, make_user, commission_levels, monkeypatch):
    ids = _chain(make_user, 4)
    investor = ids[-1]
    investment_id = _investment(investor)

    original = WalletManager.credit
    calls = {"n": 0}

    def flaky_credit(session, user_id, amount, count_as_earnings=False):
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("ledger store unavailable")
        return original(session, user_id, amount, count_as_earnings=count_as_earnings)

    monkeypatch.setattr(WalletManager, "credit", flaky_credit)

    result = distribute_commissions(investor, _code(ids[-2]), Decimal("1000"), investment_id)

    assert result.entries == []
    assert "ledger store unavailable" in result.error
    assert ReferralCommission.query.count() == 0
    assert _balance(ids[-2]) == Decimal("0.00")


def test_second_cascade_for_same_investment_is_refused(ctx, make_user, commission_levels):
    root, parent, investor = _chain(make_user, 3)
    investment_id = _investment(investor)

    first = distribute_commissions(investor, _code(parent), Decimal("1000"), investment_id)
    second = distribute_commissions(investor, _code(parent), Decimal("1000"), investment_id)

    assert first.error is None
    assert [e.level for e in first.entries] == [1, 2]
    assert second.entries == []
    assert second.error is not None
    assert sorted(
        (c.level, c.user_id) for c in ReferralCommission.query.filter_by(investment_id=investment_id)
    ) == [(1, parent), (2, root)]
    assert _balance(parent) == Decimal("100.00")
    assert _balance(root) == Decimal("50.00")
    assert Transaction.query.filter_by(type=TransactionType.REFERRAL.value).count() == 2


# ----------------------------------------------------------------------------------
# outbox processing
# ----------------------------------------------------------------------------------
def _enqueue(investor_id, amount="1000"):
    investment_id = _investment(investor_id, amount)
    investment = db.session.get(Investment, investment_id)
    payout = CommissionPayoutProcessor.enqueue(db.session, investment, db.session.get(User, investor_id))
    db.session.commit()
    return payout.id


def test_enqueue_skips_investor_without_referrer(ctx, make_user):
    investor = make_user()
    investment = db.session.get(Investment, _investment(investor))

    assert CommissionPayoutProcessor.enqueue(db.session, investment, db.session.get(User, investor)) is None


def test_failed_payout_is_recorded_and_retry_completes_it(ctx, make_user, commission_levels, monkeypatch):
    ids = _chain(make_user, 3)
    payout_id = _enqueue(ids[-1])

    def broken_credit(session, user_id, amount, count_as_earnings=False):
        raise RuntimeError("deadlock detected")

    monkeypatch.setattr(WalletManager, "credit", broken_credit)
    assert CommissionPayoutProcessor.process(payout_id) is False

    payout = db.session.get(CommissionPayout, payout_id)
    assert payout.status == PayoutStatus.FAILED.value
    assert payout.attempt_count == 1
    assert "deadlock detected" in payout.last_error

    monkeypatch.undo()
    stats = CommissionPayoutProcessor.retry_failed()

    assert stats == {"processed": 1, "succeeded": 1, "failed": 0}
    db.session.expire_all()
    payout = db.session.get(CommissionPayout, payout_id)
    assert payout.status == PayoutStatus.COMPLETED.value
    assert payout.attempt_count == 2
    assert payout.levels_paid == 2
    assert payout.last_error is None
    assert _balance(ids[1]) == Decimal("100.00")


def test_completed_payout_is_not_paid_twice(ctx, make_user, commission_levels):
    ids = _chain(make_user, 2)
    payout_id = _enqueue(ids[-1])

    assert CommissionPayoutProcessor.process(payout_id) is True
    assert CommissionPayoutProcessor.process(payout_id) is True

    assert ReferralCommission.query.count() == 1
    assert _balance(ids[0]) == Decimal("100.00")


def test_process_unknown_payout_returns_false(ctx):
    assert CommissionPayoutProcessor.process(9999) is False


# ----------------------------------------------------------------------------------
# referral chain helpers
# ----------------------------------------------------------------------------------
def test_upline_and_downline_counts(ctx, make_user):
    root = make_user()
    a = make_user(referred_by=_code(root))
    make_user(referred_by=_code(root))
    c = make_user(referred_by=_code(a))

    upline = ReferralChainHelper.get_upline(db.session, db.session.get(User, c), 5)
    assert [(u["level"], u["id"]) for u in upline] == [(1, a), (2, root)]

    counts = ReferralChainHelper.get_downline_counts(db.session, db.session.get(User, root), 5)
    assert counts == {1: 2, 2: 1}


def test_upline_respects_max_levels(ctx, make_user):
    ids = _chain(make_user, 5)

    upline = ReferralChainHelper.get_upline(db.session, db.session.get(User, ids[-1]), 2)

    assert [u["id"] for u in upline] == [ids[3], ids[2]]


@pytest.mark.parametrize("levels, message_key", [
    ([{"level": 1, "percentage": 10}, {"level": 3, "percentage": 5}], "levels"),
    ([{"level": 1, "percentage": 60}, {"level": 2, "percentage": 50}], "levels"),
    ([{"level": 1, "percentage": 0}], "levels[0].percentage"),
    ([{"level": 21, "percentage": 1}], "levels[0].level"),
    ([], "levels"),
])
def test_parse_levels_rejects_bad_configuration(ctx, levels, message_key):
    from errors import ValidationError

    with pytest.raises(ValidationError) as exc:
        CommissionConfigHelper.parse_levels(levels)
    assert message_key in exc.value.fields

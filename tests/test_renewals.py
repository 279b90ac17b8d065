"""Tests for policy renewals."""

from datetime import date
from decimal import Decimal

import pytest

from src.errors import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from src.integrations.contracts.interfaces import ActivityType, EntityType, RenewalStatus


@pytest.fixture
def active_policy(issue_offer, services, broker):
    def _issue(**overrides):
        return services.offers.convert_to_policy(broker, issue_offer(**overrides).id, "CARD_ONLINE").policy

    return _issue


def _activity_types(db, policy_id):
    return [e.activity_type for e in db.list_activity_logs(EntityType.POLICY, policy_id)]


def test_renewal_defaults_to_day_after_end(active_policy, services, broker):
    policy = active_policy()
    renewal = services.renewals.create(broker, policy.id, "215.505")
    assert renewal.status == RenewalStatus.PENDING
    assert renewal.renewal_date == date(2026, 7, 1)
    assert renewal.previous_premium == Decimal("200.00")
    assert renewal.new_premium == Decimal("215.51")
    assert renewal.policy_number == policy.policy_number
    assert renewal.broker_id == 1


def test_one_pending_renewal_per_policy(active_policy, services, broker):
    policy = active_policy()
    first = services.renewals.create(broker, policy.id, 210, date(2026, 6, 15))
    assert first.renewal_date == date(2026, 6, 15)
    with pytest.raises(InvalidStateError):
        services.renewals.create(broker, policy.id, 220)

    services.renewals.decline(broker, first.id)
    assert services.renewals.create(broker, policy.id, 220).status == RenewalStatus.PENDING


def test_renewal_needs_a_premium(active_policy, services, broker):
    with pytest.raises(ValidationError) as exc:
        services.renewals.create(broker, active_policy().id, None)
    assert "new_premium" in exc.value.field_errors


def test_unpaid_and_cancelled_policies_cannot_be_renewed(issue_offer, active_policy, services, broker, admin):
    unpaid = services.offers.convert_to_policy(broker, issue_offer().id, "BANK_TRANSFER").policy
    with pytest.raises(InvalidStateError):
        services.renewals.create(broker, unpaid.id, 200)

    cancelled = active_policy()
    services.policies.cancel(admin, cancelled.id, "Client request")
    with pytest.raises(InvalidStateError):
        services.renewals.create(broker, cancelled.id, 200)


def test_expired_policy_can_be_renewed(active_policy, services, broker, clock):
    policy = active_policy()
    clock.advance(days=400)
    renewal = services.renewals.create(broker, policy.id, 230)
    assert renewal.status == RenewalStatus.PENDING


def test_complete_links_replacement_and_logs_renewal(active_policy, services, broker, db):
    policy = active_policy()
    replacement = active_policy(start_date=date(2026, 7, 1), end_date=date(2027, 6, 30))
    renewal = services.renewals.create(broker, policy.id, 210)

    completed = services.renewals.complete(broker, renewal.id, replacement.id)
    assert completed.status == RenewalStatus.COMPLETED
    assert completed.new_policy_id == replacement.id
    assert _activity_types(db, policy.id)[-1] == ActivityType.POLICY_RENEWED

    with pytest.raises(InvalidStateError):
        services.renewals.complete(broker, renewal.id)
    with pytest.raises(InvalidStateError):
        services.renewals.decline(broker, renewal.id)
    assert _activity_types(db, policy.id).count(ActivityType.POLICY_RENEWED) == 1


def test_complete_refuses_unrelated_replacement(active_policy, issue_offer, services, broker, admin, db):
    policy = active_policy()
    renewal = services.renewals.create(broker, policy.id, 210)

    with pytest.raises(ValidationError) as exc:
        services.renewals.complete(broker, renewal.id, policy.id)
    assert "new_policy_id" in exc.value.field_errors

    foreign_offer = issue_offer(actor=admin, client_id=2, broker_id=2)
    foreign = services.offers.convert_to_policy(admin, foreign_offer.id, "CARD_ONLINE").policy
    with pytest.raises(ValidationError):
        services.renewals.complete(admin, renewal.id, foreign.id)
    assert db.get_renewal(renewal.id).status == RenewalStatus.PENDING


def test_renewals_are_scoped_to_broker(active_policy, services, broker, other_broker, manager, admin):
    renewal = services.renewals.create(broker, active_policy().id, 210)
    assert services.renewals.list_visible(other_broker) == []
    assert services.renewals.list_visible(manager) == []
    assert [r.id for r in services.renewals.list_visible(admin)] == [renewal.id]
    with pytest.raises(PermissionDeniedError):
        services.renewals.get(other_broker, renewal.id)
    with pytest.raises(PermissionDeniedError):
        services.renewals.decline(other_broker, renewal.id)


def test_only_managers_delete_renewals(active_policy, services, broker, admin):
    renewal = services.renewals.create(broker, active_policy().id, 210)
    with pytest.raises(PermissionDeniedError):
        services.renewals.delete(broker, renewal.id)

    services.renewals.delete(admin, renewal.id)
    with pytest.raises(NotFoundError):
        services.renewals.get(admin, renewal.id)

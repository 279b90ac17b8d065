"""Tests for the policy payment lifecycle."""

import pytest

from src.errors import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from src.integrations.contracts.interfaces import (
    ActivityType,
    ActorContext,
    EntityType,
    PaymentStatus,
    PolicyStatus,
    Role,
)

MANAGER_ALL = ActorContext(user_id=2, role=Role.BROKER_MANAGER, broker_id=3, show_all_data=True)


@pytest.fixture
def issue_policy(issue_offer, services, broker, files):
    def _issue(method="BANK_TRANSFER", proof=None):
        offer = issue_offer()
        reference = files.save(proof, b"proof") if proof else None
        return services.offers.convert_to_policy(broker, offer.id, method, reference).policy

    return _issue


def _activity_types(db, policy_id):
    return [e.activity_type for e in db.list_activity_logs(EntityType.POLICY, policy_id)]


def test_card_online_policy_is_active_without_manual_steps(issue_policy):
    policy = issue_policy("CARD_ONLINE")
    assert policy.status == PolicyStatus.ACTIVE
    assert policy.payment_status == PaymentStatus.VALIDATED
    assert policy.validated_at is not None


def test_bank_transfer_upload_then_validate(issue_policy, services, broker, db, clock):
    policy = issue_policy("BANK_TRANSFER")
    assert policy.status == PolicyStatus.AWAITING_PAYMENT

    uploaded = services.policies.upload_proof(broker, policy.id, "transfer.pdf", b"%PDF-1.4 transfer")
    assert uploaded.status == PolicyStatus.AWAITING_VALIDATION
    assert uploaded.payment_status == PaymentStatus.PENDING
    assert uploaded.proof_of_payment.endswith("_transfer.pdf")

    validated = services.policies.validate(MANAGER_ALL, policy.id)
    assert validated.status == PolicyStatus.ACTIVE
    assert validated.payment_status == PaymentStatus.VALIDATED
    assert validated.validated_by == MANAGER_ALL.user_id
    assert validated.validated_at == clock.now

    assert _activity_types(db, policy.id) == [
        ActivityType.POLICY_CREATED,
        ActivityType.PAYMENT_UPLOADED,
        ActivityType.PAYMENT_VALIDATED,
    ]


def test_validate_twice_fails_the_second_time(issue_policy, services, broker, admin, db):
    policy = issue_policy(proof="receipt.pdf")
    services.policies.validate(admin, policy.id)
    with pytest.raises(InvalidStateError):
        services.policies.validate(admin, policy.id)
    assert _activity_types(db, policy.id).count(ActivityType.PAYMENT_VALIDATED) == 1


def test_broker_cannot_validate_payment(issue_policy, services, broker):
    policy = issue_policy(proof="receipt.pdf")
    with pytest.raises(PermissionDeniedError):
        services.policies.validate(broker, policy.id)


def test_validate_requires_awaiting_validation(issue_policy, services, admin):
    policy = issue_policy("BANK_TRANSFER")
    with pytest.raises(InvalidStateError):
        services.policies.validate(admin, policy.id)


def test_rejected_payment_returns_to_awaiting_payment(issue_policy, services, broker, admin, db):
    policy = issue_policy("POS", proof="slip.jpg")
    rejected = services.policies.reject_payment(admin, policy.id, "Unreadable slip")
    assert rejected.status == PolicyStatus.AWAITING_PAYMENT
    assert rejected.payment_status == PaymentStatus.REJECTED

    entry = db.list_activity_logs(EntityType.POLICY, policy.id)[-1]
    assert entry.activity_type == ActivityType.PAYMENT_REJECTED
    assert entry.metadata == {"reason": "Unreadable slip"}

    again = services.policies.upload_proof(broker, policy.id, "slip2.jpg", b"jpeg")
    assert again.status == PolicyStatus.AWAITING_VALIDATION
    assert again.payment_status == PaymentStatus.PENDING


def test_upload_not_allowed_on_active_policy(issue_policy, services, broker):
    policy = issue_policy("CARD_ONLINE")
    with pytest.raises(InvalidStateError):
        services.policies.upload_proof(broker, policy.id, "late.pdf", b"pdf")


def test_upload_rejects_empty_and_oversized_files(issue_policy, services, broker, db):
    policy = issue_policy("BANK_TRANSFER")
    with pytest.raises(ValidationError):
        services.policies.upload_proof(broker, policy.id, "empty.pdf", b"")
    with pytest.raises(ValidationError):
        services.policies.upload_proof(broker, policy.id, "huge.pdf", b"x" * 2048)
    assert db.get_policy(policy.id).status == PolicyStatus.AWAITING_PAYMENT


def test_upload_losing_race_leaves_no_orphan_file(issue_policy, services, broker, db, files, monkeypatch):
    policy = issue_policy("BANK_TRANSFER")
    monkeypatch.setattr(db, "transition_policy", lambda *args, **kwargs: None)

    with pytest.raises(InvalidStateError):
        services.policies.upload_proof(broker, policy.id, "transfer.pdf", b"payload")
    assert list(files.root.iterdir()) == []
    assert db.get_policy(policy.id).proof_of_payment is None


def test_proof_download_returns_stored_bytes(issue_policy, services, broker):
    policy = issue_policy("BANK_TRANSFER")
    with pytest.raises(NotFoundError):
        services.policies.proof_content(broker, policy.id)

    services.policies.upload_proof(broker, policy.id, "transfer.pdf", b"payload")
    reference, content = services.policies.proof_content(broker, policy.id)
    assert reference.endswith("transfer.pdf")
    assert content == b"payload"


def test_cancel_requires_reason_and_manager(issue_policy, services, broker, admin):
    policy = issue_policy("CARD_ONLINE")
    with pytest.raises(PermissionDeniedError):
        services.policies.cancel(broker, policy.id, "Client request")
    with pytest.raises(ValidationError) as exc:
        services.policies.cancel(admin, policy.id, "   ")
    assert "cancellation_reason" in exc.value.field_errors


def test_cancel_keeps_record_and_reason(issue_policy, services, admin, db):
    policy = issue_policy("CARD_ONLINE")
    cancelled = services.policies.cancel(admin, policy.id, "Client request")
    assert cancelled.status == PolicyStatus.CANCELLED
    assert cancelled.cancellation_reason == "Client request"
    assert db.get_policy(policy.id).status == PolicyStatus.CANCELLED

    entry = db.list_activity_logs(EntityType.POLICY, policy.id)[-1]
    assert entry.activity_type == ActivityType.POLICY_CANCELLED
    assert entry.metadata["reason"] == "Client request"


def test_cancel_twice_fails_and_logs_once(issue_policy, services, admin, db):
    policy = issue_policy("BANK_TRANSFER")
    services.policies.cancel(admin, policy.id, "Duplicate")
    with pytest.raises(InvalidStateError):
        services.policies.cancel(admin, policy.id, "Duplicate")
    assert _activity_types(db, policy.id).count(ActivityType.POLICY_CANCELLED) == 1


def test_suspend_active_policy(issue_policy, services, admin):
    policy = issue_policy("CARD_ONLINE")
    assert services.policies.suspend(admin, policy.id).status == PolicyStatus.SUSPENDED
    with pytest.raises(InvalidStateError):
        services.policies.suspend(admin, policy.id)


def test_active_policy_expires_after_end_date(issue_policy, services, broker, admin, clock, db):
    policy = issue_policy("CARD_ONLINE")
    clock.advance(days=400)

    assert services.policies.get(broker, policy.id).status == PolicyStatus.EXPIRED
    assert db.get_policy(policy.id).status == PolicyStatus.EXPIRED
    assert _activity_types(db, policy.id).count(ActivityType.POLICY_EXPIRED) == 1

    with pytest.raises(InvalidStateError):
        services.policies.cancel(admin, policy.id, "Too late")


def test_unpaid_policy_does_not_expire(issue_policy, services, broker, clock):
    policy = issue_policy("BANK_TRANSFER")
    clock.advance(days=400)
    assert services.policies.get(broker, policy.id).status == PolicyStatus.AWAITING_PAYMENT


def test_policies_are_scoped_to_broker(issue_policy, services, other_broker, manager):
    policy = issue_policy("CARD_ONLINE")
    assert services.policies.list_visible(other_broker) == []
    assert services.policies.list_visible(manager) == []
    assert [p.id for p in services.policies.list_visible(MANAGER_ALL)] == [policy.id]
    with pytest.raises(PermissionDeniedError):
        services.policies.get(other_broker, policy.id)

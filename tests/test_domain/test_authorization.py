"""Tests for actor checks and the operation capability table."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from escrow_marketplace.domain.authorization import (
    OPERATION_POLICIES,
    Actor,
    authorize,
    check_feature,
    check_state,
    ensure_project_party,
    policy_for,
)
from escrow_marketplace.domain.enums import EscrowState, Role
from escrow_marketplace.domain.exceptions import (
    FailedPreconditionError,
    PermissionDeniedError,
    UnauthenticatedError,
)
from escrow_marketplace.domain.policy_config import FeatureFlags


@dataclass
class Parties:
    customer_id: str
    contractor_id: str | None


class TestAuthorize:
    def test_anonymous_rejected(self) -> None:
        with pytest.raises(UnauthenticatedError):
            authorize(None, "create_project")

    def test_blank_uid_rejected(self) -> None:
        with pytest.raises(UnauthenticatedError):
            authorize(Actor("", Role.CUSTOMER), "create_project")

    def test_wrong_role_rejected(self) -> None:
        with pytest.raises(PermissionDeniedError):
            authorize(Actor("pro-1", Role.CONTRACTOR), "create_project")

    def test_unverified_admin_rejected(self) -> None:
        with pytest.raises(PermissionDeniedError, match="not verified"):
            authorize(Actor("admin-1", Role.ADMIN), "close_project")

    def test_verified_admin_allowed(self) -> None:
        actor = Actor("admin-1", Role.ADMIN, admin_verified=True)
        assert authorize(actor, "close_project") is actor

    def test_unknown_operation(self) -> None:
        with pytest.raises(ValueError, match="Unknown operation"):
            policy_for("launch_rocket")


class TestProjectParty:
    def test_customer_and_contractor_are_parties(self) -> None:
        project = Parties("cust-1", "pro-1")
        ensure_project_party(Actor("cust-1", Role.CUSTOMER), project)
        ensure_project_party(Actor("pro-1", Role.CONTRACTOR), project)

    def test_stranger_rejected(self) -> None:
        with pytest.raises(PermissionDeniedError):
            ensure_project_party(Actor("pro-2", Role.CONTRACTOR), Parties("cust-1", "pro-1"))

    def test_admin_always_passes(self) -> None:
        ensure_project_party(Actor("admin-1", Role.ADMIN, True), Parties("cust-1", None))


class TestChecks:
    def test_state_outside_policy_rejected(self) -> None:
        with pytest.raises(FailedPreconditionError):
            check_state("fund_hold", EscrowState.DRAFT)

    def test_stateless_operation_accepts_any_state(self) -> None:
        check_state("create_estimate_deposit", EscrowState.CLOSED)

    def test_disabled_feature(self) -> None:
        with pytest.raises(FailedPreconditionError) as exc_info:
            check_feature("create_milestones", FeatureFlags())
        assert exc_info.value.code == "FEATURE_DISABLED"

    def test_enabled_feature(self) -> None:
        check_feature("create_milestones", FeatureFlags(milestone_payments_enabled=True))

    def test_every_flag_name_exists(self) -> None:
        fields = set(FeatureFlags.model_fields)
        for policy in OPERATION_POLICIES.values():
            if policy.feature_flag is not None:
                assert policy.feature_flag in fields

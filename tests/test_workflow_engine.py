"""Unit tests for the mission approval engine.

Stage ordering, role gating, rejection rules, owner-only draft actions,
payment and progress computation. Pure decision logic, no database.
"""

from types import SimpleNamespace

import pytest

from app.core.exceptions import AuthorizationError, InvalidStateError, MissionValidationError
from app.workflow import engine
from app.workflow.engine import Actor, MissionStatus, Role, SignatureAction


def _make_actor(*roles: Role, user_id: int = 1) -> Actor:
    return Actor(user_id=user_id, roles=frozenset(roles))


def _make_signature(role: str, action: str = "approved") -> SimpleNamespace:
    return SimpleNamespace(signer_role=role, action=action)


NON_PENDING = [
    MissionStatus.DRAFT,
    MissionStatus.APPROVED,
    MissionStatus.REJECTED,
    MissionStatus.PAID,
]


# ===================================================================
# Approval chain
# ===================================================================

class TestApprovalChain:
    def test_chain_order_and_roles(self) -> None:
        assert [(s.status, s.required_role) for s in engine.APPROVAL_CHAIN] == [
            (MissionStatus.PENDING_SERVICE, Role.CHEF_SERVICE),
            (MissionStatus.PENDING_DIRECTOR, Role.DIRECTEUR),
            (MissionStatus.PENDING_FINANCE, Role.FINANCE),
        ]

    def test_next_status_walks_the_chain(self) -> None:
        assert engine.next_status(MissionStatus.PENDING_SERVICE) == MissionStatus.PENDING_DIRECTOR
        assert engine.next_status(MissionStatus.PENDING_DIRECTOR) == MissionStatus.PENDING_FINANCE
        assert engine.next_status(MissionStatus.PENDING_FINANCE) == MissionStatus.APPROVED

    @pytest.mark.parametrize("status", NON_PENDING)
    def test_next_status_outside_chain_fails(self, status) -> None:
        with pytest.raises(InvalidStateError):
            engine.next_status(status)

    def test_accepts_plain_strings(self) -> None:
        assert engine.required_role("pending_director") == Role.DIRECTEUR
        assert engine.required_role("draft") is None


# ===================================================================
# Authorization predicate
# ===================================================================

class TestCanAct:
    @pytest.mark.parametrize("stage", engine.APPROVAL_CHAIN, ids=lambda s: s.status.value)
    def test_only_stage_role_can_act(self, stage) -> None:
        for role in Role:
            expected = role == stage.required_role
            assert engine.can_act(_make_actor(role), stage.status) is expected

    @pytest.mark.parametrize("status", NON_PENDING)
    def test_nobody_acts_outside_pending_stages(self, status) -> None:
        everyone = _make_actor(*Role)
        assert engine.can_act(everyone, status) is False

    def test_multiple_roles_are_a_set(self) -> None:
        actor = _make_actor(Role.AGENT, Role.FINANCE)
        assert engine.can_act(actor, MissionStatus.PENDING_FINANCE)
        assert not engine.can_act(actor, MissionStatus.PENDING_SERVICE)


# ===================================================================
# Approve
# ===================================================================

class TestApprove:
    def test_chef_service_approves_first_stage(self) -> None:
        decision = engine.approve(MissionStatus.PENDING_SERVICE, _make_actor(Role.CHEF_SERVICE), "ok")
        assert decision.from_status == MissionStatus.PENDING_SERVICE
        assert decision.to_status == MissionStatus.PENDING_DIRECTOR
        assert decision.action == SignatureAction.APPROVED
        assert decision.signer_role == Role.CHEF_SERVICE
        assert decision.comment == "ok"
        assert decision.requires_signature

    def test_finance_approval_is_final(self) -> None:
        decision = engine.approve(MissionStatus.PENDING_FINANCE, _make_actor(Role.FINANCE))
        assert decision.to_status == MissionStatus.APPROVED
        assert decision.rejection_reason is None

    def test_signature_role_is_the_stage_role(self) -> None:
        # Cumul chef_service + directeur: la signature porte le rôle de l'étape courante
        actor = _make_actor(Role.CHEF_SERVICE, Role.DIRECTEUR)
        decision = engine.approve(MissionStatus.PENDING_DIRECTOR, actor)
        assert decision.signer_role == Role.DIRECTEUR

    def test_wrong_role_is_refused(self) -> None:
        with pytest.raises(AuthorizationError) as exc:
            engine.approve(MissionStatus.PENDING_DIRECTOR, _make_actor(Role.CHEF_SERVICE))
        assert exc.value.status_code == 403

    def test_admin_cannot_approve(self) -> None:
        with pytest.raises(AuthorizationError):
            engine.approve(MissionStatus.PENDING_FINANCE, _make_actor(Role.ADMIN))

    @pytest.mark.parametrize("status", NON_PENDING)
    def test_outside_pending_stage_is_invalid(self, status) -> None:
        with pytest.raises(InvalidStateError) as exc:
            engine.approve(status, _make_actor(*Role))
        assert exc.value.status_code == 400

    def test_blank_comment_is_dropped(self) -> None:
        decision = engine.approve(MissionStatus.PENDING_SERVICE, _make_actor(Role.CHEF_SERVICE), "   ")
        assert decision.comment is None


# ===================================================================
# Reject
# ===================================================================

class TestReject:
    @pytest.mark.parametrize("stage", engine.APPROVAL_CHAIN, ids=lambda s: s.status.value)
    def test_reject_at_any_stage(self, stage) -> None:
        decision = engine.reject(stage.status, _make_actor(stage.required_role), "budget insufficient")
        assert decision.to_status == MissionStatus.REJECTED
        assert decision.action == SignatureAction.REJECTED
        assert decision.signer_role == stage.required_role
        assert decision.rejection_reason == "budget insufficient"
        assert decision.comment == "budget insufficient"

    @pytest.mark.parametrize("comment", [None, "", "   \n"])
    def test_reason_is_mandatory(self, comment) -> None:
        with pytest.raises(MissionValidationError) as exc:
            engine.reject(MissionStatus.PENDING_SERVICE, _make_actor(Role.CHEF_SERVICE), comment)
        assert exc.value.status_code == 422
        assert exc.value.detail == "Veuillez fournir un motif de rejet"

    def test_reason_is_trimmed(self) -> None:
        decision = engine.reject(MissionStatus.PENDING_FINANCE, _make_actor(Role.FINANCE), "  hors budget  ")
        assert decision.rejection_reason == "hors budget"

    def test_authorization_checked_before_reason(self) -> None:
        with pytest.raises(AuthorizationError):
            engine.reject(MissionStatus.PENDING_SERVICE, _make_actor(Role.FINANCE), "")

    def test_rejected_is_terminal(self) -> None:
        with pytest.raises(InvalidStateError):
            engine.reject(MissionStatus.REJECTED, _make_actor(*Role), "encore")


# ===================================================================
# Owner-only draft actions
# ===================================================================

class TestOwnerDraftActions:
    def test_owner_can_delete_draft(self) -> None:
        owner = _make_actor(Role.AGENT, user_id=7)
        assert engine.can_delete(owner, MissionStatus.DRAFT, owner_id=7)
        engine.ensure_can_delete(owner, MissionStatus.DRAFT, owner_id=7)

    @pytest.mark.parametrize("status", [s for s in MissionStatus if s != MissionStatus.DRAFT])
    def test_owner_cannot_delete_after_submission(self, status) -> None:
        owner = _make_actor(Role.AGENT, user_id=7)
        assert not engine.can_delete(owner, status, owner_id=7)
        with pytest.raises(InvalidStateError) as exc:
            engine.ensure_can_delete(owner, status, owner_id=7)
        assert exc.value.detail == "Seuls les bons en brouillon peuvent être supprimés"

    def test_other_user_cannot_delete(self) -> None:
        other = _make_actor(*Role, user_id=8)
        assert not engine.can_delete(other, MissionStatus.DRAFT, owner_id=7)
        with pytest.raises(AuthorizationError):
            engine.ensure_can_delete(other, MissionStatus.DRAFT, owner_id=7)

    def test_edit_follows_the_same_rule(self) -> None:
        owner = _make_actor(Role.AGENT, user_id=7)
        engine.ensure_can_edit(owner, "draft", owner_id=7)
        with pytest.raises(InvalidStateError) as exc:
            engine.ensure_can_edit(owner, "pending_service", owner_id=7)
        assert exc.value.detail == "Seuls les bons en brouillon peuvent être modifiés"

    def test_submit_enters_first_stage_without_signature(self) -> None:
        owner = _make_actor(Role.AGENT, user_id=7)
        decision = engine.submit(MissionStatus.DRAFT, owner, owner_id=7)
        assert decision.to_status == MissionStatus.PENDING_SERVICE
        assert not decision.requires_signature

    def test_submit_twice_is_invalid(self) -> None:
        owner = _make_actor(Role.AGENT, user_id=7)
        with pytest.raises(InvalidStateError):
            engine.submit(MissionStatus.PENDING_SERVICE, owner, owner_id=7)

    def test_only_owner_submits(self) -> None:
        with pytest.raises(AuthorizationError):
            engine.submit(MissionStatus.DRAFT, _make_actor(Role.AGENT, user_id=8), owner_id=7)


# ===================================================================
# Payment, document, progress
# ===================================================================

class TestPayment:
    @pytest.mark.parametrize("role", [Role.FINANCE, Role.ADMIN])
    def test_finance_or_admin_marks_paid(self, role) -> None:
        decision = engine.record_payment(MissionStatus.APPROVED, _make_actor(role))
        assert decision.to_status == MissionStatus.PAID
        assert not decision.requires_signature

    def test_other_roles_refused(self) -> None:
        with pytest.raises(AuthorizationError):
            engine.record_payment(MissionStatus.APPROVED, _make_actor(Role.DIRECTEUR, Role.AGENT))

    @pytest.mark.parametrize("status", [s for s in MissionStatus if s != MissionStatus.APPROVED])
    def test_only_approved_can_be_paid(self, status) -> None:
        with pytest.raises(InvalidStateError):
            engine.record_payment(status, _make_actor(Role.FINANCE))


class TestDocument:
    def test_not_available_while_draft(self) -> None:
        assert not engine.can_generate_document(MissionStatus.DRAFT)

    @pytest.mark.parametrize("status", [s for s in MissionStatus if s != MissionStatus.DRAFT])
    def test_available_once_submitted(self, status) -> None:
        assert engine.can_generate_document(status)


class TestWorkflowProgress:
    def test_fresh_submission(self) -> None:
        progress = engine.workflow_progress(MissionStatus.PENDING_SERVICE, [])
        assert [p.state for p in progress] == ["current", "upcoming", "upcoming"]

    def test_after_first_approval(self) -> None:
        signatures = [_make_signature("chef_service")]
        progress = engine.workflow_progress(MissionStatus.PENDING_DIRECTOR, signatures)
        assert [p.state for p in progress] == ["completed", "current", "upcoming"]
        assert progress[0].signature is signatures[0]

    def test_fully_approved(self) -> None:
        signatures = [_make_signature(r) for r in ("chef_service", "directeur", "finance")]
        progress = engine.workflow_progress(MissionStatus.APPROVED, signatures)
        assert all(p.state == "completed" for p in progress)

    def test_rejection_stops_progress(self) -> None:
        signatures = [_make_signature("chef_service"), _make_signature("directeur", "rejected")]
        progress = engine.workflow_progress(MissionStatus.REJECTED, signatures)
        assert [p.state for p in progress] == ["completed", "rejected", "upcoming"]
        assert progress[1].signature.action == "rejected"

    def test_rejection_at_first_stage(self) -> None:
        signatures = [_make_signature("chef_service", "rejected")]
        progress = engine.workflow_progress(MissionStatus.REJECTED, signatures)
        assert [p.state for p in progress] == ["rejected", "upcoming", "upcoming"]


class TestActor:
    def test_from_role_names(self) -> None:
        actor = Actor.from_role_names(3, ["agent", "finance"])
        assert actor.roles == frozenset({Role.AGENT, Role.FINANCE})
        assert actor.has_role(Role.FINANCE)
        assert not actor.has_any_role([Role.ADMIN, Role.DIRECTEUR])

    def test_unknown_role_names_are_ignored(self) -> None:
        actor = Actor.from_role_names(3, ["superuser", "chef_service"])
        assert actor.roles == frozenset({Role.CHEF_SERVICE})
        assert Actor.from_role_names(3, ["superuser"]).roles == frozenset()

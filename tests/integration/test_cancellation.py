"""Integration tests for the cancellation workflow against the database"""

import threading
import uuid
import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy.orm import Session
from placement_lifecycle.domain.exceptions import (
    ClientNotFoundError,
    IllegalCancellation,
    InvalidTransition,
    MixedCurrencyUnsupported,
)
from placement_lifecycle.domain.models import (
    ApplicationStatus,
    ApplicationType,
    CancellationType,
    CandidateFlags,
    NextAction,
)
from placement_lifecycle.infrastructure.database.models import (
    Application,
    Candidate,
    Cost,
    DocumentChecklistItem,
    LedgerAdjustment,
    LifecycleEvent,
    Payment,
)
from placement_lifecycle.services.cancellation import CancellationOptionsResolver, CancellationProcessor
from placement_lifecycle.services.status import StatusService

COMPANY_ID = "company-1"
ACTOR = "office-user-1"


def cancel(db, application, cancellation_type, **kwargs):
    values = {
        "reason": "test",
        "flags": CandidateFlags(),
        "next_action": None,
        "overrides": None,
        "notes": None,
        "performed_by": ACTOR,
    }
    values.update(kwargs)
    return CancellationProcessor(db).process(COMPANY_ID, application.id, cancellation_type, **values)


def test_options_resolved_from_database(db, make_application, make_setting):
    make_setting("pre_arrival")
    application = make_application()

    options = CancellationOptionsResolver(db).resolve(COMPANY_ID, application.id, CandidateFlags())

    assert options.available_types == [CancellationType.PRE_ARRIVAL, CancellationType.CANDIDATE_CANCELLATION]
    assert options.refund_estimate.final_refund == Decimal("400.00")


def test_terminal_application_rejects_everything(db, make_application):
    """Test a cancelled application refuses further cancels and advances without mutation"""
    application = make_application(status=ApplicationStatus.CANCELLED_CANDIDATE)

    with pytest.raises(IllegalCancellation):
        cancel(db, application, CancellationType.CANDIDATE_CANCELLATION)
    with pytest.raises(InvalidTransition):
        StatusService(db).advance(COMPANY_ID, application.id, ApplicationStatus.PENDING_MOL, {}, ACTOR)

    db.expire_all()
    assert application.status == "CANCELLED_CANDIDATE"
    assert db.query(LifecycleEvent).count() == 0
    assert db.query(LedgerAdjustment).count() == 0


def test_concurrent_cancellations_single_winner(db, make_application, make_setting):
    """Test two concurrent cancels with different types: exactly one commits"""
    make_setting("pre_arrival")
    make_setting("candidate_cancellation")
    application = make_application(status=ApplicationStatus.VISA_PROCESSING)
    application_id = application.id

    outcomes = []
    barrier = threading.Barrier(2)

    def worker(cancellation_type):
        session = Session(bind=db.get_bind())
        try:
            barrier.wait()
            CancellationProcessor(session).process(
                COMPANY_ID,
                application_id,
                cancellation_type,
                "race",
                CandidateFlags(),
                None,
                None,
                None,
                ACTOR,
            )
            outcomes.append("ok")
        except IllegalCancellation:
            outcomes.append("illegal")
        finally:
            session.close()

    threads = [
        threading.Thread(target=worker, args=(CancellationType.PRE_ARRIVAL,)),
        threading.Thread(target=worker, args=(CancellationType.CANDIDATE_CANCELLATION,)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["illegal", "ok"]
    db.expire_all()
    assert db.query(LifecycleEvent).filter(LifecycleEvent.application_id == application_id).count() == 1
    assert db.query(LedgerAdjustment).filter(LedgerAdjustment.application_id == application_id).count() == 1
    assert application.status in ("CANCELLED_PRE_ARRIVAL", "CANCELLED_CANDIDATE")


def test_missing_policy_refunds_nothing(db, make_application):
    application = make_application()

    result = cancel(db, application, CancellationType.CANDIDATE_CANCELLATION)

    assert result.new_status == ApplicationStatus.CANCELLED_CANDIDATE
    assert result.refund.final_refund == Decimal("0.00")
    assert db.query(LedgerAdjustment).count() == 0
    event = db.query(LifecycleEvent).one()
    assert event.financial_impact["description"] == "candidate_cancellation cancellation without refund"


def test_keep_waiting_after_arrival(db, make_application, make_setting):
    make_setting("post_arrival_after_3_months", penalty_fee=Decimal("0"), monthly_service_fee=Decimal("10"))
    application = make_application(status=ApplicationStatus.ACTIVE_EMPLOYMENT, exact_arrival_date=date(2024, 1, 1))

    result = cancel(
        db,
        application,
        CancellationType.POST_ARRIVAL_AFTER_3_MONTHS,
        next_action=NextAction.KEEP_WAITING,
        as_of=date(2024, 7, 1),
    )

    assert result.new_status == ApplicationStatus.CANCELLED_POST_ARRIVAL
    assert result.candidate_status == "AVAILABLE_IN_LEBANON"
    assert result.refund.months_elapsed == 6
    assert result.refund.final_refund == Decimal("440.00")


def test_probation_type_rechecked_at_commit(db, make_application):
    """Test a stale within-probation type is refused once probation has passed"""
    application = make_application(status=ApplicationStatus.WORKER_ARRIVED, exact_arrival_date=date(2024, 1, 1))

    with pytest.raises(IllegalCancellation):
        cancel(db, application, CancellationType.POST_ARRIVAL_WITHIN_3_MONTHS, as_of=date(2024, 5, 1))


def test_mixed_currency_rolls_back(db, make_application, make_setting):
    make_setting("pre_arrival")
    application = make_application(payments=[("500", "FEE")])
    application_lbp = make_application(payments=[("900000", "FEE")], currency="LBP")
    # Move the LBP payment onto the USD application
    db.query(Payment).filter(Payment.application_id == application_lbp.id).update(
        {Payment.application_id: application.id}
    )
    db.commit()

    with pytest.raises(MixedCurrencyUnsupported):
        cancel(db, application, CancellationType.PRE_ARRIVAL)

    db.expire_all()
    assert application.status == "PENDING_MOL"
    assert db.query(LifecycleEvent).count() == 0


def test_move_to_client_opens_guarantor_change(db, clients, make_application, make_setting, pending_mol_templates):
    """Test moving to another client spawns a GUARANTOR_CHANGE application with the credit"""
    make_setting("post_arrival_within_3_months", penalty_fee=Decimal("0"), refund_percentage=Decimal("100"))
    application = make_application(status=ApplicationStatus.WORKER_ARRIVED, exact_arrival_date=date(2024, 1, 1))
    _, new_client = clients

    result = cancel(
        db,
        application,
        CancellationType.POST_ARRIVAL_WITHIN_3_MONTHS,
        next_action=NextAction.MOVE_TO_CLIENT,
        to_client_id=new_client.id,
        as_of=date(2024, 1, 20),
    )

    assert result.candidate_status == "IN_PROCESS"
    new_application = db.query(Application).filter(Application.id == result.new_application_id).one()
    assert new_application.type == ApplicationType.GUARANTOR_CHANGE.value
    assert new_application.status == ApplicationStatus.PENDING_MOL.value
    assert new_application.client_id == new_client.id
    assert new_application.from_client_id == application.client_id
    assert new_application.candidate_id == application.candidate_id

    documents = (
        db.query(DocumentChecklistItem)
        .filter(DocumentChecklistItem.application_id == new_application.id)
        .order_by(DocumentChecklistItem.order)
        .all()
    )
    assert [d.document_name for d in documents][:2] == ["Passport Copy", "Client ID"]
    assert "Transfer of Sponsorship" in [d.document_name for d in documents]
    assert len(documents) == 6

    adjustment = db.query(LedgerAdjustment).one()
    assert adjustment.kind == "credit"
    assert Decimal(adjustment.amount) == Decimal("1000")

    client_change = (
        db.query(LifecycleEvent).filter(LifecycleEvent.application_id == new_application.id).one()
    )
    assert client_change.action == "client_change"
    assert client_change.financial_impact["original_application_id"] == str(application.id)
    assert client_change.financial_impact["amount"] == "1000.00"

    cancellation = db.query(LifecycleEvent).filter(LifecycleEvent.application_id == application.id).one()
    assert cancellation.to_client_id == new_client.id
    assert cancellation.financial_impact["new_application_id"] == str(new_application.id)


def test_move_to_client_before_arrival_reserves_candidate(db, clients, make_application):
    application = make_application(status=ApplicationStatus.MOL_AUTH_RECEIVED)
    _, new_client = clients

    result = cancel(
        db,
        application,
        CancellationType.PRE_ARRIVAL,
        next_action=NextAction.MOVE_TO_CLIENT,
        to_client_id=new_client.id,
    )

    assert result.candidate_status == "RESERVED"
    candidate = db.query(Candidate).filter(Candidate.id == application.candidate_id).one()
    assert candidate.status == "RESERVED"
    documents = db.query(DocumentChecklistItem).filter(
        DocumentChecklistItem.application_id == result.new_application_id
    )
    assert documents.count() == 0


def test_move_to_unknown_client(db, make_application):
    application = make_application()

    with pytest.raises(ClientNotFoundError):
        cancel(
            db,
            application,
            CancellationType.PRE_ARRIVAL,
            next_action=NextAction.MOVE_TO_CLIENT,
            to_client_id=uuid.uuid4(),
        )

    db.expire_all()
    assert application.status == "PENDING_MOL"


def test_deport_books_cost_from_template(db, make_application, make_setting):
    """Test deportation records the template fee as an office cost"""
    make_setting("deportation", penalty_fee=Decimal("350"), refund_percentage=Decimal("100"))
    application = make_application(status=ApplicationStatus.ACTIVE_EMPLOYMENT, exact_arrival_date=date(2024, 1, 1))

    result = cancel(
        db,
        application,
        CancellationType.POST_ARRIVAL_WITHIN_3_MONTHS,
        next_action=NextAction.DEPORT,
        as_of=date(2024, 1, 20),
    )

    assert result.candidate_status == "DEPORTED"
    cost = db.query(Cost).filter(Cost.application_id == application.id).one()
    assert cost.cost_type == "DEPORTATION"
    assert Decimal(cost.amount) == Decimal("350")
    assert cost.currency == "USD"

    event = db.query(LifecycleEvent).filter(LifecycleEvent.application_id == application.id).one()
    assert Decimal(event.financial_impact["deportation_cost"]) == Decimal("350")
    assert Decimal(event.financial_impact["costs_absorbed"]) == Decimal("350")


def test_keep_waiting_books_no_deportation_cost(db, make_application, make_setting):
    make_setting("deportation", penalty_fee=Decimal("350"))
    application = make_application(status=ApplicationStatus.ACTIVE_EMPLOYMENT, exact_arrival_date=date(2024, 1, 1))

    cancel(
        db,
        application,
        CancellationType.POST_ARRIVAL_WITHIN_3_MONTHS,
        next_action=NextAction.KEEP_WAITING,
        as_of=date(2024, 1, 20),
    )

    assert db.query(Cost).count() == 0

import itertools
import os
import sys
import threading
from pathlib import Path
from types import SimpleNamespace

import pytest
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from toolcrib.core.errors import (
    InsufficientBalanceError,
    InsufficientStockError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from toolcrib.core.ticket_types import MAX_QUANTITY
from toolcrib.crud.items import adjust_quantity, get_item
from toolcrib.crud.tickets import list_tickets
from toolcrib.db.session import Base, make_engine, make_session_factory
from toolcrib.services import ledger as ledger_module
from toolcrib.services.ledger import LedgerService, net_quantity
from toolcrib.services.locks import ItemLockRegistry

# Ensure models are registered so metadata tables are created
from toolcrib.models import item as item_model  # noqa: F401
from toolcrib.models import ticket as ticket_model  # noqa: F401


@pytest.fixture()
def db_session():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    session = make_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def topics():
    return []


@pytest.fixture()
def ledger(db_session, topics):
    return LedgerService(db_session, hooks=[topics.append])


def _hammer(ledger, quantity=10):
    return ledger.create_item({"id": "HAMM1000", "name": "Hammer", "brand": "BrandX", "quantity": quantity})


def test_net_quantity_is_order_independent():
    tickets = [
        SimpleNamespace(type="take", qty=3),
        SimpleNamespace(type="take", qty=4),
        SimpleNamespace(type="return", qty=2),
        SimpleNamespace(type="return", qty=6),
        SimpleNamespace(type="take", qty=1),
    ]
    expected = (3 + 4 + 1) - (2 + 6)
    for ordering in itertools.permutations(tickets):
        assert net_quantity(ordering) == expected


def test_net_quantity_is_not_clamped():
    assert net_quantity([SimpleNamespace(type="return", qty=5)]) == -5
    assert net_quantity([]) == 0


def test_compute_user_balance_only_counts_that_user_and_item(ledger):
    _hammer(ledger)
    ledger.create_item({"id": "SAW1000", "name": "Saw", "brand": "BrandY", "quantity": 5})
    ledger.apply_take("HAMM1000", "alice", 3, signature="A")
    ledger.apply_take("HAMM1000", "bob", 2, signature="B")
    ledger.apply_take("SAW1000", "alice", 4, signature="A")
    ledger.apply_return("HAMM1000", "alice", 1, signature="A")

    assert ledger.compute_user_balance("HAMM1000", "alice") == 2
    assert ledger.compute_user_balance("HAMM1000", "bob") == 2
    assert ledger.compute_user_balance("SAW1000", "alice") == 4
    assert ledger.compute_user_balance("SAW1000", "bob") == 0


def test_take_decrements_quantity_and_records_ticket(ledger, db_session):
    _hammer(ledger)

    ticket = ledger.apply_take("HAMM1000", "alice", 3, destination="Shop 2", signature="alice-sig")

    assert ticket.type == "take"
    assert ticket.qty == 3
    assert ticket.destination == "Shop 2"
    assert ticket.id.startswith("t")
    assert ticket.forced_return is False
    assert ticket.original_user_taken is None
    assert get_item(db_session, "HAMM1000").quantity == 7


def test_take_more_than_stock_fails(ledger, db_session):
    _hammer(ledger, quantity=2)

    with pytest.raises(InsufficientStockError):
        ledger.apply_take("HAMM1000", "alice", 3, signature="A")

    assert get_item(db_session, "HAMM1000").quantity == 2
    assert list_tickets(db_session) == []


def test_take_entire_stock_is_allowed(ledger, db_session):
    _hammer(ledger, quantity=4)

    ledger.apply_take("HAMM1000", "alice", 4, signature="A")

    assert get_item(db_session, "HAMM1000").quantity == 0


def test_unknown_item_is_not_found(ledger):
    with pytest.raises(NotFoundError):
        ledger.apply_take("NOPE0000", "alice", 1, signature="A")
    with pytest.raises(NotFoundError):
        ledger.apply_return("NOPE0000", "alice", 1, signature="A", force=True)


@pytest.mark.parametrize("signature", [None, "", "   ", "\t\n"])
def test_blank_signature_rejected_before_any_mutation(ledger, db_session, topics, signature):
    _hammer(ledger)
    topics.clear()

    with pytest.raises(ValidationError):
        ledger.apply_take("HAMM1000", "alice", 1, signature=signature)
    with pytest.raises(ValidationError):
        ledger.apply_return("HAMM1000", "alice", 1, signature=signature, force=True)

    assert get_item(db_session, "HAMM1000").quantity == 10
    assert list_tickets(db_session) == []
    assert topics == []


@pytest.mark.parametrize(
    "item_id, username, qty",
    [("", "alice", 1), ("HAMM1000", " ", 1), ("HAMM1000", "alice", 0), ("HAMM1000", "alice", -2), ("HAMM1000", "alice", True)],
)
def test_missing_fields_are_validation_errors(ledger, item_id, username, qty):
    _hammer(ledger)

    with pytest.raises(ValidationError):
        ledger.apply_take(item_id, username, qty, signature="sig")


def test_missing_fields_win_over_unknown_item(ledger):
    with pytest.raises(ValidationError):
        ledger.apply_take("NOPE0000", "alice", 0, signature="sig")


def test_return_more_than_balance_fails_without_force(ledger, db_session):
    _hammer(ledger)
    ledger.apply_take("HAMM1000", "alice", 2, signature="A")

    with pytest.raises(InsufficientBalanceError):
        ledger.apply_return("HAMM1000", "alice", 3, signature="A")

    assert get_item(db_session, "HAMM1000").quantity == 8
    assert len(list_tickets(db_session)) == 1


def test_forced_return_records_balance_snapshot(ledger, db_session):
    _hammer(ledger)

    ticket = ledger.apply_return("HAMM1000", "carol", 4, signature="C", force=True)

    assert ticket.type == "return"
    assert ticket.forced_return is True
    assert ticket.original_user_taken == 0
    assert get_item(db_session, "HAMM1000").quantity == 14
    assert ledger.compute_user_balance("HAMM1000", "carol") == -4


def test_unforced_return_also_keeps_snapshot(ledger):
    _hammer(ledger)
    ledger.apply_take("HAMM1000", "alice", 5, signature="A")

    ticket = ledger.apply_return("HAMM1000", "alice", 2, signature="A")

    assert ticket.forced_return is False
    assert ticket.original_user_taken == 5


def test_hammer_scenario_end_to_end(ledger, db_session):
    _hammer(ledger, quantity=10)

    ledger.apply_take("HAMM1000", "alice", 3, signature="alice")
    assert ledger.compute_user_balance("HAMM1000", "alice") == 3
    assert get_item(db_session, "HAMM1000").quantity == 7

    ledger.apply_return("HAMM1000", "alice", 2, signature="alice")
    assert ledger.compute_user_balance("HAMM1000", "alice") == 1
    assert get_item(db_session, "HAMM1000").quantity == 9

    with pytest.raises(InsufficientBalanceError):
        ledger.apply_return("HAMM1000", "alice", 5, signature="alice")
    assert get_item(db_session, "HAMM1000").quantity == 9

    forced = ledger.apply_return("HAMM1000", "alice", 5, signature="alice", force=True)
    assert get_item(db_session, "HAMM1000").quantity == 14
    assert forced.original_user_taken == 1
    assert forced.forced_return is True


def test_quantity_matches_stock_plus_returns_minus_takes(ledger, db_session):
    _hammer(ledger, quantity=10)
    ledger.apply_take("HAMM1000", "alice", 3, signature="A")
    ledger.apply_take("HAMM1000", "bob", 4, signature="B")
    ledger.apply_return("HAMM1000", "bob", 1, signature="B")
    ledger.apply_return("HAMM1000", "dave", 2, signature="D", force=True)

    tickets = list_tickets(db_session)
    assert get_item(db_session, "HAMM1000").quantity == 10 - net_quantity(tickets)


def test_hooks_run_after_commit_for_each_topic(ledger, topics):
    _hammer(ledger)
    assert topics == ["items:update"]

    topics.clear()
    ledger.apply_take("HAMM1000", "alice", 1, signature="A")
    assert topics == ["items:update", "tickets:update"]

    topics.clear()
    ledger.apply_return("HAMM1000", "alice", 1, signature="A")
    assert topics == ["items:update", "tickets:update"]


def test_hooks_skipped_when_operation_fails(ledger, topics):
    _hammer(ledger, quantity=1)
    topics.clear()

    with pytest.raises(InsufficientStockError):
        ledger.apply_take("HAMM1000", "alice", 5, signature="A")
    with pytest.raises(InsufficientBalanceError):
        ledger.apply_return("HAMM1000", "alice", 5, signature="A")

    assert topics == []


def test_hook_failure_does_not_fail_operation(db_session):
    seen = []

    def broken(topic):
        raise RuntimeError("subscriber gone")

    service = LedgerService(db_session, hooks=[broken, seen.append])
    _hammer(service)

    ticket = service.apply_take("HAMM1000", "alice", 1, signature="A")

    assert ticket.qty == 1
    assert seen == ["items:update", "items:update", "tickets:update"]


def test_on_commit_registers_extra_hook(db_session):
    service = LedgerService(db_session)
    seen = []
    service.on_commit(seen.append)

    _hammer(service)

    assert seen == ["items:update"]


def test_storage_failure_rolls_back_quantity(ledger, db_session, monkeypatch):
    _hammer(ledger)
    monkeypatch.setattr(ledger_module, "generate_ticket_id", lambda: "tduplicate")
    ledger.apply_take("HAMM1000", "alice", 1, signature="A")

    with pytest.raises(StorageError):
        ledger.apply_take("HAMM1000", "alice", 2, signature="A")

    assert get_item(db_session, "HAMM1000").quantity == 9
    assert len(list_tickets(db_session)) == 1


def test_conditional_update_refuses_to_overdraw(ledger, db_session):
    _hammer(ledger, quantity=2)

    assert adjust_quantity(db_session, "HAMM1000", -3) is False
    assert adjust_quantity(db_session, "HAMM1000", -2) is True
    db_session.commit()

    assert get_item(db_session, "HAMM1000").quantity == 0
    assert adjust_quantity(db_session, "MISSING", 1) is False


def test_concurrent_takes_never_overdraw(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    factory = make_session_factory(engine)
    locks = ItemLockRegistry()

    setup = factory()
    LedgerService(setup, locks=locks).create_item(
        {"id": "HAMM1000", "name": "Hammer", "brand": "BrandX", "quantity": 5}
    )
    setup.close()

    results = []
    results_lock = threading.Lock()

    def worker(n):
        session = factory()
        try:
            LedgerService(session, locks=locks).apply_take("HAMM1000", f"user{n}", 1, signature="sig")
            outcome = "ok"
        except InsufficientStockError:
            outcome = "short"
        finally:
            session.close()
        with results_lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(12)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    check = factory()
    try:
        assert results.count("ok") == 5
        assert results.count("short") == 7
        assert get_item(check, "HAMM1000").quantity == 0
    finally:
        check.close()
        engine.dispose()


def test_create_item_derives_id_and_code(ledger):
    item = ledger.create_item({"name": "Claw Hammer 16oz", "brand": "BrandX"})

    assert item.id[:4] == "CLAW"
    assert item.id[4:].isdigit() and len(item.id) == 8
    assert item.code == f"{item.id[:4]}-{item.id[4:]}"
    assert item.quantity == 0
    assert item.type == ""


def test_create_item_disambiguates_colliding_id(ledger):
    first = ledger.create_item({"id": "DRIL0001", "name": "Drill", "brand": "BrandZ"})
    second = ledger.create_item({"id": " DRIL0001 ", "name": "Drill", "brand": "BrandZ"})

    assert first.id == "DRIL0001"
    assert second.id != first.id
    assert second.id.startswith("DRIL0001-")


def test_create_item_keeps_explicit_code(ledger):
    item = ledger.create_item({"name": "Tape", "brand": "Acme", "code": "  T-01 ", "type": "consumable"})

    assert item.code == "T-01"
    assert item.type == "consumable"


@pytest.mark.parametrize("payload", [{"name": "Saw"}, {"brand": "Acme"}, {"name": " ", "brand": "Acme"}])
def test_create_item_requires_name_and_brand(ledger, payload):
    with pytest.raises(ValidationError):
        ledger.create_item(payload)


def test_quantities_above_column_range_are_rejected(ledger, db_session):
    _hammer(ledger)

    with pytest.raises(ValidationError):
        ledger.apply_return("HAMM1000", "alice", 2**63, signature="A", force=True)
    with pytest.raises(ValidationError):
        ledger.apply_take("HAMM1000", "alice", MAX_QUANTITY + 1, signature="A")
    with pytest.raises(ValidationError):
        ledger.create_item({"name": "Bolt", "brand": "Acme", "quantity": 2**64})

    assert get_item(db_session, "HAMM1000").quantity == 10
    assert list_tickets(db_session) == []


def test_unknown_items_leave_no_locks_behind(ledger):
    for n in range(25):
        with pytest.raises(NotFoundError):
            ledger.apply_take(f"BOGUS{n}", "alice", 1, signature="A")
        with pytest.raises(NotFoundError):
            ledger.apply_return(f"BOGUS{n}", "alice", 1, signature="A", force=True)

    assert ledger.locks.active_count == 0


def test_locks_released_after_success_and_failure(ledger):
    _hammer(ledger, quantity=1)

    ledger.apply_take("HAMM1000", "alice", 1, signature="A")
    with pytest.raises(InsufficientStockError):
        ledger.apply_take("HAMM1000", "alice", 1, signature="A")

    assert ledger.locks.active_count == 0


def test_waiting_threads_share_one_lock_entry():
    locks = ItemLockRegistry()
    entered = threading.Event()
    release = threading.Event()
    order = []

    def first():
        with locks.hold("HAMM1000"):
            entered.set()
            release.wait(timeout=5)
            order.append("first")

    def second():
        with locks.hold("HAMM1000"):
            order.append("second")

    one = threading.Thread(target=first)
    one.start()
    entered.wait(timeout=5)
    two = threading.Thread(target=second)
    two.start()
    two.join(timeout=0.1)

    assert order == []
    assert locks.active_count == 1

    release.set()
    one.join()
    two.join()

    assert order == ["first", "second"]
    assert locks.active_count == 0

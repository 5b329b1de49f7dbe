"""
Tests for session_scope: commit on success, rollback and re-raise on error.
"""

import pytest
from datetime import date
from uuid import uuid4

from sqlalchemy.orm import sessionmaker

from fleet_kernel.db.engine import build_engine, create_tables, drop_tables, session_scope
from fleet_kernel.domain.values import Money
from fleet_kernel.exceptions import MissingJustificationError
from fleet_services.margin_reserve_service import MarginReserveService

ON = date(2025, 3, 1)


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'fleet_scope.db'}")
    create_tables(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    drop_tables(engine)
    engine.dispose()


def _balance(session_factory, aircraft_id):
    with session_scope(session_factory) as session:
        reserve = MarginReserveService(session).find_reserve(aircraft_id)
        return reserve.current_balance if reserve is not None else None


class TestSessionScope:
    def test_commits_on_normal_exit(self, session_factory):
        with session_scope(session_factory) as session:
            MarginReserveService(session).register_contribution(
                "PR-SCOPE", Money.of("1200"), uuid4(), movement_date=ON
            )
        assert _balance(session_factory, "PR-SCOPE") == Money.of("1200")

    def test_rolls_back_and_reraises(self, session_factory, captured_logs):
        actor = uuid4()
        with pytest.raises(MissingJustificationError):
            with session_scope(session_factory) as session:
                service = MarginReserveService(session)
                service.register_contribution("PR-SCOPE", Money.of("500"), actor, movement_date=ON)
                service.register_emergency_use(
                    "PR-SCOPE", Money.of("100"), "", actor, movement_date=ON
                )
        assert _balance(session_factory, "PR-SCOPE") is None
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())

    def test_without_factory_requires_initialized_engine(self, monkeypatch):
        import fleet_kernel.db.engine as engine_module

        monkeypatch.setattr(engine_module, "_SessionFactory", None)
        with pytest.raises(RuntimeError):
            with session_scope():
                pass

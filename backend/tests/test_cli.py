# Overview: Pytest coverage for the Flask CLI command groups.

from stockledger.extensions import db
from stockledger.models import InventoryItem
from stockledger.services import opname_service, session_service


class TestCli:
    def test_allocate_code(self, app, db_session, category):
        category("Minuman", "MN")
        result = app.test_cli_runner().invoke(args=["items", "allocate-code", "Minuman"])
        assert result.exit_code == 0
        assert result.output.strip() == "MN01"

    def test_categories_add(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["categories", "add", "--name", "Snack", "--code", "SN"])
        assert result.exit_code == 0
        result = runner.invoke(args=["items", "allocate-code", "Snack"])
        assert result.output.strip() == "SN01"

    def test_ledger_verify_and_fix(self, app, db_session, make_item):
        make_item("Teh", code="MN01", quantity=4)
        db_session.execute(
            InventoryItem.__table__.update().where(InventoryItem.code == "MN01").values(quantity=7)
        )
        db_session.commit()

        runner = app.test_cli_runner()
        result = runner.invoke(args=["ledger", "verify"])
        assert result.exit_code == 1
        assert "DRIFT MN01: cached 7, ledger 4" in result.output

        result = runner.invoke(args=["ledger", "verify", "--fix"])
        assert result.exit_code == 0
        db.session.expire_all()
        assert db.session.query(InventoryItem).filter_by(code="MN01").one().quantity == 4

    def test_opname_status_and_cancel(self, app, db_session):
        session = opname_service.start_session("partial", device_id="dev-1")
        runner = app.test_cli_runner()

        result = runner.invoke(args=["opname", "status", "--device", "dev-1"])
        assert session.id in result.output

        result = runner.invoke(args=["opname", "cancel", "--device", "dev-1", "--yes"])
        assert result.exit_code == 0
        assert session_service.load_active_session("dev-1") is None

import pytest

from openstock.extensions import db
from openstock.models import Product, Settings


@pytest.fixture(scope='function')
def runner(app):
    return app.test_cli_runner()


def test_init_db_creates_settings_row(runner, db_session):
    result = runner.invoke(args=["system", "init-db"])

    assert result.exit_code == 0, result.output
    assert "Settings ready" in result.output
    assert db.session.query(Settings).count() == 1


def test_reset_db_requires_confirmation(runner, product):
    result = runner.invoke(args=["system", "reset-db"], input="n\n")

    assert result.exit_code != 0
    assert db.session.get(Product, product.id) is not None


def test_stock_apply_and_history(runner, product):
    result = runner.invoke(args=["stock", "apply", product.id, "out", "4", "--reason", "Sale"])

    assert result.exit_code == 0, result.output
    assert "(10 -> 6)" in result.output
    assert db.session.get(Product, product.id).stock_quantity == 6

    history = runner.invoke(args=["stock", "history", product.id])
    assert history.exit_code == 0
    assert "Sale" in history.output
    assert "Initial stock" in history.output


def test_stock_apply_negative_adjustment(runner, product):
    result = runner.invoke(
        args=["stock", "apply", product.id, "adjustment", "-2", "--reason", "Breakage"]
    )

    assert result.exit_code == 0, result.output
    assert "(10 -> 8)" in result.output
    assert db.session.get(Product, product.id).stock_quantity == 8


def test_stock_apply_reports_business_errors(runner, product):
    result = runner.invoke(args=["stock", "apply", product.id, "out", "99"])

    assert result.exit_code != 0
    assert "insufficient stock" in result.output
    assert db.session.get(Product, product.id).stock_quantity == 10


def test_stock_verify(runner, product):
    ok = runner.invoke(args=["stock", "verify"])
    assert ok.exit_code == 0
    assert "consistent" in ok.output

    db.session.execute(db.update(Product).where(Product.id == product.id).values(stock_quantity=3))
    db.session.commit()

    broken = runner.invoke(args=["stock", "verify"])
    assert broken.exit_code == 1
    assert product.id in broken.output


def test_stock_alerts(runner, make_product):
    empty = make_product(name="Empty")

    result = runner.invoke(args=["stock", "alerts"])

    assert result.exit_code == 0
    assert f"out-of-stock-{empty.id}" in result.output

# tests/test_deposit_guard.py
from decimal import Decimal

import pytest

from pos_ledger.config import get_settings
from pos_ledger.modules.ledger.deposit_guard import check_deposit_acceptable

D = Decimal


def test_deposit_clearing_the_balance_is_accepted():
    d = check_deposit_acceptable("112.50", "112.50", "0", tolerance=D("0"))
    assert d.allowed
    assert d.resulting_balance == D("0.00")
    assert d.resulting_status == "paid"


def test_partial_deposit_is_accepted():
    d = check_deposit_acceptable("112.50", "50", "0", tolerance=D("0"))
    assert d.allowed
    assert d.resulting_balance == D("62.50")
    assert d.resulting_status == "partial"


def test_overpayment_beyond_tolerance_is_rejected_with_reason():
    d = check_deposit_acceptable("112.50", "200", "0", tolerance=D("0"))
    assert not d.allowed
    assert "112.50" in d.reason
    assert "87.50" in d.reason


def test_overpayment_within_tolerance_is_accepted():
    d = check_deposit_acceptable("112.50", "120", "0", tolerance=D("10"))
    assert d.allowed
    assert d.resulting_balance == D("-7.50")
    assert d.resulting_status == "overpaid"


def test_unlimited_tolerance_accepts_any_overpayment_while_balance_open():
    d = check_deposit_acceptable("1.00", "1000", "0", tolerance=None)
    assert d.allowed
    assert d.resulting_status == "overpaid"


def test_deposit_cannot_be_reduced():
    d = check_deposit_acceptable("50.00", "10", "20", tolerance=None)
    assert not d.allowed
    assert "cannot be reduced" in d.reason


def test_unchanged_deposit_is_always_fine():
    # even when the new items push the invoice into overpayment
    d = check_deposit_acceptable("-30.00", "100", "100", tolerance=D("0"))
    assert d.allowed
    assert d.resulting_status == "overpaid"


@pytest.mark.parametrize("projected", ["0.00", "-5.00"])
def test_no_new_deposit_once_fully_paid(projected):
    d = check_deposit_acceptable(projected, "101", "100", tolerance=None)
    assert not d.allowed
    assert "fully paid" in d.reason


def test_negative_deposit_is_rejected():
    d = check_deposit_acceptable("10.00", "-1", "0", tolerance=None)
    assert not d.allowed


def test_default_tolerance_comes_from_settings(monkeypatch):
    monkeypatch.setenv("POS_OVERPAYMENT_TOLERANCE", "5")
    get_settings.cache_clear()
    assert check_deposit_acceptable("10.00", "15", "0").allowed
    assert not check_deposit_acceptable("10.00", "15.01", "0").allowed


def test_unlimited_setting(monkeypatch):
    monkeypatch.setenv("POS_OVERPAYMENT_TOLERANCE", "unlimited")
    get_settings.cache_clear()
    assert get_settings().overpayment_tolerance is None
    assert check_deposit_acceptable("10.00", "500", "0").allowed


def test_bad_tolerance_setting_is_reported(monkeypatch):
    monkeypatch.setenv("POS_OVERPAYMENT_TOLERANCE", "lots")
    get_settings.cache_clear()
    with pytest.raises(ValueError, match="POS_OVERPAYMENT_TOLERANCE"):
        get_settings()

from decimal import Decimal

from fatura.constants import _env_bool, _env_decimal


def test_env_decimal_reads_comma(monkeypatch):
    monkeypatch.setenv("FATURA_TEST_RATE", "0,07")
    assert _env_decimal("FATURA_TEST_RATE", "0.065") == Decimal("0.07")


def test_env_decimal_fallbacks(monkeypatch):
    monkeypatch.delenv("FATURA_TEST_RATE", raising=False)
    assert _env_decimal("FATURA_TEST_RATE", "20000") == Decimal("20000")
    monkeypatch.setenv("FATURA_TEST_RATE", "abc")
    assert _env_decimal("FATURA_TEST_RATE", "14") == Decimal("14")
    monkeypatch.setenv("FATURA_TEST_RATE", "-5")
    assert _env_decimal("FATURA_TEST_RATE", "14") == Decimal("5")


def test_env_bool(monkeypatch):
    monkeypatch.setenv("FATURA_TEST_FLAG", "yes")
    assert _env_bool("FATURA_TEST_FLAG") is True
    monkeypatch.setenv("FATURA_TEST_FLAG", "off")
    assert _env_bool("FATURA_TEST_FLAG") is False
    monkeypatch.delenv("FATURA_TEST_FLAG")
    assert _env_bool("FATURA_TEST_FLAG", "1") is True

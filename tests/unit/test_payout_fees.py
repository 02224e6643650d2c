"""Tests for payout processing fees."""

from decimal import Decimal

import pytest

from mlm_engine.models.enums import PaymentMethod
from mlm_engine.services.payout_batcher import calculate_processing_fee


class TestProcessingFee:
    """Test fee per payment method."""

    @pytest.mark.parametrize(
        "method,amount,expected",
        [
            (PaymentMethod.BANK_TRANSFER, "100", "2.50"),
            (PaymentMethod.PAYPAL, "100", "3.20"),
            (PaymentMethod.CRYPTO, "100", "1.00"),
            (PaymentMethod.CHECK, "100", "5.00"),
            ("paypal", "10.55", "0.61"),
        ],
    )
    def test_fee(self, method, amount, expected):
        assert calculate_processing_fee(Decimal(amount), method) == Decimal(expected)

    def test_fee_never_exceeds_amount(self):
        assert calculate_processing_fee(Decimal("3"), PaymentMethod.CHECK) == Decimal("3")

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            calculate_processing_fee(Decimal("100"), "wire")

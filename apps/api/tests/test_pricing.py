from unittest.mock import patch

import pytest

from config import settings
from services.pricing import ChargeRequest, cost_for, cost_table, credit_cost


def test_generate_cost_adds_hd_surcharge_per_image():
    assert credit_cost("generate", 3, "hd") == 6
    assert credit_cost("generate", 3, "standard") == 3
    assert credit_cost("generate", 1, "high") == 2


def test_edit_cost_is_fixed_per_unit():
    assert credit_cost("edit", 1, "standard") == 2
    assert credit_cost("edit", 1, "hd") == 2


def test_quantity_below_one_is_clamped():
    assert credit_cost("generate", 0, "standard") == 1
    assert credit_cost("edit", -4) == 2


def test_cost_is_deterministic_for_identical_inputs():
    request = ChargeRequest("generate", quantity=3, quality_tier="hd")
    assert {cost_for(request) for _ in range(20)} == {6}


def test_unknown_action_is_rejected():
    with pytest.raises(ValueError):
        credit_cost("upscale", 1)


def test_cost_follows_configured_constants():
    with patch.object(settings, "CREDIT_COST_PER_IMAGE", 3), patch.object(settings, "CREDIT_HD_SURCHARGE_PER_IMAGE", 2):
        assert credit_cost("generate", 2, "hd") == 10
        assert cost_table()["generate"] == {"per_image": 3, "hd_surcharge_per_image": 2}

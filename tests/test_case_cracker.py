import pytest

from case_cracker import calculate_product_ev


def test_base_set_box_breaks_even():
    result = calculate_product_ev("base-set-box", 100)
    assert result.expected_value == pytest.approx(120)
    assert result.break_even is True
    assert result.profit_loss == pytest.approx(20)
    assert [p.name for p in result.pulls][0] == "Charizard (Holo)"


def test_jungle_box_loses_money():
    result = calculate_product_ev("jungle-box", 200)
    assert result.expected_value == pytest.approx(180)
    assert result.break_even is False
    assert result.profit_loss == pytest.approx(-20)
    assert result.pulls == []


def test_to_dict_flattens_pulls():
    data = calculate_product_ev("base-set-box", 50).to_dict()
    assert data["pulls"][0] == {"name": "Charizard (Holo)", "probability": 0.1, "value": 5000}


@pytest.mark.parametrize("product,price", [("", 100), ("base-set-box", 0), ("base-set-box", -5)])
def test_missing_input_is_rejected(product, price):
    with pytest.raises(ValueError, match="Please select a product"):
        calculate_product_ev(product, price)


def test_unknown_product():
    with pytest.raises(KeyError):
        calculate_product_ev("team-rocket-box", 100)

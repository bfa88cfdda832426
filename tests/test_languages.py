import pytest

from mdparallel.languages import base_code, same_language, source_code, target_code
from mdparallel.structures import Formality


def test_target_codes_get_required_variants():
    assert target_code("en") == "EN-US"
    assert target_code("pt") == "PT-BR"
    assert target_code("en-gb") == "EN-GB"
    assert target_code("de") == "DE"
    assert target_code("zh_hans") == "ZH-HANS"


def test_source_codes_drop_the_region():
    assert source_code("en-US") == "EN"
    assert source_code("ja") == "JA"


@pytest.mark.parametrize("code", ["", "english", "e", "en-", "en us"])
def test_invalid_codes_are_rejected(code):
    with pytest.raises(ValueError):
        target_code(code)


def test_same_language_compares_base_codes():
    assert same_language("en", "EN-US")
    assert same_language("PT-BR", "pt")
    assert not same_language("en", "de")
    assert not same_language("", "en")
    assert base_code("de-ch") == "DE"


def test_formality_parsing():
    assert Formality.parse("formal") is Formality.FORMAL
    assert Formality.parse("prefer_less") is Formality.INFORMAL
    assert Formality.parse(" Default ") is Formality.DEFAULT
    with pytest.raises(ValueError):
        Formality.parse("casual")

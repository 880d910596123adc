from stitchflow.core.section_keys import derive_section_keys, normalize_section_key
from stitchflow.services.order_service import build_sections


def test_normalize_is_case_and_whitespace_insensitive():
    assert normalize_section_key("  Shirt ") == "shirt"
    assert normalize_section_key("DUPATTA") == "dupatta"
    assert normalize_section_key(None) == ""


def test_included_pieces_come_before_add_ons():
    keys = derive_section_keys(
        [{"piece": "Shirt"}, {"piece": "Trouser"}],
        [{"piece": "Pouch"}],
    )
    assert list(keys) == ["shirt", "trouser", "pouch"]
    assert keys["pouch"] == "Pouch"


def test_duplicates_collapse_onto_first_spelling():
    keys = derive_section_keys([{"piece": "Shirt"}, {"piece": " shirt "}], [{"piece": "SHIRT"}])
    assert keys == {"shirt": "Shirt"}


def test_blank_pieces_are_skipped():
    keys = derive_section_keys([{"piece": "  "}, {"piece": "Dupatta"}], None)
    assert keys == {"dupatta": "Dupatta"}


def test_build_sections_positions_follow_display_order():
    sections = build_sections([{"piece": "Shirt"}, {"piece": "Dupatta"}], [{"piece": "Pouch"}])
    assert [(s.section_key, s.position) for s in sections] == [("shirt", 0), ("dupatta", 1), ("pouch", 2)]

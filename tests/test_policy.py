"""Tests for tinygraph policy: registration, dedup, validation, read/print."""

import io
import os
import tempfile

from tinygraph.graph.policy import Policy, Constraint


# ============================================================
# Helpers
# ============================================================

def make_policy() -> Policy:
    """Proteins catalyse reactions; compounds sit left or right of them."""
    policy = Policy()
    policy.add_node_type("compound")
    policy.add_node_type("protein")
    policy.add_node_type("reaction")
    policy.add_constraint("compound", "is left of", "reaction")
    policy.add_constraint("compound", "is right of", "reaction")
    policy.add_constraint("protein", "catalyses", "reaction")
    policy.add_constraint("reaction", "is catalysed by", "protein")
    return policy


# ============================================================
# Registration
# ============================================================

def test_add_types_idempotent():
    p = Policy()
    p.add_node_type("compound")
    p.add_node_type("compound")
    p.add_arc_type("is left of")
    p.add_arc_type("is left of")
    assert p.node_types == {"compound"}
    assert p.arc_types == {"is left of"}
    assert p.is_node_type("compound")
    assert not p.is_node_type("protein")
    assert p.is_arc_type("is left of")
    assert not p.is_arc_type("catalyses")
    print("  ✓ add_types_idempotent")

def test_type_names_checked():
    p = make_policy()
    before = p.lines()
    for bad in ["", " ", "compound ", " reaction", "\tgene"]:
        for call in (p.add_node_type, p.add_arc_type):
            try:
                call(bad)
                assert False, f"Should have raised for {bad!r}"
            except ValueError:
                pass
    try:
        p.add_constraint("gene ", "encodes", "protein")
        assert False, "Should have raised"
    except ValueError:
        pass
    try:
        p.add_node_type(7)
        assert False, "Should have raised"
    except TypeError:
        pass
    assert not p.is_arc_type("encodes")
    assert p.lines() == before
    print("  ✓ type_names_checked")

def test_constraint_registers_types():
    p = Policy()
    p.add_constraint("gene", "encodes", "protein")
    assert p.is_node_type("gene")
    assert p.is_node_type("protein")
    assert p.is_arc_type("encodes")
    assert p.is_valid("gene", "encodes", "protein")
    print("  ✓ constraint_registers_types")

def test_constraint_dedup():
    p = make_policy()
    before = p.constraint_count
    p.add_constraint("compound", "is left of", "reaction")
    p.add_constraint("protein", "catalyses", "reaction")
    assert p.constraint_count == before == 4
    print("  ✓ constraint_dedup")

def test_is_valid_is_directional():
    p = make_policy()
    assert p.is_valid("compound", "is left of", "reaction")
    assert not p.is_valid("reaction", "is left of", "compound")
    assert not p.is_valid("compound", "catalyses", "reaction")
    assert not p.is_valid("nothing", "is left of", "reaction")
    print("  ✓ is_valid_is_directional")

def test_constraints_from():
    p = make_policy()
    assert p.constraints_from("compound") == [
        Constraint("compound", "is left of", "reaction"),
        Constraint("compound", "is right of", "reaction"),
    ]
    assert p.constraints_from("unknown") == []
    print("  ✓ constraints_from")


# ============================================================
# Text form
# ============================================================

def test_print_order():
    """Node types sorted; constraints of each type in declaration order."""
    p = Policy()
    p.add_constraint("reaction", "is catalysed by", "protein")
    p.add_constraint("compound", "is right of", "reaction")
    p.add_constraint("compound", "is left of", "reaction")
    out = io.StringIO()
    p.print(out)
    assert out.getvalue() == (
        "Policy\n"
        "compound\tis right of\treaction\n"
        "compound\tis left of\treaction\n"
        "reaction\tis catalysed by\tprotein\n"
    )
    print("  ✓ print_order")

def test_print_unconstrained_types():
    p = Policy()
    p.add_node_type("gene")
    p.add_node_type("compound")
    p.add_arc_type("regulates")
    p.add_constraint("protein", "catalyses", "reaction")
    out = io.StringIO()
    p.print(out)
    assert out.getvalue() == (
        "Policy\n"
        "protein\tcatalyses\treaction\n"
        "compound\t\n"
        "gene\t\n"
        "\tregulates\t\n"
    )
    loaded = Policy.read(out.getvalue().split("\n"))
    assert loaded == p
    assert loaded.lines() == p.lines()
    print("  ✓ print_unconstrained_types")

def test_read_stops_at_sentinel():
    text = [
        "# a comment before anything",
        "Policy",
        "compound\tis left of\treaction",
        "",
        "   # indented comment",
        "protein\tcatalyses\treaction",
        "Nodes",
        "compound\t0",
        "Policy",
        "late\tarc\tconstraint",
    ]
    p = Policy.read(text)
    assert p.constraint_count == 2
    assert p.is_valid("protein", "catalyses", "reaction")
    assert not p.is_node_type("late")
    print("  ✓ read_stops_at_sentinel")

def test_read_skips_malformed():
    text = [
        "Policy",
        "compound\tis left of",
        "compound\tis left of\treaction\textra",
        "compound\t\treaction",
        "protein\tcatalyses\treaction",
        "Relations",
    ]
    p = Policy.read(text)
    assert p.constraints == [Constraint("protein", "catalyses", "reaction")]
    print("  ✓ read_skips_malformed")

def test_read_print_roundtrip_file():
    p = make_policy()
    with tempfile.TemporaryDirectory() as d:
        path = os.path.join(d, "policy.txt")
        with open(path, "w", encoding="utf-8") as f:
            p.print(f)
        loaded = Policy.read(path)
    assert loaded == p
    assert loaded.lines() == p.lines()
    print("  ✓ read_print_roundtrip_file")

def test_read_missing_file():
    try:
        Policy.read("/nonexistent/dir/policy.txt")
        assert False, "Should have raised"
    except OSError:
        pass
    print("  ✓ read_missing_file")


if __name__ == "__main__":
    print("Testing Policy...\n")
    test_add_types_idempotent()
    test_type_names_checked()
    test_constraint_registers_types()
    test_constraint_dedup()
    test_is_valid_is_directional()
    test_constraints_from()
    test_print_order()
    test_print_unconstrained_types()
    test_read_stops_at_sentinel()
    test_read_skips_malformed()
    test_read_print_roundtrip_file()
    test_read_missing_file()
    print("\n" + "=" * 50)
    print("ALL POLICY TESTS PASSED ✓")
    print("=" * 50)

"""Tests for tinygraph settings: env loading, validation, encoding, logging."""

import logging
import os
import tempfile

from pydantic import ValidationError

from tinygraph.core.config import StoreSettings, configure_logging
from tinygraph.graph.backend import GraphStore
from tinygraph.graph.policy import Policy


def with_env(values: dict, fn):
    """Run fn with environment overrides, restoring afterwards."""
    saved = {k: os.environ.get(k) for k in values}
    try:
        os.environ.update(values)
        return fn()
    finally:
        for k, v in saved.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


def test_defaults():
    s = StoreSettings()
    assert s.encoding == "utf-8"
    assert s.log_level == "WARNING"
    print("  ✓ defaults")

def test_from_env():
    s = with_env({"TINYGRAPH_ENCODING": "latin-1",
                  "TINYGRAPH_LOG_LEVEL": "debug"}, StoreSettings.from_env)
    assert s.encoding == "latin-1"
    assert s.log_level == "DEBUG"
    print("  ✓ from_env")

def test_invalid_log_level():
    try:
        StoreSettings(log_level="LOUD")
        assert False, "Should have raised"
    except ValidationError:
        pass
    print("  ✓ invalid_log_level")

def test_store_uses_encoding():
    settings = StoreSettings(encoding="latin-1")
    policy = Policy()
    policy.add_node_type("city")
    g = GraphStore(policy, settings=settings)
    g.new_node("city", {"name": "Zürich"})
    with tempfile.TemporaryDirectory() as d:
        path = os.path.join(d, "store.txt")
        g.save(path)
        with open(path, "rb") as f:
            assert "Zürich".encode("latin-1") in f.read()
        loaded = GraphStore.from_file(path, settings=settings)
    assert loaded.get_node(0).property("name") == "Zürich"
    print("  ✓ store_uses_encoding")

def test_configure_logging():
    configure_logging(StoreSettings(log_level="INFO"))
    assert logging.getLogger("tinygraph").level == logging.INFO
    assert logging.getLogger("tinygraph.store").getEffectiveLevel() == logging.INFO
    print("  ✓ configure_logging")


if __name__ == "__main__":
    print("Testing settings...\n")
    test_defaults()
    test_from_env()
    test_invalid_log_level()
    test_store_uses_encoding()
    test_configure_logging()
    print("\n" + "=" * 50)
    print("ALL SETTINGS TESTS PASSED ✓")
    print("=" * 50)

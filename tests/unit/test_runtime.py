import logging

from opdevnet import runtime


def _record() -> logging.LogRecord:
    return logging.LogRecord("opdevnet", logging.INFO, __file__, 1, "msg", None, None)


def test_records_are_tagged_with_current_test():
    runtime.set_current_test("fn_devnet_bringup")
    try:
        record = _record()
        assert runtime.TestNameFilter().filter(record)
        assert record.test_name == "fn_devnet_bringup"
    finally:
        runtime.set_current_test(None)


def test_records_outside_tests():
    record = _record()
    runtime.TestNameFilter().filter(record)
    assert record.test_name == "no-test"

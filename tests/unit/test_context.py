import threading
import time

import pytest

from opdevnet.context import Context
from opdevnet.errors import ContextCancelled, DeadlineExceeded


def test_background_is_live():
    ctx = Context.background()
    assert not ctx.done()
    assert ctx.err() is None
    assert ctx.deadline() is None


def test_cancel_propagates_to_children():
    parent = Context.background()
    child = parent.with_cancel()
    grandchild = child.with_timeout(60)

    parent.cancel()

    assert child.done()
    assert grandchild.done()
    assert isinstance(grandchild.err(), ContextCancelled)


def test_child_cancel_leaves_parent_live():
    parent = Context.background()
    child = parent.with_cancel()
    child.cancel()
    assert child.done()
    assert not parent.done()


def test_child_of_cancelled_parent_starts_cancelled():
    parent = Context.background()
    parent.cancel()
    assert parent.with_cancel().done()


def test_timeout_sets_deadline_exceeded():
    ctx = Context.background().with_timeout(0.05)
    time.sleep(0.1)
    assert ctx.done()
    assert isinstance(ctx.err(), DeadlineExceeded)
    with pytest.raises(DeadlineExceeded):
        ctx.raise_if_done()


def test_deadline_is_earliest_ancestor():
    outer = Context.background().with_timeout(1)
    inner = outer.with_timeout(60)
    assert inner.deadline() == outer.deadline()


def test_sleep_wakes_on_cancel():
    ctx = Context.background().with_cancel()
    threading.Timer(0.05, ctx.cancel).start()

    start = time.monotonic()
    assert ctx.sleep(10) is True
    assert time.monotonic() - start < 5


def test_sleep_full_interval():
    ctx = Context.background()
    assert ctx.sleep(0.01) is False


def test_first_cancel_error_wins():
    ctx = Context.background()
    ctx.cancel(ContextCancelled("first"))
    ctx.cancel(ContextCancelled("second"))
    assert str(ctx.err()) == "first"


def test_cancelled_child_is_detached():
    parent = Context.background()
    child = parent.with_cancel()
    assert parent._children == [child]
    child.cancel()
    assert parent._children == []
    assert not parent.done()


def test_expired_child_is_detached():
    parent = Context.background()
    child = parent.with_timeout(0.01)
    time.sleep(0.05)
    assert child.done()
    assert parent._children == []


def test_children_of_long_lived_context_do_not_accumulate():
    parent = Context.background()
    for _ in range(100):
        parent.with_timeout(60).cancel()
    assert parent._children == []

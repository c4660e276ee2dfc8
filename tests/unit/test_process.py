import os
import sys
import threading

import pytest

from opdevnet.context import Context
from opdevnet.errors import ContextCancelled, ProcessError, ProcessSpawnError
from opdevnet.listener import ErrorRouter
from opdevnet.process import Supervisor


def py(code: str) -> list[str]:
    return [sys.executable, "-c", code]


@pytest.fixture
def supervisor(env, tmp_path):
    return Supervisor(env, str(tmp_path / "logs"), step=0.05)


def test_clean_exit_captures_output(supervisor):
    ctx = Context.background()
    proc = supervisor.spawn("hello", py("print('hello world')"), ctx)
    proc.wait(ctx)

    assert proc.returncode == 0
    with open(proc.log_path) as f:
        content = f.read()
    assert content.startswith("(process started as:")
    assert "hello world" in content


def test_nonzero_exit_raises(supervisor):
    ctx = Context.background()
    argv = py("import sys; sys.exit(3)")
    proc = supervisor.spawn("failing", argv, ctx)

    with pytest.raises(ProcessError) as exc:
        proc.wait(ctx)

    assert exc.value.returncode == 3
    assert str(exc.value) == f"run {' '.join(argv)}: exit status 3"


def test_missing_executable(supervisor, tmp_path):
    with pytest.raises(ProcessSpawnError):
        supervisor.spawn("nope", [str(tmp_path / "does-not-exist")], Context.background())


def test_spawn_on_cancelled_context(supervisor):
    ctx = Context.background()
    ctx.cancel()
    with pytest.raises(ContextCancelled):
        supervisor.spawn("never", py("pass"), ctx)


def test_cancel_stops_process(supervisor):
    ctx = Context.background().with_cancel()
    proc = supervisor.spawn("sleeper", py("import time; time.sleep(30)"), ctx)
    threading.Timer(0.2, ctx.cancel).start()

    with pytest.raises(ContextCancelled):
        proc.wait(ctx)

    assert proc.returncode is not None
    assert not proc.check_status()


def test_monitor_reports_failure(env, supervisor):
    router = ErrorRouter()
    router.start(env)
    failed = threading.Event()
    errors = []

    def on_err(err):
        errors.append(err)
        failed.set()

    ctx = Context.background()
    proc = supervisor.spawn("crasher", py("import sys; sys.exit(7)"), ctx)
    proc.monitor(ctx, router, on_err)

    assert failed.wait(10)
    assert isinstance(errors[0], ProcessError)
    assert errors[0].returncode == 7


def test_stopped_process_is_not_a_failure(env, supervisor):
    router = ErrorRouter()
    router.start(env)
    errors = []

    ctx = Context.background()
    proc = supervisor.spawn("daemon", py("import time; time.sleep(30)"), ctx)
    proc.monitor(ctx, router, errors.append)
    proc.stop()
    env.release()

    assert errors == []


def test_line_handler_sees_output(supervisor):
    ctx = Context.background()
    lines = []
    proc = supervisor.spawn("chatty", py("print('one'); print('two')"), ctx, line_handler=lines.append)
    proc.wait(ctx)

    assert lines == ["one", "two"]
    with open(proc.log_path) as f:
        assert "two" in f.read()


def test_line_handler_survives_invalid_utf8(supervisor):
    ctx = Context.background()
    lines = []
    code = "import sys; sys.stdout.buffer.write(b'bad \\xff\\xfe\\n'); sys.stdout.buffer.write(b'after\\n')"
    proc = supervisor.spawn("bad-output", py(code), ctx, line_handler=lines.append)
    proc.wait(ctx)

    assert proc.returncode == 0
    assert lines == ["bad \ufffd\ufffd", "after"]
    with open(proc.log_path, encoding="utf-8") as f:
        assert "after" in f.read()


def test_release_stops_running_processes(env, supervisor):
    proc = supervisor.spawn("sleeper", py("import time; time.sleep(30)"), Context.background())
    assert proc.check_status()
    env.release()
    assert not proc.check_status()


def test_inherited_fds(env, supervisor, tmp_path):
    r, w = os.pipe()
    env.defer_err("close pipe", lambda: (os.close(r), os.close(w)))
    ctx = Context.background()
    proc = supervisor.spawn(
        "writer", py(f"import os; os.write({w}, b'ok')"), ctx, pass_fds=(w,)
    )
    proc.wait(ctx)
    assert os.read(r, 2) == b"ok"

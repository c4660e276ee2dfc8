from opdevnet.listener import Err, ErrorRouter, Ok, OPLogRecord, SelectiveListener


def test_router_delivers_only_failures(env):
    router = ErrorRouter()
    router.start(env)
    received = []

    router.report(Ok("anvil"), received.append)
    err = RuntimeError("anvil died")
    router.report(Err("anvil", err), received.append)
    env.release()

    assert received == [err]


def test_router_keeps_order(env):
    router = ErrorRouter()
    router.start(env)
    received = []

    for i in range(50):
        router.post(received.append, i)
    env.release()

    assert received == list(range(50))


def test_callback_errors_are_recorded(env):
    router = ErrorRouter()
    router.start(env)
    received = []

    def broken(_err):
        raise ValueError("listener bug")

    router.report(Err("forge", RuntimeError("x")), broken)
    router.post(received.append, "still delivered")
    env.release()

    assert len(router.callback_errors) == 1
    assert received == ["still delivered"]


def test_selective_listener_ignores_unset_callbacks():
    errors = []
    listener = SelectiveListener(on_comet_serve_err_cb=errors.append)

    listener.on_anvil_err(RuntimeError("ignored"))
    listener.on_op_log(OPLogRecord(source="op-node", level="INFO", msg="ignored"))
    listener.on_comet_serve_err(RuntimeError("comet"))

    assert [str(e) for e in errors] == ["comet"]

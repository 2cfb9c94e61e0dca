import threading

from mosdns.safe_close import SafeClose


def test_error_keeps_first_signal():
    sc = SafeClose()
    assert sc.error() is None
    first = RuntimeError("first")
    sc.send_close_signal(first)
    sc.send_close_signal(RuntimeError("second"))
    assert sc.error() is first
    assert sc.receive_close_signal().is_set()


def test_close_wait_waits_for_attached_worker():
    sc = SafeClose()
    finished = []

    def worker(done, close_signal):
        close_signal.wait()
        finished.append(True)
        done()

    sc.attach(worker)
    sc.done()
    sc.close_wait()
    assert finished == [True]
    assert sc.receive_close_signal().is_set()


def test_close_wait_blocks_until_done():
    sc = SafeClose()
    t = threading.Thread(target=sc.close_wait, daemon=True)
    t.start()
    t.join(timeout=0.1)
    assert t.is_alive()
    assert sc.receive_close_signal().is_set()
    sc.done()
    t.join(timeout=2)
    assert not t.is_alive()


def test_attach_after_close_does_not_run():
    sc = SafeClose()
    sc.send_close_signal(None)
    ran = []
    sc.attach(lambda done, sig: (ran.append(True), done()))
    sc.done()
    sc.close_wait()
    assert ran == []
    assert sc.error() is None


def test_done_and_close_wait_repeatable():
    sc = SafeClose()
    sc.done()
    sc.done()
    sc.close_wait()
    sc.close_wait()
    assert sc.receive_close_signal().is_set()


def test_worker_can_send_close_signal():
    sc = SafeClose()
    err = ValueError("fatal")
    started = threading.Event()

    def worker(done, close_signal):
        started.set()
        sc.send_close_signal(err)
        done()

    sc.attach(worker)
    assert sc.receive_close_signal().wait(timeout=2)
    assert started.is_set()
    sc.done()
    sc.close_wait()
    assert sc.error() is err
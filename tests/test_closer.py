import threading

from pricefeeder.closer import Closer


def test_new_closer_is_open():
    closer = Closer()
    assert closer.is_closed() is False
    assert closer.wait(0.01) is False


def test_close_marks_closed():
    closer = Closer()
    closer.close()
    assert closer.is_closed() is True
    assert closer.wait(0) is True


def test_close_twice_is_safe():
    closer = Closer()
    closer.close()
    closer.close()
    assert closer.is_closed() is True


def test_waiting_thread_is_released():
    closer = Closer()
    timer = threading.Timer(0.05, closer.close)
    timer.start()
    try:
        assert closer.wait(5) is True
    finally:
        timer.cancel()
    assert closer.is_closed() is True
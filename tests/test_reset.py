from pcsrequester.downloader.reset import ResetController


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_limit_reached():
    clock = FakeClock()
    rc = ResetController(2, clock=clock)
    assert rc.can_reset() is True
    rc.add_reset_num()
    assert rc.can_reset() is True
    rc.add_reset_num()
    assert rc.can_reset() is False


def test_resets_expire_after_window():
    clock = FakeClock()
    rc = ResetController(1, clock=clock)
    rc.add_reset_num()
    clock.now += 5
    assert rc.can_reset() is False
    clock.now += 5
    assert rc.can_reset() is True


def test_zero_limit_never_allows():
    rc = ResetController(0, clock=FakeClock())
    assert rc.can_reset() is False
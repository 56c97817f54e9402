import asyncio

from terra_chat.client.poller import Poller


class Counter:
    def __init__(self, fail_first=False):
        self.calls = 0
        self.fail_first = fail_first

    async def __call__(self):
        self.calls += 1
        if self.fail_first and self.calls == 1:
            raise RuntimeError("network hiccup")


async def test_ticks_on_a_fixed_interval():
    tick = Counter()
    poller = Poller(tick, interval=0.02)
    poller.start()
    await asyncio.sleep(0.11)
    await poller.stop()

    assert 3 <= tick.calls <= 7
    assert not poller.running


async def test_hidden_view_does_not_poll():
    tick = Counter()
    poller = Poller(tick, interval=0.02)
    poller.set_visible(False)
    poller.start()
    await asyncio.sleep(0.1)

    assert tick.calls == 0
    await poller.stop()


async def test_becoming_visible_ticks_immediately():
    tick = Counter()
    poller = Poller(tick, interval=10)
    poller.set_visible(False)
    poller.start()
    await asyncio.sleep(0.01)

    poller.set_visible(True)
    await asyncio.sleep(0.01)

    assert tick.calls == 1
    await poller.stop()


async def test_failing_tick_does_not_stop_the_loop():
    tick = Counter(fail_first=True)
    poller = Poller(tick, interval=0.01)
    poller.start()
    await asyncio.sleep(0.06)
    await poller.stop()

    assert tick.calls >= 2

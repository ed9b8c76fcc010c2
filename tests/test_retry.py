import unittest


class _FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class _FakeEvent:
    """Stands in for threading.Event; waiting advances the fake clock instead of sleeping"""

    def __init__(self, clock, set_after=None):
        self.clock = clock
        self.waits = []
        self._set = False
        self.set_after = set_after

    def is_set(self):
        return self._set

    def set(self):
        self._set = True

    def wait(self, timeout):
        self.waits.append(timeout)
        self.clock.now += timeout
        if self.set_after is not None and len(self.waits) >= self.set_after:
            self._set = True
        return self._set


def _invoker(max_elapsed=10.0, **kwargs):
    from issuesync.services.retry import ResilientInvoker

    clock = _FakeClock()
    event = kwargs.pop("cancel_event", None) or _FakeEvent(clock)
    invoker = ResilientInvoker(
        max_elapsed,
        initial_interval=1.0,
        multiplier=2.0,
        max_interval=4.0,
        randomization=0,
        cancel_event=event,
        clock=clock,
        **kwargs,
    )
    return invoker, event


class ResilientInvokerTests(unittest.TestCase):
    def test_returns_result_without_waiting(self):
        invoker, event = _invoker()

        self.assertEqual(invoker.invoke(lambda: "ok"), "ok")
        self.assertEqual(event.waits, [])

    def test_retries_with_growing_capped_interval(self):
        notified = []
        invoker, event = _invoker(max_elapsed=100.0, notify=lambda e, ms: notified.append((str(e), ms)))
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 5:
                raise ConnectionError(f"boom {len(attempts)}")
            return "done"

        self.assertEqual(invoker.invoke(flaky), "done")
        self.assertEqual(event.waits, [1.0, 2.0, 4.0, 4.0])
        self.assertEqual(notified[0], ("boom 1", 1000))
        self.assertEqual([ms for _, ms in notified], [1000, 2000, 4000, 4000])

    def test_gives_up_when_elapsed_budget_is_spent(self):
        from issuesync.exceptions import RetryExhaustedError

        invoker, event = _invoker(max_elapsed=5.0)
        error = ValueError("still failing")

        def failing():
            raise error

        with self.assertRaises(RetryExhaustedError) as ctx:
            invoker.invoke(failing)

        self.assertIs(ctx.exception.last_error, error)
        self.assertIs(ctx.exception.__cause__, error)
        # 1s then 2s fit in 5s; the next 4s wait would not
        self.assertEqual(event.waits, [1.0, 2.0])
        self.assertEqual(ctx.exception.elapsed, 3.0)

    def test_cancel_interrupts_wait(self):
        from issuesync.exceptions import SyncCancelled

        clock = _FakeClock()
        event = _FakeEvent(clock, set_after=1)
        invoker, _ = _invoker(max_elapsed=100.0, cancel_event=event)
        calls = []

        def failing():
            calls.append(1)
            raise ConnectionError("down")

        with self.assertRaises(SyncCancelled):
            invoker.invoke(failing)
        self.assertEqual(len(calls), 1)

    def test_cancelled_before_first_attempt(self):
        from issuesync.exceptions import SyncCancelled

        invoker, event = _invoker()
        event.set()
        calls = []

        with self.assertRaises(SyncCancelled):
            invoker.invoke(lambda: calls.append(1))
        self.assertEqual(calls, [])

    def test_sync_cancelled_is_not_retried(self):
        from issuesync.exceptions import SyncCancelled

        invoker, event = _invoker()

        def cancelled():
            raise SyncCancelled("stop")

        with self.assertRaises(SyncCancelled):
            invoker.invoke(cancelled)
        self.assertEqual(event.waits, [])

    def test_log_retry_logs_at_error(self):
        from issuesync.services.retry import log_retry

        with self.assertLogs("issuesync.services.retry", level="ERROR") as logs:
            log_retry("JIRA")(RuntimeError("503"), 750)

        self.assertIn("unable to complete JIRA request; retrying in 750ms: 503", logs.output[0])


if __name__ == "__main__":
    unittest.main()

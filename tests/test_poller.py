import unittest

from api_method_framework.errors import ConfigurationError, PollTimeoutError, TemplateRenderError
from api_method_framework.poller import LogStrategy, PollHandle, PollSpec, is_successful, poll
from api_method_framework.transport import TransportResponse


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _response(status: int, text: str = "") -> TransportResponse:
    return TransportResponse(method="GET", url="http://api/x", status_code=status, text=text)


class ScriptedAttempts:
    def __init__(self, *statuses: int) -> None:
        self.statuses = list(statuses)
        self.calls = []

    def __call__(self, quiet: bool) -> TransportResponse:
        self.calls.append(quiet)
        index = min(len(self.calls), len(self.statuses)) - 1
        return _response(self.statuses[index], text=f"attempt {len(self.calls)}")


class PollTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()

    def _poll(self, spec, attempt):
        return poll(spec, attempt, clock=self.clock, sleep=self.clock.sleep)

    def test_times_out_after_three_or_four_attempts(self) -> None:
        attempt = ScriptedAttempts(500)
        spec = PollSpec(interval=0.1, timeout=0.35, predicate=lambda r: False)
        with self.assertRaises(PollTimeoutError) as ctx:
            self._poll(spec, attempt)
        self.assertIn(len(attempt.calls), (3, 4))
        self.assertEqual(ctx.exception.attempts, len(attempt.calls))
        self.assertEqual(ctx.exception.last_response.text, f"attempt {len(attempt.calls)}")

    def test_stops_on_first_satisfying_attempt(self) -> None:
        attempt = ScriptedAttempts(503, 200, 200)
        spec = PollSpec(interval=0.1, timeout=5)
        response = self._poll(spec, attempt)
        self.assertEqual(len(attempt.calls), 2)
        self.assertEqual(response.text, "attempt 2")
        self.assertEqual(self.clock.sleeps, [0.1])

    def test_after_execute_runs_for_every_attempt(self) -> None:
        seen = []
        attempt = ScriptedAttempts(500, 500, 201)
        spec = PollSpec(interval=0, timeout=1, after_execute=(lambda r: seen.append(r.status_code),))
        self._poll(spec, attempt)
        self.assertEqual(seen, [500, 500, 201])

    def test_after_execute_sees_last_attempt_on_timeout(self) -> None:
        seen = []
        attempt = ScriptedAttempts(500)
        spec = PollSpec(interval=1, timeout=2.5, after_execute=(seen.append,))
        with self.assertRaises(PollTimeoutError) as ctx:
            self._poll(spec, attempt)
        self.assertIs(seen[-1], ctx.exception.last_response)

    def test_hard_errors_abort_immediately(self) -> None:
        calls = []

        def attempt(quiet):
            calls.append(quiet)
            raise TemplateRenderError("unresolved")

        with self.assertRaises(TemplateRenderError):
            self._poll(PollSpec(interval=0.1, timeout=10), attempt)
        self.assertEqual(len(calls), 1)

    def test_quiet_flag_follows_log_strategy(self) -> None:
        for strategy, quiet in ((LogStrategy.ALL, False), (LogStrategy.LAST_ONLY, True), (LogStrategy.NONE, True)):
            with self.subTest(strategy=strategy):
                attempt = ScriptedAttempts(200)
                self._poll(PollSpec(log_strategy=strategy), attempt)
                self.assertEqual(attempt.calls, [quiet])

    def test_negative_interval_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            self._poll(PollSpec(interval=-1), ScriptedAttempts(200))

    def test_default_predicate_is_2xx(self) -> None:
        self.assertTrue(is_successful(_response(204)))
        self.assertFalse(is_successful(_response(302)))
        self.assertFalse(is_successful(_response(0)))


class PollHandleTests(unittest.TestCase):
    def test_builder_steps_do_not_mutate_original(self) -> None:
        base = PollHandle(ScriptedAttempts(200))
        tuned = base.poll_every(0.5).stop_after(3).with_log_strategy(LogStrategy.NONE)
        self.assertEqual(base.spec, PollSpec())
        self.assertEqual((tuned.spec.interval, tuned.spec.timeout), (0.5, 3))
        self.assertIs(tuned.spec.log_strategy, LogStrategy.NONE)

    def test_do_after_execute_appends_callbacks(self) -> None:
        first, second = [], []
        handle = PollHandle(ScriptedAttempts(200)).do_after_execute(first.append).do_after_execute(second.append)
        handle.execute(sleep=lambda s: None)
        self.assertEqual(len(first), 1)
        self.assertEqual(len(second), 1)

    def test_until_body_contains(self) -> None:
        clock = FakeClock()
        handle = PollHandle(ScriptedAttempts(200)).poll_every(1).stop_after(10).until_body_contains("attempt 3")
        response = handle.execute(clock=clock, sleep=clock.sleep)
        self.assertEqual(response.text, "attempt 3")

    def test_until_status(self) -> None:
        clock = FakeClock()
        attempts = ScriptedAttempts(202, 202, 200)
        handle = PollHandle(attempts).poll_every(1).stop_after(10).until_status(200)
        self.assertEqual(handle.execute(clock=clock, sleep=clock.sleep).status_code, 200)
        self.assertEqual(len(attempts.calls), 3)


if __name__ == "__main__":
    unittest.main()

import os
import sys
import unittest

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from core.errors import ConflictError, TransportError  # noqa: E402
from sync.worker import SyncCommand, SyncWorker, dispatch, execute  # noqa: E402


class Flaky:
    """Fails with the given errors, then succeeds."""

    def __init__(self, *errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.attempts = 0

    async def __call__(self):
        self.attempts += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class WorkerTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_transport_errors_are_retried(self):
        run = Flaky(TransportError("blip", "timeout"))
        results = []
        ok = await execute(SyncCommand("job", run, results.append), attempts=2, backoff=0)
        self.assertTrue(ok)
        self.assertEqual(run.attempts, 2)
        self.assertEqual(results, ["ok"])

    async def test_gives_up_after_attempts(self):
        run = Flaky(*[TransportError("down", "unavailable")] * 3)
        failures = []
        ok = await execute(SyncCommand("job", run, on_failure=failures.append), attempts=3, backoff=0)
        self.assertFalse(ok)
        self.assertEqual(run.attempts, 3)
        self.assertEqual(failures[0].code, "unavailable")

    async def test_conflict_is_not_retried(self):
        run = Flaky(ConflictError("dup"))
        failures = []
        await execute(SyncCommand("job", run, on_failure=failures.append), attempts=3, backoff=0)
        self.assertEqual(run.attempts, 1)
        self.assertIsInstance(failures[0], ConflictError)

    async def test_unexpected_error_is_reported_once(self):
        run = Flaky(FileExistsError("store path is a file"))
        failures = []
        ok = await execute(SyncCommand("job", run, on_failure=failures.append), attempts=3, backoff=0)
        self.assertFalse(ok)
        self.assertEqual(run.attempts, 1)
        self.assertIsInstance(failures[0], TransportError)
        self.assertEqual(failures[0].code, "unknown")
        self.assertIn("store path is a file", str(failures[0]))

    async def test_worker_reports_unexpected_error_and_keeps_going(self):
        worker = SyncWorker(attempts=2)
        failures = []
        done = []
        worker.submit("broken", Flaky(ValueError("bad document")), on_failure=failures.append)
        worker.submit("next", Flaky(), on_success=done.append)
        await worker.join()
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], TransportError)
        self.assertEqual(done, ["ok"])
        await worker.stop()

    async def test_worker_runs_in_submission_order(self):
        worker = SyncWorker(attempts=1)
        order = []

        def job(n):
            async def run():
                order.append(n)
                return n

            return run

        for n in range(5):
            worker.submit(f"job {n}", job(n))
        self.assertTrue(worker.running)
        await worker.join()
        self.assertEqual(order, [0, 1, 2, 3, 4])
        self.assertEqual(worker.pending, 0)
        await worker.stop()
        self.assertFalse(worker.running)

    async def test_broken_callback_does_not_stop_worker(self):
        worker = SyncWorker(attempts=1)
        done = []

        def explode(_):
            raise RuntimeError("boom")

        worker.submit("first", Flaky(), on_success=explode)
        worker.submit("second", Flaky(), on_success=done.append)
        await worker.join()
        self.assertEqual(done, ["ok"])
        await worker.stop()

    async def test_dispatch_without_worker_runs_inline(self):
        seen = []

        async def on_success(result):
            seen.append(result)

        await dispatch(None, "inline", Flaky(result=7), on_success)
        self.assertEqual(seen, [7])


if __name__ == "__main__":
    unittest.main()

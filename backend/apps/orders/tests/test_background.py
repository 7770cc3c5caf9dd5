"""
Tests for the side-effect runner used for QR rendering and external sync.
"""
from unittest import mock
from django.test import SimpleTestCase, TestCase, override_settings
from apps.orders.services import background
from apps.orders.services.background import on_commit_in_background, run_in_background


class RunInBackgroundTests(SimpleTestCase):

    @override_settings(SIDE_EFFECTS_INLINE=False)
    @mock.patch('apps.orders.services.background.threading.Thread')
    def test_starts_daemon_thread(self, thread_cls):
        task = mock.Mock()

        result = run_in_background(task, label='sync-1')

        thread_cls.assert_called_once_with(
            target=background._worker, args=(task, 'sync-1'), name='side-effect-sync-1', daemon=True
        )
        thread_cls.return_value.start.assert_called_once_with()
        self.assertIs(result, thread_cls.return_value)
        task.assert_not_called()

    @override_settings(SIDE_EFFECTS_INLINE=True)
    @mock.patch('apps.orders.services.background.threading.Thread')
    def test_inline_runs_in_calling_thread(self, thread_cls):
        task = mock.Mock()

        self.assertIsNone(run_in_background(task, label='qr-1'))

        task.assert_called_once_with()
        thread_cls.assert_not_called()

    @override_settings(SIDE_EFFECTS_INLINE=True)
    def test_failure_is_logged_not_raised(self):
        task = mock.Mock(side_effect=RuntimeError('platform down'))

        with self.assertLogs('orders', level='ERROR') as logs:
            run_in_background(task, label='sync-2')

        self.assertIn("Background task 'sync-2' failed", logs.output[0])

    @mock.patch('apps.orders.services.background.connection')
    def test_worker_closes_its_connection(self, connection):
        task = mock.Mock(side_effect=RuntimeError('boom'))

        with self.assertLogs('orders', level='ERROR'):
            background._worker(task, 'qr-2')

        connection.close.assert_called_once_with()


class OnCommitInBackgroundTests(TestCase):

    def test_waits_for_commit(self):
        task = mock.Mock()

        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            on_commit_in_background(task, label='sync-3')
        task.assert_not_called()

        with override_settings(SIDE_EFFECTS_INLINE=True):
            for callback in callbacks:
                callback()
        task.assert_called_once_with()

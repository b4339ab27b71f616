from unittest.mock import patch

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.test import TestCase

from common.testing import make_operator, make_request, make_requester
from realtime.notifications import notify_operator_event, notify_requester_event


class NotificationTests(TestCase):
	def setUp(self):
		self.requester = make_requester()
		self.operator = make_operator('op', online_tier='manual')
		self.request = make_request(self.requester, is_emergency=True)
		self.layer = get_channel_layer()

	def _listen(self, group):
		channel = async_to_sync(self.layer.new_channel)()
		async_to_sync(self.layer.group_add)(group, channel)
		return channel

	def test_operator_event_delivered_after_commit(self):
		channel = self._listen('operator_%d' % self.operator.id)

		with self.captureOnCommitCallbacks(execute=True):
			notify_operator_event('dispatch_offer', self.request, self.operator.id, 'Go', extra={'position': 1})

		message = async_to_sync(self.layer.receive)(channel)
		self.assertEqual(message['type'], 'dispatch_offer')
		self.assertEqual(message['request_id'], self.request.id)
		self.assertEqual(message['position'], 1)
		self.assertTrue(message['is_emergency'])

	def test_requester_event_uses_personal_group(self):
		channel = self._listen('user_%d' % self.requester.id)

		with self.captureOnCommitCallbacks(execute=True):
			notify_requester_event('no_operators_available', self.request)

		message = async_to_sync(self.layer.receive)(channel)
		self.assertEqual(message['type'], 'no_operators_available')
		self.assertNotIn('message', message)

	def test_nothing_is_sent_until_commit(self):
		with self.captureOnCommitCallbacks() as callbacks:
			self.assertTrue(notify_operator_event('quote_accepted', self.request, self.operator.id))
		self.assertEqual(len(callbacks), 1)

	def test_missing_recipient_is_skipped(self):
		self.assertFalse(notify_operator_event('quote_declined', self.request, None))

	@patch('realtime.notifications.get_channel_layer', return_value=None)
	def test_missing_channel_layer_only_logs(self, mock_layer):
		with self.assertLogs('realtime.notifications', level='WARNING'):
			with self.captureOnCommitCallbacks(execute=True):
				notify_operator_event('dispatch_offer', self.request, self.operator.id)
		mock_layer.assert_called_once()

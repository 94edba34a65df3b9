"""
Tests for the review workflow, its side effects and inventory updates.
"""
import json
import pytest
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock, call, patch
from botocore.exceptions import ClientError

from conftest import make_prediction, make_submission
from shared import notifications
from shared.config import config
from shared.effects import (
    CompleteTask,
    DecrementStock,
    EffectRunner,
    MarkEquipmentInUse,
    Notify,
    deserialize_effect,
    serialize_effect,
)
from shared.errors import InvalidStateTransition, StorageError, SubmissionNotFound, ValidationError
from shared.inventory import StockLevel, decrement_stock
from shared.review import ReviewWorkflow, approval_effects, should_auto_complete


def reviewed_clock():
    return datetime(2023, 11, 14, 9, 30, tzinfo=timezone.utc)


def condition_failed():
    return ClientError({'Error': {'Code': 'ConditionalCheckFailedException'}}, 'UpdateItem')


@pytest.fixture
def workflow(ledger):
    return ReviewWorkflow(ledger, clock=reviewed_clock)


def make_runner(remaining=50, threshold=10):
    level = StockLevel('cement', remaining, threshold, unit='bags', name='Portland Cement')
    runner = EffectRunner(
        complete_task=MagicMock(),
        decrement_stock=MagicMock(return_value=level),
        mark_equipment_in_use=MagicMock(),
        dispatch=MagicMock(return_value=True),
        defer=MagicMock(return_value=True)
    )
    return runner


def dispatched_kinds(runner):
    return [c[0][0].kind for c in runner._dispatch.call_args_list]


class TestReject:
    """Tests for ReviewWorkflow.reject."""

    @pytest.mark.parametrize('reason', ['', '   ', '\t\n', None])
    def test_blank_reason_rejected_without_mutation(self, workflow, ledger, reason):
        ledger.create(make_submission())
        ledger.get = MagicMock(wraps=ledger.get)

        with pytest.raises(ValidationError):
            workflow.reject('sub-1', 'eng-1', reason)

        ledger.get.assert_not_called()
        assert ledger.submissions['sub-1'].status == 'pending'

    def test_reject_records_reason(self, workflow, ledger):
        ledger.create(make_submission())

        outcome = workflow.reject('sub-1', 'eng-1', '  blurry photo ')

        assert outcome.submission.status == 'rejected'
        assert outcome.submission.rejection_reason == 'blurry photo'
        assert outcome.submission.reviewer_id == 'eng-1'
        assert outcome.submission.reviewed_at == int(reviewed_clock().timestamp())
        assert len(outcome.effects) == 1
        assert outcome.effects[0].event.kind == 'submission_rejected'
        assert outcome.effects[0].event.recipient_id == 'worker-1'

    def test_reject_twice_fails(self, workflow, ledger):
        ledger.create(make_submission())
        workflow.reject('sub-1', 'eng-1', 'blurry photo')

        with pytest.raises(InvalidStateTransition):
            workflow.reject('sub-1', 'eng-1', 'still blurry')

    def test_missing_submission(self, workflow):
        with pytest.raises(SubmissionNotFound):
            workflow.reject('missing', 'eng-1', 'blurry photo')


class TestApprove:
    """Tests for ReviewWorkflow.approve and approval_effects."""

    def test_approve_unreliable_task_photo(self, workflow, ledger):
        ledger.create(make_submission(prediction=make_prediction(0.56), classifier_driven=True))

        outcome = workflow.approve('sub-1', 'eng-1')

        assert outcome.submission.status == 'approved'
        assert [type(e) for e in outcome.effects] == [Notify]

    def test_reliable_prediction_completes_task(self, workflow, ledger):
        ledger.create(make_submission(prediction=make_prediction(0.91), classifier_driven=True))

        outcome = workflow.approve('sub-1', 'eng-1')

        assert outcome.effects[0] == CompleteTask('task-1', 'eng-1')
        assert isinstance(outcome.effects[-1], Notify)

    def test_mismatched_prediction_does_not_complete(self):
        submission = make_submission(
            prediction=make_prediction(0.95, task_match=False, predicted_activity='painting'),
            classifier_driven=True
        )
        assert should_auto_complete(submission) is False

    def test_manual_photo_does_not_complete(self):
        assert should_auto_complete(make_submission()) is False

    def test_material_effects(self):
        submission = make_submission(kind='material', task_id=None, item_id='cement', quantity=5.0)
        effects = approval_effects(submission, 'eng-1')
        assert effects[0] == DecrementStock('cement', 5.0, 'eng-1', 'proj-1', 'sub-1')
        assert effects[1].event.kind == 'submission_approved'

    def test_equipment_effects(self):
        submission = make_submission(kind='equipment', task_id=None, item_id='mixer-2')
        effects = approval_effects(submission, 'eng-1')
        assert effects[0] == MarkEquipmentInUse('mixer-2', 'worker-1')

    def test_damage_report_only_notifies(self):
        submission = make_submission(kind='damage', task_id=None, item_id='scaffold-1')
        assert [type(e) for e in approval_effects(submission, 'eng-1')] == [Notify]

    def test_approve_twice_fails(self, workflow, ledger):
        ledger.create(make_submission())
        workflow.approve('sub-1', 'eng-1')
        with pytest.raises(InvalidStateTransition):
            workflow.approve('sub-1', 'eng-1')


class TestEffectRunner:
    """Tests for EffectRunner.run."""

    def test_low_stock_at_threshold_emits_one_alert(self):
        runner = make_runner(remaining=10, threshold=10)
        submission = make_submission(kind='material', task_id=None, item_id='cement', quantity=5.0)

        report = runner.run(approval_effects(submission, 'eng-1'))

        assert report.ok
        assert dispatched_kinds(runner) == ['low_stock', 'submission_approved']
        low_stock = runner._dispatch.call_args_list[0][0][0]
        assert low_stock.recipient_id == 'eng-1'
        assert low_stock.payload['remaining'] == 10
        assert low_stock.payload['itemName'] == 'Portland Cement'
        assert low_stock.payload['unit'] == 'bags'

    def test_stock_above_threshold_no_alert(self):
        runner = make_runner(remaining=11, threshold=10)
        submission = make_submission(kind='material', task_id=None, item_id='cement', quantity=5.0)

        runner.run(approval_effects(submission, 'eng-1'))

        assert dispatched_kinds(runner) == ['submission_approved']

    def test_notification_failure_does_not_hide_inventory_change(self):
        runner = make_runner(remaining=40)
        runner._dispatch.return_value = False
        effects = [DecrementStock('cement', 5.0, 'eng-1')]
        effects.append(Notify(MagicMock(kind='submission_approved', recipient_id='worker-1')))

        report = runner.run(effects)

        assert not report.ok
        assert report.applied == [effects[0]]
        assert report.failed[0][0] == effects[1]
        runner._decrement_stock.assert_called_once_with('cement', 5.0, submission_id=None)

    def test_failed_effect_does_not_stop_the_rest(self):
        runner = make_runner()
        runner._complete_task.side_effect = StorageError('Failed to update tasks')
        effects = [CompleteTask('task-1', 'eng-1'), MarkEquipmentInUse('mixer-2', 'worker-1')]

        report = runner.run(effects)

        assert report.applied == [effects[1]]
        assert report.to_dict()['failed'][0]['effect'] == 'CompleteTask'

    def test_unknown_effect_reported(self):
        runner = make_runner()
        report = runner.run(['not an effect'])
        assert len(report.failed) == 1
        runner._defer.assert_not_called()

    def test_failed_effects_deferred_with_next_attempt(self):
        runner = make_runner()
        runner._complete_task.side_effect = StorageError('Failed to update tasks')
        effects = [CompleteTask('task-1', 'eng-1'), MarkEquipmentInUse('mixer-2', 'worker-1')]

        report = runner.run(effects, source_id='sub-1')

        assert report.deferred is True
        runner._defer.assert_called_once_with([effects[0]], 2, 'sub-1')
        assert report.to_dict()['deferred'] is True

    def test_nothing_deferred_when_all_apply(self):
        runner = make_runner()
        report = runner.run([MarkEquipmentInUse('mixer-2', 'worker-1')])
        assert report.deferred is False
        runner._defer.assert_not_called()

    def test_gives_up_at_max_attempts(self):
        runner = make_runner()
        runner._mark_equipment_in_use.side_effect = StorageError('throttled')

        report = runner.run([MarkEquipmentInUse('mixer-2', 'worker-1')], attempt=config.EFFECT_MAX_ATTEMPTS)

        assert not report.ok
        assert report.deferred is False
        runner._defer.assert_not_called()

    def test_queue_unavailable_leaves_effect_undeferred(self):
        runner = make_runner()
        runner._defer.return_value = False
        runner._mark_equipment_in_use.side_effect = StorageError('throttled')

        report = runner.run([MarkEquipmentInUse('mixer-2', 'worker-1')])

        assert report.deferred is False
        runner._defer.assert_called_once()


class TestReplayEffects:
    """Tests for queuing failed effects and replaying them."""

    def test_notify_survives_queue_encoding(self):
        effect = Notify(notifications.low_stock('eng-1', 'cement', 3, unit='bags', item_name='Portland Cement'))
        queued = json.loads(json.dumps(serialize_effect(effect), default=str))
        assert deserialize_effect(queued) == effect

    def test_unknown_queued_effect(self):
        with pytest.raises(ValueError):
            deserialize_effect({'type': 'DropTable', 'fields': {}})

    def test_malformed_queued_effect(self):
        with pytest.raises(ValueError):
            deserialize_effect({'type': 'DecrementStock', 'fields': {'item_id': 'cement'}})

    @patch('shared.sqs.send_message')
    def test_throttled_decrement_replayed_from_queue(self, mock_send):
        from handlers.review import replay_effects

        mock_send.return_value = True
        decrement = MagicMock(side_effect=[StorageError('throttled'), StockLevel('cement', 40, 10)])
        runner = EffectRunner(
            complete_task=MagicMock(),
            decrement_stock=decrement,
            mark_equipment_in_use=MagicMock(),
            dispatch=MagicMock(return_value=True)
        )
        submission = make_submission(kind='material', task_id=None, item_id='cement', quantity=5.0)

        first = runner.run(approval_effects(submission, 'eng-1'), source_id='sub-1')

        assert first.deferred is True
        message = mock_send.call_args[0][1]
        assert message['sourceId'] == 'sub-1'
        assert message['attempt'] == 2
        assert [e['type'] for e in message['effects']] == ['DecrementStock']

        record = {'body': json.dumps(message, default=str)}
        with patch.object(replay_effects, 'runner', runner):
            result = replay_effects.handler({'Records': [record]}, None)

        assert result == {'message': 'Replayed 1 of 1 messages'}
        assert decrement.call_args_list[-1] == call('cement', 5.0, submission_id='sub-1')
        # Nothing left to queue after the replay
        assert mock_send.call_count == 1

    def test_bad_message_does_not_stop_batch(self):
        from handlers.review import replay_effects

        runner = make_runner()
        good = {'sourceId': 'sub-2', 'attempt': 2, 'effects': [
            serialize_effect(MarkEquipmentInUse('mixer-2', 'worker-1'))
        ]}
        records = [{'body': 'not json'}, {'body': json.dumps(good)}]

        with patch.object(replay_effects, 'runner', runner):
            result = replay_effects.handler({'Records': records}, None)

        assert result == {'message': 'Replayed 1 of 2 messages'}
        runner._mark_equipment_in_use.assert_called_once_with('mixer-2', 'worker-1')

    def test_empty_event(self):
        from handlers.review import replay_effects
        assert replay_effects.handler({}, None) == {'message': 'No records to process'}


class TestDecrementStock:
    """Tests for the clamped inventory decrement."""

    @patch('shared.dynamo.update_item')
    def test_enough_stock(self, mock_update):
        mock_update.return_value = {'itemId': 'cement', 'quantity': Decimal('15'), 'unit': 'bags'}

        level = decrement_stock('cement', 5)

        assert level.remaining == 15
        assert level.is_low is False
        assert mock_update.call_count == 1
        assert ':amount' in mock_update.call_args[1]['expression_values']

    @patch('shared.dynamo.update_item')
    def test_clamps_at_zero(self, mock_update):
        mock_update.side_effect = [condition_failed(), {'itemId': 'cement', 'quantity': Decimal('0')}]

        level = decrement_stock('cement', 30)

        assert level.remaining == 0
        assert level.is_low is True
        zero_write = mock_update.call_args_list[1][1]
        assert zero_write['expression_values'][':zero'] == 0
        assert 'quantity < :amount' in zero_write['condition_expression']

    @patch('shared.dynamo.update_item')
    def test_item_threshold_overrides_default(self, mock_update):
        mock_update.return_value = {'quantity': Decimal('20'), 'lowStockThreshold': Decimal('25')}
        assert decrement_stock('rebar', 1).is_low is True

    @patch('shared.dynamo.get_item')
    @patch('shared.dynamo.update_item')
    def test_gives_up_after_retries(self, mock_update, mock_get):
        mock_update.side_effect = condition_failed()
        mock_get.return_value = {'itemId': 'cement', 'quantity': Decimal('3')}
        with pytest.raises(StorageError):
            decrement_stock('cement', 1)
        assert mock_update.call_count == 6
        assert mock_get.call_count == 3

    @patch('shared.dynamo.get_item')
    @patch('shared.dynamo.update_item')
    def test_missing_item(self, mock_update, mock_get):
        mock_update.side_effect = condition_failed()
        mock_get.return_value = None
        with pytest.raises(StorageError):
            decrement_stock('ghost-item', 1)
        assert mock_update.call_count == 2

    @patch('shared.dynamo.update_item')
    def test_missing_quantity_clamps_to_zero(self, mock_update):
        mock_update.side_effect = [condition_failed(), {'itemId': 'cement'}]

        level = decrement_stock('cement', 2)

        assert level.remaining == 0
        zero_write = mock_update.call_args_list[1][1]
        assert 'attribute_not_exists(quantity)' in zero_write['condition_expression']

    @patch('shared.dynamo.update_item')
    def test_records_submission(self, mock_update):
        mock_update.return_value = {'itemId': 'cement', 'quantity': Decimal('15')}

        decrement_stock('cement', 5, submission_id='sub-1')

        kwargs = mock_update.call_args[1]
        assert 'NOT contains(appliedSubmissions, :sid)' in kwargs['condition_expression']
        assert 'ADD appliedSubmissions :sids' in kwargs['update_expression']
        assert kwargs['expression_values'][':sids'] == {'sub-1'}

    @patch('shared.dynamo.get_item')
    @patch('shared.dynamo.update_item')
    def test_already_applied_submission_not_decremented_again(self, mock_update, mock_get):
        mock_update.side_effect = condition_failed()
        mock_get.return_value = {
            'itemId': 'cement',
            'quantity': Decimal('8'),
            'name': 'Portland Cement',
            'appliedSubmissions': {'sub-1'}
        }

        level = decrement_stock('cement', 5, submission_id='sub-1')

        assert level.remaining == 8
        assert level.name == 'Portland Cement'
        assert mock_update.call_count == 2
        assert mock_get.call_args[1]['consistent'] is True

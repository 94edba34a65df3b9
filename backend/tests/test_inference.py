"""
Tests for status inference and the classifier lifecycle.
"""
import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from conftest import CONCRETE_OUTPUT, FakeClassifier
from shared.errors import ModelUnavailable, NotClassifierEligible
from shared.inference import (
    ClassifierHandle,
    ModelState,
    StatusInferenceEngine,
    confidence_level,
    format_status,
    is_classifier_eligible,
    is_reliable,
    progress_percent,
    task_mismatch,
    task_mismatch_warning,
)


def fixed_clock():
    return datetime(2023, 11, 14, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    return StatusInferenceEngine(clock=fixed_clock)


class TestPredict:
    """Tests for StatusInferenceEngine.predict."""

    def test_concrete_pouring_example(self, engine):
        """Only the known activity's scores count: 0.42 / 0.75 = 0.56."""
        prediction = engine.predict(CONCRETE_OUTPUT, 'concrete_pouring')

        assert prediction.status == 'completed'
        assert prediction.confidence == pytest.approx(0.56)
        assert prediction.task_match is True
        assert prediction.progress_percent == 100
        assert prediction.predicted_activity is None
        assert is_reliable(prediction.confidence, prediction.task_match) is False

    def test_confidence_is_share_of_known_activity(self, engine):
        outputs = [
            [('roofing_completed', 0.2), ('roofing_in_progress', 0.3), ('roofing_not_started', 0.1)],
            [('roofing_completed', 0.001), ('painting_completed', 0.9)],
            [('roofing_in_progress', 5.0), ('roofing_not_started', 3.0)],
        ]
        for raw in outputs:
            subset = [score for label, score in raw if label.startswith('roofing_')]
            prediction = engine.predict(raw, 'roofing')
            assert prediction.confidence == pytest.approx(max(subset) / sum(subset), abs=1e-6)
            assert 0.0 < prediction.confidence <= 1.0

    def test_already_normalized_subset_unchanged(self, engine):
        raw = [('chb_laying_completed', 0.5), ('chb_laying_in_progress', 0.25), ('chb_laying_not_started', 0.25)]
        assert engine.predict(raw, 'chb_laying').confidence == pytest.approx(0.5, abs=1e-6)

    def test_all_zero_subset_spreads_evenly(self, engine):
        raw = [('painting_completed', 0.0), ('painting_in_progress', 0.0), ('tile_laying_completed', 0.9)]
        prediction = engine.predict(raw, 'painting')

        assert prediction.task_match is True
        assert prediction.confidence == pytest.approx(0.5)
        # Ties go to the first entry
        assert prediction.status == 'completed'

    def test_tie_goes_to_first_label(self, engine):
        raw = [('chb_laying_in_progress', 0.4), ('chb_laying_completed', 0.4)]
        prediction = engine.predict(raw, 'chb_laying')
        assert prediction.status == 'in_progress'
        assert prediction.progress_percent == 50

    def test_single_matching_label_is_certain(self, engine):
        raw = [('tile_laying_not_started', 0.05), ('painting_completed', 0.95)]
        prediction = engine.predict(raw, 'tile_laying')
        assert prediction.status == 'not_started'
        assert prediction.confidence == pytest.approx(1.0)
        assert prediction.progress_percent == 0

    def test_mismatch_falls_back_to_global_top(self, engine):
        raw = [('painting_in_progress', 0.2), ('tile_laying_completed', 0.7), ('chb_laying_completed', 0.1)]
        prediction = engine.predict(raw, 'roofing')

        assert prediction.task_match is False
        assert prediction.status == 'completed'
        assert prediction.confidence == pytest.approx(0.7)
        assert prediction.predicted_activity == 'tile_laying'

    def test_mismatch_is_never_reliable(self, engine):
        raw = [('painting_completed', 0.99)]
        prediction = engine.predict(raw, 'roofing')
        assert is_reliable(prediction.confidence, prediction.task_match) is False

    def test_empty_output_raises(self, engine):
        with pytest.raises(ValueError):
            engine.predict([], 'roofing')

    def test_ineligible_activity_raises(self, engine):
        with pytest.raises(NotClassifierEligible):
            engine.predict(CONCRETE_OUTPUT, 'electrical_rough_in')

    def test_produced_at_from_clock(self, engine):
        prediction = engine.predict(CONCRETE_OUTPUT, 'concrete_pouring')
        assert prediction.produced_at == '2023-11-14T08:00:00+00:00'


class TestClassify:
    """Tests for StatusInferenceEngine.classify."""

    def test_ready_classifier(self):
        runtime = FakeClassifier(CONCRETE_OUTPUT)
        engine = StatusInferenceEngine(ClassifierHandle.ready(runtime), clock=fixed_clock)

        prediction = engine.classify('/tmp/photo.jpg', 'concrete_pouring')

        assert prediction.status == 'completed'
        assert runtime.calls == ['/tmp/photo.jpg']

    def test_unavailable_model_returns_none(self):
        loader = MagicMock(side_effect=RuntimeError('endpoint missing'))
        engine = StatusInferenceEngine(ClassifierHandle(loader))

        assert engine.classify('/tmp/photo.jpg', 'roofing') is None
        assert engine.classify('/tmp/photo.jpg', 'roofing') is None
        loader.assert_called_once()

    def test_runtime_error_returns_none(self):
        runtime = FakeClassifier(error=IOError('corrupt jpeg'))
        engine = StatusInferenceEngine(ClassifierHandle.ready(runtime))
        assert engine.classify('/tmp/photo.jpg', 'roofing') is None

    def test_empty_output_returns_none(self):
        engine = StatusInferenceEngine(ClassifierHandle.ready(FakeClassifier([])))
        assert engine.classify('/tmp/photo.jpg', 'roofing') is None

    def test_no_handle_returns_none(self):
        assert StatusInferenceEngine().classify('/tmp/photo.jpg', 'roofing') is None

    def test_ineligible_activity_still_raises(self):
        engine = StatusInferenceEngine(ClassifierHandle.ready(FakeClassifier(CONCRETE_OUTPUT)))
        with pytest.raises(NotClassifierEligible):
            engine.classify('/tmp/photo.jpg', 'excavation')


class TestClassifierHandle:

    def test_loads_once(self):
        runtime = FakeClassifier()
        loader = MagicMock(return_value=runtime)
        handle = ClassifierHandle(loader)

        assert handle.state == ModelState.UNINITIALIZED
        assert handle.get() is runtime
        assert handle.get() is runtime
        assert handle.state == ModelState.READY
        loader.assert_called_once()

    def test_failure_is_cached(self):
        loader = MagicMock(side_effect=RuntimeError('no endpoint'))
        handle = ClassifierHandle(loader)

        with pytest.raises(ModelUnavailable):
            handle.get()
        with pytest.raises(ModelUnavailable):
            handle.get()

        assert handle.state == ModelState.UNAVAILABLE
        assert handle.error == 'no endpoint'
        loader.assert_called_once()


class TestHelpers:

    def test_progress_mapping(self):
        assert progress_percent('not_started') == 0
        assert progress_percent('in_progress') == 50
        assert progress_percent('completed') == 100

    def test_progress_unknown_status(self):
        with pytest.raises(KeyError):
            progress_percent('paused')

    @pytest.mark.parametrize('confidence,task_match,expected', [
        (0.70, True, True),
        (0.95, True, True),
        (0.69, True, False),
        (0.70, False, False),
        (0.99, False, False),
        (0.0, True, False),
    ])
    def test_is_reliable(self, confidence, task_match, expected):
        assert is_reliable(confidence, task_match) is expected

    def test_confidence_levels(self):
        assert confidence_level(0.85) == 'high'
        assert confidence_level(0.80) == 'high'
        assert confidence_level(0.75) == 'medium'
        assert confidence_level(0.56) == 'low'

    def test_classifier_allow_list(self):
        for activity in ('concrete_pouring', 'chb_laying', 'roofing', 'tile_laying', 'painting'):
            assert is_classifier_eligible(activity)
        assert not is_classifier_eligible('roof_sheeting')
        assert not is_classifier_eligible(None)

    def test_format_status(self):
        assert format_status('in_progress') == 'In Progress'
        assert format_status('completed') == 'Completed'

    def test_mismatch_warning(self, engine):
        prediction = engine.predict([('tile_laying_completed', 0.8)], 'painting')
        warning = task_mismatch_warning(prediction)
        assert 'Tile Laying' in warning

        mismatch = task_mismatch(prediction, 'painting')
        assert mismatch.expected_activity == 'painting'
        assert mismatch.predicted_activity == 'tile_laying'

    def test_roofing_mismatch_uses_task_name(self, engine):
        prediction = engine.predict([('roofing_completed', 0.8)], 'painting')
        assert 'Roof Sheeting' in task_mismatch_warning(prediction)

    def test_no_warning_when_matched(self, engine):
        prediction = engine.predict(CONCRETE_OUTPUT, 'concrete_pouring')
        assert task_mismatch_warning(prediction) is None
        assert task_mismatch(prediction, 'concrete_pouring') is None

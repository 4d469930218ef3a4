"""
Unit Tests for the Live Face Comparator
"""
import pytest
from unittest.mock import AsyncMock, MagicMock


REFERENCE = [0.1] * 128
SAME_PERSON = [0.11] * 128       # distance ~0.11
OTHER_PERSON = [0.3] * 128       # distance ~2.26


def make_comparator(frame_source, fake_transport, descriptor, **kwargs):
    from proctoring.detectors import LiveFaceComparator

    extractor = MagicMock()
    extractor.extract.return_value = descriptor
    kwargs.setdefault("reference_descriptor", REFERENCE)
    kwargs.setdefault("attempt_id", "attempt-1")
    return LiveFaceComparator(frame_source, extractor, transport=fake_transport, **kwargs)


class TestDescriptorHelpers:
    """Tests for the default comparator and snapshot encoding"""

    def test_euclidean_distance(self):
        from proctoring.detectors.face_verifier import euclidean_distance

        assert euclidean_distance([0.0, 0.0], [3.0, 4.0])["distance"] == pytest.approx(5.0)

    def test_euclidean_distance_shape_mismatch(self):
        from proctoring.detectors.face_verifier import euclidean_distance

        with pytest.raises(ValueError):
            euclidean_distance([0.0, 0.0], [1.0, 2.0, 3.0])

    def test_encode_snapshot(self, make_frame):
        from proctoring.detectors.face_verifier import encode_snapshot

        snapshot = encode_snapshot(make_frame(64, 48))
        assert snapshot.startswith("data:image/jpeg;base64,")


class TestLiveFaceComparator:
    """Tests for periodic identity comparison"""

    @pytest.mark.asyncio
    async def test_match(self, frame_source, fake_transport):
        on_match = MagicMock()
        on_mismatch = MagicMock()
        comparator = make_comparator(
            frame_source, fake_transport, SAME_PERSON,
            on_match=on_match, on_mismatch=on_mismatch
        )

        result = await comparator.compare_once()

        assert result.matched is True
        assert result.snapshot is None
        assert comparator.last_match_score == pytest.approx(result.distance)
        assert comparator.comparison_count == 1
        on_match.assert_called_once_with(result)
        on_mismatch.assert_not_called()

        attempt_id, data = fake_transport.log_face_comparison.await_args.args
        assert attempt_id == "attempt-1"
        assert data["matched"] is True
        assert data["faceDetected"] is True
        assert data["matchScore"] == pytest.approx(result.distance)

    @pytest.mark.asyncio
    async def test_mismatch_attaches_snapshot(self, frame_source, fake_transport):
        on_mismatch = MagicMock()
        comparator = make_comparator(
            frame_source, fake_transport, OTHER_PERSON, on_mismatch=on_mismatch
        )

        result = await comparator.compare_once()

        assert result.matched is False
        assert result.snapshot.startswith("data:image/jpeg;base64,")
        on_mismatch.assert_called_once_with(result)

        data = fake_transport.log_face_comparison.await_args.args[1]
        assert data["matched"] is False
        assert data["snapshotBase64"] == result.snapshot

    @pytest.mark.asyncio
    async def test_threshold_is_read_at_comparison_time(self, frame_source, fake_transport):
        comparator = make_comparator(frame_source, fake_transport, SAME_PERSON)

        assert (await comparator.compare_once()).matched is True

        comparator.mismatch_threshold = 0.05
        assert (await comparator.compare_once()).matched is False

    @pytest.mark.asyncio
    async def test_no_face(self, frame_source, fake_transport):
        on_error = MagicMock()
        comparator = make_comparator(frame_source, fake_transport, None, on_error=on_error)

        result = await comparator.compare_once()

        assert result is None
        assert comparator.comparison_count == 0
        assert on_error.call_args.args[0]["type"] == "no_face_detected"

        data = fake_transport.log_face_comparison.await_args.args[1]
        assert data["faceDetected"] is False
        assert data["faceCount"] == 0

    @pytest.mark.asyncio
    async def test_extractor_error(self, frame_source, fake_transport):
        on_error = MagicMock()
        comparator = make_comparator(frame_source, fake_transport, SAME_PERSON, on_error=on_error)
        comparator.extractor.extract.side_effect = RuntimeError("model not loaded")

        assert await comparator.compare_once() is None
        error = on_error.call_args.args[0]
        assert error["type"] == "comparison_error"
        assert error["message"] == "model not loaded"

    @pytest.mark.asyncio
    async def test_log_failure_does_not_interrupt(self, frame_source, fake_transport):
        fake_transport.log_face_comparison = AsyncMock(side_effect=RuntimeError("offline"))
        comparator = make_comparator(frame_source, fake_transport, SAME_PERSON)

        result = await comparator.compare_once()

        assert result is not None
        assert result.matched is True

    @pytest.mark.asyncio
    async def test_no_logging_without_attempt(self, frame_source, fake_transport):
        comparator = make_comparator(frame_source, fake_transport, SAME_PERSON, attempt_id=None)

        await comparator.compare_once()

        fake_transport.log_face_comparison.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, frame_source, fake_transport):
        comparator = make_comparator(frame_source, fake_transport, SAME_PERSON)

        for _ in range(25):
            await comparator.compare_once()

        assert len(comparator.match_history) == 20
        assert comparator.comparison_count == 25

    @pytest.mark.asyncio
    async def test_match_statistics(self, frame_source, fake_transport):
        comparator = make_comparator(frame_source, fake_transport, SAME_PERSON)

        await comparator.compare_once()
        comparator.extractor.extract.return_value = OTHER_PERSON
        await comparator.compare_once()

        stats = comparator.get_match_statistics()
        assert stats["total_checks"] == 2
        assert stats["match_count"] == 1
        assert stats["mismatch_count"] == 1
        assert stats["match_percentage"] == pytest.approx(50.0)

    def test_empty_statistics(self, frame_source, fake_transport):
        comparator = make_comparator(frame_source, fake_transport, SAME_PERSON)

        stats = comparator.get_match_statistics()
        assert stats["total_checks"] == 0
        assert stats["average_distance"] is None

    @pytest.mark.asyncio
    async def test_start_requires_reference(self, frame_source, fake_transport):
        comparator = make_comparator(
            frame_source, fake_transport, SAME_PERSON, reference_descriptor=None
        )

        comparator.start()

        assert comparator.is_running is False

    @pytest.mark.asyncio
    async def test_start_compares_immediately(self, frame_source, fake_transport):
        import asyncio

        comparator = make_comparator(frame_source, fake_transport, SAME_PERSON, interval=60)

        comparator.start()
        await asyncio.sleep(0.1)
        comparator.stop()

        assert comparator.is_running is False
        assert comparator.comparison_count == 1

    @pytest.mark.asyncio
    async def test_slow_sync_extractor_runs_off_the_event_loop(self, frame_source, fake_transport):
        import asyncio
        import time

        comparator = make_comparator(frame_source, fake_transport, SAME_PERSON, interval=60)

        def slow_extract(frame):
            time.sleep(0.3)
            return SAME_PERSON

        comparator.extractor.extract.side_effect = slow_extract

        pending = asyncio.create_task(comparator.compare_once())
        started = time.monotonic()
        await asyncio.sleep(0.05)

        assert time.monotonic() - started < 0.2
        assert comparator.is_comparing is True
        assert await comparator.compare_once() is None

        result = await pending
        assert result.matched is True
        assert comparator.comparison_count == 1

"""
Unit Tests for the Proctor Session
"""
import pytest
from unittest.mock import MagicMock


@pytest.fixture
def test_settings(tmp_path):
    from proctoring.config import Settings

    return Settings(
        PROCTOR_API_BASE_URL="http://server/api",
        FALLBACK_STORAGE_DIR=str(tmp_path / "fallback"),
        BATCH_INTERVAL_SECONDS=3600,
        MONITOR_CHECK_INTERVAL=3600,
        FACE_COMPARISON_INTERVAL=3600,
    )


@pytest.fixture
def session(test_settings, fake_transport, fallback_store):
    from proctoring.session import ProctorSession

    return ProctorSession(
        "a-1", "t-1",
        config=test_settings,
        transport=fake_transport,
        fallback_store=fallback_store
    )


class TestSettings:

    def test_defaults(self):
        from proctoring.config import Settings

        config = Settings()
        assert config.BATCH_INTERVAL_SECONDS == 30.0
        assert config.NO_FACE_THRESHOLD == 10.0
        assert config.FACE_MISMATCH_THRESHOLD == 0.6

    def test_environment_override(self, monkeypatch):
        from proctoring.config import Settings

        monkeypatch.setenv("NO_FACE_THRESHOLD", "15")
        assert Settings().NO_FACE_THRESHOLD == 15.0


class TestProctorSession:
    """Tests for session wiring"""

    def test_optional_components(self, session):
        assert session.detection is None
        assert session.monitor is None
        assert session.comparator is None
        assert session.is_active is False

    def test_builds_from_settings(self, test_settings, frame_source):
        from proctoring.session import ProctorSession

        session = ProctorSession(
            "a-1", "t-1",
            config=test_settings,
            source=frame_source,
            detector=MagicMock(),
            extractor=MagicMock(),
            reference_descriptor=[0.1] * 128
        )

        assert session.transport.base_url == "http://server/api"
        assert session.ledger.batch_interval == 3600
        assert session.detection.interval == 1.0
        assert session.detection.skip_orientation_check is False
        assert session.monitor.no_face_threshold == 10.0
        assert session.comparator.mismatch_threshold == 0.6
        assert session.comparator.attempt_id == "t-1"

    @pytest.mark.asyncio
    async def test_start_and_stop(self, session):
        session.start()
        assert session.is_active is True
        assert session.started_at is not None

        session.stop()
        session.stop()
        assert session.is_active is False
        await session.aclose()

    @pytest.mark.asyncio
    async def test_record_browser_event(self, session):
        from proctoring.violations import ViolationType

        session.start()
        violation = session.record_event("visibility_hidden", {"hidden_ms": 1200})

        assert violation.type == ViolationType.TAB_SWITCH
        assert violation.details["event"] == "visibility_hidden"
        assert violation.details["hidden_ms"] == 1200
        await session.aclose()

    @pytest.mark.asyncio
    async def test_record_violation_kind(self, session):
        from proctoring.violations import ViolationType

        session.start()
        violation = session.record_event("KEYBOARD_SHORTCUT")

        assert violation.type == ViolationType.KEYBOARD_SHORTCUT
        await session.aclose()

    @pytest.mark.asyncio
    async def test_unknown_event_dropped(self, session):
        session.start()

        assert session.record_event("scroll") is None
        assert session.ledger.violations == []
        await session.aclose()

    def test_event_while_inactive(self, session):
        assert session.record_event("copy") is None

    @pytest.mark.asyncio
    async def test_auto_submit_tracked(self, session):
        from proctoring.violations import ViolationType

        on_auto_submit = MagicMock()
        session.start(on_auto_submit=on_auto_submit)

        for _ in range(3):
            session.record_event("tab_switch")

        assert session.auto_submit_requested is True
        assert "TAB_SWITCH" in session.auto_submit_reason
        on_auto_submit.assert_called_once_with(ViolationType.TAB_SWITCH, 3)
        await session.aclose()

    @pytest.mark.asyncio
    async def test_network_change(self, session, fake_transport):
        from proctoring.violations import ViolationType

        session.start()
        session.set_initial_network("10.0.0.1", "Pune")

        assert session.check_network("10.0.0.1", "Pune") == []

        recorded = session.check_network("10.0.0.2", "Mumbai")

        assert [v.type for v in recorded] == [ViolationType.IP_CHANGE, ViolationType.LOCATION_CHANGE]
        assert recorded[0].details["current_ip"] == "10.0.0.2"
        assert session.auto_submit_requested is True

        await session.ledger.wait_for_deliveries()
        assert fake_transport.send_immediate.await_count == 2
        await session.aclose()

    @pytest.mark.asyncio
    async def test_network_without_baseline(self, session):
        session.start()

        assert session.check_network("10.0.0.2") == []
        await session.aclose()

    @pytest.mark.asyncio
    async def test_mismatch_becomes_violation(self, test_settings, fake_transport, fallback_store, frame_source):
        from proctoring.session import ProctorSession
        from proctoring.violations import ViolationType

        extractor = MagicMock()
        extractor.extract.return_value = [0.9] * 128
        on_mismatch = MagicMock()

        session = ProctorSession(
            "a-1", "t-1",
            config=test_settings,
            transport=fake_transport,
            fallback_store=fallback_store,
            source=frame_source,
            extractor=extractor,
            reference_descriptor=[0.1] * 128,
            on_mismatch=on_mismatch
        )
        session.start()

        result = await session.comparator.compare_once()

        violation = session.ledger.violations[-1]
        assert violation.type == ViolationType.FACE_MISMATCH
        assert violation.details["distance"] == pytest.approx(result.distance)
        on_mismatch.assert_called_once_with(result)
        await session.aclose()

    @pytest.mark.asyncio
    async def test_load_reference_descriptor(self, test_settings, fake_transport, fallback_store, frame_source):
        from proctoring.session import ProctorSession

        fake_transport.get_reference_descriptor.return_value = [0.2] * 128
        session = ProctorSession(
            "a-1", "t-1",
            config=test_settings,
            transport=fake_transport,
            fallback_store=fallback_store,
            source=frame_source,
            extractor=MagicMock()
        )

        assert await session.load_reference_descriptor() is True
        assert session.comparator.reference_descriptor == [0.2] * 128

    @pytest.mark.asyncio
    async def test_summary(self, session):
        session.start()
        session.record_event("copy")

        summary = session.summary()

        assert summary["attempt_id"] == "t-1"
        assert summary["total"] == 1
        assert summary["counts"]["COPY_PASTE"] == 1
        assert summary["auto_submit_requested"] is False
        assert summary["is_active"] is True
        await session.aclose()

    @pytest.mark.asyncio
    async def test_aclose_flushes_and_keeps_injected_transport(self, session, fake_transport):
        session.start()
        session.record_event("copy")

        await session.aclose()

        fake_transport.send_batch.assert_awaited_once()
        fake_transport.aclose.assert_not_awaited()

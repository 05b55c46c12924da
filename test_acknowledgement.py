"""
GTSD — Metrics Acknowledgement Tests
Store-backed flows run against a throwaway SQLite database.
"""

import pytest
from datetime import datetime, timedelta, timezone

NOW = datetime(2025, 10, 30, 12, 34, 56, 789000, tzinfo=timezone.utc)


@pytest.fixture
def snapshot(seed_profile, run_in_session):
    from plan_generator import PlanGenerator
    seed_profile(user_id=1)
    result = run_in_session(lambda db: PlanGenerator(tz_name="UTC").generate(db, 1, now=NOW))
    return result.targets


class TestAcknowledge:

    def test_full_precision_timestamp(self, snapshot, run_in_session):
        from acknowledgement import acknowledge
        result = run_in_session(lambda db: acknowledge(
            db, 1, {"version": snapshot.version, "metrics_computed_at": "2025-10-30T12:34:56.789Z"}
        ))
        assert result.ok
        assert result.value.created
        assert result.value.acknowledgement.version == snapshot.version

    def test_truncated_timestamp_matches_same_row(self, snapshot, run_in_session):
        from acknowledgement import acknowledge
        result = run_in_session(lambda db: acknowledge(
            db, 1, {"version": snapshot.version, "metrics_computed_at": "2025-10-30T12:34:56Z"}
        ))
        assert result.ok
        assert result.value.acknowledgement.targets_id == snapshot.id

    def test_idempotent(self, snapshot, run_in_session):
        from acknowledgement import acknowledge
        payload = {"version": snapshot.version, "metrics_computed_at": "2025-10-30T12:34:56Z"}
        first = run_in_session(lambda db: acknowledge(db, 1, payload, now=NOW + timedelta(minutes=1)))
        second = run_in_session(lambda db: acknowledge(db, 1, payload, now=NOW + timedelta(minutes=5)))
        assert first.value.created
        assert not second.value.created
        assert second.value.acknowledgement.id == first.value.acknowledgement.id

    def test_acknowledged_at_not_before_computed_at(self, snapshot, run_in_session):
        from acknowledgement import acknowledge
        from timestamps import as_utc
        payload = {"version": snapshot.version, "metrics_computed_at": "2025-10-30T12:34:56Z"}
        result = run_in_session(lambda db: acknowledge(db, 1, payload, now=NOW - timedelta(hours=1)))
        ack = result.value.acknowledgement
        assert as_utc(ack.acknowledged_at) >= as_utc(ack.metrics_computed_at)

    def test_wrong_second_is_not_found(self, snapshot, run_in_session):
        from acknowledgement import acknowledge
        from errors import ErrorKind
        result = run_in_session(lambda db: acknowledge(
            db, 1, {"version": snapshot.version, "metrics_computed_at": "2025-10-30T12:34:57Z"}
        ))
        assert not result.ok
        assert result.kind == ErrorKind.not_found
        assert result.error.context["latest_version"] == snapshot.version
        assert result.error.context["latest_computed_at"] == "2025-10-30T12:34:56.789Z"

    def test_unknown_version_is_not_found(self, snapshot, run_in_session):
        from acknowledgement import acknowledge
        from errors import ErrorKind
        result = run_in_session(lambda db: acknowledge(
            db, 1, {"version": snapshot.version + 1, "metrics_computed_at": "2025-10-30T12:34:56Z"}
        ))
        assert result.kind == ErrorKind.not_found

    def test_largest_storable_version_is_not_found(self, snapshot, run_in_session):
        from acknowledgement import acknowledge
        from errors import ErrorKind
        from schemas import MAX_VERSION
        result = run_in_session(lambda db: acknowledge(
            db, 1, {"version": MAX_VERSION, "metrics_computed_at": "2025-10-30T12:34:56Z"}
        ))
        assert result.kind == ErrorKind.not_found

    @pytest.mark.parametrize("payload, field", [
        ({"version": 0, "metrics_computed_at": "2025-10-30T12:34:56Z"}, "version"),
        ({"version": -3, "metrics_computed_at": "2025-10-30T12:34:56Z"}, "version"),
        ({"version": "1", "metrics_computed_at": "2025-10-30T12:34:56Z"}, "version"),
        ({"version": 1, "metrics_computed_at": "2025-10-30"}, "metrics_computed_at"),
        ({"version": 1, "metrics_computed_at": "2025-10-30T12:34:56+00:00"}, "metrics_computed_at"),
        ({"version": 1, "metrics_computed_at": 1761827696}, "metrics_computed_at"),
        ({"version": 1}, "metrics_computed_at"),
        ({"version": 2**31, "metrics_computed_at": "2025-10-30T12:34:56Z"}, "version"),
        ({"version": 2**63, "metrics_computed_at": "2025-10-30T12:34:56Z"}, "version"),
    ])
    def test_malformed_input_is_validation_not_not_found(self, snapshot, run_in_session, payload, field):
        from acknowledgement import acknowledge
        from errors import ErrorKind
        result = run_in_session(lambda db: acknowledge(db, 1, payload))
        assert not result.ok
        assert result.kind == ErrorKind.validation
        assert result.error.field == field

    def test_other_users_snapshot_is_not_found(self, snapshot, seed_profile, run_in_session):
        from acknowledgement import acknowledge
        from errors import ErrorKind
        seed_profile(user_id=2)
        result = run_in_session(lambda db: acknowledge(
            db, 2, {"version": snapshot.version, "metrics_computed_at": "2025-10-30T12:34:56Z"}
        ))
        assert result.kind == ErrorKind.not_found


class TestNeedsAcknowledgment:

    def test_new_snapshot_needs_ack_until_confirmed(self, snapshot, run_in_session):
        from acknowledgement import acknowledge, needs_acknowledgment
        assert run_in_session(lambda db: needs_acknowledgment(db, 1)) is True
        run_in_session(lambda db: acknowledge(
            db, 1, {"version": snapshot.version, "metrics_computed_at": "2025-10-30T12:34:56Z"}
        ))
        assert run_in_session(lambda db: needs_acknowledgment(db, 1)) is False

    def test_new_version_resets_state(self, snapshot, run_in_session):
        from acknowledgement import acknowledge, needs_acknowledgment
        from plan_generator import PlanGenerator
        import stores

        run_in_session(lambda db: acknowledge(
            db, 1, {"version": snapshot.version, "metrics_computed_at": "2025-10-30T12:34:56Z"}
        ))

        async def lose_weight_and_regenerate(db):
            await stores.upsert_health_profile(db, 1, {"weight_kg": 70.0})
            return await PlanGenerator(tz_name="UTC").generate(
                db, 1, force_recompute=True, now=NOW + timedelta(days=1)
            )

        result = run_in_session(lose_weight_and_regenerate)
        assert result.targets.version == snapshot.version + 1
        assert run_in_session(lambda db: needs_acknowledgment(db, 1)) is True

    def test_no_snapshot_is_not_found(self, seed_profile, run_in_session):
        from acknowledgement import needs_acknowledgment
        from errors import NotFoundError
        seed_profile(user_id=1)
        with pytest.raises(NotFoundError):
            run_in_session(lambda db: needs_acknowledgment(db, 1))

"""
Tests for safety status and hazard alerts.
"""

import pytest

from hazard.monitor import AlertType, HazardMonitor, SafetyStatus
from models.config import HazardConfig
from models.detection import BoundingBox, Detection

FRAME = (1000, 1000)


def _det(label, cx, cy, w, h, score=0.9):
    return Detection(label=label, score=score, bbox=BoundingBox(cx - w / 2, cy - h / 2, w, h))


@pytest.fixture
def monitor():
    return HazardMonitor(HazardConfig(
        warning_area_ratio=0.05,
        danger_area_ratio=0.15,
        alert_hold_seconds=5,
        alert_cooldown_seconds=5,
        max_alerts=3,
    ))


class TestAssess:
    def test_empty_is_safe(self, monitor):
        assert monitor.assess([], FRAME) == (SafetyStatus.SAFE, None)

    def test_large_obstacle_in_corridor_is_danger(self, monitor):
        car = _det("car", 500, 600, 400, 400)  # 16% of frame
        status, worst = monitor.assess([car], FRAME)
        assert status is SafetyStatus.DANGER
        assert worst is car

    def test_medium_obstacle_is_warning(self, monitor):
        status, _ = monitor.assess([_det("person", 500, 500, 250, 250)], FRAME)  # 6.25%
        assert status is SafetyStatus.WARNING

    def test_small_obstacle_is_safe(self, monitor):
        status, worst = monitor.assess([_det("car", 500, 500, 100, 100)], FRAME)
        assert status is SafetyStatus.SAFE
        assert worst is None

    def test_outside_corridor_is_ignored(self, monitor):
        status, _ = monitor.assess([_det("truck", 100, 500, 400, 400)], FRAME)
        assert status is SafetyStatus.SAFE

    def test_non_obstacle_class_is_ignored(self, monitor):
        status, _ = monitor.assess([_det("potted plant", 500, 500, 600, 600)], FRAME)
        assert status is SafetyStatus.SAFE

    def test_worst_obstacle_chosen(self, monitor):
        small = _det("person", 450, 500, 250, 250)
        big = _det("bus", 550, 500, 500, 500)
        _, worst = monitor.assess([small, big], FRAME)
        assert worst is big

    def test_degenerate_frame(self, monitor):
        assert monitor.assess([_det("car", 0, 0, 10, 10)], (0, 0))[0] is SafetyStatus.SAFE


class TestAlerts:
    def test_danger_raises_obstacle_alert(self, monitor):
        status = monitor.update([_det("car", 500, 500, 400, 400)], FRAME, now=100.0)

        assert status is SafetyStatus.DANGER
        alerts = monitor.alerts()
        assert len(alerts) == 1
        assert alerts[0].type is AlertType.OBSTACLE
        assert "car" in alerts[0].message
        assert monitor.current_alert(now=101.0) is alerts[0]

    def test_status_held_then_returns_to_safe(self, monitor):
        monitor.update([_det("car", 500, 500, 400, 400)], FRAME, now=100.0)
        monitor.update([], FRAME, now=101.0)

        assert monitor.status(now=104.9) is SafetyStatus.DANGER
        assert monitor.status(now=105.0) is SafetyStatus.SAFE
        assert monitor.current_alert(now=105.0) is None

    def test_cooldown_limits_repeat_alerts(self, monitor):
        car = _det("car", 500, 500, 400, 400)
        monitor.update([car], FRAME, now=100.0)
        monitor.update([car], FRAME, now=102.0)
        monitor.update([car], FRAME, now=105.0)

        assert [a.timestamp for a in monitor.alerts()] == [105.0, 100.0]

    def test_warning_does_not_alert(self, monitor):
        status = monitor.update([_det("person", 500, 500, 250, 250)], FRAME, now=10.0)
        assert status is SafetyStatus.WARNING
        assert monitor.alerts() == []

    def test_lane_departure_is_warning(self, monitor):
        alert = monitor.trigger_alert(AlertType.LANE_DEPARTURE, "Drifting left", now=50.0)

        assert alert.type is AlertType.LANE_DEPARTURE
        assert monitor.status(now=52.0) is SafetyStatus.WARNING
        assert monitor.status(now=55.0) is SafetyStatus.SAFE

    def test_frame_danger_outranks_held_warning(self, monitor):
        monitor.trigger_alert(AlertType.LANE_DEPARTURE, "Drifting", now=50.0)
        monitor.update([_det("bus", 500, 500, 500, 500)], FRAME, now=51.0)
        assert monitor.status(now=51.0) is SafetyStatus.DANGER

    def test_alert_log_bounded_newest_first(self, monitor):
        for i in range(5):
            monitor.trigger_alert(AlertType.LANE_DEPARTURE, f"alert {i}", now=float(i))

        alerts = monitor.alerts()
        assert [a.message for a in alerts] == ["alert 4", "alert 3", "alert 2"]
        assert len({a.id for a in alerts}) == 3
        assert [a.message for a in monitor.alerts(limit=1)] == ["alert 4"]

    def test_alert_to_dict(self, monitor):
        alert = monitor.trigger_alert(AlertType.OBSTACLE, "Obstacle ahead", now=1.5)
        assert alert.to_dict() == {
            "id": alert.id,
            "type": "Obstacle",
            "timestamp": 1.5,
            "message": "Obstacle ahead",
        }

    def test_reset(self, monitor):
        monitor.update([_det("car", 500, 500, 400, 400)], FRAME, now=100.0)
        monitor.reset()
        assert monitor.alerts() == []
        assert monitor.status(now=100.0) is SafetyStatus.SAFE

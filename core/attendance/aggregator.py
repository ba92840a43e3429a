"""Per-window presence and engagement aggregation.

One ``PresenceAggregator`` belongs to one open monitoring window. Frames for a
window arrive one at a time from the detection loop, so the aggregator keeps
no lock of its own; independent windows use independent aggregators.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.attendance.head_pose import FaceLandmarks, calculate_head_pose


STATUS_PRESENT = 'Present'
STATUS_ABSENT = 'Absent'


def engagement_score(frames_forward: int, total_frames: int) -> int:
    if total_frames <= 0:
        return 0
    return int(round(100 * frames_forward / total_frames))


def attendance_status(presence_seconds: float, required_seconds: float) -> str:
    return STATUS_PRESENT if presence_seconds >= required_seconds else STATUS_ABSENT


@dataclass
class PresenceState:
    first_seen_at: datetime
    last_seen_at: datetime
    cumulative_seconds: int = 0
    detection_log: List[Dict[str, Any]] = field(default_factory=list)
    frames_forward: int = 0
    frames_away: int = 0

    @property
    def total_frames(self) -> int:
        return self.frames_forward + self.frames_away

    @property
    def score(self) -> int:
        return engagement_score(self.frames_forward, self.total_frames)

    def engagement_data(self) -> Dict[str, int]:
        return {
            'framesForward': self.frames_forward,
            'framesAway': self.frames_away,
            'totalFrames': self.total_frames,
            'score': self.score,
        }


class PresenceAggregator:
    """Running presence/engagement tallies for every student seen in a window."""

    def __init__(self, window_key: Any, max_log_length: Optional[int] = None):
        self.window_key = window_key
        self.max_log_length = max_log_length or None
        self._states: Dict[Any, PresenceState] = {}

    def __contains__(self, student_id) -> bool:
        return student_id in self._states

    def students(self) -> List[Any]:
        return list(self._states)

    def get_state(self, student_id) -> Optional[PresenceState]:
        return self._states.get(student_id)

    def on_frame_match(
        self,
        student_id: Any,
        timestamp: datetime,
        match_distance: float,
        landmarks: FaceLandmarks,
    ) -> PresenceState:
        state = self._states.get(student_id)
        if state is None:
            state = PresenceState(first_seen_at=timestamp, last_seen_at=timestamp)
            self._states[student_id] = state

        if timestamp > state.last_seen_at:
            state.last_seen_at = timestamp
        # Presence is the elapsed span since first sighting, not a sum of intervals
        elapsed = (state.last_seen_at - state.first_seen_at).total_seconds()
        state.cumulative_seconds = max(0, int(elapsed))

        engaged = calculate_head_pose(landmarks).is_looking_forward
        if engaged:
            state.frames_forward += 1
        else:
            state.frames_away += 1

        state.detection_log.append({
            'timestamp': timestamp.isoformat(),
            'confidence': round(1 - float(match_distance), 4),
            'engaged': engaged,
        })
        if self.max_log_length and len(state.detection_log) > self.max_log_length:
            del state.detection_log[:-self.max_log_length]

        return state

    def finalize(self, student_id: Any, required_duration: int) -> Dict[str, Any]:
        state = self._states.get(student_id)
        presence = state.cumulative_seconds if state else 0
        score = state.score if state else 0
        return {
            'status': attendance_status(presence, required_duration),
            'presenceDuration': presence,
            'requiredDuration': required_duration,
            'engagementScore': score,
        }

    def snapshot(self, student_id: Any) -> Optional[Dict[str, Any]]:
        state = self._states.get(student_id)
        if state is None:
            return None
        return {
            'firstSeenAt': state.first_seen_at.isoformat(),
            'lastSeenAt': state.last_seen_at.isoformat(),
            'presenceDuration': state.cumulative_seconds,
            'engagement': state.engagement_data(),
            'detections': len(state.detection_log),
        }

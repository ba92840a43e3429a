"""
API routes for live monitoring
Manual start/stop of attendance windows and ingestion of recognized frames
"""
from flask import Blueprint, jsonify

from core.attendance.head_pose import FaceLandmarks
from core.inference.matcher import DescriptorError, to_descriptor
from app.models import WindowNotOpenError
from app.utils import (
    error_response,
    get_db,
    get_monitor,
    get_request_data,
    get_scheduler,
    parse_number,
    parse_timestamp,
    server_error
)

monitoring_api_bp = Blueprint('monitoring_api', __name__, url_prefix='/api/monitoring')


def _parse_landmarks(payload):
    try:
        return FaceLandmarks.parse(payload)
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Invalid landmarks: {exc}") from exc


def _parse_detections(items):
    """Validate every detection of a frame before any of them is aggregated."""
    if not isinstance(items, list):
        raise ValueError('detections must be a list')
    detections = []
    for item in items:
        if not isinstance(item, dict):
            raise ValueError('each detection must be an object')
        detections.append({
            'descriptor': to_descriptor(item.get('descriptor')),
            'landmarks': _parse_landmarks(item.get('landmarks')),
        })
    return detections


def _parse_matches(items):
    if not isinstance(items, list):
        raise ValueError('matches must be a list')
    matches = []
    for item in items:
        if not isinstance(item, dict) or not item.get('rollNumber'):
            raise ValueError('each match needs a rollNumber')
        matches.append({
            'roll_number': str(item['rollNumber']).strip().upper(),
            'distance': parse_number(item.get('distance'), 'distance', minimum=0),
            'landmarks': _parse_landmarks(item.get('landmarks')),
        })
    return matches


@monitoring_api_bp.route('', methods=['GET'])
def monitoring_overview():
    """Open windows plus the triggers the scheduler has armed."""
    try:
        return jsonify({
            'windows': get_monitor().open_windows(),
            'scheduled': get_scheduler().describe(),
        })
    except Exception as e:
        return server_error('GET /api/monitoring', 'Failed to fetch monitoring state', e)


@monitoring_api_bp.route('/start', methods=['POST'])
def start_monitoring():
    """Open a window by hand, optionally with its own threshold and presence fraction."""
    try:
        data = get_request_data()
        if not data.get('classId'):
            return error_response('classId is required')

        try:
            class_id = parse_number(data['classId'], 'classId', integer=True)
            threshold = None
            if data.get('detectionThreshold') is not None:
                threshold = parse_number(data['detectionThreshold'], 'detectionThreshold')
                if not 0 < threshold <= 2:
                    raise ValueError('detectionThreshold must be in (0, 2]')
            fraction = None
            if data.get('presenceFraction') is not None:
                fraction = parse_number(data['presenceFraction'], 'presenceFraction')
                if not 0 < fraction <= 1:
                    raise ValueError('presenceFraction must be in (0, 1]')
        except ValueError as e:
            return error_response(str(e))

        schedule = get_db().get_class_by_id(class_id)
        if not schedule:
            return error_response('Class not found', 404)

        monitor = get_monitor()
        already_open = monitor.is_open(class_id)
        monitor.open_window(schedule, detection_threshold=threshold, presence_fraction=fraction, source='manual')
        message = 'Monitoring already running' if already_open else 'Monitoring started'
        return jsonify({'message': message, 'window': monitor.snapshot(class_id)}), (200 if already_open else 201)
    except Exception as e:
        return server_error('POST /api/monitoring/start', 'Failed to start monitoring', e)


@monitoring_api_bp.route('/<int:class_id>/frames', methods=['POST'])
def ingest_frame(class_id):
    """
    Feed one frame into an open window.

    ``detections`` carry raw descriptors that are matched here; ``matches``
    carry results already matched by the recognition capability.
    """
    try:
        data = get_request_data()
        monitor = get_monitor()
        try:
            timestamp = parse_timestamp(data.get('timestamp'), monitor.clock().tzinfo)
            detections = _parse_detections(data.get('detections') or [])
            matches = _parse_matches(data.get('matches') or [])
        except (DescriptorError, ValueError) as e:
            return error_response(str(e))

        try:
            updates = monitor.process_frame(class_id, detections, timestamp=timestamp, matches=matches)
        except WindowNotOpenError as e:
            return error_response(str(e), 404)
        except LookupError as e:
            return error_response(str(e))
        except DescriptorError as e:
            return error_response(str(e))

        return jsonify({
            'processed': len(detections) + len(matches),
            'accepted': len(updates),
            'updates': updates,
        })
    except Exception as e:
        return server_error('POST /api/monitoring/<classId>/frames', 'Failed to process frame', e)


@monitoring_api_bp.route('/<int:class_id>/stop', methods=['POST'])
def stop_monitoring(class_id):
    """Close the window and flush its tallies to the ledger once."""
    try:
        results = get_monitor().close_window(class_id)
        if results is None:
            return error_response(f"No open attendance window for class {class_id}", 404)
        return jsonify({'message': 'Monitoring stopped', 'results': results})
    except Exception as e:
        return server_error('POST /api/monitoring/<classId>/stop', 'Failed to stop monitoring', e)


@monitoring_api_bp.route('/<int:class_id>', methods=['GET'])
def window_status(class_id):
    try:
        return jsonify({'window': get_monitor().snapshot(class_id)})
    except WindowNotOpenError as e:
        return error_response(str(e), 404)
    except Exception as e:
        return server_error('GET /api/monitoring/<classId>', 'Failed to fetch window', e)

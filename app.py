from flask import Flask, request, jsonify
from PIL import Image
import datetime
import logging
import os

from uniform_fit.catalog import CatalogStore, create_catalog_store
from uniform_fit.config import EngineConfig, get_config
from uniform_fit.exceptions import (
    CaptureInProgressError,
    SessionNotFoundError,
    SessionStateError,
)
from uniform_fit.keypoints import denormalize_pose, parse_pose
from uniform_fit.profile import UserProfile
from uniform_fit.session import CaptureEvent, ScanSession, SessionStore
from uniform_fit.utils import decode_image


logger = logging.getLogger(__name__)


def validate_image(file, allowed_extensions):
    """Validate uploaded image."""
    if not file or file.filename == '':
        return False, "No file"

    if '.' not in file.filename or file.filename.rsplit('.', 1)[1].lower() not in allowed_extensions:
        return False, "Invalid type"

    try:
        Image.open(file).verify()
        file.seek(0)
        return True, "OK"
    except Exception:
        return False, "Corrupted"


def profile_from_request(data):
    """Build a UserProfile from request fields; raises ValueError on bad input"""
    missing = [p for p in ('height', 'gender', 'grade') if not data.get(p)]
    if missing:
        raise ValueError(f"Missing parameters: {', '.join(missing)}")
    return UserProfile.from_inputs(data.get('height'), data.get('unit', 'cm'),
                                   data.get('gender'), data.get('grade'))


def create_app(config: EngineConfig = None, catalog: CatalogStore = None, detector_factory=None):
    """
    Build the recommendation service.

    Args:
        config: Engine configuration; the global one when omitted
        catalog: Catalog store; built from ``config.catalog`` when omitted
        detector_factory: Callable returning a pose detector; each session
            builds its own on first image upload. MediaPipe when omitted
    """

    config = config or get_config()
    catalog = catalog or create_catalog_store(config.catalog)

    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = config.service.max_content_length_mb * 1024 * 1024

    store = SessionStore(ttl_seconds=config.service.session_ttl_seconds)
    app.extensions['uniform_fit_sessions'] = store

    def make_detector():
        if detector_factory is not None:
            return detector_factory()
        from uniform_fit.pose_detector import MediaPipePoseDetector
        return MediaPipePoseDetector()

    @app.errorhandler(SessionNotFoundError)
    def session_not_found(e):
        return jsonify({'success': False, 'error': str(e)}), 404

    @app.errorhandler(CaptureInProgressError)
    def capture_in_progress(e):
        return jsonify({'success': False, 'error': str(e)}), 409

    @app.errorhandler(SessionStateError)
    def bad_session_state(e):
        return jsonify({'success': False, 'error': str(e)}), 409

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({'success': False, 'error': 'Too large'}), 413

    @app.route('/health', methods=['GET'])
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'Uniform Fit API',
            'version': '1.0.0',
            'timestamp': datetime.datetime.now().isoformat(),
            'active_sessions': len(store),
        })

    @app.route('/sessions', methods=['POST'])
    def create_session():
        data = request.get_json(silent=True) or request.form.to_dict()
        try:
            profile = profile_from_request(data)
        except ValueError as e:
            return jsonify({'success': False, 'error': str(e)}), 400

        store.purge_expired()
        session = store.add(ScanSession(profile, catalog, config, detector_factory=make_detector))
        session.mark_ready()
        logger.info(f"Session {session.id} created for {profile.grade_level} / {profile.gender.value}")
        return jsonify({'success': True, 'session': session.to_dict()}), 201

    @app.route('/sessions/<session_id>', methods=['GET'])
    def get_session(session_id):
        session = store.get(session_id)
        return jsonify({'success': True, 'session': session.to_dict()})

    @app.route('/sessions/<session_id>', methods=['DELETE'])
    def delete_session(session_id):
        store.remove(session_id)
        return jsonify({'success': True})

    @app.route('/sessions/<session_id>/capture', methods=['POST'])
    def capture(session_id):
        session = store.get(session_id)

        if request.files:
            image_file = request.files.get('image')
            valid, msg = validate_image(image_file, config.service.allowed_image_extensions)
            if not valid:
                return jsonify({'success': False, 'error': f'Image: {msg}'}), 400

            outcome = session.capture(image_file.read(), load=decode_image)
        else:
            data = request.get_json(silent=True)
            if data is None:
                return jsonify({'success': False, 'error': 'Send JSON keypoints or an image upload'}), 400
            try:
                pose = parse_pose(data.get('keypoints'))
            except (KeyError, TypeError, ValueError) as e:
                return jsonify({'success': False, 'error': f'Invalid keypoints: {e}'}), 400
            if data.get('normalized'):
                pose = denormalize_pose(pose, config.estimation.frame_size)
            outcome = session.submit_pose(pose)

        response = {'success': True, 'outcome': outcome.to_dict(), 'session': session.to_dict()}
        if outcome.finished and session.front_measurements:
            response['front_measurements'] = session.front_measurements.to_dict()
        return jsonify(response)

    @app.route('/recommend', methods=['POST'])
    def recommend():
        data = request.get_json(silent=True)
        if data is None:
            return jsonify({'success': False, 'error': 'Use application/json'}), 400

        try:
            profile = profile_from_request(data)
            front = parse_pose(data.get('front'))
            side = parse_pose(data.get('side'))
        except (KeyError, TypeError, ValueError) as e:
            return jsonify({'success': False, 'error': str(e)}), 400

        if data.get('normalized'):
            front = denormalize_pose(front, config.estimation.frame_size)
            side = denormalize_pose(side, config.estimation.frame_size)

        session = ScanSession(profile, catalog, config)
        session.mark_ready()

        outcome = session.submit_pose(front)
        if outcome.event is CaptureEvent.RETRY:
            return jsonify({'success': False, 'error': outcome.message, 'outcome': outcome.to_dict()}), 422
        if outcome.event is CaptureEvent.PHASE_COMPLETE:
            outcome = session.submit_pose(side)

        return jsonify({
            'success': True,
            'recommendation': outcome.recommendation.to_dict(),
            'front_measurements': session.front_measurements.to_dict() if session.front_measurements else None,
            'message': outcome.message,
        })

    return app


if __name__ == '__main__':
    config = get_config()
    logging.basicConfig(level=getattr(logging, config.service.log_level.upper(), logging.INFO),
                        format='%(asctime)s - %(levelname)s - %(message)s')
    port = int(os.environ.get('PORT', config.service.port))
    create_app(config).run(host=config.service.host, port=port)

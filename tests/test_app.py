import io

import pytest
from PIL import Image

import app as service
from app import create_app

from conftest import make_pose, weak_pose


def png_bytes():
    buffer = io.BytesIO()
    Image.new('RGB', (64, 64), color=(200, 200, 200)).save(buffer, format='PNG')
    buffer.seek(0)
    return buffer


def upload(client, session_id):
    return client.post(f'/sessions/{session_id}/capture',
                       data={'image': (png_bytes(), 'front.png')},
                       content_type='multipart/form-data')


def pose_json(pose):
    return [kp.to_dict() for kp in pose]


class StubDetector:
    def __init__(self, pose):
        self.pose = pose
        self.calls = 0

    def estimate_pose(self, image):
        self.calls += 1
        return self.pose


@pytest.fixture
def app(config, catalog):
    app = create_app(config, catalog, detector_factory=lambda: StubDetector(make_pose()))
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def create_session(client, **overrides):
    body = {'height': '150', 'unit': 'cm', 'gender': 'male', 'grade': 'Elementary'}
    body.update(overrides)
    return client.post('/sessions', json=body)


def test_health(client):
    data = client.get('/health').get_json()
    assert data['status'] == 'healthy'
    assert data['active_sessions'] == 0


def test_create_session(client):
    response = create_session(client)

    assert response.status_code == 201
    session = response.get_json()['session']
    assert session['status'] == 'waiting'
    assert session['profile']['gender'] == 'Boys'
    assert session['profile']['reference_height_cm'] == 150.0


@pytest.mark.parametrize("overrides", [{'gender': 'other'}, {'height': ''}, {'grade': None}])
def test_create_session_rejects_bad_input(client, overrides):
    response = create_session(client, **overrides)
    assert response.status_code == 400
    assert response.get_json()['success'] is False


def test_scan_flow_with_keypoints(client):
    session_id = create_session(client).get_json()['session']['id']

    front = client.post(f'/sessions/{session_id}/capture', json={'keypoints': pose_json(make_pose())})
    assert front.status_code == 200
    assert front.get_json()['outcome']['event'] == 'phase_complete'

    side = client.post(f'/sessions/{session_id}/capture', json={'keypoints': pose_json(make_pose())})
    data = side.get_json()
    assert data['outcome']['event'] == 'completed'
    assert data['outcome']['recommendation']['top_size'] == 'Medium'
    assert data['front_measurements']['chest_cm'] == 26.0
    assert data['session']['status'] == 'completed'

    again = client.post(f'/sessions/{session_id}/capture', json={'keypoints': pose_json(make_pose())})
    assert again.status_code == 409


def test_capture_retry(client):
    session_id = create_session(client).get_json()['session']['id']
    response = client.post(f'/sessions/{session_id}/capture', json={'keypoints': pose_json(weak_pose())})

    outcome = response.get_json()['outcome']
    assert outcome['event'] == 'retry'
    assert outcome['escalated'] is False


def test_capture_invalid_payload(client):
    session_id = create_session(client).get_json()['session']['id']

    assert client.post(f'/sessions/{session_id}/capture', data='nope').status_code == 400
    response = client.post(f'/sessions/{session_id}/capture', json={'keypoints': [{'name': 'nose'}]})
    assert response.status_code == 400
    response = client.post(f'/sessions/{session_id}/capture', json={'keypoints': 'nose'})
    assert response.status_code == 400


def test_unknown_session(client):
    assert client.get('/sessions/missing').status_code == 404
    assert client.delete('/sessions/missing').status_code == 404
    response = client.post('/sessions/missing/capture', json={'keypoints': []})
    assert response.status_code == 404


def test_delete_session(client, app):
    session_id = create_session(client).get_json()['session']['id']

    assert client.delete(f'/sessions/{session_id}').status_code == 200
    assert client.get(f'/sessions/{session_id}').status_code == 404
    assert len(app.extensions['uniform_fit_sessions']) == 0


def test_recommend_one_shot(client):
    response = client.post('/recommend', json={
        'height': 150, 'gender': 'male', 'grade': 'Elementary',
        'front': pose_json(make_pose()), 'side': pose_json(make_pose()),
    })

    data = response.get_json()
    assert response.status_code == 200
    assert data['recommendation']['top_size'] == 'Medium'
    assert data['recommendation']['bottom_size'] == 'Size 8'
    assert data['front_measurements']['hip_cm'] == 17.5


def test_recommend_rejects_weak_front(client):
    response = client.post('/recommend', json={
        'height': 150, 'gender': 'female', 'grade': 'Elementary',
        'front': pose_json(weak_pose()), 'side': pose_json(make_pose()),
    })
    assert response.status_code == 422
    assert response.get_json()['outcome']['event'] == 'retry'


def test_recommend_without_poses_uses_estimates(client):
    response = client.post('/recommend', json={'height': '4\'11"', 'unit': 'ft',
                                               'gender': 'female', 'grade': 'Junior High'})
    data = response.get_json()

    assert response.status_code == 200
    assert data['recommendation']['is_fallback'] is True
    assert data['recommendation']['top_size'] == 'Medium'
    assert data['recommendation']['bottom_size'] == 'Size 10'


def test_recommend_requires_json(client):
    assert client.post('/recommend', data='x').status_code == 400


def test_capture_image_upload(client):
    session_id = create_session(client).get_json()['session']['id']
    response = upload(client, session_id)

    assert response.status_code == 200
    assert response.get_json()['outcome']['event'] == 'phase_complete'


def test_capture_rejects_bad_upload(client):
    session_id = create_session(client).get_json()['session']['id']
    response = client.post(f'/sessions/{session_id}/capture',
                           data={'image': (io.BytesIO(b'not an image'), 'front.gif')},
                           content_type='multipart/form-data')
    assert response.status_code == 400


def test_capture_normalized_keypoints(client):
    session_id = create_session(client).get_json()['session']['id']
    # Same geometry as make_pose in a 640x480 frame
    keypoints = [dict(kp.to_dict(), x=kp.x / 640, y=kp.y / 480) for kp in make_pose()]

    response = client.post(f'/sessions/{session_id}/capture',
                           json={'keypoints': keypoints, 'normalized': True})

    measurements = response.get_json()['outcome']['measurements']
    assert measurements['chest_cm'] == 26.0
    assert measurements['pixel_height'] == pytest.approx(300.0)


def test_detector_load_failure_returns_estimated_sizes(config, catalog):
    def broken_factory():
        raise RuntimeError("model failed to load")

    client = create_app(config, catalog, detector_factory=broken_factory).test_client()
    session_id = create_session(client).get_json()['session']['id']

    response = upload(client, session_id)

    data = response.get_json()
    assert response.status_code == 200
    assert data['outcome']['event'] == 'fallback'
    assert data['outcome']['recommendation']['is_fallback'] is True
    assert data['session']['status'] == 'waiting'


def test_undecodable_upload_returns_estimated_sizes(client, monkeypatch):
    def undecodable(data):
        raise ValueError("Could not decode image data")

    monkeypatch.setattr(service, 'decode_image', undecodable)
    session_id = create_session(client).get_json()['session']['id']

    response = upload(client, session_id)

    assert response.status_code == 200
    assert response.get_json()['outcome']['event'] == 'fallback'


def test_sessions_get_separate_detectors(config, catalog):
    built = []

    def factory():
        detector = StubDetector(make_pose())
        built.append(detector)
        return detector

    app = create_app(config, catalog, detector_factory=factory)
    client = app.test_client()
    first = create_session(client).get_json()['session']['id']
    second = create_session(client).get_json()['session']['id']

    upload(client, first)
    upload(client, second)

    store = app.extensions['uniform_fit_sessions']
    assert len(built) == 2
    assert store.get(first).detector is built[0]
    assert store.get(second).detector is built[1]
    assert [d.calls for d in built] == [1, 1]

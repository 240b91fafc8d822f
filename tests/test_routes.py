import io

from radreport.models import StudyEvent, ReportStatus
from radreport.services import study_status_service as store


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json()['status'] == 'healthy'


def test_readiness(client, pacs):
    response = client.get('/health/ready')
    assert response.status_code == 200
    assert response.get_json()['orthanc'] == 'connected'


def test_worker_health_reports_stopped_worker(client, worker):
    response = client.get('/health/worker')
    assert response.status_code == 503
    assert response.get_json()['worker']['running'] is False


def test_api_requires_token(client):
    response = client.get('/api/studies')
    assert response.status_code == 401
    assert response.get_json()['success'] is False


def test_unknown_endpoint(client):
    response = client.get('/api/nothing-here')
    assert response.status_code == 404
    assert response.get_json() == {'success': False, 'error': 'Endpoint not found'}


def test_queue_study_report_then_noop(client, pacs, queue, auth_headers):
    pacs.add_study('study-1', instance_count=2)

    response = client.post('/api/studies/study-1/queue-report', headers=auth_headers())
    assert response.status_code == 202
    body = response.get_json()
    assert body['data']['enqueued'] == 2
    assert body['data']['study']['report_status'] == 'Queued'

    response = client.post('/api/studies/study-1/queue-report', headers=auth_headers())
    assert response.status_code == 200
    assert response.get_json()['data']['enqueued'] == 0
    assert len(queue) == 2
    queued_events = StudyEvent.query.filter_by(archive_study_id='study-1', action='queued').all()
    assert len(queued_events) == 1
    assert queued_events[0].actor_id == 'admin-1'



def test_queue_failed_study_with_instances_already_waiting(client, pacs, queue, coordinator, auth_headers):
    instance_ids = pacs.add_study('study-1', instance_count=2)
    for instance_id in instance_ids:
        coordinator.queue_instance(instance_id)
    store.create_or_update_metadata(pacs.get_study('study-1'))
    store.mark_failed('study-1', 'boom')

    response = client.post('/api/studies/study-1/queue-report', headers=auth_headers())

    # Nothing new to enqueue, but the study still moved out of Failed
    assert response.status_code == 202
    body = response.get_json()
    assert body['data']['enqueued'] == 0
    assert body['data']['study']['report_status'] == 'Queued'
    assert body['data']['study']['report_generation_error'] is None
    assert len(queue) == 2

def test_queue_unknown_study_is_404(client, pacs, auth_headers):
    response = client.post('/api/studies/missing/queue-report', headers=auth_headers())
    assert response.status_code == 404
    assert response.get_json()['success'] is False


def test_queue_requires_allowed_role(client, pacs, auth_headers):
    pacs.add_study('study-1')
    response = client.post('/api/studies/study-1/queue-report', headers=auth_headers('t1', 'technician'))
    assert response.status_code == 403


def test_study_status(client, pacs, auth_headers):
    response = client.get('/api/studies/study-1/status', headers=auth_headers())
    assert response.status_code == 404

    pacs.add_study('study-1')
    store.create_or_update_metadata(pacs.get_study('study-1'))
    response = client.get('/api/studies/study-1/status', headers=auth_headers())
    assert response.status_code == 200
    assert response.get_json()['data']['report_status'] == 'NoReport'


def test_list_studies_with_status_filter(client, pacs, auth_headers):
    for study_id in ('study-1', 'study-2'):
        pacs.add_study(study_id)
        store.create_or_update_metadata(pacs.get_study(study_id))
    store.mark_queued('study-2')

    response = client.get('/api/studies?status=Queued', headers=auth_headers())
    data = response.get_json()['data']
    assert [s['archive_study_id'] for s in data['studies']] == ['study-2']

    response = client.get('/api/studies/by-status/NoReport', headers=auth_headers())
    assert response.get_json()['data']['pagination']['total'] == 1

    response = client.get('/api/studies?status=Bogus', headers=auth_headers())
    assert response.status_code == 400


def test_queue_instance_report(client, queue, auth_headers):
    for _ in range(2):
        response = client.post('/api/instances/inst-1/queue-report', headers=auth_headers('d1', 'doctor'))
        assert response.status_code == 202
    assert queue.snapshot() == ['inst-1', 'inst-1']


def test_assign_doctor_is_admin_only(client, pacs, auth_headers):
    pacs.add_study('study-1')
    store.create_or_update_metadata(pacs.get_study('study-1'))

    response = client.post('/api/studies/study-1/assign-doctor/doc-1', headers=auth_headers('d1', 'doctor'))
    assert response.status_code == 403

    response = client.post('/api/studies/study-1/assign-doctor/doc-1', headers=auth_headers())
    assert response.status_code == 200
    assert response.get_json()['data']['assigned_doctor_id'] == 'doc-1'


def test_doctor_review_flow(client, pacs, coordinator, worker, auth_headers):
    pacs.add_study('study-1', instance_count=1)
    coordinator.queue_study('study-1')
    worker.drain()
    store.assign_doctor('study-1', 'doc-1')
    doctor = auth_headers('doc-1', 'doctor')

    response = client.get('/api/doctor/my-studies', headers=doctor)
    assert response.status_code == 200
    assert [s['archive_study_id'] for s in response.get_json()['data']] == ['study-1']

    response = client.post('/api/doctor/review-study/study-1', headers=doctor,
                           json={'findings': 'A', 'impressions': 'B'})
    assert response.status_code == 200
    assert response.get_json()['data']['report_status'] == ReportStatus.REVIEWED.value

    response = client.post('/api/doctor/review-study/study-1', headers=auth_headers('doc-2', 'doctor'),
                           json={'findings': 'A', 'impression': 'B'})
    assert response.status_code == 401

    response = client.post('/api/doctor/review-study/study-1', headers=doctor, json={'findings': ''})
    assert response.status_code == 400

    response = client.post('/api/doctor/review-study/missing', headers=doctor, json={'findings': 'A'})
    assert response.status_code == 404


def test_upload_endpoint_requires_file(client, pacs, auth_headers):
    response = client.post('/api/instances/upload', headers=auth_headers(), data={},
                           content_type='multipart/form-data')
    assert response.status_code == 400


def test_bulk_upload_reports_failures(client, pacs, auth_headers):
    data = {'files': [(io.BytesIO(b''), 'empty.dcm')]}
    response = client.post('/api/instances/bulk-upload', headers=auth_headers(), data=data,
                           content_type='multipart/form-data')
    assert response.status_code == 200
    body = response.get_json()['data']
    assert body['failed_count'] == 1
    assert body['successful_count'] == 0


def test_study_history(client, pacs, coordinator, worker, auth_headers):
    response = client.get('/api/studies/study-1/history', headers=auth_headers())
    assert response.status_code == 404

    pacs.add_study('study-1', instance_count=1)
    client.post('/api/studies/study-1/queue-report', headers=auth_headers())
    worker.drain()
    client.post('/api/studies/study-1/assign-doctor/doc-1', headers=auth_headers())

    response = client.get('/api/studies/study-1/history', headers=auth_headers('doc-1', 'doctor'))
    assert response.status_code == 200
    events = response.get_json()['data']
    assert [e['action'] for e in events] == ['created', 'queued', 'in_progress', 'generated', 'doctor_assigned']
    assert events[1]['actor_id'] == 'admin-1'
    assert events[3]['status_after'] == 'ReportGenerated'
    assert events[3]['artifact_id'] in pacs.uploaded

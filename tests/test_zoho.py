import json
from datetime import date

import pytest

from metrics_sync.common.config import ZohoConfig
from metrics_sync.common.credentials import TokenCache
from metrics_sync.common.errors import AuthError, UpstreamJobError, UpstreamTimeoutError
from metrics_sync.common.http_client import HTTPClient
from metrics_sync.common.retry import RetryPolicy
from metrics_sync.upstream.zoho import JOB_NOT_COMPLETED, JOB_NOT_INITIATED, ZohoAnalyticsClient

from .fakes import FakeSession, make_response


FROM, TO = date(2026, 1, 1), date(2026, 1, 18)


def zoho_client(responses, sleeps, poll_attempts=30):
    session = FakeSession(responses)
    config = ZohoConfig(
        client_id='client', client_secret='secret', refresh_token='refresh',
        workspace_id='ws-1', collection_view_id='view-c', reservation_view_id='view-r', org_id='org-1',
    )
    client = ZohoAnalyticsClient(
        config, HTTPClient(session=session), TokenCache(),
        RetryPolicy(max_attempts=3, base_delay=2.0, sleep=sleeps.append),
        poll_interval=2.0, poll_attempts=poll_attempts,
    )
    return client, session


def job_pending(code):
    return make_response(400, {'status': 'failure', 'data': {'errorCode': code, 'errorMessage': 'pending'}})


RESERVATION = {
    'Project Name': 'Windsor', 'ST Name': 'Team A', 'Date': '2026-01-18',
    'Reserved AED': '1,000,000', 'Reserved Units': '1', 'Cancelled AED': '0', 'Cancelled Units': '0',
    'Sales Manager Name': 'Jane Doe', 'Sales Director Name': 'Sam Roe',
}


def test_poll_waits_through_pending_codes():
    sleeps = []
    client, session = zoho_client([
        job_pending(JOB_NOT_INITIATED),
        job_pending(JOB_NOT_COMPLETED),
        make_response(200, {'status': 'success', 'data': [RESERVATION]}),
    ], sleeps)

    rows = client.poll_export_job('token', 'job-9')

    assert rows == [RESERVATION]
    assert len(session.calls) == 3
    assert sleeps == [2.0, 2.0]
    assert session.calls[0][1].endswith('/bulk/workspaces/ws-1/exportjobs/job-9/data')


def test_poll_raises_on_job_failure():
    client, _ = zoho_client([
        make_response(200, {'status': 'failure', 'data': {'errorMessage': 'view deleted'}}),
    ], [])

    with pytest.raises(UpstreamJobError, match='view deleted'):
        client.poll_export_job('token', 'job-9')


def test_poll_gives_up_after_its_budget():
    sleeps = []
    client, session = zoho_client([job_pending(JOB_NOT_COMPLETED) for _ in range(3)], sleeps, poll_attempts=3)

    with pytest.raises(UpstreamTimeoutError):
        client.poll_export_job('token', 'job-9')
    assert len(session.calls) == 3
    assert sleeps == [2.0, 2.0, 2.0]


def test_export_job_creation_requires_a_job_id():
    client, _ = zoho_client([make_response(200, {'status': 'failure', 'message': 'quota exceeded'})], [])

    with pytest.raises(UpstreamJobError, match='quota exceeded'):
        client.create_export_job('token', FROM, TO)


def test_fetch_reservations_creates_then_polls_the_job():
    client, session = zoho_client([
        make_response(200, {'status': 'success', 'data': {'jobId': 'job-42'}}),
        job_pending(JOB_NOT_INITIATED),
        make_response(200, {'status': 'success', 'data': [RESERVATION]}),
    ], [])

    rows = client.fetch_reservations('token', FROM, TO)

    assert len(rows) == 1
    assert rows[0].project_name == 'Windsor'
    assert rows[0].reserved_units == 1
    assert rows[0].day == date(2026, 1, 18)

    _, url, kwargs = session.calls[0]
    assert url.endswith('/bulk/workspaces/ws-1/views/view-r/data')
    criteria = json.loads(kwargs['params']['CONFIG'])['criteria']
    assert "'2026-01-01'" in criteria and "'2026-01-18'" in criteria
    assert kwargs['headers']['Authorization'] == 'Zoho-oauthtoken token'
    assert kwargs['headers']['ZANALYTICS-ORGID'] == 'org-1'


def test_collections_are_parsed_into_rows():
    client, _ = zoho_client([
        make_response(200, {'data': [
            {'Project Name': 'Grand Summary', 'Payment Date': '2026-01-18', 'Escrow Collection (AED)': 'AED 10'},
        ]}),
    ], [])

    rows = client.fetch_collections('token', TO, TO)
    assert rows[0].project_name == 'Grand Summary'
    assert rows[0].payment_date == TO


def test_token_exchange_retries_with_exponential_backoff():
    sleeps = []
    client, session = zoho_client([
        make_response(500),
        make_response(200, {'access_token': 'zoho-abc', 'expires_in': 3600}),
    ], sleeps)

    assert client.get_token() == 'zoho-abc'
    assert sleeps == [2.0]
    assert session.calls[-1][2]['params']['grant_type'] == 'refresh_token'


def test_token_exchange_without_access_token_is_an_auth_error():
    client, _ = zoho_client([make_response(200, {'error': 'invalid_code'})], [])

    with pytest.raises(AuthError):
        client.get_token()

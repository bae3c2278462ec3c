import http.client
import json
import urllib.error

import pytest

from examprep.api_client import (
    ExamPrepClient,
    HttpResponse,
    RequestError,
    TokenStore,
    resolve_base_url,
)
from examprep.config import Settings


def json_response(status, payload, reason='OK'):
    return HttpResponse(
        status=status,
        reason=reason,
        headers={'content-type': 'application/json; charset=utf-8'},
        body=json.dumps(payload).encode('utf-8'),
    )


class FakeTransport:
    """Serves scripted responses by URL prefix and records every call."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, method, url, headers, body):
        self.calls.append({'method': method, 'url': url, 'headers': headers, 'body': body})
        for prefix, outcome in self.routes.items():
            if url.startswith(prefix):
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
        raise urllib.error.URLError('connection refused')


def test_resolve_base_url_prefers_override():
    assert resolve_base_url('http://api.test/api/', 'http://site.test') == 'http://api.test/api'


def test_resolve_base_url_uses_page_origin():
    assert resolve_base_url(page_origin='http://site.test:8080') == 'http://site.test:8080/api'


def test_resolve_base_url_defaults_for_file_pages():
    assert resolve_base_url(page_origin='file://') == 'http://localhost:3000/api'
    assert resolve_base_url() == 'http://localhost:3000/api'


def test_fallback_set_excludes_current_address():
    client = ExamPrepClient('http://localhost:3000/api/', transport=FakeTransport({}))
    assert client.base_url == 'http://localhost:3000/api'
    assert client.fallback_base_urls == ['http://localhost:5501/api']

    other = ExamPrepClient('http://portal.test/api', transport=FakeTransport({}))
    assert other.fallback_base_urls == ['http://localhost:3000/api', 'http://localhost:5501/api']


def test_not_found_falls_back_and_adopts_working_address():
    transport = FakeTransport(
        {
            'http://portal.test/api': json_response(404, {'error': 'Route not found'}, reason='Not Found'),
            'http://localhost:3000/api': urllib.error.URLError('connection refused'),
            'http://localhost:5501/api': json_response(200, {'exams': []}),
        }
    )
    client = ExamPrepClient('http://portal.test/api', transport=transport)

    assert client.get_exams() == {'exams': []}
    assert client.base_url == 'http://localhost:5501/api'

    client.get_exams()
    assert transport.calls[-1]['url'] == 'http://localhost:5501/api/exams'
    assert len(transport.calls) == 4


def test_method_not_allowed_triggers_fallback():
    transport = FakeTransport(
        {
            'http://portal.test/api': json_response(405, {}, reason='Method Not Allowed'),
            'http://localhost:3000/api': json_response(200, {'ok': True}),
        }
    )
    client = ExamPrepClient('http://portal.test/api', transport=transport)

    assert client.request('/health') == {'ok': True}
    assert client.base_url == 'http://localhost:3000/api'


def test_opaque_response_triggers_fallback():
    opaque = HttpResponse(status=0, reason='', type='opaque')
    transport = FakeTransport(
        {
            'http://portal.test/api': opaque,
            'http://localhost:3000/api': json_response(200, {'videos': [1]}),
        }
    )
    client = ExamPrepClient('http://portal.test/api', transport=transport)

    assert client.get_videos() == {'videos': [1]}
    assert client.base_url == 'http://localhost:3000/api'


def test_exhausted_fallbacks_keep_original_failure():
    transport = FakeTransport({'http://portal.test/api': json_response(404, {}, reason='Not Found')})
    client = ExamPrepClient('http://portal.test/api', transport=transport)

    with pytest.raises(RequestError) as excinfo:
        client.get_exam(99)

    assert excinfo.value.message == '404 Not Found'
    assert excinfo.value.status == 404
    assert client.base_url == 'http://portal.test/api'


def test_server_error_does_not_trigger_fallback():
    transport = FakeTransport({'http://portal.test/api': json_response(500, {'error': 'boom'}, reason='Server Error')})
    client = ExamPrepClient('http://portal.test/api', transport=transport)

    with pytest.raises(RequestError, match='boom'):
        client.get_exams()
    assert len(transport.calls) == 1


def test_error_field_is_preferred_message():
    transport = FakeTransport({'http://portal.test/api': json_response(400, {'error': 'X', 'message': 'Y'}, reason='Bad Request')})
    client = ExamPrepClient('http://portal.test/api', transport=transport)

    with pytest.raises(RequestError) as excinfo:
        client.request('/auth/login', method='POST', body='{}')
    assert str(excinfo.value) == 'X'


def test_message_field_used_when_no_error_field():
    transport = FakeTransport({'http://portal.test/api': json_response(401, {'message': 'Nope'}, reason='Unauthorized')})
    client = ExamPrepClient('http://portal.test/api', transport=transport)

    with pytest.raises(RequestError, match='Nope'):
        client.get_profile()


def test_unparseable_error_body_uses_status_line():
    response = HttpResponse(status=502, reason='Bad Gateway', headers={'content-type': 'application/json'}, body=b'<html>')
    client = ExamPrepClient('http://portal.test/api', transport=FakeTransport({'http://portal.test/api': response}))

    with pytest.raises(RequestError) as excinfo:
        client.get_exams()
    assert excinfo.value.message == '502 Bad Gateway'


def test_unparseable_json_success_decodes_to_empty_object():
    response = HttpResponse(status=200, reason='OK', headers={'content-type': 'application/json'}, body=b'{not json')
    client = ExamPrepClient('http://portal.test/api', transport=FakeTransport({'http://portal.test/api': response}))

    assert client.get_exams() == {}


def test_empty_body_decodes_to_empty_object():
    response = HttpResponse(status=204, reason='No Content')
    client = ExamPrepClient('http://portal.test/api', transport=FakeTransport({'http://portal.test/api': response}))

    assert client.remove_bookmark(3) == {}


def test_plain_text_body_is_wrapped_or_parsed():
    text = HttpResponse(status=200, reason='OK', headers={'content-type': 'text/plain'}, body=b'pong')
    client = ExamPrepClient('http://portal.test/api', transport=FakeTransport({'http://portal.test/api': text}))
    assert client.request('/ping') == {'message': 'pong'}

    json_as_text = HttpResponse(status=200, reason='OK', headers={'content-type': 'text/html'}, body=b'{"a": 1}')
    client = ExamPrepClient('http://portal.test/api', transport=FakeTransport({'http://portal.test/api': json_as_text}))
    assert client.request('/ping') == {'a': 1}


def test_transport_failure_on_first_attempt_raises_request_error():
    transport = FakeTransport({'http://portal.test/api': urllib.error.URLError('connection refused')})
    client = ExamPrepClient('http://portal.test/api', transport=transport)

    with pytest.raises(RequestError, match='connection refused'):
        client.get_exams()
    assert len(transport.calls) == 1


def test_headers_include_content_type_token_and_caller_headers():
    transport = FakeTransport({'http://portal.test/api': json_response(200, {})})
    client = ExamPrepClient('http://portal.test/api', transport=transport)
    client.set_token('abc')

    client.request('/users/stats', headers={'X-Trace': '1'})

    headers = transport.calls[0]['headers']
    assert headers['Content-Type'] == 'application/json'
    assert headers['Authorization'] == 'Bearer abc'
    assert headers['X-Trace'] == '1'


def test_login_persists_token_for_later_calls(tmp_path):
    store = TokenStore(tmp_path / 'session.json')
    transport = FakeTransport({'http://portal.test/api': json_response(200, {'token': 'tok-1', 'user': {'id': 1}})})
    client = ExamPrepClient('http://portal.test/api', token_store=store, transport=transport)

    client.login('demo@example.com', 'demo123')

    assert json.loads(transport.calls[0]['body']) == {'email': 'demo@example.com', 'password': 'demo123'}
    assert transport.calls[0]['method'] == 'POST'
    assert store.get() == 'tok-1'

    client.get_profile()
    assert transport.calls[1]['headers']['Authorization'] == 'Bearer tok-1'

    reloaded = ExamPrepClient('http://portal.test/api', token_store=store, transport=transport)
    assert reloaded.token == 'tok-1'


def test_logout_clears_token_even_when_network_fails(tmp_path):
    store = TokenStore(tmp_path / 'session.json')
    store.set('tok-1')
    transport = FakeTransport({'http://portal.test/api': urllib.error.URLError('offline')})
    client = ExamPrepClient('http://portal.test/api', token_store=store, transport=transport)
    assert client.token == 'tok-1'

    with pytest.raises(RequestError):
        client.logout()

    assert client.token is None
    assert store.get() is None
    assert 'Authorization' not in client.headers()


def test_filters_and_path_segments_are_encoded():
    transport = FakeTransport({'http://portal.test/api': json_response(200, {})})
    client = ExamPrepClient('http://portal.test/api', transport=transport)

    client.get_videos(exam='upsc', limit=5)
    client.search_papers('general studies', exam='ssc')
    client.get_paper_years()
    client.get_upcoming_schedules(exam='mpsc')
    client.get_calendar_data(2024, 4)

    urls = [call['url'] for call in transport.calls]
    assert urls == [
        'http://portal.test/api/videos?exam=upsc&limit=5',
        'http://portal.test/api/papers/search/general%20studies?exam=ssc',
        'http://portal.test/api/papers/years/list',
        'http://portal.test/api/schedules/upcoming/list?limit=10&exam=mpsc',
        'http://portal.test/api/schedules/calendar/2024/4',
    ]


def test_add_bookmark_sends_json_body():
    transport = FakeTransport({'http://portal.test/api': json_response(201, {'bookmarkId': 9})})
    client = ExamPrepClient('http://portal.test/api', transport=transport)

    assert client.add_bookmark(video_id=3, bookmark_type='video') == {'bookmarkId': 9}
    assert json.loads(transport.calls[0]['body']) == {'videoId': 3, 'paperId': None, 'bookmarkType': 'video'}


def test_from_settings_uses_configured_address_and_token_file(tmp_path):
    settings = Settings(api_base_url='http://api.test/api', token_file=str(tmp_path / 'session.json'))
    client = ExamPrepClient.from_settings(settings, transport=FakeTransport({}))

    assert client.base_url == 'http://api.test/api'
    assert client.token_store.path == tmp_path / 'session.json'
    assert client.token is None


def test_corrupt_token_file_is_treated_as_logged_out(tmp_path):
    token_file = tmp_path / 'session.json'
    token_file.write_text('{not json', encoding='utf-8')
    store = TokenStore(token_file)
    transport = FakeTransport({'http://portal.test/api': json_response(200, {'message': 'Logout successful'})})

    client = ExamPrepClient('http://portal.test/api', token_store=store, transport=transport)
    assert client.token is None

    client.logout()
    assert not token_file.exists()


def test_protocol_error_on_first_attempt_raises_request_error():
    transport = FakeTransport({'http://portal.test/api': http.client.BadStatusLine('garbage')})
    client = ExamPrepClient('http://portal.test/api', transport=transport)

    with pytest.raises(RequestError) as excinfo:
        client.get_exams()
    assert isinstance(excinfo.value.__cause__, http.client.BadStatusLine)


def test_protocol_error_from_fallback_moves_to_next_candidate():
    transport = FakeTransport(
        {
            'http://portal.test/api': json_response(404, {}, reason='Not Found'),
            'http://localhost:3000/api': http.client.IncompleteRead(b'partial'),
            'http://localhost:5501/api': json_response(200, {'exams': []}),
        }
    )
    client = ExamPrepClient('http://portal.test/api', transport=transport)

    assert client.get_exams() == {'exams': []}
    assert client.base_url == 'http://localhost:5501/api'

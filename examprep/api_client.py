import http.client
import json
import os
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from .config import Settings
from .log import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = 'http://localhost:3000/api'
WELL_KNOWN_BASE_URLS = ('http://localhost:3000/api', 'http://localhost:5501/api')
TOKEN_KEY = 'authToken'

# urlopen raises http.client errors (BadStatusLine, IncompleteRead) that are not OSError.
TRANSPORT_ERRORS = (OSError, http.client.HTTPException)


class RequestError(Exception):
    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status


@dataclass
class HttpResponse:
    status: int
    reason: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b''
    # 'opaque' marks a response whose status and body cannot be inspected.
    type: str = 'basic'

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str:
        return self.headers.get('content-type', '')

    def text(self) -> str:
        return self.body.decode('utf-8', errors='replace')


Transport = Callable[[str, str, dict[str, str], bytes | None], HttpResponse]


def urllib_transport(method: str, url: str, headers: dict[str, str], body: bytes | None) -> HttpResponse:
    """Send one request; HTTP error statuses come back as responses, network failures raise."""
    request = urllib.request.Request(url=url, data=body, headers=headers, method=method)
    try:
        with urllib.request.urlopen(request) as response:
            return HttpResponse(
                status=response.status,
                reason=response.reason or '',
                headers={key.lower(): value for key, value in response.headers.items()},
                body=response.read(),
            )
    except urllib.error.HTTPError as exc:
        return HttpResponse(
            status=exc.code,
            reason=str(exc.reason or ''),
            headers={key.lower(): value for key, value in (exc.headers or {}).items()},
            body=exc.read() or b'',
        )


class TokenStore:
    """Persists the auth token as ``{"authToken": ...}`` in a JSON file."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def get(self) -> str | None:
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning('Ignoring unreadable token file %s: %s', self.path, exc)
            return None
        token = data.get(TOKEN_KEY) if isinstance(data, dict) else None
        return token or None

    def set(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({TOKEN_KEY: token}), encoding='utf-8')

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


def resolve_base_url(override: str | None = None, page_origin: str | None = None) -> str:
    if override:
        base = override
    elif page_origin and not page_origin.startswith('file:'):
        base = f'{page_origin}/api'
    else:
        base = DEFAULT_BASE_URL
    return base.rstrip('/')


def decode_body(response: HttpResponse) -> Any:
    if 'application/json' in response.content_type:
        try:
            return json.loads(response.body)
        except ValueError:
            return None

    text = response.text()
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError:
        return {'message': text}


def error_message(response: HttpResponse, data: Any) -> str:
    if isinstance(data, dict):
        message = data.get('error') or data.get('message')
        if message:
            return str(message)
    return f'{response.status} {response.reason}'


def _query_path(path: str, params: dict[str, Any] | None = None) -> str:
    filtered = {key: value for key, value in (params or {}).items() if value is not None}
    if not filtered:
        return path
    return f'{path}?{urllib.parse.urlencode(filtered)}'


def _segment(value: Any) -> str:
    return urllib.parse.quote(str(value), safe='')


class ExamPrepClient:
    def __init__(
        self,
        base_url: str | None = None,
        *,
        page_origin: str | None = None,
        token_store: TokenStore | None = None,
        transport: Transport | None = None,
    ):
        self.base_url = resolve_base_url(base_url, page_origin)
        self.fallback_base_urls = [url for url in WELL_KNOWN_BASE_URLS if not self.base_url.endswith(url[len('http://'):])]
        self.token_store = token_store
        self.transport = transport or urllib_transport
        self.token = token_store.get() if token_store else None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> 'ExamPrepClient':
        return cls(settings.api_base_url, token_store=TokenStore(settings.token_file), **kwargs)

    def set_token(self, token: str | None) -> None:
        self.token = token
        if not self.token_store:
            return
        if token:
            self.token_store.set(token)
        else:
            self.token_store.clear()

    def headers(self) -> dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def request(
        self,
        endpoint: str,
        method: str = 'GET',
        body: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        merged_headers = {**self.headers(), **(headers or {})}
        payload = body.encode('utf-8') if body is not None else None

        try:
            response = self.transport(method, f'{self.base_url}{endpoint}', merged_headers, payload)
        except TRANSPORT_ERRORS as exc:
            logger.error('API Error: %s %s%s: %s', method, self.base_url, endpoint, exc)
            raise RequestError(str(exc)) from exc

        if (not response.ok and response.status in (404, 405)) or response.type == 'opaque':
            response = self._try_fallbacks(method, endpoint, merged_headers, payload, response)

        data = decode_body(response)

        if not response.ok:
            message = error_message(response, data)
            logger.error('API Error: %s %s -> %s', method, endpoint, message)
            raise RequestError(message, status=response.status)

        return data if data is not None else {}

    def _try_fallbacks(
        self,
        method: str,
        endpoint: str,
        headers: dict[str, str],
        payload: bytes | None,
        response: HttpResponse,
    ) -> HttpResponse:
        for candidate in self.fallback_base_urls:
            try:
                fallback = self.transport(method, f'{candidate}{endpoint}', headers, payload)
            except TRANSPORT_ERRORS as exc:
                logger.debug('Fallback %s unreachable: %s', candidate, exc)
                continue
            if fallback.ok or fallback.status != 0:
                self.base_url = candidate.rstrip('/')
                logger.info('Switched API base URL to %s', self.base_url)
                return fallback
        return response

    # Auth

    def register(self, user_data: dict) -> dict:
        response = self.request('/auth/register', method='POST', body=json.dumps(user_data))
        if response.get('token'):
            self.set_token(response['token'])
        return response

    def login(self, email: str, password: str) -> dict:
        response = self.request('/auth/login', method='POST', body=json.dumps({'email': email, 'password': password}))
        if response.get('token'):
            self.set_token(response['token'])
        return response

    def logout(self) -> None:
        try:
            self.request('/auth/logout', method='POST')
        finally:
            self.set_token(None)

    def get_profile(self) -> dict:
        return self.request('/auth/profile')

    # Exams

    def get_exams(self) -> dict:
        return self.request('/exams')

    def get_exam(self, exam_id: int) -> dict:
        return self.request(f'/exams/{_segment(exam_id)}')

    def get_exam_by_code(self, code: str) -> dict:
        return self.request(f'/exams/code/{_segment(code)}')

    def get_exam_stats(self, exam_id: int) -> dict:
        return self.request(f'/exams/{_segment(exam_id)}/stats')

    # Videos

    def get_videos(self, **filters) -> dict:
        return self.request(_query_path('/videos', filters))

    def get_video(self, video_id: int) -> dict:
        return self.request(f'/videos/{_segment(video_id)}')

    def get_videos_by_exam(self, exam_code: str, **filters) -> dict:
        return self.request(_query_path(f'/videos/exam/{_segment(exam_code)}', filters))

    def search_videos(self, query: str, **filters) -> dict:
        return self.request(_query_path(f'/videos/search/{_segment(query)}', filters))

    def get_video_categories(self) -> dict:
        return self.request('/videos/categories/list')

    # Papers

    def get_papers(self, **filters) -> dict:
        return self.request(_query_path('/papers', filters))

    def get_paper(self, paper_id: int) -> dict:
        return self.request(f'/papers/{_segment(paper_id)}')

    def get_papers_by_exam(self, exam_code: str, **filters) -> dict:
        return self.request(_query_path(f'/papers/exam/{_segment(exam_code)}', filters))

    def download_paper(self, paper_id: int) -> dict:
        return self.request(f'/papers/{_segment(paper_id)}/download', method='POST')

    def search_papers(self, query: str, **filters) -> dict:
        return self.request(_query_path(f'/papers/search/{_segment(query)}', filters))

    def get_paper_years(self, exam: str | None = None) -> dict:
        return self.request(_query_path('/papers/years/list', {'exam': exam}))

    def get_paper_types(self, exam: str | None = None) -> dict:
        return self.request(_query_path('/papers/types/list', {'exam': exam}))

    # Schedules

    def get_schedules(self, **filters) -> dict:
        return self.request(_query_path('/schedules', filters))

    def get_schedule(self, schedule_id: int) -> dict:
        return self.request(f'/schedules/{_segment(schedule_id)}')

    def get_schedules_by_exam(self, exam_code: str, **filters) -> dict:
        return self.request(_query_path(f'/schedules/exam/{_segment(exam_code)}', filters))

    def get_upcoming_schedules(self, exam: str | None = None, limit: int = 10) -> dict:
        return self.request(_query_path('/schedules/upcoming/list', {'limit': limit, 'exam': exam}))

    def get_calendar_data(self, year: int, month: int, exam: str | None = None) -> dict:
        return self.request(_query_path(f'/schedules/calendar/{_segment(year)}/{_segment(month)}', {'exam': exam}))

    def get_event_types(self) -> dict:
        return self.request('/schedules/types/list')

    # Users

    def get_user_progress(self, **filters) -> dict:
        return self.request(_query_path('/users/progress', filters))

    def get_bookmarks(self, **filters) -> dict:
        return self.request(_query_path('/users/bookmarks', filters))

    def add_bookmark(self, video_id: int | None = None, paper_id: int | None = None, bookmark_type: str | None = None) -> dict:
        payload = {'videoId': video_id, 'paperId': paper_id, 'bookmarkType': bookmark_type}
        return self.request('/users/bookmarks', method='POST', body=json.dumps(payload))

    def remove_bookmark(self, bookmark_id: int) -> dict:
        return self.request(f'/users/bookmarks/{_segment(bookmark_id)}', method='DELETE')

    def get_user_stats(self) -> dict:
        return self.request('/users/stats')

    def get_dashboard(self) -> dict:
        return self.request('/users/dashboard')

    # Centers

    def get_centers(self, **filters) -> dict:
        return self.request(_query_path('/centers', filters))

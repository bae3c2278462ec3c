from functools import lru_cache
from typing import Literal

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import create_access_token, decode_user_id, hash_password, public_user, verify_password
from .config import Settings, get_settings
from .database import Database, QueryError, resolve_engine
from .log import get_logger, init_logging
from .schema import ensure_schema, seed_sample_content

logger = get_logger(__name__)

_settings = get_settings()

app = FastAPI(title='ExamPrep Hub API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(_settings.cors_origins) or ['*'],
    allow_origin_regex=r'https?://(localhost|127\.0\.0\.1)(:\d+)?',
    allow_credentials=True,
    allow_methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
    allow_headers=['Content-Type', 'Authorization'],
)

bearer_scheme = HTTPBearer(auto_error=False)

ExamInterest = Literal['upsc', 'mpsc', 'ssc']


class RegisterRequest(BaseModel):
    fullName: str = Field(min_length=2, max_length=120)
    email: str = Field(min_length=3, max_length=254, pattern=r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
    phone: str = Field(min_length=7, max_length=20)
    examInterest: ExamInterest
    password: str = Field(min_length=6, max_length=128)
    confirmPassword: str


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=1, max_length=128)


class ProfileUpdate(BaseModel):
    fullName: str | None = Field(default=None, min_length=2, max_length=120)
    phone: str | None = Field(default=None, min_length=7, max_length=20)
    examInterest: ExamInterest | None = None


class BookmarkCreate(BaseModel):
    videoId: int | None = None
    paperId: int | None = None
    bookmarkType: Literal['video', 'paper'] | None = None


class CenterCreate(BaseModel):
    name: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    country: str = 'India'
    websiteUrl: str | None = None
    mapsUrl: str | None = None
    latitude: float | None = None
    longitude: float | None = None


class CenterUpdate(BaseModel):
    name: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    websiteUrl: str | None = None
    mapsUrl: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    isActive: bool | None = None


CENTER_COLUMNS = {
    'name': 'name',
    'address': 'address',
    'city': 'city',
    'state': 'state',
    'country': 'country',
    'websiteUrl': 'website_url',
    'mapsUrl': 'maps_url',
    'latitude': 'latitude',
    'longitude': 'longitude',
    'isActive': 'is_active',
}

VIDEO_COLUMNS = '''
  v.id, v.title, v.description, v.youtube_url, v.thumbnail_url,
  v.duration, v.views, v.category, v.is_featured, v.created_at
'''

PAPER_COLUMNS = '''
  p.id, p.title, p.description, p.year, p.paper_type,
  p.file_path, p.file_size, p.download_count, p.created_at
'''

SCHEDULE_COLUMNS = '''
  s.id, s.event_name, s.event_type, s.start_date, s.end_date, s.description
'''


@lru_cache(maxsize=1)
def get_db() -> Database:
    return Database(resolve_engine(get_settings()))


def load_active_user(db: Database, user_id: int) -> dict | None:
    result = db.execute(
        'SELECT id, email, full_name, exam_interest FROM users WHERE id = ? AND is_active = 1',
        [user_id],
    )
    return result.rows[0] if result.rows else None


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> dict:
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Access token required')

    user_id = decode_user_id(settings, credentials.credentials)
    user = load_active_user(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='User not found or inactive')
    return user


def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> dict | None:
    if not credentials:
        return None
    try:
        return load_active_user(db, decode_user_id(settings, credentials.credentials))
    except HTTPException:
        return None


def pagination(limit: int, offset: int, rows: list) -> dict:
    return {'limit': limit, 'offset': offset, 'count': len(rows)}


def count_of(db: Database, statement: str, params: list) -> int:
    row = db.execute(statement, params).rows[0]
    value = next(iter(row.values()))
    return int(value or 0)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    if exc.status_code == status.HTTP_404_NOT_FOUND and detail == 'Not Found':
        detail = 'Route not found'
    return JSONResponse(status_code=exc.status_code, content={'error': detail}, headers=getattr(exc, 'headers', None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={'errors': jsonable_encoder(exc.errors())})


@app.exception_handler(QueryError)
async def query_error_handler(request: Request, exc: QueryError) -> JSONResponse:
    logger.error('%s %s failed: %s', request.method, request.url.path, exc.backend_message)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={'error': 'Internal server error'})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception('%s %s failed', request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={'error': 'Internal server error'})


@app.on_event('startup')
def startup() -> None:
    settings = get_settings()
    init_logging(settings.log_level)
    db = get_db()
    logger.info('Using %s engine', db.kind)
    if not db.test_connection():
        raise RuntimeError('Failed to connect to database')
    ensure_schema(db)
    if settings.seed_sample_data:
        seed_sample_content(db, hash_password)


@app.get('/health')
def health() -> dict:
    return {'ok': True, 'service': 'examprep-hub'}


@app.get('/db-check')
def db_check(db: Database = Depends(get_db)) -> dict:
    try:
        db_time = db.execute("SELECT datetime('now') AS now").rows[0]['now']
    except QueryError as exc:
        return {'ok': False, 'error': exc.backend_message}
    return {'ok': True, 'db': db.kind, 'time': str(db_time)}


@app.post('/api/auth/register', status_code=status.HTTP_201_CREATED)
def auth_register(
    payload: RegisterRequest,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> dict:
    if payload.confirmPassword != payload.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Passwords do not match')

    email = payload.email.strip().lower()
    existing = db.execute('SELECT id FROM users WHERE email = ?', [email])
    if existing.rows:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='User with this email already exists')

    try:
        user_id = db.insert(
            'INSERT INTO users (full_name, email, phone, exam_interest, password_hash) VALUES (?, ?, ?, ?, ?)',
            [payload.fullName.strip(), email, payload.phone.strip(), payload.examInterest, hash_password(payload.password)],
        )
    except QueryError as exc:
        if exc.unique_violation:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='User with this email already exists')
        raise

    user = db.execute('SELECT id, full_name, email, exam_interest FROM users WHERE id = ?', [user_id]).rows[0]
    token = create_access_token(settings, user['id'], user['email'])
    return {'message': 'User registered successfully', 'token': token, 'user': public_user(user)}


@app.post('/api/auth/login')
def auth_login(
    payload: LoginRequest,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> dict:
    result = db.execute(
        'SELECT id, full_name, email, exam_interest, password_hash FROM users WHERE email = ? AND is_active = 1',
        [payload.email.strip().lower()],
    )
    user = result.rows[0] if result.rows else None

    if not user or not verify_password(payload.password, user['password_hash']):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid credentials')

    token = create_access_token(settings, user['id'], user['email'])
    return {'message': 'Login successful', 'token': token, 'user': public_user(user)}


@app.get('/api/auth/profile')
def auth_profile(current_user: dict = Depends(get_current_user)) -> dict:
    return {'user': public_user(current_user)}


@app.put('/api/auth/profile')
def update_profile(
    payload: ProfileUpdate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
) -> dict:
    updates: list[str] = []
    params: list = []

    if payload.fullName:
        updates.append('full_name = ?')
        params.append(payload.fullName.strip())
    if payload.phone:
        updates.append('phone = ?')
        params.append(payload.phone.strip())
    if payload.examInterest:
        updates.append('exam_interest = ?')
        params.append(payload.examInterest)

    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='No valid fields to update')

    params.append(current_user['id'])
    db.execute(f"UPDATE users SET {', '.join(updates)}, updated_at = CURRENT_TIMESTAMP WHERE id = ?", params)

    user = db.execute(
        'SELECT id, full_name, email, exam_interest FROM users WHERE id = ?',
        [current_user['id']],
    ).rows[0]
    return {'message': 'Profile updated successfully', 'user': public_user(user)}


@app.post('/api/auth/logout')
def auth_logout(current_user: dict = Depends(get_current_user)) -> dict:
    # Tokens are stateless; the client drops its copy.
    return {'message': 'Logout successful'}


@app.get('/api/exams')
def list_exams(db: Database = Depends(get_db)) -> dict:
    result = db.execute('SELECT id, name, code, description, exam_type FROM exams WHERE is_active = 1 ORDER BY name')
    return {'exams': result.rows}


@app.get('/api/exams/code/{code}')
def get_exam_by_code(code: str, db: Database = Depends(get_db)) -> dict:
    result = db.execute(
        'SELECT id, name, code, description, exam_type FROM exams WHERE code = ? AND is_active = 1',
        [code.upper()],
    )
    if not result.rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Exam not found')
    return {'exam': result.rows[0]}


@app.get('/api/exams/{exam_id}')
def get_exam(exam_id: int, db: Database = Depends(get_db)) -> dict:
    result = db.execute(
        'SELECT id, name, code, description, exam_type FROM exams WHERE id = ? AND is_active = 1',
        [exam_id],
    )
    if not result.rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Exam not found')
    return {'exam': result.rows[0]}


@app.get('/api/exams/{exam_id}/stats')
def get_exam_stats(exam_id: int, db: Database = Depends(get_db)) -> dict:
    exam = db.execute('SELECT id, name FROM exams WHERE id = ? AND is_active = 1', [exam_id])
    if not exam.rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Exam not found')

    return {
        'exam': exam.rows[0],
        'stats': {
            'videoCount': count_of(
                db, 'SELECT COUNT(*) AS video_count FROM videos WHERE exam_id = ? AND is_active = 1', [exam_id]
            ),
            'paperCount': count_of(
                db, 'SELECT COUNT(*) AS paper_count FROM papers WHERE exam_id = ? AND is_active = 1', [exam_id]
            ),
            'totalViews': count_of(
                db, 'SELECT SUM(views) AS total_views FROM videos WHERE exam_id = ? AND is_active = 1', [exam_id]
            ),
            'upcomingEvents': count_of(
                db,
                "SELECT COUNT(*) AS upcoming_events FROM schedules "
                "WHERE exam_id = ? AND is_active = 1 AND date(start_date) >= date('now')",
                [exam_id],
            ),
        },
    }


@app.get('/api/videos')
def list_videos(
    exam: str | None = Query(default=None),
    category: str | None = Query(default=None),
    featured: str | None = Query(default=None),
    limit: int = Query(default=20, ge=0),
    offset: int = Query(default=0, ge=0),
    db: Database = Depends(get_db),
) -> dict:
    filters = ['v.is_active = 1']
    params: list = []

    if exam:
        filters.append('e.code = ?')
        params.append(exam.upper())
    if category:
        filters.append('v.category = ?')
        params.append(category)
    if featured == 'true':
        filters.append('v.is_featured = 1')

    params.extend([limit, offset])
    result = db.execute(
        f'''
        SELECT {VIDEO_COLUMNS}, e.name AS exam_name, e.code AS exam_code
        FROM videos v
        JOIN exams e ON v.exam_id = e.id
        WHERE {' AND '.join(filters)}
        ORDER BY v.is_featured DESC, v.views DESC, v.created_at DESC
        LIMIT ? OFFSET ?
        ''',
        params,
    )
    return {'videos': result.rows, 'pagination': pagination(limit, offset, result.rows)}


@app.get('/api/videos/categories/list')
def list_video_categories(db: Database = Depends(get_db)) -> dict:
    result = db.execute(
        'SELECT DISTINCT category FROM videos WHERE is_active = 1 AND category IS NOT NULL ORDER BY category'
    )
    return {'categories': [row['category'] for row in result.rows]}


@app.get('/api/videos/exam/{exam_code}')
def list_videos_by_exam(
    exam_code: str,
    category: str | None = Query(default=None),
    limit: int = Query(default=20, ge=0),
    offset: int = Query(default=0, ge=0),
    db: Database = Depends(get_db),
) -> dict:
    code = exam_code.upper()
    filters = ['e.code = ?', 'v.is_active = 1']
    params: list = [code]

    if category:
        filters.append('v.category = ?')
        params.append(category)

    params.extend([limit, offset])
    result = db.execute(
        f'''
        SELECT {VIDEO_COLUMNS}
        FROM videos v
        JOIN exams e ON v.exam_id = e.id
        WHERE {' AND '.join(filters)}
        ORDER BY v.is_featured DESC, v.views DESC, v.created_at DESC
        LIMIT ? OFFSET ?
        ''',
        params,
    )
    return {'videos': result.rows, 'exam': code, 'pagination': pagination(limit, offset, result.rows)}


@app.get('/api/videos/search/{query}')
def search_videos(
    query: str,
    limit: int = Query(default=20, ge=0),
    offset: int = Query(default=0, ge=0),
    db: Database = Depends(get_db),
) -> dict:
    like = f'%{query}%'
    result = db.execute(
        f'''
        SELECT {VIDEO_COLUMNS}, e.name AS exam_name, e.code AS exam_code
        FROM videos v
        JOIN exams e ON v.exam_id = e.id
        WHERE v.is_active = 1
          AND (v.title LIKE ? OR v.description LIKE ?)
        ORDER BY v.views DESC, v.created_at DESC
        LIMIT ? OFFSET ?
        ''',
        [like, like, limit, offset],
    )
    return {'videos': result.rows, 'query': query, 'pagination': pagination(limit, offset, result.rows)}


@app.get('/api/videos/{video_id}')
def get_video(
    video_id: int,
    db: Database = Depends(get_db),
    current_user: dict | None = Depends(get_optional_user),
) -> dict:
    result = db.execute(
        f'''
        SELECT {VIDEO_COLUMNS}, e.name AS exam_name, e.code AS exam_code
        FROM videos v
        JOIN exams e ON v.exam_id = e.id
        WHERE v.id = ? AND v.is_active = 1
        ''',
        [video_id],
    )
    if not result.rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Video not found')

    db.execute('UPDATE videos SET views = views + 1 WHERE id = ?', [video_id])

    if current_user:
        db.execute(
            'INSERT INTO user_progress (user_id, video_id, progress_type) VALUES (?, ?, ?) ON CONFLICT DO NOTHING',
            [current_user['id'], video_id, 'video_watched'],
        )

    return {'video': result.rows[0]}


@app.get('/api/papers')
def list_papers(
    exam: str | None = Query(default=None),
    year: int | None = Query(default=None),
    paper_type: str | None = Query(default=None, alias='paperType'),
    limit: int = Query(default=20, ge=0),
    offset: int = Query(default=0, ge=0),
    db: Database = Depends(get_db),
) -> dict:
    filters = ['p.is_active = 1']
    params: list = []

    if exam:
        filters.append('e.code = ?')
        params.append(exam.upper())
    if year:
        filters.append('p.year = ?')
        params.append(year)
    if paper_type:
        filters.append('p.paper_type = ?')
        params.append(paper_type)

    params.extend([limit, offset])
    result = db.execute(
        f'''
        SELECT {PAPER_COLUMNS}, e.name AS exam_name, e.code AS exam_code
        FROM papers p
        JOIN exams e ON p.exam_id = e.id
        WHERE {' AND '.join(filters)}
        ORDER BY p.year DESC, p.created_at DESC
        LIMIT ? OFFSET ?
        ''',
        params,
    )
    return {'papers': result.rows, 'pagination': pagination(limit, offset, result.rows)}


@app.get('/api/papers/years/list')
def list_paper_years(exam: str | None = Query(default=None), db: Database = Depends(get_db)) -> dict:
    statement = 'SELECT DISTINCT year FROM papers WHERE is_active = 1'
    params: list = []
    if exam:
        statement += ' AND exam_id = (SELECT id FROM exams WHERE code = ?)'
        params.append(exam.upper())
    statement += ' ORDER BY year DESC'

    return {'years': [row['year'] for row in db.execute(statement, params).rows]}


@app.get('/api/papers/types/list')
def list_paper_types(exam: str | None = Query(default=None), db: Database = Depends(get_db)) -> dict:
    statement = 'SELECT DISTINCT paper_type FROM papers WHERE is_active = 1 AND paper_type IS NOT NULL'
    params: list = []
    if exam:
        statement += ' AND exam_id = (SELECT id FROM exams WHERE code = ?)'
        params.append(exam.upper())
    statement += ' ORDER BY paper_type'

    return {'paperTypes': [row['paper_type'] for row in db.execute(statement, params).rows]}


@app.get('/api/papers/exam/{exam_code}')
def list_papers_by_exam(
    exam_code: str,
    year: int | None = Query(default=None),
    paper_type: str | None = Query(default=None, alias='paperType'),
    limit: int = Query(default=20, ge=0),
    offset: int = Query(default=0, ge=0),
    db: Database = Depends(get_db),
) -> dict:
    code = exam_code.upper()
    filters = ['e.code = ?', 'p.is_active = 1']
    params: list = [code]

    if year:
        filters.append('p.year = ?')
        params.append(year)
    if paper_type:
        filters.append('p.paper_type = ?')
        params.append(paper_type)

    params.extend([limit, offset])
    result = db.execute(
        f'''
        SELECT {PAPER_COLUMNS}
        FROM papers p
        JOIN exams e ON p.exam_id = e.id
        WHERE {' AND '.join(filters)}
        ORDER BY p.year DESC, p.created_at DESC
        LIMIT ? OFFSET ?
        ''',
        params,
    )
    return {'papers': result.rows, 'exam': code, 'pagination': pagination(limit, offset, result.rows)}


@app.get('/api/papers/search/{query}')
def search_papers(
    query: str,
    limit: int = Query(default=20, ge=0),
    offset: int = Query(default=0, ge=0),
    db: Database = Depends(get_db),
) -> dict:
    like = f'%{query}%'
    result = db.execute(
        f'''
        SELECT {PAPER_COLUMNS}, e.name AS exam_name, e.code AS exam_code
        FROM papers p
        JOIN exams e ON p.exam_id = e.id
        WHERE p.is_active = 1
          AND (p.title LIKE ? OR p.description LIKE ?)
        ORDER BY p.year DESC, p.download_count DESC
        LIMIT ? OFFSET ?
        ''',
        [like, like, limit, offset],
    )
    return {'papers': result.rows, 'query': query, 'pagination': pagination(limit, offset, result.rows)}


@app.get('/api/papers/{paper_id}')
def get_paper(paper_id: int, db: Database = Depends(get_db)) -> dict:
    result = db.execute(
        f'''
        SELECT {PAPER_COLUMNS}, e.name AS exam_name, e.code AS exam_code
        FROM papers p
        JOIN exams e ON p.exam_id = e.id
        WHERE p.id = ? AND p.is_active = 1
        ''',
        [paper_id],
    )
    if not result.rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Paper not found')
    return {'paper': result.rows[0]}


@app.post('/api/papers/{paper_id}/download')
def record_paper_download(
    paper_id: int,
    db: Database = Depends(get_db),
    current_user: dict | None = Depends(get_optional_user),
) -> dict:
    result = db.execute('SELECT id, title, file_path FROM papers WHERE id = ? AND is_active = 1', [paper_id])
    if not result.rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Paper not found')
    paper = result.rows[0]

    db.execute('UPDATE papers SET download_count = download_count + 1 WHERE id = ?', [paper_id])

    if current_user:
        db.execute(
            'INSERT INTO user_progress (user_id, paper_id, progress_type) VALUES (?, ?, ?) ON CONFLICT DO NOTHING',
            [current_user['id'], paper_id, 'paper_downloaded'],
        )

    return {
        'message': 'Download recorded successfully',
        'paper': {'id': paper['id'], 'title': paper['title'], 'filePath': paper['file_path']},
    }


@app.get('/api/schedules')
def list_schedules(
    exam: str | None = Query(default=None),
    event_type: str | None = Query(default=None, alias='eventType'),
    upcoming: str | None = Query(default=None),
    limit: int = Query(default=20, ge=0),
    offset: int = Query(default=0, ge=0),
    db: Database = Depends(get_db),
) -> dict:
    filters = ['s.is_active = 1']
    params: list = []

    if exam:
        filters.append('e.code = ?')
        params.append(exam.upper())
    if event_type:
        filters.append('s.event_type = ?')
        params.append(event_type)
    if upcoming == 'true':
        filters.append("date(s.start_date) >= date('now')")

    params.extend([limit, offset])
    result = db.execute(
        f'''
        SELECT {SCHEDULE_COLUMNS}, s.created_at, e.name AS exam_name, e.code AS exam_code
        FROM schedules s
        JOIN exams e ON s.exam_id = e.id
        WHERE {' AND '.join(filters)}
        ORDER BY s.start_date ASC, s.created_at DESC
        LIMIT ? OFFSET ?
        ''',
        params,
    )
    return {'schedules': result.rows, 'pagination': pagination(limit, offset, result.rows)}


@app.get('/api/schedules/upcoming/list')
def list_upcoming_schedules(
    exam: str | None = Query(default=None),
    limit: int = Query(default=10, ge=0),
    db: Database = Depends(get_db),
) -> dict:
    filters = ['s.is_active = 1', "date(s.start_date) >= date('now')"]
    params: list = []

    if exam:
        filters.append('e.code = ?')
        params.append(exam.upper())

    params.append(limit)
    result = db.execute(
        f'''
        SELECT {SCHEDULE_COLUMNS}, e.name AS exam_name, e.code AS exam_code
        FROM schedules s
        JOIN exams e ON s.exam_id = e.id
        WHERE {' AND '.join(filters)}
        ORDER BY s.start_date ASC
        LIMIT ?
        ''',
        params,
    )
    return {'upcomingSchedules': result.rows}


@app.get('/api/schedules/types/list')
def list_event_types(db: Database = Depends(get_db)) -> dict:
    result = db.execute('SELECT DISTINCT event_type FROM schedules WHERE is_active = 1 ORDER BY event_type')
    return {'eventTypes': [row['event_type'] for row in result.rows]}


@app.get('/api/schedules/calendar/{year}/{month}')
def get_calendar(
    year: int,
    month: int,
    exam: str | None = Query(default=None),
    db: Database = Depends(get_db),
) -> dict:
    filters = [
        's.is_active = 1',
        "strftime('%Y', s.start_date) = ?",
        "strftime('%m', s.start_date) = ?",
    ]
    params: list = [f'{year:04d}', f'{month:02d}']

    if exam:
        filters.append('e.code = ?')
        params.append(exam.upper())

    result = db.execute(
        f'''
        SELECT {SCHEDULE_COLUMNS}, e.name AS exam_name, e.code AS exam_code
        FROM schedules s
        JOIN exams e ON s.exam_id = e.id
        WHERE {' AND '.join(filters)}
        ORDER BY s.start_date ASC
        ''',
        params,
    )
    return {'calendar': result.rows, 'year': year, 'month': month}


@app.get('/api/schedules/exam/{exam_code}')
def list_schedules_by_exam(
    exam_code: str,
    event_type: str | None = Query(default=None, alias='eventType'),
    upcoming: str | None = Query(default=None),
    limit: int = Query(default=20, ge=0),
    offset: int = Query(default=0, ge=0),
    db: Database = Depends(get_db),
) -> dict:
    code = exam_code.upper()
    filters = ['e.code = ?', 's.is_active = 1']
    params: list = [code]

    if event_type:
        filters.append('s.event_type = ?')
        params.append(event_type)
    if upcoming == 'true':
        filters.append("date(s.start_date) >= date('now')")

    params.extend([limit, offset])
    result = db.execute(
        f'''
        SELECT {SCHEDULE_COLUMNS}, s.created_at
        FROM schedules s
        JOIN exams e ON s.exam_id = e.id
        WHERE {' AND '.join(filters)}
        ORDER BY s.start_date ASC, s.created_at DESC
        LIMIT ? OFFSET ?
        ''',
        params,
    )
    return {'schedules': result.rows, 'exam': code, 'pagination': pagination(limit, offset, result.rows)}


@app.get('/api/schedules/{schedule_id}')
def get_schedule(schedule_id: int, db: Database = Depends(get_db)) -> dict:
    result = db.execute(
        f'''
        SELECT {SCHEDULE_COLUMNS}, s.created_at, e.name AS exam_name, e.code AS exam_code
        FROM schedules s
        JOIN exams e ON s.exam_id = e.id
        WHERE s.id = ? AND s.is_active = 1
        ''',
        [schedule_id],
    )
    if not result.rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Schedule not found')
    return {'schedule': result.rows[0]}


@app.get('/api/users/progress')
def list_user_progress(
    progress_type: str | None = Query(default=None, alias='type'),
    limit: int = Query(default=20, ge=0),
    offset: int = Query(default=0, ge=0),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
) -> dict:
    filters = ['up.user_id = ?']
    params: list = [current_user['id']]

    if progress_type:
        filters.append('up.progress_type = ?')
        params.append(progress_type)

    params.extend([limit, offset])
    result = db.execute(
        f'''
        SELECT up.id, up.progress_type, up.progress_data, up.created_at,
               v.title AS video_title, v.youtube_url AS video_url,
               p.title AS paper_title, p.file_path AS paper_path
        FROM user_progress up
        LEFT JOIN videos v ON up.video_id = v.id
        LEFT JOIN papers p ON up.paper_id = p.id
        WHERE {' AND '.join(filters)}
        ORDER BY up.created_at DESC, up.id DESC
        LIMIT ? OFFSET ?
        ''',
        params,
    )
    return {'progress': result.rows, 'pagination': pagination(limit, offset, result.rows)}


@app.get('/api/users/bookmarks')
def list_bookmarks(
    bookmark_type: str | None = Query(default=None, alias='type'),
    limit: int = Query(default=20, ge=0),
    offset: int = Query(default=0, ge=0),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
) -> dict:
    filters = ['b.user_id = ?']
    params: list = [current_user['id']]

    if bookmark_type:
        filters.append('b.bookmark_type = ?')
        params.append(bookmark_type)

    params.extend([limit, offset])
    result = db.execute(
        f'''
        SELECT b.id, b.bookmark_type, b.created_at,
               v.title AS video_title, v.youtube_url AS video_url, v.thumbnail_url,
               p.title AS paper_title, p.file_path AS paper_path
        FROM bookmarks b
        LEFT JOIN videos v ON b.video_id = v.id
        LEFT JOIN papers p ON b.paper_id = p.id
        WHERE {' AND '.join(filters)}
        ORDER BY b.created_at DESC, b.id DESC
        LIMIT ? OFFSET ?
        ''',
        params,
    )
    return {'bookmarks': result.rows, 'pagination': pagination(limit, offset, result.rows)}


@app.post('/api/users/bookmarks', status_code=status.HTTP_201_CREATED)
def add_bookmark(
    payload: BookmarkCreate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
) -> dict:
    if not payload.bookmarkType or (not payload.videoId and not payload.paperId):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Bookmark type and either videoId or paperId is required',
        )
    if payload.bookmarkType == 'video' and not payload.videoId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='videoId is required for video bookmarks')
    if payload.bookmarkType == 'paper' and not payload.paperId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='paperId is required for paper bookmarks')

    if payload.bookmarkType == 'video':
        if not db.execute('SELECT id FROM videos WHERE id = ? AND is_active = 1', [payload.videoId]).rows:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Video not found')
    else:
        if not db.execute('SELECT id FROM papers WHERE id = ? AND is_active = 1', [payload.paperId]).rows:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Paper not found')

    try:
        bookmark_id = db.insert(
            'INSERT INTO bookmarks (user_id, video_id, paper_id, bookmark_type) VALUES (?, ?, ?, ?)',
            [current_user['id'], payload.videoId, payload.paperId, payload.bookmarkType],
        )
    except QueryError as exc:
        if exc.unique_violation:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='Item already bookmarked')
        raise

    return {'message': 'Bookmark added successfully', 'bookmarkId': bookmark_id}


@app.delete('/api/users/bookmarks/{bookmark_id}')
def remove_bookmark(
    bookmark_id: int,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
) -> dict:
    result = db.execute('DELETE FROM bookmarks WHERE id = ? AND user_id = ?', [bookmark_id, current_user['id']])
    if result.affected == 0:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Bookmark not found')
    return {'message': 'Bookmark removed successfully'}


@app.get('/api/users/stats')
def get_user_stats(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)) -> dict:
    user_id = current_user['id']
    return {
        'stats': {
            'videosWatched': count_of(
                db,
                'SELECT COUNT(*) AS video_count FROM user_progress WHERE user_id = ? AND progress_type = ?',
                [user_id, 'video_watched'],
            ),
            'papersDownloaded': count_of(
                db,
                'SELECT COUNT(*) AS paper_count FROM user_progress WHERE user_id = ? AND progress_type = ?',
                [user_id, 'paper_downloaded'],
            ),
            'bookmarksCount': count_of(
                db, 'SELECT COUNT(*) AS bookmark_count FROM bookmarks WHERE user_id = ?', [user_id]
            ),
            'recentActivity': count_of(
                db,
                "SELECT COUNT(*) AS recent_activity FROM user_progress "
                "WHERE user_id = ? AND created_at >= datetime('now', '-7 days')",
                [user_id],
            ),
        }
    }


@app.get('/api/users/dashboard')
def get_dashboard(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)) -> dict:
    user_id = current_user['id']

    progress = db.execute(
        '''
        SELECT up.progress_type, up.created_at,
               v.title AS video_title, v.youtube_url,
               p.title AS paper_title
        FROM user_progress up
        LEFT JOIN videos v ON up.video_id = v.id
        LEFT JOIN papers p ON up.paper_id = p.id
        WHERE up.user_id = ?
        ORDER BY up.created_at DESC, up.id DESC
        LIMIT 5
        ''',
        [user_id],
    )
    bookmarks = db.execute(
        '''
        SELECT b.bookmark_type, b.created_at,
               v.title AS video_title, v.youtube_url,
               p.title AS paper_title
        FROM bookmarks b
        LEFT JOIN videos v ON b.video_id = v.id
        LEFT JOIN papers p ON b.paper_id = p.id
        WHERE b.user_id = ?
        ORDER BY b.created_at DESC, b.id DESC
        LIMIT 5
        ''',
        [user_id],
    )
    recommended = db.execute(
        '''
        SELECT v.id, v.title, v.description, v.youtube_url, v.thumbnail_url, v.views
        FROM videos v
        JOIN exams e ON v.exam_id = e.id
        WHERE e.code = ? AND v.is_active = 1
        ORDER BY v.views DESC
        LIMIT 3
        ''',
        [(current_user.get('exam_interest') or '').upper()],
    )

    return {
        'recentProgress': progress.rows,
        'recentBookmarks': bookmarks.rows,
        'recommendedVideos': recommended.rows,
    }


@app.get('/api/centers')
def list_centers(
    city: str | None = Query(default=None),
    state: str | None = Query(default=None),
    limit: int = Query(default=100, ge=0),
    offset: int = Query(default=0, ge=0),
    db: Database = Depends(get_db),
) -> dict:
    filters = ['is_active = 1']
    params: list = []

    if city:
        filters.append('LOWER(city) = ?')
        params.append(city.lower())
    if state:
        filters.append('LOWER(state) = ?')
        params.append(state.lower())

    params.extend([limit, offset])
    result = db.execute(
        f'''
        SELECT id, name, address, city, state, country, website_url, maps_url, latitude, longitude
        FROM centers
        WHERE {' AND '.join(filters)}
        ORDER BY city, name
        LIMIT ? OFFSET ?
        ''',
        params,
    )
    return {'centers': result.rows}


@app.post('/api/centers', status_code=status.HTTP_201_CREATED)
def create_center(
    payload: CenterCreate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
) -> dict:
    if not payload.name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Name is required')

    center_id = db.insert(
        '''
        INSERT INTO centers (name, address, city, state, country, website_url, maps_url, latitude, longitude)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ''',
        [
            payload.name,
            payload.address or None,
            payload.city or None,
            payload.state or None,
            payload.country,
            payload.websiteUrl or None,
            payload.mapsUrl or None,
            payload.latitude,
            payload.longitude,
        ],
    )
    return {'message': 'Center created', 'centerId': center_id}


@app.put('/api/centers/{center_id}')
def update_center(
    center_id: int,
    payload: CenterUpdate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
) -> dict:
    updates: list[str] = []
    params: list = []

    for field_name, value in payload.model_dump(exclude_unset=True).items():
        updates.append(f'{CENTER_COLUMNS[field_name]} = ?')
        if field_name == 'isActive':
            value = 1 if value else 0
        params.append(value)

    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='No fields to update')

    params.append(center_id)
    db.execute(f"UPDATE centers SET {', '.join(updates)}, updated_at = CURRENT_TIMESTAMP WHERE id = ?", params)
    return {'message': 'Center updated'}


@app.delete('/api/centers/{center_id}')
def delete_center(
    center_id: int,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
) -> dict:
    db.execute('UPDATE centers SET is_active = 0, updated_at = CURRENT_TIMESTAMP WHERE id = ?', [center_id])
    return {'message': 'Center deactivated'}


def run() -> None:
    uvicorn.run('examprep.main:app', host=_settings.host, port=_settings.port)

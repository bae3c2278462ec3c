from typing import Callable

from .database import Database
from .log import get_logger

logger = get_logger(__name__)

# Only the primary key column differs between the two engines.
_PRIMARY_KEYS = {
    'sqlite': 'INTEGER PRIMARY KEY AUTOINCREMENT',
    'postgresql': 'SERIAL PRIMARY KEY',
}

TABLES: tuple[str, ...] = (
    '''
    CREATE TABLE IF NOT EXISTS users (
      id {pk},
      full_name TEXT NOT NULL,
      email TEXT UNIQUE NOT NULL,
      phone TEXT,
      exam_interest TEXT,
      password_hash TEXT NOT NULL,
      is_active INTEGER DEFAULT 1,
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
      updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS exams (
      id {pk},
      name TEXT NOT NULL,
      code TEXT UNIQUE NOT NULL,
      description TEXT,
      exam_type TEXT,
      is_active INTEGER DEFAULT 1,
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS videos (
      id {pk},
      title TEXT NOT NULL,
      description TEXT,
      youtube_url TEXT,
      thumbnail_url TEXT,
      duration TEXT,
      views INTEGER DEFAULT 0,
      category TEXT,
      is_featured INTEGER DEFAULT 0,
      exam_id INTEGER NOT NULL REFERENCES exams(id),
      is_active INTEGER DEFAULT 1,
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS papers (
      id {pk},
      title TEXT NOT NULL,
      description TEXT,
      year INTEGER,
      paper_type TEXT,
      file_path TEXT,
      file_size INTEGER DEFAULT 0,
      download_count INTEGER DEFAULT 0,
      exam_id INTEGER NOT NULL REFERENCES exams(id),
      is_active INTEGER DEFAULT 1,
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS schedules (
      id {pk},
      event_name TEXT NOT NULL,
      event_type TEXT,
      start_date DATE,
      end_date DATE,
      description TEXT,
      exam_id INTEGER NOT NULL REFERENCES exams(id),
      is_active INTEGER DEFAULT 1,
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS user_progress (
      id {pk},
      user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
      video_id INTEGER REFERENCES videos(id),
      paper_id INTEGER REFERENCES papers(id),
      progress_type TEXT NOT NULL,
      progress_data TEXT,
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS bookmarks (
      id {pk},
      user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
      video_id INTEGER REFERENCES videos(id),
      paper_id INTEGER REFERENCES papers(id),
      bookmark_type TEXT NOT NULL,
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
      UNIQUE (user_id, video_id),
      UNIQUE (user_id, paper_id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS centers (
      id {pk},
      name TEXT NOT NULL,
      address TEXT,
      city TEXT,
      state TEXT,
      country TEXT DEFAULT 'India',
      website_url TEXT,
      maps_url TEXT,
      latitude REAL,
      longitude REAL,
      is_active INTEGER DEFAULT 1,
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
      updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''',
)

SAMPLE_EXAMS = (
    ('UPSC Civil Services', 'UPSC', 'Union Public Service Commission - Civil Services Examination', 'civil_services'),
    ('MPSC State Service', 'MPSC', 'Maharashtra Public Service Commission', 'state_services'),
    ('SSC Combined Graduate Level', 'SSC', 'Staff Selection Commission - Combined Graduate Level', 'combined_graduate'),
)

SAMPLE_VIDEOS = (
    {
        'title': 'UPSC Prelims Strategy 2024',
        'description': 'Complete strategy for UPSC Civil Services Prelims preparation',
        'youtube_url': 'https://www.youtube.com/embed/FvDLtR5kHMM',
        'duration': '45 min',
        'views': 125000,
        'category': 'strategy',
        'exam': 'UPSC',
        'is_featured': 1,
    },
    {
        'title': 'Indian Polity for UPSC',
        'description': 'Comprehensive coverage of Indian Constitution and Polity',
        'youtube_url': 'https://www.youtube.com/embed/rSZ69uc6qjw',
        'duration': '1h 20min',
        'views': 89000,
        'category': 'polity',
        'exam': 'UPSC',
        'is_featured': 0,
    },
    {
        'title': 'SSC CGL Math Shortcuts',
        'description': 'Quick math tricks and shortcuts for SSC CGL quantitative aptitude',
        'youtube_url': 'https://www.youtube.com/embed/5alj8VYclg8',
        'duration': '35 min',
        'views': 234000,
        'category': 'mathematics',
        'exam': 'SSC',
        'is_featured': 1,
    },
    {
        'title': 'English Grammar for SSC',
        'description': 'Complete English grammar course for SSC examinations',
        'youtube_url': 'https://www.youtube.com/embed/OBGS4We9Ybw',
        'duration': '55 min',
        'views': 156000,
        'category': 'english',
        'exam': 'SSC',
        'is_featured': 0,
    },
    {
        'title': 'Maharashtra History for MPSC',
        'description': 'Complete Maharashtra history and culture for MPSC preparation',
        'youtube_url': 'https://www.youtube.com/embed/kWfroJTcpsw',
        'duration': '1h 15min',
        'views': 67000,
        'category': 'history',
        'exam': 'MPSC',
        'is_featured': 0,
    },
    {
        'title': 'MPSC Current Affairs',
        'description': 'Monthly current affairs compilation for MPSC examinations',
        'youtube_url': 'https://www.youtube.com/embed/FBt4h1bAFCk',
        'duration': '40 min',
        'views': 43000,
        'category': 'current_affairs',
        'exam': 'MPSC',
        'is_featured': 0,
    },
)

SAMPLE_PAPERS = (
    ('UPSC Prelims 2023 Paper 1', 'General Studies Paper 1', 2023, 'prelims', '/uploads/papers/upsc_prelims_2023_paper1.pdf', 1024000, 'UPSC'),
    ('UPSC Prelims 2023 Paper 2', 'CSAT Paper 2', 2023, 'prelims', '/uploads/papers/upsc_prelims_2023_paper2.pdf', 856000, 'UPSC'),
    ('MPSC Mains 2023 General Studies', 'General Studies Paper - MPSC State Services Mains', 2023, 'mains', '/uploads/papers/mpsc_mains_2023_gs.pdf', 2048000, 'MPSC'),
    ('SSC CGL 2023 Tier 1', 'Tier 1 All Shifts', 2023, 'tier1', '/uploads/papers/ssc_cgl_2023_tier1.pdf', 1536000, 'SSC'),
)

SAMPLE_SCHEDULES = (
    ('UPSC 2024 Notification', 'notification', '2024-02-14', '2024-03-05', 'UPSC Civil Services Examination 2024 notification release', 'UPSC'),
    ('MPSC 2024 Prelims', 'exam', '2024-04-14', '2024-04-14', 'MPSC State Service Preliminary Examination 2024', 'MPSC'),
    ('SSC CGL 2024 Application', 'application', '2024-06-11', '2024-07-10', 'SSC CGL 2024 application form submission', 'SSC'),
)

SAMPLE_CENTERS = (
    ('Vajiram & Ravi', 'Old Rajinder Nagar', 'New Delhi', 'Delhi'),
    ('Unique Academy', 'Deccan Gymkhana', 'Pune', 'Maharashtra'),
    ('Chanakya Mandal Pariwar', 'Sadashiv Peth', 'Pune', 'Maharashtra'),
)

DEMO_USER = {
    'full_name': 'Demo User',
    'email': 'demo@example.com',
    'phone': '9876543210',
    'exam_interest': 'upsc',
    'password': 'demo123',
}


def ensure_schema(db: Database) -> None:
    pk = _PRIMARY_KEYS[db.kind]
    for table in TABLES:
        db.execute(table.format(pk=pk))
    logger.info('Schema ready on %s', db.kind)


def seed_sample_content(db: Database, hash_password: Callable[[str], str]) -> bool:
    """Insert sample exams, content and a demo user into an empty database."""
    existing = db.execute('SELECT COUNT(*) AS total FROM exams')
    if int(existing.rows[0]['total']):
        return False

    for name, code, description, exam_type in SAMPLE_EXAMS:
        db.execute(
            'INSERT INTO exams (name, code, description, exam_type) VALUES (?, ?, ?, ?) ON CONFLICT (code) DO NOTHING',
            [name, code, description, exam_type],
        )
    exam_ids = {row['code']: row['id'] for row in db.execute('SELECT id, code FROM exams').rows}

    for video in SAMPLE_VIDEOS:
        db.execute(
            '''
            INSERT INTO videos (title, description, youtube_url, duration, views, category, is_featured, exam_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ''',
            [
                video['title'],
                video['description'],
                video['youtube_url'],
                video['duration'],
                video['views'],
                video['category'],
                video['is_featured'],
                exam_ids[video['exam']],
            ],
        )

    for title, description, year, paper_type, file_path, file_size, exam in SAMPLE_PAPERS:
        db.execute(
            '''
            INSERT INTO papers (title, description, year, paper_type, file_path, file_size, exam_id)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ''',
            [title, description, year, paper_type, file_path, file_size, exam_ids[exam]],
        )

    for event_name, event_type, start_date, end_date, description, exam in SAMPLE_SCHEDULES:
        db.execute(
            '''
            INSERT INTO schedules (event_name, event_type, start_date, end_date, description, exam_id)
            VALUES (?, ?, ?, ?, ?, ?)
            ''',
            [event_name, event_type, start_date, end_date, description, exam_ids[exam]],
        )

    for name, address, city, state in SAMPLE_CENTERS:
        db.execute(
            'INSERT INTO centers (name, address, city, state) VALUES (?, ?, ?, ?)',
            [name, address, city, state],
        )

    db.execute(
        '''
        INSERT INTO users (full_name, email, phone, exam_interest, password_hash)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT (email) DO NOTHING
        ''',
        [
            DEMO_USER['full_name'],
            DEMO_USER['email'],
            DEMO_USER['phone'],
            DEMO_USER['exam_interest'],
            hash_password(DEMO_USER['password']),
        ],
    )
    logger.info('Seeded sample content (demo login: %s)', DEMO_USER['email'])
    return True

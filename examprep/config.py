import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent
ENV_PATH = PROJECT_ROOT / '.env'


@dataclass(frozen=True)
class Settings:
    db_type: str = ''
    database_url: str = ''
    sqlite_path: str = str(PROJECT_ROOT / 'database.sqlite')
    jwt_secret: str = ''
    jwt_algorithm: str = 'HS256'
    jwt_expire_minutes: int = 7 * 24 * 60
    cors_origins: tuple[str, ...] = ()
    seed_sample_data: bool = True
    log_level: str = 'INFO'
    api_base_url: str | None = None
    token_file: str = str(Path.home() / '.examprep' / 'session.json')
    host: str = '0.0.0.0'
    port: int = 3000


def _flag(raw: str) -> bool:
    return raw.strip().lower() not in ('', '0', 'false', 'no', 'off')


def load_settings() -> Settings:
    load_dotenv(dotenv_path=ENV_PATH)

    origins: list[str] = []
    for raw_origin in os.getenv('CORS_ORIGIN', '').split(','):
        normalized = raw_origin.strip().strip('"').strip("'").rstrip('/')
        if normalized:
            origins.append(normalized)

    defaults = Settings()
    return Settings(
        db_type=os.getenv('DB_TYPE', '').strip().lower(),
        database_url=os.getenv('DATABASE_URL', '').strip(),
        sqlite_path=os.getenv('SQLITE_PATH', '').strip() or defaults.sqlite_path,
        jwt_secret=os.getenv('JWT_SECRET', '').strip(),
        jwt_expire_minutes=int(os.getenv('JWT_EXPIRE_MINUTES', str(defaults.jwt_expire_minutes))),
        cors_origins=tuple(origins),
        seed_sample_data=_flag(os.getenv('SEED_SAMPLE_DATA', '1')),
        log_level=os.getenv('LOG_LEVEL', 'INFO').strip() or 'INFO',
        api_base_url=os.getenv('EXAMPREP_API_BASE_URL', '').strip() or None,
        token_file=os.path.expanduser(os.getenv('EXAMPREP_TOKEN_FILE', '').strip() or defaults.token_file),
        host=os.getenv('HOST', defaults.host).strip() or defaults.host,
        port=int(os.getenv('PORT', str(defaults.port))),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()

"""Загрузка конфигурации сервиса из .env файла с использованием Pydantic."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import cast

from dotenv import load_dotenv
from pydantic import Field, ValidationError, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import ArgumentError

from db_abstraction.database import VENDOR_ALIASES
from db_abstraction.logger import get_logger
from db_abstraction.queries.base import Vendor

# Допустимые схемы URI для каждой СУБД (в формате SQLAlchemy)
ALLOWED_SCHEMES: Mapping[Vendor, tuple[str, ...]] = {
    Vendor.POSTGRESQL: (
        'postgresql',
        'postgres',
        'postgresql+psycopg',
        'postgresql+psycopg2',
        'postgresql+psycopg3',
    ),
    Vendor.MYSQL: ('mysql', 'mysql+pymysql', 'mysql+mysqldb', 'mariadb', 'mariadb+pymysql'),
    Vendor.SQLSERVER: ('mssql', 'mssql+pyodbc', 'mssql+pymssql', 'sqlserver'),
}

DEFAULT_PORTS: Mapping[Vendor, int] = {
    Vendor.POSTGRESQL: 5432,
    Vendor.MYSQL: 3306,
    Vendor.SQLSERVER: 1433,
}

DEFAULT_CONFIG: Mapping[str, int | str | bool | None] = {
    'QUERY_PREFIX': 'database.',
    'STRICT_QUERY_REGISTRY': False,
    'CONNECT_TIMEOUT': 30,
    'LOG_LEVEL': 'INFO',
    'LOG_FILE': None,
}


def _get_uri_separator(uri: str) -> str | None:
    """Определить разделитель схемы в URI.

    Возвращает '://', ':/', '//' или None.
    """
    if '://' in uri:
        return '://'
    if ':/' in uri:
        return ':/'
    if '//' in uri:
        return '//'
    return None


class Settings(BaseSettings):
    """Pydantic Settings для загрузки конфигурации из .env."""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    db_vendor: Vendor = Field(
        ..., description='СУБД: postgresql, sqlserver, mysql, sqlite, odbc'
    )
    db_connect_uri: str = Field(..., description='Connection string для БД')

    query_prefix: str = Field(
        default=cast(str, DEFAULT_CONFIG['QUERY_PREFIX']),
        description='Префикс встроенных запросов sequence/identity',
    )
    strict_query_registry: bool = Field(
        default=cast(bool, DEFAULT_CONFIG['STRICT_QUERY_REGISTRY']),
        description='Ошибка при повторной регистрации запроса',
    )
    connect_timeout: int = Field(
        default=cast(int, DEFAULT_CONFIG['CONNECT_TIMEOUT']),
        ge=0,
        description='Таймаут подключения (секунды)',
    )
    log_level: str = Field(
        default=cast(str, DEFAULT_CONFIG['LOG_LEVEL']),
        description='Уровень логирования',
    )
    log_file: str | None = Field(
        default=None,
        description='Путь к файлу логов (без него только консоль)',
    )

    _original_db_connect_uri: str | None = None

    @field_validator('db_vendor', mode='before')
    @classmethod
    def normalize_db_vendor(cls, v: object) -> object:
        """Нормализует и валидирует db_vendor."""
        if isinstance(v, Vendor):
            return v
        if v is None or str(v).strip() == '':
            raise ValueError('DB_VENDOR не может быть пустым')
        normalized = str(v).strip().lower()
        if normalized not in VENDOR_ALIASES:
            valid = ', '.join(sorted(VENDOR_ALIASES))
            raise ValueError(f"Недопустимый DB_VENDOR='{v}'. Допустимые значения: {valid}")
        return VENDOR_ALIASES[normalized]

    @field_validator('connect_timeout', mode='before')
    @classmethod
    def parse_empty_int(cls, v: str | int | None, info: ValidationInfo) -> int | str | None:
        """Преобразует пустые строки в дефолтные значения для int полей."""
        if v == '' or v is None:
            field_name = info.field_name or ''
            return cast(int, DEFAULT_CONFIG[field_name.upper()])
        return v

    @field_validator('strict_query_registry', mode='before')
    @classmethod
    def parse_empty_bool(cls, v: object, info: ValidationInfo) -> object:
        """Преобразует пустые строки и строковые bool в bool."""
        if v == '' or v is None:
            field_name = info.field_name or ''
            return DEFAULT_CONFIG[field_name.upper()]
        if isinstance(v, str):
            lower_v = v.lower().strip()
            if lower_v in ('true', '1', 'yes', 'on'):
                return True
            if lower_v in ('false', '0', 'no', 'off'):
                return False
        return v

    @field_validator('query_prefix', 'log_level', 'log_file', mode='before')
    @classmethod
    def parse_empty_str(cls, v: object, info: ValidationInfo) -> object:
        """Преобразует пустые строки в дефолтные значения для str полей."""
        if v == '' or v is None:
            field_name = info.field_name or ''
            return DEFAULT_CONFIG[field_name.upper()]
        return v

    @field_validator('db_connect_uri')
    @classmethod
    def validate_db_connect_uri(cls, v: str, info: ValidationInfo) -> str:
        """Валидирует строку подключения к БД с помощью SQLAlchemy make_url."""
        if not v or v.strip() == '':
            raise ValueError('DB_CONNECT_URI не может быть пустым')
        uri = v.strip()
        masked_uri = cls.mask_connection_string(uri)

        vendor = info.data.get('db_vendor')
        if not isinstance(vendor, Vendor):
            return uri

        match vendor:
            case Vendor.SQLITE:
                if not uri.startswith('sqlite:'):
                    raise ValueError(f'Для SQLite URI должен начинаться с "sqlite:": {masked_uri}')
            case Vendor.ODBC:
                # ODBC строки подключения не являются URL (DRIVER=...;SERVER=...)
                pass
            case _:
                cls._validate_url_format(uri, vendor, masked_uri)
        return uri

    @staticmethod
    def _validate_url_format(uri: str, vendor: Vendor, masked_uri: str) -> None:
        """Валидирует формат URL для серверных СУБД."""
        try:
            url_obj = make_url(uri)
        except ArgumentError:
            error_msg = (
                f'Некорректный URI для {vendor.value.upper()}: некорректный формат URL\n'
                f'URI: {masked_uri}'
            )
            raise ValueError(error_msg) from None

        allowed = ALLOWED_SCHEMES[vendor]
        if url_obj.drivername not in allowed:
            raise ValueError(
                f'Неверная схема для {vendor.value} URI: {url_obj.drivername!r}. '
                f'Ожидается одно из {allowed}. URI: {masked_uri}'
            )
        if not url_obj.host:
            raise ValueError(f'URI не содержит hostname: {masked_uri}')
        if url_obj.port is None:
            raise ValueError(
                f'URI не содержит порт. Укажите порт явно (стандартный для '
                f'{vendor.value.upper()}: {DEFAULT_PORTS[vendor]}). URI: {masked_uri}'
            )
        if not url_obj.database:
            raise ValueError(f'URI не содержит имя базы данных: {masked_uri}')

    @staticmethod
    def mask_connection_string(uri: str) -> str:
        """Mask password in URI with simple parsing, not SQLAlchemy.

        SQLAlchemy render_as_string() URL-encodes password: ':***@' -> ':%2A%2A%2A@'.
        Use simple parsing to preserve readability.

        Handles edge cases like:
        - Multiple @ in password (user:p@ss@rd@host)
        - No password (user@host or host)
        - ODBC key/value strings (PWD=...;)
        """
        if not uri:
            return uri

        if '=' in uri and ';' in uri:
            return ';'.join(
                f'{part.split("=", 1)[0]}=***'
                if part.split('=', 1)[0].strip().lower() in ('pwd', 'password')
                else part
                for part in uri.split(';')
            )

        separator = _get_uri_separator(uri)
        if not separator:
            return uri

        scheme_part, rest = uri.split(separator, 1)

        if '@' not in rest:
            return uri

        # Find the last @ (separator between credentials and host)
        last_at_idx = rest.rfind('@')
        credentials_part = rest[:last_at_idx]
        host_part = rest[last_at_idx + 1 :]

        if not credentials_part or ':' not in credentials_part:
            return uri

        user_part = credentials_part[: credentials_part.find(':')]
        return f'{scheme_part}{separator}{user_part}:***@{host_part}'

    def model_post_init(self, _context: object) -> None:
        """Сохраняем оригинальный connection string после инициализации."""
        self._original_db_connect_uri = self.db_connect_uri

    @property
    def original_connect_uri(self) -> str:
        return self._original_db_connect_uri or self.db_connect_uri

    def model_dump_masked(self) -> dict[str, object]:
        """Возвращает словарь с замаскированным db_connect_uri."""
        data = self.model_dump()
        data['db_vendor'] = self.db_vendor.value
        if self.db_connect_uri:
            data['db_connect_uri'] = self.mask_connection_string(self.db_connect_uri)
        return data


def load_config(env_file: str = '.env') -> Settings:
    """
    Загружает конфигурацию из .env файла.

    Raises:
        FileNotFoundError: Если файл не найден.
        ValueError: Если конфигурация не прошла валидацию (пароли замаскированы).
    """
    env_path = Path(env_file)
    if not env_path.exists():
        error_msg = f'Файл конфигурации не найден: {env_path.absolute()}'
        get_logger('config').error(error_msg)
        raise FileNotFoundError(error_msg)
    try:
        load_dotenv(env_path)
        return Settings(_env_file=env_path)  # type: ignore[call-arg]
    except ValidationError as e:
        full_error_msg = _format_validation_error(e)
        raise ValueError(full_error_msg) from None


def _format_validation_error(e: ValidationError) -> str:
    error_messages = []
    for error in e.errors():
        field = ' -> '.join(str(loc) for loc in error['loc'])
        msg = Settings.mask_connection_string(error['msg'])
        error_messages.append(f' • {field}: {msg}')
    formatted_errors = '\n'.join(error_messages)
    full_error_msg = f'Ошибка валидации конфигурации:\n{formatted_errors}'
    get_logger('config').error(full_error_msg)
    return full_error_msg


def print_config_summary(
    config: Settings,
    *,
    mask_sensitive: bool = True,
    logger: logging.Logger | None = None,
) -> None:
    """Выводит сводку конфигурации с маскировкой чувствительных данных."""
    data = config.model_dump_masked() if mask_sensitive else config.model_dump()
    if not mask_sensitive:
        data['db_vendor'] = config.db_vendor.value
    sections = [
        ('База данных', ['db_vendor', 'db_connect_uri', 'connect_timeout']),
        ('Запросы', ['query_prefix', 'strict_query_registry']),
        ('Логирование', ['log_level', 'log_file']),
    ]
    if logger:
        logger.info('=' * 60)
        logger.info('КОНФИГУРАЦИЯ')
        logger.info('=' * 60)
        for section_name, params in sections:
            logger.info('')
            logger.info('[%s]', section_name)
            logger.info('-' * 40)
            for param in params:
                display_name = param.replace('_', ' ').title()
                logger.info(' %-28s: %s', display_name, data.get(param))
        logger.info('=' * 60)
    else:
        print('\n' + '=' * 60)
        print('КОНФИГУРАЦИЯ')
        print('=' * 60)
        for section_name, params in sections:
            print(f'\n[{section_name}]')
            print('-' * 40)
            for param in params:
                display_name = param.replace('_', ' ').title()
                print(f' {display_name:28}: {data.get(param)}')
        print('=' * 60 + '\n')

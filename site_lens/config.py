# === FILE: site_lens/config.py ===
"""
Модуль для загрузки и валидации конфигурации SiteLens.
Используется Pydantic для описания схемы и проверки данных.
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    ValidationError,
    field_validator,
)

from site_lens.errors import ErrorKind


class RetryPolicyConfig(BaseModel):
    """Переопределение политики повторов для одного кода ошибки."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_retries: int = Field(..., ge=0, le=10)
    backoff: Literal["exponential", "linear", "constant"] = "constant"
    base_delay: int = Field(1000, ge=0, le=60_000, description="Базовая задержка, мс.")
    adjust_timeout: bool = False
    switch_scraper: bool = False


class CrawlConfig(BaseModel):
    """Конфигурация одного запуска обхода домена."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: HttpUrl = Field(..., description="Корневой URL домена.")
    max_urls: int = Field(500, ge=1, description="Жесткий лимит на число URL из sitemap.")
    timeout: float = Field(10.0, gt=0, description="Таймаут загрузки sitemap/robots.txt (секунд).")
    page_timeout: float = Field(30.0, gt=0, le=120, description="Таймаут загрузки страницы (секунд).")
    max_redirects: int = Field(5, ge=0, le=20, description="Максимум редиректов на запрос.")
    user_agent: str = Field(
        "Mozilla/5.0 (compatible; SiteLensBot/1.0)", min_length=1, description="Заголовок User-Agent."
    )
    rate_limit: float = Field(5.0, gt=0, description="Лимит запросов в секунду.")
    concurrency: int = Field(4, ge=1, le=16, description="Размер пула воркеров.")
    custom_locations: List[str] = Field(
        default_factory=list, description="Дополнительные адреса sitemap."
    )
    include_nested_sitemaps: bool = Field(True, description="Разворачивать sitemap index.")
    respect_robots: bool = Field(True, description="Пропускать URL, запрещённые robots.txt.")
    render: bool = Field(False, description="Включить стратегию рендеринга (Playwright).")
    retry_policies: Dict[str, RetryPolicyConfig] = Field(
        default_factory=dict, description="Переопределения политик повторов по коду ошибки."
    )

    @field_validator("base_url", mode="before")
    def _strip_trailing_slash(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            if "://" not in v:
                v = f"https://{v}"
            return v.rstrip("/")
        return v

    @field_validator("retry_policies")
    def _known_error_codes(cls, v: Dict[str, RetryPolicyConfig]) -> Dict[str, RetryPolicyConfig]:
        unknown = [code for code in v if ErrorKind.from_code(code) is None]
        if unknown:
            raise ValueError(f"Неизвестные коды ошибок: {', '.join(sorted(unknown))}")
        return v

    @property
    def domain(self) -> str:
        """Хост (с портом, если он нестандартный) без схемы."""
        host = self.base_url.host or ""
        port = self.base_url.port
        if port and port != {"http": 80, "https": 443}.get(self.base_url.scheme):
            return f"{host}:{port}"
        return host

    @property
    def origin(self) -> str:
        return f"{self.base_url.scheme}://{self.domain}"


_DEFAULT_CFG = Path("configs/default.yaml")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Неправильный YAML в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень YAML должен быть mapping, получено {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Неправильный JSON в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень JSON должен быть mapping, получено {type(data).__name__}")
    return data


def load_config(path: Union[str, Path, None], **overrides: Any) -> CrawlConfig:
    """
    Читает YAML или JSON и возвращает проверенный объект CrawlConfig.
    Значения из *overrides* (не None) перекрывают значения из файла.
    При отсутствии файла конфига бросает FileNotFoundError.
    """
    if path is None:
        if not _DEFAULT_CFG.exists():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(_DEFAULT_CFG))
        path_obj = _DEFAULT_CFG
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    suffix = path_obj.suffix.lower()
    if suffix in (".yaml", ".yml"):
        data = _read_yaml(path_obj)
    elif suffix == ".json":
        data = _read_json(path_obj)
    else:
        raise ValueError(f"Неподдерживаемый формат конфига: {suffix}")

    data.update({k: v for k, v in overrides.items() if v is not None})
    return CrawlConfig(**data)


def config_for_domain(domain: str, **fields: Any) -> CrawlConfig:
    """Строит CrawlConfig без файла, только по домену."""
    return CrawlConfig(base_url=domain, **{k: v for k, v in fields.items() if v is not None})


__all__ = [
    "CrawlConfig",
    "RetryPolicyConfig",
    "ValidationError",
    "config_for_domain",
    "load_config",
]


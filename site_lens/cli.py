#!/usr/bin/env python3
"""
Точка входа для запуска SiteLens через командную строку.

Команды:
  discover  Найти sitemap домена и вывести приоритизированный список URL
  classify  Классифицировать страницу по URL (и, опционально, HTML-файлу)
  crawl     Обойти домен по конфигу и вывести/сохранить отчёт
  config    Показать текущую конфигурацию

Общие опции:
  --config PATH       Путь к YAML/JSON-конфигу (default: configs/default.yaml)
  --domain DOMAIN     Домен для обхода без файла конфигурации
  --limit INT         Макс. число URL из sitemap (override max_urls)
  --log-level LEVEL   Уровень логирования (DEBUG, INFO, ...)
  --log-file PATH     Файл для логов (stderr, если не указан)
  --log-format FORMAT Формат логирования (e.g. "%(asctime)s %(levelname)s %(message)s")

Команда crawl опции:
  --json PATH          Сохранить JSON-отчёт в файл
  --pretty             Преформатировать JSON-вывод (отступ 2)
  --crawl-timeout SEC  Таймаут всего обхода (секунд)

Дополнительно:
  --version, -v       Показать версию SiteLens

Пример:
  site-lens --domain example.com --limit 100 crawl --json report.json --pretty
"""
import sys
import asyncio
import json
from pathlib import Path
from urllib.parse import urlparse

import click

from site_lens import __version__
from site_lens.config import config_for_domain, load_config
from site_lens.logger import init_logging
from site_lens.engine import discover, start_crawl
from site_lens.matcher import ContentPatternMatcher
from site_lens.report.json_report import render_json

CONTEXT_SETTINGS = dict(help_option_names=["--help"])


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


def _config(ctx):
    """Загружает конфигурацию при первом обращении команды к ней."""
    obj = ctx.obj
    if obj.get('config') is None:
        try:
            if obj['domain'] and obj['config_path'] is None:
                cfg = config_for_domain(obj['domain'], max_urls=obj['limit'])
            else:
                cfg = load_config(obj['config_path'], base_url=obj['domain'], max_urls=obj['limit'])
        except Exception as e:
            print_error(f'Ошибка загрузки конфигурации: {e}')
        obj['config'] = cfg
    return obj['config']


def _run(coro, timeout, what: str):
    try:
        if timeout:
            return asyncio.run(asyncio.wait_for(coro, timeout=timeout))
        return asyncio.run(coro)
    except asyncio.TimeoutError:
        print_error(f'{what} не завершён за {timeout} секунд')
    except Exception as e:
        print_error(f'Ошибка ({what}): {e}')


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='SiteLens, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Путь к файлу конфигурации YAML/JSON (default: configs/default.yaml).'
)
@click.option(
    '--domain', '-d', 'domain',
    default=None,
    help='Домен или корневой URL (перекрывает base_url конфига).'
)
@click.option(
    '--limit', '-l', 'limit',
    type=int,
    default=None,
    help='Макс. число URL из sitemap (override max_urls)'
)
@click.option(
    '--log-level', 'log_level',
    default='INFO', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Уровень логирования'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Путь к файлу логов (stderr, если не указан)'
)
@click.option(
    '--log-format', 'log_format',
    default='%(asctime)s %(levelname)s %(name)s %(message)s',
    show_default=True,
    help='Строка формата для логов'
)
@click.pass_context
def cli(ctx, config_path, domain, limit, log_level, log_file, log_format):
    """Группа команд SiteLens CLI."""
    init_logging(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    ctx.ensure_object(dict)
    ctx.obj.update(config_path=config_path, domain=domain, limit=limit, config=None)


@cli.command('discover', context_settings=CONTEXT_SETTINGS)
@click.option(
    '--pretty', is_flag=True,
    help='Преформатировать JSON-вывод (отступ 2)'
)
@click.option(
    '--urls-only', is_flag=True,
    help='Печатать только URL, по одному в строке'
)
@click.pass_context
def discover_cmd(ctx, pretty, urls_only):
    """Найти sitemap домена и вывести найденные URL."""
    cfg = _config(ctx)
    result = _run(discover(cfg), None, 'Поиск sitemap')
    if urls_only:
        for url in result.urls:
            click.echo(url)
        return
    click.echo(json.dumps(result.to_dict(), ensure_ascii=False, indent=2 if pretty else None))


@cli.command('classify', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@click.option(
    '--html', '-h', 'html_file',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='HTML-файл страницы (без него классификация только по URL)'
)
@click.option(
    '--pretty', is_flag=True,
    help='Преформатировать JSON-вывод (отступ 2)'
)
def classify_cmd(url, html_file, pretty):
    """Определить тип страницы по URL и содержимому."""
    if not urlparse(url).scheme:
        url = f'https://{url}'
    html = None
    if html_file is not None:
        try:
            html = html_file.read_text(encoding='utf-8', errors='replace')
        except OSError as e:
            print_error(f'Ошибка чтения HTML: {e}')
    matcher = ContentPatternMatcher(urlparse(url).hostname)
    classification = matcher.classify(url, html)
    click.echo(json.dumps(classification.to_dict(), ensure_ascii=False, indent=2 if pretty else None))


@cli.command('crawl', context_settings=CONTEXT_SETTINGS)
@click.option(
    '--json', '-j', 'json_output',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Сохранить JSON-отчёт в файл'
)
@click.option(
    '--pretty', is_flag=True,
    help='Преформатировать JSON-вывод (отступ 2)'
)
@click.option(
    '--crawl-timeout', 'crawl_timeout',
    type=float,
    default=None,
    help='Таймаут всего обхода (секунд)'
)
@click.pass_context
def crawl(ctx, json_output, pretty, crawl_timeout):
    """Обойти домен и сгенерировать отчёт."""
    cfg = _config(ctx)
    report = _run(start_crawl(cfg), crawl_timeout, 'Обход')

    # Если не сохраняем в файл — печатаем в stdout
    if not json_output:
        try:
            click.echo(report.json(pretty=pretty))
        except TypeError as e:
            print_error(f'Ошибка сериализации JSON: {e}')
        return

    try:
        saved_json = render_json(report, json_output, pretty=pretty)
        click.echo(f'JSON report: {saved_json}')
    except Exception as e:
        print_error(f'Ошибка при сохранении JSON: {e}')


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Показать текущую конфигурацию в JSON."""
    cfg = _config(ctx)
    click.echo(cfg.model_dump_json(indent=2))


if __name__ == "__main__":
    cli()

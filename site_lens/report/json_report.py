# site_lens/report/json_report.py

"""
Генерация JSON-отчёта для проекта SiteLens.

Сериализация объекта CrawlReport в файл.
"""
import json
from pathlib import Path

from site_lens.aggregator import CrawlReport


def render_json(report: CrawlReport, output_path: Path | str, *, pretty: bool = True) -> Path:
    """
    Сохраняет отчёт report в формате JSON по указанному пути.

    :param report: объект CrawlReport с результатами обхода
    :param output_path: путь к JSON-файлу
    :param pretty: форматировать с отступами
    :return: Path сохранённого файла

    Пример:
    ```python
    from site_lens.report.json_report import render_json
    report_path = render_json(report, 'reports/crawl.json')
    print(f"JSON report saved to: {report_path}")
    ```
    """
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)

    # Сериализация без сырых данных
    data = json.loads(report.json())

    with output.open('w', encoding='utf-8') as f:
        json.dump(data, f, ensure_ascii=False, indent=2 if pretty else None)

    return output

"""
Report Search CLI - General purpose command-line interface.

Commands:
- serve: Run the HTTP API
- db: Initialize the store, load reports, rebuild derived indexes
- search: Search reports from the terminal
- facets: List filter options
- stats: Display store statistics
- cache: Invalidate cached results in a running API
"""

# Load environment variables before any other imports
# This ensures production paths are available to config modules
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists (for production paths)
env_path = Path(__file__).parent.parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)

# Standard library imports
import json
import logging

# Third-party imports
import click
import requests
from rich.console import Console
from rich.table import Table

from report_search.config.search_config import DATABASE_PATH, API_CONFIG, LOG_LEVEL
from report_search.common.errors import ValidationError, TransientStoreError
from report_search.cache.result_cache import ResultCache
from report_search.search.filters import FilterRequest
from report_search.search.search_engine import ReportSearchEngine
from report_search.storage.database import init_database, ReportLoader, SqliteDocumentStore

console = Console()

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def _open_engine(db_path: str) -> ReportSearchEngine:
    # Terminal searches should always see current data
    return ReportSearchEngine(
        store=SqliteDocumentStore(db_path),
        cache=ResultCache(windows={'reports': 0, 'filter-options': 0})
    )


def _read_reports(path: str):
    """Reports from a JSON array file or a JSON-lines file."""
    with open(path, 'r', encoding='utf-8') as f:
        text = f.read().strip()

    if text.startswith('['):
        return json.loads(text)
    return [json.loads(line) for line in text.splitlines() if line.strip()]


@click.group()
def cli():
    """Report Search CLI - Manage the report store, search, and cache."""
    pass


# ============================================================================
# Serve Command
# ============================================================================

@cli.command()
@click.option('--host', default=API_CONFIG['host'], help='Bind address')
@click.option('--port', default=API_CONFIG['port'], type=int, help='Bind port')
@click.option('--reload', is_flag=True, default=API_CONFIG['reload'], help='Reload on code changes')
def serve(host, port, reload):
    """Run the report search API."""
    import uvicorn

    console.print(f"\n[bold cyan]Report Search API[/bold cyan] on http://{host}:{port}\n")
    uvicorn.run(
        "report_search.api.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=API_CONFIG['log_level']
    )


# ============================================================================
# Database Commands
# ============================================================================

@cli.group()
def db():
    """Manage the report store."""
    pass


@db.command(name='init')
@click.option('--db-path', '-d', default=DATABASE_PATH, help='Database path')
def db_init(db_path):
    """Create tables and indexes."""
    console.print("[yellow]Initializing database...[/yellow]")
    init_database(db_path).close()
    console.print(f"[green]✓[/green] Database initialized at {db_path}\n")


@db.command(name='load')
@click.argument('reports_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--db-path', '-d', default=DATABASE_PATH, help='Database path')
def db_load(reports_file, db_path):
    """
    Load reports from a JSON or JSON-lines file.

    Existing reports with the same infoCode are replaced; the full-text
    index, author index and filter options are rebuilt afterwards.
    """
    database = init_database(db_path)
    try:
        reports = _read_reports(reports_file)
        console.print(f"[yellow]Loading {len(reports)} reports...[/yellow]")

        stats = ReportLoader(database.connect()).save_reports_batch(reports)
    finally:
        database.close()

    table = Table(title="Load Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Reports Saved", str(stats['saved']))
    table.add_row("Errors", str(stats['errors']))
    console.print(table)
    console.print("\n[dim]Run 'report-search cache invalidate reports' to refresh a running API.[/dim]\n")


@db.command(name='reindex')
@click.option('--db-path', '-d', default=DATABASE_PATH, help='Database path')
def db_reindex(db_path):
    """Rebuild the full-text index, author index and filter options."""
    database = init_database(db_path)
    try:
        counts = ReportLoader(database.connect()).rebuild_indexes()
    finally:
        database.close()

    table = Table(title="Rebuilt Indexes")
    table.add_column("Table", style="cyan")
    table.add_column("Rows", justify="right", style="green")
    for name, count in counts.items():
        table.add_row(name, str(count))
    console.print(table)


# ============================================================================
# Search Commands
# ============================================================================

@cli.command()
@click.argument('query', required=False)
@click.option('--db-path', '-d', default=DATABASE_PATH, help='Database path')
@click.option('--page', '-p', default='1', help='Page number')
@click.option('--page-size', '-n', default='20', help='Results per page')
@click.option('--sort-by', default='publishDate', help='publishDate, title or orgSName')
@click.option('--order', default='desc', type=click.Choice(['asc', 'desc']), help='Sort order')
@click.option('--report-type', help='Comma-separated report types')
@click.option('--industry', help='Comma-separated industry codes')
@click.option('--stock', help='Comma-separated tickers')
@click.option('--column', help='Comma-separated column codes')
@click.option('--org', help='Comma-separated organization codes')
@click.option('--author', help='Comma-separated id.name author values')
@click.option('--market', help='Comma-separated market codes')
@click.option('--min-pages', help='Minimum attachment pages')
def search(query, db_path, page, page_size, sort_by, order, report_type, industry,
           stock, column, org, author, market, min_pages):
    """Search reports by keyword and facets."""
    request = FilterRequest.from_params({
        'page': page,
        'pageSize': page_size,
        'sortBy': sort_by,
        'order': order,
        'reportType': report_type,
        'industryCode': industry,
        'stockCode': stock,
        'columnCode': column,
        'orgCode': org,
        'author': author,
        'market': market,
        'contentQuery': query,
        'attachPages': min_pages,
    })

    engine = _open_engine(db_path)
    try:
        result = engine.search(request)
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint='QUERY')
    except TransientStoreError as e:
        console.print(f"[red]Search failed: {e}[/red]")
        raise SystemExit(1)
    finally:
        engine.close()

    pagination = result['pagination']
    table = Table(
        title=f"Page {pagination['currentPage']}/{pagination['totalPages']} "
              f"({pagination['totalItems']} reports)"
    )
    table.add_column("Date", style="cyan")
    table.add_column("Title")
    table.add_column("Organization", style="yellow")
    table.add_column("Authors", style="green")
    table.add_column("Pages", justify="right")

    for report in result['data']:
        table.add_row(
            (report['publishDate'] or '')[:10],
            report['title'] or '',
            report['orgSName'] or '',
            ', '.join(report['authorNames']),
            str(report['attachPages'] or '')
        )

    console.print(table)


@cli.command()
@click.option('--db-path', '-d', default=DATABASE_PATH, help='Database path')
@click.option('--limit', '-l', default=20, type=int, help='Rows to show per facet')
def facets(db_path, limit):
    """List filter options (stocks and institutions)."""
    engine = _open_engine(db_path)
    try:
        options = engine.get_filter_options()
    finally:
        engine.close()

    for name in ('stocks', 'institutions'):
        table = Table(title=f"{name.title()} ({len(options[name])})")
        table.add_column("Value", style="cyan")
        table.add_column("Label", style="green")
        for option in options[name][:limit]:
            table.add_row(option['value'], option['label'])
        console.print(table)


@cli.command()
@click.option('--db-path', '-d', default=DATABASE_PATH, help='Database path')
def stats(db_path):
    """Display store statistics."""
    engine = _open_engine(db_path)
    try:
        data = engine.get_stats()
    finally:
        engine.close()

    table = Table(title="Store Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Total Reports", str(data['total_reports']))
    table.add_row("Searchable Reports", str(data['searchable_reports']))
    table.add_row("Indexed Authors", str(data['indexed_authors']))
    table.add_row("Earliest Report", str(data['date_range']['earliest']))
    table.add_row("Latest Report", str(data['date_range']['latest']))
    console.print(table)


# ============================================================================
# Cache Commands
# ============================================================================

@cli.group()
def cache():
    """Manage cached results of a running API."""
    pass


@cache.command(name='invalidate')
@click.argument('tag', type=click.Choice(['reports', 'filter-options']))
@click.option('--api-url', default=API_CONFIG['base_url'], help='Base URL of the API')
@click.option('--secret', envvar='REVALIDATE_SECRET', help='Revalidation secret')
@click.option('--timeout', default=30, type=int, help='Request timeout in seconds')
def cache_invalidate(tag, api_url, secret, timeout):
    """Invalidate every cached result of a topic."""
    revalidate_url = f"{api_url}/api/revalidate"
    headers = {'X-Revalidate-Secret': secret} if secret else {}

    try:
        response = requests.post(revalidate_url, params={'tag': tag}, headers=headers, timeout=timeout)
    except requests.exceptions.ConnectionError:
        console.print(f"[red]Could not connect to API at {api_url}[/red]")
        raise SystemExit(1)

    if response.status_code != 200:
        console.print(f"[red]API returned status {response.status_code}: {response.text}[/red]")
        raise SystemExit(1)

    data = response.json()
    console.print(f"[green]✓[/green] Invalidated '{data['tag']}': {data['entries']} entries dropped")


def main():
    cli()


if __name__ == '__main__':
    main()

"""CLI entry point for SouqView: watchlist snapshot, stock detail, and community.

Provides the ``souq-view`` command with subcommands for the market snapshot,
per-symbol detail, comment threads (optionally followed live), the bull/bear
vote bar, and posting comments.

This is the ONLY module where console output is allowed. All other modules use
``logging``. Async internals are bridged to typer's synchronous interface via
``asyncio.run()``.
"""

from __future__ import annotations

import asyncio
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from Souq_View.config import DEFAULT_COMMENT_LIMIT, Settings, load_settings
from Souq_View.logging_config import configure_logging
from Souq_View.models import (
    CommentThread,
    MarketItem,
    Sentiment,
    SnapshotResult,
    StockDetails,
    StockVoteCounts,
)
from Souq_View.services import (
    BackendClient,
    CommentService,
    MarketDataService,
    ServiceCache,
    SnapshotFetcher,
    StockVoteService,
    SupabaseClient,
    SupabaseRealtimeChannel,
)
from Souq_View.sync import StockCommentsSession, VoteAggregator
from Souq_View.utils.exceptions import DataFetchError

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(name="souq-view", help="Market snapshot and community sentiment for US stocks")

# Rich console for formatted output
console = Console()

# ---------------------------------------------------------------------------
# Default constants
# ---------------------------------------------------------------------------

BAR_WIDTH: int = 40
TEXT_WIDTH: int = 60

SENTIMENT_STYLE: dict[Sentiment, str] = {
    Sentiment.BULLISH: "[green]BULL[/green]",
    Sentiment.BEARISH: "[red]BEAR[/red]",
}

VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")]
QuietOption = Annotated[bool, typer.Option("--quiet", "-q", help="Suppress info logging")]


# ---------------------------------------------------------------------------
# snapshot command
# ---------------------------------------------------------------------------


@app.command()
def snapshot(
    symbols: Annotated[
        list[str] | None, typer.Argument(help="Symbols to fetch (default: the US watchlist)")
    ] = None,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """Show the market snapshot for a watchlist."""
    configure_logging(verbose=verbose, quiet=quiet)
    result = asyncio.run(_snapshot_async(symbols=symbols or None))
    _render_snapshot(result)


async def _snapshot_async(*, symbols: list[str] | None) -> SnapshotResult:
    settings = load_settings()
    async with BackendClient(settings.api_url, timeout=settings.timeout_seconds) as client:
        return await SnapshotFetcher(client).fetch_snapshot(symbols)


def _render_snapshot(result: SnapshotResult) -> None:
    if result.error_502:
        console.print("[red]Data source is down (HTTP 502). Try again shortly.[/red]")
        return
    if result.from_fallback:
        console.print("[yellow]Live data unavailable; showing the placeholder watchlist.[/yellow]")
    elif result.from_stale_cache:
        console.print("[yellow]Served from the backend's cache; prices may be delayed.[/yellow]")

    table = Table(title="Market Snapshot", show_lines=False)
    table.add_column("Symbol", style="bold", width=8)
    table.add_column("Name", width=28)
    table.add_column("Last", justify="right", width=12)
    table.add_column("Change %", justify="right", width=10)

    for item in result.items:
        table.add_row(escape(item.symbol), escape(item.name), item.last_price, _change_cell(item))

    console.print(table)


def _change_cell(item: MarketItem) -> str:
    change = item.percent_change
    if change.startswith("-"):
        return f"[red]{change}[/red]"
    if change.strip("0.") == "":
        return f"[dim]{change}[/dim]"
    return f"[green]+{change}[/green]"


# ---------------------------------------------------------------------------
# detail command
# ---------------------------------------------------------------------------


@app.command()
def detail(
    symbol: Annotated[str, typer.Argument(help="Stock symbol, e.g. AAPL")],
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """Show profile, key statistics, and recent candles for one symbol."""
    configure_logging(verbose=verbose, quiet=quiet)
    try:
        details = asyncio.run(_detail_async(symbol=symbol))
    except DataFetchError as exc:
        console.print(f"[red]Could not load {escape(symbol.upper())}: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    _render_detail(symbol.upper(), details)


async def _detail_async(*, symbol: str) -> StockDetails:
    settings = load_settings()
    async with BackendClient(settings.api_url, timeout=settings.timeout_seconds) as client:
        return await MarketDataService(client, ServiceCache()).get_stock_details(symbol)


def _render_detail(symbol: str, details: StockDetails) -> None:
    profile = details.profile or {}
    name = profile.get("name") or profile.get("companyName") or symbol
    console.print(f"\n[bold]{escape(str(name))}[/bold] ({escape(symbol)})")
    description = profile.get("description")
    if isinstance(description, str) and description:
        console.print(f"[dim]{escape(_truncate(description, 400))}[/dim]")

    statistics: dict[str, Any] = (details.detail or {}).get("statistics") or {}
    table = Table(title="Key Statistics")
    table.add_column("Metric", style="bold", width=20)
    table.add_column("Value", justify="right", width=20)
    for key, value in statistics.items():
        table.add_row(escape(str(key)), "---" if value is None else escape(str(value)))
    console.print(table)

    if details.historical:
        last = details.historical[-1]
        console.print(
            f"{len(details.historical)} candles, last close {last.close:.2f}"
            + (f" on {escape(last.datetime)}" if last.datetime else "")
        )
    else:
        console.print("[dim]No chart data.[/dim]")


# ---------------------------------------------------------------------------
# comments command
# ---------------------------------------------------------------------------


@app.command()
def comments(
    symbol: Annotated[str, typer.Argument(help="Stock symbol, e.g. AAPL")],
    limit: Annotated[
        int, typer.Option(help="Maximum top-level comments to load", min=1)
    ] = DEFAULT_COMMENT_LIMIT,
    follow: Annotated[
        float, typer.Option(help="Keep listening for live changes for N seconds", min=0)
    ] = 0.0,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """List comment threads for a symbol, optionally following live changes."""
    configure_logging(verbose=verbose, quiet=quiet)
    settings = _community_settings()
    asyncio.run(_comments_async(settings, symbol=symbol, limit=limit, follow=follow))


async def _comments_async(settings: Settings, *, symbol: str, limit: int, follow: float) -> None:
    changed = asyncio.Event()
    async with SupabaseClient.from_settings(settings) as supabase:
        channel = SupabaseRealtimeChannel.from_settings(settings) if follow > 0 else None
        session = StockCommentsSession(
            symbol,
            comments=CommentService(supabase),
            identity=supabase,
            channel=channel,
            limit=limit,
            on_change=lambda _threads: changed.set(),
        )
        await session.start()
        try:
            if session.last_error is not None:
                error = escape(str(session.last_error))
                console.print(f"[red]Could not load comments: {error}[/red]")
                raise typer.Exit(code=1)
            _render_comments(session.symbol, session.threads())
            if follow <= 0:
                return
            if not session.realtime:
                console.print("[yellow]Live updates unavailable.[/yellow]")
                return

            loop = asyncio.get_running_loop()
            deadline = loop.time() + follow
            while (remaining := deadline - loop.time()) > 0:
                changed.clear()
                try:
                    await asyncio.wait_for(changed.wait(), timeout=remaining)
                except TimeoutError:
                    break
                _render_comments(session.symbol, session.threads())
        finally:
            await session.close()


def _render_comments(symbol: str, threads: list[CommentThread]) -> None:
    if not threads:
        console.print(f"[yellow]No comments for {escape(symbol)} yet.[/yellow]")
        return

    table = Table(title=f"{escape(symbol)} Comments", show_lines=False)
    table.add_column("Id", style="dim", width=8)
    table.add_column("Mood", width=6)
    table.add_column("Comment", width=TEXT_WIDTH)
    table.add_column("Up", justify="right", width=5)
    table.add_column("Down", justify="right", width=5)
    table.add_column("Posted", style="dim", width=16)

    for thread in threads:
        for depth, record in [(0, thread.comment), *((1, reply) for reply in thread.replies)]:
            prefix = "  > " if depth else ""
            text = (
                "[dim](reported)[/dim]" if record.is_reported else escape(_truncate(record.text))
            )
            table.add_row(
                escape(record.id[:8]),
                SENTIMENT_STYLE.get(record.sentiment, "---"),
                f"{prefix}{text}",
                str(record.upvotes),
                str(record.downvotes),
                record.created_at.strftime("%Y-%m-%d %H:%M"),
            )

    console.print(table)


# ---------------------------------------------------------------------------
# sentiment command
# ---------------------------------------------------------------------------


@app.command()
def sentiment(
    symbol: Annotated[str, typer.Argument(help="Stock symbol, e.g. AAPL")],
    vote: Annotated[
        Sentiment | None, typer.Option(help="Cast or change your vote", case_sensitive=False)
    ] = None,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """Show the bull/bear split for a symbol, optionally voting first."""
    configure_logging(verbose=verbose, quiet=quiet)
    settings = _community_settings()
    asyncio.run(_sentiment_async(settings, symbol=symbol, vote=vote))


async def _sentiment_async(settings: Settings, *, symbol: str, vote: Sentiment | None) -> None:
    async with SupabaseClient.from_settings(settings) as supabase:
        aggregator = VoteAggregator(symbol, votes=StockVoteService(supabase), identity=supabase)
        if not await aggregator.load():
            console.print(f"[red]Could not load votes: {escape(str(aggregator.last_error))}[/red]")
            raise typer.Exit(code=1)
        if vote is not None and not await aggregator.set_vote(vote):
            console.print("[yellow]Vote not recorded (sign-in required or request failed).[/yellow]")
        _render_sentiment(aggregator.symbol, aggregator.counts, aggregator.my_vote)
        aggregator.close()


def _render_sentiment(symbol: str, counts: StockVoteCounts, my_vote: Sentiment | None) -> None:
    bull_cells = round(BAR_WIDTH * counts.bull_pct / 100)
    bar = f"[green]{'█' * bull_cells}[/green][red]{'█' * (BAR_WIDTH - bull_cells)}[/red]"
    console.print(f"\n[bold]{escape(symbol)}[/bold] community sentiment")
    console.print(f"[green]Bulls {counts.bull_pct}%[/green] {bar} [red]{counts.bear_pct}% Bears[/red]")
    console.print(f"[dim]{counts.bulls} bullish, {counts.bears} bearish votes[/dim]")
    if my_vote is not None:
        console.print(f"Your vote: {SENTIMENT_STYLE[my_vote]}")


# ---------------------------------------------------------------------------
# post command
# ---------------------------------------------------------------------------


@app.command()
def post(
    symbol: Annotated[str, typer.Argument(help="Stock symbol, e.g. AAPL")],
    text: Annotated[str, typer.Argument(help="Comment text")],
    sentiment: Annotated[
        Sentiment, typer.Option(help="Your stance", case_sensitive=False)
    ] = Sentiment.BULLISH,
    reply_to: Annotated[str | None, typer.Option(help="Reply to this comment id")] = None,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """Post a comment (or a reply) on a symbol."""
    configure_logging(verbose=verbose, quiet=quiet)
    if not text.strip():
        console.print("[red]Comment text must not be blank.[/red]")
        raise typer.Exit(code=1)
    settings = _community_settings()
    asyncio.run(
        _post_async(settings, symbol=symbol, text=text, sentiment=sentiment, reply_to=reply_to)
    )


async def _post_async(
    settings: Settings,
    *,
    symbol: str,
    text: str,
    sentiment: Sentiment,
    reply_to: str | None,
) -> None:
    async with SupabaseClient.from_settings(settings) as supabase:
        session = StockCommentsSession(
            symbol, comments=CommentService(supabase), identity=supabase
        )
        record = await session.add_comment(text, sentiment, parent_id=reply_to)
        await session.close()
    if record is None:
        console.print(f"[red]Comment not posted: {escape(str(session.last_error))}[/red]")
        raise typer.Exit(code=1)
    console.print(
        f"[green]Posted[/green] comment {escape(record.id)} on {escape(record.stock_symbol)}"
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _community_settings() -> Settings:
    """Settings with the community backend configured, or exit with an error."""
    settings = load_settings()
    if not settings.community_enabled:
        console.print("[red]Set SUPABASE_URL and SUPABASE_ANON_KEY to use community features.[/red]")
        raise typer.Exit(code=1)
    return settings


def _truncate(text: str, width: int = TEXT_WIDTH) -> str:
    return text if len(text) <= width else f"{text[: width - 3]}..."

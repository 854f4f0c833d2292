"""Tests for the CLI entry point (typer app).

Validates that typer subcommands are registered, that each command hands
its arguments to the async layer, and that the renderers print the right
flags and values. The async helpers are replaced with AsyncMocks; nothing
touches the network.
"""

from __future__ import annotations

import datetime
from unittest.mock import AsyncMock, patch

import pytest
from rich.console import Console
from typer.testing import CliRunner

from Souq_View import cli
from Souq_View.cli import app
from Souq_View.config import Settings
from Souq_View.models import (
    CommentRecord,
    CommentThread,
    HistoricalCandle,
    MarketItem,
    Sentiment,
    SnapshotResult,
    StockDetails,
    StockVoteCounts,
)
from Souq_View.utils.exceptions import BackendHTTPError

runner = CliRunner()

COMMUNITY = Settings(supabase_url="https://demo.supabase.co", supabase_anon_key="anon-key")


@pytest.fixture(autouse=True)
def wide_console(monkeypatch: pytest.MonkeyPatch) -> Console:
    """Wide console so tables never wrap, and no logging reconfiguration."""
    console = Console(width=200)
    monkeypatch.setattr(cli, "console", console)
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)
    return console


def _record(comment_id: str, **overrides: object) -> CommentRecord:
    row = {
        "id": comment_id,
        "stock_symbol": "AAPL",
        "text": "Strong quarter",
        "sentiment": "bullish",
        "upvotes": 3,
        "created_at": datetime.datetime(2025, 1, 15, 14, 0, tzinfo=datetime.UTC),
    }
    return CommentRecord.model_validate({**row, **overrides})


# ---------------------------------------------------------------------------
# Command registration
# ---------------------------------------------------------------------------


class TestCommandRegistration:
    """Tests that all expected commands are registered on the app."""

    @pytest.mark.parametrize("command", ["snapshot", "detail", "comments", "sentiment", "post"])
    def test_command_exists(self, command: str) -> None:
        result = runner.invoke(app, [command, "--help"])
        assert result.exit_code == 0

    def test_comments_help_shows_options(self) -> None:
        result = runner.invoke(app, ["comments", "--help"])
        assert "--limit" in result.output
        assert "--follow" in result.output


# ---------------------------------------------------------------------------
# snapshot command
# ---------------------------------------------------------------------------


class TestSnapshotCommand:
    """Tests for the snapshot command."""

    def test_renders_items(self) -> None:
        result_model = SnapshotResult(
            items=[
                MarketItem(symbol="AAPL", name="Apple Inc.", last_price="150.00", percent_change="1.20"),
                MarketItem(symbol="TSLA", name="Tesla", last_price="700.00", percent_change="-2.50"),
            ]
        )
        with patch("Souq_View.cli._snapshot_async", AsyncMock(return_value=result_model)) as mock_async:
            result = runner.invoke(app, ["snapshot", "AAPL", "TSLA"])

        assert result.exit_code == 0
        assert "150.00" in result.output
        assert "+1.20" in result.output
        assert "-2.50" in result.output
        mock_async.assert_awaited_once_with(symbols=["AAPL", "TSLA"])

    def test_default_watchlist(self) -> None:
        with patch(
            "Souq_View.cli._snapshot_async", AsyncMock(return_value=SnapshotResult(items=[]))
        ) as mock_async:
            runner.invoke(app, ["snapshot"])
        mock_async.assert_awaited_once_with(symbols=None)

    def test_502_message(self) -> None:
        degraded = SnapshotResult(items=[], from_fallback=True, error_502=True)
        with patch("Souq_View.cli._snapshot_async", AsyncMock(return_value=degraded)):
            result = runner.invoke(app, ["snapshot"])
        assert "HTTP 502" in result.output

    def test_fallback_and_stale_notices(self) -> None:
        item = MarketItem(symbol="AAPL", name="Apple", last_price="—")
        for flags, notice in [
            ({"from_fallback": True}, "placeholder watchlist"),
            ({"from_stale_cache": True}, "may be delayed"),
        ]:
            model = SnapshotResult(items=[item], **flags)
            with patch("Souq_View.cli._snapshot_async", AsyncMock(return_value=model)):
                result = runner.invoke(app, ["snapshot"])
            assert notice in result.output


# ---------------------------------------------------------------------------
# detail command
# ---------------------------------------------------------------------------


class TestDetailCommand:
    """Tests for the detail command."""

    def test_renders_profile_and_candles(self) -> None:
        details = StockDetails(
            detail={"statistics": {"pe": 31.2, "beta": None}},
            profile={"name": "Apple Inc.", "description": "Phones."},
            historical=[HistoricalCandle(time=0, datetime="2025-01-14", open=1, high=2, low=1, close=1.5)],
        )
        with patch("Souq_View.cli._detail_async", AsyncMock(return_value=details)):
            result = runner.invoke(app, ["detail", "aapl"])

        assert result.exit_code == 0
        assert "Apple Inc." in result.output
        assert "31.2" in result.output
        assert "last close 1.50 on 2025-01-14" in result.output

    def test_failure_exits_nonzero(self) -> None:
        error = BackendHTTPError("stock-detail returned HTTP 404", ticker="x", source="backend")
        with patch("Souq_View.cli._detail_async", AsyncMock(side_effect=error)):
            result = runner.invoke(app, ["detail", "nope"])
        assert result.exit_code == 1
        assert "Could not load NOPE" in result.output


# ---------------------------------------------------------------------------
# community commands
# ---------------------------------------------------------------------------


class TestCommunityCommands:
    """Tests for comments, sentiment, and post."""

    @pytest.mark.parametrize(
        "args", [["comments", "AAPL"], ["sentiment", "AAPL"], ["post", "AAPL", "hi"]]
    )
    def test_requires_supabase_settings(self, args: list[str]) -> None:
        with patch("Souq_View.cli.load_settings", return_value=Settings()):
            result = runner.invoke(app, args)
        assert result.exit_code == 1
        assert "SUPABASE_URL" in result.output

    def test_comments_passes_options(self) -> None:
        with (
            patch("Souq_View.cli.load_settings", return_value=COMMUNITY),
            patch("Souq_View.cli._comments_async", AsyncMock()) as mock_async,
        ):
            result = runner.invoke(app, ["comments", "AAPL", "--limit", "20", "--follow", "5"])

        assert result.exit_code == 0
        mock_async.assert_awaited_once_with(COMMUNITY, symbol="AAPL", limit=20, follow=5.0)

    def test_sentiment_vote_option(self) -> None:
        with (
            patch("Souq_View.cli.load_settings", return_value=COMMUNITY),
            patch("Souq_View.cli._sentiment_async", AsyncMock()) as mock_async,
        ):
            result = runner.invoke(app, ["sentiment", "AAPL", "--vote", "BEARISH"])

        assert result.exit_code == 0
        mock_async.assert_awaited_once_with(COMMUNITY, symbol="AAPL", vote=Sentiment.BEARISH)

    def test_post_blank_text_rejected(self) -> None:
        with patch("Souq_View.cli._post_async", AsyncMock()) as mock_async:
            result = runner.invoke(app, ["post", "AAPL", "   "])
        assert result.exit_code == 1
        mock_async.assert_not_awaited()

    def test_post_reply(self) -> None:
        with (
            patch("Souq_View.cli.load_settings", return_value=COMMUNITY),
            patch("Souq_View.cli._post_async", AsyncMock()) as mock_async,
        ):
            runner.invoke(app, ["post", "AAPL", "Agreed", "--reply-to", "c1"])
        mock_async.assert_awaited_once_with(
            COMMUNITY, symbol="AAPL", text="Agreed", sentiment=Sentiment.BULLISH, reply_to="c1"
        )


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


class TestRenderers:
    """Tests for the table and bar renderers."""

    def test_comments_table(self, wide_console: Console) -> None:
        threads = [
            CommentThread(
                comment=_record("c1"),
                replies=[_record("r1", parent_id="c1", text="Agreed", sentiment="bearish")],
            ),
            CommentThread(comment=_record("c2", reported_at="2025-01-16T09:00:00Z")),
        ]
        with wide_console.capture() as capture:
            cli._render_comments("AAPL", threads)
        output = capture.get()

        assert "Strong quarter" in output
        assert "> Agreed" in output
        assert "(reported)" in output
        assert "BULL" in output
        assert "BEAR" in output

    def test_bracketed_comment_text_printed_literally(self, wide_console: Console) -> None:
        threads = [CommentThread(comment=_record("c1", text="[/red] target raised [bold]"))]
        with wide_console.capture() as capture:
            cli._render_comments("AAPL", threads)
        assert "[/red] target raised [bold]" in capture.get()

    def test_bracketed_snapshot_name_printed_literally(self, wide_console: Console) -> None:
        result_model = SnapshotResult(
            items=[MarketItem(symbol="AAPL", name="Apple [/b]", last_price="1.00")]
        )
        with wide_console.capture() as capture:
            cli._render_snapshot(result_model)
        assert "Apple [/b]" in capture.get()

    def test_bracketed_profile_printed_literally(self, wide_console: Console) -> None:
        details = StockDetails(
            detail={"statistics": {"[/x]": "[y]"}},
            profile={"name": "Acme [/i]", "description": "[link]"},
        )
        with wide_console.capture() as capture:
            cli._render_detail("ACME", details)
        output = capture.get()
        assert "Acme [/i]" in output
        assert "[link]" in output
        assert "[/x]" in output

    def test_empty_comments(self, wide_console: Console) -> None:
        with wide_console.capture() as capture:
            cli._render_comments("AAPL", [])
        assert "No comments for AAPL" in capture.get()

    def test_sentiment_bar(self, wide_console: Console) -> None:
        with wide_console.capture() as capture:
            cli._render_sentiment("AAPL", StockVoteCounts.from_counts(2, 1), Sentiment.BULLISH)
        output = capture.get()

        assert "Bulls 67%" in output
        assert "33% Bears" in output
        assert "Your vote" in output

    def test_truncate(self) -> None:
        assert cli._truncate("short") == "short"
        assert cli._truncate("x" * 100, 10) == "xxxxxxx..."

import asyncio
import io
import os
import pytest
from decimal import Decimal
from unittest.mock import patch

from config import ProductionSettings, Settings, TestingSettings, get_settings
from ingestion import END_OF_STREAM
from main import consume, main, run_pipeline
from models import Balance
from report import REPORT_HEADER, format_row, render_report
from tests.conftest import make_command

FIXTURES = os.path.join(os.path.dirname(os.path.abspath(__file__)), "fixtures")


def fixture_path(name):
    return os.path.join(FIXTURES, name)


def report_lines(text):
    lines = text.splitlines()
    return lines[0], set(lines[1:])


class TestReport:
    """Test report rendering."""

    def test_header_kept_verbatim(self):
        out = io.StringIO()
        render_report({}, out)

        assert out.getvalue() == "client,available,held, total, locked\n"

    def test_row_format(self):
        balance = Balance(available=Decimal("1.5"), held=Decimal("0.25"), locked=True)

        assert format_row(3, balance) == "3,1.5,0.25,1.75,true"

    def test_ledger_order_by_default(self):
        out = io.StringIO()
        render_report({2: Balance(), 1: Balance()}, out)

        assert out.getvalue().splitlines()[1:] == ["2,0,0,0,false", "1,0,0,0,false"]

    def test_sorted_output(self):
        out = io.StringIO()
        render_report({2: Balance(), 1: Balance()}, out, sort=True)

        assert out.getvalue().splitlines()[1:] == ["1,0,0,0,false", "2,0,0,0,false"]


class TestPipeline:
    """Test the producer/consumer pipeline."""

    @pytest.mark.asyncio
    async def test_consumer_drains_until_every_producer_finishes(self, processor, balance_repo):
        queue = asyncio.Queue()
        queue.put_nowait(make_command("deposit", 1, 1, "1"))
        queue.put_nowait(END_OF_STREAM)
        queue.put_nowait(make_command("deposit", 1, 2, "2"))
        queue.put_nowait(END_OF_STREAM)

        stats = await consume(queue, processor, producers=2)

        assert stats.processed == 2
        assert (await balance_repo.get_balance(1)).available == Decimal("3")

    @pytest.mark.asyncio
    async def test_sample_with_disputes(self):
        balances, stats = await run_pipeline([fixture_path("sample_disputes.csv")], TestingSettings())

        assert balances[1] == Balance(available=Decimal("1000"))
        assert balances[2] == Balance(locked=True)
        assert balances[3].available == Decimal("1500.0000")
        assert 4 not in balances
        assert stats.processed == 10
        assert stats.rejected == 4

    @pytest.mark.asyncio
    async def test_multiple_sources(self):
        balances, stats = await run_pipeline(
            [fixture_path("sample1.csv"), fixture_path("sample_bad_rows.csv")],
            TestingSettings(),
        )

        # both files use tx 1 and 2, so whichever is read second loses those rows
        assert stats.total == 8
        assert set(balances) == {1, 2}

    @pytest.mark.asyncio
    async def test_missing_source_raises_after_drain(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            await run_pipeline(
                [fixture_path("sample1.csv"), str(tmp_path / "missing.csv")],
                TestingSettings(),
            )


@patch("main.configure_logging")
class TestCli:
    """Test the command line entry point."""

    @pytest.mark.parametrize("name", ["sample1.csv", "sample_no_header.csv", "sample_reordered.csv"])
    def test_sample_output(self, mock_configure, capsys, name):
        assert main([fixture_path(name)]) == 0

        header, rows = report_lines(capsys.readouterr().out)
        assert header == REPORT_HEADER
        assert rows == {"1,1.5,0,1.5,false", "2,2.0,0,2.0,false"}

    def test_dispute_sample_output(self, mock_configure, capsys):
        assert main([fixture_path("sample_disputes.csv")]) == 0

        header, rows = report_lines(capsys.readouterr().out)
        assert rows == {
            "1,1000,0,1000,false",
            "2,0,0,0,true",
            "3,1500.0000,0,1500.0000,false",
        }

    def test_environment_preset_reaches_logging(self, mock_configure, capsys, monkeypatch):
        monkeypatch.setenv("PAYMENTS_ENV", "production")
        get_settings.cache_clear()
        try:
            assert main([fixture_path("sample1.csv")]) == 0
        finally:
            get_settings.cache_clear()

        assert isinstance(mock_configure.call_args.args[0], ProductionSettings)

    def test_sorted_output_setting(self, mock_configure, capsys):
        with patch("main.get_settings", return_value=Settings(sort_output=True)):
            assert main([fixture_path("sample_reordered.csv")]) == 0

        lines = capsys.readouterr().out.splitlines()
        assert lines[1].startswith("1,")
        assert lines[2].startswith("2,")

    def test_reads_stdin_without_argument(self, mock_configure, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO("type,client,tx,amount\ndeposit,9,1,4.5\n"))

        assert main([]) == 0

        assert capsys.readouterr().out.splitlines()[1:] == ["9,4.5,0,4.5,false"]

    def test_missing_file_fails_without_output(self, mock_configure, capsys, tmp_path):
        assert main([str(tmp_path / "missing.csv")]) == 1

        assert capsys.readouterr().out == ""

    def test_too_many_arguments(self, mock_configure, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["a.csv", "b.csv"])

        assert exc.value.code != 0
        captured = capsys.readouterr()
        assert "usage:" in captured.err
        assert captured.out == ""

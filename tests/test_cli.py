"""Tests for argument handling and configuration loading."""

from pathlib import Path
from unittest.mock import patch

import pytest

from substack_kindle import cli
from substack_kindle.config import EmailConfig
from substack_kindle.content import RemoteArticle
from substack_kindle.documents import LocalDocument
from substack_kindle.errors import InputError

ENV = {
    "EMAIL_FROM": "me@example.com",
    "EMAIL_TO": "me@kindle.com",
    "EMAIL_PASSWORD": "secret",
    "SMTP_HOST": "smtp.example.com",
}


class TestEmailConfig:
    def test_reads_environment(self):
        config = EmailConfig.from_env({**ENV, "SMTP_PORT": "465"})

        assert config.sender == "me@example.com"
        assert config.recipient == "me@kindle.com"
        assert config.password == "secret"
        assert config.smtp_host == "smtp.example.com"
        assert config.smtp_port == 465

    def test_default_port(self):
        assert EmailConfig.from_env(ENV).smtp_port == 587

    def test_non_numeric_port(self):
        with pytest.raises(InputError, match="SMTP_PORT"):
            EmailConfig.from_env({**ENV, "SMTP_PORT": "smtp"})


class TestParseArgs:
    def test_defaults(self):
        args = cli.parse_args(["https://example.substack.com/p/test"])

        assert args.article == "https://example.substack.com/p/test"
        assert args.format == "epub"
        assert args.converter == "ebook-convert"
        assert not args.skip_converter

    def test_single_dash_flags(self):
        args = cli.parse_args(["-url", "https://example.substack.com/p/x", "-format", "azw3"])

        assert args.url == "https://example.substack.com/p/x"
        assert args.format == "azw3"

    def test_pdf_flag_is_a_path(self):
        args = cli.parse_args(["--pdf", "letter.pdf", "--title", "Letter"])

        assert args.pdf == Path("letter.pdf")
        assert args.title == "Letter"


class TestBuildSource:
    def test_article(self):
        source = cli.build_source(cli.parse_args(["--url", "https://example.substack.com/p/x"]))

        assert isinstance(source, RemoteArticle)

    def test_pdf(self, tmp_path):
        pdf = tmp_path / "letter.pdf"
        pdf.write_bytes(b"%PDF-1.4")

        source = cli.build_source(cli.parse_args(["--pdf", str(pdf), "--author", "Someone"]))

        assert isinstance(source, LocalDocument)
        assert source.options.author == "Someone"

    def test_neither(self):
        with pytest.raises(InputError, match="--url"):
            cli.build_source(cli.parse_args([]))

    def test_both(self, tmp_path):
        args = cli.parse_args(["--url", "https://example.substack.com/p/x", "--pdf", "a.pdf"])

        with pytest.raises(InputError, match="not both"):
            cli.build_source(args)


class TestMain:
    @pytest.fixture(autouse=True)
    def keep_log_handlers(self, monkeypatch):
        monkeypatch.setattr(cli.logging, "basicConfig", lambda **kwargs: None)

    @patch("substack_kindle.cli.load_dotenv", return_value=False)
    @patch("substack_kindle.cli.run_pipeline")
    def test_success(self, mock_run, _mock_dotenv, monkeypatch):
        for key, value in ENV.items():
            monkeypatch.setenv(key, value)

        code = cli.main(["--url", "https://example.substack.com/p/x", "--format", "mobi"])

        assert code == 0
        source, fmt, config, options = mock_run.call_args.args
        assert isinstance(source, RemoteArticle)
        assert fmt.value == "mobi"
        assert config.recipient == "me@kindle.com"
        assert not options.skip_converter

    @patch("substack_kindle.cli.load_dotenv", return_value=False)
    @patch("substack_kindle.cli.run_pipeline")
    def test_invalid_format_exits_nonzero_without_running(self, mock_run, _mock_dotenv):
        code = cli.main(["--url", "https://example.substack.com/p/x", "--format", "pdf"])

        assert code == 1
        mock_run.assert_not_called()

    @patch("substack_kindle.cli.load_dotenv", return_value=False)
    def test_missing_source_exits_nonzero(self, _mock_dotenv, caplog):
        code = cli.main([])

        assert code == 1
        assert "--pdf" in caplog.text

"""Tests for shell output parsing utilities."""

from __future__ import annotations

from tests.mock_ssh import (
    FIND_TXT2IMG,
    PS_ETIME,
    STAT_NEWEST,
    WGET_LOG_404,
    WGET_LOG_DONE,
    WGET_LOG_RUNNING,
)
from webui_fleet.utils.shell_parser import (
    dedupe_lines,
    find_download_errors,
    first_line,
    format_uptime,
    has_download_succeeded,
    parse_etime,
    parse_last_used,
    parse_latest_date_dir,
    parse_pids,
    parse_saved_path,
)


class TestGenericHelpers:
    def test_first_line_skips_blanks(self):
        assert first_line("\n\n  hello  \nworld") == "hello"

    def test_first_line_empty(self):
        assert first_line("") is None

    def test_dedupe_keeps_order(self):
        out = "a\nb\nc\nb\nc\nd\n"
        assert dedupe_lines(out) == "a\nb\nc\nd"

    def test_dedupe_head_tail_overlap(self):
        # head -n 3 / tail -n 3 of a four line log
        out = "l1\nl2\nl3\nl2\nl3\nl4\n"
        assert dedupe_lines(out).splitlines() == ["l1", "l2", "l3", "l4"]


class TestOutputDirectories:
    def test_latest_date_dir(self):
        assert parse_latest_date_dir(FIND_TXT2IMG).endswith("txt2img-images/2024-05-02")

    def test_takes_first_sorted_line(self):
        out = "/w/outputs/txt2img-images/2024-05-02\n/w/outputs/txt2img-images/2024-05-01\n"
        assert parse_latest_date_dir(out) == "/w/outputs/txt2img-images/2024-05-02"

    def test_ignores_non_date_names(self):
        assert parse_latest_date_dir("/w/outputs/txt2img-images/grids\n") is None

    def test_empty_directory(self):
        assert parse_latest_date_dir("") is None


class TestLastUsed:
    def test_truncates_timestamp_and_keeps_filename(self):
        assert parse_last_used(STAT_NEWEST) == "2024-05-02 21:47 00042-1234567.png"

    def test_idempotent(self):
        assert parse_last_used(STAT_NEWEST) == parse_last_used(STAT_NEWEST)

    def test_garbage(self):
        assert parse_last_used("find: '/nope': No such file or directory") is None

    def test_empty(self):
        assert parse_last_used("") is None


class TestProcesses:
    def test_parse_pids(self):
        assert parse_pids("2381\n2399\n") == [2381, 2399]

    def test_parse_pids_empty(self):
        assert parse_pids("") == []

    def test_etime_with_days(self):
        assert parse_etime(PS_ETIME) == ((1 * 24 + 2) * 60 + 3) * 60 + 4

    def test_etime_minutes_only(self):
        assert parse_etime("05:09") == 309

    def test_etime_hours(self):
        assert parse_etime("02:00:01") == 7201

    def test_etime_invalid(self):
        assert parse_etime("") is None
        assert parse_etime("yesterday") is None

    def test_format_uptime(self):
        assert format_uptime(93784) == "1d 02:03:04"
        assert format_uptime(309) == "00:05:09"


class TestWgetLog:
    def test_success_marker(self):
        assert has_download_succeeded(WGET_LOG_DONE)

    def test_running_log_is_not_success(self):
        assert not has_download_succeeded(WGET_LOG_RUNNING)

    def test_saved_path_ascii_quotes(self):
        assert parse_saved_path(WGET_LOG_RUNNING) == "/tmp/x/foo.safetensors"

    def test_saved_path_typographic_quotes(self):
        assert parse_saved_path("Saving to: ‘model.ckpt’\n") == "model.ckpt"

    def test_saved_path_with_apostrophe(self):
        log = "Saving to: '/tmp/x/it's-v2.safetensors'\n     0K ........  4% 41.2M 48s\n"
        assert parse_saved_path(log) == "/tmp/x/it's-v2.safetensors"

    def test_saved_path_missing(self):
        assert parse_saved_path(WGET_LOG_404) is None

    def test_errors(self):
        assert find_download_errors(WGET_LOG_404) == ["ERROR 404: Not Found."]

    def test_no_errors(self):
        assert find_download_errors(WGET_LOG_DONE) == []

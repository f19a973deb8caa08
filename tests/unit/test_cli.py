"""Tests for command-line argument parsing."""

from __future__ import annotations

from pathlib import Path

from sensorrelay.cli import parse_args


class TestParseArgs:
    def test_serve_overrides(self) -> None:
        args = parse_args(["-c", "relay.yaml", "serve", "--port", "8081", "--mode", "proxy", "--auth", "none"])
        assert args.command == "serve"
        assert args.config == Path("relay.yaml")
        assert args.port == 8081
        assert args.mode == "proxy"
        assert args.auth == "none"

    def test_serve_defaults(self) -> None:
        args = parse_args(["serve"])
        assert args.host is None
        assert args.port is None
        assert args.verbose is False

    def test_simulate_device(self) -> None:
        args = parse_args(["-v", "simulate-device", "--url", "http://relay:3000", "--cycles", "3"])
        assert args.command == "simulate-device"
        assert args.url == "http://relay:3000"
        assert args.cycles == 3
        assert args.verbose is True

    def test_no_command(self) -> None:
        assert parse_args([]).command is None

import cli


def test_parser_resolve_options():
    args = cli.build_parser().parse_args(
        ["--config", "c.yaml", "resolve", "/music", "--provider", "itunes", "--mode", "artist-first",
         "--strategy", "d", "--non-interactive", "--preview", "--album-artist", "Various Artists"]
    )

    assert args.config == "c.yaml"
    assert args.path == "/music"
    assert (args.provider, args.mode, args.strategy) == ("itunes", "artist-first", "d")
    assert args.non_interactive and args.preview
    assert args.album_artist == "Various Artists"
    assert args.func is cli.cmd_resolve


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "resolve" in capsys.readouterr().out


def test_providers_lists_configured_sources(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("SPOTIFY_CLIENT_ID", raising=False)
    monkeypatch.delenv("SPOTIFY_CLIENT_SECRET", raising=False)

    assert cli.main(["--config", str(tmp_path / "music-config.yaml"), "providers"]) == 0

    out = capsys.readouterr().out
    assert "musicbrainz (default)" in out
    assert "Spotify disabled" in out


def test_resolve_missing_path_fails(tmp_path, capsys):
    code = cli.main(["--config", str(tmp_path / "music-config.yaml"), "resolve", str(tmp_path / "nope")])

    assert code == 1
    assert "Path not found" in capsys.readouterr().err

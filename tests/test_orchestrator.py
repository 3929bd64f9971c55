import pytest

from agents.aligner import Strategy
from orchestrator.config import ConfigManager
from orchestrator.errors import ConfigurationError
from orchestrator.orchestrator import AlbumResolver, parse_strategy
from orchestrator.state import Stage
from conftest import FakeSource, ScriptedConsole, make_album, make_registry, make_track


def _source():
    tracks = [make_track(title, track=i, duration_ms=seconds * 1000)
              for i, (title, seconds) in enumerate([("Alpha", 200), ("Beta", 180), ("Gamma", 240),
                                                     ("Delta", 150), ("Epsilon", 300)], 1)]
    return FakeSource("fake", albums=[make_album("rel-1")], tracks={"rel-1": tracks})


def _resolver(tmp_path, scanner, tokens=None, **kwargs):
    console = ScriptedConsole(tokens)
    resolver = AlbumResolver(ConfigManager(str(tmp_path / "none.yaml")), registry=make_registry(_source()),
                             console=console, scanner=scanner, **kwargs)
    return resolver, console


def _audio(folder, name="01 - x.mp3"):
    folder.mkdir(parents=True, exist_ok=True)
    (folder / name).write_bytes(b"")


def _later(album_dir, tag_store):
    """Second readable album next to album_dir"""
    folder = album_dir.parent / "2002 - Later"
    _audio(folder, "01 - Later.mp3")
    tag_store.add(folder / "01 - Later.mp3", title="Later", track=1, disc=1, duration_ms=100_000)


def test_parse_strategy():
    assert parse_strategy("d") is Strategy.DURATION
    assert parse_strategy("Track") is Strategy.TRACK_NUMBER
    assert parse_strategy(None) is Strategy.ORDER
    with pytest.raises(ConfigurationError):
        parse_strategy("bogus")


def test_unknown_provider_or_mode_is_a_configuration_error(tmp_path, scanner):
    with pytest.raises(ConfigurationError):
        _resolver(tmp_path, scanner, provider="spotify")
    with pytest.raises(ConfigurationError):
        _resolver(tmp_path, scanner, find_mode="sideways")


def test_discover_albums_handles_disc_folders(tmp_path, scanner):
    library = tmp_path / "lib"
    _audio(library / "Artist" / "2001 - A")
    _audio(library / "Artist" / "Box" / "CD1")
    _audio(library / "Artist" / "Box" / "CD2")
    (library / "Empty" / "scans").mkdir(parents=True)
    resolver, _console = _resolver(tmp_path, scanner)

    albums = resolver.discover_albums(library)

    assert albums == [library / "Artist" / "2001 - A", library / "Artist" / "Box"]


def test_missing_path_and_empty_library(tmp_path, scanner):
    resolver, _console = _resolver(tmp_path, scanner)

    assert resolver.process_path(str(tmp_path / "missing"))['status'] == 'error'
    (tmp_path / "empty").mkdir()
    assert resolver.process_path(str(tmp_path / "empty"))['status'] == 'no_albums'


def test_interactive_run_saves_album(tmp_path, album_dir, scanner, tag_store):
    resolver, _console = _resolver(tmp_path, scanner, tokens=["", "sa"])

    summary = resolver.process_path(str(album_dir))

    assert summary['status'] == 'success'
    assert summary['results'] == [{'path': str(album_dir), 'status': 'done'}]
    assert summary['stats']['tracks_saved'] == 5
    assert len(tag_store.writes) == 5
    assert tag_store.open_handles == 0


def test_non_interactive_run_skips_without_prompting(tmp_path, album_dir, scanner, tag_store):
    resolver, console = _resolver(tmp_path, scanner, non_interactive=True)

    summary = resolver.process_path(str(album_dir))

    assert summary['stats']['albums_skipped'] == 1
    assert console.prompts == []
    assert tag_store.writes == []


def test_failing_album_does_not_stop_the_batch(tmp_path, album_dir, scanner, tag_store, monkeypatch):
    _later(album_dir, tag_store)
    resolver, _console = _resolver(tmp_path, scanner)
    outcomes = [RuntimeError("disk on fire"), Stage.DONE]

    def run(job):
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(resolver.machine, "run", run)

    summary = resolver.process_path(str(album_dir.parent))

    assert [r['status'] for r in summary['results']] == ['failed', 'done']
    assert summary['stats']['albums_failed'] == 1
    assert summary['stats']['albums_done'] == 1


def test_end_of_input_stops_the_batch(tmp_path, album_dir, scanner, tag_store):
    _later(album_dir, tag_store)
    resolver, console = _resolver(tmp_path, scanner, tokens=["x"])

    summary = resolver.process_path(str(album_dir.parent))

    assert summary['results'] == [{'path': str(album_dir), 'status': 'skipped'}]
    assert len(console.prompts) == 2

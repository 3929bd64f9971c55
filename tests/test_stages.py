import pytest

from agents.aligner import Strategy, TrackAligner
from agents.committer import CommitEngine
from orchestrator.config import ConfigManager
from orchestrator.stages import StageMachine
from orchestrator.state import AlbumJob, FindMode, Stage
from sources.base import ProviderArtist
from conftest import FakeSource, ScriptedConsole, make_album, make_registry, make_track

TITLES = [("Alpha", 200), ("Beta", 180), ("Gamma", 240), ("Delta", 150), ("Epsilon", 300)]


def _tracks(order=None, prefix="t"):
    rows = [TITLES[i] for i in (order or range(len(TITLES)))]
    return [make_track(title, track=n, duration_ms=seconds * 1000, track_id=f"{prefix}{n}")
            for n, (title, seconds) in enumerate(rows, 1)]


def _source(name="fake", **kwargs):
    kwargs.setdefault('albums', [make_album("rel-1")])
    kwargs.setdefault('tracks', {"rel-1": _tracks()})
    return FakeSource(name, **kwargs)


def _machine(scanner, *sources, tokens=None, non_interactive=False, config=None):
    console = ScriptedConsole(tokens)
    committer = CommitEngine(scanner=scanner, confirm_retry=console.confirm_retry)
    machine = StageMachine(make_registry(*sources), TrackAligner(), committer,
                           console=console, config=config, non_interactive=non_interactive)
    return machine, console


def _job(album_dir, scanner, provider="fake", find_mode=FindMode.QUICK):
    records = scanner.scan(str(album_dir))
    return AlbumJob.from_folder(str(album_dir), records, provider=provider,
                                find_mode=find_mode, stage=find_mode.entry_stage)


# ==================== Quick / A / B ====================


def test_quick_default_selection_enters_track_stage(album_dir, scanner):
    source = _source()
    machine, _console = _machine(scanner, source)
    job = _job(album_dir, scanner)

    assert machine.step(job, "") is Stage.TRACK
    assert job.via_quick
    assert job.selected_album.id == "rel-1"
    assert len(job.pairs) == 5
    assert all(p.is_complete for p in job.pairs)
    assert source.calls[0] == ('search_album', "Some Artist", "Some Album")


def test_quick_query_replaces_artist_and_album(album_dir, scanner):
    source = _source()
    machine, _console = _machine(scanner, source)
    job = _job(album_dir, scanner)
    machine.candidates(job)

    assert machine.step(job, "Other Artist - Other Album") is Stage.QUICK
    machine.candidates(job)

    assert (job.artist, job.album) == ("Other Artist", "Other Album")
    assert source.calls[-1] == ('search_album', "Other Artist", "Other Album")


def test_quick_id_lookup(album_dir, scanner):
    source = _source(albums=[make_album("rel-1"), make_album("rel-9", name="Hidden")],
                     tracks={"rel-9": _tracks()})
    machine, _console = _machine(scanner, source)
    job = _job(album_dir, scanner)

    assert machine.step(job, "id:rel-9") is Stage.TRACK
    assert job.selected_album.name == "Hidden"


def test_out_of_range_selection_warns_without_change(album_dir, scanner):
    machine, console = _machine(scanner, _source())
    job = _job(album_dir, scanner)

    assert machine.step(job, "7") is Stage.QUICK
    assert console.warnings


def test_artist_back_uses_cached_list_and_page(album_dir, scanner, tmp_path):
    artists = [ProviderArtist(id=f"a{i}", name=f"Artist {i}", provider="fake") for i in range(1, 4)]
    source = _source(artists=artists)
    config = ConfigManager(str(tmp_path / "missing.yaml"), overrides={'resolver.page_size': 2})
    machine, _console = _machine(scanner, source, config=config)
    job = _job(album_dir, scanner, find_mode=FindMode.ARTIST_FIRST)
    assert job.stage is Stage.ARTIST

    assert machine.step(job, ">") is Stage.ARTIST
    assert job.cache.artist_page == 1
    job.stage = machine.step(job, "3")
    assert job.stage is Stage.ALBUM
    assert job.selected_artist.id == "a3"
    machine.candidates(job)
    assert source.calls[-1] == ('search_album', "Artist 3", "Some Album")

    job.stage = machine.step(job, "b")
    assert job.stage is Stage.ARTIST
    machine.render(job)

    assert source.count('search_artist') == 1
    assert job.cache.artist_page == 1


def test_back_from_track_stage_reuses_album_list(album_dir, scanner):
    artists = [ProviderArtist(id="a1", name="Some Artist", provider="fake")]
    source = _source(artists=artists)
    machine, _console = _machine(scanner, source)
    job = _job(album_dir, scanner, find_mode=FindMode.ARTIST_FIRST)

    job.stage = machine.step(job, "1")
    job.stage = machine.step(job, "1")
    assert job.stage is Stage.TRACK
    assert not job.via_quick

    job.stage = machine.step(job, "pr")
    assert job.stage is Stage.ALBUM
    assert job.pairs == []
    machine.render(job)

    assert source.count('search_album') == 1


def test_provider_switch_clears_cache(album_dir, scanner):
    first, second = _source("fake"), _source("other")
    machine, _console = _machine(scanner, first, second)
    job = _job(album_dir, scanner)
    machine.candidates(job)

    assert machine.step(job, "/ot") is Stage.QUICK
    assert job.provider == "other"
    assert job.cache.albums == []
    machine.candidates(job)

    assert second.count('search_album') == 1
    assert first.count('search_album') == 1


def test_provider_switch_from_track_stage_restarts_search(album_dir, scanner):
    first, second = _source("fake"), _source("other")
    machine, _console = _machine(scanner, first, second)
    job = _job(album_dir, scanner)
    job.stage = machine.step(job, "")

    assert machine.step(job, "/ot") is Stage.QUICK
    assert job.pairs == [] and job.selected_album is None


def test_find_mode_toggle_keeps_cache(album_dir, scanner):
    source = _source(artists=[ProviderArtist(id="a1", name="X", provider="fake")])
    machine, _console = _machine(scanner, source)
    job = _job(album_dir, scanner)
    machine.candidates(job)

    assert machine.step(job, "/mode") is Stage.ARTIST
    assert job.find_mode is FindMode.ARTIST_FIRST
    assert job.cache.albums


def test_album_artist_override(album_dir, scanner):
    machine, _console = _machine(scanner, _source())
    job = _job(album_dir, scanner)

    machine.step(job, "aa:Various Artists")
    assert job.album_artist == "Various Artists"
    machine.step(job, "aa:")
    assert job.album_artist_override is None


def test_provider_error_shows_recovery_menu(album_dir, scanner):
    broken = _source("fake", fail=True)
    machine, console = _machine(scanner, broken)
    job = _job(album_dir, scanner)

    assert machine.render(job) == "retry"
    assert any("No albums found" in line for line in console.lines)
    assert machine.step(job, "r") is Stage.QUICK
    machine.candidates(job)
    assert broken.count('search_album') >= 2
    assert machine.step(job, "x") is Stage.SKIPPED


def test_combine_same_titled_releases(album_dir, scanner):
    source = _source(
        albums=[make_album("rel-1", name="Some Album"), make_album("rel-2", name="Some Album!"),
                make_album("rel-3", name="Different")],
        tracks={"rel-1": _tracks([0, 1], prefix="a"), "rel-2": _tracks([2, 3, 4], prefix="b")}
    )
    machine, _console = _machine(scanner, source)
    job = _job(album_dir, scanner)

    assert machine.step(job, "c") is Stage.TRACK
    assert job.selected_album.is_combined
    assert job.selected_album.id == "rel-1+rel-2"
    assert [t.disc_number for t in job.remote_tracks] == [1, 1, 2, 2, 2]


# ==================== Track stage ====================


def _in_track_stage(album_dir, scanner, tracks=None, tokens=None):
    source = _source(tracks={"rel-1": tracks or _tracks()})
    machine, console = _machine(scanner, source, tokens=tokens)
    job = _job(album_dir, scanner)
    job.stage = machine.step(job, "")
    assert job.stage is Stage.TRACK
    return machine, console, job


def test_unrecognized_track_token_changes_nothing(album_dir, scanner):
    machine, console, job = _in_track_stage(album_dir, scanner)
    before = [(p.audio_file, p.track) for p in job.pairs]

    assert machine.step(job, "zzz") is Stage.TRACK
    assert [(p.audio_file, p.track) for p in job.pairs] == before
    assert console.warnings


def test_strategy_change_repairs(album_dir, scanner):
    machine, _console, job = _in_track_stage(album_dir, scanner, tracks=_tracks([4, 3, 2, 1, 0]))

    machine.step(job, "d")

    assert job.strategy is Strategy.DURATION
    assert all(p.audio_file.title == p.track.name for p in job.pairs)


def test_toggles(album_dir, scanner):
    machine, _console, job = _in_track_stage(album_dir, scanner)

    machine.step(job, "r")
    machine.step(job, "w")
    machine.step(job, "mk 1,2")

    assert job.reverse_columns and job.preview
    assert [p.marked for p in job.pairs[:2]] == [True, True]


def test_manual_pass_reverts_to_order(album_dir, scanner):
    machine, _console, job = _in_track_stage(album_dir, scanner, tokens=["1=2", "bogus", ""])
    wanted = job.remote_tracks[1]

    assert machine.step(job, "m") is Stage.TRACK

    assert job.pairs[0].track is wanted
    assert job.strategy is Strategy.ORDER


def test_review_reassigns_best_matches(album_dir, scanner):
    machine, _console, job = _in_track_stage(album_dir, scanner, tracks=_tracks([4, 3, 2, 1, 0]),
                                             tokens=["1"] * 5)

    machine.step(job, "rm")

    assert len(job.pairs) == 5
    assert all(p.is_complete and p.audio_file.title == p.track.name for p in job.pairs)
    ids = [p.track.id for p in job.pairs]
    assert len(set(ids)) == 5


def test_back_to_quick_from_track_stage(album_dir, scanner):
    machine, _console, job = _in_track_stage(album_dir, scanner)

    assert machine.step(job, "b") is Stage.QUICK


def test_save_selected_until_empty_finishes_job(album_dir, scanner, tag_store):
    machine, _console, job = _in_track_stage(album_dir, scanner)

    assert machine.step(job, "st 1-2") is Stage.TRACK
    assert len(job.pairs) == 3
    assert machine.step(job, "st all") is Stage.DONE
    assert len(tag_store.writes) == 5


def test_bad_range_is_rejected(album_dir, scanner, tag_store):
    machine, console, job = _in_track_stage(album_dir, scanner)

    assert machine.step(job, "st 9") is Stage.TRACK
    assert tag_store.writes == []
    assert console.warnings


def test_save_all_moves_folder_and_finishes(album_dir, scanner, tag_store):
    machine, _console, job = _in_track_stage(album_dir, scanner)
    machine.step(job, "aa:Compilers")

    assert machine.step(job, "sa") is Stage.DONE
    assert not album_dir.exists()
    assert (album_dir.parent.parent / "Compilers" / "2001 - Some Album").is_dir()
    assert tag_store.tags("01 - Alpha.mp3")['album_artists'] == ["Compilers"]


def test_preview_save_all_stays_and_writes_nothing(album_dir, scanner, tag_store):
    machine, _console, job = _in_track_stage(album_dir, scanner)
    machine.step(job, "w")

    assert machine.step(job, "sa") is Stage.TRACK
    assert tag_store.writes == []
    assert album_dir.exists()


# ==================== run() ====================


def test_run_scripted_session(album_dir, scanner):
    machine, console = _machine(scanner, _source(), tokens=["?", "", "d", "sa"])
    job = _job(album_dir, scanner)

    assert machine.run(job) is Stage.DONE
    assert console.prompts[0].startswith("Q")


def test_run_propagates_end_of_input(album_dir, scanner):
    machine, _console = _machine(scanner, _source(), tokens=[])
    job = _job(album_dir, scanner)

    with pytest.raises(EOFError):
        machine.run(job)


def test_non_interactive_never_prompts(album_dir, scanner):
    machine, console = _machine(scanner, _source(), non_interactive=True)
    job = _job(album_dir, scanner)

    assert machine.run(job) is Stage.SKIPPED
    assert console.prompts == []
    assert job.selected_album is not None


@pytest.mark.parametrize("albums", [[], [make_album("rel-1"), make_album("rel-2")]])
def test_non_interactive_skips_ambiguous_or_empty(album_dir, scanner, albums):
    source = _source(albums=albums)
    machine, console = _machine(scanner, source, non_interactive=True)
    job = _job(album_dir, scanner)

    assert machine.run(job) is Stage.SKIPPED
    assert console.prompts == []
    assert job.selected_album is None
    assert console.warnings

import tempfile

import pytest

from chaffwipe import space
from chaffwipe.config import MIB as MB, ChaffConfig
from chaffwipe.errors import ProbeError
from chaffwipe.fill import FillController, FillState, fill_directory
from chaffwipe.writer import ChaffOutcome, ChaffWriter

# Scenarios are scaled down: 1 "MiB" of the real tool is 1 KiB here
K = 1024


def make_config(tmp_path, **overrides):
    settings = dict(directory=tmp_path, file_size=100 * K, threshold=10 * K, chunk_size=4 * K)
    settings.update(overrides)
    return ChaffConfig(**settings)


def chaff_files(directory):
    return sorted(p.name for p in directory.iterdir())


def test_single_capped_file_when_space_above_threshold(tmp_path, fake_disk):
    config = make_config(tmp_path)
    controller = FillController(config, probe=fake_disk(25 * K))
    report = controller.run()

    assert controller.state is FillState.DONE
    assert report.created == [config.numbered_path(0)]
    assert config.numbered_path(0).stat().st_size == 25 * K
    assert report.final_available == 0
    assert report.bytes_written == 25 * K


def test_low_space_goes_straight_to_final_file(tmp_path, fake_disk):
    config = make_config(tmp_path)
    report = FillController(config, probe=fake_disk(8 * K)).run()

    assert report.created == [config.final_path()]
    assert chaff_files(tmp_path) == ['chaff_FINAL.dat']
    assert config.final_path().stat().st_size == 8 * K


def test_no_space_creates_nothing(tmp_path, fake_disk):
    controller = FillController(make_config(tmp_path), probe=fake_disk(0))
    report = controller.run()

    assert controller.state is FillState.DONE
    assert report.created == []
    assert chaff_files(tmp_path) == []


def test_numbered_files_then_final(tmp_path, fake_disk):
    config = make_config(tmp_path)
    report = FillController(config, probe=fake_disk(305 * K)).run()

    assert chaff_files(tmp_path) == [
        'chaff_000000.dat', 'chaff_000001.dat', 'chaff_000002.dat', 'chaff_FINAL.dat',
    ]
    assert report.created[-1] == config.final_path()
    assert config.final_path().stat().st_size == 5 * K
    assert report.bytes_written == 305 * K


def test_last_regular_file_consumes_remaining_space(tmp_path, fake_disk):
    report = FillController(make_config(tmp_path), probe=fake_disk(350 * K)).run()

    assert len(report.created) == 4
    assert 'chaff_FINAL.dat' not in chaff_files(tmp_path)
    assert report.final_available == 0


def test_space_is_reprobed_before_each_file(tmp_path, fake_disk):
    disk = fake_disk(305 * K)
    FillController(make_config(tmp_path), probe=disk).run()
    # initial probe plus one after each of the three numbered files
    assert disk.calls == 4


def test_failed_file_is_skipped_and_counter_advances(tmp_path, fake_disk):
    config = make_config(tmp_path)
    config.numbered_path(0).touch()
    report = FillController(config, probe=fake_disk(150 * K)).run()

    assert config.numbered_path(0).read_bytes() == b''
    assert report.created == [config.numbered_path(1), config.numbered_path(2)]
    assert len(report.failures) == 1
    assert report.failures[0].outcome is ChaffOutcome.FAILED
    assert report.failures[0].path == config.numbered_path(0)


def test_partial_file_is_still_queued_for_shredding(tmp_path, fake_disk, flaky_source):
    config = make_config(tmp_path)
    writer = ChaffWriter(chunk_size=config.chunk_size, source=flaky_source(fail_on=[2]))
    report = FillController(config, writer=writer, probe=fake_disk(150 * K)).run()

    first = report.attempts[0]
    assert first.outcome is ChaffOutcome.PARTIAL
    assert first.bytes_written == 4 * K
    assert first.path in report.created


def test_only_files_with_bytes_are_queued(tmp_path, fake_disk, flaky_source):
    config = make_config(tmp_path, max_stalls=3)
    writer = ChaffWriter(chunk_size=config.chunk_size, source=flaky_source(always=True))
    report = FillController(config, writer=writer, probe=fake_disk(50 * K)).run()

    assert report.created == []
    assert chaff_files(tmp_path) == []


def test_repeated_failures_stop_the_loop(tmp_path, fake_disk, flaky_source):
    config = make_config(tmp_path, max_stalls=3)
    writer = ChaffWriter(chunk_size=config.chunk_size, source=flaky_source(always=True))
    controller = FillController(config, writer=writer, probe=fake_disk(50 * K))
    report = controller.run()

    assert controller.state is FillState.DONE
    assert report.stalled
    assert report.files_attempted == 3
    assert len(report.failures) == 3


def test_space_that_never_shrinks_stops_the_loop(tmp_path):
    config = make_config(tmp_path, file_size=20 * K, max_stalls=3)
    report = FillController(config, probe=lambda path: 50 * K).run()

    assert report.stalled
    assert len(report.created) == 3


def test_probe_error_aborts(tmp_path):
    def broken(path):
        raise ProbeError("statvfs failed", path=path)

    with pytest.raises(ProbeError):
        FillController(make_config(tmp_path), probe=broken).run()


def test_created_is_a_snapshot(tmp_path, fake_disk):
    controller = FillController(make_config(tmp_path), probe=fake_disk(25 * K))
    controller.run()
    assert isinstance(controller.created, tuple)
    assert len(controller.created) == 1


def test_fill_directory_wrapper(tmp_path, fake_disk):
    report = fill_directory(make_config(tmp_path), probe=fake_disk(8 * K))
    assert len(report.created) == 1


def test_invalid_config_rejected(tmp_path):
    with pytest.raises(ValueError):
        FillController(make_config(tmp_path, file_size=0))


def test_probe_lost_mid_fill_keeps_created_files(tmp_path, fake_disk):
    config = make_config(tmp_path, file_size=5 * K, threshold=K)
    disk = fake_disk(30 * K)

    def flaky_probe(path):
        if disk.calls >= 2:
            raise ProbeError("statvfs failed", path=path)
        return disk(path)

    controller = FillController(config, probe=flaky_probe)
    report = controller.run()

    assert controller.state is FillState.DONE
    assert isinstance(report.probe_error, ProbeError)
    assert report.created == [config.numbered_path(0), config.numbered_path(1)]
    assert report.final_available == 20 * K


def test_tracked_space_drops_by_bytes_actually_written(tmp_path, fake_disk, flaky_source):
    config = make_config(tmp_path)
    writer = ChaffWriter(chunk_size=config.chunk_size, source=flaky_source(fail_on=[2]))
    seen = []
    FillController(config, writer=writer, probe=fake_disk(150 * K),
                   on_file=lambda record, count, tracked: seen.append((record.outcome, tracked))).run()

    assert seen[0] == (ChaffOutcome.PARTIAL, 146 * K)


def test_partial_final_file_leaves_space_tracked(tmp_path, fake_disk, flaky_source):
    config = make_config(tmp_path)
    writer = ChaffWriter(chunk_size=config.chunk_size, source=flaky_source(fail_on=[2]))
    report = FillController(config, writer=writer, probe=fake_disk(8 * K)).run()

    assert report.attempts[0].outcome is ChaffOutcome.PARTIAL
    assert report.final_available == 4 * K


def test_on_file_runs_after_every_attempt(tmp_path, fake_disk):
    calls = []
    FillController(make_config(tmp_path), probe=fake_disk(305 * K),
                   on_file=lambda record, count, tracked: calls.append((record.path.name, count, tracked))).run()

    assert calls == [
        ('chaff_000000.dat', 1, 205 * K),
        ('chaff_000001.dat', 2, 105 * K),
        ('chaff_000002.dat', 3, 5 * K),
        ('chaff_FINAL.dat', 4, 0),
    ]


def test_second_run_starts_fresh(tmp_path, fake_disk):
    config = make_config(tmp_path)
    controller = FillController(config, probe=fake_disk(25 * K))
    first = controller.run()
    for p in first.created:
        p.unlink()

    second = controller.run()

    assert second is not first
    assert second.files_attempted == 1
    assert second.created == [config.numbered_path(0)]
    assert not second.stalled


@pytest.mark.skipif(space.available(tempfile.gettempdir()) < 256 * MB, reason="needs free space")
def test_real_free_space_drops_by_bytes_written(tmp_path):
    size = 16 * MB
    before = space.available(tmp_path)
    written, _ = ChaffWriter().write(tmp_path / 'chaff_000000.dat', size, before)
    after = space.available(tmp_path)

    assert written == size
    # block rounding and filesystem metadata
    assert abs((before - after) - written) <= 2 * MB

import argparse
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from chaffwipe import space
from chaffwipe.config import KIB, MIB, ChaffConfig
from chaffwipe.discard import DiscardOutcome, select_discarder
from chaffwipe.errors import ProbeError
from chaffwipe.fill import FillController
from chaffwipe.shred import Shredder, ShredReport, ShredStatus
from chaffwipe.writer import ChaffWriter


def format_bytes(b):
    """
    Format a byte count with binary units

    Args:
        b: Number of bytes

    Returns string like "512 B" or "1.5 MB"
    """
    unit = 1024
    if b < unit:
        return f"{b} B"
    div, exp = unit, 0
    n = b // unit
    while n >= unit and exp < 5:
        div *= unit
        exp += 1
        n //= unit
    return f"{b / div:.1f} {'KMGTPE'[exp]}B"


def confirm(prompt):
    """Only an explicit 'yes' counts as consent."""
    return input(prompt).strip() == 'yes'


def probe_or_unknown(path):
    try:
        return format_bytes(space.available(path))
    except ProbeError as e:
        return f"unknown ({e})"


def generate(config):
    """
    Fill config.directory with chaff, showing a byte progress bar

    Returns FillReport

    Raises ProbeError if free space cannot be determined at startup
    """
    initial = space.available(config.directory)
    print(f"\nStarting with {format_bytes(initial)} available")
    print("Generating chaff files...")

    with tqdm(total=initial, unit='B', unit_scale=True, desc='Writing chaff') as pbar:
        def on_file(record, count, tracked):
            if count % 10 == 0:
                pbar.write(f"Progress: {count} files, {format_bytes(tracked)} left")

        writer = ChaffWriter(chunk_size=config.chunk_size, progress=pbar.update)
        report = FillController(config, writer=writer, on_file=on_file).run()

    for record in report.failures:
        print(f"Error creating {record.path} ({record.bytes_written} bytes written): {record.error}")
    return report


def shred(paths, config):
    """
    Shred every created file, one file-progress tick per file

    Returns ShredReport
    """
    print("\nShredding chaff files...")
    with tqdm(total=len(paths), unit='file', desc='Shredding files') as pbar:
        def on_result(result):
            if result.status is ShredStatus.REMOVED_WITHOUT_OVERWRITE:
                pbar.write(f"WARNING: removed WITHOUT overwriting: {result.path} ({result.error})")
            elif not result.ok:
                pbar.write(f"Error shredding {result.path} [{result.status.value}]: {result.error}")
            pbar.update(1)

        return Shredder(chunk_size=config.chunk_size).destroy_all(paths, on_result=on_result)


def request_discard(directory):
    print()
    result = select_discarder().request_discard(directory)
    if result.outcome is DiscardOutcome.ISSUED:
        print(result.detail)
    elif result.outcome is DiscardOutcome.FAILED:
        print(f"TRIM failed: {result.detail}")
    elif result.outcome is DiscardOutcome.MANUAL:
        print(f"ACTION REQUIRED: {result.detail}")
    else:
        print(f"Skipping TRIM: {result.detail}")
    return result


def print_shred_summary(report):
    print("=" * 70)
    print(f"Shredded and removed: {len(report.shredded)}")
    print(f"Data overwritten: {format_bytes(report.bytes_written)}")
    if report.degraded:
        print(f"Removed WITHOUT overwrite: {len(report.degraded)}")
    if report.missing:
        print(f"Already gone: {len(report.missing)}")
    if report.failed:
        print(f"Failed (left in place for manual handling): {len(report.failed)}")
        for r in report.failed:
            note = " (content already overwritten)" if r.status is ShredStatus.SANITIZED_NOT_REMOVED else ""
            print(f"  - {r.path}{note}")


def build_parser():
    parser = argparse.ArgumentParser(
        prog='chaffwipe',
        description='Fill free disk space with random chaff files, then shred them',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  Basic usage (creates ./chaff):
    chaffwipe
    chaffwipe /mnt/usb/chaff

  Smaller files, lower threshold:
    chaffwipe /mnt/usb/chaff --size-mb=50 --threshold-mb=5

  Skip the TRIM question:
    chaffwipe /mnt/usb/chaff --discard
    chaffwipe /mnt/usb/chaff --no-discard

HOW IT WORKS:
  1. Writes chaff_000000.dat, chaff_000001.dat, ... filled with random data
     until free space drops below the threshold
  2. Writes chaff_FINAL.dat to consume what is left
  3. Shreds every created file: 0xFF pass, 0x00 pass, random pass,
     fsync after each pass, then delete
  4. Optionally asks the filesystem to discard (TRIM) the freed blocks

LIMITATIONS:
  On SSDs, copy-on-write or snapshotting filesystems overwriting in place is
  best-effort only. If the process is killed mid-run, chaff files can be
  left behind and must be removed by hand.
        '''
    )

    parser.add_argument(
        'directory',
        nargs='?',
        default='./chaff',
        help='Directory to create chaff files in (default: ./chaff)'
    )
    parser.add_argument(
        '--size-mb',
        type=int,
        default=100,
        metavar='MB',
        help='Size of each chaff file in MiB (default: 100)'
    )
    parser.add_argument(
        '--threshold-mb',
        type=int,
        default=10,
        metavar='MB',
        help='Write the final file once free space is at or below this (default: 10)'
    )
    parser.add_argument(
        '--chunk-kb',
        type=int,
        default=1024,
        metavar='KB',
        help='Write chunk size in KiB (default: 1024)'
    )
    parser.add_argument(
        '--prefix',
        default='chaff_',
        help='Chaff filename prefix (default: chaff_)'
    )
    parser.add_argument(
        '--max-stalls',
        type=int,
        default=5,
        metavar='N',
        help='Stop filling after N consecutive attempts without progress (default: 5)'
    )
    discard = parser.add_mutually_exclusive_group()
    discard.add_argument(
        '--discard',
        dest='discard',
        action='store_true',
        default=None,
        help='Request TRIM/discard after shredding without asking'
    )
    discard.add_argument(
        '--no-discard',
        dest='discard',
        action='store_false',
        help='Skip TRIM/discard without asking'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Log every file and pass'
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(levelname)s: %(message)s',
    )

    config = ChaffConfig(
        directory=Path(args.directory),
        file_size=args.size_mb * MIB,
        threshold=args.threshold_mb * MIB,
        chunk_size=args.chunk_kb * KIB,
        prefix=args.prefix,
        max_stalls=args.max_stalls,
    )
    try:
        config.validate()
    except ValueError as e:
        print(f"ERROR: {e}")
        return 2

    print("\n" + "=" * 70)
    print("CHAFF GENERATOR AND SHREDDER")
    print("=" * 70)
    print(f"\nTarget directory: {config.directory.absolute()}")
    print(f"File size: {args.size_mb} MB")
    print(f"Low-space threshold: {args.threshold_mb} MB")

    print("\n" + "!" * 70)
    print("WARNING: This will fill your disk with random data!")
    print("!" * 70)
    if not confirm("\nAre you sure you want to continue? (yes/NO): "):
        print("\nOperation cancelled.")
        return 0

    try:
        config.directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"\nERROR: Cannot create {config.directory}: {e}")
        return 1

    try:
        fill_report = generate(config)
    except ProbeError as e:
        print(f"\nERROR getting disk space: {e}")
        return 1

    created = fill_report.created
    print("\n" + "=" * 70)
    print("Generation complete")
    print("=" * 70)
    print(f"Files attempted: {fill_report.files_attempted}")
    print(f"Files created: {len(created)}")
    print(f"Data written: {format_bytes(fill_report.bytes_written)}")
    if fill_report.stalled:
        print("WARNING: Fill stopped early, free space was not decreasing")
    if fill_report.probe_error:
        print(f"ERROR getting disk space, fill stopped early: {fill_report.probe_error}")
    print(f"Space before shredding: {probe_or_unknown(config.directory)}")

    if created:
        shred_report = shred(created, config)
        print_shred_summary(shred_report)
    else:
        shred_report = ShredReport()
        print("\nNo files to shred.")

    print(f"Final available space: {probe_or_unknown(config.directory)}")

    do_discard = args.discard
    if do_discard is None:
        do_discard = confirm("\nAttempt TRIM/discard? (yes/NO): ")
    if do_discard:
        request_discard(config.directory)
    else:
        print("Skipping TRIM/discard step.")

    print("\n" + "=" * 70)
    print("All operations complete!")
    print("=" * 70)
    if fill_report.probe_error:
        return 1
    return 0 if shred_report.ok else 1


if __name__ == '__main__':
    sys.exit(main())
